"""Execution engine for approved plans.

Runs a plan's tasks one at a time in dependency order, persisting the plan
after every task transition so the durable document always reflects the
latest consistent state. Later tasks may rely on side effects of earlier
ones, so a task never starts before the previous one has finished.

Failure policy:
    - An error whose message contains a critical marker ("critical", "fatal"
      by default) aborts the plan: it is marked failed and nothing else starts.
    - Any other error only fails that task; execution continues.

Cancellation is cooperative and checked between tasks only. A cancelled run
leaves the plan in "executing" rather than forcing a terminal status. If the
running coroutine itself is cancelled, the current task is saved as failed
before the cancellation propagates.
"""

import asyncio
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Literal, Protocol

import structlog
from opentelemetry import trace

from taskpilot import telemetry
from taskpilot.config import TaskpilotConfig
from taskpilot.errors import InvalidTransitionError, PersistenceError
from taskpilot.models import Plan, Task
from taskpilot.resolver import find_dependency_issues, resolve_dependency_order
from taskpilot.store import PlanStore

logger = structlog.get_logger(__name__)


class TaskExecutor(Protocol):
    """Runs one unit of work; raises on failure."""

    async def execute(self, task_description: str, context: dict[str, Any]) -> Any: ...


class CancellationToken:
    """Flag an external party sets to stop dispatching further tasks.

    Safe to set from a signal handler or another thread.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class ExecutionResult:
    """Result of running a plan.

    Status values:
        completed: Every task was dispatched
        failed: A critical error aborted the plan
        cancelled: Cancellation stopped dispatch; the plan is still executing
    """

    status: Literal["completed", "failed", "cancelled"]
    plan: Plan
    completed_tasks: int
    failed_tasks: int
    skipped_tasks: int
    total_duration_minutes: float
    errors: dict[str, str] = field(default_factory=dict)


def is_critical_error(message: str, markers: tuple[str, ...]) -> bool:
    """Check whether an error message calls for aborting the whole plan."""
    lowered = message.lower()
    return any(marker in lowered for marker in markers)


class ExecutionEngine:
    """Drives an approved plan to completion.

    The engine is the only writer of task and plan state while a plan is
    executing.

    Usage:
        engine = ExecutionEngine(CommandExecutor(), store=store)
        result = await engine.execute(plan)
    """

    def __init__(
        self,
        executor: TaskExecutor,
        store: PlanStore | None = None,
        config: TaskpilotConfig | None = None,
        tracer: trace.Tracer | None = None,
        on_task_start: Callable[[Task, int, int], None] | None = None,
        on_task_complete: Callable[[Task, str | None], None] | None = None,
    ):
        """Initialize the engine.

        Args:
            executor: Unit-of-work collaborator
            store: Store used to persist the plan after each transition
            config: Configuration (uses defaults if None)
            tracer: OpenTelemetry tracer (uses the global one if None)
            on_task_start: Called with (task, position, total) before dispatch
            on_task_complete: Called with (task, error) once the task is terminal
        """
        self.executor = executor
        self.store = store
        self.config = config or TaskpilotConfig()
        self.tracer = tracer or trace.get_tracer("taskpilot")
        self.on_task_start = on_task_start
        self.on_task_complete = on_task_complete

    async def execute(
        self, plan: Plan, cancel_token: CancellationToken | None = None
    ) -> ExecutionResult:
        """Execute an approved plan.

        Args:
            plan: Plan in approved status
            cancel_token: Optional token checked between tasks

        Returns:
            ExecutionResult with the final tallies

        Raises:
            InvalidTransitionError: If the plan is not approved
            PersistenceError: If the plan could not be saved mid-run; the
                plan is left failed in memory
        """
        if plan.status != "approved":
            raise InvalidTransitionError(
                f"Plan {plan.id} must be approved before execution (status: {plan.status})"
            )

        cancel_token = cancel_token or CancellationToken()
        order = resolve_dependency_order(plan.tasks)

        issues = find_dependency_issues(plan.tasks)
        if issues.has_issues:
            logger.warning(
                "Dependency graph has issues, ordering is best-effort",
                plan_id=plan.id,
                dangling=issues.dangling,
                cyclic=issues.cyclic,
            )

        plan.transition_to("executing")
        plan.started_at = datetime.now()
        try:
            result_status, errors = await self._drive(plan, order, cancel_token)
        except PersistenceError as e:
            self._fail_unsaved_plan(plan, e)
            raise

        telemetry.record_plan_outcome(result_status)
        logger.info(
            "Plan execution finished",
            plan_id=plan.id,
            status=result_status,
            completed=plan.count_by_status("completed"),
            failed=plan.count_by_status("failed"),
        )

        return ExecutionResult(
            status=result_status,
            plan=plan,
            completed_tasks=plan.count_by_status("completed"),
            failed_tasks=plan.count_by_status("failed"),
            skipped_tasks=plan.count_by_status("skipped"),
            total_duration_minutes=plan.actual_total_duration or 0,
            errors=errors,
        )

    async def _drive(
        self, plan: Plan, order: list[Task], cancel_token: CancellationToken
    ) -> tuple[Literal["completed", "failed", "cancelled"], dict[str, str]]:
        """Dispatch tasks in order and settle the plan's final status."""
        self._persist(plan)

        errors: dict[str, str] = {}
        aborted = False
        cancelled = False

        with self.tracer.start_as_current_span("taskpilot.plan.execute") as plan_span:
            plan_span.set_attribute("plan.id", plan.id)
            plan_span.set_attribute("plan.total_tasks", len(order))

            for position, task in enumerate(order, start=1):
                if cancel_token.is_cancelled:
                    cancelled = True
                    break
                if task.is_terminal:
                    continue

                if task.id in plan.excluded_task_ids:
                    task.mark_terminal("skipped")
                    self._persist(plan)
                    self._notify_complete(task, None)
                    continue

                error = await self._run_task(plan, task, position, len(order))
                if error is not None:
                    errors[task.id] = error
                    if is_critical_error(error, self.config.critical_error_markers):
                        logger.error(
                            "Critical task failure, aborting plan",
                            plan_id=plan.id,
                            task_id=task.id,
                            error=error,
                        )
                        aborted = True
                        break

            plan_span.set_attribute("plan.aborted", aborted)
            plan_span.set_attribute("plan.cancelled", cancelled)

        if cancelled:
            logger.info("Plan execution cancelled", plan_id=plan.id)
            return "cancelled", errors

        self._finish(plan, "failed" if aborted else "completed")
        self._persist(plan)
        return plan.status, errors  # type: ignore[return-value]

    def _finish(self, plan: Plan, status: Literal["completed", "failed"]) -> None:
        plan.transition_to(status)
        plan.completed_at = datetime.now()
        plan.actual_total_duration = sum(
            t.actual_duration or 0 for t in plan.tasks if t.status == "completed"
        )

    def _fail_unsaved_plan(self, plan: Plan, error: PersistenceError) -> None:
        """Settle the in-memory plan as failed after a save error.

        The running task, if any, is failed and the plan moves to failed. One
        more save is attempted for transient errors.
        """
        logger.error("Plan state could not be saved, failing plan", plan_id=plan.id, error=str(error))
        for task in plan.tasks:
            if task.status == "in_progress":
                task.mark_terminal("failed")
        if plan.status == "executing":
            self._finish(plan, "failed")
            telemetry.record_plan_outcome("failed")

        try:
            self._persist(plan)
        except PersistenceError as retry_error:
            logger.error("Retrying plan save failed", plan_id=plan.id, error=str(retry_error))


    async def _run_task(
        self, plan: Plan, task: Task, position: int, total: int
    ) -> str | None:
        """Run one task through its state machine.

        Returns:
            The error message if the task failed, None on success
        """
        with self.tracer.start_as_current_span("taskpilot.task") as span:
            span.set_attribute("task.id", task.id)
            span.set_attribute("task.title", task.title)

            task.mark_in_progress()
            self._persist(plan)
            if self.on_task_start is not None:
                self.on_task_start(task, position, total)
            logger.info("Task started", plan_id=plan.id, task_id=task.id, position=position)

            context = {
                "task": task,
                "plan": plan,
                "working_directory": plan.working_directory,
            }
            start_time = time.monotonic()
            error: str | None = None
            try:
                await self.executor.execute(task.description or task.title, context)
            except asyncio.CancelledError:
                # Record the failed task before propagating
                task.mark_terminal("failed")
                telemetry.record_task(task.status, time.monotonic() - start_time)
                logger.warning("Task cancelled while running", plan_id=plan.id, task_id=task.id)
                self._persist(plan)
                self._notify_complete(task, "Task was cancelled")
                raise
            except Exception as e:
                error = str(e) or type(e).__name__
            elapsed = time.monotonic() - start_time

            if error is None:
                task.mark_terminal("completed", actual_duration=round(elapsed / 60, 2))
                logger.info("Task completed", task_id=task.id, seconds=round(elapsed, 1))
            else:
                task.mark_terminal("failed")
                logger.warning("Task failed", task_id=task.id, error=error)

            span.set_attribute("task.status", task.status)
            span.set_attribute("task.duration_seconds", elapsed)
            telemetry.record_task(task.status, elapsed)

            self._persist(plan)
            self._notify_complete(task, error)
            return error

    def _notify_complete(self, task: Task, error: str | None) -> None:
        if self.on_task_complete is not None:
            self.on_task_complete(task, error)

    def _persist(self, plan: Plan) -> None:
        if self.store is None:
            return
        try:
            self.store.save(plan)
        except OSError as e:
            raise PersistenceError(f"Could not save plan {plan.id}: {e}") from e
