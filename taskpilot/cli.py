"""CLI for taskpilot.

Provides commands to generate, approve and execute plans, inspect their
status, and pick agents for a task.
"""

import asyncio
import signal
import sys
from pathlib import Path
from typing import Any, NoReturn

import click
from rich.console import Console
from rich.table import Table

from taskpilot.approval import ApprovalGate, AutoApprover, ConsoleConfirmer
from taskpilot.blueprints import AgentPool
from taskpilot.config import TaskpilotConfig
from taskpilot.engine import CancellationToken, ExecutionEngine, ExecutionResult
from taskpilot.errors import TaskpilotError
from taskpilot.executors import CommandExecutor
from taskpilot.llm import AnthropicGenerator
from taskpilot.logging_setup import configure_logging
from taskpilot.models import Plan, Task
from taskpilot.plan_document import PRIORITY_MARKERS, STATUS_MARKERS
from taskpilot.plan_generator import PlanGenerator
from taskpilot.selector import AgentSelector, TaskRequirements
from taskpilot.store import PlanStore
from taskpilot.telemetry import create_metrics, setup_telemetry

console = Console()

STATUS_COLORS = {
    "draft": "white",
    "approved": "cyan",
    "executing": "yellow",
    "completed": "green",
    "failed": "red",
    "cancelled": "dim",
}

# Max top-level entries listed in the project context
CONTEXT_ENTRY_LIMIT = 40

EXECUTING_NOTE = (
    "Executing plans are either running now or were interrupted; "
    "an interrupted plan cannot be resumed or cancelled"
)


@click.group()
@click.version_option(package_name="taskpilot")
@click.option("--log-level", default="WARNING", help="Log level (DEBUG, INFO, WARNING, ...)")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines")
def cli(log_level: str, json_logs: bool) -> None:
    """taskpilot - Plan, approve and execute development goals."""
    configure_logging(log_level, json_output=json_logs)


@cli.command()
@click.argument("goal")
@click.option("--max-todos", "-n", type=int, default=None, help="Maximum number of tasks")
@click.option("--no-context", is_flag=True, help="Don't send project context to the planner")
def plan(goal: str, max_todos: int | None, no_context: bool) -> None:
    """Generate a draft plan for GOAL."""
    config = TaskpilotConfig.from_env()
    try:
        new_plan = asyncio.run(_generate(config, goal, max_todos, no_context))
    except TaskpilotError as e:
        _fail(e)
    _print_plan(new_plan)
    console.print(f"\nApprove with: [bold]taskpilot approve {new_plan.id}[/bold]")


@cli.command()
@click.argument("plan_id")
@click.option(
    "--exclude", "-x", multiple=True, help="Task id to leave out of execution (repeatable)"
)
def approve(plan_id: str, exclude: tuple[str, ...]) -> None:
    """Review and approve a draft plan."""
    config = TaskpilotConfig.from_env()
    store = _make_store(config)
    try:
        target = store.get(plan_id)
        gate = ApprovalGate(ConsoleConfirmer(console), store=store)
        decision = gate.request_approval(target, excluded_task_ids=list(exclude))
    except TaskpilotError as e:
        _fail(e)

    if not decision.prompted:
        console.print(f"Plan {plan_id} is already {target.status}")
    elif decision.approved:
        console.print(f"[green]Plan {plan_id} approved[/green]")
    else:
        console.print(f"[yellow]Plan {plan_id} not approved, still a draft[/yellow]")


@cli.command()
@click.argument("plan_id")
def cancel(plan_id: str) -> None:
    """Cancel a draft or approved plan."""
    config = TaskpilotConfig.from_env()
    store = _make_store(config)
    try:
        target = store.get(plan_id)
        ApprovalGate(ConsoleConfirmer(console), store=store).cancel(target)
    except TaskpilotError as e:
        _fail(e)
    console.print(f"Plan {plan_id} cancelled")


@cli.command()
@click.argument("plan_id")
def execute(plan_id: str) -> None:
    """Execute an approved plan. Ctrl-C stops after the current task."""
    config = TaskpilotConfig.from_env()
    store = _make_store(config)
    try:
        target = store.get(plan_id)
        result = asyncio.run(_execute(config, store, target))
    except TaskpilotError as e:
        _fail(e)

    _print_execution_summary(result)
    if result.status == "failed":
        sys.exit(1)


@cli.command()
@click.argument("goal")
@click.option("--max-todos", "-n", type=int, default=None, help="Maximum number of tasks")
@click.option("--no-context", is_flag=True, help="Don't send project context to the planner")
@click.option("--yes", "-y", is_flag=True, help="Approve without prompting")
def run(goal: str, max_todos: int | None, no_context: bool, yes: bool) -> None:
    """Generate, approve and execute a plan for GOAL."""
    config = TaskpilotConfig.from_env()
    store = _make_store(config)

    confirmer = AutoApprover() if yes else ConsoleConfirmer(console)
    try:
        new_plan = asyncio.run(_generate(config, goal, max_todos, no_context, store=store))
        _print_plan(new_plan)
        decision = ApprovalGate(confirmer, store=store).request_approval(new_plan)
    except TaskpilotError as e:
        _fail(e)

    if not decision.approved:
        console.print(f"[yellow]Plan {new_plan.id} not approved, nothing executed[/yellow]")
        return

    try:
        result = asyncio.run(_execute(config, store, new_plan))
    except TaskpilotError as e:
        _fail(e)

    _print_execution_summary(result)
    if result.status == "failed":
        sys.exit(1)


@cli.command()
@click.argument("plan_id", required=False)
def status(plan_id: str | None) -> None:
    """Show all plans, or the tasks of one plan."""
    config = TaskpilotConfig.from_env()
    store = _make_store(config)

    if plan_id is not None:
        try:
            _print_plan(store.get(plan_id))
        except TaskpilotError as e:
            _fail(e)
        return

    plans = store.list_plans()
    if not plans:
        console.print("[yellow]No plans found[/yellow]")
        return

    table = Table(title="Plans")
    table.add_column("ID")
    table.add_column("Title")
    table.add_column("Status")
    table.add_column("Tasks")
    table.add_column("Created")

    for p in plans:
        color = STATUS_COLORS.get(p.status, "white")
        table.add_row(
            p.id,
            p.title,
            f"[{color}]{p.status}[/{color}]",
            f"{p.count_by_status('completed')}/{len(p.tasks)}",
            p.created_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)
    if any(p.status == "executing" for p in plans):
        console.print(f"[yellow]{EXECUTING_NOTE}[/yellow]")


@cli.command()
def agents() -> None:
    """List the available agents."""
    table = Table(title="Agents")
    table.add_column("Name")
    table.add_column("Specialization")
    table.add_column("Autonomy")
    table.add_column("Style")
    table.add_column("Capabilities")

    for agent in AgentPool.default().agents():
        bp = agent.blueprint
        table.add_row(
            bp.name,
            bp.specialization,
            bp.autonomy_level,
            bp.working_style,
            ", ".join(bp.capabilities),
        )

    console.print(table)


@cli.command()
@click.argument("description")
@click.option("--capability", "-c", multiple=True, help="Required capability tag (repeatable)")
@click.option("--complexity", type=click.IntRange(0, 10), default=5, help="Complexity 0-10")
@click.option(
    "--risk",
    type=click.Choice(["low", "medium", "high", "critical"]),
    default="medium",
)
@click.option("--urgency", type=click.Choice(["low", "medium", "high"]), default="medium")
def select(
    description: str,
    capability: tuple[str, ...],
    complexity: int,
    risk: str,
    urgency: str,
) -> None:
    """Pick the best agent for a task DESCRIPTION."""
    config = TaskpilotConfig.from_env()
    tracer, meter = setup_telemetry(config)
    create_metrics(meter)

    requirements = TaskRequirements(
        description=description,
        required_capabilities=list(capability),
        complexity=complexity,
        risk=risk,  # type: ignore[arg-type]
        urgency=urgency,  # type: ignore[arg-type]
    )
    try:
        result = AgentSelector(AgentPool.default(), tracer=tracer).select(requirements)
    except TaskpilotError as e:
        _fail(e)

    console.print(f"[bold]Primary:[/bold] {result.primary.name}")
    if result.secondary:
        console.print(f"Secondary: {', '.join(a.name for a in result.secondary)}")
    if result.fallback:
        console.print(f"Fallback: {', '.join(a.name for a in result.fallback)}")
    console.print(f"Confidence: {result.confidence:.2f}")
    console.print(f"\n{result.justification}")

    table = Table(title="Scores")
    table.add_column("Agent")
    table.add_column("Score", justify="right")
    for score in result.scores:
        table.add_row(score.agent.name, f"{score.total:.1f}")
    console.print(table)


async def _generate(
    config: TaskpilotConfig,
    goal: str,
    max_todos: int | None,
    no_context: bool,
    store: PlanStore | None = None,
) -> Plan:
    """Internal async implementation of plan generation."""
    tracer, meter = setup_telemetry(config)
    create_metrics(meter)

    working_directory = Path.cwd()
    generator = PlanGenerator(
        AnthropicGenerator(config),
        store=store or _make_store(config),
        working_directory=str(working_directory),
        tracer=tracer,
    )
    context = "" if no_context else _project_context(working_directory)

    with console.status("Generating plan..."):
        return await generator.generate(
            goal, project_context=context, max_todos=max_todos or config.max_todos
        )


async def _execute(config: TaskpilotConfig, store: PlanStore, target: Plan) -> ExecutionResult:
    """Internal async implementation of plan execution."""
    tracer, meter = setup_telemetry(config)
    create_metrics(meter)

    def on_task_start(task: Task, position: int, total: int) -> None:
        console.print(f"[{position}/{total}] {task.title}")

    def on_task_complete(task: Task, error: str | None) -> None:
        if task.status == "completed":
            console.print(f"  [green]done[/green] ({task.actual_duration:.2f} min)")
        elif task.status == "skipped":
            console.print(f"  [dim]skipped[/dim] {task.title}")
        else:
            console.print(f"  [red]failed[/red]: {error}")

    engine = ExecutionEngine(
        CommandExecutor(timeout_seconds=config.command_timeout_seconds),
        store=store,
        config=config,
        tracer=tracer,
        on_task_start=on_task_start,
        on_task_complete=on_task_complete,
    )

    token = CancellationToken()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel)
        handler_installed = True
    except (NotImplementedError, RuntimeError):
        # No signal support here (e.g. Windows or a non-main thread)
        handler_installed = False

    try:
        return await engine.execute(target, cancel_token=token)
    finally:
        if handler_installed:
            loop.remove_signal_handler(signal.SIGINT)


def _make_store(config: TaskpilotConfig) -> PlanStore:
    return PlanStore(config.state_dir, document_name=config.plan_document_name)


def _project_context(path: Path) -> dict[str, Any]:
    """Lightweight description of the project the plan will run in."""
    entries = sorted(
        entry.name + ("/" if entry.is_dir() else "")
        for entry in path.iterdir()
        if not entry.name.startswith(".")
    )
    return {"name": path.name, "entries": entries[:CONTEXT_ENTRY_LIMIT]}


def _print_plan(p: Plan) -> None:
    color = STATUS_COLORS.get(p.status, "white")
    console.print(f"\n[bold]{p.title}[/bold] ({p.id})")
    console.print(
        f"Status: [{color}]{p.status}[/{color}]  "
        f"Estimated: {round(p.estimated_total_duration)} min"
    )
    if p.status == "executing":
        console.print(f"[yellow]{EXECUTING_NOTE}[/yellow]")

    table = Table()
    table.add_column("#", justify="right")
    table.add_column("Status")
    table.add_column("Task")
    table.add_column("Priority")
    table.add_column("Est.", justify="right")
    table.add_column("ID")

    for index, task in enumerate(p.tasks, start=1):
        excluded = " (excluded)" if task.id in p.excluded_task_ids else ""
        table.add_row(
            str(index),
            f"{STATUS_MARKERS.get(task.status, '')} {task.status}",
            task.title + excluded,
            f"{PRIORITY_MARKERS.get(task.priority, '')} {task.priority}",
            f"{task.estimated_duration:g}m",
            task.id,
        )

    console.print(table)


def _print_execution_summary(result: ExecutionResult) -> None:
    """Print plan execution summary."""
    color = {"completed": "green", "failed": "red", "cancelled": "yellow"}[result.status]
    total = len(result.plan.tasks)

    console.print(f"\n[bold {color}]Plan {result.status.upper()}[/bold {color}]")
    console.print(f"  Tasks: {result.completed_tasks}/{total} completed")
    console.print(f"  Duration: {result.total_duration_minutes:.2f} min")
    if result.failed_tasks:
        console.print(f"  [red]Failed: {result.failed_tasks}[/red]")
    if result.skipped_tasks:
        console.print(f"  Skipped: {result.skipped_tasks}")
    if result.status == "cancelled":
        console.print(f"  Plan {result.plan.id} left in executing state")


def _fail(error: Exception) -> NoReturn:
    console.print(f"[red]Error:[/red] {error}")
    sys.exit(1)


def main() -> None:
    """Main entry point for the taskpilot CLI."""
    cli()


if __name__ == "__main__":
    main()
