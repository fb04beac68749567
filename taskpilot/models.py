"""Data models for plans and tasks.

Defines the Task and Plan dataclasses along with their status types and the
transition rules between statuses. Models are JSON serializable via
to_dict()/from_dict() for snapshot persistence.
"""

import secrets
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Literal

from taskpilot.errors import InvalidTransitionError

TaskStatus = Literal["pending", "in_progress", "completed", "failed", "skipped"]
Priority = Literal["low", "medium", "high", "critical"]
PlanStatus = Literal[
    "draft", "approved", "executing", "completed", "failed", "cancelled"
]
RiskLevel = Literal["low", "medium", "high", "critical"]

PRIORITIES: tuple[Priority, ...] = ("low", "medium", "high", "critical")
RISK_LEVELS: tuple[RiskLevel, ...] = ("low", "medium", "high", "critical")
TERMINAL_TASK_STATUSES: frozenset[str] = frozenset({"completed", "failed", "skipped"})

# Allowed plan transitions. Anything not listed here is rejected.
PLAN_TRANSITIONS: dict[str, frozenset[str]] = {
    "draft": frozenset({"approved", "cancelled"}),
    "approved": frozenset({"executing", "cancelled"}),
    "executing": frozenset({"completed", "failed"}),
    "completed": frozenset(),
    "failed": frozenset(),
    "cancelled": frozenset(),
}

_DATETIME_FIELDS = ("created_at", "started_at", "completed_at", "approved_at")


def new_id() -> str:
    """Generate an opaque unique identifier."""
    return secrets.token_hex(8)


def _serialize_datetimes(data: dict[str, Any]) -> dict[str, Any]:
    for key in _DATETIME_FIELDS:
        value = data.get(key)
        if isinstance(value, datetime):
            data[key] = value.isoformat()
    return data


def _parse_datetimes(data: dict[str, Any]) -> dict[str, Any]:
    for key in _DATETIME_FIELDS:
        value = data.get(key)
        if isinstance(value, str):
            data[key] = datetime.fromisoformat(value)
    return data


@dataclass
class Task:
    """A schedulable unit of work inside a plan.

    Once a task reaches a terminal status (completed, failed, skipped) only
    actual_duration and completed_at may change.
    """

    title: str
    description: str
    id: str = field(default_factory=new_id)
    status: TaskStatus = "pending"
    priority: Priority = "medium"
    category: str = "implementation"
    estimated_duration: float = 30
    actual_duration: float | None = None
    dependencies: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    commands: list[str] = field(default_factory=list)
    files: list[str] = field(default_factory=list)
    reasoning: str = ""
    created_at: datetime = field(default_factory=datetime.now)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_TASK_STATUSES

    def mark_in_progress(self, now: datetime | None = None) -> None:
        """Move a pending task to in_progress and stamp started_at.

        Raises:
            InvalidTransitionError: If the task is not pending
        """
        if self.status != "pending":
            raise InvalidTransitionError(
                f"Task {self.id} cannot start from status '{self.status}'"
            )
        self.status = "in_progress"
        self.started_at = now or datetime.now()

    def mark_terminal(
        self,
        status: TaskStatus,
        actual_duration: float | None = None,
        now: datetime | None = None,
    ) -> None:
        """Move the task to a terminal status.

        Re-marking a task with the status it already has only refreshes
        actual_duration and completed_at.

        Args:
            status: One of completed, failed, skipped
            actual_duration: Elapsed minutes, recorded when given
            now: Completion timestamp (defaults to now)

        Raises:
            InvalidTransitionError: If status is not terminal, or the task is
                already terminal with a different status
        """
        if status not in TERMINAL_TASK_STATUSES:
            raise InvalidTransitionError(f"'{status}' is not a terminal task status")
        if self.is_terminal and self.status != status:
            raise InvalidTransitionError(
                f"Task {self.id} is already {self.status}, cannot become {status}"
            )

        self.status = status
        self.completed_at = now or datetime.now()
        if actual_duration is not None:
            self.actual_duration = actual_duration

    def to_dict(self) -> dict[str, Any]:
        return _serialize_datetimes(asdict(self))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        return cls(**_parse_datetimes(dict(data)))


@dataclass
class PlanContext:
    """Context captured when the plan was generated."""

    project_info: Any = None
    selected_files: list[str] = field(default_factory=list)
    user_requirements: list[str] = field(default_factory=list)


@dataclass
class Plan:
    """A goal-directed collection of tasks.

    Tasks are kept in generation order; execution order is computed by the
    dependency resolver when the plan runs. The goal and task list are fixed
    once the plan is created; only statuses and timestamps change afterwards.
    """

    title: str
    description: str
    goal: str
    tasks: list[Task]
    working_directory: str
    id: str = field(default_factory=new_id)
    status: PlanStatus = "draft"
    estimated_total_duration: float = 0
    actual_total_duration: float | None = None
    created_at: datetime = field(default_factory=datetime.now)
    approved_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    context: PlanContext = field(default_factory=PlanContext)
    excluded_task_ids: list[str] = field(default_factory=list)

    def transition_to(self, status: PlanStatus) -> None:
        """Move the plan to a new status, enforcing the lifecycle.

        Raises:
            InvalidTransitionError: If the transition is not allowed
        """
        if status not in PLAN_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Plan {self.id} cannot move from '{self.status}' to '{status}'"
            )
        self.status = status

    def get_task(self, task_id: str) -> Task | None:
        return next((t for t in self.tasks if t.id == task_id), None)

    def count_by_status(self, status: TaskStatus) -> int:
        return sum(1 for t in self.tasks if t.status == status)

    def to_dict(self) -> dict[str, Any]:
        data = _serialize_datetimes(asdict(self))
        data["tasks"] = [t.to_dict() for t in self.tasks]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Plan":
        data = _parse_datetimes(dict(data))
        data["tasks"] = [Task.from_dict(t) for t in data.get("tasks", [])]
        data["context"] = PlanContext(**data.get("context", {}))
        return cls(**data)


def extract_plan_title(goal: str) -> str:
    """Derive a short plan title from the goal text."""
    return goal if len(goal) <= 50 else goal[:47] + "..."
