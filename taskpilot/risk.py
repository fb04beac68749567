"""Risk assessment and summary statistics for plans.

Deterministic checks on a plan's tasks, run before asking for approval.
Neither function mutates the plan.
"""

from collections import Counter
from dataclasses import dataclass, field

from taskpilot.models import Plan, RiskLevel

# More high-priority tasks than this makes a plan high risk on its own
HIGH_PRIORITY_LIMIT = 3


def assess_plan_risk(plan: Plan) -> RiskLevel:
    """Classify a plan's risk level.

    Rules, evaluated in order:
        1. Any critical-priority task -> critical
        2. More than three high-priority tasks, or at least one high-priority
           task while the plan runs any command -> high
        3. The plan touches any file or runs any command -> medium
        4. Otherwise -> low

    Args:
        plan: Plan to assess

    Returns:
        The risk level
    """
    priorities = Counter(task.priority for task in plan.tasks)
    has_commands = any(task.commands for task in plan.tasks)
    has_files = any(task.files for task in plan.tasks)

    if priorities["critical"] > 0:
        return "critical"
    high = priorities["high"]
    if high > HIGH_PRIORITY_LIMIT or (high > 0 and has_commands):
        return "high"
    if has_files or has_commands:
        return "medium"
    return "low"


@dataclass
class PlanSummary:
    """Human-readable statistics shown when a plan is up for approval."""

    total_tasks: int
    estimated_duration: float
    total_files: int
    total_commands: int
    by_priority: dict[str, int] = field(default_factory=dict)
    by_category: dict[str, int] = field(default_factory=dict)

    def to_lines(self) -> list[str]:
        lines = [
            f"Total tasks: {self.total_tasks}",
            f"Estimated duration: {round(self.estimated_duration)} minutes",
            f"Files to modify: {self.total_files}",
            f"Commands to run: {self.total_commands}",
            "Priority distribution:",
        ]
        lines += [f"  {p}: {n} tasks" for p, n in self.by_priority.items()]
        lines.append("Category distribution:")
        lines += [f"  {c}: {n} tasks" for c, n in self.by_category.items()]
        return lines


def summarize_plan(plan: Plan) -> PlanSummary:
    """Count tasks per priority and category plus file and command totals.

    Files are counted once even when several tasks touch them.
    """
    return PlanSummary(
        total_tasks=len(plan.tasks),
        estimated_duration=plan.estimated_total_duration,
        total_files=len({f for task in plan.tasks for f in task.files}),
        total_commands=sum(len(task.commands) for task in plan.tasks),
        by_priority=dict(Counter(task.priority for task in plan.tasks)),
        by_category=dict(Counter(task.category for task in plan.tasks)),
    )
