"""Human approval gate for plans.

A draft plan only becomes executable after a human says yes. The gate shows
the plan's risk level and summary statistics, asks the confirmation
collaborator exactly once, and on approval moves the plan from draft to
approved. Rejection is not an error: the plan stays in draft.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

import structlog
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm

from taskpilot.errors import InvalidTransitionError
from taskpilot.models import Plan, RiskLevel
from taskpilot.risk import PlanSummary, assess_plan_risk, summarize_plan
from taskpilot.store import PlanStore

logger = structlog.get_logger(__name__)

RISK_STYLES = {
    "low": "green",
    "medium": "yellow",
    "high": "red",
    "critical": "bold red",
}


class Confirmer(Protocol):
    """Interactive yes/no decision."""

    def confirm(self, prompt: str, details: str) -> bool: ...


class ConsoleConfirmer:
    """Asks for confirmation on the terminal using rich."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def confirm(self, prompt: str, details: str) -> bool:
        self.console.print()
        self.console.print(Panel(details, title=prompt, border_style="yellow"))
        return Confirm.ask(prompt, console=self.console, default=False)


class AutoApprover:
    """Approves every request without prompting (for --yes runs)."""

    def confirm(self, prompt: str, details: str) -> bool:
        return True


@dataclass
class ApprovalDecision:
    """Outcome of an approval request.

    Attributes:
        approved: Whether the plan is approved
        risk: Risk level computed for the plan
        summary: Statistics shown to the approver
        excluded_task_ids: Tasks the approver left out of execution
        prompted: False when the plan was already approved and no one was asked
    """

    approved: bool
    risk: RiskLevel
    summary: PlanSummary
    excluded_task_ids: list[str] = field(default_factory=list)
    prompted: bool = True


class ApprovalGate:
    """Blocks a plan on human confirmation before it may run.

    Usage:
        gate = ApprovalGate(ConsoleConfirmer(), store=store)
        decision = gate.request_approval(plan)
        if decision.approved:
            ...
    """

    def __init__(self, confirmer: Confirmer, store: PlanStore | None = None):
        self.confirmer = confirmer
        self.store = store

    def request_approval(
        self, plan: Plan, excluded_task_ids: list[str] | None = None
    ) -> ApprovalDecision:
        """Ask for approval of a draft plan.

        Already approved (or running, or finished) plans are not prompted
        again and keep their original approved_at.

        Args:
            plan: Plan to approve
            excluded_task_ids: Tasks to leave out of execution if approved

        Returns:
            The decision

        Raises:
            InvalidTransitionError: If the plan was cancelled
        """
        risk = assess_plan_risk(plan)
        summary = summarize_plan(plan)

        if plan.status == "cancelled":
            raise InvalidTransitionError(f"Plan {plan.id} was cancelled")

        if plan.status != "draft":
            logger.debug("Plan already approved", plan_id=plan.id, status=plan.status)
            return ApprovalDecision(
                approved=True,
                risk=risk,
                summary=summary,
                excluded_task_ids=list(plan.excluded_task_ids),
                prompted=False,
            )

        excluded = self._known_task_ids(plan, excluded_task_ids or [])
        details = self._format_details(plan, risk, summary, excluded)
        approved = self.confirmer.confirm(f"Execute Plan: {plan.title}", details)

        if approved:
            plan.transition_to("approved")
            plan.approved_at = datetime.now()
            plan.excluded_task_ids = excluded
            logger.info("Plan approved", plan_id=plan.id, risk=risk, excluded=len(excluded))
            if self.store is not None:
                self.store.save(plan)
        else:
            logger.info("Plan rejected", plan_id=plan.id, risk=risk)

        return ApprovalDecision(
            approved=approved,
            risk=risk,
            summary=summary,
            excluded_task_ids=excluded if approved else [],
        )

    def cancel(self, plan: Plan) -> None:
        """Cancel a draft or approved plan.

        Raises:
            InvalidTransitionError: If the plan is executing or finished
        """
        plan.transition_to("cancelled")
        logger.info("Plan cancelled", plan_id=plan.id)
        if self.store is not None:
            self.store.save(plan)

    def _known_task_ids(self, plan: Plan, task_ids: list[str]) -> list[str]:
        known = [task_id for task_id in task_ids if plan.get_task(task_id) is not None]
        unknown = sorted(set(task_ids) - set(known))
        if unknown:
            logger.warning("Ignoring unknown excluded task ids", plan_id=plan.id, task_ids=unknown)
        return known

    def _format_details(
        self,
        plan: Plan,
        risk: RiskLevel,
        summary: PlanSummary,
        excluded: list[str],
    ) -> str:
        style = RISK_STYLES[risk]
        lines = [
            f"Execute {summary.total_tasks} tasks with estimated duration of "
            f"{round(plan.estimated_total_duration)} minutes",
            f"Risk: [{style}]{risk.upper()}[/{style}]",
            "",
            *summary.to_lines(),
        ]
        if excluded:
            lines.append("")
            lines.append("Excluded tasks:")
            for task_id in excluded:
                task = plan.get_task(task_id)
                lines.append(f"  - {task.title if task else task_id}")
        return "\n".join(lines)
