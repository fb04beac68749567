"""Plan store with snapshot persistence.

PlanStore is the explicit registry of plans, passed by reference to the
components that need it. Saving a plan writes two files: a JSON snapshot in
the state directory (for reloading) and the durable markdown document in the
plan's working directory (for humans and pollers). Both are replaced
atomically, so a crash mid-save leaves the previous version in place.
"""

import json
from pathlib import Path

import structlog

from taskpilot.errors import PersistenceError, PlanNotFoundError
from taskpilot.models import Plan
from taskpilot.plan_document import atomic_write_text, write_plan_document

logger = structlog.get_logger(__name__)

DEFAULT_DOCUMENT_NAME = "todo-{plan_id}.md"


class PlanStore:
    """Registry of plans keyed by id, persisted to disk on save().

    Attributes:
        state_dir: Directory holding <plan_id>.json snapshots
        document_name: File name of the markdown document in each plan's
            working directory, or None to skip writing it. "{plan_id}" is
            replaced by the plan id; a name without it is shared by every
            plan in the same directory.
    """

    def __init__(
        self, state_dir: Path, document_name: str | None = DEFAULT_DOCUMENT_NAME
    ):
        self.state_dir = Path(state_dir)
        self.document_name = document_name
        self._plans: dict[str, Plan] = {}

    def add(self, plan: Plan) -> None:
        self._plans[plan.id] = plan

    def get(self, plan_id: str) -> Plan:
        """Return a registered plan, loading it from disk if needed.

        Raises:
            PlanNotFoundError: If no plan with this id exists
            PersistenceError: If the snapshot exists but is unreadable
        """
        plan = self._plans.get(plan_id) or self.load(plan_id)
        if plan is None:
            raise PlanNotFoundError(f"Plan {plan_id} not found")
        return plan

    def list_plans(self) -> list[Plan]:
        """All plans in memory plus readable snapshots on disk, oldest first.

        Unreadable snapshots are logged and left out.
        """
        if self.state_dir.exists():
            for path in sorted(self.state_dir.glob("*.json")):
                if path.stem in self._plans:
                    continue
                try:
                    self.load(path.stem)
                except PersistenceError as e:
                    logger.warning("Skipping unreadable plan snapshot", path=str(path), error=str(e))
        return sorted(self._plans.values(), key=lambda p: p.created_at)

    def snapshot_path(self, plan_id: str) -> Path:
        return self.state_dir / f"{plan_id}.json"

    def document_path(self, plan: Plan) -> Path | None:
        if self.document_name is None:
            return None
        return Path(plan.working_directory) / self.document_name.replace("{plan_id}", plan.id)

    def save(self, plan: Plan) -> None:
        """Persist the plan's JSON snapshot and rewrite its document.

        Creates the state directory if it doesn't exist.

        Raises:
            PersistenceError: If either file cannot be written
        """
        self.add(plan)
        content = json.dumps(plan.to_dict(), indent=2, default=str)
        document = self.document_path(plan)

        try:
            atomic_write_text(self.snapshot_path(plan.id), content)
            if document is not None:
                write_plan_document(plan, document)
        except OSError as e:
            logger.error("Failed to save plan", plan_id=plan.id, error=str(e))
            raise PersistenceError(f"Could not save plan {plan.id}: {e}") from e

        logger.debug("Plan saved", plan_id=plan.id, status=plan.status)

    def load(self, plan_id: str) -> Plan | None:
        """Load a plan snapshot from disk if it exists.

        Returns:
            The plan (also registered in memory), or None if no snapshot exists

        Raises:
            PersistenceError: If the snapshot cannot be read or parsed
        """
        path = self.snapshot_path(plan_id)
        if not path.exists():
            return None

        try:
            with open(path, encoding="utf-8") as f:
                plan = Plan.from_dict(json.load(f))
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise PersistenceError(f"Snapshot {path} is unreadable: {e}") from e

        self._plans[plan.id] = plan
        return plan
