"""Tests for plan store persistence."""

import json
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pytest

from taskpilot.errors import PersistenceError, PlanNotFoundError
from taskpilot.models import Plan, Task
from taskpilot.store import PlanStore


def make_plan(working_directory: Path, title: str = "Plan") -> Plan:
    return Plan(
        title=title,
        description=title,
        goal=title,
        tasks=[Task(title="A", description="Do A")],
        working_directory=str(working_directory),
        created_at=datetime(2025, 1, 15, 14, 23, 0),
    )


class TestPlanStoreSave:
    """Tests for PlanStore.save()."""

    def test_creates_state_directory(self, tmp_path: Path) -> None:
        """State directory is created if it doesn't exist."""
        state_dir = tmp_path / "state"
        assert not state_dir.exists()

        PlanStore(state_dir).save(make_plan(tmp_path))

        assert state_dir.exists()

    def test_writes_snapshot_with_iso_datetimes(self, tmp_path: Path) -> None:
        """The JSON snapshot uses the plan id and ISO datetimes."""
        plan = make_plan(tmp_path)
        store = PlanStore(tmp_path / "state")

        store.save(plan)

        with open(store.snapshot_path(plan.id)) as f:
            data = json.load(f)
        assert data["id"] == plan.id
        assert data["created_at"] == "2025-01-15T14:23:00"

    def test_writes_document_in_working_directory(self, tmp_path: Path) -> None:
        """The markdown document goes next to the project."""
        plan = make_plan(tmp_path)

        PlanStore(tmp_path / "state").save(plan)

        assert (tmp_path / f"todo-{plan.id}.md").exists()

    def test_one_document_per_plan(self, tmp_path: Path) -> None:
        """Plans sharing a working directory get separate documents."""
        store = PlanStore(tmp_path / "state")
        first, second = make_plan(tmp_path, "First"), make_plan(tmp_path, "Second")

        store.save(first)
        store.save(second)

        assert "First" in store.document_path(first).read_text()
        assert "Second" in store.document_path(second).read_text()

    def test_custom_document_name(self, tmp_path: Path) -> None:
        """The document file name is configurable."""
        PlanStore(tmp_path / "state", document_name="PLAN.md").save(make_plan(tmp_path))

        assert (tmp_path / "PLAN.md").exists()
        assert [p.name for p in tmp_path.glob("*.md")] == ["PLAN.md"]

    def test_document_can_be_disabled(self, tmp_path: Path) -> None:
        """document_name=None skips the markdown document."""
        store = PlanStore(tmp_path / "state", document_name=None)

        store.save(make_plan(tmp_path))

        assert list(tmp_path.glob("*.md")) == []
        assert store.document_path(make_plan(tmp_path)) is None


class TestPlanStoreLoad:
    """Tests for loading and lookup."""

    def test_load_missing_returns_none(self, tmp_path: Path) -> None:
        """A missing snapshot loads as None."""
        assert PlanStore(tmp_path).load("nope") is None

    def test_get_missing_raises(self, tmp_path: Path) -> None:
        """get() raises for unknown ids."""
        with pytest.raises(PlanNotFoundError):
            PlanStore(tmp_path).get("nope")

    def test_get_loads_from_disk(self, tmp_path: Path) -> None:
        """A fresh store finds plans saved by another store."""
        plan = make_plan(tmp_path)
        PlanStore(tmp_path / "state").save(plan)

        loaded = PlanStore(tmp_path / "state").get(plan.id)

        assert loaded == plan
        assert loaded is not plan

    def test_get_returns_registered_instance(self, tmp_path: Path) -> None:
        """Plans added in memory are returned as-is."""
        store = PlanStore(tmp_path)
        plan = make_plan(tmp_path)

        store.add(plan)

        assert store.get(plan.id) is plan

    def test_list_plans_merges_memory_and_disk(self, tmp_path: Path) -> None:
        """list_plans returns saved and in-memory plans, oldest first."""
        state_dir = tmp_path / "state"
        older = make_plan(tmp_path, "Older")
        PlanStore(state_dir, document_name=None).save(older)

        store = PlanStore(state_dir, document_name=None)
        newer = make_plan(tmp_path, "Newer")
        newer.created_at = datetime(2025, 2, 1)
        store.add(newer)

        assert [p.title for p in store.list_plans()] == ["Older", "Newer"]

    def test_list_plans_without_state_dir(self, tmp_path: Path) -> None:
        """No state directory means no plans."""
        assert PlanStore(tmp_path / "missing").list_plans() == []


class TestPlanStoreFailures:
    """Tests for unreadable snapshots and failed writes."""

    def test_truncated_snapshot_raises_persistence_error(self, tmp_path: Path) -> None:
        """A half-written snapshot is reported, not a JSON traceback."""
        state_dir = tmp_path / "state"
        state_dir.mkdir()
        (state_dir / "halfwritten.json").write_text('{"title": "x", "tas')

        with pytest.raises(PersistenceError, match="unreadable"):
            PlanStore(state_dir).get("halfwritten")

    def test_list_plans_skips_unreadable_snapshots(self, tmp_path: Path) -> None:
        """Readable plans are still listed next to a corrupt snapshot."""
        state_dir = tmp_path / "state"
        PlanStore(state_dir, document_name=None).save(make_plan(tmp_path, "Good"))
        (state_dir / "halfwritten.json").write_text('{"title": "x", "tas')

        plans = PlanStore(state_dir).list_plans()

        assert [p.title for p in plans] == ["Good"]

    def test_write_error_becomes_persistence_error(self, tmp_path: Path) -> None:
        """OS errors while saving surface as PersistenceError."""
        store = PlanStore(tmp_path / "state")

        with patch("taskpilot.store.atomic_write_text", side_effect=OSError("No space left on device")):
            with pytest.raises(PersistenceError, match="No space left"):
                store.save(make_plan(tmp_path))

    def test_failed_write_keeps_previous_snapshot(self, tmp_path: Path) -> None:
        """A failed rewrite leaves the last good snapshot and no temp files."""
        store = PlanStore(tmp_path / "state", document_name=None)
        plan = make_plan(tmp_path)
        store.save(plan)
        plan.status = "approved"

        with patch("taskpilot.plan_document.os.replace", side_effect=OSError("disk gone")):
            with pytest.raises(PersistenceError):
                store.save(plan)

        assert PlanStore(tmp_path / "state").get(plan.id).status == "draft"
        assert [p.name for p in (tmp_path / "state").iterdir()] == [f"{plan.id}.json"]
