"""Tests for the durable plan document."""

from datetime import datetime
from pathlib import Path

from taskpilot.models import Plan, PlanContext, Task
from taskpilot.plan_document import render_plan_document, write_plan_document


def make_plan() -> Plan:
    setup = Task(
        title="Setup project",
        description="Create the project skeleton",
        priority="high",
        category="setup",
        estimated_duration=15,
        reasoning="Everything else builds on it",
        files=["pyproject.toml", "app/__init__.py"],
        commands=["mkdir app"],
        tags=["setup", "scaffold"],
    )
    code = Task(
        title="Write code",
        description="Implement the form",
        dependencies=[setup.id],
        estimated_duration=45,
    )
    return Plan(
        title="Add login",
        description="Add login",
        goal="Add a login form",
        tasks=[setup, code],
        working_directory="/tmp/project",
        estimated_total_duration=60,
        created_at=datetime(2025, 1, 15, 14, 0, 0),
    )


class TestRenderPlanDocument:
    """Tests for render_plan_document."""

    def test_header_and_metadata(self) -> None:
        """Title, goal, status, creation time and estimate come first."""
        text = render_plan_document(make_plan())

        assert text.startswith("# Todo Plan: Add login\n")
        assert "**Goal:** Add a login form" in text
        assert "**Status:** DRAFT" in text
        assert "**Created:** 2025-01-15T14:00:00" in text
        assert "**Estimated Duration:** 60 minutes" in text

    def test_task_sections_in_generation_order(self) -> None:
        """Tasks appear as numbered sections in list order."""
        text = render_plan_document(make_plan())

        assert "## Todo Items (2)" in text
        first = text.index("### 1. ⏳ Setup project ⚡")
        second = text.index("### 2. ⏳ Write code 📋")
        assert first < second

    def test_optional_task_fields(self) -> None:
        """Reasoning, dependencies, files, commands and tags are rendered."""
        plan = make_plan()
        text = render_plan_document(plan)

        assert "**Category:** setup | **Priority:** high | **Duration:** 15min" in text
        assert "**Reasoning:** Everything else builds on it" in text
        assert f"**Dependencies:** {plan.tasks[0].id}" in text
        assert "**Files:** `pyproject.toml`, `app/__init__.py`" in text
        assert "- `mkdir app`" in text
        assert "**Tags:** #setup #scaffold" in text

    def test_project_context_block(self) -> None:
        """Structured project context is embedded as JSON."""
        plan = make_plan()
        plan.context = PlanContext(project_info={"name": "demo"})

        text = render_plan_document(plan)

        assert "## Project Context" in text
        assert '```json\n{\n  "name": "demo"\n}\n```' in text

    def test_no_project_context_block_when_empty(self) -> None:
        """Without context the block is omitted."""
        assert "## Project Context" not in render_plan_document(make_plan())

    def test_terminal_task_shows_completion(self) -> None:
        """Finished tasks show completion time and actual duration."""
        plan = make_plan()
        plan.tasks[0].mark_terminal(
            "completed", actual_duration=12.5, now=datetime(2025, 1, 15, 15, 0, 0)
        )

        text = render_plan_document(plan)

        assert "### 1. ✅ Setup project" in text
        assert "**Completed:** 2025-01-15T15:00:00" in text
        assert "**Actual Duration:** 12.50min" in text

    def test_statistics(self) -> None:
        """Statistics count tasks per status."""
        plan = make_plan()
        plan.tasks[0].mark_terminal("failed")

        text = render_plan_document(plan)

        assert "- **Total Todos:** 2" in text
        assert "- **Completed:** 0" in text
        assert "- **Pending:** 1" in text
        assert "- **Failed:** 1" in text
        assert "Estimated vs Actual" not in text

    def test_actual_vs_estimated_after_execution(self) -> None:
        """Once actual_total_duration is set, the ratio is shown."""
        plan = make_plan()
        plan.actual_total_duration = 30

        text = render_plan_document(plan)

        assert "- **Actual Duration:** 30min" in text
        assert "- **Estimated vs Actual:** 50%" in text

    def test_footer_timestamp(self) -> None:
        """The footer records when the document was generated."""
        text = render_plan_document(make_plan(), generated_at=datetime(2025, 2, 1))

        assert text.rstrip().endswith("*Generated by taskpilot on 2025-02-01T00:00:00*")


class TestWritePlanDocument:
    """Tests for write_plan_document."""

    def test_writes_file(self, tmp_path: Path) -> None:
        """The document lands at the path, creating parents."""
        path = tmp_path / "nested" / "todo.md"

        write_plan_document(make_plan(), path)

        assert path.read_text(encoding="utf-8").startswith("# Todo Plan: Add login")

    def test_rewrites_whole_file(self, tmp_path: Path) -> None:
        """Each write replaces the document and leaves no temp files."""
        path = tmp_path / "todo.md"
        plan = make_plan()
        write_plan_document(plan, path)

        plan.status = "approved"
        write_plan_document(plan, path)

        assert "**Status:** APPROVED" in path.read_text(encoding="utf-8")
        assert [p.name for p in tmp_path.iterdir()] == ["todo.md"]
