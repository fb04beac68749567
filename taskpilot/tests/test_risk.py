"""Tests for risk assessment and plan summaries."""

import pytest

from taskpilot.models import Plan, Task
from taskpilot.risk import assess_plan_risk, summarize_plan


def make_plan(tasks: list[Task]) -> Plan:
    return Plan(
        title="Plan",
        description="Plan",
        goal="Plan",
        tasks=tasks,
        working_directory="/tmp",
        estimated_total_duration=sum(t.estimated_duration for t in tasks),
    )


def task(priority: str = "medium", files=None, commands=None, category="implementation") -> Task:
    return Task(
        title="T",
        description="",
        priority=priority,  # type: ignore[arg-type]
        files=files or [],
        commands=commands or [],
        category=category,
    )


class TestAssessPlanRisk:
    """Tests for assess_plan_risk."""

    def test_plain_tasks_are_low_risk(self) -> None:
        """No files, no commands, no elevated priority -> low."""
        assert assess_plan_risk(make_plan([task(), task("low")])) == "low"

    def test_files_make_medium(self) -> None:
        """Touching files -> medium."""
        assert assess_plan_risk(make_plan([task(files=["a.py"])])) == "medium"

    def test_commands_make_medium(self) -> None:
        """Running commands -> medium."""
        assert assess_plan_risk(make_plan([task(commands=["ls"])])) == "medium"

    def test_single_high_priority_without_commands_is_not_high(self) -> None:
        """One high task that only touches files stays medium."""
        assert assess_plan_risk(make_plan([task("high", files=["a.py"])])) == "medium"

    def test_high_priority_with_commands_is_high(self) -> None:
        """A high task in a plan that runs commands -> high."""
        plan = make_plan([task("high"), task(commands=["npm test"])])

        assert assess_plan_risk(plan) == "high"

    @pytest.mark.parametrize("count,expected", [(3, "low"), (4, "high")])
    def test_more_than_three_high_priority_is_high(self, count: int, expected: str) -> None:
        """The high-priority threshold is strictly more than three."""
        plan = make_plan([task("high") for _ in range(count)])

        assert assess_plan_risk(plan) == expected

    def test_critical_priority_wins(self) -> None:
        """Any critical task -> critical."""
        plan = make_plan([task("low"), task("critical")])

        assert assess_plan_risk(plan) == "critical"

    def test_does_not_mutate_plan(self) -> None:
        """Assessment leaves the plan untouched."""
        plan = make_plan([task("high", commands=["ls"])])
        before = plan.to_dict()

        assess_plan_risk(plan)

        assert plan.to_dict() == before


class TestSummarizePlan:
    """Tests for summarize_plan."""

    def test_counts(self) -> None:
        """Counts tasks, distinct files and all commands."""
        plan = make_plan(
            [
                task("high", files=["a.py", "b.py"], commands=["ls"], category="setup"),
                task("low", files=["a.py"], commands=["pwd", "ls"]),
                task("low"),
            ]
        )

        summary = summarize_plan(plan)

        assert summary.total_tasks == 3
        assert summary.total_files == 2
        assert summary.total_commands == 3
        assert summary.by_priority == {"high": 1, "low": 2}
        assert summary.by_category == {"setup": 1, "implementation": 2}
        assert summary.estimated_duration == 90

    def test_to_lines_mentions_totals(self) -> None:
        """The text rendering lists totals and distributions."""
        lines = summarize_plan(make_plan([task()])).to_lines()

        assert "Total tasks: 1" in lines
        assert "Estimated duration: 30 minutes" in lines
        assert "  medium: 1 tasks" in lines
