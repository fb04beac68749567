"""Tests for dependency ordering."""

import random

from taskpilot.models import Task
from taskpilot.resolver import find_dependency_issues, resolve_dependency_order


def make_task(task_id: str, deps: list[str] | None = None) -> Task:
    return Task(id=task_id, title=task_id, description="", dependencies=deps or [])


def titles(tasks: list[Task]) -> list[str]:
    return [t.title for t in tasks]


class TestResolveDependencyOrder:
    """Tests for resolve_dependency_order."""

    def test_independent_tasks_keep_input_order(self) -> None:
        """With no dependencies the order is unchanged."""
        tasks = [make_task("a"), make_task("b"), make_task("c")]

        assert titles(resolve_dependency_order(tasks)) == ["a", "b", "c"]

    def test_dependencies_run_first(self) -> None:
        """A task given before its dependency is moved after it."""
        tasks = [
            make_task("t1", ["t2"]),
            make_task("t2"),
            make_task("t3", ["t1"]),
        ]

        assert titles(resolve_dependency_order(tasks)) == ["t2", "t1", "t3"]

    def test_ready_batch_keeps_relative_order(self) -> None:
        """Tasks released in the same round keep their input order."""
        tasks = [
            make_task("c", ["a"]),
            make_task("a"),
            make_task("d", ["a"]),
            make_task("b"),
        ]

        assert titles(resolve_dependency_order(tasks)) == ["a", "b", "c", "d"]

    def test_cycle_still_yields_every_task(self) -> None:
        """A two-task cycle is broken by releasing the first task."""
        tasks = [make_task("t1", ["t2"]), make_task("t2", ["t1"])]

        assert titles(resolve_dependency_order(tasks)) == ["t1", "t2"]

    def test_dangling_dependency_is_released(self) -> None:
        """A dependency on an unknown id doesn't block forever."""
        tasks = [make_task("a", ["ghost"]), make_task("b", ["a"])]

        assert titles(resolve_dependency_order(tasks)) == ["a", "b"]

    def test_empty_input(self) -> None:
        """No tasks in, no tasks out."""
        assert resolve_dependency_order([]) == []

    def test_identical_looking_tasks_are_all_kept(self) -> None:
        """Tasks that compare equal are still ordered individually."""
        a = make_task("same")
        b = make_task("same")

        result = resolve_dependency_order([a, b])

        assert len(result) == 2
        assert result[0] is a and result[1] is b

    def test_output_is_permutation_with_satisfied_edges(self) -> None:
        """Random acyclic graphs come back as a valid topological order."""
        rng = random.Random(42)
        for _ in range(25):
            ids = [f"t{i}" for i in range(12)]
            tasks = [
                make_task(task_id, rng.sample(ids[:i], k=min(i, rng.randint(0, 3))))
                for i, task_id in enumerate(ids)
            ]
            rng.shuffle(tasks)

            result = resolve_dependency_order(tasks)

            assert sorted(titles(result)) == sorted(ids)
            position = {t.id: i for i, t in enumerate(result)}
            for task in result:
                for dep in task.dependencies:
                    assert position[dep] < position[task.id]

    def test_does_not_mutate_input(self) -> None:
        """The caller's list is left alone."""
        tasks = [make_task("b", ["a"]), make_task("a")]
        original = list(tasks)

        resolve_dependency_order(tasks)

        assert tasks == original


class TestFindDependencyIssues:
    """Tests for find_dependency_issues."""

    def test_clean_graph(self) -> None:
        """A valid graph has no issues."""
        report = find_dependency_issues([make_task("a"), make_task("b", ["a"])])

        assert not report.has_issues

    def test_reports_dangling_ids(self) -> None:
        """Unknown dependency ids are listed per task."""
        report = find_dependency_issues([make_task("a", ["ghost", "b"]), make_task("b")])

        assert report.dangling == {"a": ["ghost"]}
        assert report.has_issues

    def test_reports_cycle_members(self) -> None:
        """Tasks on a cycle are listed; tasks downstream of it are not."""
        tasks = [
            make_task("a", ["c"]),
            make_task("b", ["a"]),
            make_task("c", ["b"]),
            make_task("d", ["a"]),
        ]

        report = find_dependency_issues(tasks)

        assert report.cyclic == ["a", "b", "c"]

    def test_self_dependency_is_a_cycle(self) -> None:
        """A task depending on itself is cyclic."""
        report = find_dependency_issues([make_task("a", ["a"])])

        assert report.cyclic == ["a"]
