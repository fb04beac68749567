"""Dependency ordering for plan tasks.

Orders tasks so that each task's dependencies run before it whenever the
graph allows. Cycles and dependencies on ids outside the plan never raise:
the resolver forces progress by releasing the first blocked task, so the
result is always a permutation of the input but only a best-effort ordering.
"""

from dataclasses import dataclass, field

from taskpilot.models import Task


def resolve_dependency_order(tasks: list[Task]) -> list[Task]:
    """Order tasks by dependencies using greedy topological batching.

    Each round releases every remaining task whose dependencies are all
    resolved, keeping their relative input order. When no task is ready
    (a cycle or a dangling dependency id), the first remaining task is
    released regardless of its unmet dependencies.

    Args:
        tasks: Tasks in generation order

    Returns:
        The same tasks in execution order
    """
    remaining = list(tasks)
    resolved: list[Task] = []
    resolved_ids: set[str] = set()

    while remaining:
        ready = [
            task
            for task in remaining
            if all(dep in resolved_ids for dep in task.dependencies)
        ]

        if not ready:
            # Deadlock: force progress with the first blocked task
            ready = [remaining[0]]

        released = {id(task) for task in ready}
        remaining = [task for task in remaining if id(task) not in released]
        resolved.extend(ready)
        resolved_ids.update(task.id for task in ready)

    return resolved


@dataclass
class DependencyReport:
    """Problems found in a plan's dependency graph.

    Attributes:
        dangling: Map of task id to dependency ids that are not in the plan
        cyclic: Ids of tasks that sit on a dependency cycle
    """

    dangling: dict[str, list[str]] = field(default_factory=dict)
    cyclic: list[str] = field(default_factory=list)

    @property
    def has_issues(self) -> bool:
        return bool(self.dangling or self.cyclic)


def find_dependency_issues(tasks: list[Task]) -> DependencyReport:
    """Report dangling dependency ids and tasks caught in cycles.

    Purely diagnostic; the resolver handles both cases on its own.
    """
    ids = {task.id for task in tasks}
    report = DependencyReport()

    for task in tasks:
        missing = [dep for dep in task.dependencies if dep not in ids]
        if missing:
            report.dangling[task.id] = missing

    graph = {
        task.id: [dep for dep in task.dependencies if dep in ids] for task in tasks
    }
    for task in tasks:
        if _reaches(graph, start=task.id, target=task.id):
            report.cyclic.append(task.id)

    return report


def _reaches(graph: dict[str, list[str]], start: str, target: str) -> bool:
    stack = list(graph.get(start, []))
    seen: set[str] = set()
    while stack:
        node = stack.pop()
        if node == target:
            return True
        if node in seen:
            continue
        seen.add(node)
        stack.extend(graph.get(node, []))
    return False
