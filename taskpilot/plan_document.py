"""Durable plan document.

Renders a plan as a markdown document that is both human-readable and stable
enough for other processes to poll. The document is always rewritten in full,
through a temporary file and an atomic rename, so readers never observe a
partially written snapshot.
"""

import json
import os
import tempfile
from datetime import datetime
from pathlib import Path

from taskpilot.models import Plan, Task

STATUS_MARKERS = {
    "completed": "✅",
    "in_progress": "🔄",
    "failed": "❌",
    "skipped": "⏭️",
    "pending": "⏳",
}

PRIORITY_MARKERS = {
    "critical": "🔥",
    "high": "⚡",
    "medium": "📋",
    "low": "📝",
}


def render_plan_document(plan: Plan, generated_at: datetime | None = None) -> str:
    """Render the full markdown document for a plan.

    Task sections follow generation order, not execution order.

    Args:
        plan: Plan to render
        generated_at: Footer timestamp (defaults to now)

    Returns:
        Markdown text
    """
    parts = [
        f"# Todo Plan: {plan.title}\n\n",
        f"**Goal:** {plan.goal}\n\n",
        f"**Status:** {plan.status.upper()}\n",
        f"**Created:** {plan.created_at.isoformat()}\n",
        f"**Estimated Duration:** {round(plan.estimated_total_duration)} minutes\n\n",
    ]

    project_info = plan.context.project_info
    if project_info:
        if isinstance(project_info, str):
            block, lang = project_info, ""
        else:
            block, lang = json.dumps(project_info, indent=2, default=str), "json"
        parts.append("## Project Context\n\n")
        parts.append(f"```{lang}\n{block}\n```\n\n")

    parts.append(f"## Todo Items ({len(plan.tasks)})\n\n")
    for index, task in enumerate(plan.tasks, start=1):
        parts.append(_render_task(index, task))

    parts.append(_render_statistics(plan))

    stamp = (generated_at or datetime.now()).isoformat()
    parts.append(f"\n---\n*Generated by taskpilot on {stamp}*\n")
    return "".join(parts)


def _render_task(index: int, task: Task) -> str:
    status = STATUS_MARKERS.get(task.status, "⏳")
    priority = PRIORITY_MARKERS.get(task.priority, "📄")

    lines = [
        f"### {index}. {status} {task.title} {priority}\n\n",
        f"**Description:** {task.description}\n\n",
        f"**Category:** {task.category} | **Priority:** {task.priority} | "
        f"**Duration:** {_minutes(task.estimated_duration)}min\n\n",
    ]
    if task.reasoning:
        lines.append(f"**Reasoning:** {task.reasoning}\n\n")
    if task.dependencies:
        lines.append(f"**Dependencies:** {', '.join(task.dependencies)}\n\n")
    if task.files:
        files = "`, `".join(task.files)
        lines.append(f"**Files:** `{files}`\n\n")
    if task.commands:
        lines.append("**Commands:**\n")
        lines += [f"- `{command}`\n" for command in task.commands]
        lines.append("\n")
    if task.tags:
        lines.append(f"**Tags:** {' '.join('#' + tag for tag in task.tags)}\n\n")
    if task.is_terminal and task.completed_at:
        lines.append(f"**Completed:** {task.completed_at.isoformat()}\n")
        if task.actual_duration is not None:
            lines.append(
                f"**Actual Duration:** {_minutes(task.actual_duration)}min\n"
            )
        lines.append("\n")

    lines.append("---\n\n")
    return "".join(lines)


def _render_statistics(plan: Plan) -> str:
    lines = [
        "## Statistics\n\n",
        f"- **Total Todos:** {len(plan.tasks)}\n",
        f"- **Completed:** {plan.count_by_status('completed')}\n",
        f"- **In Progress:** {plan.count_by_status('in_progress')}\n",
        f"- **Pending:** {plan.count_by_status('pending')}\n",
        f"- **Failed:** {plan.count_by_status('failed')}\n",
    ]
    skipped = plan.count_by_status("skipped")
    if skipped:
        lines.append(f"- **Skipped:** {skipped}\n")

    if plan.actual_total_duration is not None:
        lines.append(
            f"- **Actual Duration:** {_minutes(plan.actual_total_duration)}min\n"
        )
        if plan.estimated_total_duration > 0:
            ratio = plan.actual_total_duration / plan.estimated_total_duration
            lines.append(f"- **Estimated vs Actual:** {round(ratio * 100)}%\n")
    return "".join(lines)


def _minutes(value: float) -> str:
    """Format minutes without a trailing .0 for whole numbers."""
    return str(int(value)) if float(value).is_integer() else f"{value:.2f}"


def write_plan_document(plan: Plan, path: Path) -> Path:
    """Rewrite the plan document at path atomically.

    Args:
        plan: Plan to render
        path: Destination file

    Returns:
        The path written
    """
    return atomic_write_text(Path(path), render_plan_document(plan))


def atomic_write_text(path: Path, content: str) -> Path:
    """Replace path with content via a sibling temp file and os.replace."""
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(
        dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return path
