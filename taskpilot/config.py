"""Configuration for taskpilot.

Provides centralized configuration with sensible defaults and environment
variable overrides for planning limits, generation model settings, execution
policy, persistence, and telemetry.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_CRITICAL_MARKERS = ("critical", "fatal")


def _parse_markers(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return DEFAULT_CRITICAL_MARKERS
    markers = tuple(m.strip().lower() for m in raw.split(",") if m.strip())
    return markers or DEFAULT_CRITICAL_MARKERS


def _parse_optional_int(raw: str | None) -> int | None:
    if raw is None or raw.strip() == "":
        return None
    return int(raw)


@dataclass
class TaskpilotConfig:
    """Configuration for planning and execution.

    All settings have sensible defaults but can be overridden via environment
    variables using the from_env() factory method.
    """

    # Planning settings
    max_todos: int = 20
    plan_document_name: str = "todo-{plan_id}.md"

    # Generation settings
    model: str = "claude-sonnet-4-5-20250929"
    max_tokens: int = 4096
    generation_timeout_seconds: int = 120

    # Execution policy
    critical_error_markers: tuple[str, ...] = DEFAULT_CRITICAL_MARKERS
    command_timeout_seconds: int | None = None

    # Telemetry settings
    otlp_endpoint: str = field(
        default_factory=lambda: os.getenv("OTLP_ENDPOINT", "http://localhost:4317")
    )
    service_name: str = "taskpilot"

    # State persistence
    state_dir: Path = field(default_factory=lambda: Path(".taskpilot"))

    @classmethod
    def from_env(cls) -> "TaskpilotConfig":
        """Load config with environment variable overrides.

        Environment variables:
            TASKPILOT_MAX_TODOS: Override max_todos (default: 20)
            TASKPILOT_PLAN_DOCUMENT: Override plan_document_name (default: todo-{plan_id}.md)
            TASKPILOT_MODEL: Override model
            TASKPILOT_MAX_TOKENS: Override max_tokens (default: 4096)
            TASKPILOT_GENERATION_TIMEOUT: Override generation_timeout_seconds (default: 120)
            TASKPILOT_CRITICAL_MARKERS: Comma separated abort markers (default: critical,fatal)
            TASKPILOT_COMMAND_TIMEOUT: Per-command timeout in seconds (default: none)
            TASKPILOT_STATE_DIR: Override state_dir (default: .taskpilot)
            OTLP_ENDPOINT: Override otlp_endpoint (default: http://localhost:4317)
        """
        return cls(
            max_todos=int(os.getenv("TASKPILOT_MAX_TODOS", "20")),
            plan_document_name=os.getenv("TASKPILOT_PLAN_DOCUMENT", "todo-{plan_id}.md"),
            model=os.getenv("TASKPILOT_MODEL", "claude-sonnet-4-5-20250929"),
            max_tokens=int(os.getenv("TASKPILOT_MAX_TOKENS", "4096")),
            generation_timeout_seconds=int(
                os.getenv("TASKPILOT_GENERATION_TIMEOUT", "120")
            ),
            critical_error_markers=_parse_markers(
                os.getenv("TASKPILOT_CRITICAL_MARKERS")
            ),
            command_timeout_seconds=_parse_optional_int(
                os.getenv("TASKPILOT_COMMAND_TIMEOUT")
            ),
            otlp_endpoint=os.getenv("OTLP_ENDPOINT", "http://localhost:4317"),
            state_dir=Path(os.getenv("TASKPILOT_STATE_DIR", ".taskpilot")),
        )
