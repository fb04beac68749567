"""Unit-of-work executors.

CommandExecutor runs a task's shell commands one after another in the plan's
working directory. A task without commands has nothing to run and succeeds.
"""

import asyncio
from dataclasses import dataclass
from typing import Any

import structlog

from taskpilot.errors import TaskExecutionError

logger = structlog.get_logger(__name__)

# Max characters of stderr carried into error messages
STDERR_EXCERPT_CHARS = 500


@dataclass
class CommandOutcome:
    command: str
    exit_code: int
    stdout: str
    stderr: str


class CommandExecutor:
    """Executes the commands attached to a task.

    Args:
        timeout_seconds: Per-command timeout, None for no timeout
    """

    def __init__(self, timeout_seconds: float | None = None):
        self.timeout_seconds = timeout_seconds

    async def execute(
        self, task_description: str, context: dict[str, Any]
    ) -> list[CommandOutcome]:
        """Run every command of the task in order.

        Args:
            task_description: Description of the task (logged only)
            context: Must carry "task"; "working_directory" sets the cwd

        Returns:
            One outcome per command

        Raises:
            TaskExecutionError: On the first command that exits non-zero or
                times out
        """
        task = context.get("task")
        commands = list(task.commands) if task is not None else []
        cwd = context.get("working_directory")

        if not commands:
            logger.debug("Task has no commands", description=task_description[:80])
            return []

        outcomes = []
        for command in commands:
            outcome = await self._run(command, cwd)
            outcomes.append(outcome)
            if outcome.exit_code != 0:
                excerpt = outcome.stderr.strip()[:STDERR_EXCERPT_CHARS]
                raise TaskExecutionError(
                    f"Command failed (exit {outcome.exit_code}): {command}"
                    + (f": {excerpt}" if excerpt else ""),
                    exit_code=outcome.exit_code,
                    stderr=outcome.stderr,
                )
        return outcomes

    async def _run(self, command: str, cwd: str | None) -> CommandOutcome:
        logger.info("Running command", command=command, cwd=cwd)
        proc = await asyncio.create_subprocess_shell(
            command,
            cwd=cwd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            await _kill(proc)
            raise TaskExecutionError(
                f"Command timed out after {self.timeout_seconds}s: {command}"
            ) from None
        except asyncio.CancelledError:
            logger.warning("Command cancelled, killing process", command=command, pid=proc.pid)
            await _kill(proc)
            raise

        return CommandOutcome(
            command=command,
            exit_code=proc.returncode if proc.returncode is not None else -1,
            stdout=stdout.decode(errors="replace") if stdout else "",
            stderr=stderr.decode(errors="replace") if stderr else "",
        )


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        proc.kill()
    await proc.wait()
