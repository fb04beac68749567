"""Shared error types for the taskpilot package."""


class TaskpilotError(Exception):
    """Base exception for taskpilot errors.

    Use this for user-facing errors that should have actionable messages.
    """

    pass


class InvalidTransitionError(TaskpilotError):
    """A plan or task was asked to move to a status its lifecycle forbids."""


class PlanNotFoundError(TaskpilotError):
    """No plan with the requested id exists in the store."""


class GenerationError(TaskpilotError):
    """The generation collaborator could not produce a response."""


class TaskExecutionError(TaskpilotError):
    """A unit of work failed.

    Attributes:
        exit_code: Process exit code when the failure came from a command
        stderr: Captured error output, if any
    """

    def __init__(self, message: str, exit_code: int | None = None, stderr: str = ""):
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr


class NoAgentsAvailableError(TaskpilotError):
    """The agent pool is empty, so no assignment can be made."""


class PersistenceError(TaskpilotError):
    """A plan snapshot or document could not be written or read back."""
