"""Exceptions raised by ai-coder.

The core (provider, streaming, session) raises the first group. Workflow
drivers raise :class:`WorkflowError` subclasses for failures of their
external collaborators. Nothing here is retried automatically.
"""


class AICoderError(Exception):
    """Base class for all ai-coder errors."""


class MissingCredentialError(AICoderError):
    """No API key is configured for the model service."""


class TransportError(AICoderError):
    """The model response stream could not be opened or ended abnormally."""


class MalformedToolCallError(AICoderError):
    """Accumulated tool-call arguments are not valid JSON.

    Args:
        index: Slot index the model assigned to the call.
        raw: The concatenated argument text as received.
    """

    def __init__(self, index: int, raw: str):
        self.index = index
        self.raw = raw
        super().__init__(
            f"Tool call at slot {index} has malformed arguments: {raw!r}"
        )


class UnknownToolError(AICoderError):
    """The model called a tool that was never registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Tool '{name}' is not registered")


class ToolImplementationError(AICoderError):
    """A registered tool implementation raised.

    Always raised ``from`` the original exception.
    """

    def __init__(self, name: str, message: str = ""):
        self.name = name
        super().__init__(message or f"Tool '{name}' failed")


class WorkflowError(AICoderError):
    """A workflow step failed."""


class CommandError(WorkflowError):
    """An external command exited with a non-zero status."""

    def __init__(self, args: list[str], returncode: int, stderr: str = ""):
        self.args_list = list(args)
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else ""
        message = f"`{' '.join(args)}` exited with status {returncode}"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class ConfigurationError(WorkflowError):
    """Required configuration is missing or invalid."""


class NoResultError(WorkflowError):
    """The model produced neither a usable text nor a recognized tool call."""


class UserCancelled(WorkflowError):
    """The user declined to continue."""
