"""Error types for agent-relay.

Every error carries a stable ``code`` for programmatic handling. Timeouts
are not errors: a timed-out run is reported through
``ExecutionResult.timed_out``.
"""

from __future__ import annotations

__all__ = [
    "RelayError",
    "ConfigError",
    "AgentError",
    "AgentSpawnError",
    "AgentStdinError",
    "AgentWaitError",
    "RunInterrupted",
    "to_exit_code",
]


class RelayError(Exception):
    """Base error for agent-relay."""

    code: str = "RELAY_ERROR"


class ConfigError(RelayError):
    """Configuration could not be loaded (unreadable or invalid file)."""

    code = "CONFIG_ERROR"


class AgentError(RelayError):
    """A run failed before an ExecutionResult could be produced."""

    code = "AGENT_ERROR"


class AgentSpawnError(AgentError):
    """The agent process could not be started.

    Attributes:
        command: Executable that failed to start
    """

    def __init__(self, command: str, reason: str) -> None:
        self.command = command
        super().__init__(f"Failed to spawn agent '{command}': {reason}")


class AgentStdinError(AgentError):
    """The prompt could not be written to the agent's stdin."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Failed to write to stdin: {reason}")


class AgentWaitError(AgentError):
    """Waiting for the agent process to exit failed."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Failed to wait for agent: {reason}")


class RunInterrupted(RelayError):
    """The run was interrupted (SIGINT)."""

    code = "INTERRUPTED"

    def __init__(self, message: str = "Operation interrupted") -> None:
        super().__init__(message)


def to_exit_code(error: BaseException) -> int:
    """Map an error to a process exit code (130 for SIGINT, 1 otherwise)."""
    if isinstance(error, RunInterrupted):
        return 130
    return 1
