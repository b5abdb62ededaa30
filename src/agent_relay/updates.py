"""State update commands.

Each command describes one mutation of the dashboard state. Commands are
sent on the store's update queue and applied once, in arrival order, by the
store's consumer task.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Union

from .events import AgentEvent

__all__ = [
    "RegisterRun",
    "SetCurrentRun",
    "SetPhase",
    "SetIteration",
    "SetMaxIterations",
    "SetCurrentStory",
    "SetRunState",
    "SetCompletedCount",
    "AppendLogs",
    "ToggleLogs",
    "AgentUpdate",
    "UpdateCommand",
]


@dataclass(frozen=True)
class RegisterRun:
    """Add a run to the registry (or refresh its display metadata)."""

    run_id: str
    title: str = ""
    state: str = ""


@dataclass(frozen=True)
class SetCurrentRun:
    run_id: str | None


@dataclass(frozen=True)
class SetPhase:
    phase: str | None


@dataclass(frozen=True)
class SetIteration:
    iteration: int


@dataclass(frozen=True)
class SetMaxIterations:
    max_iterations: int


@dataclass(frozen=True)
class SetCurrentStory:
    """Story currently being worked on, as ``(story_id, title)``."""

    story: tuple[str, str] | None


@dataclass(frozen=True)
class SetRunState:
    """Update a registered run's workflow state label. Unknown runs are ignored."""

    run_id: str
    state: str


@dataclass(frozen=True)
class SetCompletedCount:
    count: int


@dataclass(frozen=True)
class AppendLogs:
    lines: tuple[str, ...]

    def __post_init__(self) -> None:
        if not isinstance(self.lines, tuple):
            object.__setattr__(self, "lines", tuple(self.lines))


@dataclass(frozen=True)
class ToggleLogs:
    show: bool


@dataclass(frozen=True)
class AgentUpdate:
    """An agent event tagged with the run that produced it.

    Attributes:
        run_id: Originating run
        event: The extracted event
        timestamp: When the event was forwarded; used for tool start and
            finish times, so replaying the same commands gives the same state
    """

    run_id: str
    event: AgentEvent
    timestamp: float = field(default_factory=time.time)


UpdateCommand = Union[
    RegisterRun,
    SetCurrentRun,
    SetPhase,
    SetIteration,
    SetMaxIterations,
    SetCurrentStory,
    SetRunState,
    SetCompletedCount,
    AppendLogs,
    ToggleLogs,
    AgentUpdate,
]
