"""Live dashboard state.

GlobalState is the single aggregate of every run's live activity. It is
mutated only through ``apply_update``, and only by the StateStore's consumer
task; everything else reads deep-copied snapshots.

Bounded buffers (thoughts, tools, global logs) are deques with a maxlen:
once full, the oldest entry is evicted on append.
"""

from __future__ import annotations

import copy
import logging
import time
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .events import (
    AgentEvent,
    AssistantText,
    GenericError,
    RunFinished,
    ToolError,
    ToolResult,
    ToolStarted,
    sanitize_assistant_text,
)
from .updates import (
    AgentUpdate,
    AppendLogs,
    RegisterRun,
    SetCompletedCount,
    SetCurrentRun,
    SetCurrentStory,
    SetIteration,
    SetMaxIterations,
    SetPhase,
    SetRunState,
    ToggleLogs,
    UpdateCommand,
)

__all__ = [
    "MAX_THOUGHTS",
    "MAX_TOOLS",
    "MAX_LOGS",
    "MERGE_THRESHOLD",
    "ToolStatus",
    "ToolExecution",
    "ActivityLog",
    "RunInfo",
    "CurrentStory",
    "GlobalState",
    "apply_update",
]

logger = logging.getLogger(__name__)

MAX_THOUGHTS = 50
MAX_TOOLS = 20
MAX_LOGS = 500
# A last thought shorter than this absorbs the next one
MERGE_THRESHOLD = 120
DONE_STATE = "done"
ERROR_PREFIX = "[ERROR]"


class ToolStatus(str, Enum):
    """Tool execution state machine: RUNNING -> COMPLETED | ERROR."""

    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class ToolExecution:
    """One tool call tracked in a run's activity log.

    Attributes:
        tool_id: Identifier, unique within a run while running
        tool_name: Tool name
        input: Tool input payload
        status: Current status; terminal once it leaves RUNNING
        result: Result payload (set only on COMPLETED)
        started_at: Start timestamp
        finished_at: Finish timestamp (set only on leaving RUNNING)
    """

    tool_id: str
    tool_name: str
    input: Any = None
    status: ToolStatus = ToolStatus.RUNNING
    result: Any = None
    started_at: float = 0.0
    finished_at: float | None = None

    @property
    def is_running(self) -> bool:
        return self.status is ToolStatus.RUNNING

    def finish(self, status: ToolStatus, result: Any, at: float) -> bool:
        """Leave RUNNING. Returns False if the tool already finished."""
        if not self.is_running or status is ToolStatus.RUNNING:
            return False
        self.status = status
        self.result = result if status is ToolStatus.COMPLETED else None
        self.finished_at = at
        return True


@dataclass
class ActivityLog:
    """Per-run bounded history of thoughts and tool executions."""

    max_thoughts: int = MAX_THOUGHTS
    max_tools: int = MAX_TOOLS
    merge_threshold: int = MERGE_THRESHOLD
    thoughts: deque[str] = field(init=False)
    tools: deque[ToolExecution] = field(init=False)

    def __post_init__(self) -> None:
        self.thoughts = deque(maxlen=self.max_thoughts)
        self.tools = deque(maxlen=self.max_tools)

    def append_thought(self, thought: str) -> None:
        """Append a thought, merging it into a short last thought."""
        if self.thoughts and len(self.thoughts[-1]) < self.merge_threshold:
            self.thoughts[-1] = f"{self.thoughts[-1]} {thought}"
        else:
            self.thoughts.append(thought)

    def append_tool(self, tool: ToolExecution) -> bool:
        """Append a tool execution.

        Returns:
            False if a tool with the same id is still running (ignored)
        """
        if self.find_tool(tool.tool_id) is not None:
            logger.debug(f"Ignoring duplicate running tool_id={tool.tool_id}")
            return False
        self.tools.append(tool)
        return True

    def find_tool(self, tool_id: str) -> ToolExecution | None:
        """Find the running tool with ``tool_id``."""
        for tool in reversed(self.tools):
            if tool.tool_id == tool_id and tool.is_running:
                return tool
        return None

    def update_tool_status(
        self,
        tool_id: str,
        status: ToolStatus,
        result: Any = None,
        at: float | None = None,
    ) -> bool:
        """Move a running tool to a terminal status.

        Returns:
            False if no running tool has ``tool_id`` (evicted or never started)
        """
        tool = self.find_tool(tool_id)
        if tool is None:
            logger.debug(f"Ignoring {status.value} for unknown tool_id={tool_id}")
            return False
        return tool.finish(status, result, time.time() if at is None else at)


@dataclass
class RunInfo:
    """Display metadata for a registered run."""

    run_id: str
    title: str = ""
    state: str = ""


@dataclass(frozen=True)
class CurrentStory:
    story_id: str
    title: str


@dataclass
class GlobalState:
    """All runs' live activity plus dashboard counters.

    Attributes:
        runs: Run registry, run_id -> display metadata (insertion ordered)
        activity: Per-run activity logs
        logs: Global log ring buffer
        current_run: Run currently in focus
        current_phase: Workflow phase label
        current_story: Story currently being worked on
        iteration: Current iteration counter
        max_iterations: Iteration cap
        completed_count: Number of completed runs
        show_logs: Whether the log view is shown
        started_at: State creation timestamp (not part of equality)
    """

    runs: dict[str, RunInfo] = field(default_factory=dict)
    activity: dict[str, ActivityLog] = field(default_factory=dict)
    log_capacity: int = MAX_LOGS
    logs: deque[str] = field(init=False)
    current_run: str | None = None
    current_phase: str | None = None
    current_story: CurrentStory | None = None
    iteration: int = 0
    max_iterations: int = 100
    completed_count: int = 0
    show_logs: bool = False
    started_at: float = field(default_factory=time.time, compare=False)
    max_thoughts: int = MAX_THOUGHTS
    max_tools: int = MAX_TOOLS

    def __post_init__(self) -> None:
        self.logs = deque(maxlen=self.log_capacity)

    @classmethod
    def from_runs(cls, runs: Iterable[RunInfo], **kwargs: Any) -> GlobalState:
        """Create state with pre-registered runs.

        Runs whose state is ``done`` count as completed.
        """
        state = cls(**kwargs)
        for run in runs:
            state.runs[run.run_id] = run
            state.activity_for(run.run_id)
        state.completed_count = sum(1 for r in state.runs.values() if r.state == DONE_STATE)
        return state

    @property
    def total_count(self) -> int:
        return len(self.runs)

    def activity_for(self, run_id: str) -> ActivityLog:
        """Return the run's activity log, creating it on first use."""
        log = self.activity.get(run_id)
        if log is None:
            log = ActivityLog(max_thoughts=self.max_thoughts, max_tools=self.max_tools)
            self.activity[run_id] = log
        return log

    def append_logs(self, lines: Iterable[str]) -> None:
        self.logs.extend(lines)

    def snapshot(self) -> GlobalState:
        """Independent deep copy for read-only consumers."""
        return copy.deepcopy(self)


def _apply_agent_event(
    state: GlobalState,
    run_id: str,
    event: AgentEvent,
    timestamp: float,
) -> None:
    activity = state.activity_for(run_id)

    if isinstance(event, AssistantText):
        cleaned = sanitize_assistant_text(event.text)
        if cleaned is not None:
            activity.append_thought(cleaned)

    elif isinstance(event, ToolStarted):
        activity.append_tool(
            ToolExecution(
                tool_id=event.tool_id,
                tool_name=event.tool_name,
                input=event.input,
                started_at=timestamp,
            )
        )

    elif isinstance(event, ToolResult):
        activity.update_tool_status(
            event.tool_id, ToolStatus.COMPLETED, event.result, at=timestamp
        )

    elif isinstance(event, ToolError):
        activity.update_tool_status(event.tool_id, ToolStatus.ERROR, at=timestamp)
        activity.append_thought(f"{ERROR_PREFIX} {event.error}")

    elif isinstance(event, GenericError):
        activity.append_thought(f"{ERROR_PREFIX} {event.message}")

    elif isinstance(event, RunFinished):
        logger.debug(f"Run finished run_id={run_id}")


def apply_update(state: GlobalState, command: UpdateCommand) -> None:
    """Apply one update command to ``state`` in place.

    Must only be called by the single owner of ``state``.
    """
    if isinstance(command, AgentUpdate):
        _apply_agent_event(state, command.run_id, command.event, command.timestamp)

    elif isinstance(command, AppendLogs):
        state.append_logs(command.lines)

    elif isinstance(command, RegisterRun):
        state.runs[command.run_id] = RunInfo(
            run_id=command.run_id, title=command.title, state=command.state
        )
        state.activity_for(command.run_id)

    elif isinstance(command, SetCurrentRun):
        state.current_run = command.run_id

    elif isinstance(command, SetPhase):
        state.current_phase = command.phase

    elif isinstance(command, SetIteration):
        state.iteration = command.iteration

    elif isinstance(command, SetMaxIterations):
        state.max_iterations = command.max_iterations

    elif isinstance(command, SetCurrentStory):
        state.current_story = (
            CurrentStory(*command.story) if command.story is not None else None
        )

    elif isinstance(command, SetRunState):
        run = state.runs.get(command.run_id)
        if run is None:
            logger.debug(f"Ignoring state for unregistered run_id={command.run_id}")
        else:
            run.state = command.state

    elif isinstance(command, SetCompletedCount):
        state.completed_count = command.count

    elif isinstance(command, ToggleLogs):
        state.show_logs = command.show

    else:
        logger.warning(f"Unknown update command: {type(command).__name__}")
