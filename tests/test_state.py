"""Dashboard state and update application tests."""

from __future__ import annotations

import pytest

from agent_relay.events import (
    AssistantText,
    GenericError,
    RunFinished,
    ToolError,
    ToolResult,
    ToolStarted,
)
from agent_relay.state import (
    MAX_LOGS,
    MAX_THOUGHTS,
    MAX_TOOLS,
    ActivityLog,
    CurrentStory,
    GlobalState,
    RunInfo,
    ToolExecution,
    ToolStatus,
    apply_update,
)
from agent_relay.store import replay
from agent_relay.updates import (
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
)


def agent(run_id: str, event, timestamp: float = 1000.0) -> AgentUpdate:
    return AgentUpdate(run_id=run_id, event=event, timestamp=timestamp)


def long_text(i: int) -> str:
    return f"thought {i:03d} " + "x" * 150


# =============================================================================
# ActivityLog Tests
# =============================================================================


class TestActivityLog:
    """Bounded thought and tool history."""

    def test_thoughts_capped_fifo(self):
        log = ActivityLog()
        for i in range(60):
            log.append_thought(long_text(i))

        assert len(log.thoughts) == MAX_THOUGHTS
        assert log.thoughts[0] == long_text(10)
        assert log.thoughts[-1] == long_text(59)

    def test_short_thought_absorbs_next(self):
        log = ActivityLog()
        log.append_thought("Thinking")
        log.append_thought("more")

        assert list(log.thoughts) == ["Thinking more"]

    def test_long_thought_not_merged(self):
        log = ActivityLog()
        log.append_thought("y" * 120)
        log.append_thought("next")

        assert list(log.thoughts) == ["y" * 120, "next"]

    def test_merge_stops_at_threshold(self):
        log = ActivityLog(merge_threshold=10)
        log.append_thought("abcdef")
        log.append_thought("ghijkl")
        log.append_thought("mno")

        assert list(log.thoughts) == ["abcdef ghijkl", "mno"]

    def test_tools_capped_fifo(self):
        log = ActivityLog()
        for i in range(MAX_TOOLS + 5):
            log.append_tool(ToolExecution(tool_id=f"t{i}", tool_name="ls"))

        assert len(log.tools) == MAX_TOOLS
        assert log.tools[0].tool_id == "t5"

    def test_duplicate_running_tool_ignored(self):
        log = ActivityLog()
        assert log.append_tool(ToolExecution(tool_id="t1", tool_name="a")) is True
        assert log.append_tool(ToolExecution(tool_id="t1", tool_name="b")) is False

        assert len(log.tools) == 1
        assert log.tools[0].tool_name == "a"

    def test_finished_tool_id_can_be_reused(self):
        log = ActivityLog()
        log.append_tool(ToolExecution(tool_id="t1", tool_name="a"))
        log.update_tool_status("t1", ToolStatus.COMPLETED, "ok", at=1.0)

        assert log.append_tool(ToolExecution(tool_id="t1", tool_name="b")) is True

    def test_update_unknown_tool(self):
        log = ActivityLog()
        assert log.update_tool_status("missing", ToolStatus.COMPLETED) is False

    def test_terminal_status_is_final(self):
        tool = ToolExecution(tool_id="t1", tool_name="ls")
        assert tool.finish(ToolStatus.ERROR, None, at=2.0) is True
        assert tool.finish(ToolStatus.COMPLETED, "late", at=3.0) is False

        assert tool.status is ToolStatus.ERROR
        assert tool.finished_at == 2.0
        assert tool.result is None


# =============================================================================
# Agent Event Application Tests
# =============================================================================


class TestAgentEvents:
    """apply_update with AgentUpdate commands."""

    def test_assistant_text_sanitized(self):
        state = GlobalState()
        apply_update(state, agent("r1", AssistantText(text="  Reading\n the   story ")))

        assert list(state.activity["r1"].thoughts) == ["Reading the story"]

    @pytest.mark.parametrize("text", ["", "   ", "```only code```", "tool: ls"])
    def test_undisplayable_text_dropped(self, text: str):
        state = GlobalState()
        apply_update(state, agent("r1", AssistantText(text=text)))

        assert list(state.activity["r1"].thoughts) == []

    def test_tool_lifecycle(self):
        state = GlobalState()
        apply_update(state, agent("r1", ToolStarted(tool_id="t1", tool_name="read_file",
                                                    input={"path": "a"}), 10.0))
        apply_update(state, agent("r1", ToolResult(tool_id="t1", result="ok"), 12.5))

        tool = state.activity["r1"].tools[0]
        assert tool.status is ToolStatus.COMPLETED
        assert tool.result == "ok"
        assert tool.input == {"path": "a"}
        assert tool.started_at == 10.0
        assert tool.finished_at == 12.5

    def test_result_for_unknown_tool_is_noop(self):
        state = GlobalState()
        apply_update(state, agent("r1", ToolResult(tool_id="ghost", result="ok")))

        assert list(state.activity["r1"].tools) == []

    def test_tool_error(self):
        state = GlobalState()
        apply_update(state, agent("r1", ToolStarted(tool_id="t1", tool_name="write")))
        apply_update(state, agent("r1", ToolError(tool_id="t1", error="permission denied")))

        activity = state.activity["r1"]
        assert activity.tools[0].status is ToolStatus.ERROR
        assert activity.tools[0].result is None
        assert list(activity.thoughts) == ["[ERROR] permission denied"]

    def test_generic_error(self):
        state = GlobalState()
        apply_update(state, agent("r1", GenericError(message="Agent timed out after 5s")))

        assert list(state.activity["r1"].thoughts) == ["[ERROR] Agent timed out after 5s"]

    def test_run_finished_changes_nothing(self):
        state = GlobalState()
        apply_update(state, RegisterRun("r1"))
        before = state.snapshot()

        apply_update(state, agent("r1", RunFinished()))

        assert state.runs == before.runs
        assert list(state.activity["r1"].thoughts) == []

    def test_unregistered_run_gets_activity(self):
        state = GlobalState()
        apply_update(state, agent("late", AssistantText(text="hello")))

        assert "late" in state.activity
        assert "late" not in state.runs

    def test_runs_are_isolated(self):
        state = GlobalState()
        apply_update(state, agent("a", AssistantText(text="for a")))
        apply_update(state, agent("b", AssistantText(text="for b")))

        assert list(state.activity["a"].thoughts) == ["for a"]
        assert list(state.activity["b"].thoughts) == ["for b"]


# =============================================================================
# Dashboard Command Tests
# =============================================================================


class TestDashboardCommands:
    """Non-agent update commands."""

    def test_register_and_set_run_state(self):
        state = GlobalState()
        apply_update(state, RegisterRun("US-001", title="Login page", state="pending"))
        apply_update(state, SetRunState("US-001", "running"))

        assert state.runs["US-001"] == RunInfo("US-001", "Login page", "running")
        assert state.total_count == 1

    def test_set_run_state_unknown_run_ignored(self):
        state = GlobalState()
        apply_update(state, SetRunState("ghost", "done"))

        assert state.runs == {}

    def test_scalar_commands(self):
        state = GlobalState()
        for command in (
            SetCurrentRun("r1"),
            SetPhase("implement"),
            SetIteration(3),
            SetMaxIterations(10),
            SetCurrentStory(("US-002", "Signup")),
            SetCompletedCount(2),
            ToggleLogs(True),
        ):
            apply_update(state, command)

        assert state.current_run == "r1"
        assert state.current_phase == "implement"
        assert state.iteration == 3
        assert state.max_iterations == 10
        assert state.current_story == CurrentStory("US-002", "Signup")
        assert state.completed_count == 2
        assert state.show_logs is True

    def test_clear_current_story(self):
        state = GlobalState()
        apply_update(state, SetCurrentStory(("US-002", "Signup")))
        apply_update(state, SetCurrentStory(None))

        assert state.current_story is None

    def test_logs_ring_buffer(self):
        state = GlobalState()
        apply_update(state, AppendLogs([f"line {i}" for i in range(MAX_LOGS + 10)]))

        assert len(state.logs) == MAX_LOGS
        assert state.logs[0] == "line 10"
        assert state.logs[-1] == f"line {MAX_LOGS + 9}"

    def test_unknown_command_ignored(self):
        state = GlobalState()
        apply_update(state, object())  # type: ignore[arg-type]

        assert state.runs == {}


# =============================================================================
# GlobalState Tests
# =============================================================================


class TestGlobalState:
    """Construction, snapshots and replay."""

    def test_from_runs_counts_done(self):
        state = GlobalState.from_runs(
            [RunInfo("a", state="done"), RunInfo("b", state="pending"), RunInfo("c", state="done")]
        )

        assert state.total_count == 3
        assert state.completed_count == 2
        assert set(state.activity) == {"a", "b", "c"}

    def test_snapshot_is_independent(self):
        state = GlobalState()
        apply_update(state, agent("r1", AssistantText(text="first " + "x" * 130)))
        snapshot = state.snapshot()

        apply_update(state, agent("r1", AssistantText(text="second")))

        assert len(snapshot.activity["r1"].thoughts) == 1
        assert len(state.activity["r1"].thoughts) == 2

    def test_replay_is_deterministic(self):
        commands = [
            RegisterRun("r1", title="t"),
            agent("r1", ToolStarted(tool_id="t1", tool_name="ls"), 1.0),
            agent("r1", AssistantText(text="Thinking"), 2.0),
            agent("r1", AssistantText(text="more"), 3.0),
            agent("r1", ToolResult(tool_id="t1", result=[1, 2]), 4.0),
            AppendLogs(["a", "b"]),
            SetCompletedCount(1),
        ]

        first = replay(commands)
        second = replay(commands)

        assert first == second
        assert list(first.activity["r1"].thoughts) == ["Thinking more"]
        assert first.activity["r1"].tools[0].finished_at == 4.0

    def test_creation_time_ignored_in_equality(self):
        assert GlobalState(started_at=1.0) == GlobalState(started_at=2.0)
