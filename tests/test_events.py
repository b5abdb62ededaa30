"""Event model and assistant text sanitizing tests."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from agent_relay.events import (
    AssistantText,
    GenericError,
    RunFinished,
    ToolError,
    ToolStarted,
    parse_agent_event,
    sanitize_assistant_text,
)


class TestEventModels:
    """Event model behavior."""

    def test_events_are_frozen(self):
        event = ToolStarted(tool_id="t1", tool_name="ls")
        with pytest.raises(ValidationError):
            event.tool_id = "t2"

    def test_events_compare_by_value(self):
        assert GenericError(message="x") == GenericError(message="x")
        assert RunFinished() == RunFinished()

    @pytest.mark.parametrize(
        "event",
        [
            AssistantText(text="hello"),
            ToolStarted(tool_id="t1", tool_name="ls", input={"a": 1}),
            ToolError(tool_id="t1", error="boom"),
            RunFinished(),
        ],
    )
    def test_parse_from_dump(self, event):
        assert parse_agent_event(event.model_dump()) == event

    def test_parse_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            parse_agent_event({"type": "nope"})

    def test_unknown_fields_ignored(self):
        event = parse_agent_event({"type": "error", "message": "m", "extra": 1})
        assert event == GenericError(message="m")


class TestSanitizeAssistantText:
    """sanitize_assistant_text filtering."""

    def test_plain_text_unchanged(self):
        assert sanitize_assistant_text("Reading the story") == "Reading the story"

    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    def test_blank_dropped(self, text: str):
        assert sanitize_assistant_text(text) is None

    def test_whitespace_collapsed(self):
        assert sanitize_assistant_text("  a\n\n b\tc  ") == "a b c"

    def test_code_blocks_stripped(self):
        text = "Before ```python\nprint(1)\n``` after"
        assert sanitize_assistant_text(text) == "Before after"

    def test_only_code_block_dropped(self):
        assert sanitize_assistant_text("```\ncode\n```") is None

    def test_tool_invocation_line_dropped(self):
        assert sanitize_assistant_text("tool: read_file a.rs") is None

    def test_tool_prefix_after_code_block_dropped(self):
        assert sanitize_assistant_text("```x``` tool: ls") is None
