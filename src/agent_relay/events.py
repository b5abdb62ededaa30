"""Agent activity event models.

Events are immutable values extracted from an agent's raw output. They are
ordered by emission time within a run and carry no run identity of their
own; the bridge attaches the run id when it forwards them to the state
store.

Event kinds:
- AssistantText: free-form reasoning text (a "thought")
- ToolStarted / ToolResult / ToolError: tool execution lifecycle
- GenericError: an error not tied to a tool call
- RunFinished: the run has produced its result
"""

from __future__ import annotations

import re
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

__all__ = [
    "AgentEventBase",
    "AssistantText",
    "ToolStarted",
    "ToolResult",
    "ToolError",
    "GenericError",
    "RunFinished",
    "AgentEvent",
    "parse_agent_event",
    "sanitize_assistant_text",
]

# Fenced code blocks, including the fences
_CODE_BLOCK_RE = re.compile(r"```[\s\S]*?```")
_TOOL_CALL_PREFIX = "tool:"


class AgentEventBase(BaseModel):
    """Base class for all agent events."""

    model_config = ConfigDict(
        extra="ignore",
        frozen=True,
    )


class AssistantText(AgentEventBase):
    """Assistant text (a thought). May be empty; filtering happens in the store."""

    type: Literal["assistant_text"] = "assistant_text"
    text: str = ""


class ToolStarted(AgentEventBase):
    """A tool execution started.

    Attributes:
        tool_id: Identifier linking the call to its result
        tool_name: Name of the invoked tool
        input: Decoded tool input payload
    """

    type: Literal["tool_started"] = "tool_started"
    tool_id: str
    tool_name: str
    input: Any = None


class ToolResult(AgentEventBase):
    """A tool execution completed with a result."""

    type: Literal["tool_result"] = "tool_result"
    tool_id: str
    result: Any = None


class ToolError(AgentEventBase):
    """A tool execution failed."""

    type: Literal["tool_error"] = "tool_error"
    tool_id: str
    error: str = ""


class GenericError(AgentEventBase):
    """An error that is not tied to a specific tool call."""

    type: Literal["error"] = "error"
    message: str = ""


class RunFinished(AgentEventBase):
    """The run has produced its ExecutionResult."""

    type: Literal["run_finished"] = "run_finished"


AgentEvent = Annotated[
    Union[AssistantText, ToolStarted, ToolResult, ToolError, GenericError, RunFinished],
    Field(discriminator="type"),
]

_agent_event_adapter: TypeAdapter[AgentEvent] = TypeAdapter(AgentEvent)


def parse_agent_event(data: dict[str, Any]) -> AgentEvent:
    """Rebuild an event from its ``model_dump()`` form.

    Raises:
        pydantic.ValidationError: If ``data`` is not a valid event
    """
    return _agent_event_adapter.validate_python(data)


def sanitize_assistant_text(text: str) -> str | None:
    """Clean assistant text for display.

    Strips fenced code blocks, collapses whitespace and drops text that is
    empty or looks like a raw tool invocation line.

    Args:
        text: Raw assistant text

    Returns:
        The cleaned text, or None if nothing displayable remains
    """
    text = text.strip()
    if not text:
        return None

    cleaned = _CODE_BLOCK_RE.sub("", text).strip()
    if not cleaned:
        return None

    cleaned = " ".join(cleaned.split())

    if cleaned.startswith(_TOOL_CALL_PREFIX):
        return None

    return cleaned
