"""Tagged payload extraction from raw agent output.

The agent interleaves free-form text with tagged payloads:

    <tool_use>{"toolUseId": "t1", "name": "read_file", "input": {...}}</tool_use>
    <tool_result>{"toolUseId": "t1", "content": "..."}</tool_result>
    <assistant_text>Thinking about the layout</assistant_text>

``extract_events`` turns one output line into zero or more events. It is
stateless: a payload split across lines is not reassembled.

Malformed payloads are dropped (logged at DEBUG), never raised. Garbled agent
output must not interrupt the pipeline.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from .events import AgentEvent, AssistantText, ToolError, ToolResult, ToolStarted

__all__ = ["extract_events"]

logger = logging.getLogger(__name__)

_TOOL_USE_RE = re.compile(r"<tool_use>(?P<content>.*?)</tool_use>")
_TOOL_RESULT_RE = re.compile(r"<tool_result>(?P<content>.*?)</tool_result>")
_ASSISTANT_TEXT_RE = re.compile(r"<assistant_text>(?P<content>.*?)</assistant_text>")

# Payload field names
_ID_FIELD = "toolUseId"
_NAME_FIELD = "name"
_INPUT_FIELD = "input"
_CONTENT_FIELD = "content"
_ERROR_FIELDS = ("is_error", "isError")


def _decode_payload(kind: str, raw: str) -> dict[str, Any] | None:
    """Decode a JSON object payload, or None if it is malformed."""
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.debug(f"Dropping malformed {kind} payload: {e}")
        return None
    if not isinstance(parsed, dict):
        logger.debug(f"Dropping non-object {kind} payload")
        return None
    return parsed


def _string_field(payload: dict[str, Any], name: str) -> str | None:
    value = payload.get(name)
    return value if isinstance(value, str) else None


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(value)


def _tool_use_event(raw: str) -> AgentEvent | None:
    payload = _decode_payload("tool_use", raw)
    if payload is None:
        return None

    tool_id = _string_field(payload, _ID_FIELD)
    tool_name = _string_field(payload, _NAME_FIELD)
    if tool_id is None or tool_name is None:
        logger.debug("Dropping tool_use payload without id or name")
        return None

    return ToolStarted(
        tool_id=tool_id,
        tool_name=tool_name,
        input=payload.get(_INPUT_FIELD),
    )


def _tool_result_event(raw: str) -> AgentEvent | None:
    payload = _decode_payload("tool_result", raw)
    if payload is None:
        return None

    tool_id = _string_field(payload, _ID_FIELD)
    if tool_id is None:
        logger.debug("Dropping tool_result payload without id")
        return None

    content = payload.get(_CONTENT_FIELD)
    if any(payload.get(flag) is True for flag in _ERROR_FIELDS):
        return ToolError(tool_id=tool_id, error=_stringify(content))

    return ToolResult(tool_id=tool_id, result=content)


def extract_events(line: str) -> list[AgentEvent]:
    """Extract the events encoded in one line of agent output.

    Several marker kinds may co-occur on one line; they are returned in the
    order tool_use, tool_result, assistant_text. Only the first occurrence
    of each marker kind is considered.

    Args:
        line: One line of raw output (trailing newline allowed)

    Returns:
        Extracted events, possibly empty
    """
    events: list[AgentEvent] = []
    if not line:
        return events

    match = _TOOL_USE_RE.search(line)
    if match:
        event = _tool_use_event(match.group("content"))
        if event is not None:
            events.append(event)

    match = _TOOL_RESULT_RE.search(line)
    if match:
        event = _tool_result_event(match.group("content"))
        if event is not None:
            events.append(event)

    match = _ASSISTANT_TEXT_RE.search(line)
    if match:
        events.append(AssistantText(text=match.group("content")))

    return events
