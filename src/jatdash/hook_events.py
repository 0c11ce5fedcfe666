"""Hook event types: the synthetic stdin payloads fed to hook commands.

One dataclass per Claude Code hook event. Only PreToolUse/PostToolUse carry
a tool name; for the others tool_name is "" and matchers are expected to be
".*".
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from typing import Any, ClassVar, Union

SESSION_START = "SessionStart"
USER_PROMPT_SUBMIT = "UserPromptSubmit"
PRE_TOOL_USE = "PreToolUse"
POST_TOOL_USE = "PostToolUse"
PRE_COMPACT = "PreCompact"

EVENT_TYPES = (PRE_TOOL_USE, POST_TOOL_USE, USER_PROMPT_SUBMIT, PRE_COMPACT, SESSION_START)
TOOL_EVENT_TYPES = (PRE_TOOL_USE, POST_TOOL_USE)


def new_preview_session_id() -> str:
    """Opaque id for a preview run; never collides with tmux session names."""
    return f"preview-session-{uuid.uuid4().hex[:12]}"


@dataclass
class _BaseEvent:
    event_type: ClassVar[str] = ""

    session_id: str = ""
    cwd: str = ""

    # Overridden by a real field on the tool-scoped events
    @property
    def tool_name(self) -> str:
        return ""

    def _fields(self) -> dict[str, Any]:
        return {}

    def to_payload(self, session_id: str | None = None) -> dict[str, Any]:
        """Claude Code hook input as a dict (snake_case keys)."""
        payload = {
            "session_id": self.session_id or session_id or "",
            "hook_event_name": self.event_type,
        }
        if self.cwd:
            payload["cwd"] = self.cwd
        payload.update(self._fields())
        return payload

    def to_json(self, session_id: str | None = None) -> str:
        """Canonical JSON text: sorted keys, compact separators."""
        return json.dumps(
            self.to_payload(session_id),
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
        )


@dataclass
class SessionStartEvent(_BaseEvent):
    event_type: ClassVar[str] = SESSION_START

    source: str = "startup"

    def _fields(self) -> dict[str, Any]:
        return {"source": self.source}


@dataclass
class UserPromptSubmitEvent(_BaseEvent):
    event_type: ClassVar[str] = USER_PROMPT_SUBMIT

    prompt: str = ""

    def _fields(self) -> dict[str, Any]:
        return {"prompt": self.prompt}


@dataclass
class PreToolUseEvent(_BaseEvent):
    event_type: ClassVar[str] = PRE_TOOL_USE

    tool_name: str = ""
    tool_input: dict[str, Any] = field(default_factory=dict)

    def _fields(self) -> dict[str, Any]:
        return {"tool_name": self.tool_name, "tool_input": self.tool_input}


@dataclass
class PostToolUseEvent(PreToolUseEvent):
    event_type: ClassVar[str] = POST_TOOL_USE

    tool_response: dict[str, Any] = field(default_factory=dict)

    def _fields(self) -> dict[str, Any]:
        fields = super()._fields()
        fields["tool_response"] = self.tool_response
        return fields


@dataclass
class PreCompactEvent(_BaseEvent):
    event_type: ClassVar[str] = PRE_COMPACT

    trigger: str = "manual"
    custom_instructions: str = ""

    def _fields(self) -> dict[str, Any]:
        return {"trigger": self.trigger, "custom_instructions": self.custom_instructions}


ToolCallEvent = Union[
    SessionStartEvent,
    UserPromptSubmitEvent,
    PreToolUseEvent,
    PostToolUseEvent,
    PreCompactEvent,
]

_EVENT_CLASSES = {
    SESSION_START: SessionStartEvent,
    USER_PROMPT_SUBMIT: UserPromptSubmitEvent,
    PRE_TOOL_USE: PreToolUseEvent,
    POST_TOOL_USE: PostToolUseEvent,
    PRE_COMPACT: PreCompactEvent,
}


def _as_dict(value: Any, field_name: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"'{field_name}' must be an object")
    return value


def event_from_payload(payload: dict, event_type: str | None = None) -> ToolCallEvent:
    """Build a typed event from a hook input dict.

    The type comes from event_type or payload["hook_event_name"], defaulting
    to PreToolUse. Fields that are not valid for the type are ignored.
    """
    if not isinstance(payload, dict):
        raise ValueError("Hook input must be a JSON object")
    event_type = event_type or payload.get("hook_event_name") or PRE_TOOL_USE
    if event_type not in _EVENT_CLASSES:
        raise ValueError(
            f"Unknown hook event type: '{event_type}'. Valid types: {', '.join(EVENT_TYPES)}"
        )

    common = {
        "session_id": str(payload.get("session_id") or ""),
        "cwd": str(payload.get("cwd") or ""),
    }
    if event_type == SESSION_START:
        return SessionStartEvent(source=str(payload.get("source") or "startup"), **common)
    if event_type == USER_PROMPT_SUBMIT:
        return UserPromptSubmitEvent(prompt=str(payload.get("prompt") or ""), **common)
    if event_type == PRE_COMPACT:
        return PreCompactEvent(
            trigger=str(payload.get("trigger") or "manual"),
            custom_instructions=str(payload.get("custom_instructions") or ""),
            **common,
        )

    tool_fields = {
        "tool_name": str(payload.get("tool_name") or ""),
        "tool_input": _as_dict(payload.get("tool_input"), "tool_input"),
    }
    if event_type == PRE_TOOL_USE:
        return PreToolUseEvent(**tool_fields, **common)
    return PostToolUseEvent(
        tool_response=_as_dict(payload.get("tool_response"), "tool_response"),
        **tool_fields,
        **common,
    )


# Sample tool inputs/responses used to preview hooks without a live agent
SAMPLE_TOOL_INPUTS: dict[str, dict[str, Any]] = {
    "Bash": {"command": "npm test", "description": "Run the test suite"},
    "Edit": {
        "file_path": "/tmp/example/src/app.ts",
        "old_string": "const debug = true;",
        "new_string": "const debug = false;",
    },
    "Write": {"file_path": "/tmp/example/notes.md", "content": "# Notes\n"},
    "Read": {"file_path": "/tmp/example/README.md"},
}

SAMPLE_TOOL_RESPONSES: dict[str, dict[str, Any]] = {
    "Bash": {"stdout": "All tests passed", "stderr": "", "interrupted": False},
    "Edit": {"filePath": "/tmp/example/src/app.ts", "success": True},
    "Write": {"filePath": "/tmp/example/notes.md", "success": True},
    "Read": {"content": "# Example\n"},
}


def sample_event(event_type: str, tool_name: str | None = None) -> ToolCallEvent:
    """Realistic synthetic event for previewing hooks of the given type."""
    if event_type == SESSION_START:
        return SessionStartEvent()
    if event_type == USER_PROMPT_SUBMIT:
        return UserPromptSubmitEvent(prompt="Fix the failing tests in the auth module")
    if event_type == PRE_COMPACT:
        return PreCompactEvent()
    if event_type in TOOL_EVENT_TYPES:
        tool = tool_name or "Bash"
        tool_input = dict(SAMPLE_TOOL_INPUTS.get(tool, {}))
        if event_type == PRE_TOOL_USE:
            return PreToolUseEvent(tool_name=tool, tool_input=tool_input)
        return PostToolUseEvent(
            tool_name=tool,
            tool_input=tool_input,
            tool_response=dict(SAMPLE_TOOL_RESPONSES.get(tool, {})),
        )
    raise ValueError(
        f"Unknown hook event type: '{event_type}'. Valid types: {', '.join(EVENT_TYPES)}"
    )
