"""jatdash: local process orchestration for the JAT agent dashboard."""

__version__ = "0.3.0"

from jatdash.process_runner import ExecutionResult, ProcessRunner
from jatdash.sessions import CreateResult, Session, SessionRegistry
from jatdash.hook_events import ToolCallEvent, event_from_payload, sample_event
from jatdash.hook_matcher import HookCommand, HookEntry, MatchResult, match, primary_command
from jatdash.hook_engine import DispatchResult, HookEngine
from jatdash.hook_validation import parse_hooks_config, validate_hook_command, validate_hooks_config

__all__ = [
    "ExecutionResult",
    "ProcessRunner",
    "CreateResult",
    "Session",
    "SessionRegistry",
    "ToolCallEvent",
    "event_from_payload",
    "sample_event",
    "HookCommand",
    "HookEntry",
    "MatchResult",
    "match",
    "primary_command",
    "DispatchResult",
    "HookEngine",
    "parse_hooks_config",
    "validate_hook_command",
    "validate_hooks_config",
]
