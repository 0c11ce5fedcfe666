"""Hook matcher: which configured hook entries apply to an event.

Matchers come from user config and are treated as untrusted: a pattern
that fails to compile is reported on its own result and never aborts
matching of the remaining entries.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from jatdash.hook_events import ToolCallEvent


@dataclass
class HookCommand:
    """A single command hook. timeout is in seconds, as in settings.json."""

    command: str
    type: str = "command"
    timeout: int | None = None

    def to_dict(self) -> dict:
        data = {"type": self.type, "command": self.command}
        if self.timeout is not None:
            data["timeout"] = self.timeout
        return data


@dataclass
class HookEntry:
    """A matcher and its ordered hook commands."""

    matcher: str
    hooks: list[HookCommand] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"matcher": self.matcher, "hooks": [h.to_dict() for h in self.hooks]}


@dataclass
class MatchResult:
    entry: HookEntry
    index: int
    matched: bool
    matched_text: str | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        data = {
            "index": self.index,
            "matcher": self.entry.matcher,
            "matched": self.matched,
            "hooks": [h.to_dict() for h in self.entry.hooks],
        }
        if self.matched_text is not None:
            data["matchedText"] = self.matched_text
        if self.error is not None:
            data["error"] = self.error
        return data


def match_entry(entry: HookEntry, index: int, tool_name: str) -> MatchResult:
    try:
        pattern = re.compile(entry.matcher)
    except (re.error, TypeError) as e:
        return MatchResult(entry=entry, index=index, matched=False, error=f"Invalid regex: {e}")

    found = pattern.search(tool_name)
    if found is None:
        return MatchResult(entry=entry, index=index, matched=False)
    return MatchResult(entry=entry, index=index, matched=True, matched_text=found.group(0))


def match(entries: list[HookEntry], event: ToolCallEvent) -> list[MatchResult]:
    """One result per entry, in entry order. Pure; never raises on bad patterns."""
    tool_name = event.tool_name or ""
    return [match_entry(entry, i, tool_name) for i, entry in enumerate(entries)]


def matching_commands(results: list[MatchResult]) -> list[HookCommand]:
    """Commands of every matched entry, flattened in display/execution order."""
    commands = []
    for result in results:
        if result.matched:
            commands.extend(result.entry.hooks)
    return commands


def primary_command(results: list[MatchResult]) -> HookCommand | None:
    """First hook of the first matching entry, if any."""
    for result in results:
        if result.matched and result.entry.hooks:
            return result.entry.hooks[0]
    return None
