"""Hook configuration and command validation.

Checks the structure of a settings.json "hooks" object and inspects hook
scripts on disk (exists, executable, shebang) so problems show up before a
hook is run.
"""

from __future__ import annotations

import os
import re
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from jatdash.hook_events import EVENT_TYPES
from jatdash.hook_matcher import HookCommand, HookEntry

SHEBANG_TYPES = {
    "#!/bin/bash": "bash",
    "#!/usr/bin/env bash": "bash",
    "#!/bin/sh": "shell",
    "#!/usr/bin/env sh": "shell",
    "#!/usr/bin/env node": "node",
    "#!/usr/bin/node": "node",
    "#!/usr/bin/env python3": "python",
    "#!/usr/bin/env python": "python",
    "#!/usr/bin/python3": "python",
    "#!/usr/bin/python": "python",
    "#!/usr/bin/env ruby": "ruby",
    "#!/usr/bin/ruby": "ruby",
    "#!/usr/bin/env perl": "perl",
    "#!/usr/bin/perl": "perl",
}

EXTENSION_TYPES = {
    ".sh": "bash",
    ".bash": "bash",
    ".js": "node",
    ".mjs": "node",
    ".cjs": "node",
    ".ts": "node",
    ".py": "python",
    ".rb": "ruby",
    ".pl": "perl",
}

SHEBANG_FOR_TYPE = {
    "bash": "#!/bin/bash",
    "shell": "#!/bin/sh",
    "node": "#!/usr/bin/env node",
    "python": "#!/usr/bin/env python3",
    "ruby": "#!/usr/bin/env ruby",
    "perl": "#!/usr/bin/env perl",
}

HOOK_DIRS = (".claude/hooks", ".claude", "hooks", "scripts")
MAX_SUGGESTIONS = 3


# --- Command path resolution ---


def split_command(command: str) -> tuple[str, str]:
    """Split off the first word of a command line (the program)."""
    head, _, rest = command.strip().partition(" ")
    return head, rest


def is_path_like(command: str) -> bool:
    """True if the program is a file path rather than a name looked up on PATH."""
    head, _ = split_command(command)
    return "/" in head or head.startswith("~")


PROJECT_DIR_VARS = ("${CLAUDE_PROJECT_DIR}", "$CLAUDE_PROJECT_DIR")


def needs_shell(head: str) -> bool:
    """True if the program word carries quotes or variables for the shell to expand."""
    return "$" in head or '"' in head or "'" in head


def expand_script_word(head: str, project_root: Path) -> str | None:
    """The path a shell would see for head, with CLAUDE_PROJECT_DIR bound to project_root.

    None when the word still references a variable that is not set.
    """
    text = head.replace('"', "").replace("'", "")
    for var in PROJECT_DIR_VARS:
        text = text.replace(var, str(project_root))
    text = os.path.expandvars(text)
    return None if "$" in text else text


def resolve_script_path(head: str, project_root: Path) -> Path:
    if head.startswith("~"):
        return Path(head).expanduser()
    path = Path(head)
    if path.is_absolute():
        return path
    return (project_root / path).resolve()


def resolve_command(command: str, project_root: Path) -> tuple[str, Path | None]:
    """Rewrite a relative script path against project_root.

    Returns (command_to_run, script_path). script_path is None for programs
    found on PATH (echo, python3, ...), which are left to the shell.
    """
    if not is_path_like(command):
        return command, None
    head, rest = split_command(command)
    if needs_shell(head):
        # The shell expands the word itself; only locate the script for checks
        expanded = expand_script_word(head, project_root)
        if expanded is None:
            return command, None
        return command, resolve_script_path(expanded, project_root)
    script = resolve_script_path(head, project_root)
    resolved = shlex.quote(str(script))
    if rest:
        resolved = f"{resolved} {rest}"
    return resolved, script


# --- Script inspection ---


@dataclass
class CommandCheck:
    """What validate_hook_command found out about a hook command."""

    valid: bool
    exists: bool
    is_executable: bool = False
    has_shebang: bool = False
    shebang: str | None = None
    script_type: str | None = None
    resolved_path: str | None = None
    error: str | None = None
    warnings: list[str] = field(default_factory=list)
    fixes: list[dict[str, str]] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)

    @property
    def fully_valid(self) -> bool:
        return self.valid and self.is_executable and self.has_shebang

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "valid": self.valid,
            "exists": self.exists,
            "isExecutable": self.is_executable,
        }
        if self.exists:
            data["hasShebang"] = self.has_shebang
            data["isFullyValid"] = self.fully_valid
            data["isWarning"] = bool(self.warnings)
        if self.shebang:
            data["shebang"] = self.shebang
        if self.script_type:
            data["scriptType"] = self.script_type
        if self.resolved_path:
            data["resolvedPath"] = self.resolved_path
        if self.error:
            data["error"] = self.error
        if self.warnings:
            data["warnings"] = self.warnings
        if self.fixes:
            data["fixes"] = self.fixes
        if self.suggestions:
            data["suggestions"] = self.suggestions
        return data


def read_shebang(path: Path) -> tuple[str | None, str | None]:
    """Return (shebang line, script type) from the first line of a script."""
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            first_line = f.readline().strip()
    except OSError:
        return None, None
    if not first_line.startswith("#!"):
        return None, None
    for prefix, script_type in SHEBANG_TYPES.items():
        if first_line.startswith(prefix):
            return first_line, script_type
    return first_line, "unknown"


def _suggest(original: str, project_root: Path) -> list[str]:
    filename = os.path.basename(original)
    suggestions = [
        f"./{d}/{filename}" for d in HOOK_DIRS if (project_root / d / filename).exists()
    ]
    if not suggestions:
        if not original.startswith("./"):
            suggestions.append(f"./{original}")
        if ".claude" not in original:
            suggestions.append(f"./.claude/hooks/{filename}")
    return suggestions[:MAX_SUGGESTIONS]


def validate_hook_command(command: str, project_root: Path) -> CommandCheck:
    """Inspect the script a hook command points at."""
    if not command or not command.strip():
        return CommandCheck(valid=False, exists=False, error="Command path is required")

    head, _ = split_command(command)
    expanded = expand_script_word(head, project_root) if needs_shell(head) else head
    if expanded is None:
        return CommandCheck(
            valid=False,
            exists=False,
            error=f"Cannot resolve variables in: {head}",
        )
    script = resolve_script_path(expanded, project_root)

    if not script.exists():
        return CommandCheck(
            valid=False,
            exists=False,
            error=f"File not found: {head}",
            resolved_path=str(script),
            suggestions=_suggest(head, project_root),
        )

    if script.is_dir():
        return CommandCheck(
            valid=False,
            exists=True,
            error="Path is a directory, not a file",
            resolved_path=str(script),
        )

    is_executable = os.access(script, os.X_OK)
    shebang, shebang_type = read_shebang(script)
    extension_type = EXTENSION_TYPES.get(script.suffix.lower())

    warnings = []
    fixes = []
    if not is_executable:
        warnings.append("File exists but is not executable")
        fixes.append({"description": "Make script executable", "command": f"chmod +x {script}"})
    if shebang is None:
        warnings.append("Script is missing a shebang line (e.g., #!/bin/bash)")
        if extension_type in SHEBANG_FOR_TYPE:
            fixes.append({
                "description": "Add shebang line at top of file",
                "command": f"sed -i '1i{SHEBANG_FOR_TYPE[extension_type]}' {script}",
            })
    elif extension_type and shebang_type not in (extension_type, "unknown"):
        warnings.append(
            f"Extension suggests {extension_type} but shebang indicates {shebang_type}"
        )

    return CommandCheck(
        valid=True,
        exists=True,
        is_executable=is_executable,
        has_shebang=shebang is not None,
        shebang=shebang,
        script_type=shebang_type or extension_type,
        resolved_path=str(script),
        warnings=warnings,
        fixes=fixes,
    )


# --- Config structure ---


@dataclass
class ValidationIssue:
    severity: str  # "error" | "warning"
    message: str

    def to_dict(self) -> dict:
        return {"severity": self.severity, "message": self.message}


def validate_hooks_config(config: Any) -> list[ValidationIssue]:
    """Structural problems in a settings.json "hooks" object. Empty list = valid."""
    if not isinstance(config, dict):
        return [ValidationIssue("error", "Hooks config must be an object.")]

    issues = []
    for event_type, entries in config.items():
        if event_type not in EVENT_TYPES:
            issues.append(ValidationIssue(
                "warning",
                f"Unknown hook event type: '{event_type}'. Valid types: {', '.join(EVENT_TYPES)}",
            ))
        if not isinstance(entries, list):
            issues.append(ValidationIssue("error", f"Hook entries for '{event_type}' must be an array."))
            continue

        for i, entry in enumerate(entries):
            where = f"{event_type}[{i}]"
            if not isinstance(entry, dict):
                issues.append(ValidationIssue(
                    "error", f"{where} must be an object with matcher and hooks properties."
                ))
                continue

            matcher = entry.get("matcher")
            if not isinstance(matcher, str):
                issues.append(ValidationIssue(
                    "error", f"{where} is missing required 'matcher' field (regex string)."
                ))
            else:
                try:
                    re.compile(matcher)
                except re.error as e:
                    issues.append(ValidationIssue("error", f"{where}.matcher is not a valid regex: {e}"))

            hooks = entry.get("hooks")
            if not isinstance(hooks, list):
                issues.append(ValidationIssue("error", f"{where} is missing required 'hooks' array."))
                continue

            for j, hook in enumerate(hooks):
                if not isinstance(hook, dict):
                    issues.append(ValidationIssue("error", f"{where}.hooks[{j}] must be an object."))
                    continue
                if hook.get("type") != "command":
                    issues.append(ValidationIssue("error", f"{where}.hooks[{j}].type must be 'command'."))
                command = hook.get("command")
                if not isinstance(command, str) or not command.strip():
                    issues.append(ValidationIssue(
                        "error",
                        f"{where}.hooks[{j}].command is required and must be a non-empty string.",
                    ))
    return issues


def parse_hook_entries(entries: Any) -> list[HookEntry]:
    """Build HookEntry objects from one event type's entry list.

    Malformed items are skipped; bad regexes are kept so the matcher can
    report them per entry.
    """
    if not isinstance(entries, list):
        raise ValueError("Hook entries must be an array")
    parsed = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        hooks = entry.get("hooks")
        commands = []
        for hook in hooks if isinstance(hooks, list) else []:
            if isinstance(hook, dict) and isinstance(hook.get("command"), str) and hook["command"].strip():
                timeout = hook.get("timeout")
                commands.append(HookCommand(
                    command=hook["command"],
                    type=hook.get("type", "command"),
                    timeout=timeout if type(timeout) is int and timeout > 0 else None,
                ))
        matcher = entry.get("matcher")
        parsed.append(HookEntry(matcher=matcher if isinstance(matcher, str) else "", hooks=commands))
    return parsed


def parse_hooks_config(config: Any) -> dict[str, list[HookEntry]]:
    """Parse a settings.json "hooks" object into entries per event type."""
    if not isinstance(config, dict):
        raise ValueError("Hooks config must be an object")
    return {
        event_type: parse_hook_entries(entries)
        for event_type, entries in config.items()
        if isinstance(entries, list)
    }
