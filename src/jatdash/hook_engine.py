"""Hook execution engine: run hook commands against a synthetic event.

Hooks run in preview mode: the serialized event goes to stdin and
JAT_HOOK_PREVIEW=true is set in the environment. Honoring that flag is up
to the hook script; the engine does not sandbox it.

The engine also tracks which command keys are in flight per caller so a UI
can disable duplicate "Run" buttons. Duplicates are still allowed to run.
"""

from __future__ import annotations

import logging
import os
import time
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path

from jatdash.config import HookConfig
from jatdash.hook_events import ToolCallEvent, new_preview_session_id
from jatdash.hook_matcher import HookEntry, MatchResult, match
from jatdash.hook_validation import resolve_command
from jatdash.process_runner import ExecutionResult, ProcessRunner

logger = logging.getLogger(__name__)

DEFAULT_CALLER = "default"


@dataclass
class DispatchResult:
    """A matcher result plus the executions of its hooks (empty if unmatched)."""

    match: MatchResult
    executions: list[ExecutionResult] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = self.match.to_dict()
        data["executions"] = [r.to_dict() for r in self.executions]
        return data


class HookEngine:
    """Runs hook commands through a ProcessRunner in preview mode."""

    def __init__(self, runner: ProcessRunner | None = None, config: HookConfig | None = None):
        self.config = config or HookConfig()
        self.runner = runner or ProcessRunner(self.config.default_timeout_ms)
        # caller -> command key -> number of runs currently executing
        self._in_flight: dict[str, Counter[str]] = {}

    @property
    def project_root(self) -> Path:
        return Path(self.config.project_root or os.getcwd())

    @property
    def in_flight(self) -> dict[str, Counter[str]]:
        """Live view of executing key counts per caller. Do not mutate."""
        return self._in_flight

    def running(self, caller: str = DEFAULT_CALLER) -> frozenset[str]:
        return frozenset(self._in_flight.get(caller, ()))

    def is_running(self, key: str, caller: str = DEFAULT_CALLER) -> bool:
        return key in self._in_flight.get(caller, ())

    def clamp_timeout(self, timeout_ms: int | None) -> int:
        if timeout_ms is None or timeout_ms <= 0:
            return self.config.default_timeout_ms
        return min(int(timeout_ms), self.config.max_timeout_ms)

    def _mark(self, caller: str, key: str) -> None:
        self._in_flight.setdefault(caller, Counter())[key] += 1

    def _unmark(self, caller: str, key: str) -> None:
        keys = self._in_flight.get(caller)
        if keys is None:
            return
        keys[key] -= 1
        if keys[key] <= 0:
            del keys[key]
        if not keys:
            del self._in_flight[caller]

    async def execute(
        self,
        command: str,
        event: ToolCallEvent,
        timeout_ms: int | None = None,
        *,
        caller: str = DEFAULT_CALLER,
        key: str | None = None,
    ) -> ExecutionResult:
        """Run one hook command with event as stdin.

        A non-zero exit is a normal result; error/timed_out mark runs that
        could not complete.
        """
        key = key or command
        self._mark(caller, key)
        try:
            return await self._execute(command, event, self.clamp_timeout(timeout_ms))
        finally:
            self._unmark(caller, key)

    async def _execute(self, command: str, event: ToolCallEvent, timeout_ms: int) -> ExecutionResult:
        started = time.monotonic()
        root = self.project_root
        resolved_command, script_path = resolve_command(command, root)

        if script_path is not None and not script_path.exists():
            logger.info(f"Hook script not found: {script_path}")
            return ExecutionResult(
                command=command,
                stderr=f"Hook script not found: {script_path}",
                error="Script not found",
                duration_ms=int((time.monotonic() - started) * 1000),
                resolved_path=str(script_path),
            )

        session_id = event.session_id or new_preview_session_id()
        env = {
            self.config.preview_env_var: "true",
            "CLAUDE_SESSION_ID": session_id,
            "CLAUDE_PROJECT_DIR": str(root),
        }
        logger.debug(f"Running hook {event.event_type} ({timeout_ms}ms): {resolved_command}")
        result = await self.runner.run(
            resolved_command,
            stdin=event.to_json(session_id),
            timeout_ms=timeout_ms,
            env=env,
            cwd=str(root),
        )
        result.command = command
        if script_path is not None:
            result.resolved_path = str(script_path)
        return result

    async def dispatch(
        self,
        entries: list[HookEntry],
        event: ToolCallEvent,
        timeout_ms: int | None = None,
        *,
        caller: str = DEFAULT_CALLER,
    ) -> list[DispatchResult]:
        """Match entries against event and run every matched hook, in order."""
        results = []
        for match_result in match(entries, event):
            dispatched = DispatchResult(match=match_result)
            if match_result.matched:
                for j, hook in enumerate(match_result.entry.hooks):
                    hook_timeout = hook.timeout * 1000 if hook.timeout else timeout_ms
                    execution = await self.execute(
                        hook.command,
                        event,
                        hook_timeout,
                        caller=caller,
                        key=f"{event.event_type}:{match_result.index}:{j}",
                    )
                    dispatched.executions.append(execution)
            results.append(dispatched)
        return results
