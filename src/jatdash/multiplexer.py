"""Thin async wrapper around the tmux CLI.

Only runs commands and returns raw output; interpreting tmux's error text
is left to the session registry.
"""

from __future__ import annotations

import asyncio
import os
import shutil

LIST_FORMAT = "#{session_name}:#{session_created}:#{session_attached}"

# stderr fragments tmux prints when the server or session is simply absent
NOT_FOUND_MARKERS = (
    "no server running",
    "no sessions",
    "can't find session",
    "session not found",
    "error connecting to",
)
DUPLICATE_MARKER = "duplicate session"


def is_not_found(stderr: str) -> bool:
    """Check whether tmux stderr means 'nothing there' rather than a failure."""
    text = stderr.lower()
    return any(marker in text for marker in NOT_FOUND_MARKERS)


def exact_target(name: str) -> str:
    """Target a session by exact name; plain -t NAME does prefix matching."""
    return f"={name}"


class TmuxClient:
    """Runs tmux subcommands and returns exit code plus decoded output."""

    def __init__(self, tmux_bin: str = "tmux", timeout: int = 15):
        self.tmux_bin = tmux_bin
        self.timeout = timeout

    def _resolve_bin(self) -> str:
        if os.path.sep in self.tmux_bin:
            if os.path.exists(self.tmux_bin):
                return self.tmux_bin
        else:
            found = shutil.which(self.tmux_bin)
            if found:
                return found
        raise FileNotFoundError(f"tmux not found: {self.tmux_bin}")

    async def run(self, *args: str) -> dict:
        """Execute a tmux command and return parsed output."""
        cmd = [self._resolve_bin(), *args]
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise RuntimeError(f"tmux {args[0] if args else ''} timed out after {self.timeout}s")
        return {
            "exit_code": proc.returncode,
            "stdout": stdout.decode(errors="replace").strip(),
            "stderr": stderr.decode(errors="replace").strip(),
        }

    async def list_sessions(self) -> dict:
        return await self.run("list-sessions", "-F", LIST_FORMAT)

    async def has_session(self, name: str) -> dict:
        return await self.run("has-session", "-t", exact_target(name))

    async def new_session(self, name: str, working_dir: str) -> dict:
        # -d: detached, no client attaches
        return await self.run("new-session", "-d", "-s", name, "-c", working_dir)

    async def kill_session(self, name: str) -> dict:
        return await self.run("kill-session", "-t", exact_target(name))
