"""Process runner: spawn a command, capture output, enforce a wall-clock timeout.

Used by the hook execution engine.
A command is either a shell command line (run through /bin/sh) or an argv
sequence executed directly.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
import time
from dataclasses import dataclass
from typing import Mapping, Sequence

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 10000
# How long to wait for pipes to drain after the process group was killed
KILL_GRACE_SECONDS = 2.0
_READ_CHUNK = 65536


@dataclass
class ExecutionResult:
    """Outcome of a single subprocess run.

    Exactly one terminal state is set: exit_code, timed_out, or error.
    """

    command: str
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None
    timed_out: bool = False
    duration_ms: int = 0
    error: str | None = None
    resolved_path: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0

    def to_dict(self) -> dict:
        data = {
            "stdout": self.stdout,
            "stderr": self.stderr,
            "exitCode": self.exit_code,
            "timedOut": self.timed_out,
            "durationMs": self.duration_ms,
            "command": self.command,
        }
        if self.error is not None:
            data["error"] = self.error
        if self.resolved_path is not None:
            data["resolvedPath"] = self.resolved_path
        return data


def _describe(command: str | Sequence[str]) -> str:
    if isinstance(command, str):
        return command
    return " ".join(command)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


async def _drain(stream: asyncio.StreamReader | None, chunks: list[bytes]) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            return
        chunks.append(chunk)


async def _feed(proc: asyncio.subprocess.Process, data: bytes) -> None:
    if proc.stdin is None:
        return
    # The child may exit without reading its input
    with contextlib.suppress(BrokenPipeError, ConnectionResetError):
        proc.stdin.write(data)
        await proc.stdin.drain()
    with contextlib.suppress(BrokenPipeError, ConnectionResetError):
        proc.stdin.close()


def _decode(chunks: list[bytes]) -> str:
    return b"".join(chunks).decode("utf-8", errors="replace").strip()


def _kill(proc: asyncio.subprocess.Process) -> None:
    """SIGKILL the child's process group, or the child alone where unsupported."""
    if hasattr(os, "killpg"):
        try:
            os.killpg(proc.pid, signal.SIGKILL)
            return
        except (ProcessLookupError, PermissionError):
            pass
    with contextlib.suppress(ProcessLookupError):
        proc.kill()


class ProcessRunner:
    """Runs commands as bounded subprocesses. Holds no per-run state."""

    def __init__(self, default_timeout_ms: int = DEFAULT_TIMEOUT_MS):
        self.default_timeout_ms = default_timeout_ms

    async def run(
        self,
        command: str | Sequence[str],
        stdin: str | None = None,
        timeout_ms: int | None = None,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
    ) -> ExecutionResult:
        """Run command to completion or until timeout_ms elapses."""
        timeout_ms = self.default_timeout_ms if timeout_ms is None else timeout_ms
        label = _describe(command)
        child_env = dict(os.environ)
        if env:
            child_env.update(env)

        # Own session => own process group, so a timeout kills forked children too
        spawn_kwargs = {
            "stdin": asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
            "stdout": asyncio.subprocess.PIPE,
            "stderr": asyncio.subprocess.PIPE,
            "env": child_env,
            "cwd": cwd,
            "start_new_session": hasattr(os, "setsid"),
        }

        started = time.monotonic()
        try:
            if isinstance(command, str):
                proc = await asyncio.create_subprocess_shell(command, **spawn_kwargs)
            else:
                proc = await asyncio.create_subprocess_exec(*command, **spawn_kwargs)
        except OSError as e:
            logger.warning(f"Failed to spawn {label!r}: {e}")
            return ExecutionResult(
                command=label,
                error=e.strerror or str(e),
                duration_ms=_elapsed_ms(started),
            )

        out_chunks: list[bytes] = []
        err_chunks: list[bytes] = []
        readers = [
            asyncio.ensure_future(_drain(proc.stdout, out_chunks)),
            asyncio.ensure_future(_drain(proc.stderr, err_chunks)),
        ]
        if stdin is not None:
            readers.append(asyncio.ensure_future(_feed(proc, stdin.encode("utf-8"))))

        timed_out = False
        try:
            await asyncio.wait_for(proc.wait(), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError:
            timed_out = True
            logger.info(f"Command timed out after {timeout_ms}ms, killing: {label}")
            _kill(proc)
            await proc.wait()
        finally:
            if proc.returncode is None:
                # Cancelled from outside; do not leak the child
                _kill(proc)

        # Pipes can be held open by grandchildren that escaped the group
        _, pending = await asyncio.wait(readers, timeout=KILL_GRACE_SECONDS)
        for task in pending:
            task.cancel()

        return ExecutionResult(
            command=label,
            stdout=_decode(out_chunks),
            stderr=_decode(err_chunks),
            exit_code=None if timed_out else proc.returncode,
            timed_out=timed_out,
            duration_ms=_elapsed_ms(started),
        )
