"""Terminal session registry backed by tmux.

Dashboard terminals are tmux sessions named "<prefix><id>" (jat-term-ab12).
Nothing is cached: tmux's own session list is the source of truth, and the
prefix is the ownership boundary. Names outside it are never touched.

State per session is binary: present in tmux or absent. "Already gone"
(no server, no such session) is treated as the desired end state.
"""

from __future__ import annotations

import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterator

from jatdash.config import TerminalConfig, expand_home, load_project_paths
from jatdash.multiplexer import DUPLICATE_MARKER, TmuxClient, is_not_found

logger = logging.getLogger(__name__)

ID_ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"
_VALID_HINT = re.compile(r"^[A-Za-z0-9_-]+$")


@dataclass
class Session:
    """A dashboard-owned tmux session."""

    full_name: str
    display_name: str
    created_at: datetime | None = None
    attached: bool = False

    def to_dict(self) -> dict:
        return {
            "name": self.full_name,
            "displayName": self.display_name,
            "created": self.created_at.isoformat() if self.created_at else None,
            "attached": self.attached,
        }


@dataclass
class CreateResult:
    """Outcome of SessionRegistry.create. working_dir is set only for new sessions."""

    session: Session
    created: bool
    working_dir: Path | None = None


def generate_terminal_id(length: int = 4) -> str:
    """Short random id; collisions are unlikely, not impossible."""
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(length))


def _parse_created(raw: str) -> datetime | None:
    try:
        return datetime.fromtimestamp(int(raw), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def _parse_attached(raw: str) -> bool:
    # tmux reports the number of attached clients
    try:
        return int(raw) > 0
    except ValueError:
        return False


class SessionRegistry:
    """Create, list and kill dashboard terminal sessions."""

    def __init__(
        self,
        tmux: TmuxClient | None = None,
        config: TerminalConfig | None = None,
        home: Path | None = None,
    ):
        self.config = config or TerminalConfig()
        self.tmux = tmux or TmuxClient(self.config.tmux_bin)
        self._home = home

    @property
    def prefix(self) -> str:
        return self.config.prefix

    @property
    def home(self) -> Path:
        return self._home or Path.home()

    def owns(self, full_name: str) -> bool:
        """True for names inside the dashboard namespace (prefix plus an id)."""
        return full_name.startswith(self.prefix) and len(full_name) > len(self.prefix)

    def display_name(self, full_name: str) -> str:
        return full_name[len(self.prefix):]

    def _parse_line(self, line: str) -> Session | None:
        parts = line.rsplit(":", 2)
        if len(parts) != 3:
            logger.debug(f"Skipping unparseable tmux line: {line!r}")
            return None
        name, created, attached = parts
        if not self.owns(name):
            return None
        return Session(
            full_name=name,
            display_name=self.display_name(name),
            created_at=_parse_created(created),
            attached=_parse_attached(attached),
        )

    async def list(self) -> list[Session]:
        """All dashboard sessions, in tmux order. No server means no sessions."""
        try:
            result = await self.tmux.list_sessions()
        except FileNotFoundError as e:
            logger.warning(f"Listing terminal sessions without tmux: {e}")
            return []

        if result["exit_code"] != 0:
            if is_not_found(result["stderr"]):
                return []
            raise RuntimeError(result["stderr"] or f"tmux exited with {result['exit_code']}")

        sessions = []
        for line in result["stdout"].splitlines():
            session = self._parse_line(line.strip())
            if session:
                sessions.append(session)
        return sessions

    async def get(self, full_name: str) -> Session | None:
        """Look up one owned session by exact name."""
        for session in await self.list():
            if session.full_name == full_name:
                return session
        return None

    async def exists(self, full_name: str) -> bool:
        result = await self.tmux.has_session(full_name)
        if result["exit_code"] == 0:
            return True
        if is_not_found(result["stderr"]) or not result["stderr"]:
            return False
        raise RuntimeError(result["stderr"])

    def _working_dir_candidates(self, requested: str | None) -> Iterator[Callable[[], Path | None]]:
        """Yield lazy candidates in priority order; each probes the disk only when called."""

        def requested_path() -> Path | None:
            if not requested:
                return None
            path = expand_home(requested, self._home)
            return path if path.is_dir() else None

        def default_project() -> Path | None:
            if not self.config.default_project_path:
                return None
            path = expand_home(self.config.default_project_path, self._home)
            return path if path.is_dir() else None

        def first_configured_project() -> Path | None:
            projects_file = expand_home(self.config.projects_file, self._home)
            paths = load_project_paths(projects_file, self._home)
            # Only the first listed project is a candidate
            if paths and paths[0].is_dir():
                return paths[0]
            return None

        yield requested_path
        yield default_project
        yield first_configured_project

    def resolve_working_dir(self, requested: str | None = None) -> Path:
        """Requested path, else default project, else first configured project, else home."""
        for candidate in self._working_dir_candidates(requested):
            path = candidate()
            if path is not None:
                return path
        if requested:
            logger.info(f"Requested working dir {requested} not found, using fallback")
        return self.home

    async def create(
        self,
        name_hint: str | None = None,
        working_dir: str | None = None,
    ) -> CreateResult:
        """Create a detached session, or return the existing one with that name."""
        if working_dir is not None and not isinstance(working_dir, str):
            raise ValueError("Working directory must be a string")
        if name_hint is not None and not isinstance(name_hint, str):
            raise ValueError("Session name must be a string")
        if name_hint and not _VALID_HINT.match(name_hint):
            raise ValueError(
                "Session name may only contain letters, digits, '-' and '_'"
            )
        terminal_id = name_hint or generate_terminal_id(self.config.id_length)
        full_name = f"{self.prefix}{terminal_id}"

        if await self.exists(full_name):
            return CreateResult(await self._existing(full_name), created=False)

        cwd = self.resolve_working_dir(working_dir)
        result = await self.tmux.new_session(full_name, str(cwd))
        if result["exit_code"] != 0:
            # Lost a create race on the same name: tmux is the arbiter
            if DUPLICATE_MARKER in result["stderr"].lower():
                logger.info(f"Session {full_name} created concurrently, reusing it")
                return CreateResult(await self._existing(full_name), created=False)
            raise RuntimeError(result["stderr"] or f"tmux exited with {result['exit_code']}")

        logger.info(f"Created terminal session {full_name} in {cwd}")
        return CreateResult(await self._existing(full_name), created=True, working_dir=cwd)

    async def _existing(self, full_name: str) -> Session:
        session = await self.get(full_name)
        if session is None:
            # Vanished between calls; still report what was asked for
            session = Session(full_name=full_name, display_name=self.display_name(full_name))
        return session

    async def kill(self, full_name: str) -> bool:
        """Kill an owned session. Returns False when it was already gone."""
        if not full_name:
            raise ValueError("Session name is required")
        if not self.owns(full_name):
            raise PermissionError("Can only kill terminal sessions created by the dashboard")

        try:
            result = await self.tmux.kill_session(full_name)
        except FileNotFoundError:
            return False

        if result["exit_code"] == 0:
            logger.info(f"Killed terminal session {full_name}")
            return True
        if is_not_found(result["stderr"]):
            return False
        raise RuntimeError(result["stderr"] or f"tmux exited with {result['exit_code']}")
