"""Shared test fixtures for the jatdash test suite."""

import stat

import pytest

from jatdash.config import HookConfig, TerminalConfig
from jatdash.hook_engine import HookEngine
from jatdash.multiplexer import TmuxClient
from jatdash.sessions import SessionRegistry


def _ok(stdout: str = "") -> dict:
    return {"exit_code": 0, "stdout": stdout, "stderr": ""}


def _err(stderr: str) -> dict:
    return {"exit_code": 1, "stdout": "", "stderr": stderr}


class FakeTmux(TmuxClient):
    """In-memory stand-in for the tmux CLI. Records every command it receives."""

    def __init__(self):
        super().__init__("tmux")
        self.sessions: dict[str, dict] = {}
        self.calls: list[tuple] = []
        self.fail_with: str | None = None
        # Simulates a concurrent creator: has-session misses these names
        self.hidden: set[str] = set()

    def add(self, name: str, created: int = 1700000000, attached: int = 0) -> None:
        self.sessions[name] = {"created": created, "attached": attached, "cwd": "/"}

    async def run(self, *args: str) -> dict:
        self.calls.append(args)
        if self.fail_with:
            return _err(self.fail_with)

        cmd = args[0]
        # tmux exits when its last session goes away
        if not self.sessions and cmd != "new-session":
            return _err("no server running on /tmp/tmux-1000/default")

        if cmd == "list-sessions":
            lines = [
                f"{name}:{s['created']}:{s['attached']}" for name, s in self.sessions.items()
            ]
            return _ok("\n".join(lines))

        if cmd == "has-session":
            name = args[args.index("-t") + 1].lstrip("=")
            if name in self.sessions and name not in self.hidden:
                return _ok()
            return _err(f"can't find session: {name}")

        if cmd == "new-session":
            name = args[args.index("-s") + 1]
            if name in self.sessions:
                return _err(f"duplicate session: {name}")
            self.sessions[name] = {
                "created": 1700000000,
                "attached": 0,
                "cwd": args[args.index("-c") + 1],
            }
            return _ok()

        if cmd == "kill-session":
            name = args[args.index("-t") + 1].lstrip("=")
            if self.sessions.pop(name, None) is None:
                return _err(f"can't find session: {name}")
            return _ok()

        return _err(f"unknown command: {cmd}")

    def commands(self) -> list[str]:
        return [c[0] for c in self.calls]


@pytest.fixture
def home(tmp_path):
    """An empty home directory: no ~/code/jat and no projects.json."""
    h = tmp_path / "home"
    h.mkdir()
    return h


@pytest.fixture
def fake_tmux():
    return FakeTmux()


@pytest.fixture
def registry(fake_tmux, home):
    return SessionRegistry(tmux=fake_tmux, config=TerminalConfig(), home=home)


@pytest.fixture
def project_root(tmp_path):
    """A project directory with a .claude/hooks folder."""
    root = tmp_path / "project"
    (root / ".claude" / "hooks").mkdir(parents=True)
    return root


@pytest.fixture
def engine(project_root):
    return HookEngine(config=HookConfig(project_root=str(project_root)))


@pytest.fixture
def write_script():
    """Write an executable script and return its path."""

    def _write(path, body: str, executable: bool = True):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(body)
        if executable:
            path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    return _write
