"""Dashboard configuration management."""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

JAT_CONFIG_HOME = Path.home() / ".config" / "jat"
DASHBOARD_CONFIG = JAT_CONFIG_HOME / "dashboard.json"

TERMINAL_PREFIX = "jat-term-"
PREVIEW_ENV_VAR = "JAT_HOOK_PREVIEW"


@dataclass
class TerminalConfig:
    """tmux-backed terminal session defaults."""

    prefix: str = TERMINAL_PREFIX
    id_length: int = 4
    tmux_bin: str = "tmux"
    default_project_path: str = "~/code/jat"
    projects_file: str = "~/.config/jat/projects.json"


@dataclass
class HookConfig:
    """Hook preview execution settings.

    project_root is where relative hook scripts (./..., .claude/...) are
    resolved and where they run. Empty means the current directory.
    """

    project_root: str = ""
    default_timeout_ms: int = 10000
    max_timeout_ms: int = 30000
    preview_env_var: str = PREVIEW_ENV_VAR


@dataclass
class ServerConfig:
    """HTTP API bind settings."""

    host: str = "127.0.0.1"
    port: int = 3334


@dataclass
class DashboardConfig:
    """Top-level dashboard configuration."""

    terminal: TerminalConfig = field(default_factory=TerminalConfig)
    hooks: HookConfig = field(default_factory=HookConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    @classmethod
    def load(cls, path: Path | None = None) -> "DashboardConfig":
        """Load config from disk or return defaults.

        Env vars override file values.
        """
        path = path or DASHBOARD_CONFIG
        config = cls()
        if path.exists():
            data = json.loads(path.read_text())
            if "terminal" in data:
                for k, v in data["terminal"].items():
                    setattr(config.terminal, k, v)
            if "hooks" in data:
                for k, v in data["hooks"].items():
                    setattr(config.hooks, k, v)
            if "server" in data:
                for k, v in data["server"].items():
                    setattr(config.server, k, v)

        tmux_bin = os.environ.get("JAT_TMUX_BIN")
        project_root = os.environ.get("JAT_PROJECT_ROOT")
        host = os.environ.get("JAT_DASHBOARD_HOST")
        port = os.environ.get("JAT_DASHBOARD_PORT")

        if tmux_bin:
            config.terminal.tmux_bin = tmux_bin
        if project_root:
            config.hooks.project_root = project_root
        if host:
            config.server.host = host
        if port:
            config.server.port = int(port)

        return config

    def save(self, path: Path | None = None) -> None:
        """Persist config to disk."""
        path = path or DASHBOARD_CONFIG
        path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "terminal": {
                "prefix": self.terminal.prefix,
                "id_length": self.terminal.id_length,
                "tmux_bin": self.terminal.tmux_bin,
                "default_project_path": self.terminal.default_project_path,
                "projects_file": self.terminal.projects_file,
            },
            "hooks": {
                "project_root": self.hooks.project_root,
                "default_timeout_ms": self.hooks.default_timeout_ms,
                "max_timeout_ms": self.hooks.max_timeout_ms,
                "preview_env_var": self.hooks.preview_env_var,
            },
            "server": {
                "host": self.server.host,
                "port": self.server.port,
            },
        }
        path.write_text(json.dumps(data, indent=2))


def expand_home(path: str, home: Path | None = None) -> Path:
    """Expand a leading ~ against home (defaults to the real home directory)."""
    if home is None:
        return Path(path).expanduser()
    if path == "~":
        return home
    if path.startswith("~/"):
        return home / path[2:]
    return Path(path)


def load_project_paths(projects_file: Path, home: Path | None = None) -> list[Path]:
    """Read project paths from a jat projects.json, in file order.

    Format: {"projects": {"<name>": {"path": "~/code/<name>", ...}, ...}}
    A missing or unreadable file yields no paths.
    """
    if not projects_file.exists():
        return []
    try:
        data = json.loads(projects_file.read_text())
    except (OSError, json.JSONDecodeError):
        return []

    projects = data.get("projects") if isinstance(data, dict) else None
    if not isinstance(projects, dict):
        return []

    paths = []
    for project in projects.values():
        if isinstance(project, dict) and isinstance(project.get("path"), str):
            paths.append(expand_home(project["path"], home))
    return paths
