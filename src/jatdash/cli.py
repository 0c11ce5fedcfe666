"""jatdash CLI: terminal sessions and hook previews from the shell.

Usage:
    jatdash serve                              # Run the dashboard API
    jatdash term list                          # List dashboard terminals
    jatdash term new [-n NAME] [-p PATH]       # Create (or reuse) a terminal
    jatdash term kill jat-term-ab12            # Kill a terminal
    jatdash hooks match settings.json PreToolUse -t Bash
    jatdash hooks test settings.json PostToolUse -t Edit
    jatdash hooks run ./.claude/hooks/check.sh -e PreToolUse -t Bash
    jatdash hooks validate ./.claude/hooks/check.sh
    jatdash hooks check settings.json          # Validate hooks structure
"""

import asyncio
import json
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from jatdash.config import DashboardConfig
from jatdash.hook_engine import HookEngine
from jatdash.hook_events import EVENT_TYPES, sample_event
from jatdash.hook_matcher import match
from jatdash.hook_validation import (
    parse_hook_entries,
    validate_hook_command,
    validate_hooks_config,
)
from jatdash.process_runner import ExecutionResult
from jatdash.sessions import SessionRegistry

console = Console()


def _run_async(coro):
    """Run async function from sync context."""
    return asyncio.run(coro)


def _load_hooks(settings_file: str) -> dict:
    """The "hooks" object of a settings.json (or a bare hooks object)."""
    data = json.loads(Path(settings_file).read_text())
    return data.get("hooks", data) if isinstance(data, dict) else data


def _print_result(result: ExecutionResult) -> None:
    if result.error:
        status = f"[red]error: {escape(result.error)}[/]"
    elif result.timed_out:
        status = "[yellow]timed out[/]"
    elif result.exit_code == 0:
        status = "[green]exit 0[/]"
    else:
        status = f"[red]exit {result.exit_code}[/]"

    table = Table(show_header=False, box=None)
    table.add_row("Command", escape(result.command))
    if result.resolved_path:
        table.add_row("Resolved", escape(result.resolved_path))
    table.add_row("Status", status)
    table.add_row("Duration", f"{result.duration_ms}ms")
    console.print(table)
    if result.stdout:
        console.print(Panel(Text(result.stdout), title="stdout", border_style="green"))
    if result.stderr:
        console.print(Panel(Text(result.stderr), title="stderr", border_style="red"))


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
def cli(verbose):
    """jatdash: terminal sessions and hook previews for the JAT dashboard."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )


@cli.command()
@click.option("--host", default=None, help="Bind address")
@click.option("--port", "-p", type=int, default=None, help="Port")
def serve(host, port):
    """Run the dashboard REST API."""
    from jatdash.server import run_server

    logging.getLogger().setLevel(logging.INFO)
    config = DashboardConfig.load()
    if host:
        config.server.host = host
    if port:
        config.server.port = port
    console.print(f"[bold blue]jatdash[/] API on http://{config.server.host}:{config.server.port}")
    run_server(config)


# --- Terminal sessions ---


@cli.group()
def term():
    """Manage dashboard terminal sessions (tmux)."""
    pass


@term.command("list")
def term_list():
    """List dashboard terminal sessions."""
    registry = SessionRegistry(config=DashboardConfig.load().terminal)
    sessions = _run_async(registry.list())
    if not sessions:
        console.print("[dim]No terminal sessions[/]")
        return

    table = Table(title="Terminal Sessions")
    table.add_column("Name", style="cyan")
    table.add_column("Session")
    table.add_column("Created")
    table.add_column("Attached")
    for s in sessions:
        table.add_row(
            s.display_name,
            s.full_name,
            s.created_at.strftime("%Y-%m-%d %H:%M") if s.created_at else "-",
            "[green]yes[/]" if s.attached else "no",
        )
    console.print(table)


@term.command("new")
@click.option("--name", "-n", default=None, help="Short name (random if omitted)")
@click.option("--path", "-p", default=None, help="Working directory")
def term_new(name, path):
    """Create a terminal session, or report the existing one."""
    registry = SessionRegistry(config=DashboardConfig.load().terminal)
    try:
        result = _run_async(registry.create(name, path))
    except ValueError as e:
        console.print(f"[red]{e}[/]")
        sys.exit(2)

    if result.created:
        console.print(
            f"[green]Created[/] {result.session.full_name} in {result.working_dir}"
        )
    else:
        console.print(f"[yellow]Already exists:[/] {result.session.full_name}")


@term.command("kill")
@click.argument("name")
def term_kill(name):
    """Kill a terminal session by full name (jat-term-...)."""
    registry = SessionRegistry(config=DashboardConfig.load().terminal)
    try:
        killed = _run_async(registry.kill(name))
    except (PermissionError, ValueError) as e:
        console.print(f"[red]{e}[/]")
        sys.exit(2)
    if killed:
        console.print(f"[green]Killed[/] {name}")
    else:
        console.print(f"[dim]Session already terminated: {name}[/]")


# --- Hooks ---


@cli.group()
def hooks():
    """Preview and validate Claude Code hooks."""
    pass


_event_type_option = click.option(
    "--event", "-e", "event_type",
    type=click.Choice(EVENT_TYPES),
    default="PreToolUse",
    help="Hook event type",
)


@hooks.command("match")
@click.argument("settings_file", type=click.Path(exists=True))
@click.argument("event_type", type=click.Choice(EVENT_TYPES))
@click.option("--tool", "-t", default=None, help="Tool name (tool events only)")
def hooks_match(settings_file, event_type, tool):
    """Show which hook entries apply to a sample event."""
    config = _load_hooks(settings_file)
    entries = parse_hook_entries(config.get(event_type, []))
    event = sample_event(event_type, tool)
    results = match(entries, event)

    table = Table(title=f"{event_type} {event.tool_name}".strip())
    table.add_column("#")
    table.add_column("Matcher", style="cyan")
    table.add_column("Result")
    table.add_column("Commands")
    for r in results:
        if r.error:
            outcome = f"[red]{escape(r.error)}[/]"
        elif r.matched:
            outcome = f"[green]match[/] ({escape(repr(r.matched_text))})"
        else:
            outcome = "[dim]no match[/]"
        table.add_row(
            str(r.index),
            escape(r.entry.matcher),
            outcome,
            escape("\n".join(h.command for h in r.entry.hooks)),
        )
    console.print(table)


@hooks.command("test")
@click.argument("settings_file", type=click.Path(exists=True))
@click.argument("event_type", type=click.Choice(EVENT_TYPES))
@click.option("--tool", "-t", default=None, help="Tool name (tool events only)")
@click.option("--timeout", default=None, type=int, help="Timeout per hook in ms")
def hooks_test(settings_file, event_type, tool, timeout):
    """Run every hook that matches a sample event, in preview mode."""
    config = DashboardConfig.load()
    entries = parse_hook_entries(_load_hooks(settings_file).get(event_type, []))
    engine = HookEngine(config=config.hooks)
    event = sample_event(event_type, tool)
    results = _run_async(engine.dispatch(entries, event, timeout))

    ran = 0
    for r in results:
        for execution in r.executions:
            console.print(
                f"\n[bold]{event_type}\\[{r.match.index}][/] "
                f"matcher [cyan]{escape(r.match.entry.matcher)}[/]"
            )
            _print_result(execution)
            ran += 1
    if not ran:
        console.print("[dim]No hooks matched[/]")


@hooks.command("run")
@click.argument("command")
@_event_type_option
@click.option("--tool", "-t", default=None, help="Tool name (tool events only)")
@click.option("--timeout", default=None, type=int, help="Timeout in ms")
def hooks_run(command, event_type, tool, timeout):
    """Run one hook command with a sample event on stdin."""
    engine = HookEngine(config=DashboardConfig.load().hooks)
    result = _run_async(engine.execute(command, sample_event(event_type, tool), timeout))
    _print_result(result)
    if result.error or result.timed_out or result.exit_code != 0:
        sys.exit(1)


@hooks.command("validate")
@click.argument("command")
def hooks_validate(command):
    """Inspect the script a hook command points at."""
    config = DashboardConfig.load()
    engine = HookEngine(config=config.hooks)
    check = validate_hook_command(command, engine.project_root)

    if check.error:
        console.print(f"[red]{escape(check.error)}[/]")
        for s in check.suggestions:
            console.print(f"  [dim]try:[/] {escape(s)}")
        sys.exit(1)

    table = Table(show_header=False, box=None)
    table.add_row("Path", escape(check.resolved_path or "-"))
    table.add_row("Executable", "[green]yes[/]" if check.is_executable else "[red]no[/]")
    table.add_row("Shebang", escape(check.shebang) if check.shebang else "[red]missing[/]")
    table.add_row("Type", check.script_type or "unknown")
    console.print(table)
    for w in check.warnings:
        console.print(f"[yellow]warning:[/] {escape(w)}")
    for fix in check.fixes:
        console.print(f"[dim]{fix['description']}:[/] {escape(fix['command'])}")


@hooks.command("check")
@click.argument("settings_file", type=click.Path(exists=True))
def hooks_check(settings_file):
    """Validate the structure of a hooks configuration."""
    issues = validate_hooks_config(_load_hooks(settings_file))
    if not issues:
        console.print("[green]Hooks configuration is valid[/]")
        return
    for issue in issues:
        color = "red" if issue.severity == "error" else "yellow"
        console.print(f"[{color}]{issue.severity}:[/] {escape(issue.message)}")
    if any(i.severity == "error" for i in issues):
        sys.exit(1)


def main():
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
