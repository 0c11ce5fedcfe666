"""Tests for jatdash.hook_engine: preview execution and in-flight tracking."""

import asyncio
import json
import sys

import pytest

from jatdash.config import HookConfig
from jatdash.hook_engine import HookEngine
from jatdash.hook_events import PreToolUseEvent, SessionStartEvent, sample_event
from jatdash.hook_matcher import HookCommand, HookEntry
from jatdash.process_runner import ExecutionResult, ProcessRunner


class RecordingRunner(ProcessRunner):
    """Captures run() arguments; optionally blocks until released."""

    def __init__(self, exit_code=0, block=False, raises=None):
        super().__init__()
        self.calls = []
        self.exit_code = exit_code
        self.release = asyncio.Event() if block else None
        self.started = asyncio.Event()
        self.raises = raises

    async def run(self, command, stdin=None, timeout_ms=None, env=None, cwd=None):
        self.calls.append({
            "command": command,
            "stdin": stdin,
            "timeout_ms": timeout_ms,
            "env": env,
            "cwd": cwd,
        })
        self.started.set()
        if self.release is not None:
            await self.release.wait()
        if self.raises is not None:
            raise self.raises
        return ExecutionResult(command=command, exit_code=self.exit_code, duration_ms=1)


class GatedRunner(ProcessRunner):
    """Each run waits on its own gate, so runs can be finished one at a time."""

    def __init__(self):
        super().__init__()
        self.gates = []
        self.started = asyncio.Event()

    async def run(self, command, stdin=None, timeout_ms=None, env=None, cwd=None):
        gate = asyncio.Event()
        self.gates.append(gate)
        if len(self.gates) == 2:
            self.started.set()
        await gate.wait()
        return ExecutionResult(command=command, exit_code=0, duration_ms=1)


@pytest.fixture
def recorder():
    return RecordingRunner()


@pytest.fixture
def fake_engine(recorder, project_root):
    return HookEngine(runner=recorder, config=HookConfig(project_root=str(project_root)))


class TestExecutePayload:

    @pytest.mark.asyncio
    async def test_preview_env_and_stdin(self, fake_engine, recorder, project_root):
        event = PreToolUseEvent(tool_name="Bash", tool_input={"command": "ls"})
        await fake_engine.execute("echo hi", event)

        call = recorder.calls[0]
        assert call["env"]["JAT_HOOK_PREVIEW"] == "true"
        assert call["env"]["CLAUDE_SESSION_ID"].startswith("preview-session-")
        assert call["cwd"] == str(project_root)

        payload = json.loads(call["stdin"])
        assert payload["hook_event_name"] == "PreToolUse"
        assert payload["tool_name"] == "Bash"
        assert payload["session_id"] == call["env"]["CLAUDE_SESSION_ID"]

    @pytest.mark.asyncio
    async def test_fresh_session_id_per_run(self, fake_engine, recorder):
        event = SessionStartEvent()
        await fake_engine.execute("echo a", event)
        await fake_engine.execute("echo a", event)
        ids = {c["env"]["CLAUDE_SESSION_ID"] for c in recorder.calls}
        assert len(ids) == 2

    @pytest.mark.asyncio
    async def test_event_session_id_reused(self, fake_engine, recorder):
        await fake_engine.execute("echo a", SessionStartEvent(session_id="abc"))
        call = recorder.calls[0]
        assert call["env"]["CLAUDE_SESSION_ID"] == "abc"
        assert json.loads(call["stdin"])["session_id"] == "abc"

    @pytest.mark.asyncio
    async def test_timeout_default_and_clamp(self, fake_engine, recorder):
        event = SessionStartEvent()
        await fake_engine.execute("echo a", event)
        await fake_engine.execute("echo a", event, 999999)
        await fake_engine.execute("echo a", event, 500)
        assert [c["timeout_ms"] for c in recorder.calls] == [10000, 30000, 500]

    @pytest.mark.asyncio
    async def test_relative_script_resolved(self, fake_engine, recorder, project_root, write_script):
        script = write_script(project_root / ".claude" / "hooks" / "check.sh", "#!/bin/sh\n")
        result = await fake_engine.execute("./.claude/hooks/check.sh --fast", SessionStartEvent())

        assert recorder.calls[0]["command"] == f"{script.resolve()} --fast"
        assert result.command == "./.claude/hooks/check.sh --fast"
        assert result.resolved_path == str(script.resolve())

    @pytest.mark.asyncio
    async def test_project_dir_variable_script(self, fake_engine, recorder, project_root, write_script):
        script = write_script(project_root / ".claude" / "hooks" / "x.sh", "#!/bin/sh\n")
        command = '"$CLAUDE_PROJECT_DIR"/.claude/hooks/x.sh'
        result = await fake_engine.execute(command, SessionStartEvent())

        assert result.error is None
        assert recorder.calls[0]["command"] == command
        assert recorder.calls[0]["env"]["CLAUDE_PROJECT_DIR"] == str(project_root)
        assert result.resolved_path == str(script)

    @pytest.mark.asyncio
    async def test_missing_script_not_spawned(self, fake_engine, recorder):
        result = await fake_engine.execute("./.claude/hooks/missing.sh", SessionStartEvent())

        assert recorder.calls == []
        assert result.error == "Script not found"
        assert "Hook script not found" in result.stderr
        assert result.exit_code is None
        assert result.timed_out is False

    @pytest.mark.asyncio
    async def test_nonzero_exit_is_normal_result(self, project_root):
        engine = HookEngine(
            runner=RecordingRunner(exit_code=2),
            config=HookConfig(project_root=str(project_root)),
        )
        result = await engine.execute("echo x", SessionStartEvent())
        assert result.exit_code == 2
        assert result.error is None


class TestInFlight:

    @pytest.mark.asyncio
    async def test_key_tracked_while_running(self, project_root):
        runner = RecordingRunner(block=True)
        engine = HookEngine(runner=runner, config=HookConfig(project_root=str(project_root)))

        task = asyncio.create_task(
            engine.execute("echo a", SessionStartEvent(), caller="tab-1", key="PreToolUse:0:0")
        )
        await runner.started.wait()
        assert engine.is_running("PreToolUse:0:0", caller="tab-1")
        assert not engine.is_running("PreToolUse:0:0", caller="tab-2")
        assert engine.running("tab-1") == frozenset({"PreToolUse:0:0"})

        runner.release.set()
        await task
        assert not engine.is_running("PreToolUse:0:0", caller="tab-1")
        assert engine.in_flight == {}

    @pytest.mark.asyncio
    async def test_duplicate_key_allowed(self, project_root):
        runner = RecordingRunner(block=True)
        engine = HookEngine(runner=runner, config=HookConfig(project_root=str(project_root)))
        event = SessionStartEvent()

        first = asyncio.create_task(engine.execute("echo a", event))
        second = asyncio.create_task(engine.execute("echo a", event))
        await runner.started.wait()
        runner.release.set()
        results = await asyncio.gather(first, second)

        assert len(runner.calls) == 2
        assert all(r.exit_code == 0 for r in results)
        assert engine.running() == frozenset()

    @pytest.mark.asyncio
    async def test_duplicate_key_stays_until_last_run_finishes(self, project_root):
        runner = GatedRunner()
        engine = HookEngine(runner=runner, config=HookConfig(project_root=str(project_root)))
        event = SessionStartEvent()

        first = asyncio.create_task(engine.execute("echo a", event, key="k"))
        second = asyncio.create_task(engine.execute("echo a", event, key="k"))
        await runner.started.wait()

        runner.gates[0].set()
        await first
        assert engine.is_running("k")
        assert engine.running() == frozenset({"k"})

        runner.gates[1].set()
        await second
        assert not engine.is_running("k")
        assert engine.in_flight == {}

    @pytest.mark.asyncio
    async def test_key_cleared_on_crash(self, project_root):
        runner = RecordingRunner(raises=RuntimeError("boom"))
        engine = HookEngine(runner=runner, config=HookConfig(project_root=str(project_root)))
        with pytest.raises(RuntimeError):
            await engine.execute("echo a", SessionStartEvent(), key="k")
        assert not engine.is_running("k")

    @pytest.mark.asyncio
    async def test_key_cleared_on_missing_script(self, fake_engine):
        await fake_engine.execute("./nope.sh", SessionStartEvent(), key="k")
        assert fake_engine.in_flight == {}

    @pytest.mark.asyncio
    async def test_key_defaults_to_command(self, project_root):
        runner = RecordingRunner(block=True)
        engine = HookEngine(runner=runner, config=HookConfig(project_root=str(project_root)))
        task = asyncio.create_task(engine.execute("echo a", SessionStartEvent()))
        await runner.started.wait()
        assert engine.is_running("echo a")
        runner.release.set()
        await task


class TestDispatch:

    @pytest.mark.asyncio
    async def test_runs_matched_hooks_in_order(self, fake_engine, recorder):
        entries = [
            HookEntry("^Bash$", [HookCommand("echo one"), HookCommand("echo two")]),
            HookEntry("Edit", [HookCommand("echo edit")]),
            HookEntry("[", [HookCommand("echo bad")]),
            HookEntry(".*", [HookCommand("echo all", timeout=5)]),
        ]
        results = await fake_engine.dispatch(entries, sample_event("PreToolUse", "Bash"))

        assert [c["command"] for c in recorder.calls] == ["echo one", "echo two", "echo all"]
        assert recorder.calls[2]["timeout_ms"] == 5000
        assert [len(r.executions) for r in results] == [2, 0, 0, 1]
        assert results[2].match.error
        assert results[0].to_dict()["executions"][0]["exitCode"] == 0


@pytest.mark.skipif(sys.platform == "win32", reason="requires a POSIX shell")
class TestRealScripts:
    """End to end through the real ProcessRunner."""

    @pytest.mark.asyncio
    async def test_script_sees_preview_flag_and_stdin(self, engine, project_root, write_script):
        write_script(
            project_root / ".claude" / "hooks" / "echo.sh",
            '#!/bin/sh\necho "preview=$JAT_HOOK_PREVIEW"\ncat\n',
        )
        result = await engine.execute(
            "./.claude/hooks/echo.sh",
            PreToolUseEvent(tool_name="Bash", tool_input={"command": "ls"}),
            5000,
        )
        assert result.exit_code == 0
        first_line, payload = result.stdout.split("\n", 1)
        assert first_line == "preview=true"
        assert json.loads(payload)["tool_input"] == {"command": "ls"}

    @pytest.mark.asyncio
    async def test_project_dir_variable_expanded_by_shell(self, engine, project_root, write_script):
        write_script(project_root / ".claude" / "hooks" / "x.sh", "#!/bin/sh\necho ran\n")
        result = await engine.execute(
            '"$CLAUDE_PROJECT_DIR"/.claude/hooks/x.sh', SessionStartEvent(), 5000
        )
        assert result.exit_code == 0
        assert result.stdout == "ran"

    @pytest.mark.asyncio
    async def test_script_exit_code(self, engine, project_root, write_script):
        write_script(project_root / "hooks" / "block.sh", "#!/bin/sh\necho blocked >&2\nexit 2\n")
        result = await engine.execute("./hooks/block.sh", SessionStartEvent(), 5000)
        assert result.exit_code == 2
        assert result.stderr == "blocked"

    @pytest.mark.asyncio
    async def test_script_timeout(self, engine, project_root, write_script):
        write_script(project_root / "slow.sh", "#!/bin/sh\nsleep 10\n")
        result = await engine.execute("./slow.sh", SessionStartEvent(), 200, key="slow")
        assert result.timed_out is True
        assert result.exit_code is None
        assert not engine.is_running("slow")
