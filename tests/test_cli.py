"""Tests for the jatdash CLI hook commands."""

import json
import sys

import pytest
from click.testing import CliRunner

from jatdash.cli import cli


@pytest.fixture
def runner(project_root, monkeypatch):
    monkeypatch.setenv("JAT_PROJECT_ROOT", str(project_root))
    return CliRunner()


@pytest.fixture
def clean_settings(tmp_path):
    path = tmp_path / "clean.json"
    path.write_text(json.dumps({
        "hooks": {
            "PreToolUse": [
                {"matcher": "^[A-Z]ash$", "hooks": [{"type": "command", "command": "echo bash-hook"}]},
            ],
        },
    }))
    return path


@pytest.fixture
def settings(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({
        "hooks": {
            "PreToolUse": [
                {"matcher": "^Bash$", "hooks": [{"type": "command", "command": "echo bash-hook"}]},
                {"matcher": "[", "hooks": [{"type": "command", "command": "echo never"}]},
            ],
        },
    }))
    return path


class TestHooksCheck:

    def test_valid(self, runner, clean_settings):
        result = runner.invoke(cli, ["hooks", "check", str(clean_settings)])
        assert result.exit_code == 0
        assert "valid" in result.output

    def test_invalid(self, runner, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"PreToolUse": [{"hooks": []}]}))
        result = runner.invoke(cli, ["hooks", "check", str(path)])
        assert result.exit_code == 1
        assert "matcher" in result.output


class TestHooksMatch:

    def test_reports_match_and_bad_regex(self, runner, settings):
        result = runner.invoke(cli, ["hooks", "match", str(settings), "PreToolUse", "-t", "Bash"])
        assert result.exit_code == 0
        assert "match" in result.output
        assert "Invalid" in result.output

    def test_matcher_brackets_shown_literally(self, runner, clean_settings):
        result = runner.invoke(
            cli, ["hooks", "match", str(clean_settings), "PreToolUse", "-t", "Bash"]
        )
        assert result.exit_code == 0
        assert "[A-Z]ash" in result.output


@pytest.mark.skipif(sys.platform == "win32", reason="requires a POSIX shell")
class TestHooksRun:

    def test_success(self, runner):
        result = runner.invoke(cli, ["hooks", "run", "echo hello-hook", "-t", "Bash"])
        assert result.exit_code == 0
        assert "hello-hook" in result.output

    def test_failure_exit_code(self, runner):
        result = runner.invoke(cli, ["hooks", "run", "exit 3"])
        assert result.exit_code == 1

    def test_test_runs_matching_hooks(self, runner, settings):
        result = runner.invoke(cli, ["hooks", "test", str(settings), "PreToolUse", "-t", "Bash"])
        assert result.exit_code == 0
        assert "bash-hook" in result.output
        assert "PreToolUse[0]" in result.output
        assert "never" not in result.output


class TestHooksValidate:

    def test_missing_script(self, runner):
        result = runner.invoke(cli, ["hooks", "validate", "./.claude/hooks/none.sh"])
        assert result.exit_code == 1
        assert "File not found" in result.output


@pytest.mark.skipif(sys.platform == "win32", reason="requires a POSIX shell")
class TestHooksOutput:

    def test_closing_tag_in_stdout_printed_verbatim(self, runner):
        result = runner.invoke(cli, ["hooks", "run", "echo '[/x] done'"])
        assert result.exit_code == 0
        assert "[/x] done" in result.output
