"""Tests for docpublish._shared.proc and the process runner behind it."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from docpublish._shared.proc import ToolExecutionError, ToolRunResult, run_tool
from docpublish._shared.process import SanitisedEnvironment
from docpublish._shared.settings import reset_settings_cache


@pytest.mark.usefixtures("shell_allowlist")
class TestRunTool:
    """Tests for run_tool function."""

    def test_successful_execution(self) -> None:
        """run_tool returns ToolRunResult for successful command."""
        result = run_tool(["echo", "test"], timeout=5.0)
        assert isinstance(result, ToolRunResult)
        assert result.returncode == 0
        assert "test" in result.stdout
        assert result.timed_out is False
        assert result.duration_seconds >= 0

    def test_failure_with_check_raises(self) -> None:
        """run_tool raises ToolExecutionError when check=True and command fails."""
        with pytest.raises(ToolExecutionError) as exc_info:
            run_tool(["false"], check=True, timeout=5.0)

        error = exc_info.value
        assert error.returncode == 1
        assert error.problem is not None
        assert error.problem["type"] == "https://docpublish.dev/problems/tool-failure"
        assert error.problem["status"] == 500
        assert error.problem["returncode"] == 1

    def test_failure_without_check_returns_result(self) -> None:
        """run_tool returns ToolRunResult even when command fails if check=False."""
        result = run_tool(["false"], check=False, timeout=5.0)
        assert result.returncode != 0

    def test_timeout_raises_with_problem_details(self) -> None:
        """run_tool raises ToolExecutionError with Problem Details on timeout."""
        with pytest.raises(ToolExecutionError) as exc_info:
            run_tool(["sleep", "10"], timeout=0.1, check=True)

        error = exc_info.value
        assert error.problem is not None
        assert error.problem["type"] == "https://docpublish.dev/problems/tool-timeout"
        assert error.problem["status"] == 504
        detail = error.problem.get("detail")
        assert isinstance(detail, str)
        assert "timed out" in detail.lower()

    def test_missing_executable_raises(self) -> None:
        """run_tool raises ToolExecutionError when executable not found."""
        with pytest.raises(ToolExecutionError) as exc_info:
            run_tool(["nonexistent-command-that-does-not-exist"], check=True)

        error = exc_info.value
        assert error.problem is not None
        assert error.problem["type"] == "https://docpublish.dev/problems/tool-missing"

    def test_disallowed_executable_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Executables outside DOCPUBLISH_EXEC_ALLOWLIST are rejected before spawning."""
        monkeypatch.setenv("DOCPUBLISH_EXEC_ALLOWLIST", "git")
        reset_settings_cache()

        with pytest.raises(ToolExecutionError) as exc_info:
            run_tool(["echo", "test"], check=True)

        problem = exc_info.value.problem
        assert problem is not None
        assert problem["status"] == 403
        assert problem["allowlist"] == ["git"]

    def test_empty_command_raises(self) -> None:
        """run_tool raises ToolExecutionError for empty command."""
        with pytest.raises(ToolExecutionError) as exc_info:
            run_tool([], check=True)

        assert "at least one" in exc_info.value.args[0].lower()

    def test_executable_resolved_to_absolute_path(self) -> None:
        """run_tool resolves relative executable paths to absolute."""
        result = run_tool(["echo", "test"], timeout=5.0)
        assert Path(result.command[0]).is_absolute()

    def test_cwd_respected(self, tmp_path: Path) -> None:
        """run_tool respects cwd parameter."""
        (tmp_path / "marker.txt").write_text("content", encoding="utf-8")
        result = run_tool(["sh", "-c", "ls"], cwd=tmp_path, timeout=5.0)
        assert "marker.txt" in result.stdout


class TestSanitisedEnvironment:
    """Tests for the environment handed to subprocesses."""

    def test_drops_unrelated_variables(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Only baseline and allowed-prefix variables reach the child."""
        monkeypatch.setenv("DOCPUBLISH_TEST_SECRET", "hidden")
        monkeypatch.setenv("GIT_AUTHOR_NAME", "Docs Bot")

        env = SanitisedEnvironment().build(None)

        assert "DOCPUBLISH_TEST_SECRET" not in env
        assert env["GIT_AUTHOR_NAME"] == "Docs Bot"
        assert env.get("PATH") == os.environ.get("PATH")

    def test_overrides_win(self) -> None:
        """Explicit overrides are layered on top."""
        env = SanitisedEnvironment().build({"MKDOCS_SITE": "x"})
        assert env["MKDOCS_SITE"] == "x"


class TestDefaultPolicy:
    """Tests for the shipped allow-list and output decoding."""

    def test_shell_is_not_allowed_by_default(self) -> None:
        """Without configuration a shell cannot be spawned at all."""
        with pytest.raises(ToolExecutionError) as exc_info:
            run_tool(["sh", "-c", "true"], check=True)

        problem = exc_info.value.problem
        assert problem is not None
        assert problem["status"] == 403

    @pytest.mark.usefixtures("shell_allowlist")
    def test_undecodable_output_is_replaced(self) -> None:
        """Bytes that are not UTF-8 never escape as UnicodeDecodeError."""
        result = run_tool(["sh", "-c", "printf '\\377ok'"], timeout=5.0)

        assert result.returncode == 0
        assert result.stdout == "\ufffdok"
