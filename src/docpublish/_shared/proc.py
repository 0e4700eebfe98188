"""Shared entry point for spawning external tools.

The builder and the publisher call :func:`run_tool` unless a runner was handed
to them explicitly. Tests install a recording runner with
:func:`set_process_runner` so no process is spawned.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from docpublish._shared.process import ProcessRunner, ToolExecutionError, ToolRunResult

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from pathlib import Path


@dataclass(slots=True, frozen=True)
class _ProcessRunnerState:
    runner: ProcessRunner


_PROCESS_STATE: list[_ProcessRunnerState] = [_ProcessRunnerState(ProcessRunner())]


def get_process_runner() -> ProcessRunner:
    """Return the runner :func:`run_tool` delegates to."""
    return _PROCESS_STATE[0].runner


def set_process_runner(runner: ProcessRunner) -> None:
    """Install ``runner`` for every later :func:`run_tool` call.

    The previous runner is not kept; restore it yourself when done.
    """
    _PROCESS_STATE[0] = replace(_PROCESS_STATE[0], runner=runner)


def run_tool(
    command: Sequence[str],
    *,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
    timeout: float | None = None,
    check: bool = False,
) -> ToolRunResult:
    """Run ``command`` through the installed :class:`ProcessRunner`.

    Parameters
    ----------
    command : Sequence[str]
        Executable and arguments; the executable must be allow-listed.
    cwd : Path | None, optional
        Directory the process starts in.
    env : Mapping[str, str] | None, optional
        Variables layered over the sanitised environment.
    timeout : float | None, optional
        Seconds before the process is killed.
    check : bool, optional
        Treat a non-zero exit status as an error.

    Returns
    -------
    ToolRunResult
        Exit status, captured streams and timing.

    Raises
    ------
    ToolExecutionError
        Propagated from :meth:`ProcessRunner.run`.
    """
    runner = get_process_runner()
    return runner.run(command, cwd=cwd, env=env, timeout=timeout, check=check)


__all__ = [
    "ProcessRunner",
    "ToolExecutionError",
    "ToolRunResult",
    "get_process_runner",
    "run_tool",
    "set_process_runner",
]
