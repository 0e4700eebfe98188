"""Metrics, tracing and structured logs for subprocess and task runs.

Metrics are registered once at import time under well-known names so a scrape
of the default Prometheus registry exposes them:

* ``docpublish_tool_runs_total`` / ``docpublish_tool_failures_total`` /
  ``docpublish_tool_duration_seconds`` for every subprocess spawned through
  :class:`docpublish._shared.process.ProcessRunner`.
* ``docpublish_task_runs_total`` / ``docpublish_task_duration_seconds`` for
  every task executed by :class:`docpublish.tasks.TaskRunner`.
"""

from __future__ import annotations

import time
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Final

from docpublish._shared.logging import get_logger, with_fields
from docpublish._shared.observability import start_span
from docpublish._shared.prometheus import build_counter, build_histogram
from docpublish._shared.settings import get_runtime_settings

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from docpublish._shared.logging import StructuredLoggerAdapter
    from docpublish._shared.prometheus import CounterLike, HistogramLike

LOGGER = get_logger(__name__)


TOOL_RUNS_TOTAL: CounterLike = build_counter(
    "docpublish_tool_runs_total",
    "Total subprocess invocations",
    labelnames=["tool", "status"],
)

TOOL_FAILURES_TOTAL: CounterLike = build_counter(
    "docpublish_tool_failures_total",
    "Count of subprocess failures grouped by reason",
    labelnames=["tool", "reason"],
)

TOOL_DURATION_SECONDS: HistogramLike = build_histogram(
    "docpublish_tool_duration_seconds",
    "Subprocess duration in seconds",
    labelnames=["tool", "status"],
)

TASK_RUNS_TOTAL: CounterLike = build_counter(
    "docpublish_task_runs_total",
    "Task executions grouped by outcome",
    labelnames=["task", "status"],
)

TASK_DURATION_SECONDS: HistogramLike = build_histogram(
    "docpublish_task_duration_seconds",
    "Task duration in seconds",
    labelnames=["task", "status"],
    buckets=(0.5, 1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 600.0),
)


@dataclass(slots=True)
class ToolRunObservation:
    """Captures runtime details for a single subprocess invocation."""

    command: Sequence[str]
    cwd: Path | None
    timeout: float | None
    tool: str = field(init=False)
    status: str = field(default="success", init=False)
    failure_reason: str | None = field(default=None, init=False)
    returncode: int | None = field(default=None, init=False)
    timed_out: bool = field(default=False, init=False)
    start_time: float = field(default_factory=time.monotonic, init=False)
    metrics_enabled: bool = True
    tracing_enabled: bool = True

    def __post_init__(self) -> None:
        self.tool = Path(self.command[0]).name if self.command else "<unknown>"

    def success(self, returncode: int) -> None:
        """Record successful completion with ``returncode``."""
        self.status = "success"
        self.returncode = returncode
        self.failure_reason = None
        self.timed_out = False

    def failure(
        self,
        reason: str,
        *,
        returncode: int | None = None,
        timed_out: bool = False,
    ) -> None:
        """Record failed completion with context metadata."""
        self.status = "error"
        self.failure_reason = reason
        self.returncode = returncode
        self.timed_out = timed_out

    def duration_seconds(self) -> float:
        """Return the elapsed duration in seconds."""
        return time.monotonic() - self.start_time


@contextmanager
def observe_tool_run(
    command: Sequence[str],
    *,
    cwd: Path | None,
    timeout: float | None,
) -> Iterator[ToolRunObservation]:
    """Record metrics, a span and a log line for a subprocess invocation.

    Parameters
    ----------
    command : Sequence[str]
        Command being executed.
    cwd : Path | None
        Working directory for the command.
    timeout : float | None
        Optional timeout in seconds.

    Yields
    ------
    ToolRunObservation
        Mutable observation the caller marks as success or failure.

    Notes
    -----
    Exceptions raised inside the block are recorded as failures (reason
    ``exception`` unless the caller already set one) and then propagated.
    """
    settings = get_runtime_settings()
    observation = ToolRunObservation(
        command=command,
        cwd=cwd,
        timeout=timeout,
        metrics_enabled=settings.metrics_enabled,
        tracing_enabled=settings.tracing_enabled,
    )
    logger = with_fields(
        LOGGER,
        tool=observation.tool,
        command=list(command),
        cwd=str(cwd) if cwd else None,
        timeout_seconds=timeout,
    )
    span_context = (
        start_span(
            f"docpublish.tool.{observation.tool}",
            attributes={
                "tool": observation.tool,
                "cwd": str(cwd) if cwd else "",
                "timeout_s": timeout if timeout is not None else -1.0,
            },
        )
        if observation.tracing_enabled
        else nullcontext()
    )

    with span_context:
        try:
            yield observation
        except Exception:
            if observation.status == "success":
                observation.failure("exception")
            _record_tool(observation, logger)
            raise
        else:
            _record_tool(observation, logger)


def _record_tool(
    observation: ToolRunObservation,
    logger: StructuredLoggerAdapter,
) -> None:
    duration = observation.duration_seconds()
    status = observation.status
    if observation.metrics_enabled:
        TOOL_RUNS_TOTAL.labels(tool=observation.tool, status=status).inc()
        TOOL_DURATION_SECONDS.labels(tool=observation.tool, status=status).observe(duration)
    extra: dict[str, object] = {
        "duration_ms": duration * 1000,
        "status": status,
        "returncode": observation.returncode,
        "timed_out": observation.timed_out,
    }
    if status == "error":
        reason = observation.failure_reason or "unknown"
        if observation.metrics_enabled:
            TOOL_FAILURES_TOTAL.labels(tool=observation.tool, reason=reason).inc()
        extra["reason"] = reason
        logger.error("Tool run failed", extra=extra)
    else:
        logger.info("Tool run succeeded", extra=extra)


@dataclass(slots=True)
class TaskRunObservation:
    """Outcome of a single task execution."""

    task: str
    status: str = field(default="success", init=False)
    start_time: float = field(default_factory=time.monotonic, init=False)
    metrics_enabled: bool = True

    def failed(self) -> None:
        """Mark the task as failed."""
        self.status = "error"

    def duration_seconds(self) -> float:
        """Return the elapsed duration in seconds."""
        return time.monotonic() - self.start_time


@contextmanager
def observe_task_run(task: str, *, depends_on: Sequence[str] = ()) -> Iterator[TaskRunObservation]:
    """Record metrics and a span around the execution of ``task``.

    Exceptions mark the observation as failed and propagate unchanged.
    """
    settings = get_runtime_settings()
    observation = TaskRunObservation(task=task, metrics_enabled=settings.metrics_enabled)
    span_context = (
        start_span(
            f"docpublish.task.{task}",
            attributes={"task": task, "depends_on": ",".join(depends_on)},
        )
        if settings.tracing_enabled
        else nullcontext()
    )
    with span_context:
        try:
            yield observation
        except Exception:
            observation.failed()
            raise
        finally:
            if observation.metrics_enabled:
                TASK_RUNS_TOTAL.labels(task=task, status=observation.status).inc()
                TASK_DURATION_SECONDS.labels(task=task, status=observation.status).observe(
                    observation.duration_seconds()
                )


__all__: Final[list[str]] = [
    "TaskRunObservation",
    "ToolRunObservation",
    "observe_task_run",
    "observe_tool_run",
]
