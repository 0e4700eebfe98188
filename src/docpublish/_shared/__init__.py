"""Shared utilities: logging, settings, Problem Details, subprocess execution and metrics."""

from __future__ import annotations

from docpublish._shared.cli import (
    CliEnvelope,
    CliEnvelopeBuilder,
    CliStatus,
    CliTaskStatus,
    decode_cli_envelope,
    render_cli_envelope,
)
from docpublish._shared.logging import (
    CorrelationContext,
    JsonFormatter,
    StructuredLoggerAdapter,
    get_logger,
    setup_logging,
    with_fields,
)
from docpublish._shared.metrics import observe_task_run, observe_tool_run
from docpublish._shared.problem_details import (
    PROBLEM_TYPE_BASE,
    JsonValue,
    ProblemDetailsDict,
    ProblemDetailsParams,
    build_problem_details,
    render_problem,
)
from docpublish._shared.proc import (
    ProcessRunner,
    ToolExecutionError,
    ToolRunResult,
    get_process_runner,
    run_tool,
    set_process_runner,
)
from docpublish._shared.settings import (
    SettingsError,
    ToolRuntimeSettings,
    get_runtime_settings,
    load_settings,
    reset_settings_cache,
)

__all__ = [
    "PROBLEM_TYPE_BASE",
    "CliEnvelope",
    "CliEnvelopeBuilder",
    "CliStatus",
    "CliTaskStatus",
    "CorrelationContext",
    "JsonFormatter",
    "JsonValue",
    "ProblemDetailsDict",
    "ProblemDetailsParams",
    "ProcessRunner",
    "SettingsError",
    "StructuredLoggerAdapter",
    "ToolExecutionError",
    "ToolRunResult",
    "ToolRuntimeSettings",
    "build_problem_details",
    "decode_cli_envelope",
    "get_logger",
    "get_process_runner",
    "get_runtime_settings",
    "load_settings",
    "observe_task_run",
    "observe_tool_run",
    "render_cli_envelope",
    "render_problem",
    "reset_settings_cache",
    "run_tool",
    "set_process_runner",
    "setup_logging",
    "with_fields",
]
