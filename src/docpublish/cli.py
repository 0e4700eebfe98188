"""Command-line entry point: ``docpublish mkdocs`` and ``docpublish deploy``."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Any
from uuid import uuid4

import typer

from docpublish import __version__
from docpublish._shared.cli import CliEnvelopeBuilder, render_cli_envelope
from docpublish._shared.logging import CorrelationContext, get_logger, setup_logging, with_fields
from docpublish._shared.problem_details import render_problem
from docpublish._shared.settings import SettingsError
from docpublish.builder import BuildResult
from docpublish.config import load_deploy_settings
from docpublish.errors import DocPublishError, TaskFailedError
from docpublish.pipeline import DEPLOY_TASK, MKDOCS_TASK, create_task_graph
from docpublish.publisher import PublishResult
from docpublish.tasks import RunReport, TaskRunner

__all__ = ["app", "main"]

CLI_COMMAND = "docpublish"
EXIT_CONFIG_ERROR = 2

LOGGER = get_logger(__name__)

app = typer.Typer(
    help=f"Build documentation and publish it to a hosting branch ({__version__}).",
    no_args_is_help=True,
    add_completion=False,
)


@dataclass(slots=True, frozen=True)
class _GlobalOptions:
    project_root: Path | None
    site_dir: Path | None
    log_level: int
    envelope: Path | None


@app.callback()
def _configure(
    ctx: typer.Context,
    project_root: Annotated[
        Path | None,
        typer.Option(
            "--project-root",
            help="Directory the generator runs in (default: current directory).",
            file_okay=False,
        ),
    ] = None,
    site_dir: Annotated[
        Path | None,
        typer.Option("--site-dir", help="Output Directory, relative to the project root."),
    ] = None,
    log_level: Annotated[
        str,
        typer.Option("--log-level", help="Logging threshold.", show_default=True),
    ] = "INFO",
    envelope: Annotated[
        Path | None,
        typer.Option("--envelope", help="Write a JSON run summary to this path.", dir_okay=False),
    ] = None,
) -> None:
    """Build documentation and publish it to a hosting branch."""
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        message = f"Unknown log level: {log_level}"
        raise typer.BadParameter(message, param_hint="--log-level")
    ctx.obj = _GlobalOptions(
        project_root=project_root,
        site_dir=site_dir,
        log_level=level,
        envelope=envelope,
    )


@app.command(MKDOCS_TASK)
def mkdocs_command(ctx: typer.Context) -> None:
    """Build the documentation site."""
    _run_target(ctx.obj, MKDOCS_TASK, {})


@app.command(DEPLOY_TASK)
def deploy_command(
    ctx: typer.Context,
    push: Annotated[
        bool | None,
        typer.Option("--push/--no-push", help="Push to the remote, or only stage locally."),
    ] = None,
    remote: Annotated[str | None, typer.Option("--remote", help="Remote name.")] = None,
    remote_url: Annotated[
        str | None, typer.Option("--remote-url", help="Remote URL (default: the project's).")
    ] = None,
    branch: Annotated[str | None, typer.Option("--branch", help="Hosting branch.")] = None,
    cache_dir: Annotated[
        Path | None, typer.Option("--cache-dir", help="Staging repository directory.")
    ] = None,
    message: Annotated[
        str | None, typer.Option("--message", "-m", help="Commit message; {timestamp} expands.")
    ] = None,
    force: Annotated[
        bool | None, typer.Option("--force/--no-force", help="Force-push the hosting branch.")
    ] = None,
) -> None:
    """Build the documentation site, then publish it."""
    overrides: dict[str, Any] = {
        "push": push,
        "remote": remote,
        "remote_url": remote_url,
        "branch": branch,
        "cache_dir": cache_dir,
        "message": message,
        "force": force,
    }
    _run_target(ctx.obj, DEPLOY_TASK, overrides)


@app.command("tasks")
def tasks_command(ctx: typer.Context) -> None:
    """List the available tasks and what they depend on."""
    options: _GlobalOptions = ctx.obj
    setup_logging(options.log_level)
    try:
        settings = load_deploy_settings(
            project_root=options.project_root, site_dir=options.site_dir
        )
        graph = create_task_graph(settings, settings.publish_options())
    except SettingsError as exc:
        _echo_failure(str(exc), exc.problem)
        raise typer.Exit(code=EXIT_CONFIG_ERROR) from exc
    for task in graph:
        depends = f" (after: {', '.join(task.depends_on)})" if task.depends_on else ""
        typer.echo(f"{task.name}{depends}  {task.description}")


def _run_target(options: _GlobalOptions, target: str, overrides: dict[str, Any]) -> None:
    setup_logging(options.log_level)
    start = time.monotonic()
    builder = CliEnvelopeBuilder.create(command=CLI_COMMAND, target=target)
    correlation_id = uuid4().hex
    logger = with_fields(LOGGER, operation=target, command=CLI_COMMAND, target=target)

    with CorrelationContext(correlation_id):
        try:
            settings = load_deploy_settings(
                project_root=options.project_root, site_dir=options.site_dir
            )
            publish_options = settings.publish_options(**overrides)
        except SettingsError as exc:
            builder.set_problem(exc.problem, status="config")
            _finish(options, builder, start)
            _echo_failure(str(exc), exc.problem)
            raise typer.Exit(code=EXIT_CONFIG_ERROR) from exc

        graph = create_task_graph(settings, publish_options)
        logger.info("Command started", extra={"status": "started"})
        try:
            report = TaskRunner(graph).run(target)
        except TaskFailedError as exc:
            if exc.report is not None:
                _record_tasks(builder, exc.report)
            builder.set_problem(exc.problem)
            _finish(options, builder, start)
            logger.error("Command failed", extra={"task": exc.task, "error": str(exc)})
            _echo_failure(str(exc), exc.problem)
            raise typer.Exit(code=exc.exit_code) from exc
        except DocPublishError as exc:
            builder.set_problem(exc.problem, status="config")
            _finish(options, builder, start)
            _echo_failure(str(exc), exc.problem)
            raise typer.Exit(code=exc.exit_code) from exc

    _record_tasks(builder, report)
    for name, result in report.context.results.items():
        typer.echo(_describe(name, result))
    envelope_path = _finish(options, builder, start)
    logger.info(
        "Command completed",
        extra={"duration_ms": (time.monotonic() - start) * 1000, "envelope": envelope_path},
    )


def _record_tasks(builder: CliEnvelopeBuilder, report: RunReport) -> None:
    for outcome in report.outcomes:
        builder.add_task(
            name=outcome.name,
            status=outcome.status.value,
            duration_seconds=outcome.duration_seconds,
            message=outcome.error,
        )
    published = report.context.results.get(DEPLOY_TASK)
    if isinstance(published, PublishResult):
        builder.set_files(list(published.files))


def _describe(name: str, result: object) -> str:
    if isinstance(result, BuildResult):
        return f"{name}: built site into {result.site_dir}"
    if isinstance(result, PublishResult):
        action = "pushed to" if result.pushed else "staged for"
        commit = f" at {result.commit[:12]}" if result.commit else ""
        changed = "" if result.committed else " (no changes)"
        return (
            f"{name}: {len(result.files)} files {action} "
            f"{result.remote}/{result.branch}{commit}{changed}"
        )
    return f"{name}: done"


def _finish(options: _GlobalOptions, builder: CliEnvelopeBuilder, start: float) -> str | None:
    if options.envelope is None:
        return None
    envelope = builder.finish(duration_seconds=time.monotonic() - start)
    options.envelope.parent.mkdir(parents=True, exist_ok=True)
    options.envelope.write_text(render_cli_envelope(envelope) + "\n", encoding="utf-8")
    return str(options.envelope)


def _echo_failure(message: str, problem: dict[str, Any]) -> None:
    typer.echo(message, err=True)
    typer.echo(render_problem(problem), err=True)


def main() -> None:
    """Console-script entry point."""
    app()


if __name__ == "__main__":  # pragma: no cover - manual execution entrypoint
    main()
