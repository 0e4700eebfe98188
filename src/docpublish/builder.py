"""Run the external documentation generator.

The builder owns no rendering logic: it spawns the configured command (``mkdocs
build`` by default) in the project root, waits for it, and translates every
failure mode into :class:`~docpublish.errors.BuildFailedError`. The Output
Directory is not cleared beforehand.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from docpublish._shared.logging import get_logger, with_fields
from docpublish._shared.proc import ToolExecutionError, run_tool
from docpublish.config import DEFAULT_BUILD_COMMAND, DEFAULT_SITE_DIR
from docpublish.errors import BuildFailedError

if TYPE_CHECKING:
    from docpublish._shared.process import ProcessRunner

__all__ = ["BuildResult", "DocBuilder", "MkDocsBuilder"]

LOGGER = get_logger(__name__)


@dataclass(slots=True, frozen=True)
class BuildResult:
    """Outcome of a successful generator run."""

    site_dir: Path
    command: tuple[str, ...]
    duration_seconds: float
    stdout: str = ""
    stderr: str = ""


class DocBuilder(Protocol):
    """Anything that can produce the Output Directory."""

    def build(self) -> BuildResult: ...


@dataclass(slots=True)
class MkDocsBuilder:
    """Invoke the generator command synchronously in ``project_root``."""

    project_root: Path = field(default_factory=Path)
    site_dir: Path = DEFAULT_SITE_DIR
    command: tuple[str, ...] = DEFAULT_BUILD_COMMAND
    timeout: float | None = None
    runner: ProcessRunner | None = None

    def build(self) -> BuildResult:
        """Run the generator and return where its output landed.

        Returns
        -------
        BuildResult
            Output Directory path and captured output.

        Raises
        ------
        BuildFailedError
            When the command exits non-zero, cannot be found, is not allowed,
            or exceeds ``timeout``.
        """
        run = self.runner.run if self.runner is not None else run_tool
        site_dir = self.site_dir
        if not site_dir.is_absolute():
            site_dir = self.project_root / site_dir
        logger = with_fields(
            LOGGER,
            operation="mkdocs",
            command=list(self.command),
            site_dir=str(site_dir),
        )
        logger.info("Documentation build started", extra={"status": "started"})
        try:
            result = run(
                self.command,
                cwd=self.project_root,
                timeout=self.timeout,
                check=True,
            )
        except ToolExecutionError as exc:
            detail = exc.stderr.strip() or str(exc)
            logger.error(
                "Documentation build failed",
                extra={"returncode": exc.returncode, "stderr": exc.stderr},
            )
            message = f"Documentation build failed: {detail}"
            raise BuildFailedError(
                message,
                command=self.command,
                returncode=exc.returncode,
                stderr=exc.stderr,
            ) from exc

        logger.info(
            "Documentation build finished",
            extra={"duration_ms": result.duration_seconds * 1000},
        )
        return BuildResult(
            site_dir=site_dir,
            command=tuple(self.command),
            duration_seconds=result.duration_seconds,
            stdout=result.stdout,
            stderr=result.stderr,
        )
