"""Exception taxonomy for docpublish.

Every exception carries an RFC 9457 Problem Details payload in ``problem`` and
the process exit code the CLI should use in ``exit_code``.

Examples
--------
>>> err = NothingToPublishError("Output directory 'site' does not exist", site_dir="site")
>>> err.problem["type"]
'https://docpublish.dev/problems/nothing-to-publish'
"""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar

from docpublish._shared.problem_details import (
    PROBLEM_TYPE_BASE,
    JsonValue,
    ProblemDetailsDict,
    ProblemDetailsParams,
    build_problem_details,
)

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from docpublish.tasks import RunReport

__all__ = [
    "BuildFailedError",
    "DocPublishError",
    "NothingToPublishError",
    "PublishError",
    "PublishTransportError",
    "TaskCycleError",
    "TaskFailedError",
    "TaskGraphError",
    "UnknownTaskError",
]


class DocPublishError(RuntimeError):
    """Base class for docpublish failures."""

    category: ClassVar[str] = "docpublish-error"
    title: ClassVar[str] = "docpublish failed"
    status: ClassVar[int] = 500
    default_exit_code: ClassVar[int] = 1

    def __init__(
        self,
        message: str,
        *,
        extensions: Mapping[str, JsonValue] | None = None,
        problem: ProblemDetailsDict | None = None,
    ) -> None:
        super().__init__(message)
        self.problem: ProblemDetailsDict = problem or build_problem_details(
            ProblemDetailsParams(
                type=f"{PROBLEM_TYPE_BASE}/{self.category}",
                title=self.title,
                status=self.status,
                detail=message,
                instance=f"urn:docpublish:{self.category}",
                extensions=extensions,
            )
        )

    @property
    def exit_code(self) -> int:
        """Exit code the CLI reports for this error."""
        return self.default_exit_code


class BuildFailedError(DocPublishError):
    """The documentation generator failed, was missing, or timed out."""

    category = "docs-build-failed"
    title = "Documentation build failed"

    def __init__(
        self,
        message: str,
        *,
        command: Sequence[str],
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        self.command = tuple(command)
        self.returncode = returncode
        self.stderr = stderr
        extensions: dict[str, JsonValue] = {"command": list(self.command)}
        if returncode is not None:
            extensions["returncode"] = returncode
        if stderr:
            extensions["stderr"] = stderr
        super().__init__(message, extensions=extensions)

    @property
    def exit_code(self) -> int:
        """The generator's own exit status when it ran, otherwise 1."""
        if self.returncode:
            return self.returncode
        return self.default_exit_code


class PublishError(DocPublishError):
    """Staging the Output Directory into the publish repository failed."""

    category = "publish-failed"
    title = "Publishing failed"


class NothingToPublishError(PublishError):
    """The Output Directory is missing or holds no files."""

    category = "nothing-to-publish"
    title = "Nothing to publish"
    status = 422

    def __init__(self, message: str, *, site_dir: str) -> None:
        self.site_dir = site_dir
        super().__init__(message, extensions={"site_dir": site_dir})


class PublishTransportError(PublishError):
    """Fetching from or pushing to the remote failed (network or authentication)."""

    category = "publish-transport"
    title = "Publish transport failed"
    status = 502

    def __init__(
        self,
        message: str,
        *,
        remote: str,
        branch: str,
        command: Sequence[str] = (),
        stderr: str = "",
    ) -> None:
        self.remote = remote
        self.branch = branch
        self.stderr = stderr
        extensions: dict[str, JsonValue] = {
            "remote": remote,
            "branch": branch,
            "command": list(command),
        }
        if stderr:
            extensions["stderr"] = stderr
        super().__init__(message, extensions=extensions)


class TaskGraphError(DocPublishError):
    """The task graph is misconfigured."""

    category = "task-graph"
    title = "Invalid task graph"
    status = 400
    default_exit_code = 2


class UnknownTaskError(TaskGraphError):
    """A task name (requested or declared as a dependency) is not registered."""

    def __init__(self, name: str, *, known: Sequence[str] = ()) -> None:
        self.name = name
        super().__init__(
            f"Unknown task '{name}'",
            extensions={"task": name, "known_tasks": sorted(known)},
        )


class TaskCycleError(TaskGraphError):
    """Task dependencies form a cycle."""

    def __init__(self, cycle: Sequence[str]) -> None:
        self.cycle = tuple(cycle)
        super().__init__(
            "Task dependency cycle: " + " -> ".join(self.cycle),
            extensions={"cycle": list(self.cycle)},
        )


class TaskFailedError(DocPublishError):
    """A task raised; dependent tasks were not started.

    The originating exception is kept on ``cause`` (and ``__cause__``); its
    message and Problem Details are reused unchanged.
    """

    def __init__(
        self, task: str, cause: BaseException, *, report: RunReport | None = None
    ) -> None:
        self.task = task
        self.cause = cause
        self.report = report
        problem = getattr(cause, "problem", None)
        if isinstance(problem, dict):
            super().__init__(str(cause), problem=dict(problem))
        else:
            super().__init__(
                str(cause),
                extensions={"task": task, "exception_type": type(cause).__name__},
            )

    @property
    def exit_code(self) -> int:
        """Exit code of the originating error."""
        if isinstance(self.cause, DocPublishError):
            return self.cause.exit_code
        return self.default_exit_code
