"""Publish the Output Directory to a hosting branch.

The publisher works in a dedicated cache repository (``.publish`` by default)
so the project's own work tree is never touched:

1. the cache repository is created or reused and pointed at the remote;
2. with ``push`` enabled the remote is fetched and the hosting branch is reset
   to the remote's tip, so the new commit extends its history;
3. the cache work tree is replaced by exactly the snapshot's files and a commit
   is recorded when anything changed;
4. with ``push`` enabled the branch is pushed, exactly once.

With ``push`` disabled steps 2 and 4 are skipped and no network I/O happens.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from docpublish._shared.logging import get_logger, with_fields
from docpublish._shared.proc import ToolExecutionError, run_tool
from docpublish.config import PublishOptions
from docpublish.errors import NothingToPublishError, PublishError, PublishTransportError

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from docpublish._shared.logging import StructuredLoggerAdapter
    from docpublish._shared.process import ProcessRunner, ToolRunResult

__all__ = [
    "GitPagesPublisher",
    "PublishResult",
    "Publisher",
    "SiteSnapshot",
    "collect_site_files",
]

LOGGER = get_logger(__name__)


@dataclass(slots=True, frozen=True)
class SiteSnapshot:
    """The Output Directory and the files it held when the snapshot was taken.

    ``files`` are POSIX-style paths relative to ``site_dir``, sorted.
    """

    site_dir: Path
    files: tuple[str, ...]

    def __len__(self) -> int:
        return len(self.files)


@dataclass(slots=True, frozen=True)
class PublishResult:
    """Outcome of a publish run."""

    remote: str
    branch: str
    files: tuple[str, ...]
    committed: bool
    pushed: bool
    commit: str | None


class Publisher(Protocol):
    """Anything that can transfer a :class:`SiteSnapshot` to the hosting target."""

    def publish(self, snapshot: SiteSnapshot) -> PublishResult: ...


def collect_site_files(site_dir: Path) -> SiteSnapshot:
    """Snapshot every file below ``site_dir``.

    Parameters
    ----------
    site_dir : Path
        Output Directory produced by the builder.

    Returns
    -------
    SiteSnapshot
        Sorted relative file paths; ``.git`` directories are ignored.

    Raises
    ------
    NothingToPublishError
        When ``site_dir`` is missing, is not a directory, or holds no files.
    """
    if not site_dir.exists():
        message = f"Nothing to publish: output directory '{site_dir}' does not exist"
        raise NothingToPublishError(message, site_dir=str(site_dir))
    if not site_dir.is_dir():
        message = f"Nothing to publish: '{site_dir}' is not a directory"
        raise NothingToPublishError(message, site_dir=str(site_dir))

    files = sorted(
        path.relative_to(site_dir).as_posix()
        for path in site_dir.rglob("*")
        if path.is_file() and ".git" not in path.relative_to(site_dir).parts
    )
    if not files:
        message = f"Nothing to publish: output directory '{site_dir}' is empty"
        raise NothingToPublishError(message, site_dir=str(site_dir))
    return SiteSnapshot(site_dir=site_dir, files=tuple(files))


@dataclass(slots=True)
class _CacheRepository:
    """Thin wrapper running git inside the cache repository."""

    path: Path
    run: Callable[..., ToolRunResult]
    timeout: float | None
    logger: StructuredLoggerAdapter

    def git(self, *args: str, check: bool = True) -> ToolRunResult:
        command = ["git", *args]
        try:
            return self.run(command, cwd=self.path, timeout=self.timeout, check=check)
        except ToolExecutionError as exc:
            detail = exc.stderr.strip() or str(exc)
            message = f"git {args[0]} failed in '{self.path}': {detail}"
            raise PublishError(
                message,
                extensions={"command": command, "cache_dir": str(self.path)},
            ) from exc

    def ensure(self, remote: str, remote_url: str | None) -> None:
        if not (self.path / ".git").exists():
            if self.path.exists() and any(self.path.iterdir()):
                message = f"Cache directory '{self.path}' exists and is not a git repository"
                raise PublishError(message, extensions={"cache_dir": str(self.path)})
            self.path.mkdir(parents=True, exist_ok=True)
            self.git("init", "--quiet")
            self.logger.info("Initialised cache repository", extra={"cache_dir": str(self.path)})

        if remote_url is None:
            return
        current = self.git("remote", "get-url", remote, check=False)
        if current.returncode != 0:
            self.git("remote", "add", remote, remote_url)
        elif current.stdout.strip() != remote_url:
            self.git("remote", "set-url", remote, remote_url)

    def fetch(self, remote: str, branch: str) -> None:
        self._transport(("fetch", "--quiet", remote), remote=remote, branch=branch)

    def checkout(self, remote: str, branch: str, *, track_remote: bool) -> None:
        remote_ref = f"refs/remotes/{remote}/{branch}"
        if track_remote and self._has_ref(remote_ref):
            self.git("checkout", "--quiet", "--force", "-B", branch, remote_ref)
        elif self._has_ref(f"refs/heads/{branch}"):
            self.git("checkout", "--quiet", "--force", branch)
        else:
            # Unborn branch: the next commit becomes its root.
            self.git("symbolic-ref", "HEAD", f"refs/heads/{branch}")

    def replace_tree(self, snapshot: SiteSnapshot) -> None:
        try:
            for entry in self.path.iterdir():
                if entry.name == ".git":
                    continue
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
            for relative in snapshot.files:
                target = self.path / relative
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(snapshot.site_dir / relative, target)
        except OSError as exc:
            message = f"Failed to stage files into '{self.path}': {exc}"
            raise PublishError(message, extensions={"cache_dir": str(self.path)}) from exc

    def commit(self, message: str) -> bool:
        self.git("add", "--all", "--force")
        status = self.git("status", "--porcelain")
        if not status.stdout.strip():
            return False
        self.git("commit", "--quiet", "-m", message)
        return True

    def push(self, remote: str, branch: str, *, force: bool) -> None:
        args = ["push", "--quiet"]
        if force:
            args.append("--force")
        args.extend([remote, f"refs/heads/{branch}:refs/heads/{branch}"])
        self._transport(tuple(args), remote=remote, branch=branch)

    def head(self) -> str | None:
        result = self.git("rev-parse", "--verify", "--quiet", "HEAD", check=False)
        sha = result.stdout.strip()
        return sha or None

    def _has_ref(self, ref: str) -> bool:
        return self.git("rev-parse", "--verify", "--quiet", ref, check=False).returncode == 0

    def _transport(self, args: Sequence[str], *, remote: str, branch: str) -> None:
        command = ["git", *args]
        try:
            self.run(command, cwd=self.path, timeout=self.timeout, check=True)
        except ToolExecutionError as exc:
            detail = exc.stderr.strip() or str(exc)
            message = f"git {args[0]} to remote '{remote}' failed: {detail}"
            raise PublishTransportError(
                message,
                remote=remote,
                branch=branch,
                command=command,
                stderr=exc.stderr,
            ) from exc


@dataclass(slots=True)
class GitPagesPublisher:
    """Stage a snapshot on a hosting branch via a cache repository and push it."""

    options: PublishOptions = field(default_factory=PublishOptions)
    project_root: Path = field(default_factory=Path)
    runner: ProcessRunner | None = None

    def publish(self, snapshot: SiteSnapshot) -> PublishResult:
        """Commit ``snapshot`` to the hosting branch and push when enabled.

        Parameters
        ----------
        snapshot : SiteSnapshot
            Files to publish, normally from :func:`collect_site_files`.

        Returns
        -------
        PublishResult
            What was committed and pushed.

        Raises
        ------
        NothingToPublishError
            When ``snapshot`` holds no files.
        PublishTransportError
            When fetching or pushing fails.
        PublishError
            For local staging failures.
        """
        if not snapshot.files:
            message = f"Nothing to publish: output directory '{snapshot.site_dir}' is empty"
            raise NothingToPublishError(message, site_dir=str(snapshot.site_dir))

        options = self.options
        run = self.runner.run if self.runner is not None else run_tool
        cache_dir = self._cache_dir(snapshot)
        logger = with_fields(
            LOGGER,
            operation="deploy",
            remote=options.remote,
            branch=options.branch,
            cache_dir=str(cache_dir),
            file_count=len(snapshot.files),
            push=options.push,
        )
        logger.info("Publishing output directory", extra={"status": "started"})

        remote_url = self._remote_url(run)
        if remote_url is None and options.push:
            message = (
                f"Cannot push: no URL configured for remote '{options.remote}' "
                "and the project has none"
            )
            raise PublishError(message, extensions={"remote": options.remote})

        repo = _CacheRepository(path=cache_dir, run=run, timeout=options.timeout, logger=logger)
        repo.ensure(options.remote, remote_url)
        if options.push:
            repo.fetch(options.remote, options.branch)
        repo.checkout(options.remote, options.branch, track_remote=options.push)
        repo.replace_tree(snapshot)
        committed = repo.commit(options.render_message())
        if not committed:
            logger.info("No changes to commit", extra={"status": "unchanged"})

        pushed = False
        if options.push:
            repo.push(options.remote, options.branch, force=options.force)
            pushed = True

        result = PublishResult(
            remote=options.remote,
            branch=options.branch,
            files=snapshot.files,
            committed=committed,
            pushed=pushed,
            commit=repo.head(),
        )
        logger.info(
            "Publish finished",
            extra={"committed": committed, "pushed": pushed, "commit": result.commit},
        )
        return result

    def _cache_dir(self, snapshot: SiteSnapshot) -> Path:
        cache_dir = self.options.cache_dir
        if not cache_dir.is_absolute():
            cache_dir = self.project_root / cache_dir
        resolved = cache_dir.resolve()
        root = self.project_root.resolve()
        if resolved == root or resolved in root.parents or resolved == snapshot.site_dir.resolve():
            message = f"Refusing to use '{cache_dir}' as the publish cache directory"
            raise PublishError(message, extensions={"cache_dir": str(cache_dir)})
        return cache_dir

    def _remote_url(self, run: Callable[..., ToolRunResult]) -> str | None:
        if self.options.remote_url:
            return self.options.remote_url
        try:
            result = run(
                ["git", "remote", "get-url", self.options.remote],
                cwd=self.project_root,
                timeout=self.options.timeout,
                check=False,
            )
        except ToolExecutionError as exc:
            message = f"Unable to query the project's remotes: {exc}"
            raise PublishError(message, extensions={"remote": self.options.remote}) from exc
        url = result.stdout.strip()
        if result.returncode != 0 or not url:
            return None
        return url
