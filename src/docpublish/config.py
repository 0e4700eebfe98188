"""Configuration models for the build and publish tasks.

:class:`PublishOptions` is the typed form of the publish step's options; only
``push`` is needed for the default flow, the other fields mirror what a
gh-pages publisher usually exposes. :class:`DeploySettings` carries the
environment-level defaults (``DOCPUBLISH_*`` variables) and produces the
options, with CLI flags layered on top.

Examples
--------
>>> options = PublishOptions()
>>> options.push, options.branch
(True, 'gh-pages')
>>> PublishOptions(push=False).push
False
"""

from __future__ import annotations

import shlex
from datetime import UTC, datetime
from pathlib import Path
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from docpublish._shared.problem_details import (
    PROBLEM_TYPE_BASE,
    ProblemDetailsParams,
    build_problem_details,
)
from docpublish._shared.settings import SettingsError, load_settings

__all__ = [
    "DEFAULT_BUILD_COMMAND",
    "DEFAULT_SITE_DIR",
    "DeploySettings",
    "PublishOptions",
    "load_deploy_settings",
]

DEFAULT_BUILD_COMMAND: tuple[str, ...] = ("mkdocs", "build")
DEFAULT_SITE_DIR = Path("site")
DEFAULT_MESSAGE = "Update {timestamp}"


class PublishOptions(BaseModel):
    """Options controlling how the Output Directory reaches the hosting branch.

    Attributes
    ----------
    push : bool
        ``True`` pushes the staged commit to the remote; ``False`` stages and
        commits in the local cache repository only, without network access.
    remote : str
        Remote name used inside the cache repository.
    remote_url : str | None
        URL of the remote. ``None`` reuses the project's URL for ``remote``.
    branch : str
        Hosting branch receiving the Output Directory.
    cache_dir : Path
        Cache repository used for staging, relative to the project root.
    message : str
        Commit message template; ``{timestamp}`` expands to an ISO-8601 UTC time.
    force : bool
        Force-push, replacing the remote branch history.
    timeout : float | None
        Seconds allowed for each git command.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    push: bool = True
    remote: str = Field(default="origin", min_length=1)
    remote_url: str | None = None
    branch: str = Field(default="gh-pages", min_length=1)
    cache_dir: Path = Path(".publish")
    message: str = Field(default=DEFAULT_MESSAGE, min_length=1)
    force: bool = False
    timeout: float | None = Field(default=None, gt=0)

    @field_validator("branch")
    @classmethod
    def _reject_ref_syntax(cls, value: str) -> str:
        if value.startswith("-") or value.startswith("refs/") or " " in value or ".." in value:
            message = f"Invalid branch name: {value!r}"
            raise ValueError(message)
        return value

    def render_message(self, now: datetime | None = None) -> str:
        """Return the commit message with ``{timestamp}`` expanded."""
        moment = now if now is not None else datetime.now(tz=UTC)
        return self.message.replace("{timestamp}", moment.isoformat(timespec="seconds"))


class DeploySettings(BaseSettings):
    """Environment-level configuration for the build and publish tasks."""

    model_config = SettingsConfigDict(
        env_prefix="DOCPUBLISH_", case_sensitive=False, extra="ignore"
    )

    project_root: Path = Field(default=Path(), description="Directory the generator runs in")
    site_dir: Path = Field(
        default=DEFAULT_SITE_DIR, description="Output Directory, relative to the project root"
    )
    build_command: Annotated[tuple[str, ...], NoDecode] = Field(
        default=DEFAULT_BUILD_COMMAND, description="Generator command line"
    )
    build_timeout: float | None = Field(default=None, gt=0)
    push: bool = True
    remote: str = "origin"
    remote_url: str | None = None
    branch: str = "gh-pages"
    cache_dir: Path = Path(".publish")
    message: str = DEFAULT_MESSAGE
    force: bool = False
    publish_timeout: float | None = Field(default=None, gt=0)

    @field_validator("build_command", mode="before")
    @classmethod
    def _split_command(cls, value: object) -> tuple[str, ...]:
        if isinstance(value, str):
            parts = tuple(shlex.split(value))
        elif isinstance(value, (list, tuple)):
            parts = tuple(str(part) for part in value)
        else:
            message = "build_command must be a string or a sequence of arguments"
            raise TypeError(message)
        if not parts:
            message = "build_command must not be empty"
            raise ValueError(message)
        return parts

    def resolved_site_dir(self) -> Path:
        """Return the Output Directory anchored at the project root."""
        if self.site_dir.is_absolute():
            return self.site_dir
        return self.project_root / self.site_dir

    def publish_options(self, **overrides: Any) -> PublishOptions:  # noqa: ANN401 - CLI overrides
        """Build validated :class:`PublishOptions`, applying non-``None`` overrides.

        Raises
        ------
        SettingsError
            When the merged options are invalid.
        """
        values: dict[str, Any] = {
            "push": self.push,
            "remote": self.remote,
            "remote_url": self.remote_url,
            "branch": self.branch,
            "cache_dir": self.cache_dir,
            "message": self.message,
            "force": self.force,
            "timeout": self.publish_timeout,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        try:
            return PublishOptions(**values)
        except ValidationError as exc:
            problem = build_problem_details(
                ProblemDetailsParams(
                    type=f"{PROBLEM_TYPE_BASE}/settings-invalid",
                    title="Invalid publish options",
                    status=400,
                    detail=str(exc),
                    instance="urn:settings:PublishOptions:invalid",
                    extensions={"fields": [".".join(map(str, err["loc"])) for err in exc.errors()]},
                )
            )
            message = "Invalid publish options"
            raise SettingsError(message, problem=problem, errors=()) from exc


def load_deploy_settings(**overrides: Any) -> DeploySettings:  # noqa: ANN401 - CLI overrides
    """Load :class:`DeploySettings` from the environment plus non-``None`` overrides."""
    explicit = {key: value for key, value in overrides.items() if value is not None}
    return load_settings(lambda: DeploySettings(**explicit))
