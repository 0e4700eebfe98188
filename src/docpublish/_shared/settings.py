"""Typed settings helpers.

Settings classes are ``pydantic_settings.BaseSettings`` subclasses populated from
``DOCPUBLISH_*`` environment variables. :func:`load_settings` converts
validation failures into :class:`SettingsError` carrying Problem Details so the
CLI fails fast, before any task runs, with a structured explanation.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from fnmatch import fnmatch
from pathlib import Path
from typing import Annotated, Final

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from docpublish._shared.problem_details import (
    PROBLEM_TYPE_BASE,
    JsonValue,
    ProblemDetailsDict,
    ProblemDetailsParams,
    build_problem_details,
)

__all__: Final[list[str]] = [
    "SettingsError",
    "ToolRuntimeSettings",
    "get_runtime_settings",
    "load_settings",
    "reset_settings_cache",
]

DEFAULT_EXEC_ALLOWLIST: Final[tuple[str, ...]] = ("mkdocs", "git", "python*")


class SettingsError(RuntimeError):
    """Raised when typed settings fail validation."""

    def __init__(
        self,
        message: str,
        *,
        problem: ProblemDetailsDict,
        errors: Sequence[dict[str, JsonValue]],
    ) -> None:
        super().__init__(message)
        self.problem = problem
        self.errors: tuple[dict[str, JsonValue], ...] = tuple(errors)


_SETTINGS_CACHE: dict[str, ToolRuntimeSettings] = {}


def load_settings[SettingsT: BaseSettings](
    settings_factory: Callable[[], SettingsT] | type[SettingsT],
) -> SettingsT:
    """Instantiate settings via ``settings_factory`` with structured error handling.

    Parameters
    ----------
    settings_factory : Callable[[], SettingsT] | type[SettingsT]
        Zero-argument callable returning a ``BaseSettings`` instance.

    Returns
    -------
    SettingsT
        Validated settings instance.

    Raises
    ------
    SettingsError
        Raised when validation fails; the pydantic errors are attached.
    """
    try:
        return settings_factory()
    except ValidationError as exc:
        attr_name: object = getattr(settings_factory, "__name__", None)
        settings_name = (
            attr_name if isinstance(attr_name, str) else settings_factory.__class__.__name__
        )
        error_dicts = tuple(_as_error_dict(err) for err in exc.errors())
        problem = build_problem_details(
            ProblemDetailsParams(
                type=f"{PROBLEM_TYPE_BASE}/settings-invalid",
                title="Invalid docpublish settings",
                status=500,
                detail="Failed to load docpublish configuration",
                instance=f"urn:settings:{settings_name}:invalid",
                extensions={"errors": list(error_dicts), "settings_class": settings_name},
            )
        )
        message = f"Failed to load settings ({settings_name})"
        raise SettingsError(message, problem=problem, errors=error_dicts) from exc


class ToolRuntimeSettings(BaseSettings):
    """Runtime configuration for subprocess execution and instrumentation."""

    model_config = SettingsConfigDict(
        env_prefix="DOCPUBLISH_", case_sensitive=False, extra="ignore"
    )

    exec_allowlist: Annotated[tuple[str, ...], NoDecode] = Field(
        default=DEFAULT_EXEC_ALLOWLIST,
        description="Glob patterns for executables the process runner may spawn",
    )
    metrics_enabled: bool = Field(
        default=True,
        description="Record Prometheus metrics for subprocess and task runs",
    )
    tracing_enabled: bool = Field(
        default=True,
        description="Open OpenTelemetry spans around subprocess and task runs",
    )

    @field_validator("exec_allowlist", mode="before")
    @classmethod
    def _normalise_allowlist(cls, value: object) -> tuple[str, ...]:
        if value is None:
            return DEFAULT_EXEC_ALLOWLIST
        if isinstance(value, str):
            return tuple(part.strip() for part in value.split(",") if part.strip())
        if isinstance(value, (list, tuple, set)):
            return tuple(str(part).strip() for part in value if str(part).strip())
        message = "exec_allowlist must be a comma-separated string or sequence"
        raise TypeError(message)

    def is_allowed(self, executable: Path) -> bool:
        """Return ``True`` when ``executable`` matches the allow list.

        Absolute patterns must match the full path; other patterns are matched
        against the basename.
        """
        absolute = str(executable)
        for pattern in self.exec_allowlist:
            if Path(pattern).is_absolute() and absolute == pattern:
                return True
            if fnmatch(executable.name, pattern):
                return True
        return False


def get_runtime_settings() -> ToolRuntimeSettings:
    """Return the cached runtime settings, loading them on first use."""
    cached = _SETTINGS_CACHE.get("default")
    if cached is None:
        cached = load_settings(ToolRuntimeSettings)
        _SETTINGS_CACHE["default"] = cached
    return cached


def reset_settings_cache() -> None:
    """Forget cached settings so the next lookup re-reads the environment."""
    _SETTINGS_CACHE.clear()


def _as_error_dict(error: object) -> dict[str, JsonValue]:
    if isinstance(error, dict):
        return {str(key): _to_jsonable(value) for key, value in error.items()}
    return {"detail": _to_jsonable(error)}


def _to_jsonable(value: object) -> JsonValue:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, dict):
        return {str(key): _to_jsonable(val) for key, val in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_to_jsonable(item) for item in value]
    if isinstance(value, Path):
        return value.as_posix()
    return repr(value)
