"""Problem Details helpers for RFC 9457 compliance.

Every error raised by :mod:`docpublish` carries one of these payloads so the CLI
can print a machine-readable description next to the human message.

Examples
--------
>>> problem = build_problem_details(
...     ProblemDetailsParams(
...         type=f"{PROBLEM_TYPE_BASE}/tool-failure",
...         title="Tool failed",
...         status=500,
...         detail="Command exited with code 1",
...         instance="urn:tool:git:exit-1",
...         extensions={"command": ["git", "push"], "returncode": 1},
...     )
... )
>>> assert "tool-failure" in render_problem(problem)
"""

# pylint: disable=redefined-builtin

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

__all__ = [
    "PROBLEM_TYPE_BASE",
    "JsonPrimitive",
    "JsonValue",
    "ProblemDetailsDict",
    "ProblemDetailsParams",
    "ToolProblemDetailsParams",
    "build_problem_details",
    "build_tool_problem_details",
    "coerce_optional_dict",
    "render_problem",
    "tool_disallowed_problem_details",
    "tool_failure_problem_details",
    "tool_missing_problem_details",
    "tool_timeout_problem_details",
]
__all__.sort()

PROBLEM_TYPE_BASE = "https://docpublish.dev/problems"

JsonPrimitive = str | int | float | bool | None
JsonValue = JsonPrimitive | list["JsonValue"] | dict[str, "JsonValue"]

ProblemDetailsDict = dict[str, JsonValue]


def coerce_optional_dict(
    mapping: Mapping[str, JsonValue] | None,
) -> dict[str, JsonValue] | None:
    """Return ``mapping`` as a ``dict`` when non-empty, otherwise ``None``."""
    if mapping is None:
        return None
    materialised = {str(key): value for key, value in mapping.items()}
    if not materialised:
        return None
    return materialised


@dataclass(frozen=True, slots=True)
class ProblemDetailsParams:
    """Core fields required to build a Problem Details payload."""

    type: str
    title: str
    status: int
    detail: str
    instance: str
    extensions: Mapping[str, JsonValue] | None = None


def build_problem_details(params: ProblemDetailsParams) -> ProblemDetailsDict:
    """Build an RFC 9457 Problem Details payload.

    Parameters
    ----------
    params : ProblemDetailsParams
        Structured fields describing the problem.

    Returns
    -------
    ProblemDetailsDict
        Payload with the five standard members followed by any extensions.
    """
    payload: ProblemDetailsDict = {
        "type": params.type,
        "title": params.title,
        "status": params.status,
        "detail": params.detail,
        "instance": params.instance,
    }
    extensions = coerce_optional_dict(params.extensions)
    if extensions:
        payload.update(extensions)
    return payload


@dataclass(frozen=True, slots=True)
class ToolProblemDetailsParams:
    """Inputs describing a subprocess-related failure."""

    category: str
    command: Sequence[str]
    status: int
    title: str
    detail: str
    instance_suffix: str
    extensions: Mapping[str, JsonValue] | None = None


def build_tool_problem_details(params: ToolProblemDetailsParams) -> ProblemDetailsDict:
    """Return a Problem Details payload describing a subprocess failure.

    The payload always carries the failing ``command``; the instance URI is
    derived from the executable's basename.

    Returns
    -------
    ProblemDetailsDict
        Problem Details payload.
    """
    command_list = [str(part) for part in params.command]
    tool_name = Path(command_list[0]).name if command_list else "<unknown>"
    merged_extensions: dict[str, JsonValue] = {"command": list(command_list)}
    additional_extensions = coerce_optional_dict(params.extensions)
    if additional_extensions:
        merged_extensions.update(additional_extensions)
    return build_problem_details(
        ProblemDetailsParams(
            type=f"{PROBLEM_TYPE_BASE}/{params.category}",
            title=params.title,
            status=params.status,
            detail=params.detail,
            instance=f"urn:tool:{tool_name}:{params.instance_suffix}",
            extensions=merged_extensions,
        )
    )


def tool_timeout_problem_details(
    command: Sequence[str],
    *,
    timeout: float | None,
) -> ProblemDetailsDict:
    """Return Problem Details describing a subprocess timeout."""
    if command and timeout is not None:
        detail = f"Command '{command[0]}' timed out after {timeout} seconds"
    elif command:
        detail = f"Command '{command[0]}' timed out"
    else:
        detail = "Command timed out"
    extensions: dict[str, JsonValue] = {}
    if timeout is not None:
        extensions["timeout"] = timeout
    return build_tool_problem_details(
        ToolProblemDetailsParams(
            category="tool-timeout",
            command=command,
            status=504,
            title="Tool execution timed out",
            detail=detail,
            instance_suffix="timeout",
            extensions=extensions,
        )
    )


def tool_missing_problem_details(
    command: Sequence[str],
    *,
    executable: str,
    detail: str,
) -> ProblemDetailsDict:
    """Return Problem Details describing an executable that cannot be found."""
    return build_tool_problem_details(
        ToolProblemDetailsParams(
            category="tool-missing",
            command=command or [executable],
            status=500,
            title="Executable not found",
            detail=detail,
            instance_suffix="missing",
        )
    )


def tool_disallowed_problem_details(
    command: Sequence[str],
    *,
    executable: Path,
    allowlist: Sequence[str],
) -> ProblemDetailsDict:
    """Return Problem Details describing an executable outside the allow list.

    Parameters
    ----------
    command : Sequence[str]
        Command that was rejected.
    executable : Path
        Resolved executable path.
    allowlist : Sequence[str]
        Configured allow-list patterns.

    Returns
    -------
    ProblemDetailsDict
        Problem Details payload.
    """
    return build_tool_problem_details(
        ToolProblemDetailsParams(
            category="tool-exec-disallowed",
            command=command,
            status=403,
            title="Executable not allowed",
            detail=(
                f"Executable '{executable.name}' is not permitted by the "
                "DOCPUBLISH_EXEC_ALLOWLIST setting"
            ),
            instance_suffix="disallowed",
            extensions={
                "executable": str(executable),
                "allowlist": list(allowlist),
            },
        )
    )


def tool_failure_problem_details(
    command: Sequence[str],
    *,
    returncode: int,
    detail: str,
) -> ProblemDetailsDict:
    """Return Problem Details describing a non-zero exit status."""
    return build_tool_problem_details(
        ToolProblemDetailsParams(
            category="tool-failure",
            command=command,
            status=500,
            title="Tool returned a non-zero exit code",
            detail=detail,
            instance_suffix=f"exit-{returncode}",
            extensions={"returncode": returncode},
        )
    )


def render_problem(problem: ProblemDetailsDict) -> str:
    """Render ``problem`` as a compact JSON string.

    Returns
    -------
    str
        JSON-encoded payload without a trailing newline.
    """
    return json.dumps(problem, default=str)
