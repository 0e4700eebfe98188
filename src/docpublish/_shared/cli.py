"""Typed CLI run envelopes.

A run envelope is the JSON document written by ``docpublish --envelope PATH``:
overall status, per-task outcomes, the files handed to the publisher and the
Problem Details of the failure, if any.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Literal

import msgspec
from msgspec import UNSET, Struct, UnsetType, structs

CliStatus = Literal["success", "error", "config"]
CliTaskStatus = Literal["succeeded", "failed", "skipped", "pending"]

CLI_ENVELOPE_SCHEMA_VERSION = "1.0.0"


def _default_generated_at() -> str:
    return datetime.now(tz=UTC).isoformat()


class CliTaskResult(Struct, kw_only=True):
    """Outcome of a single task inside a CLI run."""

    name: str
    status: CliTaskStatus
    duration_seconds: float = msgspec.field(default=0.0, name="durationSeconds")
    message: str | UnsetType = UNSET


class CliEnvelope(Struct, kw_only=True):
    """Serialisable summary of one CLI invocation."""

    schema_version: str = msgspec.field(default=CLI_ENVELOPE_SCHEMA_VERSION, name="schemaVersion")
    generated_at: str = msgspec.field(default_factory=_default_generated_at, name="generatedAt")
    status: CliStatus = "success"
    command: str = ""
    target: str = ""
    duration_seconds: float = msgspec.field(default=0.0, name="durationSeconds")
    tasks: list[CliTaskResult] = msgspec.field(default_factory=list)
    files: list[str] = msgspec.field(default_factory=list)
    problem: dict[str, Any] | UnsetType = UNSET


def render_cli_envelope(envelope: CliEnvelope, *, indent: int = 2) -> str:
    """Return ``envelope`` as indented JSON."""
    return msgspec.json.format(msgspec.json.encode(envelope), indent=indent).decode("utf-8")


def decode_cli_envelope(payload: str | bytes) -> CliEnvelope:
    """Parse and validate a rendered envelope."""
    return msgspec.json.decode(payload, type=CliEnvelope)


_SET_BUILDER_ATTR = object.__setattr__


@dataclass(slots=True, frozen=True)
class CliEnvelopeBuilder:
    """Fluent builder for assembling CLI envelopes."""

    envelope: CliEnvelope

    @classmethod
    def create(cls, *, command: str, target: str) -> CliEnvelopeBuilder:
        """Return a builder for a run of ``command`` targeting task ``target``."""
        return cls(CliEnvelope(command=command, target=target))

    def _swap(self, update: CliEnvelope) -> CliEnvelopeBuilder:
        _SET_BUILDER_ATTR(self, "envelope", update)
        return self

    def add_task(
        self,
        *,
        name: str,
        status: CliTaskStatus,
        duration_seconds: float = 0.0,
        message: str | None = None,
    ) -> CliEnvelopeBuilder:
        """Append a task outcome."""
        entry = CliTaskResult(
            name=name,
            status=status,
            duration_seconds=duration_seconds,
            message=message if message is not None else UNSET,
        )
        return self._swap(structs.replace(self.envelope, tasks=[*self.envelope.tasks, entry]))

    def set_files(self, files: list[str]) -> CliEnvelopeBuilder:
        """Record the files handed to the publisher."""
        return self._swap(structs.replace(self.envelope, files=list(files)))

    def set_problem(
        self, problem: dict[str, Any] | None, *, status: CliStatus = "error"
    ) -> CliEnvelopeBuilder:
        """Attach the failure's Problem Details and mark the run as failed."""
        if problem is None:
            return self._swap(structs.replace(self.envelope, problem=UNSET))
        return self._swap(structs.replace(self.envelope, problem=problem, status=status))

    def finish(self, *, duration_seconds: float | None = None) -> CliEnvelope:
        """Return the final envelope, stamped with ``duration_seconds`` when given."""
        if duration_seconds is None:
            return self.envelope
        return structs.replace(self.envelope, duration_seconds=float(duration_seconds))


__all__ = [
    "CLI_ENVELOPE_SCHEMA_VERSION",
    "CliEnvelope",
    "CliEnvelopeBuilder",
    "CliStatus",
    "CliTaskResult",
    "CliTaskStatus",
    "decode_cli_envelope",
    "render_cli_envelope",
]
