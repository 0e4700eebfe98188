"""Structured logging helpers with correlation IDs.

Every module in :mod:`docpublish` obtains its logger through :func:`get_logger`.
Library loggers only carry a ``NullHandler``; the CLI installs the real handler
via :func:`setup_logging` at the application boundary.

Examples
--------
>>> from docpublish._shared.logging import get_logger, with_fields
>>> logger = get_logger(__name__)
>>> logger.info("Build started", extra={"operation": "mkdocs", "status": "started"})
>>> adapter = with_fields(logger, correlation_id="run-123", task="deploy")
>>> adapter.info("Publishing", extra={"file_count": 10})
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
from typing import TYPE_CHECKING, Any, Self, TextIO

if TYPE_CHECKING:
    from types import TracebackType

__all__ = [
    "CorrelationContext",
    "JsonFormatter",
    "LogValue",
    "LoggerAdapter",
    "StructuredLoggerAdapter",
    "get_correlation_id",
    "get_logger",
    "set_correlation_id",
    "setup_logging",
    "with_fields",
]

type LogValue = Any

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "docpublish_correlation_id", default=None
)

_STANDARD_RECORD_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
    }
)


class JsonFormatter(logging.Formatter):
    """Render log records as single-line JSON documents.

    The payload always carries ``ts``, ``level``, ``name`` and ``message``;
    structured fields passed through ``extra`` are appended when they are JSON
    friendly. The correlation id is taken from the context when the record does
    not carry one.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format ``record`` as JSON.

        Parameters
        ----------
        record : logging.LogRecord
            Record to render.

        Returns
        -------
        str
            JSON-encoded log entry.
        """
        data: dict[str, Any] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        if getattr(record, "correlation_id", None) is None:
            ctx_correlation_id = _correlation_id.get()
            if ctx_correlation_id is not None:
                data["correlation_id"] = ctx_correlation_id

        for key, value in record.__dict__.items():
            if (
                key not in _STANDARD_RECORD_ATTRS
                and key not in data
                and not key.startswith("_")
                and value is not None
                and isinstance(value, (str, int, float, bool, list, dict))
            ):
                data[key] = value

        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(data, default=str)


class LoggerAdapter(logging.LoggerAdapter):  # type: ignore[type-arg]
    """Logger adapter that injects bound fields and the correlation id.

    Fields bound at construction time (see :func:`with_fields`) are merged into
    every call's ``extra`` without overriding call-site values. ``operation``
    and ``status`` are always present; ``status`` is inferred from the level
    when missing.
    """

    logger: logging.Logger

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:  # noqa: ANN401 - logging API
        """Merge bound fields into ``kwargs["extra"]``.

        Returns
        -------
        tuple[Any, Any]
            The message and the updated keyword arguments.
        """
        extra = kwargs.setdefault("extra", {})
        if isinstance(self.extra, dict):
            for key, value in self.extra.items():
                extra.setdefault(key, value)

        if "correlation_id" not in extra:
            ctx_correlation_id = _correlation_id.get()
            if ctx_correlation_id is not None:
                extra["correlation_id"] = ctx_correlation_id

        extra.setdefault("operation", "unknown")
        return msg, kwargs

    def log(self, level: int, msg: object, *args: object, **kwargs: Any) -> None:  # noqa: ANN401
        """Log ``msg`` at ``level``, inferring ``status`` from the level."""
        extra = kwargs.setdefault("extra", {})
        if "status" not in extra:
            if level >= logging.ERROR:
                extra["status"] = "error"
            elif level >= logging.WARNING:
                extra["status"] = "warning"
            else:
                extra["status"] = "success"
        super().log(level, msg, *args, **kwargs)


StructuredLoggerAdapter = LoggerAdapter


def get_logger(name: str) -> LoggerAdapter:
    """Return a structured logger adapter for ``name``.

    Parameters
    ----------
    name : str
        Logger name (typically ``__name__``).

    Returns
    -------
    LoggerAdapter
        Adapter with an empty set of bound fields.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())
    return LoggerAdapter(logger, {})


def with_fields(logger: logging.Logger | LoggerAdapter, **fields: LogValue) -> LoggerAdapter:
    """Return an adapter that binds ``fields`` to every log call.

    Parameters
    ----------
    logger : logging.Logger | LoggerAdapter
        Base logger. When an adapter is given its underlying logger is reused
        and its previously bound fields are replaced.
    **fields : LogValue
        Structured fields to inject.

    Returns
    -------
    LoggerAdapter
        Adapter with ``fields`` bound.
    """
    base_logger = logger.logger if isinstance(logger, LoggerAdapter) else logger
    return LoggerAdapter(base_logger, fields)


def setup_logging(level: int = logging.INFO, *, stream: TextIO | None = None) -> None:
    """Configure the root logger with :class:`JsonFormatter`.

    Parameters
    ----------
    level : int, optional
        Logging threshold. Defaults to ``logging.INFO``.
    stream : TextIO | None, optional
        Destination stream. Defaults to ``sys.stderr`` so CLI output on stdout
        stays machine readable.
    """
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(JsonFormatter())
    logging.basicConfig(level=level, handlers=[handler], force=True)


def set_correlation_id(correlation_id: str | None) -> None:
    """Set the correlation id injected into subsequent log entries."""
    _correlation_id.set(correlation_id)


def get_correlation_id() -> str | None:
    """Return the correlation id from the current context, if any."""
    return _correlation_id.get()


class CorrelationContext:
    """Scope a correlation id to a ``with`` block.

    Examples
    --------
    >>> with CorrelationContext("run-123"):
    ...     get_logger(__name__).info("Inside run")
    """

    def __init__(self, correlation_id: str | None) -> None:
        self.correlation_id = correlation_id
        self._token: contextvars.Token[str | None] | None = None

    def __enter__(self) -> Self:
        self._token = _correlation_id.set(self.correlation_id)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._token is not None:
            _correlation_id.reset(self._token)
            self._token = None
