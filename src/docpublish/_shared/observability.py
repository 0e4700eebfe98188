"""OpenTelemetry span helpers.

Spans are emitted through the global tracer provider. Without an SDK configured
the API hands out non-recording spans, so instrumentation is always safe to call.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

TRACER_NAME = "docpublish"


@contextmanager
def start_span(
    name: str,
    attributes: Mapping[str, str | int | float | bool] | None = None,
) -> Iterator[None]:
    """Open a span named ``name`` for the duration of the ``with`` block.

    Exceptions raised inside the block are recorded on the span, which is marked
    as errored, and then re-raised.
    """
    tracer = trace.get_tracer(TRACER_NAME)
    with tracer.start_as_current_span(
        name, record_exception=False, set_status_on_exception=False
    ) as span:
        if attributes:
            for key, value in attributes.items():
                span.set_attribute(key, value)
        try:
            yield
        except Exception as exc:
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            raise


__all__ = ["TRACER_NAME", "start_span"]
