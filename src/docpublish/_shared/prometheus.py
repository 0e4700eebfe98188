"""Typed wrappers around Prometheus metric constructors.

Callers use :func:`build_counter` and :func:`build_histogram` and depend only on
the small :class:`CounterLike` and :class:`HistogramLike` protocols, so tests
can pass their own :class:`~prometheus_client.registry.CollectorRegistry`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from prometheus_client import Counter, Histogram
from prometheus_client.registry import REGISTRY, CollectorRegistry

if TYPE_CHECKING:
    from collections.abc import Sequence


class CounterLike(Protocol):
    """Subset of Prometheus counter behaviour relied on by docpublish."""

    def labels(self, **kwargs: object) -> CounterLike: ...

    def inc(self, amount: float = 1.0) -> None: ...


class HistogramLike(Protocol):
    """Subset of Prometheus histogram behaviour relied on by docpublish."""

    def labels(self, **kwargs: object) -> HistogramLike: ...

    def observe(self, amount: float) -> None: ...


def build_counter(
    name: str,
    documentation: str,
    labelnames: Sequence[str] | None = None,
    *,
    registry: CollectorRegistry | None = None,
) -> CounterLike:
    """Return a labelled counter registered in ``registry`` (default registry when omitted)."""
    return Counter(
        name,
        documentation,
        labelnames=tuple(labelnames or ()),
        registry=registry if registry is not None else REGISTRY,
    )


def build_histogram(
    name: str,
    documentation: str,
    labelnames: Sequence[str] | None = None,
    *,
    buckets: Sequence[float] | None = None,
    registry: CollectorRegistry | None = None,
) -> HistogramLike:
    """Return a labelled histogram registered in ``registry``."""
    if buckets is None:
        return Histogram(
            name,
            documentation,
            labelnames=tuple(labelnames or ()),
            registry=registry if registry is not None else REGISTRY,
        )
    return Histogram(
        name,
        documentation,
        labelnames=tuple(labelnames or ()),
        buckets=tuple(buckets),
        registry=registry if registry is not None else REGISTRY,
    )


__all__ = [
    "CollectorRegistry",
    "CounterLike",
    "HistogramLike",
    "build_counter",
    "build_histogram",
]
