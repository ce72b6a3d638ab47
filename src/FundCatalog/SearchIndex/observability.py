"""
In-process metrics and timing spans for catalog ingestion and search.

The ingestion drivers, the checkpointed loader and the query engine share one
:class:`Observability` facade. It owns a :class:`MetricsCollector` holding
labelled counters (records indexed, skipped and failed, search requests) and
latency observations (search time, traced operations), together with the
package logger that receives the structured ``fundsearch-trace`` events.
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from threading import Lock
from typing import Dict, Iterator, List, Mapping, MutableMapping, Optional, Tuple

__all__ = (
    "CounterSample",
    "LatencySummary",
    "MetricsCollector",
    "Observability",
)

_LabelKey = Tuple[str, Tuple[Tuple[str, str], ...]]


def _key(name: str, labels: Mapping[str, str]) -> _LabelKey:
    return name, tuple(sorted(labels.items()))


@dataclass(frozen=True)
class CounterSample:
    """Current value of one labelled counter, e.g. ``catalog_records_indexed{mode=live}``."""

    name: str
    labels: Mapping[str, str]
    value: float


@dataclass(frozen=True)
class LatencySummary:
    """Summary of the millisecond observations recorded under one labelled name.

    Attributes:
        name: Metric name such as ``search_latency_ms`` or ``trace_loader_batch_ms``.
        labels: Label dimensions, e.g. ``{"mode": "browse"}``.
        count: Number of observations.
        p50: Median observation.
        max: Slowest observation.
    """

    name: str
    labels: Mapping[str, str]
    count: int
    p50: float
    max: float


class MetricsCollector:
    """Thread-safe store of counters and latency observations.

    Examples:
        >>> collector = MetricsCollector()
        >>> collector.increment("search_requests", mode="text")
        >>> collector.counter_value("search_requests", mode="text")
        1.0
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._counters: MutableMapping[_LabelKey, float] = defaultdict(float)
        self._latencies: MutableMapping[_LabelKey, List[float]] = defaultdict(list)

    def increment(self, name: str, amount: float = 1.0, **labels: str) -> None:
        with self._lock:
            self._counters[_key(name, labels)] += amount

    def observe(self, name: str, value_ms: float, **labels: str) -> None:
        with self._lock:
            self._latencies[_key(name, labels)].append(value_ms)

    def counter_value(self, name: str, **labels: str) -> float:
        """Return the current value of a counter (0.0 when never incremented)."""

        with self._lock:
            return self._counters.get(_key(name, labels), 0.0)

    def counters(self) -> List[CounterSample]:
        with self._lock:
            items = list(self._counters.items())
        return [CounterSample(name=name, labels=dict(labels), value=value) for (name, labels), value in items]

    def latencies(self) -> List[LatencySummary]:
        with self._lock:
            items = [(key, sorted(samples)) for key, samples in self._latencies.items() if samples]
        return [
            LatencySummary(
                name=name,
                labels=dict(labels),
                count=len(samples),
                p50=samples[(len(samples) - 1) // 2],
                max=samples[-1],
            )
            for (name, labels), samples in items
        ]


class Observability:
    """Facade bundling the metrics collector and the package logger.

    Examples:
        >>> obs = Observability()
        >>> with obs.trace("search", mode="text"):
        ...     pass
        >>> obs.metrics_snapshot()["latencies"][0]["name"]
        'trace_search_ms'
    """

    def __init__(self, *, logger: Optional[logging.Logger] = None) -> None:
        self._metrics = MetricsCollector()
        self._logger = logger or logging.getLogger("FundCatalog.SearchIndex")

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    @contextmanager
    def trace(self, name: str, **attributes: str) -> Iterator[None]:
        """Time the enclosed block as ``trace_<name>_ms`` and log a ``fundsearch-trace`` event.

        Exceptions raised inside the block propagate; the span is recorded
        with ``status="error"``.
        """
        start = time.perf_counter()
        status = "error"
        try:
            yield
            status = "ok"
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            self._metrics.observe(f"trace_{name}_ms", duration_ms, **attributes)
            payload = {"span": name, "duration_ms": round(duration_ms, 3), "status": status}
            payload.update(attributes)
            self._logger.debug("fundsearch-trace", extra={"event": payload})

    def metrics_snapshot(self) -> Dict[str, List[Dict[str, object]]]:
        """Return counters and latency summaries as JSON-ready dictionaries."""

        return {
            "counters": [asdict(sample) for sample in self._metrics.counters()],
            "latencies": [asdict(summary) for summary in self._metrics.latencies()],
        }
