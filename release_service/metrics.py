"""In-process metrics describing release activity."""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Dict, Optional, Sequence, Tuple

DURATION_BUCKETS: Tuple[float, ...] = (60, 150, 300, 450, 600, 750, 900, 1050, 1200, 1800, 3600)


class _Metric:
    def __init__(self, name: str, help: str, label_names: Sequence[str] = ()) -> None:
        self.name = name
        self.help = help
        self.label_names: Tuple[str, ...] = tuple(label_names)
        self._lock = threading.Lock()

    def _key(self, labels: Dict[str, str]) -> Tuple[str, ...]:
        if set(labels) != set(self.label_names):
            raise ValueError(
                f"metric {self.name!r} expects labels {sorted(self.label_names)}, "
                f"got {sorted(labels)}"
            )
        return tuple(str(labels[name]) for name in self.label_names)


class Gauge(_Metric):
    """A value that can go up and down."""

    def __init__(self, name: str, help: str) -> None:
        super().__init__(name, help)
        self._value = 0.0

    def inc(self) -> None:
        with self._lock:
            self._value += 1

    def dec(self) -> None:
        with self._lock:
            self._value -= 1

    def value(self) -> float:
        return self._value

    def reset(self) -> None:
        with self._lock:
            self._value = 0.0


class Counter(_Metric):
    """A monotonically increasing count, kept per label set."""

    def __init__(self, name: str, help: str, label_names: Sequence[str]) -> None:
        super().__init__(name, help, label_names)
        self._values: Dict[Tuple[str, ...], float] = {}

    def inc(self, **kwargs: str) -> None:
        key = self._key(kwargs)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + 1

    def value(self, **kwargs: str) -> float:
        return self._values.get(self._key(kwargs), 0.0)

    def reset(self) -> None:
        with self._lock:
            self._values.clear()


class _HistogramSeries:
    def __init__(self, size: int) -> None:
        self.buckets = [0] * size
        self.count = 0
        self.sum = 0.0


class Histogram(_Metric):
    """Observations sorted into cumulative buckets, kept per label set."""

    def __init__(
        self,
        name: str,
        help: str,
        label_names: Sequence[str],
        buckets: Sequence[float] = DURATION_BUCKETS,
    ) -> None:
        super().__init__(name, help, label_names)
        self.buckets: Tuple[float, ...] = tuple(sorted(float(b) for b in buckets))
        self._series: Dict[Tuple[str, ...], _HistogramSeries] = {}

    def observe(self, value: float, **kwargs: str) -> None:
        key = self._key(kwargs)
        with self._lock:
            series = self._series.setdefault(key, _HistogramSeries(len(self.buckets)))
            series.count += 1
            series.sum += value
            for position, bound in enumerate(self.buckets):
                if value <= bound:
                    series.buckets[position] += 1

    def count(self, **kwargs: str) -> int:
        series = self._series.get(self._key(kwargs))
        return series.count if series else 0

    def sum(self, **kwargs: str) -> float:
        series = self._series.get(self._key(kwargs))
        return series.sum if series else 0.0

    def bucket_counts(self, **kwargs: str) -> Dict[float, int]:
        """Return cumulative counts keyed by upper bound, including +Inf."""
        series = self._series.get(self._key(kwargs))
        if series is None:
            counts = dict.fromkeys(self.buckets, 0)
            counts[float("inf")] = 0
            return counts
        counts = dict(zip(self.buckets, series.buckets))
        counts[float("inf")] = series.count
        return counts

    def reset(self) -> None:
        with self._lock:
            self._series.clear()


RELEASE_CONCURRENT_TOTAL = Gauge(
    "release_concurrent_total", "Total number of concurrent release attempts"
)
RELEASE_CONCURRENT_DEPLOYMENTS_TOTAL = Gauge(
    "release_concurrent_deployments_total",
    "Total number of concurrent release deployment attempts",
)
RELEASE_CONCURRENT_POST_ACTIONS_EXECUTIONS_TOTAL = Gauge(
    "release_concurrent_post_actions_executions_total",
    "Total number of concurrent release post actions executions attempts",
)
RELEASE_CONCURRENT_PROCESSINGS_TOTAL = Gauge(
    "release_concurrent_processings_total",
    "Total number of concurrent release processing attempts",
)

RELEASE_DEPLOYMENT_DURATION_SECONDS = Histogram(
    "release_deployment_duration_seconds",
    "How long in seconds a Release deployment takes to complete",
    ("environment", "reason", "target"),
)
_RELEASE_LABELS = (
    "deployment_reason",
    "post_actions_reason",
    "processing_reason",
    "release_reason",
    "release_strategy",
    "target",
    "validation_reason",
)
RELEASE_DURATION_SECONDS = Histogram(
    "release_duration_seconds",
    "How long in seconds a Release takes to complete",
    _RELEASE_LABELS,
)
RELEASE_POST_ACTIONS_EXECUTION_DURATION_SECONDS = Histogram(
    "release_post_actions_execution_duration_seconds",
    "How long in seconds Release post-actions take to complete",
    ("reason",),
)
RELEASE_PROCESSING_DURATION_SECONDS = Histogram(
    "release_processing_duration_seconds",
    "How long in seconds a Release processing takes to complete",
    ("reason", "release_strategy", "target"),
)
RELEASE_TOTAL = Counter(
    "release_total",
    "Total number of releases reconciled by the operator",
    _RELEASE_LABELS,
)

REGISTRY = (
    RELEASE_CONCURRENT_TOTAL,
    RELEASE_CONCURRENT_DEPLOYMENTS_TOTAL,
    RELEASE_CONCURRENT_PROCESSINGS_TOTAL,
    RELEASE_CONCURRENT_POST_ACTIONS_EXECUTIONS_TOTAL,
    RELEASE_DEPLOYMENT_DURATION_SECONDS,
    RELEASE_DURATION_SECONDS,
    RELEASE_POST_ACTIONS_EXECUTION_DURATION_SECONDS,
    RELEASE_PROCESSING_DURATION_SECONDS,
    RELEASE_TOTAL,
)


def _elapsed(start_time: datetime, completion_time: datetime) -> float:
    return (completion_time - start_time).total_seconds()


def register_completed_release(
    start_time: Optional[datetime],
    completion_time: Optional[datetime],
    deployment_reason: str,
    post_actions_reason: str,
    processing_reason: str,
    release_reason: str,
    release_strategy: str,
    target: str,
    validation_reason: str,
) -> None:
    """Record a completed Release; does nothing if either time is missing."""
    if start_time is None or completion_time is None:
        return
    labels = {
        "deployment_reason": deployment_reason,
        "post_actions_reason": post_actions_reason,
        "processing_reason": processing_reason,
        "release_reason": release_reason,
        "release_strategy": release_strategy,
        "target": target,
        "validation_reason": validation_reason,
    }
    RELEASE_CONCURRENT_TOTAL.dec()
    RELEASE_DURATION_SECONDS.observe(_elapsed(start_time, completion_time), **labels)
    RELEASE_TOTAL.inc(**labels)


def register_completed_release_deployment(
    start_time: Optional[datetime],
    completion_time: Optional[datetime],
    environment: str,
    reason: str,
    target: str,
) -> None:
    """Record a completed deployment; does nothing if either time is missing."""
    if start_time is None or completion_time is None:
        return
    RELEASE_DEPLOYMENT_DURATION_SECONDS.observe(
        _elapsed(start_time, completion_time),
        environment=environment,
        reason=reason,
        target=target,
    )
    RELEASE_CONCURRENT_DEPLOYMENTS_TOTAL.dec()


def register_completed_release_post_actions_executed(
    start_time: Optional[datetime],
    completion_time: Optional[datetime],
    reason: str,
) -> None:
    """Record completed post-actions; does nothing if either time is missing."""
    if start_time is None or completion_time is None:
        return
    RELEASE_POST_ACTIONS_EXECUTION_DURATION_SECONDS.observe(
        _elapsed(start_time, completion_time), reason=reason
    )
    RELEASE_CONCURRENT_POST_ACTIONS_EXECUTIONS_TOTAL.dec()


def register_completed_release_processing(
    start_time: Optional[datetime],
    completion_time: Optional[datetime],
    reason: str,
    release_strategy: str,
    target: str,
) -> None:
    """Record a completed processing; does nothing if either time is missing."""
    if start_time is None or completion_time is None:
        return
    RELEASE_PROCESSING_DURATION_SECONDS.observe(
        _elapsed(start_time, completion_time),
        reason=reason,
        release_strategy=release_strategy,
        target=target,
    )
    RELEASE_CONCURRENT_PROCESSINGS_TOTAL.dec()


def register_new_release() -> None:
    RELEASE_CONCURRENT_TOTAL.inc()


def register_new_release_deployment() -> None:
    RELEASE_CONCURRENT_DEPLOYMENTS_TOTAL.inc()


def register_new_release_processing() -> None:
    RELEASE_CONCURRENT_PROCESSINGS_TOTAL.inc()


def register_new_release_post_actions_execution() -> None:
    RELEASE_CONCURRENT_POST_ACTIONS_EXECUTIONS_TOTAL.inc()


def reset_metrics() -> None:
    """Reset every registered metric to its initial state."""
    for metric in REGISTRY:
        metric.reset()