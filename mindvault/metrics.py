"""
Metric Store and Threshold Checker for Mind Vault.

Keeps timestamped performance samples (one per recorded operation:
rendering a page, parsing a book, running a search) in memory, keyed by
a generated id.  Retrieval always sorts newest-first; nothing is
persisted.  Threshold checks compare recent samples against per-type
limits and log warnings; they never raise.

Usage:
    store = MetricStore()
    store.add(metric)
    store.get_metrics(MetricType.RENDERING, limit=20)
    store.get_stats()
    store.clear_older_than(hours=24)
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Iterable

logger = logging.getLogger("mindvault.metrics")


# ── Enums ───────────────────────────────────────────────────────────

class MetricType(Enum):
    """Kind of operation a metric measures."""
    RENDERING = "rendering"
    PARSING = "parsing"
    LOADING = "loading"
    NAVIGATION = "navigation"
    SEARCH = "search"
    EXPORT = "export"
    SYNC = "sync"
    AI_REQUEST = "ai_request"


class Platform(Enum):
    WEB = "web"
    DESKTOP = "desktop"
    MOBILE = "mobile"
    TABLET = "tablet"


class NetworkStatus(Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    SLOW = "slow"
    FAST = "fast"

    @property
    def numeric(self) -> int:
        """Ordinal used by strategy conditions (offline=0 … fast=3)."""
        return _NETWORK_STATUS_VALUES[self]


_NETWORK_STATUS_VALUES = {
    NetworkStatus.OFFLINE: 0,
    NetworkStatus.SLOW: 1,
    NetworkStatus.ONLINE: 2,
    NetworkStatus.FAST: 3,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Dataclasses ─────────────────────────────────────────────────────

@dataclass
class Metric:
    """One observed performance event plus the resource state at that moment."""

    metric_type: MetricType
    duration: float
    metric_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    platform: Platform = Platform.DESKTOP
    timestamp: datetime = field(default_factory=_utcnow)
    memory_usage: int = 0
    cpu_usage: float = 0.0
    gpu_usage: float = 0.0
    battery_level: float = 100.0
    network_status: NetworkStatus = NetworkStatus.ONLINE
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric_id": self.metric_id,
            "type": self.metric_type.value,
            "platform": self.platform.value,
            "timestamp": self.timestamp.isoformat(),
            "duration": self.duration,
            "memory_usage": self.memory_usage,
            "cpu_usage": round(self.cpu_usage, 1),
            "gpu_usage": round(self.gpu_usage, 1),
            "battery_level": round(self.battery_level, 1),
            "network_status": self.network_status.value,
            "context": dict(self.context),
        }


@dataclass
class Threshold:
    """Per-type performance limit. ``max_memory_usage`` of None means unchecked."""

    max_duration: float
    max_memory_usage: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_duration": self.max_duration,
            "max_memory_usage": self.max_memory_usage,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Threshold":
        """Raises ValueError unless ``data`` is an object with a numeric max duration."""
        if not isinstance(data, dict):
            raise ValueError(f"Threshold must be an object, got {data!r}")
        max_duration = data.get("max_duration", data.get("maxDuration"))
        max_memory = data.get("max_memory_usage", data.get("maxMemoryUsage"))
        if isinstance(max_duration, bool) or not isinstance(max_duration, (int, float)):
            raise ValueError(f"Threshold needs a numeric max_duration, got {max_duration!r}")
        if max_memory is not None and (isinstance(max_memory, bool) or not isinstance(max_memory, int)):
            raise ValueError(f"Threshold max_memory_usage must be an integer, got {max_memory!r}")
        return cls(max_duration=max_duration, max_memory_usage=max_memory)


@dataclass
class PerformanceStats:
    """Aggregate over a set of metrics. All zero when the set is empty."""

    average_duration: float = 0.0
    max_duration: float = 0.0
    min_duration: float = 0.0
    count: int = 0
    avg_memory: float = 0.0
    avg_cpu: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "average_duration": round(self.average_duration, 3),
            "max_duration": self.max_duration,
            "min_duration": self.min_duration,
            "count": self.count,
            "avg_memory": round(self.avg_memory, 1),
            "avg_cpu": round(self.avg_cpu, 1),
        }


@dataclass
class ThresholdViolation:
    """A metric that exceeded its configured duration or memory limit."""

    metric_id: str
    metric_type: MetricType
    kind: str        # "duration" | "memory"
    value: float
    limit: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric_id": self.metric_id,
            "type": self.metric_type.value,
            "kind": self.kind,
            "value": self.value,
            "limit": self.limit,
        }


# ── Defaults ────────────────────────────────────────────────────────

_MB = 1024 * 1024

DEFAULT_PERFORMANCE_THRESHOLDS: dict[MetricType, Threshold] = {
    MetricType.RENDERING: Threshold(max_duration=16, max_memory_usage=100 * _MB),     # 60fps
    MetricType.PARSING: Threshold(max_duration=2000, max_memory_usage=500 * _MB),
    MetricType.LOADING: Threshold(max_duration=3000, max_memory_usage=200 * _MB),
    MetricType.NAVIGATION: Threshold(max_duration=100),
    MetricType.SEARCH: Threshold(max_duration=500, max_memory_usage=50 * _MB),
    MetricType.EXPORT: Threshold(max_duration=5000, max_memory_usage=100 * _MB),
    MetricType.SYNC: Threshold(max_duration=10000, max_memory_usage=50 * _MB),
    MetricType.AI_REQUEST: Threshold(max_duration=30000, max_memory_usage=100 * _MB),
}


def default_thresholds() -> dict[MetricType, Threshold]:
    """Fresh copy of the default thresholds (safe to mutate)."""
    return {
        t: Threshold(th.max_duration, th.max_memory_usage)
        for t, th in DEFAULT_PERFORMANCE_THRESHOLDS.items()
    }


def parse_thresholds(data: dict[str, Any]) -> dict[MetricType, Threshold]:
    """Build a thresholds map from ``{"rendering": {"max_duration": 16}, ...}``.

    Unknown metric types are skipped with a warning.  Raises ValueError
    when ``data`` or one of its entries is malformed.
    """
    if not isinstance(data, dict):
        raise ValueError(f"Thresholds must be an object, got {data!r}")
    out: dict[MetricType, Threshold] = {}
    for key, value in data.items():
        if isinstance(value, Threshold):
            threshold = value
        else:
            threshold = Threshold.from_dict(value)
        try:
            metric_type = key if isinstance(key, MetricType) else MetricType(key)
        except ValueError:
            logger.warning("Ignoring threshold for unknown metric type '%s'", key)
            continue
        out[metric_type] = threshold
    return out


def coerce_metric_type(value: MetricType | str) -> MetricType:
    """Accept a MetricType or its string value. Raises ValueError if unknown."""
    if isinstance(value, MetricType):
        return value
    try:
        return MetricType(value)
    except ValueError:
        raise ValueError(f"Unknown metric type: {value!r}") from None


# ── MetricStore ─────────────────────────────────────────────────────

class MetricStore:
    """In-memory metric collection keyed by metric id.

    Args:
        clock: Callable returning the current aware UTC datetime.  Used
               for age-based sweeps; injectable for tests.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None):
        self._metrics: dict[str, Metric] = {}
        self._clock = clock or _utcnow

    def add(self, metric: Metric) -> str:
        self._metrics[metric.metric_id] = metric
        return metric.metric_id

    def get(self, metric_id: str) -> Metric | None:
        return self._metrics.get(metric_id)

    def get_metrics(
        self,
        metric_type: MetricType | str | None = None,
        limit: int = 100,
    ) -> list[Metric]:
        """Return up to ``limit`` metrics, newest first.

        The returned list is a fresh copy; mutating it never touches
        the store.
        """
        metrics = self._filtered(metric_type)
        metrics.sort(key=lambda m: m.timestamp, reverse=True)
        return metrics[:max(limit, 0)]

    def get_stats(self, metric_type: MetricType | str | None = None) -> PerformanceStats:
        """Aggregate duration, memory and CPU over every matching metric.

        Covers the whole stored set, not only the newest ``limit`` that
        ``get_metrics`` returns, so counts match ``len(store)``.
        """
        metrics = self._filtered(metric_type)
        if not metrics:
            return PerformanceStats()

        count = len(metrics)
        durations = [m.duration for m in metrics]
        return PerformanceStats(
            average_duration=sum(durations) / count,
            max_duration=max(durations),
            min_duration=min(durations),
            count=count,
            avg_memory=sum(m.memory_usage for m in metrics) / count,
            avg_cpu=sum(m.cpu_usage or 0.0 for m in metrics) / count,
        )

    def clear_older_than(self, hours: float) -> int:
        """Delete metrics recorded at or before ``now - hours``.

        ``hours=0`` clears everything.  Returns the number removed.
        """
        cutoff = self._clock() - timedelta(hours=hours)
        stale = [mid for mid, m in self._metrics.items() if m.timestamp <= cutoff]
        for mid in stale:
            del self._metrics[mid]
        if stale:
            logger.info("Cleared %d metric(s) older than %sh", len(stale), hours)
        return len(stale)

    def clear(self) -> None:
        self._metrics.clear()

    def __len__(self) -> int:
        return len(self._metrics)

    def _filtered(self, metric_type: MetricType | str | None) -> list[Metric]:
        if metric_type is None:
            return list(self._metrics.values())
        wanted = coerce_metric_type(metric_type)
        return [m for m in self._metrics.values() if m.metric_type == wanted]


# ── ThresholdChecker ────────────────────────────────────────────────

class ThresholdChecker:
    """Compares metrics against per-type limits.

    Violations are logged as warnings and returned as an
    observability signal, not enforcement.
    """

    def __init__(self, thresholds: dict[MetricType, Threshold] | None = None):
        self.thresholds = thresholds if thresholds is not None else default_thresholds()

    def check(self, metrics: Iterable[Metric]) -> list[ThresholdViolation]:
        violations: list[ThresholdViolation] = []
        for metric in metrics:
            threshold = self.thresholds.get(metric.metric_type)
            if threshold is None:
                continue

            if metric.duration > threshold.max_duration:
                logger.warning(
                    "Performance threshold exceeded for %s: %sms > %sms",
                    metric.metric_type.value, metric.duration, threshold.max_duration,
                )
                violations.append(ThresholdViolation(
                    metric_id=metric.metric_id,
                    metric_type=metric.metric_type,
                    kind="duration",
                    value=metric.duration,
                    limit=threshold.max_duration,
                ))

            if (threshold.max_memory_usage is not None
                    and metric.memory_usage > threshold.max_memory_usage):
                logger.warning(
                    "Memory threshold exceeded for %s: %d bytes > %d bytes",
                    metric.metric_type.value, metric.memory_usage,
                    threshold.max_memory_usage,
                )
                violations.append(ThresholdViolation(
                    metric_id=metric.metric_id,
                    metric_type=metric.metric_type,
                    kind="memory",
                    value=metric.memory_usage,
                    limit=threshold.max_memory_usage,
                ))
        return violations
