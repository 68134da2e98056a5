"""Tests for the metric store and threshold checker."""

import logging
from datetime import timedelta

import pytest

from mindvault.metrics import (
    Metric,
    MetricStore,
    MetricType,
    PerformanceStats,
    Threshold,
    ThresholdChecker,
    default_thresholds,
    parse_thresholds,
)

MB = 1024 * 1024


def _metric(clock, metric_type=MetricType.RENDERING, duration=10.0, age_hours=0, **kw):
    return Metric(
        metric_type=metric_type,
        duration=duration,
        timestamp=clock() - timedelta(hours=age_hours),
        **kw,
    )


def test_get_metrics_filters_by_type_newest_first(clock):
    store = MetricStore(clock)
    ages = [5, 1, 3, 0.5]
    for age in ages:
        store.add(_metric(clock, MetricType.RENDERING, age_hours=age))
    store.add(_metric(clock, MetricType.SEARCH, age_hours=0.1))

    rendering = store.get_metrics(MetricType.RENDERING)
    assert [m.metric_type for m in rendering] == [MetricType.RENDERING] * 4
    stamps = [m.timestamp for m in rendering]
    assert stamps == sorted(stamps, reverse=True)

    # string form of the type works the same way
    assert [m.metric_id for m in store.get_metrics("rendering")] == [m.metric_id for m in rendering]


def test_get_metrics_limit_and_copy(clock):
    store = MetricStore(clock)
    for i in range(5):
        store.add(_metric(clock, age_hours=i))
    page = store.get_metrics(limit=2)
    assert len(page) == 2
    page.clear()
    assert len(store) == 5


def test_unknown_metric_type_raises(clock):
    store = MetricStore(clock)
    with pytest.raises(ValueError):
        store.get_metrics("teleport")


def test_stats_empty_is_all_zero(clock):
    stats = MetricStore(clock).get_stats()
    assert stats == PerformanceStats()
    assert stats.count == 0
    assert stats.average_duration == 0.0


def test_stats_aggregate_full_filtered_set(clock):
    store = MetricStore(clock)
    for d in (10, 20, 30):
        store.add(_metric(clock, duration=d, memory_usage=100, cpu_usage=10.0))
    store.add(_metric(clock, MetricType.PARSING, duration=1000))

    stats = store.get_stats(MetricType.RENDERING)
    assert stats.count == 3
    assert stats.average_duration == 20
    assert stats.min_duration == 10
    assert stats.max_duration == 30
    assert stats.avg_memory == 100
    assert stats.avg_cpu == 10.0


def test_stats_not_limited_to_one_page(clock):
    store = MetricStore(clock)
    for i in range(150):
        store.add(_metric(clock, duration=1.0))
    assert store.get_stats().count == 150


def test_clear_older_than_zero_clears_all(clock):
    store = MetricStore(clock)
    for age in (0, 1, 30):
        store.add(_metric(clock, age_hours=age))
    assert store.clear_older_than(0) == 3
    assert len(store) == 0


def test_clear_older_than_24_keeps_recent(clock):
    store = MetricStore(clock)
    fresh = store.add(_metric(clock, age_hours=2))
    store.add(_metric(clock, age_hours=25))
    store.add(_metric(clock, age_hours=48))

    assert store.clear_older_than(24) == 2
    assert [m.metric_id for m in store.get_metrics()] == [fresh]


def test_threshold_checker_reports_and_logs(clock, caplog):
    checker = ThresholdChecker()
    slow = _metric(clock, MetricType.RENDERING, duration=40, memory_usage=150 * MB)
    fine = _metric(clock, MetricType.RENDERING, duration=5)

    with caplog.at_level(logging.WARNING, logger="mindvault.metrics"):
        violations = checker.check([slow, fine])

    assert {(v.kind, v.metric_id) for v in violations} == {
        ("duration", slow.metric_id),
        ("memory", slow.metric_id),
    }
    assert "Performance threshold exceeded for rendering" in caplog.text


def test_threshold_without_memory_limit_skips_memory(clock):
    checker = ThresholdChecker()
    nav = _metric(clock, MetricType.NAVIGATION, duration=50, memory_usage=10_000 * MB)
    assert checker.check([nav]) == []


def test_type_without_threshold_is_skipped(clock):
    checker = ThresholdChecker({MetricType.SEARCH: Threshold(max_duration=1)})
    assert checker.check([_metric(clock, MetricType.RENDERING, duration=10_000)]) == []


def test_default_thresholds_are_fresh_copies():
    a = default_thresholds()
    a[MetricType.RENDERING].max_duration = 1
    assert default_thresholds()[MetricType.RENDERING].max_duration == 16


def test_parse_thresholds_accepts_camel_case_and_skips_unknown():
    parsed = parse_thresholds({
        "search": {"maxDuration": 250, "maxMemoryUsage": 10},
        "hologram": {"max_duration": 1},
    })
    assert list(parsed) == [MetricType.SEARCH]
    assert parsed[MetricType.SEARCH] == Threshold(max_duration=250, max_memory_usage=10)


@pytest.mark.parametrize("data", [
    {"rendering": 5},
    {"rendering": {"maxMemoryUsage": 10}},
    {"rendering": {"max_duration": "fast"}},
    ["rendering"],
])
def test_malformed_thresholds_raise_value_error(data):
    with pytest.raises(ValueError):
        parse_thresholds(data)


def test_metric_to_dict_is_json_safe(clock):
    d = _metric(clock, context={"page": 3}).to_dict()
    assert d["type"] == "rendering"
    assert d["network_status"] == "online"
    assert d["timestamp"].endswith("+00:00")
