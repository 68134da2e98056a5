"""
Shared pytest fixtures.

``FakeInstrumentation`` stands in for the psutil probes so resource
readings are deterministic; ``FixedClock`` pins "now" for age-based
metric sweeps.
"""

from datetime import datetime, timedelta, timezone

import pytest

from mindvault.metrics import Platform
from mindvault.performance import PerformanceConfig, PerformanceMonitor
from mindvault.resources import BatteryReading, Instrumentation, NetworkReading


class FakeInstrumentation(Instrumentation):
    """Instrumentation whose readings are plain attributes tests can set."""

    def __init__(self):
        self._process = None
        self.total = 8 * 1024 ** 3
        self.used = 50 * 1024 ** 2
        self.cpu = 12.5
        self.gpu = None
        self.battery_reading: BatteryReading | None = BatteryReading(percent=90.0, plugged=True)
        self.network_reading: NetworkReading | None = NetworkReading(is_up=True, bandwidth_mbps=50.0)

    def total_memory(self):
        return self.total

    def used_memory(self):
        return self.used

    def cpu_percent(self):
        return self.cpu

    def gpu_percent(self):
        return self.gpu

    def battery(self):
        return self.battery_reading

    def network(self):
        return self.network_reading


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def instrumentation():
    return FakeInstrumentation()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def make_monitor(instrumentation, clock):
    """Factory: ``make_monitor(platform="mobile", enableBatteryOptimization=False)``."""

    def _make(platform: str = "desktop", session_provider=None, **options):
        config = PerformanceConfig.from_dict({"platform": Platform(platform), **options})
        return PerformanceMonitor(
            config,
            instrumentation=instrumentation,
            session_provider=session_provider,
            clock=clock,
        )

    return _make
