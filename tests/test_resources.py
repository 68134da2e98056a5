"""Tests for the hardware, memory, battery and network managers."""

import pytest

from mindvault.metrics import NetworkStatus, Platform
from mindvault.resources import (
    DEFAULT_TOTAL_MEMORY,
    BatteryManager,
    BatteryReading,
    ConnectionType,
    HardwareManager,
    MemoryManager,
    MemoryPressure,
    NetworkManager,
    NetworkReading,
    NullInstrumentation,
    OptimizationLevel,
    _guess_connection_type,
    _is_loopback,
    detect_platform,
    memory_pressure_for,
    optimization_level_for,
)


def test_null_instrumentation_gives_safe_defaults():
    inst = NullInstrumentation()
    mem = MemoryManager(inst).get_memory_manager()
    bat = BatteryManager(inst).get_battery_manager()
    net = NetworkManager(inst).get_network_manager()

    assert mem.total_memory == DEFAULT_TOTAL_MEMORY
    assert mem.used_memory == 0
    assert mem.memory_pressure is MemoryPressure.LOW
    assert bat.level == 100.0 and bat.charging is True and bat.discharging is False
    assert bat.time_remaining is None
    assert net.status is NetworkStatus.ONLINE
    assert net.connection_type is ConnectionType.UNKNOWN
    assert net.bandwidth == 0.0 and net.latency == 0.0


@pytest.mark.parametrize("percent, expected", [
    (10, MemoryPressure.LOW),
    (51, MemoryPressure.MEDIUM),
    (76, MemoryPressure.HIGH),
    (91, MemoryPressure.CRITICAL),
    (50, MemoryPressure.LOW),
])
def test_memory_pressure_levels(percent, expected):
    assert memory_pressure_for(percent, 100) is expected


def test_memory_refresh_overwrites_and_getter_copies(instrumentation):
    manager = MemoryManager(instrumentation)
    snap = manager.get_memory_manager()
    snap.used_memory = -1
    assert manager.used_memory == instrumentation.used

    instrumentation.used = int(instrumentation.total * 0.95)
    manager.refresh()
    current = manager.get_memory_manager()
    assert current.memory_pressure is MemoryPressure.CRITICAL
    assert current.optimization_suggestions
    assert current.available_memory == instrumentation.total - instrumentation.used


@pytest.mark.parametrize("level, expected", [
    (100, OptimizationLevel.NONE),
    (80, OptimizationLevel.NONE),
    (79, OptimizationLevel.LIGHT),
    (49, OptimizationLevel.MODERATE),
    (19, OptimizationLevel.AGGRESSIVE),
])
def test_battery_optimization_level(level, expected):
    assert optimization_level_for(level) is expected


def test_battery_discharging_reading(instrumentation):
    instrumentation.battery_reading = BatteryReading(percent=15.0, plugged=False, secs_left=1800)
    snap = BatteryManager(instrumentation).get_battery_manager()
    assert snap.level == 15.0
    assert snap.discharging is True
    assert snap.time_remaining == 1800
    assert snap.optimization_level is OptimizationLevel.AGGRESSIVE


@pytest.mark.parametrize("reading, status", [
    (NetworkReading(is_up=False), NetworkStatus.OFFLINE),
    (NetworkReading(is_up=True, bandwidth_mbps=1.0), NetworkStatus.SLOW),
    (NetworkReading(is_up=True, bandwidth_mbps=0.0), NetworkStatus.ONLINE),
    (NetworkReading(is_up=True, bandwidth_mbps=50.0), NetworkStatus.ONLINE),
    (NetworkReading(is_up=True, bandwidth_mbps=1000.0), NetworkStatus.FAST),
])
def test_network_status_mapping(instrumentation, reading, status):
    instrumentation.network_reading = reading
    manager = NetworkManager(instrumentation)
    assert manager.status is status
    assert manager.status_value() == status.numeric


def test_network_status_numeric_scale():
    assert [s.numeric for s in (
        NetworkStatus.OFFLINE, NetworkStatus.SLOW, NetworkStatus.ONLINE, NetworkStatus.FAST,
    )] == [0, 1, 2, 3]


def test_network_data_usage_tracks_growth(instrumentation):
    instrumentation.network_reading = NetworkReading(is_up=True, bytes_total=1000)
    manager = NetworkManager(instrumentation)
    instrumentation.network_reading = NetworkReading(is_up=True, bytes_total=4000)
    manager.refresh()
    usage = manager.get_network_manager().data_usage
    assert usage.total == 4000
    assert usage.today == 3000


def test_hardware_hook_failure_keeps_flag(instrumentation, caplog):
    def broken():
        raise RuntimeError("driver refused")

    manager = HardwareManager(instrumentation, enabled=True, on_disable=broken)
    manager.set_hardware_acceleration(False)
    assert manager.get_hardware_acceleration().enabled is False
    assert "hook failed" in caplog.text


def test_hardware_hooks_called(instrumentation):
    calls = []
    manager = HardwareManager(
        instrumentation, enabled=False,
        on_enable=lambda: calls.append("on"), on_disable=lambda: calls.append("off"),
    )
    manager.set_hardware_acceleration(True)
    manager.set_hardware_acceleration(False)
    assert calls == ["on", "off"]


@pytest.mark.parametrize("name, expected", [
    ("lo", True), ("lo0", True), ("Loopback Pseudo-Interface 1", True),
    ("eth0", False), ("wlan0", False), ("local0x", False),
])
def test_is_loopback(name, expected):
    assert _is_loopback(name) is expected


def test_guess_connection_type():
    assert _guess_connection_type("wlan0") is ConnectionType.WIFI
    assert _guess_connection_type("eth0") is ConnectionType.ETHERNET
    assert _guess_connection_type("rmnet_data0") is ConnectionType.CELLULAR
    assert _guess_connection_type("docker0") is ConnectionType.UNKNOWN


def test_detect_platform_returns_platform():
    assert isinstance(detect_platform(), Platform)
