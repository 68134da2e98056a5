"""
Resource Managers: hardware, memory, battery and network snapshots.

Each manager holds exactly one live snapshot of its resource dimension.
``refresh()`` overwrites the snapshot in place from platform
instrumentation (psutil); getters hand out copies so callers can never
mutate the live record.

Platform instrumentation is optional.  Every probe returns ``None`` when
the reading is unavailable (no battery sensor, no network interfaces,
access denied) and the managers substitute conservative defaults: full
battery, online network, zero CPU/GPU usage, 1 GiB total memory.
"""

import copy
import gc
import logging
import os
import sys
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Callable

import psutil

from mindvault.metrics import NetworkStatus, Platform

logger = logging.getLogger("mindvault.resources")


# ── Constants ───────────────────────────────────────────────────────

DEFAULT_TOTAL_MEMORY = 1024 * 1024 * 1024      # 1 GiB
DEFAULT_BATTERY_LEVEL = 100.0
SLOW_LINK_MBPS = 1                             # at or below → "slow"
FAST_LINK_MBPS = 100                           # at or above → "fast"

_PSUTIL_ERRORS = (psutil.Error, NotImplementedError, OSError, AttributeError)


# ── Enums ───────────────────────────────────────────────────────────

class MemoryPressure(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class PowerMode(Enum):
    PERFORMANCE = "performance"
    BALANCED = "balanced"
    POWER_SAVER = "power_saver"


class OptimizationLevel(Enum):
    NONE = "none"
    LIGHT = "light"
    MODERATE = "moderate"
    AGGRESSIVE = "aggressive"


class ConnectionType(Enum):
    WIFI = "wifi"
    CELLULAR = "cellular"
    ETHERNET = "ethernet"
    BLUETOOTH = "bluetooth"
    UNKNOWN = "unknown"


# ── Probe results ───────────────────────────────────────────────────

@dataclass
class BatteryReading:
    percent: float
    plugged: bool
    secs_left: int | None = None


@dataclass
class NetworkReading:
    is_up: bool
    connection_type: ConnectionType = ConnectionType.UNKNOWN
    bandwidth_mbps: float = 0.0
    bytes_total: int = 0


# ── Instrumentation ─────────────────────────────────────────────────

class Instrumentation:
    """Platform probes backed by psutil.

    Each method returns ``None`` when the platform cannot supply the
    reading.  Nothing here raises.
    """

    def __init__(self):
        try:
            self._process = psutil.Process(os.getpid())
        except _PSUTIL_ERRORS:
            self._process = None

    def total_memory(self) -> int | None:
        try:
            return psutil.virtual_memory().total
        except _PSUTIL_ERRORS:
            return None

    def used_memory(self) -> int | None:
        """Resident set size of this process, in bytes."""
        if self._process is None:
            return None
        try:
            return self._process.memory_info().rss
        except _PSUTIL_ERRORS:
            return None

    def cpu_percent(self) -> float | None:
        try:
            # interval=None is non-blocking: usage since the previous call
            return psutil.cpu_percent(interval=None)
        except _PSUTIL_ERRORS:
            return None

    def gpu_percent(self) -> float | None:
        # No portable GPU utilisation API
        return None

    def gpu_available(self) -> bool | None:
        return None

    def battery(self) -> BatteryReading | None:
        try:
            reading = psutil.sensors_battery()
        except _PSUTIL_ERRORS:
            return None
        if reading is None:
            return None

        secs_left = reading.secsleft
        if secs_left in (psutil.POWER_TIME_UNLIMITED, psutil.POWER_TIME_UNKNOWN):
            secs_left = None
        return BatteryReading(
            percent=float(reading.percent),
            plugged=bool(reading.power_plugged),
            secs_left=secs_left,
        )

    def network(self) -> NetworkReading | None:
        try:
            stats = psutil.net_if_stats()
        except _PSUTIL_ERRORS:
            return None

        if not stats:
            return None
        up = {
            name: s for name, s in stats.items()
            if s.isup and not _is_loopback(name)
        }

        bytes_total = 0
        try:
            counters = psutil.net_io_counters()
            if counters is not None:
                bytes_total = counters.bytes_sent + counters.bytes_recv
        except _PSUTIL_ERRORS:
            pass

        if not up:
            return NetworkReading(is_up=False, bytes_total=bytes_total)

        name, primary = max(up.items(), key=lambda kv: kv[1].speed)
        return NetworkReading(
            is_up=True,
            connection_type=_guess_connection_type(name),
            bandwidth_mbps=float(primary.speed or 0),
            bytes_total=bytes_total,
        )


class NullInstrumentation(Instrumentation):
    """Instrumentation that never has a reading; every manager falls back
    to its safe defaults."""

    def __init__(self):
        self._process = None

    def total_memory(self):
        return None

    def used_memory(self):
        return None

    def cpu_percent(self):
        return None

    def battery(self):
        return None

    def network(self):
        return None


def _is_loopback(name: str) -> bool:
    if name == "lo" or "loopback" in name.lower():
        return True
    return name.startswith("lo") and name[2:].isdigit()


def _guess_connection_type(name: str) -> ConnectionType:
    lowered = name.lower()
    if lowered.startswith(("wlan", "wl", "wi-fi", "wifi", "airport")):
        return ConnectionType.WIFI
    if lowered.startswith(("wwan", "rmnet", "ccmni", "pdp_ip")):
        return ConnectionType.CELLULAR
    if lowered.startswith(("bnep", "bt", "bluetooth")):
        return ConnectionType.BLUETOOTH
    if lowered.startswith(("eth", "en", "ethernet")):
        return ConnectionType.ETHERNET
    return ConnectionType.UNKNOWN


def detect_platform() -> Platform:
    """Map the host OS to a Platform. Android/iOS interpreters are mobile."""
    if sys.platform in ("android", "ios") or hasattr(sys, "getandroidapilevel"):
        return Platform.MOBILE
    return Platform.DESKTOP


def _or_default(value, default):
    return default if value is None else value


# ── Snapshots ───────────────────────────────────────────────────────

@dataclass
class HardwareAcceleration:
    enabled: bool = True
    gpu_acceleration: bool = False
    video_acceleration: bool = False
    audio_acceleration: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "gpu_acceleration": self.gpu_acceleration,
            "video_acceleration": self.video_acceleration,
            "audio_acceleration": self.audio_acceleration,
        }


@dataclass
class MemorySnapshot:
    total_memory: int = DEFAULT_TOTAL_MEMORY
    used_memory: int = 0
    available_memory: int = DEFAULT_TOTAL_MEMORY
    memory_pressure: MemoryPressure = MemoryPressure.LOW
    gc_frequency: int = 0
    memory_leaks: list[dict[str, Any]] = field(default_factory=list)
    optimization_suggestions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_memory": self.total_memory,
            "used_memory": self.used_memory,
            "available_memory": self.available_memory,
            "memory_pressure": self.memory_pressure.value,
            "gc_frequency": self.gc_frequency,
            "memory_leaks": list(self.memory_leaks),
            "optimization_suggestions": list(self.optimization_suggestions),
        }


@dataclass
class BatterySnapshot:
    level: float = DEFAULT_BATTERY_LEVEL
    charging: bool = True
    discharging: bool = False
    time_remaining: int | None = None
    power_mode: PowerMode = PowerMode.BALANCED
    optimization_level: OptimizationLevel = OptimizationLevel.NONE

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": round(self.level, 1),
            "charging": self.charging,
            "discharging": self.discharging,
            "time_remaining": self.time_remaining,
            "power_mode": self.power_mode.value,
            "optimization_level": self.optimization_level.value,
        }


@dataclass
class DataUsage:
    total: int = 0
    today: int = 0
    this_month: int = 0
    by_feature: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "today": self.today,
            "this_month": self.this_month,
            "by_feature": dict(self.by_feature),
        }


@dataclass
class NetworkSnapshot:
    status: NetworkStatus = NetworkStatus.ONLINE
    connection_type: ConnectionType = ConnectionType.UNKNOWN
    bandwidth: float = 0.0
    latency: float = 0.0
    data_usage: DataUsage = field(default_factory=DataUsage)
    offline_queue: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "connection_type": self.connection_type.value,
            "bandwidth": self.bandwidth,
            "latency": self.latency,
            "data_usage": self.data_usage.to_dict(),
            "offline_queue": list(self.offline_queue),
        }


# ── Managers ────────────────────────────────────────────────────────

class HardwareManager:
    """Tracks the hardware-acceleration flag and what the host supports.

    ``set_hardware_acceleration`` is best effort: the flag is stored
    first, then the enable/disable hook runs.  A failing hook is logged
    and the flag is not rolled back.
    """

    def __init__(
        self,
        instrumentation: Instrumentation,
        enabled: bool = True,
        on_enable: Callable[[], None] | None = None,
        on_disable: Callable[[], None] | None = None,
    ):
        gpu = bool(instrumentation.gpu_available())
        self._snapshot = HardwareAcceleration(
            enabled=enabled,
            gpu_acceleration=gpu,
            video_acceleration=gpu,
            audio_acceleration=False,
        )
        self._on_enable = on_enable
        self._on_disable = on_disable

    def get_hardware_acceleration(self) -> HardwareAcceleration:
        return copy.deepcopy(self._snapshot)

    def set_hardware_acceleration(self, enabled: bool) -> None:
        self._snapshot.enabled = enabled
        hook = self._on_enable if enabled else self._on_disable
        logger.info("Hardware acceleration %s", "enabled" if enabled else "disabled")
        if hook is None:
            return
        try:
            hook()
        except Exception:
            logger.exception("Hardware acceleration hook failed (flag kept at %s)", enabled)


class MemoryManager:
    """Memory snapshot: totals, pressure and GC activity."""

    def __init__(self, instrumentation: Instrumentation):
        self._inst = instrumentation
        self._snapshot = MemorySnapshot()
        self._last_gc_collections = _gc_collections()
        self.refresh()

    def current_usage(self) -> int:
        """Live reading (not the cached snapshot)."""
        return _or_default(self._inst.used_memory(), 0)

    def refresh(self) -> MemorySnapshot:
        total = _or_default(self._inst.total_memory(), DEFAULT_TOTAL_MEMORY)
        used = self.current_usage()
        pressure = memory_pressure_for(used, total)

        collections = _gc_collections()
        gc_delta = collections - self._last_gc_collections
        self._last_gc_collections = collections

        snap = self._snapshot
        snap.total_memory = total
        snap.used_memory = used
        snap.available_memory = max(total - used, 0)
        snap.memory_pressure = pressure
        snap.gc_frequency = gc_delta
        snap.optimization_suggestions = _memory_suggestions(pressure)
        return snap

    def get_memory_manager(self) -> MemorySnapshot:
        return copy.deepcopy(self._snapshot)

    @property
    def used_memory(self) -> int:
        return self._snapshot.used_memory


def memory_pressure_for(used: int, total: int) -> MemoryPressure:
    percentage = (used / total) * 100 if total else 0.0
    if percentage > 90:
        return MemoryPressure.CRITICAL
    if percentage > 75:
        return MemoryPressure.HIGH
    if percentage > 50:
        return MemoryPressure.MEDIUM
    return MemoryPressure.LOW


def _memory_suggestions(pressure: MemoryPressure) -> list[str]:
    if pressure == MemoryPressure.CRITICAL:
        return ["Clear caches", "Close unused windows", "Unload inactive books"]
    if pressure == MemoryPressure.HIGH:
        return ["Clear caches", "Close unused windows"]
    return []


def _gc_collections() -> int:
    return sum(stat.get("collections", 0) for stat in gc.get_stats())


class BatteryManager:
    """Battery snapshot with a derived optimisation level."""

    def __init__(self, instrumentation: Instrumentation):
        self._inst = instrumentation
        self._snapshot = BatterySnapshot()
        self.refresh()

    def refresh(self) -> BatterySnapshot:
        reading = self._inst.battery()
        snap = self._snapshot
        if reading is None:
            snap.level = DEFAULT_BATTERY_LEVEL
            snap.charging = True
            snap.time_remaining = None
        else:
            snap.level = reading.percent
            snap.charging = reading.plugged
            snap.time_remaining = None if reading.plugged else reading.secs_left
        snap.discharging = not snap.charging
        snap.optimization_level = optimization_level_for(snap.level)
        return snap

    def set_power_mode(self, mode: PowerMode) -> None:
        self._snapshot.power_mode = mode

    def get_battery_manager(self) -> BatterySnapshot:
        return copy.deepcopy(self._snapshot)

    @property
    def level(self) -> float:
        return self._snapshot.level


def optimization_level_for(level: float) -> OptimizationLevel:
    if level < 20:
        return OptimizationLevel.AGGRESSIVE
    if level < 50:
        return OptimizationLevel.MODERATE
    if level < 80:
        return OptimizationLevel.LIGHT
    return OptimizationLevel.NONE


class NetworkManager:
    """Network snapshot: link status, type, bandwidth and byte counters."""

    def __init__(self, instrumentation: Instrumentation):
        self._inst = instrumentation
        self._snapshot = NetworkSnapshot()
        self._day_baseline: tuple[date, int] | None = None
        self._month_baseline: tuple[tuple[int, int], int] | None = None
        self.refresh()

    def refresh(self) -> NetworkSnapshot:
        reading = self._inst.network()
        snap = self._snapshot
        if reading is None:
            snap.status = NetworkStatus.ONLINE
            snap.connection_type = ConnectionType.UNKNOWN
            snap.bandwidth = 0.0
            snap.latency = 0.0
            return snap

        snap.status = network_status_for(reading)
        snap.connection_type = reading.connection_type
        snap.bandwidth = reading.bandwidth_mbps
        self._update_usage(reading.bytes_total)
        return snap

    def _update_usage(self, bytes_total: int) -> None:
        today = datetime.now(timezone.utc).date()
        month = (today.year, today.month)
        if self._day_baseline is None or self._day_baseline[0] != today:
            self._day_baseline = (today, bytes_total)
        if self._month_baseline is None or self._month_baseline[0] != month:
            self._month_baseline = (month, bytes_total)

        usage = self._snapshot.data_usage
        usage.total = bytes_total
        usage.today = max(bytes_total - self._day_baseline[1], 0)
        usage.this_month = max(bytes_total - self._month_baseline[1], 0)

    def status_value(self) -> int:
        return self._snapshot.status.numeric

    def get_network_manager(self) -> NetworkSnapshot:
        return copy.deepcopy(self._snapshot)

    @property
    def status(self) -> NetworkStatus:
        return self._snapshot.status


def network_status_for(reading: NetworkReading) -> NetworkStatus:
    if not reading.is_up:
        return NetworkStatus.OFFLINE
    if reading.bandwidth_mbps and reading.bandwidth_mbps <= SLOW_LINK_MBPS:
        return NetworkStatus.SLOW
    if reading.bandwidth_mbps >= FAST_LINK_MBPS:
        return NetworkStatus.FAST
    return NetworkStatus.ONLINE
