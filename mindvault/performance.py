"""
Mind Vault Performance Monitor

The single context object that owns every piece of monitoring state: the
metric store, threshold checker, strategy engine, action dispatcher, the
four resource managers and the polling task.  Nothing lives in module
globals; components that need state get this object (or the piece they
need) passed in.

Each poll tick:
    1. refreshes the memory, battery and network snapshots
    2. checks the 10 most recent metrics against their thresholds
    3. selects eligible optimization strategies and dispatches their actions

Usage:
    monitor = create_performance_monitor({"enableBatteryOptimization": False})
    metric_id = monitor.record_metric("rendering", 12.5, {"page": 3})
    monitor.start_monitoring()       # inside a running event loop
    ...
    monitor.stop_monitoring()
"""

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from mindvault.collaborators import SessionProvider
from mindvault.conditions import evaluate_condition
from mindvault.metrics import (
    Metric,
    MetricType,
    PerformanceStats,
    Platform,
    Threshold,
    ThresholdChecker,
    ThresholdViolation,
    MetricStore,
    coerce_metric_type,
    default_thresholds,
    parse_thresholds,
)
from mindvault.polling import PeriodicTask
from mindvault.resources import (
    BatteryManager,
    BatterySnapshot,
    HardwareAcceleration,
    HardwareManager,
    Instrumentation,
    MemoryManager,
    MemorySnapshot,
    NetworkManager,
    NetworkSnapshot,
    NullInstrumentation,
    detect_platform,
)
from mindvault.strategies import (
    ActionDispatcher,
    OptimizationStrategy,
    OptimizationType,
    StrategyEngine,
    default_strategies,
)

logger = logging.getLogger("mindvault.performance")

_MB = 1024 * 1024


# ── Configuration ───────────────────────────────────────────────────

# camelCase option names (as used in JSON request bodies) → field names
_CONFIG_ALIASES = {
    "enableMetrics": "enable_metrics",
    "enableHardwareAcceleration": "enable_hardware_acceleration",
    "enableMemoryOptimization": "enable_memory_optimization",
    "enableBatteryOptimization": "enable_battery_optimization",
    "maxMemoryUsage": "max_memory_usage",
    "maxCpuUsage": "max_cpu_usage",
    "maxBatteryDrain": "max_battery_drain",
    "performanceThresholds": "performance_thresholds",
    "optimizationStrategies": "optimization_strategies",
    "pollInterval": "poll_interval",
    "recentWindow": "recent_window",
}


@dataclass
class PerformanceConfig:
    enable_metrics: bool = True
    enable_hardware_acceleration: bool = True
    enable_memory_optimization: bool = True
    enable_battery_optimization: bool = True
    max_memory_usage: int = 500 * _MB          # bytes
    max_cpu_usage: float = 80.0                # percent
    max_battery_drain: float = 5.0             # percent per hour
    performance_thresholds: dict[MetricType, Threshold] = field(default_factory=default_thresholds)
    optimization_strategies: list[OptimizationStrategy] = field(default_factory=default_strategies)
    poll_interval: float = 1.0                 # seconds
    recent_window: int = 10
    platform: Platform | None = None           # None → detect from host

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None = None) -> "PerformanceConfig":
        """Layer a caller's partial config over the defaults.

        Keys may be camelCase or snake_case.  A supplied
        ``performance_thresholds`` or ``optimization_strategies`` replaces
        the default collection wholesale.  Raises ValueError on unknown
        keys.
        """
        config = cls()
        config._apply(normalize_config_keys(data or {}))
        config.validate()
        return config

    @classmethod
    def from_settings(cls, settings) -> "PerformanceConfig":
        """Build from a VaultConfig (``get_config()``)."""
        perf = settings.performance
        mon = settings.monitor
        platform = perf.get("platform", "auto")
        return cls.from_dict({
            "enable_metrics": perf.enable_metrics,
            "enable_hardware_acceleration": perf.enable_hardware_acceleration,
            "enable_memory_optimization": perf.enable_memory_optimization,
            "enable_battery_optimization": perf.enable_battery_optimization,
            "max_memory_usage": perf.max_memory_usage,
            "max_cpu_usage": perf.max_cpu_usage,
            "max_battery_drain": perf.max_battery_drain,
            "poll_interval": mon.poll_interval,
            "recent_window": mon.recent_window,
            "platform": None if platform == "auto" else platform,
        })

    def _apply(self, changes: dict[str, Any]) -> None:
        for key, value in changes.items():
            if key == "performance_thresholds":
                value = parse_thresholds(value)
            elif key == "optimization_strategies":
                if not isinstance(value, list):
                    raise ValueError(f"optimization_strategies must be a list, got {value!r}")
                value = [
                    s if isinstance(s, OptimizationStrategy) else OptimizationStrategy.from_dict(s)
                    for s in value
                ]
            elif key == "platform" and value is not None and not isinstance(value, Platform):
                value = Platform(value)
            setattr(self, key, value)

    def validate(self) -> None:
        """Raise ValueError if a numeric option is out of range."""
        for name in ("poll_interval", "max_memory_usage", "max_cpu_usage", "max_battery_drain"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{name} must be a number, got {value!r}")
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {self.poll_interval}")
        if not isinstance(self.recent_window, int) or self.recent_window < 0:
            raise ValueError(f"recent_window must be a non-negative integer, got {self.recent_window!r}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "enable_metrics": self.enable_metrics,
            "enable_hardware_acceleration": self.enable_hardware_acceleration,
            "enable_memory_optimization": self.enable_memory_optimization,
            "enable_battery_optimization": self.enable_battery_optimization,
            "max_memory_usage": self.max_memory_usage,
            "max_cpu_usage": self.max_cpu_usage,
            "max_battery_drain": self.max_battery_drain,
            "performance_thresholds": {
                t.value: th.to_dict() for t, th in self.performance_thresholds.items()
            },
            "optimization_strategies": [s.to_dict() for s in self.optimization_strategies],
            "poll_interval": self.poll_interval,
            "recent_window": self.recent_window,
            "platform": self.platform.value if self.platform else None,
        }


_CONFIG_FIELDS = set(PerformanceConfig.__dataclass_fields__)


def normalize_config_keys(data: dict[str, Any]) -> dict[str, Any]:
    """Map camelCase option names to field names. Raises ValueError on unknown keys."""
    out = {}
    for key, value in data.items():
        name = _CONFIG_ALIASES.get(key, key)
        if name not in _CONFIG_FIELDS:
            raise ValueError(f"Unknown performance option: {key}")
        out[name] = value
    return out


# ── PerformanceMonitor ──────────────────────────────────────────────

class PerformanceMonitor:
    """Metric recording, resource snapshots and automatic optimization.

    Args:
        config:           PerformanceConfig, a partial config dict, or None
                          for defaults.
        instrumentation:  Platform probe.  Defaults to psutil-backed
                          ``Instrumentation``.
        session_provider: Optional; when it reports a user, recorded
                          metrics carry ``context["user_id"]``.
        clock:            Callable returning an aware UTC datetime.
    """

    def __init__(
        self,
        config: PerformanceConfig | dict[str, Any] | None = None,
        instrumentation: Instrumentation | None = None,
        session_provider: SessionProvider | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        if not isinstance(config, PerformanceConfig):
            config = PerformanceConfig.from_dict(config)
        self.config = config
        self._inst = instrumentation if instrumentation is not None else Instrumentation()
        self._session = session_provider
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self.platform = config.platform or detect_platform()

        self.store = MetricStore(clock=self._clock)
        self.checker = ThresholdChecker(config.performance_thresholds)
        self.engine = StrategyEngine(self.platform)
        for strategy in config.optimization_strategies:
            self.engine.add_strategy(strategy)
        self.dispatcher = ActionDispatcher()

        self.hardware = HardwareManager(self._inst, enabled=config.enable_hardware_acceleration)
        self.memory = MemoryManager(self._inst)
        self.battery = BatteryManager(self._inst)
        self.network = NetworkManager(self._inst)
        self._cpu_usage = 0.0

        self._poller = PeriodicTask(self.tick, config.poll_interval, name="performance")
        self._last_violations: list[ThresholdViolation] = []
        self._last_fired: list[str] = []

        logger.info(
            "Performance monitor ready (platform=%s, %d strategies, poll every %ss)",
            self.platform.value, len(self.engine), config.poll_interval,
        )

    # ── Monitoring loop ─────────────────────────────────────────────

    @property
    def is_monitoring(self) -> bool:
        return self._poller.running

    def start_monitoring(self) -> None:
        """Start the polling task on the running event loop (idempotent)."""
        if self._poller.running:
            return
        self._poller.start()
        logger.info("Performance monitoring started")

    def stop_monitoring(self) -> None:
        """Cancel future ticks. Deferred actions already scheduled still run."""
        if not self._poller.running:
            return
        self._poller.cancel()
        logger.info("Performance monitoring stopped")

    def tick(self) -> list[OptimizationStrategy]:
        """Run one poll: refresh snapshots, check thresholds, optimize."""
        self._refresh_snapshots()
        self._last_violations = self.checker.check(
            self.store.get_metrics(limit=self.config.recent_window)
        )
        return self.apply_optimizations()

    def _refresh_snapshots(self) -> None:
        self.memory.refresh()
        self.battery.refresh()
        self.network.refresh()
        self._cpu_usage = self._read_cpu()
        logger.debug(
            "Snapshots: mem=%d battery=%.0f%% network=%s cpu=%.1f%%",
            self.memory.used_memory, self.battery.level,
            self.network.status.value, self._cpu_usage,
        )

    def apply_optimizations(self) -> list[OptimizationStrategy]:
        """Dispatch every eligible strategy. Returns those that fired."""
        fired = [s for s in self.engine.select(self._metric_value) if self._optimization_allowed(s)]
        for strategy in fired:
            self.dispatcher.dispatch(strategy)
        self._last_fired = [s.strategy_id for s in fired]
        return fired

    def _optimization_allowed(self, strategy: OptimizationStrategy) -> bool:
        if strategy.strategy_type == OptimizationType.MEMORY_MANAGEMENT:
            return self.config.enable_memory_optimization
        if strategy.strategy_type == OptimizationType.BATTERY_OPTIMIZATION:
            return self.config.enable_battery_optimization
        return True

    def _metric_value(self, metric: str) -> float:
        if metric in ("memoryUsage", "memory_usage"):
            return self.memory.used_memory
        if metric in ("cpuUsage", "cpu_usage"):
            return self._cpu_usage
        if metric in ("batteryLevel", "battery_level"):
            return self.battery.level
        if metric in ("networkStatus", "network_status"):
            return self.network.status_value()
        return 0

    def _read_cpu(self) -> float:
        value = self._inst.cpu_percent()
        return 0.0 if value is None else value

    # ── Metrics ─────────────────────────────────────────────────────

    def record_metric(
        self,
        metric_type: MetricType | str,
        duration: float,
        context: dict[str, Any] | None = None,
    ) -> str:
        """Record a measured operation and return its metric id.

        With metrics disabled nothing is stored, but an id is still
        returned so callers need not branch.
        """
        metric_type = coerce_metric_type(metric_type)
        ctx = dict(context or {})
        ctx.setdefault("action", metric_type.value)
        if self._session is not None:
            user = self._session.current_user()
            if user is not None:
                ctx.setdefault("user_id", user)

        gpu = self._inst.gpu_percent()
        metric = Metric(
            metric_type=metric_type,
            duration=duration,
            platform=self.platform,
            timestamp=self._clock(),
            memory_usage=self.memory.current_usage(),
            cpu_usage=self._read_cpu(),
            gpu_usage=0.0 if gpu is None else gpu,
            battery_level=self.battery.level,
            network_status=self.network.status,
            context=ctx,
        )

        if not self.config.enable_metrics:
            return metric.metric_id

        self.store.add(metric)
        self._last_violations = self.checker.check(
            self.store.get_metrics(limit=self.config.recent_window)
        )
        return metric.metric_id

    def get_metrics(self, metric_type: MetricType | str | None = None, limit: int = 100) -> list[Metric]:
        return self.store.get_metrics(metric_type, limit)

    def get_performance_stats(self, metric_type: MetricType | str | None = None) -> PerformanceStats:
        return self.store.get_stats(metric_type)

    def clear_old_metrics(self, hours: float = 24) -> int:
        return self.store.clear_older_than(hours)

    def get_threshold_violations(self) -> list[ThresholdViolation]:
        """Violations found by the most recent threshold check."""
        return list(self._last_violations)

    # ── Resource managers ───────────────────────────────────────────

    def get_hardware_acceleration(self) -> HardwareAcceleration:
        return self.hardware.get_hardware_acceleration()

    def set_hardware_acceleration(self, enabled: bool) -> None:
        self.config.enable_hardware_acceleration = enabled
        self.hardware.set_hardware_acceleration(enabled)

    def get_memory_manager(self) -> MemorySnapshot:
        return self.memory.get_memory_manager()

    def get_battery_manager(self) -> BatterySnapshot:
        return self.battery.get_battery_manager()

    def get_network_manager(self) -> NetworkSnapshot:
        return self.network.get_network_manager()

    # ── Configuration ───────────────────────────────────────────────

    def get_config(self) -> PerformanceConfig:
        return copy.deepcopy(self.config)

    def update_config(self, **changes: Any) -> None:
        """Merge option changes into the live config.

        Accepts camelCase or snake_case keys.  Every value is parsed and
        checked against a copy first; on ValueError the live config, the
        strategies and the polling task are left untouched.
        """
        normalized = normalize_config_keys(changes)
        candidate = copy.deepcopy(self.config)
        candidate._apply(normalized)
        candidate.validate()

        poller = None
        if "poll_interval" in normalized:
            poller = PeriodicTask(self.tick, candidate.poll_interval, name="performance")

        hw_before = self.config.enable_hardware_acceleration
        self.config = candidate
        self.checker.thresholds = candidate.performance_thresholds
        if "optimization_strategies" in normalized:
            self.engine = StrategyEngine(self.platform)
            for strategy in candidate.optimization_strategies:
                self.engine.add_strategy(strategy)
        if "platform" in normalized:
            self.platform = candidate.platform or detect_platform()
            self.engine.platform = self.platform
        if candidate.enable_hardware_acceleration != hw_before:
            self.hardware.set_hardware_acceleration(candidate.enable_hardware_acceleration)
        if poller is not None:
            self._swap_poller(poller)

        logger.info("Performance config updated: %s", ", ".join(sorted(normalized)))

    def _swap_poller(self, poller: PeriodicTask) -> None:
        was_running = self._poller.running
        self._poller.cancel()
        self._poller = poller
        if was_running:
            self._poller.start()

    # ── Strategies ──────────────────────────────────────────────────

    def add_optimization_strategy(self, strategy: OptimizationStrategy | dict[str, Any]) -> OptimizationStrategy:
        if not isinstance(strategy, OptimizationStrategy):
            strategy = OptimizationStrategy.from_dict(strategy)
        self.engine.add_strategy(strategy)
        logger.info("Optimization strategy added: %s", strategy.strategy_id)
        return strategy

    def remove_optimization_strategy(self, strategy_id: str) -> bool:
        removed = self.engine.remove_strategy(strategy_id)
        if removed:
            logger.info("Optimization strategy removed: %s", strategy_id)
        return removed

    def get_optimization_strategies(self) -> list[OptimizationStrategy]:
        return copy.deepcopy(self.engine.get_strategies())

    evaluate_condition = staticmethod(evaluate_condition)

    # ── Summaries ───────────────────────────────────────────────────

    def get_status(self) -> dict[str, Any]:
        """Summary status dict."""
        return {
            "monitoring": self.is_monitoring,
            "platform": self.platform.value,
            "poll_interval": self.config.poll_interval,
            "metric_count": len(self.store),
            "strategy_count": len(self.engine),
            "last_fired": list(self._last_fired),
            "fire_counts": dict(self.dispatcher.fire_counts),
            "threshold_violations": len(self._last_violations),
        }

    def to_broadcast_dict(self) -> dict[str, Any]:
        """Full state snapshot for dashboards and the terminal view."""
        return {
            "status": self.get_status(),
            "hardware": self.hardware.get_hardware_acceleration().to_dict(),
            "memory": self.memory.get_memory_manager().to_dict(),
            "battery": self.battery.get_battery_manager().to_dict(),
            "network": self.network.get_network_manager().to_dict(),
            "stats": self.store.get_stats().to_dict(),
            "recent_metrics": [m.to_dict() for m in self.store.get_metrics(limit=20)],
            "violations": [v.to_dict() for v in self._last_violations],
            "applied_actions": [a.to_dict() for a in self.dispatcher.get_applied_actions(20)],
        }


def create_performance_monitor(
    config: PerformanceConfig | dict[str, Any] | None = None,
    instrumentation: Instrumentation | None = None,
    session_provider: SessionProvider | None = None,
) -> PerformanceMonitor:
    """Build a monitor.  Platform probes are disabled when the settings
    say so (``monitor.use_platform_instrumentation = false``)."""
    if instrumentation is None:
        from mindvault.config import get_config
        use_platform = get_config().monitor.get("use_platform_instrumentation", True)
        instrumentation = Instrumentation() if use_platform else NullInstrumentation()
    return PerformanceMonitor(config, instrumentation, session_provider)
