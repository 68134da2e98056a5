"""
Optimization Strategy Engine for Mind Vault.

A strategy pairs trigger conditions with remedial actions:

    memory_cleanup:  memoryUsage > 200 MB  →  clear_cache (after 1s)

On every polling tick the engine filters to enabled strategies for the
current platform, sorts them by priority (lower first, ties in insertion
order) and keeps those whose conditions all hold.  The dispatcher then
fires each action of each selected strategy independently, optionally
after a per-action delay.

There is no cooldown: a strategy that stays eligible fires again on
every tick.  Actions are expected to be idempotent.  ``fire_counts``
records how often each strategy fired.

Action types form a closed enum: an unknown action type is rejected
when a strategy is parsed, so it can never reach dispatch.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from mindvault.conditions import Operator, all_conditions_hold
from mindvault.metrics import Platform

logger = logging.getLogger("mindvault.strategies")


# ── Enums ───────────────────────────────────────────────────────────

class ActionType(Enum):
    CLEAR_CACHE = "clear_cache"
    REDUCE_QUALITY = "reduce_quality"
    PAUSE_ANIMATIONS = "pause_animations"
    LIMIT_CONCURRENT_REQUESTS = "limit_concurrent_requests"
    ENABLE_LAZY_LOADING = "enable_lazy_loading"
    COMPRESS_DATA = "compress_data"
    REDUCE_FREQUENCY = "reduce_frequency"
    DISABLE_FEATURES = "disable_features"


class OptimizationType(Enum):
    MEMORY_MANAGEMENT = "memory_management"
    RENDERING_OPTIMIZATION = "rendering_optimization"
    LAZY_LOADING = "lazy_loading"
    CACHING = "caching"
    COMPRESSION = "compression"
    BATTERY_OPTIMIZATION = "battery_optimization"
    NETWORK_OPTIMIZATION = "network_optimization"
    CPU_OPTIMIZATION = "cpu_optimization"


# ── Dataclasses ─────────────────────────────────────────────────────

@dataclass
class OptimizationCondition:
    """``metric operator value``, e.g. ``memoryUsage gt 209715200``.

    ``duration`` (ms) is carried for callers but not evaluated.
    """

    metric: str
    operator: Operator | str
    value: float
    duration: float | None = None

    def to_dict(self) -> dict[str, Any]:
        op = self.operator.value if isinstance(self.operator, Operator) else self.operator
        out: dict[str, Any] = {"metric": self.metric, "operator": op, "value": self.value}
        if self.duration is not None:
            out["duration"] = self.duration
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OptimizationCondition":
        """Parse a condition. Raises ValueError on a missing or malformed field."""
        if not isinstance(data, dict):
            raise ValueError(f"Condition must be an object, got {data!r}")
        missing = [k for k in ("metric", "operator", "value") if k not in data]
        if missing:
            raise ValueError(f"Condition is missing {', '.join(missing)}")
        if isinstance(data["value"], bool) or not isinstance(data["value"], (int, float)):
            raise ValueError(f"Condition value must be a number, got {data['value']!r}")
        return cls(
            metric=data["metric"],
            operator=data["operator"],
            value=data["value"],
            duration=data.get("duration"),
        )


@dataclass
class OptimizationAction:
    action_type: ActionType
    parameters: dict[str, Any] = field(default_factory=dict)
    delay: float = 0        # milliseconds

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.action_type.value,
            "parameters": dict(self.parameters),
            "delay": self.delay,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OptimizationAction":
        """Parse an action. Raises ValueError for an unknown action type."""
        if not isinstance(data, dict):
            raise ValueError(f"Action must be an object, got {data!r}")
        raw = data.get("type", data.get("action_type"))
        try:
            action_type = raw if isinstance(raw, ActionType) else ActionType(raw)
        except ValueError:
            raise ValueError(f"Unknown action type: {raw!r}") from None
        return cls(
            action_type=action_type,
            parameters=dict(data.get("parameters") or {}),
            delay=data.get("delay") or 0,
        )


@dataclass
class OptimizationStrategy:
    """A named rule: when every condition holds, run the actions."""

    strategy_id: str
    name: str
    strategy_type: OptimizationType
    platforms: set[Platform] = field(default_factory=set)
    conditions: list[OptimizationCondition] = field(default_factory=list)
    actions: list[OptimizationAction] = field(default_factory=list)
    priority: int = 0
    enabled: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.strategy_id,
            "name": self.name,
            "type": self.strategy_type.value,
            "platform": sorted(p.value for p in self.platforms),
            "conditions": [c.to_dict() for c in self.conditions],
            "actions": [a.to_dict() for a in self.actions],
            "priority": self.priority,
            "enabled": self.enabled,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OptimizationStrategy":
        """Deserialize from a config/request dict.

        Accepts ``id``/``strategy_id``, ``type``/``strategy_type`` and
        ``platform``/``platforms``.  Raises ValueError on unknown enum
        values or malformed fields.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Strategy must be an object, got {data!r}")
        strategy_id = data.get("strategy_id", data.get("id"))
        if not strategy_id:
            raise ValueError("Strategy is missing an id")
        platforms = data.get("platforms", data.get("platform", []))
        for key, value in (("platforms", platforms),
                           ("conditions", data.get("conditions", [])),
                           ("actions", data.get("actions", []))):
            if not isinstance(value, (list, tuple, set)):
                raise ValueError(f"Strategy {key} must be a list, got {value!r}")
        return cls(
            strategy_id=strategy_id,
            name=data.get("name", ""),
            strategy_type=OptimizationType(data.get("strategy_type", data.get("type"))),
            platforms={Platform(p) if not isinstance(p, Platform) else p for p in platforms},
            conditions=[OptimizationCondition.from_dict(c) for c in data.get("conditions", [])],
            actions=[OptimizationAction.from_dict(a) for a in data.get("actions", [])],
            priority=data.get("priority", 0),
            enabled=data.get("enabled", True),
        )


# ── Defaults ────────────────────────────────────────────────────────

_MB = 1024 * 1024


def default_strategies() -> list[OptimizationStrategy]:
    """Built-in strategies (fresh objects on every call)."""
    return [
        OptimizationStrategy(
            strategy_id="memory_cleanup",
            name="Memory Cleanup",
            strategy_type=OptimizationType.MEMORY_MANAGEMENT,
            platforms={Platform.WEB, Platform.DESKTOP, Platform.MOBILE},
            conditions=[
                OptimizationCondition("memoryUsage", Operator.GT, 200 * _MB, duration=5000),
            ],
            actions=[OptimizationAction(ActionType.CLEAR_CACHE, {}, delay=1000)],
            priority=1,
        ),
        OptimizationStrategy(
            strategy_id="lazy_loading",
            name="Lazy Loading",
            strategy_type=OptimizationType.LAZY_LOADING,
            platforms={Platform.WEB, Platform.MOBILE},
            conditions=[OptimizationCondition("networkStatus", Operator.EQ, 2)],
            actions=[OptimizationAction(ActionType.ENABLE_LAZY_LOADING, {"threshold": 0.5})],
            priority=2,
        ),
        OptimizationStrategy(
            strategy_id="battery_saver",
            name="Battery Saver",
            strategy_type=OptimizationType.BATTERY_OPTIMIZATION,
            platforms={Platform.MOBILE},
            conditions=[OptimizationCondition("batteryLevel", Operator.LT, 20)],
            actions=[
                OptimizationAction(ActionType.REDUCE_FREQUENCY, {"factor": 0.5}),
                OptimizationAction(
                    ActionType.DISABLE_FEATURES,
                    {"features": ["animations", "background_sync"]},
                ),
            ],
            priority=3,
        ),
    ]


# ── StrategyEngine ──────────────────────────────────────────────────

class StrategyEngine:
    """Holds the active strategy set and selects eligible strategies.

    Args:
        platform: The platform strategies must list to be considered.
    """

    def __init__(self, platform: Platform):
        self.platform = platform
        self._strategies: dict[str, OptimizationStrategy] = {}

    def add_strategy(self, strategy: OptimizationStrategy) -> None:
        """Add or replace (same id, same position) a strategy."""
        self._strategies[strategy.strategy_id] = strategy
        logger.debug("Strategy added: %s (priority %d)", strategy.strategy_id, strategy.priority)

    def remove_strategy(self, strategy_id: str) -> bool:
        if strategy_id in self._strategies:
            del self._strategies[strategy_id]
            logger.debug("Strategy removed: %s", strategy_id)
            return True
        return False

    def get_strategy(self, strategy_id: str) -> OptimizationStrategy | None:
        return self._strategies.get(strategy_id)

    def get_strategies(self) -> list[OptimizationStrategy]:
        return list(self._strategies.values())

    def candidates(self) -> list[OptimizationStrategy]:
        """Enabled strategies for this platform, by priority (stable)."""
        eligible = [
            s for s in self._strategies.values()
            if s.enabled and self.platform in s.platforms
        ]
        # sorted() is stable, so equal priorities keep insertion order
        return sorted(eligible, key=lambda s: s.priority)

    def select(self, resolve: Callable[[str], float]) -> list[OptimizationStrategy]:
        """Candidates whose conditions all hold for the current readings."""
        return [
            s for s in self.candidates()
            if all_conditions_hold(s.conditions, resolve)
        ]

    def __len__(self) -> int:
        return len(self._strategies)


# ── ActionDispatcher ────────────────────────────────────────────────

ActionHandler = Callable[[OptimizationAction], None]


@dataclass
class AppliedAction:
    strategy_id: str
    action_type: ActionType
    parameters: dict[str, Any]
    applied_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategy_id": self.strategy_id,
            "type": self.action_type.value,
            "parameters": dict(self.parameters),
            "applied_at": self.applied_at.isoformat(),
        }


class ActionDispatcher:
    """Runs strategy actions through one handler per ActionType.

    Every ActionType has a default handler that logs the action; callers
    replace them with ``set_handler``.  Delayed actions are scheduled on
    the running asyncio loop with ``call_later``; without a running loop
    they run inline.  Completion is not tracked and handler failures are
    logged, never propagated back to the strategy.

    Args:
        history_size: How many applied actions to remember.
    """

    def __init__(self, history_size: int = 200):
        self._handlers: dict[ActionType, ActionHandler] = {
            action_type: _log_action for action_type in ActionType
        }
        self._applied: deque[AppliedAction] = deque(maxlen=history_size)
        self.fire_counts: dict[str, int] = {}

    def set_handler(self, action_type: ActionType, handler: ActionHandler) -> None:
        self._handlers[action_type] = handler

    def dispatch(self, strategy: OptimizationStrategy) -> None:
        """Fire every action of ``strategy`` (each independently)."""
        logger.info("Applying optimization strategy: %s", strategy.name)
        self.fire_counts[strategy.strategy_id] = self.fire_counts.get(strategy.strategy_id, 0) + 1

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        for action in strategy.actions:
            if action.delay and loop is not None:
                loop.call_later(action.delay / 1000.0, self._execute, strategy.strategy_id, action)
            else:
                self._execute(strategy.strategy_id, action)

    def _execute(self, strategy_id: str, action: OptimizationAction) -> None:
        handler = self._handlers[action.action_type]
        try:
            handler(action)
        except Exception:
            logger.exception(
                "Optimization action %s (strategy %s) failed",
                action.action_type.value, strategy_id,
            )
            return
        self._applied.append(AppliedAction(
            strategy_id=strategy_id,
            action_type=action.action_type,
            parameters=dict(action.parameters),
            applied_at=datetime.now(timezone.utc),
        ))

    def get_applied_actions(self, limit: int = 50) -> list[AppliedAction]:
        """Most recent applied actions, newest last."""
        return list(self._applied)[-limit:]


_ACTION_MESSAGES = {
    ActionType.CLEAR_CACHE: "Clearing cache",
    ActionType.REDUCE_QUALITY: "Reducing quality",
    ActionType.PAUSE_ANIMATIONS: "Pausing animations",
    ActionType.LIMIT_CONCURRENT_REQUESTS: "Limiting concurrent requests",
    ActionType.ENABLE_LAZY_LOADING: "Enabling lazy loading",
    ActionType.COMPRESS_DATA: "Compressing data",
    ActionType.REDUCE_FREQUENCY: "Reducing frequency",
    ActionType.DISABLE_FEATURES: "Disabling features",
}


def _log_action(action: OptimizationAction) -> None:
    logger.info("%s... %s", _ACTION_MESSAGES[action.action_type], action.parameters or "")
