"""Tests for condition evaluation, strategy selection and action dispatch."""

import asyncio
from types import SimpleNamespace

import pytest

from mindvault.conditions import Operator, all_conditions_hold, evaluate_condition
from mindvault.metrics import Platform
from mindvault.strategies import (
    ActionDispatcher,
    ActionType,
    OptimizationAction,
    OptimizationCondition,
    OptimizationStrategy,
    OptimizationType,
    StrategyEngine,
    default_strategies,
)


# ── Conditions ──────────────────────────────────────────────────────

@pytest.mark.parametrize("value, op, threshold, expected", [
    (5, "gt", 3, True),
    (3, "gt", 3, False),
    (2, "lt", 3, True),
    (3, "eq", 3, True),
    (3, "gte", 3, True),
    (4, "lte", 3, False),
    (5, Operator.GT, 3, True),
])
def test_evaluate_condition(value, op, threshold, expected):
    assert evaluate_condition(value, op, threshold) is expected


def test_unknown_operator_is_false():
    assert evaluate_condition(5, "unknown-op", 3) is False


def test_all_conditions_hold_short_circuits():
    seen = []

    def resolve(name):
        seen.append(name)
        return 0

    conditions = [
        SimpleNamespace(metric="a", operator="gt", value=1),
        SimpleNamespace(metric="b", operator="gt", value=1),
    ]
    assert all_conditions_hold(conditions, resolve) is False
    assert seen == ["a"]


def test_no_conditions_always_hold():
    assert all_conditions_hold([], lambda name: 0) is True


# ── Parsing ─────────────────────────────────────────────────────────

def test_unknown_action_type_rejected_at_parse_time():
    with pytest.raises(ValueError, match="Unknown action type"):
        OptimizationAction.from_dict({"type": "self_destruct"})


@pytest.mark.parametrize("data, message", [
    ({"operator": "gt", "value": 1}, "missing metric"),
    ({"metric": "cpuUsage", "operator": "gt"}, "missing value"),
    ({"metric": "cpuUsage", "operator": "gt", "value": "high"}, "must be a number"),
    ("cpuUsage > 90", "must be an object"),
])
def test_malformed_condition_raises_value_error(data, message):
    with pytest.raises(ValueError, match=message):
        OptimizationCondition.from_dict(data)


@pytest.mark.parametrize("data", [
    {"type": "caching"},
    {"id": "x", "type": "caching", "platform": "desktop"},
    {"id": "x", "type": "caching", "actions": ["clear_cache"]},
    {"id": "x", "type": "caching", "conditions": [{"value": 1}]},
])
def test_malformed_strategy_raises_value_error(data):
    with pytest.raises(ValueError):
        OptimizationStrategy.from_dict(data)


def test_strategy_from_dict_accepts_wire_names():
    strategy = OptimizationStrategy.from_dict({
        "id": "cpu_guard",
        "name": "CPU Guard",
        "type": "cpu_optimization",
        "platform": ["desktop"],
        "conditions": [{"metric": "cpuUsage", "operator": "gt", "value": 90}],
        "actions": [{"type": "pause_animations", "delay": 250}],
        "priority": 4,
    })
    assert strategy.strategy_id == "cpu_guard"
    assert strategy.platforms == {Platform.DESKTOP}
    assert strategy.actions[0].action_type is ActionType.PAUSE_ANIMATIONS
    assert strategy.actions[0].delay == 250
    assert strategy.to_dict()["platform"] == ["desktop"]


def test_default_strategies():
    by_id = {s.strategy_id: s for s in default_strategies()}
    assert list(by_id) == ["memory_cleanup", "lazy_loading", "battery_saver"]
    assert by_id["memory_cleanup"].conditions[0].value == 200 * 1024 * 1024
    assert by_id["memory_cleanup"].actions[0].delay == 1000
    assert by_id["battery_saver"].platforms == {Platform.MOBILE}
    assert [a.action_type for a in by_id["battery_saver"].actions] == [
        ActionType.REDUCE_FREQUENCY, ActionType.DISABLE_FEATURES,
    ]


# ── Engine ──────────────────────────────────────────────────────────

def _strategy(sid, priority=0, platforms=(Platform.DESKTOP,), enabled=True, conditions=()):
    return OptimizationStrategy(
        strategy_id=sid,
        name=sid,
        strategy_type=OptimizationType.CACHING,
        platforms=set(platforms),
        conditions=list(conditions),
        actions=[OptimizationAction(ActionType.CLEAR_CACHE)],
        priority=priority,
        enabled=enabled,
    )


def test_select_filters_platform_and_enabled_then_sorts_stably():
    engine = StrategyEngine(Platform.DESKTOP)
    engine.add_strategy(_strategy("b", priority=2))
    engine.add_strategy(_strategy("a", priority=1))
    engine.add_strategy(_strategy("c", priority=2))
    engine.add_strategy(_strategy("mobile_only", priority=0, platforms=(Platform.MOBILE,)))
    engine.add_strategy(_strategy("off", priority=0, enabled=False))

    selected = engine.select(lambda name: 0)
    assert [s.strategy_id for s in selected] == ["a", "b", "c"]


def test_select_requires_all_conditions():
    engine = StrategyEngine(Platform.DESKTOP)
    engine.add_strategy(_strategy("hot", conditions=[
        OptimizationCondition("cpuUsage", Operator.GT, 50),
        OptimizationCondition("memoryUsage", Operator.GT, 100),
    ]))
    readings = {"cpuUsage": 80, "memoryUsage": 50}
    assert engine.select(readings.get) == []
    readings["memoryUsage"] = 150
    assert [s.strategy_id for s in engine.select(readings.get)] == ["hot"]


def test_add_strategy_replaces_same_id_in_place():
    engine = StrategyEngine(Platform.DESKTOP)
    engine.add_strategy(_strategy("x", priority=1))
    engine.add_strategy(_strategy("y", priority=1))
    engine.add_strategy(_strategy("x", priority=1, enabled=False))
    assert [s.strategy_id for s in engine.get_strategies()] == ["x", "y"]
    assert engine.get_strategy("x").enabled is False


def test_remove_strategy():
    engine = StrategyEngine(Platform.DESKTOP)
    engine.add_strategy(_strategy("x"))
    assert engine.remove_strategy("x") is True
    assert engine.remove_strategy("x") is False
    assert engine.get_strategy("x") is None


# ── Dispatcher ──────────────────────────────────────────────────────

def test_dispatch_without_loop_runs_inline_and_counts():
    dispatcher = ActionDispatcher()
    calls = []
    dispatcher.set_handler(ActionType.CLEAR_CACHE, calls.append)
    strategy = default_strategies()[0]        # clear_cache with 1s delay

    dispatcher.dispatch(strategy)
    dispatcher.dispatch(strategy)

    assert len(calls) == 2
    assert dispatcher.fire_counts == {"memory_cleanup": 2}
    assert [a.strategy_id for a in dispatcher.get_applied_actions()] == ["memory_cleanup"] * 2


def test_dispatch_defers_delayed_actions_on_running_loop():
    dispatcher = ActionDispatcher()
    calls = []
    dispatcher.set_handler(ActionType.PAUSE_ANIMATIONS, lambda a: calls.append("pause"))
    dispatcher.set_handler(ActionType.REDUCE_QUALITY, lambda a: calls.append("quality"))
    strategy = _strategy("mixed")
    strategy.actions = [
        OptimizationAction(ActionType.PAUSE_ANIMATIONS, delay=20),
        OptimizationAction(ActionType.REDUCE_QUALITY),
    ]

    async def scenario():
        dispatcher.dispatch(strategy)
        immediate = list(calls)
        await asyncio.sleep(0.1)
        return immediate

    immediate = asyncio.run(scenario())
    assert immediate == ["quality"]
    assert calls == ["quality", "pause"]


def test_failing_handler_is_swallowed_and_other_actions_run(caplog):
    dispatcher = ActionDispatcher()
    ran = []

    def boom(action):
        raise RuntimeError("cache locked")

    dispatcher.set_handler(ActionType.REDUCE_FREQUENCY, boom)
    dispatcher.set_handler(ActionType.DISABLE_FEATURES, ran.append)
    battery_saver = default_strategies()[2]

    dispatcher.dispatch(battery_saver)

    assert len(ran) == 1
    assert "failed" in caplog.text
    assert [a.action_type for a in dispatcher.get_applied_actions()] == [ActionType.DISABLE_FEATURES]
