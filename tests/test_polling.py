"""Tests for the cancellable polling task."""

import asyncio

import pytest

from mindvault.polling import PeriodicTask


def test_rejects_non_positive_interval():
    with pytest.raises(ValueError):
        PeriodicTask(lambda: None, interval=0)


def test_start_needs_running_loop():
    task = PeriodicTask(lambda: None, interval=0.01)
    with pytest.raises(RuntimeError):
        task.start()
    assert task.running is False


def test_ticks_until_cancelled():
    ticks = []
    task = PeriodicTask(lambda: ticks.append(1), interval=0.01, name="test")

    async def scenario():
        task.start()
        task.start()                      # second start is a no-op
        await asyncio.sleep(0.05)
        assert task.running
        task.cancel()
        seen = len(ticks)
        await asyncio.sleep(0.05)
        return seen

    seen = asyncio.run(scenario())
    assert seen >= 2
    assert len(ticks) == seen
    assert task.running is False


def test_coroutine_callback_is_awaited():
    done = []

    async def tick():
        await asyncio.sleep(0)
        done.append(True)

    task = PeriodicTask(tick, interval=0.01)

    async def scenario():
        task.start()
        await asyncio.sleep(0.03)
        task.cancel()

    asyncio.run(scenario())
    assert done


def test_failing_tick_is_logged_and_loop_continues(caplog):
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("probe failed")

    task = PeriodicTask(flaky, interval=0.01, name="flaky")

    async def scenario():
        task.start()
        await asyncio.sleep(0.05)
        task.cancel()

    asyncio.run(scenario())
    assert len(calls) >= 2
    assert task.tick_count >= 2
    assert "Error in polling task 'flaky'" in caplog.text


def test_cancel_when_not_started_is_safe():
    PeriodicTask(lambda: None).cancel()
