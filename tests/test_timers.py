"""Tests for the named timer set."""

import asyncio

import pytest

from custom_components.arlo_hub.core.timers import TimerSet


@pytest.mark.asyncio
async def test_call_later_runs_once():
    timers = TimerSet()
    calls = []

    timers.call_later("once", 0, lambda: calls.append("ran"))
    await asyncio.sleep(0.01)

    assert calls == ["ran"]
    assert "once" not in timers


@pytest.mark.asyncio
async def test_repeating_chain_is_replaced_not_duplicated():
    timers = TimerSet()
    calls = []

    async def _tick():
        calls.append("tick")

    timers.call_repeating("keep_alive", 20, _tick, run_now=True)
    timers.call_repeating("keep_alive", 20, _tick, run_now=True)
    await asyncio.sleep(0.01)

    assert calls == ["tick"]
    assert timers.names == ["keep_alive"]
    timers.cancel_all()
    assert timers.names == []


@pytest.mark.asyncio
async def test_callback_may_reschedule_itself():
    timers = TimerSet()
    calls = []

    def _again():
        calls.append(len(calls))
        if len(calls) < 3:
            timers.call_later("again", 0, _again)

    timers.call_later("again", 0, _again)
    await asyncio.sleep(0.02)

    assert calls == [0, 1, 2]


@pytest.mark.asyncio
async def test_failing_callback_keeps_repeating():
    timers = TimerSet()
    calls = []

    def _broken():
        calls.append(True)
        raise RuntimeError("boom")

    timers.call_repeating("broken", 0.005, _broken, run_now=True)
    await asyncio.sleep(0.02)
    timers.cancel("broken")

    assert len(calls) >= 2
    assert "broken" not in timers
