"""Tests for the deadline-bounded exponential polling primitive."""

from __future__ import annotations

import asyncio
import time

import pytest

from testuser.domain.waiter import WaitResult, wait_until


class FakeTimer:
    """Virtual clock whose sleeps advance time instantly."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def clock(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.mark.asyncio
async def test_ready_immediately_without_sleeping():
    timer = FakeTimer()
    result = await wait_until(lambda: True, clock=timer.clock, sleep=timer.sleep)
    assert result is WaitResult.ready
    assert timer.sleeps == []


@pytest.mark.asyncio
async def test_never_true_times_out_at_deadline():
    timer = FakeTimer()
    result = await wait_until(
        lambda: False,
        initial_interval_ms=125,
        deadline_ms=1000,
        clock=timer.clock,
        sleep=timer.sleep,
    )
    assert result is WaitResult.timed_out
    # doubling, with the last sleep trimmed to the time left
    assert timer.sleeps == [0.125, 0.25, 0.5, 0.125]
    assert timer.now == 1.0


@pytest.mark.asyncio
async def test_resolves_on_first_poll_after_predicate_turns_true():
    timer = FakeTimer()
    result = await wait_until(
        lambda: timer.now >= 0.2,
        initial_interval_ms=50,
        deadline_ms=5000,
        clock=timer.clock,
        sleep=timer.sleep,
    )
    assert result is WaitResult.ready
    # polls at 0, 50, 150, 350ms
    assert timer.sleeps == pytest.approx([0.05, 0.1, 0.2])


@pytest.mark.asyncio
async def test_interval_is_capped():
    timer = FakeTimer()
    result = await wait_until(
        lambda: False,
        initial_interval_ms=125,
        deadline_ms=1000,
        max_interval_ms=250,
        clock=timer.clock,
        sleep=timer.sleep,
    )
    assert result is WaitResult.timed_out
    assert timer.sleeps == [0.125, 0.25, 0.25, 0.25, 0.125]


@pytest.mark.asyncio
async def test_predicate_checked_once_more_at_deadline():
    timer = FakeTimer()
    result = await wait_until(
        lambda: timer.now >= 1.0,
        initial_interval_ms=125,
        deadline_ms=1000,
        clock=timer.clock,
        sleep=timer.sleep,
    )
    assert result is WaitResult.ready


@pytest.mark.asyncio
async def test_async_predicate_is_awaited():
    timer = FakeTimer()
    calls = 0

    async def predicate() -> bool:
        nonlocal calls
        calls += 1
        return calls == 3

    result = await wait_until(predicate, clock=timer.clock, sleep=timer.sleep)
    assert result is WaitResult.ready
    assert calls == 3


@pytest.mark.asyncio
async def test_concurrent_waiters_resolve_independently():
    flag = asyncio.Event()
    loop = asyncio.get_running_loop()
    loop.call_later(0.05, flag.set)

    started = time.monotonic()
    ready, timed_out = await asyncio.gather(
        wait_until(flag.is_set, initial_interval_ms=10, deadline_ms=1000),
        wait_until(lambda: False, initial_interval_ms=10, deadline_ms=300),
    )
    elapsed = time.monotonic() - started

    assert ready is WaitResult.ready
    assert timed_out is WaitResult.timed_out
    assert 0.3 <= elapsed < 0.8
