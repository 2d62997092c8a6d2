"""Deadline-bounded polling with exponential backoff."""

from __future__ import annotations

import asyncio
import inspect
import time
from enum import Enum
from typing import Awaitable, Callable, Union

Predicate = Callable[[], Union[bool, Awaitable[bool]]]


class WaitResult(str, Enum):
    ready = "ready"
    timed_out = "timed_out"


async def wait_until(
    predicate: Predicate,
    *,
    initial_interval_ms: float = 50,
    deadline_ms: float = 5000,
    max_interval_ms: float | None = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> WaitResult:
    """Poll ``predicate`` until it holds or ``deadline_ms`` elapses.

    The predicate is checked immediately, then after sleeps of
    ``initial_interval_ms``, twice that, and so on. The final sleep is cut
    short so the wait never overshoots the deadline; the predicate gets one
    last check at the deadline before the wait resolves as timed out.

    Parameters
    ----------
    predicate:
        Zero-argument callable returning a bool or an awaitable bool.
    initial_interval_ms:
        First sleep between checks.
    deadline_ms:
        Total time budget measured from the first check.
    max_interval_ms:
        Optional ceiling for the doubled interval.

    Returns
    -------
    WaitResult
        ``ready`` as soon as a check succeeds, ``timed_out`` otherwise.
    """
    started = clock()
    interval_ms = initial_interval_ms
    while True:
        outcome = predicate()
        if inspect.isawaitable(outcome):
            outcome = await outcome
        if outcome:
            return WaitResult.ready

        remaining_ms = deadline_ms - (clock() - started) * 1000
        if remaining_ms <= 0:
            return WaitResult.timed_out

        await sleep(min(interval_ms, remaining_ms) / 1000)
        interval_ms *= 2
        if max_interval_ms is not None:
            interval_ms = min(interval_ms, max_interval_ms)
