"""Rate limiting decorator for dispatch clients.

RateLimitedClient admits at most `max_requests` calls within any rolling
`interval_millis` window. Calls over quota are delayed, never rejected:

    max_requests=2, interval_millis=1000, three calls at t=0
        → dispatched at t=0, t=0, t=1000

Admission runs under a single asyncio.Lock, held while an over-quota caller
waits for the window to roll. asyncio.Lock wakes waiters in arrival order, so
delayed calls are admitted first-come-first-served. The delegate call itself
runs outside the lock.

The clock and the sleep function are injected so tests can drive a virtual
clock and assert exact dispatch times.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Callable

from pydantic import BaseModel, ConfigDict, Field

from chapter_director.clients import DispatchClient, Sleep, sleep_millis
from chapter_director.models import NarrativeEventResponse
from chapter_director.prompts import PromptAssembly

logger = logging.getLogger(__name__)

Clock = Callable[[], float]  # milliseconds


def monotonic_clock() -> float:
    return time.monotonic() * 1000


class RateLimitConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_requests: int = Field(gt=0)
    interval_millis: int = Field(gt=0)


class RateLimitedClient:
    """Wraps any DispatchClient with admission control.

    Args:
        delegate: The client calls are forwarded to once admitted.
        config:   Window size and interval.
        clock:    Returns the current time in milliseconds.
        sleep:    Awaitable taking milliseconds.
    """

    def __init__(
        self,
        delegate: DispatchClient,
        config: RateLimitConfig,
        clock: Clock = monotonic_clock,
        sleep: Sleep = sleep_millis,
    ) -> None:
        self._delegate = delegate
        self._config = config
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._admitted: deque[float] = deque()

    @property
    def delegate(self) -> DispatchClient:
        return self._delegate

    @property
    def config(self) -> RateLimitConfig:
        return self._config

    async def generate(self, assembly: PromptAssembly) -> NarrativeEventResponse:
        await self._acquire()
        return await self._delegate.generate(assembly)

    async def _acquire(self) -> None:
        # Cancellation while sleeping releases the lock; the window is only
        # touched once a slot is actually taken.
        async with self._lock:
            while True:
                now = self._clock()
                wait = self._wait_time(now)
                if wait <= 0:
                    self._admit(now)
                    return
                logger.debug(
                    "rate limit reached (%d/%dms), delaying %.0fms",
                    self._config.max_requests, self._config.interval_millis, wait,
                )
                await self._sleep(wait)

    def _wait_time(self, now: float) -> float:
        self._prune(now)
        if len(self._admitted) < self._config.max_requests:
            return 0
        return self._admitted[0] + self._config.interval_millis - now

    def _admit(self, now: float) -> None:
        if len(self._admitted) >= self._config.max_requests:
            self._admitted.popleft()
        self._admitted.append(now)

    def _prune(self, now: float) -> None:
        horizon = now - self._config.interval_millis
        while self._admitted and self._admitted[0] < horizon:
            self._admitted.popleft()
