"""
Provider admission control.

Two interchangeable policies guard every call to an external provider:

- TieredRateLimiter: sliding-window ceilings per second, minute, hour,
  day and week. Counts are cumulative (the minute count includes the
  events of the current second, and so on).
- CooldownLimiter: a fixed minimum delay between consecutive calls.

Each limiter owns an asyncio.Lock. A caller waiting for admission sleeps
while holding it, so at most one request per provider is outstanding.
Sleeps are not cancellable; shutdown waits them out.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Awaitable, Callable, Sequence

from loguru import logger

from relay.config.constants import RATE_HISTORY_RETENTION, TIER_NAMES, TIER_WINDOWS
from relay.config.settings import ProviderConfig


Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[None]]


class AdmissionPolicy(ABC):
    """
    Base class for provider admission policies.

    Usage:
        async with limiter:
            # exactly one request to the provider
            ...

    or, when only the pacing matters:
        await limiter.admit()
    """

    def __init__(
        self,
        name: str,
        clock: Clock = time.time,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self.name = name
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()

    @abstractmethod
    def _delay(self, now: float) -> float:
        """Seconds to wait before an event at `now` is compliant."""

    @abstractmethod
    def _record(self, now: float) -> None:
        """Register an admitted event at `now`."""

    async def _pass(self) -> float:
        """Wait until compliant and record the event. Caller holds the lock."""
        waited = 0.0
        while True:
            now = self._clock()
            delay = self._delay(now)
            if delay <= 0:
                self._record(now)
                return waited
            logger.info(f"{self.name}: delaying request for {delay:.3f} seconds")
            await self._sleep(delay)
            waited += delay

    async def admit(self) -> float:
        """
        Block until a request is compliant, then record it.

        Returns:
            Total seconds spent waiting
        """
        async with self._lock:
            return await self._pass()

    async def __aenter__(self) -> "AdmissionPolicy":
        await self._lock.acquire()
        try:
            await self._pass()
        except BaseException:
            self._lock.release()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self._lock.release()


class TieredRateLimiter(AdmissionPolicy):
    """
    Multi-tier sliding-window rate limiter.

    Rates are [per sec, per min, per hour, per day, per week]. A tier of 0
    (or a missing trailing tier) is disabled and the next coarser
    configured tier decides.
    """

    def __init__(
        self,
        rates: Sequence[int],
        name: str = "limiter",
        clock: Clock = time.time,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        super().__init__(name, clock=clock, sleep=sleep)
        if len(rates) > len(TIER_WINDOWS):
            raise ValueError(f"At most {len(TIER_WINDOWS)} rate tiers supported")
        self.rates = list(rates)
        # (tier index, ceiling) for enabled tiers, finest first
        self._tiers = [(i, n) for i, n in enumerate(self.rates) if n > 0]
        self._history: deque[float] = deque()

    def _prune(self, now: float) -> None:
        while self._history and now - self._history[0] >= RATE_HISTORY_RETENTION:
            self._history.popleft()

    def _counts(self, now: float) -> list[int]:
        """Cumulative event counts per tier window."""
        counts = [0] * len(TIER_WINDOWS)
        for ts in reversed(self._history):
            age = now - ts
            if age >= RATE_HISTORY_RETENTION:
                break
            for i, window in enumerate(TIER_WINDOWS):
                if age < window:
                    counts[i] += 1
        return counts

    def _delay(self, now: float) -> float:
        self._prune(now)
        counts = self._counts(now)
        for i, ceiling in self._tiers:
            if counts[i] + 1 > ceiling:
                # history is chronological: the window holds the last counts[i] events
                oldest = self._history[len(self._history) - counts[i]]
                return oldest + TIER_WINDOWS[i] - now
        return 0.0

    def _record(self, now: float) -> None:
        self._history.append(now)

    def stats(self) -> dict[str, int]:
        """Current per-tier event counts."""
        now = self._clock()
        self._prune(now)
        return dict(zip(TIER_NAMES, self._counts(now), strict=True))


class CooldownLimiter(AdmissionPolicy):
    """Admits a call once `cool_time` seconds passed since the previous one."""

    def __init__(
        self,
        cool_time: float,
        name: str = "cooldown",
        clock: Clock = time.time,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        super().__init__(name, clock=clock, sleep=sleep)
        if cool_time <= 0:
            raise ValueError("cool_time must be positive")
        self.cool_time = cool_time
        self._last_call: float | None = None

    def _delay(self, now: float) -> float:
        if self._last_call is None:
            return 0.0
        return self._last_call + self.cool_time - now

    def _record(self, now: float) -> None:
        self._last_call = now


def build_limiter(
    config: ProviderConfig,
    name: str,
    clock: Clock = time.time,
    sleep: Sleeper = asyncio.sleep,
) -> AdmissionPolicy:
    """
    Build the admission policy described by a provider configuration.

    Args:
        config: Provider access policy
        name: Provider name used in log lines
        clock: Time source (Unix seconds)
        sleep: Async sleep function

    Returns:
        CooldownLimiter if cool_time is set, else TieredRateLimiter
    """
    if config.uses_cooldown:
        return CooldownLimiter(config.cool_time, name=name, clock=clock, sleep=sleep)
    if not config.rate_limits or not any(config.rate_limits):
        logger.warning(f"{name}: no rate limits configured, requests are unconstrained")
    return TieredRateLimiter(config.rate_limits or [], name=name, clock=clock, sleep=sleep)
