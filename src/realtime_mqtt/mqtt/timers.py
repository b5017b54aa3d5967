"""Single-slot timers and reconnect backoff."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Callable

from realtime_mqtt.logging_abstraction import get_logger

__all__ = ["BackoffPolicy", "RearmableTimer"]

logger = get_logger(__name__)


class RearmableTimer:
    """A named timer holding at most one pending callback.

    ``rearm()`` always cancels the pending callback before scheduling the new
    one, so two callbacks of the same timer are never outstanding.
    """

    def __init__(self, name: str, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self.name = name
        self.lp = f"{name}Timer:"
        self._loop = loop
        self._handle: asyncio.TimerHandle | None = None
        self.delay: float | None = None

    @property
    def active(self) -> bool:
        return self._handle is not None and not self._handle.cancelled()

    def rearm(self, delay: float, callback: Callable[[], None]) -> None:
        _ = self.cancel()
        loop = self._loop or asyncio.get_running_loop()
        self.delay = delay
        self._handle = loop.call_later(delay, self._fire, callback)
        logger.debug("%s armed for %.1f seconds", self.lp, delay)

    def cancel(self) -> bool:
        """Cancel the pending callback. Returns True if one was pending."""
        handle, self._handle = self._handle, None
        self.delay = None
        if handle is None or handle.cancelled():
            return False
        handle.cancel()
        logger.debug("%s existing timer has been canceled", self.lp)
        return True

    def _fire(self, callback: Callable[[], None]) -> None:
        self._handle = None
        self.delay = None
        callback()


class BackoffPolicy:
    """Exponential reconnect backoff.

    The interval starts at 0 (connect immediately). Each failure moves it to
    ``min_interval`` and then doubles it, capped at ``max_interval``. An
    optional jitter adds up to ``jitter_factor`` of the interval to the delay.
    """

    def __init__(
        self,
        min_interval: float = 1.0,
        max_interval: float = 300.0,
        jitter_factor: float = 0.0,
    ):
        if min_interval <= 0 or max_interval < min_interval:
            msg = f"Invalid backoff bounds: min={min_interval}, max={max_interval}"
            raise ValueError(msg)
        self.min_interval = min_interval
        self.max_interval = max_interval
        self.jitter_factor = jitter_factor
        self.interval: float = 0.0

    def reset(self) -> None:
        self.interval = 0.0

    def grow(self) -> float:
        """Advance to the next interval after a failed attempt and return it."""
        if not self.interval:
            self.interval = self.min_interval
        else:
            self.interval = min(self.interval * 2, self.max_interval)
        return self.interval

    def delay(self) -> float:
        """Delay to wait before the next attempt (interval plus jitter)."""
        if not self.interval or not self.jitter_factor:
            return self.interval
        return self.interval + random.uniform(0, self.interval * self.jitter_factor)

    def __repr__(self) -> str:
        return (
            f"BackoffPolicy(interval={self.interval}s, "
            f"min={self.min_interval}s, "
            f"max={self.max_interval}s, "
            f"jitter_factor={self.jitter_factor})"
        )
