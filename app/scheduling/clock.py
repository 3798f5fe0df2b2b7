import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Optional, Protocol

import pytz

logger = logging.getLogger(__name__)


class Clock(Protocol):
    def now(self) -> datetime:
        """Naive local wall-clock time."""
        ...


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...


class SystemClock:
    """Wall clock, optionally pinned to a pytz zone.

    Schedules are naive "HH:MM" strings, so ``now`` is always returned naive
    to keep comparisons consistent.
    """

    def __init__(self, timezone: Optional[str] = None):
        self.tz = pytz.timezone(timezone) if timezone else None

    def now(self) -> datetime:
        if self.tz is None:
            return datetime.now()
        return datetime.now(self.tz).replace(tzinfo=None)


class AsyncioScheduler:
    """One-shot timers on the running event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> asyncio.TimerHandle:
        return self.loop.call_later(max(delay, 0), self._run, callback, args)

    @staticmethod
    def _run(callback: Callable[..., Any], args: tuple) -> None:
        # A failing callback must not take the timer chain down with it
        try:
            callback(*args)
        except Exception:
            logger.exception("Timer callback %r failed", callback)
