"""
abmeter.tier0_core.clock
─────────────────────────
Mockable time source. Exposure timestamps, event timestamps and the config
cache TTL all read time through a ``Clock`` so tests can freeze or advance it.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable


class Clock:
    """Mockable clock. Override now_fn to control time in tests."""

    def __init__(self, now_fn: Callable[[], datetime] | None = None) -> None:
        self._now_fn = now_fn or (lambda: datetime.now(tz=timezone.utc))

    def now(self) -> datetime:
        """Return the current UTC datetime."""
        return self._now_fn()

    def freeze(self, dt: datetime) -> "Clock":
        """Return a new Clock frozen at the given datetime."""
        return Clock(now_fn=lambda: dt)


class ManualClock(Clock):
    """A clock that only moves when ``advance`` is called."""

    def __init__(self, start: datetime | None = None) -> None:
        self._current = start or datetime.now(tz=timezone.utc)
        super().__init__(now_fn=lambda: self._current)

    def advance(self, seconds: float) -> None:
        self._current = self._current + timedelta(seconds=seconds)


_clock = Clock()


def get_clock() -> Clock:
    """Return the global clock instance."""
    return _clock


def set_clock(clock: Clock) -> None:
    """Replace the global clock (use in tests)."""
    global _clock
    _clock = clock


def now() -> datetime:
    """Return the current UTC datetime."""
    return _clock.now()


__all__ = ["Clock", "ManualClock", "get_clock", "set_clock", "now"]
