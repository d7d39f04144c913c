"""Clock abstractions so maturation can be driven by synthetic time."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Return the current timezone-aware UTC time."""

    return datetime.now(timezone.utc)


def ensure_aware(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC."""

    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


class SystemClock:
    """Wall-clock time provider."""

    def __call__(self) -> datetime:
        return utcnow()


class ManualClock:
    """Clock that only moves when told to, for tests and demos."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self._now = ensure_aware(start or utcnow())

    def __call__(self) -> datetime:
        return self._now

    def set(self, moment: datetime) -> None:
        self._now = ensure_aware(moment)

    def advance(self, **delta: float) -> datetime:
        self._now += timedelta(**delta)
        return self._now


__all__ = ["Clock", "ManualClock", "SystemClock", "ensure_aware", "utcnow"]
