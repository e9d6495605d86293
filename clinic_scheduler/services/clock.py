# clinic_scheduler/services/clock.py
from __future__ import annotations
from datetime import datetime, date, time, timedelta

import pytz

from ..config import settings


class SystemClock:
    """Reloj real en la TZ de la clínica."""

    def __init__(self, timezone: str | None = None):
        self.tz = pytz.timezone(timezone or settings.TIMEZONE)

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def localize(self, day: date, t: time) -> datetime:
        """Fecha + hora (naive, hora local de la clínica) → datetime aware."""
        return self.tz.localize(datetime.combine(day, t))


class FixedClock(SystemClock):
    """
    Reloj fijo para pruebas y simulaciones. `now` se interpreta como hora
    local de `timezone` si viene naive.
    """

    def __init__(self, now: datetime, timezone: str | None = None):
        super().__init__(timezone)
        self._now = now if now.tzinfo else self.tz.localize(now)

    def now(self) -> datetime:
        return self._now

    def advance(self, delta: timedelta) -> datetime:
        self._now = self._now + delta
        return self._now
