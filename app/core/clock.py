# app/core/clock.py - Source of "today" and "now" for the finance services
from datetime import date, datetime, timezone


class Clock:
    """System clock. Timestamps are naive UTC, matching the DateTime columns."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)

    def today(self) -> date:
        return self.now().date()


system_clock = Clock()


def utcnow() -> datetime:
    """Column default for created/updated timestamps"""
    return system_clock.now()
