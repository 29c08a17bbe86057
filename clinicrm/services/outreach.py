"""
Outreach window evaluation.

Clinics contact patients only inside a daily time window, never on
excluded days, and no more often than their configured interval.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import FrozenSet, Optional

from clinicrm.db.repositories import SettingsRepository
from clinicrm.logging import get_logger
from clinicrm.models import Settings

logger = get_logger(__name__)

# How far ahead to look for an open slot before giving up
SEARCH_DAYS = 366


@dataclass(frozen=True)
class OutreachWindow:
    start: time = time(9, 0)
    end: time = time(17, 0)
    excluded_days: FrozenSet[str] = field(default_factory=frozenset)
    interval: timedelta = timedelta(minutes=60)

    @classmethod
    def from_settings(cls, settings: Settings) -> "OutreachWindow":
        return cls(
            start=settings.outreach_start_time,
            end=settings.outreach_end_time,
            excluded_days=frozenset(d.strip().lower() for d in settings.excluded_days if d.strip()),
            interval=timedelta(minutes=settings.outreach_interval),
        )

    def is_excluded(self, day: date) -> bool:
        """Excluded by weekday name ("friday") or ISO date ("2024-12-25")."""
        return (
            day.strftime("%A").lower() in self.excluded_days
            or day.isoformat() in self.excluded_days
        )

    def is_open(self, at: datetime) -> bool:
        return self.start <= at.time() < self.end and not self.is_excluded(at.date())

    def next_open(self, at: datetime) -> Optional[datetime]:
        """The earliest moment at or after `at` inside the window."""
        if self.is_open(at):
            return at

        day = at.date()
        if at.time() >= self.start:
            day += timedelta(days=1)

        for _ in range(SEARCH_DAYS):
            if not self.is_excluded(day):
                return datetime.combine(day, self.start, tzinfo=at.tzinfo)
            day += timedelta(days=1)

        logger.warning("No open outreach slot found; every day is excluded")
        return None

    def next_contact_time(self, last_contact: datetime) -> Optional[datetime]:
        """When a patient last contacted at `last_contact` may be contacted again."""
        return self.next_open(last_contact + self.interval)


async def load_outreach_window(settings: SettingsRepository, clinic_id: Optional[str]) -> OutreachWindow:
    """The clinic's configured window, or the default window when none is stored."""
    stored = await settings.get_for_clinic(clinic_id) if clinic_id else None
    if stored is None:
        logger.info(f"No outreach settings for clinic {clinic_id}; using defaults")
        stored = Settings(clinic_id=clinic_id)
    return OutreachWindow.from_settings(stored)
