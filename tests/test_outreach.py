"""Tests for outreach windows."""

import asyncio
from datetime import datetime, time, timedelta

from clinicrm.db.repositories import SettingsRepository
from clinicrm.models import Settings
from clinicrm.services.outreach import OutreachWindow, load_outreach_window

# 2024-05-10 is a Friday
FRIDAY_NOON = datetime(2024, 5, 10, 12, 0)


def window(**overrides):
    settings = Settings(**overrides)
    return OutreachWindow.from_settings(settings)


class TestWindow:

    def test_open_inside_hours(self):
        w = window()
        assert w.is_open(FRIDAY_NOON)
        assert not w.is_open(FRIDAY_NOON.replace(hour=17))
        assert not w.is_open(FRIDAY_NOON.replace(hour=8, minute=59))

    def test_excluded_weekday_and_date(self):
        w = window(excluded_days=["Friday", "2024-05-11"])
        assert not w.is_open(FRIDAY_NOON)
        assert w.next_open(FRIDAY_NOON) == datetime(2024, 5, 12, 9, 0)

    def test_next_open_later_today_or_tomorrow(self):
        w = window()
        assert w.next_open(FRIDAY_NOON.replace(hour=7)) == datetime(2024, 5, 10, 9, 0)
        assert w.next_open(FRIDAY_NOON.replace(hour=18)) == datetime(2024, 5, 11, 9, 0)

    def test_next_contact_respects_interval(self):
        w = window(outreach_interval=90)
        assert w.interval == timedelta(minutes=90)
        assert w.next_contact_time(FRIDAY_NOON) == datetime(2024, 5, 10, 13, 30)
        assert w.next_contact_time(FRIDAY_NOON.replace(hour=16)) == datetime(2024, 5, 11, 9, 0)

    def test_everything_excluded(self):
        days = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
        assert window(excluded_days=days).next_open(FRIDAY_NOON) is None


class TestLoading:

    def test_stored_settings(self, remote, db):
        db.tables["settings"] = [{
            "id": "s1",
            "clinic_id": "clinic-1",
            "outreach_start_time": "08:00:00",
            "outreach_end_time": "12:00:00",
            "excluded_days": ["Sunday"],
            "outreach_interval": 30,
        }]
        w = asyncio.run(load_outreach_window(SettingsRepository(remote), "clinic-1"))
        assert w.start == time(8, 0) and w.end == time(12, 0)
        assert w.excluded_days == frozenset({"sunday"})

    def test_defaults_when_missing(self, remote):
        w = asyncio.run(load_outreach_window(SettingsRepository(remote), "clinic-9"))
        assert w == OutreachWindow()

    def test_save_updates_existing(self, remote, db):
        repo = SettingsRepository(remote)
        saved = asyncio.run(repo.save(Settings(clinic_id="clinic-1", outreach_interval=45)))
        assert saved.id is not None
        updated = asyncio.run(repo.save(saved.model_copy(update={"outreach_interval": 15})))
        assert updated.outreach_interval == 15
        assert len(db.tables["settings"]) == 1
