"""
Shared fixtures: an in-memory Supabase, the data layer built on it, and
profiles for each role.
"""

import pytest

from clinicrm.auth.session import AuthManager
from clinicrm.db import connection
from clinicrm.db.remote import RemoteDataClient
from clinicrm.db.repositories import ProfileRepository
from clinicrm.events import EventBus
from clinicrm.models import Profile, UserRole
from clinicrm.notify import Notifier
from clinicrm.storage import DemoCache, MemorySessionStore, MemoryStore
from tests.fakes import FakeSupabase


@pytest.fixture(autouse=True)
def sleeps(monkeypatch):
    """Record retry delays instead of waiting them out."""
    delays = []

    async def fake_sleep(delay):
        delays.append(delay)

    monkeypatch.setattr(connection, "_sleep", fake_sleep)
    return delays


@pytest.fixture
def db():
    return FakeSupabase()


@pytest.fixture
def client(db):
    return db.client()


@pytest.fixture
def remote(client):
    return RemoteDataClient(client)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def cache(store):
    return DemoCache(store)


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def notifier():
    return Notifier()


@pytest.fixture
def session_store():
    return MemorySessionStore()


@pytest.fixture
def auth(client, remote, session_store, events, notifier):
    return AuthManager(client, ProfileRepository(remote), session_store, events=events, notifier=notifier)


@pytest.fixture
def admin_profile():
    return Profile(id="admin-1", name="Ada Admin", email="ada@clinic.ae", role=UserRole.ADMIN, clinic_id="clinic-1")


@pytest.fixture
def doctor_profile():
    return Profile(id="doc-1", name="Dr. Smith", email="smith@clinic.ae", role=UserRole.DOCTOR, clinic_id="clinic-1")


def make_patient(patient_id, name, status="Pending", doctor_id="doc-1", created_at="2024-05-01T10:00:00+00:00", **extra):
    row = {
        "id": patient_id,
        "name": name,
        "phone": "+971500000000",
        "status": status,
        "doctor_id": doctor_id,
        "clinic_id": "clinic-1",
        "created_at": created_at,
    }
    if status == "Cold":
        row["cold_reason"] = extra.pop("cold_reason", "no-response")
    row.update(extra)
    return row
