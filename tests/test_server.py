"""Tests for the FastAPI server."""

import pytest
from fastapi.testclient import TestClient
from jose import jwt

import server
from clinicrm.config import AppConfig
from clinicrm.context import build_context
from clinicrm.db.client import reset_clients
from clinicrm.storage import MemorySessionStore, MemoryStore
from tests.conftest import make_patient
from tests.fakes import FakeSupabase

JWT_SECRET = "test-secret"


@pytest.fixture
def db():
    db = FakeSupabase({
        "patients": [
            make_patient("p1", "Amy", status="Cold", doctor_id="doc-1"),
            make_patient("p2", "Bob", doctor_id="doc-1"),
            make_patient("p3", "Cat", doctor_id="doc-2"),
        ],
        "follow_ups": [
            {"id": "f1", "patient_id": "p1", "type": "Phone Call", "date": "2024-05-02", "time": "10:00:00", "response": None},
            {"id": "f2", "patient_id": "p3", "type": "SMS", "date": "2024-05-03", "time": "10:00:00", "response": "Yes"},
        ],
        "profiles": [
            {"id": "doc-1", "name": "Dr. Smith", "email": "smith@clinic.ae", "role": "doctor", "clinic_id": "clinic-1"},
        ],
    })
    db.auth.add_user("smith@clinic.ae", "secret", user_id="doc-1")
    return db


@pytest.fixture
def api(db, monkeypatch):
    monkeypatch.delenv("SUPABASE_JWT_SECRET", raising=False)
    reset_clients()
    context = build_context(
        client=db.client(),
        store=MemoryStore(),
        session_store=MemorySessionStore(),
        config=AppConfig(),
    )
    server.set_context(context)
    yield TestClient(server.app)
    server.set_context(None)
    reset_clients()


def _ids(response):
    return sorted(p["id"] for p in response.json()["patients"])


class TestAuth:

    def test_requires_session(self, api):
        assert api.get("/api/patients").status_code == 401

    def test_bypass_session(self, api):
        response = api.post("/api/auth/bypass")
        assert response.status_code == 200
        assert response.json()["bypass"] is True
        assert response.json()["profile"]["role"] == "admin"

        me = api.get("/api/auth/me").json()
        assert me["role"] == "admin" and me["bypass"] is True

    def test_rejected_login(self, api):
        response = api.post("/api/auth/login", json={"email": "smith@clinic.ae", "password": "nope"})
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "AUTH_001"

    def test_logout(self, api):
        api.post("/api/auth/bypass")
        assert api.post("/api/auth/logout").status_code == 200
        assert api.get("/api/auth/me").status_code == 401

    def test_bearer_token_checked_with_supabase(self, api):
        response = api.get("/api/auth/me", headers={"Authorization": "Bearer token-doc-1"})
        assert response.status_code == 200
        assert response.json()["role"] == "doctor"

    def test_bypass_token_is_not_a_credential(self, api):
        response = api.get("/api/auth/me", headers={"Authorization": "Bearer bypass"})
        assert response.status_code == 401

    def test_jwt_verified_locally(self, api, monkeypatch):
        monkeypatch.setenv("SUPABASE_JWT_SECRET", JWT_SECRET)
        reset_clients()
        token = jwt.encode(
            {"sub": "doc-1", "email": "smith@clinic.ae", "aud": "authenticated"},
            JWT_SECRET,
            algorithm="HS256",
        )
        response = api.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 200
        assert response.json()["id"] == "doc-1"

        forged = jwt.encode({"sub": "doc-1", "aud": "authenticated"}, "other", algorithm="HS256")
        response = api.get("/api/auth/me", headers={"Authorization": f"Bearer {forged}"})
        assert response.status_code == 401


class TestData:

    def test_admin_sees_all_patients(self, api):
        api.post("/api/auth/bypass")
        response = api.get("/api/patients")
        assert response.status_code == 200
        assert response.json()["count"] == 3
        assert response.json()["origin"] == "remote"

    def test_doctor_sees_own_patients(self, api):
        api.post("/api/auth/login", json={"email": "smith@clinic.ae", "password": "secret"})
        assert _ids(api.get("/api/patients")) == ["p1", "p2"]
        assert _ids(api.get("/api/patients", params={"status": "Cold"})) == ["p1"]

    def test_search_pattern(self, api):
        api.post("/api/auth/bypass")
        assert _ids(api.get("/api/patients", params={"search": "c*"})) == ["p3"]

    def test_follow_ups_scoped(self, api):
        headers = {"Authorization": "Bearer token-doc-1"}
        body = api.get("/api/follow-ups", headers=headers).json()
        assert [f["id"] for f in body["follow_ups"]] == ["f1"]
        assert body["follow_ups"][0]["patient_name"] == "Amy"

        api.post("/api/auth/bypass")
        body = api.get("/api/follow-ups", params={"pending": True}).json()
        assert [f["id"] for f in body["follow_ups"]] == ["f1"]

    def test_stats(self, api):
        api.post("/api/auth/bypass")
        stats = api.get("/api/stats").json()
        assert stats["status_counts"] == {"Cold": 1, "Pending": 2}
        assert stats["follow_up_counts"]["total"] == 2
        assert stats["origin"] == "live"

    def test_outreach_defaults(self, api):
        api.post("/api/auth/bypass")
        body = api.get("/api/outreach", params={"clinic_id": "clinic-1"}).json()
        assert body["start"] == "09:00:00"
        assert body["interval_minutes"] == 60


class TestDemoAndImport:

    def test_generate_skipped_when_data_exists(self, api):
        api.post("/api/auth/bypass")
        assert api.post("/api/demo").json() == {"generated": False, "patients": 0, "follow_ups": 0}

    def test_clear_requires_admin(self, api, db):
        headers = {"Authorization": "Bearer token-doc-1"}
        assert api.delete("/api/demo", headers=headers).status_code == 403

        api.post("/api/auth/bypass")
        response = api.delete("/api/demo")
        assert response.json() == {"cleared": {"follow_ups": True, "patients": True}}
        assert db.tables["patients"] == []

    def test_generate_into_empty_store(self, api, db):
        api.post("/api/auth/bypass")
        api.delete("/api/demo")
        body = api.post("/api/demo").json()
        assert body["generated"] is True
        assert body["patients"] == 20
        assert body["simulated"] is False

    def test_generated_rows_belong_to_the_caller(self, api, db):
        api.post("/api/auth/bypass")
        api.delete("/api/demo")

        headers = {"Authorization": "Bearer token-doc-1"}
        body = api.post("/api/demo", headers=headers).json()

        assert body["generated"] is True
        assert {p["doctor_id"] for p in db.tables["patients"]} == {"doc-1"}
        assert {f["created_by"] for f in db.tables["follow_ups"]} == {"doc-1"}

    def test_import_upload(self, api, db):
        api.post("/api/auth/bypass")
        files = {"file": ("new.csv", b"Patient Name,Phone\nEve,+971500000123\n", "text/csv")}
        body = api.post("/api/import", files=files).json()
        assert body["success_count"] == 1 and body["error_count"] == 0
        assert any(p["name"] == "Eve" for p in db.tables["patients"])
