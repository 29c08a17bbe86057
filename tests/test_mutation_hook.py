"""Tests for the mutation hook."""

import asyncio

import pytest

from clinicrm.errors import DataAccessError, ErrorKind, ValidationError
from clinicrm.events import DATA_INVALIDATED
from clinicrm.hooks import MutationHook
from clinicrm.notify import NoticeLevel
from tests.conftest import make_patient
from tests.fakes import api_error, permission_error, transient_error


@pytest.fixture
def hook(remote, notifier, events):
    return MutationHook(remote, notifier=notifier, events=events)


class TestValidation:
    """Invalid arguments never reach the store."""

    @pytest.mark.parametrize("call", [
        lambda h: h.insert("patients", {}),
        lambda h: h.batch_insert("patients", []),
        lambda h: h.batch_insert("patients", [{"name": "A"}, {}]),
        lambda h: h.update("patients", "", {"status": "Booked"}),
        lambda h: h.update("patients", "p1", {}),
        lambda h: h.remove("patients", ""),
        lambda h: h.insert("invoices", {"name": "A"}),
    ])
    def test_rejected_before_any_request(self, hook, db, notifier, call):
        with pytest.raises(ValidationError):
            asyncio.run(call(hook))
        assert db.calls == []
        assert hook.error.kind == ErrorKind.VALIDATION
        assert hook.loading is False
        assert len(notifier.messages(NoticeLevel.ERROR)) == 1


class TestOperations:

    def test_insert_returns_rows_and_invalidates(self, hook, db, events):
        published = []
        events.subscribe(DATA_INVALIDATED, published.append)

        rows = asyncio.run(hook.insert("patients", make_patient(None, "Amy")))

        assert len(rows) == 1 and rows[0]["name"] == "Amy"
        assert hook.success_data == rows
        assert hook.error is None
        assert published == [{"tables": ["patients"]}]
        assert len(db.tables["patients"]) == 1

    def test_batch_insert(self, hook, db):
        rows = asyncio.run(hook.batch_insert("follow_ups", [
            {"patient_id": "p1", "type": "SMS", "date": "2024-05-01", "time": "10:00:00"},
            {"patient_id": "p1", "type": "Phone Call", "date": "2024-05-02", "time": "11:00:00"},
        ]))
        assert len(rows) == 2
        assert db.count_calls("follow_ups", "insert") == 1

    def test_update_and_remove(self, hook, db):
        db.tables["patients"] = [make_patient("p1", "Amy")]
        updated = asyncio.run(hook.update("patients", "p1", {"status": "Booked"}))
        assert updated[0]["status"] == "Booked"
        removed = asyncio.run(hook.remove("patients", "p1"))
        assert [r["id"] for r in removed] == ["p1"]
        assert db.tables["patients"] == []


class TestFailures:

    def test_store_error_is_recorded_and_reraised(self, hook, db, notifier, events):
        published = []
        events.subscribe(DATA_INVALIDATED, published.append)
        db.fail("patients", "insert", api_error("23505", "duplicate key value"))

        with pytest.raises(DataAccessError) as excinfo:
            asyncio.run(hook.insert("patients", make_patient(None, "Amy")))

        assert excinfo.value.kind == ErrorKind.INVALID_REQUEST
        assert hook.error is excinfo.value
        assert hook.success_data is None
        assert published == []
        assert "duplicate key value" in notifier.messages(NoticeLevel.ERROR)[0]

    def test_insert_retries_connection_three_times(self, hook, db, sleeps):
        db.fail("patients", "head", transient_error())
        with pytest.raises(DataAccessError) as excinfo:
            asyncio.run(hook.insert("patients", make_patient(None, "Amy")))
        assert excinfo.value.kind == ErrorKind.CONNECTIVITY
        assert db.count_calls("patients", "head") == 4
        assert len(sleeps) == 3
        assert db.count_calls("patients", "insert") == 0

    def test_update_retries_connection_once(self, hook, db, sleeps):
        db.fail("patients", "head", transient_error())
        with pytest.raises(DataAccessError):
            asyncio.run(hook.update("patients", "p1", {"status": "Booked"}))
        assert db.count_calls("patients", "head") == 2
        assert len(sleeps) == 1

    def test_permission_denied_probe(self, hook, db, notifier):
        db.fail("patients", "head", permission_error())
        with pytest.raises(DataAccessError) as excinfo:
            asyncio.run(hook.remove("patients", "p1"))
        assert excinfo.value.is_permission_denied
        assert notifier.messages(NoticeLevel.ERROR) == ["You do not have permission to change this data"]

    def test_next_call_resets_error(self, hook, db):
        db.fail("patients", "insert", api_error("23505"), times=1)
        with pytest.raises(DataAccessError):
            asyncio.run(hook.insert("patients", make_patient(None, "Amy")))
        asyncio.run(hook.insert("patients", make_patient(None, "Amy")))
        assert hook.error is None


class TestCachedRows:
    """Rows with fabricated ids live only in the demo cache."""

    @pytest.fixture
    def cached_hook(self, remote, cache, notifier, events):
        cache.save(
            [make_patient("demo-1", "Demo One"), make_patient("demo-2", "Demo Two")],
            [
                {"id": "demo-f1", "patient_id": "demo-1", "type": "SMS"},
                {"id": "demo-f2", "patient_id": "demo-2", "type": "Phone Call"},
            ],
        )
        return MutationHook(remote, notifier=notifier, events=events, cache=cache)

    def test_update_changes_the_cached_row(self, cached_hook, cache, db):
        rows = asyncio.run(cached_hook.update("patients", "demo-1", {"status": "Booked"}))

        assert rows[0]["status"] == "Booked"
        assert {p["id"]: p["status"] for p in cache.rows("patients")} == {"demo-1": "Booked", "demo-2": "Pending"}
        assert db.calls == []

    def test_remove_drops_patient_and_its_follow_ups(self, cached_hook, cache, db, events):
        seen = []
        events.subscribe(DATA_INVALIDATED, seen.append)

        rows = asyncio.run(cached_hook.remove("patients", "demo-1"))

        assert [r["id"] for r in rows] == ["demo-1"]
        assert [p["id"] for p in cache.rows("patients")] == ["demo-2"]
        assert [f["id"] for f in cache.rows("follow_ups")] == ["demo-f2"]
        assert seen == [{"tables": ["patients", "follow_ups"]}]
        assert db.calls == []

    def test_unknown_cached_id_affects_nothing(self, cached_hook, cache):
        assert asyncio.run(cached_hook.update("patients", "demo-9", {"status": "Booked"})) == []
        assert len(cache.rows("patients")) == 2

    def test_store_ids_still_go_remote(self, cached_hook, db):
        db.tables["patients"] = [make_patient("p1", "Amy")]
        asyncio.run(cached_hook.update("patients", "p1", {"status": "Booked"}))
        assert db.tables["patients"][0]["status"] == "Booked"
        assert db.count_calls("patients", "update") == 1
