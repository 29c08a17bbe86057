"""Tests for the merged follow-up view."""

from clinicrm.services.followups import (
    filter_follow_ups,
    filter_for_profile,
    follow_up_kind,
    merge_follow_ups,
    pending_follow_ups,
    recent_follow_ups,
)
from tests.conftest import make_patient

PATIENTS = [
    make_patient("p1", "Amy", doctor_id="doc-1"),
    make_patient("p2", "Bob", doctor_id="doc-2", clinic_id="clinic-2"),
]

FOLLOW_UPS = [
    {"id": "f1", "patient_id": "p1", "type": "Phone Call", "date": "2024-05-02", "time": "10:00:00", "response": "Yes"},
    {"id": "f2", "patient_id": "p2", "type": "SMS", "date": "2024-05-03", "time": "09:00:00", "response": None},
    {"id": "f3", "patient_id": "gone", "type": "Email", "date": "2024-05-02", "time": "11:00:00", "response": None},
]

CLINICS = {"clinic-1": "Dubai Clinic", "clinic-2": "Abu Dhabi Clinic"}


class TestMerge:

    def test_names_are_resolved(self):
        merged = {m.id: m for m in merge_follow_ups(FOLLOW_UPS, PATIENTS, CLINICS)}
        assert merged["f1"].patient_name == "Amy"
        assert merged["f1"].clinic_name == "Dubai Clinic"
        assert merged["f1"].doctor_id == "doc-1"
        assert merged["f2"].clinic_name == "Abu Dhabi Clinic"

    def test_unknown_references(self):
        merged = {m.id: m for m in merge_follow_ups(FOLLOW_UPS, PATIENTS)}
        assert merged["f3"].patient_name == "Unknown Patient"
        assert merged["f1"].clinic_name == "Unknown Clinic"


class TestFiltering:

    def test_profile_scope(self, admin_profile, doctor_profile):
        merged = merge_follow_ups(FOLLOW_UPS, PATIENTS, CLINICS)
        assert len(filter_for_profile(merged, admin_profile)) == 3
        assert [m.id for m in filter_for_profile(merged, doctor_profile)] == ["f1"]
        assert filter_for_profile(merged, None) == []

    def test_kind_and_response(self):
        merged = merge_follow_ups(FOLLOW_UPS, PATIENTS)
        assert follow_up_kind("Phone Call") == "call"
        assert follow_up_kind("SMS") == "message"
        assert [m.id for m in filter_follow_ups(merged, kind="call")] == ["f1"]
        assert [m.id for m in filter_follow_ups(merged, kind="message")] == ["f2", "f3"]
        assert [m.id for m in filter_follow_ups(merged, response="yes")] == ["f1"]
        assert [m.id for m in filter_follow_ups(merged, response="none")] == ["f2", "f3"]

    def test_pending_and_recent(self):
        merged = merge_follow_ups(FOLLOW_UPS, PATIENTS)
        assert [m.id for m in pending_follow_ups(merged)] == ["f2", "f3"]
        assert [m.id for m in recent_follow_ups(merged)] == ["f2", "f3", "f1"]
        assert [m.id for m in recent_follow_ups(merged, limit=1)] == ["f2"]
