"""Tests for dashboard statistics."""

from datetime import date

from clinicrm.services.analytics import (
    compute_dashboard,
    conversion_trend,
    follow_up_counts,
    follow_up_trend,
    week_start,
)
from tests.conftest import make_patient

PATIENTS = [
    make_patient("p1", "Amy", status="Interested", doctor_id="doc-1", created_at="2024-05-06T10:00:00+00:00",
                 treatment_category="Dental", preferred_channel="Call", last_interaction_outcome="Yes"),
    make_patient("p2", "Bob", status="Pending", doctor_id="doc-1", created_at="2024-05-07T10:00:00+00:00",
                 treatment_category="Dental"),
    make_patient("p3", "Cat", status="Booked", doctor_id="doc-2", created_at="2024-05-14T10:00:00+00:00",
                 treatment_category="Cosmetic", preferred_channel="SMS"),
    make_patient("p4", "Dan", status="Not Interested", doctor_id="doc-2", created_at="2024-05-15T10:00:00+00:00"),
]

FOLLOW_UPS = [
    {"id": "f1", "patient_id": "p1", "type": "Phone Call"},
    {"id": "f2", "patient_id": "p2", "type": "SMS"},
    {"id": "f3", "patient_id": "p3", "type": "Email"},
    {"id": "f4", "patient_id": "p4", "type": "Text Message"},
]


class TestCounts:

    def test_follow_up_counts(self):
        counts = follow_up_counts(PATIENTS, FOLLOW_UPS)
        assert counts.call == 1
        assert counts.message == 2
        assert counts.total == 4
        assert counts.pending == 1
        assert counts.interested == 1
        assert counts.not_interested == 1


class TestTrend:

    def test_week_starts_on_sunday(self):
        assert week_start(date(2024, 5, 8)) == date(2024, 5, 5)
        assert week_start(date(2024, 5, 5)) == date(2024, 5, 5)

    def test_weekly_rates(self):
        trend = conversion_trend(PATIENTS)
        assert [w.week for w in trend] == ["2024-05-05", "2024-05-12"]
        assert trend[0].total == 2 and trend[0].interested == 1
        assert trend[0].rate == 50.0
        assert trend[1].rate == 0.0

    def test_limits_weeks(self):
        assert len(conversion_trend(PATIENTS, weeks=1)) == 1


class TestDashboard:

    def test_admin_sees_all(self, admin_profile):
        stats = compute_dashboard(PATIENTS, FOLLOW_UPS, admin_profile)
        assert sum(stats.status_counts.values()) == 4
        assert stats.follow_up_counts.total == 4
        assert stats.treatment_categories == {"Dental": 2, "Cosmetic": 1, "Not Specified": 1}
        assert stats.channel_preferences["Not Specified"] == 2
        assert stats.interaction_outcomes == {"Yes": 1}
        assert {d.doctor for d in stats.conversion_by_doctor} == {"doc-1", "doc-2"}

    def test_doctor_sees_own_patients(self, doctor_profile):
        stats = compute_dashboard(PATIENTS, FOLLOW_UPS, doctor_profile)
        assert stats.status_counts == {"Interested": 1, "Pending": 1}
        assert stats.follow_up_counts.total == 2
        doctor = stats.conversion_by_doctor[0]
        assert (doctor.contacted, doctor.interested, doctor.booked) == (1, 1, 0)

    def test_to_dict(self, admin_profile):
        data = compute_dashboard(PATIENTS, FOLLOW_UPS, admin_profile).to_dict()
        assert data["follow_up_counts"]["total"] == 4
        assert isinstance(data["conversion_trend"], list)

    def test_follow_up_trend_by_date(self, admin_profile):
        follow_ups = [
            {"id": f"f{day}", "patient_id": "p1", "type": "Phone Call", "date": f"2024-05-{day:02d}"}
            for day in range(1, 9)
        ]
        follow_ups.append({"id": "sms", "patient_id": "p2", "type": "SMS", "date": "2024-05-08", "response": "Yes"})

        stats = compute_dashboard(PATIENTS, follow_ups, admin_profile)

        assert [d.date for d in stats.follow_up_trend] == [f"2024-05-{day:02d}" for day in range(3, 9)]
        last = stats.follow_up_trend[-1]
        assert (last.calls, last.messages, last.responses) == (1, 1, 1)
        assert stats.origin == "live" and not stats.is_sample


class TestSampleFigures:

    def test_no_visible_patients_gives_sample(self, doctor_profile):
        others = [make_patient("p9", "Zed", doctor_id="doc-9")]
        stats = compute_dashboard(others, [], doctor_profile, today=date(2024, 5, 10))

        assert stats.is_sample
        assert stats.status_counts["Pending"] == 45
        assert stats.follow_up_counts.total == 77
        assert [d.doctor for d in stats.conversion_by_doctor][0] == "Dr. Smith"
        assert stats.follow_up_trend[-1].date == "2024-05-10"
        assert len(stats.follow_up_trend) == 6
        assert len(stats.conversion_trend) == 8
        assert stats.to_dict()["origin"] == "sample"

    def test_follow_up_trend_ignores_undated_rows(self):
        assert follow_up_trend([{"id": "f1", "type": "Phone Call"}]) == []
