"""
Dashboard statistics.

Everything is computed in memory from the patient and follow-up rows the
caller already has, after narrowing them to what the profile may see.
When the profile can see no patients at all, the dashboard is filled from
fixed sample figures and tagged `origin="sample"` so it never passes for
real data.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from clinicrm.logging import get_logger
from clinicrm.models import Profile

logger = get_logger(__name__)

NOT_SPECIFIED = "Not Specified"
TREND_WEEKS = 8
TREND_DAYS = 6

LIVE = "live"
SAMPLE = "sample"


@dataclass
class FollowUpCounts:
    call: int = 0
    message: int = 0
    total: int = 0
    pending: int = 0
    interested: int = 0
    not_interested: int = 0


@dataclass
class DoctorConversion:
    doctor: str
    contacted: int = 0
    interested: int = 0
    booked: int = 0


@dataclass
class WeeklyConversion:
    week: str  # ISO date of the Sunday starting the week
    total: int = 0
    interested: int = 0
    rate: float = 0.0  # percent


@dataclass
class DailyFollowUps:
    date: str
    calls: int = 0
    messages: int = 0
    responses: int = 0


@dataclass
class DashboardStats:
    status_counts: Dict[str, int] = field(default_factory=dict)
    follow_up_counts: FollowUpCounts = field(default_factory=FollowUpCounts)
    conversion_by_doctor: List[DoctorConversion] = field(default_factory=list)
    treatment_categories: Dict[str, int] = field(default_factory=dict)
    channel_preferences: Dict[str, int] = field(default_factory=dict)
    time_preferences: Dict[str, int] = field(default_factory=dict)
    interaction_outcomes: Dict[str, int] = field(default_factory=dict)
    conversion_trend: List[WeeklyConversion] = field(default_factory=list)
    follow_up_trend: List[DailyFollowUps] = field(default_factory=list)
    origin: str = LIVE

    @property
    def is_sample(self) -> bool:
        return self.origin == SAMPLE

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def scope_patients(patients: Iterable[dict], profile: Optional[Profile]) -> List[dict]:
    """Admins see all patients, anyone else only those assigned to them."""
    if profile is not None and profile.is_admin:
        return list(patients)
    doctor_id = profile.id if profile is not None else None
    return [p for p in patients if doctor_id is not None and p.get("doctor_id") == doctor_id]


def _distribution(patients: List[dict], column: str, missing: Optional[str] = NOT_SPECIFIED) -> Dict[str, int]:
    counter: Counter = Counter()
    for patient in patients:
        value = patient.get(column) or missing
        if value is not None:
            counter[str(value)] += 1
    return dict(counter)


def _channel(follow_up: dict) -> Optional[str]:
    kind = (follow_up.get("type") or "").lower()
    if "call" in kind:
        return "call"
    if "message" in kind or "sms" in kind:
        return "message"
    return None


def follow_up_counts(patients: List[dict], follow_ups: List[dict]) -> FollowUpCounts:
    counts = FollowUpCounts(
        pending=sum(1 for p in patients if p.get("status") in ("Pending", "Contacted")),
        interested=sum(1 for p in patients if p.get("status") == "Interested"),
        not_interested=sum(1 for p in patients if p.get("status") == "Not Interested"),
    )
    for follow_up in follow_ups:
        channel = _channel(follow_up)
        if channel == "call":
            counts.call += 1
        elif channel == "message":
            counts.message += 1
        counts.total += 1
    return counts


def follow_up_trend(follow_ups: Iterable[dict], days: int = TREND_DAYS) -> List[DailyFollowUps]:
    """Calls, messages and responses per follow-up date, last `days` dates with data."""
    by_date: Dict[str, DailyFollowUps] = {}
    for follow_up in follow_ups:
        day = follow_up.get("date")
        if not day:
            continue
        entry = by_date.setdefault(str(day), DailyFollowUps(date=str(day)))
        channel = _channel(follow_up)
        if channel == "call":
            entry.calls += 1
        elif channel == "message":
            entry.messages += 1
        if follow_up.get("response"):
            entry.responses += 1
    return [by_date[key] for key in sorted(by_date)][-days:]


def conversion_by_doctor(patients: List[dict]) -> List[DoctorConversion]:
    by_doctor: Dict[str, DoctorConversion] = {}
    for patient in patients:
        doctor = patient.get("doctor_id") or "Unknown"
        stats = by_doctor.setdefault(doctor, DoctorConversion(doctor=doctor))
        status = patient.get("status")
        if status in ("Contacted", "Pending"):
            stats.contacted += 1
        elif status == "Interested":
            stats.interested += 1
        elif status == "Booked":
            stats.booked += 1
    return list(by_doctor.values())


def week_start(day: date) -> date:
    """The Sunday on or before a date."""
    return day - timedelta(days=(day.weekday() + 1) % 7)


def _created_date(value) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
    except ValueError:
        logger.debug(f"Ignoring unparseable created_at {value!r}")
        return None


def conversion_trend(patients: List[dict], weeks: int = TREND_WEEKS) -> List[WeeklyConversion]:
    """Share of patients marked Interested, per week of creation, last `weeks` weeks with data."""
    by_week: Dict[date, WeeklyConversion] = {}
    for patient in patients:
        created = _created_date(patient.get("created_at"))
        if created is None:
            continue
        start = week_start(created)
        entry = by_week.setdefault(start, WeeklyConversion(week=start.isoformat()))
        entry.total += 1
        if patient.get("status") == "Interested":
            entry.interested += 1

    trend = [by_week[key] for key in sorted(by_week)][-weeks:]
    for entry in trend:
        entry.rate = entry.interested / entry.total * 100 if entry.total else 0.0
    return trend


# -----------------------------------------------------------------------------
# Sample figures, shown when there is nothing to count
# -----------------------------------------------------------------------------

SAMPLE_STATUS_COUNTS = {"Interested": 37, "Not Interested": 24, "Pending": 45, "Contacted": 28, "Booked": 19}
SAMPLE_FOLLOW_UP_COUNTS = {"call": 35, "message": 42, "total": 77, "pending": 23, "interested": 18, "not_interested": 12}
SAMPLE_DOCTORS = [
    ("Dr. Smith", 48, 22, 15),
    ("Dr. Johnson", 52, 19, 12),
    ("Dr. Williams", 38, 24, 18),
    ("Dr. Brown", 45, 20, 14),
]
SAMPLE_TREATMENT_CATEGORIES = {"Dental": 32, "Orthodontics": 28, "Cosmetic": 25, "Surgical": 15, "Preventive": 20}
SAMPLE_CHANNEL_PREFERENCES = {"Call": 45, "SMS": 32, "Email": 18, NOT_SPECIFIED: 10}
SAMPLE_TIME_PREFERENCES = {"Morning": 38, "Afternoon": 29, "Evening": 25, NOT_SPECIFIED: 13}
SAMPLE_INTERACTION_OUTCOMES = {"Yes": 43, "No": 21, "Maybe": 18, "No Answer": 32, "Opt-out": 7}
# (calls, messages, responses), oldest day first
SAMPLE_DAILY = [(5, 9, 4), (7, 6, 3), (4, 11, 6), (9, 8, 5), (6, 12, 7), (8, 7, 2)]
# (patients, interested), oldest week first
SAMPLE_WEEKLY = [(14, 5), (22, 9), (18, 4), (25, 12), (12, 6), (20, 8), (27, 13), (16, 7)]


def sample_dashboard(today: Optional[date] = None) -> DashboardStats:
    """Fixed placeholder figures dated back from `today`, tagged as sample data."""
    today = today or date.today()
    follow_up_days = [
        DailyFollowUps(date=(today - timedelta(days=len(SAMPLE_DAILY) - 1 - i)).isoformat(),
                       calls=calls, messages=messages, responses=responses)
        for i, (calls, messages, responses) in enumerate(SAMPLE_DAILY)
    ]
    weeks = [
        WeeklyConversion(week=(today - timedelta(weeks=len(SAMPLE_WEEKLY) - 1 - i)).isoformat(),
                         total=total, interested=interested, rate=interested / total * 100)
        for i, (total, interested) in enumerate(SAMPLE_WEEKLY)
    ]
    return DashboardStats(
        status_counts=dict(SAMPLE_STATUS_COUNTS),
        follow_up_counts=FollowUpCounts(**SAMPLE_FOLLOW_UP_COUNTS),
        conversion_by_doctor=[DoctorConversion(*row) for row in SAMPLE_DOCTORS],
        treatment_categories=dict(SAMPLE_TREATMENT_CATEGORIES),
        channel_preferences=dict(SAMPLE_CHANNEL_PREFERENCES),
        time_preferences=dict(SAMPLE_TIME_PREFERENCES),
        interaction_outcomes=dict(SAMPLE_INTERACTION_OUTCOMES),
        conversion_trend=weeks,
        follow_up_trend=follow_up_days,
        origin=SAMPLE,
    )


def compute_dashboard(
    patients: Iterable[dict],
    follow_ups: Iterable[dict],
    profile: Optional[Profile],
    today: Optional[date] = None,
) -> DashboardStats:
    """
    All dashboard figures for the patients and follow-ups a profile can see.

    Falls back to `sample_dashboard` when no patient is visible.
    """
    visible = scope_patients(patients, profile)
    if not visible:
        logger.info("No visible patients; showing sample dashboard figures")
        return sample_dashboard(today)

    visible_ids = {p.get("id") for p in visible}
    follow_ups = list(follow_ups)
    if profile is None or not profile.is_admin:
        follow_ups = [f for f in follow_ups if f.get("patient_id") in visible_ids]

    return DashboardStats(
        status_counts=_distribution(visible, "status", missing="Unknown"),
        follow_up_counts=follow_up_counts(visible, follow_ups),
        conversion_by_doctor=conversion_by_doctor(visible),
        treatment_categories=_distribution(visible, "treatment_category"),
        channel_preferences=_distribution(visible, "preferred_channel"),
        time_preferences=_distribution(visible, "preferred_time"),
        interaction_outcomes=_distribution(visible, "last_interaction_outcome", missing=None),
        conversion_trend=conversion_trend(visible),
        follow_up_trend=follow_up_trend(follow_ups),
    )
