"""
Follow-up views.

Follow-ups are joined with the patient rows currently in view to pick up
display names and the assigned doctor, then split into the pending and
recent lists the follow-ups page shows.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from clinicrm.logging import get_logger
from clinicrm.models import MergedFollowUp, Profile

logger = get_logger(__name__)

RECENT_LIMIT = 10

CALL = "call"
MESSAGE = "message"


def follow_up_kind(follow_up_type: Optional[str]) -> str:
    """Phone calls are calls; SMS, email and anything else are messages."""
    kind = (follow_up_type or "").lower()
    return CALL if "call" in kind else MESSAGE


def merge_follow_ups(
    follow_ups: Iterable[dict],
    patients: Iterable[dict],
    clinic_names: Optional[Dict[str, str]] = None,
) -> List[MergedFollowUp]:
    """
    Attach patient name, clinic name and doctor to each follow-up.

    Unresolved references fall back to "Unknown Patient" / "Unknown Clinic".
    """
    by_id = {p.get("id"): p for p in patients if p.get("id")}
    clinic_names = clinic_names or {}

    merged = []
    for row in follow_ups:
        patient = by_id.get(row.get("patient_id"))
        extra = {}
        if patient is not None:
            extra["patient_name"] = patient.get("name") or "Unknown Patient"
            extra["doctor_id"] = patient.get("doctor_id")
            clinic_name = clinic_names.get(patient.get("clinic_id"))
            if clinic_name:
                extra["clinic_name"] = clinic_name
        merged.append(MergedFollowUp.model_validate({**row, **extra}))
    return merged


def filter_for_profile(items: List[MergedFollowUp], profile: Optional[Profile]) -> List[MergedFollowUp]:
    """Admins see every follow-up; doctors only those of their own patients."""
    if profile is not None and profile.is_admin:
        return list(items)
    doctor_id = profile.id if profile is not None else None
    return [item for item in items if doctor_id is not None and item.doctor_id == doctor_id]


def filter_follow_ups(
    items: List[MergedFollowUp],
    kind: Optional[str] = None,
    response: Optional[str] = None,
) -> List[MergedFollowUp]:
    """
    Narrow by kind ("call" / "message") and response.

    `response="none"` selects follow-ups that have no response yet.
    """
    result = list(items)
    if kind:
        result = [i for i in result if follow_up_kind(i.type) == kind.lower()]
    if response:
        if response.lower() == "none":
            result = [i for i in result if i.response is None]
        else:
            result = [i for i in result if i.response is not None and i.response.value.lower() == response.lower()]
    return result


def pending_follow_ups(items: List[MergedFollowUp]) -> List[MergedFollowUp]:
    return [item for item in items if not item.has_response]


def recent_follow_ups(items: List[MergedFollowUp], limit: int = RECENT_LIMIT) -> List[MergedFollowUp]:
    """Latest follow-ups first, by date then time."""
    return sorted(items, key=lambda i: (i.date, i.time), reverse=True)[:limit]
