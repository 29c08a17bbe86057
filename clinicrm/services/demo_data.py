"""
Demo data generation.

Fills an empty clinic with a plausible population of patients and their
follow-ups so the dashboard has something to show. When the remote store
refuses the inserts, the records are kept locally with fabricated ids
and the demo cache carries them instead.
"""

from __future__ import annotations

import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from clinicrm.db.remote import RemoteDataClient
from clinicrm.db.tables import TableName
from clinicrm.errors import CRMError, DataAccessError
from clinicrm.events import EventBus, invalidate
from clinicrm.logging import LogContext, get_logger
from clinicrm.models import ColdReason, Patient, PatientStatus, Profile
from clinicrm.notify import Notifier
from clinicrm.storage.cache import DEMO_ID_PREFIX, DemoCache

logger = get_logger(__name__)

PATIENT_COUNT = 20
PATIENT_HISTORY_DAYS = 90
FOLLOW_UP_HISTORY_DAYS = 60

TREATMENTS = {
    "Dental": ["Cleaning", "Filling", "Root Canal", "Crown", "Extraction"],
    "Orthodontics": ["Braces", "Invisalign", "Retainer"],
    "Cosmetic": ["Whitening", "Veneers", "Bonding"],
    "Surgical": ["Wisdom Teeth", "Dental Implants", "Gum Surgery"],
    "Preventive": ["Check-up", "Fluoride Treatment", "Sealants"],
}

FIRST_NAMES = [
    "John", "Emma", "Michael", "Sophia", "William", "Olivia", "James", "Ava",
    "Alexander", "Mia", "Daniel", "Sarah", "Matthew", "Emily", "David",
    "Abigail", "Joseph", "Elizabeth", "Andrew", "Sofia",
]
LAST_NAMES = [
    "Smith", "Johnson", "Williams", "Brown", "Jones", "Garcia", "Miller",
    "Davis", "Rodriguez", "Martinez", "Hernandez", "Lopez", "Gonzalez",
    "Wilson", "Anderson", "Thomas", "Taylor", "Moore", "Jackson", "Martin",
]

STATUSES = [s.value for s in PatientStatus]
GENDERS = ["Male", "Female", "Other", "Prefer not to say"]
PREFERRED_TIMES = ["Morning", "Afternoon", "Evening", None]
PREFERRED_CHANNELS = ["Call", "SMS", "Email", None]
AVAILABILITIES = [
    "Weekdays only", "Weekends preferred", "Mornings only",
    "Afternoons only", "Evenings only", "Any time",
]
PATIENT_NOTES = [
    "Patient requested detailed information about treatment options.",
    "Has dental anxiety, may need additional reassurance.",
    "Previous experience with similar treatment at another provider.",
    "Concerned about insurance coverage.",
    "Prefers to be contacted only via email.",
    "Has scheduling constraints due to work.",
    "Referred by existing patient.",
    "Seeking second opinion after consultation elsewhere.",
    "Very interested in financing options.",
    "Has questions about recovery time.",
]

FOLLOW_UP_TYPES = ["Phone Call", "SMS", "Email"]
DEFAULT_RESPONSES = ["Yes", "No", "Maybe", "No Answer", "Opt-out", None]
RESPONSES_BY_STATUS = {
    "Interested": ["Yes", "Maybe", "Yes", "Yes", "No Answer"],
    "Not Interested": ["No", "Opt-out", "No", "No Answer"],
}
RESPONSE_NOTES = {
    "Yes": "Patient expressed interest and requested more information.",
    "No": "Patient declined further communication.",
    "Maybe": "Patient is considering options, needs more time.",
    "No Answer": "Left voicemail.",
}


@dataclass
class DemoDataset:
    """Rows produced by one generation run."""
    patients: List[dict] = field(default_factory=list)
    follow_ups: List[dict] = field(default_factory=list)
    # True when the remote insert failed and ids were fabricated locally
    patients_simulated: bool = False
    follow_ups_simulated: bool = False


def demo_id() -> str:
    return f"{DEMO_ID_PREFIX}{uuid.uuid4()}"


def _between(rng: random.Random, start: datetime, end: datetime) -> datetime:
    if end <= start:
        return start
    return start + (end - start) * rng.random()


class DemoDataGenerator:
    """
    Generates and clears demo patients and follow-ups.

    Usage:
        generator = DemoDataGenerator(remote, auth, cache, events=events)
        dataset = await generator.generate_demo_data()
    """

    def __init__(
        self,
        remote: RemoteDataClient,
        auth,
        cache: DemoCache,
        notifier: Optional[Notifier] = None,
        events: Optional[EventBus] = None,
        rng: Optional[random.Random] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.remote = remote
        self.auth = auth
        self.cache = cache
        self.notifier = notifier
        self.events = events
        self.rng = rng or random.Random()
        self._now = now or (lambda: datetime.now(timezone.utc))

    def _notify(self, level: str, message: str) -> None:
        if self.notifier is not None:
            getattr(self.notifier, level)(message)

    # -------------------------------------------------------------------------
    # Record synthesis
    # -------------------------------------------------------------------------

    def make_patient(self, profile: Profile, now: datetime) -> dict:
        """One random patient row assigned to the profile."""
        rng = self.rng
        category = rng.choice(list(TREATMENTS))
        first_name = rng.choice(FIRST_NAMES)
        last_name = rng.choice(LAST_NAMES)
        status = rng.choice(STATUSES)

        created_at = _between(rng, now - timedelta(days=PATIENT_HISTORY_DAYS), now)
        last_interaction = _between(rng, created_at, now)

        if status == PatientStatus.INTERESTED.value:
            outcome = "Yes"
        elif status == PatientStatus.NOT_INTERESTED.value:
            outcome = "No"
        elif status == PatientStatus.CONTACTED.value:
            outcome = rng.choice(["Maybe", "No Answer", "Yes"])
        else:
            outcome = None

        cold_reason = None
        if status == PatientStatus.COLD.value:
            cold_reason = rng.choice([r.value for r in ColdReason])

        phone = "+971" + "".join(str(rng.randrange(10)) for _ in range(9))

        row = {
            "name": f"{first_name} {last_name}",
            "age": rng.randrange(18, 75),
            "gender": rng.choice(GENDERS),
            "phone": phone,
            "email": f"{first_name.lower()}.{last_name.lower()}@example.com",
            "treatment_category": category,
            "treatment_type": rng.choice(TREATMENTS[category]),
            "price": rng.randrange(100, 5000),
            "doctor_id": profile.id,
            "clinic_id": profile.clinic_id,
            "follow_up_required": rng.random() < 0.8,
            "status": status,
            "cold_reason": cold_reason,
            "preferred_time": rng.choice(PREFERRED_TIMES),
            "preferred_channel": rng.choice(PREFERRED_CHANNELS),
            "availability_preferences": rng.choice(AVAILABILITIES),
            "notes": rng.choice(PATIENT_NOTES),
            "created_at": created_at.isoformat(),
            "last_interaction": last_interaction.isoformat(),
            "last_interaction_outcome": outcome,
            "last_modified_by": profile.id,
        }
        # Rejects anything that would violate the patient invariants
        Patient.model_validate(row)
        return row

    def make_follow_ups(self, patient: dict, profile: Profile, now: datetime) -> List[dict]:
        """1 to 4 follow-ups for a patient, none before the patient was created."""
        rng = self.rng
        responses = RESPONSES_BY_STATUS.get(patient.get("status"), DEFAULT_RESPONSES)

        earliest = now - timedelta(days=FOLLOW_UP_HISTORY_DAYS)
        created_at = patient.get("created_at")
        if created_at:
            created = datetime.fromisoformat(str(created_at).replace("Z", "+00:00"))
            if created.tzinfo is None and now.tzinfo is not None:
                created = created.replace(tzinfo=now.tzinfo)
            earliest = max(earliest, created)

        follow_ups = []
        for _ in range(rng.randint(1, 4)):
            # Whole seconds, so the stored date and time never fall before earliest
            occurred = _between(rng, earliest, now)
            if occurred.microsecond:
                occurred = min(occurred.replace(microsecond=0) + timedelta(seconds=1), now)
            response = rng.choice(responses)
            follow_ups.append({
                "patient_id": patient.get("id"),
                "created_by": profile.id,
                "date": occurred.strftime("%Y-%m-%d"),
                "time": occurred.strftime("%H:%M:%S"),
                "type": rng.choice(FOLLOW_UP_TYPES),
                "response": response,
                "notes": RESPONSE_NOTES.get(response),
            })
        return follow_ups

    # -------------------------------------------------------------------------
    # Remote operations
    # -------------------------------------------------------------------------

    async def _existing_patient_count(self) -> Optional[int]:
        try:
            return await self.remote.count(TableName.PATIENTS)
        except DataAccessError as e:
            if e.is_permission_denied:
                logger.info("Patient count denied; treating the store as empty")
                return 0
            self._notify("error", f"Failed to check existing data: {e.message}")
            return None

    async def _insert_or_simulate(self, table: TableName, rows: List[dict]) -> tuple[List[dict], bool]:
        try:
            inserted = await self.remote.insert(table, rows)
        except CRMError as e:
            logger.warning(f"Insert into '{table.value}' refused ({e.kind.value}); simulating {len(rows)} rows locally")
            return [{**row, "id": demo_id()} for row in rows], True

        if len(inserted) != len(rows):
            logger.warning(f"Insert into '{table.value}' returned {len(inserted)} of {len(rows)} rows; simulating locally")
            return [{**row, "id": demo_id()} for row in rows], True
        return inserted, False

    async def generate_demo_data(self, profile: Optional[Profile] = None) -> Optional[DemoDataset]:
        """
        Populate an empty store with demo patients and follow-ups.

        Args:
            profile: Owner of the generated rows; defaults to the signed-in profile.

        Returns:
            The generated dataset, or None if nothing was generated.
        """
        if profile is None:
            profile = getattr(self.auth, "profile", None)
        if profile is None:
            self._notify("error", "No user profile found; sign in before generating demo data")
            return None

        existing = await self._existing_patient_count()
        if existing is None:
            return None
        if existing > 0:
            logger.info(f"{existing} patients exist, skipping demo data generation")
            self._notify("info", "Demo data already exists")
            return None

        with LogContext(logger, "Generating demo data"):
            self._notify("info", "Generating demo data...")
            now = self._now()

            patients = [self.make_patient(profile, now) for _ in range(PATIENT_COUNT)]
            patients, patients_simulated = await self._insert_or_simulate(TableName.PATIENTS, patients)

            follow_ups: List[dict] = []
            for patient in patients:
                follow_ups.extend(self.make_follow_ups(patient, profile, now))
            follow_ups, follow_ups_simulated = await self._insert_or_simulate(TableName.FOLLOW_UPS, follow_ups)

            self.cache.save(patients, follow_ups)

        invalidate(self.events, TableName.PATIENTS.value, TableName.FOLLOW_UPS.value)
        self._notify("success", f"Generated {len(patients)} demo patients and {len(follow_ups)} follow-ups")

        return DemoDataset(
            patients=patients,
            follow_ups=follow_ups,
            patients_simulated=patients_simulated,
            follow_ups_simulated=follow_ups_simulated,
        )

    async def clear_demo_data(self) -> Dict[str, bool]:
        """
        Delete every follow-up, then every patient, and empty the demo cache.

        Each table is cleared independently; a failure on one does not stop
        the other.

        Returns:
            Whether each table was cleared.
        """
        results: Dict[str, bool] = {}
        for table in (TableName.FOLLOW_UPS, TableName.PATIENTS):
            try:
                deleted = await self.remote.delete_all(table)
                logger.info(f"Deleted {deleted} rows from '{table.value}'")
                results[table.value] = True
            except CRMError as e:
                logger.error(f"Clearing '{table.value}' failed: {e}")
                self._notify("error", f"Failed to clear {table.value.replace('_', ' ')}: {e.message}")
                results[table.value] = False

        self.cache.clear()
        invalidate(self.events, TableName.PATIENTS.value, TableName.FOLLOW_UPS.value)

        if all(results.values()):
            self._notify("success", "Demo data cleared")
        return results
