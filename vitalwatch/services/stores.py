"""
Collaborator contracts the engine reads from and writes to.

Why Protocol over ABC: structural typing, easier faking in tests, and any
persistence layer (SQL, document store, REST client) can satisfy them without
inheriting from the engine.
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol

from vitalwatch.domain.models import (
    Alert,
    AlertKey,
    DoseLog,
    Medication,
    Threshold,
    VitalReading,
    VitalType,
)


class ReadingStore(Protocol):
    """Durable, append-only record of vitals."""

    def get_latest(self, patient_id: int, vital_type: VitalType) -> VitalReading | None:
        """Most recent reading for the patient that carries `vital_type`."""
        ...

    def append(self, reading: VitalReading) -> None: ...


class ThresholdStore(Protocol):
    """Per-patient, per-vital limits. At most one active row per (patient, vital)."""

    def get_active(self, patient_id: int, vital_type: VitalType) -> Threshold | None: ...

    def set_active(
        self,
        patient_id: int,
        vital_type: VitalType,
        min_value: float | None,
        max_value: float | None,
        set_by: int,
        set_at: datetime,
    ) -> Threshold:
        """Store a new active threshold, deactivating the prior one."""
        ...


class MedicationStore(Protocol):
    """Prescriptions and their per-dose logs."""

    def get_active_medications(self, patient_id: int) -> Sequence[Medication]: ...

    def get_medication(self, medication_id: int) -> Medication | None: ...

    def get_dose_logs(
        self, patient_id: int, window_start: datetime, window_end: datetime
    ) -> Sequence[DoseLog]:
        """Logs with `window_start <= scheduled_time < window_end`, oldest first."""
        ...

    def get_dose_log(self, medication_id: int, scheduled_time: datetime) -> DoseLog | None: ...

    def insert_dose_log(self, log: DoseLog) -> DoseLog:
        """Insert a new log. Raises ConflictError if (medication_id, scheduled_time) exists."""
        ...

    def update_dose_log(self, log: DoseLog) -> DoseLog:
        """
        Replace a stored Pending log with its terminal successor, atomically.

        Raises NotFoundError if no log exists for (medication_id, scheduled_time)
        and InvalidTransitionError if the stored log is no longer Pending.
        """
        ...


class AlertStore(Protocol):
    """Persisted alerts. Must reject a second active alert for the same key."""

    def get_active(self, patient_id: int, key: AlertKey) -> Alert | None: ...

    def get(self, alert_id: str) -> Alert | None: ...

    def create(self, alert: Alert) -> Alert:
        """Insert an active alert. Raises ConflictError if the key already has one."""
        ...

    def update(self, alert: Alert) -> Alert: ...

    def resolve(self, alert_id: str, resolved_by: int, resolved_at: datetime) -> Alert:
        """Close an active alert. Raises NotFoundError / AlreadyResolvedError."""
        ...

    def list_for_patient(self, patient_id: int) -> Sequence[Alert]: ...
