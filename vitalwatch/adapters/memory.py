"""
In-memory implementations of the store protocols.

Each store owns its own maps behind a lock; nothing is module-global, so two
engines in one process never see each other's data. Suitable for tests, demos
and batch jobs that load their inputs up front. Not a persistence layer.
"""

import threading
from collections import defaultdict
from collections.abc import Sequence
from datetime import datetime

import structlog

from vitalwatch.domain.errors import (
    AlreadyResolvedError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
)
from vitalwatch.domain.models import (
    Alert,
    AlertKey,
    DoseLog,
    Medication,
    Threshold,
    VitalReading,
    VitalType,
)

logger = structlog.get_logger(__name__)


class InMemoryReadingStore:
    def __init__(self) -> None:
        self._readings: dict[int, list[VitalReading]] = defaultdict(list)
        self._lock = threading.Lock()

    def append(self, reading: VitalReading) -> None:
        with self._lock:
            self._readings[reading.patient_id].append(reading)

    def get_latest(self, patient_id: int, vital_type: VitalType) -> VitalReading | None:
        with self._lock:
            carrying = [
                r for r in self._readings.get(patient_id, []) if r.value_for(vital_type) is not None
            ]
        return max(carrying, key=lambda r: r.timestamp, default=None)

    def list_for_patient(self, patient_id: int) -> list[VitalReading]:
        """Newest first."""
        with self._lock:
            readings = list(self._readings.get(patient_id, []))
        return sorted(readings, key=lambda r: r.timestamp, reverse=True)


class InMemoryThresholdStore:
    def __init__(self) -> None:
        self._history: dict[tuple[int, VitalType], list[Threshold]] = defaultdict(list)
        self._lock = threading.Lock()

    def get_active(self, patient_id: int, vital_type: VitalType) -> Threshold | None:
        with self._lock:
            history = self._history.get((patient_id, vital_type), [])
            return next((t for t in reversed(history) if t.is_active), None)

    def set_active(
        self,
        patient_id: int,
        vital_type: VitalType,
        min_value: float | None,
        max_value: float | None,
        set_by: int,
        set_at: datetime,
    ) -> Threshold:
        threshold = Threshold(
            patient_id=patient_id,
            vital_type=vital_type,
            min_value=min_value,
            max_value=max_value,
            set_by=set_by,
            set_at=set_at,
        )
        with self._lock:
            history = self._history[(patient_id, vital_type)]
            history[:] = [t.model_copy(update={"is_active": False}) for t in history]
            history.append(threshold)
        return threshold

    def history(self, patient_id: int, vital_type: VitalType) -> list[Threshold]:
        """Every threshold ever set, oldest first."""
        with self._lock:
            return list(self._history.get((patient_id, vital_type), []))


class InMemoryMedicationStore:
    def __init__(self) -> None:
        self._medications: dict[int, Medication] = {}
        self._dose_logs: dict[tuple[int, datetime], DoseLog] = {}
        self._lock = threading.Lock()

    def add_medication(self, medication: Medication) -> Medication:
        with self._lock:
            self._medications[medication.medication_id] = medication
        return medication

    def discontinue(self, medication_id: int) -> Medication:
        with self._lock:
            medication = self._medications.get(medication_id)
            if medication is None:
                raise NotFoundError(f"Medication {medication_id} not found")
            discontinued = medication.model_copy(update={"is_active": False})
            self._medications[medication_id] = discontinued
        return discontinued

    def get_medication(self, medication_id: int) -> Medication | None:
        with self._lock:
            return self._medications.get(medication_id)

    def get_active_medications(self, patient_id: int) -> Sequence[Medication]:
        with self._lock:
            return [
                m
                for m in self._medications.values()
                if m.patient_id == patient_id and m.is_active
            ]

    def get_dose_logs(
        self, patient_id: int, window_start: datetime, window_end: datetime
    ) -> Sequence[DoseLog]:
        with self._lock:
            logs = [
                log
                for log in self._dose_logs.values()
                if log.patient_id == patient_id and window_start <= log.scheduled_time < window_end
            ]
        return sorted(logs, key=lambda log: (log.scheduled_time, log.medication_id))

    def get_dose_log(self, medication_id: int, scheduled_time: datetime) -> DoseLog | None:
        with self._lock:
            return self._dose_logs.get((medication_id, scheduled_time))

    def insert_dose_log(self, log: DoseLog) -> DoseLog:
        key = (log.medication_id, log.scheduled_time)
        with self._lock:
            if key in self._dose_logs:
                raise ConflictError(
                    f"Medication {log.medication_id} already has a dose at "
                    f"{log.scheduled_time.isoformat()}"
                )
            self._dose_logs[key] = log
        return log

    def update_dose_log(self, log: DoseLog) -> DoseLog:
        key = (log.medication_id, log.scheduled_time)
        with self._lock:
            stored = self._dose_logs.get(key)
            if stored is None:
                raise NotFoundError(
                    f"No dose of medication {log.medication_id} scheduled at "
                    f"{log.scheduled_time.isoformat()}"
                )
            if stored.is_terminal:
                raise InvalidTransitionError(
                    f"Dose at {log.scheduled_time.isoformat()} is already {stored.status.value}"
                )
            self._dose_logs[key] = log
        return log


class InMemoryAlertStore:
    """Alert records with a unique index on active alert keys."""

    def __init__(self) -> None:
        self._alerts: dict[str, Alert] = {}
        self._active: dict[AlertKey, str] = {}
        self._lock = threading.Lock()

    def get_active(self, patient_id: int, key: AlertKey) -> Alert | None:
        if key.patient_id != patient_id:
            return None
        with self._lock:
            alert_id = self._active.get(key)
            return self._alerts[alert_id] if alert_id is not None else None

    def get(self, alert_id: str) -> Alert | None:
        with self._lock:
            return self._alerts.get(alert_id)

    def create(self, alert: Alert) -> Alert:
        with self._lock:
            if alert.alert_id in self._alerts:
                raise ConflictError(f"Alert {alert.alert_id} already exists")
            if alert.is_active:
                if alert.key in self._active:
                    raise ConflictError(
                        f"Patient {alert.patient_id} already has an active alert "
                        f"for {alert.key.subject}"
                    )
                self._active[alert.key] = alert.alert_id
            self._alerts[alert.alert_id] = alert
        return alert

    def update(self, alert: Alert) -> Alert:
        with self._lock:
            if alert.alert_id not in self._alerts:
                raise NotFoundError(f"Alert {alert.alert_id} not found")
            self._alerts[alert.alert_id] = alert
        return alert

    def resolve(self, alert_id: str, resolved_by: int, resolved_at: datetime) -> Alert:
        with self._lock:
            alert = self._alerts.get(alert_id)
            if alert is None:
                raise NotFoundError(f"Alert {alert_id} not found")
            if not alert.is_active:
                raise AlreadyResolvedError(f"Alert {alert_id} is already resolved")
            resolved = alert.resolved(resolved_by, resolved_at)
            self._alerts[alert_id] = resolved
            self._active.pop(alert.key, None)
        logger.debug("alert_store_resolved", alert_id=alert_id)
        return resolved

    def list_for_patient(self, patient_id: int) -> Sequence[Alert]:
        """Newest first."""
        with self._lock:
            alerts = [a for a in self._alerts.values() if a.patient_id == patient_id]
        return sorted(alerts, key=lambda a: a.created_at, reverse=True)
