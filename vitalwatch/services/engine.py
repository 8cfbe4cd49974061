"""
Monitoring engine: the end-to-end pipeline over the four collaborator stores.

Data flow:
1. New reading -> validate -> Reading Store
2. Threshold Resolver -> Vital Evaluator -> alert candidates
3. Alert Lifecycle Manager -> Alert Store
4. Dose Scheduler materializes dose logs; missed doses raise "Missed Medication" alerts
5. Adherence Tracker summarizes on demand

The engine is synchronous and keeps no state between calls beyond the stores it
was given. "Now" comes from an injectable clock.
"""

from collections.abc import Callable, Iterable
from datetime import UTC, date, datetime, timedelta
from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from vitalwatch.adapters.memory import (
    InMemoryAlertStore,
    InMemoryMedicationStore,
    InMemoryReadingStore,
    InMemoryThresholdStore,
)
from vitalwatch.config import AppConfig, EngineConfig, get_config
from vitalwatch.domain.errors import NotFoundError, ValidationError
from vitalwatch.domain.models import (
    AdherenceSummary,
    Alert,
    AlertCounts,
    DoseLog,
    Threshold,
    ThresholdRange,
    DoseStatus,
    TodayDose,
    VitalReading,
    VitalStatus,
    VitalType,
    require_aware,
)
from vitalwatch.log import configure_logging
from vitalwatch.services.adherence import AdherenceTracker
from vitalwatch.services.alerts import AlertLifecycleManager
from vitalwatch.services.evaluator import VitalEvaluator
from vitalwatch.services.result import Result
from vitalwatch.services.scheduler import DoseScheduler
from vitalwatch.services.stores import AlertStore, MedicationStore, ReadingStore, ThresholdStore
from vitalwatch.services.thresholds import ThresholdResolver

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class HealthMonitoringEngine:
    """Wires the resolver, evaluator, scheduler, tracker and lifecycle manager together."""

    def __init__(
        self,
        readings: ReadingStore,
        thresholds: ThresholdStore,
        medications: MedicationStore,
        alerts: AlertStore,
        config: EngineConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config or get_config().engine
        self.clock = clock or _utcnow
        self.logger = logger.bind(component="monitoring_engine")

        self.readings = readings
        self.thresholds = thresholds
        self.medications = medications
        self.alerts = alerts

        self.resolver = ThresholdResolver(thresholds, self.config)
        self.evaluator = VitalEvaluator(self.config)
        self.scheduler = DoseScheduler(medications, self.config)
        self.tracker = AdherenceTracker(self.config)
        self.lifecycle = AlertLifecycleManager(alerts, self.clock)

    @classmethod
    def in_memory(
        cls, config: AppConfig | None = None, clock: Callable[[], datetime] | None = None
    ) -> "HealthMonitoringEngine":
        """Engine over fresh in-memory stores, with logging configured from `config`."""
        config = config or get_config()
        configure_logging(config.logging)
        return cls(
            InMemoryReadingStore(),
            InMemoryThresholdStore(),
            InMemoryMedicationStore(),
            InMemoryAlertStore(),
            config=config.engine,
            clock=clock,
        )

    def _now(self) -> datetime:
        return require_aware(self.clock(), "clock time")

    # Vitals

    def ingest_reading(self, reading: VitalReading) -> list[Alert]:
        """Validate, record and evaluate a reading; returns the alerts it created or refreshed."""
        now = self._now()
        self.evaluator.validate(reading)
        self.readings.append(reading)

        present = reading.present_values()
        bounds = {
            vital_type: self.resolver.resolve(reading.patient_id, vital_type) for vital_type in present
        }
        candidates = self.evaluator.evaluate(reading, bounds)
        alerts = self.lifecycle.process_all(candidates, now)

        self.logger.info(
            "reading_ingested",
            patient_id=reading.patient_id,
            vitals=[v.value for v in present],
            alerts=len(alerts),
        )
        return alerts

    def ingest_payload(self, payload: dict[str, Any]) -> list[Alert]:
        """Parse an untrusted payload into a reading, then ingest it."""
        return self.ingest_reading(VitalReading.parse(payload))

    def set_threshold(
        self,
        patient_id: int,
        vital_type: VitalType,
        min_value: float | None,
        max_value: float | None,
        set_by: int,
        set_at: datetime | None = None,
    ) -> Threshold:
        """Replace the patient's active threshold for `vital_type`."""
        try:
            ThresholdRange(min_value=min_value, max_value=max_value)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid threshold for {vital_type.value}: {e}") from e

        set_at = require_aware(set_at, "set_at") if set_at is not None else self._now()
        threshold = self.thresholds.set_active(
            patient_id, vital_type, min_value, max_value, set_by, set_at
        )
        self.logger.info(
            "threshold_set",
            patient_id=patient_id,
            vital_type=vital_type.value,
            min_value=min_value,
            max_value=max_value,
            set_by=set_by,
        )
        return threshold

    def latest_status(self, patient_id: int) -> dict[VitalType, VitalStatus]:
        """Display tier of the latest value of each vital the patient has logged."""
        statuses: dict[VitalType, VitalStatus] = {}
        for vital_type in VitalType:
            reading = self.readings.get_latest(patient_id, vital_type)
            if reading is None:
                continue
            value = reading.value_for(vital_type)
            if value is None:
                continue
            statuses[vital_type] = self.evaluator.classify(
                value, self.resolver.resolve(patient_id, vital_type)
            )
        return statuses

    # Alerts

    def resolve_alert(
        self, alert_id: str, resolved_by: int, patient_id: int | None = None
    ) -> Result[Alert, NotFoundError]:
        return self.lifecycle.resolve(
            alert_id, resolved_by, patient_id=patient_id, now=self._now()
        )

    def alert_counts(self, patient_ids: Iterable[int]) -> AlertCounts:
        return self.lifecycle.counts(patient_ids)

    # Medications

    def refresh_schedule(self, patient_id: int, from_date: date, to_date: date) -> list[DoseLog]:
        """Materialize dose logs for every active medication; safe to re-run."""
        created: list[DoseLog] = []
        for medication in self.medications.get_active_medications(patient_id):
            created.extend(self.scheduler.materialize(medication, from_date, to_date))
        return created

    def record_dose_taken(self, medication_id: int, scheduled_time: datetime) -> DoseLog:
        return self.scheduler.record_taken(medication_id, scheduled_time, self._now())

    def record_dose_missed(self, medication_id: int, scheduled_time: datetime) -> DoseLog:
        return self.scheduler.record_missed(medication_id, scheduled_time)

    def due_doses(self, patient_id: int) -> list[DoseLog]:
        return self.scheduler.due_doses(patient_id, self._now())

    def todays_doses(self, patient_id: int) -> list[TodayDose]:
        return self.scheduler.todays_doses(patient_id, self._now())

    def medication_statuses(self, patient_id: int) -> dict[int, DoseStatus]:
        """Today's Taken/Pending/Missed roll-up per active medication."""
        return self.scheduler.medication_day_status(patient_id, self._now())

    def check_missed_doses(self, patient_id: int) -> list[Alert]:
        """Raise or refresh one "Missed Medication" alert per medication with missed doses."""
        now = self._now()
        window_start = now - timedelta(days=self.config.adherence_window_days)
        missed = self.scheduler.missed_doses(patient_id, window_start, now, now)
        if not missed:
            return []

        medications = [
            medication
            for medication_id in {log.medication_id for log in missed}
            if (medication := self.medications.get_medication(medication_id)) is not None
        ]
        return self.lifecycle.process_missed_doses(patient_id, missed, medications, now)

    def adherence(self, patient_id: int) -> AdherenceSummary:
        """Rolling adherence summary ending now, with overdue doses counted as missed."""
        now = self._now()
        window_start = now - timedelta(days=self.config.adherence_window_days)
        logs = self.medications.get_dose_logs(patient_id, window_start, now)
        return self.tracker.weekly(patient_id, logs, now)
