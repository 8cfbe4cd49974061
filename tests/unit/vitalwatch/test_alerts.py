"""
Tests for the alert lifecycle manager.

Covers:
- At most one active alert per key, with refresh of description/severity
- Resolve semantics: terminal, idempotent-safe, foreign ids rejected
- Store conflicts swallowed as "already active"
- Missed-medication alerts keyed per medication
- Alert counts by severity
"""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta

import pytest

from tests.conftest import NOW, FrozenClock
from vitalwatch.adapters.memory import InMemoryAlertStore
from vitalwatch.domain.errors import AlreadyResolvedError, ConflictError, NotFoundError
from vitalwatch.domain.models import (
    Alert,
    AlertCandidate,
    AlertKey,
    AlertStatus,
    DoseLog,
    DoseStatus,
    Medication,
    Severity,
    VitalType,
)
from vitalwatch.services.alerts import AlertLifecycleManager, missed_medication_candidates

SYSTOLIC_KEY = AlertKey.for_vital(1, VitalType.BLOOD_PRESSURE_SYSTOLIC)


def _candidate(
    severity: Severity = Severity.HIGH,
    description: str = "Systolic blood pressure 150 mmHg exceeds the upper limit of 140 mmHg",
    key: AlertKey = SYSTOLIC_KEY,
) -> AlertCandidate:
    return AlertCandidate(
        key=key,
        alert_type="High Blood Pressure",
        description=description,
        severity=severity,
        vital_type=VitalType.BLOOD_PRESSURE_SYSTOLIC,
        detected_at=NOW,
    )


@pytest.fixture
def manager(alert_store: InMemoryAlertStore, clock: FrozenClock) -> AlertLifecycleManager:
    return AlertLifecycleManager(alert_store, clock)


class TestProcess:
    def test_first_candidate_creates_active_alert(
        self, manager: AlertLifecycleManager, alert_store: InMemoryAlertStore
    ) -> None:
        alert = manager.process(_candidate())

        assert alert is not None
        assert alert.status is AlertStatus.ACTIVE
        assert alert.patient_id == 1
        assert alert.created_at == NOW
        assert alert_store.get_active(1, SYSTOLIC_KEY) == alert

    def test_repeat_candidate_refreshes_instead_of_duplicating(
        self,
        manager: AlertLifecycleManager,
        alert_store: InMemoryAlertStore,
        clock: FrozenClock,
    ) -> None:
        first = manager.process(_candidate())
        clock.now = NOW + timedelta(minutes=10)

        second = manager.process(
            _candidate(Severity.CRITICAL, "Systolic blood pressure 170 mmHg exceeds ...")
        )

        assert first is not None and second is not None
        assert second.alert_id == first.alert_id
        assert second.created_at == first.created_at
        assert second.severity is Severity.CRITICAL
        assert second.updated_at == NOW + timedelta(minutes=10)
        assert [a.alert_id for a in alert_store.list_for_patient(1)] == [first.alert_id]

    def test_identical_candidate_leaves_alert_untouched(
        self, manager: AlertLifecycleManager
    ) -> None:
        first = manager.process(_candidate())

        assert manager.process(_candidate()) == first

    def test_different_keys_get_independent_alerts(
        self, manager: AlertLifecycleManager, alert_store: InMemoryAlertStore
    ) -> None:
        manager.process(_candidate())
        manager.process(_candidate(key=AlertKey.for_vital(1, VitalType.HEART_RATE)))

        assert len(alert_store.list_for_patient(1)) == 2

    def test_store_conflict_is_swallowed_and_winner_returned(self, clock: FrozenClock) -> None:
        store = InMemoryAlertStore()
        winner = store.create(Alert.from_candidate(_candidate(), NOW))

        class RacingStore(InMemoryAlertStore):
            """Reports no active alert on the first lookup, like a lost race."""

            def __init__(self) -> None:
                super().__init__()
                self.lookups = 0

            def get_active(self, patient_id: int, key: AlertKey) -> Alert | None:
                self.lookups += 1
                if self.lookups == 1:
                    return None
                return store.get_active(patient_id, key)

            def create(self, alert: Alert) -> Alert:
                raise ConflictError("already active")

            def update(self, alert: Alert) -> Alert:
                return store.update(alert)

        manager = AlertLifecycleManager(RacingStore(), clock)

        result = manager.process(_candidate(Severity.CRITICAL))

        assert result is not None
        assert result.alert_id == winner.alert_id
        assert result.severity is Severity.CRITICAL


class TestResolve:
    def test_resolve_stamps_clinician_and_time(self, manager: AlertLifecycleManager) -> None:
        alert = manager.process(_candidate())
        assert alert is not None

        result = manager.resolve(alert.alert_id, resolved_by=42)

        assert result.is_ok()
        resolved = result.unwrap()
        assert resolved.status is AlertStatus.RESOLVED
        assert resolved.resolved_by == 42
        assert resolved.resolved_at == NOW

    def test_second_resolve_reports_already_resolved(self, manager: AlertLifecycleManager) -> None:
        alert = manager.process(_candidate())
        assert alert is not None

        first = manager.resolve(alert.alert_id, resolved_by=42)
        second = manager.resolve(alert.alert_id, resolved_by=42)

        assert first.is_ok()
        assert second.is_err()
        assert isinstance(second.unwrap_err(), AlreadyResolvedError)

    def test_unknown_alert_is_not_found(self, manager: AlertLifecycleManager) -> None:
        result = manager.resolve("missing", resolved_by=42)

        assert isinstance(result.unwrap_err(), NotFoundError)

    def test_foreign_alert_is_not_found(self, manager: AlertLifecycleManager) -> None:
        alert = manager.process(_candidate())
        assert alert is not None

        result = manager.resolve(alert.alert_id, resolved_by=42, patient_id=2)

        assert type(result.unwrap_err()) is NotFoundError
        assert manager.store.get(alert.alert_id).is_active  # type: ignore[union-attr]

    def test_breach_after_resolve_opens_a_new_alert(self, manager: AlertLifecycleManager) -> None:
        first = manager.process(_candidate())
        assert first is not None
        manager.resolve(first.alert_id, resolved_by=42)

        second = manager.process(_candidate())

        assert second is not None
        assert second.alert_id != first.alert_id
        assert second.is_active
        assert manager.store.get(first.alert_id).status is AlertStatus.RESOLVED  # type: ignore[union-attr]


class TestMissedMedication:
    def _medication(self, medication_id: int, name: str) -> Medication:
        return Medication(
            medication_id=medication_id,
            patient_id=1,
            name=name,
            dosage="10mg",
            time_of_day=["08:00"],
            start_date=date(2026, 10, 1),
        )

    def _missed(self, medication_id: int, day: int) -> DoseLog:
        return DoseLog(
            medication_id=medication_id,
            patient_id=1,
            scheduled_time=datetime(2026, 10, day, 8, 0, tzinfo=UTC),
            status=DoseStatus.MISSED,
        )

    def test_one_candidate_per_medication(self) -> None:
        candidates = missed_medication_candidates(
            1,
            [self._missed(1, 17), self._missed(1, 18), self._missed(2, 18)],
            [self._medication(1, "Lisinopril"), self._medication(2, "Aspirin")],
            NOW,
        )

        assert [c.key for c in candidates] == [
            AlertKey.for_medication(1, 1),
            AlertKey.for_medication(1, 2),
        ]
        assert all(c.alert_type == "Missed Medication" for c in candidates)
        assert all(c.severity is Severity.MEDIUM for c in candidates)
        assert candidates[0].description.startswith("Missed 2 doses of Lisinopril 10mg")
        assert "2026-10-18 08:00" in candidates[0].description

    def test_missed_doses_route_through_lifecycle(
        self, manager: AlertLifecycleManager, alert_store: InMemoryAlertStore
    ) -> None:
        medications = [self._medication(1, "Lisinopril")]

        manager.process_missed_doses(1, [self._missed(1, 17)], medications)
        manager.process_missed_doses(1, [self._missed(1, 17), self._missed(1, 18)], medications)

        (alert,) = alert_store.list_for_patient(1)
        assert alert.description.startswith("Missed 2 doses")


class TestCounts:
    def test_counts_active_by_severity_and_resolved(self, manager: AlertLifecycleManager) -> None:
        manager.process(_candidate(Severity.CRITICAL))
        manager.process(_candidate(Severity.HIGH, key=AlertKey.for_vital(1, VitalType.GLUCOSE)))
        resolved = manager.process(
            _candidate(Severity.HIGH, key=AlertKey.for_vital(2, VitalType.HEART_RATE))
        )
        manager.process(_candidate(Severity.MEDIUM, key=AlertKey.for_medication(2, 9)))
        assert resolved is not None
        manager.resolve(resolved.alert_id, resolved_by=42)

        counts = manager.counts([1, 2])

        assert (counts.critical, counts.high, counts.medium, counts.low, counts.resolved) == (
            1,
            1,
            1,
            0,
            1,
        )
