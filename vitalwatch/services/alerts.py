"""
Alert lifecycle: at most one active alert per key, closed only by a clinician.

State machine per alert key:
- no active alert + candidate  -> create (Active)
- Active + candidate           -> refresh description/severity, keep id and created_at
- Active + resolve             -> Resolved (terminal; a later breach opens a new alert)

A later normal reading never resolves an alert on its own.
"""

from collections.abc import Callable, Iterable, Sequence
from datetime import UTC, datetime

import structlog

from vitalwatch.domain.errors import AlreadyResolvedError, ConflictError, NotFoundError
from vitalwatch.domain.models import (
    Alert,
    AlertCandidate,
    AlertCounts,
    AlertKey,
    DoseLog,
    Medication,
    Severity,
    require_aware,
)
from vitalwatch.services.result import Result
from vitalwatch.services.stores import AlertStore

logger = structlog.get_logger(__name__)

MISSED_MEDICATION = "Missed Medication"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def missed_medication_candidates(
    patient_id: int,
    missed_logs: Iterable[DoseLog],
    medications: Sequence[Medication],
    detected_at: datetime,
) -> list[AlertCandidate]:
    """One Medium candidate per medication that has missed doses."""
    by_medication: dict[int, list[DoseLog]] = {}
    for log in missed_logs:
        if log.patient_id == patient_id:
            by_medication.setdefault(log.medication_id, []).append(log)

    names = {m.medication_id: f"{m.name} {m.dosage}".strip() for m in medications}
    candidates = []
    for medication_id, logs in sorted(by_medication.items()):
        last = max(log.scheduled_time for log in logs)
        doses = "dose" if len(logs) == 1 else "doses"
        name = names.get(medication_id, f"medication {medication_id}")
        candidates.append(
            AlertCandidate(
                key=AlertKey.for_medication(patient_id, medication_id),
                alert_type=MISSED_MEDICATION,
                description=(
                    f"Missed {len(logs)} {doses} of {name} "
                    f"(last scheduled {last.strftime('%Y-%m-%d %H:%M')})"
                ),
                severity=Severity.MEDIUM,
                detected_at=detected_at,
            )
        )
    return candidates


class AlertLifecycleManager:
    """
    Owns the Active -> Resolved transition and de-duplicates active alerts.

    The Alert Store enforces the at-most-one-active constraint; a ConflictError
    from it means a concurrent writer already opened the alert, so it is logged
    and treated as a refresh of that alert.
    """

    def __init__(self, store: AlertStore, clock: Callable[[], datetime] | None = None) -> None:
        self.store = store
        self.clock = clock or _utcnow
        self.logger = logger.bind(component="alert_lifecycle")

    def process(self, candidate: AlertCandidate, now: datetime | None = None) -> Alert | None:
        """Create or refresh the active alert for the candidate's key."""
        now = require_aware(now or self.clock(), "now")
        existing = self.store.get_active(candidate.patient_id, candidate.key)
        if existing is not None:
            return self._refresh(existing, candidate, now)

        try:
            created = self.store.create(Alert.from_candidate(candidate, now))
        except ConflictError as e:
            self.logger.info(
                "alert_conflict_skipped",
                patient_id=candidate.patient_id,
                subject=candidate.key.subject,
                error=str(e),
            )
            existing = self.store.get_active(candidate.patient_id, candidate.key)
            if existing is None:
                self.logger.warning(
                    "alert_conflict_without_active_alert",
                    patient_id=candidate.patient_id,
                    subject=candidate.key.subject,
                )
                return None
            return self._refresh(existing, candidate, now)

        self.logger.info(
            "alert_created",
            alert_id=created.alert_id,
            patient_id=created.patient_id,
            alert_type=created.alert_type,
            severity=created.severity.value,
        )
        return created

    def process_all(
        self, candidates: Iterable[AlertCandidate], now: datetime | None = None
    ) -> list[Alert]:
        now = now or self.clock()
        alerts = [self.process(candidate, now) for candidate in candidates]
        return [alert for alert in alerts if alert is not None]

    def process_missed_doses(
        self,
        patient_id: int,
        missed_logs: Iterable[DoseLog],
        medications: Sequence[Medication],
        now: datetime | None = None,
    ) -> list[Alert]:
        now = now or self.clock()
        return self.process_all(
            missed_medication_candidates(patient_id, missed_logs, medications, now), now
        )

    def _refresh(self, existing: Alert, candidate: AlertCandidate, now: datetime) -> Alert:
        if (
            existing.description == candidate.description
            and existing.severity is candidate.severity
            and existing.alert_type == candidate.alert_type
        ):
            return existing

        refreshed = self.store.update(existing.refreshed(candidate, now))
        self.logger.info(
            "alert_refreshed",
            alert_id=refreshed.alert_id,
            patient_id=refreshed.patient_id,
            previous_severity=existing.severity.value,
            severity=refreshed.severity.value,
        )
        return refreshed

    def resolve(
        self,
        alert_id: str,
        resolved_by: int,
        *,
        patient_id: int | None = None,
        now: datetime | None = None,
    ) -> Result[Alert, NotFoundError]:
        """
        Close an active alert on behalf of a clinician.

        Returns an error result (never raises) for an unknown alert, an alert
        belonging to a different patient, or one that is already resolved.
        """
        alert = self.store.get(alert_id)
        if alert is None or (patient_id is not None and alert.patient_id != patient_id):
            return self._rejected(NotFoundError(f"Alert {alert_id} not found"), alert_id)
        if not alert.is_active:
            return self._rejected(
                AlreadyResolvedError(f"Alert {alert_id} is already resolved"), alert_id
            )

        try:
            resolved = self.store.resolve(
                alert_id, resolved_by, require_aware(now or self.clock(), "now")
            )
        except NotFoundError as e:
            return self._rejected(e, alert_id)

        self.logger.info(
            "alert_resolved",
            alert_id=alert_id,
            patient_id=resolved.patient_id,
            resolved_by=resolved_by,
        )
        return Result.ok(resolved)

    def _rejected(self, error: NotFoundError, alert_id: str) -> Result[Alert, NotFoundError]:
        self.logger.info(
            "alert_resolve_rejected", alert_id=alert_id, reason=type(error).__name__
        )
        return Result.err(error)

    def counts(self, patient_ids: Iterable[int]) -> AlertCounts:
        """Active alerts by severity and resolved total across `patient_ids`."""
        counts = AlertCounts()
        for patient_id in patient_ids:
            for alert in self.store.list_for_patient(patient_id):
                if not alert.is_active:
                    counts.resolved += 1
                elif alert.severity is Severity.CRITICAL:
                    counts.critical += 1
                elif alert.severity is Severity.HIGH:
                    counts.high += 1
                elif alert.severity is Severity.MEDIUM:
                    counts.medium += 1
                else:
                    counts.low += 1
        return counts
