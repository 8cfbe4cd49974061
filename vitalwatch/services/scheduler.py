"""
Dose scheduling: expand recurring time-of-day entries into dose occurrences.

Nothing here runs on a timer. Whether a Pending dose has become Missed is
decided when it is read, from the caller's notion of "now".
"""

from collections import defaultdict
from datetime import date, datetime, timedelta

import structlog

from vitalwatch.config import EngineConfig
from vitalwatch.domain.errors import ConflictError, InvalidTransitionError, NotFoundError
from vitalwatch.domain.models import DoseLog, DoseStatus, Medication, TodayDose, require_aware
from vitalwatch.services.stores import MedicationStore

logger = structlog.get_logger(__name__)


def effective_status(log: DoseLog, now: datetime, grace_period: timedelta) -> DoseStatus:
    """Stored status, except an overdue Pending dose past its grace period reads as Missed."""
    if log.status is DoseStatus.PENDING and now > log.scheduled_time + grace_period:
        return DoseStatus.MISSED
    return log.status


def day_status(statuses: list[DoseStatus]) -> DoseStatus:
    """Roll one medication's doses for a day into Taken, Pending or Missed."""
    if statuses and all(status is DoseStatus.TAKEN for status in statuses):
        return DoseStatus.TAKEN
    if not statuses or DoseStatus.PENDING in statuses:
        return DoseStatus.PENDING
    return DoseStatus.MISSED


class DoseScheduler:
    """Materializes dose logs and answers due/missed questions lazily."""

    def __init__(self, store: MedicationStore, config: EngineConfig | None = None) -> None:
        self.store = store
        self.config = config or EngineConfig()
        self.logger = logger.bind(component="dose_scheduler")

    def expand(self, medication: Medication, from_date: date, to_date: date) -> list[datetime]:
        """
        Scheduled timestamps for every active day in `[from_date, to_date]`.

        Returns an empty list for an inverted window or an inactive medication.
        """
        tz = self.config.tzinfo
        times = medication.times()
        scheduled: list[datetime] = []

        day = from_date
        while day <= to_date:
            if medication.is_active_on(day):
                scheduled.extend(datetime.combine(day, t, tzinfo=tz) for t in times)
            day += timedelta(days=1)
        return scheduled

    def materialize(self, medication: Medication, from_date: date, to_date: date) -> list[DoseLog]:
        """Insert Pending logs for the window; occurrences that already exist are left alone."""
        created: list[DoseLog] = []
        skipped = 0
        for scheduled_time in self.expand(medication, from_date, to_date):
            log = DoseLog(
                medication_id=medication.medication_id,
                patient_id=medication.patient_id,
                scheduled_time=scheduled_time,
            )
            try:
                created.append(self.store.insert_dose_log(log))
            except ConflictError:
                skipped += 1

        self.logger.info(
            "dose_logs_materialized",
            medication_id=medication.medication_id,
            from_date=from_date.isoformat(),
            to_date=to_date.isoformat(),
            created=len(created),
            skipped_existing=skipped,
        )
        return created

    def effective_status(self, log: DoseLog, now: datetime) -> DoseStatus:
        return effective_status(log, now, self.config.grace_period)

    def is_due(self, log: DoseLog, now: datetime) -> bool:
        return log.scheduled_time <= now and self.effective_status(log, now) is DoseStatus.PENDING

    def due_doses(self, patient_id: int, now: datetime) -> list[DoseLog]:
        require_aware(now, "now")
        logs = self.store.get_dose_logs(
            patient_id, now - self.config.grace_period, now + timedelta(seconds=1)
        )
        return [log for log in logs if self.is_due(log, now)]

    def missed_doses(
        self, patient_id: int, window_start: datetime, window_end: datetime, now: datetime
    ) -> list[DoseLog]:
        require_aware(window_start, "window_start")
        require_aware(window_end, "window_end")
        require_aware(now, "now")
        logs = self.store.get_dose_logs(patient_id, window_start, window_end)
        return [log for log in logs if self.effective_status(log, now) is DoseStatus.MISSED]

    def record_taken(self, medication_id: int, scheduled_time: datetime, now: datetime) -> DoseLog:
        """Mark a dose as taken. A dose already past its grace period can no longer be taken."""
        require_aware(now, "now")
        log = self._get_log(medication_id, scheduled_time)
        status = self.effective_status(log, now)
        if status is not DoseStatus.PENDING:
            raise InvalidTransitionError(
                f"Dose at {scheduled_time.isoformat()} is already {status.value}"
            )
        updated = self.store.update_dose_log(log.mark_taken(now))
        self.logger.info(
            "dose_taken",
            medication_id=medication_id,
            scheduled_time=scheduled_time.isoformat(),
        )
        return updated

    def record_missed(self, medication_id: int, scheduled_time: datetime) -> DoseLog:
        log = self._get_log(medication_id, scheduled_time)
        updated = self.store.update_dose_log(log.mark_missed())
        self.logger.info(
            "dose_missed",
            medication_id=medication_id,
            scheduled_time=scheduled_time.isoformat(),
        )
        return updated

    def _get_log(self, medication_id: int, scheduled_time: datetime) -> DoseLog:
        require_aware(scheduled_time, "scheduled_time")
        log = self.store.get_dose_log(medication_id, scheduled_time)
        if log is None:
            raise NotFoundError(
                f"No dose of medication {medication_id} scheduled at {scheduled_time.isoformat()}"
            )
        return log

    def todays_doses(self, patient_id: int, now: datetime) -> list[TodayDose]:
        """Every dose scheduled today across the patient's active medications, by time."""
        require_aware(now, "now")
        today = now.astimezone(self.config.tzinfo).date()
        doses: list[TodayDose] = []

        for medication in self.store.get_active_medications(patient_id):
            for scheduled_time in self.expand(medication, today, today):
                log = self.store.get_dose_log(medication.medication_id, scheduled_time) or DoseLog(
                    medication_id=medication.medication_id,
                    patient_id=patient_id,
                    scheduled_time=scheduled_time,
                )
                doses.append(
                    TodayDose(
                        medication_id=medication.medication_id,
                        name=medication.name,
                        dosage=medication.dosage,
                        time_of_day=scheduled_time.strftime("%H:%M"),
                        scheduled_time=scheduled_time,
                        status=self.effective_status(log, now),
                    )
                )

        return sorted(doses, key=lambda d: (d.scheduled_time, d.name))

    def medication_day_status(self, patient_id: int, now: datetime) -> dict[int, DoseStatus]:
        """
        Today's overall status per active medication.

        Taken when every dose today is taken, Pending while any dose is still
        pending (or none is scheduled today), otherwise Missed.
        """
        by_medication: dict[int, list[DoseStatus]] = defaultdict(list)
        for dose in self.todays_doses(patient_id, now):
            by_medication[dose.medication_id].append(dose.status)

        return {
            medication.medication_id: day_status(by_medication[medication.medication_id])
            for medication in self.store.get_active_medications(patient_id)
        }
