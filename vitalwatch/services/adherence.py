"""
Adherence statistics over a window of dose logs.

Only completed doses (Taken or Missed) count towards the percentage. With no
completed doses the percentage is 100: a freshly prescribed medication whose
doses are all still in the future shows full adherence, not zero.
"""

import math
from collections import Counter
from collections.abc import Iterable
from datetime import datetime, timedelta

import structlog

from vitalwatch.config import EngineConfig
from vitalwatch.domain.models import AdherenceSummary, DoseLog, DoseStatus, require_aware
from vitalwatch.services.scheduler import effective_status

logger = structlog.get_logger(__name__)

WEEKLY_LABEL = "This Week"


def adherence_percentage(taken: int, completed: int) -> int:
    """`taken / completed` as a whole percent, halves rounded up; 100 when nothing is completed."""
    if completed == 0:
        return 100
    return math.floor(taken / completed * 100 + 0.5)


class AdherenceTracker:
    """Folds dose logs into Taken/Missed/Pending counts."""

    def __init__(self, config: EngineConfig | None = None) -> None:
        self.config = config or EngineConfig()
        self.logger = logger.bind(component="adherence_tracker")

    def summarize(
        self,
        patient_id: int,
        dose_logs: Iterable[DoseLog],
        window_start: datetime,
        window_end: datetime,
        *,
        now: datetime | None = None,
        label: str | None = None,
    ) -> AdherenceSummary:
        """
        Summarize logs scheduled in `[window_start, window_end)` for one patient.

        Args:
            patient_id: Patient whose logs are counted; other patients' logs are ignored
            dose_logs: Candidate logs, in any order
            window_start: Inclusive start of the window
            window_end: Exclusive end of the window
            now: When given, overdue Pending logs past the grace period count as Missed
            label: Display label for the window
        """
        require_aware(window_start, "window_start")
        require_aware(window_end, "window_end")
        if now is not None:
            require_aware(now, "now")

        counts: Counter[DoseStatus] = Counter()
        for log in dose_logs:
            if log.patient_id != patient_id:
                continue
            if not window_start <= log.scheduled_time < window_end:
                continue
            status = (
                effective_status(log, now, self.config.grace_period) if now is not None else log.status
            )
            counts[status] += 1

        taken = counts[DoseStatus.TAKEN]
        missed = counts[DoseStatus.MISSED]
        pending = counts[DoseStatus.PENDING]

        summary = AdherenceSummary(
            patient_id=patient_id,
            window_label=label or f"{window_start.date().isoformat()} to {window_end.date().isoformat()}",
            window_start=window_start,
            window_end=window_end,
            total_scheduled=taken + missed + pending,
            taken=taken,
            missed=missed,
            pending=pending,
            percentage=adherence_percentage(taken, taken + missed),
        )
        self.logger.debug(
            "adherence_summarized",
            patient_id=patient_id,
            taken=taken,
            missed=missed,
            pending=pending,
            percentage=summary.percentage,
        )
        return summary

    def weekly(
        self, patient_id: int, dose_logs: Iterable[DoseLog], now: datetime
    ) -> AdherenceSummary:
        """Rolling window of `adherence_window_days` ending at `now`."""
        require_aware(now, "now")
        window_start = now - timedelta(days=self.config.adherence_window_days)
        return self.summarize(
            patient_id,
            dose_logs,
            window_start,
            now,
            now=now,
            label=WEEKLY_LABEL if self.config.adherence_window_days == 7 else None,
        )
