"""
Tests for adherence summaries.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from hypothesis import given
from hypothesis import strategies as st

from tests.conftest import NOW
from vitalwatch.config import EngineConfig
from vitalwatch.domain.errors import ValidationError
from vitalwatch.domain.models import DoseLog, DoseStatus
from vitalwatch.services.adherence import AdherenceTracker, adherence_percentage

WINDOW_START = datetime(2026, 10, 12, tzinfo=UTC)
WINDOW_END = datetime(2026, 10, 20, tzinfo=UTC)


def _log(hours_after_start: int, status: DoseStatus, patient_id: int = 7) -> DoseLog:
    return DoseLog(
        medication_id=1,
        patient_id=patient_id,
        scheduled_time=WINDOW_START + timedelta(hours=hours_after_start),
        status=status,
    )


@pytest.fixture
def tracker() -> AdherenceTracker:
    return AdherenceTracker(EngineConfig())


class TestSummarize:
    def test_three_taken_one_missed_is_75_percent(self, tracker: AdherenceTracker) -> None:
        logs = [
            _log(1, DoseStatus.TAKEN),
            _log(2, DoseStatus.TAKEN),
            _log(3, DoseStatus.TAKEN),
            _log(4, DoseStatus.MISSED),
            _log(5, DoseStatus.PENDING),
            _log(6, DoseStatus.PENDING),
        ]

        summary = tracker.summarize(7, logs, WINDOW_START, WINDOW_END)

        assert summary.percentage == 75
        assert summary.taken == 3
        assert summary.missed == 1
        assert summary.pending == 2
        assert summary.completed == 4
        assert summary.total_scheduled == 6

    def test_nothing_completed_is_100_percent(self, tracker: AdherenceTracker) -> None:
        logs = [_log(1, DoseStatus.PENDING), _log(2, DoseStatus.PENDING)]

        summary = tracker.summarize(7, logs, WINDOW_START, WINDOW_END)

        assert summary.percentage == 100
        assert summary.pending == 2

    def test_empty_history_is_100_percent(self, tracker: AdherenceTracker) -> None:
        summary = tracker.summarize(7, [], WINDOW_START, WINDOW_END)

        assert summary.percentage == 100
        assert summary.total_scheduled == 0

    def test_logs_outside_window_or_for_other_patients_are_ignored(
        self, tracker: AdherenceTracker
    ) -> None:
        logs = [
            _log(-1, DoseStatus.MISSED),
            _log(1, DoseStatus.TAKEN),
            _log(2, DoseStatus.MISSED, patient_id=8),
            _log(24 * 8, DoseStatus.MISSED),  # exactly window_end, excluded
        ]

        summary = tracker.summarize(7, logs, WINDOW_START, WINDOW_END)

        assert (summary.taken, summary.missed, summary.percentage) == (1, 0, 100)

    def test_now_applies_lazy_missed_transition(self, tracker: AdherenceTracker) -> None:
        logs = [_log(1, DoseStatus.TAKEN), _log(2, DoseStatus.PENDING)]
        now = WINDOW_START + timedelta(hours=5)

        without_now = tracker.summarize(7, logs, WINDOW_START, WINDOW_END)
        with_now = tracker.summarize(7, logs, WINDOW_START, WINDOW_END, now=now)

        assert without_now.percentage == 100
        assert with_now.percentage == 50
        assert with_now.missed == 1

    def test_naive_window_is_rejected(self, tracker: AdherenceTracker) -> None:
        logs = [_log(1, DoseStatus.TAKEN)]

        with pytest.raises(ValidationError, match="window_start"):
            tracker.summarize(7, logs, datetime(2026, 10, 12), WINDOW_END)
        with pytest.raises(ValidationError, match="now"):
            tracker.summarize(7, logs, WINDOW_START, WINDOW_END, now=datetime(2026, 10, 13))

    def test_halves_round_up(self) -> None:
        assert adherence_percentage(1, 8) == 13
        assert adherence_percentage(2, 3) == 67
        assert adherence_percentage(0, 5) == 0

    @given(
        taken=st.integers(min_value=0, max_value=200),
        missed=st.integers(min_value=0, max_value=200),
        pending=st.integers(min_value=0, max_value=200),
    )
    def test_pending_never_changes_the_percentage(
        self, taken: int, missed: int, pending: int
    ) -> None:
        tracker = AdherenceTracker(EngineConfig())
        logs = (
            [_log(0, DoseStatus.TAKEN)] * taken
            + [_log(0, DoseStatus.MISSED)] * missed
            + [_log(0, DoseStatus.PENDING)] * pending
        )

        summary = tracker.summarize(7, logs, WINDOW_START, WINDOW_END)

        assert summary.percentage == adherence_percentage(taken, taken + missed)
        assert 0 <= summary.percentage <= 100


class TestWeekly:
    def test_weekly_window_ends_now_and_is_labelled(self, tracker: AdherenceTracker) -> None:
        logs = [
            DoseLog(
                medication_id=1,
                patient_id=7,
                scheduled_time=NOW - timedelta(days=1),
                status=DoseStatus.TAKEN,
            ),
            DoseLog(
                medication_id=1,
                patient_id=7,
                scheduled_time=NOW - timedelta(days=8),
                status=DoseStatus.MISSED,
            ),
            DoseLog(medication_id=1, patient_id=7, scheduled_time=NOW + timedelta(hours=1)),
        ]

        summary = tracker.weekly(7, logs, NOW)

        assert summary.window_label == "This Week"
        assert summary.window_end == NOW
        assert (summary.taken, summary.missed, summary.pending) == (1, 0, 0)
        assert summary.percentage == 100
