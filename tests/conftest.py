"""Shared fixtures: deterministic clock and an engine over in-memory stores."""

from __future__ import annotations

from datetime import UTC, date, datetime

import pytest

from vitalwatch.adapters.memory import (
    InMemoryAlertStore,
    InMemoryMedicationStore,
    InMemoryReadingStore,
    InMemoryThresholdStore,
)
from vitalwatch.config import EngineConfig
from vitalwatch.services.engine import HealthMonitoringEngine

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)
TODAY = date(2026, 10, 19)


class FrozenClock:
    """Callable clock the test can move forward."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def engine_config() -> EngineConfig:
    return EngineConfig()


@pytest.fixture
def medication_store() -> InMemoryMedicationStore:
    return InMemoryMedicationStore()


@pytest.fixture
def alert_store() -> InMemoryAlertStore:
    return InMemoryAlertStore()


@pytest.fixture
def engine(
    engine_config: EngineConfig,
    clock: FrozenClock,
    medication_store: InMemoryMedicationStore,
    alert_store: InMemoryAlertStore,
) -> HealthMonitoringEngine:
    return HealthMonitoringEngine(
        InMemoryReadingStore(),
        InMemoryThresholdStore(),
        medication_store,
        alert_store,
        config=engine_config,
        clock=clock,
    )
