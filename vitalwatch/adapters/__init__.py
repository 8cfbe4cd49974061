"""Store implementations for the engine's collaborator protocols."""

from .memory import (
    InMemoryAlertStore,
    InMemoryMedicationStore,
    InMemoryReadingStore,
    InMemoryThresholdStore,
)

__all__ = [
    "InMemoryAlertStore",
    "InMemoryMedicationStore",
    "InMemoryReadingStore",
    "InMemoryThresholdStore",
]
