"""
Core services for the engine.

This package contains the threshold resolver, vital evaluator, dose scheduler,
adherence tracker and alert lifecycle manager, plus the engine that wires them.
"""

from .adherence import AdherenceTracker
from .alerts import AlertLifecycleManager
from .engine import HealthMonitoringEngine
from .evaluator import VitalEvaluator
from .result import Result
from .scheduler import DoseScheduler
from .stores import AlertStore, MedicationStore, ReadingStore, ThresholdStore
from .thresholds import ThresholdResolver

__all__ = [
    "AdherenceTracker",
    "AlertLifecycleManager",
    "AlertStore",
    "DoseScheduler",
    "HealthMonitoringEngine",
    "MedicationStore",
    "ReadingStore",
    "Result",
    "ThresholdResolver",
    "ThresholdStore",
    "VitalEvaluator",
]
