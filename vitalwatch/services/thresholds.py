"""Threshold resolution: the patient's active limits, else the system defaults."""

import structlog

from vitalwatch.config import EngineConfig
from vitalwatch.domain.models import ThresholdRange, VitalType
from vitalwatch.services.stores import ThresholdStore

logger = structlog.get_logger(__name__)


class ThresholdResolver:
    """Looks up the bounds a reading is judged against. Never fails."""

    def __init__(self, store: ThresholdStore, config: EngineConfig | None = None) -> None:
        self.store = store
        self.config = config or EngineConfig()
        self.logger = logger.bind(component="threshold_resolver")

    def resolve(self, patient_id: int, vital_type: VitalType) -> ThresholdRange:
        threshold = self.store.get_active(patient_id, vital_type)
        if threshold is not None and threshold.is_active:
            return threshold.bounds

        self.logger.debug(
            "threshold_default_used", patient_id=patient_id, vital_type=vital_type.value
        )
        return self.config.default_ranges[vital_type]

    def resolve_all(self, patient_id: int) -> dict[VitalType, ThresholdRange]:
        return {vital_type: self.resolve(patient_id, vital_type) for vital_type in VitalType}
