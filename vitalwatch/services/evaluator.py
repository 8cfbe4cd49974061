"""
Vital evaluation: classify each field of a reading against its resolved range.

Severity rules:
- A value equal to a bound is in range; only a strict breach raises a candidate.
- A breach is High. It is Critical once it passes the critical line, which sits
  at `max * m` above the range and `min * (2 - m)` below it.
- `m` is the strict multiplier (default 1.15) for systolic pressure and glucose,
  and the general multiplier (default 1.3) for everything else.
- Borderline values near a bound are informational only and never alert. The
  margin is read in vital units, or as a percentage of the bound when configured.
"""

import math
from collections.abc import Mapping
from datetime import datetime

import structlog

from vitalwatch.config import EngineConfig
from vitalwatch.domain.errors import ValidationError
from vitalwatch.domain.models import (
    AlertCandidate,
    AlertKey,
    Severity,
    ThresholdRange,
    VitalReading,
    VitalStatus,
    VitalType,
)

logger = structlog.get_logger(__name__)

_ALERT_SUBJECTS = {
    VitalType.BLOOD_PRESSURE_SYSTOLIC: "Blood Pressure",
    VitalType.BLOOD_PRESSURE_DIASTOLIC: "Blood Pressure",
    VitalType.HEART_RATE: "Heart Rate",
    VitalType.GLUCOSE: "Glucose",
    VitalType.TEMPERATURE: "Temperature",
}


def _critical_line(bound: float, factor: float) -> float:
    # Rounded so that 140 * 1.15 compares as 161, not 160.99999999999997
    return round(bound * factor, 6)


class VitalEvaluator:
    """Turns a reading into zero or more alert candidates."""

    def __init__(self, config: EngineConfig | None = None) -> None:
        self.config = config or EngineConfig()
        self.logger = logger.bind(component="vital_evaluator")

    def validate(self, reading: VitalReading) -> None:
        """Reject malformed readings before anything is stored or evaluated."""
        values = reading.present_values()
        if not values:
            self._reject(reading, "reading carries no vital values")

        for vital_type, value in values.items():
            if not math.isfinite(value):
                self._reject(reading, f"{vital_type.label} must be a finite number")
            if value <= 0:
                self._reject(reading, f"{vital_type.label} must be positive, got {value:g}")
            plausible = self.config.plausible_ranges.get(vital_type)
            if plausible is not None and not plausible.contains(value):
                self._reject(
                    reading,
                    f"{vital_type.label} {value:g} {vital_type.unit} is outside the plausible "
                    f"range {plausible.min_value:g}-{plausible.max_value:g} {vital_type.unit}",
                )

        if (
            reading.systolic is not None
            and reading.diastolic is not None
            and reading.diastolic >= reading.systolic
        ):
            self._reject(
                reading,
                f"diastolic {reading.diastolic:g} must be below systolic {reading.systolic:g}",
            )

    def _reject(self, reading: VitalReading, reason: str) -> None:
        self.logger.warning("reading_rejected", patient_id=reading.patient_id, reason=reason)
        raise ValidationError(reason)

    def evaluate(
        self, reading: VitalReading, thresholds: Mapping[VitalType, ThresholdRange]
    ) -> list[AlertCandidate]:
        """One independent candidate per breaching field, in `VitalType` order."""
        candidates: list[AlertCandidate] = []
        for vital_type, value in reading.present_values().items():
            bounds = thresholds.get(vital_type) or self.config.default_ranges[vital_type]
            candidate = self.evaluate_value(
                reading.patient_id, vital_type, value, bounds, reading.timestamp
            )
            if candidate is not None:
                candidates.append(candidate)

        if candidates:
            self.logger.info(
                "reading_breached",
                patient_id=reading.patient_id,
                vitals=[c.vital_type.value for c in candidates if c.vital_type],
            )
        return candidates

    def evaluate_value(
        self,
        patient_id: int,
        vital_type: VitalType,
        value: float,
        bounds: ThresholdRange,
        detected_at: datetime,
    ) -> AlertCandidate | None:
        if bounds.contains(value):
            return None

        multiplier = self.config.critical_multiplier_for(vital_type)
        unit = vital_type.unit
        subject = _ALERT_SUBJECTS[vital_type]

        if bounds.max_value is not None and value > bounds.max_value:
            bound = bounds.max_value
            critical = value > _critical_line(bound, multiplier)
            alert_type = f"High {subject}"
            description = (
                f"{vital_type.label} {value:g} {unit} exceeds the upper limit of {bound:g} {unit}"
            )
        else:
            bound = bounds.min_value  # type: ignore[assignment]
            critical = value < _critical_line(bound, 2 - multiplier)
            alert_type = f"Low {subject}"
            description = (
                f"{vital_type.label} {value:g} {unit} is below the lower limit of {bound:g} {unit}"
            )

        return AlertCandidate(
            key=AlertKey.for_vital(patient_id, vital_type),
            alert_type=alert_type,
            description=description,
            severity=Severity.CRITICAL if critical else Severity.HIGH,
            vital_type=vital_type,
            value=value,
            bound=bound,
            detected_at=detected_at,
        )

    def classify(self, value: float, bounds: ThresholdRange) -> VitalStatus:
        """Display tier for a value; `Borderline` never alerts."""
        if not bounds.contains(value):
            return VitalStatus.BREACH

        low, high = bounds.min_value, bounds.max_value
        if low is not None and value < low + self.config.margin_for(low):
            return VitalStatus.BORDERLINE
        if high is not None and value > high - self.config.margin_for(high):
            return VitalStatus.BORDERLINE
        return VitalStatus.NORMAL
