"""
Domain models for vital-sign alerting and medication adherence.

These models represent the core business concepts and are framework-agnostic.
They use Pydantic for validation but could be swapped to dataclasses if needed.
"""

from datetime import UTC, date, datetime, time
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import (
    AwareDatetime,
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError

from vitalwatch.domain.errors import InvalidTransitionError, ValidationError


class VitalType(str, Enum):
    """Vital types a threshold can be configured for."""

    BLOOD_PRESSURE_SYSTOLIC = "BloodPressureSystolic"
    BLOOD_PRESSURE_DIASTOLIC = "BloodPressureDiastolic"
    HEART_RATE = "HeartRate"
    GLUCOSE = "Glucose"
    TEMPERATURE = "Temperature"

    @property
    def field_name(self) -> str:
        """Attribute on `VitalReading` holding this vital."""
        return _VITAL_FIELDS[self]

    @property
    def unit(self) -> str:
        return _VITAL_UNITS[self]

    @property
    def label(self) -> str:
        return _VITAL_LABELS[self]


_VITAL_FIELDS = {
    VitalType.BLOOD_PRESSURE_SYSTOLIC: "systolic",
    VitalType.BLOOD_PRESSURE_DIASTOLIC: "diastolic",
    VitalType.HEART_RATE: "heart_rate",
    VitalType.GLUCOSE: "glucose",
    VitalType.TEMPERATURE: "temperature",
}

_VITAL_UNITS = {
    VitalType.BLOOD_PRESSURE_SYSTOLIC: "mmHg",
    VitalType.BLOOD_PRESSURE_DIASTOLIC: "mmHg",
    VitalType.HEART_RATE: "bpm",
    VitalType.GLUCOSE: "mg/dL",
    VitalType.TEMPERATURE: "°F",
}

_VITAL_LABELS = {
    VitalType.BLOOD_PRESSURE_SYSTOLIC: "Systolic blood pressure",
    VitalType.BLOOD_PRESSURE_DIASTOLIC: "Diastolic blood pressure",
    VitalType.HEART_RATE: "Heart rate",
    VitalType.GLUCOSE: "Glucose",
    VitalType.TEMPERATURE: "Temperature",
}


class Severity(str, Enum):
    """Alert severity levels, lowest first."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class AlertStatus(str, Enum):
    ACTIVE = "Active"
    RESOLVED = "Resolved"


class DoseStatus(str, Enum):
    PENDING = "Pending"
    TAKEN = "Taken"
    MISSED = "Missed"


class VitalStatus(str, Enum):
    """Three-tier display classification of a single vital value."""

    NORMAL = "Normal"
    BORDERLINE = "Borderline"
    BREACH = "Breach"


def require_aware(moment: datetime, name: str = "timestamp") -> datetime:
    """Return `moment` unchanged, or raise ValidationError if it carries no UTC offset."""
    if moment.tzinfo is None or moment.utcoffset() is None:
        raise ValidationError(f"{name} must be timezone-aware, got naive {moment.isoformat()}")
    return moment


class VitalReading(BaseModel):
    """One set of vitals logged by a patient. Any field may be absent."""

    model_config = ConfigDict(frozen=True)  # Append-only records

    patient_id: int
    timestamp: AwareDatetime = Field(default_factory=lambda: datetime.now(UTC))
    systolic: float | None = None
    diastolic: float | None = None
    heart_rate: float | None = None
    glucose: float | None = None
    temperature: float | None = None
    notes: str | None = Field(default=None, max_length=500)

    @classmethod
    def parse(cls, payload: dict[str, Any]) -> "VitalReading":
        """Build a reading from untrusted input, raising the engine's ValidationError."""
        try:
            return cls.model_validate(payload)
        except PydanticValidationError as e:
            raise ValidationError(f"Malformed vital reading: {e}") from e

    def value_for(self, vital_type: VitalType) -> float | None:
        return getattr(self, vital_type.field_name)

    def present_values(self) -> dict[VitalType, float]:
        """Vitals carried by this reading, in enum order."""
        return {
            vital_type: value
            for vital_type in VitalType
            if (value := self.value_for(vital_type)) is not None
        }


class ThresholdRange(BaseModel):
    """Resolved bounds for one vital. A missing bound is open."""

    model_config = ConfigDict(frozen=True)

    min_value: float | None = None
    max_value: float | None = None

    @model_validator(mode="after")
    def min_not_above_max(self) -> "ThresholdRange":
        if (
            self.min_value is not None
            and self.max_value is not None
            and self.min_value > self.max_value
        ):
            raise ValueError("min_value must not exceed max_value")
        return self

    def contains(self, value: float) -> bool:
        """Inclusive bounds check: a value equal to a bound is in range."""
        if self.min_value is not None and value < self.min_value:
            return False
        if self.max_value is not None and value > self.max_value:
            return False
        return True


class Threshold(BaseModel):
    """Clinician-set limits for one patient and vital type."""

    model_config = ConfigDict(frozen=True)

    patient_id: int
    vital_type: VitalType
    min_value: float | None = None
    max_value: float | None = None
    set_by: int = Field(description="Clinician id")
    set_at: AwareDatetime = Field(default_factory=lambda: datetime.now(UTC))
    is_active: bool = True

    @model_validator(mode="after")
    def min_not_above_max(self) -> "Threshold":
        if (
            self.min_value is not None
            and self.max_value is not None
            and self.min_value > self.max_value
        ):
            raise ValueError("min_value must not exceed max_value")
        return self

    @property
    def bounds(self) -> ThresholdRange:
        return ThresholdRange(min_value=self.min_value, max_value=self.max_value)


class AlertKey(BaseModel):
    """Deduplication key: at most one active alert exists per key."""

    model_config = ConfigDict(frozen=True)

    patient_id: int
    subject: str = Field(min_length=1, description="'vital:<type>' or 'medication:<id>'")

    @classmethod
    def for_vital(cls, patient_id: int, vital_type: VitalType) -> "AlertKey":
        return cls(patient_id=patient_id, subject=f"vital:{vital_type.value}")

    @classmethod
    def for_medication(cls, patient_id: int, medication_id: int) -> "AlertKey":
        return cls(patient_id=patient_id, subject=f"medication:{medication_id}")


class AlertCandidate(BaseModel):
    """A breach worth alerting on, before the lifecycle decides what to do with it."""

    model_config = ConfigDict(frozen=True)

    key: AlertKey
    alert_type: str = Field(description="Tag such as 'High Blood Pressure'")
    description: str
    severity: Severity
    vital_type: VitalType | None = None
    value: float | None = None
    bound: float | None = None
    detected_at: AwareDatetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def patient_id(self) -> int:
        return self.key.patient_id


class Alert(BaseModel):
    """Persisted alert record. Created by the engine, resolved by a clinician."""

    model_config = ConfigDict(frozen=True)

    alert_id: str = Field(default_factory=lambda: uuid4().hex)
    key: AlertKey
    alert_type: str
    description: str
    severity: Severity
    created_at: AwareDatetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: AwareDatetime = Field(default_factory=lambda: datetime.now(UTC))
    status: AlertStatus = AlertStatus.ACTIVE
    resolved_at: AwareDatetime | None = None
    resolved_by: int | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def patient_id(self) -> int:
        return self.key.patient_id

    @property
    def is_active(self) -> bool:
        return self.status is AlertStatus.ACTIVE

    @classmethod
    def from_candidate(cls, candidate: AlertCandidate, now: datetime) -> "Alert":
        return cls(
            key=candidate.key,
            alert_type=candidate.alert_type,
            description=candidate.description,
            severity=candidate.severity,
            created_at=now,
            updated_at=now,
        )

    def refreshed(self, candidate: AlertCandidate, now: datetime) -> "Alert":
        """Same alert identity, latest description and severity."""
        return self.model_copy(
            update={
                "alert_type": candidate.alert_type,
                "description": candidate.description,
                "severity": candidate.severity,
                "updated_at": now,
            }
        )

    def resolved(self, resolved_by: int, resolved_at: datetime) -> "Alert":
        return self.model_copy(
            update={
                "status": AlertStatus.RESOLVED,
                "resolved_at": resolved_at,
                "resolved_by": resolved_by,
                "updated_at": resolved_at,
            }
        )


class AlertCounts(BaseModel):
    """Active alerts by severity plus resolved total, as shown on the alert dashboard."""

    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    resolved: int = 0


class Medication(BaseModel):
    """A prescription. `time_of_day` is the authoritative schedule."""

    model_config = ConfigDict(frozen=True)

    medication_id: int
    patient_id: int
    name: str = Field(min_length=1)
    dosage: str
    frequency: str = Field(default="", description="Display label only")
    time_of_day: list[str] = Field(default_factory=list)
    start_date: date
    end_date: date | None = None
    instructions: str | None = None
    is_active: bool = True
    prescribed_by: int | None = None

    @field_validator("time_of_day", mode="before")
    @classmethod
    def split_time_string(cls, v: Any) -> Any:
        # The portal API sends "08:00, 20:00" as a single string
        if isinstance(v, str):
            return [part.strip() for part in v.split(",") if part.strip()]
        return v

    @field_validator("time_of_day")
    @classmethod
    def normalize_times(cls, v: list[str]) -> list[str]:
        parsed: set[time] = set()
        for entry in v:
            try:
                parsed.add(datetime.strptime(entry.strip(), "%H:%M").time())
            except ValueError as e:
                raise ValueError(f"time_of_day entry {entry!r} is not HH:MM") from e
        return [t.strftime("%H:%M") for t in sorted(parsed)]

    @model_validator(mode="after")
    def end_not_before_start(self) -> "Medication":
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self

    def times(self) -> list[time]:
        return [time.fromisoformat(entry) for entry in self.time_of_day]

    def is_active_on(self, day: date) -> bool:
        if not self.is_active or day < self.start_date:
            return False
        return self.end_date is None or day <= self.end_date


class DoseLog(BaseModel):
    """One expanded dose occurrence. Moves from Pending to a terminal state once."""

    model_config = ConfigDict(frozen=True)

    medication_id: int
    patient_id: int
    scheduled_time: AwareDatetime
    taken_time: AwareDatetime | None = None
    status: DoseStatus = DoseStatus.PENDING

    @property
    def is_terminal(self) -> bool:
        return self.status is not DoseStatus.PENDING

    def mark_taken(self, taken_time: datetime) -> "DoseLog":
        if self.is_terminal:
            raise InvalidTransitionError(
                f"Dose at {self.scheduled_time.isoformat()} is already {self.status.value}"
            )
        return self.model_copy(update={"status": DoseStatus.TAKEN, "taken_time": taken_time})

    def mark_missed(self) -> "DoseLog":
        if self.is_terminal:
            raise InvalidTransitionError(
                f"Dose at {self.scheduled_time.isoformat()} is already {self.status.value}"
            )
        return self.model_copy(update={"status": DoseStatus.MISSED})


class TodayDose(BaseModel):
    """Row of the patient's "today's medications" view."""

    medication_id: int
    name: str
    dosage: str
    time_of_day: str
    scheduled_time: AwareDatetime
    status: DoseStatus


class AdherenceSummary(BaseModel):
    """Taken/Missed/Pending counts for one patient over a window."""

    model_config = ConfigDict(frozen=True)

    patient_id: int
    window_label: str
    window_start: AwareDatetime
    window_end: AwareDatetime
    total_scheduled: int = Field(ge=0)
    taken: int = Field(ge=0)
    missed: int = Field(ge=0)
    pending: int = Field(ge=0)
    percentage: int = Field(ge=0, le=100)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def completed(self) -> int:
        return self.taken + self.missed
