"""
Configuration management with environment variable support and validation.

Design principles:
- Environment-specific configs (dev, staging, prod)
- Validation at startup (fail fast)
- Type safety with Pydantic
- Clinical tuning knobs (multipliers, grace period) are configuration, not constants
"""

import os
from datetime import timedelta
from functools import lru_cache
from typing import Literal, cast
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

from vitalwatch.domain.models import ThresholdRange, VitalType

# Load environment variables from .env file
load_dotenv()


# System defaults used when a patient has no active threshold for a vital
DEFAULT_RANGES: dict[VitalType, ThresholdRange] = {
    VitalType.BLOOD_PRESSURE_SYSTOLIC: ThresholdRange(min_value=110, max_value=140),
    VitalType.BLOOD_PRESSURE_DIASTOLIC: ThresholdRange(min_value=60, max_value=90),
    VitalType.HEART_RATE: ThresholdRange(min_value=60, max_value=100),
    VitalType.GLUCOSE: ThresholdRange(min_value=70, max_value=130),
    VitalType.TEMPERATURE: ThresholdRange(min_value=97.0, max_value=99.5),
}

# Readings outside these limits are data-entry errors, not clinical breaches
PLAUSIBLE_RANGES: dict[VitalType, ThresholdRange] = {
    VitalType.BLOOD_PRESSURE_SYSTOLIC: ThresholdRange(min_value=40, max_value=300),
    VitalType.BLOOD_PRESSURE_DIASTOLIC: ThresholdRange(min_value=20, max_value=200),
    VitalType.HEART_RATE: ThresholdRange(min_value=20, max_value=300),
    VitalType.GLUCOSE: ThresholdRange(min_value=10, max_value=1000),
    VitalType.TEMPERATURE: ThresholdRange(min_value=80.0, max_value=115.0),
}


class EngineConfig(BaseModel):
    """Alerting and scheduling behaviour."""

    strict_critical_multiplier: float = Field(
        default=1.15,
        gt=1.0,
        lt=2.0,
        description="Critical line for strict vitals, as a multiple of the breached bound",
    )
    critical_multiplier: float = Field(
        default=1.3,
        gt=1.0,
        lt=2.0,
        description="Critical line for all other vitals",
    )
    strict_critical_vitals: list[VitalType] = Field(
        default_factory=lambda: [VitalType.BLOOD_PRESSURE_SYSTOLIC, VitalType.GLUCOSE],
        description="Vitals escalated with the strict multiplier",
    )
    near_boundary_margin: float = Field(
        default=5.0, ge=0.0, description="Distance from a bound that counts as borderline"
    )
    near_boundary_mode: Literal["units", "percent"] = Field(
        default="units",
        description="Read the margin as vital units, or as a percentage of the bound",
    )
    dose_grace_period_minutes: int = Field(
        default=60, ge=0, description="Minutes a due dose stays Pending before it reads as Missed"
    )
    adherence_window_days: int = Field(
        default=7, gt=0, description="Length of the rolling adherence window"
    )
    timezone: str = Field(default="UTC", description="IANA zone dose times are expressed in")
    default_ranges: dict[VitalType, ThresholdRange] = Field(
        default_factory=lambda: dict(DEFAULT_RANGES)
    )
    plausible_ranges: dict[VitalType, ThresholdRange] = Field(
        default_factory=lambda: dict(PLAUSIBLE_RANGES),
        description="Entry limits per vital; vitals left out are only checked for positivity",
    )

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @model_validator(mode="after")
    def defaults_cover_every_vital(self) -> "EngineConfig":
        missing = [v.value for v in VitalType if v not in self.default_ranges]
        if missing:
            raise ValueError(f"default_ranges missing vitals: {', '.join(missing)}")
        return self

    @field_validator("plausible_ranges")
    @classmethod
    def plausible_ranges_are_closed(
        cls, v: dict[VitalType, ThresholdRange]
    ) -> dict[VitalType, ThresholdRange]:
        open_ended = [t.value for t, r in v.items() if r.min_value is None or r.max_value is None]
        if open_ended:
            raise ValueError(f"plausible_ranges need both bounds: {', '.join(open_ended)}")
        return v

    def critical_multiplier_for(self, vital_type: VitalType) -> float:
        if vital_type in self.strict_critical_vitals:
            return self.strict_critical_multiplier
        return self.critical_multiplier

    def margin_for(self, bound: float) -> float:
        """Borderline distance from `bound` in vital units."""
        if self.near_boundary_mode == "percent":
            return abs(bound) * self.near_boundary_margin / 100
        return self.near_boundary_margin

    @property
    def grace_period(self) -> timedelta:
        return timedelta(minutes=self.dose_grace_period_minutes)

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    format: Literal["json", "console"] = Field(default="json", description="Logging format")


class AppConfig(BaseModel):
    """Main application configuration combining all subsystems."""

    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    engine: EngineConfig = Field(default_factory=EngineConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def debug_only_in_dev(self) -> "AppConfig":
        """Ensure debug mode is only allowed in development environment."""
        if self.debug and self.environment != "development":
            raise ValueError("debug mode is only allowed in development environment")
        return self


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables with validation."""

    def _env_to_literal(val: str) -> Literal["development", "staging", "production"]:
        v = val.strip().lower()
        if v in {"dev", "development"}:
            return "development"
        if v in {"stage", "staging"}:
            return "staging"
        return "production"

    def _level_to_literal(val: str) -> Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
        v = val.strip().upper()
        return cast(
            Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            v if v in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} else "INFO",
        )

    def _margin_mode(val: str) -> Literal["units", "percent"]:
        return "percent" if val.strip().lower() in {"percent", "pct", "%"} else "units"

    environment = _env_to_literal(os.getenv("ENVIRONMENT", "development"))
    debug = environment == "development"

    engine_config = EngineConfig(
        strict_critical_multiplier=float(os.getenv("STRICT_CRITICAL_MULTIPLIER", "1.15")),
        critical_multiplier=float(os.getenv("CRITICAL_MULTIPLIER", "1.3")),
        near_boundary_margin=float(os.getenv("NEAR_BOUNDARY_MARGIN", "5.0")),
        near_boundary_mode=_margin_mode(os.getenv("NEAR_BOUNDARY_MODE", "units")),
        dose_grace_period_minutes=int(os.getenv("DOSE_GRACE_PERIOD_MINUTES", "60")),
        adherence_window_days=int(os.getenv("ADHERENCE_WINDOW_DAYS", "7")),
        timezone=os.getenv("ENGINE_TIMEZONE", "UTC"),
    )

    logging_config = LoggingConfig(
        level=_level_to_literal(os.getenv("LOG_LEVEL", "INFO")),
        format="console" if debug else "json",
    )

    return AppConfig(
        environment=environment,
        debug=debug,
        engine=engine_config,
        logging=logging_config,
    )


@lru_cache
def get_config() -> AppConfig:
    """Get cached application configuration."""
    return load_config_from_env()
