"""Tunable thresholds for the conditioner, geometry engine and resolver."""

import json
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, model_validator

from territory_conquest.models import ActivityType


class ActivityLimits(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    device_speed_max_mps: float = Field(gt=0)
    implied_speed_max_mps: float = Field(gt=0)
    expected_speed_mps: float = Field(gt=0)

    @model_validator(mode="after")
    def check_implied_looser_than_device(self) -> "ActivityLimits":
        if self.implied_speed_max_mps < self.device_speed_max_mps:
            raise ValueError(
                f"implied_speed_max_mps ({self.implied_speed_max_mps}) must be >= "
                f"device_speed_max_mps ({self.device_speed_max_mps})"
            )
        return self


def _default_activity_limits() -> dict[ActivityType, ActivityLimits]:
    return {
        ActivityType.WALK: ActivityLimits(
            device_speed_max_mps=7 / 3.6, implied_speed_max_mps=4.0, expected_speed_mps=1.5,
        ),
        ActivityType.RUN: ActivityLimits(
            device_speed_max_mps=25 / 3.6, implied_speed_max_mps=10.0, expected_speed_mps=3.5,
        ),
        ActivityType.RIDE: ActivityLimits(
            device_speed_max_mps=50 / 3.6, implied_speed_max_mps=22.0, expected_speed_mps=7.0,
        ),
    }


class ConditionerConfig(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    max_accuracy_m: float = Field(default=30.0, gt=0)
    default_accuracy_m: float = Field(default=10.0, gt=0)
    meters_per_degree: float = Field(default=111_320.0, gt=0)
    activities: dict[ActivityType, ActivityLimits] = Field(default_factory=_default_activity_limits)
    implied_speed_max_gap_s: float = Field(default=120.0, gt=0)
    stillness_window_ms: int = Field(default=3000, gt=0)
    stillness_window_max_points: int = Field(default=30, ge=2)
    stillness_threshold_m: float = Field(default=3.0, ge=0)
    moving_speed_mps: float = Field(default=0.8, ge=0)
    still_speed_mps: float = Field(default=0.3, ge=0)
    min_step_m: float = Field(default=3.0, ge=0)
    min_step_accuracy_threshold_m: float = Field(default=15.0, ge=0)
    min_step_accuracy_factor: float = Field(default=0.4, ge=0)
    max_segment_m: float = Field(default=500.0, gt=0)
    min_filter_dt_s: float = Field(default=0.1, gt=0)

    @model_validator(mode="after")
    def check_all_activities_present(self) -> "ConditionerConfig":
        missing = [a.value for a in ActivityType if a not in self.activities]
        if missing:
            raise ValueError(f"Missing activity limits for: {', '.join(missing)}")
        return self

    def limits_for(self, activity_type: ActivityType) -> ActivityLimits:
        return self.activities[ActivityType(activity_type)]


class GeometryConfig(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    meters_per_degree: float = Field(default=111_320.0, gt=0)
    max_path_segment_m: float = Field(default=1000.0, gt=0)
    loop_closure_tolerance_m: float = Field(default=50.0, gt=0)
    min_loop_points: int = Field(default=4, ge=3)
    min_loop_length_m: float = Field(default=100.0, ge=0)
    min_territory_area_m2: float = Field(default=10.0, ge=0)


class ConquestConfig(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    meters_per_degree: float = Field(default=111_320.0, gt=0)
    min_overlap_m2: float = Field(default=1.0, ge=0)
    consumed_remainder_m2: float = Field(default=1.0, ge=0)


class EngineConfig(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    conditioner: ConditionerConfig = Field(default_factory=ConditionerConfig)
    geometry: GeometryConfig = Field(default_factory=GeometryConfig)
    conquest: ConquestConfig = Field(default_factory=ConquestConfig)

    @classmethod
    def from_json_file(cls, path: str | Path) -> "EngineConfig":
        """Load a config, with any omitted section or field left at its default."""
        with open(path) as f:
            data = json.load(f)
        return cls.model_validate(data)
