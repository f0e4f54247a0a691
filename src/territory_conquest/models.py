"""Pydantic domain models for GPS fixes, territories and conquest results."""

import uuid
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# (lng, lat) in degrees, GeoJSON order
LngLat = tuple[float, float]


class ActivityType(str, Enum):
    WALK = "WALK"
    RUN = "RUN"
    RIDE = "RIDE"


class Coordinate(BaseModel):
    lat: float
    lng: float


class GpsFix(BaseModel):
    """One raw reading from the location source. Untrusted."""

    lat: float
    lng: float
    timestamp_ms: int
    speed_mps: Optional[float] = None
    accuracy_m: Optional[float] = None
    altitude_m: Optional[float] = None


class TrackedPoint(BaseModel):
    """A fix that passed every gate, with smoothed coordinates."""

    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float
    timestamp_ms: int
    speed_mps: float = 0.0
    accuracy_m: float = 10.0
    altitude_m: Optional[float] = None


class ClaimEvent(BaseModel):
    previous_owner_id: Optional[str] = None
    claimed_by: str
    claimed_at: int
    activity_id: str


class Territory(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    owner_id: str
    owner_name: Optional[str] = None
    activity_id: str = ""
    claimed_at: int
    area: float = Field(ge=0)
    perimeter: float = Field(default=0.0, ge=0)
    center: Coordinate
    polygon: list[LngLat]
    holes: list[list[LngLat]] = Field(default_factory=list)
    history: list[ClaimEvent] = Field(default_factory=list)


class Invasion(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    invaded_user_id: str
    invader_user_id: str
    invader_username: Optional[str] = None
    invaded_territory_id: str
    new_territory_id: str
    overlap_area_m2: float = Field(ge=0)
    territory_was_destroyed: bool
    created_at: int


class ConquerResult(BaseModel):
    """Everything a caller must persist after a claim. Inputs are never mutated."""

    new_territory: Territory
    modified_territories: list[Territory] = Field(default_factory=list)
    deleted_territory_ids: list[str] = Field(default_factory=list)
    invasions: list[Invasion] = Field(default_factory=list)
    total_conquered_area: float = 0.0


class ReconcileResult(BaseModel):
    modified_territories: list[Territory] = Field(default_factory=list)
    deleted_territory_ids: list[str] = Field(default_factory=list)
    invasions: list[Invasion] = Field(default_factory=list)
    total_conquered_area: float = 0.0


class MappingError(BaseModel):
    """Why an external record could not be turned into a Territory."""

    record_id: Optional[str] = None
    reason: str


class SessionSnapshot(BaseModel):
    path: list[TrackedPoint] = Field(default_factory=list)
    activity_type: Optional[ActivityType] = None
    start_time_ms: Optional[int] = None
    running_distance_m: float = 0.0


class ActivitySummary(BaseModel):
    activity_id: str
    activity_type: ActivityType
    start_time_ms: int
    end_time_ms: int
    duration_s: int = Field(ge=0)
    distance_m: float = Field(ge=0)
    average_speed_mps: float = Field(ge=0)
    pace_per_km: str


class ActivityOutcome(BaseModel):
    summary: ActivitySummary
    territory: Optional[Territory] = None
    conquest: Optional[ConquerResult] = None
