"""Mapping between loosely-typed storage rows and Territory models.

Rows come from a remote store with snake_case columns, JSON-encoded
``center``/``polygon`` columns and ``claimed_at`` as either an ISO string or
epoch milliseconds. A row that does not map cleanly produces a
``MappingError`` instead of a Territory with made-up defaults.
"""

import json
import logging
import math
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from pydantic import BaseModel, Field, ValidationError, ValidationInfo, field_validator

from territory_conquest.models import ClaimEvent, Coordinate, LngLat, MappingError, Territory

logger = logging.getLogger(__name__)


def _decode_json(v: Any) -> Any:
    if isinstance(v, (str, bytes)):
        try:
            return json.loads(v)
        except json.JSONDecodeError as e:
            raise ValueError(f"invalid JSON: {e}") from e
    return v


def _to_epoch_ms(v: Any) -> Any:
    if isinstance(v, datetime):
        dt = v if v.tzinfo else v.replace(tzinfo=timezone.utc)
        return int(dt.timestamp() * 1000)
    if isinstance(v, str):
        s = v.strip()
        if s.lstrip("-").isdigit():
            return int(s)
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            return _to_epoch_ms(datetime.fromisoformat(s))
        except ValueError as e:
            raise ValueError(f"unparseable timestamp {v!r}") from e
    if isinstance(v, float) and math.isfinite(v):
        return int(v)
    return v


class TerritoryRecord(BaseModel):
    id: str = Field(min_length=1)
    name: Optional[str] = None
    owner_id: str = Field(min_length=1)
    owner_name: Optional[str] = None
    activity_id: Optional[str] = None
    claimed_at: int
    area: float = Field(ge=0, allow_inf_nan=False)
    perimeter: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    center: Coordinate
    polygon: list[LngLat] = Field(min_length=3)
    holes: list[list[LngLat]] = Field(default_factory=list)
    history: list[ClaimEvent] = Field(default_factory=list)

    @field_validator("center", "polygon", "holes", "history", mode="before")
    @classmethod
    def decode_json_columns(cls, v: Any, info: ValidationInfo) -> Any:
        v = _decode_json(v)
        if v is None and info.field_name in ("holes", "history"):
            return []
        return v

    @field_validator("claimed_at", mode="before")
    @classmethod
    def parse_timestamp(cls, v: Any) -> Any:
        return _to_epoch_ms(v)

    @field_validator("center")
    @classmethod
    def center_must_be_finite(cls, v: Coordinate) -> Coordinate:
        if not (math.isfinite(v.lat) and math.isfinite(v.lng)):
            raise ValueError("center must have finite lat/lng")
        return v

    def to_territory(self) -> Territory:
        return Territory(
            id=self.id,
            name=self.name or "",
            owner_id=self.owner_id,
            owner_name=self.owner_name,
            activity_id=self.activity_id or "",
            claimed_at=self.claimed_at,
            area=self.area,
            perimeter=self.perimeter or 0.0,
            center=self.center,
            polygon=self.polygon,
            holes=self.holes,
            history=self.history,
        )


def _describe(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        loc = ".".join(str(x) for x in err["loc"]) or "record"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


def map_territory_record(row: Any) -> Territory | MappingError:
    """Map one storage row to a Territory, or a MappingError saying why not."""
    if not isinstance(row, Mapping):
        return MappingError(reason=f"expected a mapping, got {type(row).__name__}")
    raw_id = row.get("id")
    record_id = str(raw_id) if raw_id is not None else None
    try:
        record = TerritoryRecord.model_validate(dict(row))
    except ValidationError as e:
        reason = _describe(e)
        logger.warning("Invalid territory record %s: %s", record_id, reason)
        return MappingError(record_id=record_id, reason=reason)
    return record.to_territory()


def map_territory_records(rows: Iterable[Any]) -> tuple[list[Territory], list[MappingError]]:
    """Split rows into mapped territories and mapping errors, keeping order."""
    territories: list[Territory] = []
    errors: list[MappingError] = []
    for row in rows:
        mapped = map_territory_record(row)
        if isinstance(mapped, MappingError):
            errors.append(mapped)
        else:
            territories.append(mapped)
    return territories, errors


def territory_to_record(territory: Territory) -> dict:
    """Storage row for an upsert."""
    return {
        "id": territory.id,
        "owner_id": territory.owner_id,
        "owner_name": territory.owner_name,
        "activity_id": territory.activity_id,
        "name": territory.name or None,
        "claimed_at": datetime.fromtimestamp(territory.claimed_at / 1000, tz=timezone.utc).isoformat(),
        "area": territory.area,
        "perimeter": territory.perimeter,
        "center": {"lat": territory.center.lat, "lng": territory.center.lng},
        "polygon": [[lng, lat] for lng, lat in territory.polygon],
        "holes": [[[lng, lat] for lng, lat in hole] for hole in territory.holes],
        "history": [h.model_dump() for h in territory.history],
    }
