"""End-of-recording pipeline: summary, territory, conquest."""

import logging
import time
import uuid
from typing import Iterable, Optional, Sequence

from territory_conquest.config import EngineConfig
from territory_conquest.core.conquest import claim_territory
from territory_conquest.core.geometry import path_distance, process_territory
from territory_conquest.models import (
    ActivityOutcome,
    ActivitySummary,
    SessionSnapshot,
    Territory,
    TrackedPoint,
)

logger = logging.getLogger(__name__)

# Speeds at or above this (m/s) are sensor garbage
MAX_REALISTIC_SPEED_MPS = 100.0


def average_speed(path: Sequence[TrackedPoint]) -> float:
    """Mean of the plausible per-point speeds, 0 for paths under 2 points."""
    if len(path) < 2:
        return 0.0
    speeds = [p.speed_mps for p in path if 0 <= p.speed_mps < MAX_REALISTIC_SPEED_MPS]
    if not speeds:
        return 0.0
    return sum(speeds) / len(speeds)


def format_pace(speed_mps: float) -> str:
    """Pace as M:SS per km."""
    if speed_mps <= 0:
        return "--:--"
    seconds_per_km = 1000 / speed_mps
    minutes = int(seconds_per_km // 60)
    seconds = int(seconds_per_km % 60)
    return f"{minutes}:{seconds:02d}"


def format_duration(seconds: float) -> str:
    """H:MM:SS, or M:SS under an hour."""
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def summarize_activity(
    snapshot: SessionSnapshot,
    activity_id: str,
    end_time_ms: int,
    config: Optional[EngineConfig] = None,
) -> ActivitySummary:
    config = config or EngineConfig()
    if snapshot.activity_type is None:
        raise ValueError("Snapshot has no activity type; was the session started?")
    start = snapshot.start_time_ms if snapshot.start_time_ms is not None else end_time_ms
    speed = average_speed(snapshot.path)
    return ActivitySummary(
        activity_id=activity_id,
        activity_type=snapshot.activity_type,
        start_time_ms=start,
        end_time_ms=end_time_ms,
        duration_s=max(0, round((end_time_ms - start) / 1000)),
        distance_m=path_distance(snapshot.path, config.geometry),
        average_speed_mps=speed,
        pace_per_km=format_pace(speed),
    )


def complete_activity(
    snapshot: SessionSnapshot,
    owner_id: str,
    rivals: Iterable[Territory] = (),
    activity_id: Optional[str] = None,
    invader_username: Optional[str] = None,
    conquering_enabled: bool = True,
    config: Optional[EngineConfig] = None,
    now_ms: Optional[int] = None,
) -> ActivityOutcome:
    """Summarize a stopped session and, if it closed a loop, claim and resolve it.

    Pure: the caller persists ``outcome.conquest`` (which includes the new
    territory).
    """
    config = config or EngineConfig()
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    activity_id = activity_id or str(uuid.uuid4())

    summary = summarize_activity(snapshot, activity_id, now_ms, config)
    territory = process_territory(
        snapshot.path, owner_id, activity_id, config.geometry, now_ms=now_ms,
    )
    if territory is None:
        logger.info("Activity %s did not close a claimable loop", activity_id)
        return ActivityOutcome(summary=summary)

    territory.owner_name = invader_username
    conquest = claim_territory(
        territory, rivals, invader_username, conquering_enabled, config.conquest, now_ms,
    )
    logger.info(
        "Activity %s claimed %.0fm² (%.0fm² conquered)",
        activity_id, territory.area, conquest.total_conquered_area,
    )
    return ActivityOutcome(summary=summary, territory=territory, conquest=conquest)
