"""Recording tools: start_recording, record_fix, stop_recording, reset_recording."""

import json
import logging

from mcp.server.fastmcp import FastMCP
from mcp.types import ToolAnnotations

from ..core.activity import format_duration
from ..models import ActivityOutcome, ActivityType, GpsFix
from ..state import EngineState
from ._prereqs import require_state

logger = logging.getLogger(__name__)


def outcome_report(outcome: ActivityOutcome) -> str:
    """JSON report of a finished activity, shared by stop_recording and replay_gpx."""
    s = outcome.summary
    report: dict = {
        "activity_id": s.activity_id,
        "activity_type": s.activity_type.value,
        "distance_km": round(s.distance_m / 1000, 2),
        "duration": format_duration(s.duration_s),
        "pace_per_km": s.pace_per_km,
        "territory": None,
    }
    if outcome.territory is not None:
        t = outcome.territory
        report["territory"] = {
            "id": t.id,
            "area_km2": round(t.area / 1_000_000, 4),
            "perimeter_m": round(t.perimeter, 1),
            "center": {"lat": t.center.lat, "lng": t.center.lng},
        }
    if outcome.conquest is not None:
        c = outcome.conquest
        report["conquest"] = {
            "conquered_km2": round(c.total_conquered_area / 1_000_000, 4),
            "trimmed": [t.id for t in c.modified_territories],
            "destroyed": list(c.deleted_territory_ids),
            "invaded_users": sorted({i.invaded_user_id for i in c.invasions}),
        }
    return json.dumps(report, indent=2)


def register_recording_tools(mcp: FastMCP, engine: EngineState):

    @mcp.tool(annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=False))
    def start_recording(activity_type: str = "WALK") -> str:
        """Start recording an activity. Any recording in progress is discarded.

        **Next:** record_fix for each GPS reading, then stop_recording.

        Args:
            activity_type: 'WALK', 'RUN' or 'RIDE'. Selects speed ceilings and
                smoothing for the incoming fixes.
        """
        try:
            engine.session.start(ActivityType(activity_type.upper()))
        except ValueError:
            return f"Error: Unknown activity type '{activity_type}'. Use WALK, RUN or RIDE."
        return f"Recording started ({engine.session.activity_type.value})."

    @mcp.tool(annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=False))
    def record_fix(
        lat: float,
        lng: float,
        timestamp_ms: int,
        speed_mps: float | None = None,
        accuracy_m: float | None = None,
        altitude_m: float | None = None,
    ) -> str:
        """Feed one GPS fix into the active recording.

        Implausible or redundant fixes are dropped silently; that is normal.
        **Requires:** start_recording first.

        Args:
            lat/lng: Position in degrees.
            timestamp_ms: Fix time, epoch milliseconds.
            speed_mps: Device-reported speed, if any.
            accuracy_m: Reported horizontal accuracy, if any.
            altitude_m: Altitude, if any.
        """
        try:
            require_state(engine, recording=True)
        except ValueError as e:
            return f"Error: {e}"

        point = engine.session.handle_fix(GpsFix(
            lat=lat, lng=lng, timestamp_ms=timestamp_ms,
            speed_mps=speed_mps, accuracy_m=accuracy_m, altitude_m=altitude_m,
        ))
        s = engine.session
        if point is None:
            return f"Fix dropped ({len(s.path)} points, {s.running_distance_m:.0f}m)"
        return f"Point accepted ({len(s.path)} points, {s.running_distance_m:.0f}m)"

    @mcp.tool(annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=True))
    def stop_recording(
        owner_id: str,
        username: str | None = None,
        conquering_enabled: bool | None = None,
    ) -> str:
        """Stop the recording, claim territory if the loop closed, and resolve conquests.

        Trimmed or destroyed rival territories and invasion records are
        committed to the territory store.
        **Requires:** start_recording first.

        Args:
            owner_id: User the activity (and any territory) belongs to.
            username: Display name recorded on invasions.
            conquering_enabled: Override event mode for this claim. Default:
                the engine's current setting (see set_event_mode).
        """
        try:
            outcome = engine.finish_recording(owner_id, username, conquering_enabled)
        except ValueError as e:
            return f"Error: {e}"
        return outcome_report(outcome)

    @mcp.tool(annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=True))
    def reset_recording() -> str:
        """Discard the current recording without saving anything."""
        engine.session.reset()
        return "Recording reset."
