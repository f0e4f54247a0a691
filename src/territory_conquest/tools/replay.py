"""Replay tool: replay_gpx."""

import logging
from pathlib import Path

import gpxpy.gpx
from mcp.server.fastmcp import FastMCP
from mcp.types import ToolAnnotations

from ..core.gpx import GpxReplaySource
from ..models import ActivityType
from ..state import EngineState
from ._prereqs import require_state
from .recording import outcome_report

logger = logging.getLogger(__name__)


def register_replay_tools(mcp: FastMCP, engine: EngineState):

    @mcp.tool(annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=True))
    def replay_gpx(
        path: str,
        owner_id: str,
        activity_type: str = "WALK",
        username: str | None = None,
        conquering_enabled: bool | None = None,
    ) -> str:
        """Record a GPX track as if it were walked live, then stop and claim.

        Every track point goes through the same conditioning as live fixes.
        **Requires:** no recording in progress.

        Args:
            path: Path to a .gpx file.
            owner_id: User the activity belongs to.
            activity_type: 'WALK', 'RUN' or 'RIDE'.
            username: Display name recorded on invasions.
            conquering_enabled: Override event mode for this claim.
        """
        try:
            require_state(engine, idle=True)
            activity = ActivityType(activity_type.upper())
        except ValueError as e:
            return f"Error: {e}"

        if not Path(path).exists():
            return f"Error: GPX file not found at {path}"
        try:
            source = GpxReplaySource.from_file(path)
        except gpxpy.gpx.GPXException as e:
            return f"Error: Could not parse GPX file: {e}"
        if not source.fixes:
            return f"Error: No track points in {path}"

        session = engine.session
        session.fix_source = source
        try:
            session.start(activity)
            delivered = source.replay()
            logger.info("Replayed %d fixes from %s, %d accepted", delivered, path, len(session.path))
            outcome = engine.finish_recording(owner_id, username, conquering_enabled)
        except ValueError as e:
            return f"Error: {e}"
        finally:
            session.reset()
            session.fix_source = None
        return outcome_report(outcome)
