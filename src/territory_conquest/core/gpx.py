"""GPX file parsing into replayable GPS fixes."""

import logging
from typing import Callable

import gpxpy

from territory_conquest.models import GpsFix

logger = logging.getLogger(__name__)

# Assumed spacing when a track point carries no timestamp
DEFAULT_FIX_INTERVAL_MS = 1000


def parse_gpx_fixes(filepath: str) -> list[GpsFix]:
    """Read every track point of a GPX file, in file order, as a GpsFix."""
    with open(filepath, "r") as f:
        gpx = gpxpy.parse(f)

    fixes: list[GpsFix] = []
    last_ms = None
    for track in gpx.tracks:
        for segment in track.segments:
            for point in segment.points:
                if point.time is not None:
                    timestamp_ms = int(point.time.timestamp() * 1000)
                elif last_ms is not None:
                    timestamp_ms = last_ms + DEFAULT_FIX_INTERVAL_MS
                else:
                    timestamp_ms = 0
                last_ms = timestamp_ms
                fixes.append(GpsFix(
                    lat=point.latitude,
                    lng=point.longitude,
                    timestamp_ms=timestamp_ms,
                    speed_mps=point.speed,
                    altitude_m=point.elevation,
                ))
    logger.debug("Parsed %d fixes from %s", len(fixes), filepath)
    return fixes


class GpxReplaySource:
    """A fix source that pushes a recorded GPX track to its subscribers on demand."""

    def __init__(self, fixes: list[GpsFix]):
        self.fixes = fixes
        self._callbacks: list[Callable[[GpsFix], None]] = []

    @classmethod
    def from_file(cls, filepath: str) -> "GpxReplaySource":
        return cls(parse_gpx_fixes(filepath))

    @property
    def subscriber_count(self) -> int:
        return len(self._callbacks)

    def subscribe(self, callback: Callable[[GpsFix], None]) -> Callable[[], None]:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def replay(self) -> int:
        """Deliver every fix to current subscribers; returns the number delivered."""
        for fix in self.fixes:
            for callback in list(self._callbacks):
                callback(fix)
        return len(self.fixes)
