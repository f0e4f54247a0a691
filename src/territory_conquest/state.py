"""Recording session and engine state.

``RecordingSession`` holds the mutable state of one activity recording
(path, running distance, conditioner/Kalman state). It is owned by whoever
drives recording and keeps consuming fixes whether or not anything is
listening. ``EngineState`` bundles a session with a territory store for the
MCP server.
"""

import logging
import time
from typing import Any, Callable, Optional, Protocol

from territory_conquest.config import ConditionerConfig, EngineConfig
from territory_conquest.core.activity import complete_activity
from territory_conquest.core.conditioner import ConditionerState, condition
from territory_conquest.core.store import InMemoryTerritoryStore
from territory_conquest.models import ActivityOutcome, ActivityType, SessionSnapshot, TrackedPoint

logger = logging.getLogger(__name__)

PointListener = Callable[[TrackedPoint], None]


class FixSource(Protocol):
    """Anything that delivers raw fixes (roughly 1 Hz) to a callback."""

    def subscribe(self, callback: Callable[[Any], None]) -> Callable[[], None]: ...


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


class RecordingSession:
    """One active-or-inactive recording session.

    The fix-source subscription lives from ``start`` to ``stop``/``reset``,
    independent of how many listeners are attached.
    """

    def __init__(
        self,
        config: Optional[ConditionerConfig] = None,
        fix_source: Optional[FixSource] = None,
        clock: Callable[[], int] = _wall_clock_ms,
    ):
        self.config = config or ConditionerConfig()
        self.fix_source = fix_source
        self._clock = clock
        self._listeners: list[PointListener] = []
        self._unsubscribe_source: Optional[Callable[[], None]] = None
        self._clear()

    def _clear(self) -> None:
        self._recording = False
        self._activity_type: Optional[ActivityType] = None
        self._start_time_ms: Optional[int] = None
        self._path: list[TrackedPoint] = []
        self._conditioner = ConditionerState()

    def _detach_source(self) -> None:
        if self._unsubscribe_source is not None:
            self._unsubscribe_source()
            self._unsubscribe_source = None

    @property
    def is_recording(self) -> bool:
        return self._recording

    @property
    def activity_type(self) -> Optional[ActivityType]:
        return self._activity_type

    @property
    def start_time_ms(self) -> Optional[int]:
        return self._start_time_ms

    @property
    def path(self) -> list[TrackedPoint]:
        return list(self._path)

    @property
    def running_distance_m(self) -> float:
        return self._conditioner.running_distance_m

    def subscribe(self, listener: PointListener) -> Callable[[], None]:
        """Call ``listener`` with every accepted point. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def start(self, activity_type: ActivityType | str) -> None:
        """Begin recording. A session already in progress is fully reset first."""
        activity_type = ActivityType(activity_type)
        if self._recording or self._unsubscribe_source is not None:
            logger.info("Restarting session: discarding %d recorded points", len(self._path))
            self.reset()

        self._recording = True
        self._activity_type = activity_type
        self._start_time_ms = self._clock()
        if self.fix_source is not None:
            self._unsubscribe_source = self.fix_source.subscribe(self.handle_fix)
        logger.info("Recording started: %s", activity_type.value)

    def handle_fix(self, raw_fix: Any) -> Optional[TrackedPoint]:
        """Feed one raw fix. Returns the accepted point, or None if dropped."""
        if not self._recording or self._activity_type is None:
            return None
        self._conditioner, point = condition(
            self._conditioner, raw_fix, self._activity_type, self.config,
        )
        if point is None:
            return None
        self._path.append(point)
        for listener in list(self._listeners):
            try:
                listener(point)
            except Exception:
                logger.exception("Point listener failed")
        return point

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            path=list(self._path),
            activity_type=self._activity_type,
            start_time_ms=self._start_time_ms,
            running_distance_m=self.running_distance_m,
        )

    def stop(self) -> SessionSnapshot:
        """Stop recording and return what was recorded."""
        result = self.snapshot()
        self._detach_source()
        self._clear()
        logger.info(
            "Recording stopped: %d points, %.0fm", len(result.path), result.running_distance_m,
        )
        return result

    def reset(self) -> None:
        """Discard everything without returning it."""
        self._detach_source()
        self._clear()

    def summary(self) -> dict:
        return {
            "recording": self._recording,
            "activity_type": self._activity_type.value if self._activity_type else None,
            "start_time_ms": self._start_time_ms,
            "points": len(self._path),
            "running_distance_m": round(self.running_distance_m, 1),
            "listeners": len(self._listeners),
        }


class EngineState:
    """Session + territory store + event-mode switch, as driven by the MCP tools."""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        store: Optional[InMemoryTerritoryStore] = None,
        clock: Callable[[], int] = _wall_clock_ms,
    ):
        self.config = config or EngineConfig()
        self.store = store if store is not None else InMemoryTerritoryStore()
        self.clock = clock
        self.session = RecordingSession(self.config.conditioner, clock=clock)
        self.conquering_enabled = True

    def finish_recording(
        self,
        owner_id: str,
        username: Optional[str] = None,
        conquering_enabled: Optional[bool] = None,
    ) -> ActivityOutcome:
        """Run the end-of-activity pipeline, commit it to the store, then stop the session.

        If anything raises, the session keeps recording with its path intact.
        """
        if not self.session.is_recording:
            raise ValueError("No recording in progress. Start one with start_recording.")
        if not owner_id or not owner_id.strip():
            raise ValueError("owner_id is required to finish a recording.")
        enabled = self.conquering_enabled if conquering_enabled is None else conquering_enabled
        outcome = complete_activity(
            self.session.snapshot(),
            owner_id,
            self.store.all(),
            invader_username=username,
            conquering_enabled=enabled,
            config=self.config,
            now_ms=self.clock(),
        )
        if outcome.conquest is not None:
            self.store.apply(outcome.conquest)
        self.session.stop()
        return outcome

    def summary(self) -> dict:
        territories = self.store.all()
        return {
            "session": self.session.summary(),
            "territories": {
                "count": len(territories),
                "owners": len({t.owner_id for t in territories}),
                "total_area_m2": round(sum(t.area for t in territories), 1),
            },
            "invasions": len(self.store.invasions()),
            "conquering_enabled": self.conquering_enabled,
        }
