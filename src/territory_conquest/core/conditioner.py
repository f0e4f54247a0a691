"""GPS fix conditioning: plausibility gates, Kalman smoothing and distance accrual.

``condition(state, raw_fix, activity_type)`` is a pure function. It returns
the next ``ConditionerState`` and either the accepted ``TrackedPoint`` or
``None``. Gates run in this order:

1. accuracy ceiling
2. device-reported speed ceiling
3. implied speed against the last accepted point
4. per-axis Kalman smoothing (lat and lng, in degrees)
5. stillness suppression
6. minimum step and distance accrual

A fix dropped by gates 1-3 (or one that does not parse) leaves the state
untouched. Fixes dropped by gates 5-6 still feed the Kalman filter and the
stillness window, so the estimate keeps converging while the user stands
still, but they never reach the path or the running distance.
"""

import logging
import math
from typing import Any, Optional

import numpy as np
from pydantic import BaseModel, ConfigDict, ValidationError

from territory_conquest.config import ConditionerConfig
from territory_conquest.core.geodesy import haversine_array_m, haversine_m
from territory_conquest.models import ActivityType, GpsFix, TrackedPoint

logger = logging.getLogger(__name__)


class KalmanAxis(BaseModel):
    """Scalar Kalman filter state for one coordinate axis (degrees, degrees²)."""

    model_config = ConfigDict(frozen=True)

    estimate: float
    variance: float

    @classmethod
    def initial(cls, measurement: float, sigma_deg: float) -> "KalmanAxis":
        return cls(estimate=measurement, variance=sigma_deg * sigma_deg)

    def step(self, measurement: float, sigma_deg: float, process_variance: float) -> "KalmanAxis":
        predicted = self.variance + process_variance
        r = sigma_deg * sigma_deg
        gain = predicted / (predicted + r) if predicted + r > 0 else 1.0
        return KalmanAxis(
            estimate=self.estimate + gain * (measurement - self.estimate),
            variance=(1 - gain) * predicted,
        )


class RecentPosition(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp_ms: int
    lat: float
    lng: float


class ConditionerState(BaseModel):
    """Everything the conditioner remembers between fixes."""

    model_config = ConfigDict(frozen=True)

    lat_filter: Optional[KalmanAxis] = None
    lng_filter: Optional[KalmanAxis] = None
    last_filter_ms: Optional[int] = None
    last_point: Optional[TrackedPoint] = None
    recent: tuple[RecentPosition, ...] = ()
    running_distance_m: float = 0.0
    accepted_count: int = 0


def _coerce_fix(raw: Any) -> Optional[GpsFix]:
    """Turn raw input into a GpsFix with finite coordinates, or None."""
    if raw is None:
        return None
    if isinstance(raw, GpsFix):
        fix = raw
    else:
        try:
            fix = GpsFix.model_validate(raw)
        except ValidationError:
            return None
    if not (math.isfinite(fix.lat) and math.isfinite(fix.lng)):
        return None
    if not (-90 <= fix.lat <= 90 and -180 <= fix.lng <= 180):
        return None
    updates = {}
    # Negative or non-finite speed/accuracy means "unknown" on most platforms
    if fix.speed_mps is not None and not (math.isfinite(fix.speed_mps) and fix.speed_mps >= 0):
        updates["speed_mps"] = None
    if fix.accuracy_m is not None and not (math.isfinite(fix.accuracy_m) and fix.accuracy_m >= 0):
        updates["accuracy_m"] = None
    return fix.model_copy(update=updates) if updates else fix


def _is_still(window: tuple[RecentPosition, ...], threshold_m: float) -> bool:
    if len(window) < 2:
        return False
    lats = np.array([p.lat for p in window])
    lngs = np.array([p.lng for p in window])
    # max pairwise displacement inside the window
    d = haversine_array_m(lats[:, None], lngs[:, None], lats[None, :], lngs[None, :])
    return float(np.nanmax(d)) < threshold_m


def min_step_for(accuracy_m: float, config: ConditionerConfig) -> float:
    """Minimum distance from the last accepted point, scaled up for poor accuracy."""
    if accuracy_m > config.min_step_accuracy_threshold_m:
        return max(config.min_step_m, accuracy_m * config.min_step_accuracy_factor)
    return config.min_step_m


def condition(
    state: ConditionerState,
    raw_fix: Any,
    activity_type: ActivityType,
    config: Optional[ConditionerConfig] = None,
) -> tuple[ConditionerState, Optional[TrackedPoint]]:
    """Run one raw fix through every gate. Never raises on bad input."""
    config = config or ConditionerConfig()
    fix = _coerce_fix(raw_fix)
    if fix is None:
        logger.debug("Dropped malformed fix: %r", raw_fix)
        return state, None

    limits = config.limits_for(activity_type)

    # 1. Accuracy gate
    if fix.accuracy_m is not None and fix.accuracy_m > config.max_accuracy_m:
        logger.debug("Dropped fix: accuracy %.1fm > %.1fm", fix.accuracy_m, config.max_accuracy_m)
        return state, None
    accuracy = fix.accuracy_m if fix.accuracy_m is not None else config.default_accuracy_m

    # 2. Device-reported speed
    if fix.speed_mps is not None and fix.speed_mps > limits.device_speed_max_mps:
        logger.debug(
            "Dropped fix: device speed %.2fm/s too fast for %s", fix.speed_mps, activity_type
        )
        return state, None

    # 3. Implied speed against the last accepted point
    last = state.last_point
    if last is not None:
        elapsed_s = (fix.timestamp_ms - last.timestamp_ms) / 1000
        if 0 < elapsed_s < config.implied_speed_max_gap_s:
            implied = haversine_m(last.lat, last.lng, fix.lat, fix.lng) / elapsed_s
            if implied > limits.implied_speed_max_mps:
                logger.debug("Dropped fix: implied speed %.2fm/s (GPS spike)", implied)
                return state, None

    # 4. Kalman smoothing
    sigma_deg = accuracy / config.meters_per_degree
    if state.lat_filter is None or state.lng_filter is None or state.last_filter_ms is None:
        lat_filter = KalmanAxis.initial(fix.lat, sigma_deg)
        lng_filter = KalmanAxis.initial(fix.lng, sigma_deg)
    else:
        dt = max(config.min_filter_dt_s, (fix.timestamp_ms - state.last_filter_ms) / 1000)
        process_sigma = (limits.expected_speed_mps / config.meters_per_degree) * math.sqrt(dt)
        process_variance = process_sigma * process_sigma
        lat_filter = state.lat_filter.step(fix.lat, sigma_deg, process_variance)
        lng_filter = state.lng_filter.step(fix.lng, sigma_deg, process_variance)
    lat, lng = lat_filter.estimate, lng_filter.estimate

    # 5. Stillness window (fix time, not wall time). Entries stamped after this
    # fix are evicted and the size is capped, so repeated or backwards
    # timestamps cannot grow it.
    kept = [
        p for p in state.recent
        if 0 <= fix.timestamp_ms - p.timestamp_ms < config.stillness_window_ms
    ][-(config.stillness_window_max_points - 1):]
    window = tuple(kept) + (RecentPosition(timestamp_ms=fix.timestamp_ms, lat=lat, lng=lng),)

    smoothed = state.model_copy(update={
        "lat_filter": lat_filter,
        "lng_filter": lng_filter,
        "last_filter_ms": fix.timestamp_ms,
        "recent": window,
    })

    clearly_moving = fix.speed_mps is not None and fix.speed_mps >= config.moving_speed_mps
    if not clearly_moving and _is_still(window, config.stillness_threshold_m):
        if fix.speed_mps is None or fix.speed_mps < config.still_speed_mps:
            logger.debug("Dropped fix: stationary")
            return smoothed, None

    # 6. Minimum step + distance accrual
    running = state.running_distance_m
    step_m = 0.0
    if last is not None:
        step_m = haversine_m(last.lat, last.lng, lat, lng)
        if step_m < min_step_for(accuracy, config):
            logger.debug("Dropped fix: step %.2fm below minimum", step_m)
            return smoothed, None
        if 0 < step_m < config.max_segment_m:
            running += step_m
        else:
            logger.debug("Segment of %.0fm not accrued", step_m)

    # 7. Derive speed when the device did not report one
    speed = fix.speed_mps
    if speed is None:
        speed = 0.0
        if last is not None:
            elapsed_s = (fix.timestamp_ms - last.timestamp_ms) / 1000
            if elapsed_s > 0:
                speed = step_m / elapsed_s

    point = TrackedPoint(
        lat=lat,
        lng=lng,
        timestamp_ms=fix.timestamp_ms,
        speed_mps=speed,
        accuracy_m=accuracy,
        altitude_m=fix.altitude_m,
    )
    new_state = smoothed.model_copy(update={
        "last_point": point,
        "running_distance_m": running,
        "accepted_count": state.accepted_count + 1,
    })
    return new_state, point
