"""Great-circle distance and local planar projection."""

import math
import numpy as np

EARTH_RADIUS_M = 6_371_000.0
# 1 degree latitude ~ 111.32 km
METERS_PER_DEGREE = 111_320.0


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in meters. NaN if any input is non-finite."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlmb = math.radians(lng2 - lng1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    if not math.isfinite(a):
        return math.nan
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(a)))


def haversine_array_m(
    lats1: np.ndarray, lngs1: np.ndarray, lats2: np.ndarray, lngs2: np.ndarray
) -> np.ndarray:
    """Vectorized haversine_m (broadcasts)."""
    phi1 = np.radians(lats1)
    phi2 = np.radians(lats2)
    dphi = phi2 - phi1
    dlmb = np.radians(np.asarray(lngs2) - np.asarray(lngs1))
    a = np.sin(dphi / 2) ** 2 + np.cos(phi1) * np.cos(phi2) * np.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_M * np.arcsin(np.minimum(1.0, np.sqrt(a)))


def is_finite_point(lat, lng) -> bool:
    try:
        return math.isfinite(lat) and math.isfinite(lng)
    except TypeError:
        return False


class LocalProjection:
    """Equirectangular projection of lng/lat degrees onto a local plane (meters).

    Plane coordinate system:
    - X: east (longitude), scaled by cos(origin latitude)
    - Y: north (latitude)
    - origin at (origin_lng, origin_lat)

    Accurate for territory-sized areas; longitude distances shrink toward
    the poles by the cosine factor taken at the origin latitude.
    """

    def __init__(self, origin_lat: float, origin_lng: float,
                 meters_per_degree: float = METERS_PER_DEGREE):
        self.origin_lat = origin_lat
        self.origin_lng = origin_lng
        self.meters_per_degree = meters_per_degree
        self.lng_scale = math.cos(math.radians(origin_lat))

    @classmethod
    def for_ring(cls, ring, meters_per_degree: float = METERS_PER_DEGREE) -> "LocalProjection":
        """Projection centered on the mean vertex of a (lng, lat) ring."""
        arr = np.asarray(ring, dtype=float)
        return cls(float(arr[:, 1].mean()), float(arr[:, 0].mean()), meters_per_degree)

    def to_plane(self, lng: float, lat: float) -> tuple[float, float]:
        x = (lng - self.origin_lng) * self.lng_scale * self.meters_per_degree
        y = (lat - self.origin_lat) * self.meters_per_degree
        return x, y

    def to_plane_array(self, ring) -> np.ndarray:
        """Convert an (N, 2) sequence of (lng, lat) to an (N, 2) array of (x, y)."""
        arr = np.asarray(ring, dtype=float).reshape(-1, 2)
        out = np.empty_like(arr)
        out[:, 0] = (arr[:, 0] - self.origin_lng) * self.lng_scale * self.meters_per_degree
        out[:, 1] = (arr[:, 1] - self.origin_lat) * self.meters_per_degree
        return out

    def to_lnglat(self, x: float, y: float) -> tuple[float, float]:
        scale = self.lng_scale * self.meters_per_degree
        lng = self.origin_lng + (x / scale if scale > 0 else 0.0)
        lat = self.origin_lat + y / self.meters_per_degree
        return lng, lat

    def to_lnglat_ring(self, coords) -> list[tuple[float, float]]:
        return [self.to_lnglat(float(x), float(y)) for x, y in coords]
