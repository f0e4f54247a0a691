"""Path geometry: distance, polygon area/perimeter, loop closure, territory creation."""

import logging
import math
import time
import uuid
from typing import Optional, Sequence

import numpy as np
from pydantic import BaseModel
from shapely import make_valid
from shapely.geometry import Polygon
from shapely.geometry.base import BaseGeometry
from shapely.geometry.polygon import orient

from territory_conquest.config import GeometryConfig
from territory_conquest.core.geodesy import (
    METERS_PER_DEGREE,
    LocalProjection,
    haversine_m,
    is_finite_point,
)
from territory_conquest.models import ClaimEvent, Coordinate, LngLat, Territory

logger = logging.getLogger(__name__)

# Below this (m²) a ring is treated as having no extent
_ZERO_AREA_M2 = 1e-6


class LoopClosure(BaseModel):
    is_closed: bool
    distance_m: float


def path_distance(path: Sequence, config: Optional[GeometryConfig] = None) -> float:
    """Sum of consecutive great-circle distances, skipping non-finite pairs
    and single jumps at or above ``max_path_segment_m``."""
    config = config or GeometryConfig()
    if len(path) < 2:
        return 0.0
    total = 0.0
    for prev, curr in zip(path, path[1:]):
        if prev is None or curr is None:
            continue
        if not (is_finite_point(prev.lat, prev.lng) and is_finite_point(curr.lat, curr.lng)):
            continue
        d = haversine_m(prev.lat, prev.lng, curr.lat, curr.lng)
        if 0 < d < config.max_path_segment_m:
            total += d
    return total


def clean_ring(points: Sequence) -> list[LngLat]:
    """(lng, lat) ring from points or (lng, lat) pairs.

    Drops non-finite vertices, consecutive duplicates and an explicit
    closing vertex.
    """
    ring: list[LngLat] = []
    for p in points:
        if p is None:
            continue
        if isinstance(p, (tuple, list)):
            lng, lat = p[0], p[1]
        else:
            lng, lat = p.lng, p.lat
        if not is_finite_point(lat, lng):
            continue
        pt = (float(lng), float(lat))
        if ring and ring[-1] == pt:
            continue
        ring.append(pt)
    if len(ring) > 1 and ring[0] == ring[-1]:
        ring.pop()
    return ring


def _shoelace(xy: np.ndarray) -> float:
    x, y = xy[:, 0], xy[:, 1]
    return 0.5 * float(np.dot(x, np.roll(y, -1)) - np.dot(np.roll(x, -1), y))


def ring_area_m2(ring: Sequence[LngLat], projection: Optional[LocalProjection] = None,
                 meters_per_degree: float = METERS_PER_DEGREE) -> float:
    """Unsigned planar area of a (lng, lat) ring, cos-lat corrected."""
    ring = clean_ring(ring)
    if len(ring) < 3:
        return 0.0
    projection = projection or LocalProjection.for_ring(ring, meters_per_degree)
    area = abs(_shoelace(projection.to_plane_array(ring)))
    return area if area > _ZERO_AREA_M2 else 0.0


def ring_perimeter_m(ring: Sequence[LngLat], projection: Optional[LocalProjection] = None,
                     meters_per_degree: float = METERS_PER_DEGREE) -> float:
    """Closed-ring perimeter on the cos-lat corrected plane."""
    ring = clean_ring(ring)
    if len(ring) < 2:
        return 0.0
    projection = projection or LocalProjection.for_ring(ring, meters_per_degree)
    xy = projection.to_plane_array(ring)
    edges = np.roll(xy, -1, axis=0) - xy
    return float(np.hypot(edges[:, 0], edges[:, 1]).sum())


def polygon_area(path: Sequence, config: Optional[GeometryConfig] = None) -> float:
    """Area in m² enclosed by a path treated as a closed ring."""
    config = config or GeometryConfig()
    return ring_area_m2(clean_ring(path), meters_per_degree=config.meters_per_degree)


def polygon_perimeter(path: Sequence, config: Optional[GeometryConfig] = None) -> float:
    config = config or GeometryConfig()
    return ring_perimeter_m(clean_ring(path), meters_per_degree=config.meters_per_degree)


def territory_area(polygon: Sequence[LngLat], holes: Sequence[Sequence[LngLat]] = (),
                   meters_per_degree: float = METERS_PER_DEGREE) -> float:
    """Outer ring area minus hole areas, all on the outer ring's projection."""
    ring = clean_ring(polygon)
    if len(ring) < 3:
        return 0.0
    projection = LocalProjection.for_ring(ring, meters_per_degree)
    area = ring_area_m2(ring, projection)
    for hole in holes:
        area -= ring_area_m2(hole, projection)
    return max(0.0, area)


def check_loop_closure(path: Sequence, config: Optional[GeometryConfig] = None) -> LoopClosure:
    """A loop is closed when the path ends near where it started and is long
    enough (in points and meters) to enclose something."""
    config = config or GeometryConfig()
    points = [p for p in path if p is not None and is_finite_point(p.lat, p.lng)]
    if len(points) < config.min_loop_points:
        return LoopClosure(is_closed=False, distance_m=math.inf)

    start, end = points[0], points[-1]
    gap = haversine_m(start.lat, start.lng, end.lat, end.lng)
    long_enough = path_distance(points, config) >= config.min_loop_length_m
    return LoopClosure(
        is_closed=long_enough and gap <= config.loop_closure_tolerance_m,
        distance_m=gap,
    )


def polygon_pieces(geom: Optional[BaseGeometry]) -> list[Polygon]:
    """Every non-empty Polygon inside any (multi/collection) geometry, largest first."""
    if geom is None or geom.is_empty:
        return []
    if geom.geom_type == "Polygon":
        return [geom]
    pieces = [p for part in getattr(geom, "geoms", ()) for p in polygon_pieces(part)]
    return sorted(pieces, key=lambda p: p.area, reverse=True)


def largest_polygon(geom: Optional[BaseGeometry]) -> Optional[Polygon]:
    """Largest Polygon inside any (multi/collection) geometry, or None."""
    pieces = polygon_pieces(geom)
    return pieces[0] if pieces else None


def to_plane_polygon(polygon: Sequence[LngLat], holes: Sequence[Sequence[LngLat]],
                     projection: LocalProjection) -> Optional[Polygon]:
    """Shapely polygon on the projection's plane; repaired if self-intersecting."""
    ring = clean_ring(polygon)
    if len(ring) < 3:
        return None
    interiors = [projection.to_plane_array(h) for h in (clean_ring(h) for h in holes) if len(h) >= 3]
    shape = Polygon(projection.to_plane_array(ring), interiors)
    if not shape.is_valid:
        shape = largest_polygon(make_valid(shape))
    if shape is None or shape.is_empty:
        return None
    return orient(shape, sign=1.0)


def from_plane_polygon(shape: Polygon, projection: LocalProjection) -> tuple[list[LngLat], list[list[LngLat]]]:
    """(outer ring, holes) in (lng, lat), without closing vertices."""
    outer = clean_ring(projection.to_lnglat_ring(shape.exterior.coords))
    holes = [clean_ring(projection.to_lnglat_ring(r.coords)) for r in shape.interiors]
    return outer, [h for h in holes if len(h) >= 3]


def polygon_center(polygon: Sequence[LngLat], holes: Sequence[Sequence[LngLat]] = (),
                   fallback: Sequence = (),
                   meters_per_degree: float = METERS_PER_DEGREE) -> Optional[Coordinate]:
    """Area centroid of the polygon, or the mean of ``fallback`` points
    (or of the ring) when the centroid is degenerate."""
    ring = clean_ring(polygon)
    if len(ring) >= 3:
        projection = LocalProjection.for_ring(ring, meters_per_degree)
        shape = to_plane_polygon(ring, holes, projection)
        if shape is not None and shape.area > _ZERO_AREA_M2:
            c = shape.centroid
            lng, lat = projection.to_lnglat(c.x, c.y)
            if math.isfinite(lat) and math.isfinite(lng):
                return Coordinate(lat=lat, lng=lng)

    pts = clean_ring(fallback) or ring
    if not pts:
        return None
    arr = np.asarray(pts, dtype=float)
    return Coordinate(lat=float(arr[:, 1].mean()), lng=float(arr[:, 0].mean()))


def process_territory(
    path: Sequence,
    owner_id: str,
    activity_id: str,
    config: Optional[GeometryConfig] = None,
    now_ms: Optional[int] = None,
    territory_id: Optional[str] = None,
) -> Optional[Territory]:
    """Turn a recorded path into a Territory, or None if it is not a claimable loop."""
    config = config or GeometryConfig()
    if not check_loop_closure(path, config).is_closed:
        return None

    # Area is measured after repair: a figure-eight nets to ~0 under plain shoelace
    ring = clean_ring(path)
    if len(ring) < 3:
        return None
    projection = LocalProjection.for_ring(ring, config.meters_per_degree)
    shape = to_plane_polygon(ring, (), projection)
    if shape is None:
        return None

    outer, holes = from_plane_polygon(shape, projection)
    area = territory_area(outer, holes, config.meters_per_degree)
    if area < config.min_territory_area_m2 or area <= 0:
        logger.debug("Loop too small to claim: %.1fm²", area)
        return None

    center = polygon_center(outer, holes, fallback=ring, meters_per_degree=config.meters_per_degree)
    if center is None:
        return None

    claimed_at = now_ms if now_ms is not None else int(time.time() * 1000)
    return Territory(
        id=territory_id or str(uuid.uuid4()),
        owner_id=owner_id,
        activity_id=activity_id,
        claimed_at=claimed_at,
        area=area,
        perimeter=ring_perimeter_m(outer, meters_per_degree=config.meters_per_degree),
        center=center,
        polygon=outer,
        holes=holes,
        history=[ClaimEvent(claimed_by=owner_id, claimed_at=claimed_at, activity_id=activity_id)],
    )
