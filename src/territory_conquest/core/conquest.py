"""Conquest resolution: what happens to rival territories under a new claim.

The newest claim always keeps the full area it enclosed. Every rival
territory (different owner) that overlaps it loses the overlapping ground:
it is trimmed, or deleted when nothing meaningful is left. Nothing passed
in is mutated; the returned result describes what a caller must persist.
"""

import logging
import math
import time
import uuid
from typing import Iterable, Optional, Sequence

from territory_conquest.config import ConquestConfig
from territory_conquest.core.geodesy import LocalProjection
from territory_conquest.core.geometry import (
    clean_ring,
    from_plane_polygon,
    polygon_center,
    polygon_pieces,
    ring_perimeter_m,
    territory_area,
    to_plane_polygon,
)
from territory_conquest.models import (
    ClaimEvent,
    ConquerResult,
    Invasion,
    LngLat,
    ReconcileResult,
    Territory,
)

logger = logging.getLogger(__name__)


class InvalidTerritoryError(ValueError):
    """Territory data that cannot be resolved or persisted."""


def validate_territory(territory: Territory, role: str = "territory") -> None:
    """Raise InvalidTerritoryError describing every problem found."""
    # getattr: instances built with model_construct() skip field validation
    problems = []
    territory_id = getattr(territory, "id", None)
    if not territory_id:
        problems.append("missing id")
    if not getattr(territory, "owner_id", None):
        problems.append("missing owner")
    center = getattr(territory, "center", None)
    if center is None or not (math.isfinite(center.lat) and math.isfinite(center.lng)):
        problems.append("non-finite center")
    if not getattr(territory, "polygon", None):
        problems.append("empty polygon")
    area = getattr(territory, "area", None)
    if area is None or not math.isfinite(area):
        problems.append("non-finite area")
    if problems:
        raise InvalidTerritoryError(f"Invalid {role} {territory_id!r}: {', '.join(problems)}")


def _bbox(ring: Sequence[LngLat]) -> tuple[float, float, float, float]:
    lngs = [p[0] for p in ring]
    lats = [p[1] for p in ring]
    return min(lngs), min(lats), max(lngs), max(lats)


def _bboxes_intersect(a, b) -> bool:
    return not (a[2] < b[0] or b[2] < a[0] or a[3] < b[1] or b[3] < a[1])


def _now_ms() -> int:
    return int(time.time() * 1000)


def resolve_overlaps(
    new_territory: Territory,
    all_territories: Iterable[Territory],
    invader_username: Optional[str] = None,
    config: Optional[ConquestConfig] = None,
    now_ms: Optional[int] = None,
) -> ConquerResult:
    """Compute the rival trims, deletions and invasions caused by a new claim.

    Raises:
        InvalidTerritoryError: if the new territory or any rival is malformed
            (missing owner, non-finite center, empty polygon). Raised before
            any work is done.
    """
    config = config or ConquestConfig()
    rivals = list(all_territories)
    validate_territory(new_territory, "new territory")
    for rival in rivals:
        validate_territory(rival, "existing territory")

    result = ConquerResult(new_territory=new_territory)

    new_ring = clean_ring(new_territory.polygon)
    if len(new_ring) < 3:
        logger.warning("New territory %s has a degenerate polygon, nothing to conquer", new_territory.id)
        return result

    # One shared plane so intersection areas are comparable across rivals
    projection = LocalProjection.for_ring(new_ring, config.meters_per_degree)
    new_shape = to_plane_polygon(new_ring, new_territory.holes, projection)
    if new_shape is None or new_shape.area <= 0:
        return result
    new_bbox = _bbox(new_ring)
    claimed_at = now_ms if now_ms is not None else _now_ms()

    for rival in rivals:
        if rival.id == new_territory.id or rival.owner_id == new_territory.owner_id:
            continue
        rival_ring = clean_ring(rival.polygon)
        if len(rival_ring) < 3:
            logger.warning("Skipping territory %s: degenerate polygon", rival.id)
            continue
        if not _bboxes_intersect(new_bbox, _bbox(rival_ring)):
            continue

        rival_shape = to_plane_polygon(rival_ring, rival.holes, projection)
        if rival_shape is None:
            continue
        overlap_area = rival_shape.intersection(new_shape).area
        if overlap_area < config.min_overlap_m2:
            continue

        # A claim cutting across a rival can leave several pieces; slivers count as conquered
        kept, slivers_area = [], 0.0
        for piece in polygon_pieces(rival_shape.difference(new_shape)):
            outer, holes = from_plane_polygon(piece, projection)
            area = territory_area(outer, holes, config.meters_per_degree)
            if len(outer) >= 3 and area > config.consumed_remainder_m2:
                kept.append((outer, holes, area))
            else:
                slivers_area += area

        destroyed = not kept
        if destroyed:
            conquered = rival.area if rival.area > 0 else overlap_area
            result.deleted_territory_ids.append(rival.id)
            logger.info("Territory %s of %s destroyed by %s", rival.id, rival.owner_id, new_territory.owner_id)
        else:
            conquered = overlap_area + slivers_area
            claim_event = ClaimEvent(
                previous_owner_id=rival.owner_id,
                claimed_by=new_territory.owner_id,
                claimed_at=claimed_at,
                activity_id=new_territory.activity_id,
            )
            # Largest piece keeps the rival's id, the rest become new territories of the same owner
            for i, (outer, holes, area) in enumerate(kept):
                update = {
                    "polygon": outer,
                    "holes": holes,
                    "area": area,
                    "perimeter": ring_perimeter_m(outer, meters_per_degree=config.meters_per_degree),
                    "center": polygon_center(outer, holes, meters_per_degree=config.meters_per_degree)
                    or rival.center,
                    "history": [h.model_copy() for h in rival.history] + [claim_event.model_copy()],
                }
                if i > 0:
                    update["id"] = str(uuid.uuid4())
                result.modified_territories.append(rival.model_copy(deep=True, update=update))
            logger.info(
                "Territory %s of %s trimmed by %.0fm² (%d piece(s), %.0fm² left)",
                rival.id, rival.owner_id, conquered, len(kept), sum(k[2] for k in kept),
            )

        result.invasions.append(Invasion(
            invaded_user_id=rival.owner_id,
            invader_user_id=new_territory.owner_id,
            invader_username=invader_username,
            invaded_territory_id=rival.id,
            new_territory_id=new_territory.id,
            overlap_area_m2=conquered,
            territory_was_destroyed=destroyed,
            created_at=claimed_at,
        ))
        result.total_conquered_area += conquered

    return result


def claim_territory(
    new_territory: Territory,
    rivals: Iterable[Territory],
    invader_username: Optional[str] = None,
    conquering_enabled: bool = True,
    config: Optional[ConquestConfig] = None,
    now_ms: Optional[int] = None,
) -> ConquerResult:
    """Resolve a claim, or bypass conquering entirely while event mode is on.

    With conquering disabled the claim persists as-is with zero invasions;
    overlaps are settled later by ``reconcile_territories``.
    """
    if not conquering_enabled:
        validate_territory(new_territory, "new territory")
        logger.info("Conquering disabled, territory %s claimed without resolution", new_territory.id)
        return ConquerResult(new_territory=new_territory)
    return resolve_overlaps(new_territory, rivals, invader_username, config, now_ms)


def reconcile_territories(
    territories: Iterable[Territory],
    config: Optional[ConquestConfig] = None,
    now_ms: Optional[int] = None,
) -> ReconcileResult:
    """Replay every territory in claim order through the resolver.

    Used after an event during which conquering was disabled: each claim
    conquers the (already reconciled) claims made before it. Returns the
    net changes against the input set.
    """
    originals = list(territories)
    for t in originals:
        validate_territory(t, "territory")
    ordered = sorted(originals, key=lambda t: (t.claimed_at, t.id))
    by_id = {t.id: t for t in originals}

    current: dict[str, Territory] = {}
    deleted: list[str] = []
    result = ReconcileResult()
    for claim in ordered:
        step = resolve_overlaps(claim, list(current.values()), claim.owner_name, config, now_ms)
        for territory_id in step.deleted_territory_ids:
            current.pop(territory_id, None)
            deleted.append(territory_id)
        for trimmed in step.modified_territories:
            current[trimmed.id] = trimmed
        current[claim.id] = claim
        result.invasions.extend(step.invasions)
        result.total_conquered_area += step.total_conquered_area

    # Split pieces get fresh ids; one that is later destroyed never existed for the caller
    result.deleted_territory_ids = [territory_id for territory_id in deleted if territory_id in by_id]
    result.modified_territories = [
        t for territory_id, t in current.items() if t is not by_id.get(territory_id)
    ]
    logger.info(
        "Reconciled %d territories: %d trimmed, %d destroyed",
        len(originals), len(result.modified_territories), len(deleted),
    )
    return result
