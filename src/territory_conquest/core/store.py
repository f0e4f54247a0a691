"""In-memory territory persistence with JSON snapshots."""

import json
import logging
from pathlib import Path
from typing import Iterable, Optional, Protocol

from territory_conquest.core.conquest import validate_territory
from territory_conquest.models import ConquerResult, Invasion, ReconcileResult, Territory

logger = logging.getLogger(__name__)


class TerritoryStore(Protocol):
    """What the engine needs from a persistence layer."""

    def get(self, territory_id: str) -> Optional[Territory]: ...

    def put(self, territory: Territory) -> None: ...

    def delete(self, territory_id: str) -> bool: ...

    def bulk_put(self, territories: Iterable[Territory]) -> None: ...


class InMemoryTerritoryStore:
    """Dict-backed store. ``apply`` commits a whole conquest in one step."""

    def __init__(self, territories: Iterable[Territory] = (), invasions: Iterable[Invasion] = ()):
        self._territories: dict[str, Territory] = {}
        self._invasions: list[Invasion] = list(invasions)
        self.bulk_put(territories)

    def __len__(self) -> int:
        return len(self._territories)

    def get(self, territory_id: str) -> Optional[Territory]:
        return self._territories.get(territory_id)

    def put(self, territory: Territory) -> None:
        validate_territory(territory)
        self._territories[territory.id] = territory

    def delete(self, territory_id: str) -> bool:
        return self._territories.pop(territory_id, None) is not None

    def bulk_put(self, territories: Iterable[Territory]) -> None:
        territories = list(territories)
        for t in territories:
            validate_territory(t)
        for t in territories:
            self._territories[t.id] = t

    def all(self) -> list[Territory]:
        """All territories, most recently claimed first."""
        return sorted(self._territories.values(), key=lambda t: t.claimed_at, reverse=True)

    def by_owner(self, owner_id: str) -> list[Territory]:
        return [t for t in self.all() if t.owner_id == owner_id]

    def total_area(self, owner_id: str) -> float:
        return sum(t.area for t in self.by_owner(owner_id))

    def invasions(self, user_id: Optional[str] = None) -> list[Invasion]:
        """Invasions suffered by ``user_id`` (all when None), newest first."""
        items = [i for i in self._invasions if user_id is None or i.invaded_user_id == user_id]
        return sorted(items, key=lambda i: i.created_at, reverse=True)

    def apply(self, result: ConquerResult | ReconcileResult) -> None:
        """Commit a resolver result. Validates everything before changing anything."""
        upserts = list(result.modified_territories)
        if isinstance(result, ConquerResult):
            upserts.append(result.new_territory)
        for t in upserts:
            validate_territory(t)

        updated = dict(self._territories)
        for territory_id in result.deleted_territory_ids:
            updated.pop(territory_id, None)
        for t in upserts:
            updated[t.id] = t
        self._territories = updated
        self._invasions.extend(result.invasions)
        logger.info(
            "Applied result: %d upserted, %d deleted, %d invasions",
            len(upserts), len(result.deleted_territory_ids), len(result.invasions),
        )

    def save_json(self, path: str | Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "territories": [t.model_dump(mode="json") for t in self.all()],
            "invasions": [i.model_dump(mode="json") for i in self._invasions],
        }
        with open(path, "w") as f:
            json.dump(data, f, indent=2)
        logger.info("Saved %d territories to %s", len(self._territories), path)
        return path

    @classmethod
    def load_json(cls, path: str | Path) -> "InMemoryTerritoryStore":
        with open(path) as f:
            data = json.load(f)
        return cls(
            territories=[Territory.model_validate(t) for t in data.get("territories", [])],
            invasions=[Invasion.model_validate(i) for i in data.get("invasions", [])],
        )
