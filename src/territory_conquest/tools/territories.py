"""Territory tools: listing, event mode, reconciliation, save/load."""

import json
import logging
from pathlib import Path

from mcp.server.fastmcp import FastMCP
from mcp.types import ToolAnnotations

from ..core.conquest import reconcile_territories
from ..core.store import InMemoryTerritoryStore
from ..state import EngineState
from ._prereqs import require_state

logger = logging.getLogger(__name__)


def _default_path() -> Path:
    return Path.home() / ".cache" / "territory-conquest" / "territories.json"


def register_territory_tools(mcp: FastMCP, engine: EngineState):

    @mcp.tool(annotations=ToolAnnotations(readOnlyHint=True))
    def list_territories(owner_id: str | None = None) -> str:
        """List claimed territories, most recent first.

        Args:
            owner_id: Only territories owned by this user. Default: everyone's.
        """
        territories = engine.store.by_owner(owner_id) if owner_id else engine.store.all()
        return json.dumps([
            {
                "id": t.id,
                "owner_id": t.owner_id,
                "owner_name": t.owner_name,
                "claimed_at": t.claimed_at,
                "area_m2": round(t.area, 1),
                "center": {"lat": t.center.lat, "lng": t.center.lng},
            }
            for t in territories
        ], indent=2)

    @mcp.tool(annotations=ToolAnnotations(readOnlyHint=True))
    def get_territory(territory_id: str) -> str:
        """Return one territory in full, including polygon and claim history."""
        territory = engine.store.get(territory_id)
        if territory is None:
            return f"Error: Territory '{territory_id}' not found."
        return territory.model_dump_json(indent=2)

    @mcp.tool(annotations=ToolAnnotations(readOnlyHint=True))
    def list_invasions(user_id: str | None = None) -> str:
        """List invasion records, newest first.

        Args:
            user_id: Only invasions suffered by this user. Default: all.
        """
        return json.dumps(
            [i.model_dump(mode="json") for i in engine.store.invasions(user_id)], indent=2,
        )

    @mcp.tool(annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=False))
    def set_event_mode(enabled: bool) -> str:
        """Turn event mode on or off.

        While event mode is on, new claims never take ground from others.
        **Next:** reconcile_event once the event ends.
        """
        engine.conquering_enabled = not enabled
        return f"Event mode {'on: conquering disabled' if enabled else 'off: conquering enabled'}."

    @mcp.tool(annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=True))
    def reconcile_event() -> str:
        """Settle overlaps created while conquering was disabled.

        Replays every stored territory in claim order; later claims take
        overlapping ground from earlier ones.
        """
        try:
            require_state(engine, territories=True)
        except ValueError as e:
            return f"Error: {e}"

        result = reconcile_territories(engine.store.all(), engine.config.conquest, engine.clock())
        engine.store.apply(result)
        return (
            f"Reconciled: {len(result.modified_territories)} trimmed, "
            f"{len(result.deleted_territory_ids)} destroyed, "
            f"{result.total_conquered_area:.0f}m² changed hands"
        )

    @mcp.tool(annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=True))
    def save_territories(path: str | None = None) -> str:
        """Save all territories and invasions to a JSON file.

        Args:
            path: Where to save. Default: ~/.cache/territory-conquest/territories.json
        """
        save_path = engine.store.save_json(Path(path) if path else _default_path())
        return f"Territories saved to {save_path}"

    @mcp.tool(annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=True))
    def load_territories(path: str | None = None) -> str:
        """Replace the territory store with a previously saved file.

        Args:
            path: Path to load from. Default: ~/.cache/territory-conquest/territories.json
        """
        load_path = Path(path) if path else _default_path()
        if not load_path.exists():
            return f"Error: Territory file not found at {load_path}"
        try:
            engine.store = InMemoryTerritoryStore.load_json(load_path)
        except (json.JSONDecodeError, ValueError) as e:
            return f"Error: Invalid territory file: {e}"
        logger.info("Territories loaded from %s", load_path)
        return f"Loaded {len(engine.store)} territories from {load_path}"
