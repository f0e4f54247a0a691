"""MCP server for territory-conquest.

Registers all tools and runs via stdio transport.
"""

import json
import os

from mcp.server.fastmcp import FastMCP

from .config import EngineConfig
from .state import EngineState
from .tools.recording import register_recording_tools
from .tools.replay import register_replay_tools
from .tools.status import register_status_tools
from .tools.territories import register_territory_tools

CONFIG_ENV_VAR = "TERRITORY_CONQUEST_CONFIG"


def load_config() -> EngineConfig:
    path = os.environ.get(CONFIG_ENV_VAR)
    return EngineConfig.from_json_file(path) if path else EngineConfig()


# One engine per server process, owned here and handed to each tool group
engine = EngineState(config=load_config())

mcp = FastMCP(
    "territory-conquest",
    instructions=(
        "Record GPS activities, claim the area enclosed by closed loops, "
        "and take overlapping ground from other players' territories"
    ),
)

register_recording_tools(mcp, engine)
register_replay_tools(mcp, engine)
register_territory_tools(mcp, engine)
register_status_tools(mcp, engine)


@mcp.resource("state://engine")
def engine_state() -> str:
    """Current engine summary as JSON."""
    return json.dumps(engine.summary(), indent=2)


def main():
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
