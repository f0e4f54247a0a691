"""Status tool: get_status."""

import json
from mcp.server.fastmcp import FastMCP
from mcp.types import ToolAnnotations

from ..state import EngineState


def register_status_tools(mcp: FastMCP, engine: EngineState):

    @mcp.tool(annotations=ToolAnnotations(readOnlyHint=True))
    def get_status() -> str:
        """Return a summary of the engine state.

        Shows whether a recording is in progress, how many points it holds,
        how many territories are claimed and whether conquering is enabled.
        """
        return json.dumps(engine.summary(), indent=2)
