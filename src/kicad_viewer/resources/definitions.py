"""MCP resource definitions - 3 resources."""

from __future__ import annotations

import json

from fastmcp import FastMCP

from kicad_viewer.logging_config import get_logger
from kicad_viewer.tools.viewer import ViewerSession

logger = get_logger("resources")


def register_resources(mcp: FastMCP, session: ViewerSession) -> None:
    """Register MCP resources on the server."""
    viewer = session.viewer

    @mcp.resource("kicad://viewer/state")
    def viewer_state_resource() -> str:
        """Current viewer state: document, sheet path, viewport and selection."""
        return json.dumps(session.status().model_dump(), indent=2)

    @mcp.resource("kicad://viewer/diagnostics")
    def viewer_diagnostics_resource() -> str:
        """Non-fatal problems found while loading the open document."""
        return json.dumps(
            [d.model_dump(mode="json") for d in viewer.diagnostics],
            indent=2,
        )

    @mcp.resource("kicad://viewer/selection")
    def viewer_selection_resource() -> str:
        """The selected entity with its properties in display order, or null."""
        if viewer.document is None or viewer.selected is None:
            return json.dumps(None)
        return json.dumps(session.summarize(viewer.selected).model_dump(), indent=2)
