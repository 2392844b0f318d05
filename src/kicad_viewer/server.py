"""FastMCP server creation and tool/resource registration."""

from __future__ import annotations

from fastmcp import FastMCP

from kicad_viewer import __version__
from kicad_viewer.config import KiCadViewerConfig
from kicad_viewer.logging_config import get_logger, setup_logging
from kicad_viewer.resources.definitions import register_resources
from kicad_viewer.tools import viewer
from kicad_viewer.tools.viewer import ViewerSession

logger = get_logger("server")


def create_server(config: KiCadViewerConfig | None = None) -> FastMCP:
    """Create and configure the KiCad viewer MCP server.

    Args:
        config: Server configuration. Uses defaults/env vars if not provided.

    Returns:
        Configured FastMCP server instance ready to run.
    """
    if config is None:
        config = KiCadViewerConfig()

    setup_logging(
        level=config.log_level.value,
        log_file=config.get_log_file_path(),
    )
    logger.info("KiCad Viewer v%s starting", __version__)

    session = ViewerSession(config)

    mcp = FastMCP(
        "KiCad Viewer",
        version=__version__,
    )

    viewer.register_tools(mcp, session)
    register_resources(mcp, session)

    logger.info(
        "Server ready: viewport %dx%d, hit tolerance %.2f/%.2f mm",
        config.viewport_width,
        config.viewport_height,
        config.schematic_hit_tolerance,
        config.board_hit_tolerance,
    )

    return mcp
