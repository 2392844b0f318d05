"""Basic usage example for the KiCad viewer.

Opens a schematic, picks an entity, and walks into a sub-sheet without
going through MCP. For the MCP server, simply run: python -m kicad_viewer
"""

import asyncio
import sys

from kicad_viewer.config import KiCadViewerConfig
from kicad_viewer.document.schematic import SheetInstance
from kicad_viewer.geometry.primitives import Point
from kicad_viewer.providers.local import LocalFileSystem
from kicad_viewer.viewer.viewer import SelectionEvent, Viewer


async def main(path: str):
    # Config can also be set via KICAD_VIEWER_* environment variables
    config = KiCadViewerConfig(log_level="INFO", descend_on_reselect=False)
    viewer = Viewer(config, LocalFileSystem.for_file(path))
    viewer.add_listener(SelectionEvent, lambda e: print(f"selected: {e.item and e.item.kind}"))

    document = await viewer.load(path.rsplit("/", 1)[-1])
    print(f"{document.kind}: {len(document.items)} entities, {len(viewer.diagnostics)} diagnostics")

    # Click in the middle of the viewport
    viewer.pointer_down(viewer.width / 2, viewer.height / 2)

    sheet = next((i for i in document.items if isinstance(i, SheetInstance)), None)
    if sheet is not None:
        level = await viewer.descend(sheet)
        print(f"now showing {level.document.filename} at {level.path}")
        centre = viewer.transform.screen_to_world(Point(x=viewer.width / 2, y=viewer.height / 2))
        print(f"view centre: ({centre.x:.2f}, {centre.y:.2f}) mm")
        viewer.ascend()


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1]))
