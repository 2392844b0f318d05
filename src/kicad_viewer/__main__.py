"""CLI entry point: python -m kicad_viewer"""

from __future__ import annotations

import argparse
import sys

from kicad_viewer import __version__
from kicad_viewer.config import KiCadViewerConfig, LogLevel, TransportType


def main() -> None:
    parser = argparse.ArgumentParser(
        description="KiCad Viewer - browse KiCad schematics and boards over MCP",
    )
    parser.add_argument(
        "--version", action="version", version=f"kicad-viewer {__version__}",
    )
    parser.add_argument(
        "--transport",
        choices=["stdio", "sse"],
        default=None,
        help="MCP transport (default: stdio)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--sse-host",
        default=None,
        help="SSE server host (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--sse-port",
        type=int,
        default=None,
        help="SSE server port (default: 8766)",
    )
    parser.add_argument(
        "--check",
        metavar="FILE",
        default=None,
        help="Load a .kicad_sch or .kicad_pcb file, print a summary and its diagnostics, and exit",
    )

    args = parser.parse_args()

    if args.check:
        sys.exit(_check_file(args.check))

    # Build config from CLI args + env vars
    overrides = {}
    if args.transport:
        overrides["transport"] = TransportType(args.transport)
    if args.log_level:
        overrides["log_level"] = LogLevel(args.log_level)
    if args.sse_host:
        overrides["sse_host"] = args.sse_host
    if args.sse_port:
        overrides["sse_port"] = args.sse_port

    config = KiCadViewerConfig(**overrides)

    from kicad_viewer.server import create_server
    mcp = create_server(config)

    if config.transport == TransportType.SSE:
        mcp.run(transport="sse", host=config.sse_host, port=config.sse_port)
    else:
        mcp.run(transport="stdio")


def _check_file(path: str) -> int:
    """Load one document and report on it. Returns the process exit code."""
    from kicad_viewer.document.binder import load_document
    from kicad_viewer.geometry.bounds import DocumentGeometry
    from kicad_viewer.logging_config import setup_logging
    from kicad_viewer.models.errors import KiCadViewerError
    from kicad_viewer.utils.summaries import summarize_document
    from kicad_viewer.utils.validation import validate_viewable_path

    # Diagnostics are printed below; keep the binder from repeating them.
    setup_logging("WARNING", overrides={"document.binder": "ERROR"})

    print(f"KiCad Viewer v{__version__}")
    print()

    try:
        p = validate_viewable_path(path)
        result = load_document(p.read_bytes(), p.name)
    except (KiCadViewerError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    info = summarize_document(result.document, DocumentGeometry(result.document))
    print(f"File: {p}")
    print(f"Type: {info.kind} (version {info.version}, {info.generator or 'unknown generator'})")
    if info.title:
        print(f"Title: {info.title}")
    print(f"Paper: {info.paper}")
    if info.bounds:
        print(
            f"Extent: ({info.bounds.min.x}, {info.bounds.min.y}) - "
            f"({info.bounds.max.x}, {info.bounds.max.y}) mm"
        )
    print()

    print(f"Entities: {info.num_items}")
    for kind, count in info.counts.items():
        print(f"  {kind:12s}: {count}")
    print()

    print(f"Diagnostics: {len(result.diagnostics)}")
    for d in result.diagnostics:
        where = f" @{d.offset}" if d.offset >= 0 else ""
        print(f"  [{d.severity.value}] {d.kind.value}{where}: {d.message}")
    return 0


if __name__ == "__main__":
    main()
