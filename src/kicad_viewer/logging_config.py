"""Logging configuration for the KiCad viewer.

Every module logs through a child of the ``kicad_viewer`` logger, named
after its subsystem:

    kicad_viewer.sexpr.parser      parsed roots (DEBUG)
    kicad_viewer.document.binder   dropped entities, load summaries
    kicad_viewer.geometry.bounds   geometry cache builds (DEBUG)
    kicad_viewer.viewer            load, selection and hierarchy transitions
    kicad_viewer.viewer.hierarchy  sheet fetches and resolution failures
    kicad_viewer.providers.*       file and GitLab retrieval
    kicad_viewer.server, .tools.*, .resources   MCP host surface
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

ROOT_LOGGER = "kicad_viewer"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _level(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    overrides: Optional[dict[str, str]] = None,
) -> logging.Logger:
    """Configure the viewer's logger tree.

    Records go to stderr, never stdout, which the stdio MCP transport uses
    for JSON-RPC. ``overrides`` sets levels for individual subsystems, keyed
    by the name passed to :func:`get_logger` (``{"document.binder": "ERROR"}``).
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(_level(level))
    logger.handlers.clear()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(formatter)
    logger.addHandler(stderr_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    for name, child_level in (overrides or {}).items():
        get_logger(name).setLevel(_level(child_level))

    return logger


def get_logger(name: str) -> logging.Logger:
    """Logger for one subsystem, e.g. ``get_logger("viewer.hierarchy")``."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
