"""Shared test fixtures."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from kicad_viewer.config import KiCadViewerConfig
from kicad_viewer.document.binder import LoadResult, load_document
from kicad_viewer.providers.local import LocalFileSystem, MemoryFileSystem

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    for name in ("kicad_viewer", "kicad_viewer.document.binder"):
        logger = logging.getLogger(name)
        logger.setLevel(logging.NOTSET)
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()


@pytest.fixture
def sample_schematic_path() -> Path:
    return FIXTURES_DIR / "sample_schematic.kicad_sch"


@pytest.fixture
def child_schematic_path() -> Path:
    return FIXTURES_DIR / "child.kicad_sch"


@pytest.fixture
def sample_board_path() -> Path:
    return FIXTURES_DIR / "sample_board.kicad_pcb"


@pytest.fixture
def schematic_result(sample_schematic_path: Path) -> LoadResult:
    return load_document(sample_schematic_path.read_bytes(), sample_schematic_path.name)


@pytest.fixture
def board_result(sample_board_path: Path) -> LoadResult:
    return load_document(sample_board_path.read_bytes(), sample_board_path.name)


@pytest.fixture
def config() -> KiCadViewerConfig:
    return KiCadViewerConfig(log_level="WARNING")


@pytest.fixture
def local_fs() -> LocalFileSystem:
    return LocalFileSystem.from_directory(FIXTURES_DIR)


@pytest.fixture
def memory_fs() -> MemoryFileSystem:
    """All fixture files, held in memory."""
    return MemoryFileSystem({p.name: p.read_bytes() for p in FIXTURES_DIR.iterdir() if p.is_file()})
