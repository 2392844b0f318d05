"""Input validation utilities for viewer requests."""

from __future__ import annotations

from pathlib import Path

from kicad_viewer.models.errors import InvalidPathError, ValidationError

# KiCad file extensions
KICAD_PROJECT_EXT = ".kicad_pro"
KICAD_BOARD_EXT = ".kicad_pcb"
KICAD_SCHEMATIC_EXT = ".kicad_sch"
VIEWABLE_EXTS = (KICAD_BOARD_EXT, KICAD_SCHEMATIC_EXT)


def validate_kicad_path(path: str, expected_ext: str | tuple[str, ...] | None = None) -> Path:
    """Validate a path to a KiCad file.

    Args:
        path: File path string.
        expected_ext: Expected file extension(s) (e.g. '.kicad_pcb').

    Returns:
        Resolved Path object.

    Raises:
        InvalidPathError: If the path is invalid or file doesn't exist.
    """
    if not path:
        raise InvalidPathError("File path cannot be empty")

    p = Path(path).expanduser().resolve()

    if not p.exists():
        raise InvalidPathError(f"File not found: {p}")

    if expected_ext:
        allowed = (expected_ext,) if isinstance(expected_ext, str) else expected_ext
        if p.suffix not in allowed:
            raise InvalidPathError(
                f"Expected {' or '.join(allowed)} file, got '{p.suffix}': {p}"
            )

    return p


def validate_viewable_path(path: str) -> Path:
    """Validate a path to a schematic or board the viewer can open."""
    return validate_kicad_path(path, VIEWABLE_EXTS)


def validate_positive(value: float, name: str = "value") -> float:
    """Validate that a numeric value is positive."""
    if value <= 0:
        raise ValidationError(f"{name} must be positive, got {value}")
    return value
