"""Pydantic models for diagnostics and tool results."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


# --- Enums ---

class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class DiagnosticKind(str, Enum):
    SCHEMA = "schema"
    DANGLING_REFERENCE = "dangling_reference"
    DUPLICATE_ID = "duplicate_id"
    UNRESOLVED_SHEET = "unresolved_sheet"


# --- Diagnostics ---

class Diagnostic(BaseModel):
    """A non-fatal problem found while loading a document."""

    severity: Severity = Severity.WARNING
    kind: DiagnosticKind
    message: str
    offset: int = Field(default=-1, description="Byte offset in the source text, -1 if unknown")
    uuid: str = Field(default="", description="Id of the entity involved, if any")
    file: str = Field(default="", description="Source file name, if known")


# --- Geometry ---

class Position(BaseModel):
    x: float = Field(description="X coordinate in mm")
    y: float = Field(description="Y coordinate in mm")


class BoundsInfo(BaseModel):
    min: Position
    max: Position


# --- Entities ---

class EntitySummary(BaseModel):
    kind: str = Field(description="Entity kind, e.g. symbol, wire, sheet, footprint")
    uuid: str = ""
    label: str = Field(default="", description="Reference, net name or text shown for the entity")
    position: Position
    rotation: float = 0.0
    layer: Optional[str] = None
    bounds: Optional[BoundsInfo] = None
    properties: dict[str, str] = Field(default_factory=dict)


class DocumentInfo(BaseModel):
    kind: str = Field(description="schematic or board")
    filename: str = ""
    version: int = 0
    generator: str = ""
    title: str = ""
    paper: str = "A4"
    num_items: int = 0
    counts: dict[str, int] = Field(default_factory=dict)
    bounds: Optional[BoundsInfo] = None


class SelectionResult(BaseModel):
    selected: Optional[EntitySummary] = None
    previous: Optional[EntitySummary] = None
    reselected: bool = False
    sheet_path: Optional[str] = None


class ViewportInfo(BaseModel):
    scale: float
    origin: Position
    width: float
    height: float


class ViewerStatus(BaseModel):
    state: str
    loaded: bool = False
    path: str = "/"
    document: Optional[DocumentInfo] = None
    viewport: Optional[ViewportInfo] = None
    selected: Optional[EntitySummary] = None
    diagnostics: int = 0
    error: Optional[str] = None


class HierarchyInfo(BaseModel):
    path: str
    name: str = ""
    file: str = ""
    error: Optional[str] = None
    sheets: list["HierarchyInfo"] = Field(default_factory=list)


# --- Generic Tool Response ---

class ToolResponse(BaseModel):
    status: str = "success"
    data: Any = None
    message: str = ""
