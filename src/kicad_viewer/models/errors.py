"""Custom exception hierarchy for the KiCad viewer."""

from __future__ import annotations

from typing import Any


class KiCadViewerError(Exception):
    """Base exception for all KiCad viewer errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


# --- S-expression layer ---

class SExprError(KiCadViewerError):
    """Malformed S-expression text. Fatal to the load that hit it."""


class LexError(SExprError):
    """The token stream is malformed (unterminated string, stray paren)."""

    def __init__(self, message: str, offset: int):
        super().__init__(f"{message} at offset {offset}", {"offset": offset})
        self.offset = offset


class ParseError(SExprError):
    """Structural S-expression violation."""

    def __init__(self, position: int, expected: str, message: str | None = None):
        text = message or f"expected {expected}"
        super().__init__(
            f"{text} at offset {position}",
            {"position": position, "expected": expected},
        )
        self.position = position
        self.expected = expected


# --- Binding ---

class SchemaError(KiCadViewerError):
    """A recognized list has a missing or malformed field."""

    def __init__(self, node: Any, reason: str):
        head = getattr(node, "head", None)
        offset = getattr(node, "offset", -1)
        where = f"({head} ...)" if head else "node"
        super().__init__(
            f"{where} at offset {offset}: {reason}",
            {"head": head, "offset": offset, "reason": reason},
        )
        self.node = node
        self.reason = reason

    @property
    def offset(self) -> int:
        return getattr(self.node, "offset", -1)


class UnsupportedDocumentError(SchemaError):
    """The root list is not a KiCad schematic or board."""


# --- File providers ---

class ProviderError(KiCadViewerError):
    """Error raised by a file provider."""


class NotFoundError(ProviderError):
    """The requested file is not available from the provider."""


class RemoteAPIError(ProviderError):
    """A hosting provider API returned an unexpected failure."""

    def __init__(self, url: str, description: str, status: int | None = None):
        super().__init__(f"{url}: {description}", {"url": url, "status": status})
        self.url = url
        self.status = status


# --- Hierarchy ---

class HierarchyError(KiCadViewerError):
    """Error while resolving the schematic sheet hierarchy."""


class UnresolvedSheetError(HierarchyError):
    """A sheet instance references a file that cannot be obtained or loaded."""

    def __init__(self, file: str, sheet_path: str, reason: str = "cannot be loaded"):
        super().__init__(
            f"Sheet file '{file}' at {sheet_path} {reason}",
            {"file": file, "sheet_path": sheet_path},
        )
        self.file = file
        self.sheet_path = sheet_path
        self.reason = reason


# --- Viewer ---

class ViewerError(KiCadViewerError):
    """Error raised by the viewer orchestration layer."""


class ViewerStateError(ViewerError):
    """The requested operation is not valid in the viewer's current state."""


# --- Input validation ---

class ValidationError(KiCadViewerError):
    """Input validation failed."""


class InvalidPathError(ValidationError):
    """File path is invalid or inaccessible."""
