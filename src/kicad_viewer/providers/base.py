"""Abstract file provider interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import PurePosixPath
from typing import Iterable

KICAD_EXTENSIONS = ("kicad_pcb", "kicad_pro", "kicad_sch")
DOCUMENT_EXTENSIONS = ("kicad_pcb", "kicad_sch")


def extension(name: str) -> str:
    """File extension without the dot, e.g. ``kicad_sch``."""
    return PurePosixPath(name).suffix.lstrip(".")


def basename(name: str) -> str:
    return PurePosixPath(name).name


def is_kicad_file(name: str) -> bool:
    return extension(name) in KICAD_EXTENSIONS


class VirtualFileSystem(ABC):
    """A flat set of named files the viewer can read.

    Sub-sheets are looked up by the file name stored in their parent
    sheet, so providers key files by base name.
    """

    @abstractmethod
    def list(self) -> list[str]:
        """Names of all available files."""

    @abstractmethod
    def has(self, name: str) -> bool:
        """True if ``name`` can be fetched."""

    @abstractmethod
    async def get(self, name: str) -> bytes:
        """Contents of ``name``.

        Raises:
            NotFoundError: If the file is not available.
        """

    async def get_text(self, name: str) -> str:
        return (await self.get(name)).decode("utf-8")

    def find_documents(self, extensions: Iterable[str] = DOCUMENT_EXTENSIONS) -> list[str]:
        """Names of schematics and boards, sorted."""
        wanted = tuple(extensions)
        return sorted(name for name in self.list() if extension(name) in wanted)
