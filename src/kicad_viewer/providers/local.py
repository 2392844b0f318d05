"""Providers backed by the local file system or by memory."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Iterable, Mapping, Union

from kicad_viewer.logging_config import get_logger
from kicad_viewer.models.errors import InvalidPathError, NotFoundError
from kicad_viewer.providers.base import VirtualFileSystem, is_kicad_file

logger = get_logger("providers.local")


class LocalFileSystem(VirtualFileSystem):
    """KiCad files from a directory, or from an explicit list of paths.

    Only files with KiCad extensions are exposed. Names are base names, the
    way sheets refer to their files.
    """

    def __init__(self, files: Mapping[str, Path]):
        self._files = dict(files)

    @classmethod
    def from_directory(cls, directory: Union[str, Path]) -> "LocalFileSystem":
        root = Path(directory).expanduser().resolve()
        if not root.is_dir():
            raise InvalidPathError(f"Not a directory: {root}")
        files = {p.name: p for p in sorted(root.iterdir()) if p.is_file() and is_kicad_file(p.name)}
        logger.debug("Found %d KiCad files in %s", len(files), root)
        return cls(files)

    @classmethod
    def from_paths(cls, paths: Iterable[Union[str, Path]]) -> "LocalFileSystem":
        files = {}
        for path in paths:
            p = Path(path).expanduser().resolve()
            if is_kicad_file(p.name):
                files[p.name] = p
        return cls(files)

    @classmethod
    def for_file(cls, path: Union[str, Path]) -> "LocalFileSystem":
        """Provider for a document and its siblings (sub-sheets live beside it)."""
        return cls.from_directory(Path(path).expanduser().resolve().parent)

    def list(self) -> list[str]:
        return list(self._files)

    def has(self, name: str) -> bool:
        return name in self._files

    def path_of(self, name: str) -> Path:
        if name not in self._files:
            raise NotFoundError(f"File {name} not found", {"name": name})
        return self._files[name]

    async def get(self, name: str) -> bytes:
        path = self.path_of(name)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as e:
            raise NotFoundError(f"File {name} not found: {path}", {"name": name}) from e


class MemoryFileSystem(VirtualFileSystem):
    """Files held in memory, e.g. dropped onto a host window."""

    def __init__(self, files: Mapping[str, Union[str, bytes]] | None = None):
        self._files: dict[str, bytes] = {}
        for name, content in (files or {}).items():
            self.add(name, content)

    def add(self, name: str, content: Union[str, bytes]) -> None:
        self._files[name] = content.encode("utf-8") if isinstance(content, str) else content

    def remove(self, name: str) -> None:
        self._files.pop(name, None)

    def list(self) -> list[str]:
        return list(self._files)

    def has(self, name: str) -> bool:
        return name in self._files

    async def get(self, name: str) -> bytes:
        if name not in self._files:
            raise NotFoundError(f"File {name} not found", {"name": name})
        return self._files[name]
