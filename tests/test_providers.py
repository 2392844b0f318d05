"""Tests for file providers: local, in-memory and GitLab."""

from __future__ import annotations

import asyncio
import io
import json
import urllib.error
import urllib.request
from pathlib import Path

import pytest

from kicad_viewer.models.errors import InvalidPathError, NotFoundError, RemoteAPIError
from kicad_viewer.providers.base import basename, extension, is_kicad_file
from kicad_viewer.providers.gitlab import (
    GitLab,
    GitLabFileSystem,
    GitLabLocation,
    GitLabUserContent,
)
from kicad_viewer.providers.local import LocalFileSystem, MemoryFileSystem


class FakeResponse:
    def __init__(self, body: bytes, headers: dict | None = None, status: int = 200):
        self.body = body
        self.headers = headers or {}
        self.status = status

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def read(self) -> bytes:
        return self.body


class FakeURLOpen:
    """Stands in for urllib.request.urlopen; maps URLs to responses or errors."""

    def __init__(self, routes: dict):
        self.routes = routes
        self.requests: list[urllib.request.Request] = []

    def __call__(self, request, timeout=None):
        self.requests.append(request)
        url = request.full_url
        for prefix, response in self.routes.items():
            if url.startswith(prefix):
                if isinstance(response, Exception):
                    raise response
                return response
        raise urllib.error.HTTPError(url, 404, "Not Found", {}, io.BytesIO(b""))


class TestNames:
    def test_helpers(self):
        assert extension("hw/board.kicad_pcb") == "kicad_pcb"
        assert basename("hw/board.kicad_pcb") == "board.kicad_pcb"
        assert is_kicad_file("x.kicad_pro")
        assert not is_kicad_file("README.md")


class TestMemoryFileSystem:
    def test_get(self):
        fs = MemoryFileSystem({"a.kicad_sch": "(kicad_sch)"})
        assert asyncio.run(fs.get("a.kicad_sch")) == b"(kicad_sch)"
        assert asyncio.run(fs.get_text("a.kicad_sch")) == "(kicad_sch)"
        assert fs.has("a.kicad_sch")

    def test_missing(self):
        with pytest.raises(NotFoundError):
            asyncio.run(MemoryFileSystem().get("a.kicad_sch"))

    def test_add_remove(self):
        fs = MemoryFileSystem()
        fs.add("b.kicad_pcb", b"(kicad_pcb)")
        fs.add("notes.txt", "hello")
        assert fs.find_documents() == ["b.kicad_pcb"]
        fs.remove("b.kicad_pcb")
        assert fs.list() == ["notes.txt"]


class TestLocalFileSystem:
    def test_from_directory(self, local_fs: LocalFileSystem):
        assert local_fs.find_documents() == [
            "child.kicad_sch", "sample_board.kicad_pcb", "sample_schematic.kicad_sch",
        ]

    def test_get(self, local_fs: LocalFileSystem, child_schematic_path: Path):
        data = asyncio.run(local_fs.get("child.kicad_sch"))
        assert data == child_schematic_path.read_bytes()

    def test_missing(self, local_fs: LocalFileSystem):
        with pytest.raises(NotFoundError):
            asyncio.run(local_fs.get("missing.kicad_sch"))

    def test_not_a_directory(self, sample_board_path: Path):
        with pytest.raises(InvalidPathError):
            LocalFileSystem.from_directory(sample_board_path)

    def test_for_file(self, sample_schematic_path: Path):
        fs = LocalFileSystem.for_file(sample_schematic_path)
        assert fs.has("child.kicad_sch")

    def test_from_paths(self, tmp_path: Path, sample_board_path: Path):
        notes = tmp_path / "notes.txt"
        notes.write_text("x")
        fs = LocalFileSystem.from_paths([sample_board_path, notes])
        assert fs.list() == ["sample_board.kicad_pcb"]


class TestParseURL:
    def test_blob(self):
        location = GitLab.parse_url("https://gitlab.com/group/project/-/blob/main/hw/board.kicad_pcb")
        assert location == GitLabLocation(
            owner="group", repo="project", type="blob", ref="main", path="hw/board.kicad_pcb",
        )

    def test_subgroups(self):
        location = GitLab.parse_url("https://gitlab.com/a/b/c/-/tree/dev/hw")
        assert location.owner == "a/b"
        assert location.repo == "c"
        assert location.project == "a/b/c"
        assert (location.type, location.ref, location.path) == ("tree", "dev", "hw")

    def test_project_only(self):
        location = GitLab.parse_url("https://gitlab.com/group/project")
        assert location.project == "group/project"
        assert location.type is None

    def test_legacy_route(self):
        location = GitLab.parse_url("https://gitlab.com/group/project/blob/v1/top.kicad_sch")
        assert (location.project, location.type, location.ref, location.path) == (
            "group/project", "blob", "v1", "top.kicad_sch",
        )

    def test_relative_to_base(self):
        location = GitLab.parse_url("/group/project/-/raw/main/a.kicad_sch", "https://git.example.com")
        assert location.type == "raw"

    def test_not_a_project(self):
        assert GitLab.parse_url("https://gitlab.com/justone") is None


class TestUserContent:
    def test_convert_url(self):
        content = GitLabUserContent()
        assert content.convert_url("https://gitlab.com/group/project/-/blob/main/hw/board.kicad_pcb") == (
            "https://gitlab.com/group/project/-/raw/main/hw/board.kicad_pcb"
        )

    def test_convert_rejects_tree(self):
        with pytest.raises(ValueError):
            GitLabUserContent().convert_url("https://gitlab.com/group/project/-/tree/main")

    def test_raw_url_defaults_to_head(self):
        location = GitLabLocation(owner="group", repo="project")
        assert GitLabUserContent().raw_url(location, "a b.kicad_sch") == (
            "https://gitlab.com/group/project/-/raw/HEAD/a%20b.kicad_sch"
        )


class TestGitLabAPI:
    def test_request_json(self, monkeypatch):
        fake = FakeURLOpen({
            "https://gitlab.com/api/v4/projects": FakeResponse(
                json.dumps([{"name": "x"}]).encode(),
                {"content-type": "application/json", "x-ratelimit-remaining": "99"},
            ),
        })
        monkeypatch.setattr(urllib.request, "urlopen", fake)
        api = GitLab()
        assert api.request("projects/1/repository/tree") == [{"name": "x"}]
        assert api.rate_limit_remaining == 99
        assert api.last_status == 200
        assert fake.requests[0].get_header("Accept") == "application/vnd.gitlab+json"

    def test_not_found(self, monkeypatch):
        monkeypatch.setattr(urllib.request, "urlopen", FakeURLOpen({}))
        with pytest.raises(NotFoundError):
            GitLab().request("projects/1")

    def test_server_error(self, monkeypatch):
        url = "https://gitlab.com/api/v4/projects/1"
        error = urllib.error.HTTPError(url, 500, "Internal Server Error", {}, io.BytesIO(b"boom"))
        monkeypatch.setattr(urllib.request, "urlopen", FakeURLOpen({url: error}))
        with pytest.raises(RemoteAPIError) as exc_info:
            GitLab().request("projects/1")
        assert exc_info.value.status == 500
        assert "boom" in str(exc_info.value)

    def test_connection_error(self, monkeypatch):
        url = "https://gitlab.com/api/v4/projects/1"
        monkeypatch.setattr(
            urllib.request, "urlopen", FakeURLOpen({url: urllib.error.URLError("refused")}),
        )
        with pytest.raises(RemoteAPIError) as exc_info:
            GitLab().request("projects/1")
        assert exc_info.value.status is None


class TestGitLabFileSystem:
    def test_from_tree_url(self, monkeypatch):
        tree = [
            {"name": "root.kicad_sch", "path": "hw/root.kicad_sch", "type": "blob"},
            {"name": "board.kicad_pcb", "path": "hw/board.kicad_pcb", "type": "blob"},
            {"name": "README.md", "path": "hw/README.md", "type": "blob"},
            {"name": "lib", "path": "hw/lib", "type": "tree"},
        ]
        fake = FakeURLOpen({
            "https://gitlab.com/api/v4/projects/group%2Fproject/repository/tree": FakeResponse(
                json.dumps(tree).encode(), {"content-type": "application/json"},
            ),
            "https://gitlab.com/group/project/-/raw/main/hw/root.kicad_sch": FakeResponse(b"(kicad_sch)"),
        })
        monkeypatch.setattr(urllib.request, "urlopen", fake)

        async def run():
            fs = await GitLabFileSystem.from_urls("https://gitlab.com/group/project/-/tree/main/hw")
            return fs, await fs.get("root.kicad_sch")

        fs, data = asyncio.run(run())
        assert sorted(fs.list()) == ["board.kicad_pcb", "root.kicad_sch"]
        assert fs.find_documents() == ["board.kicad_pcb", "root.kicad_sch"]
        assert data == b"(kicad_sch)"
        assert "ref=main" in fake.requests[0].full_url
        assert "path=hw" in fake.requests[0].full_url

    def test_from_blob_url(self):
        fs = asyncio.run(GitLabFileSystem.from_urls(
            "https://gitlab.com/group/project/-/blob/main/top.kicad_sch",
            "https://gitlab.com/justone",
        ))
        assert fs.files_to_urls == {
            "top.kicad_sch": "https://gitlab.com/group/project/-/raw/main/top.kicad_sch",
        }

    def test_blob_url_without_ref_or_path_is_skipped(self):
        fs = asyncio.run(GitLabFileSystem.from_urls(
            "https://gitlab.com/group/project/-/blob",
            "https://gitlab.com/group/project/-/blob/main",
            "https://gitlab.com/group/project/-/blob/main/top.kicad_sch",
        ))
        assert fs.list() == ["top.kicad_sch"]

    def test_get_unknown(self):
        fs = GitLabFileSystem({})
        with pytest.raises(NotFoundError):
            asyncio.run(fs.get("x.kicad_sch"))

    def test_get_remote_missing(self, monkeypatch):
        monkeypatch.setattr(urllib.request, "urlopen", FakeURLOpen({}))
        fs = GitLabFileSystem({"x.kicad_sch": "https://gitlab.com/g/p/-/raw/main/x.kicad_sch"})
        with pytest.raises(NotFoundError):
            asyncio.run(fs.get("x.kicad_sch"))
