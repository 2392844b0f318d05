"""Read-only access to KiCad files hosted on GitLab.

Handles links to a single file
(``https://gitlab.com/group/project/-/blob/main/board.kicad_pcb``) and to a
directory (``.../-/tree/main/hardware``). Files are downloaded from the raw
endpoint; directory listings use the REST API.
"""

from __future__ import annotations

import asyncio
import json
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Optional

from pydantic import BaseModel

from kicad_viewer.logging_config import get_logger
from kicad_viewer.models.errors import NotFoundError, RemoteAPIError
from kicad_viewer.providers.base import VirtualFileSystem, basename, is_kicad_file

logger = get_logger("providers.gitlab")

DEFAULT_BASE_URL = "https://gitlab.com"
USER_AGENT = "kicad-viewer"


class GitLabLocation(BaseModel):
    """Parts of a user-facing GitLab URL. ``owner`` may include subgroups."""

    owner: str
    repo: str
    type: Optional[str] = None
    ref: Optional[str] = None
    path: str = ""

    @property
    def project(self) -> str:
        return f"{self.owner}/{self.repo}"


def _open(request: urllib.request.Request, timeout: float) -> tuple[int, Any, bytes]:
    url = request.full_url
    try:
        with urllib.request.urlopen(request, timeout=timeout) as resp:
            return resp.status, resp.headers, resp.read()
    except urllib.error.HTTPError as e:
        if e.code == 404:
            raise NotFoundError(f"{url}: not found", {"url": url, "status": 404}) from e
        body = e.read().decode("utf-8", errors="replace")
        raise RemoteAPIError(url, body or e.reason or f"HTTP {e.code}", e.code) from e
    except urllib.error.URLError as e:
        raise RemoteAPIError(url, str(e.reason)) from e


class GitLab:
    """Minimal GitLab REST API client."""

    API_VERSION = "v4"
    ACCEPT_HEADER = "application/vnd.gitlab+json"

    def __init__(self, base_url: str = DEFAULT_BASE_URL, timeout: float = 30.0):
        self.html_base_url = base_url.rstrip("/")
        self.base_url = f"{self.html_base_url}/api/{self.API_VERSION}/"
        self.timeout = timeout
        self.headers = {
            "Accept": self.ACCEPT_HEADER,
            "X-GitLab-Api-Version": self.API_VERSION,
            "User-Agent": USER_AGENT,
        }
        self.last_status: Optional[int] = None
        self.rate_limit_remaining: Optional[int] = None

    @staticmethod
    def parse_url(url: str, base_url: str = DEFAULT_BASE_URL) -> Optional[GitLabLocation]:
        """Split a user-facing URL into owner, repo, link type, ref and path.

        Returns None if the URL does not name a project.
        """
        full = urllib.parse.urljoin(base_url.rstrip("/") + "/", url)
        parts = [p for p in urllib.parse.urlparse(full).path.split("/") if p]
        if "-" in parts:
            # Modern links separate the project from the route with /-/.
            split = parts.index("-")
            project, route = parts[:split], parts[split + 1:]
        else:
            kinds = [i for i, p in enumerate(parts) if p in ("blob", "tree", "raw")]
            split = kinds[0] if kinds and kinds[0] >= 2 else len(parts)
            project, route = parts[:split], parts[split:]
        if len(project) < 2:
            return None

        location = GitLabLocation(owner="/".join(project[:-1]), repo=project[-1])
        if route and route[0] in ("blob", "tree", "raw"):
            location = location.model_copy(update={
                "type": route[0],
                "ref": route[1] if len(route) > 1 else None,
                "path": "/".join(route[2:]),
            })
        return location

    def request(self, path: str, params: Optional[dict[str, str]] = None) -> Any:
        """GET an API path; JSON responses are decoded.

        Raises:
            NotFoundError: On HTTP 404.
            RemoteAPIError: On any other failure (HTTP 500 included).
        """
        url = urllib.parse.urljoin(self.base_url, path)
        if params:
            url = f"{url}?{urllib.parse.urlencode(params)}"
        logger.debug("GitLab API request %s", url)
        status, headers, body = _open(urllib.request.Request(url, headers=self.headers), self.timeout)
        self.last_status = status

        remaining = headers.get("x-ratelimit-remaining")
        self.rate_limit_remaining = int(remaining) if remaining and remaining.isdigit() else None
        if self.rate_limit_remaining is not None and self.rate_limit_remaining < 10:
            logger.warning("GitLab rate limit nearly exhausted: %d requests left", self.rate_limit_remaining)

        text = body.decode("utf-8")
        if (headers.get("content-type") or "").startswith("application/json"):
            return json.loads(text)
        return text

    def repository_tree(self, location: GitLabLocation) -> list[dict[str, Any]]:
        """Entries of the directory named by a ``tree`` link."""
        project = urllib.parse.quote(location.project, safe="")
        params = {"path": location.path, "per_page": "100"}
        if location.ref:
            params["ref"] = location.ref
        result = self.request(f"projects/{project}/repository/tree", params)
        if not isinstance(result, list):
            raise RemoteAPIError(self.base_url, "unexpected repository tree response")
        return result


class GitLabUserContent:
    """Downloads raw file contents."""

    def __init__(self, base_url: str = DEFAULT_BASE_URL, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def convert_url(self, url: str) -> str:
        """Turn a ``blob`` link into the matching ``raw`` link.

        Raises:
            ValueError: If ``url`` is not a link to a single file.
        """
        location = GitLab.parse_url(url, self.base_url)
        if location is None or location.type not in ("blob", "raw") or not location.ref:
            raise ValueError(f"URL {url} can't be converted to a raw file URL")
        return self.raw_url(location, location.path)

    def raw_url(self, location: GitLabLocation, path: str) -> str:
        ref = location.ref or "HEAD"
        quoted = urllib.parse.quote(path)
        return f"{self.base_url}/{location.project}/-/raw/{ref}/{quoted}"

    def fetch(self, url: str) -> bytes:
        logger.debug("Downloading %s", url)
        request = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
        _, _, body = _open(request, self.timeout)
        return body

    async def get(self, url: str) -> bytes:
        return await asyncio.to_thread(self.fetch, url)


class GitLabFileSystem(VirtualFileSystem):
    """Files referenced by GitLab links, keyed by base name."""

    def __init__(self, files_to_urls: dict[str, str], user_content: Optional[GitLabUserContent] = None):
        self.files_to_urls = dict(files_to_urls)
        self.user_content = user_content or GitLabUserContent()

    @classmethod
    async def from_urls(
        cls,
        *urls: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
    ) -> "GitLabFileSystem":
        """Build a provider from blob (file) and tree (directory) links.

        Links that do not name a project, or a file link without a ref and
        path, are skipped with a warning.
        """
        api = GitLab(base_url, timeout)
        user_content = GitLabUserContent(base_url, timeout)
        files: dict[str, str] = {}

        for url in urls:
            location = GitLab.parse_url(url, base_url)
            if location is None:
                logger.warning("Ignoring URL that does not name a GitLab project: %s", url)
                continue

            if location.type in ("blob", "raw"):
                if not location.ref or not location.path:
                    logger.warning("Ignoring GitLab file URL without a ref and path: %s", url)
                    continue
                raw = user_content.convert_url(url)
                files[basename(location.path)] = raw
            elif location.type == "tree":
                entries = await asyncio.to_thread(api.repository_tree, location)
                for entry in entries:
                    name = entry.get("name")
                    path = entry.get("path")
                    if entry.get("type") != "blob" or not name or not path or not is_kicad_file(name):
                        continue
                    files[name] = user_content.raw_url(location, path)
            else:
                logger.warning("Ignoring GitLab URL that is neither a file nor a directory: %s", url)

        logger.info("GitLab provider with %d files", len(files))
        return cls(files, user_content)

    def list(self) -> list[str]:
        return list(self.files_to_urls)

    def has(self, name: str) -> bool:
        return name in self.files_to_urls

    async def get(self, name: str) -> bytes:
        url = self.files_to_urls.get(name)
        if url is None:
            raise NotFoundError(f"File {name} not found", {"name": name})
        return await self.user_content.get(url)
