"""
Remote Sources - GitHub-backed version listing and source fetching.

GitHubVersionSource lists releases (falling back to plain tags) and reads
manifest.json at a ref through the REST API. GitFetcher shallow-clones a
tag into the installer's freshly allocated directory.
"""

import shutil
import subprocess
from pathlib import Path
from typing import Any

import httpx
import structlog

from .config import CompmanConfig
from .contracts import RemoteVersion
from .errors import FetchError

__all__ = ["GitFetcher", "GitHubVersionSource"]

logger = structlog.get_logger(__name__)


class GitHubVersionSource:
    """Read-only GitHub REST client for component sources.

    Example:
        with GitHubVersionSource(config) as source:
            versions = source.list_versions("acme/weather")
    """

    def __init__(
        self,
        config: CompmanConfig,
        client: httpx.Client | None = None,
        timeout: float | None = None,
    ) -> None:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "compman",
        }
        if config.github_token:
            headers["Authorization"] = f"Bearer {config.github_token}"
        self.base_url = config.github_api.rstrip("/")
        self._client = client or httpx.Client(
            headers=headers,
            timeout=timeout if timeout is not None else config.check_timeout,
            follow_redirects=True,
        )

    def _get(self, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            response = self._client.get(url, **kwargs)
        except httpx.TimeoutException as e:
            raise FetchError(f"timed out contacting {url}") from e
        except httpx.HTTPError as e:
            raise FetchError(f"request to {url} failed: {e}") from e

        if response.status_code == 404:
            raise FetchError(f"not found: {url}")
        if response.status_code == 403:
            logger.warning("github_rate_limited", url=url)
        if response.status_code >= 400:
            raise FetchError(f"{url} returned HTTP {response.status_code}")
        return response

    def list_versions(self, source: str) -> list[RemoteVersion]:
        """Releases for source; plain tags when no releases exist."""
        releases = self._get(f"/repos/{source}/releases", params={"per_page": 100}).json()
        versions = [
            RemoteVersion(
                tag=r["tag_name"],
                published_at=r.get("published_at"),
                prerelease=bool(r.get("prerelease")),
            )
            for r in releases
            if r.get("tag_name") and not r.get("draft")
        ]
        if versions:
            return versions

        tags = self._get(f"/repos/{source}/tags", params={"per_page": 100}).json()
        return [RemoteVersion(tag=t["name"]) for t in tags if t.get("name")]

    def fetch_manifest(self, source: str, ref: str) -> dict[str, Any]:
        response = self._get(
            f"/repos/{source}/contents/manifest.json",
            params={"ref": ref},
            headers={"Accept": "application/vnd.github.raw+json"},
        )
        try:
            data = response.json()
        except ValueError as e:
            raise FetchError(f"manifest for {source}@{ref} is not valid JSON") from e
        if not isinstance(data, dict):
            raise FetchError(f"manifest for {source}@{ref} is not an object")
        return data

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> "GitHubVersionSource":
        return self

    def __exit__(self, *args) -> None:
        self.close()


class GitFetcher:
    """Fetches a tag with a shallow git clone."""

    def __init__(self, base_url: str = "https://github.com") -> None:
        self.base_url = base_url.rstrip("/")

    def fetch(self, source: str, ref: str, dest: Path, timeout: float | None = None) -> None:
        git = shutil.which("git")
        if not git:
            raise FetchError("git not found on PATH")

        cmd = [
            git, "clone",
            "--depth", "1",
            "--branch", ref,
            "--quiet",
            f"{self.base_url}/{source}.git",
            str(dest),
        ]
        logger.info("fetching_source", source=source, ref=ref)
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
        except subprocess.TimeoutExpired as e:
            raise FetchError(f"fetching {source}@{ref} timed out after {timeout}s") from e

        if result.returncode != 0:
            logger.error("git_clone_failed", source=source, ref=ref, stderr=result.stderr)
            raise FetchError(f"could not fetch {source}@{ref}: {result.stderr.strip()}")

        shutil.rmtree(dest / ".git", ignore_errors=True)
