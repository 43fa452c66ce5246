"""Latest-version lookups against package registries."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from depbot.errors import RegistryError

logger = logging.getLogger(__name__)

PYPI_URL = "https://pypi.org"
NPM_URL = "https://registry.npmjs.org"
GITHUB_API_URL = "https://api.github.com"


@dataclass
class RegistryConfig:
    pypi_url: str = PYPI_URL
    npm_url: str = NPM_URL
    github_url: str = GITHUB_API_URL
    github_token: str = ""
    timeout: float = 15.0


class RegistryClient:
    """Client for the PyPI, npm and GitHub release APIs.

    Lookups are cached for the lifetime of the client, so the same package
    referenced from several manifests is fetched once per pass.
    """

    def __init__(self, config: RegistryConfig | None = None, client: httpx.Client | None = None):
        self.config = config or RegistryConfig()
        self._client = client or httpx.Client(timeout=self.config.timeout, follow_redirects=True)
        self._cache: dict[tuple[str, str], str | None] = {}

    def __enter__(self) -> RegistryClient:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _get_json(self, url: str, headers: dict[str, str] | None = None) -> Any:
        try:
            resp = self._client.get(url, headers=headers)
        except httpx.TimeoutException:
            raise RegistryError(f"{url} timed out")
        except httpx.HTTPError as e:
            raise RegistryError(f"Cannot reach {url}: {e}")
        if resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            raise RegistryError(f"{url} returned {resp.status_code}")
        try:
            return resp.json()
        except ValueError as e:
            raise RegistryError(f"{url} returned invalid JSON: {e}")

    def _cached(self, kind: str, name: str, fetch) -> str | None:
        key = (kind, name)
        if key not in self._cache:
            self._cache[key] = fetch()
        return self._cache[key]

    def pypi_latest(self, name: str) -> str | None:
        """Latest release on PyPI, or None if the project does not exist."""

        def fetch() -> str | None:
            data = self._get_json(f"{self.config.pypi_url}/pypi/{quote(name)}/json")
            if not data:
                return None
            return (data.get("info") or {}).get("version")

        return self._cached("pypi", name, fetch)

    def npm_latest(self, name: str) -> str | None:
        """The ``latest`` dist-tag on the npm registry."""

        def fetch() -> str | None:
            data = self._get_json(
                f"{self.config.npm_url}/-/package/{quote(name, safe='@')}/dist-tags"
            )
            if not data:
                return None
            return data.get("latest")

        return self._cached("npm", name, fetch)

    def _github_headers(self) -> dict[str, str]:
        headers = {"Accept": "application/vnd.github+json"}
        if self.config.github_token:
            headers["Authorization"] = f"Bearer {self.config.github_token}"
        return headers

    def github_latest_tag(self, repository: str) -> str | None:
        """Tag of the latest release, falling back to the newest tag."""

        def fetch() -> str | None:
            base = f"{self.config.github_url}/repos/{repository}"
            release = self._get_json(f"{base}/releases/latest", self._github_headers())
            if release and release.get("tag_name"):
                return release["tag_name"]
            tags = self._get_json(f"{base}/tags?per_page=1", self._github_headers())
            if tags:
                return tags[0].get("name")
            return None

        return self._cached("github", repository, fetch)
