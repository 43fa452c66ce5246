"""GitHub implementation of the platform interface.

Pull requests, issues, labels and branch refs go through the REST API over httpx;
file changes are committed in a local checkout and pushed with
``--force-with-lease``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from depbot.errors import OpenRequestsUnavailableError, PlatformError
from depbot.models import (
    CreatedRequest,
    ExistingChangeRequest,
    ExistingIssue,
    FileUpdate,
    RequestOptions,
)
from depbot.platform.git import GitRepo

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
PER_PAGE = 100


@dataclass
class GitHubConfig:
    """Connection settings for one repository."""

    owner: str
    repo: str
    token: str = ""
    api_url: str = DEFAULT_API_URL
    timeout: float = 30.0


class GitHubPlatform:
    """Pull requests, issues and branches of one GitHub repository.

    Example:
        with GitHubPlatform(GitHubConfig("acme", "app", token), GitRepo(root)) as gh:
            requests = gh.list_open_requests()
    """

    def __init__(
        self, config: GitHubConfig, repo: GitRepo, client: httpx.Client | None = None
    ):
        self.config = config
        self.repo = repo
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if config.token:
            headers["Authorization"] = f"Bearer {config.token}"
        self._client = client or httpx.Client(
            base_url=config.api_url, timeout=config.timeout, headers=headers
        )

    def __enter__(self) -> GitHubPlatform:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    @property
    def _base(self) -> str:
        return f"/repos/{self.config.owner}/{self.config.repo}"

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            resp = self._client.request(method, f"{self._base}{path}", **kwargs)
            resp.raise_for_status()
            return resp
        except httpx.HTTPStatusError as e:
            raise PlatformError(
                f"{method} {path} returned {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            raise PlatformError(f"{method} {path} failed: {e}") from e

    # --- Pull requests ---

    def list_open_requests(self) -> list[ExistingChangeRequest]:
        results: list[ExistingChangeRequest] = []
        page = 1
        try:
            while True:
                resp = self._request(
                    "GET",
                    "/pulls",
                    params={"state": "open", "per_page": PER_PAGE, "page": page},
                )
                items = resp.json()
                results.extend(_parse_pull(item) for item in items)
                if len(items) < PER_PAGE:
                    break
                page += 1
        except PlatformError as e:
            raise OpenRequestsUnavailableError(f"Could not list open pull requests: {e}") from e
        return results

    def create_request(self, options: RequestOptions) -> CreatedRequest:
        resp = self._request(
            "POST",
            "/pulls",
            json={
                "title": options.title,
                "body": options.body,
                "head": options.head,
                "base": options.base,
            },
        )
        data = resp.json()
        created = CreatedRequest(number=data["number"], url=data.get("html_url", ""))

        # Metadata is best-effort once the pull request exists
        if options.labels:
            self._try(
                "add labels",
                "POST",
                f"/issues/{created.number}/labels",
                json={"labels": options.labels},
            )
        if options.reviewers:
            self._try(
                "request reviewers",
                "POST",
                f"/pulls/{created.number}/requested_reviewers",
                json={"reviewers": options.reviewers},
            )
        if options.assignees:
            self._try(
                "add assignees",
                "POST",
                f"/issues/{created.number}/assignees",
                json={"assignees": options.assignees},
            )
        return created

    def update_request(self, number: int, options: RequestOptions) -> None:
        self._request(
            "PATCH", f"/pulls/{number}", json={"title": options.title, "body": options.body}
        )
        self._request("PUT", f"/issues/{number}/labels", json={"labels": options.labels})

    def close_request(self, number: int) -> None:
        self._request("PATCH", f"/pulls/{number}", json={"state": "closed"})

    def add_comment(self, number: int, text: str) -> None:
        self._request("POST", f"/issues/{number}/comments", json={"body": text})

    def _try(self, what: str, method: str, path: str, **kwargs: Any) -> None:
        try:
            self._request(method, path, **kwargs)
        except PlatformError as e:
            logger.warning("Could not %s: %s", what, e)

    # --- Issues ---

    def find_issue(self, title: str, marker: str) -> ExistingIssue | None:
        """The lowest-numbered open issue with ``title`` whose body holds ``marker``."""
        page = 1
        found: list[ExistingIssue] = []
        while True:
            resp = self._request(
                "GET",
                "/issues",
                params={"state": "open", "per_page": PER_PAGE, "page": page},
            )
            items = resp.json()
            for item in items:
                # The issues endpoint also returns pull requests
                if "pull_request" in item:
                    continue
                body = item.get("body") or ""
                if item.get("title") == title and marker in body:
                    found.append(
                        ExistingIssue(
                            number=item["number"],
                            title=item["title"],
                            body=body,
                            url=item.get("html_url", ""),
                        )
                    )
            if len(items) < PER_PAGE:
                break
            page += 1
        return min(found, key=lambda i: i.number) if found else None

    def create_issue(self, title: str, body: str, labels: list[str]) -> ExistingIssue:
        payload: dict[str, Any] = {"title": title, "body": body}
        if labels:
            payload["labels"] = labels
        data = self._request("POST", "/issues", json=payload).json()
        return ExistingIssue(
            number=data["number"], title=title, body=body, url=data.get("html_url", "")
        )

    def update_issue(self, number: int, title: str, body: str) -> None:
        self._request("PATCH", f"/issues/{number}", json={"title": title, "body": body})

    # --- Branches ---


    def _get_ref(self, name: str) -> dict[str, Any] | None:
        """The ref object for branch ``name``, or None if it does not exist."""
        path = f"/git/ref/heads/{quote(name, safe='/')}"
        try:
            resp = self._client.get(f"{self._base}{path}")
        except httpx.HTTPError as e:
            raise PlatformError(f"GET {path} failed: {e}") from e
        if resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            raise PlatformError(f"GET {path} returned {resp.status_code}")
        return resp.json()

    def branch_exists(self, name: str) -> bool:
        return self._get_ref(name) is not None

    def create_branch(self, name: str, base: str) -> None:
        ref = self._get_ref(base)
        if ref is None:
            raise PlatformError(f"Base branch '{base}' not found")
        self._request(
            "POST", "/git/refs", json={"ref": f"refs/heads/{name}", "sha": ref["object"]["sha"]}
        )

    def delete_branch(self, name: str) -> None:
        path = f"/git/refs/heads/{quote(name, safe='/')}"
        try:
            resp = self._client.delete(f"{self._base}{path}")
        except httpx.HTTPError as e:
            raise PlatformError(f"DELETE {path} failed: {e}") from e
        # 422 means the ref is already gone, e.g. deleted when the PR merged
        if resp.status_code in (404, 422):
            logger.debug("Branch %s already deleted", name)
            return
        if resp.status_code >= 400:
            raise PlatformError(f"DELETE {path} returned {resp.status_code}")

    def commit_changes(
        self, branch: str, message: str, files: list[FileUpdate], base: str
    ) -> None:
        if not files:
            raise PlatformError(f"Refusing to commit an empty change set to {branch}")

        self.repo.fetch(base)
        # Remote-tracking ref for the lease; absent for a brand new branch
        remote = self.repo.remote
        self.repo.git(
            "fetch", remote, f"+refs/heads/{branch}:refs/remotes/{remote}/{branch}", check=False
        )
        self.repo.recreate_branch(branch, base)
        self.repo.write_files(files)
        if not self.repo.commit_all(message):
            logger.info("No changes to commit on %s, skipping push", branch)
            return
        self.repo.push(branch)


def _parse_pull(item: dict[str, Any]) -> ExistingChangeRequest:
    return ExistingChangeRequest(
        number=item["number"],
        title=item.get("title") or "",
        body=item.get("body") or "",
        head_branch=(item.get("head") or {}).get("ref", ""),
        base_branch=(item.get("base") or {}).get("ref", ""),
        author=(item.get("user") or {}).get("login", ""),
        labels=[label.get("name", "") for label in item.get("labels") or []],
        state=item.get("state", "open"),
        url=item.get("html_url", ""),
    )
