"""Interface the reconciliation engine expects from a code-hosting platform."""

from __future__ import annotations

from typing import Protocol

from depbot.models import (
    CreatedRequest,
    ExistingChangeRequest,
    ExistingIssue,
    FileUpdate,
    RequestOptions,
)


class Platform(Protocol):
    """Pull request and branch operations on the hosting platform.

    Every method may raise :class:`~depbot.errors.PlatformError`. Timeouts
    are the implementation's responsibility.
    """

    def list_open_requests(self) -> list[ExistingChangeRequest]:
        """All open pull requests against the repository."""
        ...

    def create_branch(self, name: str, base: str) -> None: ...

    def branch_exists(self, name: str) -> bool: ...

    def delete_branch(self, name: str) -> None: ...

    def commit_changes(
        self, branch: str, message: str, files: list[FileUpdate], base: str
    ) -> None:
        """Recreate ``branch`` from ``base``, apply ``files`` and push."""
        ...

    def create_request(self, options: RequestOptions) -> CreatedRequest: ...

    def update_request(self, number: int, options: RequestOptions) -> None:
        """Replace title, body and labels of an open pull request."""
        ...

    def close_request(self, number: int) -> None: ...

    def add_comment(self, number: int, text: str) -> None: ...


class IssueTracker(Platform, Protocol):
    """A platform that also hosts issues, used for the dependency dashboard."""

    def find_issue(self, title: str, marker: str) -> ExistingIssue | None:
        """The open issue with ``title`` whose body contains ``marker``."""
        ...

    def create_issue(self, title: str, body: str, labels: list[str]) -> ExistingIssue: ...

    def update_issue(self, number: int, title: str, body: str) -> None: ...
