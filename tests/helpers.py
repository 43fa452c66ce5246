"""Shared fakes and factories for depbot tests."""

from __future__ import annotations

from pathlib import Path

from depbot.engine.versions import classify
from depbot.errors import PlatformError
from depbot.models import (
    CandidateUpdate,
    CreatedRequest,
    DetectedDependency,
    ExistingChangeRequest,
    ExistingIssue,
    FileUpdate,
    RequestOptions,
)

READ_METHODS = {"list_open_requests", "branch_exists", "find_issue"}


def make_update(
    name: str,
    current: str,
    new: str,
    ecosystem: str = "npm",
    source_file: str = "package.json",
) -> CandidateUpdate:
    return CandidateUpdate(
        name=name,
        current_version=current,
        new_version=new,
        update_type=classify(current, new),
        ecosystem=ecosystem,
        source_file=source_file,
    )


def make_request(
    number: int,
    title: str = "chore(deps): update something",
    head: str = "depbot/update-something",
    body: str = "",
    author: str = "depbot[bot]",
) -> ExistingChangeRequest:
    return ExistingChangeRequest(
        number=number,
        title=title,
        body=body,
        head_branch=head,
        base_branch="main",
        author=author,
        url=f"https://github.com/acme/app/pull/{number}",
    )


class FakePlatform:
    """In-memory platform that records every call."""

    def __init__(self, requests=None, branches=None):
        self.requests: list[ExistingChangeRequest] = list(requests or [])
        self.branches: set[str] = set(branches or [])
        self.calls: list[tuple] = []
        self.committed: dict[str, list[FileUpdate]] = {}
        self.comments: dict[int, list[str]] = {}
        self.fail_branches: set[str] = set()
        self.list_error: Exception | None = None
        self.issues: list[ExistingIssue] = []
        self._next_number = 100

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, *args))

    @property
    def writes(self) -> list[tuple]:
        return [c for c in self.calls if c[0] not in READ_METHODS]

    def called(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]

    def list_open_requests(self) -> list[ExistingChangeRequest]:
        self._record("list_open_requests")
        if self.list_error:
            raise self.list_error
        return [r for r in self.requests if r.state == "open"]

    def branch_exists(self, name: str) -> bool:
        self._record("branch_exists", name)
        return name in self.branches

    def create_branch(self, name: str, base: str) -> None:
        self._record("create_branch", name, base)
        self.branches.add(name)

    def delete_branch(self, name: str) -> None:
        self._record("delete_branch", name)
        self.branches.discard(name)

    def commit_changes(self, branch: str, message: str, files: list[FileUpdate], base: str) -> None:
        self._record("commit_changes", branch, list(files))
        if branch in self.fail_branches:
            raise PlatformError(f"push to {branch} rejected")
        self.committed[branch] = list(files)
        self.branches.add(branch)

    def create_request(self, options: RequestOptions) -> CreatedRequest:
        self._record("create_request", options)
        number = self._next_number
        self._next_number += 1
        request = ExistingChangeRequest(
            number=number,
            title=options.title,
            body=options.body,
            head_branch=options.head,
            base_branch=options.base,
            author="depbot[bot]",
            labels=list(options.labels),
            url=f"https://github.com/acme/app/pull/{number}",
        )
        self.requests.append(request)
        return CreatedRequest(number=number, url=request.url)

    def update_request(self, number: int, options: RequestOptions) -> None:
        self._record("update_request", number, options)
        for request in self.requests:
            if request.number == number:
                request.title = options.title
                request.body = options.body
                request.labels = list(options.labels)

    def close_request(self, number: int) -> None:
        self._record("close_request", number)
        for request in self.requests:
            if request.number == number:
                request.state = "closed"

    def add_comment(self, number: int, text: str) -> None:
        self._record("add_comment", number, text)
        self.comments.setdefault(number, []).append(text)

    def find_issue(self, title: str, marker: str) -> ExistingIssue | None:
        self._record("find_issue", title, marker)
        for issue in self.issues:
            if issue.title == title and marker in issue.body:
                return issue
        return None

    def create_issue(self, title: str, body: str, labels: list[str]) -> ExistingIssue:
        self._record("create_issue", title, body, list(labels))
        issue = ExistingIssue(number=self._next_number, title=title, body=body)
        self._next_number += 1
        self.issues.append(issue)
        return issue

    def update_issue(self, number: int, title: str, body: str) -> None:
        self._record("update_issue", number, title, body)
        for issue in self.issues:
            if issue.number == number:
                issue.title = title
                issue.body = body


def _by_name(updates: list[CandidateUpdate]) -> list[CandidateUpdate]:
    return sorted(updates, key=lambda u: u.name)


class FakeEcosystem:
    """Ecosystem that renders one ``name@version`` line per update."""

    def __init__(self, name: str = "npm", manifest: str | None = "package.json"):
        self.name = name
        self.authoritative_manifest = manifest
        self.updates: list[CandidateUpdate] = []
        self.lookup_failures: list[str] = []
        self.detected: list[DetectedDependency] = []
        self.generated: list[list[CandidateUpdate]] = []

    def scan(self) -> list[CandidateUpdate]:
        return list(self.updates)

    def dependencies(self) -> list[DetectedDependency]:
        return list(self.detected)

    def generate_file_updates(self, updates: list[CandidateUpdate]) -> list[FileUpdate]:
        self.generated.append(list(updates))
        by_file: dict[str, list[CandidateUpdate]] = {}
        for update in updates:
            by_file.setdefault(update.source_file, []).append(update)
        return [
            FileUpdate(
                path=path,
                content="".join(f"{u.name}@{u.new_version}\n" for u in _by_name(items)),
            )
            for path, items in by_file.items()
        ]


def write_manifest(root: Path, path: str, updates: list[CandidateUpdate]) -> None:
    """Write the pre-update content FakeEcosystem would replace."""
    target = root / path
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(
        "".join(f"{u.name}@{u.current_version}\n" for u in _by_name(updates))
    )
