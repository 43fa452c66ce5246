"""Data model shared by the reconciliation engine and its collaborators.

Everything here lives for a single reconciliation pass. Nothing is cached
or written back between runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class UpdateType(Enum):
    """Severity of a version change."""

    PATCH = "patch"
    MINOR = "minor"
    MAJOR = "major"

    @property
    def rank(self) -> int:
        return _UPDATE_RANK[self]

    @classmethod
    def highest(cls, types: list[UpdateType]) -> UpdateType:
        """Return the most severe type, PATCH for an empty list."""
        if not types:
            return cls.PATCH
        return max(types, key=lambda t: t.rank)


_UPDATE_RANK = {UpdateType.PATCH: 0, UpdateType.MINOR: 1, UpdateType.MAJOR: 2}


@dataclass(frozen=True)
class CandidateUpdate:
    """One available upgrade of one dependency in one manifest."""

    name: str
    current_version: str
    new_version: str
    update_type: UpdateType
    ecosystem: str
    source_file: str

    @property
    def is_major(self) -> bool:
        return self.update_type is UpdateType.MAJOR


@dataclass(frozen=True)
class DetectedDependency:
    """A dependency as declared in a manifest, whether or not it is outdated."""

    name: str
    version: str
    ecosystem: str
    source_file: str


@dataclass
class UpdateGroup:
    """A named cluster of updates slated for a single change-request."""

    name: str
    updates: list[CandidateUpdate]
    update_type: UpdateType = UpdateType.PATCH
    title: str = ""
    body: str = ""

    @property
    def ecosystems(self) -> list[str]:
        seen: list[str] = []
        for update in self.updates:
            if update.ecosystem not in seen:
                seen.append(update.ecosystem)
        return seen


@dataclass(frozen=True)
class FileUpdate:
    """Generated content for one manifest file."""

    path: str
    content: str


@dataclass
class ExistingChangeRequest:
    """An open pull request as reported by the platform."""

    number: int
    title: str
    body: str
    head_branch: str
    base_branch: str
    author: str
    labels: list[str] = field(default_factory=list)
    state: str = "open"
    url: str = ""


class MatchBasis(Enum):
    """Which matcher strategy produced a match."""

    EXACT_BRANCH = "exact-branch"
    TITLE_EXACT = "title-exact"
    LEGACY_BRANCH = "legacy-branch"
    TITLE_SIMILARITY = "title-similarity"

    @property
    def structural(self) -> bool:
        return self is not MatchBasis.TITLE_SIMILARITY


@dataclass
class MatchResult:
    """Outcome of looking up the existing request for a group."""

    matched: ExistingChangeRequest | None = None
    basis: MatchBasis | None = None

    def __bool__(self) -> bool:
        return self.matched is not None


@dataclass(frozen=True)
class RecordedUpdate:
    """A package/version entry recovered from a request body."""

    name: str
    current_version: str
    new_version: str
    source_file: str | None = None
    ecosystem: str | None = None


@dataclass
class ScanFailures:
    """What a scan could not look at: whole ecosystems or single packages.

    A package absent from a scan that failed tells nothing about whether its
    update is still needed.
    """

    ecosystems: set[str] = field(default_factory=set)
    packages: set[tuple[str, str]] = field(default_factory=set)

    def __bool__(self) -> bool:
        return bool(self.ecosystems or self.packages)

    def covers(self, ecosystem: str | None, name: str) -> bool:
        """True if ``name`` may be missing from the scan because of a failure.

        With no known ecosystem any failure counts.
        """
        if ecosystem is None:
            return bool(self.ecosystems) or any(n == name for _, n in self.packages)
        return ecosystem in self.ecosystems or (ecosystem, name) in self.packages


class CloseReason(Enum):
    """Why an existing request is obsolete."""

    RESPECT_LATEST = "respect-latest"
    IGNORED_PATH = "ignored-path"
    MANIFEST_REMOVED = "manifest-removed"
    ALREADY_SATISFIED = "already-satisfied"
    DUPLICATE = "duplicate"


@dataclass
class CloseVerdict:
    """Result of the auto-close evaluation."""

    close: bool
    reason: CloseReason | None = None
    detail: str = ""


class DecisionKind(Enum):
    """What the orchestrator decided to do for a group."""

    SKIP = "skip"
    CREATE_NEW = "create-new"
    UPDATE_IN_PLACE = "update-in-place"
    CLOSE = "close"


@dataclass
class ReconciliationDecision:
    """Tagged decision: Skip | CreateNew | UpdateInPlace(existing) | Close(existing, reason)."""

    kind: DecisionKind
    existing: ExistingChangeRequest | None = None
    reason: CloseReason | None = None

    @classmethod
    def skip(cls, existing: ExistingChangeRequest | None = None) -> ReconciliationDecision:
        return cls(DecisionKind.SKIP, existing=existing)

    @classmethod
    def create_new(cls) -> ReconciliationDecision:
        return cls(DecisionKind.CREATE_NEW)

    @classmethod
    def update_in_place(cls, existing: ExistingChangeRequest) -> ReconciliationDecision:
        return cls(DecisionKind.UPDATE_IN_PLACE, existing=existing)

    @classmethod
    def close_request(
        cls, existing: ExistingChangeRequest, reason: CloseReason
    ) -> ReconciliationDecision:
        return cls(DecisionKind.CLOSE, existing=existing, reason=reason)


@dataclass
class RequestOptions:
    """Fields sent when creating or updating a pull request."""

    title: str
    body: str
    head: str = ""
    base: str = ""
    labels: list[str] = field(default_factory=list)
    reviewers: list[str] = field(default_factory=list)
    assignees: list[str] = field(default_factory=list)


@dataclass
class CreatedRequest:
    """Identifier of a newly opened pull request."""

    number: int
    url: str


@dataclass
class ExistingIssue:
    """An open issue as reported by the platform."""

    number: int
    title: str
    body: str
    url: str = ""
