"""Find the open pull request that already represents a group.

Strategies are tried in order and the first hit wins. Structural identity
(branch name, exact title) is preferred over the title-similarity heuristic
to keep false positives down.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from depbot.config import ReconciliationConfig
from depbot.engine.body import branch_name, is_legacy_branch
from depbot.models import ExistingChangeRequest, MatchBasis, MatchResult, UpdateGroup

_GROUPED_RE = re.compile(
    r"\bupdate\s+\d+\s+(?:[\w./-]+\s+){0,3}(?:dependencies|packages|actions|images)\b"
    r"|\((?:major|minor|patch|non-major)\)"
    r"|\bnon-major\b"
    r"|\bupdate all\b",
    re.IGNORECASE,
)
_SINGLE_RE = re.compile(
    r"\bupdate\s+(?:dependency|action|image|package)\s+(\S+?)(?:\s+to\s+\S+)?\s*$",
    re.IGNORECASE,
)
_MAJOR_RE = re.compile(r"(?<!non-)\bmajor\b", re.IGNORECASE)

TITLE_CATEGORIES = {
    "ci-actions": re.compile(r"github[ -]actions?|\bworkflows?\b|\bupdate action\b", re.I),
    "container": re.compile(r"\bdocker\b|container images?|\bupdate image\b", re.I),
    "npm": re.compile(r"\bnpm\b", re.I),
    "python": re.compile(r"\bpython\b|\bpypi\b|\bpip\b", re.I),
    "composer": re.compile(r"\bcomposer\b", re.I),
}
# Categories whose titles are similar on the category alone
SPECIAL_CATEGORIES = frozenset({"ci-actions", "container"})


def title_categories(title: str) -> frozenset[str]:
    """Ecosystem categories a title refers to."""
    return frozenset(
        category for category, pattern in TITLE_CATEGORIES.items() if pattern.search(title)
    )


def is_grouped_title(title: str) -> bool:
    return _GROUPED_RE.search(title) is not None


def single_package_name(title: str) -> str | None:
    match = _SINGLE_RE.search(title.strip())
    return match.group(1).lower() if match else None


def mentions_major(title: str) -> bool:
    return _MAJOR_RE.search(title) is not None


def is_similar_title(existing: str, new: str) -> bool:
    """Heuristic title similarity; any discriminator mismatch means not similar."""
    existing_categories = title_categories(existing)
    new_categories = title_categories(new)
    if existing_categories != new_categories:
        return False

    existing_pkg = single_package_name(existing)
    new_pkg = single_package_name(new)
    if existing_pkg and new_pkg:
        return existing_pkg == new_pkg

    same_major = mentions_major(existing) == mentions_major(new)
    if existing_categories & SPECIAL_CATEGORIES:
        return same_major

    if is_grouped_title(existing) and is_grouped_title(new):
        return same_major

    return False


def is_foreign(request: ExistingChangeRequest, config: ReconciliationConfig) -> bool:
    """True if the request belongs to another automation tool."""
    head = request.head_branch.lower()
    author = request.author.lower()
    return any(marker in head or marker in author for marker in config.foreign_markers)


def is_bot_request(request: ExistingChangeRequest, config: ReconciliationConfig) -> bool:
    """True if the request was opened by this bot (author or branch prefix)."""
    if is_foreign(request, config):
        return False
    if request.head_branch.startswith(f"{config.branch_prefix}/"):
        return True
    author = request.author.lower()
    return author in (a.lower() for a in config.bot_authors) or config.branch_prefix in author


def candidate_requests(
    requests: Iterable[ExistingChangeRequest],
    config: ReconciliationConfig,
    exclude: Iterable[int] = (),
) -> list[ExistingChangeRequest]:
    excluded = set(exclude)
    return [r for r in requests if r.number not in excluded and is_bot_request(r, config)]


def _structural_basis(
    group: UpdateGroup, title: str, request: ExistingChangeRequest, config: ReconciliationConfig
) -> MatchBasis | None:
    if request.head_branch == branch_name(group.name, config.branch_prefix):
        return MatchBasis.EXACT_BRANCH
    if title and request.title.strip().lower() == title.strip().lower():
        return MatchBasis.TITLE_EXACT
    if is_legacy_branch(request.head_branch, group.name, config.branch_prefix):
        return MatchBasis.LEGACY_BRANCH
    return None


_BASIS_ORDER = [
    MatchBasis.EXACT_BRANCH,
    MatchBasis.TITLE_EXACT,
    MatchBasis.LEGACY_BRANCH,
    MatchBasis.TITLE_SIMILARITY,
]


def find_all_matches(
    group: UpdateGroup,
    requests: Iterable[ExistingChangeRequest],
    config: ReconciliationConfig,
    exclude: Iterable[int] = (),
) -> list[MatchResult]:
    """All structural matches (strategies 1-3), best first."""
    title = group.title
    results = []
    for request in candidate_requests(requests, config, exclude):
        basis = _structural_basis(group, title, request, config)
        if basis is not None:
            results.append(MatchResult(matched=request, basis=basis))
    results.sort(key=lambda r: (_BASIS_ORDER.index(r.basis), r.matched.number))
    return results


def find_match(
    group: UpdateGroup,
    requests: Iterable[ExistingChangeRequest],
    config: ReconciliationConfig,
    exclude: Iterable[int] = (),
) -> MatchResult:
    """Find the existing request for ``group``; empty MatchResult if none."""
    candidates = candidate_requests(requests, config, exclude)

    structural = find_all_matches(group, candidates, config)
    if structural:
        return structural[0]

    if group.title:
        for request in sorted(candidates, key=lambda r: r.number):
            if is_similar_title(request.title, group.title):
                return MatchResult(matched=request, basis=MatchBasis.TITLE_SIMILARITY)

    return MatchResult()
