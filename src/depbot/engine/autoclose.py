"""Decide whether an existing pull request has become obsolete.

A matched request is checked here before it is updated. Any one trigger is
enough to close it:

- the dynamic-version policy now forbids an update it proposes
- a file it touches now falls under ``ignore_paths``
- its manifests are gone from disk
- everything it proposes is already satisfied by the current tree
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from pathlib import Path

from depbot.config import ReconciliationConfig
from depbot.engine import versions
from depbot.engine.body import recorded_updates, referenced_files
from depbot.models import (
    CandidateUpdate,
    CloseReason,
    CloseVerdict,
    ExistingChangeRequest,
    RecordedUpdate,
    ScanFailures,
)
from depbot.patterns import any_path_matches, normalize_path

logger = logging.getLogger(__name__)

# Manifests whose removal makes every request for that ecosystem obsolete
KNOWN_MANIFESTS: dict[str, str] = {
    "npm": "package.json",
    "composer": "composer.json",
}

CLOSE_COMMENTS = {
    CloseReason.RESPECT_LATEST: (
        "Closing this pull request: it updates dependencies pinned to dynamic versions "
        "({detail}), and `respect_latest` now leaves those untouched."
    ),
    CloseReason.IGNORED_PATH: (
        "Closing this pull request: {detail} now matches `ignore_paths`."
    ),
    CloseReason.MANIFEST_REMOVED: (
        "Closing this pull request: {detail} has been removed, so these updates no longer apply."
    ),
    CloseReason.ALREADY_SATISFIED: (
        "Closing this pull request: the proposed updates are already satisfied ({detail})."
    ),
    CloseReason.DUPLICATE: (
        "Closing this pull request as a duplicate of #{detail}."
    ),
}


def close_comment(verdict: CloseVerdict) -> str:
    template = CLOSE_COMMENTS.get(verdict.reason, "Closing this pull request: {detail}.")
    return template.format(detail=verdict.detail)


def _ecosystem_of(update: RecordedUpdate) -> str | None:
    if update.ecosystem:
        return update.ecosystem
    if not update.source_file:
        return None
    filename = normalize_path(update.source_file).rsplit("/", 1)[-1]
    for ecosystem, manifest in KNOWN_MANIFESTS.items():
        if filename == manifest:
            return ecosystem
    return None


def check_respect_latest(
    recorded: list[RecordedUpdate], config: ReconciliationConfig
) -> CloseVerdict:
    if not config.respect_latest:
        return CloseVerdict(False)
    dynamic = [u.name for u in recorded if versions.is_dynamic_version(u.current_version)]
    if dynamic:
        return CloseVerdict(True, CloseReason.RESPECT_LATEST, ", ".join(dynamic))
    return CloseVerdict(False)


def check_ignored_paths(files: list[str], config: ReconciliationConfig) -> CloseVerdict:
    if not config.ignore_paths:
        return CloseVerdict(False)
    ignored = [f for f in files if any_path_matches(f, config.ignore_paths)]
    if ignored:
        return CloseVerdict(True, CloseReason.IGNORED_PATH, ", ".join(f"`{f}`" for f in ignored))
    return CloseVerdict(False)


def check_manifests(
    recorded: list[RecordedUpdate],
    files: list[str],
    project_root: Path,
    manifests: Mapping[str, str],
) -> CloseVerdict:
    # An ecosystem's authoritative manifest going away closes its requests
    # outright, even when companion files such as lockfiles remain
    referenced = {normalize_path(f) for f in files}
    for ecosystem in sorted({e for e in (_ecosystem_of(u) for u in recorded) if e}):
        manifest = manifests.get(ecosystem)
        if (
            manifest
            and normalize_path(manifest) in referenced
            and not (project_root / manifest).exists()
        ):
            return CloseVerdict(True, CloseReason.MANIFEST_REMOVED, f"`{manifest}`")

    if files and not any((project_root / normalize_path(f)).exists() for f in files):
        return CloseVerdict(
            True, CloseReason.MANIFEST_REMOVED, ", ".join(f"`{f}`" for f in files)
        )
    return CloseVerdict(False)


def check_satisfied(
    recorded: list[RecordedUpdate],
    fresh_updates: Iterable[CandidateUpdate],
    failures: ScanFailures | None = None,
) -> CloseVerdict:
    if not recorded:
        return CloseVerdict(False)

    fresh: dict[str, list[CandidateUpdate]] = {}
    for update in fresh_updates:
        fresh.setdefault(update.name, []).append(update)

    for entry in recorded:
        ecosystem = _ecosystem_of(entry)
        candidates = [
            c for c in fresh.get(entry.name, []) if ecosystem is None or c.ecosystem == ecosystem
        ]
        if not candidates:
            # Absent only because its lookup failed: nothing is known
            if failures and failures.covers(ecosystem, entry.name):
                return CloseVerdict(False)
            continue
        for candidate in candidates:
            if candidate.new_version != entry.new_version:
                return CloseVerdict(False)
            # Unparsable or older current version: still outstanding
            if versions.compare(entry.new_version, candidate.current_version) not in (0, 1):
                return CloseVerdict(False)

    names = ", ".join(sorted({u.name for u in recorded}))
    return CloseVerdict(True, CloseReason.ALREADY_SATISFIED, names)


def should_close(
    existing: ExistingChangeRequest,
    fresh_updates: Iterable[CandidateUpdate],
    config: ReconciliationConfig,
    project_root: Path,
    manifests: Mapping[str, str] | None = None,
    failures: ScanFailures | None = None,
) -> CloseVerdict:
    """Evaluate every trigger in order; the first that fires wins.

    Args:
        existing: The open request under consideration.
        fresh_updates: All filtered candidates of the current pass.
        config: Reconciliation settings.
        project_root: Working tree used to check whether manifests exist.
        manifests: Authoritative manifest per ecosystem, merged over KNOWN_MANIFESTS.
        failures: What the scan behind ``fresh_updates`` could not look at;
            packages it covers are never taken as satisfied.
    """
    recorded = recorded_updates(existing.body)
    files = referenced_files(existing.body)
    known = {**KNOWN_MANIFESTS, **(manifests or {})}

    for verdict in (
        check_respect_latest(recorded, config),
        check_ignored_paths(files, config),
        check_manifests(recorded, files, project_root, known),
        check_satisfied(recorded, list(fresh_updates), failures),
    ):
        if verdict.close:
            logger.debug(
                "PR #%s should close (%s): %s",
                existing.number,
                verdict.reason.value,
                verdict.detail,
            )
            return verdict

    return CloseVerdict(False)
