"""Candidate filtering applied before grouping."""

from __future__ import annotations

import dataclasses
import logging

from depbot.config import ReconciliationConfig
from depbot.engine import versions
from depbot.models import CandidateUpdate, UpdateType
from depbot.patterns import any_path_matches, name_matches

logger = logging.getLogger(__name__)


def allowed_by_strategy(update: CandidateUpdate, strategy: str) -> bool:
    """``all`` keeps everything; otherwise keep that severity and below."""
    if strategy == "all":
        return True
    limit = UpdateType(strategy)
    return update.update_type.rank <= limit.rank


def rejection_reason(update: CandidateUpdate, config: ReconciliationConfig) -> str | None:
    """Why an update is dropped, or None if it survives."""
    if any(name_matches(update.name, pattern) for pattern in config.ignore):
        return "ignored package"
    if config.ignore_paths and any_path_matches(update.source_file, config.ignore_paths):
        return "ignored path"
    if config.respect_latest and versions.is_dynamic_version(update.current_version):
        return "dynamic version"
    if not versions.is_upgrade(update.current_version, update.new_version):
        return "not an upgrade"
    if config.exclude_major and update.is_major:
        return "major excluded"
    if not allowed_by_strategy(update, config.strategy):
        return f"outside strategy '{config.strategy}'"
    return None


def prepare_candidates(
    updates: list[CandidateUpdate], config: ReconciliationConfig
) -> list[CandidateUpdate]:
    """Drop updates the configuration excludes, non-upgrades and duplicates.

    The update type is recomputed from the versions so a mislabelled scan
    result cannot slip a major past ``exclude_major``.
    """
    kept: list[CandidateUpdate] = []
    seen: set[tuple[str, str, str, str]] = set()

    for update in updates:
        actual = versions.classify(update.current_version, update.new_version)
        if actual is not update.update_type:
            update = dataclasses.replace(update, update_type=actual)

        reason = rejection_reason(update, config)
        if reason:
            logger.debug(
                "Skipping %s %s -> %s (%s)",
                update.name,
                update.current_version,
                update.new_version,
                reason,
            )
            continue

        key = (update.ecosystem, update.source_file, update.name, update.new_version)
        if key in seen:
            continue
        seen.add(key)
        kept.append(update)

    return kept
