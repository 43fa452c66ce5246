"""Cluster candidate updates into named groups.

Configured rules are applied first, in order; a rule claims every
still-ungrouped update whose name matches one of its patterns (and whose
severity passes its filter). Whatever is left is bucketed by ecosystem and
major vs non-major so a run yields a small, bounded number of groups.
"""

from __future__ import annotations

from depbot.config import ReconciliationConfig
from depbot.models import CandidateUpdate, UpdateGroup, UpdateType
from depbot.patterns import name_matches

ECOSYSTEM_LABELS = {
    "npm": "npm",
    "pip": "Python",
    "composer": "Composer",
    "github-actions": "GitHub Actions",
    "docker": "Docker",
}


def ecosystem_label(ecosystem: str) -> str:
    return ECOSYSTEM_LABELS.get(ecosystem, ecosystem)


def sort_updates(updates: list[CandidateUpdate]) -> list[CandidateUpdate]:
    """Sort by severity (major first), then name, then file."""
    return sorted(updates, key=lambda u: (-u.update_type.rank, u.name.lower(), u.source_file))


def make_group(name: str, updates: list[CandidateUpdate]) -> UpdateGroup:
    ordered = sort_updates(updates)
    return UpdateGroup(
        name=name,
        updates=ordered,
        update_type=UpdateType.highest([u.update_type for u in ordered]),
    )


def default_group_name(ecosystem: str, major: bool) -> str:
    return f"{ecosystem_label(ecosystem)} {'major' if major else 'non-major'} updates"


def group_by_defaults(updates: list[CandidateUpdate]) -> list[UpdateGroup]:
    """One group per (ecosystem, major) and (ecosystem, non-major)."""
    buckets: dict[tuple[str, bool], list[CandidateUpdate]] = {}
    for update in updates:
        buckets.setdefault((update.ecosystem, update.is_major), []).append(update)

    # Stable order: ecosystems alphabetically, majors first
    keys = sorted(buckets, key=lambda k: (k[0], not k[1]))
    return [
        make_group(default_group_name(eco, major), buckets[(eco, major)]) for eco, major in keys
    ]


def group_updates(
    updates: list[CandidateUpdate], config: ReconciliationConfig
) -> list[UpdateGroup]:
    """Partition updates into groups; every update lands in exactly one group."""
    pool = list(updates)
    groups: list[UpdateGroup] = []

    for rule in config.groups:
        claimed: list[CandidateUpdate] = []
        remaining: list[CandidateUpdate] = []
        for update in pool:
            severity_ok = not rule.update_types or update.update_type in rule.update_types
            if severity_ok and any(name_matches(update.name, p) for p in rule.patterns):
                claimed.append(update)
            else:
                remaining.append(update)
        pool = remaining
        if claimed:
            groups.append(make_group(rule.name, claimed))

    if pool:
        groups.extend(group_by_defaults(pool))

    return groups
