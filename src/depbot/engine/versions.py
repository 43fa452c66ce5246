"""Version normalization, ordering and upgrade classification.

Versions are compared as (major, minor, patch) tuples after stripping range
operators and ``v``/``@`` prefixes, padding missing components with zero.
An action tag like ``4`` therefore compares as ``4.0.0``.

On unparsable input :func:`classify` returns ``PATCH`` and
:func:`is_upgrade` returns ``False``.
"""

from __future__ import annotations

import re

from depbot.errors import ClassificationError
from depbot.models import UpdateType

DYNAMIC_VERSIONS = frozenset({"latest", "*", "main", "master", "develop", "dev"})

_PREFIX_RE = re.compile(r"^(?:[\^~<>=!]+|[vV@])+")
_COMPONENT_RE = re.compile(r"^(\d+)")

VersionTuple = tuple[int, int, int]


def strip_prefix(version: str) -> str:
    """Remove range operators and a ``v``/``@`` prefix: ``^v1.2`` -> ``1.2``."""
    return _PREFIX_RE.sub("", version.strip()).strip()


def parse_version(version: str) -> VersionTuple:
    """Parse a version string into a padded (major, minor, patch) tuple.

    Raises:
        ClassificationError: If the string has no leading numeric component.
    """
    cleaned = strip_prefix(version)
    if not cleaned:
        raise ClassificationError(f"empty version: {version!r}")

    # Drop build metadata and pre-release tail: 1.2.3-beta.1+sha -> 1.2.3
    core = re.split(r"[+\-\s]", cleaned, maxsplit=1)[0]
    parts: list[int] = []
    for raw in core.split(".")[:3]:
        match = _COMPONENT_RE.match(raw)
        if not match:
            if raw in ("x", "X", "*") and parts:
                parts.append(0)
                continue
            raise ClassificationError(f"unparsable version: {version!r}")
        parts.append(int(match.group(1)))

    while len(parts) < 3:
        parts.append(0)
    return parts[0], parts[1], parts[2]


def compare(current: str, latest: str) -> int | None:
    """Return -1, 0 or 1 comparing ``latest`` to ``current``; None if unparsable."""
    try:
        a = parse_version(current)
        b = parse_version(latest)
    except ClassificationError:
        return None
    return (b > a) - (b < a)


def is_upgrade(current: str, latest: str) -> bool:
    """True only when ``latest`` is strictly newer than ``current``."""
    return compare(current, latest) == 1


def classify(current: str, latest: str) -> UpdateType:
    """Classify the change from ``current`` to ``latest``.

    Non-upgrades and unparsable pairs are reported as ``PATCH``.
    """
    try:
        a = parse_version(current)
        b = parse_version(latest)
    except ClassificationError:
        return UpdateType.PATCH

    if b <= a:
        return UpdateType.PATCH
    if b[0] > a[0]:
        return UpdateType.MAJOR
    if b[0] == a[0] and b[1] > a[1]:
        return UpdateType.MINOR
    return UpdateType.PATCH


def is_dynamic_version(version: str) -> bool:
    """Check for markers like ``latest`` or ``*`` that float instead of pinning."""
    return version.strip().strip("`\"'").lower() in DYNAMIC_VERSIONS
