"""Glob and regex matching for package names and file paths.

Path patterns use gitignore-like globs on top of :mod:`fnmatch`: ``*``
crosses directory separators, and a leading ``**/`` also matches at the
repository root.
"""

from __future__ import annotations

import fnmatch
import re


def normalize_path(path: str) -> str:
    """Strip a leading ``./`` or ``/`` and use forward slashes."""
    path = path.replace("\\", "/").strip()
    while path.startswith("./"):
        path = path[2:]
    return path.lstrip("/")


def path_matches(path: str, pattern: str) -> bool:
    """Check if a repository-relative path matches a glob pattern."""
    path = normalize_path(path)
    pattern = normalize_path(pattern)
    if not pattern:
        return False

    candidates = [pattern]
    if pattern.startswith("**/"):
        candidates.append(pattern[3:])
    if pattern.endswith("/"):
        candidates.append(pattern + "*")

    return any(fnmatch.fnmatchcase(path, p) for p in candidates)


def any_path_matches(path: str, patterns: list[str] | tuple[str, ...]) -> bool:
    return any(path_matches(path, pattern) for pattern in patterns)


def name_matches(name: str, pattern: str) -> bool:
    """Match a package name against a glob, or a regex written as ``/.../``."""
    if len(pattern) > 2 and pattern.startswith("/") and pattern.endswith("/"):
        try:
            return re.search(pattern[1:-1], name) is not None
        except re.error:
            return False
    return fnmatch.fnmatchcase(name.lower(), pattern.lower())
