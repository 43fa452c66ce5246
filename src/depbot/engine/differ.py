"""Compare generated file content against what a branch already holds."""

from __future__ import annotations

import logging
from pathlib import Path

from depbot.models import FileUpdate
from depbot.platform.git import GitRepo

logger = logging.getLogger(__name__)


def branch_content(repo: GitRepo, branch: str, path: str) -> bytes | None:
    """Read ``path`` from the local branch, then the remote-tracking one."""
    for ref in (branch, f"{repo.remote}/{branch}"):
        content = repo.read_file(ref, path)
        if content is not None:
            return content
    return None


def has_differences(file_updates: list[FileUpdate], branch: str, repo: GitRepo) -> bool:
    """True if any generated file differs from its content on ``branch``.

    A file that cannot be read from either ref counts as different, so the
    caller recreates the branch instead of silently skipping it.
    """
    for file in file_updates:
        existing = branch_content(repo, branch, file.path)
        if existing is None:
            logger.debug("%s not readable on %s, treating as changed", file.path, branch)
            return True
        if existing != file.content.encode():
            logger.debug("%s differs on %s", file.path, branch)
            return True
    return False


def differs_from_disk(file_updates: list[FileUpdate], project_root: Path) -> list[FileUpdate]:
    """Generated files whose content differs from the working tree."""
    changed = []
    for file in file_updates:
        target = project_root / file.path
        try:
            current = target.read_bytes()
        except OSError:
            changed.append(file)
            continue
        if current != file.content.encode():
            changed.append(file)
    return changed
