"""GitHub Actions referenced from workflow files."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from depbot.ecosystems.base import relative
from depbot.ecosystems.registry import RegistryClient
from depbot.engine import versions
from depbot.errors import RegistryError
from depbot.models import CandidateUpdate, DetectedDependency, FileUpdate

logger = logging.getLogger(__name__)

WORKFLOW_GLOBS = (".github/workflows/*.yml", ".github/workflows/*.yaml")

_USES_RE = re.compile(
    r"""^\s*-?\s*uses:\s*["']?(?P<action>[\w.-]+/[\w.-]+(?:/[\w./-]+)?)@(?P<ref>[\w.-]+)["']?"""
)
_SHA_RE = re.compile(r"^[0-9a-f]{40}$")


def parse_uses(content: str) -> list[tuple[str, str]]:
    """(action, ref) pairs in order of appearance, excluding SHA pins."""
    found = []
    for line in content.splitlines():
        match = _USES_RE.match(line)
        if match and not _SHA_RE.match(match["ref"]):
            pair = (match["action"], match["ref"])
            if pair not in found:
                found.append(pair)
    return found


def repository_of(action: str) -> str:
    """``owner/repo/sub/path`` -> ``owner/repo``."""
    return "/".join(action.split("/")[:2])


def update_uses(content: str, action: str, current: str, new: str) -> str:
    pattern = re.compile(
        rf"""(uses:\s*["']?{re.escape(action)}@){re.escape(current)}(?=["'\s#]|$)""",
        re.MULTILINE,
    )
    return pattern.sub(lambda m: f"{m.group(1)}{new}", content)


class ActionsEcosystem:
    """``uses: owner/repo@ref`` steps in ``.github/workflows``."""

    name = "github-actions"
    authoritative_manifest = None

    def __init__(self, root: Path, registry: RegistryClient):
        self.root = root
        self.registry = registry
        self.lookup_failures: list[str] = []

    def manifests(self) -> list[Path]:
        found: list[Path] = []
        for pattern in WORKFLOW_GLOBS:
            found.extend(sorted(self.root.glob(pattern)))
        return found

    def scan(self) -> list[CandidateUpdate]:
        updates: list[CandidateUpdate] = []
        self.lookup_failures = []
        for path in self.manifests():
            try:
                content = path.read_text()
            except OSError as e:
                logger.warning("Cannot read %s: %s", path, e)
                continue
            for action, ref in parse_uses(content):
                try:
                    latest = self.registry.github_latest_tag(repository_of(action))
                except RegistryError as e:
                    logger.warning("Release lookup failed for %s: %s", action, e)
                    self.lookup_failures.append(action)
                    continue
                if not latest or not versions.is_upgrade(ref, latest):
                    continue
                updates.append(
                    CandidateUpdate(
                        name=action,
                        current_version=ref,
                        new_version=latest,
                        update_type=versions.classify(ref, latest),
                        ecosystem=self.name,
                        source_file=relative(self.root, path),
                    )
                )
        return updates

    def dependencies(self) -> list[DetectedDependency]:
        found = []
        for path in self.manifests():
            try:
                content = path.read_text()
            except OSError as e:
                logger.warning("Cannot read %s: %s", path, e)
                continue
            source_file = relative(self.root, path)
            found.extend(
                DetectedDependency(action, ref, self.name, source_file)
                for action, ref in parse_uses(content)
            )
        return found

    def generate_file_updates(self, updates: list[CandidateUpdate]) -> list[FileUpdate]:
        by_file: dict[str, list[CandidateUpdate]] = {}
        for update in updates:
            by_file.setdefault(update.source_file, []).append(update)

        files = []
        for source_file, file_updates in by_file.items():
            path = self.root / source_file
            if not path.exists():
                logger.warning("%s no longer exists, skipping", source_file)
                continue
            original = path.read_text()
            content = original
            for update in file_updates:
                content = update_uses(
                    content, update.name, update.current_version, update.new_version
                )
            if content != original:
                files.append(FileUpdate(path=source_file, content=content))
        return files
