"""``package.json`` dependencies resolved against the npm registry."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path

from depbot.ecosystems.base import find_files, relative
from depbot.ecosystems.registry import RegistryClient
from depbot.engine import versions
from depbot.errors import RegistryError
from depbot.models import CandidateUpdate, DetectedDependency, FileUpdate

logger = logging.getLogger(__name__)

DEPENDENCY_SECTIONS = (
    "dependencies",
    "devDependencies",
    "peerDependencies",
    "optionalDependencies",
)

# Specs that do not name a registry version
_NON_REGISTRY = ("workspace:", "file:", "link:", "git", "http:", "https:", "npm:", "github:")
_RANGE_PREFIX_RE = re.compile(r"^[\^~]|^>=")


def range_prefix(spec: str) -> str:
    """The operator in front of a version spec: ``^``, ``~``, ``>=`` or nothing."""
    match = _RANGE_PREFIX_RE.match(spec.strip())
    return match.group(0) if match else ""


def read_dependencies(content: str) -> dict[str, str]:
    """All name -> spec pairs across the dependency sections."""
    data = json.loads(content)
    deps: dict[str, str] = {}
    for section in DEPENDENCY_SECTIONS:
        for name, spec in (data.get(section) or {}).items():
            if isinstance(spec, str) and name not in deps:
                deps[name] = spec
    return deps


def update_spec(content: str, package: str, current: str, new: str) -> str:
    """Rewrite ``"package": "current"`` in place, preserving formatting."""
    pattern = re.compile(rf'("{re.escape(package)}"\s*:\s*"){re.escape(current)}(")')
    replacement = range_prefix(current) + new
    return pattern.sub(lambda m: f"{m.group(1)}{replacement}{m.group(2)}", content)


class NpmEcosystem:
    """Dependencies declared in ``package.json`` files."""

    name = "npm"
    authoritative_manifest = "package.json"

    def __init__(self, root: Path, registry: RegistryClient):
        self.root = root
        self.registry = registry
        self.lookup_failures: list[str] = []

    def manifests(self) -> list[Path]:
        return find_files(self.root, ["package.json"])

    def scan(self) -> list[CandidateUpdate]:
        updates: list[CandidateUpdate] = []
        self.lookup_failures = []
        for path in self.manifests():
            try:
                deps = read_dependencies(path.read_text())
            except (OSError, ValueError) as e:
                logger.warning("Cannot read %s: %s", path, e)
                continue

            for name, spec in deps.items():
                if spec.startswith(_NON_REGISTRY) or versions.is_dynamic_version(spec):
                    continue
                try:
                    latest = self.registry.npm_latest(name)
                except RegistryError as e:
                    logger.warning("npm lookup failed for %s: %s", name, e)
                    self.lookup_failures.append(name)
                    continue
                if not latest or not versions.is_upgrade(spec, latest):
                    continue
                updates.append(
                    CandidateUpdate(
                        name=name,
                        current_version=spec,
                        new_version=latest,
                        update_type=versions.classify(spec, latest),
                        ecosystem=self.name,
                        source_file=relative(self.root, path),
                    )
                )
        return updates

    def dependencies(self) -> list[DetectedDependency]:
        found = []
        for path in self.manifests():
            try:
                deps = read_dependencies(path.read_text())
            except (OSError, ValueError) as e:
                logger.warning("Cannot read %s: %s", path, e)
                continue
            source_file = relative(self.root, path)
            found.extend(
                DetectedDependency(name, spec, self.name, source_file)
                for name, spec in deps.items()
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
                content = update_spec(
                    content, update.name, update.current_version, update.new_version
                )
            if content != original:
                files.append(FileUpdate(path=source_file, content=content))
        return files
