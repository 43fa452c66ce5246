"""Python requirements files resolved against PyPI."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from depbot.ecosystems.base import find_files, relative
from depbot.ecosystems.registry import RegistryClient
from depbot.engine import versions
from depbot.errors import RegistryError
from depbot.models import CandidateUpdate, DetectedDependency, FileUpdate

logger = logging.getLogger(__name__)

REQUIREMENT_FILES = ("requirements*.txt", "requirements/*.txt")

# name[extras] op version ; markers  # comment
_REQ_RE = re.compile(
    r"^(?P<name>[A-Za-z0-9][A-Za-z0-9._-]*)"
    r"(?P<extras>\[[^\]]*\])?"
    r"\s*(?P<op>==|>=|~=)\s*"
    r"(?P<version>[A-Za-z0-9.*+!_-]+)"
    r"(?P<rest>.*)$"
)


@dataclass
class Requirement:
    name: str
    op: str
    version: str
    line: int


def parse_requirements(content: str) -> list[Requirement]:
    """Pinned or lower-bounded requirements; options, URLs and bare names are skipped."""
    found = []
    for lineno, line in enumerate(content.splitlines()):
        stripped = line.strip()
        if not stripped or stripped.startswith(("#", "-")):
            continue
        match = _REQ_RE.match(stripped)
        if match:
            found.append(
                Requirement(match["name"], match["op"], match["version"], lineno)
            )
    return found


def update_requirement(content: str, package: str, current: str, new: str) -> str:
    """Replace the version of ``package`` keeping operator, extras and markers."""
    pattern = re.compile(
        rf"^(\s*{re.escape(package)}(?:\[[^\]]*\])?\s*(?:==|>=|~=)\s*)"
        rf"{re.escape(current)}(?=[\s;,#]|$)",
        re.MULTILINE | re.IGNORECASE,
    )
    return pattern.sub(lambda m: f"{m.group(1)}{new}", content)


class PipEcosystem:
    """Dependencies pinned in ``requirements*.txt`` files."""

    name = "pip"
    authoritative_manifest = None

    def __init__(self, root: Path, registry: RegistryClient):
        self.root = root
        self.registry = registry
        self.lookup_failures: list[str] = []

    def manifests(self) -> list[Path]:
        return find_files(self.root, REQUIREMENT_FILES)

    def scan(self) -> list[CandidateUpdate]:
        updates: list[CandidateUpdate] = []
        self.lookup_failures = []
        for path in self.manifests():
            try:
                content = path.read_text()
            except OSError as e:
                logger.warning("Cannot read %s: %s", path, e)
                continue
            for req in parse_requirements(content):
                try:
                    latest = self.registry.pypi_latest(req.name)
                except RegistryError as e:
                    logger.warning("PyPI lookup failed for %s: %s", req.name, e)
                    self.lookup_failures.append(req.name)
                    continue
                if not latest or not versions.is_upgrade(req.version, latest):
                    continue
                updates.append(
                    CandidateUpdate(
                        name=req.name,
                        current_version=req.version,
                        new_version=latest,
                        update_type=versions.classify(req.version, latest),
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
                DetectedDependency(req.name, f"{req.op}{req.version}", self.name, source_file)
                for req in parse_requirements(content)
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
                content = update_requirement(
                    content, update.name, update.current_version, update.new_version
                )
            if content != original:
                files.append(FileUpdate(path=source_file, content=content))
        return files
