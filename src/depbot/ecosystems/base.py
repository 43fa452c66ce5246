"""Ecosystem interface and the concurrent scan fan-out."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from depbot.models import CandidateUpdate, DetectedDependency, FileUpdate, ScanFailures

logger = logging.getLogger(__name__)

SKIP_DIRS = frozenset({"node_modules", ".venv", "venv", ".git", "vendor", ".tox"})


class Ecosystem(Protocol):
    """A dependency-management system with its own manifests and registry."""

    name: str
    # Manifest whose removal makes every request for this ecosystem obsolete
    authoritative_manifest: str | None
    # Packages whose registry lookup failed during the last scan
    lookup_failures: list[str]

    def scan(self) -> list[CandidateUpdate]:
        """Available upgrades for every dependency this ecosystem manages."""
        ...

    def dependencies(self) -> list[DetectedDependency]:
        """Every dependency declared in this ecosystem's manifests."""
        ...

    def generate_file_updates(self, updates: list[CandidateUpdate]) -> list[FileUpdate]:
        """New content for each manifest touched by ``updates``."""
        ...


def find_files(root: Path, patterns: Iterable[str]) -> list[Path]:
    """Find files matching glob patterns anywhere under ``root``."""
    found: list[Path] = []
    for pattern in patterns:
        for path in sorted(root.glob(f"**/{pattern}")):
            rel = path.relative_to(root)
            if any(part in SKIP_DIRS for part in rel.parts[:-1]):
                continue
            if path.is_file() and path not in found:
                found.append(path)
    return found


def relative(root: Path, path: Path) -> str:
    return path.relative_to(root).as_posix()


@dataclass
class ScanResult:
    """Joined scan output and what could not be scanned."""

    updates: list[CandidateUpdate] = field(default_factory=list)
    failures: ScanFailures = field(default_factory=ScanFailures)


def scan_all(ecosystems: list[Ecosystem]) -> ScanResult:
    """Scan every ecosystem concurrently and join the results.

    A failing scan is logged, contributes nothing and is recorded in
    ``failures`` along with individual lookups that failed. Updates keep the
    order of ``ecosystems`` regardless of completion order.
    """
    result = ScanResult()
    if not ecosystems:
        return result

    found: dict[str, list[CandidateUpdate]] = {}
    with ThreadPoolExecutor(max_workers=len(ecosystems)) as executor:
        future_to_eco = {executor.submit(eco.scan): eco for eco in ecosystems}
        for future in as_completed(future_to_eco):
            eco = future_to_eco[future]
            try:
                found[eco.name] = future.result()
            except Exception:
                logger.exception("Scan failed for %s", eco.name)
                result.failures.ecosystems.add(eco.name)
                continue
            logger.info("%s: %d update(s) available", eco.name, len(found[eco.name]))
            for name in eco.lookup_failures:
                result.failures.packages.add((eco.name, name))

    result.updates = [update for eco in ecosystems for update in found.get(eco.name, [])]
    return result


def manifests_for(ecosystems: list[Ecosystem]) -> dict[str, str]:
    return {
        eco.name: eco.authoritative_manifest for eco in ecosystems if eco.authoritative_manifest
    }


def generate_for(ecosystems: list[Ecosystem], updates: list[CandidateUpdate]) -> list[FileUpdate]:
    """Route updates to their ecosystem's generator and merge the results."""
    by_name = {eco.name: eco for eco in ecosystems}
    files: list[FileUpdate] = []
    for name in dict.fromkeys(u.ecosystem for u in updates):
        ecosystem = by_name.get(name)
        if ecosystem is None:
            logger.warning("No generator for ecosystem %s", name)
            continue
        files.extend(ecosystem.generate_file_updates([u for u in updates if u.ecosystem == name]))
    return files
