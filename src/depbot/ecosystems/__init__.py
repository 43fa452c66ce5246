"""Dependency ecosystems: manifest scanning and file regeneration."""

from pathlib import Path

from depbot.ecosystems.actions import ActionsEcosystem
from depbot.ecosystems.base import (
    Ecosystem,
    ScanResult,
    generate_for,
    manifests_for,
    scan_all,
)
from depbot.ecosystems.npm import NpmEcosystem
from depbot.ecosystems.pip import PipEcosystem
from depbot.ecosystems.registry import RegistryClient, RegistryConfig


def default_ecosystems(root: Path, registry: RegistryClient) -> list[Ecosystem]:
    return [
        NpmEcosystem(root, registry),
        PipEcosystem(root, registry),
        ActionsEcosystem(root, registry),
    ]


__all__ = [
    "ActionsEcosystem",
    "Ecosystem",
    "NpmEcosystem",
    "PipEcosystem",
    "RegistryClient",
    "RegistryConfig",
    "ScanResult",
    "default_ecosystems",
    "generate_for",
    "manifests_for",
    "scan_all",
]
