"""Pytest configuration for depbot tests."""

import pytest
from helpers import FakeEcosystem, FakePlatform

from depbot.config import ReconciliationConfig


@pytest.fixture
def config() -> ReconciliationConfig:
    return ReconciliationConfig(owner="acme", repo_name="app")


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def npm() -> FakeEcosystem:
    return FakeEcosystem()
