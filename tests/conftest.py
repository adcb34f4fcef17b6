"""Pytest configuration and shared fixtures."""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest
from carrier_rules.config.settings import Settings
from carrier_rules.core.engine import CarrierRuleEngine
from carrier_rules.core.snapshot_loader import InMemoryRuleRepository, SnapshotBuilder
from tests.test_fixtures import AS_OF, create_example_payload


@pytest.fixture
def as_of():
    """Evaluation date shared by the tests."""
    return AS_OF


@pytest.fixture
def settings():
    """Settings with library defaults, independent of the environment."""
    return Settings(_env_file=None)


@pytest.fixture
def example_payload():
    """Raw rule payload of carrier C."""
    return create_example_payload()


@pytest.fixture
def example_snapshot(example_payload, as_of):
    """Rule snapshot of carrier C built from the example payload."""
    return SnapshotBuilder().build(example_payload, as_of, carrier_id="C")


@pytest.fixture
def repository(example_payload):
    """In-memory repository holding carrier C."""
    return InMemoryRuleRepository({"C": example_payload})


@pytest.fixture
def engine(repository, settings):
    """Rule engine over the in-memory repository, without snapshot caching."""
    return CarrierRuleEngine(repository, settings=settings, cache=False)
