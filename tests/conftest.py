"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import random
import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config import Settings  # noqa: E402
from neuroplay.engine.clock import ManualClock  # noqa: E402
from neuroplay.store.memory import InMemoryRecordStore  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (sqlite / mocked HTTP)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def settings():
    """Settings isolated from the environment: memory store, no log file."""
    return Settings(
        _env_file=None,
        store_backend="memory",
        database_url="sqlite://",
        checkpoint_interval_seconds=10.0,
        recovery_grace_seconds=5.0,
        session_expiry_hours=24,
        adaptive_mode_default=True,
        log_level="DEBUG",
        log_file=None,
    )


@pytest.fixture
def clock():
    """Manual clock starting at 2025-01-01 12:00 UTC, 0 ms."""
    return ManualClock()


@pytest.fixture
def store():
    """Fresh in-memory record store."""
    return InMemoryRecordStore()


@pytest.fixture
def rng():
    """Seeded random source for reproducible challenges."""
    return random.Random(1234)


@pytest.fixture
def sample_session_row():
    """An active session row as a store would return it."""
    return {
        "id": "session-001",
        "game_id": "memoria-colorida",
        "actor_id": "actor-1",
        "level": 3,
        "score": 40,
        "status": "active",
        "performance_snapshot": {
            "round_number": 4,
            "lives": 2,
            "moves": 14,
            "correct_moves": 12,
            "consecutive_correct": 1,
            "consecutive_errors": 0,
            "max_level": 4,
            "longest_sequence": 6,
            "reaction_time_total_ms": 8400,
            "reaction_time_count": 12,
        },
        "context": {"adaptive": True},
        "started_at": "2025-01-01T11:30:00+00:00",
        "last_checkpoint_at": "2025-01-01T11:50:00+00:00",
        "ended_at": None,
    }
