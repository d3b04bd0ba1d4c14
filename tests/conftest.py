"""Test configuration."""

import os
from collections.abc import Generator
from datetime import datetime, timezone
from pathlib import Path

import pytest
from dotenv import load_dotenv
from pytest import Config

# Settings are read at import time, so the environment is prepared first
os.environ["TESTING"] = "true"

project_dir = Path(__file__).parent.parent
env_test_file = project_dir / ".env.test"
if env_test_file.exists():
    load_dotenv(env_test_file, override=True)

from timetiles.core.logging import configure_logging  # noqa: E402
from timetiles.core.store import MemoryDataStore  # noqa: E402

fixture = pytest.fixture

pytest_plugins: list[str] = [
    "tests.fixtures.geocoding",
    "tests.fixtures.files",
]


@fixture(scope="session")
def project_root() -> Path:
    """Get the project root directory."""
    return project_dir


@fixture
def memory_store() -> Generator[MemoryDataStore, None, None]:
    """Fresh in-memory data store per test."""
    store = MemoryDataStore()
    yield store
    store.reset()


class FixedClock:
    """Settable clock returning aware UTC datetimes."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@fixture
def fixed_clock() -> FixedClock:
    return FixedClock(datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc))


def pytest_configure(config: Config) -> None:
    """Configure pytest.

    Args:
        config: Pytest configuration object
    """
    configure_logging(testing=True)
    config.addinivalue_line("markers", "integration: mark test as an integration test")
