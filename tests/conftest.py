"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It marks the process as a test run and keeps the global app inert so every
test builds its own app/controller with explicit settings.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"
os.environ.pop("RATE_LIMIT_DRIVER", None)
os.environ.pop("RATE_LIMIT_DEFAULT", None)
os.environ.setdefault("LOG_FORMAT", "plain")

from pathlib import Path
from unittest.mock import Mock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from route_limits.adapters.counter_store.file_store import FileCounterStore
from route_limits.adapters.counter_store.table_store import TableCounterStore
from route_limits.core.config import AppSettings, RateLimitSettings, Settings


@pytest.fixture
def clock() -> Mock:
    """Deterministic clock; set ``clock.return_value`` to move time."""
    return Mock(return_value=1_000.0)


@pytest.fixture
def counter_dir(tmp_path: Path) -> Path:
    return tmp_path / "rate_limits"


@pytest.fixture
def file_store(counter_dir: Path) -> FileCounterStore:
    return FileCounterStore(counter_dir)


@pytest.fixture
def sqlite_engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


@pytest.fixture
def table_store(sqlite_engine) -> TableCounterStore:
    """Table store whose schema was migrated (as an external tool would)."""
    store = TableCounterStore(sqlite_engine, "rate_limits")
    store.metadata.create_all(sqlite_engine)
    return store


@pytest.fixture(params=["file", "db"])
def store(request, file_store, table_store):
    """Run a test against both interchangeable backends."""
    return file_store if request.param == "file" else table_store


def make_settings(*, run_mode: str = "http", testing: bool = False, **rate_limits) -> Settings:
    """Build an isolated settings container for a test."""
    return Settings(
        testing=testing,
        app_env="development",
        app=AppSettings(run_mode=run_mode),
        rate_limits=RateLimitSettings(**rate_limits),
    )


@pytest.fixture
def settings_factory():
    return make_settings
