"""Factory pattern for creating counter store instances."""

from __future__ import annotations

from sqlalchemy import Engine, create_engine

from route_limits.adapters.counter_store.base import AbstractCounterStore
from route_limits.adapters.counter_store.file_store import FileCounterStore
from route_limits.adapters.counter_store.table_store import TableCounterStore
from route_limits.core.config import RateLimitSettings
from route_limits.core.context import ExecutionContext
from route_limits.core.errors import ValidationAppError


def create_counter_store(
    rate_settings: RateLimitSettings,
    context: ExecutionContext,
    *,
    engine: Engine | None = None,
) -> AbstractCounterStore:
    """Instantiate the counter store for the configured driver.

    Validates driver-specific requirements and routes to the matching store.

    Args:
        rate_settings: Resolved rate limit settings.
        context: Execution context (marks rows written by test runs).
        engine: Pre-built SQLAlchemy engine for the db driver; built from
            ``db_url`` when omitted.

    Returns:
        AbstractCounterStore: Configured store instance.

    Raises:
        ValidationAppError: If driver-specific requirements are not met.
    """
    driver = (rate_settings.driver or "").lower()

    if driver == "file":
        if not rate_settings.file_directory:
            raise ValidationAppError(
                code="rate_limit_missing_file_directory",
                message="File driver requires RATE_LIMIT_FILE_DIRECTORY",
            )
        return FileCounterStore(rate_settings.file_directory)

    if driver == "db":
        if not rate_settings.db_table:
            raise ValidationAppError(
                code="rate_limit_missing_db_table",
                message="Db driver requires a non-empty RATE_LIMIT_DB_TABLE",
            )
        if engine is None:
            if not rate_settings.db_url:
                raise ValidationAppError(
                    code="rate_limit_missing_db_url",
                    message="Db driver requires RATE_LIMIT_DB_URL",
                )
            engine = create_engine(rate_settings.db_url)
        return TableCounterStore(
            engine,
            rate_settings.table_name,
            test_data=context.is_test,
            sweep_all=rate_settings.exclude_tests,
        )

    raise ValidationAppError(
        code="rate_limit_unknown_driver",
        message=f"Unknown rate limit driver: '{driver}'. Supported drivers: file, db",
    )
