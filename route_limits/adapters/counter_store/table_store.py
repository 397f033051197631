"""Relational table counter store (SQLAlchemy Core).

The table schema is exposed as a static descriptor (:func:`build_counter_table`
and :attr:`TableCounterStore.metadata`) for an external migration tool such as
Alembic. This module never issues DDL; if the table has not been migrated yet
the store reports itself unavailable and requests run unlimited.
"""

from __future__ import annotations

import logging

from sqlalchemy import (
    Boolean,
    Column,
    Engine,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    delete,
    insert,
    inspect,
    select,
    update,
)

from route_limits.adapters.counter_store.base import (
    AbstractCounterStore,
    CounterKey,
    CounterRecord,
)

logger = logging.getLogger(__name__)


def build_counter_table(name: str, metadata: MetaData | None = None) -> Table:
    """Describe the counter table.

    Args:
        name: Physical table name (prefix included).
        metadata: MetaData to attach the table to; a fresh one when omitted.

    Returns:
        The SQLAlchemy Table descriptor.
    """

    metadata = metadata if metadata is not None else MetaData()
    return Table(
        name,
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("key_name", String(64), nullable=False),
        Column("key_value", String(255), nullable=False),
        Column("path", String(255), nullable=False),
        Column("expires", Integer, nullable=False),
        Column("current", Integer, nullable=False, default=0),
        Column("test_data", Boolean, nullable=False, default=False),
        Index(f"ix_{name}_lookup", "key_name", "key_value", "path", "expires"),
    )


class TableCounterStore(AbstractCounterStore):
    """Counter store keeping one row per active window.

    Rows written under a test-mode context carry ``test_data=True``; lookups
    only see rows of the caller's own kind so test runs and live traffic never
    share counters.
    """

    def __init__(
        self,
        engine: Engine,
        table_name: str,
        *,
        test_data: bool = False,
        sweep_all: bool = False,
        metadata: MetaData | None = None,
    ) -> None:
        """Initialize the table store.

        Args:
            engine: SQLAlchemy engine bound to the target database.
            table_name: Physical table name (prefix included).
            test_data: Whether this process writes test-mode rows.
            sweep_all: Let cleanup remove expired rows of both kinds.
            metadata: Optional shared MetaData to register the table on.
        """
        self._engine = engine
        self._table = build_counter_table(table_name, metadata)
        self._test_data = test_data
        self._sweep_all = sweep_all

    @property
    def table(self) -> Table:
        return self._table

    @property
    def metadata(self) -> MetaData:
        return self._table.metadata

    @property
    def engine(self) -> Engine:
        return self._engine

    def is_available(self) -> bool:
        available = inspect(self._engine).has_table(self._table.name)
        if not available:
            logger.debug("rate_limit.table_missing", extra={"table": self._table.name})
        return available

    def _active_rows(self, key: CounterKey, now: int):
        t = self._table
        return (
            select(t.c.id, t.c.current, t.c.expires)
            .where(
                t.c.key_name == key.key_type,
                t.c.key_value == key.key_value,
                t.c.path == key.path,
                t.c.expires > now,
                t.c.test_data == self._test_data,
            )
            .order_by(t.c.id)
            .limit(1)
        )

    def find_active(self, key: CounterKey, now: int) -> CounterRecord | None:
        with self._engine.connect() as conn:
            row = conn.execute(self._active_rows(key, now)).first()
        if row is None:
            return None
        return CounterRecord(key=key, expires=int(row.expires), current=int(row.current), ref=row.id)

    def open_window(self, key: CounterKey, expires: int, now: int) -> CounterRecord:
        """Insert a zeroed row, adopting an older active row if one won the race."""
        t = self._table
        with self._engine.begin() as conn:
            result = conn.execute(
                insert(t).values(
                    key_name=key.key_type,
                    key_value=key.key_value,
                    path=key.path,
                    expires=expires,
                    current=0,
                    test_data=self._test_data,
                )
            )
            row_id = result.inserted_primary_key[0]

        with self._engine.begin() as conn:
            winner = conn.execute(self._active_rows(key, now)).first()
            if winner is not None and winner.id != row_id:
                conn.execute(delete(t).where(t.c.id == row_id))
                logger.info("rate_limit.window_adopted", extra={"table": t.name})
                return CounterRecord(
                    key=key,
                    expires=int(winner.expires),
                    current=int(winner.current),
                    ref=winner.id,
                )

        return CounterRecord(key=key, expires=expires, current=0, ref=row_id)

    def save(self, record: CounterRecord) -> None:
        if record.ref is None:
            return
        t = self._table
        with self._engine.begin() as conn:
            conn.execute(update(t).where(t.c.id == record.ref).values(current=record.current))

    def delete_expired(self, now: int) -> int:
        if not self.is_available():
            return 0
        t = self._table
        stmt = delete(t).where(t.c.expires <= now)
        if not self._sweep_all:
            stmt = stmt.where(t.c.test_data == self._test_data)
        with self._engine.begin() as conn:
            result = conn.execute(stmt)
        return result.rowcount or 0
