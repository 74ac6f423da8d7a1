"""SQLite-backed record store with optimistic concurrency.

Implements the persistent store the engine consumes: insert, get, update by
key (optionally conditioned on a version token), equality-filtered find, and
delete by key.
Every method is a coroutine; blocking sqlite3 calls run in a worker thread
and are serialized by a per-store lock.  Uses parameterized queries
exclusively; column identifiers are checked against the table schema.
"""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from collections.abc import Mapping
from typing import Any, Protocol

import structlog

from flancer.domain.errors import (
    ConcurrentModification,
    DuplicateRecord,
    RecordNotFound,
    TransientError,
)
from flancer.state.schema import JSON_COLUMNS, TABLE_KEYS
from flancer.state.serializers import decode_json, to_column

logger = structlog.get_logger()

VERSION_COLUMN = "version"


class RecordStore(Protocol):
    """Persistent store consumed by the negotiation engine."""

    async def insert(self, table: str, record: Mapping[str, Any]) -> dict[str, Any]: ...

    async def get(self, table: str, key: str) -> dict[str, Any]: ...

    async def update(
        self,
        table: str,
        key: str,
        patch: Mapping[str, Any],
        expected_version: int | None = None,
    ) -> dict[str, Any]: ...

    async def find(
        self, table: str, filters: Mapping[str, Any] | None = None
    ) -> list[dict[str, Any]]: ...

    async def delete(self, table: str, key: str) -> None: ...

class SQLiteRecordStore:
    """Persist and retrieve marketplace records in SQLite.

    Tables carrying a ``version`` column get it incremented on every update;
    passing ``expected_version`` to :meth:`update` turns the write into a
    compare-and-swap.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialize with an open database connection.

        Args:
            conn: An open sqlite3.Connection whose database already has the
                  marketplace tables (see ``init_marketplace_tables``) and was
                  opened with ``check_same_thread=False``.
        """
        self._conn = conn
        self._lock = threading.Lock()
        self._columns: dict[str, frozenset[str]] = {}

    # ------------------------------------------------------------------
    # Public coroutine API
    # ------------------------------------------------------------------

    async def insert(self, table: str, record: Mapping[str, Any]) -> dict[str, Any]:
        """Insert *record* and return the stored row.

        Raises:
            DuplicateRecord: If the record violates a uniqueness constraint.
        """
        return await self._run(self._insert_sync, table, dict(record))

    async def get(self, table: str, key: str) -> dict[str, Any]:
        """Return the row identified by *key*.

        Raises:
            RecordNotFound: If no row has that key.
        """
        return await self._run(self._get_sync, table, key)

    async def update(
        self,
        table: str,
        key: str,
        patch: Mapping[str, Any],
        expected_version: int | None = None,
    ) -> dict[str, Any]:
        """Apply *patch* to the row identified by *key* and return the updated row.

        Raises:
            ConcurrentModification: If *expected_version* no longer matches.
            RecordNotFound: If no row has that key.
        """
        return await self._run(self._update_sync, table, key, dict(patch), expected_version)

    async def find(
        self, table: str, filters: Mapping[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Return rows matching every ``column == value`` pair in *filters*.

        Rows come back in insertion order.
        """
        return await self._run(self._find_sync, table, dict(filters or {}))

    async def delete(self, table: str, key: str) -> None:
        """Remove the row identified by *key*.

        Raises:
            RecordNotFound: If no row has that key.
        """
        await self._run(self._delete_sync, table, key)

    async def ping(self) -> None:
        """Round-trip a trivial query; used by the readiness probe."""
        await self._run(self._ping_sync)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run(self, fn: Any, *args: Any) -> Any:
        try:
            return await asyncio.to_thread(self._locked, fn, *args)
        except sqlite3.OperationalError as exc:
            logger.warning("store_operational_error", error=str(exc))
            raise TransientError(f"Store unavailable: {exc}") from exc

    def _locked(self, fn: Any, *args: Any) -> Any:
        with self._lock:
            return fn(*args)

    def _key_column(self, table: str) -> str:
        if table not in TABLE_KEYS:
            msg = f"Unknown table: {table!r}"
            raise ValueError(msg)
        return TABLE_KEYS[table]

    def _table_columns(self, table: str) -> frozenset[str]:
        if table not in self._columns:
            cursor = self._conn.execute(f"PRAGMA table_info({table})")
            self._columns[table] = frozenset(row[1] for row in cursor.fetchall())
        return self._columns[table]

    def _check_columns(self, table: str, columns: Any) -> None:
        unknown = set(columns) - self._table_columns(table)
        if unknown:
            msg = f"Unknown column(s) for {table}: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

    def _row_to_dict(self, table: str, row: sqlite3.Row) -> dict[str, Any]:
        result = dict(row)
        for column in JSON_COLUMNS.get(table, frozenset()):
            if column in result:
                result[column] = decode_json(result[column])
        return result

    def _select_one(self, table: str, key: str) -> dict[str, Any] | None:
        key_column = self._key_column(table)
        prev_factory = self._conn.row_factory
        self._conn.row_factory = sqlite3.Row
        try:
            cursor = self._conn.execute(
                f"SELECT * FROM {table} WHERE {key_column} = ?", (key,)
            )
            row = cursor.fetchone()
        finally:
            self._conn.row_factory = prev_factory
        return self._row_to_dict(table, row) if row is not None else None

    def _insert_sync(self, table: str, record: dict[str, Any]) -> dict[str, Any]:
        key_column = self._key_column(table)
        if key_column not in record:
            msg = f"Record for {table} is missing its key column {key_column!r}"
            raise ValueError(msg)
        self._check_columns(table, record)

        columns = list(record)
        placeholders = ", ".join("?" for _ in columns)
        try:
            self._conn.execute(
                f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
                [to_column(record[c]) for c in columns],
            )
        except sqlite3.IntegrityError as exc:
            self._conn.rollback()
            raise DuplicateRecord(table, str(exc)) from exc
        self._conn.commit()

        return self._get_sync(table, record[key_column])

    def _get_sync(self, table: str, key: str) -> dict[str, Any]:
        row = self._select_one(table, key)
        if row is None:
            raise RecordNotFound(table, key)
        return row

    def _update_sync(
        self,
        table: str,
        key: str,
        patch: dict[str, Any],
        expected_version: int | None,
    ) -> dict[str, Any]:
        key_column = self._key_column(table)
        if key_column in patch or VERSION_COLUMN in patch:
            msg = f"Cannot patch {key_column!r} or {VERSION_COLUMN!r}"
            raise ValueError(msg)
        self._check_columns(table, patch)

        versioned = VERSION_COLUMN in self._table_columns(table)
        if expected_version is not None and not versioned:
            msg = f"Table {table} has no {VERSION_COLUMN!r} column"
            raise ValueError(msg)

        assignments = [f"{column} = ?" for column in patch]
        if versioned:
            assignments.append(f"{VERSION_COLUMN} = {VERSION_COLUMN} + 1")
        if not assignments:
            return self._get_sync(table, key)

        params: list[Any] = [to_column(value) for value in patch.values()]
        where = f"{key_column} = ?"
        params.append(key)
        if expected_version is not None:
            where += f" AND {VERSION_COLUMN} = ?"
            params.append(expected_version)

        cursor = self._conn.execute(
            f"UPDATE {table} SET {', '.join(assignments)} WHERE {where}", params
        )
        self._conn.commit()

        if cursor.rowcount == 0:
            if expected_version is None or self._select_one(table, key) is None:
                raise RecordNotFound(table, key)
            raise ConcurrentModification(table, key, expected_version)

        return self._get_sync(table, key)

    def _find_sync(self, table: str, filters: dict[str, Any]) -> list[dict[str, Any]]:
        self._key_column(table)
        self._check_columns(table, filters)

        conditions = [f"{column} = ?" for column in filters]
        params = [to_column(value) for value in filters.values()]

        where_clause = ""
        if conditions:
            where_clause = "WHERE " + " AND ".join(conditions)
        order_clause = "ORDER BY rowid"

        prev_factory = self._conn.row_factory
        self._conn.row_factory = sqlite3.Row
        try:
            cursor = self._conn.execute(
                f"SELECT * FROM {table} {where_clause} {order_clause}", params
            )
            rows = cursor.fetchall()
        finally:
            self._conn.row_factory = prev_factory

        return [self._row_to_dict(table, row) for row in rows]

    def _delete_sync(self, table: str, key: str) -> None:
        key_column = self._key_column(table)
        cursor = self._conn.execute(f"DELETE FROM {table} WHERE {key_column} = ?", (key,))
        self._conn.commit()
        if cursor.rowcount == 0:
            raise RecordNotFound(table, key)

    def _ping_sync(self) -> None:
        self._conn.execute("SELECT 1")
