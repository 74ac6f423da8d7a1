"""SQLite persistence for the negotiation audit trail.

The audit database is separate from the record store: it is append-only,
written synchronously by :class:`~flancer.audit.logger.AuditLogger`, and read
by the ``flancer-audit`` CLI.  Every filter is bound as a query parameter.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from flancer.audit.models import AuditEntry

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS audit_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL,
    event_type TEXT NOT NULL,
    negotiation_id TEXT,
    party_id TEXT,
    role TEXT,
    negotiation_state TEXT,
    price TEXT,
    metadata TEXT
);
CREATE INDEX IF NOT EXISTS idx_audit_negotiation ON audit_log (negotiation_id);
CREATE INDEX IF NOT EXISTS idx_audit_party ON audit_log (party_id);
CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log (timestamp);
"""

_ENTRY_COLUMNS = (
    "event_type",
    "negotiation_id",
    "party_id",
    "role",
    "negotiation_state",
    "price",
)

# filter keyword -> SQL predicate
_FILTERS = {
    "negotiation_id": "negotiation_id = ?",
    "party_id": "party_id = ?",
    "event_type": "event_type = ?",
    "from_date": "timestamp >= ?",
    "to_date": "timestamp <= ?",
}


def init_audit_db(db_path: Path | str) -> sqlite3.Connection:
    """Open (creating if needed) the audit database in WAL mode.

    Args:
        db_path: Path to the SQLite database file, or ``":memory:"``.

    Returns:
        An open connection usable from worker threads.
    """
    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.executescript(_SCHEMA)
    return conn


def insert_audit_entry(conn: sqlite3.Connection, entry: AuditEntry) -> int:
    """Append *entry* to the trail and return its row id."""
    values = entry.model_dump(mode="json", include=set(_ENTRY_COLUMNS))
    metadata = json.dumps(entry.metadata) if entry.metadata is not None else None
    columns = ("timestamp", *_ENTRY_COLUMNS, "metadata")
    placeholders = ", ".join("?" for _ in columns)

    with conn:
        cursor = conn.execute(
            f"INSERT INTO audit_log ({', '.join(columns)}) VALUES ({placeholders})",
            (
                datetime.now(tz=UTC).strftime(TIMESTAMP_FORMAT),
                *(values[c] for c in _ENTRY_COLUMNS),
                metadata,
            ),
        )
    return cursor.lastrowid or 0


def _where(filters: dict[str, str | None]) -> tuple[str, list[Any]]:
    clauses = [_FILTERS[name] for name, value in filters.items() if value is not None]
    params = [value for value in filters.values() if value is not None]
    return (f"WHERE {' AND '.join(clauses)}" if clauses else ""), params


def query_audit_trail(
    conn: sqlite3.Connection,
    *,
    negotiation_id: str | None = None,
    party_id: str | None = None,
    from_date: str | None = None,
    to_date: str | None = None,
    event_type: str | None = None,
    limit: int = 50,
    oldest_first: bool = False,
) -> list[dict[str, Any]]:
    """Return audit entries matching every given filter.

    Args:
        conn: An open audit database connection.
        negotiation_id: Only entries for this negotiation.
        party_id: Only entries recorded for this acting party.
        from_date: Only entries at or after this ISO 8601 timestamp.
        to_date: Only entries at or before this ISO 8601 timestamp.
        event_type: Only entries of this event type.
        limit: Maximum number of rows.
        oldest_first: Replay order instead of the default newest first.

    Returns:
        One dict per entry with ``metadata`` decoded from JSON.
    """
    where, params = _where(
        {
            "negotiation_id": negotiation_id,
            "party_id": party_id,
            "event_type": event_type,
            "from_date": from_date,
            "to_date": to_date,
        }
    )
    direction = "ASC" if oldest_first else "DESC"
    cursor = conn.execute(
        f"SELECT * FROM audit_log {where} "
        f"ORDER BY timestamp {direction}, id {direction} LIMIT ?",
        [*params, limit],
    )
    names = [col[0] for col in cursor.description]

    results: list[dict[str, Any]] = []
    for values in cursor.fetchall():
        row = dict(zip(names, values, strict=True))
        if row["metadata"] is not None:
            row["metadata"] = json.loads(row["metadata"])
        results.append(row)
    return results


def count_events(
    conn: sqlite3.Connection, *, negotiation_id: str | None = None
) -> dict[str, int]:
    """Return the number of entries per event type, optionally for one negotiation."""
    where, params = _where({"negotiation_id": negotiation_id})
    rows = conn.execute(
        f"SELECT event_type, COUNT(*) FROM audit_log {where} "
        "GROUP BY event_type ORDER BY event_type",
        params,
    ).fetchall()
    return {event_type: count for event_type, count in rows}


def close_audit_db(conn: sqlite3.Connection) -> None:
    """Close the audit database connection."""
    conn.close()
