"""SQLite schema for the marketplace records the negotiation engine touches.

Monetary columns are TEXT so Decimal values survive without precision loss.
``negotiations.version`` is the optimistic-concurrency token and
``jobs.negotiation_id`` is UNIQUE so a negotiation can own at most one job.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

_TIMESTAMP_DEFAULT = "(strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))"

# Primary key column for every table the store may address.
TABLE_KEYS: dict[str, str] = {
    "accounts": "account_id",
    "services": "service_id",
    "negotiations": "negotiation_id",
    "offers": "offer_id",
    "agreement_confirmations": "confirmation_id",
    "jobs": "job_id",
    "notifications": "notification_id",
}

# Columns holding JSON-encoded structures rather than scalars.
JSON_COLUMNS: dict[str, frozenset[str]] = {
    "notifications": frozenset({"metadata"}),
}


def init_marketplace_tables(conn: sqlite3.Connection) -> None:
    """Create all marketplace tables and indexes if they do not already exist.

    Args:
        conn: An open sqlite3.Connection.
    """
    conn.execute(f"""
        CREATE TABLE IF NOT EXISTS accounts (
            account_id TEXT PRIMARY KEY,
            display_name TEXT NOT NULL DEFAULT '',
            active INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL DEFAULT {_TIMESTAMP_DEFAULT}
        )
    """)

    conn.execute(f"""
        CREATE TABLE IF NOT EXISTS services (
            service_id TEXT PRIMARY KEY,
            service_name TEXT NOT NULL,
            provider_id TEXT NOT NULL,
            min_price TEXT NOT NULL,
            max_price TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT {_TIMESTAMP_DEFAULT}
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS negotiations (
            negotiation_id TEXT PRIMARY KEY,
            service_id TEXT NOT NULL,
            service_name TEXT NOT NULL DEFAULT '',
            requester_id TEXT NOT NULL,
            provider_id TEXT NOT NULL,
            current_price TEXT NOT NULL,
            min_price TEXT NOT NULL,
            max_price TEXT NOT NULL,
            status TEXT NOT NULL,
            last_offer_by TEXT NOT NULL,
            offer_count INTEGER NOT NULL DEFAULT 1,
            deadline TEXT,
            job_description TEXT,
            requester_agreed INTEGER NOT NULL DEFAULT 0,
            provider_agreed INTEGER NOT NULL DEFAULT 0,
            final_agreed_price TEXT,
            job_id TEXT,
            version INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS offers (
            offer_id TEXT PRIMARY KEY,
            negotiation_id TEXT NOT NULL,
            offered_by TEXT NOT NULL,
            party_id TEXT NOT NULL,
            price TEXT NOT NULL,
            message TEXT,
            created_at TEXT NOT NULL
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS agreement_confirmations (
            confirmation_id TEXT PRIMARY KEY,
            negotiation_id TEXT NOT NULL,
            party_id TEXT NOT NULL,
            role TEXT NOT NULL,
            agreed_price TEXT NOT NULL,
            active INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS jobs (
            job_id TEXT PRIMARY KEY,
            negotiation_id TEXT NOT NULL UNIQUE,
            service_id TEXT NOT NULL,
            requester_id TEXT NOT NULL,
            provider_id TEXT NOT NULL,
            status TEXT NOT NULL,
            payment TEXT NOT NULL,
            deadline TEXT NOT NULL,
            description TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
    """)

    conn.execute(f"""
        CREATE TABLE IF NOT EXISTS notifications (
            notification_id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            type TEXT NOT NULL,
            title TEXT NOT NULL,
            message TEXT NOT NULL,
            metadata TEXT NOT NULL DEFAULT '{{}}',
            is_read INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL DEFAULT {_TIMESTAMP_DEFAULT}
        )
    """)

    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_neg_status ON negotiations (status)"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_offers_negotiation ON offers (negotiation_id)"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_confirmations_negotiation "
        "ON agreement_confirmations (negotiation_id)"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications (user_id)"
    )

    conn.commit()


def open_database(db_path: Path | str) -> sqlite3.Connection:
    """Open the marketplace database with WAL mode and all tables created.

    The connection is shared across worker threads, so ``check_same_thread``
    is disabled; ``SQLiteRecordStore`` serializes access with its own lock.

    Args:
        db_path: Path to the SQLite database file, or ``":memory:"``.

    Returns:
        An open sqlite3.Connection.
    """
    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    init_marketplace_tables(conn)
    return conn
