"""Shared pytest fixtures for the negotiation engine test suite.

Every test gets a fresh in-memory marketplace seeded with one requester,
one provider, and one service listing priced between $100 and $1000.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from decimal import Decimal

import pytest

from flancer.audit.logger import AuditLogger
from flancer.audit.store import init_audit_db
from flancer.directory.service import SQLiteDirectory
from flancer.domain.models import Party, ServiceListing
from flancer.domain.types import PartyRole
from flancer.engine.negotiation import NegotiationEngine
from flancer.notifications.dispatcher import NotificationDispatcher
from flancer.notifications.sink import SQLiteNotificationSink
from flancer.state.schema import init_marketplace_tables
from flancer.state.store import SQLiteRecordStore

REQUESTER_ID = "client-1"
PROVIDER_ID = "freelancer-1"
SERVICE_ID = "svc-logo"


@pytest.fixture
def anyio_backend() -> str:
    """Run async tests on asyncio only; the store relies on ``asyncio.to_thread``."""
    return "asyncio"


@pytest.fixture
def conn() -> Iterator[sqlite3.Connection]:
    """In-memory marketplace database with seed accounts and a service listing."""
    connection = sqlite3.connect(":memory:", check_same_thread=False)
    init_marketplace_tables(connection)
    connection.executemany(
        "INSERT INTO accounts (account_id, display_name) VALUES (?, ?)",
        [(REQUESTER_ID, "Test Client"), (PROVIDER_ID, "Test Freelancer")],
    )
    connection.execute(
        "INSERT INTO services (service_id, service_name, provider_id, min_price, max_price) "
        "VALUES (?, ?, ?, ?, ?)",
        (SERVICE_ID, "Logo design", PROVIDER_ID, "100", "1000"),
    )
    connection.commit()
    yield connection
    connection.close()


@pytest.fixture
def store(conn: sqlite3.Connection) -> SQLiteRecordStore:
    """Record store backed by the in-memory marketplace."""
    return SQLiteRecordStore(conn)


@pytest.fixture
def directory(store: SQLiteRecordStore) -> SQLiteDirectory:
    return SQLiteDirectory(store)


@pytest.fixture
def dispatcher(store: SQLiteRecordStore, directory: SQLiteDirectory) -> NotificationDispatcher:
    """Dispatcher writing to the notifications table, one attempt per message."""
    return NotificationDispatcher(SQLiteNotificationSink(store, directory), attempts=1)


@pytest.fixture
def audit_conn() -> Iterator[sqlite3.Connection]:
    connection = init_audit_db(":memory:")
    yield connection
    connection.close()


@pytest.fixture
def audit_logger(audit_conn: sqlite3.Connection) -> AuditLogger:
    return AuditLogger(audit_conn)


@pytest.fixture
def engine(
    store: SQLiteRecordStore,
    directory: SQLiteDirectory,
    dispatcher: NotificationDispatcher,
    audit_logger: AuditLogger,
) -> NegotiationEngine:
    """Engine with self-agreement disallowed (the default)."""
    return NegotiationEngine(
        store, directory, dispatcher, audit_logger=audit_logger, call_timeout=2.0
    )


@pytest.fixture
def requester() -> Party:
    return Party(party_id=REQUESTER_ID, role=PartyRole.REQUESTER)


@pytest.fixture
def provider() -> Party:
    return Party(party_id=PROVIDER_ID, role=PartyRole.PROVIDER)


@pytest.fixture
def service_listing() -> ServiceListing:
    """The seeded service listing as a model."""
    return ServiceListing(
        service_id=SERVICE_ID,
        service_name="Logo design",
        provider_id=PROVIDER_ID,
        min_price=Decimal("100"),
        max_price=Decimal("1000"),
    )
