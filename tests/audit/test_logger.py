"""Tests for the AuditLogger convenience class."""

from __future__ import annotations

import sqlite3
from decimal import Decimal
from unittest.mock import MagicMock

from flancer.audit.logger import AuditLogger, audit_safely
from flancer.audit.store import query_audit_trail


class TestAuditLogger:
    def test_log_negotiation_opened(
        self, audit_logger: AuditLogger, audit_conn: sqlite3.Connection
    ) -> None:
        audit_logger.log_negotiation_opened(
            "neg-1", "svc-logo", "client-1", "freelancer-1", Decimal("500")
        )
        [row] = query_audit_trail(audit_conn)
        assert row["event_type"] == "negotiation_opened"
        assert row["party_id"] == "freelancer-1"
        assert row["role"] == "provider"
        assert row["price"] == "500"
        assert row["metadata"] == {"service_id": "svc-logo", "requester_id": "client-1"}

    def test_log_offer(self, audit_logger: AuditLogger, audit_conn: sqlite3.Connection) -> None:
        audit_logger.log_offer("neg-1", "client-1", "requester", Decimal("650"), 2)
        [row] = query_audit_trail(audit_conn)
        assert row["event_type"] == "offer_made"
        assert row["metadata"] == {"offer_count": "2"}

    def test_log_agreement(self, audit_logger: AuditLogger, audit_conn: sqlite3.Connection) -> None:
        audit_logger.log_agreement("neg-1", "client-1", "requester", Decimal("650"), "both_agreed")
        [row] = query_audit_trail(audit_conn)
        assert row["event_type"] == "agreement_confirmed"
        assert row["negotiation_state"] == "both_agreed"

    def test_log_state_transition(
        self, audit_logger: AuditLogger, audit_conn: sqlite3.Connection
    ) -> None:
        audit_logger.log_state_transition(
            "neg-1", "pending", "both_agreed", "mutual_agreement", party_id="client-1"
        )
        [row] = query_audit_trail(audit_conn)
        assert row["event_type"] == "state_transition"
        assert row["negotiation_state"] == "both_agreed"
        assert row["metadata"] == {
            "from_state": "pending",
            "to_state": "both_agreed",
            "event": "mutual_agreement",
        }

    def test_log_job_materialized(
        self, audit_logger: AuditLogger, audit_conn: sqlite3.Connection
    ) -> None:
        audit_logger.log_job_materialized("neg-1", "job-1", Decimal("650"))
        [row] = query_audit_trail(audit_conn)
        assert row["event_type"] == "job_materialized"
        assert row["negotiation_state"] == "completed"
        assert row["metadata"] == {"job_id": "job-1"}

    def test_log_declined(self, audit_logger: AuditLogger, audit_conn: sqlite3.Connection) -> None:
        audit_logger.log_declined("neg-1", "freelancer-1", "provider")
        [row] = query_audit_trail(audit_conn)
        assert row["event_type"] == "negotiation_declined"
        assert row["negotiation_state"] == "declined"

    def test_log_error(self, audit_logger: AuditLogger, audit_conn: sqlite3.Connection) -> None:
        audit_logger.log_error("neg-1", "transient_error", "timed out", context="agree")
        [row] = query_audit_trail(audit_conn)
        assert row["metadata"] == {
            "error_code": "transient_error",
            "error_message": "timed out",
            "context": "agree",
        }

    def test_log_error_without_context(
        self, audit_logger: AuditLogger, audit_conn: sqlite3.Connection
    ) -> None:
        audit_logger.log_error(None, "transient_error", "timed out")
        [row] = query_audit_trail(audit_conn)
        assert "context" not in row["metadata"]
        assert row["negotiation_id"] is None


class TestAuditSafely:
    def test_none_logger_is_noop(self) -> None:
        audit_safely(None, negotiation_id="neg-1", party_id="p", role="provider")

    def test_calls_method(self) -> None:
        audit_logger = MagicMock()
        audit_safely(
            audit_logger.log_declined, negotiation_id="neg-1", party_id="p", role="x"
        )
        audit_logger.log_declined.assert_called_once_with(
            negotiation_id="neg-1", party_id="p", role="x"
        )

    def test_write_failure_is_swallowed(self) -> None:
        conn = sqlite3.connect(":memory:")
        conn.close()
        audit_safely(
            AuditLogger(conn).log_declined,
            negotiation_id="neg-1",
            party_id="freelancer-1",
            role="provider",
        )

    def test_writes_through_bound_method(
        self, audit_logger: AuditLogger, audit_conn: sqlite3.Connection
    ) -> None:
        audit_safely(
            audit_logger.log_offer,
            negotiation_id="neg-1",
            party_id="client-1",
            role="requester",
            price=Decimal("650"),
            offer_count=2,
        )
        [row] = query_audit_trail(audit_conn)
        assert row["event_type"] == "offer_made"
        assert row["price"] == "650"
