"""Tests for domain enumerations and error codes."""

from decimal import Decimal

from flancer.domain import errors
from flancer.domain.types import (
    SERVICE_SCOPED_NOTIFICATIONS,
    JobStatus,
    NegotiationStatus,
    NotificationType,
    PartyRole,
)


class TestEnums:
    def test_negotiation_status_values(self):
        assert {s.value for s in NegotiationStatus} == {
            "pending",
            "both_agreed",
            "declined",
            "completed",
        }

    def test_job_status_values(self):
        assert {s.value for s in JobStatus} == {"in_progress", "cancelled"}

    def test_role_counterpart(self):
        assert PartyRole.REQUESTER.counterpart is PartyRole.PROVIDER
        assert PartyRole.PROVIDER.counterpart is PartyRole.REQUESTER

    def test_service_scoped_notifications(self):
        assert SERVICE_SCOPED_NOTIFICATIONS == {
            NotificationType.PRICE_PROPOSAL,
            NotificationType.COUNTER_OFFER,
        }


class TestErrors:
    def test_all_errors_share_base(self):
        assert issubclass(errors.PriceOutOfRange, errors.NegotiationError)
        assert issubclass(errors.ConcurrentModification, errors.NegotiationError)
        assert issubclass(errors.TransientError, errors.NegotiationError)

    def test_price_out_of_range_message(self):
        exc = errors.PriceOutOfRange(Decimal("1500"), Decimal("100"), Decimal("1000"))
        assert str(exc) == "price must be between $100 and $1000 (got $1500)"
        assert exc.code == "price_out_of_range"

    def test_notification_not_found_names_id(self):
        exc = errors.NotificationNotFound("n-1")
        assert str(exc) == "Notification 'n-1' not found"
        assert exc.code == "notification_not_found"

    def test_concurrent_modification_carries_version(self):
        exc = errors.ConcurrentModification("negotiations", "neg-1", 3)
        assert exc.expected_version == 3
        assert "re-read and retry" in str(exc)

    def test_codes_are_distinct(self):
        codes = [
            cls.code
            for cls in vars(errors).values()
            if isinstance(cls, type) and issubclass(cls, errors.NegotiationError)
        ]
        assert len(codes) == len(set(codes))
