"""Transition map defining all valid (state, event) -> state mappings."""

from enum import StrEnum

from flancer.domain.types import NegotiationStatus


class NegotiationEvent(StrEnum):
    """Events that can trigger state transitions in a negotiation."""

    COUNTER_OFFER = "counter_offer"
    AGREE = "agree"
    MUTUAL_AGREEMENT = "mutual_agreement"
    DECLINE = "decline"
    MATERIALIZE = "materialize"


# All valid (current_state, event_string) -> next_state mappings.
# Any pair not in this dict is an invalid transition.
TRANSITIONS: dict[tuple[NegotiationStatus, str], NegotiationStatus] = {
    # From PENDING
    (NegotiationStatus.PENDING, NegotiationEvent.COUNTER_OFFER): NegotiationStatus.PENDING,
    (NegotiationStatus.PENDING, NegotiationEvent.AGREE): NegotiationStatus.PENDING,
    (NegotiationStatus.PENDING, NegotiationEvent.MUTUAL_AGREEMENT): (
        NegotiationStatus.BOTH_AGREED
    ),
    (NegotiationStatus.PENDING, NegotiationEvent.DECLINE): NegotiationStatus.DECLINED,
    # From BOTH_AGREED (a counter reopens the negotiation)
    (NegotiationStatus.BOTH_AGREED, NegotiationEvent.COUNTER_OFFER): NegotiationStatus.PENDING,
    (NegotiationStatus.BOTH_AGREED, NegotiationEvent.DECLINE): NegotiationStatus.DECLINED,
    (NegotiationStatus.BOTH_AGREED, NegotiationEvent.MATERIALIZE): NegotiationStatus.COMPLETED,
}

# States that reject all events -- no outgoing transitions allowed.
TERMINAL_STATES: frozenset[NegotiationStatus] = frozenset(
    {NegotiationStatus.DECLINED, NegotiationStatus.COMPLETED}
)
