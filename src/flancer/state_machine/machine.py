"""Guard for negotiation status changes."""

from __future__ import annotations

from flancer.domain.errors import InvalidTransitionError
from flancer.domain.types import NegotiationStatus
from flancer.state_machine.transitions import TERMINAL_STATES, TRANSITIONS


class NegotiationStateMachine:
    """Validate one negotiation's next status against :data:`TRANSITIONS`.

    The engine builds a machine from the persisted status at the start of
    each action, triggers the event the action implies, and writes the
    returned status back.  A rejected event raises before anything is
    written, so an invalid action never leaves partial rows.

    Usage::

        sm = NegotiationStateMachine(NegotiationStatus.PENDING)
        sm.trigger("mutual_agreement")  # -> BOTH_AGREED
        sm.trigger("materialize")       # -> COMPLETED (terminal)
    """

    def __init__(self, initial_state: NegotiationStatus = NegotiationStatus.PENDING) -> None:
        self._state = initial_state

    @property
    def state(self) -> NegotiationStatus:
        return self._state

    @property
    def is_terminal(self) -> bool:
        """True once the negotiation is declined or completed."""
        return self._state in TERMINAL_STATES

    def can_trigger(self, event: str) -> bool:
        return not self.is_terminal and (self._state, event) in TRANSITIONS

    def trigger(self, event: str) -> NegotiationStatus:
        """Move to the status *event* leads to and return it.

        Raises:
            InvalidTransitionError: If *event* is not allowed from the
                current status, including every event once terminal.
        """
        if not self.can_trigger(event):
            raise InvalidTransitionError(self._state, event)
        self._state = TRANSITIONS[(self._state, event)]
        return self._state
