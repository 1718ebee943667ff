"""Product escrow phase guard.

Uses python-statemachine to enforce legal phase transitions at the domain
level. ProductEscrow consults the guard before committing any phase change,
so an illegal jump (e.g. LISTED -> DELIVERED) can never reach the instance
state no matter which caller asks for it.

Transition table:
    LISTED           -> PURCHASED        (purchase)
    PURCHASED        -> ORDER_CONFIRMED  (confirm_order)
    PURCHASED        -> EXPIRED          (seller_timeout)
    ORDER_CONFIRMED  -> BOUND            (assign_transporter)
    ORDER_CONFIRMED  -> EXPIRED          (bid_timeout)
    BOUND            -> DELIVERED        (confirm_delivery)
    BOUND            -> EXPIRED          (delivery_timeout)
"""

from __future__ import annotations

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from provenance_escrow.domain.enums import Phase
from provenance_escrow.domain.exceptions import InvalidPhaseTransitionError


class PhaseMachine(StateMachine):
    """State machine that guards the product escrow lifecycle.

    Usage:
        sm = PhaseMachine(current_phase=Phase.PURCHASED)
        sm.confirm_order()
        sm.phase  # Phase.ORDER_CONFIRMED
    """

    # --- States ---
    LISTED = State("LISTED", initial=True)
    PURCHASED = State("PURCHASED")
    ORDER_CONFIRMED = State("ORDER_CONFIRMED")
    BOUND = State("BOUND")
    DELIVERED = State("DELIVERED", final=True)
    EXPIRED = State("EXPIRED", final=True)

    # --- Events / Transitions ---
    purchase = LISTED.to(PURCHASED)
    confirm_order = PURCHASED.to(ORDER_CONFIRMED)
    assign_transporter = ORDER_CONFIRMED.to(BOUND)
    confirm_delivery = BOUND.to(DELIVERED)

    # Timeouts
    seller_timeout = PURCHASED.to(EXPIRED)
    bid_timeout = ORDER_CONFIRMED.to(EXPIRED)
    delivery_timeout = BOUND.to(EXPIRED)

    def __init__(self, current_phase: Phase = Phase.LISTED) -> None:
        """Initialize the machine at a given phase.

        Args:
            current_phase: A Phase member, or its integer value.
        """
        try:
            phase = Phase(current_phase)
        except ValueError as err:
            valid = ", ".join(p.name for p in Phase)
            raise ValueError(
                f"Unknown phase '{current_phase}'. Valid phases: {valid}"
            ) from err
        super().__init__(start_value=phase.name)

    @property
    def phase(self) -> Phase:
        """Return the current state as a Phase member."""
        return Phase[str(self.current_state.value)]

    def get_allowed_events(self) -> list[str]:
        """Return a list of event names that can fire from the current phase."""
        return [event.id for event in self.allowed_events]


PHASE_EVENTS = frozenset(
    {
        "purchase",
        "confirm_order",
        "assign_transporter",
        "confirm_delivery",
        "seller_timeout",
        "bid_timeout",
        "delivery_timeout",
    }
)


def validate_transition(current_phase: Phase, event_name: str) -> Phase:
    """Validate a phase transition and return the resulting phase.

    Creates a temporary machine at ``current_phase``, fires ``event_name``
    and reports where it landed.

    Raises:
        InvalidPhaseTransitionError: If the event is unknown or illegal here.
    """
    sm = PhaseMachine(current_phase=current_phase)
    event_method = getattr(sm, event_name, None)
    if event_name not in PHASE_EVENTS or event_method is None:
        raise InvalidPhaseTransitionError(Phase(current_phase).name, event_name)
    try:
        event_method()
    except TransitionNotAllowed as err:
        raise InvalidPhaseTransitionError(Phase(current_phase).name, event_name) from err
    return sm.phase
