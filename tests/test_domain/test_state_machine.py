"""Tests for the PhaseMachine domain guard.

These tests verify that:
    1. The forward lifecycle is allowed one step at a time.
    2. Every timeout lands in EXPIRED from exactly one phase.
    3. Skipping phases and leaving terminal phases is blocked.
    4. validate_transition reports the resulting phase or raises.
"""

from __future__ import annotations

import pytest
from statemachine.exceptions import TransitionNotAllowed

from provenance_escrow.domain.enums import Phase
from provenance_escrow.domain.exceptions import InvalidPhaseTransitionError
from provenance_escrow.domain.state_machine import PhaseMachine, validate_transition


class TestHappyPath:
    def test_full_lifecycle(self) -> None:
        sm = PhaseMachine()
        assert sm.phase == Phase.LISTED

        sm.purchase()
        assert sm.phase == Phase.PURCHASED

        sm.confirm_order()
        assert sm.phase == Phase.ORDER_CONFIRMED

        sm.assign_transporter()
        assert sm.phase == Phase.BOUND

        sm.confirm_delivery()
        assert sm.phase == Phase.DELIVERED

    def test_start_from_integer_phase(self) -> None:
        sm = PhaseMachine(current_phase=3)
        assert sm.phase == Phase.BOUND


class TestTimeouts:
    @pytest.mark.parametrize(
        ("phase", "event"),
        [
            (Phase.PURCHASED, "seller_timeout"),
            (Phase.ORDER_CONFIRMED, "bid_timeout"),
            (Phase.BOUND, "delivery_timeout"),
        ],
    )
    def test_timeout_expires(self, phase: Phase, event: str) -> None:
        sm = PhaseMachine(current_phase=phase)
        getattr(sm, event)()
        assert sm.phase == Phase.EXPIRED

    def test_seller_timeout_not_allowed_after_confirmation(self) -> None:
        sm = PhaseMachine(current_phase=Phase.ORDER_CONFIRMED)
        with pytest.raises(TransitionNotAllowed):
            sm.seller_timeout()


class TestInvalidTransitions:
    def test_cannot_skip_to_delivered(self) -> None:
        sm = PhaseMachine()
        with pytest.raises(TransitionNotAllowed):
            sm.confirm_delivery()

    def test_cannot_purchase_twice(self) -> None:
        sm = PhaseMachine(current_phase=Phase.PURCHASED)
        with pytest.raises(TransitionNotAllowed):
            sm.purchase()

    def test_unknown_phase_rejected(self) -> None:
        with pytest.raises(ValueError, match="Unknown phase"):
            PhaseMachine(current_phase=9)


class TestTerminalPhases:
    def test_delivered_is_final(self) -> None:
        sm = PhaseMachine(current_phase=Phase.DELIVERED)
        assert sm.get_allowed_events() == []

    def test_expired_is_final(self) -> None:
        sm = PhaseMachine(current_phase=Phase.EXPIRED)
        assert sm.get_allowed_events() == []


class TestAllowedEvents:
    def test_listed_allowed(self) -> None:
        assert PhaseMachine().get_allowed_events() == ["purchase"]

    def test_purchased_allowed(self) -> None:
        allowed = PhaseMachine(current_phase=Phase.PURCHASED).get_allowed_events()
        assert set(allowed) == {"confirm_order", "seller_timeout"}

    def test_bound_allowed(self) -> None:
        allowed = PhaseMachine(current_phase=Phase.BOUND).get_allowed_events()
        assert set(allowed) == {"confirm_delivery", "delivery_timeout"}


class TestValidateTransition:
    def test_returns_next_phase(self) -> None:
        assert validate_transition(Phase.LISTED, "purchase") == Phase.PURCHASED
        assert validate_transition(Phase.BOUND, "delivery_timeout") == Phase.EXPIRED

    def test_illegal_transition_raises(self) -> None:
        with pytest.raises(InvalidPhaseTransitionError) as exc_info:
            validate_transition(Phase.LISTED, "confirm_delivery")
        assert exc_info.value.code == "INVALID_PHASE_TRANSITION"
        assert exc_info.value.current_phase == "LISTED"

    def test_unknown_event_raises(self) -> None:
        with pytest.raises(InvalidPhaseTransitionError):
            validate_transition(Phase.LISTED, "teleport")

    def test_no_transition_out_of_expired(self) -> None:
        for event in ("purchase", "confirm_order", "confirm_delivery", "bid_timeout"):
            with pytest.raises(InvalidPhaseTransitionError):
                validate_transition(Phase.EXPIRED, event)
