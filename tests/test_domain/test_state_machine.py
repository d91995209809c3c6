"""Tests for the engagement, contract and charge state machines.

These tests verify that:
    1. All valid transitions are allowed.
    2. All invalid transitions are blocked (nothing moves backward).
    3. Terminal states expose no further events.
    4. The convenience function validate_transition works.
"""

from __future__ import annotations

import warnings

import pytest
from statemachine.exceptions import TransitionNotAllowed

from work_settlement.domain.state_machine import (
    ChargeStateMachine,
    ContractStateMachine,
    EngagementStateMachine,
    validate_transition,
)


class TestEngagementLifecycle:
    """Test the full lifecycle: assigned -> completed."""

    def test_full_lifecycle(self) -> None:
        sm = EngagementStateMachine("assigned")
        assert sm.status == "assigned"

        sm.check_in()
        assert sm.status == "checked_in"

        sm.check_out()
        assert sm.status == "checked_out"

        sm.complete()
        assert sm.status == "completed"

    def test_status_read_raises_no_deprecation_warning(self) -> None:
        sm = EngagementStateMachine("checked_in")
        with warnings.catch_warnings():
            warnings.simplefilter("error", DeprecationWarning)
            assert sm.status == "checked_in"

    def test_default_is_assigned(self) -> None:
        assert EngagementStateMachine().status == "assigned"

    def test_checked_out_cannot_check_in_again(self) -> None:
        sm = EngagementStateMachine("checked_out")
        with pytest.raises(TransitionNotAllowed):
            sm.check_in()

    def test_assigned_cannot_skip_to_checked_out(self) -> None:
        sm = EngagementStateMachine("assigned")
        with pytest.raises(TransitionNotAllowed):
            sm.check_out()

    def test_completed_is_final(self) -> None:
        sm = EngagementStateMachine("completed")
        assert sm.get_allowed_events() == []


class TestContractSignatures:
    def test_two_signatures_execute(self) -> None:
        sm = ContractStateMachine("drafted")
        sm.first_signature()
        assert sm.status == "partially_signed"
        sm.second_signature()
        assert sm.status == "fully_executed"

    def test_second_signature_needs_first(self) -> None:
        sm = ContractStateMachine("drafted")
        with pytest.raises(TransitionNotAllowed):
            sm.second_signature()

    def test_fully_executed_is_final(self) -> None:
        assert ContractStateMachine("fully_executed").get_allowed_events() == []


class TestChargeLifecycle:
    @pytest.mark.parametrize(
        ("event", "expected"),
        [("confirm_payment", "paid"), ("expire", "expired"), ("cancel", "cancelled")],
    )
    def test_pending_transitions(self, event: str, expected: str) -> None:
        sm = ChargeStateMachine("pending")
        getattr(sm, event)()
        assert sm.status == expected

    @pytest.mark.parametrize("terminal", ["paid", "expired", "cancelled"])
    def test_terminal_states_have_no_events(self, terminal: str) -> None:
        assert ChargeStateMachine(terminal).get_allowed_events() == []

    def test_paid_cannot_expire(self) -> None:
        sm = ChargeStateMachine("paid")
        with pytest.raises(TransitionNotAllowed):
            sm.expire()


class TestAllowedEvents:
    def test_assigned_allowed(self) -> None:
        assert EngagementStateMachine("assigned").get_allowed_events() == ["check_in"]

    def test_pending_allowed(self) -> None:
        allowed = ChargeStateMachine("pending").get_allowed_events()
        assert set(allowed) == {"confirm_payment", "expire", "cancel"}


class TestValidateTransitionFunction:
    """Test the convenience function."""

    def test_valid_transition(self) -> None:
        result = validate_transition(EngagementStateMachine, "checked_in", "check_out")
        assert result == "checked_out"

    def test_illegal_transition(self) -> None:
        with pytest.raises(TransitionNotAllowed):
            validate_transition(ChargeStateMachine, "expired", "confirm_payment")

    def test_invalid_event_name(self) -> None:
        with pytest.raises(ValueError, match="Unknown event"):
            validate_transition(ContractStateMachine, "drafted", "revoke")

    def test_invalid_status(self) -> None:
        with pytest.raises(ValueError, match="Unknown status"):
            EngagementStateMachine("INVALID_STATUS")
