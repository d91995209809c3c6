"""State machine guards for engagements, contracts and charges.

Uses python-statemachine to enforce legal transitions at the domain level.
No matter what the API or a background job asks for, an illegal transition
(e.g., checked_out -> checked_in, or paid -> expired) raises
TransitionNotAllowed before any row is written.

A machine is instantiated per entity from its stored status string and is
thrown away after the transition; the database row stays the single source
of truth for "what step we're on".

Transition tables:

    Engagement
        assigned     -> checked_in    (check_in)
        checked_in   -> checked_out   (check_out)
        checked_out  -> completed     (complete)

    Contract
        drafted          -> partially_signed  (first_signature)
        partially_signed -> fully_executed    (second_signature)

    Charge
        pending -> paid       (confirm_payment)
        pending -> expired    (expire)
        pending -> cancelled  (cancel)
"""

from __future__ import annotations

from statemachine import State, StateMachine


def _event_id(event) -> str:  # noqa: ANN001
    # newer releases expose a humanized `name` next to the identifier
    return getattr(event, "id", None) or event.name


class _GuardMachine(StateMachine):
    """Shared construction from a stored status string."""

    def __init__(self, current_status: str | None = None) -> None:
        """Initialize the state machine at a given status.

        Args:
            current_status: A stored status value (e.g., "checked_in").
                           Defaults to the initial state.
        """
        if current_status is not None:
            valid_values = {s.value for s in self.states}
            if current_status not in valid_values:
                valid = ", ".join(sorted(valid_values))
                raise ValueError(
                    f"Unknown status '{current_status}'. Valid states: {valid}"
                )
        super().__init__(start_value=current_status)

    @property
    def status(self) -> str:
        """Return the current state value as a string."""
        return str(self.current_state_value)

    def get_allowed_events(self) -> list[str]:
        """Return a list of event names that can fire from the current state."""
        return [_event_id(event) for event in self.allowed_events]


class EngagementStateMachine(_GuardMachine):
    """Guards the work-order lifecycle. Never moves backward."""

    assigned = State(initial=True)
    checked_in = State()
    checked_out = State()
    completed = State(final=True)

    check_in = assigned.to(checked_in)
    check_out = checked_in.to(checked_out)
    complete = checked_out.to(completed)


class ContractStateMachine(_GuardMachine):
    """Dual-signature progress. There is no cancel or revoke event."""

    drafted = State(initial=True)
    partially_signed = State()
    fully_executed = State(final=True)

    first_signature = drafted.to(partially_signed)
    second_signature = partially_signed.to(fully_executed)


class ChargeStateMachine(_GuardMachine):
    """One-way lifecycle of a payment charge."""

    pending = State(initial=True)
    paid = State(final=True)
    expired = State(final=True)
    cancelled = State(final=True)

    confirm_payment = pending.to(paid)
    expire = pending.to(expired)
    cancel = pending.to(cancelled)


def validate_transition(
    machine_cls: type[_GuardMachine],
    current_status: str,
    event_name: str,
) -> str:
    """Validate a state transition and return the new status.

    Creates a temporary state machine at ``current_status``, fires the named
    event, and returns the resulting status string.

    Raises:
        TransitionNotAllowed: If the transition is illegal.
        ValueError: If the status or event name is invalid.
    """
    sm = machine_cls(current_status=current_status)

    event_method = getattr(sm, event_name, None)
    if event_name not in {_event_id(e) for e in sm.events} or not callable(event_method):
        raise ValueError(
            f"Unknown event '{event_name}'. "
            f"Allowed events from {current_status}: {sm.get_allowed_events()}"
        )

    event_method()
    return sm.status
