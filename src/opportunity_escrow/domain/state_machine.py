"""Escrow Account State Machine Guard.

Uses python-statemachine to enforce legal state transitions at the domain level.
No matter what the API or the scheduler asks for, an illegal transition
(e.g., pending -> released) will raise TransitionNotAllowed.

The state machine is instantiated per-account and validates transitions before
the ORM model's status field is updated.

Transition table:
    pending   -> funded      (fund)
    funded    -> active      (partial_release)
    active    -> active      (partial_release)
    funded    -> released    (full_release)
    active    -> released    (full_release)
    funded    -> disputed    (dispute)
    active    -> disputed    (dispute)
    pending   -> cancelled   (cancel)
    funded    -> cancelled   (cancel)
    active    -> cancelled   (cancel)

released, disputed and cancelled are final.
"""

from __future__ import annotations

from statemachine import State, StateMachine


class EscrowStateMachine(StateMachine):
    """State machine that guards escrow account lifecycle transitions.

    Usage:
        sm = EscrowStateMachine(current_status="funded")
        sm.partial_release()  # transitions to active
        sm.status             # "active"
    """

    # --- States ---
    pending = State("Pending", value="pending", initial=True)
    funded = State("Funded", value="funded")
    active = State("Active", value="active")
    released = State("Released", value="released", final=True)
    disputed = State("Disputed", value="disputed", final=True)
    cancelled = State("Cancelled", value="cancelled", final=True)

    # --- Events / Transitions ---

    fund = pending.to(funded)

    # Releases and fees both move money out; the remaining balance picks the event
    partial_release = funded.to(active) | active.to.itself()
    full_release = funded.to(released) | active.to(released)

    dispute = funded.to(disputed) | active.to(disputed)
    cancel = pending.to(cancelled) | funded.to(cancelled) | active.to(cancelled)

    def __init__(self, current_status: str = "pending") -> None:
        """Initialize the state machine at a given status.

        Args:
            current_status: The current EscrowStatus value (e.g., "funded").
        """
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown status '{current_status}'. Valid states: {valid}"
            )
        super().__init__(start_value=current_status)

    @property
    def status(self) -> str:
        """Return the current state value as a string (matches EscrowStatus enum)."""
        return str(self.current_state.value)

    def get_allowed_events(self) -> list[str]:
        """Return the ids of the events that can fire from the current state."""
        return [event.id for event in self.allowed_events]


def validate_transition(current_status: str, event_name: str) -> str:
    """Validate a state transition and return the new status.

    Args:
        current_status: Current EscrowStatus value.
        event_name: The event to fire (e.g., "fund").

    Returns:
        The new status string after the transition.

    Raises:
        TransitionNotAllowed: If the transition is illegal.
        ValueError: If the status or event name is invalid.
    """
    sm = EscrowStateMachine(current_status=current_status)

    event_method = getattr(sm, event_name, None)
    if event_method is None or not callable(event_method):
        raise ValueError(
            f"Unknown event '{event_name}'. "
            f"Allowed events from {current_status}: {sm.get_allowed_events()}"
        )

    event_method()
    return sm.status
