from enum import Enum
from typing import Generic, TypeVar

from cexpi.domain.enums.listing_state import Visibility
from cexpi.domain.enums.payment_intent_state import PaymentIntentState

StateT = TypeVar("StateT", bound=Enum)


# Mapping of valid transitions: from_state -> set of allowed to_states
VISIBILITY_TRANSITIONS: dict[Visibility, frozenset[Visibility]] = {
    Visibility.INACTIVE: frozenset({Visibility.ACTIVE}),
    Visibility.ACTIVE: frozenset({Visibility.EXPIRED}),
    Visibility.EXPIRED: frozenset(),
}

PAYMENT_INTENT_TRANSITIONS: dict[PaymentIntentState, frozenset[PaymentIntentState]] = {
    PaymentIntentState.PENDING: frozenset(
        {PaymentIntentState.APPROVED, PaymentIntentState.ABANDONED}
    ),
    PaymentIntentState.APPROVED: frozenset(
        {PaymentIntentState.COMPLETED, PaymentIntentState.ABANDONED}
    ),
    PaymentIntentState.COMPLETED: frozenset(),
    PaymentIntentState.ABANDONED: frozenset(),
}


class InvalidStateTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_state: Enum, to_state: Enum, allowed: frozenset) -> None:  # type: ignore[type-arg]
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid transition from {from_state.value} to {to_state.value}. "
            f"Allowed transitions: {sorted(s.value for s in allowed)}"
        )


class LifecycleStateMachine(Generic[StateT]):
    """
    Validates state transitions against a fixed transition table.

    Stateless: one instance per table, call with explicit states.
    """

    def __init__(self, transitions: dict[StateT, frozenset[StateT]]) -> None:
        self._transitions = transitions

    def can_transition(self, from_state: StateT, to_state: StateT) -> bool:
        """Return True if transitioning from_state → to_state is permitted."""
        return to_state in self._transitions.get(from_state, frozenset())

    def validate_transition(self, from_state: StateT, to_state: StateT) -> None:
        """Raise InvalidStateTransitionError if the transition is not permitted."""
        if not self.can_transition(from_state, to_state):
            raise InvalidStateTransitionError(
                from_state, to_state, self.get_allowed_transitions(from_state)
            )

    def get_allowed_transitions(self, from_state: StateT) -> frozenset[StateT]:
        """Return the set of states reachable from from_state."""
        return self._transitions.get(from_state, frozenset())


visibility_state_machine: LifecycleStateMachine[Visibility] = LifecycleStateMachine(
    VISIBILITY_TRANSITIONS
)
payment_intent_state_machine: LifecycleStateMachine[PaymentIntentState] = LifecycleStateMachine(
    PAYMENT_INTENT_TRANSITIONS
)
