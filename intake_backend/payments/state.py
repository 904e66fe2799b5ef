"""
Machine d'états d'une tentative de checkout.

INIT -> {PAYMENT_READY | SUBSCRIPTION_SETUP_READY} -> CONFIRMING -> {SUCCEEDED | REQUIRES_ACTION | FAILED}
REQUIRES_ACTION -> (nouvelle soumission) -> {SUCCEEDED | FAILED}
"""
from enum import Enum
from typing import Dict, FrozenSet


class AttemptState(str, Enum):
    INIT = "init"
    PAYMENT_READY = "payment_ready"
    SUBSCRIPTION_SETUP_READY = "subscription_setup_ready"
    CONFIRMING = "confirming"
    SUCCEEDED = "succeeded"
    REQUIRES_ACTION = "requires_action"
    FAILED = "failed"


TRANSITIONS: Dict[AttemptState, FrozenSet[AttemptState]] = {
    AttemptState.INIT: frozenset({AttemptState.PAYMENT_READY, AttemptState.SUBSCRIPTION_SETUP_READY}),
    AttemptState.PAYMENT_READY: frozenset({AttemptState.CONFIRMING}),
    AttemptState.SUBSCRIPTION_SETUP_READY: frozenset({AttemptState.CONFIRMING}),
    AttemptState.CONFIRMING: frozenset({AttemptState.SUCCEEDED, AttemptState.REQUIRES_ACTION, AttemptState.FAILED}),
    AttemptState.REQUIRES_ACTION: frozenset({AttemptState.SUCCEEDED, AttemptState.FAILED}),
    AttemptState.SUCCEEDED: frozenset(),
    AttemptState.FAILED: frozenset(),
}


class InvalidTransition(RuntimeError):
    def __init__(self, current: AttemptState, target: AttemptState):
        super().__init__(f"Transition interdite: {current.value} -> {target.value}")
        self.current = current
        self.target = target


class CheckoutAttempt:
    """Suit l'état d'une tentative; toute transition hors TRANSITIONS lève InvalidTransition."""

    def __init__(self, state: AttemptState = AttemptState.INIT):
        self.state = state

    def advance(self, target: AttemptState) -> AttemptState:
        if target not in TRANSITIONS[self.state]:
            raise InvalidTransition(self.state, target)
        self.state = target
        return self.state

    @property
    def is_terminal(self) -> bool:
        return not TRANSITIONS[self.state]
