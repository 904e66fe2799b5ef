"""
Module 'payments' (feature-first): point d'entrée public.
Réunit client Stripe, référence aux PaymentIntent, machine d'états, services et webhook.
"""

from .intents import IntentRef, Resolved, Unresolved, intent_ref
from .state import AttemptState, CheckoutAttempt, InvalidTransition, TRANSITIONS
from .stripe_client import require_stripe, construct_event, invoice_intent_ref, resolve_intent
from .service import (
    build_metadata,
    resolve_customer,
    create_checkout_intent,
    attach_payment_method,
    evaluate_subscription,
    finalize_subscription,
    SubscriptionOutcome,
)
from .webhook import handle_event

__all__ = [
    # intents
    "IntentRef",
    "Resolved",
    "Unresolved",
    "intent_ref",
    # state
    "AttemptState",
    "CheckoutAttempt",
    "InvalidTransition",
    "TRANSITIONS",
    # stripe
    "require_stripe",
    "construct_event",
    "invoice_intent_ref",
    "resolve_intent",
    # services
    "build_metadata",
    "resolve_customer",
    "create_checkout_intent",
    "attach_payment_method",
    "evaluate_subscription",
    "finalize_subscription",
    "SubscriptionOutcome",
    # webhook
    "handle_event",
]
