"""
Cas d'usage 'payments': orchestre stripe_client et la machine d'états d'une tentative.
Rôles:
- Résoudre (ou créer) le client Stripe à partir de l'email.
- Prix ponctuel: créer un PaymentIntent et renvoyer son client_secret.
- Prix récurrent: créer un SetupIntent uniquement; l'abonnement est créé plus tard
  par finalize_subscription, une fois le moyen de paiement validé.
- Évaluer l'abonnement créé: succès, action requise (3-D Secure) ou échec.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional
import logging

import stripe
from fastapi import HTTPException

from . import stripe_client
from .state import AttemptState, CheckoutAttempt

logger = logging.getLogger(__name__)

SUCCESS_SUBSCRIPTION_STATUSES = ("active", "trialing")
DECLINED_MESSAGE = "Your card was declined or could not be processed."
MISSING_FINALIZE_FIELDS = "customerId, priceId, and paymentMethodId are required"

# module intake_backend.payments.service
def build_metadata(base: Dict[str, Any], extra: Optional[Dict[str, Any]] = None) -> Dict[str, str]:
    """
    Fusionne les métadonnées Stripe: base, tag source, puis celles du client (prioritaires).
    Stripe n'accepte que des chaînes: None devient "".
    """
    from intake_backend.config import STRIPE_METADATA_SOURCE
    merged: Dict[str, Any] = {**base, "source": STRIPE_METADATA_SOURCE, **(extra or {})}
    return {str(k): "" if v is None else str(v) for k, v in merged.items()}

def _id_of(value: Any) -> str:
    if isinstance(value, dict):
        return str(value.get("id") or "")
    return str(value or "")

def resolve_customer(email: str, name: str, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Retourne le client Stripe de la tentative.
    - Email connu: réutilise le premier client trouvé, met à jour le nom s'il a changé.
    - Email inconnu: crée un client (email, nom, métadonnées).
    - Sans email: crée un client au nom fourni ou "Guest".
    """
    name = (name or "").strip()
    meta = build_metadata({}, metadata)
    if email:
        existing = stripe_client.find_customer_by_email(email)
        if existing:
            if name and existing.get("name") != name:
                return stripe_client.update_customer(existing["id"], name=name)
            return existing
        params: Dict[str, Any] = {"email": email, "metadata": meta}
        if name:
            params["name"] = name
        return stripe_client.create_customer(**params)
    return stripe_client.create_customer(name=name or "Guest", metadata=meta)

def create_checkout_intent(
    *,
    price_id: str,
    amount: Optional[int] = None,
    currency: str = "usd",
    product_id: str = "",
    product_name: str = "",
    customer_email: str = "",
    customer_name: str = "",
    metadata: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    INIT -> PAYMENT_READY | SUBSCRIPTION_SETUP_READY.
    Le type de tentative dépend uniquement de price.recurring.
    Retour: {clientSecret, paymentIntentId|setupIntentId, customerId, type}
    """
    if not price_id:
        raise HTTPException(status_code=400, detail="Price ID is required")

    attempt = CheckoutAttempt()
    price = stripe_client.retrieve_price(price_id)
    is_subscription = price.get("recurring") is not None
    customer = resolve_customer(customer_email, customer_name, metadata)
    customer_id = customer.get("id")
    tagged = build_metadata(
        {"productId": product_id, "productName": product_name, "priceId": price_id},
        metadata,
    )

    if is_subscription:
        setup_intent = stripe_client.create_setup_intent(
            customer=customer_id,
            usage="off_session",
            automatic_payment_methods={"enabled": True},
            metadata=tagged,
        )
        attempt.advance(AttemptState.SUBSCRIPTION_SETUP_READY)
        logger.info(
            "payments.intent state=%s setup_intent=%s customer=%s price=%s",
            attempt.state.value, setup_intent.get("id"), customer_id, price_id,
        )
        return {
            "clientSecret": setup_intent.get("client_secret"),
            "setupIntentId": setup_intent.get("id"),
            "customerId": customer_id,
            "type": "subscription_setup",
        }

    unit_amount = price.get("unit_amount") or amount
    if not unit_amount:
        raise HTTPException(status_code=400, detail="Amount is required")
    params: Dict[str, Any] = {
        "amount": int(unit_amount),
        "currency": price.get("currency") or (currency or "usd").lower(),
        "customer": customer_id,
        "automatic_payment_methods": {"enabled": True},
        "metadata": tagged,
        "description": f"Order for {product_name}",
    }
    if customer_email:
        params["receipt_email"] = customer_email
    payment_intent = stripe_client.create_payment_intent(**params)
    attempt.advance(AttemptState.PAYMENT_READY)
    logger.info(
        "payments.intent state=%s payment_intent=%s customer=%s price=%s amount=%s",
        attempt.state.value, payment_intent.get("id"), customer_id, price_id, params["amount"],
    )
    return {
        "clientSecret": payment_intent.get("client_secret"),
        "paymentIntentId": payment_intent.get("id"),
        "customerId": customer_id,
        "type": "payment",
    }

def _is_already_attached(exc: stripe.StripeError) -> bool:
    message = (getattr(exc, "user_message", None) or str(exc) or "").lower()
    return "already" in message and "attached" in message

def attach_payment_method(payment_method_id: str, customer_id: str) -> bool:
    """
    Attache le moyen de paiement au client.
    - Déjà attaché: toléré (retourne False), l'appel reste idempotent.
    - Toute autre erreur Stripe remonte.
    """
    try:
        stripe_client.attach_payment_method(payment_method_id, customer_id)
        return True
    except stripe.InvalidRequestError as e:
        if not _is_already_attached(e):
            raise
        logger.info("payments.attach already_attached payment_method=%s customer=%s", payment_method_id, customer_id)
        return False


@dataclass
class SubscriptionOutcome:
    state: AttemptState
    subscription_id: str
    status: str
    client_secret: Optional[str] = None
    error: Optional[str] = None

    def to_response(self, customer_id: str) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "subscriptionId": self.subscription_id,
            "status": self.status,
            "customerId": customer_id,
        }
        if self.state is AttemptState.SUCCEEDED:
            body["success"] = True
        elif self.state is AttemptState.REQUIRES_ACTION:
            body["clientSecret"] = self.client_secret
            body["requiresAction"] = True
        else:
            body["success"] = False
            body["error"] = self.error or DECLINED_MESSAGE
        return body


def evaluate_subscription(subscription: Dict[str, Any], attempt: CheckoutAttempt) -> SubscriptionOutcome:
    """
    CONFIRMING -> SUCCEEDED | REQUIRES_ACTION | FAILED.
    - active/trialing: succès.
    - sinon PaymentIntent de la dernière facture: succeeded -> succès,
      autre statut avec client_secret -> action requise.
    - aucun PaymentIntent exploitable: échec (carte refusée).
    """
    sub_id = str(subscription.get("id") or "")
    status = str(subscription.get("status") or "")
    if status in SUCCESS_SUBSCRIPTION_STATUSES:
        attempt.advance(AttemptState.SUCCEEDED)
        return SubscriptionOutcome(attempt.state, sub_id, status)

    ref = stripe_client.invoice_intent_ref(subscription)
    if ref is not None:
        intent = stripe_client.resolve_intent(ref)
        if intent.get("status") == "succeeded":
            attempt.advance(AttemptState.SUCCEEDED)
            return SubscriptionOutcome(attempt.state, sub_id, status)
        if intent.get("client_secret"):
            attempt.advance(AttemptState.REQUIRES_ACTION)
            return SubscriptionOutcome(attempt.state, sub_id, status, client_secret=intent.get("client_secret"))

    attempt.advance(AttemptState.FAILED)
    return SubscriptionOutcome(attempt.state, sub_id, status, error=DECLINED_MESSAGE)

def finalize_subscription(
    *,
    customer_id: str,
    price_id: str,
    payment_method_id: str = "",
    setup_intent_id: str = "",
    product_id: str = "",
    product_name: str = "",
    metadata: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Crée l'abonnement après le succès du SetupIntent.
    Étapes:
      1) (si setup_intent_id) vérifier status=succeeded et lire son payment_method
      2) attacher le moyen de paiement (déjà attaché toléré)
      3) le définir par défaut pour les factures du client
      4) créer l'abonnement (allow_incomplete, latest_invoice.payment_intent étendu)
      5) évaluer le résultat (evaluate_subscription)
    """
    if not customer_id or not price_id or not (payment_method_id or setup_intent_id):
        raise HTTPException(status_code=400, detail=MISSING_FINALIZE_FIELDS)

    if setup_intent_id:
        setup_intent = stripe_client.retrieve_setup_intent(setup_intent_id)
        if setup_intent.get("status") != "succeeded":
            raise HTTPException(status_code=400, detail="Setup intent has not succeeded")
        payment_method_id = payment_method_id or _id_of(setup_intent.get("payment_method"))
        if not payment_method_id:
            raise HTTPException(status_code=400, detail=MISSING_FINALIZE_FIELDS)

    attempt = CheckoutAttempt(AttemptState.SUBSCRIPTION_SETUP_READY)
    attach_payment_method(payment_method_id, customer_id)
    stripe_client.update_customer(
        customer_id,
        invoice_settings={"default_payment_method": payment_method_id},
    )
    attempt.advance(AttemptState.CONFIRMING)

    subscription = stripe_client.create_subscription(
        customer=customer_id,
        items=[{"price": price_id}],
        default_payment_method=payment_method_id,
        payment_behavior="allow_incomplete",
        expand=["latest_invoice.payment_intent"],
        metadata=build_metadata({"productId": product_id or "", "productName": product_name or ""}, metadata),
    )
    outcome = evaluate_subscription(subscription, attempt)
    logger.info(
        "payments.subscription state=%s subscription=%s status=%s customer=%s price=%s",
        outcome.state.value, outcome.subscription_id, outcome.status, customer_id, price_id,
    )
    return outcome.to_response(customer_id)
