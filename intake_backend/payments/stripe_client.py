"""
Adaptateur Stripe: centralise les appels et la configuration Stripe.
- Toutes les fonctions renvoient des dicts (conversion des StripeObject faite ici, une seule fois).
- Les erreurs Stripe (stripe.StripeError) remontent telles quelles: les vues les traduisent en JSON.
"""
import logging
from typing import Any, Dict, List, Optional

import stripe
from fastapi import HTTPException

from .intents import IntentRef, Resolved, Unresolved, intent_ref

logger = logging.getLogger(__name__)

# module intake_backend.payments.stripe_client
def require_stripe():
    """
    Prépare et retourne le module stripe prêt à l’emploi.
    - Configure stripe.api_key via STRIPE_SECRET_KEY (lu à l'appel, patchable en tests).
    - Clé absente: erreur de configuration -> HTTPException(500), journalisée.
    """
    from intake_backend.config import STRIPE_SECRET_KEY, STRIPE_API_VERSION
    if not STRIPE_SECRET_KEY:
        logger.error("STRIPE_SECRET_KEY is missing from environment variables")
        raise HTTPException(status_code=500, detail="STRIPE_SECRET_KEY is not configured")
    stripe.api_key = STRIPE_SECRET_KEY
    if STRIPE_API_VERSION:
        stripe.api_version = STRIPE_API_VERSION
    return stripe

def _plain(value: Any) -> Any:
    # StripeObject n'est plus un dict (stripe>=13): to_dict() puis conversion récursive
    if isinstance(value, stripe.StripeObject):
        value = value.to_dict()
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value

def _to_dict(obj: Any) -> Dict[str, Any]:
    if obj is None:
        return {}
    return _plain(obj)

def _list_data(res: Any) -> List[Dict[str, Any]]:
    return list(_to_dict(res).get("data") or [])

# --- Prix / produits ---

def retrieve_price(price_id: str) -> Dict[str, Any]:
    require_stripe()
    return _to_dict(stripe.Price.retrieve(price_id))

def retrieve_product(product_id: str) -> Dict[str, Any]:
    require_stripe()
    return _to_dict(stripe.Product.retrieve(product_id))

def list_active_prices(product_id: str) -> List[Dict[str, Any]]:
    require_stripe()
    return _list_data(stripe.Price.list(product=product_id, active=True))

# --- Clients ---

def find_customer_by_email(email: str) -> Optional[Dict[str, Any]]:
    """Premier client Stripe portant cet email, ou None."""
    require_stripe()
    data = _list_data(stripe.Customer.list(email=email, limit=1))
    return data[0] if data else None

def create_customer(**params: Any) -> Dict[str, Any]:
    require_stripe()
    return _to_dict(stripe.Customer.create(**params))

def update_customer(customer_id: str, **params: Any) -> Dict[str, Any]:
    require_stripe()
    return _to_dict(stripe.Customer.modify(customer_id, **params))

# --- Intents ---

def create_payment_intent(**params: Any) -> Dict[str, Any]:
    require_stripe()
    return _to_dict(stripe.PaymentIntent.create(**params))

def retrieve_payment_intent(payment_intent_id: str) -> Dict[str, Any]:
    require_stripe()
    return _to_dict(stripe.PaymentIntent.retrieve(payment_intent_id))

def create_setup_intent(**params: Any) -> Dict[str, Any]:
    require_stripe()
    return _to_dict(stripe.SetupIntent.create(**params))

def retrieve_setup_intent(setup_intent_id: str) -> Dict[str, Any]:
    require_stripe()
    return _to_dict(stripe.SetupIntent.retrieve(setup_intent_id))

# --- Abonnements ---

def attach_payment_method(payment_method_id: str, customer_id: str) -> Dict[str, Any]:
    require_stripe()
    return _to_dict(stripe.PaymentMethod.attach(payment_method_id, customer=customer_id))

def create_subscription(**params: Any) -> Dict[str, Any]:
    require_stripe()
    return _to_dict(stripe.Subscription.create(**params))

def invoice_intent_ref(subscription: Dict[str, Any]) -> Optional[IntentRef]:
    """
    Lit latest_invoice.payment_intent d'un abonnement et le modélise en IntentRef.
    - latest_invoice non étendu (id seul): la facture est récupérée avec payment_intent étendu.
    - Retourne None si aucune facture ou aucun PaymentIntent.
    """
    invoice = subscription.get("latest_invoice")
    if isinstance(invoice, str) and invoice:
        require_stripe()
        invoice = _to_dict(stripe.Invoice.retrieve(invoice, expand=["payment_intent"]))
    if not isinstance(invoice, dict):
        return None
    return intent_ref(invoice.get("payment_intent"))

def resolve_intent(ref: IntentRef) -> Dict[str, Any]:
    """Renvoie l'objet PaymentIntent, en le récupérant si la référence n'est qu'un id."""
    if isinstance(ref, Resolved):
        return ref.intent
    if isinstance(ref, Unresolved):
        return retrieve_payment_intent(ref.id)
    raise TypeError(f"IntentRef inattendu: {ref!r}")

# --- Codes promo ---

def find_promotion_code(code: str) -> Optional[Dict[str, Any]]:
    """Code promo actif correspondant exactement à `code` (coupon étendu), ou None."""
    require_stripe()
    data = _list_data(stripe.PromotionCode.list(code=code, active=True, limit=1, expand=["data.coupon"]))
    return data[0] if data else None

def retrieve_coupon(coupon_id: str) -> Dict[str, Any]:
    require_stripe()
    return _to_dict(stripe.Coupon.retrieve(coupon_id))

# --- Webhook ---

def construct_event(payload: bytes, sig_header: str, secret: str) -> Dict[str, Any]:
    """
    Valide la signature (Stripe-Signature) et retourne l'événement.
    Lève ValueError (payload invalide) ou stripe.SignatureVerificationError.
    Ne nécessite pas la clé API: seule la signature HMAC est vérifiée.
    """
    return _to_dict(stripe.Webhook.construct_event(payload, sig_header, secret))
