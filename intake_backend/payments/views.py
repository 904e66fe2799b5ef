import logging
from typing import Any, Dict

import stripe
from fastapi import APIRouter, Request, HTTPException
from fastapi.responses import JSONResponse

# Modules importés (et non leurs fonctions) pour bénéficier des monkeypatchs de tests
from intake_backend.payments import service as payments_service
from intake_backend.payments import stripe_client
from intake_backend.payments import webhook as payments_webhook

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/stripe", tags=["Payments API"])

async def _json_body(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    return body

def _customer_name(body: Dict[str, Any]) -> str:
    name = body.get("customerName")
    if name:
        return str(name)
    return f"{body.get('firstName') or ''} {body.get('lastName') or ''}".strip()

# module intake_backend.payments.views
@router.post("/create-payment-intent")
async def create_payment_intent(request: Request):
    """
    Démarre une tentative de paiement pour le prix choisi.
    - Entrée JSON: { priceId, amount?, currency?, productId?, productName?,
      customerEmail?, customerName?, metadata? }
    - Prix ponctuel: PaymentIntent -> { clientSecret, paymentIntentId, customerId, type: "payment" }
    - Prix récurrent: SetupIntent -> { clientSecret, setupIntentId, customerId, type: "subscription_setup" }
    - Erreurs: 400 si priceId absent, statut Stripe si erreur Stripe, 500 sinon
    """
    body = await _json_body(request)
    try:
        metadata = body.get("metadata") if isinstance(body.get("metadata"), dict) else {}
        amount = body.get("amount")
        result = payments_service.create_checkout_intent(
            price_id=str(body.get("priceId") or ""),
            amount=int(amount) if isinstance(amount, (int, float)) else None,
            currency=str(body.get("currency") or "usd"),
            product_id=str(body.get("productId") or ""),
            product_name=str(body.get("productName") or ""),
            customer_email=str(body.get("customerEmail") or ""),
            customer_name=_customer_name(body),
            metadata=metadata,
        )
        return JSONResponse(result)
    except (HTTPException, stripe.StripeError):
        raise
    except Exception:
        logger.exception("Erreur create_payment_intent")
        raise HTTPException(status_code=500, detail="Failed to create payment intent")

@router.post("/create-subscription")
async def create_subscription(request: Request):
    """
    Finalise un abonnement après le succès du SetupIntent.
    - Entrée JSON: { customerId, priceId, paymentMethodId | setupIntentId, productId?, productName?, metadata? }
    - Réponses (200):
      { subscriptionId, status, customerId, success: true }
      { subscriptionId, status, customerId, clientSecret, requiresAction: true }
      { subscriptionId, status, customerId, success: false, error }
    """
    body = await _json_body(request)
    try:
        metadata = body.get("metadata") if isinstance(body.get("metadata"), dict) else {}
        result = payments_service.finalize_subscription(
            customer_id=str(body.get("customerId") or ""),
            price_id=str(body.get("priceId") or ""),
            payment_method_id=str(body.get("paymentMethodId") or ""),
            setup_intent_id=str(body.get("setupIntentId") or ""),
            product_id=str(body.get("productId") or ""),
            product_name=str(body.get("productName") or ""),
            metadata=metadata,
        )
        return JSONResponse(result)
    except (HTTPException, stripe.StripeError):
        raise
    except Exception:
        logger.exception("Erreur create_subscription")
        raise HTTPException(status_code=500, detail="Failed to create subscription")

@router.post("/payment-success")
async def payment_success(request: Request):
    """
    Enregistre un paiement confirmé côté client dans le CRM (statut "Paid").
    - intakeId obligatoire (400 "Missing intake ID")
    - Répond toujours succès: la synchro CRM est best-effort
    """
    from intake_backend.records import repository as records_repo

    body = await _json_body(request)
    intake_id = str(body.get("intakeId") or "")
    if not intake_id:
        raise HTTPException(status_code=400, detail="Missing intake ID")
    amount = body.get("amount")
    synced = records_repo.patch_payment_status(
        intake_id=intake_id,
        status="Paid",
        payment_intent_id=str(body.get("paymentIntentId") or ""),
        amount_cents=int(amount) if isinstance(amount, (int, float)) else 0,
        product_name=str(body.get("productName") or ""),
    )
    logger.info("payments.success payment_intent=%s crm_synced=%s", body.get("paymentIntentId"), synced)
    return JSONResponse({"success": True, "message": "Payment recorded successfully"})

@router.post("/webhook", include_in_schema=False)
async def webhook_stripe(request: Request):
    """
    Webhook Stripe signé.
    - Signature: en-tête stripe-signature + STRIPE_WEBHOOK_SECRET
    - Signature invalide: 400 {"error": "Invalid signature"}, aucun traitement
    - Une fois vérifié: {"received": true}, même si un effet de bord échoue
    """
    from intake_backend.config import STRIPE_WEBHOOK_SECRET

    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    if not sig_header:
        raise HTTPException(status_code=400, detail="Missing stripe-signature header")
    if not STRIPE_WEBHOOK_SECRET:
        logger.error("STRIPE_WEBHOOK_SECRET is not configured")
        raise HTTPException(status_code=500, detail="Webhook secret not configured")

    try:
        event = stripe_client.construct_event(payload, sig_header, STRIPE_WEBHOOK_SECRET)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning("payments.webhook signature verification failed: %s", e)
        raise HTTPException(status_code=400, detail="Invalid signature")

    try:
        payments_webhook.handle_event(event)
    except Exception:
        logger.exception("Erreur webhook_stripe type=%s", event.get("type"))
    return JSONResponse({"received": True})
