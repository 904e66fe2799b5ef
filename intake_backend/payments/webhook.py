"""
Traitement des événements Stripe déjà vérifiés (signature validée par la vue).
- payment_intent.succeeded / payment_intent.payment_failed: statut de paiement poussé au CRM
  (corrélation via metadata.intakeId).
- customer.subscription.*: journalisés uniquement.
- Tout autre type: journalisé comme non traité.
"""
import logging
from typing import Any, Dict

logger = logging.getLogger(__name__)

PAYMENT_STATUS_BY_EVENT = {
    "payment_intent.succeeded": "Paid",
    "payment_intent.payment_failed": "Failed",
}
SUBSCRIPTION_EVENTS = (
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
)

# module intake_backend.payments.webhook
def handle_event(event: Dict[str, Any]) -> str:
    """
    Applique les effets de bord d'un événement et retourne l'issue:
    "recorded" | "logged" | "ignored".
    Les erreurs du CRM sont absorbées par records.repository (best-effort).
    """
    # Importer le module pour bénéficier des monkeypatchs de tests
    from intake_backend.records import repository as records_repo

    event_type = (event or {}).get("type") or ""
    obj: Dict[str, Any] = ((event or {}).get("data") or {}).get("object") or {}

    status = PAYMENT_STATUS_BY_EVENT.get(event_type)
    if status:
        metadata = obj.get("metadata") or {}
        logger.info("payments.webhook type=%s payment_intent=%s", event_type, obj.get("id"))
        records_repo.patch_payment_status(
            intake_id=metadata.get("intakeId") or "",
            status=status,
            payment_intent_id=obj.get("id") or "",
            amount_cents=int(obj.get("amount") or 0),
            product_name=metadata.get("productName") or "",
        )
        return "recorded"

    if event_type in SUBSCRIPTION_EVENTS:
        logger.info(
            "payments.webhook type=%s subscription=%s status=%s",
            event_type, obj.get("id"), obj.get("status"),
        )
        return "logged"

    logger.info("payments.webhook unhandled type=%s", event_type)
    return "ignored"
