"""
Synchronisation CRM (Airtable): statut de paiement d'une soumission d'intake.
Best-effort: configuration absente, réponse non 2xx ou erreur réseau sont journalisées,
jamais propagées. Le parcours de paiement ne dépend pas du CRM.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)

# module intake_backend.records.repository
def _record_url(record_id: str) -> str:
    from intake_backend.config import AIRTABLE_API_URL, AIRTABLE_BASE_ID, AIRTABLE_TABLE_NAME
    return f"{AIRTABLE_API_URL.rstrip('/')}/{AIRTABLE_BASE_ID}/{quote(AIRTABLE_TABLE_NAME)}/{record_id}"

def payment_fields(status: str, payment_intent_id: str, amount_cents: int, product_name: str) -> Dict[str, Any]:
    """Champs Airtable: montant en unités majeures, date ISO-8601 UTC."""
    return {
        "Payment Status": status,
        "Payment Intent ID": payment_intent_id,
        "Order Amount": (amount_cents or 0) / 100,
        "Selected Product": product_name,
        "Payment Date": datetime.now(timezone.utc).isoformat(),
    }

def patch_payment_status(
    intake_id: str,
    status: str,
    payment_intent_id: str = "",
    amount_cents: int = 0,
    product_name: str = "",
) -> bool:
    """
    PATCH <AIRTABLE_API_URL>/<base>/<table>/<intake_id> avec les champs de paiement.
    - Ignoré (False) si AIRTABLE_PAT, AIRTABLE_BASE_ID ou intake_id manque.
    - True uniquement sur réponse 2xx.
    """
    from intake_backend.config import AIRTABLE_PAT, AIRTABLE_BASE_ID
    if not AIRTABLE_PAT or not AIRTABLE_BASE_ID:
        logger.warning("records.patch skipped: Airtable is not configured")
        return False
    if not intake_id:
        logger.warning("records.patch skipped: missing intake id payment_intent=%s", payment_intent_id)
        return False

    headers = {
        "Authorization": f"Bearer {AIRTABLE_PAT}",
        "Content-Type": "application/json",
    }
    body = {"fields": payment_fields(status, payment_intent_id, amount_cents, product_name)}
    try:
        res = httpx.patch(_record_url(intake_id), json=body, headers=headers, timeout=10)
    except httpx.HTTPError as e:
        logger.error("records.patch transport error record=%s: %s", intake_id, e)
        return False
    if res.status_code // 100 != 2:
        logger.error("records.patch failed record=%s status=%s body=%s", intake_id, res.status_code, res.text[:200])
        return False
    logger.info("records.patch ok record=%s status=%s", intake_id, status)
    return True
