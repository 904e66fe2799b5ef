import logging

from fastapi import APIRouter, Request, HTTPException
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from intake_backend.audit import repository as audit_repo
from intake_backend.audit.models import AuditEvent
from intake_backend.utils.rate_limit import client_ip

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["Audit API"])

# module intake_backend.audit.views
@router.post("/audit")
async def ingest_audit_events(request: Request):
    """
    Reçoit un lot d'événements d'audit du navigateur.
    - Entrée JSON: { "events": [ {eventType, timestamp, sessionId, ...}, ... ] }
    - L'IP réelle remplace la valeur "client" posée côté navigateur
    - Stockage best-effort (Supabase): répond {"received": <nombre reçu>}
    - Erreurs: 400 si events n'est pas une liste ou si un événement est invalide
    """
    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    events = body.get("events") if isinstance(body, dict) else None
    if not isinstance(events, list):
        raise HTTPException(status_code=400, detail="events must be a list")

    try:
        parsed = [AuditEvent.model_validate(e) for e in events]
    except ValidationError as e:
        logger.warning("audit.ingest invalid events count=%s errors=%s", len(events), e.error_count())
        raise HTTPException(status_code=400, detail="Invalid audit event")

    ip = client_ip(request)
    rows = [ev.model_copy(update={"ip_address": ip}).to_row() for ev in parsed]
    stored = audit_repo.insert_events(rows)
    logger.info("audit.ingest received=%s stored=%s", len(rows), stored)
    return JSONResponse({"received": len(rows)})
