import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from intake_backend.promo import service as promo_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/stripe", tags=["Promo API"])

# module intake_backend.promo.views
@router.post("/validate-promo")
async def validate_promo(request: Request):
    """
    Valide un code promo.
    - Entrée JSON: { "code": "<code>" }
    - Toujours 200: {"valid": true, couponId, promotionCodeId, percentOff?, amountOff?, currency, name}
      ou {"valid": false, "error": "<raison>"}
    """
    try:
        body = await request.json()
        code = body.get("code") if isinstance(body, dict) else None
        result = promo_service.validate_code(str(code or ""))
    except Exception:
        logger.exception("Erreur validate_promo")
        result = {"valid": False, "error": "Failed to validate code"}
    return JSONResponse(result)
