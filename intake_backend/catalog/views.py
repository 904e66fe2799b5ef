import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from intake_backend.catalog import service as catalog_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/stripe", tags=["Catalog API"])

# module intake_backend.catalog.views
@router.get("/products")
async def list_products():
    """
    Produit unique et ses prix triés/libellés.
    - Succès: {"success": true, "product": {...}}
    - Toute erreur (Stripe, configuration): 500 {"success": false, "error": "Failed to fetch products"}
    """
    try:
        product = catalog_service.get_catalog()
    except Exception:
        logger.exception("Erreur list_products")
        return JSONResponse({"success": False, "error": "Failed to fetch products"}, status_code=500)
    return JSONResponse({"success": True, "product": product})
