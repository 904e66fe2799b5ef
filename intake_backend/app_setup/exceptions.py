"""
Gestionnaires d’exceptions utilisés par la factory.
- HTTPException (FastAPI/Starlette, y compris 404/405): corps JSON {"error": <detail>}.
- stripe.StripeError non interceptée par une vue: {"error": <message>, "code": <code Stripe>}
  avec le statut HTTP renvoyé par Stripe (500 par défaut).
"""
import logging

import stripe
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

def register_exception_handlers(app: FastAPI) -> None:
    """
    Enregistre les handlers HTTPException et StripeError.
    - Les en-têtes portés par l’exception (ex: Retry-After) sont conservés.
    """
    @app.exception_handler(StarletteHTTPException)
    async def json_error_on_http_exception(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(stripe.StripeError)
    async def json_error_on_stripe_error(request: Request, exc: stripe.StripeError):
        status = exc.http_status or 500
        logger.error(
            "Stripe error path=%s status=%s code=%s request_id=%s",
            request.url.path, status, exc.code, getattr(exc, "request_id", None),
        )
        return JSONResponse(
            status_code=status,
            content={"error": exc.user_message or str(exc) or "Payment processor error", "code": exc.code},
        )
