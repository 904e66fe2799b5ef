"""
Factory d’application recommandée pour les entrypoints (ex: intake_backend.asgi).
Ordonne les étapes d’initialisation de manière lisible et testable.
"""
from typing import Optional

from fastapi import FastAPI
from .lifespan import lifespan
from .middlewares import (
    register_cors_middleware,
    register_no_store_middleware,
    register_rate_limit_middleware,
    register_security_middleware,
)
from .exceptions import register_exception_handlers
from .routers import register_routers
from intake_backend.utils.rate_limit import RateLimitStore

def create_app(rate_limit_store: Optional[RateLimitStore] = None) -> FastAPI:
    """
    Construit l’app FastAPI avec le lifespan et enregistre:
      - rate limit (store injecté, sinon RATE_LIMIT_BACKEND), no-store, sécurité, CORS
      - gestionnaires d’exceptions
      - tous les routers (API Stripe, audit, health)
    Retour:
      FastAPI prêt à être utilisé par le serveur ASGI.
    """
    app = FastAPI(title="Intake Checkout API", lifespan=lifespan)
    register_rate_limit_middleware(app, rate_limit_store)
    register_no_store_middleware(app)
    register_security_middleware(app)
    register_cors_middleware(app)
    register_exception_handlers(app)
    register_routers(app)
    return app
