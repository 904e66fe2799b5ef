"""
Registre central des routers (API Stripe, audit, health).
- /api/stripe: catalogue, code promo, paiements (intents, abonnement, succès, webhook)
- /api/audit: ingestion des événements d'audit
- /health: état du service et du rate limiting
"""
from fastapi import FastAPI
from intake_backend.catalog import views as catalog_views
from intake_backend.promo import views as promo_views
from intake_backend.payments import views as payments_views
from intake_backend.audit import views as audit_views
from intake_backend.health.router import router as health_router

def register_routers(app: FastAPI) -> None:
    """
    Agrège tous les routers de l’application.
    - L’ordre n’a pas d’impact sauf conflits de chemins (évités par chemins distincts sous /api/stripe).
    """
    # API Stripe
    app.include_router(catalog_views.router)
    app.include_router(promo_views.router)
    app.include_router(payments_views.router)
    # Audit
    app.include_router(audit_views.router)
    # Health & monitoring
    app.include_router(health_router)
