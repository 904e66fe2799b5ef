import logging
from typing import Optional

from fastapi import Request, FastAPI
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from intake_backend.utils.rate_limit import (
    FixedWindowRateLimiter,
    RateLimitStore,
    build_rate_limit_store,
    client_ip,
)

logger = logging.getLogger(__name__)

"""
Middlewares transverses de l’application.
- register_rate_limit_middleware: fenêtre fixe par IP sur /api/* (store injecté).
- register_no_store_middleware: aucune mise en cache des réponses /api/* (PHI).
- register_security_middleware: en-têtes de sécurité et CSP (Stripe.js, Stripe API, Airtable, Supabase).
- register_cors_middleware: liste blanche d'origines, permissive en développement.
Notes:
- L’ordre d’ajout est important: le dernier ajouté s’exécute en premier.
  CORS enveloppe tout, puis sécurité et no-store, le rate limit est au plus près des routes:
  une réponse 429 porte donc aussi les en-têtes de sécurité et Cache-Control.
"""

SECURITY_HEADERS = {
    "X-DNS-Prefetch-Control": "on",
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "X-XSS-Protection": "1; mode=block",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=(self), interest-cohort=()",
}
HSTS_VALUE = "max-age=63072000; includeSubDomains; preload"

def build_csp(supabase_url: str = "") -> str:
    """CSP: Stripe.js (script + frames), API Stripe/Airtable/Supabase, CDN de la doc Swagger."""
    docs_cdns = ["https://cdn.jsdelivr.net"]
    connect = ["'self'", "https://api.stripe.com", "https://api.airtable.com"]
    if supabase_url:
        connect.append(supabase_url.rstrip("/"))
    directives = [
        "default-src 'self'",
        f"script-src 'self' 'unsafe-inline' https://js.stripe.com {' '.join(docs_cdns)}",
        f"style-src 'self' 'unsafe-inline' https://fonts.googleapis.com {' '.join(docs_cdns)}",
        "img-src 'self' data: blob: https://static.wixstatic.com https://*.wixstatic.com https://*.stripe.com https://fastapi.tiangolo.com",
        "font-src 'self' data: https://fonts.gstatic.com",
        "frame-src 'self' https://js.stripe.com https://hooks.stripe.com",
        f"connect-src {' '.join(connect)}",
        "object-src 'none'",
        "base-uri 'self'",
        "form-action 'self'",
        "frame-ancestors 'none'",
    ]
    return "; ".join(directives)

def register_cors_middleware(app: FastAPI) -> None:
    """
    CORSMiddleware:
    - Production: origines CORS_ORIGINS (inclut APP_URL).
    - Développement (APP_ENV=development): toute origine.
    """
    from intake_backend.config import APP_ENV, CORS_ORIGINS
    options = dict(
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-API-Key"],
        max_age=86400,
    )
    if APP_ENV == "development":
        app.add_middleware(CORSMiddleware, allow_origin_regex=".*", **options)
    else:
        app.add_middleware(CORSMiddleware, allow_origins=CORS_ORIGINS, **options)

def register_security_middleware(app: FastAPI) -> None:
    """
    En-têtes de sécurité sur toutes les réponses:
    - X-Frame-Options, nosniff, Referrer-Policy, X-XSS-Protection, Permissions-Policy, X-DNS-Prefetch-Control
    - HSTS si COOKIE_SECURE (déploiement HTTPS)
    - Content-Security-Policy (build_csp)
    """
    from intake_backend.config import COOKIE_SECURE, SUPABASE_URL
    csp = build_csp(SUPABASE_URL)

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            if name not in response.headers:
                response.headers[name] = value
        if COOKIE_SECURE and "Strict-Transport-Security" not in response.headers:
            response.headers["Strict-Transport-Security"] = HSTS_VALUE
        response.headers["Content-Security-Policy"] = csp
        return response

def register_no_store_middleware(app: FastAPI) -> None:
    """
    Empêche la mise en cache des réponses API (données de santé):
    - S’applique à tout chemin /api/*.
    - Ajoute les en-têtes Cache-Control/Pragma/Expires.
    """
    @app.middleware("http")
    async def no_store_for_api(request: Request, call_next):
        response = await call_next(request)
        if request.url.path.startswith("/api/"):
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
            response.headers["Pragma"] = "no-cache"
            response.headers["Expires"] = "0"
        return response

def register_rate_limit_middleware(app: FastAPI, store: Optional[RateLimitStore] = None) -> None:
    """
    Rate limit par IP sur /api/* (RATE_LIMIT_MAX_REQUESTS / RATE_LIMIT_WINDOW_SECONDS).
    - Dépassement: 429 {"error": "Too many requests", "retryAfter": <s>} + Retry-After, X-RateLimit-*.
    - Sinon: la réponse porte X-RateLimit-Limit/Remaining/Reset.
    - Store indisponible (ex: Redis hors ligne): la requête passe, un avertissement est journalisé.
    """
    from intake_backend.config import RATE_LIMIT_ENABLED, RATE_LIMIT_MAX_REQUESTS, RATE_LIMIT_WINDOW_SECONDS
    app.state.rate_limit_enabled = RATE_LIMIT_ENABLED
    app.state.rate_limiter = FixedWindowRateLimiter(
        store if store is not None else build_rate_limit_store(),
        max_requests=RATE_LIMIT_MAX_REQUESTS,
        window_seconds=RATE_LIMIT_WINDOW_SECONDS,
    )

    @app.middleware("http")
    async def rate_limit_api(request: Request, call_next):
        path = request.url.path
        if not request.app.state.rate_limit_enabled or not path.startswith("/api/") or request.method == "OPTIONS":
            return await call_next(request)

        limiter: FixedWindowRateLimiter = request.app.state.rate_limiter
        ip = client_ip(request)
        try:
            result = await limiter.check(f"ip:{ip}")
        except Exception as e:
            logger.warning("Rate limit store unavailable, request allowed: %s", e)
            return await call_next(request)

        if not result.allowed:
            logger.warning("rate_limit.exceeded ip=%s path=%s", ip, path)
            return JSONResponse(
                status_code=429,
                content={"error": "Too many requests", "retryAfter": result.reset_in},
                headers={"Retry-After": str(result.reset_in), **result.headers()},
            )
        response = await call_next(request)
        for name, value in result.headers().items():
            response.headers[name] = value
        return response
