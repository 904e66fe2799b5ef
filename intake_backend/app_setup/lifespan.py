"""
Lifespan FastAPI: journalise l'état du rate limiting au démarrage et libère le store à l'arrêt.
- Store Redis: connexion fermée proprement (aclose).
- Store mémoire: compteurs vidés.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("uvicorn.error")
    limiter = getattr(app.state, "rate_limiter", None)
    if getattr(app.state, "rate_limit_enabled", False) and limiter is not None:
        logger.info(
            "Rate limiting enabled backend=%s limit=%s window=%ss",
            limiter.store.name, limiter.max_requests, limiter.window_seconds,
        )
    else:
        logger.info("Rate limiting disabled")

    yield

    if limiter is not None:
        try:
            await limiter.store.close()
        except Exception as e:
            logger.warning(f"Rate limit store close failed: {e}")
