"""
Rate limiting à fenêtre fixe par IP cliente (chemins /api/*).

Le compteur vit dans un RateLimitStore injecté:
- InMemoryRateLimitStore: processus unique (non partagé entre instances), horloge injectable.
- RedisRateLimitStore: partagé entre instances (INCR + EXPIRE, TTL pour la réinitialisation).
Les tests injectent un store neuf par application.
"""
import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

from fastapi import Request

logger = logging.getLogger(__name__)

# Au-delà de ce nombre de clés, les fenêtres expirées sont purgées
MEMORY_PRUNE_THRESHOLD = 10_000


class RateLimitStore(Protocol):
    name: str

    async def hit(self, key: str, window_seconds: int) -> Tuple[int, float]:
        """Incrémente le compteur de `key`; retourne (compte dans la fenêtre, secondes avant réinitialisation)."""
        ...

    async def close(self) -> None: ...


class InMemoryRateLimitStore:
    name = "memory"

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._windows: Dict[str, Tuple[int, float]] = {}

    async def hit(self, key: str, window_seconds: int) -> Tuple[int, float]:
        now = self.clock()
        count, window_end = self._windows.get(key, (0, 0.0))
        if now >= window_end:
            count, window_end = 0, now + window_seconds
        count += 1
        self._windows[key] = (count, window_end)
        if len(self._windows) > MEMORY_PRUNE_THRESHOLD:
            self._prune(now)
        return count, window_end - now

    def _prune(self, now: float) -> None:
        expired = [k for k, (_, end) in self._windows.items() if end <= now]
        for k in expired:
            del self._windows[k]

    async def close(self) -> None:
        self._windows.clear()


class RedisRateLimitStore:
    name = "redis"

    def __init__(self, client: Any, prefix: str = "ratelimit:"):
        self.client = client
        self.prefix = prefix

    async def hit(self, key: str, window_seconds: int) -> Tuple[int, float]:
        rkey = f"{self.prefix}{key}"
        count = int(await self.client.incr(rkey))
        if count == 1:
            await self.client.expire(rkey, window_seconds)
        ttl = int(await self.client.ttl(rkey))
        if ttl < 0:
            # Clé sans expiration (EXPIRE perdu): on rétablit la fenêtre
            await self.client.expire(rkey, window_seconds)
            ttl = window_seconds
        return count, float(ttl)

    async def close(self) -> None:
        await self.client.aclose()


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_in: int

    @property
    def reset_at(self) -> int:
        return int(time.time()) + self.reset_in

    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }


class FixedWindowRateLimiter:
    def __init__(self, store: RateLimitStore, max_requests: int = 60, window_seconds: int = 60):
        self.store = store
        self.max_requests = max_requests
        self.window_seconds = window_seconds

    async def check(self, key: str) -> RateLimitResult:
        count, reset_in = await self.store.hit(key, self.window_seconds)
        return RateLimitResult(
            allowed=count <= self.max_requests,
            limit=self.max_requests,
            remaining=max(0, self.max_requests - count),
            reset_in=max(1, math.ceil(reset_in)),
        )

# module intake_backend.utils.rate_limit
def client_ip(request: Request) -> str:
    """IP cliente: premier saut de x-forwarded-for, puis x-real-ip, puis pair TCP."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = (request.headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"

def build_rate_limit_store(backend: Optional[str] = None, redis_url: Optional[str] = None) -> RateLimitStore:
    """
    Construit le store selon RATE_LIMIT_BACKEND ("memory" par défaut, ou "redis").
    Le client Redis est paresseux: aucune connexion n'est ouverte ici.
    """
    from intake_backend.config import RATE_LIMIT_BACKEND, RATE_LIMIT_REDIS_URL
    backend = (backend or RATE_LIMIT_BACKEND or "memory").lower()
    if backend == "redis":
        import redis.asyncio as aioredis
        client = aioredis.from_url(redis_url or RATE_LIMIT_REDIS_URL, encoding="utf-8", decode_responses=True)
        return RedisRateLimitStore(client)
    if backend != "memory":
        logger.warning("Unknown RATE_LIMIT_BACKEND=%s, using in-memory store", backend)
    return InMemoryRateLimitStore()

def rate_limit_health_info(request: Request) -> Dict[str, Any]:
    enabled = getattr(request.app.state, "rate_limit_enabled", None)
    limiter: Optional[FixedWindowRateLimiter] = getattr(request.app.state, "rate_limiter", None)

    info: Dict[str, Any] = {
        "enabled": (bool(enabled) if enabled is not None else None),
        "ready": limiter is not None,
        "backend": limiter.store.name if limiter is not None else None,
    }
    if limiter is not None:
        info["limit"] = limiter.max_requests
        info["window_seconds"] = limiter.window_seconds

    if info["backend"] == "redis":
        from urllib.parse import urlparse
        from intake_backend.config import RATE_LIMIT_REDIS_URL
        p = urlparse(RATE_LIMIT_REDIS_URL)
        info["redis"] = {
            "scheme": p.scheme,
            "host": p.hostname,
            "port": p.port,
        }
    return info
