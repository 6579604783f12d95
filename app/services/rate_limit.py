"""
Fixed-window rate limiter for the public (unauthenticated) endpoints.
"""
import logging

import redis
from starlette.requests import Request

from app.core.config import settings
from app.core.errors import RateLimited

logger = logging.getLogger("rate_limit")


def get_client_ip(request: Request) -> str:
    """Client IP (supports X-Forwarded-For from proxy)."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded and settings.app_env == "production":
        trusted = settings.trusted_proxy_ips_set
        if trusted and request.client and request.client.host in trusted:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "127.0.0.1"


def check_rate_limit(scope: str, client_ip: str, limit: int, window_seconds: int) -> bool:
    """
    Check if a request is allowed. Returns True if allowed, False if rate limited.
    Increments counter on each call.
    """
    try:
        client = redis.Redis.from_url(settings.redis_url, decode_responses=True)
        key = f"rate:{scope}:{client_ip}"
        current = client.incr(key)
        if current == 1:
            client.expire(key, window_seconds)
        if current > limit:
            logger.warning("rate_limited", extra={"path": scope, "error": f"{current} requests"})
            return False
        return True
    except redis.RedisError as e:
        logger.warning("rate_limit_redis_error", extra={"error": str(e)})
        return True  # Fail open - allow the request if Redis is down


def rate_limiter(scope: str, limit_setting: str):
    """FastAPI dependency: raise RateLimited once the caller exceeds `settings.<limit_setting>` per window."""
    def dependency(request: Request) -> None:
        limit = getattr(settings, limit_setting)
        if not check_rate_limit(scope, get_client_ip(request), limit, settings.public_rate_limit_window_seconds):
            raise RateLimited()
    return dependency
