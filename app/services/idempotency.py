import redis

from app.core.config import settings


class WebhookDeduplicator:
    """Remembers processed webhook deliveries so provider retries are acknowledged but not re-applied."""

    def __init__(self, client: redis.Redis | None = None, ttl_seconds: int | None = None) -> None:
        self.client = client or redis.Redis.from_url(settings.redis_url, decode_responses=True)
        self.default_ttl = ttl_seconds if ttl_seconds is not None else settings.webhook_dedupe_ttl

    @staticmethod
    def key_for(provider: str, event: str, reference: str) -> str:
        return f"webhook:{provider}:{event}:{reference}"

    def check_and_set(self, key: str, ttl_seconds: int | None = None) -> bool:
        """Atomic operation: setnx + expire in one call. False when the key was already seen."""
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl
        created = self.client.set(key, "1", nx=True, ex=ttl)
        return created is not None

    def release(self, key: str) -> None:
        """Forget a delivery whose processing failed so the provider's retry is handled."""
        self.client.delete(key)
