"""Webhook delivery deduplication, Redis-based.

Contract:
- Tracks provider event IDs in Redis with a TTL (24h by default)
- Key pattern: webhook:seen:{provider}:{event_type}:{id}
- A claim is released when processing fails so the provider retry is processed
- If Redis is down, falls back to allowing (fail-open for availability)
"""

from __future__ import annotations

import logging

import redis

logger = logging.getLogger(__name__)

_DEDUP_TTL_SECONDS = 86400  # 24 hours

# Key prefix for webhook dedup
_KEY_PREFIX = "webhook:seen"


class DeliveryGuard:
    """Claims (provider, event_id) pairs so a processed event is not reprocessed."""

    def __init__(
        self,
        redis_url: str | None = None,
        *,
        client: redis.Redis | None = None,
        ttl_seconds: int = _DEDUP_TTL_SECONDS,
    ) -> None:
        if client is None and not redis_url:
            raise ValueError("DeliveryGuard needs a redis_url or a client")
        self._redis_url = redis_url
        self._client = client
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def key(provider: str, event_id: str) -> str:
        return f"{_KEY_PREFIX}:{provider}:{event_id}"

    def _get_redis(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(self._redis_url, decode_responses=True)
        return self._client

    def claim(self, provider: str, event_id: str) -> bool:
        """Atomically mark an event as being processed.

        Uses Redis SET NX EX (set-if-not-exists) for atomic check-and-mark.

        Returns:
            True if the caller should process the event, False if it was
            already claimed (duplicate delivery)
        """
        if not event_id:
            return True  # No ID = can't dedup, allow through

        key = self.key(provider, event_id)
        try:
            was_set = self._get_redis().set(key, "1", nx=True, ex=self.ttl_seconds)
        except redis.RedisError:
            # Redis down: fail open for availability
            logger.warning(
                "Redis unavailable for webhook dedup, allowing %s/%s",
                provider,
                event_id,
                exc_info=True,
            )
            return True

        if not was_set:
            logger.info("Duplicate webhook delivery: %s/%s", provider, event_id)
            return False
        return True

    def release(self, provider: str, event_id: str) -> None:
        """Drop a claim after failed processing."""
        if not event_id:
            return

        try:
            self._get_redis().delete(self.key(provider, event_id))
        except redis.RedisError:
            logger.warning("Failed to release webhook claim: %s/%s", provider, event_id)
