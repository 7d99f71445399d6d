"""Redis cache for catalog listings and request status fan-out.

Keys and channels live under one namespace so several consoles can share a
Redis database.
"""

import json
import logging
from typing import Any, Optional

import redis

from stellar.core.config import settings

logger = logging.getLogger("stellar_console")

NAMESPACE = "stellar"


class CacheService:
    """Redis-backed caching service. Every failure here is non-fatal."""

    def __init__(self, url: Optional[str] = None, namespace: str = NAMESPACE):
        self._url = url or settings.REDIS_URL
        self._namespace = namespace
        self._client: Optional[redis.Redis] = None

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(
                self._url,
                decode_responses=True,
                max_connections=50,
                socket_connect_timeout=2,
                socket_timeout=2,
            )
        return self._client

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    def get_json(self, key: str) -> Optional[Any]:
        """Cached JSON value, or None on a miss or when Redis is unreachable."""
        try:
            raw = self.client.get(self._key(key))
        except redis.RedisError as e:
            logger.debug("Cache read failed for %s: %s", key, e)
            return None
        return json.loads(raw) if raw is not None else None

    def set_json(self, key: str, value: Any, ttl_seconds: int = 600) -> None:
        try:
            self.client.setex(self._key(key), ttl_seconds, json.dumps(value, default=str))
        except redis.RedisError as e:
            logger.debug("Cache write failed for %s: %s", key, e)

    def invalidate_pattern(self, pattern: str) -> int:
        """Delete keys matching a glob pattern; returns how many went."""
        removed = 0
        try:
            batch = []
            for key in self.client.scan_iter(match=self._key(pattern), count=500):
                batch.append(key)
                if len(batch) >= 500:
                    removed += self.client.delete(*batch)
                    batch = []
            if batch:
                removed += self.client.delete(*batch)
        except redis.RedisError as e:
            logger.debug("Cache invalidation failed for %s: %s", pattern, e)
        return removed

    def publish_json(self, channel: str, payload: Any) -> None:
        """Publish an event, e.g. a permission request's new status."""
        try:
            self.client.publish(self._key(channel), json.dumps(payload, default=str))
        except redis.RedisError as e:
            logger.debug("Publish to %s failed: %s", channel, e)

    def health_check(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError:
            return False


cache_service = CacheService()
