from __future__ import annotations

import math

import redis

from .base import DEFAULT_TTL

DEFAULT_PREFIX = "processed_update:"


class RedisUpdateStorage:
    """Shared store for multi-process deployments; expiry is left to Redis."""

    def __init__(self, client: redis.Redis, *, prefix: str = DEFAULT_PREFIX) -> None:
        self._redis = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str, *, prefix: str = DEFAULT_PREFIX) -> RedisUpdateStorage:
        return cls(redis.Redis.from_url(url), prefix=prefix)

    def _key(self, update_id: str) -> str:
        return f"{self._prefix}{update_id}"

    def has(self, update_id: str) -> bool:
        return bool(self._redis.exists(self._key(update_id)))

    def mark_as_processed(self, update_id: str, ttl: float = DEFAULT_TTL) -> None:
        self._redis.setex(self._key(update_id), max(1, math.ceil(ttl)), "1")
