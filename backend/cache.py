"""
Cache wrapper used for AI results and revoked tokens.

Values are stored as JSON in Redis when REDIS_URL is configured and reachable,
otherwise in a process-local dictionary with per-key expiry. Writes that Redis
rejects at runtime land in the dictionary, and reads check it after Redis.
"""

from typing import Any, Dict, Optional, Tuple
import json
import logging
import time

import redis

from backend.config import REDIS_URL

logger = logging.getLogger(__name__)


class CacheService:
    def __init__(self, redis_url: str = ""):
        self.client: Optional[redis.Redis] = None
        self.is_connected = False
        self._memory: Dict[str, Tuple[Any, float]] = {}

        if redis_url:
            self._connect(redis_url)
        else:
            logger.info("REDIS_URL not set, using in-memory cache")

    def _connect(self, redis_url: str) -> None:
        try:
            self.client = redis.Redis.from_url(redis_url, decode_responses=True)
            self.client.ping()
            self.is_connected = True
            logger.info("Redis connected at %s", redis_url)
        except redis.RedisError as e:
            logger.warning("Redis connection failed, using in-memory cache: %s", e)
            self.client = None
            self.is_connected = False

    @property
    def backend_name(self) -> str:
        return "redis" if self.is_connected else "memory"

    def _memory_get(self, key: str) -> Optional[Any]:
        item = self._memory.get(key)
        if item is None:
            return None
        value, expiry = item
        if expiry <= time.monotonic():
            del self._memory[key]
            return None
        return value

    def _memory_set(self, key: str, value: Any, ttl: int) -> None:
        # Round-trip through JSON so callers never share mutable state with the cache
        self._memory[key] = (json.loads(json.dumps(value)), time.monotonic() + ttl)

    def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        if self.is_connected:
            try:
                self.client.setex(key, ttl, json.dumps(value))
                return True
            except redis.RedisError as e:
                logger.warning("Cache set error for %s, keeping it in memory: %s", key, e)
        self._memory_set(key, value, ttl)
        return True

    def get(self, key: str) -> Optional[Any]:
        if self.is_connected:
            try:
                raw = self.client.get(key)
                if raw:
                    return json.loads(raw)
            except (redis.RedisError, json.JSONDecodeError) as e:
                logger.error("Cache get error for %s: %s", key, e)
        value = self._memory_get(key)
        return json.loads(json.dumps(value)) if value is not None else None

    def delete(self, key: str) -> bool:
        self._memory.pop(key, None)
        if self.is_connected:
            try:
                self.client.delete(key)
            except redis.RedisError as e:
                logger.error("Cache delete error for %s: %s", key, e)
                return False
        return True

    def exists(self, key: str) -> bool:
        if self.is_connected:
            try:
                if self.client.exists(key) == 1:
                    return True
            except redis.RedisError as e:
                logger.error("Cache exists error for %s: %s", key, e)
        return self._memory_get(key) is not None

    def increment(self, key: str, value: int = 1, ttl: int = 3600) -> int:
        if self.is_connected:
            try:
                return int(self.client.incrby(key, value))
            except redis.RedisError as e:
                logger.error("Cache increment error for %s: %s", key, e)
                return 0
        current = self._memory_get(key) or 0
        new_value = current + value
        self._memory_set(key, new_value, ttl)
        return new_value

    def clear(self) -> None:
        """Drop every in-memory entry. Redis keys are left alone."""
        self._memory.clear()


cache = CacheService(REDIS_URL)
