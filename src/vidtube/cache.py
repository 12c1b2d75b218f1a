import json
import logging
import time
from typing import Any, Dict, Optional

import redis

from vidtube.config import settings

logger = logging.getLogger("cache")


class Cache:
    """Redis-backed cache with an in-process fallback.

    When REDIS_URL is empty or the server does not answer a ping, entries
    live in a dict with per-key expiry instead.
    """

    def __init__(self, url: str = ""):
        self.store: Dict[str, Dict[str, Any]] = {}
        self.redis: Optional[redis.Redis] = None
        self.use_redis = False
        if url:
            try:
                self.redis = redis.Redis.from_url(url, decode_responses=True)
                self.use_redis = bool(self.redis.ping())
            except redis.RedisError as e:
                logger.warning(f"Redis unavailable at {url}, using memory cache: {e}")
                self.use_redis = False

    def _get_cache_key(self, key: str) -> str:
        return f"vidtube:{key}"

    def get(self, key: str) -> Optional[Any]:
        cache_key = self._get_cache_key(key)
        if self.use_redis:
            try:
                data = self.redis.get(cache_key)
                return json.loads(data) if data else None
            except redis.RedisError as e:
                logger.warning(f"Redis get failed for {cache_key}: {e}")

        entry = self.store.get(cache_key)
        if entry is None:
            return None
        if entry["expires"] > time.time():
            return entry["data"]
        self.store.pop(cache_key, None)
        return None

    def set(self, key: str, data: Any, ttl: int = 300) -> None:
        cache_key = self._get_cache_key(key)
        if self.use_redis:
            try:
                self.redis.setex(cache_key, ttl, json.dumps(data))
                return
            except redis.RedisError as e:
                logger.warning(f"Redis set failed for {cache_key}: {e}")

        self.store[cache_key] = {"data": data, "expires": time.time() + ttl}

    def delete(self, key: str) -> None:
        cache_key = self._get_cache_key(key)
        if self.use_redis:
            try:
                self.redis.delete(cache_key)
            except redis.RedisError as e:
                logger.warning(f"Redis delete failed for {cache_key}: {e}")
        self.store.pop(cache_key, None)

    def clear(self) -> None:
        if self.use_redis:
            try:
                for cache_key in self.redis.scan_iter(match=self._get_cache_key("*")):
                    self.redis.delete(cache_key)
            except redis.RedisError as e:
                logger.warning(f"Redis clear failed: {e}")
        self.store.clear()


cache = Cache(settings.REDIS_URL)
