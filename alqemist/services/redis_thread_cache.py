"""
Redis cache for thread message history. Cache-Aside: Redis is a read-through cache only.
All Redis errors are handled internally; never raised to the caller. Works when Redis is down.
Key: thread:{thread_id} - Redis LIST of JSON message dicts, last N items, TTL from settings.
"""
import json
import logging
from typing import Any

from alqemist.config import get_settings

logger = logging.getLogger(__name__)

THREAD_KEY_PREFIX = "thread:"


def _key(thread_id: str) -> str:
    return f"{THREAD_KEY_PREFIX}{thread_id}"


def _deserialize(s: str) -> dict | None:
    try:
        data = json.loads(s)
        if isinstance(data, dict) and "role" in data:
            return data
    except (json.JSONDecodeError, TypeError):
        pass
    return None


class RedisThreadCache:
    def __init__(self, redis_client: Any, ttl_seconds: int | None = None, limit: int | None = None):
        settings = get_settings()
        self._redis = redis_client
        self._ttl = ttl_seconds or settings.thread_cache_ttl_seconds
        self._limit = limit or settings.thread_cache_max_messages

    async def get_messages(self, thread_id: str) -> list[dict] | None:
        """LRANGE thread:{id} -limit -1. None on miss or error (caller should hit DB)."""
        if not self._redis:
            return None
        try:
            raw_list = await self._redis.lrange(_key(thread_id), -self._limit, -1)
            if not raw_list:
                return None
            out = []
            for item in raw_list:
                m = _deserialize(item.decode() if isinstance(item, bytes) else item)
                if m:
                    out.append(m)
            return out or None
        except Exception as e:
            logger.warning("Redis thread cache get failed for thread %s: %s", thread_id, e, exc_info=False)
            return None

    async def append_message(self, thread_id: str, message: dict) -> None:
        """Append after the DB write; only when the key exists so a partial list is never cached."""
        if not self._redis:
            return
        try:
            key = _key(thread_id)
            if not await self._redis.exists(key):
                return
            await self._redis.rpush(key, json.dumps(message))
            await self._redis.ltrim(key, -self._limit, -1)
            await self._redis.expire(key, self._ttl)
        except Exception as e:
            logger.warning("Redis thread cache append failed for thread %s: %s", thread_id, e, exc_info=False)

    async def warm(self, thread_id: str, messages: list[dict]) -> None:
        """Replace the list with the last N messages from DB."""
        if not self._redis or not messages:
            return
        try:
            key = _key(thread_id)
            pipe = self._redis.pipeline()
            pipe.delete(key)
            for m in messages[-self._limit:]:
                pipe.rpush(key, json.dumps(m))
            pipe.expire(key, self._ttl)
            await pipe.execute()
        except Exception as e:
            logger.warning("Redis thread cache warm failed for thread %s: %s", thread_id, e, exc_info=False)

    async def invalidate(self, thread_id: str) -> None:
        if not self._redis:
            return
        try:
            await self._redis.delete(_key(thread_id))
        except Exception as e:
            logger.warning("Redis thread cache delete failed for thread %s: %s", thread_id, e, exc_info=False)
