# backend/modules/notifications/services/notification_cache.py

"""
Redis-backed counters, dedup markers and batch queues for notifications.

Every redis error is re-raised as TransientStoreFailure.
"""

import json
import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import redis

from core.config import get_settings
from core.exceptions import TransientStoreFailure

logger = logging.getLogger(__name__)

# Attempts at an optimistic batch append before giving up
MAX_WATCH_RETRIES = 5


@contextmanager
def _redis_errors(operation: str):
    try:
        yield
    except redis.RedisError as e:
        logger.error(f"Redis error during {operation}: {e}")
        raise TransientStoreFailure(f"Cache unavailable during {operation}") from e


class NotificationCache:
    def __init__(self, redis_client: redis.Redis, key_prefix: Optional[str] = None):
        self.redis_client = redis_client
        self.key_prefix = key_prefix if key_prefix is not None else get_settings().redis_key_prefix

    def _key(self, *parts: Any) -> str:
        return ":".join([self.key_prefix, "notif", *[str(p) for p in parts]])

    def rate_key(self, user_id: int) -> str:
        return self._key("rate", user_id)

    def dedup_key(self, user_id: int, notification_type: str, entity_key: str) -> str:
        return self._key("sent", user_id, notification_type, entity_key)

    def batch_key(self, user_id: int) -> str:
        return self._key("batch", user_id)

    def batch_users_key(self) -> str:
        return self._key("batch_users")

    def check_rate_limit(self, user_id: int, limit: int, window_seconds: int = 3600) -> bool:
        """
        Count one more notification for the user and report whether it is
        within the limit. A limit of 0 means unlimited.
        """
        if limit <= 0:
            return True

        key = self.rate_key(user_id)
        with _redis_errors("rate limit check"):
            pipe = self.redis_client.pipeline(transaction=True)
            # Only the first notification of a window sets the TTL
            pipe.set(key, 0, ex=window_seconds, nx=True)
            pipe.incr(key)
            results = pipe.execute()

        current_count = int(results[1])
        if current_count > limit:
            logger.warning(f"Notification rate limit exceeded for user {user_id} ({current_count}/{limit})")
            return False
        return True

    def mark_sent(self, user_id: int, notification_type: str, entity_key: str, ttl_seconds: int = 300) -> bool:
        """
        Claim the dedup marker for (user, type, entity key). Returns False when
        another send already holds it.
        """
        with _redis_errors("dedup mark"):
            marked = self.redis_client.set(
                self.dedup_key(user_id, notification_type, entity_key), "1", ex=ttl_seconds, nx=True
            )
        return bool(marked)

    def clear_sent(self, user_id: int, notification_type: str, entity_key: str):
        with _redis_errors("dedup clear"):
            self.redis_client.delete(self.dedup_key(user_id, notification_type, entity_key))

    def append_batch(self, user_id: int, item: Dict[str, Any], ttl_seconds: int = 3600) -> int:
        """
        Append an item to the user's pending batch and return the new length.

        The read-modify-write runs under WATCH so concurrent appends for the
        same user are retried instead of lost.
        """
        key = self.batch_key(user_id)
        with _redis_errors("batch append"):
            with self.redis_client.pipeline() as pipe:
                for _ in range(MAX_WATCH_RETRIES):
                    try:
                        pipe.watch(key)
                        raw = pipe.get(key)
                        items = json.loads(raw) if raw else []
                        items.append(item)
                        pipe.multi()
                        pipe.set(key, json.dumps(items), ex=ttl_seconds)
                        pipe.sadd(self.batch_users_key(), str(user_id))
                        pipe.execute()
                        return len(items)
                    except redis.WatchError:
                        logger.debug(f"Batch queue for user {user_id} changed during append, retrying")
                        continue
        raise TransientStoreFailure(f"Could not append to batch queue for user {user_id}")

    def pop_batch(self, user_id: int) -> List[Dict[str, Any]]:
        """Remove and return everything queued for the user"""
        key = self.batch_key(user_id)
        with _redis_errors("batch pop"):
            pipe = self.redis_client.pipeline(transaction=True)
            pipe.get(key)
            pipe.delete(key)
            pipe.srem(self.batch_users_key(), str(user_id))
            raw = pipe.execute()[0]
        return json.loads(raw) if raw else []

    def peek_batch(self, user_id: int) -> List[Dict[str, Any]]:
        with _redis_errors("batch read"):
            raw = self.redis_client.get(self.batch_key(user_id))
        return json.loads(raw) if raw else []

    def pending_batch_users(self) -> List[int]:
        with _redis_errors("batch user scan"):
            members = self.redis_client.smembers(self.batch_users_key())
        return sorted(int(m) for m in members)
