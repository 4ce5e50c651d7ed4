# Read-through cache for chat lists and message pages

import json
import logging

import redis

logger = logging.getLogger(__name__)


class ChatCache:
    # Without a client every lookup misses and invalidation does nothing

    def __init__(self, client=None, ttl=300):
        self.client = client
        self.ttl = ttl

    @classmethod
    def from_url(cls, url, ttl=300):
        if not url:
            return cls(None, ttl)
        return cls(redis.Redis.from_url(url, decode_responses=True), ttl)

    @property
    def enabled(self):
        return self.client is not None

    @staticmethod
    def user_chats_key(user_id, page, limit):
        return f"user:{user_id}:chats:{page}:{limit}"

    @staticmethod
    def chat_messages_key(chat_id, page, limit):
        return f"chat:{chat_id}:messages:{page}:{limit}"

    def get(self, key):
        if not self.enabled:
            return None
        try:
            raw = self.client.get(key)
        except redis.RedisError as e:
            logger.warning("[CACHE] get %s failed: %s", key, e)
            return None
        return json.loads(raw) if raw else None

    def set(self, key, value):
        if not self.enabled:
            return
        try:
            self.client.set(key, json.dumps(value), ex=self.ttl)
        except redis.RedisError as e:
            logger.warning("[CACHE] set %s failed: %s", key, e)

    def invalidate_pattern(self, pattern):
        if not self.enabled:
            return 0
        deleted = 0
        try:
            keys = list(self.client.scan_iter(match=pattern))
            if keys:
                deleted = self.client.delete(*keys)
        except redis.RedisError as e:
            logger.warning("[CACHE] invalidate %s failed: %s", pattern, e)
        return deleted

    def invalidate_user_chats(self, user_id):
        return self.invalidate_pattern(f"user:{user_id}:chats:*")

    def invalidate_chat_messages(self, chat_id):
        return self.invalidate_pattern(f"chat:{chat_id}:messages:*")
