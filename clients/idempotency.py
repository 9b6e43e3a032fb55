import time
import redis
import os
from loguru import logger

class IdempotencyGuard:
    """Redis-backed guard that drops repeated requests for the same key."""

    def __init__(self, namespace: str = "idem"):
        """Initialize Redis connection."""
        self.namespace = namespace
        self._memory_keys = {}           # key -> expiry timestamp
        try:
            redis_url = os.getenv("REDIS_URL", "redis://localhost:6379")
            self.r = redis.from_url(redis_url)
            self.r.ping()
            logger.info("Redis connection established successfully")
        except Exception as e:
            logger.error(f"Redis connection failed, using in-memory keys: {e}")
            self.r = None

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def _prune(self, now: float):
        expired = [key for key, expires_at in self._memory_keys.items() if expires_at <= now]
        for key in expired:
            del self._memory_keys[key]

    def claim(self, key: str, ttl: int = 3600) -> bool:
        """
        Claim a key for processing.

        Args:
            key: Request identifier
            ttl: Time to live in seconds (default: 1 hour)

        Returns:
            True for the first claim, False for duplicates and empty keys
        """
        if not key:
            logger.warning("Empty key provided to idempotency check")
            return False

        try:
            if self.r:
                result = self.r.set(
                    name=self._key(key),
                    value=int(time.time()),
                    ex=ttl,
                    nx=True
                )
                return result is True

            now = time.time()
            self._prune(now)
            if key in self._memory_keys:
                return False
            self._memory_keys[key] = now + ttl
            return True

        except Exception as e:
            logger.error(f"Idempotency check failed: {e}")
            # Fail open
            return True

    def release(self, key: str) -> bool:
        """Free a claimed key so the request can be retried."""
        try:
            if self.r:
                return bool(self.r.delete(self._key(key)))
            self._memory_keys.pop(key, None)
            return True
        except Exception as e:
            logger.error(f"Failed to release key: {e}")
            return False
