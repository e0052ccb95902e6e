"""Redis client configuration and utilities."""

import json
from dataclasses import dataclass
from typing import Any, cast

import redis
import structlog

from coach_assignment.config import settings

logger = structlog.get_logger()

# Global Redis client instance
_redis_client: redis.Redis | None = None


def get_redis_client() -> redis.Redis:
    """
    Get or create Redis client instance.

    Returns:
        Redis client instance
    """
    global _redis_client

    if _redis_client is None:
        _redis_client = redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            username=settings.redis_username,
            password=settings.redis_password,
            decode_responses=settings.redis_decode_responses,
            socket_connect_timeout=5,
            socket_keepalive=True,
            health_check_interval=30,
        )

    return _redis_client


async def check_redis_connection() -> bool:
    """
    Check if Redis connection is healthy.

    Returns:
        True if connection is healthy, False otherwise
    """
    try:
        client = get_redis_client()
        client.ping()
        return True
    except Exception:
        return False


def close_redis_connection() -> None:
    """Close Redis connection."""
    global _redis_client

    if _redis_client is not None:
        _redis_client.close()
        _redis_client = None


# Rate limiting helper
class RateLimiter:
    """Redis-based fixed window rate limiter."""

    def __init__(self, redis_client: redis.Redis):
        """Initialize rate limiter with Redis client."""
        self.redis = redis_client

    def check_rate_limit(
        self,
        key: str,
        limit: int,
        window: int = 60,
    ) -> bool:
        """
        Check if rate limit is exceeded.

        Args:
            key: Rate limit key (e.g., API key hash)
            limit: Maximum number of requests
            window: Time window in seconds

        Returns:
            True if within limit, False if exceeded
        """
        try:
            current = cast(str | None, self.redis.get(key))

            if current is None:
                # First request
                self.redis.setex(key, window, 1)
                return True

            current_count = int(current)

            if current_count >= limit:
                return False

            self.redis.incr(key)
            return True
        except Exception as e:
            # Fail open
            logger.warning("rate_limit_check_failed", key=key, error=str(e))
            return True


@dataclass(frozen=True)
class CacheLookup:
    """Outcome of a cache read: a hit with its value, or a miss with an optional reason."""

    hit: bool
    value: Any | None = None
    error: str | None = None


# Cache helpers
class CacheManager:
    """Redis-based cache manager."""

    def __init__(self, redis_client: redis.Redis):
        """Initialize cache manager with Redis client."""
        self.redis = redis_client

    def lookup_json(self, key: str) -> CacheLookup:
        """
        Read and deserialize a JSON value.

        Missing keys, unreachable Redis and undecodable payloads are all
        reported as misses; the error field says which.

        Args:
            key: Cache key

        Returns:
            Lookup result
        """
        try:
            raw = cast(str | None, self.redis.get(key))
        except Exception as e:
            return CacheLookup(hit=False, error=f"cache unavailable: {e!s}")

        if raw is None:
            return CacheLookup(hit=False)

        try:
            return CacheLookup(hit=True, value=json.loads(raw))
        except (TypeError, ValueError) as e:
            return CacheLookup(hit=False, error=f"malformed cache entry: {e!s}")

    def set_json(
        self,
        key: str,
        value: Any,
        ttl: int | None = None,
    ) -> bool:
        """
        Serialize and set JSON value in cache.

        Args:
            key: Cache key
            value: Value to serialize and cache
            ttl: Time to live in seconds

        Returns:
            True if successful, False otherwise
        """
        try:
            json_value = json.dumps(value, default=str)
            if ttl:
                self.redis.setex(key, ttl, json_value)
            else:
                self.redis.set(key, json_value)
            return True
        except Exception:
            return False


class IdempotencyStore:
    """Stores produced responses under client idempotency keys."""

    def __init__(self, cache: CacheManager, namespace: str, ttl: int):
        """
        Initialize store.

        Args:
            cache: Cache manager
            namespace: Key prefix separating booking and webhook records
            ttl: Record lifetime in seconds
        """
        self.cache = cache
        self.namespace = namespace
        self.ttl = ttl

    def _key(self, idempotency_key: str) -> str:
        return f"idempotency:{self.namespace}:{idempotency_key}"

    def lookup(self, idempotency_key: str) -> CacheLookup:
        """Return the stored response for a key, if any."""
        result = self.cache.lookup_json(self._key(idempotency_key))
        if result.error:
            logger.warning(
                "idempotency_lookup_failed",
                namespace=self.namespace,
                idempotency_key=idempotency_key,
                error=result.error,
            )
        return result

    def store(self, idempotency_key: str, response: dict[str, Any]) -> bool:
        """Record a response under a key."""
        stored = self.cache.set_json(self._key(idempotency_key), response, ttl=self.ttl)
        if not stored:
            logger.warning(
                "idempotency_store_failed",
                namespace=self.namespace,
                idempotency_key=idempotency_key,
            )
        return stored
