"""
Hybrid in-memory + Redis rate limiting

Counters live in process memory and are pushed to Redis every few seconds so
several API workers share roughly the same view. Without a reachable Redis the
limiter keeps counting in memory only.

Used on the two unauthenticated entry points: the public booking form
(per client IP) and the Calendly webhook (one global bucket).
"""

import logging
import os
import time
from dataclasses import dataclass
from threading import Lock
from typing import Optional

import redis
from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)

RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"

REDIS_SYNC_INTERVAL = 10  # seconds between pushes of a counter to Redis
CLEANUP_INTERVAL = 60  # seconds between sweeps of expired buckets


@dataclass
class Bucket:
    count: int
    reset_at: int
    synced_at: int


def connect_redis() -> Optional[redis.Redis]:
    """Redis client from REDIS_URL or REDIS_HOST/PORT; None when unreachable"""
    options = {
        "decode_responses": True,
        "socket_connect_timeout": 5,
        "socket_timeout": 5,
        "retry_on_timeout": True,
        "health_check_interval": 30,
    }
    redis_url = os.getenv("REDIS_URL")
    try:
        if redis_url:
            client = redis.from_url(redis_url, **options)
        else:
            client = redis.Redis(
                host=os.getenv("REDIS_HOST", "localhost"),
                port=int(os.getenv("REDIS_PORT", "6379")),
                password=os.getenv("REDIS_PASSWORD"),
                db=int(os.getenv("REDIS_DB", "0")),
                ssl=os.getenv("REDIS_SSL", "false").lower() == "true",
                **options,
            )
        client.ping()
    except redis.RedisError as e:
        logger.warning(f"⚠️ Redis unavailable, rate limiting in memory only: {e}")
        return None

    logger.info("✅ Redis connected for rate limiting")
    return client


class HybridRateLimiter:
    """Fixed-window counters per key, shared through Redis when available"""

    def __init__(self, redis_client: Optional[redis.Redis] = None, use_redis: bool = True):
        self._buckets: dict[str, Bucket] = {}
        self._lock = Lock()
        self._redis = redis_client
        # Connect lazily on first hit; give up for the process after one failure
        self._redis_pending = use_redis and redis_client is None
        self._last_cleanup = 0

    def _client(self) -> Optional[redis.Redis]:
        if self._redis_pending:
            self._redis_pending = False
            logger.info("🔄 Initializing Redis connection for rate limiting...")
            self._redis = connect_redis()
        return self._redis

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()
        self._last_cleanup = 0

    def _sweep(self, now: int) -> None:
        if now - self._last_cleanup < CLEANUP_INTERVAL:
            return
        with self._lock:
            expired = [key for key, bucket in self._buckets.items() if now >= bucket.reset_at]
            for key in expired:
                del self._buckets[key]
        if expired:
            logger.debug(f"🧹 Dropped {len(expired)} expired rate limit buckets")
        self._last_cleanup = now

    def _load(self, client: Optional[redis.Redis], key: str, now: int, window: int) -> Bucket:
        """New bucket, seeded from the shared Redis counter when one is live"""
        if client is not None:
            try:
                shared_count = client.get(key)
                ttl = client.ttl(key)
                if shared_count and ttl > 0:
                    return Bucket(count=int(shared_count), reset_at=now + ttl, synced_at=now)
            except redis.RedisError as e:
                logger.warning(f"⚠️ Failed to load {key} from Redis: {e}")
        return Bucket(count=0, reset_at=now + window, synced_at=now)

    def hit(self, key: str, limit: int, window: int) -> tuple[bool, int, int]:
        """
        Count one request against a key.

        Returns:
            (allowed, count in the current window, seconds until the window resets)
        """
        now = int(time.time())
        self._sweep(now)
        client = self._client()

        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = self._buckets[key] = self._load(client, key, now, window)
            if now >= bucket.reset_at:
                bucket.count = 0
                bucket.reset_at = now + window
                bucket.synced_at = 0

            allowed = bucket.count < limit
            if allowed:
                bucket.count += 1

            if client is not None and now - bucket.synced_at >= REDIS_SYNC_INTERVAL:
                try:
                    client.set(key, bucket.count, ex=window)
                    bucket.synced_at = now
                except redis.RedisError as e:
                    logger.warning(f"⚠️ Failed to sync {key} to Redis: {e}")

            return allowed, bucket.count, max(0, bucket.reset_at - now)


limiter = HybridRateLimiter()


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def create_rate_limiter(
    limit: int,
    window_seconds: int,
    key_prefix: str,
    use_ip: bool = True,
    backend: Optional[HybridRateLimiter] = None,
):
    """
    FastAPI dependency enforcing `limit` requests per `window_seconds`.

    With use_ip the bucket is per client IP, otherwise one bucket is shared by
    every caller. Exceeding the limit answers 429 with Retry-After.
    """

    async def rate_limit(request: Request):
        if not RATE_LIMIT_ENABLED:
            return

        key = f"{key_prefix}:{client_ip(request) if use_ip else 'global'}"
        allowed, count, retry_after = (backend or limiter).hit(key, limit, window_seconds)
        if not allowed:
            logger.warning(f"🚫 Rate limit exceeded for {key} ({count}/{limit})")
            raise HTTPException(
                status_code=429,
                detail=f"Too many requests. Please try again in {retry_after} seconds.",
                headers={"Retry-After": str(retry_after)},
            )
        request.state.rate_limit_remaining = limit - count

    return rate_limit
