"""Redis client for release idempotency keys.

A client retrying a release request after a timeout must not pay out twice.
The API claims the request's idempotency key in Redis with SET NX before the
ledger runs; a second request with the same key is rejected.

Usage:
    from opportunity_escrow.infrastructure.redis_client import claim_idempotency_key

    await claim_idempotency_key(redis, "release:9f1c...")
"""

from __future__ import annotations

import redis.asyncio as aioredis

from opportunity_escrow.config import get_settings
from opportunity_escrow.domain.exceptions import DuplicateOperationError
from opportunity_escrow.logging_config import get_logger

logger = get_logger(__name__)

_redis_client: aioredis.Redis | None = None

IDEMPOTENCY_PREFIX = "idempotency:"


async def init_redis() -> aioredis.Redis:
    """Initialize and return the Redis client. Called during app startup."""
    global _redis_client
    settings = get_settings()
    client = aioredis.from_url(
        settings.redis_url,
        decode_responses=True,
    )
    # Verify connectivity before publishing the client
    await client.ping()
    _redis_client = client
    logger.info("redis.connected", url=settings.redis_url)
    return _redis_client


def get_optional_redis() -> aioredis.Redis | None:
    """Return the Redis client, or None when Redis was unavailable at startup."""
    return _redis_client


async def close_redis() -> None:
    """Close the Redis connection. Called during app shutdown."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        logger.info("redis.disconnected")
        _redis_client = None


# --- Idempotency Helpers ---


async def claim_idempotency_key(redis: aioredis.Redis, key: str, value: str = "1") -> None:
    """Atomically record a key as used.

    Raises:
        DuplicateOperationError: If the key was already claimed within the TTL.
    """
    settings = get_settings()
    claimed = await redis.set(
        f"{IDEMPOTENCY_PREFIX}{key}",
        value,
        ex=settings.redis_idempotency_ttl_seconds,
        nx=True,
    )
    if not claimed:
        raise DuplicateOperationError(key)


async def release_idempotency_key(redis: aioredis.Redis, key: str) -> None:
    """Forget a claimed key so a failed operation can be retried with it."""
    await redis.delete(f"{IDEMPOTENCY_PREFIX}{key}")
