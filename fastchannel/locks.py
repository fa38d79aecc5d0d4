"""Per-channel serialization on Redis locks with automatic fakeredis fallback.

Two "add to schedule" calls on one channel must not both read the same last
entry, so every timeline mutation runs under the channel's lock. Different
channels never contend.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

import redis as _redis_lib
from redis.exceptions import LockError

from fastchannel.config import get_settings
from fastchannel.errors import StoreFailure
from fastchannel.log import get_logger

logger = get_logger(__name__)

_client: Optional[_redis_lib.Redis] = None

LOCK_PREFIX = "fastchannel:lock:channel:"


def _connect() -> _redis_lib.Redis:
    """Connect to real Redis; fall back to fakeredis if unavailable."""
    global _client
    if _client is not None:
        return _client

    settings = get_settings()

    # Try real Redis first
    try:
        pool = _redis_lib.ConnectionPool.from_url(
            settings.redis_url, decode_responses=True,
        )
        client = _redis_lib.Redis(connection_pool=pool)
        client.ping()
        logger.info("lock_backend", backend="redis")
        _client = client
        return _client
    except _redis_lib.RedisError as exc:
        logger.warning("redis_unreachable", error=str(exc))

    # Fall back to fakeredis (in-memory, same process)
    try:
        import fakeredis
    except ImportError:
        raise RuntimeError(
            "Redis is not reachable and fakeredis is not installed. "
            "Install fakeredis (`pip install fakeredis[lua]`) or start a Redis server."
        )
    client = fakeredis.FakeRedis(decode_responses=True)
    logger.info("lock_backend", backend="fakeredis (in-memory)")
    _client = client
    return _client


def get_redis() -> _redis_lib.Redis:
    return _connect()


def lock_name(channel_id: str) -> str:
    return f"{LOCK_PREFIX}{channel_id}"


@contextmanager
def channel_lock(channel_id: str) -> Iterator[None]:
    """Hold the channel's lock for the duration of the block.

    Raises StoreFailure when the lock cannot be taken within
    ``channel_lock_wait_seconds``.
    """
    settings = get_settings()
    lock = get_redis().lock(
        lock_name(channel_id),
        timeout=settings.channel_lock_timeout_seconds,
        blocking_timeout=settings.channel_lock_wait_seconds,
    )
    if not lock.acquire():
        logger.error("channel_lock_timeout", channel_id=channel_id)
        raise StoreFailure(f"Channel {channel_id} is busy")
    try:
        yield
    finally:
        try:
            lock.release()
        except LockError:
            # Expired while held; another writer may already own it.
            logger.warning("channel_lock_expired", channel_id=channel_id)
