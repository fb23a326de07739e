"""
Per-professional booking locks

Validation and the write that follows it must not interleave with another
booking for the same professional, or both could pass against a stale
snapshot. A Redis lock serializes bookings across workers; without Redis
(or when it is unreachable) an in-process lock serializes them within one
process (fail-open mode).
"""

import logging
import time
from contextlib import contextmanager
from threading import Lock
from typing import Optional

import redis

from .config import (
    BOOKING_LOCK_TIMEOUT,
    REDIS_HOST,
    REDIS_PASSWORD,
    REDIS_PORT,
    REDIS_RETRY_INTERVAL,
    REDIS_SSL,
    REDIS_URL,
)
from .domain.scheduling.errors import LockTimeout

logger = logging.getLogger(__name__)

# Redis connection
redis_client: Optional[redis.Redis] = None
# Monotonic time before which no reconnect is attempted
redis_retry_after = 0.0

# In-process fallback locks, one per professional
local_locks: dict[str, Lock] = {}
local_locks_guard = Lock()


def get_redis_client() -> Optional[redis.Redis]:
    """
    Get or create the Redis client used for booking locks.
    Returns None when Redis is not configured or cannot be reached.
    A failed connection is not retried for REDIS_RETRY_INTERVAL seconds.
    """
    global redis_client

    if redis_client is not None:
        return redis_client
    if not REDIS_URL and not REDIS_HOST:
        return None
    if time.monotonic() < redis_retry_after:
        return None

    logger.info("🔄 Initializing Redis connection for booking locks...")
    try:
        if REDIS_URL:
            client = redis.from_url(
                REDIS_URL,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=10,
                retry_on_timeout=True,
            )
        else:
            client = redis.Redis(
                host=REDIS_HOST,
                port=REDIS_PORT,
                password=REDIS_PASSWORD,
                ssl=REDIS_SSL,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=10,
                retry_on_timeout=True,
            )
        client.ping()
    except redis.RedisError as e:
        logger.warning(f"⚠️ Redis unavailable, booking locks are process-local (fail-open mode): {e}")
        mark_redis_unavailable()
        return None

    redis_client = client
    logger.info("Redis connected successfully for booking locks")
    return redis_client


def mark_redis_unavailable():
    """Drop the cached client and hold off reconnecting for a while"""
    global redis_client, redis_retry_after

    redis_client = None
    redis_retry_after = time.monotonic() + REDIS_RETRY_INTERVAL


def get_local_lock(professional_id: str) -> Lock:
    with local_locks_guard:
        if professional_id not in local_locks:
            local_locks[professional_id] = Lock()
        return local_locks[professional_id]


def acquire_redis_lock(client: redis.Redis, professional_id: str):
    """Take the professional's Redis lock; RedisError propagates to the caller"""
    lock = client.lock(
        f"booking-lock:{professional_id}",
        timeout=BOOKING_LOCK_TIMEOUT,
        blocking_timeout=BOOKING_LOCK_TIMEOUT,
    )
    if not lock.acquire():
        raise LockTimeout(f"Calendar of professional {professional_id} is busy, try again")
    return lock


@contextmanager
def _local_lock(professional_id: str):
    lock = get_local_lock(professional_id)
    if not lock.acquire(timeout=BOOKING_LOCK_TIMEOUT):
        raise LockTimeout(f"Calendar of professional {professional_id} is busy, try again")
    try:
        yield
    finally:
        lock.release()


@contextmanager
def booking_lock(professional_id: str):
    """Serialize check-and-commit sequences for one professional"""
    lock = None
    client = get_redis_client()
    if client is not None:
        try:
            lock = acquire_redis_lock(client, professional_id)
        except redis.RedisError as e:
            logger.warning(f"⚠️ Redis lock failed for {professional_id}, using a process-local lock: {e}")
            mark_redis_unavailable()

    if lock is None:
        with _local_lock(professional_id):
            yield
        return

    try:
        yield
    finally:
        try:
            lock.release()
        except redis.RedisError as e:
            # Lock expired or Redis dropped while the booking was still running
            logger.warning(f"⚠️ Booking lock for {professional_id} could not be released: {e}")
