from datetime import date
from logging import getLogger
from redis import Redis
from typing import Optional, Union
from redis.lock import Lock
from redis.exceptions import LockNotOwnedError, RedisError

from hostelsync.src import exceptions
from hostelsync.src.constants import (
    REDIS_HOST,
    REDIS_PORT,
    REDIS_PASSWORD,
    REDIS_SOCKET_TIMEOUT,
    MUTEX_LOCK_TIMEOUT,
    MUTEX_LOCK_MAX_WAIT_TIME,
)

# Redis client (single connection)
redisClient = Redis(
    host=REDIS_HOST,
    port=REDIS_PORT,
    password=REDIS_PASSWORD,
    socket_timeout=REDIS_SOCKET_TIMEOUT,
    socket_connect_timeout=REDIS_SOCKET_TIMEOUT,
    decode_responses=True,
)

logger = getLogger("uvicorn.error")


def lockName(tableName: str, *keys: Union[int, str, date]) -> str:
    """
    Build the Redis key of a mutex.

    Example:
        >>> lockName("booking", 5, date(2024, 3, 1))
        'lock:booking:5:2024-03-01'
    """
    parts = [tableName]
    for key in keys:
        parts.append(key.isoformat() if isinstance(key, date) else str(key))
    return "lock:" + ":".join(parts)


def acquireLock(
    tableName: str,
    *keys: Union[int, str, date],
    timeOut: int = MUTEX_LOCK_TIMEOUT,
    blockingTimeOut: int = MUTEX_LOCK_MAX_WAIT_TIME,
) -> Lock:
    """
    Acquire a Redis-based mutex lock for a table, a row, or any composite key.

    Args:
        tableName (str): Name of the table/resource to lock.
        *keys (int | str | date): Optional key parts narrowing the lock scope.
            `acquireLock("booking", 5, date(2024, 3, 1))` locks only the seats
            of schedule 5 on 2024-03-01.
        timeOut (int): Lock expiration in seconds (auto-released after this).
        blockingTimeOut (int): Maximum time (in seconds) to wait for lock acquisition.

    Returns:
        Lock: A Redis lock object if successfully acquired.

    Raises:
        exceptions.StorageTimeout: If the lock could not be acquired within blockingTimeOut.
        exceptions.StorageUnavailable: If Redis could not be reached.
    """
    try:
        lock = redisClient.lock(lockName(tableName, *keys), timeout=timeOut)
        if lock.acquire(blocking=True, blocking_timeout=blockingTimeOut):
            return lock
        raise exceptions.StorageTimeout()
    except Exception as e:
        exceptions.handle(e)


def confirmLock(lock: Lock) -> None:
    """
    Check that a mutex is still held and restart its expiry.

    Call right before committing the work the mutex guards. A lock that
    expired may already belong to another client, so the work must be
    rolled back instead of committed.

    Raises:
        exceptions.StorageTimeout: If the lock is no longer owned.
    """
    try:
        lock.reacquire()
    except LockNotOwnedError:
        logger.warning(f"Mutex {lock.name} expired before the commit")
        raise exceptions.StorageTimeout()


def releaseLock(lock: Optional[Lock]) -> None:
    """
    Release a previously acquired Redis lock.

    Args:
        lock (Lock | None): The Redis lock object to release. Does nothing if None.

    Notes:
        - Ensures only the owner can release the lock.
        - Silently ignores invalid/unowned locks.
        - A Redis failure is logged instead of raised; the lock then expires
          on its own.
    """
    if lock is None:
        return
    try:
        if lock.locked() and lock.owned():
            lock.release()
    except RedisError as e:
        logger.warning(f"Releasing mutex {lock.name} failed: {e}")
