"""
Named locks serializing per-session operations.
Redis-backed locks coordinate across instances; local locks cover the
single-process in-memory deployment.

Version: 1.0.0
"""
import asyncio
import logging
import uuid
from typing import Dict, Optional, Protocol

from redis.asyncio import Redis
from redis.exceptions import RedisError
from tenacity import AsyncRetrying, retry_if_result, stop_after_attempt, wait_exponential

logger = logging.getLogger(__name__)


class LockAcquisitionError(Exception):
    """Raised when lock acquisition fails."""
    pass


class LockReleaseError(Exception):
    """Raised when lock release fails."""
    pass


class NamedLock(Protocol):
    """Async context manager guarding one named critical section."""

    async def __aenter__(self) -> "NamedLock": ...

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool: ...


class LockManager(Protocol):
    """Factory of named locks."""

    def get_lock(self, lock_name: str) -> NamedLock: ...


class DistributedLock:
    """
    Redis lock held as ``SET lock:<name> <token> NX EX <timeout>``.

    The token is random per acquisition, so release only deletes the key
    while it still holds our token. A holder that outlives the expiry
    loses the lock silently; release then reports False.
    """

    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    end
    return 0
    """

    def __init__(
        self,
        redis_client: Redis,
        lock_name: str,
        timeout: int = 30,
        retry_attempts: int = 50,
        retry_delay: float = 0.05,
        max_retry_delay: float = 0.5
    ):
        """
        Args:
            redis_client: Redis client instance
            lock_name: Critical section name, e.g. ``handoff:<session_id>``
            timeout: Key expiry in seconds
            retry_attempts: SET NX attempts before giving up
            retry_delay: First backoff delay in seconds
            max_retry_delay: Backoff ceiling in seconds
        """
        self.redis_client = redis_client
        self.key = f"lock:{lock_name}"
        self.timeout = timeout
        self.retrying = AsyncRetrying(
            stop=stop_after_attempt(retry_attempts),
            wait=wait_exponential(multiplier=retry_delay, max=max_retry_delay),
            retry=retry_if_result(lambda won: not won),
            retry_error_callback=lambda state: False
        )

        self.token: Optional[str] = None
        self.acquired: bool = False

    async def _try_set(self) -> bool:
        return bool(await self.redis_client.set(self.key, self.token, nx=True, ex=self.timeout))

    async def acquire(self) -> bool:
        """
        Take the lock, backing off while another holder has it.

        Raises:
            LockAcquisitionError: Contended past the retry budget, or Redis failed
        """
        if self.acquired:
            return True

        self.token = uuid.uuid4().hex
        try:
            won = await self.retrying(self._try_set)
        except RedisError as e:
            logger.error(f"Redis error acquiring {self.key}: {e}")
            raise LockAcquisitionError(f"Failed to acquire {self.key}: {e}") from e

        if not won:
            logger.warning(f"Gave up waiting for {self.key}")
            raise LockAcquisitionError(f"Could not acquire {self.key}")

        self.acquired = True
        logger.debug(f"Acquired {self.key} for {self.timeout}s")
        return True

    async def release(self) -> bool:
        """
        Drop the lock if our token still holds it.

        Returns:
            False when the lock had already expired

        Raises:
            LockReleaseError: Redis failed during release
        """
        if not self.acquired:
            return False

        self.acquired = False
        try:
            deleted = await self.redis_client.eval(self.RELEASE_SCRIPT, 1, self.key, self.token)
        except RedisError as e:
            logger.error(f"Redis error releasing {self.key}: {e}")
            raise LockReleaseError(f"Failed to release {self.key}: {e}") from e

        if not deleted:
            logger.warning(f"{self.key} expired while held; another caller may own it now")
        self.token = None
        return bool(deleted)

    async def __aenter__(self) -> "DistributedLock":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        await self.release()
        return False


class DistributedLockManager:
    """Creates Redis-backed locks sharing one client."""

    def __init__(self, redis_client: Redis, timeout: int = 30):
        """
        Initialize lock manager.

        Args:
            redis_client: Redis client instance
            timeout: Expiry applied to every lock
        """
        self.redis_client = redis_client
        self.timeout = timeout

    def get_lock(self, lock_name: str) -> DistributedLock:
        """A fresh lock object per critical section."""
        return DistributedLock(
            redis_client=self.redis_client,
            lock_name=lock_name,
            timeout=self.timeout
        )


class LocalLock:
    """Process-local named lock backed by asyncio.Lock."""

    def __init__(self, manager: "LocalLockManager", lock_name: str, timeout: Optional[float]):
        self.manager = manager
        self.lock_name = lock_name
        self.timeout = timeout

    async def __aenter__(self) -> "LocalLock":
        lock = self.manager._checkout(self.lock_name)
        try:
            if self.timeout:
                await asyncio.wait_for(lock.acquire(), timeout=self.timeout)
            else:
                await lock.acquire()
        except asyncio.TimeoutError as e:
            self.manager._checkin(self.lock_name)
            raise LockAcquisitionError(
                f"Could not acquire lock {self.lock_name} within {self.timeout}s"
            ) from e
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.manager._locks[self.lock_name].release()
        self.manager._checkin(self.lock_name)
        return False


class LocalLockManager:
    """
    Creates process-local locks.

    Unused lock objects are dropped once no holder or waiter references them.
    """

    def __init__(self, timeout: Optional[float] = 30):
        self.timeout = timeout
        self._locks: Dict[str, asyncio.Lock] = {}
        self._refs: Dict[str, int] = {}

    def _checkout(self, lock_name: str) -> asyncio.Lock:
        lock = self._locks.setdefault(lock_name, asyncio.Lock())
        self._refs[lock_name] = self._refs.get(lock_name, 0) + 1
        return lock

    def _checkin(self, lock_name: str) -> None:
        self._refs[lock_name] -= 1
        if self._refs[lock_name] == 0:
            del self._refs[lock_name]
            del self._locks[lock_name]

    def get_lock(self, lock_name: str) -> LocalLock:
        return LocalLock(self, lock_name, self.timeout)


__all__ = [
    'DistributedLock',
    'DistributedLockManager',
    'LocalLock',
    'LocalLockManager',
    'LockManager',
    'NamedLock',
    'LockAcquisitionError',
    'LockReleaseError'
]
