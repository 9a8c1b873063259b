"""
Redis-backed session store implementation.
Suitable for production multi-instance deployments.

Version: 1.0.0
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence, TypeVar

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.exceptions import (
    RedisError,
    WatchError,
    ConnectionError as RedisConnectionError,
    TimeoutError as RedisTimeoutError
)
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential
)

from .session_store import Mutator, SessionStore, SessionStoreError, StoreEntry

logger = logging.getLogger(__name__)

T = TypeVar('T')


class RedisSessionStore(SessionStore):
    """
    Redis-backed implementation of SessionStore.

    Features:
    - Shared state across processes and instances
    - MULTI/EXEC for multi-key writes
    - WATCH-based optimistic concurrency for atomic read-modify-write
    - Native key expiry (SET ... EX)
    - Retries with exponential backoff on connection and timeout errors

    Failure semantics: once retries are exhausted every operation raises
    SessionStoreError. Nothing is reported as "absent" because the backend
    was unreachable.
    """

    def __init__(
        self,
        redis_url: str,
        key_prefix: str = "relay:",
        default_ttl: int = 86400,
        max_connections: int = 50,
        socket_timeout: int = 5,
        socket_connect_timeout: int = 5,
        health_check_interval: int = 30,
        max_update_retries: int = 10,
        retry_attempts: int = 3
    ):
        """
        Initialize Redis session store.

        Args:
            redis_url: Redis connection URL
            key_prefix: Prefix applied to every key
            default_ttl: TTL in seconds used when a write passes ttl <= 0
            max_connections: Maximum connection pool size
            socket_timeout: Socket timeout in seconds
            socket_connect_timeout: Connection timeout in seconds
            health_check_interval: Connection health check interval in seconds
            max_update_retries: WATCH conflicts tolerated per update
            retry_attempts: Attempts for connection/timeout errors
        """
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.default_ttl = default_ttl
        self.max_update_retries = max_update_retries
        self.retry_attempts = retry_attempts

        self.pool = redis.ConnectionPool.from_url(
            redis_url,
            max_connections=max_connections,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_connect_timeout,
            decode_responses=True,
            health_check_interval=health_check_interval,
            socket_keepalive=True
        )
        self.client: Redis = Redis(connection_pool=self.pool)

        logger.info(
            f"RedisSessionStore initialized "
            f"(prefix={key_prefix}, ttl={default_ttl}s, max_connections={max_connections})"
        )

    def _make_key(self, key: str) -> str:
        """
        Create Redis key.

        Args:
            key: Logical store key

        Returns:
            Prefixed Redis key
        """
        return f"{self.key_prefix}{key}"

    def _ttl(self, ttl: int) -> int:
        return ttl if ttl and ttl > 0 else self.default_ttl

    async def _run(self, operation: str, func: Callable[[Redis], Awaitable[T]]) -> T:
        """
        Run a Redis operation with retries, translating failures.

        Args:
            operation: Operation name for logging
            func: Coroutine function receiving the client

        Returns:
            Result of func

        Raises:
            SessionStoreError: If Redis fails after retries
        """
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.retry_attempts),
                wait=wait_exponential(multiplier=0.1, min=0.1, max=2.0),
                retry=retry_if_exception_type((RedisConnectionError, RedisTimeoutError)),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True
            ):
                with attempt:
                    return await func(self.client)
        except RedisError as e:
            logger.error(
                f"Redis error during {operation}: {e}",
                extra={"operation": operation, "error_type": type(e).__name__}
            )
            raise SessionStoreError(f"Session store unavailable during {operation}: {e}") from e

    async def get(self, key: str) -> Optional[str]:
        async def _get(client: Redis) -> Optional[str]:
            return await client.get(self._make_key(key))

        return await self._run("get", _get)

    async def set(self, key: str, value: str, ttl: int) -> None:
        async def _set(client: Redis) -> None:
            await client.set(self._make_key(key), value, ex=self._ttl(ttl))

        await self._run("set", _set)
        logger.debug(f"Set key {key} in Redis (ttl={ttl}s)")

    async def transactional_set(self, entries: Sequence[StoreEntry]) -> None:
        async def _transactional_set(client: Redis) -> None:
            async with client.pipeline(transaction=True) as pipe:
                for entry in entries:
                    pipe.set(self._make_key(entry.key), entry.value, ex=self._ttl(entry.ttl))
                await pipe.execute()

        await self._run("transactional_set", _transactional_set)
        logger.debug(f"Transactionally wrote {len(entries)} keys in Redis")

    async def update(self, key: str, mutator: Mutator) -> bool:
        """Atomic read-modify-write using WATCH/MULTI optimistic locking."""
        watched_key = self._make_key(key)

        async def _update(client: Redis) -> bool:
            async with client.pipeline(transaction=True) as pipe:
                for attempt in range(self.max_update_retries):
                    try:
                        await pipe.watch(watched_key)
                        current = await pipe.get(watched_key)

                        entries = mutator(current)
                        if not entries:
                            await pipe.reset()
                            return False

                        pipe.multi()
                        for entry in entries:
                            pipe.set(self._make_key(entry.key), entry.value, ex=self._ttl(entry.ttl))
                        await pipe.execute()
                        return True

                    except WatchError:
                        logger.warning(
                            f"Update conflict on {key}, "
                            f"retrying ({attempt + 1}/{self.max_update_retries})"
                        )
                        await asyncio.sleep(0.005 * (2 ** min(attempt, 6)))

            raise SessionStoreError(
                f"Update of {key} abandoned after {self.max_update_retries} conflicting writes"
            )

        return await self._run("update", _update)

    async def delete(self, key: str) -> bool:
        async def _delete(client: Redis) -> bool:
            return await client.delete(self._make_key(key)) > 0

        return await self._run("delete", _delete)

    async def exists(self, key: str) -> bool:
        async def _exists(client: Redis) -> bool:
            return await client.exists(self._make_key(key)) > 0

        return await self._run("exists", _exists)

    async def ttl(self, key: str) -> Optional[int]:
        async def _ttl(client: Redis) -> Optional[int]:
            remaining = await client.ttl(self._make_key(key))
            # -2: missing key, -1: key without expiry
            if remaining == -2:
                return None
            return remaining

        return await self._run("ttl", _ttl)

    async def cleanup_expired(self) -> int:
        """Redis expires keys natively; nothing to sweep."""
        return 0

    async def get_stats(self) -> Dict[str, Any]:
        """Get session store statistics."""
        try:
            info = await self.client.info('server')
            stats_info = await self.client.info('stats')
            memory_info = await self.client.info('memory')

            return {
                "store_type": "redis",
                "key_prefix": self.key_prefix,
                "redis_version": info.get('redis_version', 'unknown'),
                "used_memory_human": memory_info.get('used_memory_human', 'unknown'),
                "total_commands_processed": stats_info.get('total_commands_processed', 0),
                "default_ttl": self.default_ttl
            }

        except RedisError as e:
            logger.error(f"Redis error getting stats: {e}")
            return {
                "store_type": "redis",
                "error": str(e)
            }

    async def ping(self) -> bool:
        """
        Test Redis connection.

        Returns:
            True if connected
        """
        try:
            return bool(await self.client.ping())
        except RedisError as e:
            logger.error(f"Redis ping failed: {e}")
            return False

    async def close(self) -> None:
        """Close Redis connection."""
        await self.client.aclose()
        await self.pool.disconnect()
        logger.info("✓ Closed Redis connection")


__all__ = ['RedisSessionStore']
