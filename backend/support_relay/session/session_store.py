"""
Abstract session store interface.
Defines the contract for the durable, expiring key-value store that holds
session documents and thread bindings.

Version: 1.0.0
"""
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, NamedTuple, Optional, Sequence


class SessionStoreError(Exception):
    """Raised when the store cannot serve a request (unreachable, exhausted retries)."""
    pass


class StoreEntry(NamedTuple):
    """A key/value pair to write with its expiry in seconds."""
    key: str
    value: str
    ttl: int


# Receives the current value of the watched key (None when absent) and
# returns the entries to write, or None to leave the store untouched.
Mutator = Callable[[Optional[str]], Optional[Sequence[StoreEntry]]]


class SessionStore(ABC):
    """
    Abstract base class for session storage.

    Values are opaque strings (JSON documents or bare ids). Every write
    carries a TTL and refreshes it, so expiry measures inactivity.

    Implementations must provide async-safe operations for:
    - Reading a key (absence is a normal outcome, never an error)
    - Writing a key unconditionally
    - Writing several keys together, in order
    - Atomic read-modify-write of one key
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """
        Get the value stored under key.

        Args:
            key: Store key

        Returns:
            Value or None if absent or expired

        Raises:
            SessionStoreError: If the store is unavailable
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: str, ttl: int) -> None:
        """
        Write value under key, replacing any previous value and TTL.

        Args:
            key: Store key
            value: Value to store
            ttl: Time-to-live in seconds

        Raises:
            SessionStoreError: If the store is unavailable
        """
        pass

    @abstractmethod
    async def transactional_set(self, entries: Sequence[StoreEntry]) -> None:
        """
        Write all entries atomically, in the given order.

        Args:
            entries: Entries to write

        Raises:
            SessionStoreError: If the store is unavailable
        """
        pass

    @abstractmethod
    async def update(self, key: str, mutator: Mutator) -> bool:
        """
        Atomically read key, compute new entries and write them.

        The mutator may be invoked more than once when a concurrent writer
        changes key in between; it must be free of side effects other than
        its return value. Exceptions raised by the mutator abort the update
        and propagate.

        Args:
            key: Key whose current value is passed to the mutator
            mutator: Function computing the entries to write

        Returns:
            True if entries were written, False if the mutator declined

        Raises:
            SessionStoreError: If the store is unavailable or contention
                persists past the retry budget
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """
        Delete key.

        Returns:
            True if a value was removed
        """
        pass

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check whether key holds a live value."""
        pass

    @abstractmethod
    async def ttl(self, key: str) -> Optional[int]:
        """
        Remaining time-to-live of key in seconds.

        Returns:
            Seconds left, or None if the key is absent
        """
        pass

    @abstractmethod
    async def cleanup_expired(self) -> int:
        """
        Remove expired keys.

        Returns:
            Number of keys removed (0 where the backend expires keys itself)
        """
        pass

    @abstractmethod
    async def get_stats(self) -> Dict[str, Any]:
        """
        Get store statistics.

        Returns:
            Dictionary with backend-specific statistics
        """
        pass

    async def ping(self) -> bool:
        """Test store connectivity."""
        return True

    async def close(self) -> None:
        """Release backend resources."""
        return None

    async def health_check(self) -> Dict[str, Any]:
        """
        Perform health check on session store.

        Returns:
            Dictionary with health status
        """
        try:
            probe_key = f"health_check:{datetime.now(timezone.utc).timestamp()}"

            await self.set(probe_key, "ok", ttl=10)
            get_success = await self.get(probe_key) == "ok"
            delete_success = await self.delete(probe_key)

            stats = await self.get_stats()

            return {
                "healthy": get_success and delete_success,
                "operations": {
                    "set": True,
                    "get": get_success,
                    "delete": delete_success
                },
                "stats": stats
            }

        except Exception as e:
            return {
                "healthy": False,
                "error": str(e)
            }


__all__ = ['SessionStore', 'SessionStoreError', 'StoreEntry', 'Mutator']
