"""
In-memory session store implementation.
Suitable for development, tests and single-process deployments only.

Version: 1.0.0
"""
import asyncio
import logging
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, FrozenSet, Optional, Sequence

from .session_store import Mutator, SessionStore, StoreEntry

logger = logging.getLogger(__name__)


class InMemorySessionStore(SessionStore):
    """
    In-memory implementation of SessionStore.

    Features:
    - One asyncio lock serializes every operation, so update() is atomic
    - TTL-based expiration checked on access and by cleanup_expired()
    - At capacity, expired keys are purged first; otherwise the least
      recently written key is evicted together with every key it was last
      written alongside (a session and its thread binding leave as a pair)

    Limitations:
    - Data lost on restart
    - Not shared across processes or instances
    """

    def __init__(
        self,
        max_keys: int = 10000,
        default_ttl: int = 86400
    ):
        """
        Initialize in-memory session store.

        Args:
            max_keys: Maximum number of keys to keep
            default_ttl: TTL in seconds used when a write passes ttl <= 0
        """
        self.values: OrderedDict[str, str] = OrderedDict()
        self.expiry: Dict[str, datetime] = {}
        self.linked: Dict[str, FrozenSet[str]] = {}
        self.max_keys = max_keys
        self.default_ttl = default_ttl
        self.lock = asyncio.Lock()

        logger.info(
            f"InMemorySessionStore initialized "
            f"(max_keys={max_keys}, default_ttl={default_ttl}s)"
        )

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    def _is_expired(self, key: str, now: datetime) -> bool:
        expires_at = self.expiry.get(key)
        return expires_at is not None and now >= expires_at

    def _drop(self, key: str) -> None:
        """Remove key and forget its write group. Caller holds the lock."""
        self.values.pop(key, None)
        self.expiry.pop(key, None)
        for partner in self.linked.pop(key, frozenset()):
            group = self.linked.get(partner)
            if group is not None:
                self.linked[partner] = group - {key}

    def _read(self, key: str) -> Optional[str]:
        """Read key, dropping it if expired. Caller holds the lock."""
        if key not in self.values:
            return None

        if self._is_expired(key, self._now()):
            self._drop(key)
            logger.debug(f"Key {key} expired and removed")
            return None

        return self.values[key]

    def _purge_expired(self, now: datetime) -> int:
        expired = [key for key, expires_at in self.expiry.items() if expires_at <= now]
        for key in expired:
            self._drop(key)
        return len(expired)

    def _make_room(self, protected: FrozenSet[str]) -> None:
        """Free at least one slot. Caller holds the lock."""
        if self._purge_expired(self._now()):
            return

        victim = next((key for key in self.values if key not in protected), None)
        if victim is None:
            return

        group = {victim} | (self.linked.get(victim, frozenset()) - protected)
        for key in group:
            self._drop(key)
        logger.warning(f"Store at capacity ({self.max_keys}); evicted {sorted(group)}")

    def _write(self, key: str, value: str, ttl: int, protected: FrozenSet[str] = frozenset()) -> None:
        """Write key with a fresh expiry. Caller holds the lock."""
        if key not in self.values and len(self.values) >= self.max_keys:
            self._make_room(protected | {key})

        self.values[key] = value
        self.values.move_to_end(key)

        ttl = ttl if ttl and ttl > 0 else self.default_ttl
        self.expiry[key] = self._now() + timedelta(seconds=ttl)

    def _write_group(self, entries: Sequence[StoreEntry]) -> None:
        """Write entries together; eviction later removes them together."""
        keys = frozenset(entry.key for entry in entries)
        for entry in entries:
            self._write(entry.key, entry.value, entry.ttl, protected=keys)

        if len(keys) > 1:
            for key in keys:
                self.linked[key] = keys - {key}

    async def get(self, key: str) -> Optional[str]:
        async with self.lock:
            return self._read(key)

    async def set(self, key: str, value: str, ttl: int) -> None:
        async with self.lock:
            self._write(key, value, ttl)
            logger.debug(f"Set key {key} (ttl={ttl}s)")

    async def transactional_set(self, entries: Sequence[StoreEntry]) -> None:
        async with self.lock:
            self._write_group(entries)
            logger.debug(f"Transactionally wrote {len(entries)} keys")

    async def update(self, key: str, mutator: Mutator) -> bool:
        async with self.lock:
            entries = mutator(self._read(key))
            if not entries:
                return False

            self._write_group(entries)
            return True

    async def delete(self, key: str) -> bool:
        async with self.lock:
            if key in self.values:
                self._drop(key)
                logger.debug(f"Deleted key {key}")
                return True
            return False

    async def exists(self, key: str) -> bool:
        async with self.lock:
            return self._read(key) is not None

    async def ttl(self, key: str) -> Optional[int]:
        async with self.lock:
            if self._read(key) is None:
                return None
            remaining = self.expiry[key] - self._now()
            return max(int(remaining.total_seconds()), 0)

    async def cleanup_expired(self) -> int:
        """Clean up expired keys."""
        async with self.lock:
            removed = self._purge_expired(self._now())
            if removed:
                logger.info(f"Cleaned up {removed} expired keys")
            return removed

    async def count_prefix(self, prefix: str) -> int:
        """Count live keys starting with prefix."""
        async with self.lock:
            now = self._now()
            return sum(
                1 for key in self.values
                if key.startswith(prefix) and not self._is_expired(key, now)
            )

    async def get_stats(self) -> Dict[str, Any]:
        """Get session store statistics."""
        async with self.lock:
            now = self._now()
            live = sum(1 for key in self.values if not self._is_expired(key, now))

            return {
                "store_type": "in_memory",
                "total_keys": len(self.values),
                "live_keys": live,
                "expired_keys": len(self.values) - live,
                "max_keys": self.max_keys,
                "utilization": f"{(len(self.values) / self.max_keys * 100):.1f}%",
                "default_ttl": self.default_ttl
            }


__all__ = ['InMemorySessionStore']
