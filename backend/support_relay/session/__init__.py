"""
Session management package.
Provides the session store abstraction, its backends, named locks and the
session lifecycle manager.

Version: 1.0.0
"""
import logging

from .session_store import SessionStore, SessionStoreError, StoreEntry, Mutator
from .models import ChatMessage, ChatSession, MessageSender, now_ms, utc_now
from .in_memory_session_store import InMemorySessionStore
from .redis_session_store import RedisSessionStore
from .distributed_lock import (
    DistributedLock,
    DistributedLockManager,
    LocalLock,
    LocalLockManager,
    LockManager,
    LockAcquisitionError,
    LockReleaseError
)
from .manager import (
    SessionManager,
    SessionError,
    SessionNotFoundError,
    NoThreadBoundError,
    ThreadAlreadyBoundError,
    SessionAlreadyBoundError
)

logger = logging.getLogger(__name__)


def create_session_store(settings) -> SessionStore:
    """
    Factory function to create the configured session store.

    Args:
        settings: Application settings

    Returns:
        SessionStore instance

    Raises:
        ValueError: If the store type is unknown
    """
    store_type = settings.session_store_type

    if store_type == "in_memory":
        if settings.is_production:
            logger.warning(
                "In-memory session store in production: sessions are per-process "
                "and lost on restart"
            )
        return InMemorySessionStore(
            max_keys=settings.session_max_sessions * 2,
            default_ttl=settings.session_ttl_seconds
        )

    if store_type == "redis":
        return RedisSessionStore(
            redis_url=settings.redis_url,
            key_prefix=settings.redis_key_prefix,
            default_ttl=settings.session_ttl_seconds,
            max_connections=settings.redis_max_connections,
            max_update_retries=settings.session_update_max_retries
        )

    raise ValueError(f"Unknown store type: {store_type}")


def create_lock_manager(store: SessionStore, settings) -> LockManager:
    """
    Create the lock manager matching the store backend.

    Redis stores share their client with distributed locks; every other
    backend gets process-local locks.
    """
    if isinstance(store, RedisSessionStore):
        return DistributedLockManager(
            redis_client=store.client,
            timeout=settings.handoff_lock_seconds
        )
    return LocalLockManager(timeout=settings.handoff_lock_seconds)


__all__ = [
    # Core
    'SessionStore',
    'SessionStoreError',
    'StoreEntry',
    'Mutator',
    'ChatMessage',
    'ChatSession',
    'MessageSender',
    'utc_now',
    'now_ms',

    # Implementations
    'InMemorySessionStore',
    'RedisSessionStore',

    # Locking
    'DistributedLock',
    'DistributedLockManager',
    'LocalLock',
    'LocalLockManager',
    'LockManager',
    'LockAcquisitionError',
    'LockReleaseError',

    # Lifecycle
    'SessionManager',
    'SessionError',
    'SessionNotFoundError',
    'NoThreadBoundError',
    'ThreadAlreadyBoundError',
    'SessionAlreadyBoundError',

    # Factories
    'create_session_store',
    'create_lock_manager'
]
