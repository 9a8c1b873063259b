"""
Session lifecycle management.
Creates sessions, binds them to messaging platform threads, resolves either
key and appends transcript messages through the session store.

Version: 1.0.0

Key layout:
- session:<sessionId>  -> ChatSession JSON
- thread:<threadId>    -> sessionId
Both keys of a thread-bound session are rewritten together on every write,
so they always share the same expiry.
"""
import logging
from typing import Any, Dict, List, Optional

from .models import ChatMessage, ChatSession, utc_now
from .session_store import SessionStore, StoreEntry

logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "session:"
THREAD_KEY_PREFIX = "thread:"


class SessionError(Exception):
    """Base exception for session lifecycle errors."""
    pass


class SessionNotFoundError(SessionError):
    """Session does not exist (never created or expired)."""
    pass


class NoThreadBoundError(SessionError):
    """Session exists but has no messaging thread."""
    pass


class ThreadAlreadyBoundError(SessionError):
    """Thread is already bound to a different session."""
    pass


class SessionAlreadyBoundError(SessionError):
    """Session is already bound to a different thread."""
    pass


def session_key(session_id: str) -> str:
    return f"{SESSION_KEY_PREFIX}{session_id}"


def thread_key(thread_id: str) -> str:
    return f"{THREAD_KEY_PREFIX}{thread_id}"


class SessionManager:
    """
    Session lifecycle manager.

    State machine: nonexistent -> active (no thread) -> active (thread-bound).
    The binding is first-write-wins; expiry is the only way back to
    nonexistent.

    Every mutation goes through SessionStore.update(), so concurrent
    appends to one session never overwrite each other.
    """

    def __init__(
        self,
        store: SessionStore,
        ttl_seconds: int = 86400,
        refresh_ttl_on_read: bool = False,
        debug_log_max_entries: int = 200
    ):
        """
        Initialize session manager.

        Args:
            store: Session store backend
            ttl_seconds: Inactivity expiry for session and binding keys
            refresh_ttl_on_read: Rewrite the session on plain reads
            debug_log_max_entries: Cap on per-session debug lines
        """
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.refresh_ttl_on_read = refresh_ttl_on_read
        self.debug_log_max_entries = debug_log_max_entries

        logger.info(
            f"SessionManager initialized (ttl={ttl_seconds}s, "
            f"refresh_ttl_on_read={refresh_ttl_on_read}, "
            f"debug_log_max_entries={debug_log_max_entries})"
        )

    def _entries_for(self, session: ChatSession) -> List[StoreEntry]:
        """Session document first, then its binding."""
        entries = [StoreEntry(session_key(session.session_id), session.to_json(), self.ttl_seconds)]
        if session.external_thread_id:
            entries.append(
                StoreEntry(thread_key(session.external_thread_id), session.session_id, self.ttl_seconds)
            )
        return entries

    def _debug(self, session: ChatSession, event: str, data: Dict[str, Any]) -> None:
        session.add_debug_entry(event, data, self.debug_log_max_entries)

    async def create_session(
        self,
        session_id: str,
        external_thread_id: str,
        user_id: Optional[str] = None
    ) -> ChatSession:
        """
        Create a thread-bound session, or bind an existing unbound one.

        Repeating the call with the same thread is an idempotent no-op.
        Messages already in an unbound session are preserved.

        Args:
            session_id: Session identifier
            external_thread_id: Messaging platform thread id
            user_id: Optional customer identifier

        Returns:
            The thread-bound session

        Raises:
            ThreadAlreadyBoundError: If the thread belongs to another session
            SessionAlreadyBoundError: If the session has a different thread
        """
        owner = await self.store.get(thread_key(external_thread_id))
        if owner is not None and owner != session_id:
            logger.warning(
                f"Thread {external_thread_id} already bound to another session",
                extra={"session_id": session_id, "thread_id": external_thread_id}
            )
            raise ThreadAlreadyBoundError(
                f"Thread {external_thread_id} is already bound to another session"
            )

        result: Dict[str, Any] = {}

        def bind(current: Optional[str]) -> Optional[List[StoreEntry]]:
            if current is None:
                session = ChatSession(
                    session_id=session_id,
                    external_thread_id=external_thread_id,
                    user_id=user_id
                )
                result["created"] = True
            else:
                session = ChatSession.from_json(current)
                if session.external_thread_id == external_thread_id:
                    result["session"] = session
                    return None
                if session.external_thread_id is not None:
                    raise SessionAlreadyBoundError(
                        f"Session {session_id} is already bound to another thread"
                    )
                session.external_thread_id = external_thread_id
                if user_id and not session.user_id:
                    session.user_id = user_id
                result["created"] = False

            session.last_activity = utc_now()
            self._debug(
                session,
                "chat_session_created",
                {"sessionId": session_id, "slackThreadId": external_thread_id}
            )
            result["session"] = session
            return self._entries_for(session)

        written = await self.store.update(session_key(session_id), bind)

        if written:
            logger.info(
                f"Session {session_id} bound to thread {external_thread_id} "
                f"({'new session' if result.get('created') else 'existing session'})",
                extra={"session_id": session_id, "thread_id": external_thread_id}
            )
        else:
            logger.info(
                f"Session {session_id} already bound to thread {external_thread_id}",
                extra={"session_id": session_id, "thread_id": external_thread_id}
            )

        return result["session"]

    async def get_or_create_session(self, session_id: str) -> ChatSession:
        """
        Fetch a session, creating an unbound one if absent.

        Args:
            session_id: Session identifier

        Returns:
            Existing or newly created session
        """
        result: Dict[str, ChatSession] = {}

        def start(current: Optional[str]) -> Optional[List[StoreEntry]]:
            if current is not None:
                result["session"] = ChatSession.from_json(current)
                return None

            session = ChatSession(session_id=session_id)
            self._debug(session, "chat_session_started", {"sessionId": session_id})
            result["session"] = session
            return self._entries_for(session)

        if await self.store.update(session_key(session_id), start):
            logger.info(f"Started session {session_id}", extra={"session_id": session_id})

        return result["session"]

    async def get_session(self, session_id: str) -> Optional[ChatSession]:
        """
        Fetch a session.

        With refresh_ttl_on_read enabled the read is recorded in the debug
        log and the session is rewritten, extending both keys' TTL.

        Args:
            session_id: Session identifier

        Returns:
            Session or None if absent
        """
        if not self.refresh_ttl_on_read:
            raw = await self.store.get(session_key(session_id))
            if raw is None:
                logger.debug(f"Session {session_id} not found", extra={"session_id": session_id})
                return None
            return ChatSession.from_json(raw)

        result: Dict[str, ChatSession] = {}

        def touch(current: Optional[str]) -> Optional[List[StoreEntry]]:
            if current is None:
                return None
            session = ChatSession.from_json(current)
            session.last_activity = utc_now()
            self._debug(session, "get_chat_session_success", {"sessionId": session_id})
            result["session"] = session
            return self._entries_for(session)

        if not await self.store.update(session_key(session_id), touch):
            logger.debug(f"Session {session_id} not found", extra={"session_id": session_id})
            return None

        return result["session"]

    async def get_session_by_thread(self, external_thread_id: str) -> Optional[ChatSession]:
        """
        Resolve a thread binding to its session.

        Args:
            external_thread_id: Messaging platform thread id

        Returns:
            Session or None if the thread is unknown or its session is gone
        """
        session_id = await self.store.get(thread_key(external_thread_id))
        if session_id is None:
            logger.info(
                f"No session bound to thread {external_thread_id}",
                extra={"thread_id": external_thread_id}
            )
            return None

        session = await self.get_session(session_id)
        if session is None:
            logger.warning(
                f"Thread {external_thread_id} points to missing session {session_id}",
                extra={"thread_id": external_thread_id, "session_id": session_id}
            )
            return None

        if session.external_thread_id != external_thread_id:
            logger.warning(
                f"Thread {external_thread_id} index disagrees with session {session_id}",
                extra={"thread_id": external_thread_id, "session_id": session_id}
            )
            return None

        return session

    async def append_message(self, session_id: str, message: ChatMessage) -> Optional[ChatMessage]:
        """
        Append a message to a session transcript.

        The timestamp is assigned here and never precedes the previous
        message's, so transcript order and time order agree. A missing
        session is logged and reported by returning None.

        Args:
            session_id: Session identifier
            message: Message to append (its timestamp is replaced)

        Returns:
            The stored message, or None if the session does not exist
        """
        result: Dict[str, ChatMessage] = {}

        def append(current: Optional[str]) -> Optional[List[StoreEntry]]:
            if current is None:
                return None

            session = ChatSession.from_json(current)
            now = utc_now()
            previous = session.last_message
            timestamp = now
            if previous is not None and previous.timestamp is not None and previous.timestamp > now:
                timestamp = previous.timestamp

            stored = message.model_copy(update={"timestamp": timestamp})
            session.messages.append(stored)
            session.last_activity = now
            self._debug(
                session,
                "message_added_to_session",
                {"sessionId": session_id, "messageId": stored.id}
            )
            result["message"] = stored
            return self._entries_for(session)

        if not await self.store.update(session_key(session_id), append):
            logger.warning(
                f"Dropped message {message.id}: session {session_id} not found",
                extra={"session_id": session_id, "message_id": message.id}
            )
            return None

        logger.debug(
            f"Appended message {message.id} to session {session_id}",
            extra={"session_id": session_id, "message_id": message.id}
        )
        return result["message"]

    async def record_event(self, session_id: str, event: str, data: Dict[str, Any]) -> bool:
        """
        Add a diagnostic line to a session's debug log.

        Args:
            session_id: Session identifier
            event: Event name
            data: JSON-serializable event data

        Returns:
            True if the session existed
        """
        def add_entry(current: Optional[str]) -> Optional[List[StoreEntry]]:
            if current is None:
                return None
            session = ChatSession.from_json(current)
            self._debug(session, event, data)
            return self._entries_for(session)

        return await self.store.update(session_key(session_id), add_entry)


__all__ = [
    'SessionManager',
    'SessionError',
    'SessionNotFoundError',
    'NoThreadBoundError',
    'ThreadAlreadyBoundError',
    'SessionAlreadyBoundError',
    'session_key',
    'thread_key',
    'SESSION_KEY_PREFIX',
    'THREAD_KEY_PREFIX'
]
