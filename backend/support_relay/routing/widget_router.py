"""
Widget-side inbound router.
Decides where a widget turn goes: the completion provider while the
session is AI-answered, the bound messaging thread once a human has taken
over. Also opens handoff threads and relays widget messages into them.

Version: 1.0.0
"""
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..services.archive_service import ConversationArchiver, should_archive
from ..services.catalog_service import ProductCatalog
from ..services.completion_service import AnthropicCompletionProvider, CompletionError
from ..services.exceptions import ExternalServiceError
from ..services.order_service import OrderStatusService
from ..services.slack_service import MessagingError, SlackClient
from ..session.distributed_lock import LockManager
from ..session.manager import (
    NoThreadBoundError,
    SessionAlreadyBoundError,
    SessionManager,
    SessionNotFoundError
)
from ..session.models import ChatMessage, ChatSession, MessageSender, now_ms, utc_now
from ..utils.telemetry import metrics_collector, track_completion, track_handoff
from .formatting import format_for_thread, handoff_announcement, handoff_details

logger = logging.getLogger(__name__)

HANDOFF_CONNECTED_MESSAGE = "Human support has been notified via Slack. Someone will assist you shortly."
HANDOFF_FALLBACK_MESSAGE = "Human support request received. Someone will assist you shortly."

RELAY_SENDERS = (MessageSender.USER.value, MessageSender.BOT.value)


# ===========================
# Errors
# ===========================

class RelayError(Exception):
    """Message could not be delivered to the bound thread."""
    pass


class InvalidSenderError(ValueError):
    """Relay sender must be user or bot."""
    pass


# ===========================
# Results
# ===========================

@dataclass
class WidgetReply:
    """Outcome of one widget turn."""
    session_id: str
    response: Optional[str] = None
    forwarded: bool = False


@dataclass
class HandoffResult:
    """Outcome of a human handoff request."""
    success: bool
    message: str
    session_id: str
    thread_id: Optional[str] = None
    outcome: str = "connected"


@dataclass
class RelayResult:
    """Outcome of relaying a widget message into its thread."""
    message_id: str
    slack_message_id: str
    timestamp: Optional[str]


def to_completion_history(messages: List[ChatMessage], window: int) -> List[Dict[str, str]]:
    """
    Map transcript messages to provider roles.

    Bot and agent messages both become assistant turns. Leading assistant
    turns are dropped because the provider requires a user turn first.
    """
    history = [
        {
            "role": "user" if m.sender == MessageSender.USER.value else "assistant",
            "content": m.content
        }
        for m in messages[-window:]
    ]
    while history and history[0]["role"] != "user":
        history.pop(0)
    return history


class WidgetRouter:
    """
    Routes widget traffic for one deployment.

    The router holds no per-session state; everything that must survive
    the request lives in the session store.
    """

    def __init__(
        self,
        sessions: SessionManager,
        completion: AnthropicCompletionProvider,
        catalog: ProductCatalog,
        orders: OrderStatusService,
        archiver: ConversationArchiver,
        messaging: SlackClient,
        lock_manager: LockManager,
        support_channel: str,
        site_url: str,
        history_window: int = 10,
        max_tokens: Optional[int] = None
    ):
        self.sessions = sessions
        self.completion = completion
        self.catalog = catalog
        self.orders = orders
        self.archiver = archiver
        self.messaging = messaging
        self.lock_manager = lock_manager
        self.support_channel = support_channel
        self.site_url = site_url
        self.history_window = history_window
        self.max_tokens = max_tokens

    async def _append(self, session_id: str, message: ChatMessage) -> Optional[ChatMessage]:
        stored = await self.sessions.append_message(session_id, message)
        if stored is not None:
            metrics_collector.record_message(stored.sender)
        return stored

    # ===========================
    # Widget Turn
    # ===========================

    async def handle_message(self, session_id: str, message: str) -> WidgetReply:
        """
        Process one visitor message.

        Args:
            session_id: Session identifier
            message: Visitor text

        Returns:
            WidgetReply; response is None when the session is in handoff

        Raises:
            CompletionError: If the completion provider failed
        """
        session = await self.sessions.get_session(session_id)
        if session is not None and session.is_thread_bound:
            await self._forward_to_thread(session, message)
            return WidgetReply(session_id=session_id, forwarded=True)

        session = await self.sessions.get_or_create_session(session_id)

        user_message = ChatMessage(
            id=f"user_{now_ms()}_{uuid.uuid4().hex[:8]}",
            content=message,
            sender=MessageSender.USER
        )
        stored_user = await self._append(session_id, user_message)
        transcript = list(session.messages)
        transcript.append(stored_user or user_message)

        order_status = await self.orders.check_order_status(message)
        if order_status is not None and order_status.found:
            logger.info("Answered from order lookup", extra={"session_id": session_id})
            reply = order_status.message
        else:
            reply = await self._complete(session_id, transcript)

        bot_message = ChatMessage(
            id=f"bot_{now_ms()}_{uuid.uuid4().hex[:8]}",
            content=reply,
            sender=MessageSender.BOT
        )
        stored_bot = await self._append(session_id, bot_message)
        transcript.append(stored_bot or bot_message)

        if should_archive(message, len(transcript)):
            snapshot = session.model_copy(update={"messages": transcript})
            self.archiver.schedule(snapshot)

        return WidgetReply(session_id=session_id, response=reply)

    async def _complete(self, session_id: str, transcript: List[ChatMessage]) -> str:
        system_prompt = await self.catalog.build_system_prompt()
        history = to_completion_history(transcript, self.history_window)

        start = time.time()
        try:
            reply = await self.completion.complete(history, system_prompt, self.max_tokens)
        except CompletionError as e:
            track_completion(type(e).__name__, time.time() - start)
            logger.error(
                f"Completion failed for session {session_id}: {e}",
                extra={"session_id": session_id, "status_code": e.status_code}
            )
            raise

        track_completion("success", time.time() - start)
        return reply

    async def _forward_to_thread(self, session: ChatSession, message: str) -> None:
        """Store a handoff-mode visitor message and post it to the thread."""
        stored = await self._append(
            session.session_id,
            ChatMessage(
                id=f"user_{now_ms()}_{uuid.uuid4().hex[:8]}",
                content=message,
                sender=MessageSender.USER
            )
        )

        try:
            await self.messaging.post_message(
                self.support_channel,
                format_for_thread(session.session_id, message, MessageSender.USER.value),
                thread_ts=session.external_thread_id
            )
        except ExternalServiceError as e:
            logger.error(
                f"Failed to forward message to thread {session.external_thread_id}: {e}",
                extra={"session_id": session.session_id, "thread_id": session.external_thread_id}
            )
            await self.sessions.record_event(
                session.session_id,
                "slack_forward_failed",
                {"error": str(e), "messageId": stored.id if stored else None}
            )

    # ===========================
    # Human Handoff
    # ===========================

    async def request_handoff(
        self,
        session_id: str,
        messages: Optional[List[Dict[str, Any]]] = None,
        customer_info: Optional[Dict[str, Any]] = None
    ) -> HandoffResult:
        """
        Open a messaging thread for the session and bind it.

        Concurrent requests for one session are serialized; a session that
        is already bound reports success without opening another thread.
        Messaging failures degrade to a fallback message instead of an
        error.

        Args:
            session_id: Session identifier
            messages: Conversation collected by the widget
            customer_info: Optional name, email and phone

        Returns:
            HandoffResult
        """
        messages = messages or []
        customer_info = customer_info or {}

        async with self.lock_manager.get_lock(f"handoff:{session_id}"):
            existing = await self.sessions.get_session(session_id)
            if existing is not None and existing.is_thread_bound:
                logger.info(
                    f"Session {session_id} already connected to thread {existing.external_thread_id}",
                    extra={"session_id": session_id, "thread_id": existing.external_thread_id}
                )
                track_handoff("already_connected")
                return HandoffResult(
                    success=True,
                    message=HANDOFF_CONNECTED_MESSAGE,
                    session_id=session_id,
                    thread_id=existing.external_thread_id,
                    outcome="already_connected"
                )

            if not self.messaging.is_configured:
                logger.warning("Slack not configured; handoff degraded", extra={"session_id": session_id})
                track_handoff("degraded")
                return HandoffResult(
                    success=False,
                    message=HANDOFF_FALLBACK_MESSAGE,
                    session_id=session_id,
                    outcome="degraded"
                )

            try:
                thread_id = await self._open_thread(session_id, messages, customer_info)
            except ExternalServiceError as e:
                logger.error(
                    f"Failed to open handoff thread for session {session_id}: {e}",
                    extra={
                        "session_id": session_id,
                        "slack_error": getattr(e, "error_code", None),
                        "status_code": e.status_code
                    }
                )
                track_handoff("degraded")
                return HandoffResult(
                    success=False,
                    message=HANDOFF_FALLBACK_MESSAGE,
                    session_id=session_id,
                    outcome="degraded"
                )

            try:
                session = await self.sessions.create_session(
                    session_id,
                    thread_id,
                    user_id=customer_info.get("email") or None
                )
            except SessionAlreadyBoundError:
                session = await self.sessions.get_session(session_id)
                logger.warning(
                    f"Session {session_id} was bound concurrently; leaving thread {thread_id} unused",
                    extra={"session_id": session_id, "thread_id": thread_id}
                )
                track_handoff("already_connected")
                return HandoffResult(
                    success=True,
                    message=HANDOFF_CONNECTED_MESSAGE,
                    session_id=session_id,
                    thread_id=session.external_thread_id if session else None,
                    outcome="already_connected"
                )

            if not session.messages:
                await self._replay(session_id, messages)

        logger.info(
            f"✓ Handoff connected: session {session_id} -> thread {thread_id}",
            extra={"session_id": session_id, "thread_id": thread_id}
        )
        track_handoff("connected")
        return HandoffResult(
            success=True,
            message=HANDOFF_CONNECTED_MESSAGE,
            session_id=session_id,
            thread_id=thread_id,
            outcome="connected"
        )

    async def _open_thread(
        self,
        session_id: str,
        messages: List[Dict[str, Any]],
        customer_info: Dict[str, Any]
    ) -> str:
        """Post the announcement and the details; the announcement ts is the thread id."""
        announcement = await self.messaging.post_message(
            self.support_channel,
            handoff_announcement(session_id, customer_info)
        )
        if not announcement.ts:
            raise MessagingError("Slack returned no message ts")

        await self.messaging.post_message(
            self.support_channel,
            handoff_details(messages, customer_info, self.site_url, utc_now()),
            thread_ts=announcement.ts
        )
        return announcement.ts

    async def _replay(self, session_id: str, messages: List[Dict[str, Any]]) -> int:
        """Copy the widget's local conversation into a freshly bound session."""
        base = now_ms()
        replayed = 0
        for index, raw in enumerate(messages):
            content = raw.get("content")
            if not content:
                continue
            sender = raw.get("sender")
            if sender not in (s.value for s in MessageSender):
                sender = MessageSender.BOT.value
            message = ChatMessage(
                id=str(raw.get("id") or f"msg_{base}_{index}"),
                content=str(content),
                sender=sender
            )
            if await self._append(session_id, message) is not None:
                replayed += 1

        logger.info(
            f"Replayed {replayed} messages into session {session_id}",
            extra={"session_id": session_id}
        )
        return replayed

    # ===========================
    # Relay To Thread
    # ===========================

    async def relay_to_thread(self, session_id: str, message: str, sender: str) -> RelayResult:
        """
        Post a widget message into the session's thread and store it.

        Args:
            session_id: Session identifier
            message: Message text (light HTML allowed)
            sender: user or bot

        Returns:
            RelayResult

        Raises:
            InvalidSenderError: If sender is not user or bot
            SessionNotFoundError: If the session does not exist
            NoThreadBoundError: If the session has no thread
            RelayError: If the message could not be posted
        """
        if sender not in RELAY_SENDERS:
            raise InvalidSenderError("Sender must be 'user' or 'bot'")

        session = await self.sessions.get_session(session_id)
        if session is None:
            raise SessionNotFoundError("Chat session not found. Please request human support again.")
        if not session.is_thread_bound:
            raise NoThreadBoundError("No Slack thread associated with this session")

        if not self.messaging.is_configured:
            raise RelayError("Slack integration not configured")

        try:
            posted = await self.messaging.post_message(
                self.support_channel,
                format_for_thread(session_id, message, sender),
                thread_ts=session.external_thread_id
            )
        except MessagingError as e:
            raise RelayError(f"Failed to send message to Slack: {e.error_code}") from e
        except ExternalServiceError as e:
            raise RelayError(f"Failed to send message to Slack: {e}") from e

        message_id = f"{sender}_{now_ms()}"
        stored = await self._append(
            session_id,
            ChatMessage(id=message_id, content=message, sender=sender)
        )

        logger.info(
            f"Relayed {sender} message to thread {session.external_thread_id}",
            extra={"session_id": session_id, "thread_id": session.external_thread_id}
        )
        return RelayResult(
            message_id=message_id,
            slack_message_id=posted.ts,
            timestamp=stored.timestamp.isoformat() if stored and stored.timestamp else None
        )


__all__ = [
    'WidgetRouter',
    'WidgetReply',
    'HandoffResult',
    'RelayResult',
    'RelayError',
    'InvalidSenderError',
    'to_completion_history',
    'HANDOFF_CONNECTED_MESSAGE',
    'HANDOFF_FALLBACK_MESSAGE'
]
