"""
Webhook-side inbound router.
Folds human agent replies posted in handoff threads back into the owning
session's transcript.

Version: 1.0.0
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..session.manager import SessionManager
from ..session.models import ChatMessage, MessageSender, now_ms
from ..utils.telemetry import metrics_collector, track_webhook_event
from .formatting import clean_agent_text

logger = logging.getLogger(__name__)


class WebhookPayloadError(ValueError):
    """Envelope is not a JSON object."""
    pass


@dataclass
class WebhookOutcome:
    """What the router did with one envelope."""
    outcome: str
    challenge: Optional[str] = None
    session_id: Optional[str] = None
    message_id: Optional[str] = None


# Plain replies carry no subtype; a reply also sent to the channel is a broadcast
AGENT_MESSAGE_SUBTYPES = (None, "thread_broadcast", "file_share")


def is_agent_thread_message(event: Dict[str, Any], bot_user_id: Optional[str] = None) -> bool:
    """
    Whether an event is a human-authored message inside a thread.

    Events from any bot, including this service's own posts into the
    thread, are rejected so they are never stored as agent replies.
    Edits, deletions and other system subtypes are ignored as well.
    """
    if event.get("type") != "message":
        return False
    if event.get("subtype") not in AGENT_MESSAGE_SUBTYPES:
        return False
    if not event.get("thread_ts") or not event.get("user"):
        return False
    if event.get("bot_id"):
        return False
    if bot_user_id and event.get("user") == bot_user_id:
        return False
    return True


class WebhookRouter:
    """Consumes messaging platform event envelopes."""

    def __init__(self, sessions: SessionManager, bot_user_id: Optional[str] = None):
        self.sessions = sessions
        self.bot_user_id = bot_user_id

    async def handle_event(self, payload: Any) -> WebhookOutcome:
        """
        Process one event envelope.

        Delivery is at-least-once; a redelivered event is appended again
        under the same message id and collapsed by the transcript poller.
        Processing failures are logged and reported as an "error" outcome
        so the platform does not retry.

        Args:
            payload: Decoded JSON body

        Returns:
            WebhookOutcome (challenge is set for URL verification)

        Raises:
            WebhookPayloadError: If payload is not an object
        """
        if not isinstance(payload, dict):
            raise WebhookPayloadError("Webhook payload must be a JSON object")

        envelope_type = payload.get("type")
        logger.info(f"Webhook envelope received: {envelope_type}", extra={"envelope_type": envelope_type})

        if envelope_type == "url_verification":
            track_webhook_event("verification")
            return WebhookOutcome(outcome="verification", challenge=str(payload.get("challenge", "")))

        event = payload.get("event")
        if envelope_type != "event_callback" or not isinstance(event, dict):
            track_webhook_event("ignored")
            return WebhookOutcome(outcome="ignored")

        if not is_agent_thread_message(event, self.bot_user_id):
            logger.debug(
                "Ignoring event outside agent thread traffic",
                extra={
                    "event_type": event.get("type"),
                    "has_thread_ts": bool(event.get("thread_ts")),
                    "bot_id": event.get("bot_id")
                }
            )
            track_webhook_event("ignored")
            return WebhookOutcome(outcome="ignored")

        try:
            return await self._store_agent_reply(event)
        except Exception as e:
            logger.error(
                f"Failed to process webhook event for thread {event.get('thread_ts')}: {e}",
                extra={"thread_id": event.get("thread_ts")},
                exc_info=True
            )
            track_webhook_event("error")
            return WebhookOutcome(outcome="error")

    async def _store_agent_reply(self, event: Dict[str, Any]) -> WebhookOutcome:
        thread_id = str(event["thread_ts"])

        session = await self.sessions.get_session_by_thread(thread_id)
        if session is None:
            logger.info(
                f"Thread {thread_id} not mapped to a session; dropping event",
                extra={"thread_id": thread_id}
            )
            track_webhook_event("unmapped")
            return WebhookOutcome(outcome="unmapped")

        text = clean_agent_text(str(event.get("text") or ""))
        if not text:
            logger.info(f"Empty agent message in thread {thread_id}", extra={"thread_id": thread_id})
            track_webhook_event("ignored")
            return WebhookOutcome(outcome="ignored", session_id=session.session_id)

        message_id = f"agent_{event.get('ts') or event.get('event_ts') or now_ms()}"
        stored = await self.sessions.append_message(
            session.session_id,
            ChatMessage(id=message_id, content=text, sender=MessageSender.AGENT)
        )
        if stored is None:
            track_webhook_event("unmapped")
            return WebhookOutcome(outcome="unmapped", session_id=session.session_id)

        metrics_collector.record_message(MessageSender.AGENT.value)
        track_webhook_event("appended")
        logger.info(
            f"✓ Agent reply {message_id} stored in session {session.session_id}",
            extra={"session_id": session.session_id, "thread_id": thread_id, "message_id": message_id}
        )
        return WebhookOutcome(outcome="appended", session_id=session.session_id, message_id=message_id)


__all__ = ['WebhookRouter', 'WebhookOutcome', 'WebhookPayloadError', 'is_agent_thread_message']
