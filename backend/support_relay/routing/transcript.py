"""
Transcript poller.
Lets the widget pick up agent and bot messages it has not rendered yet.

Version: 1.0.0
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from ..session.manager import SessionManager
from ..session.models import ChatMessage, MessageSender

logger = logging.getLogger(__name__)


@dataclass
class TranscriptResult:
    """Poll response; session_exists False means nothing to show yet."""
    session_exists: bool
    messages: List[ChatMessage] = field(default_factory=list)
    debug_log: List[str] = field(default_factory=list)
    last_activity: Optional[datetime] = None


def dedupe_by_id(messages: List[ChatMessage]) -> List[ChatMessage]:
    """Drop repeated message ids, keeping the first occurrence."""
    seen = set()
    unique = []
    for message in messages:
        if message.id in seen:
            continue
        seen.add(message.id)
        unique.append(message)
    return unique


def messages_after(messages: List[ChatMessage], last_message_id: Optional[str]) -> List[ChatMessage]:
    """
    Messages after the cursor, excluding the visitor's own.

    An absent or unknown cursor returns the whole transcript.
    """
    start = 0
    if last_message_id:
        for index, message in enumerate(messages):
            if message.id == last_message_id:
                start = index + 1
                break

    return [m for m in messages[start:] if m.sender != MessageSender.USER.value]


class TranscriptPoller:
    """Read-only view of session transcripts."""

    def __init__(self, sessions: SessionManager):
        self.sessions = sessions

    async def get_transcript(
        self,
        session_id: str,
        last_message_id: Optional[str] = None
    ) -> TranscriptResult:
        """
        Fetch new messages for a session.

        Args:
            session_id: Session identifier
            last_message_id: Id of the last message the client has

        Returns:
            TranscriptResult
        """
        session = await self.sessions.get_session(session_id)
        if session is None:
            logger.debug(f"Poll for unknown session {session_id}", extra={"session_id": session_id})
            return TranscriptResult(session_exists=False)

        messages = messages_after(dedupe_by_id(session.messages), last_message_id)

        logger.debug(
            f"Poll for session {session_id}: {len(messages)} new messages",
            extra={"session_id": session_id, "last_message_id": last_message_id}
        )
        return TranscriptResult(
            session_exists=True,
            messages=messages,
            debug_log=list(session.debug_log),
            last_activity=session.last_activity
        )


__all__ = ['TranscriptPoller', 'TranscriptResult', 'dedupe_by_id', 'messages_after']
