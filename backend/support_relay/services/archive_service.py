"""
Conversation archival to the record store.
Saves transcripts, creates prospects for unknown visitors and links the
two. Runs in the background; failures are logged and never reach the
chat turn that triggered them.

Version: 1.0.0
"""
import asyncio
import logging
from typing import Any, Dict, Optional, Set

from ..session.models import ChatSession, MessageSender, utc_now
from .conversation_extractor import (
    ExtractedConversationData,
    asks_for_human,
    extract_conversation_data,
    extract_email
)
from .record_store import AirtableRecordStore, Record

logger = logging.getLogger(__name__)

SPEAKER_LABELS = {
    MessageSender.USER.value: "Customer",
    MessageSender.BOT.value: "HeritageBox AI",
    MessageSender.AGENT.value: "Support Agent"
}


def should_archive(message: str, message_count: int) -> bool:
    """
    Whether a widget turn warrants saving the conversation now.

    Args:
        message: The visitor's latest message
        message_count: Transcript length after the turn
    """
    return (
        (extract_email(message) is not None and message_count >= 4)
        or asks_for_human(message)
        or message_count >= 10
    )


def format_transcript(session: ChatSession, data: ExtractedConversationData) -> str:
    """Human-readable transcript with a summary footer."""
    first = session.messages[0].timestamp if session.messages else None
    start = first or utc_now()
    end = utc_now()

    lines = [
        f"Conversation: {start:%Y-%m-%d %H:%M:%S} - {end:%H:%M:%S} UTC",
        f"Session ID: {session.session_id}"
    ]
    if data.email:
        lines.append(f"Customer Email: {data.email}")
    lines.append("")

    for message in session.messages:
        stamp = f"{message.timestamp:%H:%M:%S}" if message.timestamp else "--:--:--"
        speaker = SPEAKER_LABELS.get(message.sender, message.sender)
        lines.append(f"[{stamp}] {speaker}: {message.content}")

    lines.append("")
    lines.append("--- CONVERSATION SUMMARY ---")
    if data.media_types:
        lines.append(f"Media Types: {', '.join(data.media_types)}")
    if data.inquiry_types:
        lines.append(f"Inquiry Types: {', '.join(data.inquiry_types)}")
    if data.quantities:
        lines.append(f"Quantities: {', '.join(data.quantities)}")

    return "\n".join(lines) + "\n"


def prospect_fields(data: ExtractedConversationData) -> Dict[str, Any]:
    """Record fields for a new prospect."""
    fields: Dict[str, Any] = {
        "Email": data.email,
        "Source": "Website Chat",
        "Status": "New Lead"
    }
    if data.name:
        fields["Name"] = data.name
    if data.phone:
        fields["Phone"] = data.phone
    if data.media_types:
        fields["Media Types"] = data.media_types
    if data.inquiry_types:
        fields["Inquiry Type"] = data.inquiry_types
    if data.quantities:
        fields["Quantity Mentioned"] = ", ".join(data.quantities)

    notes = []
    if data.notes:
        notes.append("Key details from chat:")
        notes.extend(data.notes)
    if data.media_types:
        notes.append(f"Media types mentioned: {', '.join(data.media_types)}")
    if notes:
        fields["Notes"] = "\n".join(notes)

    return fields


class ConversationArchiver:
    """Saves conversations to the record store in the background."""

    def __init__(
        self,
        record_store: AirtableRecordStore,
        customers_table: str,
        prospects_table: str,
        transcripts_table: str
    ):
        self.record_store = record_store
        self.customers_table = customers_table
        self.prospects_table = prospects_table
        self.transcripts_table = transcripts_table
        self._tasks: Set[asyncio.Task] = set()

    def schedule(self, session: ChatSession) -> Optional[asyncio.Task]:
        """
        Archive a session snapshot without waiting for it.

        Returns:
            The background task, or None when archival is unavailable
        """
        if not self.record_store.is_configured:
            logger.debug("Record store not configured; skipping archival")
            return None

        task = asyncio.create_task(self.archive(session))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for in-flight archival tasks (used on shutdown)."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def archive(self, session: ChatSession) -> Optional[Record]:
        """
        Save a conversation and link it to a customer or prospect.

        Args:
            session: Session snapshot to archive

        Returns:
            Transcript record, or None when nothing was saved
        """
        if len(session.messages) < 2:
            return None

        logger.info(
            f"Archiving conversation {session.session_id} ({len(session.messages)} messages)",
            extra={"session_id": session.session_id}
        )

        try:
            data = extract_conversation_data(m.content for m in session.messages)

            customer: Optional[Record] = None
            prospect: Optional[Record] = None
            if data.email:
                matches = await self.record_store.find_by_field(self.customers_table, "Email", data.email)
                customer = matches[0] if matches else None
                if customer is None:
                    prospect = await self.record_store.create(self.prospects_table, prospect_fields(data))

            needs_human = any(
                asks_for_human(m.content)
                for m in session.messages
            )
            transcript = await self.record_store.create(
                self.transcripts_table,
                {
                    "SessionID": session.session_id,
                    "Transcript": format_transcript(session, data),
                    "Status": "Needs Human" if needs_human else "AI-Handled",
                    "CustomerEmail": data.email or ""
                }
            )

            link: Dict[str, Any] = {}
            if customer:
                link["Customer"] = [customer["id"]]
            elif prospect:
                link["Prospects"] = [prospect["id"]]
            if link:
                await self.record_store.update(self.transcripts_table, transcript["id"], link)

            logger.info(
                f"✓ Archived conversation {session.session_id} as {transcript.get('id')}",
                extra={"session_id": session.session_id}
            )
            return transcript

        except Exception as e:
            logger.error(
                f"Failed to archive conversation {session.session_id}: {e}",
                extra={"session_id": session.session_id},
                exc_info=True
            )
            return None


__all__ = [
    'ConversationArchiver',
    'should_archive',
    'format_transcript',
    'prospect_fields'
]
