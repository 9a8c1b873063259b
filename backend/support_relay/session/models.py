"""
Session data models using Pydantic.
Defines the persisted chat session document and its transcript messages.

Version: 1.0.0
"""
import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def now_ms() -> int:
    """Milliseconds since the epoch, as used in generated message ids."""
    return int(utc_now().timestamp() * 1000)


class MessageSender(str, Enum):
    """Author of a transcript message."""
    USER = "user"
    BOT = "bot"
    AGENT = "agent"


class ChatMessage(BaseModel):
    """One turn in a session transcript."""

    model_config = ConfigDict(use_enum_values=True, populate_by_name=True)

    id: str = Field(..., min_length=1, max_length=255, description="Message id, unique within a session")
    content: str = Field(..., description="Message text, may carry light formatting markup")
    sender: MessageSender = Field(..., description="user, bot or agent")
    timestamp: Optional[datetime] = Field(
        None,
        description="Assigned by the store at append time"
    )


class ChatSession(BaseModel):
    """
    Durable conversational state for one widget visitor.

    Serialized with camelCase aliases so stored documents keep the same
    shape the widget consumes.
    """

    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    session_id: str = Field(
        ...,
        alias="sessionId",
        min_length=1,
        max_length=255,
        description="Client-generated session identifier"
    )

    external_thread_id: Optional[str] = Field(
        None,
        alias="externalThreadId",
        max_length=255,
        description="Messaging platform thread bound at handoff (immutable once set)"
    )

    user_id: Optional[str] = Field(
        None,
        alias="userId",
        max_length=255,
        description="Known customer identifier, when provided"
    )

    last_activity: datetime = Field(
        default_factory=utc_now,
        alias="lastActivity",
        description="Last read or write touching the session"
    )

    messages: List[ChatMessage] = Field(default_factory=list, description="Ordered transcript")

    debug_log: List[str] = Field(
        default_factory=list,
        alias="debugLog",
        description="Diagnostic lines exposed to the widget"
    )

    @field_validator('session_id', 'external_thread_id')
    @classmethod
    def validate_identifiers(cls, v: Optional[str]) -> Optional[str]:
        """Identifiers are opaque but must not be blank."""
        if v is None:
            return v
        if not v.strip():
            raise ValueError("Identifier cannot be blank")
        return v

    @property
    def is_thread_bound(self) -> bool:
        return self.external_thread_id is not None

    @property
    def last_message(self) -> Optional[ChatMessage]:
        return self.messages[-1] if self.messages else None

    def find_message_index(self, message_id: str) -> int:
        """Index of the first message with the given id, or -1."""
        for index, message in enumerate(self.messages):
            if message.id == message_id:
                return index
        return -1

    def add_debug_entry(self, event: str, data: Dict[str, Any], max_entries: int) -> str:
        """
        Append a diagnostic line, evicting the oldest lines past max_entries.

        Args:
            event: Event name
            data: JSON-serializable event data
            max_entries: Cap on retained lines

        Returns:
            The formatted line
        """
        line = f"[{utc_now().isoformat()}] {event}: {json.dumps(data, default=str)}"
        self.debug_log.append(line)
        overflow = len(self.debug_log) - max_entries
        if overflow > 0:
            del self.debug_log[:overflow]
        return line

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, json_str: str) -> 'ChatSession':
        return cls.model_validate_json(json_str)


__all__ = ['ChatMessage', 'ChatSession', 'MessageSender', 'utc_now', 'now_ms']
