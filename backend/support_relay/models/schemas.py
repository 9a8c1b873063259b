"""
Pydantic schemas for request/response validation.

Request fields the widget may omit are Optional so handlers can answer
with the widget's own 400 messages instead of a generic validation error.
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Dict, Any
from datetime import datetime

from ..session.models import ChatMessage


class CamelModel(BaseModel):
    """Accepts and emits camelCase field names."""
    model_config = ConfigDict(populate_by_name=True)


# Request Schemas

class ChatRequest(CamelModel):
    """One widget turn."""
    message: Optional[str] = None
    session_id: Optional[str] = Field(None, alias="sessionId")

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "message": "How much for VHS tapes?",
                "sessionId": "session_1718000000000_abc123"
            }
        }
    )


class CustomerInfo(CamelModel):
    """Contact details the visitor entered."""
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class WidgetMessage(CamelModel):
    """Message as rendered by the widget."""
    id: Optional[str] = None
    content: str = ""
    sender: str = "user"
    timestamp: Optional[Any] = None


class HandoffRequest(CamelModel):
    """Request to connect the visitor to a human."""
    session_id: Optional[str] = Field(None, alias="sessionId")
    messages: List[WidgetMessage] = Field(default_factory=list)
    customer_info: Optional[CustomerInfo] = Field(None, alias="customerInfo")

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "sessionId": "session_1718000000000_abc123",
                "messages": [{"id": "1", "content": "Can I talk to a person?", "sender": "user"}],
                "customerInfo": {"email": "a@b.com", "name": "Ada Lovelace"}
            }
        }
    )


class RelayRequest(CamelModel):
    """Widget message destined for the bound thread."""
    session_id: Optional[str] = Field(None, alias="sessionId")
    message: Optional[str] = None
    sender: Optional[str] = None


class PaymentRequest(CamelModel):
    """Card payment from the checkout page."""
    token: Optional[str] = None
    amount: Optional[float] = None
    order_details: Optional[Dict[str, Any]] = Field(None, alias="orderDetails")


# Response Schemas

class ChatResponse(CamelModel):
    """Reply to a widget turn; response is omitted in handoff mode."""
    success: bool = True
    response: Optional[str] = None
    session_id: str = Field(..., alias="sessionId")


class HandoffResponse(CamelModel):
    """Outcome of a handoff request."""
    success: bool
    message: str
    session_id: str = Field(..., alias="sessionId")
    timestamp: datetime


class RelayResponse(CamelModel):
    """Outcome of relaying a message to the thread."""
    success: bool = True
    message_id: str = Field(..., alias="messageId")
    slack_message_id: str = Field(..., alias="slackMessageId")
    timestamp: Optional[str] = None


class TranscriptResponse(CamelModel):
    """Poll result."""
    success: bool = True
    messages: List[ChatMessage] = Field(default_factory=list)
    debug_log: List[str] = Field(default_factory=list, alias="debugLog")
    session_exists: bool = Field(..., alias="sessionExists")
    last_activity: Optional[datetime] = Field(None, alias="lastActivity")


class PaymentResponse(CamelModel):
    """Processor payment object."""
    success: bool = True
    payment: Dict[str, Any]


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: datetime
    version: str
    services: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "healthy",
                "timestamp": "2024-01-15T10:30:00Z",
                "version": "1.0.0",
                "services": {
                    "session_store": "healthy",
                    "slack": "configured"
                }
            }
        }
    )


class ErrorResponse(BaseModel):
    """Error response."""
    success: bool = False
    error: str
    request_id: Optional[str] = None


__all__ = [
    'ChatRequest',
    'CustomerInfo',
    'WidgetMessage',
    'HandoffRequest',
    'RelayRequest',
    'PaymentRequest',
    'ChatResponse',
    'HandoffResponse',
    'RelayResponse',
    'TranscriptResponse',
    'PaymentResponse',
    'HealthResponse',
    'ErrorResponse'
]
