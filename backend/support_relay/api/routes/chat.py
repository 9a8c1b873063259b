"""
Widget chat API routes: chat turns, human handoff and transcript polling.
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Optional
import logging

from ...models.schemas import (
    ChatRequest,
    ChatResponse,
    HandoffRequest,
    HandoffResponse,
    TranscriptResponse
)
from ...routing import TranscriptPoller, WidgetRouter
from ...services import CompletionError
from ...session.models import utc_now
from ...utils.telemetry import metrics_collector, track_handoff
from ..dependencies import get_transcript_poller, get_widget_router

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/chat", response_model=ChatResponse, response_model_exclude_none=True)
async def send_message(
    request: ChatRequest,
    widget: WidgetRouter = Depends(get_widget_router)
):
    """
    Send a widget message.

    Answered by the AI assistant until the session is handed off; after
    that the message goes to the human agent's thread and no reply is
    returned.

    Returns:
        Assistant reply (omitted in handoff mode)
    """
    if not request.message or not request.session_id:
        raise HTTPException(status_code=400, detail="Message and sessionId are required")

    try:
        reply = await widget.handle_message(request.session_id, request.message)

    except CompletionError as e:
        metrics_collector.record_error()
        raise HTTPException(status_code=500, detail=e.user_message)
    except Exception as e:
        logger.error(f"Error processing message: {e}", exc_info=True)
        metrics_collector.record_error()
        raise HTTPException(status_code=500, detail=CompletionError.user_message)

    return ChatResponse(success=True, response=reply.response, session_id=reply.session_id)


@router.post("/request-human", response_model=HandoffResponse)
async def request_human(
    request: HandoffRequest,
    widget: WidgetRouter = Depends(get_widget_router)
):
    """
    Connect the visitor to a human agent.

    A messaging platform failure still answers 200 with success false and
    a fallback message.
    """
    if not request.session_id:
        raise HTTPException(status_code=400, detail="Session ID is required")

    try:
        result = await widget.request_handoff(
            request.session_id,
            messages=[m.model_dump() for m in request.messages],
            customer_info=request.customer_info.model_dump() if request.customer_info else None
        )

    except Exception as e:
        logger.error(f"Handoff failed for session {request.session_id}: {e}", exc_info=True)
        metrics_collector.record_error()
        track_handoff("error")
        raise HTTPException(status_code=500, detail="Unable to connect to human support at this time")

    return HandoffResponse(
        success=result.success,
        message=result.message,
        session_id=result.session_id,
        timestamp=utc_now()
    )


@router.get("/chat-messages", response_model=TranscriptResponse)
async def get_chat_messages(
    session_id: Optional[str] = Query(None, alias="sessionId"),
    last_message_id: Optional[str] = Query(None, alias="lastMessageId"),
    poller: TranscriptPoller = Depends(get_transcript_poller)
):
    """
    Poll for messages the widget has not rendered yet.

    An unknown session is not an error: the response says
    sessionExists false.
    """
    if not session_id:
        raise HTTPException(status_code=400, detail="Session ID is required")

    try:
        result = await poller.get_transcript(session_id, last_message_id)

    except Exception as e:
        logger.error(f"Error fetching messages for session {session_id}: {e}", exc_info=True)
        metrics_collector.record_error()
        raise HTTPException(status_code=500, detail="Failed to fetch messages")

    return TranscriptResponse(
        success=True,
        messages=result.messages,
        debug_log=result.debug_log,
        session_exists=result.session_exists,
        last_activity=result.last_activity
    )
