"""
Messaging platform routes: relaying widget messages into handoff threads
and receiving the platform's event webhook.
"""
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse
import json
import logging

from ...models.schemas import RelayRequest, RelayResponse
from ...routing import (
    InvalidSenderError,
    RelayError,
    WebhookPayloadError,
    WebhookRouter,
    WidgetRouter
)
from ...session import NoThreadBoundError, SessionNotFoundError
from ...utils.telemetry import metrics_collector, track_webhook_event
from ..dependencies import get_webhook_router, get_widget_router

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/send-to-slack", response_model=RelayResponse)
async def send_to_slack(
    request: RelayRequest,
    widget: WidgetRouter = Depends(get_widget_router)
):
    """
    Post a widget message into the session's handoff thread.

    Returns:
        Stored message id and the platform message ts
    """
    if not request.session_id or not request.message or not request.sender:
        raise HTTPException(status_code=400, detail="Session ID, message, and sender are required")

    try:
        result = await widget.relay_to_thread(request.session_id, request.message, request.sender)

    except InvalidSenderError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except NoThreadBoundError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RelayError as e:
        logger.warning(f"Relay failed for session {request.session_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    except Exception as e:
        logger.error(f"Error relaying message for session {request.session_id}: {e}", exc_info=True)
        metrics_collector.record_error()
        raise HTTPException(status_code=500, detail="Internal server error")

    return RelayResponse(
        success=True,
        message_id=result.message_id,
        slack_message_id=result.slack_message_id,
        timestamp=result.timestamp
    )


@router.post("/slack-webhook", response_class=PlainTextResponse)
async def slack_webhook(
    request: Request,
    webhook: WebhookRouter = Depends(get_webhook_router)
):
    """
    Receive platform events.

    Answers the URL verification challenge; every other well-formed
    envelope gets "OK" so the platform does not redeliver it.
    """
    body = await request.body()

    try:
        payload = json.loads(body)
        outcome = await webhook.handle_event(payload)

    except (json.JSONDecodeError, UnicodeDecodeError, WebhookPayloadError) as e:
        logger.error(f"Malformed webhook payload: {e}")
        track_webhook_event("malformed")
        metrics_collector.record_error()
        raise HTTPException(status_code=500, detail="Internal Server Error")

    if outcome.challenge is not None:
        return PlainTextResponse(outcome.challenge)

    return PlainTextResponse("OK")
