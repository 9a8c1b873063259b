"""
Inbound routing between the widget, the completion provider and the
messaging platform.

Version: 1.0.0
"""

from .formatting import (
    clean_agent_text,
    format_for_thread,
    handoff_announcement,
    handoff_details,
    html_to_mrkdwn
)
from .widget_router import (
    WidgetRouter,
    WidgetReply,
    HandoffResult,
    RelayResult,
    RelayError,
    InvalidSenderError,
    to_completion_history,
    HANDOFF_CONNECTED_MESSAGE,
    HANDOFF_FALLBACK_MESSAGE
)
from .webhook_router import WebhookRouter, WebhookOutcome, WebhookPayloadError
from .transcript import TranscriptPoller, TranscriptResult

__all__ = [
    # Formatting
    'clean_agent_text',
    'format_for_thread',
    'handoff_announcement',
    'handoff_details',
    'html_to_mrkdwn',

    # Widget side
    'WidgetRouter',
    'WidgetReply',
    'HandoffResult',
    'RelayResult',
    'RelayError',
    'InvalidSenderError',
    'to_completion_history',
    'HANDOFF_CONNECTED_MESSAGE',
    'HANDOFF_FALLBACK_MESSAGE',

    # Webhook side
    'WebhookRouter',
    'WebhookOutcome',
    'WebhookPayloadError',

    # Poller
    'TranscriptPoller',
    'TranscriptResult'
]
