"""
Text formatting between the widget and the messaging platform.

Version: 1.0.0
"""
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..session.models import MessageSender

AGENT_PREFIX_PATTERNS = [
    re.compile(r"^(?:👤|🤖)?\s*\*\*(?:Customer|Bot):\*\*\s*", re.IGNORECASE),
    re.compile(r"^\*\*(.*?)\*\*:\s*", re.IGNORECASE)
]

SENDER_PREFIXES = {
    MessageSender.USER.value: "👤 **Customer:**",
    MessageSender.BOT.value: "🤖 **Bot:**"
}

HANDOFF_PREVIEW_MESSAGES = 3
HANDOFF_PREVIEW_CHARS = 200


def html_to_mrkdwn(message: str) -> str:
    """Convert the widget's light HTML to Slack mrkdwn."""
    text = re.sub(r"<br\s*/?>", "\n", message, flags=re.IGNORECASE)
    text = re.sub(r"<strong>(.*?)</strong>", r"*\1*", text, flags=re.IGNORECASE)
    text = re.sub(r"<em>(.*?)</em>", r"_\1_", text, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]*>", "", text)
    return text.strip()


def format_for_thread(session_id: str, message: str, sender: str) -> str:
    """
    Text posted into a handoff thread for a widget-side message.

    Args:
        session_id: Session identifier
        message: Widget message (may contain light HTML)
        sender: user or bot
    """
    prefix = SENDER_PREFIXES.get(sender, SENDER_PREFIXES[MessageSender.BOT.value])
    return f"📧 *Session: {session_id}*\n{prefix} {html_to_mrkdwn(message)}"


def clean_agent_text(text: str) -> str:
    """Strip sender decorations from a thread message before storing it."""
    for pattern in AGENT_PREFIX_PATTERNS:
        text = pattern.sub("", text)
    return text.strip()


def _truncate(content: str, limit: int) -> str:
    return content[:limit] + "..." if len(content) > limit else content


def handoff_announcement(session_id: str, customer_info: Optional[Dict[str, Any]]) -> str:
    """Top-level channel post that starts a handoff thread."""
    info = customer_info or {}
    return (
        "🚨 *NEW CUSTOMER SUPPORT REQUEST*\n\n"
        f"Customer: {info.get('name') or 'Anonymous'}\n"
        f"Email: {info.get('email') or 'Not provided'}\n"
        f"Session: `{session_id}`\n\n"
        "_Click thread below to start conversation_ 👇"
    )


def handoff_details(
    messages: List[Dict[str, Any]],
    customer_info: Optional[Dict[str, Any]],
    site_url: str,
    now: datetime
) -> str:
    """First in-thread post: customer info and the tail of the conversation."""
    info = customer_info or {}

    if messages:
        preview = "\n\n".join(
            f"{'👤 Customer' if m.get('sender') == MessageSender.USER.value else '🤖 Bot'}: "
            f"{_truncate(str(m.get('content', '')), HANDOFF_PREVIEW_CHARS)}"
            for m in messages[-HANDOFF_PREVIEW_MESSAGES:]
        )
    else:
        preview = "No conversation history available"

    return (
        "🚨 **Customer Requesting Human Support**\n\n"
        "**Customer Info:**\n"
        f"• Email: {info.get('email') or 'Not provided'}\n"
        f"• Name: {info.get('name') or 'Not provided'}\n"
        f"• Phone: {info.get('phone') or 'Not provided'}\n\n"
        "**Recent Conversation:**\n"
        f"{preview}\n\n"
        f"**Time:** {now:%Y-%m-%d %H:%M:%S} UTC\n"
        "**Action Required:** Please respond to customer on website chat or reach out directly.\n"
        f"**Website:** {site_url}"
    )


__all__ = [
    'html_to_mrkdwn',
    'format_for_thread',
    'clean_agent_text',
    'handoff_announcement',
    'handoff_details'
]
