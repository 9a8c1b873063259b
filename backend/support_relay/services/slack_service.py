"""
Messaging platform client (Slack Web API).

Version: 1.0.0
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .exceptions import ExternalServiceError
from .http_client import BaseAPIClient

logger = logging.getLogger(__name__)


class MessagingError(ExternalServiceError):
    """Slack rejected the call (ok: false) or could not be reached."""

    def __init__(self, message: str, error_code: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.error_code = error_code


@dataclass
class PostedMessage:
    """Result of chat.postMessage."""
    ts: str
    channel: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


class SlackClient(BaseAPIClient):
    """
    Posts messages to the support channel.

    Posting without thread_ts starts a new thread; the returned ts
    identifies it for later replies.
    """

    service_name = "slack"

    def __init__(
        self,
        bot_token: Optional[str],
        base_url: str = "https://slack.com/api",
        **client_options
    ):
        super().__init__(base_url, **client_options)
        self.bot_token = bot_token

    @property
    def is_configured(self) -> bool:
        return bool(self.bot_token and self.base_url)

    def _default_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.bot_token}",
            "Content-Type": "application/json; charset=utf-8"
        }

    async def post_message(
        self,
        channel: str,
        text: str,
        thread_ts: Optional[str] = None
    ) -> PostedMessage:
        """
        Post a message to a channel or thread.

        Args:
            channel: Channel name or id (without '#')
            text: Message text (Slack mrkdwn)
            thread_ts: Parent message ts to reply in a thread

        Returns:
            PostedMessage with the new message ts

        Raises:
            MessagingError: If Slack responds with ok: false
            ExternalServiceError: On transport or configuration failures
        """
        payload: Dict[str, Any] = {
            "channel": channel,
            "text": text,
            "unfurl_links": False,
            "unfurl_media": False
        }
        if thread_ts:
            payload["thread_ts"] = thread_ts

        result = await self._make_api_request(
            "POST",
            "/chat.postMessage",
            operation="post_message",
            json_data=payload
        )

        if not result.get("ok"):
            error_code = result.get("error", "unknown_error")
            logger.warning(
                f"Slack rejected message: {error_code}",
                extra={"channel": channel, "thread_ts": thread_ts, "slack_error": error_code}
            )
            raise MessagingError(f"Slack API error: {error_code}", error_code=error_code, payload=result)

        return PostedMessage(ts=result.get("ts", ""), channel=result.get("channel"), raw=result)


__all__ = ['SlackClient', 'PostedMessage', 'MessagingError']
