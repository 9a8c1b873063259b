"""
Completion provider client for the Anthropic Messages API.

Version: 1.0.0
"""
import logging
from typing import Dict, List, Optional

from .exceptions import (
    ExternalServiceError,
    ServiceAuthenticationError,
    ServiceNotConfiguredError,
    ServiceRateLimitError,
    ServiceTimeoutError
)
from .http_client import BaseAPIClient

logger = logging.getLogger(__name__)


# ===========================
# Completion Errors
# ===========================

class CompletionError(ExternalServiceError):
    """Completion failed; user_message is safe to show to the visitor."""

    user_message = "I apologize, but I'm having technical difficulties right now."


class CompletionConfigurationError(CompletionError):
    """Missing or rejected API key."""

    user_message = "Configuration issue with AI service. Please contact support."


class CompletionRateLimitError(CompletionError):
    """Provider is throttling us."""

    user_message = "Service is temporarily busy. Please try again in a moment."


class CompletionTimeoutError(CompletionError):
    """Provider did not answer in time."""

    user_message = "Request timed out. Please try again."


class AnthropicCompletionProvider(BaseAPIClient):
    """
    Generates assistant replies from a system prompt and chat history.

    Messages use the provider's format: [{"role": "user"|"assistant",
    "content": str}], oldest first, ending with the visitor's turn.
    """

    service_name = "anthropic"

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.anthropic.com/v1",
        api_version: str = "2023-06-01",
        model: str = "claude-3-5-sonnet-20241022",
        default_max_tokens: int = 1024,
        **client_options
    ):
        super().__init__(base_url, **client_options)
        self.api_key = api_key
        self.api_version = api_version
        self.model = model
        self.default_max_tokens = default_max_tokens

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.base_url)

    def _default_headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.api_key or "",
            "anthropic-version": self.api_version,
            "Content-Type": "application/json"
        }

    async def complete(
        self,
        messages: List[Dict[str, str]],
        system_prompt: str,
        max_tokens: Optional[int] = None
    ) -> str:
        """
        Request a completion.

        Args:
            messages: Conversation history in provider format
            system_prompt: System prompt
            max_tokens: Reply token budget (defaults to configured value)

        Returns:
            Reply text

        Raises:
            CompletionError: Subclass describing the failure category
        """
        request_body = {
            "model": self.model,
            "max_tokens": max_tokens or self.default_max_tokens,
            "system": system_prompt,
            "messages": messages
        }

        logger.info(
            f"Requesting completion ({len(messages)} messages, "
            f"system prompt {len(system_prompt)} chars)",
            extra={"model": self.model, "message_count": len(messages)}
        )

        try:
            result = await self._make_api_request(
                "POST",
                "/messages",
                operation="complete",
                json_data=request_body
            )
        except (ServiceNotConfiguredError, ServiceAuthenticationError) as e:
            raise CompletionConfigurationError(
                f"Completion API key missing or rejected: {e}",
                status_code=e.status_code
            ) from e
        except ServiceRateLimitError as e:
            raise CompletionRateLimitError(str(e), status_code=e.status_code) from e
        except ServiceTimeoutError as e:
            raise CompletionTimeoutError(str(e)) from e
        except ExternalServiceError as e:
            raise CompletionError(str(e), status_code=e.status_code, payload=e.payload) from e

        content = result.get("content") or []
        text = content[0].get("text") if content and isinstance(content[0], dict) else None
        if not text:
            raise CompletionError("Invalid response format from completion API", payload=result)

        logger.info(f"Completion received ({len(text)} chars)")
        return text


__all__ = [
    'AnthropicCompletionProvider',
    'CompletionError',
    'CompletionConfigurationError',
    'CompletionRateLimitError',
    'CompletionTimeoutError'
]
