"""
Application configuration settings.
Loads every tunable from environment variables (and an optional .env file).

Version: 1.0.0

Sections:
- Application / API
- Session store
- Messaging platform (Slack)
- Completion provider (Anthropic)
- Record store (Airtable)
- Payment processor (Square)
- Outbound HTTP resilience
"""
from functools import lru_cache
from typing import Any, List, Optional, Union
import json
import logging
import math

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .. import APP_NAME, __version__

logger = logging.getLogger(__name__)

HANDOFF_LOCK_MARGIN_SECONDS = 10


class Settings(BaseSettings):
    """
    Service configuration.

    Secrets are held as SecretStr and read through the get_*_key helpers
    so they never end up in logs or reprs.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ===========================
    # Application
    # ===========================

    app_name: str = Field(default=APP_NAME, description="Application name")
    app_version: str = Field(default=__version__, description="Application version")

    environment: str = Field(
        default="development",
        description="Deployment environment (development, testing, staging, production)"
    )

    debug: bool = Field(default=False, description="Enable debug mode")

    log_level: str = Field(default="INFO", description="Root log level")

    # ===========================
    # API
    # ===========================

    api_host: str = Field(default="0.0.0.0", description="API bind host")
    api_port: int = Field(default=8000, ge=1, le=65535, description="API bind port")
    api_workers: int = Field(default=1, ge=1, description="Uvicorn worker count")
    api_prefix: str = Field(default="/api", description="Prefix for widget/webhook routes")

    cors_origins: List[str] = Field(
        default=["*"],
        description="Allowed CORS origins (JSON list or comma-separated)"
    )

    rate_limit_enabled: bool = Field(default=False, description="Enable per-client rate limiting")
    rate_limit_requests: int = Field(default=120, ge=1, description="Requests allowed per period")
    rate_limit_period: int = Field(default=60, ge=1, description="Rate limit window in seconds")

    enable_telemetry: bool = Field(default=True, description="Expose Prometheus metrics")

    # ===========================
    # Session Store
    # ===========================

    session_store_type: str = Field(
        default="in_memory",
        description="Session store backend: in_memory or redis"
    )

    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL"
    )

    redis_key_prefix: str = Field(
        default="relay:",
        description="Prefix applied to every session store key"
    )

    redis_max_connections: int = Field(default=50, ge=1, description="Redis pool size")

    session_ttl_seconds: int = Field(
        default=86400,
        ge=60,
        description="Inactivity expiry for sessions and thread bindings"
    )

    session_refresh_ttl_on_read: bool = Field(
        default=False,
        description="Rewrite the session (extending its TTL) on plain reads"
    )

    session_debug_log_max_entries: int = Field(
        default=200,
        ge=1,
        le=10000,
        description="Maximum debug log lines kept per session"
    )

    session_max_sessions: int = Field(
        default=10000,
        ge=1,
        description="Capacity of the in-memory store (keys)"
    )

    session_cleanup_interval_seconds: int = Field(
        default=300,
        ge=10,
        description="Interval of the expired-session sweep"
    )

    session_lock_timeout_seconds: int = Field(
        default=30,
        ge=1,
        description="Expiry of per-session locks"
    )

    session_update_max_retries: int = Field(
        default=10,
        ge=1,
        description="Optimistic concurrency retries for atomic updates"
    )

    # ===========================
    # Messaging Platform (Slack)
    # ===========================

    slack_bot_token: Optional[SecretStr] = Field(
        default=None,
        description="Slack bot token (xoxb-...)"
    )

    slack_support_channel: str = Field(
        default="#vip-sales",
        description="Channel where handoff threads are opened"
    )

    slack_bot_user_id: Optional[str] = Field(
        default=None,
        description="User id of this bot; its messages are never stored as agent replies"
    )

    slack_api_url: str = Field(default="https://slack.com/api", description="Slack Web API base URL")

    site_url: str = Field(default="https://heritagebox.com", description="Public website URL")

    # ===========================
    # Completion Provider (Anthropic)
    # ===========================

    anthropic_api_key: Optional[SecretStr] = Field(default=None, description="Anthropic API key")
    anthropic_api_url: str = Field(default="https://api.anthropic.com/v1", description="Anthropic API base URL")
    anthropic_version: str = Field(default="2023-06-01", description="anthropic-version header")

    completion_model: str = Field(default="claude-3-5-sonnet-20241022", description="Completion model")
    completion_max_tokens: int = Field(default=1024, ge=1, le=8192, description="Max tokens per reply")
    completion_history_window: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Transcript messages sent as conversation history"
    )

    # ===========================
    # Record Store (Airtable)
    # ===========================

    airtable_api_key: Optional[SecretStr] = Field(default=None, description="Airtable API key")
    airtable_base_id: str = Field(default="appFMHAYZrTskpmdX", description="Airtable base id")
    airtable_api_url: str = Field(default="https://api.airtable.com/v0", description="Airtable API base URL")

    airtable_customers_table: str = Field(default="tblUS7uf11axEmL56")
    airtable_products_table: str = Field(default="tblJ0hgzvDXWgQGmK")
    airtable_orders_table: str = Field(default="tblTq25QawVDHTTkV")
    airtable_order_items_table: str = Field(default="tblgV4XGeQE3VL9CW")
    airtable_transcripts_table: str = Field(default="tbl6gHHlvSwx4gQpB")
    airtable_prospects_table: str = Field(default="tblogFLfRkbopp0fK")

    product_cache_ttl_seconds: int = Field(
        default=300,
        ge=0,
        description="Freshness window of the product catalog cache"
    )

    # ===========================
    # Payment Processor (Square)
    # ===========================

    square_access_token: Optional[SecretStr] = Field(default=None, description="Square access token")
    square_location_id: Optional[str] = Field(default=None, description="Square location id")
    square_api_url: Optional[str] = Field(default=None, description="Square API base URL")
    square_version: str = Field(default="2024-02-15", description="Square-Version header")
    payment_currency: str = Field(default="USD", description="Currency for captured payments")

    # ===========================
    # Outbound HTTP Resilience
    # ===========================

    external_request_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="Per-call timeout for collaborator requests"
    )

    external_max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for transient collaborator failures"
    )

    external_retry_wait_min_seconds: float = Field(default=1.0, ge=0, description="Minimum backoff")
    external_retry_wait_max_seconds: float = Field(default=10.0, ge=0, description="Maximum backoff")

    circuit_breaker_fail_max: int = Field(default=5, ge=1, description="Failures before a breaker opens")
    circuit_breaker_reset_seconds: int = Field(default=60, ge=1, description="Seconds a breaker stays open")

    # ===========================
    # Validators
    # ===========================

    @field_validator('cors_origins', mode='before')
    @classmethod
    def parse_cors_origins(cls, v: Union[str, List[str], Any]) -> List[str]:
        """Accept a JSON list or a comma-separated string."""
        if isinstance(v, str):
            v = v.strip()
            if v.startswith('['):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    pass
            return [origin.strip() for origin in v.split(',') if origin.strip()]
        return v

    @field_validator('session_store_type')
    @classmethod
    def validate_store_type(cls, v: str) -> str:
        v = v.lower().strip()
        if v not in ('in_memory', 'redis'):
            raise ValueError(f"Unknown session store type: {v}")
        return v

    @field_validator('slack_bot_token', 'anthropic_api_key', 'airtable_api_key', 'square_access_token', mode='before')
    @classmethod
    def empty_secret_is_none(cls, v: Optional[Union[str, SecretStr]]) -> Optional[Union[str, SecretStr]]:
        """Treat blank secrets as unset."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    # ===========================
    # Helper Methods
    # ===========================

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def outbound_call_budget_seconds(self) -> float:
        """Worst case for one collaborator call: every attempt times out, plus backoff."""
        attempts = self.external_max_retries
        return (
            attempts * self.external_request_timeout_seconds
            + (attempts - 1) * self.external_retry_wait_max_seconds
        )

    @property
    def handoff_lock_seconds(self) -> int:
        """
        Expiry of per-session locks.

        A handoff holds its lock across two Slack posts, so the lock must
        outlive both posts retrying to exhaustion.
        """
        handoff_budget = 2 * self.outbound_call_budget_seconds + HANDOFF_LOCK_MARGIN_SECONDS
        return max(self.session_lock_timeout_seconds, math.ceil(handoff_budget))

    @property
    def slack_channel_id(self) -> str:
        """Channel name as the Slack API expects it (no leading '#')."""
        return self.slack_support_channel.replace('#', '')

    def get_slack_bot_token(self) -> Optional[str]:
        """
        Get Slack bot token value.

        Returns:
            Token string or None if not set
        """
        if self.slack_bot_token:
            return self.slack_bot_token.get_secret_value()
        return None

    def get_anthropic_api_key(self) -> Optional[str]:
        """
        Get Anthropic API key value.

        Returns:
            API key string or None if not set
        """
        if self.anthropic_api_key:
            return self.anthropic_api_key.get_secret_value()
        return None

    def get_airtable_api_key(self) -> Optional[str]:
        """
        Get Airtable API key value.

        Returns:
            API key string or None if not set
        """
        if self.airtable_api_key:
            return self.airtable_api_key.get_secret_value()
        return None

    def get_square_access_token(self) -> Optional[str]:
        """
        Get Square access token value.

        Returns:
            Token string or None if not set
        """
        if self.square_access_token:
            return self.square_access_token.get_secret_value()
        return None


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()

__all__ = ['Settings', 'settings', 'get_settings']
