"""
Service container.
Builds the session subsystem, the collaborator clients and the routers
from settings, and owns their startup and shutdown.

Version: 1.0.0
"""
import logging
from typing import Any, Dict, List

from .config import Settings
from .routing import TranscriptPoller, WebhookRouter, WidgetRouter
from .services import (
    AirtableRecordStore,
    AnthropicCompletionProvider,
    BaseAPIClient,
    ConversationArchiver,
    OrderStatusService,
    ProductCatalog,
    SlackClient,
    SquarePaymentClient
)
from .session import (
    LockManager,
    SessionManager,
    SessionStore,
    create_lock_manager,
    create_session_store
)

logger = logging.getLogger(__name__)


class ServiceContainer:
    """
    Everything a request handler needs, wired once per process.

    Attribute names are what the API dependencies look up, so tests can
    substitute any of them.
    """

    def __init__(self, settings: Settings):
        self.settings = settings

        # Session subsystem
        self.session_store: SessionStore = create_session_store(settings)
        self.lock_manager: LockManager = create_lock_manager(self.session_store, settings)
        self.sessions = SessionManager(
            self.session_store,
            ttl_seconds=settings.session_ttl_seconds,
            refresh_ttl_on_read=settings.session_refresh_ttl_on_read,
            debug_log_max_entries=settings.session_debug_log_max_entries
        )

        # Collaborators
        client_options = {
            "timeout": settings.external_request_timeout_seconds,
            "max_retries": settings.external_max_retries,
            "retry_wait_min": settings.external_retry_wait_min_seconds,
            "retry_wait_max": settings.external_retry_wait_max_seconds,
            "circuit_breaker_fail_max": settings.circuit_breaker_fail_max,
            "circuit_breaker_reset_seconds": settings.circuit_breaker_reset_seconds
        }

        self.completion = AnthropicCompletionProvider(
            api_key=settings.get_anthropic_api_key(),
            base_url=settings.anthropic_api_url,
            api_version=settings.anthropic_version,
            model=settings.completion_model,
            default_max_tokens=settings.completion_max_tokens,
            **client_options
        )
        self.messaging = SlackClient(
            bot_token=settings.get_slack_bot_token(),
            base_url=settings.slack_api_url,
            **client_options
        )
        self.record_store = AirtableRecordStore(
            api_key=settings.get_airtable_api_key(),
            base_id=settings.airtable_base_id,
            base_url=settings.airtable_api_url,
            **client_options
        )
        self.payments = SquarePaymentClient(
            access_token=settings.get_square_access_token(),
            location_id=settings.square_location_id,
            base_url=settings.square_api_url,
            api_version=settings.square_version,
            currency=settings.payment_currency,
            **client_options
        )

        # Record store services
        self.catalog = ProductCatalog(
            self.record_store,
            products_table=settings.airtable_products_table,
            cache_ttl=settings.product_cache_ttl_seconds
        )
        self.orders = OrderStatusService(
            self.record_store,
            customers_table=settings.airtable_customers_table,
            orders_table=settings.airtable_orders_table
        )
        self.archiver = ConversationArchiver(
            self.record_store,
            customers_table=settings.airtable_customers_table,
            prospects_table=settings.airtable_prospects_table,
            transcripts_table=settings.airtable_transcripts_table
        )

        # Routers
        self.widget_router = WidgetRouter(
            sessions=self.sessions,
            completion=self.completion,
            catalog=self.catalog,
            orders=self.orders,
            archiver=self.archiver,
            messaging=self.messaging,
            lock_manager=self.lock_manager,
            support_channel=settings.slack_channel_id,
            site_url=settings.site_url,
            history_window=settings.completion_history_window,
            max_tokens=settings.completion_max_tokens
        )
        self.webhook_router = WebhookRouter(self.sessions, bot_user_id=settings.slack_bot_user_id)
        self.transcript_poller = TranscriptPoller(self.sessions)

        self.initialized = False

    @property
    def clients(self) -> List[BaseAPIClient]:
        return [self.completion, self.messaging, self.record_store, self.payments]

    def collaborator_status(self) -> Dict[str, str]:
        """configured / not_configured per collaborator."""
        return {
            client.service_name: "configured" if client.is_configured else "not_configured"
            for client in self.clients
        }

    async def initialize(self) -> None:
        """Open HTTP sessions for every collaborator client."""
        for client in self.clients:
            await client.initialize()

        self.initialized = True
        logger.info(
            f"✓ Service container initialized (store: {type(self.session_store).__name__}, "
            f"locks: {type(self.lock_manager).__name__})"
        )

    async def cleanup(self) -> None:
        """Drain background archival, close clients and the session store."""
        logger.info("Cleaning up service container...")

        try:
            await self.archiver.drain()
            logger.info("✓ Archival tasks drained")
        except Exception as e:
            logger.error(f"Error draining archival tasks: {e}")

        for client in self.clients:
            try:
                await client.cleanup()
            except Exception as e:
                logger.error(f"Error cleaning up {client.service_name} client: {e}")

        try:
            await self.session_store.close()
            logger.info("✓ Session store closed")
        except Exception as e:
            logger.error(f"Error closing session store: {e}")

        self.initialized = False

    async def get_stats(self) -> Dict[str, Any]:
        """Session store statistics plus collaborator configuration."""
        return {
            "session_store": await self.session_store.get_stats(),
            "collaborators": self.collaborator_status()
        }


__all__ = ['ServiceContainer']
