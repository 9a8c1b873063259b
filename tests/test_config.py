"""
Tests for settings parsing, the service container and HTTP middleware.
"""
import pytest

from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import ValidationError

from support_relay.config import Settings
from support_relay.container import ServiceContainer
from support_relay.session import InMemorySessionStore, LocalLockManager, create_session_store
from support_relay.utils.middleware import RateLimitMiddleware, RequestIDMiddleware, TimingMiddleware


# ===========================
# Settings
# ===========================

class TestSettings:

    def test_cors_origins_comma_separated(self):
        settings = Settings(cors_origins="https://a.com, https://b.com")

        assert settings.cors_origins == ["https://a.com", "https://b.com"]

    def test_cors_origins_json(self):
        settings = Settings(cors_origins='["https://a.com"]')

        assert settings.cors_origins == ["https://a.com"]

    def test_channel_id_drops_hash(self):
        assert Settings(slack_support_channel="#vip-sales").slack_channel_id == "vip-sales"

    def test_unknown_store_type_rejected(self):
        with pytest.raises(ValidationError):
            Settings(session_store_type="memcached")

    def test_blank_secret_is_unset(self):
        settings = Settings(slack_bot_token="   ")

        assert settings.get_slack_bot_token() is None

    def test_secrets_hidden_in_repr(self):
        settings = Settings(anthropic_api_key="sk-secret")

        assert "sk-secret" not in repr(settings)
        assert settings.get_anthropic_api_key() == "sk-secret"

    def test_handoff_lock_outlives_retried_posts(self):
        settings = Settings(
            external_request_timeout_seconds=10,
            external_max_retries=3,
            external_retry_wait_max_seconds=10,
            session_lock_timeout_seconds=30
        )

        assert settings.outbound_call_budget_seconds == 50
        assert settings.handoff_lock_seconds == 110

    def test_handoff_lock_keeps_configured_floor(self):
        settings = Settings(
            external_request_timeout_seconds=2,
            external_max_retries=1,
            session_lock_timeout_seconds=30
        )

        assert settings.handoff_lock_seconds == 30

    def test_store_factory_in_memory(self, test_settings):
        store = create_session_store(test_settings)

        assert isinstance(store, InMemorySessionStore)
        assert store.default_ttl == test_settings.session_ttl_seconds


# ===========================
# Service Container
# ===========================

class TestServiceContainer:

    def test_wiring(self, test_settings):
        container = ServiceContainer(test_settings)

        assert isinstance(container.lock_manager, LocalLockManager)
        assert container.lock_manager.timeout == test_settings.handoff_lock_seconds
        assert container.widget_router.sessions is container.sessions
        assert container.webhook_router.bot_user_id == "UBOT"
        assert container.widget_router.support_channel == "vip-sales"

    def test_collaborator_status(self, test_settings):
        status = ServiceContainer(test_settings).collaborator_status()

        assert status == {
            "anthropic": "configured",
            "slack": "configured",
            "airtable": "not_configured",
            "square": "configured"
        }

    async def test_initialize_and_cleanup(self, test_settings):
        container = ServiceContainer(test_settings)

        await container.initialize()
        assert container.initialized is True
        assert all(client.session is not None for client in container.clients)

        await container.cleanup()
        assert container.initialized is False
        assert all(client.session is None for client in container.clients)


# ===========================
# Middleware
# ===========================

def build_app(calls: int = 2) -> FastAPI:
    app = FastAPI()
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(TimingMiddleware)
    app.add_middleware(RateLimitMiddleware, calls=calls, period=60, exempt_paths=("/health",))

    @app.get("/ping")
    async def ping():
        return {"pong": True}

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    return app


class TestMiddleware:

    def test_request_id_echoed(self):
        client = TestClient(build_app())

        response = client.get("/ping", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"
        assert float(response.headers["X-Process-Time"]) >= 0

    def test_rate_limit(self):
        client = TestClient(build_app(calls=2))

        assert client.get("/ping").status_code == 200
        second = client.get("/ping")
        assert second.headers["X-RateLimit-Remaining"] == "0"

        limited = client.get("/ping")
        assert limited.status_code == 429
        assert limited.json()["success"] is False
        assert limited.headers["Retry-After"] == "60"

    def test_rate_limit_per_client(self):
        client = TestClient(build_app(calls=1))

        assert client.get("/ping", headers={"X-Forwarded-For": "10.0.0.1"}).status_code == 200
        assert client.get("/ping", headers={"X-Forwarded-For": "10.0.0.2"}).status_code == 200
        assert client.get("/ping", headers={"X-Forwarded-For": "10.0.0.1"}).status_code == 429

    def test_exempt_paths_never_limited(self):
        client = TestClient(build_app(calls=1))

        for _ in range(3):
            assert client.get("/health").status_code == 200
