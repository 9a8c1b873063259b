"""
FastAPI dependencies resolving services from the application container.
"""
from fastapi import HTTPException, Request

from ..container import ServiceContainer
from ..routing import TranscriptPoller, WebhookRouter, WidgetRouter
from ..services import SquarePaymentClient


def get_container(request: Request) -> ServiceContainer:
    """Get the service container from app state."""
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(status_code=500, detail="Service not initialized")
    return container


def get_widget_router(request: Request) -> WidgetRouter:
    return get_container(request).widget_router


def get_webhook_router(request: Request) -> WebhookRouter:
    return get_container(request).webhook_router


def get_transcript_poller(request: Request) -> TranscriptPoller:
    return get_container(request).transcript_poller


def get_payment_client(request: Request) -> SquarePaymentClient:
    return get_container(request).payments


__all__ = [
    'get_container',
    'get_widget_router',
    'get_webhook_router',
    'get_transcript_poller',
    'get_payment_client'
]
