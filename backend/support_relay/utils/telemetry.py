"""
Prometheus metrics for the relay.

Counters are labelled by outcome rather than by session so the series
count stays bounded no matter how many visitors chat.
"""
import logging
import time
from collections import Counter as Tally
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

logger = logging.getLogger(__name__)

METRIC_PREFIX = "support_relay"


# ===========================
# Metric Definitions
# ===========================

http_requests = Counter(
    f'{METRIC_PREFIX}_http_requests_total',
    'HTTP requests by route template',
    ['method', 'route', 'status']
)

http_latency = Histogram(
    f'{METRIC_PREFIX}_http_request_seconds',
    'HTTP request latency by route template',
    ['method', 'route'],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 15.0, 30.0)
)

transcript_appends = Counter(
    f'{METRIC_PREFIX}_transcript_appends_total',
    'Messages appended to session transcripts',
    ['sender']
)

live_sessions = Gauge(
    f'{METRIC_PREFIX}_live_sessions',
    'Sessions held by the in-memory store'
)

handoffs = Counter(
    f'{METRIC_PREFIX}_handoffs_total',
    'Human handoff requests',
    ['outcome']
)

webhook_events = Counter(
    f'{METRIC_PREFIX}_webhook_events_total',
    'Messaging platform events',
    ['outcome']
)

completions = Counter(
    f'{METRIC_PREFIX}_completions_total',
    'Completion provider calls',
    ['outcome']
)

completion_latency = Histogram(
    f'{METRIC_PREFIX}_completion_seconds',
    'Completion provider latency',
    buckets=(0.5, 1.0, 2.0, 5.0, 10.0, 20.0, 30.0, 60.0)
)

payments = Counter(
    f'{METRIC_PREFIX}_payments_total',
    'Payment attempts',
    ['outcome']
)


def _route_label(request: Request) -> str:
    """Matched route template, or a fixed label for unrouted paths."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


def setup_telemetry(app: FastAPI) -> None:
    """
    Expose /metrics and record per-route request metrics.

    Args:
        app: FastAPI application instance
    """
    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.middleware("http")
    async def record_request_metrics(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - started

        route = _route_label(request)
        http_requests.labels(request.method, route, str(response.status_code)).inc()
        http_latency.labels(request.method, route).observe(elapsed)

        return response

    logger.info("✓ Prometheus metrics exposed at /metrics")


# ===========================
# Recording Helpers
# ===========================

def track_chat_message(sender: str) -> None:
    transcript_appends.labels(sender=sender).inc()


def track_handoff(outcome: str) -> None:
    """Outcomes: connected, already_connected, degraded, error."""
    handoffs.labels(outcome=outcome).inc()


def track_webhook_event(outcome: str) -> None:
    """Outcomes: verification, appended, ignored, unmapped, malformed, error."""
    webhook_events.labels(outcome=outcome).inc()


def track_completion(outcome: str, duration: float) -> None:
    completions.labels(outcome=outcome).inc()
    completion_latency.observe(duration)


def track_payment(outcome: str) -> None:
    """Outcomes: completed, declined, unexpected_status, not_configured, error."""
    payments.labels(outcome=outcome).inc()


def update_active_sessions(count: int) -> None:
    live_sessions.set(count)


class MetricsCollector:
    """
    In-process tallies reported by the root endpoint.

    Prometheus series are the source of truth for dashboards; this keeps
    a readable summary for a single worker.
    """

    def __init__(self):
        self.started_at = time.time()
        self.by_sender: Tally = Tally()
        self.error_count = 0
        self.last_error_at: Optional[float] = None

    @property
    def message_count(self) -> int:
        return sum(self.by_sender.values())

    def record_message(self, sender: str) -> None:
        self.by_sender[sender] += 1
        track_chat_message(sender)

    def record_error(self) -> None:
        self.error_count += 1
        self.last_error_at = time.time()

    def get_stats(self) -> Dict[str, Any]:
        uptime = time.time() - self.started_at
        total = self.message_count

        return {
            "uptime_seconds": round(uptime, 1),
            "messages_processed": total,
            "messages_by_sender": dict(self.by_sender),
            "messages_per_minute": round(total / uptime * 60, 2) if uptime > 0 else 0,
            "errors": self.error_count,
            "seconds_since_last_error": (
                round(time.time() - self.last_error_at, 1) if self.last_error_at else None
            )
        }


metrics_collector = MetricsCollector()


__all__ = [
    'setup_telemetry',
    'metrics_collector',
    'MetricsCollector',
    'track_chat_message',
    'track_completion',
    'track_handoff',
    'track_payment',
    'track_webhook_event',
    'update_active_sessions'
]
