"""
Liveness and readiness probes.

/health and /health/live never touch a dependency. /health/ready reports
the session store (critical) and each outbound collaborator (optional).
"""
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
import logging

from ...config import settings
from ...container import ServiceContainer
from ...models.schemas import HealthResponse
from ...session.models import utc_now
from ...utils.resilience import get_circuit_breaker_states
from ..dependencies import get_container

logger = logging.getLogger(__name__)

router = APIRouter()


def _report(status: str, services: dict) -> HealthResponse:
    return HealthResponse(
        status=status,
        timestamp=utc_now(),
        version=settings.app_version,
        services=services
    )


@router.get("", response_model=HealthResponse)
async def health_check():
    """Process is up and serving requests."""
    return _report("healthy", {})


@router.get("/ready", response_model=HealthResponse)
async def readiness_check(container: ServiceContainer = Depends(get_container)):
    """
    Readiness for load balancers.

    An unreachable session store makes the instance unhealthy (503).
    A collaborator without credentials only degrades it, since chat
    still works with reduced features.
    """
    try:
        store_health = await container.session_store.health_check()
    except Exception as e:
        logger.error(f"Session store health check raised: {e}", exc_info=True)
        store_health = {"healthy": False, "error": str(e)}

    store_ok = bool(store_health.get("healthy"))
    if not store_ok:
        logger.warning(f"Session store unhealthy: {store_health}")

    collaborators = container.collaborator_status()
    services = {"session_store": "healthy" if store_ok else "unhealthy", **collaborators}
    services["circuit_breakers"] = get_circuit_breaker_states()

    if not store_ok:
        status = "unhealthy"
    elif any(state != "configured" for state in collaborators.values()):
        status = "degraded"
    else:
        status = "healthy"

    report = _report(status, services)
    if status == "unhealthy":
        return JSONResponse(status_code=503, content=report.model_dump(mode="json"))
    return report


@router.get("/live")
async def liveness_check():
    return {"status": "alive", "timestamp": utc_now().isoformat()}
