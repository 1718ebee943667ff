"""Health check endpoint.

Reports whether the proof backend and Redis are reachable. The escrow
core itself is in-process and has nothing to probe.
"""

from __future__ import annotations

import httpx
from fastapi import APIRouter, Depends

from provenance_escrow.api.deps import get_app_settings
from provenance_escrow.config import Settings
from provenance_escrow.logging_config import get_logger
from provenance_escrow.schemas.escrow import HealthResponse

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns the health status of the application and its dependencies.",
)
def health_check(settings: Settings = Depends(get_app_settings)) -> HealthResponse:
    """Check the prover service and Redis."""
    prover_status = "simulated"
    redis_status = "not used"

    if settings.prover_type == "http":
        try:
            # The prover exposes no health route; any HTTP answer means it is up.
            httpx.get(settings.zkp_backend_url, timeout=2.0)
            prover_status = "healthy"
        except httpx.HTTPError as exc:
            prover_status = f"unhealthy: {exc}"
            logger.error("health.prover_check_failed", error=str(exc))

    if settings.vc_cache_backend == "redis":
        try:
            from provenance_escrow.infrastructure.redis_client import get_redis

            get_redis().ping()
            redis_status = "healthy"
        except Exception as exc:
            redis_status = f"unhealthy: {exc}"
            logger.error("health.redis_check_failed", error=str(exc))

    degraded = prover_status.startswith("unhealthy") or redis_status.startswith("unhealthy")
    return HealthResponse(
        status="degraded" if degraded else "ok",
        version="0.1.0",
        prover=prover_status,
        redis=redis_status,
    )
