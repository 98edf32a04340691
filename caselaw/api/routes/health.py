"""Health check and Prometheus metrics endpoints.

/health reports aggregate status from the availability of every case
source: healthy when all are available, unhealthy when none are.
"""

import time

from fastapi import APIRouter, Depends
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from caselaw.api.dependencies import get_orchestrator
from caselaw.models.responses import HealthResponse
from caselaw.services.search.orchestrator import UnifiedOrchestrator

router = APIRouter(tags=["observability"])

_APP_VERSION = "0.1.0"
_start_time: float = time.time()


@router.get("/health", response_model=HealthResponse)
async def health_check(
    orchestrator: UnifiedOrchestrator = Depends(get_orchestrator),
) -> HealthResponse:
    """Report API health and per-source availability."""
    statuses = orchestrator.get_source_status()

    if statuses and all(s.available for s in statuses):
        status = "healthy"
    elif any(s.available for s in statuses):
        status = "degraded"
    else:
        status = "unhealthy"

    return HealthResponse(
        status=status,
        version=_APP_VERSION,
        uptime_seconds=round(time.time() - _start_time, 2),
        sources=statuses,
    )


@router.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus metrics for scraping."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
