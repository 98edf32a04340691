"""Source status, credentials and reference data endpoints.

GET /sources — availability and remaining quota per source.
PUT /sources/{source}/credentials — install or clear a remote API key.
DELETE /sources/cache — drop cached search responses.
GET /sources/caselaw_access/jurisdictions, /courts — reference listings.
"""

import structlog
from fastapi import APIRouter, Depends, Query

from caselaw.api.dependencies import get_orchestrator
from caselaw.api.routes.cases import parse_source
from caselaw.core.exceptions import InvalidRequestError
from caselaw.models.requests import CredentialsRequest
from caselaw.models.responses import (
    CacheClearedResponse,
    CredentialsUpdatedResponse,
    ReferenceListResponse,
    SourceStatusResponse,
)
from caselaw.services.search.orchestrator import UnifiedOrchestrator

logger: structlog.stdlib.BoundLogger = structlog.get_logger()

router = APIRouter(prefix="/sources", tags=["sources"])


@router.get("", response_model=SourceStatusResponse, summary="Per-source availability")
async def list_sources(
    orchestrator: UnifiedOrchestrator = Depends(get_orchestrator),
) -> SourceStatusResponse:
    return SourceStatusResponse(
        sources=orchestrator.get_source_status(),
        cache_entries=len(orchestrator.cache),
    )


@router.delete("/cache", response_model=CacheClearedResponse, summary="Clear the search cache")
async def clear_cache(
    orchestrator: UnifiedOrchestrator = Depends(get_orchestrator),
) -> CacheClearedResponse:
    return CacheClearedResponse(cleared=orchestrator.clear_cache())


@router.get(
    "/caselaw_access/jurisdictions",
    response_model=ReferenceListResponse,
    summary="Caselaw Access Project jurisdictions",
)
async def list_jurisdictions(
    orchestrator: UnifiedOrchestrator = Depends(get_orchestrator),
) -> ReferenceListResponse:
    results = await orchestrator.list_jurisdictions()
    return ReferenceListResponse(results=results, total=len(results))


@router.get(
    "/caselaw_access/courts",
    response_model=ReferenceListResponse,
    summary="Caselaw Access Project courts",
)
async def list_courts(
    jurisdiction: str | None = Query(default=None, description="Jurisdiction slug, e.g. 'ill'"),
    orchestrator: UnifiedOrchestrator = Depends(get_orchestrator),
) -> ReferenceListResponse:
    results = await orchestrator.list_courts(jurisdiction)
    return ReferenceListResponse(results=results, total=len(results))


@router.put(
    "/{source}/credentials",
    response_model=CredentialsUpdatedResponse,
    summary="Install a remote API key",
)
async def set_credentials(
    source: str,
    body: CredentialsRequest,
    orchestrator: UnifiedOrchestrator = Depends(get_orchestrator),
) -> CredentialsUpdatedResponse:
    """Switches the quota tier and resets the source's health state."""
    data_source = parse_source(source)
    if not orchestrator.set_api_key(data_source, body.api_key):
        msg = f"{data_source.value} does not take credentials"
        raise InvalidRequestError(msg, details={"source": data_source.value})

    status = next(s for s in orchestrator.get_source_status() if s.source == data_source)
    logger.info(
        "source_credentials_updated",
        source=data_source.value,
        authenticated=status.authenticated,
    )
    return CredentialsUpdatedResponse(source=data_source, status=status)
