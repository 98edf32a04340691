"""Case lookup endpoints.

GET /cases/by-citation — first source in priority order holding a citation.
GET /cases/{source}/{case_id} — case detail with holdings and display line.
GET /cases/{source}/{case_id}/related — single-hop related cases.
GET /cases/courtlistener/{cluster_id}/citing — CourtListener citing cases.
"""

import structlog
from fastapi import APIRouter, Depends, Query

from caselaw.api.dependencies import get_orchestrator
from caselaw.core.exceptions import InvalidRequestError, NotFoundError
from caselaw.models.domain import DataSource, UnifiedResult
from caselaw.models.responses import CaseDetailResponse, CaseListResponse, ErrorResponse
from caselaw.services.search.orchestrator import UnifiedOrchestrator
from caselaw.utils.case_text import extract_key_holdings, format_case_for_display

logger: structlog.stdlib.BoundLogger = structlog.get_logger()

router = APIRouter(prefix="/cases", tags=["cases"])

_NOT_FOUND = {404: {"model": ErrorResponse}}


def parse_source(value: str) -> DataSource:
    """Resolve a path segment to a DataSource or raise InvalidRequestError."""
    try:
        return DataSource(value.lower())
    except ValueError:
        msg = f"Unknown source {value!r}"
        raise InvalidRequestError(
            msg, details={"allowed": [s.value for s in DataSource]}
        ) from None


@router.get(
    "/by-citation",
    response_model=UnifiedResult,
    responses=_NOT_FOUND,
    summary="Look a case up by citation",
)
async def get_by_citation(
    cite: str = Query(..., min_length=1, max_length=200, description="e.g. '539 U.S. 558'"),
    orchestrator: UnifiedOrchestrator = Depends(get_orchestrator),
) -> UnifiedResult:
    result = await orchestrator.get_case_by_citation(cite)
    if result is None:
        msg = f"No case found for citation {cite!r}"
        raise NotFoundError(msg, details={"cite": cite})
    return result


@router.get(
    "/courtlistener/{cluster_id}/citing",
    response_model=CaseListResponse,
    summary="Cases citing a CourtListener cluster",
)
async def get_citing(
    cluster_id: str,
    limit: int = Query(default=20, ge=1, le=100),
    orchestrator: UnifiedOrchestrator = Depends(get_orchestrator),
) -> CaseListResponse:
    if not cluster_id.isdigit():
        msg = "CourtListener cluster ids are numeric"
        raise InvalidRequestError(msg, details={"cluster_id": cluster_id})
    results = await orchestrator.find_citing(cluster_id, limit)
    return CaseListResponse(
        origin=f"{DataSource.COURTLISTENER.value}:{cluster_id}",
        results=results,
        total=len(results),
    )


@router.get(
    "/{source}/{case_id}",
    response_model=CaseDetailResponse,
    responses=_NOT_FOUND,
    summary="Case detail",
)
async def get_case(
    source: str,
    case_id: str,
    orchestrator: UnifiedOrchestrator = Depends(get_orchestrator),
) -> CaseDetailResponse:
    data_source = parse_source(source)
    result = await orchestrator.get_case(data_source, case_id)
    if result is None:
        msg = f"Case {case_id!r} not found in {data_source.value}"
        raise NotFoundError(msg, details={"source": data_source.value, "case_id": case_id})
    return CaseDetailResponse(
        result=result,
        display=format_case_for_display(result.case),
        holdings=extract_key_holdings(result.case),
    )


@router.get(
    "/{source}/{case_id}/related",
    response_model=CaseListResponse,
    responses=_NOT_FOUND,
    summary="Related cases, one citation hop out",
)
async def get_related(
    source: str,
    case_id: str,
    limit: int = Query(default=10, ge=1, le=50),
    orchestrator: UnifiedOrchestrator = Depends(get_orchestrator),
) -> CaseListResponse:
    data_source = parse_source(source)
    related = await orchestrator.find_related(data_source, case_id, limit)
    if related is None:
        msg = f"Case {case_id!r} not found in {data_source.value}"
        raise NotFoundError(msg, details={"source": data_source.value, "case_id": case_id})
    logger.info(
        "related_cases_served",
        source=data_source.value,
        case_id=case_id,
        count=len(related),
    )
    return CaseListResponse(
        origin=f"{data_source.value}:{case_id}",
        results=related,
        total=len(related),
    )
