"""Search API endpoint.

POST /search — unified, deduplicated search across every case source.
"""

import structlog
from fastapi import APIRouter, Depends

from caselaw.api.dependencies import get_orchestrator, get_settings_from_app
from caselaw.core.config import Settings
from caselaw.models.domain import UnifiedSearchResponse
from caselaw.models.requests import SearchRequest
from caselaw.services.search.orchestrator import UnifiedOrchestrator

logger: structlog.stdlib.BoundLogger = structlog.get_logger()

router = APIRouter(prefix="/search", tags=["search"])


@router.post(
    "",
    response_model=UnifiedSearchResponse,
    summary="Search all case sources",
)
async def search_cases(
    request: SearchRequest,
    orchestrator: UnifiedOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_settings_from_app),
) -> UnifiedSearchResponse:
    """Search sources in priority order; per-source outcomes are in ``sources``."""
    query = request.to_query(settings.default_search_limit)
    return await orchestrator.search(query)
