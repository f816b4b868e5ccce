"""Professional-side API endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from medmatch.api.identity import get_matching_service, require_professional
from medmatch.errors import UnauthorizedError
from medmatch.schemas.response import ResponseWithPosting
from medmatch.services.matching import MatchingService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/{professional_id}/responses", response_model=list[ResponseWithPosting])
async def list_my_responses(
    professional_id: str,
    status: Optional[str] = Query(None, description="Filter by status (PENDING, ACCEPTED, ...)"),
    acting_professional_id: str = Depends(require_professional),
    service: MatchingService = Depends(get_matching_service),
):
    """The caller's own responses with their postings, newest first."""
    if acting_professional_id.strip().lower() != professional_id.strip().lower():
        raise UnauthorizedError(
            "Cannot list responses of another professional",
            {"professional_id": professional_id},
        )
    return await service.list_responses_for_professional(professional_id, status=status)
