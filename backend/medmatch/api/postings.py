"""
Postings API endpoints.
Organization-side posting management and responses to a posting.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from medmatch.api.identity import get_matching_service, require_organization, require_professional
from medmatch.schemas.posting import PostingCreate, PostingRead, PostingUpdate
from medmatch.schemas.response import ResponseCreate, ResponseRead, ResponseWithProfessional
from medmatch.services.matching import MatchingService

logger = logging.getLogger(__name__)
router = APIRouter()


# Endpoints
@router.post("/", response_model=PostingRead, status_code=201)
async def create_posting(
    request: PostingCreate,
    organization_id: str = Depends(require_organization),
    service: MatchingService = Depends(get_matching_service),
):
    """Create a posting. It starts POSTED and open for responses."""
    posting = await service.create_posting(organization_id, request.model_dump())
    return posting


@router.patch("/{posting_id}", response_model=PostingRead)
async def update_posting(
    posting_id: str,
    request: PostingUpdate,
    organization_id: str = Depends(require_organization),
    service: MatchingService = Depends(get_matching_service),
):
    """
    Edit a posting.

    Returns 409 if the posting is already COMPLETED.
    """
    fields = request.model_dump(exclude_unset=True)
    return await service.update_posting(posting_id, organization_id, fields)


@router.delete("/{posting_id}", status_code=204)
async def delete_posting(
    posting_id: str,
    organization_id: str = Depends(require_organization),
    service: MatchingService = Depends(get_matching_service),
):
    """
    Delete a posting and its responses.

    Returns 409 if any response was accepted.
    """
    await service.delete_posting(posting_id, organization_id)


@router.post("/{posting_id}/complete", response_model=PostingRead)
async def complete_posting(
    posting_id: str,
    organization_id: str = Depends(require_organization),
    service: MatchingService = Depends(get_matching_service),
):
    """
    Mark a posting COMPLETED.

    Returns 409 if it is already COMPLETED.
    """
    return await service.complete_posting(posting_id, organization_id)


@router.get("/{posting_id}/responses", response_model=list[ResponseWithProfessional])
async def list_posting_responses(
    posting_id: str,
    status: Optional[str] = Query(None, description="Filter by status (PENDING, ACCEPTED, ...)"),
    organization_id: str = Depends(require_organization),
    service: MatchingService = Depends(get_matching_service),
):
    """Responses to one of the caller's postings, newest first."""
    return await service.list_responses_for_posting(posting_id, organization_id, status=status)


@router.post("/{posting_id}/responses", response_model=ResponseRead, status_code=201)
async def apply_to_posting(
    posting_id: str,
    request: ResponseCreate,
    professional_id: str = Depends(require_professional),
    service: MatchingService = Depends(get_matching_service),
):
    """
    Apply to a posting.

    Returns 409 ALREADY_APPLIED if the caller has a pending or accepted
    response, 409 INVALID_OPERATION if the posting is COMPLETED.
    """
    return await service.apply(professional_id, posting_id, request.message)
