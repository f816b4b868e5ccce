"""
Responses API endpoints.
Accept / reject (organization) and withdraw (professional).
"""
import logging

from fastapi import APIRouter, Depends

from medmatch.api.identity import get_matching_service, require_organization, require_professional
from medmatch.schemas.connection import WorkConnectionRead
from medmatch.schemas.response import AcceptResponse, ResponseRead
from medmatch.services.matching import MatchingService

logger = logging.getLogger(__name__)
router = APIRouter()


# Endpoints
@router.post("/{response_id}/accept", response_model=AcceptResponse)
async def accept_response(
    response_id: str,
    organization_id: str = Depends(require_organization),
    service: MatchingService = Depends(get_matching_service),
):
    """
    Accept a pending response and create the work connection.

    Returns 409 if the response is no longer PENDING (including when another
    request accepted it first) or the posting is COMPLETED.
    """
    result = await service.accept(response_id, organization_id)
    return AcceptResponse(
        response=ResponseRead.model_validate(result.response),
        connection=WorkConnectionRead.model_validate(result.connection),
    )


@router.post("/{response_id}/reject", response_model=ResponseRead)
async def reject_response(
    response_id: str,
    organization_id: str = Depends(require_organization),
    service: MatchingService = Depends(get_matching_service),
):
    """Reject a pending response. Returns 409 if it is no longer PENDING."""
    return await service.reject(response_id, organization_id)


@router.post("/{response_id}/withdraw", response_model=ResponseRead)
async def withdraw_response(
    response_id: str,
    professional_id: str = Depends(require_professional),
    service: MatchingService = Depends(get_matching_service),
):
    """Withdraw the caller's pending response. Accepted responses cannot be withdrawn."""
    return await service.withdraw(response_id, professional_id)
