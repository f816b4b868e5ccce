"""
Connections and overview API endpoints.
"""
import logging

from fastapi import APIRouter, Depends, Query

from medmatch.api.identity import get_matching_service, require_party
from medmatch.schemas.connection import ConnectionGroupRead, ConnectionListResponse, WorkConnectionRead
from medmatch.schemas.discovery import OrganizationBrief, ProfessionalRead
from medmatch.schemas.overview import OrganizationOverview, ProfessionalOverview
from medmatch.schemas.posting import PostingRead
from medmatch.services.connections import PartyRole
from medmatch.services.matching import MatchingService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/connections/{role}/{party_id}", response_model=ConnectionListResponse)
async def list_connections(
    role: PartyRole,
    party_id: str,
    distinct: bool = Query(False, description="Only the first connection per counterparty"),
    _: str = Depends(require_party),
    service: MatchingService = Depends(get_matching_service),
):
    """
    Work connections of the caller.

    Organizations see them grouped by professional, professionals grouped by
    organization. Each group carries its connection count and up to three
    postings.
    """
    result = await service.list_connections(party_id, role, distinct=distinct)

    if distinct:
        connections = [WorkConnectionRead.model_validate(c) for c in result]
        return ConnectionListResponse(role=role.value, total=len(connections), connections=connections)

    groups = []
    for group in result:
        groups.append(
            ConnectionGroupRead(
                counterparty_id=group.counterparty_id,
                professional=(
                    ProfessionalRead.model_validate(group.counterparty)
                    if role == PartyRole.ORGANIZATION else None
                ),
                organization=(
                    OrganizationBrief.model_validate(group.counterparty)
                    if role == PartyRole.PROFESSIONAL else None
                ),
                connection_count=group.connection_count,
                latest_connected_at=group.latest_connected_at,
                postings=[PostingRead.model_validate(p) for p in group.postings],
            )
        )
    return ConnectionListResponse(role=role.value, total=len(groups), groups=groups)


@router.get("/overview/{role}/{party_id}", response_model=OrganizationOverview | ProfessionalOverview)
async def get_overview(
    role: PartyRole,
    party_id: str,
    _: str = Depends(require_party),
    service: MatchingService = Depends(get_matching_service),
):
    """Dashboard counts for the caller."""
    if role == PartyRole.ORGANIZATION:
        return OrganizationOverview(**await service.organization_overview(party_id))
    return ProfessionalOverview(**await service.professional_overview(party_id))
