"""
Discovery API endpoints.
Ranked, paginated search over postings, professionals and organizations.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from medmatch.api.identity import get_matching_service, optional_professional
from medmatch.config import settings
from medmatch.schemas.discovery import (
    OrganizationBrief,
    OrganizationDiscoveryItem,
    PaginatedResponse,
    PostingDiscoveryItem,
    ProfessionalDiscoveryItem,
    ProfessionalRead,
    RecentPosting,
)
from medmatch.services.geo_ranking import DiscoveryQuery
from medmatch.services.matching import MatchingService
from medmatch.services.pagination import paginate

logger = logging.getLogger(__name__)
router = APIRouter()


def _page_size(limit: Optional[int]) -> int:
    if limit is None:
        return settings.default_page_size
    return min(limit, settings.max_page_size)


def discovery_query(
    lat: Optional[float] = Query(None, description="Origin latitude"),
    lng: Optional[float] = Query(None, description="Origin longitude"),
    radius_km: Optional[float] = Query(None, description="Only results within this distance"),
    specialization: Optional[str] = Query(None, description="Comma-separated specializations or 'all'"),
    min_experience: Optional[int] = Query(None, description="Minimum years of experience"),
    max_experience: Optional[int] = Query(None, description="Maximum years of experience"),
    search: Optional[str] = Query(None, description="Case-insensitive text search"),
    posting_type: Optional[str] = Query(None, description="FULLTIME, PARTTIME, ONETIME or 'all'"),
    sort: Optional[str] = Query(None, description="Sort key, defaults to newest"),
) -> DiscoveryQuery:
    return DiscoveryQuery(
        latitude=lat,
        longitude=lng,
        radius_km=radius_km,
        specializations=specialization,
        min_experience=min_experience,
        max_experience=max_experience,
        search=search,
        posting_type=posting_type,
        sort=sort,
    )


# Endpoints
@router.get("/postings", response_model=PaginatedResponse[PostingDiscoveryItem])
async def discover_postings(
    query: DiscoveryQuery = Depends(discovery_query),
    include_applied: bool = Query(False, description="Keep postings the caller already applied to"),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    professional_id: Optional[str] = Depends(optional_professional),
    service: MatchingService = Depends(get_matching_service),
):
    """
    Open postings for a professional.

    When called with X-Professional-Id, postings the professional holds a
    pending or accepted response to are hidden unless include_applied=true.
    """
    exclude = professional_id if professional_id and not include_applied else None
    results = await service.discover_postings(query, exclude_responded_by=exclude)
    result_page = paginate(results, page, _page_size(limit))

    items = [
        PostingDiscoveryItem(
            id=s.posting.id,
            title=s.posting.title,
            posting_type=s.posting.posting_type,
            specialization=s.posting.specialization,
            description=s.posting.description,
            location=s.posting.location,
            scheduled_date=s.posting.scheduled_date,
            status=s.posting.status,
            created_at=s.posting.created_at,
            organization=OrganizationBrief.model_validate(s.posting.organization),
            distance_km=s.distance_km,
            application_count=s.application_count,
        )
        for s in result_page.data
    ]
    return PaginatedResponse[PostingDiscoveryItem].from_page(result_page, items)


@router.get("/professionals", response_model=PaginatedResponse[ProfessionalDiscoveryItem])
async def discover_professionals(
    query: DiscoveryQuery = Depends(discovery_query),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    service: MatchingService = Depends(get_matching_service),
):
    """Professionals for an organization, ranked by the requested sort."""
    results = await service.discover_professionals(query)
    result_page = paginate(results, page, _page_size(limit))

    items = [
        ProfessionalDiscoveryItem(
            **ProfessionalRead.model_validate(s.professional).model_dump(),
            distance_km=s.distance_km,
            connection_count=s.connection_count,
        )
        for s in result_page.data
    ]
    return PaginatedResponse[ProfessionalDiscoveryItem].from_page(result_page, items)


@router.get("/organizations", response_model=PaginatedResponse[OrganizationDiscoveryItem])
async def discover_organizations(
    query: DiscoveryQuery = Depends(discovery_query),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    service: MatchingService = Depends(get_matching_service),
):
    """Organizations with their open postings."""
    results = await service.discover_organizations(query)
    result_page = paginate(results, page, _page_size(limit))

    items = [
        OrganizationDiscoveryItem(
            **OrganizationBrief.model_validate(s.organization).model_dump(),
            distance_km=s.distance_km,
            active_postings=s.active_postings,
            recent_postings=[RecentPosting.model_validate(p) for p in s.recent_postings],
        )
        for s in result_page.data
    ]
    return PaginatedResponse[OrganizationDiscoveryItem].from_page(result_page, items)
