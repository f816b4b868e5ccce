"""Discovery (search and ranking) schemas."""
from datetime import datetime
from typing import Generic, Optional, TypeVar
from uuid import UUID
from pydantic import BaseModel, ConfigDict

from medmatch.services.pagination import Page

T = TypeVar("T")


class OrganizationBrief(BaseModel):
    id: UUID
    name: str
    address: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_verified: bool

    model_config = ConfigDict(from_attributes=True)


class ProfessionalRead(BaseModel):
    id: UUID
    full_name: str
    specialization: str
    experience_years: int
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    location_label: Optional[str] = None
    about: Optional[str] = None
    is_verified: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PostingDiscoveryItem(BaseModel):
    id: UUID
    title: str
    posting_type: str
    specialization: Optional[str] = None
    description: str
    location: str
    scheduled_date: Optional[datetime] = None
    status: str
    created_at: datetime
    organization: OrganizationBrief
    distance_km: Optional[float] = None
    application_count: int


class ProfessionalDiscoveryItem(ProfessionalRead):
    distance_km: Optional[float] = None
    connection_count: int


class RecentPosting(BaseModel):
    id: UUID
    title: str
    posting_type: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrganizationDiscoveryItem(OrganizationBrief):
    distance_km: Optional[float] = None
    active_postings: int
    recent_postings: list[RecentPosting]


class PaginationMeta(BaseModel):
    total: int
    page: int
    limit: int
    has_next: bool
    has_prev: bool


class PaginatedResponse(BaseModel, Generic[T]):
    data: list[T]
    pagination: PaginationMeta

    @classmethod
    def from_page(cls, page: Page, items: list):
        return cls(
            data=items,
            pagination=PaginationMeta(
                total=page.total,
                page=page.page,
                limit=page.limit,
                has_next=page.has_next,
                has_prev=page.has_prev,
            ),
        )
