"""Posting-related Pydantic schemas."""
from datetime import datetime
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field

from medmatch.models.posting import PostingType
from medmatch.models.professional import Specialization


class PostingBase(BaseModel):
    """Fields an organization controls."""
    title: str = Field(..., min_length=1, max_length=255)
    posting_type: PostingType
    specialization: Optional[Specialization] = None  # None = any specialization
    description: str = ""
    location: Optional[str] = None  # Defaults to the organization address
    additional_information: Optional[str] = None
    scheduled_date: Optional[datetime] = None


class PostingCreate(PostingBase):
    """Schema for creating a posting."""
    pass


class PostingUpdate(BaseModel):
    """Partial update; only fields that are sent are changed."""
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    posting_type: Optional[PostingType] = None
    specialization: Optional[Specialization] = None
    description: Optional[str] = None
    location: Optional[str] = None
    additional_information: Optional[str] = None
    scheduled_date: Optional[datetime] = None


class PostingRead(BaseModel):
    """Schema for posting response."""
    id: UUID
    organization_id: UUID
    title: str
    posting_type: str
    specialization: Optional[str] = None
    description: str
    location: str
    additional_information: Optional[str] = None
    scheduled_date: Optional[datetime] = None
    status: str
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
