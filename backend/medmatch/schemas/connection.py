"""Work connection schemas."""
from datetime import datetime
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, ConfigDict

from medmatch.schemas.discovery import OrganizationBrief, ProfessionalRead
from medmatch.schemas.posting import PostingRead


class WorkConnectionRead(BaseModel):
    id: UUID
    response_id: UUID
    professional_id: UUID
    organization_id: UUID
    posting_id: UUID
    connected_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ConnectionGroupRead(BaseModel):
    """All connections with one counterparty."""
    counterparty_id: UUID
    professional: Optional[ProfessionalRead] = None  # Set for organization viewers
    organization: Optional[OrganizationBrief] = None  # Set for professional viewers
    connection_count: int
    latest_connected_at: datetime
    postings: list[PostingRead]


class ConnectionListResponse(BaseModel):
    role: str
    total: int
    groups: list[ConnectionGroupRead] = []
    connections: list[WorkConnectionRead] = []  # distinct=true view
