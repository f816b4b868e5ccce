"""Response (application) schemas."""
from datetime import datetime
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field

from medmatch.schemas.connection import WorkConnectionRead
from medmatch.schemas.discovery import ProfessionalRead
from medmatch.schemas.posting import PostingRead


class ResponseCreate(BaseModel):
    """A professional's pitch for a posting."""
    message: Optional[str] = Field(None, max_length=5000)


class ResponseRead(BaseModel):
    id: UUID
    professional_id: UUID
    posting_id: UUID
    message: Optional[str] = None
    status: str
    created_at: datetime
    updated_at: datetime
    decided_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ResponseWithProfessional(ResponseRead):
    """Organization view of a response."""
    professional: ProfessionalRead


class ResponseWithPosting(ResponseRead):
    """Professional view of a response."""
    posting: PostingRead


class AcceptResponse(BaseModel):
    """Result of accepting a response."""
    response: ResponseRead
    connection: WorkConnectionRead
