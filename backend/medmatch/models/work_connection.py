"""Work connection: immutable record created when a response is accepted."""
import uuid
from sqlalchemy import Column, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from medmatch.database import Base
from medmatch.database_types import GUID, utcnow


class WorkConnection(Base):
    __tablename__ = "work_connections"

    id = Column(GUID, primary_key=True, default=uuid.uuid4)

    # One connection per accepted response
    response_id = Column(
        GUID, ForeignKey("responses.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    professional_id = Column(GUID, ForeignKey("professionals.id"), nullable=False)
    organization_id = Column(GUID, ForeignKey("organizations.id"), nullable=False)
    posting_id = Column(GUID, ForeignKey("postings.id"), nullable=False)

    connected_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    professional = relationship("Professional")
    organization = relationship("Organization")
    posting = relationship("Posting")

    __table_args__ = (
        Index('idx_connections_organization', 'organization_id', 'connected_at'),
        Index('idx_connections_professional', 'professional_id', 'connected_at'),
    )
