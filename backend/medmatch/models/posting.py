"""Posting (job requirement) model, owned by exactly one organization."""
import enum
import uuid
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from medmatch.database import Base
from medmatch.database_types import GUID, utcnow


class PostingType(str, enum.Enum):
    """Engagement type offered by a posting."""
    FULLTIME = "FULLTIME"
    PARTTIME = "PARTTIME"
    ONETIME = "ONETIME"


class PostingStatus(str, enum.Enum):
    """Posting lifecycle. Moves forward only: POSTED -> COMPLETED."""
    POSTED = "POSTED"
    COMPLETED = "COMPLETED"


class Posting(Base):
    __tablename__ = "postings"

    id = Column(GUID, primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        GUID, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Job details
    title = Column(String(255), nullable=False)
    posting_type = Column(String, nullable=False)
    specialization = Column(String, nullable=True)  # NULL = open to any specialization
    description = Column(Text, nullable=False, default="")
    location = Column(String(500), nullable=False, default="")
    additional_information = Column(Text, nullable=True)
    scheduled_date = Column(DateTime, nullable=True)

    # State machine
    status = Column(String, nullable=False, default=PostingStatus.POSTED.value)

    # Timestamps
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    # Relationships
    organization = relationship("Organization", back_populates="postings")
    responses = relationship(
        "Response",
        back_populates="posting",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        # Discovery reads every POSTED posting
        Index('idx_postings_status_created', 'status', 'created_at'),
    )
