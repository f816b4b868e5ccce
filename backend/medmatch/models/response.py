"""Response (pitch) model: a professional's application to a posting."""
import enum
import uuid
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Index, text
from sqlalchemy.orm import relationship

from medmatch.database import Base
from medmatch.database_types import GUID, utcnow


class ResponseStatus(str, enum.Enum):
    """Valid states for responses"""
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    WITHDRAWN = "WITHDRAWN"


ACTIVE_RESPONSE_STATUSES = (ResponseStatus.PENDING.value, ResponseStatus.ACCEPTED.value)

_ACTIVE_PREDICATE = text("status IN ('PENDING', 'ACCEPTED')")


class Response(Base):
    __tablename__ = "responses"

    id = Column(GUID, primary_key=True, default=uuid.uuid4)
    professional_id = Column(
        GUID, ForeignKey("professionals.id", ondelete="CASCADE"), nullable=False, index=True
    )
    posting_id = Column(
        GUID, ForeignKey("postings.id", ondelete="CASCADE"), nullable=False, index=True
    )

    message = Column(Text, nullable=True)

    # State machine
    status = Column(String, nullable=False, default=ResponseStatus.PENDING.value)

    # Timestamps
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    decided_at = Column(DateTime, nullable=True)

    # Relationships
    professional = relationship("Professional", back_populates="responses")
    posting = relationship("Posting", back_populates="responses")

    __table_args__ = (
        # At most one PENDING/ACCEPTED response per (professional, posting).
        # Withdrawn and rejected rows stay as history and do not block re-applying.
        Index(
            'uq_responses_active_pair',
            'professional_id',
            'posting_id',
            unique=True,
            sqlite_where=_ACTIVE_PREDICATE,
            postgresql_where=_ACTIVE_PREDICATE,
        ),
        Index('idx_responses_posting_status', 'posting_id', 'status'),
    )
