"""Organization (clinic) model - the demand side of the marketplace."""
import uuid
from sqlalchemy import Column, String, Float, Boolean, DateTime
from sqlalchemy.orm import relationship

from medmatch.database import Base
from medmatch.database_types import GUID, utcnow


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(GUID, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    address = Column(String(500), nullable=False, default="")

    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    is_verified = Column(Boolean, nullable=False, default=False)

    # Timestamps
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    postings = relationship(
        "Posting",
        back_populates="organization",
        cascade="all, delete-orphan",
    )
