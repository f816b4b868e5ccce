"""Professional (doctor) model - the supply side of the marketplace."""
import enum
import uuid
from sqlalchemy import Column, String, Integer, Float, Text, Boolean, DateTime
from sqlalchemy.orm import relationship

from medmatch.database import Base
from medmatch.database_types import GUID, utcnow


class Specialization(str, enum.Enum):
    """Medical specialization of a professional, also used as a posting filter."""
    GENERAL_PHYSICIAN = "GENERAL_PHYSICIAN"
    CARDIOLOGIST = "CARDIOLOGIST"
    DERMATOLOGIST = "DERMATOLOGIST"
    ENDOCRINOLOGIST = "ENDOCRINOLOGIST"
    GYNECOLOGIST = "GYNECOLOGIST"
    NEUROSURGEON = "NEUROSURGEON"
    ORTHOPEDIC_SURGEON = "ORTHOPEDIC_SURGEON"
    PLASTIC_SURGEON = "PLASTIC_SURGEON"
    UROLOGIST = "UROLOGIST"
    ENT_SPECIALIST = "ENT_SPECIALIST"
    PEDIATRICIAN = "PEDIATRICIAN"
    PSYCHIATRIST = "PSYCHIATRIST"
    DENTIST = "DENTIST"


class Professional(Base):
    __tablename__ = "professionals"

    id = Column(GUID, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=False)

    specialization = Column(String, nullable=False, index=True)
    experience_years = Column(Integer, nullable=False, default=0)

    # Both set or both NULL; a professional without coordinates is never radius-matched
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    location_label = Column(String(255), nullable=True)

    about = Column(Text, nullable=True)
    is_verified = Column(Boolean, nullable=False, default=False)

    # Timestamps
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    responses = relationship("Response", back_populates="professional")
