"""Provider model definitions."""

import uuid

from sqlalchemy import Boolean, Column, Float, Integer, String
from sqlalchemy.orm import relationship

from backend.database import Base


class Provider(Base):
    """Represents a healthcare provider who publishes availability."""
    __tablename__ = "providers"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    specialization = Column(String(100))
    years_of_experience = Column(Integer, default=0)
    rating = Column(Float, default=0)
    clinic_street = Column(String(200))
    clinic_city = Column(String(100))
    clinic_state = Column(String(50))
    clinic_zip = Column(String(10))
    is_active = Column(Boolean, default=True, nullable=False)

    availability = relationship("ProviderAvailability", back_populates="provider")

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()
