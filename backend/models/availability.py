"""Provider availability model definitions."""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from backend.database import Base


class AvailabilityStatus(str, enum.Enum):
    AVAILABLE = 'available'
    BOOKED = 'booked'
    CANCELLED = 'cancelled'
    BLOCKED = 'blocked'
    MAINTENANCE = 'maintenance'


class AppointmentType(str, enum.Enum):
    CONSULTATION = 'consultation'
    FOLLOW_UP = 'follow_up'
    EMERGENCY = 'emergency'
    TELEMEDICINE = 'telemedicine'


class LocationType(str, enum.Enum):
    CLINIC = 'clinic'
    HOSPITAL = 'hospital'
    TELEMEDICINE = 'telemedicine'
    HOME_VISIT = 'home_visit'


class RecurrencePattern(str, enum.Enum):
    DAILY = 'daily'
    WEEKLY = 'weekly'
    MONTHLY = 'monthly'


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProviderAvailability(Base):
    """One bookable time window for one provider on one date."""
    __tablename__ = 'provider_availability'
    __table_args__ = (
        UniqueConstraint('provider_id', 'date', 'start_time', 'end_time', name='uq_provider_availability_window'),
        CheckConstraint('end_time > start_time', name='ck_provider_availability_time_order'),
        CheckConstraint('current_appointments >= 0', name='ck_provider_availability_non_negative'),
        CheckConstraint(
            'current_appointments <= max_appointments_per_slot',
            name='ck_provider_availability_capacity',
        ),
        Index('ix_provider_availability_provider_date', 'provider_id', 'date'),
        Index('ix_provider_availability_date_status', 'date', 'status'),
        Index('ix_provider_availability_utc_range', 'utc_start_time', 'utc_end_time'),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    provider_id = Column(String(36), ForeignKey('providers.id'), nullable=False, index=True)

    date = Column(Date, nullable=False)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    timezone = Column(String(64), nullable=False)
    utc_start_time = Column(DateTime(timezone=True), nullable=False)
    utc_end_time = Column(DateTime(timezone=True), nullable=False)

    is_recurring = Column(Boolean, default=False, nullable=False)
    recurrence_pattern = Column(String(10))
    recurrence_end_date = Column(Date)
    recurrence_group_id = Column(String(36), index=True)
    slot_duration = Column(Integer, default=30, nullable=False)
    break_duration = Column(Integer, default=0, nullable=False)

    status = Column(String(20), default=AvailabilityStatus.AVAILABLE.value, nullable=False)
    max_appointments_per_slot = Column(Integer, default=1, nullable=False)
    current_appointments = Column(Integer, default=0, nullable=False)
    appointment_type = Column(String(20), default=AppointmentType.CONSULTATION.value, nullable=False)

    location_type = Column(String(20), nullable=False)
    location_address = Column(String(500))
    location_room_number = Column(String(50))

    base_fee = Column(Float, nullable=False)
    insurance_accepted = Column(Boolean, default=False, nullable=False)
    currency = Column(String(3), default='USD', nullable=False)

    special_requirements = Column(JSON, default=list)
    notes = Column(String(500))

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    provider = relationship('Provider', back_populates='availability')

    @property
    def location(self) -> dict:
        location = {'type': self.location_type}
        if self.location_address is not None:
            location['address'] = self.location_address
        if self.location_room_number is not None:
            location['room_number'] = self.location_room_number
        return location

    @property
    def pricing(self) -> dict:
        return {
            'base_fee': self.base_fee,
            'insurance_accepted': bool(self.insurance_accepted),
            'currency': self.currency,
        }

    def is_available(self) -> bool:
        return (
            self.status == AvailabilityStatus.AVAILABLE.value
            and self.current_appointments < self.max_appointments_per_slot
        )

    def can_be_booked(self, today) -> bool:
        return self.is_available() and self.date >= today
