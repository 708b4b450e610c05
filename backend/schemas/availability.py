from datetime import date as date_type
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, ValidationInfo, field_validator

from backend.core import config
from backend.core.timezones import TIME_PATTERN, is_valid_timezone
from backend.models.availability import AppointmentType, AvailabilityStatus, LocationType, RecurrencePattern

SpecialRequirement = Annotated[str, StringConstraints(strip_whitespace=True, max_length=config.MAX_SPECIAL_REQUIREMENT_LENGTH)]


def _check_time_format(value: str | None, label: str) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    if not TIME_PATTERN.match(normalized):
        raise ValueError(f'{label} must be in HH:mm format')
    return normalized


def _check_not_past(value: date_type | None, info: ValidationInfo, label: str) -> date_type | None:
    today = (info.context or {}).get('today')
    if value is not None and today is not None and value < today:
        raise ValueError(f'{label} cannot be in the past')
    return value


class LocationSchema(BaseModel):
    type: LocationType
    address: str | None = Field(default=None, max_length=config.MAX_ADDRESS_LENGTH)
    room_number: str | None = Field(default=None, max_length=config.MAX_ROOM_NUMBER_LENGTH)


class PricingSchema(BaseModel):
    base_fee: float = Field(ge=0)
    insurance_accepted: bool = False
    currency: str = config.DEFAULT_CURRENCY

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, value: str) -> str:
        normalized = value.strip().upper()
        if len(normalized) != 3 or not normalized.isalpha():
            raise ValueError('Currency must be a 3-letter code')
        return normalized


class AvailabilityCreateRequest(BaseModel):
    """Body of a create request. The owning provider comes from the token."""

    model_config = ConfigDict(extra='ignore')

    date: date_type
    start_time: str
    end_time: str
    timezone: str
    is_recurring: bool = False
    recurrence_pattern: RecurrencePattern | None = Field(default=None, validate_default=True)
    recurrence_end_date: date_type | None = Field(default=None, validate_default=True)
    slot_duration: int = Field(
        default=config.DEFAULT_SLOT_DURATION_MINUTES,
        ge=config.MIN_SLOT_DURATION_MINUTES,
        le=config.MAX_SLOT_DURATION_MINUTES,
    )
    break_duration: int = Field(default=0, ge=0, le=config.MAX_BREAK_DURATION_MINUTES)
    status: AvailabilityStatus = AvailabilityStatus.AVAILABLE
    max_appointments_per_slot: int = Field(
        default=1,
        ge=config.MIN_APPOINTMENTS_PER_SLOT,
        le=config.MAX_APPOINTMENTS_PER_SLOT,
    )
    appointment_type: AppointmentType = AppointmentType.CONSULTATION
    location: LocationSchema
    pricing: PricingSchema
    special_requirements: list[SpecialRequirement] = Field(default_factory=list)
    notes: str | None = Field(default=None, max_length=config.MAX_NOTES_LENGTH)

    @field_validator('date')
    @classmethod
    def validate_date(cls, value: date_type, info: ValidationInfo) -> date_type:
        return _check_not_past(value, info, 'Date')

    @field_validator('start_time')
    @classmethod
    def validate_start_time(cls, value: str) -> str:
        return _check_time_format(value, 'Start time')

    @field_validator('end_time')
    @classmethod
    def validate_end_time(cls, value: str, info: ValidationInfo) -> str:
        normalized = _check_time_format(value, 'End time')
        start_time = info.data.get('start_time')
        if start_time is not None and normalized <= start_time:
            raise ValueError('End time must be after start time')
        return normalized

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        normalized = value.strip()
        if not is_valid_timezone(normalized):
            raise ValueError('Invalid or unsupported timezone')
        return normalized

    @field_validator('recurrence_pattern')
    @classmethod
    def validate_recurrence_pattern(cls, value: RecurrencePattern | None, info: ValidationInfo):
        if info.data.get('is_recurring') and value is None:
            raise ValueError('Recurrence pattern is required for recurring availability')
        return value

    @field_validator('recurrence_end_date')
    @classmethod
    def validate_recurrence_end_date(cls, value: date_type | None, info: ValidationInfo) -> date_type | None:
        if info.data.get('is_recurring') and value is None:
            raise ValueError('Recurrence end date is required for recurring availability')
        _check_not_past(value, info, 'Recurrence end date')
        start = info.data.get('date')
        if value is not None and start is not None and value < start:
            raise ValueError('Recurrence end date must be on or after the start date')
        return value

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: AvailabilityStatus) -> AvailabilityStatus:
        if value is AvailabilityStatus.BOOKED:
            raise ValueError('Status "booked" is derived from appointments and cannot be set directly')
        return value


class AvailabilityUpdateRequest(BaseModel):
    """Partial update. Only submitted fields are applied."""

    model_config = ConfigDict(extra='forbid')

    date: date_type | None = None
    start_time: str | None = None
    end_time: str | None = None
    timezone: str | None = None
    slot_duration: int | None = Field(
        default=None,
        ge=config.MIN_SLOT_DURATION_MINUTES,
        le=config.MAX_SLOT_DURATION_MINUTES,
    )
    break_duration: int | None = Field(default=None, ge=0, le=config.MAX_BREAK_DURATION_MINUTES)
    status: AvailabilityStatus | None = None
    max_appointments_per_slot: int | None = Field(
        default=None,
        ge=config.MIN_APPOINTMENTS_PER_SLOT,
        le=config.MAX_APPOINTMENTS_PER_SLOT,
    )
    appointment_type: AppointmentType | None = None
    location: LocationSchema | None = None
    pricing: PricingSchema | None = None
    special_requirements: list[SpecialRequirement] | None = None
    notes: str | None = Field(default=None, max_length=config.MAX_NOTES_LENGTH)

    @field_validator('start_time')
    @classmethod
    def validate_start_time(cls, value: str | None) -> str | None:
        return _check_time_format(value, 'Start time')

    @field_validator('end_time')
    @classmethod
    def validate_end_time(cls, value: str | None, info: ValidationInfo) -> str | None:
        normalized = _check_time_format(value, 'End time')
        start_time = info.data.get('start_time')
        if normalized is not None and start_time is not None and normalized <= start_time:
            raise ValueError('End time must be after start time')
        return normalized

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        if not is_valid_timezone(normalized):
            raise ValueError('Invalid or unsupported timezone')
        return normalized

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: AvailabilityStatus | None) -> AvailabilityStatus | None:
        if value is AvailabilityStatus.BOOKED:
            raise ValueError('Status "booked" is derived from appointments and cannot be set directly')
        return value

    @field_validator('date')
    @classmethod
    def validate_date(cls, value, info: ValidationInfo):
        return _check_not_past(value, info, 'Date')
