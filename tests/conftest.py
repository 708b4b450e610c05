import os
from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')
os.environ.setdefault('JWT_SECRET_KEY', 'test-secret-key-with-at-least-32-bytes')

from backend.database import Base  # noqa: E402
from backend.models.availability import ProviderAvailability  # noqa: E402,F401
from backend.models.provider import Provider  # noqa: E402
from backend.services.availability_service import AvailabilityService  # noqa: E402

TODAY = date(2024, 12, 1)


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def db_engine():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db_session(db_engine):
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def make_provider(db_session):
    def _make_provider(**overrides) -> Provider:
        count = db_session.query(Provider).count()
        values = {
            'first_name': 'Jane',
            'last_name': 'Doe',
            'email': f'provider{count}@clinic.example',
            'specialization': 'Cardiology',
            'years_of_experience': 10,
            'rating': 4.5,
            'clinic_street': '123 Main St',
            'clinic_city': 'Springfield',
            'clinic_state': 'Illinois',
            'clinic_zip': '62701',
        }
        values.update(overrides)
        provider = Provider(**values)
        db_session.add(provider)
        db_session.commit()
        db_session.refresh(provider)
        return provider

    return _make_provider


@pytest.fixture
def provider(make_provider) -> Provider:
    return make_provider()


@pytest.fixture
def service(db_session) -> AvailabilityService:
    return AvailabilityService(db_session, clock=lambda: TODAY)


@pytest.fixture
def build_payload():
    def _build_payload(**overrides) -> dict:
        payload = {
            'date': '2024-12-15',
            'start_time': '09:00',
            'end_time': '17:00',
            'timezone': 'America/New_York',
            'slot_duration': 30,
            'break_duration': 15,
            'max_appointments_per_slot': 1,
            'appointment_type': 'consultation',
            'location': {'type': 'clinic', 'address': '123 Medical Center Dr, New York, NY', 'room_number': 'Room 205'},
            'pricing': {'base_fee': 150.0, 'insurance_accepted': True, 'currency': 'USD'},
            'special_requirements': ['fasting_required', 'bring_insurance_card'],
            'notes': 'Standard consultation slots',
        }
        payload.update(overrides)
        return payload

    return _build_payload
