"""Shared pytest fixtures: in-memory database, app client and data builders"""
import os
import sys

# Must be set before auth/main are imported
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["TOKEN_CLEANUP_ENABLED"] = "false"
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from datetime import datetime
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from auth import create_access_token, get_password_hash
from main import create_app
from models import User, UserRole, Doctor, DoctorMeeting, Hospital, OPDBooking

PASSWORD = "Secret123!"
PASSWORD_HASH = get_password_hash(PASSWORD)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def client(engine):
    app = create_app(engine=engine, cleanup_enabled=False)
    with TestClient(app) as client:
        yield client


def auth_headers(user: User) -> dict:
    token = create_access_token(data={"sub": str(user.id), "role": user.role.value})
    return {"Authorization": f"Bearer {token}"}


class Factory:
    """Builds committed rows; every builder returns the refreshed instance"""

    def __init__(self, session: Session):
        self.session = session
        self._phone_counter = 9000000000

    def _phone(self) -> str:
        self._phone_counter += 1
        return str(self._phone_counter)

    def _save(self, obj):
        self.session.add(obj)
        self.session.commit()
        self.session.refresh(obj)
        return obj

    def user(self, first_name="Ravi", last_name="Kumar", role=UserRole.AGENT,
             is_active=True, phone: Optional[str] = None) -> User:
        return self._save(User(
            first_name=first_name,
            last_name=last_name,
            phone=phone or self._phone(),
            password_hash=PASSWORD_HASH,
            role=role,
            is_active=is_active,
        ))

    def hospital(self, name="Apollo", city="Pune") -> Hospital:
        return self._save(Hospital(hospital_name=name, city=city))

    def doctor(self, agent: User, first_name="Anita", last_name="Shah",
               secondary: Optional[User] = None, phone: Optional[str] = None,
               last_meeting: Optional[datetime] = None) -> Doctor:
        return self._save(Doctor(
            first_name=first_name,
            last_name=last_name,
            phone=phone or self._phone(),
            locality="Kothrud",
            gps_location_link="https://maps.example/doc",
            assigned_agent_id_primary=agent.id,
            assigned_agent_id_secondary=secondary.id if secondary else None,
            last_meeting=last_meeting,
        ))

    def meeting(self, doctor: Doctor, agent: User, meeting_time: Optional[datetime] = None,
                **fields) -> DoctorMeeting:
        return self._save(DoctorMeeting(
            doctor_id=doctor.id,
            agent_id=agent.id,
            meeting_time=meeting_time or datetime.now(),
            **fields,
        ))

    def booking(self, agent: User, reference: str, doctor: Optional[Doctor] = None,
                hospitals: Optional[List[Hospital]] = None, disposition: str = "Booked",
                created_at: Optional[datetime] = None, **fields) -> OPDBooking:
        created_at = created_at or datetime.now()
        booking = OPDBooking(
            booking_reference=reference,
            created_by_agent_id=agent.id,
            referee_id=doctor.id if doctor else None,
            patient_name=fields.pop("patient_name", "Sunil Patil"),
            patient_phone=fields.pop("patient_phone", "9123456780"),
            current_disposition=disposition,
            created_at=created_at,
            updated_at=created_at,
            **fields,
        )
        booking.hospitals = list(hospitals or [])
        return self._save(booking)


@pytest.fixture
def factory(session):
    return Factory(session)
