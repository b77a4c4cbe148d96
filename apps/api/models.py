from typing import Optional, List
from datetime import datetime, date
from sqlmodel import Field, SQLModel, Relationship
from sqlalchemy import Column, String
from enum import Enum

# Every datetime column holds naive server-local time (datetime.now), never UTC
# or offset-aware values. The month window and token expiry compare against it.

DISPOSITION_BOOKED = "Booked"
DISPOSITION_ADMITTED = "Admitted"

class UserRole(str, Enum):
    AGENT = "agent"
    OPERATIONS = "operations"
    SUPER_ADMIN = "super_admin"

class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    first_name: str
    last_name: str = Field(default="")
    phone: str = Field(unique=True, index=True)
    password_hash: str
    role: UserRole = Field(default=UserRole.AGENT)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.now)

    refresh_tokens: List["UserRefreshToken"] = Relationship(back_populates="user")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

class UserRefreshToken(SQLModel, table=True):
    __tablename__ = "user_refresh_tokens"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    token_hash: str = Field(unique=True, index=True)
    expires_at: datetime = Field(index=True)
    created_at: datetime = Field(default_factory=datetime.now)

    user: User = Relationship(back_populates="refresh_tokens")

class BookingHospital(SQLModel, table=True):
    __tablename__ = "booking_hospitals"

    booking_id: int = Field(foreign_key="opd_bookings.id", primary_key=True)
    hospital_id: int = Field(foreign_key="hospitals.id", primary_key=True)

class Hospital(SQLModel, table=True):
    __tablename__ = "hospitals"

    id: Optional[int] = Field(default=None, primary_key=True)
    hospital_name: str
    city: str = Field(index=True)

    bookings: List["OPDBooking"] = Relationship(back_populates="hospitals", link_model=BookingHospital)

class Doctor(SQLModel, table=True):
    __tablename__ = "doctors"

    id: Optional[int] = Field(default=None, primary_key=True)
    first_name: str
    last_name: str = Field(default="")
    phone: str = Field(unique=True, index=True)
    locality: Optional[str] = None
    gps_location_link: Optional[str] = None
    assigned_agent_id_primary: int = Field(foreign_key="user.id", index=True)
    assigned_agent_id_secondary: Optional[int] = Field(default=None, foreign_key="user.id")
    last_meeting: Optional[datetime] = None  # latest DoctorMeeting.meeting_time
    created_at: datetime = Field(default_factory=datetime.now)

    meetings: List["DoctorMeeting"] = Relationship(back_populates="doctor")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

class DoctorMeeting(SQLModel, table=True):
    __tablename__ = "doctor_meetings"

    id: Optional[int] = Field(default=None, primary_key=True)
    doctor_id: int = Field(foreign_key="doctors.id", index=True)
    agent_id: int = Field(foreign_key="user.id", index=True)
    meeting_time: datetime = Field(default_factory=datetime.now, index=True)
    duration: Optional[int] = None  # minutes
    meeting_notes: Optional[str] = None
    meeting_summary: Optional[str] = None
    clinic_image_url: Optional[str] = None
    selfie_image_url: Optional[str] = None
    gps_location_link: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)

    doctor: Doctor = Relationship(back_populates="meetings")

class OPDBooking(SQLModel, table=True):
    __tablename__ = "opd_bookings"

    id: Optional[int] = Field(default=None, primary_key=True)
    booking_reference: str = Field(sa_column=Column(String(16), unique=True, nullable=False, index=True))
    created_by_agent_id: int = Field(foreign_key="user.id", index=True)
    referee_id: Optional[int] = Field(default=None, foreign_key="doctors.id", index=True)

    # Patient
    patient_name: str
    patient_phone: str
    age: Optional[int] = Field(default=None, ge=0, le=150)
    gender: Optional[str] = None
    medical_condition: Optional[str] = None
    panel: Optional[str] = None
    city: Optional[str] = None

    # Appointment and workflow
    appointment_date: Optional[date] = None
    appointment_time: Optional[str] = None  # Format: "HH:MM"
    current_disposition: str = Field(default=DISPOSITION_BOOKED, sa_column=Column(String(40), nullable=False))

    # Payment / source metadata
    payment_mode: Optional[str] = None
    source: Optional[str] = None
    patient_referral_name: Optional[str] = None
    patient_referral_phone: Optional[str] = None

    # Document links (storage is external)
    aadhar_card_url: Optional[str] = None
    pmjay_card_url: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.now, index=True)
    updated_at: datetime = Field(default_factory=datetime.now)

    hospitals: List[Hospital] = Relationship(back_populates="bookings", link_model=BookingHospital)
