from typing import Optional, List, Any, Dict, Annotated
from pydantic import AfterValidator, BaseModel, Field, field_validator
from models import UserRole
from datetime import datetime, date
import re

PHONE_PATTERN = re.compile(r"^\d{10}$")

def _check_phone(value: str) -> str:
    value = value.strip()
    if not PHONE_PATTERN.match(value):
        raise ValueError("Phone number must be exactly 10 digits")
    return value

PhoneNumber = Annotated[str, AfterValidator(_check_phone)]

# Auth schemas
class UserLogin(BaseModel):
    phone: str
    password: str

class TokenRefresh(BaseModel):
    refresh_token: str

class UserResponse(BaseModel):
    id: int
    first_name: str
    last_name: str
    phone: str
    role: UserRole
    is_active: bool

    class Config:
        from_attributes = True

class CurrentUserResponse(UserResponse):
    capabilities: Dict[str, bool]

class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserResponse

# User management schemas
class UserCreate(BaseModel):
    first_name: str = Field(min_length=1)
    last_name: str = ""
    phone: PhoneNumber
    password: str
    role: UserRole = UserRole.AGENT

class UserStatusUpdate(BaseModel):
    is_active: bool

# Doctor schemas
class DoctorCreate(BaseModel):
    first_name: str = Field(min_length=1)
    last_name: str = ""
    phone: PhoneNumber
    locality: Optional[str] = None
    gps_location_link: Optional[str] = None
    assigned_agent_id_primary: Optional[int] = None
    assigned_agent_id_secondary: Optional[int] = None

class DoctorResponse(BaseModel):
    id: int
    first_name: str
    last_name: str
    phone: str
    locality: Optional[str] = None
    gps_location_link: Optional[str] = None
    assigned_agent_id_primary: int
    assigned_agent_id_secondary: Optional[int] = None
    last_meeting: Optional[datetime] = None

    class Config:
        from_attributes = True

class DoctorLookupResponse(BaseModel):
    id: int
    name: str
    locality: Optional[str] = None

# Meeting schemas
class MeetingCreate(BaseModel):
    doctor_id: int
    meeting_time: Optional[datetime] = None
    duration: Optional[int] = Field(default=None, ge=0)
    meeting_notes: Optional[str] = None
    meeting_summary: Optional[str] = None
    clinic_image_url: Optional[str] = None
    selfie_image_url: Optional[str] = None
    gps_location_link: Optional[str] = None

    @field_validator("meeting_time")
    @classmethod
    def to_server_local(cls, value: Optional[datetime]) -> Optional[datetime]:
        # Browsers send toISOString() values ending in Z; store them as naive local time
        if value is not None and value.tzinfo is not None:
            return value.astimezone().replace(tzinfo=None)
        return value

class MeetingResponse(BaseModel):
    id: int
    doctor_id: int
    agent_id: int
    meeting_time: datetime
    duration: Optional[int] = None
    meeting_notes: Optional[str] = None
    meeting_summary: Optional[str] = None
    clinic_image_url: Optional[str] = None
    selfie_image_url: Optional[str] = None
    gps_location_link: Optional[str] = None

    class Config:
        from_attributes = True

# Hospital schemas
class HospitalResponse(BaseModel):
    id: int
    hospital_name: str
    city: str

    class Config:
        from_attributes = True

# Booking schemas
class BookingCreate(BaseModel):
    patient_name: str = Field(min_length=1)
    patient_phone: PhoneNumber
    age: Optional[int] = Field(default=None, ge=0, le=150)
    gender: Optional[str] = None
    medical_condition: str = Field(min_length=1)
    panel: Optional[str] = None
    city: Optional[str] = None
    hospital_ids: List[int] = Field(min_length=1)
    appointment_date: Optional[date] = None
    appointment_time: Optional[str] = None
    payment_mode: Optional[str] = None
    source: Optional[str] = None
    referee_id: Optional[int] = None
    referee_phone: Optional[PhoneNumber] = None
    patient_referral_name: Optional[str] = None
    patient_referral_phone: Optional[PhoneNumber] = None
    aadhar_card_url: Optional[str] = None
    pmjay_card_url: Optional[str] = None

    @field_validator("appointment_time")
    @classmethod
    def check_time(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not re.match(r"^([01]\d|2[0-3]):[0-5]\d$", value):
            raise ValueError("Time must be in HH:MM format")
        return value

class BookingResponse(BaseModel):
    id: int
    booking_reference: str
    created_by_agent_id: int
    referee_id: Optional[int] = None
    patient_name: str
    patient_phone: str
    age: Optional[int] = None
    gender: Optional[str] = None
    medical_condition: Optional[str] = None
    appointment_date: Optional[date] = None
    appointment_time: Optional[str] = None
    current_disposition: str
    hospital_ids: List[int] = []
    created_at: datetime
    updated_at: datetime

class DispositionUpdate(BaseModel):
    current_disposition: str = Field(min_length=1, max_length=40)

class PatientPhoneUpdate(BaseModel):
    patient_phone: PhoneNumber

# Envelope shared by the reporting endpoints
class RowsResponse(BaseModel):
    success: bool = True
    message: str
    rows: List[Dict[str, Any]]
