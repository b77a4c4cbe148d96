from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select
from database import get_session
from models import User, Doctor
from schemas import DoctorCreate, DoctorResponse, DoctorLookupResponse
from dependencies import get_current_user
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/doctors", tags=["Doctors"])

def _get_active_agent(session: Session, user_id: int) -> User:
    agent = session.get(User, user_id)
    if not agent or not agent.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Agent {user_id} does not exist or is inactive"
        )
    return agent

@router.post("/create-web", response_model=DoctorResponse, status_code=status.HTTP_201_CREATED)
def create_doctor(
    doctor_data: DoctorCreate,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    """Register a doctor. The caller is the primary agent unless another one is named."""
    existing = session.exec(select(Doctor).where(Doctor.phone == doctor_data.phone)).first()
    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A doctor with this phone number already exists"
        )

    primary_id = doctor_data.assigned_agent_id_primary or current_user.id
    if primary_id != current_user.id:
        _get_active_agent(session, primary_id)
    if doctor_data.assigned_agent_id_secondary is not None:
        _get_active_agent(session, doctor_data.assigned_agent_id_secondary)

    doctor = Doctor(
        **doctor_data.model_dump(exclude={"assigned_agent_id_primary"}),
        assigned_agent_id_primary=primary_id,
    )
    session.add(doctor)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A doctor with this phone number already exists"
        )
    session.refresh(doctor)

    logger.info(f"User {current_user.id} registered doctor {doctor.id}")
    return doctor

@router.get("/get-by-phone/{phone}", response_model=DoctorLookupResponse)
def get_doctor_by_phone(
    phone: str,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    """Look up a referring doctor. 404 tells the client to fall back to manual entry."""
    doctor = session.exec(select(Doctor).where(Doctor.phone == phone.strip())).first()
    if not doctor:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Doctor not found"
        )
    return DoctorLookupResponse(id=doctor.id, name=doctor.full_name, locality=doctor.locality)
