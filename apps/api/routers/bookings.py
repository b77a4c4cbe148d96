from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select
from database import get_session
from models import User, Doctor, Hospital, OPDBooking, BookingHospital
from schemas import BookingCreate, BookingResponse, DispositionUpdate, PatientPhoneUpdate
from dependencies import get_current_user, require_roles, DISPOSITION_ROLES
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/patientLeads", tags=["OPD Bookings"])


def _booking_response(session: Session, booking: OPDBooking) -> BookingResponse:
    hospital_ids = session.exec(
        select(BookingHospital.hospital_id)
        .where(BookingHospital.booking_id == booking.id)
        .order_by(BookingHospital.hospital_id)
    ).all()
    return BookingResponse(
        **booking.model_dump(exclude={"hospitals"}),
        hospital_ids=list(hospital_ids),
    )


def _get_booking_or_404(session: Session, booking_reference: str) -> OPDBooking:
    booking = session.exec(
        select(OPDBooking).where(OPDBooking.booking_reference == booking_reference)
    ).first()
    if not booking:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Booking not found"
        )
    return booking


def _resolve_referee(session: Session, booking_data: BookingCreate):
    if booking_data.referee_id is not None:
        doctor = session.get(Doctor, booking_data.referee_id)
        if not doctor:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Referring doctor not found"
            )
        return doctor.id

    if booking_data.referee_phone:
        doctor = session.exec(select(Doctor).where(Doctor.phone == booking_data.referee_phone)).first()
        if not doctor:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Doctor not found"
            )
        return doctor.id

    return None


@router.post("/create-web", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    request: Request,
    booking_data: BookingCreate,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    """Book an OPD appointment on behalf of a patient"""
    hospital_ids = sorted(set(booking_data.hospital_ids))
    hospitals = session.exec(select(Hospital).where(Hospital.id.in_(hospital_ids))).all()
    if len(hospitals) != len(hospital_ids):
        missing = sorted(set(hospital_ids) - {h.id for h in hospitals})
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown hospital ids: {', '.join(str(h) for h in missing)}"
        )

    referee_id = _resolve_referee(session, booking_data)

    generator = request.app.state.reference_generator
    booking = OPDBooking(
        booking_reference=generator.generate_unique(session),
        created_by_agent_id=current_user.id,
        referee_id=referee_id,
        **booking_data.model_dump(exclude={"hospital_ids", "referee_id", "referee_phone"}),
    )
    booking.hospitals = list(hospitals)

    session.add(booking)
    try:
        session.commit()
    except IntegrityError:
        # Unique constraint on booking_reference caught a concurrent duplicate
        session.rollback()
        logger.warning(f"Booking reference {booking.booking_reference} rejected by unique constraint")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Booking reference conflict, please retry"
        )
    session.refresh(booking)

    logger.info(f"Agent {current_user.id} created booking {booking.booking_reference}")
    return _booking_response(session, booking)


@router.patch("/{booking_reference}/disposition", response_model=BookingResponse)
def update_disposition(
    booking_reference: str,
    update: DispositionUpdate,
    current_user: User = Depends(require_roles(DISPOSITION_ROLES)),
    session: Session = Depends(get_session)
):
    """Move a booking to a new workflow status (operations staff only)"""
    booking = _get_booking_or_404(session, booking_reference)

    previous = booking.current_disposition
    booking.current_disposition = update.current_disposition.strip()
    booking.updated_at = datetime.now()
    session.add(booking)
    session.commit()
    session.refresh(booking)

    logger.info(
        f"User {current_user.id} changed disposition of {booking_reference}: "
        f"{previous} -> {booking.current_disposition}"
    )
    return _booking_response(session, booking)


@router.patch("/{booking_reference}/phone", response_model=BookingResponse)
def update_patient_phone(
    booking_reference: str,
    update: PatientPhoneUpdate,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    """Correct the patient's phone number on a booking"""
    booking = _get_booking_or_404(session, booking_reference)

    booking.patient_phone = update.patient_phone
    booking.updated_at = datetime.now()
    session.add(booking)
    session.commit()
    session.refresh(booking)

    logger.info(f"User {current_user.id} updated patient phone on {booking_reference}")
    return _booking_response(session, booking)
