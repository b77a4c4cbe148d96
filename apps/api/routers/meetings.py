from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session
from database import get_session
from models import User, Doctor, DoctorMeeting
from schemas import MeetingCreate, MeetingResponse
from dependencies import get_current_user
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/meetings", tags=["Doctor Meetings"])

@router.post("/create-web", response_model=MeetingResponse, status_code=status.HTTP_201_CREATED)
def log_meeting(
    meeting_data: MeetingCreate,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    """Log a doctor visit for the current agent"""
    doctor = session.get(Doctor, meeting_data.doctor_id)
    if not doctor:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Doctor not found"
        )

    values = meeting_data.model_dump(exclude={"meeting_time"})
    meeting = DoctorMeeting(
        **values,
        agent_id=current_user.id,
        meeting_time=meeting_data.meeting_time or datetime.now(),
    )
    session.add(meeting)

    # Keep the denormalized last_meeting in step with the newest meeting
    if doctor.last_meeting is None or meeting.meeting_time > doctor.last_meeting:
        doctor.last_meeting = meeting.meeting_time
        session.add(doctor)

    session.commit()
    session.refresh(meeting)

    logger.info(f"Agent {current_user.id} logged meeting {meeting.id} with doctor {doctor.id}")
    return meeting
