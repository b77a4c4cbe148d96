from fastapi import APIRouter, Depends
from sqlmodel import Session
from database import get_session
from models import User
from schemas import RowsResponse
from dependencies import get_current_user
from services import reporting

router = APIRouter(prefix="/api/v1/opd", tags=["OPD Reports"])

# All four reports are scoped to the caller resolved by get_current_user.
# None of them accept an agent id or name parameter.

@router.get("/getOPDBookings", response_model=RowsResponse)
def get_opd_bookings(
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    """OPD bookings created by the current agent, newest first"""
    rows = reporting.list_agent_bookings(session, current_user)
    return RowsResponse(message="Bookings fetched successfully", rows=rows)

@router.get("/getDoctorPortfolio", response_model=RowsResponse)
def get_doctor_portfolio(
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    """Doctors assigned to the current agent with meeting and referral counts"""
    rows = reporting.list_doctor_portfolio(session, current_user)
    return RowsResponse(message="Doctor Portfolio fetched successfully", rows=rows)

@router.get("/getMeetings", response_model=RowsResponse)
def get_meetings(
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    """Doctor meetings logged by the current agent"""
    rows = reporting.list_agent_meetings(session, current_user)
    return RowsResponse(message="Meetings fetched successfully", rows=rows)

@router.get("/getMatrix", response_model=RowsResponse)
def get_matrix(
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    """This month's meeting, lead and IPD counts for the current agent"""
    matrix = reporting.get_dashboard_matrix(session, current_user)
    return RowsResponse(message="Matrix data fetched successfully", rows=[matrix])
