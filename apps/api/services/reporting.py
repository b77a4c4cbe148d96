"""
Agent reporting queries
Read-only aggregations behind the OPD dashboard tables.

Every query is scoped by the authenticated user's id. Display names are only
ever output, never used as a filter.
"""

from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import case
from sqlmodel import Session, select, func

from models import (
    User, Doctor, DoctorMeeting, OPDBooking, Hospital, BookingHospital,
    DISPOSITION_ADMITTED,
)


def month_window(now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """Half-open [start of this month, start of next month) in server local time."""
    now = now or datetime.now()
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        next_start = start.replace(year=start.year + 1, month=1)
    else:
        next_start = start.replace(month=start.month + 1)
    return start, next_start


def _display_name(first_name: Optional[str], last_name: Optional[str]) -> Optional[str]:
    if first_name is None:
        return None
    return f"{first_name} {last_name or ''}".strip()


def _hospital_names(session: Session, booking_ids: List[int]) -> Dict[int, str]:
    names: Dict[int, List[str]] = defaultdict(list)
    if not booking_ids:
        return {}

    rows = session.exec(
        select(BookingHospital.booking_id, Hospital.hospital_name)
        .join(Hospital, Hospital.id == BookingHospital.hospital_id)
        .where(BookingHospital.booking_id.in_(booking_ids))
        .order_by(BookingHospital.booking_id, Hospital.id)
    ).all()
    for booking_id, hospital_name in rows:
        names[booking_id].append(hospital_name)

    return {booking_id: ", ".join(hospitals) for booking_id, hospitals in names.items()}


def list_agent_bookings(session: Session, agent: User) -> List[Dict[str, Any]]:
    """Bookings created by the agent, newest first"""
    results = session.exec(
        select(OPDBooking, Doctor)
        .outerjoin(Doctor, OPDBooking.referee_id == Doctor.id)
        .where(OPDBooking.created_by_agent_id == agent.id)
        .order_by(OPDBooking.created_at.desc(), OPDBooking.id.desc())
    ).all()

    hospital_names = _hospital_names(session, [booking.id for booking, _ in results])

    rows = []
    for booking, doctor in results:
        rows.append({
            "booking_reference": booking.booking_reference,
            "agent_name": agent.full_name,
            "patient_name": booking.patient_name,
            "patient_phone": booking.patient_phone,
            "age": booking.age,
            "gender": booking.gender,
            "medical_condition": booking.medical_condition,
            "hospital_names": hospital_names.get(booking.id, ""),
            "doctor_name": doctor.full_name if doctor else None,
            "appointment_date": booking.appointment_date,
            "appointment_time": booking.appointment_time,
            "current_disposition": booking.current_disposition,
            "aadhar_card_url": booking.aadhar_card_url,
            "pmjay_card_url": booking.pmjay_card_url,
            "payment_mode": booking.payment_mode,
            "source": booking.source,
            "created_at": booking.created_at,
            "updated_at": booking.updated_at,
        })
    return rows


def list_doctor_portfolio(session: Session, agent: User) -> List[Dict[str, Any]]:
    """
    Doctors whose primary agent is the caller, with meeting and referral history.

    Meetings and bookings are aggregated in separate subqueries and outer-joined
    to the doctor, so a doctor without history still appears (with zeros) and
    the two counts do not multiply each other.
    """
    meeting_stats = (
        select(
            DoctorMeeting.doctor_id.label("doctor_id"),
            func.count(DoctorMeeting.id).label("meeting_count"),
            func.min(DoctorMeeting.meeting_time).label("first_meeting"),
            func.max(DoctorMeeting.meeting_time).label("latest_meeting"),
        )
        .group_by(DoctorMeeting.doctor_id)
        .subquery()
    )

    booking_stats = (
        select(
            OPDBooking.referee_id.label("doctor_id"),
            func.count(OPDBooking.id).label("lead_count"),
            func.sum(
                case((OPDBooking.current_disposition == DISPOSITION_ADMITTED, 1), else_=0)
            ).label("ipd_count"),
        )
        .where(OPDBooking.referee_id.is_not(None))
        .group_by(OPDBooking.referee_id)
        .subquery()
    )

    results = session.exec(
        select(
            Doctor,
            meeting_stats.c.first_meeting,
            meeting_stats.c.latest_meeting,
            func.coalesce(meeting_stats.c.meeting_count, 0),
            func.coalesce(booking_stats.c.lead_count, 0),
            func.coalesce(booking_stats.c.ipd_count, 0),
        )
        .outerjoin(meeting_stats, meeting_stats.c.doctor_id == Doctor.id)
        .outerjoin(booking_stats, booking_stats.c.doctor_id == Doctor.id)
        .where(Doctor.assigned_agent_id_primary == agent.id)
        .order_by(Doctor.first_name, Doctor.last_name, Doctor.id)
    ).all()

    rows = []
    for doctor, first_meeting, latest_meeting, meetings, leads, ipd in results:
        rows.append({
            "doctor_id": doctor.id,
            "agent_name": agent.full_name,
            "doctor_name": doctor.full_name,
            "gps_location_link": doctor.gps_location_link,
            "first_meeting": first_meeting,
            "last_meeting": latest_meeting or doctor.last_meeting,
            "number_of_meetings": int(meetings or 0),
            "assigned_agent_id_secondary": doctor.assigned_agent_id_secondary,
            "number_of_leads": int(leads or 0),
            "number_of_ipd": int(ipd or 0),
        })
    return rows


def list_agent_meetings(session: Session, agent: User) -> List[Dict[str, Any]]:
    """Meetings logged by the agent, newest first"""
    results = session.exec(
        select(DoctorMeeting, Doctor)
        .join(Doctor, DoctorMeeting.doctor_id == Doctor.id)
        .where(DoctorMeeting.agent_id == agent.id)
        .order_by(DoctorMeeting.meeting_time.desc(), DoctorMeeting.id.desc())
    ).all()

    return [
        {
            "agent_name": agent.full_name,
            "doctor_name": doctor.full_name,
            "meeting_date": meeting.meeting_time,
            "gps_location_link": meeting.gps_location_link,
            "clinic_image": meeting.clinic_image_url,
            "selfie_image": meeting.selfie_image_url,
            "duration": meeting.duration,
            "meeting_notes": meeting.meeting_notes,
            "meeting_summary": meeting.meeting_summary,
        }
        for meeting, doctor in results
    ]


def get_dashboard_matrix(session: Session, agent: User, now: Optional[datetime] = None) -> Dict[str, int]:
    """Meetings, leads and admissions created by the agent in the current month"""
    start, next_start = month_window(now)

    meetings_this_month = session.exec(
        select(func.count(DoctorMeeting.id))
        .where(
            DoctorMeeting.agent_id == agent.id,
            DoctorMeeting.meeting_time >= start,
            DoctorMeeting.meeting_time < next_start,
        )
    ).one()

    leads_this_month = session.exec(
        select(func.count(OPDBooking.id))
        .where(
            OPDBooking.created_by_agent_id == agent.id,
            OPDBooking.created_at >= start,
            OPDBooking.created_at < next_start,
        )
    ).one()

    ipd_this_month = session.exec(
        select(func.count(OPDBooking.id))
        .where(
            OPDBooking.created_by_agent_id == agent.id,
            OPDBooking.current_disposition == DISPOSITION_ADMITTED,
            OPDBooking.created_at >= start,
            OPDBooking.created_at < next_start,
        )
    ).one()

    return {
        "meetings_this_month": int(meetings_this_month or 0),
        "leads_this_month": int(leads_this_month or 0),
        "ipd_this_month": int(ipd_this_month or 0),
    }
