from typing import List
from fastapi import APIRouter, Depends
from sqlmodel import Session, select
from database import get_session
from models import User, Hospital
from schemas import HospitalResponse
from dependencies import get_current_user

router = APIRouter(prefix="/api/v1/hospitals", tags=["Hospitals"])

@router.get("/cities", response_model=List[str])
def list_cities(
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    return session.exec(select(Hospital.city).distinct().order_by(Hospital.city)).all()

@router.get("/by-city/{city}", response_model=List[HospitalResponse])
def list_hospitals_by_city(
    city: str,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    return session.exec(
        select(Hospital).where(Hospital.city == city).order_by(Hospital.hospital_name)
    ).all()
