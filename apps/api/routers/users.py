from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select
from database import get_session
from models import User
from schemas import UserCreate, UserResponse, UserStatusUpdate
from auth import get_password_hash
from dependencies import require_super_admin
from validators.password_validator import validate_password
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/users", tags=["Users"])

@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    user_data: UserCreate,
    current_user: User = Depends(require_super_admin),
    session: Session = Depends(get_session)
):
    """Create an agent, operations or super admin account"""
    existing = session.exec(select(User).where(User.phone == user_data.phone)).first()
    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Phone number already registered"
        )

    try:
        validate_password(user_data.password, user_data.phone)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

    new_user = User(
        first_name=user_data.first_name,
        last_name=user_data.last_name,
        phone=user_data.phone,
        password_hash=get_password_hash(user_data.password),
        role=user_data.role,
    )
    session.add(new_user)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Phone number already registered"
        )
    session.refresh(new_user)

    logger.info(f"Super admin {current_user.id} created user {new_user.id} ({new_user.role.value})")
    return new_user

@router.patch("/{user_id}/status", response_model=UserResponse)
def set_user_status(
    user_id: int,
    status_data: UserStatusUpdate,
    current_user: User = Depends(require_super_admin),
    session: Session = Depends(get_session)
):
    """Activate or deactivate an account. Deactivated users are refused with 403."""
    user = session.get(User, user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )

    if user.id == current_user.id and not status_data.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot deactivate your own account"
        )

    user.is_active = status_data.is_active
    session.add(user)
    session.commit()
    session.refresh(user)

    logger.info(f"Super admin {current_user.id} set user {user.id} active={user.is_active}")
    return user
