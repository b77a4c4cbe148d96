from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlmodel import Session, select
from database import get_session
from models import User, UserRefreshToken
from schemas import UserLogin, UserResponse, CurrentUserResponse, TokenResponse, TokenRefresh
from auth import verify_password, create_access_token, create_refresh_token, decode_token, hash_token, refresh_token_expiry
from dependencies import get_current_user, limiter, role_capabilities
import logging
import os

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])

LOGIN_RATE_LIMIT = os.getenv("LOGIN_RATE_LIMIT", "5/minute")


def issue_tokens(session: Session, user: User) -> TokenResponse:
    """Create an access/refresh pair and persist the refresh token's hash"""
    access_token = create_access_token(data={"sub": str(user.id), "role": user.role.value})
    refresh_token = create_refresh_token(data={"sub": str(user.id)})

    payload = decode_token(refresh_token)
    session.add(UserRefreshToken(
        user_id=user.id,
        token_hash=hash_token(refresh_token),
        expires_at=refresh_token_expiry(payload),
    ))
    session.commit()

    return TokenResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        user=UserResponse.model_validate(user)
    )


@router.post("/login", response_model=TokenResponse)
@limiter.limit(LOGIN_RATE_LIMIT)
def login(request: Request, credentials: UserLogin, session: Session = Depends(get_session)):
    """Login with phone number and password"""
    user = session.exec(select(User).where(User.phone == credentials.phone.strip())).first()
    if not user or not verify_password(credentials.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect phone number or password"
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied. Your account has been deactivated. Please contact your administrator."
        )

    logger.info(f"User {user.id} logged in")
    return issue_tokens(session, user)


@router.post("/refresh", response_model=TokenResponse)
@limiter.limit("10/minute")
def refresh_token(request: Request, token_data: TokenRefresh, session: Session = Depends(get_session)):
    """Exchange a stored refresh token for a new token pair (the old one is revoked)"""
    payload = decode_token(token_data.refresh_token)
    if not payload or payload.get("type") != "refresh":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid refresh token"
        )

    stored = session.exec(
        select(UserRefreshToken).where(UserRefreshToken.token_hash == hash_token(token_data.refresh_token))
    ).first()
    if not stored or str(stored.user_id) != str(payload.get("sub")):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Refresh token has been revoked"
        )

    user = session.get(User, stored.user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid refresh token"
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied. Your account has been deactivated. Please contact your administrator."
        )

    session.delete(stored)
    return issue_tokens(session, user)


@router.post("/logout")
def logout(token_data: TokenRefresh, session: Session = Depends(get_session)):
    """
    Revoke a refresh token.

    Access tokens stay valid until they expire; the client should drop them.
    """
    stored = session.exec(
        select(UserRefreshToken).where(UserRefreshToken.token_hash == hash_token(token_data.refresh_token))
    ).first()
    if stored:
        user_id = stored.user_id
        session.delete(stored)
        session.commit()
        logger.info(f"User {user_id} logged out")

    return {"message": "Logged out successfully"}


@router.get("/me", response_model=CurrentUserResponse)
def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Current user with role capability hints for the UI"""
    return CurrentUserResponse(
        **UserResponse.model_validate(current_user).model_dump(),
        capabilities=role_capabilities(current_user.role),
    )
