"""
Password hashing and JWT issuing for CRM staff logins.

Access tokens authenticate API calls. Refresh tokens are only accepted when
their sha256 hash is present in user_refresh_tokens.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
import bcrypt
import hashlib
import os
import uuid

SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    raise ValueError(
        "SECRET_KEY environment variable must be set. "
        "Generate a secure key with: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
    )
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))
REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        # Stored hash is not a bcrypt hash
        return False


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def _issue(claims: dict, token_type: str, lifetime: timedelta) -> str:
    payload = dict(claims)
    payload["exp"] = datetime.now(timezone.utc) + lifetime
    payload["type"] = token_type
    payload["jti"] = uuid.uuid4().hex
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    lifetime = expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    return _issue(data, ACCESS_TOKEN_TYPE, lifetime)


def create_refresh_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Callers persist hash_token(token) as a UserRefreshToken row."""
    lifetime = expires_delta or timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS)
    return _issue(data, REFRESH_TOKEN_TYPE, lifetime)


def decode_token(token: str) -> Optional[dict]:
    """Claims of a token with a valid signature and expiry, else None."""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def refresh_token_expiry(payload: dict) -> datetime:
    # Naive server-local, like every other stored timestamp
    return datetime.fromtimestamp(payload["exp"])
