"""
Password hashing, JWT bearer tokens and password reset tokens.
"""

import hashlib
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from studio_booking.core.config import get_settings

settings = get_settings()

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")

PASSWORD_RESET_PURPOSE = "password_reset"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Sign a JWT carrying `data` plus an `exp` claim."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode["exp"] = expire
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def _decode(token: str) -> Optional[dict]:
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None


def _subject(payload: dict) -> Optional[int]:
    subject = payload.get("sub")
    if subject is None or not str(subject).isdigit():
        return None
    return int(subject)


def decode_access_token(token: str) -> Optional[int]:
    """Return the user id in the token's `sub` claim, or None if invalid."""
    payload = _decode(token)
    # Purpose-bound tokens (password reset) never authenticate requests
    if payload is None or payload.get("purpose") is not None:
        return None
    return _subject(payload)


def password_fingerprint(hashed_password: str) -> str:
    """Short digest of the stored hash. It changes whenever the password does."""
    return hashlib.sha256(hashed_password.encode()).hexdigest()[:16]


def create_password_reset_token(user_id: int, hashed_password: str) -> str:
    """
    Sign a short-lived reset token. It carries a fingerprint of the current
    password hash, so it stops working once the password has been changed.
    """
    return create_access_token(
        data={
            "sub": str(user_id),
            "purpose": PASSWORD_RESET_PURPOSE,
            "pwd": password_fingerprint(hashed_password),
        },
        expires_delta=timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES),
    )


def decode_password_reset_token(token: str) -> Optional[tuple[int, str]]:
    """Return (user_id, password fingerprint), or None if the token is not a valid reset token."""
    payload = _decode(token)
    if payload is None or payload.get("purpose") != PASSWORD_RESET_PURPOSE:
        return None
    user_id = _subject(payload)
    fingerprint = payload.get("pwd")
    if user_id is None or not fingerprint:
        return None
    return user_id, fingerprint


async def get_current_user_id(token: str = Depends(oauth2_scheme)) -> int:
    user_id = decode_access_token(token)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id
