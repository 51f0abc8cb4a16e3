"""
Authentication service: registration, password login, profile updates and
password reset.

Emails are compared case-insensitively; they are stored lower-cased.
"""

from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status

from studio_booking.models.user import User
from studio_booking.schemas.user import UserCreate, UserLogin, ProfileUpdate
from studio_booking.core.config import get_settings
from studio_booking.core.security import (
    hash_password, verify_password, create_access_token,
    create_password_reset_token, decode_password_reset_token, password_fingerprint,
)
from studio_booking.core.logging import get_logger
from studio_booking.core.metrics import record_notification
from studio_booking.services.interfaces.notifier import Notifier

logger = get_logger(__name__)

PASSWORD_RESET_EVENT = "password_reset"


def _issue_token(user: User) -> str:
    return create_access_token(data={"sub": str(user.id), "type": user.user_type})


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


async def register_user(db: AsyncSession, user_data: UserCreate) -> User:
    """
    Create an account of the requested type (musician, studio_owner or staff).
    Raises 409 if the email is already registered.
    """
    if await get_user_by_email(db, user_data.email):
        logger.warning("registration_failed", reason="email_exists", email=user_data.email)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")

    user = User(
        name=user_data.name,
        email=user_data.email.lower(),
        phone=user_data.phone,
        user_type=user_data.user_type,
        hashed_password=hash_password(user_data.password),
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)

    logger.info("user_registered", user_id=user.id, user_type=user.user_type)
    return user


async def authenticate_user(db: AsyncSession, login_data: UserLogin) -> str:
    """Check credentials and issue a bearer token. 401 on bad credentials, 403 if deactivated."""
    user = await get_user_by_email(db, login_data.email)

    if user is None or not verify_password(login_data.password, user.hashed_password):
        logger.warning("login_failed", email=login_data.email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        logger.warning("login_rejected", user_id=user.id, reason="inactive")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is deactivated")

    logger.info("user_logged_in", user_id=user.id, user_type=user.user_type)
    return _issue_token(user)


async def update_profile(db: AsyncSession, user: User, profile: ProfileUpdate) -> User:
    """
    Change name, email, phone and/or password of `user`.

    Raises:
        HTTPException 401: new_password given without the correct current_password
        HTTPException 409: the new email belongs to another account
    """
    if profile.new_password is not None:
        if not profile.current_password or not verify_password(profile.current_password, user.hashed_password):
            logger.warning("password_change_rejected", user_id=user.id)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED, detail="Current password is incorrect"
            )

    if profile.email is not None and profile.email.lower() != user.email:
        if await get_user_by_email(db, profile.email):
            logger.warning("profile_update_failed", user_id=user.id, reason="email_exists")
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")
        user.email = profile.email.lower()

    if profile.name is not None:
        user.name = profile.name
    if profile.phone is not None:
        user.phone = profile.phone
    if profile.new_password is not None:
        user.hashed_password = hash_password(profile.new_password)

    await db.flush()
    await db.refresh(user)

    logger.info("profile_updated", user_id=user.id, password_changed=profile.new_password is not None)
    return user


async def request_password_reset(
    db: AsyncSession,
    email: str,
    notifier: Notifier,
    schedule: Optional[Callable] = None,
) -> None:
    """
    Send a reset link to `email` if it belongs to an active account.
    Unknown or inactive emails are only logged.
    """
    user = await get_user_by_email(db, email)
    if user is None or not user.is_active:
        logger.info("password_reset_skipped", reason="unknown_or_inactive")
        return

    settings = get_settings()
    token = create_password_reset_token(user.id, user.hashed_password)
    payload = {
        "name": user.name,
        "reset_url": f"{settings.PASSWORD_RESET_URL}?token={token}",
        "expires_in_minutes": settings.PASSWORD_RESET_EXPIRE_MINUTES,
    }
    logger.info("password_reset_requested", user_id=user.id)

    if schedule is not None:
        schedule(_send_reset_link, notifier, user.email, payload)
    else:
        await _send_reset_link(notifier, user.email, payload)


async def _send_reset_link(notifier: Notifier, recipient: str, payload: dict) -> None:
    try:
        await notifier.notify(PASSWORD_RESET_EVENT, recipient, payload)
    except Exception as e:
        logger.warning("notification_failed", notify_event=PASSWORD_RESET_EVENT, recipient=recipient, error=str(e))
        record_notification(PASSWORD_RESET_EVENT, delivered=False)
        return
    record_notification(PASSWORD_RESET_EVENT, delivered=True)


async def reset_password(db: AsyncSession, token: str, new_password: str) -> str:
    """
    Set a new password from a reset token and log the user in.
    A token is spent once the password changes. 400 if invalid or expired.
    """
    decoded = decode_password_reset_token(token)
    user = None
    if decoded is not None:
        user_id, fingerprint = decoded
        user = await db.get(User, user_id)
        if user is not None and (
            not user.is_active or password_fingerprint(user.hashed_password) != fingerprint
        ):
            user = None

    if user is None:
        logger.warning("password_reset_rejected")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired token")

    user.hashed_password = hash_password(new_password)
    await db.flush()

    logger.info("password_reset_completed", user_id=user.id)
    return _issue_token(user)
