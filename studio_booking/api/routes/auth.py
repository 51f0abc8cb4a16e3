"""
Authentication endpoints: register, login, current user, profile update and
password reset.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from studio_booking.api.deps import get_current_user
from studio_booking.db.session import get_db
from studio_booking.models.user import User
from studio_booking.schemas.user import (
    UserCreate, UserResponse, UserLogin, Token,
    ProfileUpdate, ForgotPasswordRequest, ResetPasswordRequest, MessageResponse,
)
from studio_booking.services.auth_service import (
    register_user, authenticate_user, update_profile, request_password_reset, reset_password,
)
from studio_booking.services.interfaces.notifier import Notifier
from studio_booking.services.notifier_factory import get_notifier

router = APIRouter(prefix="/auth", tags=["Authentication"])

RESET_REQUESTED_MESSAGE = "If the email is registered, a reset link has been sent"


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(user_data: UserCreate, db: AsyncSession = Depends(get_db)):
    """Register a new user account."""
    user = await register_user(db, user_data)
    return user


@router.post("/login", response_model=Token)
async def login(login_data: UserLogin, db: AsyncSession = Depends(get_db)):
    """Authenticate and receive a JWT access token."""
    token = await authenticate_user(db, login_data)
    return Token(access_token=token)


@router.get("/me", response_model=UserResponse)
async def me(user: User = Depends(get_current_user)):
    return user


@router.put("/update", response_model=UserResponse)
async def update_me(
    profile: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Update the current user's profile. Changing the password requires the current one."""
    return await update_profile(db, user, profile)


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    request: ForgotPasswordRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Email a reset link. The response is the same whether or not the account exists."""
    await request_password_reset(db, request.email, notifier, schedule=background_tasks.add_task)
    return MessageResponse(message=RESET_REQUESTED_MESSAGE)


@router.post("/reset-password", response_model=Token)
async def reset(request: ResetPasswordRequest, db: AsyncSession = Depends(get_db)):
    """Set a new password from a reset token and receive a fresh access token."""
    token = await reset_password(db, request.token, request.password)
    return Token(access_token=token)
