"""
Shared FastAPI dependencies: the authenticated actor and a request-scoped booking service.
"""

from fastapi import BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from studio_booking.core.security import get_current_user_id
from studio_booking.db.session import get_db
from studio_booking.infrastructure.sql_booking_store import SqlBookingStore
from studio_booking.infrastructure.sql_directory import SqlDirectory
from studio_booking.models.user import User
from studio_booking.services.booking_rules import Actor
from studio_booking.services.booking_service import BookingService
from studio_booking.services.interfaces.notifier import Notifier
from studio_booking.services.notifier_factory import get_notifier


async def get_current_user(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> User:
    user = await SqlDirectory(db).get_user(user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is deactivated")
    return user


async def get_current_actor(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Actor:
    """Resolve the bearer token into the actor passed to every engine call."""
    staff_studio_id = None
    if user.user_type == "staff":
        staff_studio_id = await SqlDirectory(db).get_staff_membership(user.id)
    return Actor(user_id=user.id, role=user.user_type, staff_studio_id=staff_studio_id)


def get_booking_service(
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> BookingService:
    return BookingService(
        store=SqlBookingStore(db),
        directory=SqlDirectory(db),
        notifier=notifier,
        schedule=background_tasks.add_task,
    )
