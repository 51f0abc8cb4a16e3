"""
Studio service: studios and the rooms, equipment and staff they offer.

Only the studio's owner may add resources to it. Staff memberships link a
`staff` user to exactly one studio; that link is what scopes a staff
member's access to bookings.
"""

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from studio_booking.core.exceptions import Forbidden, NotFound, ValidationError
from studio_booking.core.logging import get_logger
from studio_booking.models import Equipment, Room, Staff, Studio, User
from studio_booking.schemas.studio import EquipmentCreate, RoomCreate, StaffCreate, StudioCreate
from studio_booking.services.booking_rules import Actor

logger = get_logger(__name__)


async def create_studio(db: AsyncSession, studio_data: StudioCreate, actor: Actor) -> Studio:
    if actor.role != "studio_owner":
        raise Forbidden("Only studio owners can create studios")

    studio = Studio(owner_id=actor.user_id, **studio_data.model_dump())
    db.add(studio)
    await db.flush()
    await db.refresh(studio)

    logger.info("studio_created", studio_id=studio.id, owner_id=actor.user_id)
    return studio


async def get_studio(db: AsyncSession, studio_id: int) -> Studio:
    result = await db.execute(select(Studio).where(Studio.id == studio_id))
    studio = result.scalar_one_or_none()
    if not studio:
        raise NotFound(f"Studio {studio_id} not found")
    return studio


async def list_studios(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[Studio], int]:
    """List studios alphabetically with pagination."""
    total = (await db.execute(select(func.count()).select_from(Studio))).scalar()

    result = await db.execute(
        select(Studio)
        .order_by(Studio.name.asc(), Studio.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total


async def _owned_studio(db: AsyncSession, studio_id: int, actor: Actor) -> Studio:
    studio = await get_studio(db, studio_id)
    if studio.owner_id != actor.user_id:
        raise Forbidden("Not authorized to manage this studio")
    return studio


async def add_room(db: AsyncSession, studio_id: int, room_data: RoomCreate, actor: Actor) -> Room:
    await _owned_studio(db, studio_id, actor)

    room = Room(studio_id=studio_id, **room_data.model_dump())
    db.add(room)
    await db.flush()
    await db.refresh(room)

    logger.info("room_created", room_id=room.id, studio_id=studio_id, hourly_rate=str(room.hourly_rate))
    return room


async def list_rooms(db: AsyncSession, studio_id: int, active_only: bool = True) -> list[Room]:
    await get_studio(db, studio_id)

    query = select(Room).where(Room.studio_id == studio_id)
    if active_only:
        query = query.where(Room.is_active.is_(True))
    result = await db.execute(query.order_by(Room.name.asc()))
    return list(result.scalars().all())


async def add_equipment(
    db: AsyncSession, studio_id: int, equipment_data: EquipmentCreate, actor: Actor
) -> Equipment:
    await _owned_studio(db, studio_id, actor)

    equipment = Equipment(studio_id=studio_id, **equipment_data.model_dump())
    db.add(equipment)
    await db.flush()
    await db.refresh(equipment)

    logger.info("equipment_created", equipment_id=equipment.id, studio_id=studio_id)
    return equipment


async def add_staff(db: AsyncSession, studio_id: int, staff_data: StaffCreate, actor: Actor) -> Staff:
    """Attach a `staff` user to the studio. A user can work at one studio only."""
    await _owned_studio(db, studio_id, actor)

    user = (await db.execute(select(User).where(User.id == staff_data.user_id))).scalar_one_or_none()
    if user is None:
        raise NotFound(f"User {staff_data.user_id} not found")
    if user.user_type != "staff":
        raise ValidationError("Only users registered as staff can join a studio")

    existing = await db.execute(select(Staff.id).where(Staff.user_id == user.id))
    if existing.scalar_one_or_none() is not None:
        raise ValidationError("User is already a staff member of a studio")

    staff = Staff(studio_id=studio_id, user=user, **staff_data.model_dump())
    db.add(staff)
    await db.flush()
    await db.refresh(staff)

    logger.info("staff_added", staff_id=staff.id, user_id=user.id, studio_id=studio_id)
    return staff
