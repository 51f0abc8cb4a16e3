"""
Studio endpoints. The studio listing is cached in Redis.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from studio_booking.api.deps import get_current_actor
from studio_booking.core.logging import get_logger
from studio_booking.db.session import get_db
from studio_booking.schemas.studio import (
    StudioCreate, StudioResponse, StudioListResponse,
    RoomCreate, RoomResponse, EquipmentCreate, EquipmentResponse, StaffCreate, StaffResponse,
)
from studio_booking.services import studio_service
from studio_booking.services.booking_rules import Actor
from studio_booking.services.cache_service import (
    get_cached_studios, set_cached_studios, invalidate_studio_cache,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/studios", tags=["Studios"])


@router.post("/", response_model=StudioResponse, status_code=status.HTTP_201_CREATED)
async def create_studio_endpoint(
    studio_data: StudioCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Create a studio owned by the current user. Studio owners only."""
    studio = await studio_service.create_studio(db, studio_data, actor)
    await invalidate_studio_cache()
    return studio


@router.get("/", response_model=StudioListResponse)
async def list_studios_endpoint(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """
    List studios with pagination.
    Cached in Redis; invalidated when studios or rooms are added.
    """
    cached = await get_cached_studios(page, page_size)
    if cached:
        logger.info("studios_list_cache_hit", page=page)
        cached["cached"] = True
        return StudioListResponse(**cached)

    studios, total = await studio_service.list_studios(db, page, page_size)
    response_data = {
        "studios": [StudioResponse.model_validate(s).model_dump() for s in studios],
        "total": total,
        "page": page,
        "page_size": page_size,
        "cached": False,
    }
    await set_cached_studios(page, page_size, response_data)
    return StudioListResponse(**response_data)


@router.get("/{studio_id}", response_model=StudioResponse)
async def get_studio_endpoint(studio_id: int, db: AsyncSession = Depends(get_db)):
    return await studio_service.get_studio(db, studio_id)


@router.post("/{studio_id}/rooms", response_model=RoomResponse, status_code=status.HTTP_201_CREATED)
async def add_room_endpoint(
    studio_id: int,
    room_data: RoomCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    room = await studio_service.add_room(db, studio_id, room_data, actor)
    await invalidate_studio_cache()
    return room


@router.get("/{studio_id}/rooms", response_model=list[RoomResponse])
async def list_rooms_endpoint(
    studio_id: int,
    active_only: bool = Query(True),
    db: AsyncSession = Depends(get_db),
):
    return await studio_service.list_rooms(db, studio_id, active_only)


@router.post("/{studio_id}/equipment", response_model=EquipmentResponse, status_code=status.HTTP_201_CREATED)
async def add_equipment_endpoint(
    studio_id: int,
    equipment_data: EquipmentCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await studio_service.add_equipment(db, studio_id, equipment_data, actor)


@router.post("/{studio_id}/staff", response_model=StaffResponse, status_code=status.HTTP_201_CREATED)
async def add_staff_endpoint(
    studio_id: int,
    staff_data: StaffCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Attach a registered staff user to the studio."""
    return await studio_service.add_staff(db, studio_id, staff_data, actor)
