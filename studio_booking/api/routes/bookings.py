"""
Booking endpoints. All rules live in BookingService; errors it raises are
mapped to status codes by the handlers registered in main.py.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, status

from studio_booking.api.deps import get_booking_service, get_current_actor
from studio_booking.schemas.booking import (
    BookingCancel, BookingCreate, BookingDeleteResponse, BookingResponse, BookingStatus, BookingUpdate,
)
from studio_booking.services.booking_rules import Actor
from studio_booking.services.booking_service import BookingService

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.get("/", response_model=list[BookingResponse])
async def list_bookings_endpoint(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    room_id: Optional[int] = Query(None),
    starts_after: Optional[datetime] = Query(None),
    ends_before: Optional[datetime] = Query(None),
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    """
    Bookings visible to the current user: musicians see their own, studio
    owners see bookings on their studios, staff see their studio's.
    """
    return await service.list_bookings(
        actor,
        status=status_filter,
        room_id=room_id,
        starts_after=starts_after,
        ends_before=ends_before,
    )


@router.get("/user", response_model=list[BookingResponse])
async def list_my_bookings_endpoint(
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    """Bookings the current user made as a client."""
    return await service.list_bookings(actor, mine=True)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking_endpoint(
    booking_id: int,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    return await service.get_booking(actor, booking_id)


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking_endpoint(
    booking_data: BookingCreate,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    """
    Request a room, optionally with equipment and staff.

    The room, each equipment item and each staff member are checked for
    overlapping non-cancelled bookings; the first conflict returns 409.
    The booking starts as pending and the studio owner is notified.
    """
    return await service.create_booking(
        actor,
        room_id=booking_data.room_id,
        start_time=booking_data.start_time,
        end_time=booking_data.end_time,
        equipment_ids=booking_data.equipment_ids,
        staff_ids=booking_data.staff_ids,
        notes=booking_data.notes,
    )


@router.put("/{booking_id}", response_model=BookingResponse)
async def update_booking_endpoint(
    booking_id: int,
    booking_data: BookingUpdate,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    patch = booking_data.model_dump(exclude_unset=True)
    return await service.update_booking(actor, booking_id, patch)


@router.delete("/{booking_id}", response_model=BookingDeleteResponse)
async def delete_booking_endpoint(
    booking_id: int,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    """Delete a pending booking. Only its client may do this; others must cancel."""
    await service.delete_booking(actor, booking_id)
    return BookingDeleteResponse(message="Booking deleted successfully", booking_id=booking_id)


@router.post("/{booking_id}/confirm", response_model=BookingResponse)
async def confirm_booking_endpoint(
    booking_id: int,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    return await service.confirm_booking(actor, booking_id)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking_endpoint(
    booking_id: int,
    cancel_data: Optional[BookingCancel] = Body(None),
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    """Cancel a booking, freeing its room, equipment and staff for the window."""
    reason = cancel_data.reason if cancel_data else None
    return await service.cancel_booking(actor, booking_id, reason)
