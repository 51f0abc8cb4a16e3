"""
Pydantic schemas for booking-related request/response validation.

Window ordering (end after start) is checked by the booking engine, not here,
so that it is reported as a 400 like every other booking rule.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional
from pydantic import BaseModel, Field

BookingStatus = Literal["pending", "confirmed", "cancelled", "completed"]


class BookingCreate(BaseModel):
    room_id: int
    start_time: datetime
    end_time: datetime
    equipment_ids: list[int] = Field(default_factory=list, max_length=50)
    staff_ids: list[int] = Field(default_factory=list, max_length=20)
    notes: Optional[str] = Field(None, max_length=2000)


class BookingUpdate(BaseModel):
    """Partial update. Only the fields sent are considered."""
    notes: Optional[str] = Field(None, max_length=2000)
    equipment_ids: Optional[list[int]] = Field(None, max_length=50)
    staff_ids: Optional[list[int]] = Field(None, max_length=20)
    status: Optional[BookingStatus] = None


class BookingCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class BookingResponse(BaseModel):
    id: int
    room_id: int
    client_id: int
    start_time: datetime
    end_time: datetime
    status: str
    total_amount: Decimal
    deposit_amount: Optional[Decimal]
    deposit_paid: bool
    notes: Optional[str]
    equipment_ids: list[int]
    staff_ids: list[int]
    cancellation_reason: Optional[str]
    cancelled_by: Optional[int]
    cancelled_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}


class BookingDeleteResponse(BaseModel):
    message: str
    booking_id: int
