"""
Pydantic schemas for studios and the resources they offer.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field


class StudioCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    address: str = Field(..., min_length=1, max_length=500)
    cancellation_policy: Optional[str] = Field(None, max_length=5000)


class StudioResponse(BaseModel):
    id: int
    owner_id: int
    name: str
    description: Optional[str]
    address: str
    cancellation_policy: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class StudioListResponse(BaseModel):
    studios: list[StudioResponse]
    total: int
    page: int
    page_size: int
    cached: bool = False


class RoomCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    capacity: Optional[int] = Field(None, gt=0, le=1000)
    hourly_rate: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    is_active: bool = True


class RoomResponse(BaseModel):
    id: int
    studio_id: int
    name: str
    description: Optional[str]
    capacity: Optional[int]
    hourly_rate: Decimal
    is_active: bool

    model_config = {"from_attributes": True}


class EquipmentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    category: Optional[str] = Field(None, max_length=100)
    daily_rate: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    is_available: bool = True


class EquipmentResponse(BaseModel):
    id: int
    studio_id: int
    name: str
    description: Optional[str]
    category: Optional[str]
    daily_rate: Optional[Decimal]
    is_available: bool

    model_config = {"from_attributes": True}


class StaffCreate(BaseModel):
    user_id: int
    role: str = Field(..., min_length=1, max_length=100)
    hourly_rate: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    specialization: Optional[str] = Field(None, max_length=255)


class StaffResponse(BaseModel):
    id: int
    user_id: int
    studio_id: int
    name: str
    role: str
    hourly_rate: Optional[Decimal]
    specialization: Optional[str]

    model_config = {"from_attributes": True}
