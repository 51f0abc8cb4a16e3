from studio_booking.schemas.user import UserCreate, UserResponse, UserLogin, Token
from studio_booking.schemas.studio import (
    StudioCreate, StudioResponse, StudioListResponse,
    RoomCreate, RoomResponse, EquipmentCreate, EquipmentResponse, StaffCreate, StaffResponse,
)
from studio_booking.schemas.booking import (
    BookingCreate, BookingUpdate, BookingCancel, BookingResponse, BookingDeleteResponse,
)

__all__ = [
    "UserCreate", "UserResponse", "UserLogin", "Token",
    "StudioCreate", "StudioResponse", "StudioListResponse",
    "RoomCreate", "RoomResponse", "EquipmentCreate", "EquipmentResponse",
    "StaffCreate", "StaffResponse",
    "BookingCreate", "BookingUpdate", "BookingCancel", "BookingResponse", "BookingDeleteResponse",
]
