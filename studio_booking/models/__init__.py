from studio_booking.models.user import User
from studio_booking.models.studio import Studio
from studio_booking.models.room import Room
from studio_booking.models.equipment import Equipment
from studio_booking.models.staff import Staff
from studio_booking.models.booking import Booking, BookingEquipment, BookingStaff
from studio_booking.models.payment import Payment
from studio_booking.models.review import Review

__all__ = [
    "User", "Studio", "Room", "Equipment", "Staff",
    "Booking", "BookingEquipment", "BookingStaff",
    "Payment", "Review",
]
