"""
Booking model representing a client's reservation of a room, optionally with
equipment and staff, for a time window.

Key design decisions:
- Windows are half-open [start_time, end_time); CHECK enforces end > start
- Status field allows cancellation without deleting records
- total_amount is fixed at creation and never re-derived
- Equipment and staff reservations live in association tables so the
  conflict detector can query each resource kind independently
"""

from sqlalchemy import (
    Column, Integer, String, Text, Numeric, Boolean, DateTime, ForeignKey,
    CheckConstraint, Index,
)
from sqlalchemy.orm import relationship

from studio_booking.db.base import Base, TimestampMixin

BOOKING_STATUSES = ("pending", "confirmed", "cancelled", "completed")


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    total_amount = Column(Numeric(10, 2), nullable=False)
    deposit_amount = Column(Numeric(10, 2), nullable=True)
    deposit_paid = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    cancelled_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    equipment_items = relationship(
        "BookingEquipment", lazy="selectin", cascade="all, delete-orphan"
    )
    staff_items = relationship(
        "BookingStaff", lazy="selectin", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="check_booking_window"),
        CheckConstraint("total_amount >= 0", name="check_booking_amount_non_negative"),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed')",
            name="check_booking_status",
        ),
        # Conflict lookups filter on room and window
        Index("ix_bookings_room_window", "room_id", "start_time", "end_time"),
    )

    @property
    def equipment_ids(self) -> list[int]:
        return [item.equipment_id for item in self.equipment_items]

    @property
    def staff_ids(self) -> list[int]:
        return [item.staff_id for item in self.staff_items]

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, room={self.room_id}, client={self.client_id}, status={self.status})>"


class BookingEquipment(Base):
    __tablename__ = "booking_equipment"

    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), primary_key=True)
    equipment_id = Column(Integer, ForeignKey("equipment.id", ondelete="CASCADE"), primary_key=True, index=True)
    quantity = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="check_booking_equipment_quantity_positive"),
    )


class BookingStaff(Base):
    __tablename__ = "booking_staff"

    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), primary_key=True)
    staff_id = Column(Integer, ForeignKey("staff.id", ondelete="CASCADE"), primary_key=True, index=True)
