"""
Room model. Rooms are the primary bookable resource and carry the hourly rate
used to price a booking.
"""

from sqlalchemy import Column, Integer, String, Text, Numeric, Boolean, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship

from studio_booking.db.base import Base, TimestampMixin


class Room(Base, TimestampMixin):
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, index=True)
    studio_id = Column(Integer, ForeignKey("studios.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    capacity = Column(Integer, nullable=True)
    hourly_rate = Column(Numeric(10, 2), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    # Studio (and its owner) is needed on every booking decision
    studio = relationship("Studio", lazy="joined")

    __table_args__ = (
        CheckConstraint("hourly_rate >= 0", name="check_room_hourly_rate_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Room(id={self.id}, name={self.name}, studio={self.studio_id})>"
