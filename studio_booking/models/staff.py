"""
Staff model.

A staff row is both the membership record scoping a `staff` user to exactly
one studio and the resource a booking reserves when it requests that person.
"""

from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from studio_booking.db.base import Base, TimestampMixin


class Staff(Base, TimestampMixin):
    __tablename__ = "staff"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    studio_id = Column(Integer, ForeignKey("studios.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(100), nullable=False)
    hourly_rate = Column(Numeric(10, 2), nullable=True)
    specialization = Column(String(255), nullable=True)

    user = relationship("User", lazy="joined")

    __table_args__ = (
        # One studio per staff user
        UniqueConstraint("user_id", name="uq_staff_user"),
    )

    @property
    def name(self) -> str:
        return self.user.name if self.user else f"#{self.id}"

    def __repr__(self) -> str:
        return f"<Staff(id={self.id}, user={self.user_id}, studio={self.studio_id})>"
