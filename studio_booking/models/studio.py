"""
Studio model. A studio is owned by one user and groups rooms, equipment and staff.
"""

from sqlalchemy import Column, Integer, String, Text, ForeignKey
from sqlalchemy.orm import relationship

from studio_booking.db.base import Base, TimestampMixin


class Studio(Base, TimestampMixin):
    __tablename__ = "studios"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    address = Column(String(500), nullable=False)
    cancellation_policy = Column(Text, nullable=True)

    owner = relationship("User", lazy="joined")

    def __repr__(self) -> str:
        return f"<Studio(id={self.id}, name={self.name}, owner={self.owner_id})>"
