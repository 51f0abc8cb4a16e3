"""
Equipment model. Each row is one reservable unit owned by a studio.
"""

from sqlalchemy import Column, Integer, String, Text, Numeric, Boolean, ForeignKey

from studio_booking.db.base import Base, TimestampMixin


class Equipment(Base, TimestampMixin):
    __tablename__ = "equipment"

    id = Column(Integer, primary_key=True, index=True)
    studio_id = Column(Integer, ForeignKey("studios.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True)
    daily_rate = Column(Numeric(10, 2), nullable=True)
    is_available = Column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Equipment(id={self.id}, name={self.name})>"
