"""
User model with secure password storage.
"""

from sqlalchemy import Column, Integer, String, Boolean, CheckConstraint

from studio_booking.db.base import Base, TimestampMixin

USER_TYPES = ("studio_owner", "musician", "staff")


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    user_type = Column(String(20), nullable=False, default="musician")
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "user_type IN ('studio_owner', 'musician', 'staff')",
            name="check_user_type",
        ),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, type={self.user_type})>"
