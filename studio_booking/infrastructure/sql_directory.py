"""
SQLAlchemy-backed Directory.
"""

from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from studio_booking.models import Equipment, Room, Staff, Studio, User
from studio_booking.services.interfaces.directory import Directory


class SqlDirectory(Directory):

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_room(self, room_id: int) -> Optional[Room]:
        result = await self.db.execute(select(Room).where(Room.id == room_id))
        return result.scalar_one_or_none()

    async def get_studio(self, studio_id: int) -> Optional[Studio]:
        result = await self.db.execute(select(Studio).where(Studio.id == studio_id))
        return result.scalar_one_or_none()

    async def get_equipment(self, equipment_ids: Sequence[int]) -> list[Equipment]:
        if not equipment_ids:
            return []
        result = await self.db.execute(select(Equipment).where(Equipment.id.in_(equipment_ids)))
        return list(result.scalars().all())

    async def get_staff(self, staff_ids: Sequence[int]) -> list[Staff]:
        if not staff_ids:
            return []
        result = await self.db.execute(select(Staff).where(Staff.id.in_(staff_ids)))
        return list(result.scalars().all())

    async def get_staff_membership(self, user_id: int) -> Optional[int]:
        result = await self.db.execute(select(Staff.studio_id).where(Staff.user_id == user_id))
        return result.scalar_one_or_none()

    async def get_user(self, user_id: int) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()
