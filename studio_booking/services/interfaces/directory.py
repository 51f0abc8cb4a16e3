"""
Directory interface: read-only access to rooms, studios, equipment, staff and users.

Records are returned as objects exposing the attributes of the matching ORM
models (`Room.hourly_rate`, `Room.studio.owner_id`, `Staff.name`, ...).
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence


class Directory(ABC):

    @abstractmethod
    async def get_room(self, room_id: int):
        """Room with its studio loaded, or None."""
        pass

    @abstractmethod
    async def get_studio(self, studio_id: int):
        pass

    @abstractmethod
    async def get_equipment(self, equipment_ids: Sequence[int]) -> list:
        """Equipment rows for the ids that exist. Missing ids are simply absent."""
        pass

    @abstractmethod
    async def get_staff(self, staff_ids: Sequence[int]) -> list:
        """Staff rows for the ids that exist. Missing ids are simply absent."""
        pass

    @abstractmethod
    async def get_staff_membership(self, user_id: int) -> Optional[int]:
        """Studio id the user works at, or None."""
        pass

    @abstractmethod
    async def get_user(self, user_id: int):
        pass
