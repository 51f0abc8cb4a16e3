"""
Persistence interface for booking records.

Check-then-insert is only safe if the store serializes it: `begin_exclusive`
opens the transaction the conflict checks and the insert share, and
`insert_booking` raises `StoreConflict` when the database rejects the write
because a concurrent transaction reserved the same resource.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from studio_booking.services.booking_rules import TimeWindow


class StoreConflict(Exception):
    """The database refused a read or write that would double-book a resource."""


class StaleBooking(StoreConflict):
    """The booking's status changed between reading it and writing to it."""


@dataclass
class BookingDraft:
    room_id: int
    client_id: int
    window: TimeWindow
    total_amount: Decimal
    notes: Optional[str] = None
    equipment_ids: list[int] = field(default_factory=list)
    staff_ids: list[int] = field(default_factory=list)
    status: str = "pending"


@dataclass
class BookingFilter:
    """
    Visibility scope plus optional narrowing.
    Exactly one of client_id / owner_id / studio_id scopes the query.
    """
    client_id: Optional[int] = None
    owner_id: Optional[int] = None
    studio_id: Optional[int] = None
    status: Optional[str] = None
    room_id: Optional[int] = None
    starts_after: Optional[datetime] = None
    ends_before: Optional[datetime] = None


class BookingStore(ABC):

    @abstractmethod
    async def begin_exclusive(self) -> None:
        """Start the transaction that conflict checks and the write share."""
        pass

    @abstractmethod
    async def find_overlapping(
        self,
        kind: str,
        resource_id: int,
        window: TimeWindow,
        exclude_id: Optional[int] = None,
    ) -> list:
        """
        Non-cancelled bookings reserving the resource with an overlapping window.
        Raises StoreConflict if the database aborts the read (serialization failure).
        """
        pass

    @abstractmethod
    async def insert_booking(self, draft: BookingDraft):
        """Persist and return the new booking. Raises StoreConflict."""
        pass

    @abstractmethod
    async def get_booking(self, booking_id: int):
        pass

    @abstractmethod
    async def update_booking(self, booking_id: int, patch: dict, expected_status: Optional[str] = None):
        """
        Apply `patch` and return the updated booking.
        `equipment_ids` / `staff_ids` keys replace the reservation sets.
        With `expected_status`, the write only happens if the stored status
        still equals it; otherwise StaleBooking is raised and nothing changes.
        Raises StoreConflict.
        """
        pass

    @abstractmethod
    async def delete_booking(self, booking_id: int) -> None:
        pass

    @abstractmethod
    async def list_bookings(self, booking_filter: BookingFilter) -> list:
        pass
