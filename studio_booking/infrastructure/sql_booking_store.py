"""
SQLAlchemy-backed BookingStore.

Writes commit immediately so that a database-level rejection (serialization
failure or exclusion-constraint violation) surfaces here, where it can be
translated into StoreConflict, rather than at the end of the request.
Reads go through the same translation: under SERIALIZABLE a plain SELECT
can be the statement PostgreSQL aborts.

Status changes are compare-and-set: the UPDATE carries `status = expected`
in its WHERE clause, so two requests that both read `pending` cannot both
write. The loser matches no row and gets StaleBooking.
"""

from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from studio_booking.core.config import get_settings
from studio_booking.core.logging import get_logger
from studio_booking.models import Booking, BookingEquipment, BookingStaff, Room, Studio
from studio_booking.services.booking_rules import ROOM, EQUIPMENT, STAFF, CANCELLED, TimeWindow
from studio_booking.services.interfaces.booking_store import (
    BookingDraft, BookingFilter, BookingStore, StaleBooking, StoreConflict,
)

logger = get_logger(__name__)

# serialization_failure, exclusion_violation
CONFLICT_SQLSTATES = {"40001", "23P01"}


def _is_conflict(error: DBAPIError) -> bool:
    for candidate in (error.orig, getattr(error.orig, "__cause__", None)):
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code in CONFLICT_SQLSTATES:
            return True
    return False


class SqlBookingStore(BookingStore):

    def __init__(self, db: AsyncSession, isolation_level: Optional[str] = None):
        self.db = db
        if isolation_level is None:
            isolation_level = get_settings().BOOKING_ISOLATION_LEVEL
        self.isolation_level = isolation_level

    async def begin_exclusive(self) -> None:
        # Isolation can only be chosen before the transaction's first statement
        if self.db.in_transaction():
            await self.db.commit()
        if self.isolation_level:
            await self.db.connection(execution_options={"isolation_level": self.isolation_level})

    async def find_overlapping(
        self,
        kind: str,
        resource_id: int,
        window: TimeWindow,
        exclude_id: Optional[int] = None,
    ) -> list[Booking]:
        query = select(Booking).where(
            Booking.status != CANCELLED,
            Booking.start_time < window.end,
            Booking.end_time > window.start,
        )
        if kind == ROOM:
            query = query.where(Booking.room_id == resource_id)
        elif kind == EQUIPMENT:
            query = query.join(BookingEquipment, BookingEquipment.booking_id == Booking.id).where(
                BookingEquipment.equipment_id == resource_id
            )
        elif kind == STAFF:
            query = query.join(BookingStaff, BookingStaff.booking_id == Booking.id).where(
                BookingStaff.staff_id == resource_id
            )
        else:
            raise ValueError(f"Unknown resource kind: {kind}")

        if exclude_id is not None:
            query = query.where(Booking.id != exclude_id)

        result = await self._execute(query)
        return list(result.scalars().all())

    async def _rejected(self, error: DBAPIError) -> None:
        await self.db.rollback()
        if _is_conflict(error):
            logger.warning("booking_write_rejected", reason="concurrent_reservation")
            raise StoreConflict(str(error.orig)) from error
        raise error

    async def _execute(self, statement):
        try:
            return await self.db.execute(statement)
        except DBAPIError as e:
            await self._rejected(e)

    async def _commit(self) -> None:
        try:
            await self.db.flush()
            await self.db.commit()
        except DBAPIError as e:
            await self._rejected(e)

    async def insert_booking(self, draft: BookingDraft) -> Booking:
        booking = Booking(
            room_id=draft.room_id,
            client_id=draft.client_id,
            start_time=draft.window.start,
            end_time=draft.window.end,
            status=draft.status,
            total_amount=draft.total_amount,
            notes=draft.notes,
            deposit_paid=False,
            equipment_items=[BookingEquipment(equipment_id=i, quantity=1) for i in draft.equipment_ids],
            staff_items=[BookingStaff(staff_id=i) for i in draft.staff_ids],
        )
        self.db.add(booking)
        await self._commit()
        await self.db.refresh(booking)
        return booking

    async def get_booking(self, booking_id: int) -> Optional[Booking]:
        result = await self._execute(select(Booking).where(Booking.id == booking_id))
        return result.scalar_one_or_none()

    async def update_booking(
        self, booking_id: int, patch: dict, expected_status: Optional[str] = None
    ) -> Booking:
        booking = await self.get_booking(booking_id)
        if booking is None:
            raise LookupError(f"Booking {booking_id} disappeared during update")

        columns = {k: v for k, v in patch.items() if k not in ("equipment_ids", "staff_ids")}

        # Compare-and-set on status: a concurrent confirm/cancel makes this match no row
        statement = (
            update(Booking)
            .where(Booking.id == booking_id)
            .values(**columns, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        if expected_status is not None:
            statement = statement.where(Booking.status == expected_status)
        result = await self._execute(statement)
        if result.rowcount == 0:
            await self.db.rollback()
            logger.warning("booking_write_stale", booking_id=booking_id, expected_status=expected_status)
            raise StaleBooking(f"Booking {booking_id} is no longer {expected_status}")

        if "equipment_ids" in patch:
            _replace_items(booking.equipment_items, BookingEquipment, "equipment_id", patch["equipment_ids"])
        if "staff_ids" in patch:
            _replace_items(booking.staff_items, BookingStaff, "staff_id", patch["staff_ids"])

        await self._commit()
        await self.db.refresh(booking)
        return booking

    async def delete_booking(self, booking_id: int) -> None:
        booking = await self.get_booking(booking_id)
        if booking is None:
            return
        await self.db.delete(booking)
        await self._commit()

    async def list_bookings(self, booking_filter: BookingFilter) -> list[Booking]:
        query = select(Booking)

        if booking_filter.client_id is not None:
            query = query.where(Booking.client_id == booking_filter.client_id)
        if booking_filter.owner_id is not None:
            query = (
                query.join(Room, Room.id == Booking.room_id)
                .join(Studio, Studio.id == Room.studio_id)
                .where(Studio.owner_id == booking_filter.owner_id)
            )
        elif booking_filter.studio_id is not None:
            query = query.join(Room, Room.id == Booking.room_id).where(
                Room.studio_id == booking_filter.studio_id
            )

        if booking_filter.status is not None:
            query = query.where(Booking.status == booking_filter.status)
        if booking_filter.room_id is not None:
            query = query.where(Booking.room_id == booking_filter.room_id)
        if booking_filter.starts_after is not None:
            query = query.where(Booking.start_time >= booking_filter.starts_after)
        if booking_filter.ends_before is not None:
            query = query.where(Booking.end_time <= booking_filter.ends_before)

        result = await self.db.execute(query.order_by(Booking.start_time.asc(), Booking.id.asc()))
        return list(result.scalars().all())


def _replace_items(collection, model, key: str, ids: list[int]) -> None:
    """Make the association collection hold exactly `ids`, keeping existing rows."""
    wanted = set(ids)
    kept = [item for item in collection if getattr(item, key) in wanted]
    present = {getattr(item, key) for item in kept}
    collection[:] = kept + [model(**{key: i}) for i in ids if i not in present]
