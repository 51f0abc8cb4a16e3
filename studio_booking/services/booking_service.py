"""
Booking service: conflict-checked creation and the booking lifecycle.

CONCURRENCY STRATEGY: Serialized check-then-insert
==================================================

Problem:
  Two clients request the same room for overlapping windows at the same time.
  Both read "no overlapping booking", both insert, and the room is double-booked.

Solution:
  The conflict checks and the write run in one transaction opened by
  `BookingStore.begin_exclusive()` at the configured isolation level
  (SERIALIZABLE by default). PostgreSQL aborts one of two racing
  transactions with a serialization failure, and the schema's exclusion
  constraint on (room_id, tstzrange(start_time, end_time)) rejects
  overlapping room rows outright. The store surfaces either as
  `StoreConflict`, which we report as `ResourceConflict`.

  No retries: a conflict is the caller's answer, not a transient error.

  Lifecycle writes (update, confirm, cancel) pass the status they read as
  `expected_status`. If another request changed it in between, the store
  raises `StaleBooking` and we answer `InvalidTransition`.

  A rejected statement rolls the session back, which expires every loaded
  ORM object. Ids and names needed for the error are copied beforehand.

Notifications:
  Sent after the response through the injected `schedule` callable
  (FastAPI BackgroundTasks in the API). Delivery failures are logged and
  counted but never change the outcome of the booking operation.
"""

from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from studio_booking.core.config import get_settings
from studio_booking.core.exceptions import (
    Forbidden, InternalError, InvalidTransition, NotFound, ResourceConflict, ValidationError,
)
from studio_booking.core.logging import get_logger
from studio_booking.core.metrics import (
    booking_latency, record_booking_attempt, record_conflict, record_notification, record_transition,
)
from studio_booking.services.booking_rules import (
    ROOM, EQUIPMENT, STAFF, RESOURCE_KINDS, PENDING, CONFIRMED, CANCELLED,
    Action, Actor, BookingAccess, Relation, TimeWindow,
    can_act, compute_price, mutable_fields, relations, to_utc, transition,
)
from studio_booking.services.interfaces import (
    BookingDraft, BookingFilter, BookingStore, Directory, Notifier, StaleBooking, StoreConflict,
)

logger = get_logger(__name__)

DEFAULT_CANCELLATION_REASON = "No reason provided"
NULLABLE_AS_UNSET = frozenset({"status", "equipment_ids", "staff_ids"})


def _unique(ids: Optional[Iterable[int]]) -> list[int]:
    return list(dict.fromkeys(ids or ()))


class BookingService:
    """
    Booking operations on behalf of an explicit `Actor`.

    One instance serves one request: the store and directory are bound to
    the request's database session.
    """

    def __init__(
        self,
        store: BookingStore,
        directory: Directory,
        notifier: Notifier,
        schedule: Optional[Callable] = None,
        client_cancel_pending_only: Optional[bool] = None,
    ):
        self.store = store
        self.directory = directory
        self.notifier = notifier
        self.schedule = schedule
        if client_cancel_pending_only is None:
            client_cancel_pending_only = get_settings().CLIENT_CANCEL_PENDING_ONLY
        self.client_cancel_pending_only = client_cancel_pending_only

    # --- Conflict detection ------------------------------------------------

    async def check_conflict(
        self,
        kind: str,
        resource_id: int,
        window: TimeWindow,
        exclude_booking_id: Optional[int] = None,
    ) -> bool:
        """True if another non-cancelled booking holds the resource during `window`."""
        if kind not in RESOURCE_KINDS:
            raise ValidationError(f"Unknown resource kind '{kind}'")
        window = TimeWindow.of(window.start, window.end)
        overlapping = await self.store.find_overlapping(kind, resource_id, window, exclude_booking_id)
        return len(overlapping) > 0

    async def _ensure_free(self, kind: str, resources: list, window: TimeWindow, exclude_id: Optional[int] = None):
        # ids and names are read up front: a rejected read rolls the session back and expires them
        for resource_id, name in [(r.id, getattr(r, "name", None)) for r in resources]:
            try:
                taken = await self.check_conflict(kind, resource_id, window, exclude_id)
            except StoreConflict:
                taken = True
            if taken:
                record_conflict(kind)
                logger.warning(
                    "booking_conflict",
                    resource=kind,
                    resource_id=resource_id,
                    start=window.start.isoformat(),
                    end=window.end.isoformat(),
                )
                raise ResourceConflict(kind, resource_id, name)

    async def _resolve_equipment(self, equipment_ids: list[int]) -> list:
        if not equipment_ids:
            return []
        found = {item.id: item for item in await self.directory.get_equipment(equipment_ids)}
        if len(found) != len(equipment_ids):
            raise ValidationError("One or more equipment items not found")
        unavailable = [found[i].name for i in equipment_ids if not found[i].is_available]
        if unavailable:
            raise ValidationError(f"Equipment {unavailable[0]} is not available for booking")
        return [found[i] for i in equipment_ids]

    async def _resolve_staff(self, staff_ids: list[int]) -> list:
        if not staff_ids:
            return []
        found = {member.id: member for member in await self.directory.get_staff(staff_ids)}
        if len(found) != len(staff_ids):
            raise ValidationError("One or more staff members not found")
        return [found[i] for i in staff_ids]

    # --- Creation ----------------------------------------------------------

    async def create_booking(
        self,
        actor: Actor,
        room_id: int,
        start_time: datetime,
        end_time: datetime,
        equipment_ids: Optional[Iterable[int]] = None,
        staff_ids: Optional[Iterable[int]] = None,
        notes: Optional[str] = None,
    ):
        """
        Create a pending booking after checking the room, every requested
        equipment item and every requested staff member for overlaps.
        """
        if not can_act(actor, None, Action.CREATE):
            raise Forbidden("Authentication required")

        with booking_latency.time():
            try:
                booking, room = await self._create(
                    actor, room_id, start_time, end_time,
                    _unique(equipment_ids), _unique(staff_ids), notes,
                )
            except ResourceConflict:
                record_booking_attempt("conflict")
                raise
            except (ValidationError, NotFound):
                record_booking_attempt("rejected")
                raise
            except Exception:
                record_booking_attempt("error")
                raise

        record_booking_attempt("success")
        logger.info(
            "booking_created",
            booking_id=booking.id,
            client_id=actor.user_id,
            room_id=room.id,
            total_amount=str(booking.total_amount),
        )
        await self._notify(
            "booking_created", room.studio.owner_id, self._payload(booking, room),
        )
        return booking

    async def _create(self, actor, room_id, start_time, end_time, equipment_ids, staff_ids, notes):
        window = TimeWindow.of(start_time, end_time)
        await self.store.begin_exclusive()

        room = await self.directory.get_room(room_id)
        if room is None:
            raise NotFound("Room not found")
        if not room.is_active:
            raise ValidationError(f"Room {room.name} is not accepting bookings")

        await self._ensure_free(ROOM, [room], window)

        equipment = await self._resolve_equipment(equipment_ids)
        await self._ensure_free(EQUIPMENT, equipment, window)

        staff = await self._resolve_staff(staff_ids)
        await self._ensure_free(STAFF, staff, window)

        # A rejected insert rolls the session back and expires `room`
        room_id, room_name = room.id, room.name
        draft = BookingDraft(
            room_id=room_id,
            client_id=actor.user_id,
            window=window,
            total_amount=compute_price(room.hourly_rate, window),
            notes=notes,
            equipment_ids=equipment_ids,
            staff_ids=staff_ids,
            status=PENDING,
        )
        try:
            booking = await self.store.insert_booking(draft)
        except StoreConflict:
            record_conflict(ROOM)
            logger.warning("booking_conflict_on_write", room_id=room_id)
            raise ResourceConflict(ROOM, room_id, room_name)
        return booking, room

    # --- Reads ---------------------------------------------------------------

    async def _load(self, booking_id: int):
        booking = await self.store.get_booking(booking_id)
        if booking is None:
            raise NotFound("Booking not found")
        room = await self.directory.get_room(booking.room_id)
        if room is None:
            logger.error("booking_room_missing", booking_id=booking_id, room_id=booking.room_id)
            raise InternalError("Booking references a missing room")
        access = BookingAccess(
            client_id=booking.client_id,
            studio_id=room.studio_id,
            owner_id=room.studio.owner_id,
            status=booking.status,
        )
        return booking, room, access

    async def get_booking(self, actor: Actor, booking_id: int):
        booking, _, access = await self._load(booking_id)
        if not can_act(actor, access, Action.VIEW):
            raise Forbidden("Not authorized to access this booking")
        return booking

    async def list_bookings(
        self,
        actor: Actor,
        mine: bool = False,
        status: Optional[str] = None,
        room_id: Optional[int] = None,
        starts_after: Optional[datetime] = None,
        ends_before: Optional[datetime] = None,
    ) -> list:
        """
        Bookings visible to the actor: musicians (or `mine=True`) see their
        own, owners see their studios', staff see their studio's.
        """
        booking_filter = BookingFilter(
            status=status,
            room_id=room_id,
            starts_after=to_utc(starts_after) if starts_after else None,
            ends_before=to_utc(ends_before) if ends_before else None,
        )
        if mine or actor.role == "musician":
            booking_filter.client_id = actor.user_id
        elif actor.role == "studio_owner":
            booking_filter.owner_id = actor.user_id
        elif actor.role == "staff":
            if actor.staff_studio_id is None:
                raise NotFound("Staff record not found")
            booking_filter.studio_id = actor.staff_studio_id
        else:
            raise Forbidden("Not authorized to list bookings")
        return await self.store.list_bookings(booking_filter)

    # --- Lifecycle -----------------------------------------------------------

    async def update_booking(self, actor: Actor, booking_id: int, patch: dict):
        """
        Apply a partial update. Clients may edit notes and equipment of a
        pending booking; owners and staff may edit status, staff and notes.
        """
        # An explicit null for a list or the status means "leave unchanged"
        patch = {
            field: value for field, value in patch.items()
            if value is not None or field not in NULLABLE_AS_UNSET
        }

        await self.store.begin_exclusive()
        booking, room, access = await self._load(booking_id)
        rels = relations(actor, access)

        if not can_act(actor, access, Action.UPDATE):
            if Relation.CLIENT in rels:
                raise Forbidden("Cannot update a confirmed or cancelled booking")
            raise Forbidden("Not authorized to update this booking")

        disallowed = sorted(set(patch) - mutable_fields(actor, access))
        if disallowed:
            raise Forbidden(f"Not allowed to change: {', '.join(disallowed)}")

        window = TimeWindow.of(booking.start_time, booking.end_time)
        changes: dict = {}

        if "notes" in patch:
            changes["notes"] = patch["notes"]

        if patch.get("equipment_ids") is not None:
            equipment_ids = _unique(patch["equipment_ids"])
            equipment = await self._resolve_equipment(equipment_ids)
            await self._ensure_free(EQUIPMENT, equipment, window, exclude_id=booking_id)
            changes["equipment_ids"] = equipment_ids

        if patch.get("staff_ids") is not None:
            staff_ids = _unique(patch["staff_ids"])
            staff = await self._resolve_staff(staff_ids)
            await self._ensure_free(STAFF, staff, window, exclude_id=booking_id)
            changes["staff_ids"] = staff_ids

        previous_status = booking.status
        target = patch.get("status")
        if target is not None and target != previous_status:
            changes["status"] = transition(previous_status, target)
            if target == CANCELLED:
                changes.update(self._cancellation(actor, None))

        if not changes:
            return booking

        room_id, room_name = booking.room_id, room.name
        updated = await self._write(booking_id, changes, previous_status)
        if updated is None:
            if changes.get("equipment_ids"):
                raise ResourceConflict(EQUIPMENT, changes["equipment_ids"][0])
            if changes.get("staff_ids"):
                raise ResourceConflict(STAFF, changes["staff_ids"][0])
            raise ResourceConflict(ROOM, room_id, room_name)

        logger.info("booking_updated", booking_id=booking_id, fields=sorted(changes), actor_id=actor.user_id)

        if "status" in changes:
            record_transition(changes["status"])
            event = {
                CONFIRMED: "booking_confirmed",
                CANCELLED: "booking_cancelled",
            }.get(changes["status"], "booking_updated")
            await self._notify(event, updated.client_id, self._payload(updated, room))
        return updated

    async def _write(self, booking_id: int, changes: dict, expected_status: str):
        """
        Store `changes` only if the booking still has `expected_status`.
        Returns None when the database rejected the write as a resource
        conflict; a concurrent status change raises InvalidTransition.
        """
        try:
            return await self.store.update_booking(booking_id, changes, expected_status=expected_status)
        except StaleBooking:
            raise InvalidTransition(
                f"Booking is no longer {expected_status}; it was changed by another request"
            )
        except StoreConflict:
            return None

    async def confirm_booking(self, actor: Actor, booking_id: int):
        await self.store.begin_exclusive()
        booking, room, access = await self._load(booking_id)
        if not can_act(actor, access, Action.CONFIRM):
            raise Forbidden("Not authorized to confirm this booking")

        new_status = transition(booking.status, CONFIRMED)
        updated = await self._write(booking_id, {"status": new_status}, booking.status)
        if updated is None:
            raise InvalidTransition("Booking could not be confirmed; retry the request")
        record_transition(new_status)
        logger.info("booking_confirmed", booking_id=booking_id, actor_id=actor.user_id)

        await self._notify("booking_confirmed", updated.client_id, self._payload(updated, room))
        return updated

    async def cancel_booking(self, actor: Actor, booking_id: int, reason: Optional[str] = None):
        await self.store.begin_exclusive()
        booking, room, access = await self._load(booking_id)
        if not can_act(actor, access, Action.CANCEL, client_cancel_pending_only=self.client_cancel_pending_only):
            raise Forbidden("Not authorized to cancel this booking")

        changes = {"status": transition(booking.status, CANCELLED)}
        changes.update(self._cancellation(actor, reason))
        updated = await self._write(booking_id, changes, booking.status)
        if updated is None:
            raise InvalidTransition("Booking could not be cancelled; retry the request")
        record_transition(CANCELLED)
        logger.info(
            "booking_cancelled",
            booking_id=booking_id,
            actor_id=actor.user_id,
            reason=changes["cancellation_reason"],
        )

        payload = self._payload(updated, room)
        if Relation.CLIENT in relations(actor, access):
            await self._notify("booking_cancelled_by_client", room.studio.owner_id, payload)
        else:
            await self._notify("booking_cancelled", updated.client_id, payload)
        return updated

    async def delete_booking(self, actor: Actor, booking_id: int) -> None:
        await self.store.begin_exclusive()
        booking, _, access = await self._load(booking_id)
        if not can_act(actor, access, Action.DELETE):
            if Relation.CLIENT in relations(actor, access):
                raise Forbidden("Cannot delete a confirmed booking. Please use cancel instead.")
            raise Forbidden("Not authorized to delete this booking")

        await self.store.delete_booking(booking_id)
        logger.info("booking_deleted", booking_id=booking_id, actor_id=actor.user_id)

    @staticmethod
    def _cancellation(actor: Actor, reason: Optional[str]) -> dict:
        return {
            "cancellation_reason": reason or DEFAULT_CANCELLATION_REASON,
            "cancelled_by": actor.user_id,
            "cancelled_at": datetime.now(timezone.utc),
        }

    # --- Notifications -------------------------------------------------------

    @staticmethod
    def _payload(booking, room) -> dict:
        return {
            "booking_id": booking.id,
            "studio": room.studio.name,
            "room": room.name,
            "start_time": booking.start_time.isoformat(),
            "end_time": booking.end_time.isoformat(),
            "status": booking.status,
            "cancellation_reason": booking.cancellation_reason,
        }

    async def _notify(self, event: str, user_id: int, payload: dict) -> None:
        try:
            user = await self.directory.get_user(user_id)
        except Exception as e:
            logger.warning("notification_recipient_lookup_failed", notify_event=event, user_id=user_id, error=str(e))
            record_notification(event, delivered=False)
            return
        if user is None:
            logger.warning("notification_recipient_missing", notify_event=event, user_id=user_id)
            record_notification(event, delivered=False)
            return

        if self.schedule is not None:
            self.schedule(self._deliver, event, user.email, payload)
        else:
            await self._deliver(event, user.email, payload)

    async def _deliver(self, event: str, recipient: str, payload: dict) -> None:
        try:
            await self.notifier.notify(event, recipient, payload)
        except Exception as e:
            logger.warning("notification_failed", notify_event=event, recipient=recipient, error=str(e))
            record_notification(event, delivered=False)
            return
        record_notification(event, delivered=True)
