"""
Booking rules: time windows, pricing, authorization and the lifecycle.

Everything here is pure. The booking service feeds these functions with
records fetched from the directory and the booking store, so the same rules
apply to every endpoint and are testable without a database.

Overlap semantics
=================

Windows are half-open [start, end). Two windows overlap iff

    s1 < e2 AND s2 < e1

so back-to-back sessions (10:00-11:00 then 11:00-12:00) never conflict.

Authorization
=============

An actor relates to a booking as its CLIENT, as the OWNER of the studio the
room belongs to, and/or as STAFF of that studio. Each action has one rule
over that relation set (see `_RULES`). When the actor is the booking's
client, update restrictions for clients apply even if they also own the
studio.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Callable, Optional

from studio_booking.core.exceptions import InvalidWindow, InvalidTransition

ROOM = "room"
EQUIPMENT = "equipment"
STAFF = "staff"
RESOURCE_KINDS = (ROOM, EQUIPMENT, STAFF)

PENDING = "pending"
CONFIRMED = "confirmed"
CANCELLED = "cancelled"
COMPLETED = "completed"

CENTS = Decimal("0.01")
SECONDS_PER_HOUR = Decimal(3600)


def to_utc(value: datetime) -> datetime:
    # Naive timestamps are treated as UTC (SQLite drops the offset)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class TimeWindow:
    """Half-open reservation window [start, end)."""

    start: datetime
    end: datetime

    @classmethod
    def of(cls, start: datetime, end: datetime) -> "TimeWindow":
        start, end = to_utc(start), to_utc(end)
        if end <= start:
            raise InvalidWindow("End time must be after start time")
        return cls(start, end)

    def overlaps(self, other: "TimeWindow") -> bool:
        return windows_overlap(self.start, self.end, other.start, other.end)

    @property
    def duration_hours(self) -> Decimal:
        delta = self.end - self.start
        seconds = Decimal(delta.days * 86400 + delta.seconds) + Decimal(delta.microseconds) / Decimal(1_000_000)
        return seconds / SECONDS_PER_HOUR


def windows_overlap(s1: datetime, e1: datetime, s2: datetime, e2: datetime) -> bool:
    return to_utc(s1) < to_utc(e2) and to_utc(s2) < to_utc(e1)


def compute_price(hourly_rate, window: TimeWindow) -> Decimal:
    """Room rate times duration, rounded half-up to cents."""
    rate = Decimal(str(hourly_rate))
    return (rate * window.duration_hours).quantize(CENTS, rounding=ROUND_HALF_UP)


# --- Authorization ---------------------------------------------------------


class Action(str, Enum):
    VIEW = "view"
    CREATE = "create"
    UPDATE = "update"
    CONFIRM = "confirm"
    CANCEL = "cancel"
    DELETE = "delete"


class Relation(str, Enum):
    CLIENT = "client"
    OWNER = "owner"
    STAFF = "staff"


@dataclass(frozen=True)
class Actor:
    """The authenticated user an engine call is made on behalf of."""

    user_id: int
    role: str  # studio_owner, musician, staff
    staff_studio_id: Optional[int] = None


@dataclass(frozen=True)
class BookingAccess:
    """The facts about a booking that authorization depends on."""

    client_id: int
    studio_id: int
    owner_id: int
    status: str


def relations(actor: Actor, booking: BookingAccess) -> frozenset[Relation]:
    found = set()
    if booking.client_id == actor.user_id:
        found.add(Relation.CLIENT)
    if booking.owner_id == actor.user_id:
        found.add(Relation.OWNER)
    if actor.role == "staff" and actor.staff_studio_id == booking.studio_id:
        found.add(Relation.STAFF)
    return frozenset(found)


_MANAGERS = {Relation.OWNER, Relation.STAFF}

CLIENT_MUTABLE_FIELDS = frozenset({"notes", "equipment_ids"})
MANAGER_MUTABLE_FIELDS = frozenset({"status", "staff_ids", "notes"})

Rule = Callable[[frozenset, BookingAccess], bool]


def _may_update(rels: frozenset, booking: BookingAccess) -> bool:
    if Relation.CLIENT in rels:
        return booking.status == PENDING
    return bool(rels & _MANAGERS)


_RULES: dict[Action, Rule] = {
    Action.VIEW: lambda rels, booking: bool(rels),
    Action.UPDATE: _may_update,
    Action.CONFIRM: lambda rels, booking: bool(rels & _MANAGERS),
    Action.CANCEL: lambda rels, booking: bool(rels),
    Action.DELETE: lambda rels, booking: Relation.CLIENT in rels and booking.status == PENDING,
}


def can_act(
    actor: Optional[Actor],
    booking: Optional[BookingAccess],
    action: Action,
    *,
    client_cancel_pending_only: bool = False,
) -> bool:
    if actor is None:
        return False
    if action == Action.CREATE:
        return True
    if booking is None:
        return False

    rels = relations(actor, booking)
    allowed = _RULES[action](rels, booking)

    if allowed and action == Action.CANCEL and client_cancel_pending_only:
        if not rels & _MANAGERS and booking.status != PENDING:
            return False
    return allowed


def mutable_fields(actor: Actor, booking: BookingAccess) -> frozenset[str]:
    """Fields the actor may change through a general update."""
    rels = relations(actor, booking)
    if Relation.CLIENT in rels:
        return CLIENT_MUTABLE_FIELDS
    if rels & _MANAGERS:
        return MANAGER_MUTABLE_FIELDS
    return frozenset()


# --- Lifecycle -------------------------------------------------------------

TRANSITIONS: dict[str, frozenset[str]] = {
    PENDING: frozenset({CONFIRMED, CANCELLED}),
    CONFIRMED: frozenset({CANCELLED, COMPLETED}),
    CANCELLED: frozenset(),
    COMPLETED: frozenset(),
}


def is_terminal(status: str) -> bool:
    return not TRANSITIONS.get(status)


def transition(current: str, target: str) -> str:
    """Validate a status change and return the new status."""
    if target not in TRANSITIONS:
        raise InvalidTransition(f"Unknown booking status '{target}'")
    if target not in TRANSITIONS.get(current, frozenset()):
        raise InvalidTransition(f"Cannot change booking from '{current}' to '{target}'")
    return target
