"""
Tests for booking endpoints: conflict detection, lifecycle and access rules.
"""

from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import IntegrityError, OperationalError

from studio_booking.infrastructure.sql_booking_store import SqlBookingStore
from studio_booking.models import Room
from studio_booking.services.booking_rules import ROOM, TimeWindow
from studio_booking.services.interfaces import StaleBooking, StoreConflict
from conftest import at, iso


async def _book(client: AsyncClient, headers: dict, room_id: int, start: str, end: str, **extra):
    return await client.post(
        "/api/v1/bookings/",
        json={"room_id": room_id, "start_time": start, "end_time": end, **extra},
        headers=headers,
    )


@pytest.mark.asyncio
async def test_create_booking(client: AsyncClient, musician_headers, musician, room):
    """Two hours at 50.00/h costs 100.00 and starts pending."""
    response = await _book(client, musician_headers, room.id, iso(10), iso(12), notes="Demo session")

    assert response.status_code == 201
    data = response.json()
    assert data["room_id"] == room.id
    assert data["client_id"] == musician.id
    assert data["status"] == "pending"
    assert Decimal(str(data["total_amount"])) == Decimal("100.00")
    assert data["notes"] == "Demo session"
    assert data["equipment_ids"] == []


@pytest.mark.asyncio
async def test_create_booking_unauthenticated(client: AsyncClient, room):
    """Unauthenticated booking returns 401."""
    response = await _book(client, {}, room.id, iso(10), iso(12))
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_booking_invalid_window(client: AsyncClient, musician_headers, room):
    """End before start returns 400."""
    response = await _book(client, musician_headers, room.id, iso(12), iso(10))
    assert response.status_code == 400
    assert response.json()["detail"] == "End time must be after start time"


@pytest.mark.asyncio
async def test_create_booking_unknown_room(client: AsyncClient, musician_headers, room):
    response = await _book(client, musician_headers, 9999, iso(10), iso(12))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_overlapping_booking_conflicts(
    client: AsyncClient, musician_headers, other_musician_headers, room
):
    """Overlapping request for the same room returns 409."""
    first = await _book(client, musician_headers, room.id, iso(10), iso(12))
    assert first.status_code == 201

    second = await _book(client, other_musician_headers, room.id, iso(11), iso(13))
    assert second.status_code == 409
    assert second.json()["detail"] == "Room Room A is not available for the requested time"


@pytest.mark.asyncio
async def test_back_to_back_bookings(client: AsyncClient, musician_headers, other_musician_headers, room):
    first = await _book(client, musician_headers, room.id, iso(10), iso(11))
    second = await _book(client, other_musician_headers, room.id, iso(11), iso(12))

    assert first.status_code == 201
    assert second.status_code == 201


@pytest.mark.asyncio
async def test_equipment_conflict(
    client: AsyncClient, musician_headers, other_musician_headers, db_session, room, equipment
):
    """The same microphone cannot be in two rooms at once."""
    second_room = Room(studio_id=room.studio_id, name="Room B", hourly_rate=Decimal("40.00"))
    db_session.add(second_room)
    await db_session.commit()

    first = await _book(client, musician_headers, room.id, iso(10), iso(12), equipment_ids=[equipment.id])
    assert first.status_code == 201
    assert first.json()["equipment_ids"] == [equipment.id]

    second = await _book(
        client, other_musician_headers, second_room.id, iso(11), iso(12), equipment_ids=[equipment.id]
    )
    assert second.status_code == 409
    assert "Neumann U87" in second.json()["detail"]


@pytest.mark.asyncio
async def test_rebook_after_cancel(client: AsyncClient, musician_headers, other_musician_headers, room):
    """A cancelled booking no longer blocks its window."""
    first = await _book(client, musician_headers, room.id, iso(10), iso(12))
    booking_id = first.json()["id"]

    cancel = await client.post(
        f"/api/v1/bookings/{booking_id}/cancel",
        json={"reason": "Band split up"},
        headers=musician_headers,
    )
    assert cancel.status_code == 200
    assert cancel.json()["status"] == "cancelled"
    assert cancel.json()["cancellation_reason"] == "Band split up"

    again = await _book(client, other_musician_headers, room.id, iso(10), iso(12))
    assert again.status_code == 201


@pytest.mark.asyncio
async def test_cancel_without_body_uses_default_reason(client: AsyncClient, musician_headers, room):
    booking_id = (await _book(client, musician_headers, room.id, iso(10), iso(12))).json()["id"]

    response = await client.post(f"/api/v1/bookings/{booking_id}/cancel", headers=musician_headers)
    assert response.status_code == 200
    assert response.json()["cancellation_reason"] == "No reason provided"


@pytest.mark.asyncio
async def test_cancel_twice_returns_400(client: AsyncClient, musician_headers, room):
    booking_id = (await _book(client, musician_headers, room.id, iso(10), iso(12))).json()["id"]

    await client.post(f"/api/v1/bookings/{booking_id}/cancel", headers=musician_headers)
    response = await client.post(f"/api/v1/bookings/{booking_id}/cancel", headers=musician_headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_cancel_other_users_booking(client: AsyncClient, musician_headers, other_musician_headers, room):
    """Cannot cancel someone else's booking."""
    booking_id = (await _book(client, musician_headers, room.id, iso(10), iso(12))).json()["id"]

    response = await client.post(f"/api/v1/bookings/{booking_id}/cancel", headers=other_musician_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_confirm_booking(client: AsyncClient, musician_headers, owner_headers, room):
    booking_id = (await _book(client, musician_headers, room.id, iso(10), iso(12))).json()["id"]

    by_client = await client.post(f"/api/v1/bookings/{booking_id}/confirm", headers=musician_headers)
    assert by_client.status_code == 403

    by_owner = await client.post(f"/api/v1/bookings/{booking_id}/confirm", headers=owner_headers)
    assert by_owner.status_code == 200
    assert by_owner.json()["status"] == "confirmed"

    again = await client.post(f"/api/v1/bookings/{booking_id}/confirm", headers=owner_headers)
    assert again.status_code == 400


@pytest.mark.asyncio
async def test_staff_confirms_for_their_studio(client: AsyncClient, musician_headers, staff_headers, room):
    booking_id = (await _book(client, musician_headers, room.id, iso(10), iso(12))).json()["id"]

    response = await client.post(f"/api/v1/bookings/{booking_id}/confirm", headers=staff_headers)
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_update_booking(client: AsyncClient, musician_headers, owner_headers, room, staff_member):
    booking_id = (await _book(client, musician_headers, room.id, iso(10), iso(12))).json()["id"]

    notes = await client.put(
        f"/api/v1/bookings/{booking_id}", json={"notes": "Bring a click track"}, headers=musician_headers
    )
    assert notes.status_code == 200
    assert notes.json()["notes"] == "Bring a click track"

    forbidden = await client.put(
        f"/api/v1/bookings/{booking_id}", json={"status": "confirmed"}, headers=musician_headers
    )
    assert forbidden.status_code == 403

    managed = await client.put(
        f"/api/v1/bookings/{booking_id}",
        json={"status": "confirmed", "staff_ids": [staff_member.id]},
        headers=owner_headers,
    )
    assert managed.status_code == 200
    assert managed.json()["status"] == "confirmed"
    assert managed.json()["staff_ids"] == [staff_member.id]

    too_late = await client.put(
        f"/api/v1/bookings/{booking_id}", json={"notes": "changed my mind"}, headers=musician_headers
    )
    assert too_late.status_code == 403


@pytest.mark.asyncio
async def test_delete_booking(client: AsyncClient, musician_headers, owner_headers, room):
    pending_id = (await _book(client, musician_headers, room.id, iso(10), iso(11))).json()["id"]
    confirmed_id = (await _book(client, musician_headers, room.id, iso(12), iso(13))).json()["id"]
    await client.post(f"/api/v1/bookings/{confirmed_id}/confirm", headers=owner_headers)

    by_owner = await client.delete(f"/api/v1/bookings/{pending_id}", headers=owner_headers)
    assert by_owner.status_code == 403

    confirmed = await client.delete(f"/api/v1/bookings/{confirmed_id}", headers=musician_headers)
    assert confirmed.status_code == 403
    assert confirmed.json()["detail"] == "Cannot delete a confirmed booking. Please use cancel instead."

    deleted = await client.delete(f"/api/v1/bookings/{pending_id}", headers=musician_headers)
    assert deleted.status_code == 200
    assert deleted.json() == {"message": "Booking deleted successfully", "booking_id": pending_id}

    gone = await client.get(f"/api/v1/bookings/{pending_id}", headers=musician_headers)
    assert gone.status_code == 404


@pytest.mark.asyncio
async def test_get_booking_access(
    client: AsyncClient, musician_headers, other_musician_headers, owner_headers, staff_headers, room
):
    booking_id = (await _book(client, musician_headers, room.id, iso(10), iso(11))).json()["id"]

    for headers in (musician_headers, owner_headers, staff_headers):
        response = await client.get(f"/api/v1/bookings/{booking_id}", headers=headers)
        assert response.status_code == 200

    response = await client.get(f"/api/v1/bookings/{booking_id}", headers=other_musician_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_list_bookings_scoping(
    client: AsyncClient, musician_headers, other_musician_headers, owner_headers, staff_headers, room
):
    mine = (await _book(client, musician_headers, room.id, iso(10), iso(11))).json()["id"]
    theirs = (await _book(client, other_musician_headers, room.id, iso(11), iso(12))).json()["id"]

    as_musician = await client.get("/api/v1/bookings/", headers=musician_headers)
    assert [b["id"] for b in as_musician.json()] == [mine]

    as_owner = await client.get("/api/v1/bookings/", headers=owner_headers)
    assert [b["id"] for b in as_owner.json()] == [mine, theirs]

    as_staff = await client.get("/api/v1/bookings/", headers=staff_headers)
    assert [b["id"] for b in as_staff.json()] == [mine, theirs]

    owner_own = await client.get("/api/v1/bookings/user", headers=owner_headers)
    assert owner_own.json() == []

    pending = await client.get("/api/v1/bookings/", params={"status": "cancelled"}, headers=owner_headers)
    assert pending.json() == []


@pytest.mark.asyncio
async def test_null_fields_in_update_are_ignored(client: AsyncClient, musician_headers, room):
    booking_id = (await _book(client, musician_headers, room.id, iso(10), iso(11))).json()["id"]

    response = await client.put(
        f"/api/v1/bookings/{booking_id}",
        json={"notes": "Bring a click track", "status": None, "staff_ids": None, "equipment_ids": None},
        headers=musician_headers,
    )

    assert response.status_code == 200
    assert response.json()["status"] == "pending"
    assert response.json()["notes"] == "Bring a click track"


# --- Database-level rejections ---------------------------------------------


class _PgError(Exception):
    """Driver error carrying a PostgreSQL SQLSTATE, as asyncpg's errors do."""

    def __init__(self, sqlstate: str):
        super().__init__(f"sqlstate {sqlstate}")
        self.sqlstate = sqlstate


@pytest.mark.asyncio
async def test_exclusion_violation_on_insert_returns_409(
    client: AsyncClient, musician_headers, room, db_session, monkeypatch
):
    """A racing insert rejected by the exclusion constraint is a conflict, not a server error."""
    room_id = room.id

    async def rejected_flush(*args, **kwargs):
        raise IntegrityError("INSERT INTO bookings", {}, _PgError("23P01"))

    monkeypatch.setattr(db_session, "flush", rejected_flush)
    response = await _book(client, musician_headers, room_id, iso(10), iso(12))

    assert response.status_code == 409
    assert response.json()["detail"] == "Room Room A is not available for the requested time"

    monkeypatch.undo()
    retry = await _book(client, musician_headers, room_id, iso(10), iso(12))
    assert retry.status_code == 201


@pytest.mark.asyncio
async def test_serialization_failure_on_overlap_read_is_a_conflict(db_session, monkeypatch):
    store = SqlBookingStore(db_session)

    async def aborted_execute(*args, **kwargs):
        raise OperationalError("SELECT bookings", {}, _PgError("40001"))

    monkeypatch.setattr(db_session, "execute", aborted_execute)

    with pytest.raises(StoreConflict):
        await store.find_overlapping(ROOM, 1, TimeWindow(at(10), at(11)))


@pytest.mark.asyncio
async def test_other_database_errors_are_not_conflicts(db_session, monkeypatch):
    store = SqlBookingStore(db_session)

    async def broken_execute(*args, **kwargs):
        raise OperationalError("SELECT bookings", {}, _PgError("53300"))

    monkeypatch.setattr(db_session, "execute", broken_execute)

    with pytest.raises(OperationalError):
        await store.find_overlapping(ROOM, 1, TimeWindow(at(10), at(11)))


@pytest.mark.asyncio
async def test_status_write_is_compare_and_set(client: AsyncClient, musician_headers, room, db_session):
    booking_id = (await _book(client, musician_headers, room.id, iso(10), iso(11))).json()["id"]
    store = SqlBookingStore(db_session)

    with pytest.raises(StaleBooking):
        await store.update_booking(booking_id, {"status": "cancelled"}, expected_status="confirmed")

    unchanged = await store.get_booking(booking_id)
    assert unchanged.status == "pending"

    confirmed = await store.update_booking(booking_id, {"status": "confirmed"}, expected_status="pending")
    assert confirmed.status == "confirmed"


@pytest.mark.asyncio
async def test_serialization_failure_on_update_returns_409(
    client: AsyncClient, musician_headers, owner_headers, room, db_session, monkeypatch
):
    booking_id = (await _book(client, musician_headers, room.id, iso(10), iso(11))).json()["id"]

    async def aborted_flush(*args, **kwargs):
        raise OperationalError("UPDATE bookings", {}, _PgError("40001"))

    monkeypatch.setattr(db_session, "flush", aborted_flush)
    response = await client.put(
        f"/api/v1/bookings/{booking_id}", json={"status": "confirmed"}, headers=owner_headers
    )
    assert response.status_code == 409

    monkeypatch.undo()
    current = await client.get(f"/api/v1/bookings/{booking_id}", headers=owner_headers)
    assert current.json()["status"] == "pending"
