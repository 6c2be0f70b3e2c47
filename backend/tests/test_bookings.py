"""
Tests for the booking lifecycle: creation, reads, update/cancel windows,
operator transitions and concurrent writers.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from conftest import reload, utcnow
from tour_api.core.exceptions import ConflictError, InvalidStateError, ValidationError
from tour_api.models.booking import Booking
from tour_api.models.notification import Notification
from tour_api.schemas.booking import BookingCreate, BookingUpdate
from tour_api.services import booking_service


def _iso(dt) -> str:
    return dt.isoformat()


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_booking(client: AsyncClient, auth_headers, test_place):
    response = await client.post(
        "/api/bookings",
        json={
            "place_id": test_place.id,
            "service_type": "tour",
            "booking_date": _iso(utcnow() + timedelta(days=5)),
            "number_of_guests": 2,
            "special_requests": "Arabic-speaking guide",
        },
        headers=auth_headers,
    )
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Booking created successfully"
    data = body["data"]
    assert data["status"] == "pending"
    assert data["payment_status"] == "pending"
    assert data["currency"] == "SYP"
    assert data["version"] == 1
    assert Decimal(str(data["total_amount"])) == Decimal("5000")
    assert data["booking_number"].startswith("DAM-")


@pytest.mark.asyncio
async def test_create_hotel_booking_uses_default_nightly_rate(client: AsyncClient, auth_headers, hotel_place):
    response = await client.post(
        "/api/bookings",
        json={
            "place_id": hotel_place.id,
            "service_type": "hotel",
            "booking_date": _iso(utcnow() + timedelta(days=5)),
            "number_of_guests": 3,
        },
        headers=auth_headers,
    )
    assert response.status_code == 201
    assert Decimal(str(response.json()["data"]["total_amount"])) == Decimal("30000")


@pytest.mark.asyncio
async def test_create_booking_writes_notification(client: AsyncClient, auth_headers, test_place, db_session, test_user):
    response = await client.post(
        "/api/bookings",
        json={
            "place_id": test_place.id,
            "service_type": "tour",
            "booking_date": _iso(utcnow() + timedelta(days=5)),
        },
        headers=auth_headers,
    )
    assert response.status_code == 201
    rows = (
        await db_session.execute(select(Notification).where(Notification.user_id == test_user.id))
    ).scalars().all()
    assert len(rows) == 1
    assert rows[0].data["booking_id"] == response.json()["data"]["id"]


@pytest.mark.asyncio
async def test_create_booking_in_past_rejected(client: AsyncClient, auth_headers, test_place):
    response = await client.post(
        "/api/bookings",
        json={
            "place_id": test_place.id,
            "service_type": "tour",
            "booking_date": _iso(utcnow() - timedelta(minutes=5)),
        },
        headers=auth_headers,
    )
    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "message": "Cannot book a date in the past",
        "error": "booking_date_in_past",
    }


@pytest.mark.asyncio
async def test_create_booking_missing_fields(client: AsyncClient, auth_headers, test_place):
    response = await client.post(
        "/api/bookings",
        json={"place_id": test_place.id},
        headers=auth_headers,
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Place, service type and booking date are required"


@pytest.mark.asyncio
async def test_create_booking_unknown_service_type(client: AsyncClient, auth_headers, test_place):
    response = await client.post(
        "/api/bookings",
        json={
            "place_id": test_place.id,
            "service_type": "spa",
            "booking_date": _iso(utcnow() + timedelta(days=5)),
        },
        headers=auth_headers,
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Unknown service type: spa"


@pytest.mark.asyncio
async def test_create_booking_unknown_place(client: AsyncClient, auth_headers):
    response = await client.post(
        "/api/bookings",
        json={
            "place_id": 9999,
            "service_type": "tour",
            "booking_date": _iso(utcnow() + timedelta(days=5)),
        },
        headers=auth_headers,
    )
    assert response.status_code == 404
    assert response.json()["message"] == "Place not found"


@pytest.mark.asyncio
async def test_create_booking_invalid_guest_count(client: AsyncClient, auth_headers, test_place):
    """Schema violations use the same 400 envelope."""
    response = await client.post(
        "/api/bookings",
        json={
            "place_id": test_place.id,
            "service_type": "tour",
            "booking_date": _iso(utcnow() + timedelta(days=5)),
            "number_of_guests": 0,
        },
        headers=auth_headers,
    )
    assert response.status_code == 400
    assert response.json()["success"] is False
    assert "error" in response.json()


@pytest.mark.asyncio
async def test_create_booking_unauthenticated(client: AsyncClient, test_place):
    response = await client.post(
        "/api/bookings",
        json={"place_id": test_place.id, "service_type": "tour"},
    )
    assert response.status_code == 401
    assert response.json()["message"] == "Authentication required"


@pytest.mark.asyncio
async def test_same_user_may_book_same_place_and_day_twice(client: AsyncClient, auth_headers, test_place):
    payload = {
        "place_id": test_place.id,
        "service_type": "tour",
        "booking_date": _iso(utcnow() + timedelta(days=5)),
    }
    first = await client.post("/api/bookings", json=payload, headers=auth_headers)
    second = await client.post("/api/bookings", json=payload, headers=auth_headers)
    assert first.status_code == 201
    assert second.status_code == 201
    assert first.json()["data"]["booking_number"] != second.json()["data"]["booking_number"]


@pytest.mark.asyncio
async def test_booking_number_collision_is_retried(db_session, booking_factory, test_user, test_place, monkeypatch):
    await booking_factory(booking_number="DAM-1-1")
    user_id, place_id = test_user.id, test_place.id
    numbers = iter(["DAM-1-1", "DAM-2-2"])
    monkeypatch.setattr(booking_service, "generate_booking_number", lambda: next(numbers))

    booking = await booking_service.create_booking(
        db_session,
        user_id,
        BookingCreate(
            place_id=place_id,
            service_type="tour",
            booking_date=utcnow() + timedelta(days=3),
        ),
    )
    await db_session.commit()
    assert booking.booking_number == "DAM-2-2"


@pytest.mark.asyncio
async def test_booking_number_collision_gives_up(db_session, booking_factory, test_user, test_place, monkeypatch):
    await booking_factory(booking_number="DAM-1-1")
    user_id, place_id = test_user.id, test_place.id
    monkeypatch.setattr(booking_service, "generate_booking_number", lambda: "DAM-1-1")

    with pytest.raises(ConflictError) as exc:
        await booking_service.create_booking(
            db_session,
            user_id,
            BookingCreate(
                place_id=place_id,
                service_type="tour",
                booking_date=utcnow() + timedelta(days=3),
            ),
        )
    assert exc.value.message_key == "booking_number_collision"


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_my_bookings_defaults(client: AsyncClient, auth_headers, booking_factory):
    for _ in range(12):
        await booking_factory()

    response = await client.get("/api/bookings", headers=auth_headers)
    assert response.status_code == 200
    body = response.json()
    assert len(body["data"]) == 10
    assert body["pagination"] == {
        "page": 1,
        "limit": 10,
        "total": 12,
        "total_pages": 2,
        "has_next_page": True,
        "has_prev_page": False,
    }
    assert body["data"][0]["place"]["name_en"] == "Umayyad Mosque"


@pytest.mark.asyncio
async def test_list_my_bookings_status_filter(client: AsyncClient, auth_headers, booking_factory):
    await booking_factory()
    await booking_factory(status="cancelled")

    response = await client.get("/api/bookings?status=cancelled", headers=auth_headers)
    assert response.json()["pagination"]["total"] == 1
    assert response.json()["data"][0]["status"] == "cancelled"


@pytest.mark.asyncio
async def test_get_booking_of_other_user_is_not_found(client: AsyncClient, other_headers, booking_factory):
    booking = await booking_factory()
    response = await client.get(f"/api/bookings/{booking.id}", headers=other_headers)
    assert response.status_code == 404
    assert response.json()["message"] == "Booking not found"


# ---------------------------------------------------------------------------
# Update / cancel windows
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_update_guests_recomputes_hotel_price(client: AsyncClient, auth_headers, booking_factory, hotel_place):
    booking = await booking_factory(
        place_id=hotel_place.id,
        service_type="hotel",
        number_of_guests=1,
        total_amount=Decimal("10000"),
    )
    response = await client.put(
        f"/api/bookings/{booking.id}",
        json={"number_of_guests": 3},
        headers=auth_headers,
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["number_of_guests"] == 3
    assert Decimal(str(data["total_amount"])) == Decimal("30000")
    assert data["version"] == 2


@pytest.mark.asyncio
async def test_update_special_requests_only(client: AsyncClient, auth_headers, booking_factory):
    booking = await booking_factory(special_requests="window seat")
    response = await client.put(
        f"/api/bookings/{booking.id}",
        json={"special_requests": "wheelchair access"},
        headers=auth_headers,
    )
    data = response.json()["data"]
    assert data["special_requests"] == "wheelchair access"
    assert data["number_of_guests"] == 2
    assert Decimal(str(data["total_amount"])) == Decimal("5000")


@pytest.mark.asyncio
async def test_update_within_48_hours_rejected(client: AsyncClient, auth_headers, booking_factory):
    booking = await booking_factory(booking_date=utcnow() + timedelta(hours=47))
    response = await client.put(
        f"/api/bookings/{booking.id}",
        json={"number_of_guests": 3},
        headers=auth_headers,
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Cannot modify a booking less than 48 hours before its date"


@pytest.mark.asyncio
async def test_update_confirmed_booking_rejected(client: AsyncClient, auth_headers, booking_factory):
    booking = await booking_factory(status="confirmed")
    response = await client.put(
        f"/api/bookings/{booking.id}",
        json={"number_of_guests": 3},
        headers=auth_headers,
    )
    assert response.status_code == 400
    assert response.json()["message"] == "A confirmed booking cannot be modified"


@pytest.mark.asyncio
async def test_update_window_boundary_is_inclusive(db_session, booking_factory, test_user):
    now = utcnow()
    booking = await booking_factory(booking_date=now + timedelta(hours=48))

    updated = await booking_service.update_booking(
        db_session, booking.id, test_user.id, BookingUpdate(number_of_guests=4), now=now
    )
    assert updated.number_of_guests == 4


@pytest.mark.asyncio
async def test_update_just_inside_window_rejected(db_session, booking_factory, test_user):
    now = utcnow()
    booking = await booking_factory(booking_date=now + timedelta(hours=48) - timedelta(seconds=1))

    with pytest.raises(InvalidStateError) as exc:
        await booking_service.update_booking(
            db_session, booking.id, test_user.id, BookingUpdate(number_of_guests=4), now=now
        )
    assert exc.value.message_key == "booking_update_window"


@pytest.mark.asyncio
async def test_cancel_booking(client: AsyncClient, auth_headers, booking_factory):
    booking = await booking_factory(status="confirmed", payment_status="paid")
    response = await client.put(
        f"/api/bookings/{booking.id}/cancel",
        json={"cancellation_reason": "Change of plans"},
        headers=auth_headers,
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "cancelled"
    assert data["cancellation_reason"] == "Change of plans"
    assert data["cancelled_at"] is not None


@pytest.mark.asyncio
async def test_cancel_without_body(client: AsyncClient, auth_headers, booking_factory):
    booking = await booking_factory()
    response = await client.put(f"/api/bookings/{booking.id}/cancel", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["data"]["cancellation_reason"] is None


@pytest.mark.asyncio
async def test_cancel_23_hours_before_rejected(client: AsyncClient, auth_headers, booking_factory):
    booking = await booking_factory(booking_date=utcnow() + timedelta(hours=23))
    response = await client.put(f"/api/bookings/{booking.id}/cancel", headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Cannot cancel within 24 hours of the booking date"


@pytest.mark.asyncio
async def test_cancel_message_is_localized(client: AsyncClient, auth_headers, booking_factory):
    booking = await booking_factory(booking_date=utcnow() + timedelta(hours=23))
    response = await client.put(
        f"/api/bookings/{booking.id}/cancel",
        headers={**auth_headers, "Accept-Language": "ar-SY,ar;q=0.9"},
    )
    assert response.status_code == 400
    assert response.json()["message"] == "لا يمكن إلغاء الحجز قبل أقل من 24 ساعة من الموعد"


@pytest.mark.asyncio
async def test_cancel_window_boundary_is_inclusive(db_session, booking_factory, test_user):
    now = utcnow()
    booking = await booking_factory(booking_date=now + timedelta(hours=24))

    cancelled = await booking_service.cancel_booking(db_session, booking.id, test_user.id, now=now)
    assert cancelled.status == "cancelled"


@pytest.mark.asyncio
async def test_cancel_twice_rejected(client: AsyncClient, auth_headers, booking_factory):
    booking = await booking_factory(status="cancelled")
    response = await client.put(f"/api/bookings/{booking.id}/cancel", headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["message"] == "A cancelled booking cannot be cancelled"


@pytest.mark.asyncio
async def test_cancel_completed_rejected(db_session, booking_factory, test_user):
    booking = await booking_factory(status="completed")
    with pytest.raises(InvalidStateError):
        await booking_service.cancel_booking(db_session, booking.id, test_user.id)


# ---------------------------------------------------------------------------
# Operator transitions
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_admin_confirm_defaults_to_cash(client: AsyncClient, admin_headers, booking_factory):
    booking = await booking_factory()
    response = await client.put(f"/api/admin/bookings/{booking.id}/confirm", headers=admin_headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "confirmed"
    assert data["payment_status"] == "paid"
    assert data["payment_method"] == "cash"
    assert data["confirmed_at"] is not None


@pytest.mark.asyncio
async def test_admin_confirm_with_transaction(client: AsyncClient, admin_headers, booking_factory):
    booking = await booking_factory()
    response = await client.put(
        f"/api/admin/bookings/{booking.id}/confirm",
        json={"payment_method": "bank_transfer", "transaction_id": "TX-77"},
        headers=admin_headers,
    )
    data = response.json()["data"]
    assert data["payment_method"] == "bank_transfer"
    assert data["transaction_id"] == "TX-77"


@pytest.mark.asyncio
async def test_confirm_requires_admin(client: AsyncClient, auth_headers, booking_factory):
    booking = await booking_factory()
    response = await client.put(f"/api/admin/bookings/{booking.id}/confirm", headers=auth_headers)
    assert response.status_code == 403
    assert response.json()["message"] == "Admin access required"


@pytest.mark.asyncio
async def test_confirm_missing_booking(client: AsyncClient, admin_headers):
    response = await client.put("/api/admin/bookings/4242/confirm", headers=admin_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_complete_after_booking_date(client: AsyncClient, admin_headers, booking_factory):
    booking = await booking_factory(
        status="confirmed",
        payment_status="paid",
        booking_date=utcnow() - timedelta(hours=1),
    )
    response = await client.put(f"/api/admin/bookings/{booking.id}/complete", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "completed"
    assert response.json()["data"]["completed_at"] is not None


@pytest.mark.asyncio
async def test_complete_before_booking_date_rejected(client: AsyncClient, admin_headers, booking_factory):
    booking = await booking_factory(status="confirmed", payment_status="paid")
    response = await client.put(f"/api/admin/bookings/{booking.id}/complete", headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Cannot complete a booking before its date"


@pytest.mark.asyncio
async def test_complete_pending_rejected(db_session, booking_factory):
    booking = await booking_factory(booking_date=utcnow() - timedelta(hours=1))
    with pytest.raises(InvalidStateError) as exc:
        await booking_service.complete_booking(db_session, booking.id)
    assert exc.value.message_key == "booking_invalid_transition"


@pytest.mark.asyncio
async def test_complete_boundary_now_equals_booking_date(db_session, booking_factory):
    now = utcnow()
    booking = await booking_factory(status="confirmed", booking_date=now)
    completed = await booking_service.complete_booking(db_session, booking.id, now=now)
    assert completed.status == "completed"


@pytest.mark.asyncio
async def test_admin_list_filters_and_stats(client: AsyncClient, admin_headers, booking_factory, other_user):
    await booking_factory(total_amount=Decimal("5000"))
    await booking_factory(status="confirmed", payment_status="paid", total_amount=Decimal("7000"))
    await booking_factory(status="confirmed", payment_status="pending", total_amount=Decimal("9000"))
    await booking_factory(status="cancelled")
    await booking_factory(user_id=other_user.id, status="completed", payment_status="paid")

    response = await client.get("/api/admin/bookings", headers=admin_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["pagination"]["limit"] == 20
    assert body["pagination"]["total"] == 5
    stats = body["stats"]
    assert stats["total"] == 5
    assert stats["pending"] == 1
    assert stats["confirmed"] == 2
    assert stats["completed"] == 1
    assert stats["cancelled"] == 1
    # Only confirmed AND paid bookings count as revenue.
    assert Decimal(str(stats["total_revenue"])) == Decimal("7000")

    filtered = await client.get(
        f"/api/admin/bookings?user_id={other_user.id}", headers=admin_headers
    )
    assert filtered.json()["pagination"]["total"] == 1
    # Stats are global, not filtered.
    assert filtered.json()["stats"]["total"] == 5


@pytest.mark.asyncio
async def test_admin_list_date_range(client: AsyncClient, admin_headers, booking_factory):
    soon = await booking_factory(booking_date=utcnow() + timedelta(days=2))
    await booking_factory(booking_date=utcnow() + timedelta(days=30))

    response = await client.get(
        "/api/admin/bookings",
        params={"end_date": _iso(utcnow() + timedelta(days=5))},
        headers=admin_headers,
    )
    ids = [b["id"] for b in response.json()["data"]]
    assert ids == [soon.id]


# ---------------------------------------------------------------------------
# Concurrent writers
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_concurrent_confirms_second_gets_conflict(session_factory, booking_factory):
    """
    Both requests read version 1. The first write bumps it to 2, so the
    second one's conditional UPDATE matches no row.
    """
    booking = await booking_factory()

    async with session_factory() as first, session_factory() as second:
        stale = await second.get(Booking, booking.id)  # stale copy held by the slower request

        await booking_service.confirm_booking(first, booking.id, "cash", "TX-1")
        await first.commit()

        with pytest.raises(ConflictError) as exc:
            await booking_service.confirm_booking(second, booking.id, "card", "TX-2")
        assert exc.value.message_key == "booking_modified_concurrently"
        await second.rollback()

    async with session_factory() as check:
        final = await check.get(Booking, booking.id)
        assert final.status == "confirmed"
        assert final.transaction_id == "TX-1"
        assert final.version == 2


@pytest.mark.asyncio
async def test_cancel_racing_confirm_does_not_clobber(session_factory, booking_factory, test_user):
    booking = await booking_factory()

    async with session_factory() as admin_req, session_factory() as user_req:
        stale = await user_req.get(Booking, booking.id)

        await booking_service.confirm_booking(admin_req, booking.id)
        await admin_req.commit()

        with pytest.raises(ConflictError):
            await booking_service.cancel_booking(user_req, booking.id, test_user.id)
        await user_req.rollback()

    async with session_factory() as check:
        assert (await check.get(Booking, booking.id)).status == "confirmed"


@pytest.mark.asyncio
async def test_conflict_maps_to_409(client: AsyncClient, auth_headers, booking_factory, monkeypatch):
    booking = await booking_factory()

    async def raise_conflict(*args, **kwargs):
        raise ConflictError("booking_modified_concurrently")

    monkeypatch.setattr(booking_service, "guarded_update", raise_conflict)
    response = await client.put(f"/api/bookings/{booking.id}/cancel", headers=auth_headers)
    assert response.status_code == 409
    assert response.json()["message"] == (
        "The booking was changed by another request, reload it and try again"
    )


@pytest.mark.asyncio
async def test_validation_error_on_service_layer(db_session, test_user):
    with pytest.raises(ValidationError):
        await booking_service.validate_create(db_session, BookingCreate())
