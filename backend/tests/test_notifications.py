"""
Tests for in-app notifications.
"""

import pytest
from httpx import AsyncClient

from tour_api.models.notification import Notification


async def _notify(db, user, title="Hello", is_read=False) -> Notification:
    notification = Notification(
        user_id=user.id,
        type="system",
        title_ar="مرحبا",
        title_en=title,
        message_ar="رسالة",
        message_en="Message",
        is_read=is_read,
    )
    db.add(notification)
    await db.commit()
    await db.refresh(notification)
    return notification


@pytest.mark.asyncio
async def test_list_with_unread_count(client: AsyncClient, auth_headers, db_session, test_user, other_user):
    await _notify(db_session, test_user, "first")
    await _notify(db_session, test_user, "second", is_read=True)
    await _notify(db_session, other_user, "not mine")

    response = await client.get("/api/notifications", headers=auth_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["unread_count"] == 1
    assert body["pagination"]["total"] == 2
    assert {n["title_en"] for n in body["data"]} == {"first", "second"}


@pytest.mark.asyncio
async def test_mark_read(client: AsyncClient, auth_headers, db_session, test_user):
    notification = await _notify(db_session, test_user)

    response = await client.put(f"/api/notifications/{notification.id}/read", headers=auth_headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["is_read"] is True
    assert data["read_at"] is not None


@pytest.mark.asyncio
async def test_mark_read_other_users_notification(client: AsyncClient, other_headers, db_session, test_user):
    notification = await _notify(db_session, test_user)

    response = await client.put(f"/api/notifications/{notification.id}/read", headers=other_headers)
    assert response.status_code == 404
    assert response.json()["message"] == "Notification not found"


@pytest.mark.asyncio
async def test_mark_all_read(client: AsyncClient, auth_headers, db_session, test_user):
    await _notify(db_session, test_user)
    await _notify(db_session, test_user)
    await _notify(db_session, test_user, is_read=True)

    response = await client.put("/api/notifications/read-all", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["data"] == {"updated": 2}

    listing = await client.get("/api/notifications", headers=auth_headers)
    assert listing.json()["unread_count"] == 0


@pytest.mark.asyncio
async def test_booking_lifecycle_writes_notifications(client: AsyncClient, auth_headers, admin_headers, booking_factory):
    booking = await booking_factory()
    await client.put(f"/api/admin/bookings/{booking.id}/confirm", headers=admin_headers)

    response = await client.get("/api/notifications", headers=auth_headers)
    titles = [n["title_en"] for n in response.json()["data"]]
    assert "Booking confirmed! ✅" in titles
