"""
tests/test_admin.py
Admin-only dashboard, user moderation and booking settlement.
"""

import copy
from decimal import Decimal

import pytest
from httpx import AsyncClient

from shared.models.models import User, UserCredential
from tests.conftest import PASSWORD, auth_headers
from tests.test_bookings import FLIGHT


async def create_booking(client: AsyncClient, owner: User) -> dict:
    response = await client.post(
        "/api/bookings", json=copy.deepcopy(FLIGHT), headers=auth_headers(owner)
    )
    assert response.status_code == 201
    return response.json()


@pytest.mark.asyncio
async def test_regular_user_gets_403(client: AsyncClient, user: User):
    response = await client.get("/api/admin/dashboard", headers=auth_headers(user))
    assert response.status_code == 403
    assert response.json()["code"] == "ForbiddenError"


@pytest.mark.asyncio
async def test_dashboard_stats(client: AsyncClient, admin_user: User, user: User):
    booking = await create_booking(client, user)
    await create_booking(client, user)
    await client.post(
        f"/api/bookings/{booking['id']}/confirm",
        json={"payment_method": "upi"},
        headers=auth_headers(user),
    )

    response = await client.get("/api/admin/dashboard", headers=auth_headers(admin_user))
    assert response.status_code == 200
    data = response.json()
    stats = data["stats"]
    assert stats["total_users"] == 2
    assert stats["admin_users"] == 1
    assert stats["total_bookings"] == 2
    assert stats["bookings_by_status"]["pending"] == 1
    assert stats["bookings_by_status"]["confirmed"] == 1
    assert stats["bookings_by_status"]["refunded"] == 0
    assert Decimal(str(stats["total_revenue"])) == Decimal("4400")
    assert len(data["recent_bookings"]) == 2


@pytest.mark.asyncio
async def test_list_and_search_users(client: AsyncClient, admin_user: User, user: User, other_user: User):
    response = await client.get("/api/admin/users", headers=auth_headers(admin_user))
    assert response.json()["pagination"]["total"] == 3

    search = await client.get("/api/admin/users?search=other", headers=auth_headers(admin_user))
    items = search.json()["items"]
    assert [u["id"] for u in items] == [str(other_user.id)]

    admins = await client.get("/api/admin/users?role=admin", headers=auth_headers(admin_user))
    assert admins.json()["pagination"]["total"] == 1


@pytest.mark.asyncio
async def test_user_detail(client: AsyncClient, admin_user: User, user: User):
    await create_booking(client, user)
    response = await client.get(f"/api/admin/users/{user.id}", headers=auth_headers(admin_user))
    assert response.status_code == 200
    data = response.json()
    assert data["user"]["email"] == user.email
    assert len(data["recent_bookings"]) == 1
    assert data["permissions"] is None


@pytest.mark.asyncio
async def test_promote_user(client: AsyncClient, admin_user: User, user: User):
    response = await client.put(
        f"/api/admin/users/{user.id}/role", json={"role": "admin"}, headers=auth_headers(admin_user)
    )
    assert response.status_code == 200
    assert response.json()["role"] == "admin"

    dashboard = await client.get("/api/admin/dashboard", headers=auth_headers(user))
    assert dashboard.status_code == 200


@pytest.mark.asyncio
async def test_admin_cannot_demote_self(client: AsyncClient, admin_user: User):
    response = await client.put(
        f"/api/admin/users/{admin_user.id}/role",
        json={"role": "user"},
        headers=auth_headers(admin_user),
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_deactivate_and_toggle_user(client: AsyncClient, admin_user: User, user: User):
    url = f"/api/admin/users/{user.id}/status"
    off = await client.put(url, json={"is_active": False}, headers=auth_headers(admin_user))
    assert off.status_code == 200
    assert off.json()["is_active"] is False

    login = await client.post("/api/auth/login", json={"email": user.email, "password": PASSWORD})
    assert login.status_code == 403

    toggled = await client.put(url, headers=auth_headers(admin_user))
    assert toggled.json()["is_active"] is True


@pytest.mark.asyncio
async def test_admin_cannot_deactivate_self(client: AsyncClient, admin_user: User):
    response = await client.put(
        f"/api/admin/users/{admin_user.id}/status",
        json={"is_active": False},
        headers=auth_headers(admin_user),
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_delete_user(client: AsyncClient, admin_user: User, user: User, session_factory):
    headers = auth_headers(user)
    await client.get("/api/permissions", headers=headers)

    response = await client.delete(f"/api/admin/users/{user.id}", headers=auth_headers(admin_user))
    assert response.status_code == 200

    assert (await client.get("/api/auth/me", headers=headers)).status_code == 401
    async with session_factory() as session:
        assert await session.get(UserCredential, user.id) is None

    missing = await client.delete(f"/api/admin/users/{user.id}", headers=auth_headers(admin_user))
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_admin_cannot_delete_self(client: AsyncClient, admin_user: User):
    response = await client.delete(
        f"/api/admin/users/{admin_user.id}", headers=auth_headers(admin_user)
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_all_bookings_view(client: AsyncClient, admin_user: User, user: User, other_user: User):
    await create_booking(client, user)
    await create_booking(client, other_user)

    response = await client.get("/api/admin/bookings", headers=auth_headers(admin_user))
    assert response.json()["pagination"]["total"] == 2

    mine = await client.get(
        f"/api/admin/bookings?user_id={other_user.id}", headers=auth_headers(admin_user)
    )
    assert mine.json()["pagination"]["total"] == 1


@pytest.mark.asyncio
async def test_complete_confirmed_booking(client: AsyncClient, admin_user: User, user: User):
    booking = await create_booking(client, user)
    complete_url = f"/api/admin/bookings/{booking['id']}/complete"

    early = await client.post(complete_url, headers=auth_headers(admin_user))
    assert early.status_code == 409

    await client.post(
        f"/api/bookings/{booking['id']}/confirm",
        json={"payment_method": "cash"},
        headers=auth_headers(user),
    )
    response = await client.post(complete_url, headers=auth_headers(admin_user))
    assert response.status_code == 200
    assert response.json()["status"] == "completed"

    cancel = await client.post(f"/api/bookings/{booking['id']}/cancel", headers=auth_headers(user))
    assert cancel.status_code == 409


@pytest.mark.asyncio
async def test_refund_cancelled_booking(client: AsyncClient, admin_user: User, user: User):
    booking = await create_booking(client, user)
    await client.post(
        f"/api/bookings/{booking['id']}/confirm",
        json={"payment_method": "debit-card"},
        headers=auth_headers(user),
    )
    await client.post(f"/api/bookings/{booking['id']}/cancel", headers=auth_headers(user))

    response = await client.post(
        f"/api/admin/bookings/{booking['id']}/refund", headers=auth_headers(admin_user)
    )
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "refunded"
    assert data["payment"]["status"] == "refunded"
    assert data["cancellation"]["refund_status"] == "completed"


@pytest.mark.asyncio
async def test_send_notification_to_user(client: AsyncClient, admin_user: User, user: User):
    response = await client.post(
        f"/api/admin/users/{user.id}/notifications",
        json={"type": "alert", "title": "Heads up", "message": "Terminal change", "priority": "high"},
        headers=auth_headers(admin_user),
    )
    assert response.status_code == 201
    assert response.json()["user_id"] == str(user.id)

    inbox = await client.get("/api/notifications?type=alert", headers=auth_headers(user))
    assert inbox.json()["items"][0]["title"] == "Heads up"
