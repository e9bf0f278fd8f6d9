"""
tests/test_permissions.py
Permission record defaults, per-category toggles, and the location endpoints.
"""

import pytest
from httpx import AsyncClient

from config.settings import settings
from shared.models.models import User
from tests.conftest import auth_headers


@pytest.mark.asyncio
async def test_defaults_created_on_first_read(client: AsyncClient, user: User):
    response = await client.get("/api/permissions", headers=auth_headers(user))
    assert response.status_code == 200
    data = response.json()
    assert data["location"]["enabled"] is False
    assert data["location"]["last_known_location"]["latitude"] is None
    assert data["contact"] == {"enabled": False, "granted_at": None, "share_with_partners": False}
    assert data["camera"]["enabled"] is False
    assert data["notifications"]["push"]["enabled"] is True
    assert data["notifications"]["push"]["granted_at"] is not None
    assert data["notifications"]["email"]["enabled"] is True
    assert data["notifications"]["sms"]["enabled"] is False
    assert data["storage"]["enabled"] is True
    assert data["analytics"]["enabled"] is False

    again = await client.get("/api/permissions", headers=auth_headers(user))
    assert again.json()["notifications"]["push"]["granted_at"] == data["notifications"]["push"]["granted_at"]


@pytest.mark.asyncio
async def test_enable_location_with_coordinates(client: AsyncClient, user: User):
    response = await client.put(
        "/api/permissions/location",
        json={"enabled": True, "latitude": 12.9716, "longitude": 77.5946, "city": "Bengaluru"},
        headers=auth_headers(user),
    )
    assert response.status_code == 200
    location = response.json()["location"]
    assert location["enabled"] is True
    assert location["granted_at"] is not None
    assert location["last_known_location"]["latitude"] == pytest.approx(12.9716)
    assert location["last_known_location"]["city"] == "Bengaluru"
    assert location["last_known_location"]["updated_at"] is not None


@pytest.mark.asyncio
async def test_disabling_location_clears_position(client: AsyncClient, user: User):
    await client.put(
        "/api/permissions/location",
        json={"enabled": True, "latitude": 28.61, "longitude": 77.20, "city": "Delhi"},
        headers=auth_headers(user),
    )
    response = await client.put(
        "/api/permissions/location", json={"enabled": False}, headers=auth_headers(user)
    )
    location = response.json()["location"]
    assert location["enabled"] is False
    assert location["granted_at"] is None
    assert location["last_known_location"]["latitude"] is None
    assert location["last_known_location"]["longitude"] is None
    assert location["last_known_location"]["city"] == ""


@pytest.mark.asyncio
async def test_coordinates_ignored_while_disabled(client: AsyncClient, user: User):
    response = await client.put(
        "/api/permissions/location",
        json={"enabled": False, "latitude": 10.0, "longitude": 10.0},
        headers=auth_headers(user),
    )
    assert response.json()["location"]["last_known_location"]["latitude"] is None


@pytest.mark.asyncio
async def test_out_of_range_coordinates_rejected(client: AsyncClient, user: User):
    response = await client.put(
        "/api/permissions/location",
        json={"enabled": True, "latitude": 91, "longitude": 200},
        headers=auth_headers(user),
    )
    assert response.status_code == 400
    fields = {e["field"] for e in response.json()["errors"]}
    assert fields == {"latitude", "longitude"}


@pytest.mark.asyncio
async def test_contact_share_requires_contact(client: AsyncClient, user: User):
    refused = await client.put(
        "/api/permissions/contact", json={"share_with_partners": True}, headers=auth_headers(user)
    )
    assert refused.status_code == 403

    allowed = await client.put(
        "/api/permissions/contact",
        json={"enabled": True, "share_with_partners": True},
        headers=auth_headers(user),
    )
    assert allowed.status_code == 200
    assert allowed.json()["contact"]["share_with_partners"] is True

    disabled = await client.put(
        "/api/permissions/contact", json={"enabled": False}, headers=auth_headers(user)
    )
    contact = disabled.json()["contact"]
    assert contact["enabled"] is False
    assert contact["granted_at"] is None
    assert contact["share_with_partners"] is False


@pytest.mark.asyncio
@pytest.mark.parametrize("category", ["camera", "storage", "analytics"])
async def test_simple_toggles(client: AsyncClient, user: User, category: str):
    on = await client.put(
        f"/api/permissions/{category}", json={"enabled": True}, headers=auth_headers(user)
    )
    assert on.status_code == 200
    assert on.json()[category]["enabled"] is True
    assert on.json()[category]["granted_at"] is not None

    off = await client.put(
        f"/api/permissions/{category}", json={"enabled": False}, headers=auth_headers(user)
    )
    assert off.json()[category] == {"enabled": False, "granted_at": None}


@pytest.mark.asyncio
async def test_unknown_category_rejected(client: AsyncClient, user: User):
    response = await client.put(
        "/api/permissions/microphone", json={"enabled": True}, headers=auth_headers(user)
    )
    assert response.status_code in (400, 404)


@pytest.mark.asyncio
async def test_notification_channels_toggle_independently(client: AsyncClient, user: User):
    response = await client.put(
        "/api/permissions/notifications",
        json={"sms": True, "push": False},
        headers=auth_headers(user),
    )
    assert response.status_code == 200
    channels = response.json()["notifications"]
    assert channels["sms"]["enabled"] is True
    assert channels["sms"]["granted_at"] is not None
    assert channels["push"] == {"enabled": False, "granted_at": None}
    assert channels["email"]["enabled"] is True


@pytest.mark.asyncio
async def test_permissions_require_auth(client: AsyncClient):
    response = await client.get("/api/permissions")
    assert response.status_code == 401


# ── /api/location ─────────────────────────────────────────────

@pytest.mark.asyncio
async def test_current_location_forbidden_while_disabled(client: AsyncClient, user: User):
    response = await client.get("/api/location/current", headers=auth_headers(user))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_current_location_missing_until_stored(client: AsyncClient, user: User):
    await client.put("/api/permissions/location", json={"enabled": True}, headers=auth_headers(user))
    response = await client.get("/api/location/current", headers=auth_headers(user))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_update_location_grants_implicitly(client: AsyncClient, user: User):
    response = await client.post(
        "/api/location/update",
        json={"latitude": 19.076, "longitude": 72.8777, "city": "Mumbai", "country": "India"},
        headers=auth_headers(user),
    )
    assert response.status_code == 200
    assert response.json()["city"] == "Mumbai"

    current = await client.get("/api/location/current", headers=auth_headers(user))
    assert current.status_code == 200
    assert current.json()["latitude"] == pytest.approx(19.076)

    permissions = await client.get("/api/permissions", headers=auth_headers(user))
    assert permissions.json()["location"]["enabled"] is True


@pytest.mark.asyncio
async def test_update_location_refused_without_implicit_grant(
    client: AsyncClient, user: User, monkeypatch
):
    monkeypatch.setattr(settings, "ALLOW_IMPLICIT_LOCATION_GRANT", False)
    response = await client.post(
        "/api/location/update",
        json={"latitude": 19.076, "longitude": 72.8777},
        headers=auth_headers(user),
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_update_location_merges_fields(client: AsyncClient, user: User):
    await client.post(
        "/api/location/update",
        json={"latitude": 1.0, "longitude": 2.0, "city": "Kochi", "state": "Kerala"},
        headers=auth_headers(user),
    )
    response = await client.post(
        "/api/location/update",
        json={"latitude": 1.5, "longitude": 2.5, "city": "Alappuzha"},
        headers=auth_headers(user),
    )
    data = response.json()
    assert data["city"] == "Alappuzha"
    assert data["state"] == "Kerala"


@pytest.mark.asyncio
async def test_update_location_requires_coordinates(client: AsyncClient, user: User):
    response = await client.post(
        "/api/location/update", json={"city": "Pune"}, headers=auth_headers(user)
    )
    assert response.status_code == 400


def test_has_permission_rules():
    from services.permission.service import has_permission
    from shared.models.models import Permission

    record = Permission(
        location_enabled=False,
        camera_enabled=True,
        push_enabled=False,
        email_enabled=True,
        sms_enabled=False,
    )
    assert has_permission(record, "camera")
    assert not has_permission(record, "location")
    assert has_permission(record, "notifications")
    assert not has_permission(record, "microphone")

    record.email_enabled = False
    assert not has_permission(record, "notifications")
