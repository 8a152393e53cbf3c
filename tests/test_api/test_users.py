"""Tests for user endpoints."""

import pytest
from httpx import AsyncClient

pytestmark = pytest.mark.asyncio

PAYLOAD = {
    "first_name": "Ada",
    "last_name": "Lovelace",
    "birthday": "1996-10-09",
    "timezone": "Asia/Ho_Chi_Minh",
    "location": {"city": "Ho Chi Minh City", "province": "Ho Chi Minh"},
}


class TestCreateUser:
    """Tests for POST /api/users."""

    async def test_create_user(self, client: AsyncClient, store):
        response = await client.post("/api/users", json=PAYLOAD)

        assert response.status_code == 201
        data = response.json()
        assert data["first_name"] == "Ada"
        assert data["birthday"] == "1996-10-09"
        assert data["timezone"] == "Asia/Ho_Chi_Minh"
        assert data["location"]["city"] == "Ho Chi Minh City"

        user = await store.get(data["id"])
        assert user.birthday_month_day == "10-09"

    @pytest.mark.parametrize(
        ("field", "value"),
        [
            ("first_name", ""),
            ("birthday", "09-10-1996"),
            ("birthday", "1996-02-30"),
            ("timezone", "Mars/Olympus_Mons"),
            ("location", {"city": "Hanoi"}),
        ],
    )
    async def test_validation_errors(self, client: AsyncClient, field, value):
        response = await client.post("/api/users", json={**PAYLOAD, field: value})

        assert response.status_code == 422


class TestUserLifecycle:
    """Tests for GET/PATCH/DELETE /api/users/{id}."""

    async def test_get_user(self, client: AsyncClient, user_factory):
        user = await user_factory()

        response = await client.get(f"/api/users/{user.id}")

        assert response.status_code == 200
        assert response.json()["id"] == str(user.id)

    async def test_get_missing_user(self, client: AsyncClient):
        response = await client.get("/api/users/00000000-0000-0000-0000-000000000000")
        assert response.status_code == 404

        response = await client.get("/api/users/not-a-uuid")
        assert response.status_code == 404

    async def test_patch_user(self, client: AsyncClient, user_factory, store):
        user = await user_factory(birthday="1990-01-15")

        response = await client.patch(
            f"/api/users/{user.id}",
            json={"birthday": "1990-03-02", "timezone": "Europe/Paris"},
        )

        assert response.status_code == 200
        assert response.json()["timezone"] == "Europe/Paris"
        updated = await store.get(user.id)
        assert updated.birthday_month_day == "03-02"

    async def test_patch_requires_a_field(self, client: AsyncClient, user_factory):
        user = await user_factory()

        response = await client.patch(f"/api/users/{user.id}", json={})

        assert response.status_code == 422

    async def test_delete_user(self, client: AsyncClient, user_factory, store):
        user = await user_factory()

        response = await client.delete(f"/api/users/{user.id}")
        assert response.status_code == 204
        assert await store.get(user.id) is None

        response = await client.delete(f"/api/users/{user.id}")
        assert response.status_code == 404

    async def test_timezones(self, client: AsyncClient):
        response = await client.get("/api/timezones")

        assert response.status_code == 200
        assert "Pacific/Kiritimati" in response.json()["timezones"]
