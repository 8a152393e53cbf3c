"""Tests for the user store and its recurrence index lookup."""

from datetime import date, datetime

import pytest

from app.models.delivery import DeliveryMarker
from app.schemas.user import UserUpdate

pytestmark = pytest.mark.asyncio


class TestUserStoreCrud:
    """Tests for create/get/update/delete."""

    async def test_create_sets_month_day_key(self, store, user_factory):
        user = await user_factory(birthday="1996-10-09", timezone="Asia/Ho_Chi_Minh")

        fetched = await store.get(user.id)
        assert fetched is not None
        assert fetched.birthday == date(1996, 10, 9)
        assert fetched.birthday_month_day == "10-09"
        assert fetched.location == {"city": "London", "province": "England"}

    async def test_get_unknown_or_malformed_id(self, store):
        assert await store.get("00000000-0000-0000-0000-000000000000") is None
        assert await store.get("not-a-uuid") is None

    async def test_update_birthday_moves_index_key(self, store, user_factory, kind):
        user = await user_factory(birthday="1990-01-15")

        updated = await store.update(user.id, UserUpdate(birthday="1990-03-02"))

        assert updated.birthday_month_day == "03-02"
        assert await store.query_by_month_day(kind, "01-15") == []
        assert [u.id for u in await store.query_by_month_day(kind, "03-02")] == [user.id]

    async def test_update_missing_user(self, store):
        assert await store.update("00000000-0000-0000-0000-000000000000", UserUpdate(first_name="X")) is None

    async def test_delete_removes_markers(self, store, ledger, user_factory):
        user = await user_factory()
        await ledger.mark_delivered(
            user.id, "birthday", date(2024, 1, 15), "UTC", datetime(2024, 1, 15, 9)
        )

        assert await store.delete(user.id) is True
        assert await store.get(user.id) is None
        assert await ledger.get_marker(user.id, "birthday") is None
        assert await store.delete(user.id) is False


class TestQueryByMonthDay:
    """Tests for query_by_month_day."""

    async def test_returns_matching_users_only(self, store, user_factory, kind):
        ada = await user_factory(birthday="1990-01-15")
        await user_factory(first_name="Grace", birthday="1990-01-16")

        users = await store.query_by_month_day(kind, "01-15")

        assert [u.id for u in users] == [ada.id]

    async def test_push_down_excludes_users_delivered_on_day(self, store, user_factory, db_session, kind):
        delivered = await user_factory(first_name="Delivered")
        stale = await user_factory(first_name="LastYear")
        fresh = await user_factory(first_name="Fresh")

        db_session.add_all(
            [
                DeliveryMarker(
                    user_id=delivered.id,
                    event_type="birthday",
                    last_delivered_date=date(2024, 1, 15),
                    last_delivered_at=datetime(2024, 1, 15, 9),
                ),
                DeliveryMarker(
                    user_id=stale.id,
                    event_type="birthday",
                    last_delivered_date=date(2023, 1, 15),
                    last_delivered_at=datetime(2023, 1, 15, 9),
                ),
            ]
        )
        await db_session.commit()

        users = await store.query_by_month_day(kind, "01-15", exclude_delivered_on=date(2024, 1, 15))

        assert {u.id for u in users} == {stale.id, fresh.id}
