"""Tests for subscription storage and radius queries."""

import pytest

from pickup_push.errors import ValidationError
from pickup_push.services.geo import haversine_km, select_nearby
from pickup_push.services.subscriptions import SubscriptionInfo, SubscriptionKeys, SubscriptionStore


def make_subscription(endpoint="https://push.example.com/abc", p256dh="p256dh-key", auth="auth-key"):
    return SubscriptionInfo(endpoint=endpoint, keys=SubscriptionKeys(p256dh=p256dh, auth=auth))


class TestSave:
    """Test idempotent upsert by endpoint."""

    def test_resubscribe_keeps_single_row(self, run_db):
        async def body(db):
            store = SubscriptionStore(db)
            await store.save("user-1", make_subscription(), 40.0, -73.0)
            await store.save(
                "user-1",
                make_subscription(p256dh="new-p256dh", auth="new-auth"),
                41.0,
                -74.0,
            )
            return await store.count(), await store.get_by_endpoint("https://push.example.com/abc")

        count, row = run_db(body)

        assert count == 1
        assert row.p256dh_key == "new-p256dh"
        assert row.auth_key == "new-auth"
        assert (row.latitude, row.longitude) == (41.0, -74.0)

    def test_resubscribe_by_other_user_transfers_ownership(self, run_db):
        async def body(db):
            store = SubscriptionStore(db)
            await store.save("user-1", make_subscription(), 40.0, -73.0)
            await store.save("user-2", make_subscription(), 40.0, -73.0)
            return (
                await store.count(),
                await store.list_for_user("user-1"),
                await store.list_for_user("user-2"),
            )

        count, first, second = run_db(body)

        assert count == 1
        assert first == []
        assert len(second) == 1

    def test_resubscribe_without_location_keeps_last_known(self, run_db):
        async def body(db):
            store = SubscriptionStore(db)
            await store.save("user-1", make_subscription(), 40.0, -73.0)
            return await store.save("user-1", make_subscription(auth="rotated"))

        row = run_db(body)

        assert row.auth_key == "rotated"
        assert (row.latitude, row.longitude) == (40.0, -73.0)

    def test_subscription_without_location(self, run_db):
        async def body(db):
            return await SubscriptionStore(db).save("user-1", make_subscription())

        row = run_db(body)

        assert row.has_location is False
        assert row.created_at is not None

    @pytest.mark.parametrize(
        "subscription",
        [
            make_subscription(endpoint=""),
            make_subscription(p256dh=""),
            make_subscription(auth=""),
        ],
    )
    def test_rejects_missing_fields(self, run_db, subscription):
        async def body(db):
            store = SubscriptionStore(db)
            with pytest.raises(ValidationError):
                await store.save("user-1", subscription)
            return await store.count()

        assert run_db(body) == 0

    def test_rejects_half_a_location(self, run_db):
        async def body(db):
            with pytest.raises(ValidationError):
                await SubscriptionStore(db).save("user-1", make_subscription(), 40.0, None)

        run_db(body)


class TestSubscriptionInfo:
    """Test parsing the browser's subscription JSON."""

    def test_from_dict(self):
        info = SubscriptionInfo.from_dict({
            "endpoint": "https://push.example.com/abc",
            "expirationTime": None,
            "keys": {"p256dh": "key", "auth": "secret"},
        })

        assert info.endpoint == "https://push.example.com/abc"
        assert info.keys.p256dh == "key"
        assert info.keys.auth == "secret"

    @pytest.mark.parametrize(
        "data,field",
        [
            ({"keys": {"p256dh": "k", "auth": "a"}}, "endpoint"),
            ({"endpoint": "https://push.example.com/abc"}, "keys"),
            ("not-a-dict", "subscription"),
        ],
    )
    def test_missing_fields(self, data, field):
        with pytest.raises(ValidationError) as exc_info:
            SubscriptionInfo.from_dict(data)

        assert exc_info.value.field == field


class TestRemove:
    """Test unsubscribe semantics."""

    def test_remove_existing(self, run_db):
        async def body(db):
            store = SubscriptionStore(db)
            await store.save("user-1", make_subscription())
            removed = await store.remove("user-1", "https://push.example.com/abc")
            return removed, await store.count()

        assert run_db(body) == (1, 0)

    def test_remove_unknown_endpoint_is_noop(self, run_db):
        async def body(db):
            store = SubscriptionStore(db)
            await store.save("user-1", make_subscription())
            removed = await store.remove("user-1", "https://push.example.com/never-registered")
            return removed, await store.count()

        assert run_db(body) == (0, 1)

    def test_remove_does_not_touch_other_users_endpoint(self, run_db):
        async def body(db):
            store = SubscriptionStore(db)
            await store.save("user-1", make_subscription())
            await store.remove("user-2", "https://push.example.com/abc")
            return await store.count()

        assert run_db(body) == 1

    def test_remove_endpoint_twice(self, run_db):
        async def body(db):
            store = SubscriptionStore(db)
            await store.save("user-1", make_subscription())
            first = await store.remove_endpoint("https://push.example.com/abc")
            second = await store.remove_endpoint("https://push.example.com/abc")
            return first, second

        assert run_db(body) == (1, 0)


class TestQueryWithinRadius:
    """Test geo-radius selection."""

    async def _seed(self, store):
        await store.save("near", make_subscription("https://push.example.com/near"), 40.00, -73.00)
        await store.save("far", make_subscription("https://push.example.com/far"), 41.00, -73.00)
        await store.save("creator", make_subscription("https://push.example.com/creator"), 40.01, -73.00)
        await store.save("nowhere", make_subscription("https://push.example.com/nowhere"))

    def test_selects_only_nearby_with_location(self, run_db):
        async def body(db):
            store = SubscriptionStore(db)
            await self._seed(store)
            return await store.query_within_radius(40.05, -73.00, 10)

        users = {sub.user_id for sub in run_db(body)}

        assert users == {"near", "creator"}

    def test_excludes_user(self, run_db):
        async def body(db):
            store = SubscriptionStore(db)
            await self._seed(store)
            return await store.query_within_radius(40.05, -73.00, 10, exclude_user_id="creator")

        users = [sub.user_id for sub in run_db(body)]

        assert users == ["near"]

    def test_boundary_is_inclusive(self, run_db):
        async def body(db):
            store = SubscriptionStore(db)
            await store.save("edge", make_subscription("https://push.example.com/edge"), 40.00, -73.00)
            radius = haversine_km(40.05, -73.10, 40.00, -73.00)
            inside = await store.query_within_radius(40.05, -73.10, radius)
            outside = await store.query_within_radius(40.05, -73.10, radius * 0.999)
            return inside, outside

        inside, outside = run_db(body)

        assert [sub.user_id for sub in inside] == ["edge"]
        assert outside == []

    def test_select_nearby_validates_before_querying(self, run_db):
        async def body(db):
            store = SubscriptionStore(db)
            await self._seed(store)
            with pytest.raises(ValidationError):
                await select_nearby(store, 40.05, -73.00, 0)
            with pytest.raises(ValidationError):
                await select_nearby(store, 95.0, -73.00, 10)
            return await select_nearby(store, 40.05, -73.00, 10, "creator")

        assert [sub.user_id for sub in run_db(body)] == ["near"]
