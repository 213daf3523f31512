import json

import pytest
import redis
from fastapi import HTTPException

from app.core.models.supplier import SubscriptionPlan
from app.shared import cache_manager
from app.shared.cache_manager import get_plan_features, invalidate_plan_features


class FakeRedis:

    def __init__(self, broken=False):
        self.store = {}
        self.ttl = {}
        self.broken = broken

    def _check(self):
        if self.broken:
            raise redis.ConnectionError("redis down")

    def get(self, key):
        self._check()
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self._check()
        self.store[key] = value
        self.ttl[key] = ttl

    def delete(self, key):
        self._check()
        self.store.pop(key, None)


@pytest.fixture
def fake_redis(monkeypatch):
    client = FakeRedis()
    monkeypatch.setattr(cache_manager, "get_redis_client", lambda: client)
    return client


async def test_features_cached_after_first_read(plans, fake_redis):
    features = await get_plan_features("base")

    assert features.weekly_plan_menu_limit == 3
    assert json.loads(fake_redis.store["plan_limits:base"]) == {"weekly_plan_menu_limit": 3}
    assert fake_redis.ttl["plan_limits:base"] == 3600


async def test_cached_value_wins_over_database(plans, fake_redis):
    fake_redis.store["plan_limits:base"] = json.dumps({"weekly_plan_menu_limit": 7})
    assert (await get_plan_features("base")).weekly_plan_menu_limit == 7


async def test_invalidate(plans, fake_redis):
    await get_plan_features("base")
    plan = await SubscriptionPlan.find_one(SubscriptionPlan.plan == "base")
    plan.features.weekly_plan_menu_limit = 5
    await plan.save()

    invalidate_plan_features("base")

    assert (await get_plan_features("base")).weekly_plan_menu_limit == 5


async def test_broken_cache_falls_back_to_database(plans, monkeypatch):
    monkeypatch.setattr(cache_manager, "get_redis_client", lambda: FakeRedis(broken=True))
    assert (await get_plan_features("pro")).weekly_plan_menu_limit == -1


async def test_disabled_cache(plans):
    # CACHE_ENABLED=false in the test environment
    assert (await get_plan_features("pro")).weekly_plan_menu_limit == -1


async def test_unknown_plan(db):
    with pytest.raises(HTTPException) as exc:
        await get_plan_features("premium")
    assert exc.value.status_code == 404
