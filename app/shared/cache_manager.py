import json
import logging

import redis
from fastapi import HTTPException

from app.core.cache.cache_manager import get_redis_client
from app.core.models.supplier import PlanFeatures, SubscriptionPlan
from app.core.setting import config

logger = logging.getLogger(__name__)


def _plan_key(plan_name: str) -> str:
    return f"plan_limits:{plan_name}"


async def get_plan_features(plan_name: str) -> PlanFeatures:
    """
    Tier feature limits for a subscription plan.

    Logic:
        1. Try the cache.
        2. Fall back to MongoDB and store the result with a fixed TTL.
    A broken cache never blocks the request; it only costs a DB read.
    """
    client = get_redis_client()
    cache_key = _plan_key(plan_name)

    if client is not None:
        try:
            cached = client.get(cache_key)
            if cached:
                return PlanFeatures(**json.loads(cached))
        except redis.RedisError as e:
            logger.warning(f"Plan limits cache read failed for {cache_key}: {e}")

    plan = await SubscriptionPlan.find_one(SubscriptionPlan.plan == plan_name)
    if not plan:
        raise HTTPException(404, f"Subscription plan '{plan_name}' not found")

    if client is not None:
        try:
            client.setex(
                cache_key,
                config.PLAN_LIMITS_CACHE_TTL_SECONDS,
                json.dumps(plan.features.model_dump(mode="json"))
            )
        except redis.RedisError as e:
            logger.warning(f"Plan limits cache write failed for {cache_key}: {e}")

    return plan.features


def invalidate_plan_features(plan_name: str) -> None:
    """Call after a subscription plan's limits change."""
    client = get_redis_client()
    if client is None:
        return
    try:
        client.delete(_plan_key(plan_name))
    except redis.RedisError as e:
        logger.warning(f"Plan limits cache invalidation failed for {plan_name}: {e}")
