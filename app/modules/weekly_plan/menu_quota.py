"""
Tier-based gating of menu assignment (`weekly_plan_menu_limit`, -1 = unlimited).
"""
from typing import Iterable, List
import logging

from fastapi import HTTPException, status
from pydantic import BaseModel, Field

from app.core.schemas.weekly_plan import WarningDetail
from app.core.setting import config
from app.shared.cache_manager import get_plan_features
from app.shared.messages import render

logger = logging.getLogger(__name__)

UNLIMITED = -1


class MenuQuotaDecision(BaseModel):
    admitted: List[str] = Field(default_factory=list)
    warnings: List[WarningDetail] = Field(default_factory=list)
    duplicate: bool = False


def apply_menu_limit(
    assigned_menu_ids: Iterable[str],
    requested: Iterable[str],
    user_limit: int,
    plan_name: str,
    warning_threshold: int
) -> MenuQuotaDecision:
    """
    Decide which requested templates may be assigned.

    1. Drop ids already assigned (and repeated ids in the request).
    2. Nothing left -> duplicate.
    3. With a limit: zero room -> 403; too many -> truncate + `warning_multiple`;
       close to the limit afterwards -> `warning`.
    """
    already = list(assigned_menu_ids)
    fresh: List[str] = []
    for menu_id in requested:
        if menu_id not in already and menu_id not in fresh:
            fresh.append(menu_id)

    if not fresh:
        return MenuQuotaDecision(duplicate=True)

    decision = MenuQuotaDecision(admitted=fresh)
    if user_limit == UNLIMITED:
        return decision

    remaining = user_limit - len(already)
    if remaining <= 0:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=render("limit_reached", user_limit=user_limit, plan_name=plan_name),
        )

    if len(fresh) > remaining:
        decision.admitted = fresh[:remaining]
        decision.warnings.append(
            WarningDetail.of(
                "warning_multiple",
                plan_name=plan_name,
                user_limit=user_limit,
                admitted=remaining,
                requested=len(fresh),
            )
        )

    left_after = remaining - len(decision.admitted)
    if left_after <= warning_threshold:
        decision.warnings.append(
            WarningDetail.of("warning", plan_name=plan_name, user_limit=user_limit, remaining=left_after)
        )
    return decision


async def gate_menus(assigned_menu_ids: Iterable[str], requested: Iterable[str], plan_name: str) -> MenuQuotaDecision:
    features = await get_plan_features(plan_name)
    decision = apply_menu_limit(
        assigned_menu_ids,
        requested,
        features.weekly_plan_menu_limit,
        plan_name,
        config.MENU_LIMIT_WARNING_THRESHOLD,
    )
    if decision.warnings:
        logger.info(f"Menu quota for plan '{plan_name}': {[w.code for w in decision.warnings]}")
    return decision
