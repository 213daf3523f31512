"""
Retires past weeks: snapshots plans, freezes day orders and releases templates.

Runs per timezone group at local Monday 00:xx; a failing user is logged and
skipped, the rest of the run continues. A failed cycle is not retried until the
next scheduled run.
"""
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set
import logging

from beanie.operators import In
from bson import ObjectId
from pydantic import BaseModel

from app.core.db.versioning import MAX_RETRIES, VersionConflict, backoff, save_versioned
from app.core.models.catalog import Customer, CustomerGroup
from app.core.models.single_day_order import SingleDayOrder
from app.core.models.snapshots import MenuSnapshot
from app.core.models.supplier import SupplierAccount
from app.core.models.weekly_menu import WeeklyMenuTemplate
from app.core.models.weekly_plan import WeeklyPlan
from app.core.monitoring.prometheus_middleware import track_expired, track_sweep
from app.core.setting import config
from app.modules.orders.order_status_service import OrderStatusService
from app.shared.timezone import (
    expiration_window,
    get_utc_now,
    is_due_for_expiration,
    is_monday_midnight,
    resolve_local_iso_week,
)

logger = logging.getLogger(__name__)


class SweepResult(BaseModel):
    weekly_plans: int = 0
    single_day_orders: int = 0
    template_weeks: int = 0


def due_weeks_filter(current_year: int, current_week: int, lookback_weeks: int) -> List[Dict[str, Any]]:
    """Mongo `$or` clauses matching exactly what `is_due_for_expiration` accepts."""
    min_year, min_week = expiration_window(current_year, current_week, lookback_weeks)
    clauses: List[Dict[str, Any]] = [
        {"year": {"$lt": min_year}},
        {"year": current_year, "week_number": {"$lt": current_week}},
    ]
    if min_year < current_year:
        clauses.append({"year": min_year, "week_number": {"$gte": min_week}})
    return clauses


async def _retry_versioned(
    load: Callable[[], Awaitable[Optional[Any]]],
    apply: Callable[[Any], Awaitable[bool]],
    label: str
) -> bool:
    """
    Re-read, mutate and conditionally save a versioned document.

    `apply` returns False when there is nothing to change. Version conflicts are
    retried MAX_RETRIES times with back-off, then re-raised.
    """
    for attempt in range(MAX_RETRIES + 1):
        doc = await load()
        if doc is None or not await apply(doc):
            return False
        try:
            await save_versioned(doc)
            return True
        except VersionConflict:
            if attempt == MAX_RETRIES:
                raise
            logger.warning(f"Version conflict on {label}, retry {attempt + 1}/{MAX_RETRIES}")
            await backoff(attempt)
    return False


class ExpirationSweeper:

    # ==================== SINGLE DOCUMENT TRANSITIONS ====================

    @staticmethod
    async def snapshot_plan(plan: WeeklyPlan) -> bool:
        """
        Snapshot every assigned menu whose template still exists and flag the plan expired.

        Returns:
            bool: False if the plan was already expired
        """
        if plan.is_expired:
            return False

        template_ids = [ObjectId(a.menu_id) for a in plan.assign_menu if ObjectId.is_valid(a.menu_id)]
        templates = await WeeklyMenuTemplate.find(In(WeeklyMenuTemplate.id, template_ids)).to_list() if template_ids else []
        by_id = {str(t.id): t for t in templates}

        for assigned in plan.assign_menu:
            template = by_id.get(assigned.menu_id)
            if template is not None:
                assigned.menu_snapshot = MenuSnapshot.from_template(template)
            elif assigned.menu_snapshot is None:
                logger.warning(f"Template {assigned.menu_id} of plan {plan.id} not found, no snapshot taken")

        plan.status = "expired"
        plan.is_snapshot = True
        return True

    @staticmethod
    async def template_titles(orders: Iterable[SingleDayOrder]) -> Dict[str, str]:
        ids = {m.weekly_menu_id for o in orders for m in o.iter_meals()}
        valid = [ObjectId(i) for i in ids if ObjectId.is_valid(i)]
        if not valid:
            return {}
        templates = await WeeklyMenuTemplate.find(In(WeeklyMenuTemplate.id, valid)).to_list()
        return {str(t.id): t.title for t in templates}

    @staticmethod
    async def expire_plan_document(plan_id) -> bool:
        async def load():
            return await WeeklyPlan.get(plan_id)

        return await _retry_versioned(load, ExpirationSweeper.snapshot_plan, f"weekly plan {plan_id}")

    @staticmethod
    async def expire_order_document(order_id, titles: Dict[str, str]) -> bool:
        async def load():
            return await SingleDayOrder.get(order_id)

        async def apply(order: SingleDayOrder) -> bool:
            return OrderStatusService.expire_order(order, titles)

        return await _retry_versioned(load, apply, f"single day order {order_id}")

    @staticmethod
    async def release_template_weeks(user_id: str, predicate: Callable[[int, int], bool]) -> int:
        """Pull matching (year, week) pairs from the user's templates; emptied templates become inactive."""
        templates = await WeeklyMenuTemplate.find(
            WeeklyMenuTemplate.user_id == user_id,
            WeeklyMenuTemplate.status == "active"
        ).to_list()

        released = 0
        for template in templates:
            removed = template.remove_active_weeks(predicate)
            if removed:
                await template.save()
                released += removed
                if template.status == "inactive":
                    logger.info(f"Template {template.id} has no active weeks left, now inactive")
        return released

    # ==================== SWEEPS ====================

    @staticmethod
    async def sweep_user(user_id: str, timezone: Optional[str], now: Optional[datetime] = None) -> SweepResult:
        """
        Expire every due plan and order of one user and release due template weeks.
        Safe to run repeatedly: already expired documents are skipped.
        """
        now = now or get_utc_now()
        lookback = config.EXPIRATION_LOOKBACK_WEEKS
        current_year, current_week = resolve_local_iso_week(now, timezone)
        clauses = due_weeks_filter(current_year, current_week, lookback)
        result = SweepResult()

        # 1. Plans -> snapshots
        plans = await WeeklyPlan.find({"user_id": user_id, "status": "active", "$or": clauses}).to_list()
        for plan in plans:
            if await ExpirationSweeper.expire_plan_document(plan.id):
                result.weekly_plans += 1

        # 2. Orders -> done + expired
        orders = await SingleDayOrder.find({"user_id": user_id, "expired": False, "$or": clauses}).to_list()
        titles = await ExpirationSweeper.template_titles(orders)
        for order in orders:
            if await ExpirationSweeper.expire_order_document(order.id, titles):
                result.single_day_orders += 1

        # 3. Templates -> drop due weeks
        result.template_weeks = await ExpirationSweeper.release_template_weeks(
            user_id,
            lambda y, w: is_due_for_expiration(y, w, current_year, current_week, lookback)
        )

        track_expired("weekly_plan", result.weekly_plans)
        track_expired("single_day_order", result.single_day_orders)
        track_expired("template_week", result.template_weeks)

        logger.info(
            f"🧊 SWEEP: user {user_id} ({timezone}) at {current_year}-W{current_week}: "
            f"{result.weekly_plans} plans, {result.single_day_orders} orders, "
            f"{result.template_weeks} template weeks"
        )
        return result

    @staticmethod
    async def expire_week(plan: WeeklyPlan) -> List[str]:
        """
        Expire one plan, its week's orders and its template week immediately.

        Used by manual expiration; version conflicts surface to the caller.

        Returns:
            List of expired single day order ids
        """
        await ExpirationSweeper.snapshot_plan(plan)
        await save_versioned(plan)

        orders = await SingleDayOrder.find(
            SingleDayOrder.user_id == plan.user_id,
            SingleDayOrder.year == plan.year,
            SingleDayOrder.week_number == plan.week_number,
            SingleDayOrder.expired == False
        ).to_list()
        titles = await ExpirationSweeper.template_titles(orders)

        expired_ids = []
        for order in orders:
            if OrderStatusService.expire_order(order, titles):
                await save_versioned(order)
                expired_ids.append(str(order.id))

        released = await ExpirationSweeper.release_template_weeks(
            plan.user_id,
            lambda y, w: y == plan.year and w == plan.week_number
        )

        track_expired("weekly_plan", 1)
        track_expired("single_day_order", len(expired_ids))
        track_expired("template_week", released)
        return expired_ids

    @staticmethod
    async def process_weekly_plans(now: Optional[datetime] = None) -> int:
        """
        Hourly entry point: sweep users whose local time is Monday 00:xx.

        Returns:
            int: number of users swept successfully
        """
        now = now or get_utc_now()
        accounts = await SupplierAccount.find(
            {"timezone": {"$ne": None}, "role": "supplier"}
        ).to_list()

        by_timezone: Dict[str, List[str]] = {}
        for account in accounts:
            by_timezone.setdefault(account.timezone, []).append(str(account.id))

        swept = 0
        for timezone, user_ids in by_timezone.items():
            if not is_monday_midnight(timezone, now):
                continue

            logger.info(f"⏰ Monday midnight in {timezone}: sweeping {len(user_ids)} users")
            for user_id in user_ids:
                try:
                    await ExpirationSweeper.sweep_user(user_id, timezone, now)
                    track_sweep(success=True)
                    swept += 1
                except Exception as e:
                    track_sweep(success=False)
                    logger.error(f"❌ Sweep failed for user {user_id} ({timezone}): {e}", exc_info=True)
        return swept

    @staticmethod
    async def prune_removed_customers() -> int:
        """
        Weekly historical correction of expired snapshot plans: drop roster ids of
        customers (and groups) that no longer exist or were deleted.

        Returns:
            int: number of plans changed
        """
        suppliers = await SupplierAccount.find(SupplierAccount.role == "supplier").to_list()

        changed = 0
        for supplier in suppliers:
            supplier_id = str(supplier.id)
            try:
                plans = await WeeklyPlan.find(
                    WeeklyPlan.user_id == supplier_id,
                    WeeklyPlan.status == "expired",
                    WeeklyPlan.is_snapshot == True
                ).to_list()
                if not plans:
                    continue

                customers = await Customer.find(
                    Customer.supplier_id == supplier_id,
                    Customer.deleted_at == None
                ).to_list()
                groups = await CustomerGroup.find(CustomerGroup.created_by == supplier_id).to_list()
                customer_ids: Set[str] = {str(c.id) for c in customers}
                group_ids: Set[str] = {str(g.id) for g in groups}

                for plan in plans:
                    async def load(plan_id=plan.id):
                        return await WeeklyPlan.get(plan_id)

                    async def apply(doc: WeeklyPlan) -> bool:
                        dirty = False
                        for assigned in doc.assign_menu:
                            kept_customers = [c for c in assigned.assigned_customers if c in customer_ids]
                            kept_groups = [g for g in assigned.assigned_groups if g in group_ids]
                            if kept_customers != assigned.assigned_customers or kept_groups != assigned.assigned_groups:
                                assigned.assigned_customers = kept_customers
                                assigned.assigned_groups = kept_groups
                                dirty = True
                        return dirty

                    if await _retry_versioned(load, apply, f"weekly plan {plan.id}"):
                        changed += 1
            except Exception as e:
                logger.error(f"❌ Roster cleanup failed for supplier {supplier_id}: {e}", exc_info=True)

        logger.info(f"🧹 Roster cleanup of expired plans completed ({changed} plans changed)")
        return changed
