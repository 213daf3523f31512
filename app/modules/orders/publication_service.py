from typing import Dict, Iterable, List, Mapping, Optional
import logging

from beanie.operators import In
from bson import ObjectId
from fastapi import HTTPException
from pymongo.errors import DuplicateKeyError

from app.core.db.versioning import save_versioned
from app.core.models.catalog import CustomerGroup, Meal
from app.core.models.single_day_order import OrderCategory, OrderMeal, SingleDayOrder
from app.core.models.snapshots import MealSnapshot
from app.core.models.weekly_menu import MenuDay, WeeklyMenuTemplate
from app.core.models.weekly_plan import AssignedMenu, WeeklyPlan
from app.modules.ingredients.ingredients_stock_service import IngredientsStockService

logger = logging.getLogger(__name__)


class PublicationService:
    """
    Materializes an assigned menu + its roster into per-day orders.

    Rules:
    - One SingleDayOrder per (user, year, week, day), created on first publish.
    - Later publishes merge additively: existing categories get the new meals
      appended, missing categories are appended whole. Republishing does not
      deduplicate meal entries.
    - Unpublish prunes the template's meals; orders are never deleted.
    """

    # ==================== PURE HELPERS ====================

    @staticmethod
    def consumers_of(assigned: AssignedMenu, groups: Mapping[str, CustomerGroup]) -> List[str]:
        """Directly assigned customers, then members of assigned groups, de-duplicated in order."""
        seen = set()
        consumers = []
        member_lists = [groups[g].members for g in assigned.assigned_groups if g in groups]
        for customer_id in [*assigned.assigned_customers, *(m for members in member_lists for m in members)]:
            if customer_id not in seen:
                seen.add(customer_id)
                consumers.append(customer_id)
        return consumers

    @staticmethod
    def build_day_categories(
        day_row: MenuDay,
        meals: Mapping[str, Meal],
        template: WeeklyMenuTemplate,
        consumers: List[str]
    ) -> List[OrderCategory]:
        """Group one template day by category, first-seen order, every consumer tagged on every meal."""
        categories: Dict[str, OrderCategory] = {}
        for item in day_row.meals:
            meal = meals.get(item.meal_id)
            if meal is None:
                logger.warning(f"Meal {item.meal_id} of menu {template.id} no longer exists, skipping")
                continue

            category = categories.setdefault(item.category, OrderCategory(category=item.category))
            category.meals.append(
                OrderMeal(
                    meal=MealSnapshot.from_meal(meal),
                    weekly_menu_id=str(template.id),
                    weekly_menu_title=template.title,
                    status="not_done",
                    customers=list(consumers),
                )
            )
        return list(categories.values())

    @staticmethod
    def merge_categories(order: SingleDayOrder, new_categories: Iterable[OrderCategory]) -> None:
        for new_category in new_categories:
            existing = order.category(new_category.category)
            if existing is not None:
                existing.meals.extend(new_category.meals)
            else:
                order.categories.append(new_category)

    @staticmethod
    def prune_template(order: SingleDayOrder, template_id: str) -> int:
        """Remove meal entries of a template; drop categories left empty. Returns removed entries."""
        removed = 0
        for category in order.categories:
            before = len(category.meals)
            category.meals = [m for m in category.meals if m.weekly_menu_id != template_id]
            removed += before - len(category.meals)
        order.categories = [c for c in order.categories if c.meals]
        return removed

    @staticmethod
    def days_with_meals(template: WeeklyMenuTemplate) -> List[MenuDay]:
        return [d for d in template.days if d.meals]

    # ==================== PRECONDITIONS ====================

    @staticmethod
    async def week_orders(user_id: str, year: int, week_number: int) -> List[SingleDayOrder]:
        return await SingleDayOrder.find(
            SingleDayOrder.user_id == user_id,
            SingleDayOrder.year == year,
            SingleDayOrder.week_number == week_number
        ).sort(+SingleDayOrder.day).to_list()

    @staticmethod
    def orders_already_started(template: WeeklyMenuTemplate, orders: Iterable[SingleDayOrder]) -> bool:
        """True if any day the template touches already has a done order."""
        touched = {d.day for d in PublicationService.days_with_meals(template)}
        return any(o.day in touched and o.status == "done" for o in orders)

    @staticmethod
    def ensure_publish_targets_open(template: WeeklyMenuTemplate, orders: Iterable[SingleDayOrder]) -> None:
        """409 if a day the template would write to already has an expired order."""
        touched = {d.day for d in PublicationService.days_with_meals(template)}
        for order in orders:
            if order.day in touched and order.expired:
                raise HTTPException(409, f"Order for day {order.day} is expired and can not be modified")

    @staticmethod
    def ensure_unpublish_targets_open(template_id: str, orders: Iterable[SingleDayOrder]) -> None:
        """409 if an expired order still holds meals of the template."""
        for order in orders:
            if order.expired and any(m.weekly_menu_id == template_id for m in order.iter_meals()):
                raise HTTPException(409, f"Order for day {order.day} is expired and can not be modified")

    @staticmethod
    async def load_groups(group_ids: Iterable[str]) -> Dict[str, CustomerGroup]:
        ids = [ObjectId(g) for g in group_ids if ObjectId.is_valid(g)]
        if not ids:
            return {}
        groups = await CustomerGroup.find(In(CustomerGroup.id, ids)).to_list()
        return {str(g.id): g for g in groups}

    # ==================== PUBLISH / UNPUBLISH ====================

    @staticmethod
    async def publish(
        plan: WeeklyPlan,
        template: WeeklyMenuTemplate,
        consumers: List[str],
        orders: Optional[List[SingleDayOrder]] = None
    ) -> int:
        """
        Create or merge day orders for every template day that has meals.

        Returns:
            int: number of day orders created or updated
        """
        if orders is None:
            orders = await PublicationService.week_orders(plan.user_id, plan.year, plan.week_number)
        by_day = {o.day: o for o in orders}
        PublicationService.ensure_publish_targets_open(template, orders)

        meal_ids = {m.meal_id for d in template.days for m in d.meals}
        meals = await Meal.find(In(Meal.id, [ObjectId(m) for m in meal_ids if ObjectId.is_valid(m)])).to_list()
        meals_by_id = {str(m.id): m for m in meals}

        touched = 0
        for day_row in PublicationService.days_with_meals(template):
            categories = PublicationService.build_day_categories(day_row, meals_by_id, template, consumers)
            if not categories:
                continue

            order = by_day.get(day_row.day)
            if order is None:
                order = await PublicationService._create_order(plan, day_row.day, categories)
                if order is not None:
                    touched += 1
                    continue
                # Lost a create race: merge into the order that won
                order = await SingleDayOrder.find_one(
                    SingleDayOrder.user_id == plan.user_id,
                    SingleDayOrder.year == plan.year,
                    SingleDayOrder.week_number == plan.week_number,
                    SingleDayOrder.day == day_row.day
                )

            PublicationService.merge_categories(order, categories)
            await save_versioned(order)
            touched += 1

        logger.info(
            f"📦 PUBLISHED: menu {template.id} for user {plan.user_id} "
            f"{plan.year}-W{plan.week_number} ({touched} day orders, {len(consumers)} consumers)"
        )
        return touched

    @staticmethod
    async def _create_order(plan: WeeklyPlan, day: int, categories: List[OrderCategory]) -> Optional[SingleDayOrder]:
        order = SingleDayOrder(
            user_id=plan.user_id,
            year=plan.year,
            week_number=plan.week_number,
            day=day,
            categories=categories,
        )
        try:
            await order.insert()
        except DuplicateKeyError:
            logger.info(f"Order for user {plan.user_id} {plan.year}-W{plan.week_number} day {day} created concurrently")
            return None
        return order

    @staticmethod
    async def unpublish(
        plan: WeeklyPlan,
        template_id: str,
        orders: Optional[List[SingleDayOrder]] = None
    ) -> int:
        """
        Remove the template's meals from every order of the plan's week, then clean up stock.

        Returns:
            int: number of meal entries removed
        """
        if orders is None:
            orders = await PublicationService.week_orders(plan.user_id, plan.year, plan.week_number)

        PublicationService.ensure_unpublish_targets_open(template_id, orders)

        removed = 0
        for order in orders:
            if order.expired:
                continue
            count = PublicationService.prune_template(order, template_id)
            if count:
                await save_versioned(order)
                removed += count

        await IngredientsStockService.cleanup_week_stock(plan.user_id, plan.year, plan.week_number)

        logger.info(
            f"🗑️ UNPUBLISHED: menu {template_id} for user {plan.user_id} "
            f"{plan.year}-W{plan.week_number} ({removed} meal entries removed)"
        )
        return removed
