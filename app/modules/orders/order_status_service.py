from typing import Mapping, Optional
import logging

from bson import ObjectId
from fastapi import HTTPException

from app.core.db.versioning import save_versioned
from app.core.models.single_day_order import MealStatus, OrderStatus, SingleDayOrder
from app.core.schemas.orders import (
    OrderCategoryResponse,
    OrderMealResponse,
    OrderSummary,
    SingleDayOrderResponse,
    WeekOrdersResponse,
)

logger = logging.getLogger(__name__)


class OrderStatusService:
    """
    Day-to-day status handling of SingleDayOrder documents.

    State rules:
    - Meal: not_done -> preparing -> done; any value may be set directly.
    - Order: not_done / done; setting it forces every meal to the matching value.
    - expired=True is one-way and makes the order read-only for requests.
    """

    # ==================== RESPONSE SHAPING ====================

    @staticmethod
    def to_response(order: SingleDayOrder) -> SingleDayOrderResponse:
        return SingleDayOrderResponse(
            id=str(order.id),
            year=order.year,
            week_number=order.week_number,
            day=order.day,
            status=order.status,
            expired=order.expired,
            version=order.version,
            updated_at=order.updated_at,
            categories=[
                OrderCategoryResponse(
                    category=c.category,
                    meals=[
                        OrderMealResponse(
                            id=m.id,
                            meal_id=m.meal.meal_id,
                            title=m.meal.title,
                            image=m.meal.image,
                            weekly_menu_id=m.weekly_menu_id,
                            weekly_menu_title=m.weekly_menu_title,
                            status=m.status,
                            customers=list(m.customers),
                        )
                        for m in c.meals
                    ],
                )
                for c in order.categories
            ],
        )

    # ==================== READ ====================

    @staticmethod
    async def list_week_orders(user_id: str, year: int, week_number: int) -> WeekOrdersResponse:
        orders = await SingleDayOrder.find(
            SingleDayOrder.user_id == user_id,
            SingleDayOrder.year == year,
            SingleDayOrder.week_number == week_number
        ).sort(+SingleDayOrder.day).to_list()

        summaries = []
        for order in orders:
            meals = list(order.iter_meals())
            summaries.append(
                OrderSummary(
                    id=str(order.id),
                    day=order.day,
                    status=order.status,
                    expired=order.expired,
                    total_meals=len(meals),
                    total_portions=sum(len(m.customers) for m in meals),
                )
            )
        return WeekOrdersResponse(year=year, week_number=week_number, orders=summaries)

    @staticmethod
    async def get_order(user_id: str, order_id: str) -> SingleDayOrder:
        if not ObjectId.is_valid(order_id):
            raise HTTPException(400, f"Invalid order id: {order_id}")

        order = await SingleDayOrder.get(ObjectId(order_id))
        if not order or order.user_id != user_id:
            raise HTTPException(404, "Order not found")
        return order

    # ==================== WRITE ====================

    @staticmethod
    def _ensure_mutable(order: SingleDayOrder) -> None:
        if order.expired:
            raise HTTPException(409, "Order is expired and can not be modified")

    @staticmethod
    async def set_meal_status(user_id: str, order_id: str, meal_entry_id: str, status: MealStatus) -> SingleDayOrder:
        order = await OrderStatusService.get_order(user_id, order_id)
        OrderStatusService._ensure_mutable(order)

        entry = order.find_meal(meal_entry_id)
        if entry is None:
            raise HTTPException(404, "Meal not found in order")

        entry.status = status
        await save_versioned(order)
        logger.info(f"Order {order.id} meal {meal_entry_id} -> {status}")
        return order

    @staticmethod
    async def set_order_status(user_id: str, order_id: str, status: OrderStatus) -> SingleDayOrder:
        order = await OrderStatusService.get_order(user_id, order_id)
        OrderStatusService._ensure_mutable(order)

        OrderStatusService.apply_order_status(order, status)
        await save_versioned(order)
        logger.info(f"Order {order.id} -> {status} (cascaded to all meals)")
        return order

    @staticmethod
    def apply_order_status(order: SingleDayOrder, status: OrderStatus) -> None:
        order.status = status
        for entry in order.iter_meals():
            entry.status = status

    # ==================== SYSTEM ONLY ====================

    @staticmethod
    def expire_order(order: SingleDayOrder, titles: Optional[Mapping[str, str]] = None) -> bool:
        """
        Terminal transition applied by the expiration sweeper.

        Every meal becomes done, the template title cache is refreshed from
        `titles` (template id -> title) and the order is flagged expired.

        Returns:
            bool: False if the order was already expired (nothing changed)
        """
        if order.expired:
            return False

        titles = titles or {}
        OrderStatusService.apply_order_status(order, "done")
        for entry in order.iter_meals():
            if entry.weekly_menu_id in titles:
                entry.weekly_menu_title = titles[entry.weekly_menu_id]
        order.expired = True
        return True
