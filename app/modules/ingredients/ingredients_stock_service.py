from typing import Iterable, List, Optional, Set
import logging

from bson import ObjectId
from fastapi import HTTPException

from app.core.models.common import utc_now
from app.core.models.ingredients_stock import IngredientsStock, StockEntry, normalize_days
from app.core.models.single_day_order import SingleDayOrder
from app.core.schemas.ingredients import IngredientListResponse, RemoveStockRequest, SetStockRequest
from app.modules.ingredients.ingredient_aggregator import IngredientAggregator

logger = logging.getLogger(__name__)


def _validate_day(day: int) -> None:
    if day < 0 or day > 6:
        raise HTTPException(400, f"Invalid day {day}. Day must be between 0 (Monday) and 6 (Sunday)")


class IngredientsStockService:
    """
    Ingredient lists per day / combined days and the stock entered against them.

    A stock document belongs to either one `day` or one normalized `day_combined`
    set, never both. It is created on the first entry and deleted with the last.
    """

    # ==================== READ ====================

    @staticmethod
    async def _find_stock(
        user_id: str,
        year: int,
        week_number: int,
        day: Optional[int] = None,
        day_combined: Optional[List[int]] = None
    ) -> Optional[IngredientsStock]:
        query = {
            "user_id": user_id,
            "year": year,
            "week_number": week_number,
        }
        if day_combined is not None:
            query["day_combined"] = normalize_days(day_combined)
        else:
            query["day"] = day
            query["day_combined"] = None
        return await IngredientsStock.find_one(query)

    @staticmethod
    async def get_day_ingredients(user_id: str, year: int, week_number: int, day: int) -> IngredientListResponse:
        _validate_day(day)

        order = await SingleDayOrder.find_one(
            SingleDayOrder.user_id == user_id,
            SingleDayOrder.year == year,
            SingleDayOrder.week_number == week_number,
            SingleDayOrder.day == day
        )
        aggregate = IngredientAggregator.aggregate_day(order)

        stock = await IngredientsStockService._find_stock(user_id, year, week_number, day=day)
        if stock:
            IngredientAggregator.reconcile(aggregate, stock.ingredients)

        items = IngredientAggregator.sorted_items(aggregate)
        return IngredientListResponse(
            year=year,
            week_number=week_number,
            day=day,
            total_ingredients=len(items),
            items=items,
        )

    @staticmethod
    async def get_combined_ingredients(
        user_id: str,
        year: int,
        week_number: int,
        days: Iterable[int]
    ) -> IngredientListResponse:
        day_set = normalize_days(days)
        if not day_set:
            raise HTTPException(400, "At least one day is required")
        for d in day_set:
            _validate_day(d)

        orders = await SingleDayOrder.find(
            SingleDayOrder.user_id == user_id,
            SingleDayOrder.year == year,
            SingleDayOrder.week_number == week_number
        ).to_list()
        per_day = {o.day: IngredientAggregator.aggregate_day(o) for o in orders if o.day in day_set}

        combined = IngredientAggregator.combine_days(day_set, per_day)

        stock = await IngredientsStockService._find_stock(user_id, year, week_number, day_combined=day_set)
        if stock:
            IngredientAggregator.reconcile(combined, stock.ingredients)

        items = IngredientAggregator.sorted_items(combined)
        return IngredientListResponse(
            year=year,
            week_number=week_number,
            day_combined=day_set,
            total_ingredients=len(items),
            items=items,
        )

    # ==================== WRITE ====================

    @staticmethod
    async def set_stock(user_id: str, request: SetStockRequest) -> IngredientsStock:
        """Upsert one stock entry, creating the stock document on first entry."""
        if not ObjectId.is_valid(request.ingredient_id):
            raise HTTPException(400, f"Invalid ingredient id: {request.ingredient_id}")

        stock = await IngredientsStockService._find_stock(
            user_id, request.year, request.week_number,
            day=request.day, day_combined=request.day_combined
        )

        if stock is None:
            stock = IngredientsStock(
                user_id=user_id,
                year=request.year,
                week_number=request.week_number,
                day=request.day,
                day_combined=request.day_combined,
                ingredients=[StockEntry(ingredient_id=request.ingredient_id, stock_amount=request.stock_amount)],
            )
            await stock.insert()
            logger.info(
                f"✅ STOCK CREATED: user {user_id} {request.year}-W{request.week_number} "
                f"{'day ' + str(request.day) if request.day is not None else 'days ' + str(request.day_combined)}"
            )
            return stock

        entry = stock.find_entry(request.ingredient_id)
        if entry is not None:
            entry.stock_amount = request.stock_amount
        else:
            stock.ingredients.append(
                StockEntry(ingredient_id=request.ingredient_id, stock_amount=request.stock_amount)
            )
        stock.updated_at = utc_now()
        await stock.save()
        return stock

    @staticmethod
    async def remove_stock(user_id: str, request: RemoveStockRequest) -> Optional[IngredientsStock]:
        """
        Remove one stock entry.

        Returns:
            The updated stock document, or None if it was deleted because it emptied.
        """
        stock = await IngredientsStockService._find_stock(
            user_id, request.year, request.week_number,
            day=request.day, day_combined=request.day_combined
        )
        if stock is None or stock.find_entry(request.ingredient_id) is None:
            raise HTTPException(404, "Stock entry not found")

        stock.ingredients = [e for e in stock.ingredients if e.ingredient_id != request.ingredient_id]
        if not stock.ingredients:
            await stock.delete()
            logger.info(f"🗑️ STOCK DELETED: {stock.id} (last entry removed)")
            return None

        stock.updated_at = utc_now()
        await stock.save()
        return stock

    @staticmethod
    async def cleanup_week_stock(user_id: str, year: int, week_number: int) -> int:
        """
        Drop stock no order of the week needs any more.

        - No order with categories left: every stock document of the week is deleted.
        - Otherwise entries for unused ingredients are removed and emptied documents deleted.

        Returns:
            int: number of stock documents deleted
        """
        orders = await SingleDayOrder.find(
            SingleDayOrder.user_id == user_id,
            SingleDayOrder.year == year,
            SingleDayOrder.week_number == week_number
        ).to_list()
        active_orders = [o for o in orders if o.categories]

        stock_docs = await IngredientsStock.find(
            IngredientsStock.user_id == user_id,
            IngredientsStock.year == year,
            IngredientsStock.week_number == week_number
        ).to_list()

        if not active_orders:
            for doc in stock_docs:
                await doc.delete()
            if stock_docs:
                logger.info(f"🧹 STOCK CLEANUP: removed all {len(stock_docs)} stock documents of {year}-W{week_number}")
            return len(stock_docs)

        used: Set[str] = {
            line.ingredient_id
            for order in active_orders
            for entry in order.iter_meals()
            for line in entry.meal.ingredients
        }

        deleted = 0
        for doc in stock_docs:
            kept = [e for e in doc.ingredients if e.ingredient_id in used]
            if len(kept) == len(doc.ingredients):
                continue
            if not kept:
                await doc.delete()
                deleted += 1
                continue
            doc.ingredients = kept
            doc.updated_at = utc_now()
            await doc.save()

        logger.info(f"🧹 STOCK CLEANUP: {year}-W{week_number} for user {user_id}, {deleted} documents deleted")
        return deleted
