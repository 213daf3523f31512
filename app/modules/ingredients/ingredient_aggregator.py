from typing import Dict, Iterable, List, Mapping, Optional, TYPE_CHECKING

from app.core.schemas.ingredients import AggregatedIngredient, MealUsage
from app.shared.number_utils import round_half_away

if TYPE_CHECKING:
    from app.core.models.ingredients_stock import StockEntry
    from app.core.models.single_day_order import SingleDayOrder

IngredientMap = Dict[str, AggregatedIngredient]


class IngredientAggregator:
    """
    Pure ingredient arithmetic over day orders and entered stock.

    Handles:
    - Per-day totals (customers x amount per portion)
    - Multi-day shopping lists
    - Restock shortfall against stock entries

    Every accumulation step is rounded to 2 decimals (half away from zero),
    not only the final total.
    """

    @staticmethod
    def aggregate_day(order: Optional['SingleDayOrder']) -> IngredientMap:
        """
        Total every ingredient of one day order.

        Returns:
            Map ingredient_id -> AggregatedIngredient, in first-seen order.

        Example:
            One meal with ingredient X at 100 per portion and customers [c1, c2]
            gives X.general_amount == 200.0 and one usage record (quantity 2).
        """
        result: IngredientMap = {}
        if order is None:
            return result

        for entry in order.iter_meals():
            customer_count = len(entry.customers)
            for line in entry.meal.ingredients:
                item = result.get(line.ingredient_id)
                if item is None:
                    item = AggregatedIngredient(
                        ingredient_id=line.ingredient_id,
                        title=line.title,
                        unit=line.unit,
                    )
                    result[line.ingredient_id] = item

                item.general_amount = round_half_away(
                    item.general_amount + customer_count * line.current_amount
                )
                item.meals_to_use.append(
                    MealUsage(
                        meal_title=entry.meal.title,
                        quantity=customer_count,
                        amount_per_portion=line.current_amount,
                    )
                )
        return result

    @staticmethod
    def combine_days(days: Iterable[int], per_day: Mapping[int, IngredientMap]) -> IngredientMap:
        """
        Merge the per-day maps of exactly the listed days.

        Days missing from `per_day` contribute nothing and a repeated day counts
        once. Inputs are not modified.
        """
        combined: IngredientMap = {}
        for day in dict.fromkeys(days):
            for ingredient_id, item in per_day.get(day, {}).items():
                target = combined.get(ingredient_id)
                if target is None:
                    combined[ingredient_id] = AggregatedIngredient(
                        ingredient_id=item.ingredient_id,
                        title=item.title,
                        unit=item.unit,
                        meals_to_use=list(item.meals_to_use),
                        general_amount=item.general_amount,
                    )
                    continue
                target.general_amount = round_half_away(target.general_amount + item.general_amount)
                target.meals_to_use.extend(item.meals_to_use)
        return combined

    @staticmethod
    def reconcile(aggregate: IngredientMap, stock_entries: Iterable['StockEntry']) -> IngredientMap:
        """
        Attach stock and shortfall to ingredients that have a stock entry.

        restock_needed = max(0, round(general_amount - stock_amount, 2)).
        Ingredients without an entry keep restock_needed = None (fully needed).
        Stock entries for ingredients not used that day are ignored.
        """
        for entry in stock_entries:
            item = aggregate.get(entry.ingredient_id)
            if item is None:
                continue
            item.stock_amount = entry.stock_amount
            item.restock_needed = max(0.0, round_half_away(item.general_amount - entry.stock_amount))
        return aggregate

    @staticmethod
    def sorted_items(aggregate: IngredientMap) -> List[AggregatedIngredient]:
        return sorted(aggregate.values(), key=lambda i: i.title.lower())
