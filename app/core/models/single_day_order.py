"""
Single Day Order - one document per (user, ISO year, ISO week, weekday).
Born at publish time; never deleted, only pruned or expired by the sweeper.
"""
from datetime import datetime
from typing import List, Literal, Optional

from beanie import Document
from pydantic import BaseModel, Field
from pymongo import ASCENDING, IndexModel

from app.core.models.catalog import MealCategory
from app.core.models.common import PyObjectId, new_object_id, utc_now
from app.core.models.snapshots import MealSnapshot

MealStatus = Literal["not_done", "preparing", "done"]
OrderStatus = Literal["not_done", "done"]


class OrderMeal(BaseModel):
    id: PyObjectId = Field(default_factory=new_object_id)
    meal: MealSnapshot
    weekly_menu_id: PyObjectId
    weekly_menu_title: Optional[str] = None
    status: MealStatus = "not_done"
    customers: List[PyObjectId] = Field(default_factory=list)


class OrderCategory(BaseModel):
    category: MealCategory
    meals: List[OrderMeal] = Field(default_factory=list)


class SingleDayOrder(Document):
    user_id: PyObjectId
    year: int
    week_number: int
    day: int = Field(..., ge=0, le=6)
    status: OrderStatus = "not_done"
    expired: bool = False
    categories: List[OrderCategory] = Field(default_factory=list)

    # Optimistic concurrency, see app/core/db/versioning.py
    version: int = 0

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    class Settings:
        name = "single_day_orders"
        indexes = [
            IndexModel(
                [("user_id", ASCENDING), ("year", ASCENDING), ("week_number", ASCENDING), ("day", ASCENDING)],
                unique=True,
                name="uniq_user_week_day",
            ),
            [("user_id", ASCENDING), ("expired", ASCENDING)],
        ]

    def iter_meals(self):
        for category in self.categories:
            yield from category.meals

    def find_meal(self, meal_entry_id: str) -> Optional[OrderMeal]:
        return next((m for m in self.iter_meals() if m.id == meal_entry_id), None)

    def category(self, name: str) -> Optional[OrderCategory]:
        return next((c for c in self.categories if c.category == name), None)
