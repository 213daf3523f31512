from datetime import datetime
from typing import List, Optional

from beanie import Document
from pydantic import BaseModel, Field, field_validator, model_validator
from pymongo import ASCENDING

from app.core.models.common import PyObjectId, utc_now


def normalize_days(days) -> List[int]:
    """Sorted, de-duplicated weekday list; the identity of a combined stock document."""
    return sorted({int(d) for d in days})


class StockEntry(BaseModel):
    ingredient_id: PyObjectId
    stock_amount: float = Field(..., ge=0)


class IngredientsStock(Document):
    """
    Entered stock for one day, or for a combined set of days (a merged shopping list).
    Exactly one of `day` / `day_combined` is set.
    """
    user_id: PyObjectId
    year: int
    week_number: int
    day: Optional[int] = Field(None, ge=0, le=6)
    day_combined: Optional[List[int]] = None
    ingredients: List[StockEntry] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    class Settings:
        name = "ingredients_stock"
        indexes = [
            [("user_id", ASCENDING), ("year", ASCENDING), ("week_number", ASCENDING)],
        ]

    @field_validator("day_combined")
    @classmethod
    def validate_day_combined(cls, v):
        if v is None:
            return v
        if any(d < 0 or d > 6 for d in v):
            raise ValueError("Combined days must be between 0 and 6")
        return normalize_days(v)

    @model_validator(mode="after")
    def check_day_or_combined(self):
        if (self.day is None) == (self.day_combined is None):
            raise ValueError("Exactly one of 'day' or 'day_combined' must be set")
        return self

    def find_entry(self, ingredient_id: str) -> Optional[StockEntry]:
        return next((e for e in self.ingredients if e.ingredient_id == ingredient_id), None)
