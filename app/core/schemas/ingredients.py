from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from app.core.models.ingredients_stock import normalize_days


class MealUsage(BaseModel):
    """Where an ingredient is used on a day and how many portions of that meal are made."""
    meal_title: str
    quantity: int = Field(..., description="Number of customers eating the meal")
    amount_per_portion: float


class AggregatedIngredient(BaseModel):
    ingredient_id: str
    title: str
    unit: str
    meals_to_use: List[MealUsage] = Field(default_factory=list)
    general_amount: float = 0.0
    # Only set when a stock entry exists for the ingredient
    stock_amount: Optional[float] = None
    restock_needed: Optional[float] = None


class IngredientListResponse(BaseModel):
    year: int
    week_number: int
    day: Optional[int] = None
    day_combined: Optional[List[int]] = None
    total_ingredients: int
    items: List[AggregatedIngredient]


class _StockTarget(BaseModel):
    year: int = Field(..., ge=2000, le=2100)
    week_number: int = Field(..., ge=1, le=53)
    day: Optional[int] = Field(None, ge=0, le=6)
    day_combined: Optional[List[int]] = None
    ingredient_id: str = Field(..., min_length=1)

    @field_validator("day_combined")
    @classmethod
    def validate_day_combined(cls, v):
        if v is None:
            return v
        if not v:
            raise ValueError("day_combined must contain at least one day")
        if any(d < 0 or d > 6 for d in v):
            raise ValueError("Combined days must be between 0 and 6")
        return normalize_days(v)

    @model_validator(mode="after")
    def check_day_or_combined(self):
        if (self.day is None) == (self.day_combined is None):
            raise ValueError("Provide exactly one of 'day' or 'day_combined'")
        return self


class SetStockRequest(_StockTarget):
    stock_amount: float = Field(..., ge=0)


class RemoveStockRequest(_StockTarget):
    pass


class StockEntryResponse(BaseModel):
    id: str
    year: int
    week_number: int
    day: Optional[int] = None
    day_combined: Optional[List[int]] = None
    ingredients: List[dict]
