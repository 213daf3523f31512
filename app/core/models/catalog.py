"""
Catalog documents owned by the customer / meal services.
The weekly plan engine reads them; CRUD lives elsewhere.
"""
from datetime import datetime
from typing import List, Literal, Optional

from beanie import Document
from pydantic import BaseModel, Field
from pymongo import ASCENDING

from app.core.models.common import PyObjectId, utc_now

MealCategory = Literal["breakfast", "lunch", "dinner", "snack", "drink", "dessert", "other"]


class Customer(Document):
    supplier_id: PyObjectId
    first_name: str
    last_name: Optional[str] = None
    status: Literal["active", "inactive", "pending"] = "active"
    weekly_menu_quantity: int = Field(default=1, ge=0, description="Max menus per week for this customer")
    deleted_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)

    class Settings:
        name = "customers"
        indexes = [
            [("supplier_id", ASCENDING), ("deleted_at", ASCENDING)],
        ]

    @property
    def display_name(self) -> str:
        parts = [self.first_name, self.last_name or ""]
        return " ".join(p.strip().capitalize() for p in parts if p and p.strip())


class CustomerGroup(Document):
    name: str
    created_by: PyObjectId
    members: List[PyObjectId] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)

    class Settings:
        name = "customer_groups"
        indexes = [
            [("created_by", ASCENDING)],
        ]


class MealIngredient(BaseModel):
    """One ingredient line of a meal; `current_amount` is the amount per portion."""
    ingredient_id: PyObjectId
    title: str
    unit: str
    current_amount: float = Field(..., ge=0)
    calories: float = 0
    protein: float = 0
    fat: float = 0
    carbs: float = 0


class Nutrition(BaseModel):
    calories: float = 0
    protein: float = 0
    fat: float = 0
    carbs: float = 0


class Meal(Document):
    user_id: PyObjectId
    title: str = Field(..., max_length=70)
    description: Optional[str] = Field(None, max_length=500)
    image: Optional[str] = None
    category: str
    ingredients: List[MealIngredient] = Field(default_factory=list)
    nutrition: Nutrition = Field(default_factory=Nutrition)
    preferences: List[str] = Field(default_factory=list)
    restrictions: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    class Settings:
        name = "meals"
        indexes = [
            [("user_id", ASCENDING)],
        ]
