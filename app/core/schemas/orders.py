from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from app.core.models.single_day_order import MealStatus, OrderStatus


class MealStatusUpdateRequest(BaseModel):
    status: MealStatus


class OrderStatusUpdateRequest(BaseModel):
    status: OrderStatus


class OrderMealResponse(BaseModel):
    id: str
    meal_id: str
    title: str
    image: Optional[str] = None
    weekly_menu_id: str
    weekly_menu_title: Optional[str] = None
    status: MealStatus
    customers: List[str]


class OrderCategoryResponse(BaseModel):
    category: str
    meals: List[OrderMealResponse]


class SingleDayOrderResponse(BaseModel):
    id: str
    year: int
    week_number: int
    day: int
    status: OrderStatus
    expired: bool
    version: int
    categories: List[OrderCategoryResponse]
    updated_at: datetime


class OrderSummary(BaseModel):
    id: str
    day: int
    status: OrderStatus
    expired: bool
    total_meals: int = Field(..., description="Meal entries across all categories")
    total_portions: int = Field(..., description="Sum of customers over all meal entries")


class WeekOrdersResponse(BaseModel):
    year: int
    week_number: int
    orders: List[OrderSummary]
