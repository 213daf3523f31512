from datetime import datetime
from typing import List, Literal, Optional

from beanie import Document
from pydantic import BaseModel, Field
from pymongo import ASCENDING

from app.core.models.catalog import MealCategory
from app.core.models.common import PyObjectId, utc_now


class MenuDayMeal(BaseModel):
    category: MealCategory
    meal_id: PyObjectId
    time: Optional[str] = None


class MenuDay(BaseModel):
    day: int = Field(..., ge=0, le=6, description="0 = Monday ... 6 = Sunday")
    meals: List[MenuDayMeal] = Field(default_factory=list)


class ActiveWeek(BaseModel):
    year: int
    week_number: int


class WeeklyMenuTemplate(Document):
    """
    Reusable weekly layout owned by a supplier.
    `status` is derived: active iff at least one (year, week) references the template.
    """
    user_id: PyObjectId
    title: str = Field(..., max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    archived: bool = False
    preferences: List[str] = Field(default_factory=list)
    restrictions: List[str] = Field(default_factory=list)
    days: List[MenuDay] = Field(default_factory=list)
    active_weeks: List[ActiveWeek] = Field(default_factory=list)
    status: Literal["active", "inactive"] = "inactive"
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    class Settings:
        name = "weekly_menus"
        indexes = [
            [("user_id", ASCENDING), ("title", ASCENDING)],
            [("user_id", ASCENDING), ("status", ASCENDING)],
        ]

    def has_active_week(self, year: int, week_number: int) -> bool:
        return any(w.year == year and w.week_number == week_number for w in self.active_weeks)

    def add_active_week(self, year: int, week_number: int) -> bool:
        """Returns False when the week was already referenced."""
        if self.has_active_week(year, week_number):
            return False
        self.active_weeks.append(ActiveWeek(year=year, week_number=week_number))
        self.refresh_status()
        return True

    def remove_active_weeks(self, predicate) -> int:
        before = len(self.active_weeks)
        self.active_weeks = [w for w in self.active_weeks if not predicate(w.year, w.week_number)]
        self.refresh_status()
        return before - len(self.active_weeks)

    def refresh_status(self):
        self.status = "active" if self.active_weeks else "inactive"
        self.updated_at = utc_now()

    def day_row(self, day: int) -> Optional[MenuDay]:
        return next((d for d in self.days if d.day == day), None)
