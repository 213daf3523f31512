from datetime import datetime
from typing import Iterable, List, Literal, Optional

from beanie import Document
from pydantic import BaseModel, Field
from pymongo import ASCENDING, IndexModel

from app.core.models.common import PyObjectId, new_object_id, utc_now
from app.core.models.snapshots import MenuSnapshot

PlanStatus = Literal["active", "expired"]


class AssignedMenu(BaseModel):
    """Binding of one template to one (user, week) plan."""
    id: PyObjectId = Field(default_factory=new_object_id)
    menu_id: PyObjectId
    menu_snapshot: Optional[MenuSnapshot] = None
    published: bool = False
    assigned_customers: List[PyObjectId] = Field(default_factory=list)
    assigned_groups: List[PyObjectId] = Field(default_factory=list)


class WeeklyPlan(Document):
    """One plan per (user, ISO week-year, ISO week)."""
    user_id: PyObjectId
    year: int
    week_number: int = Field(..., ge=1, le=53)
    status: PlanStatus = "active"
    is_snapshot: bool = False
    assign_menu: List[AssignedMenu] = Field(default_factory=list)

    # Optimistic concurrency, see app/core/db/versioning.py
    version: int = 0

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    class Settings:
        name = "weekly_plans"
        indexes = [
            IndexModel(
                [("user_id", ASCENDING), ("year", ASCENDING), ("week_number", ASCENDING)],
                unique=True,
                name="uniq_user_week",
            ),
            [("user_id", ASCENDING), ("status", ASCENDING)],
        ]

    @property
    def is_expired(self) -> bool:
        return self.status == "expired"

    def find_assigned(self, assigned_menu_id: str) -> Optional[AssignedMenu]:
        return next((a for a in self.assign_menu if a.id == assigned_menu_id), None)

    def find_by_template(self, menu_id: str) -> Optional[AssignedMenu]:
        return next((a for a in self.assign_menu if a.menu_id == menu_id), None)

    def customer_appearances(self, customer_id: str) -> int:
        return sum(a.assigned_customers.count(customer_id) for a in self.assign_menu)

    def assigned_group_ids(self) -> Iterable[str]:
        for a in self.assign_menu:
            yield from a.assigned_groups
