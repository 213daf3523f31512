from datetime import datetime
from typing import Literal, Optional

from beanie import Document
from pydantic import BaseModel, Field
from pymongo import ASCENDING, IndexModel

from app.core.models.common import utc_now

PlanTier = Literal["base", "basic", "pro", "premium"]


class SupplierAccount(Document):
    """
    Authenticated principal as seen by the weekly plan engine.
    Owned by the auth service; the engine only reads it and sets `timezone`.
    """
    email: str
    full_name: Optional[str] = None
    role: Literal["supplier", "admin"] = "supplier"
    plan: PlanTier = "base"
    timezone: Optional[str] = Field(None, description="IANA timezone, e.g. 'Europe/Vilnius'")
    created_at: datetime = Field(default_factory=utc_now)

    class Settings:
        name = "supplier_accounts"
        indexes = [
            IndexModel([("email", ASCENDING)], unique=True),
            [("timezone", ASCENDING), ("role", ASCENDING)],
        ]


class PlanFeatures(BaseModel):
    """Tier limits. -1 means unlimited."""
    weekly_plan_menu_limit: int = -1


class SubscriptionPlan(Document):
    plan: PlanTier
    features: PlanFeatures = Field(default_factory=PlanFeatures)

    class Settings:
        name = "subscription_plans"
        indexes = [
            IndexModel([("plan", ASCENDING)], unique=True),
        ]
