import os

# Settings are read at import time
os.environ.setdefault("PROJECT_NAME", "Meal Supply Test")
os.environ.setdefault("API_V1_STR", "/api/v1")
os.environ.setdefault("MONGODB_URL", "mongodb://localhost:27017")
os.environ.setdefault("DATABASE_NAME", "meal_supply_test")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["CACHE_ENABLED"] = "false"
os.environ["SWEEPER_ENABLED"] = "false"

import pytest
from mongomock_motor import AsyncMongoMockClient

from app.core.db.mongodb import init_models
from app.core.models.supplier import PlanFeatures, SubscriptionPlan, SupplierAccount
from app.core.schemas.auth import CurrentUser

from factories import VILNIUS, RecordingNotifier


@pytest.fixture
async def db():
    client = AsyncMongoMockClient()
    await init_models(client["meal_supply_test"])
    yield client


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
async def plans(db):
    await SubscriptionPlan(plan="base", features=PlanFeatures(weekly_plan_menu_limit=3)).insert()
    await SubscriptionPlan(plan="pro", features=PlanFeatures(weekly_plan_menu_limit=-1)).insert()


@pytest.fixture
async def supplier(db, plans):
    account = SupplierAccount(email="chef@example.com", full_name="Chef", plan="base", timezone=VILNIUS)
    await account.insert()
    return account


@pytest.fixture
def user(supplier):
    return CurrentUser(
        id=str(supplier.id),
        email=supplier.email,
        role=supplier.role,
        plan=supplier.plan,
        timezone=supplier.timezone,
    )
