import logging

from motor.motor_asyncio import AsyncIOMotorClient
from beanie import init_beanie

from app.core.setting import config
from app.core.models.supplier import SupplierAccount, SubscriptionPlan
from app.core.models.catalog import Customer, CustomerGroup, Meal
from app.core.models.weekly_menu import WeeklyMenuTemplate
from app.core.models.weekly_plan import WeeklyPlan
from app.core.models.single_day_order import SingleDayOrder
from app.core.models.ingredients_stock import IngredientsStock

logger = logging.getLogger(__name__)

DOCUMENT_MODELS = [
    SupplierAccount, SubscriptionPlan,
    Customer, CustomerGroup, Meal,
    WeeklyMenuTemplate,
    WeeklyPlan,
    SingleDayOrder,
    IngredientsStock,
]

motor_client = None


async def init_models(database):
    """Initialize Beanie with the database and the list of document models."""
    await init_beanie(database=database, document_models=DOCUMENT_MODELS)


async def connect_to_mongo():
    global motor_client

    motor_client = AsyncIOMotorClient(str(config.MONGODB_URL))
    await init_models(motor_client[config.DATABASE_NAME])
    logger.info(f"Successfully connected to MongoDB at {config.DATABASE_NAME}")


async def close_mongo_connection():
    global motor_client
    if motor_client:
        motor_client.close()
        motor_client = None
    logger.info("Closed MongoDB connection")
