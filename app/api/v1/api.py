from fastapi import APIRouter

from app.api.routes import weekly_plans, orders, ingredients, notifications

api_router = APIRouter()


api_router.include_router(weekly_plans.router)
api_router.include_router(orders.router)
api_router.include_router(ingredients.router)
api_router.include_router(notifications.router)
