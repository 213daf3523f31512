from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.auth.deps import get_current_user
from app.core.models.ingredients_stock import IngredientsStock
from app.core.schemas.auth import CurrentUser
from app.core.schemas.ingredients import (
    IngredientListResponse,
    RemoveStockRequest,
    SetStockRequest,
    StockEntryResponse,
)
from app.modules.ingredients.ingredients_stock_service import IngredientsStockService


router = APIRouter(tags=["Ingredients"], prefix="/ingredients")


def _parse_days(days: str):
    try:
        return [int(d) for d in days.split(",") if d.strip()]
    except ValueError:
        raise HTTPException(400, f"Invalid days: {days}. Use comma separated numbers, e.g. 0,1,2")


def _stock_response(stock: Optional[IngredientsStock]) -> Optional[StockEntryResponse]:
    if stock is None:
        return None
    return StockEntryResponse(
        id=str(stock.id),
        year=stock.year,
        week_number=stock.week_number,
        day=stock.day,
        day_combined=stock.day_combined,
        ingredients=[e.model_dump() for e in stock.ingredients],
    )


@router.get(
    "/day",
    response_model=IngredientListResponse,
    summary="Ingredient List for a Day",
    description="""
    Totals every ingredient of the day order (customers x amount per portion).
    Ingredients with a stock entry carry `stock_amount` and `restock_needed`.
    """
)
async def get_day_ingredients(
    year: int = Query(..., ge=2000, le=2100),
    week: int = Query(..., ge=1, le=53),
    day: int = Query(..., ge=0, le=6, description="0 = Monday ... 6 = Sunday"),
    current_user: CurrentUser = Depends(get_current_user)
):
    return await IngredientsStockService.get_day_ingredients(current_user.id, year, week, day)


@router.get(
    "/combined",
    response_model=IngredientListResponse,
    summary="Combined Ingredient List",
    description="Shopping list over several days, reconciled with the stock entered for that exact day set."
)
async def get_combined_ingredients(
    year: int = Query(..., ge=2000, le=2100),
    week: int = Query(..., ge=1, le=53),
    days: str = Query(..., description="Comma separated days, e.g. 0,1,2"),
    current_user: CurrentUser = Depends(get_current_user)
):
    return await IngredientsStockService.get_combined_ingredients(current_user.id, year, week, _parse_days(days))


@router.put("/stock", response_model=StockEntryResponse, summary="Set Stock Amount")
async def set_stock(
    request: SetStockRequest,
    current_user: CurrentUser = Depends(get_current_user)
):
    stock = await IngredientsStockService.set_stock(current_user.id, request)
    return _stock_response(stock)


@router.delete("/stock", response_model=Optional[StockEntryResponse], summary="Remove Stock Entry")
async def remove_stock(
    request: RemoveStockRequest,
    current_user: CurrentUser = Depends(get_current_user)
):
    stock = await IngredientsStockService.remove_stock(current_user.id, request)
    return _stock_response(stock)
