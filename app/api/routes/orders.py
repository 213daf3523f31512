from fastapi import APIRouter, Depends, Path, Query

from app.core.auth.deps import get_current_user
from app.core.schemas.auth import CurrentUser
from app.core.schemas.orders import (
    MealStatusUpdateRequest,
    OrderStatusUpdateRequest,
    SingleDayOrderResponse,
    WeekOrdersResponse,
)
from app.modules.orders.order_status_service import OrderStatusService


router = APIRouter(tags=["Orders"], prefix="/orders")


@router.get(
    "",
    response_model=WeekOrdersResponse,
    summary="List Day Orders of a Week",
    description="Orders sorted by day (0 = Monday) with meal and portion counts."
)
async def list_orders(
    year: int = Query(..., ge=2000, le=2100),
    week: int = Query(..., ge=1, le=53),
    current_user: CurrentUser = Depends(get_current_user)
):
    return await OrderStatusService.list_week_orders(current_user.id, year, week)


@router.get("/{order_id}", response_model=SingleDayOrderResponse, summary="Get Day Order")
async def get_order(
    order_id: str = Path(...),
    current_user: CurrentUser = Depends(get_current_user)
):
    order = await OrderStatusService.get_order(current_user.id, order_id)
    return OrderStatusService.to_response(order)


@router.patch(
    "/{order_id}/status",
    response_model=SingleDayOrderResponse,
    summary="Set Order Status",
    description="Sets the day order status and forces every meal to the same value. Expired orders are read-only (409)."
)
async def set_order_status(
    request: OrderStatusUpdateRequest,
    order_id: str = Path(...),
    current_user: CurrentUser = Depends(get_current_user)
):
    order = await OrderStatusService.set_order_status(current_user.id, order_id, request.status)
    return OrderStatusService.to_response(order)


@router.patch(
    "/{order_id}/meals/{meal_entry_id}/status",
    response_model=SingleDayOrderResponse,
    summary="Set Meal Status"
)
async def set_meal_status(
    request: MealStatusUpdateRequest,
    order_id: str = Path(...),
    meal_entry_id: str = Path(...),
    current_user: CurrentUser = Depends(get_current_user)
):
    order = await OrderStatusService.set_meal_status(current_user.id, order_id, meal_entry_id, request.status)
    return OrderStatusService.to_response(order)
