from typing import Optional

from fastapi import APIRouter, Depends, Path, Query

from app.core.auth.deps import get_current_user, get_notifier
from app.core.notifications.connection_manager import NotificationSink
from app.core.schemas.auth import CurrentUser
from app.core.schemas.weekly_plan import (
    AssignedMenuDetails,
    AssignMenusRequest,
    CustomerIdsRequest,
    GroupIdsRequest,
    OperationOutcome,
    PublishRequest,
    RemoveCustomerRequest,
    RemoveGroupRequest,
    SetTimezoneRequest,
)
from app.modules.weekly_plan.weekly_plan_service import WeeklyPlanService


router = APIRouter(tags=["Weekly Plans"], prefix="/weekly-plans")


# ==================== TIMEZONE / READ ====================

@router.patch(
    "/timezone",
    response_model=OperationOutcome,
    summary="Set Supplier Timezone",
    description="Stores the IANA timezone used to decide which ISO week is current for this supplier."
)
async def set_timezone(
    request: SetTimezoneRequest,
    current_user: CurrentUser = Depends(get_current_user)
):
    return await WeeklyPlanService.set_timezone(current_user, request.timezone)


@router.get(
    "",
    response_model=OperationOutcome,
    summary="Get or Create Weekly Plan",
    description="""
    Returns the plan for an ISO (year, week), creating it on first access.

    - Without a timezone nothing is created: `status = not_found`, `data = []`.
    - Plans created for past weeks start `expired`.
    - Expired snapshot plans describe their menus from the stored snapshots.
    """
)
async def get_weekly_plan(
    year: int = Query(..., ge=2000, le=2100, description="ISO week-year"),
    week: int = Query(..., ge=1, le=53, description="ISO week number"),
    current_user: CurrentUser = Depends(get_current_user)
):
    return await WeeklyPlanService.get_or_create(current_user, year, week)


# ==================== MENUS ====================

@router.post(
    "/{plan_id}/menus",
    response_model=OperationOutcome,
    summary="Assign Menus",
    description="""
    Assigns weekly menu templates, gated by the subscription tier menu limit.

    - `duplicate_menu`: every requested menu is already assigned.
    - `warning_multiple`: only part of the request fit the limit.
    - `warning`: close to the limit.
    - 403 when the limit is already reached.
    """
)
async def assign_menus(
    request: AssignMenusRequest,
    plan_id: str = Path(..., description="Weekly plan id"),
    current_user: CurrentUser = Depends(get_current_user)
):
    return await WeeklyPlanService.assign_menus(current_user, plan_id, request.menus)


@router.get(
    "/{plan_id}/menus/{assigned_menu_id}",
    response_model=AssignedMenuDetails,
    summary="Get Assigned Menu Details"
)
async def get_assigned_menu(
    plan_id: str = Path(...),
    assigned_menu_id: str = Path(...),
    current_user: CurrentUser = Depends(get_current_user)
):
    return await WeeklyPlanService.get_assigned_menu_details(current_user, plan_id, assigned_menu_id)


@router.delete(
    "/{plan_id}/menus/{assigned_menu_id}",
    response_model=OperationOutcome,
    summary="Remove Assigned Menu",
    description="Rejected with 409 while the menu is published."
)
async def unassign_menu(
    plan_id: str = Path(...),
    assigned_menu_id: str = Path(...),
    current_user: CurrentUser = Depends(get_current_user)
):
    return await WeeklyPlanService.unassign_menu(current_user, plan_id, assigned_menu_id)


@router.patch(
    "/{plan_id}/menus/{assigned_menu_id}/publish",
    response_model=OperationOutcome,
    summary="Publish / Unpublish Menu",
    description="""
    Publishing creates or extends the day orders of the week; unpublishing removes
    this menu's meals from them and cleans up stock that is no longer needed.
    """
)
async def toggle_publish(
    request: PublishRequest,
    plan_id: str = Path(...),
    assigned_menu_id: str = Path(...),
    current_user: CurrentUser = Depends(get_current_user),
    notifier: Optional[NotificationSink] = Depends(get_notifier)
):
    return await WeeklyPlanService.toggle_publish(
        current_user, plan_id, assigned_menu_id, request.publish, notifier
    )


# ==================== ROSTER ====================

@router.post(
    "/{plan_id}/menus/{assigned_menu_id}/customers",
    response_model=OperationOutcome,
    summary="Assign Customers",
    description="""
    Default: per-customer weekly menu quantity is enforced.
    `exclusive=true`: customers already in any menu of the week, directly or via a group, are rejected.
    Conflicts are reported one per customer; the others are assigned.
    """
)
async def assign_customers(
    request: CustomerIdsRequest,
    plan_id: str = Path(...),
    assigned_menu_id: str = Path(...),
    exclusive: bool = Query(False, description="Group-aware exclusive assignment"),
    current_user: CurrentUser = Depends(get_current_user)
):
    if exclusive:
        return await WeeklyPlanService.assign_customers_exclusive(
            current_user, plan_id, assigned_menu_id, request.customers
        )
    return await WeeklyPlanService.assign_customers(current_user, plan_id, assigned_menu_id, request.customers)


@router.delete(
    "/{plan_id}/menus/{assigned_menu_id}/customers",
    response_model=OperationOutcome,
    summary="Remove Customer"
)
async def remove_customer(
    request: RemoveCustomerRequest,
    plan_id: str = Path(...),
    assigned_menu_id: str = Path(...),
    current_user: CurrentUser = Depends(get_current_user)
):
    return await WeeklyPlanService.remove_customer(current_user, plan_id, assigned_menu_id, request.customer_id)


@router.post(
    "/{plan_id}/menus/{assigned_menu_id}/groups",
    response_model=OperationOutcome,
    summary="Assign Groups"
)
async def assign_groups(
    request: GroupIdsRequest,
    plan_id: str = Path(...),
    assigned_menu_id: str = Path(...),
    current_user: CurrentUser = Depends(get_current_user)
):
    return await WeeklyPlanService.assign_groups(current_user, plan_id, assigned_menu_id, request.groups)


@router.delete(
    "/{plan_id}/menus/{assigned_menu_id}/groups",
    response_model=OperationOutcome,
    summary="Remove Group"
)
async def remove_group(
    request: RemoveGroupRequest,
    plan_id: str = Path(...),
    assigned_menu_id: str = Path(...),
    current_user: CurrentUser = Depends(get_current_user)
):
    return await WeeklyPlanService.remove_group(current_user, plan_id, assigned_menu_id, request.group_id)


# ==================== EXPIRATION ====================

@router.post(
    "/{plan_id}/expire",
    response_model=OperationOutcome,
    summary="Expire Current Week",
    description="Closes the current week early. Every assigned menu must be published."
)
async def expire_week(
    plan_id: str = Path(...),
    current_user: CurrentUser = Depends(get_current_user),
    notifier: Optional[NotificationSink] = Depends(get_notifier)
):
    return await WeeklyPlanService.expire_current_week(current_user, plan_id, notifier)
