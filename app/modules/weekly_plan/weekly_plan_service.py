from datetime import datetime
from typing import Dict, Iterable, List, Optional
import logging

from beanie.operators import In
from bson import ObjectId
from fastapi import HTTPException
from pymongo.errors import DuplicateKeyError

from app.core.db.versioning import MAX_RETRIES, VersionConflict, backoff, save_versioned
from app.core.models.catalog import Customer, CustomerGroup
from app.core.models.supplier import SupplierAccount
from app.core.models.weekly_menu import WeeklyMenuTemplate
from app.core.models.weekly_plan import AssignedMenu, WeeklyPlan
from app.core.monitoring.prometheus_middleware import track_plan_operation
from app.core.notifications.connection_manager import NotificationSink, notify_safely
from app.core.schemas.auth import CurrentUser
from app.core.schemas.weekly_plan import (
    AssignedMenuDetails,
    AssignedMenuResponse,
    MenuSummary,
    OperationOutcome,
    RosterCustomer,
    RosterGroup,
    WarningDetail,
    WeeklyPlanResponse,
)
from app.modules.expiration.expiration_sweeper import ExpirationSweeper
from app.modules.orders.publication_service import PublicationService
from app.modules.weekly_plan.menu_quota import gate_menus
from app.shared.messages import render
from app.shared.timezone import is_valid_timezone, is_week_expired, resolve_local_iso_week, weeks_in_iso_year

logger = logging.getLogger(__name__)


def _object_id(value: str, label: str) -> ObjectId:
    if not value or not ObjectId.is_valid(value):
        raise HTTPException(400, f"Invalid {label} id: {value}")
    return ObjectId(value)


def _unique(values: Iterable[str]) -> List[str]:
    result = []
    for v in values:
        if v not in result:
            result.append(v)
    return result


class WeeklyPlanService:
    """
    Per-(user, ISO year, ISO week) plan aggregate.

    - Structural errors (bad id, not found, menu not assigned) raise 400/404.
    - Mutations of an expired plan raise 409.
    - Business conflicts come back as an OperationOutcome with status 'warning'
      and one WarningDetail per conflicting entity.
    """

    # ==================== LOADING / GUARDS ====================

    @staticmethod
    async def load_plan(user_id: str, plan_id: str) -> WeeklyPlan:
        plan = await WeeklyPlan.get(_object_id(plan_id, "weekly plan"))
        if not plan or plan.user_id != user_id:
            raise HTTPException(404, "Weekly plan not found")
        return plan

    @staticmethod
    def ensure_active(plan: WeeklyPlan) -> None:
        if plan.is_expired:
            raise HTTPException(409, "Weekly plan is expired and can not be modified")

    @staticmethod
    def get_assigned(plan: WeeklyPlan, assigned_menu_id: str) -> AssignedMenu:
        _object_id(assigned_menu_id, "assigned menu")
        assigned = plan.find_assigned(assigned_menu_id)
        if assigned is None:
            raise HTTPException(400, "Menu is not assigned to this weekly plan")
        return assigned

    @staticmethod
    async def load_templates(user_id: str, menu_ids: Iterable[str]) -> Dict[str, WeeklyMenuTemplate]:
        ids = [ObjectId(m) for m in _unique(menu_ids) if ObjectId.is_valid(m)]
        if not ids:
            return {}
        templates = await WeeklyMenuTemplate.find(
            In(WeeklyMenuTemplate.id, ids),
            WeeklyMenuTemplate.user_id == user_id
        ).to_list()
        return {str(t.id): t for t in templates}

    @staticmethod
    def _finish(operation: str, outcome: OperationOutcome) -> OperationOutcome:
        track_plan_operation(operation, outcome.status)
        return outcome

    # ==================== TIMEZONE / READ ====================

    @staticmethod
    async def set_timezone(user: CurrentUser, timezone: str) -> OperationOutcome:
        if not is_valid_timezone(timezone):
            raise HTTPException(400, f"Invalid timezone: {timezone}")

        account = await SupplierAccount.get(_object_id(user.id, "user"))
        if not account:
            raise HTTPException(404, "User not found")

        account.timezone = timezone
        await account.save()
        user.timezone = timezone
        logger.info(f"🕒 TIMEZONE: user {user.id} -> {timezone}")
        return OperationOutcome.success("timezone_set", data={"timezone": timezone}, timezone=timezone)

    @staticmethod
    async def get_or_create(
        user: CurrentUser,
        year: int,
        week_number: int,
        now: Optional[datetime] = None
    ) -> OperationOutcome:
        """
        Plan for (year, week) of the user, created lazily.

        Without a configured timezone nothing is created and the outcome is
        `not_found` with empty data. A new plan for a past week starts expired.
        """
        if week_number < 1 or week_number > weeks_in_iso_year(year):
            raise HTTPException(400, f"Week {week_number} does not exist in ISO year {year}")

        plan = await WeeklyPlan.find_one(
            WeeklyPlan.user_id == user.id,
            WeeklyPlan.year == year,
            WeeklyPlan.week_number == week_number
        )

        if plan is None:
            if not user.timezone:
                return OperationOutcome(
                    status="not_found",
                    message="weekly_plan_not_found",
                    detail=render("weekly_plan_not_found"),
                    data=[],
                )

            plan = WeeklyPlan(
                user_id=user.id,
                year=year,
                week_number=week_number,
                status="expired" if is_week_expired(year, week_number, user.timezone, now) else "active",
            )
            try:
                await plan.insert()
                logger.info(f"✅ WEEKLY PLAN CREATED: user {user.id} {year}-W{week_number} ({plan.status})")
            except DuplicateKeyError:
                # Concurrent first request won the race
                plan = await WeeklyPlan.find_one(
                    WeeklyPlan.user_id == user.id,
                    WeeklyPlan.year == year,
                    WeeklyPlan.week_number == week_number
                )

        data = await WeeklyPlanService.describe_plan(plan, user.timezone)
        return OperationOutcome.success("weekly_plan_found", data=data)

    @staticmethod
    async def describe_plan(plan: WeeklyPlan, timezone: Optional[str] = None) -> WeeklyPlanResponse:
        """Expired snapshot plans are described from their snapshots, others from the live templates."""
        from_snapshot = plan.is_expired and plan.is_snapshot
        templates = {} if from_snapshot else await WeeklyPlanService.load_templates(
            plan.user_id, [a.menu_id for a in plan.assign_menu]
        )

        menus = []
        for assigned in plan.assign_menu:
            summary = None
            if from_snapshot and assigned.menu_snapshot is not None:
                summary = MenuSummary(**assigned.menu_snapshot.summary())
            elif assigned.menu_id in templates:
                t = templates[assigned.menu_id]
                summary = MenuSummary(
                    id=str(t.id),
                    title=t.title,
                    description=t.description,
                    preferences=t.preferences,
                    restrictions=t.restrictions,
                )
            menus.append(
                AssignedMenuResponse(
                    id=assigned.id,
                    menu=summary,
                    from_snapshot=from_snapshot,
                    published=assigned.published,
                    assigned_customers=list(assigned.assigned_customers),
                    assigned_groups=list(assigned.assigned_groups),
                )
            )

        return WeeklyPlanResponse(
            id=str(plan.id),
            year=plan.year,
            week_number=plan.week_number,
            status=plan.status,
            is_snapshot=plan.is_snapshot,
            timezone=timezone,
            assign_menu=menus,
        )

    @staticmethod
    async def get_assigned_menu_details(user: CurrentUser, plan_id: str, assigned_menu_id: str) -> AssignedMenuDetails:
        plan = await WeeklyPlanService.load_plan(user.id, plan_id)
        assigned = WeeklyPlanService.get_assigned(plan, assigned_menu_id)

        summary = None
        if plan.is_expired and assigned.menu_snapshot is not None:
            summary = MenuSummary(**assigned.menu_snapshot.summary())
        else:
            templates = await WeeklyPlanService.load_templates(user.id, [assigned.menu_id])
            template = templates.get(assigned.menu_id)
            if template is not None:
                summary = MenuSummary(
                    id=str(template.id),
                    title=template.title,
                    description=template.description,
                    preferences=template.preferences,
                    restrictions=template.restrictions,
                )

        customer_ids = [ObjectId(c) for c in assigned.assigned_customers if ObjectId.is_valid(c)]
        customers = await Customer.find(In(Customer.id, customer_ids)).to_list() if customer_ids else []
        names = {str(c.id): c.display_name for c in customers}
        groups = await PublicationService.load_groups(assigned.assigned_groups)

        return AssignedMenuDetails(
            weekly_plan_id=str(plan.id),
            expired=plan.is_expired,
            assigned_menu_id=assigned.id,
            menu=summary,
            published=assigned.published,
            customers=[
                RosterCustomer(id=c, name=names[c])
                for c in assigned.assigned_customers if c in names
            ],
            groups=[
                RosterGroup(id=g, name=groups[g].name, members=list(groups[g].members))
                for g in assigned.assigned_groups if g in groups
            ],
        )

    # ==================== MENUS ====================

    @staticmethod
    async def assign_menus(user: CurrentUser, plan_id: str, menu_ids: List[str]) -> OperationOutcome:
        """
        Assign templates to the plan, quota-gated by the user's tier.

        Each newly assigned template gets (year, week) in its active_weeks and
        becomes active.
        """
        if not menu_ids:
            raise HTTPException(400, "At least one menu is required")
        for menu_id in menu_ids:
            _object_id(menu_id, "menu")

        plan = await WeeklyPlanService.load_plan(user.id, plan_id)
        WeeklyPlanService.ensure_active(plan)

        decision = await gate_menus([a.menu_id for a in plan.assign_menu], menu_ids, user.plan)
        if decision.duplicate:
            return WeeklyPlanService._finish("assign_menus", OperationOutcome.warning("duplicate_menu"))

        templates = await WeeklyPlanService.load_templates(user.id, decision.admitted)
        missing = [m for m in decision.admitted if m not in templates]
        if missing:
            raise HTTPException(404, f"Weekly menu not found: {', '.join(missing)}")

        for menu_id in decision.admitted:
            plan.assign_menu.append(AssignedMenu(menu_id=menu_id))
        await save_versioned(plan)

        for menu_id in decision.admitted:
            template = templates[menu_id]
            if template.add_active_week(plan.year, plan.week_number):
                await template.save()

        logger.info(
            f"📋 MENUS ASSIGNED: plan {plan.id} {plan.year}-W{plan.week_number}: "
            f"{decision.admitted} (warnings: {[w.code for w in decision.warnings]})"
        )
        outcome = OperationOutcome.success(
            "menus_assigned",
            data=await WeeklyPlanService.describe_plan(plan, user.timezone),
            warnings=decision.warnings,
            count=len(decision.admitted),
        )
        return WeeklyPlanService._finish("assign_menus", outcome)

    @staticmethod
    async def unassign_menu(user: CurrentUser, plan_id: str, assigned_menu_id: str) -> OperationOutcome:
        plan = await WeeklyPlanService.load_plan(user.id, plan_id)
        WeeklyPlanService.ensure_active(plan)
        assigned = WeeklyPlanService.get_assigned(plan, assigned_menu_id)

        if assigned.published:
            raise HTTPException(409, "Menu is published and can not be removed. Unpublish it first.")

        plan.assign_menu = [a for a in plan.assign_menu if a.id != assigned.id]
        await save_versioned(plan)

        templates = await WeeklyPlanService.load_templates(user.id, [assigned.menu_id])
        template = templates.get(assigned.menu_id)
        if template is not None:
            if template.remove_active_weeks(lambda y, w: y == plan.year and w == plan.week_number):
                await template.save()

        logger.info(f"🗑️ MENU UNASSIGNED: {assigned.menu_id} from plan {plan.id}")
        return WeeklyPlanService._finish("unassign_menu", OperationOutcome.success("menu_deleted"))

    # ==================== ROSTER ====================

    @staticmethod
    async def _load_customers(user_id: str, customer_ids: List[str]) -> Dict[str, Customer]:
        ids = [_object_id(c, "customer") for c in customer_ids]
        customers = await Customer.find(
            In(Customer.id, ids),
            Customer.supplier_id == user_id,
            Customer.deleted_at == None
        ).to_list()
        found = {str(c.id): c for c in customers}
        if len(found) != len(set(customer_ids)):
            raise HTTPException(400, "One or more customers are invalid")
        return found

    @staticmethod
    async def _load_owned_groups(user_id: str, group_ids: List[str]) -> Dict[str, CustomerGroup]:
        ids = [_object_id(g, "group") for g in group_ids]
        groups = await CustomerGroup.find(
            In(CustomerGroup.id, ids),
            CustomerGroup.created_by == user_id
        ).to_list()
        found = {str(g.id): g for g in groups}
        if len(found) != len(set(group_ids)):
            raise HTTPException(400, "One or more groups are invalid")
        return found

    @staticmethod
    async def _roster_context(user_id: str, plan_id: str, assigned_menu_id: str):
        """Load plan + assigned menu for a roster change; published menus are locked."""
        plan = await WeeklyPlanService.load_plan(user_id, plan_id)
        WeeklyPlanService.ensure_active(plan)
        assigned = WeeklyPlanService.get_assigned(plan, assigned_menu_id)
        locked = OperationOutcome.warning("menu_published_roster_locked") if assigned.published else None
        return plan, assigned, locked

    @staticmethod
    def _roster_outcome(key: str, admitted: int, warnings: List[WarningDetail]) -> OperationOutcome:
        if not admitted:
            return OperationOutcome.warning("roster_not_assigned", warnings=warnings)
        return OperationOutcome.success(key, warnings=warnings, count=admitted)

    @staticmethod
    async def assign_customers(
        user: CurrentUser,
        plan_id: str,
        assigned_menu_id: str,
        customer_ids: List[str]
    ) -> OperationOutcome:
        """
        Quota variant: a customer may appear in at most `weekly_menu_quantity`
        assigned menus of the plan, and only once per menu. Conflicting customers
        are reported, the rest are assigned.
        """
        plan, assigned, locked = await WeeklyPlanService._roster_context(user.id, plan_id, assigned_menu_id)
        if locked:
            return WeeklyPlanService._finish("assign_customers", locked)

        customer_ids = _unique(customer_ids)
        customers = await WeeklyPlanService._load_customers(user.id, customer_ids)

        admitted = 0
        warnings: List[WarningDetail] = []
        for customer_id in customer_ids:
            customer = customers[customer_id]
            if customer_id in assigned.assigned_customers:
                warnings.append(WarningDetail.of(
                    "customer_already_in_menu", customer=customer.display_name, customer_id=customer_id
                ))
                continue
            if plan.customer_appearances(customer_id) >= customer.weekly_menu_quantity:
                warnings.append(WarningDetail.of(
                    "customer_quota_reached",
                    customer=customer.display_name,
                    customer_id=customer_id,
                    menu_quantity=customer.weekly_menu_quantity,
                ))
                continue
            assigned.assigned_customers.append(customer_id)
            admitted += 1

        if admitted:
            await save_versioned(plan)
            logger.info(f"👥 CUSTOMERS ASSIGNED: {admitted} to menu {assigned.id} of plan {plan.id}")
        if warnings:
            logger.info(f"Customer assignment conflicts on plan {plan.id}: {[w.code for w in warnings]}")

        return WeeklyPlanService._finish(
            "assign_customers", WeeklyPlanService._roster_outcome("customers_assigned", admitted, warnings)
        )

    @staticmethod
    async def _plan_commitments(plan: WeeklyPlan):
        """Who is already committed where: customer -> menu, group -> menu, member -> group."""
        templates = await WeeklyPlanService.load_templates(plan.user_id, [a.menu_id for a in plan.assign_menu])
        groups = await PublicationService.load_groups(plan.assigned_group_ids())

        def title(a: AssignedMenu) -> str:
            t = templates.get(a.menu_id)
            return t.title if t else a.menu_id

        customer_menu: Dict[str, str] = {}
        group_menu: Dict[str, str] = {}
        member_group: Dict[str, CustomerGroup] = {}
        for a in plan.assign_menu:
            for c in a.assigned_customers:
                customer_menu.setdefault(c, title(a))
            for g in a.assigned_groups:
                group_menu.setdefault(g, title(a))
                if g in groups:
                    for m in groups[g].members:
                        member_group.setdefault(m, groups[g])
        return customer_menu, group_menu, member_group

    @staticmethod
    async def assign_customers_exclusive(
        user: CurrentUser,
        plan_id: str,
        assigned_menu_id: str,
        customer_ids: List[str]
    ) -> OperationOutcome:
        """
        Group-aware variant: a customer may not be in any other assigned menu of
        the plan, directly or through an assigned group.
        """
        plan, assigned, locked = await WeeklyPlanService._roster_context(user.id, plan_id, assigned_menu_id)
        if locked:
            return WeeklyPlanService._finish("assign_customers", locked)

        customer_ids = _unique(customer_ids)
        customers = await WeeklyPlanService._load_customers(user.id, customer_ids)
        customer_menu, _, member_group = await WeeklyPlanService._plan_commitments(plan)

        admitted = 0
        warnings: List[WarningDetail] = []
        for customer_id in customer_ids:
            name = customers[customer_id].display_name
            if customer_id in customer_menu:
                warnings.append(WarningDetail.of(
                    "customer_already_assigned",
                    customer=name, customer_id=customer_id, menu_title=customer_menu[customer_id],
                ))
                continue
            if customer_id in member_group:
                warnings.append(WarningDetail.of(
                    "customer_in_assigned_group",
                    customer=name, customer_id=customer_id, group_name=member_group[customer_id].name,
                ))
                continue
            assigned.assigned_customers.append(customer_id)
            admitted += 1

        if admitted:
            await save_versioned(plan)
            logger.info(f"👥 CUSTOMERS ASSIGNED (exclusive): {admitted} to menu {assigned.id} of plan {plan.id}")

        return WeeklyPlanService._finish(
            "assign_customers", WeeklyPlanService._roster_outcome("customers_assigned", admitted, warnings)
        )

    @staticmethod
    async def remove_customer(user: CurrentUser, plan_id: str, assigned_menu_id: str, customer_id: str) -> OperationOutcome:
        plan, assigned, locked = await WeeklyPlanService._roster_context(user.id, plan_id, assigned_menu_id)
        if locked:
            return WeeklyPlanService._finish("remove_customer", locked)

        _object_id(customer_id, "customer")
        if customer_id not in assigned.assigned_customers:
            raise HTTPException(400, "Customer is not assigned to this menu")

        assigned.assigned_customers.remove(customer_id)
        await save_versioned(plan)
        logger.info(f"Customer {customer_id} removed from menu {assigned.id} of plan {plan.id}")
        return WeeklyPlanService._finish("remove_customer", OperationOutcome.success("customer_removed"))

    @staticmethod
    async def assign_groups(
        user: CurrentUser,
        plan_id: str,
        assigned_menu_id: str,
        group_ids: List[str]
    ) -> OperationOutcome:
        """
        Assign customer groups. A group already assigned anywhere in the plan,
        or one with members already committed this week, is reported and skipped.
        """
        plan, assigned, locked = await WeeklyPlanService._roster_context(user.id, plan_id, assigned_menu_id)
        if locked:
            return WeeklyPlanService._finish("assign_groups", locked)

        group_ids = _unique(group_ids)
        groups = await WeeklyPlanService._load_owned_groups(user.id, group_ids)
        customer_menu, group_menu, member_group = await WeeklyPlanService._plan_commitments(plan)

        admitted = 0
        warnings: List[WarningDetail] = []
        for group_id in group_ids:
            group = groups[group_id]
            if group_id in group_menu:
                warnings.append(WarningDetail.of(
                    "group_already_assigned",
                    group_name=group.name, group_id=group_id, menu_title=group_menu[group_id],
                ))
                continue

            taken = [m for m in group.members if m in customer_menu or m in member_group]
            if taken:
                member_ids = [ObjectId(m) for m in taken if ObjectId.is_valid(m)]
                members = await Customer.find(In(Customer.id, member_ids)).to_list() if member_ids else []
                warnings.append(WarningDetail.of(
                    "group_members_already_assigned",
                    group_name=group.name,
                    group_id=group_id,
                    customers=", ".join(c.display_name for c in members) or ", ".join(taken),
                    customer_ids=taken,
                ))
                continue

            assigned.assigned_groups.append(group_id)
            for m in group.members:
                member_group[m] = group
            admitted += 1

        if admitted:
            await save_versioned(plan)
            logger.info(f"👥 GROUPS ASSIGNED: {admitted} to menu {assigned.id} of plan {plan.id}")

        return WeeklyPlanService._finish(
            "assign_groups", WeeklyPlanService._roster_outcome("groups_assigned", admitted, warnings)
        )

    @staticmethod
    async def remove_group(user: CurrentUser, plan_id: str, assigned_menu_id: str, group_id: str) -> OperationOutcome:
        plan, assigned, locked = await WeeklyPlanService._roster_context(user.id, plan_id, assigned_menu_id)
        if locked:
            return WeeklyPlanService._finish("remove_group", locked)

        _object_id(group_id, "group")
        if group_id not in assigned.assigned_groups:
            raise HTTPException(400, "Group is not assigned to this menu")

        assigned.assigned_groups.remove(group_id)
        await save_versioned(plan)
        return WeeklyPlanService._finish("remove_group", OperationOutcome.success("group_removed"))

    # ==================== PUBLISH ====================

    @staticmethod
    async def toggle_publish(
        user: CurrentUser,
        plan_id: str,
        assigned_menu_id: str,
        publish: bool,
        notifier: Optional[NotificationSink] = None
    ) -> OperationOutcome:
        """
        Publish: materialize the menu into day orders. Unpublish: prune them.

        Soft refusals (warning): already in the requested state, nobody assigned,
        or a touched day order is already done. An expired touched order is a 409
        raised before anything is written; if the order writes fail later, the
        previous flag is restored.
        """
        operation = "publish" if publish else "unpublish"
        plan = await WeeklyPlanService.load_plan(user.id, plan_id)
        WeeklyPlanService.ensure_active(plan)
        assigned = WeeklyPlanService.get_assigned(plan, assigned_menu_id)

        if assigned.published == publish:
            return WeeklyPlanService._finish(
                operation, OperationOutcome.warning("already_published" if publish else "already_unpublished")
            )

        templates = await WeeklyPlanService.load_templates(user.id, [assigned.menu_id])
        template = templates.get(assigned.menu_id)
        if template is None and publish:
            raise HTTPException(404, "Weekly menu not found")

        consumers: List[str] = []
        if publish:
            groups = await PublicationService.load_groups(assigned.assigned_groups)
            consumers = PublicationService.consumers_of(assigned, groups)
            if not consumers:
                return WeeklyPlanService._finish(operation, OperationOutcome.warning("no_customers_assigned"))

        orders = await PublicationService.week_orders(plan.user_id, plan.year, plan.week_number)
        if template is not None and PublicationService.orders_already_started(template, orders):
            return WeeklyPlanService._finish(
                operation, OperationOutcome.warning("orders_already_started", action=operation)
            )

        if publish:
            PublicationService.ensure_publish_targets_open(template, orders)
        else:
            PublicationService.ensure_unpublish_targets_open(assigned.menu_id, orders)

        # Flip first: a concurrent toggle loses on the version check before any order is written
        assigned.published = publish
        await save_versioned(plan)

        try:
            if publish:
                touched = await PublicationService.publish(plan, template, consumers, orders)
                data = {"orders": touched}
            else:
                removed = await PublicationService.unpublish(plan, assigned.menu_id, orders)
                data = {"removed_meals": removed}
        except Exception as e:
            logger.error(f"❌ {operation.upper()} FAILED: menu {assigned.id} of plan {plan.id}, reverting flag: {e}")
            if publish:
                # Drop whatever part of the menu already reached the orders
                try:
                    await PublicationService.unpublish(plan, assigned.menu_id)
                except Exception as cleanup_error:
                    logger.error(f"❌ Cleanup after failed publish of menu {assigned.id} failed: {cleanup_error}")
            await WeeklyPlanService._revert_publish_flag(plan.id, assigned.id, not publish)
            raise

        event = "orders_published" if publish else "orders_unpublished"
        await notify_safely(notifier, user.id, event, {
            "year": plan.year, "week_number": plan.week_number, "assigned_menu_id": assigned.id,
        })
        outcome = OperationOutcome.success("menu_published" if publish else "menu_unpublished", data=data)
        return WeeklyPlanService._finish(operation, outcome)

    @staticmethod
    async def _revert_publish_flag(plan_id, assigned_menu_id: str, published: bool) -> None:
        """Restore the publish flag after the order writes failed, re-reading on version conflicts."""
        for attempt in range(MAX_RETRIES + 1):
            plan = await WeeklyPlan.get(plan_id)
            assigned = plan.find_assigned(assigned_menu_id) if plan else None
            if assigned is None or assigned.published == published:
                return
            assigned.published = published
            try:
                await save_versioned(plan)
                return
            except VersionConflict:
                if attempt == MAX_RETRIES:
                    raise
                await backoff(attempt)

    # ==================== MANUAL EXPIRATION ====================

    @staticmethod
    async def expire_current_week(
        user: CurrentUser,
        plan_id: str,
        notifier: Optional[NotificationSink] = None,
        now: Optional[datetime] = None
    ) -> OperationOutcome:
        """
        Close the user's current week early.

        Requires every assigned menu to be published and the plan to be the
        user's current local ISO week. Runs the same expiration as the sweeper.
        """
        plan = await WeeklyPlanService.load_plan(user.id, plan_id)
        WeeklyPlanService.ensure_active(plan)

        if not plan.assign_menu or any(not a.published for a in plan.assign_menu):
            return WeeklyPlanService._finish("expire_week", OperationOutcome.warning("menu_not_published"))

        current_year, current_week = resolve_local_iso_week(now, user.timezone)
        if (plan.year, plan.week_number) != (current_year, current_week):
            raise HTTPException(400, "Only the current week can be expired manually")

        order_ids = await ExpirationSweeper.expire_week(plan)
        await notify_safely(notifier, user.id, "weekly_plan_expired", {
            "year": plan.year, "week_number": plan.week_number, "weekly_plan_id": str(plan.id),
        })
        logger.info(f"🧊 MANUAL EXPIRE: plan {plan.id} {plan.year}-W{plan.week_number} ({len(order_ids)} orders)")

        return WeeklyPlanService._finish(
            "expire_week",
            OperationOutcome.success(
                "weekly_plan_expired",
                data={"weekly_plan_id": str(plan.id), "single_day_order_ids": order_ids},
            ),
        )
