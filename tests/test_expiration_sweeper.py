from datetime import datetime, timezone

import pytest

from app.core.db.versioning import save_versioned
from app.core.models.single_day_order import SingleDayOrder
from app.core.models.supplier import SupplierAccount
from app.core.models.weekly_menu import WeeklyMenuTemplate
from app.core.models.weekly_plan import AssignedMenu, WeeklyPlan
from app.modules.expiration import expiration_sweeper
from app.modules.expiration.expiration_sweeper import ExpirationSweeper, _retry_versioned, due_weeks_filter
from app.modules.weekly_plan.weekly_plan_service import WeeklyPlanService
from app.shared.timezone import is_due_for_expiration

from factories import VILNIUS, WEEK_10_NOW, make_customer, make_group, make_meal, make_template

# Sunday 22:15 UTC == Monday 00:15 of 2025-W11 in Vilnius
MONDAY_W11 = datetime(2025, 3, 9, 22, 15, tzinfo=timezone.utc)


@pytest.fixture
async def published_week(user, notifier):
    """M1 published in 2025-W10 for one customer, and assigned (unpublished) to 2025-W12."""
    oatmeal = await make_meal(user.id)
    m1 = await make_template(user.id, "M1", {0: [("breakfast", oatmeal)]})
    alice = await make_customer(user.id, "alice")

    outcome = await WeeklyPlanService.get_or_create(user, 2025, 10, now=WEEK_10_NOW)
    plan_id = outcome.data.id
    await WeeklyPlanService.assign_menus(user, plan_id, [str(m1.id)])
    entry = (await WeeklyPlan.get(plan_id)).assign_menu[0].id
    await WeeklyPlanService.assign_customers(user, plan_id, entry, [str(alice.id)])
    await WeeklyPlanService.toggle_publish(user, plan_id, entry, True, notifier)

    future = await WeeklyPlanService.get_or_create(user, 2025, 12, now=WEEK_10_NOW)
    await WeeklyPlanService.assign_menus(user, future.data.id, [str(m1.id)])
    return plan_id, future.data.id, m1


async def test_sweep_user_retires_due_week(user, published_week):
    plan_id, future_id, m1 = published_week

    result = await ExpirationSweeper.sweep_user(user.id, VILNIUS, MONDAY_W11)

    assert (result.weekly_plans, result.single_day_orders, result.template_weeks) == (1, 1, 1)

    plan = await WeeklyPlan.get(plan_id)
    assert plan.status == "expired"
    assert plan.is_snapshot is True
    assert plan.assign_menu[0].menu_snapshot.title == "M1"
    assert plan.assign_menu[0].menu_snapshot.days[0].meals[0].category == "breakfast"
    assert (await WeeklyPlan.get(future_id)).status == "active"

    order = await SingleDayOrder.find_one(SingleDayOrder.user_id == user.id)
    assert order.expired is True
    assert order.status == "done"
    assert {m.status for m in order.iter_meals()} == {"done"}

    m1 = await WeeklyMenuTemplate.get(m1.id)
    assert [(w.year, w.week_number) for w in m1.active_weeks] == [(2025, 12)]
    assert m1.status == "active"


async def test_sweep_is_idempotent(user, published_week):
    await ExpirationSweeper.sweep_user(user.id, VILNIUS, MONDAY_W11)
    plan_id, _, _ = published_week
    version = (await WeeklyPlan.get(plan_id)).version

    again = await ExpirationSweeper.sweep_user(user.id, VILNIUS, MONDAY_W11)

    assert (again.weekly_plans, again.single_day_orders, again.template_weeks) == (0, 0, 0)
    assert (await WeeklyPlan.get(plan_id)).version == version


async def test_snapshot_survives_template_edits(user, published_week):
    plan_id, _, m1 = published_week
    await ExpirationSweeper.sweep_user(user.id, VILNIUS, MONDAY_W11)

    m1 = await WeeklyMenuTemplate.get(m1.id)
    m1.title = "Renamed"
    m1.days = []
    await m1.save()

    plan = await WeeklyPlan.get(plan_id)
    assert plan.assign_menu[0].menu_snapshot.title == "M1"
    assert len(plan.assign_menu[0].menu_snapshot.days) == 7


async def test_sweep_without_due_weeks_changes_nothing(user, published_week):
    plan_id, _, m1 = published_week

    result = await ExpirationSweeper.sweep_user(user.id, VILNIUS, WEEK_10_NOW)

    assert (result.weekly_plans, result.single_day_orders, result.template_weeks) == (0, 0, 0)
    assert (await WeeklyPlan.get(plan_id)).status == "active"


async def test_deleted_template_leaves_plan_without_snapshot(user):
    plan = WeeklyPlan(
        user_id=user.id, year=2025, week_number=9,
        assign_menu=[AssignedMenu(menu_id="650000000000000000000abc")],
    )
    await plan.insert()

    result = await ExpirationSweeper.sweep_user(user.id, VILNIUS, WEEK_10_NOW)

    assert result.weekly_plans == 1
    plan = await WeeklyPlan.get(plan.id)
    assert plan.status == "expired"
    assert plan.assign_menu[0].menu_snapshot is None


# ==================== SCHEDULED ENTRY POINT ====================

async def test_process_weekly_plans_only_at_local_monday_midnight(user, published_week):
    await SupplierAccount(email="utc@example.com", timezone="UTC").insert()
    await SupplierAccount(email="none@example.com").insert()

    assert await ExpirationSweeper.process_weekly_plans(datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)) == 0
    # Vilnius only; UTC is still Sunday
    assert await ExpirationSweeper.process_weekly_plans(MONDAY_W11) == 1

    plan_id, _, _ = published_week
    assert (await WeeklyPlan.get(plan_id)).status == "expired"


async def test_failing_user_does_not_stop_the_run(user, monkeypatch):
    other = SupplierAccount(email="other@example.com", timezone=VILNIUS)
    await other.insert()
    seen = []

    async def flaky(user_id, tz, now=None):
        seen.append(user_id)
        if user_id == user.id:
            raise RuntimeError("boom")

    monkeypatch.setattr(ExpirationSweeper, "sweep_user", staticmethod(flaky))

    assert await ExpirationSweeper.process_weekly_plans(MONDAY_W11) == 1
    assert sorted(seen) == sorted([user.id, str(other.id)])


# ==================== WINDOW / RETRY ====================

async def test_due_weeks_filter_matches_predicate(user):
    weeks = [(2024, 30), (2024, 49), (2024, 50), (2024, 52), (2025, 1), (2025, 2), (2025, 3)]
    for year, week in weeks:
        await WeeklyPlan(user_id=user.id, year=year, week_number=week).insert()

    found = await WeeklyPlan.find({"user_id": user.id, "$or": due_weeks_filter(2025, 2, 4)}).to_list()

    assert sorted((p.year, p.week_number) for p in found) == [
        (y, w) for y, w in weeks if is_due_for_expiration(y, w, 2025, 2, 4)
    ]
    assert (2024, 49) not in [(p.year, p.week_number) for p in found]


async def test_retry_rereads_after_version_conflict(user, monkeypatch):
    async def no_wait(attempt):
        pass

    monkeypatch.setattr(expiration_sweeper, "backoff", no_wait)

    plan = WeeklyPlan(user_id=user.id, year=2025, week_number=9)
    await plan.insert()
    stale = await WeeklyPlan.get(plan.id)
    fresh = await WeeklyPlan.get(plan.id)
    await save_versioned(fresh)

    copies = [stale]

    async def load():
        return copies.pop() if copies else await WeeklyPlan.get(plan.id)

    async def apply(doc):
        doc.is_snapshot = True
        return True

    assert await _retry_versioned(load, apply, "test plan") is True
    stored = await WeeklyPlan.get(plan.id)
    assert stored.is_snapshot is True
    assert stored.version == 2


# ==================== ROSTER CLEANUP ====================

async def test_prune_removed_customers(user):
    alice = await make_customer(user.id, "alice")
    bob = await make_customer(user.id, "bob")
    office = await make_group(user.id, "Office", [alice])
    bob.deleted_at = datetime(2025, 3, 1, tzinfo=timezone.utc)
    await bob.save()
    gone = "650000000000000000000abc"

    roster = dict(
        menu_id="650000000000000000000099",
        assigned_customers=[str(alice.id), str(bob.id), gone],
        assigned_groups=[str(office.id), gone],
    )
    expired = WeeklyPlan(
        user_id=user.id, year=2025, week_number=8, status="expired", is_snapshot=True,
        assign_menu=[AssignedMenu(**roster)],
    )
    active = WeeklyPlan(user_id=user.id, year=2025, week_number=10, assign_menu=[AssignedMenu(**roster)])
    await expired.insert()
    await active.insert()

    assert await ExpirationSweeper.prune_removed_customers() == 1

    expired = await WeeklyPlan.get(expired.id)
    assert expired.assign_menu[0].assigned_customers == [str(alice.id)]
    assert expired.assign_menu[0].assigned_groups == [str(office.id)]
    active = await WeeklyPlan.get(active.id)
    assert len(active.assign_menu[0].assigned_customers) == 3

    assert await ExpirationSweeper.prune_removed_customers() == 0
