import pytest
from fastapi import HTTPException

from app.core.db.versioning import VersionConflict
from app.core.models.ingredients_stock import IngredientsStock, StockEntry
from app.core.models.single_day_order import OrderCategory, OrderMeal, SingleDayOrder
from app.core.models.snapshots import MealSnapshot
from app.core.models.weekly_plan import WeeklyPlan
from app.modules.orders.publication_service import PublicationService
from app.modules.weekly_plan.weekly_plan_service import WeeklyPlanService

from factories import WEEK_10_NOW, RecordingNotifier, make_customer, make_group, make_meal, make_template


async def published_setup(user, notifier, template, customers=(), groups=()):
    outcome = await WeeklyPlanService.get_or_create(user, 2025, 10, now=WEEK_10_NOW)
    plan_id = outcome.data.id
    await WeeklyPlanService.assign_menus(user, plan_id, [str(template.id)])
    plan = await WeeklyPlan.get(outcome.data.id)
    entry = plan.find_by_template(str(template.id)).id
    if customers:
        await WeeklyPlanService.assign_customers(user, plan_id, entry, [str(c.id) for c in customers])
    if groups:
        await WeeklyPlanService.assign_groups(user, plan_id, entry, [str(g.id) for g in groups])
    return plan_id, entry


async def day_order(user, day):
    return await SingleDayOrder.find_one(
        SingleDayOrder.user_id == user.id,
        SingleDayOrder.year == 2025,
        SingleDayOrder.week_number == 10,
        SingleDayOrder.day == day
    )


async def test_publish_creates_day_order(user, notifier):
    oatmeal = await make_meal(user.id)
    m1 = await make_template(user.id, "M1", {0: [("breakfast", oatmeal)]})
    c1 = await make_customer(user.id, "c1")
    c2 = await make_customer(user.id, "c2")
    plan_id, entry = await published_setup(user, notifier, m1, customers=[c1, c2])

    outcome = await WeeklyPlanService.toggle_publish(user, plan_id, entry, True, notifier)

    assert outcome.status == "success"
    assert outcome.data == {"orders": 1}
    assert await SingleDayOrder.find(SingleDayOrder.user_id == user.id).count() == 1

    order = await day_order(user, 0)
    assert order.status == "not_done"
    assert order.expired is False
    assert len(order.categories) == 1
    assert order.categories[0].category == "breakfast"
    meal = order.categories[0].meals[0]
    assert meal.meal.title == "Oatmeal"
    assert meal.weekly_menu_id == str(m1.id)
    assert meal.weekly_menu_title == "M1"
    assert meal.customers == [str(c1.id), str(c2.id)]

    plan = await WeeklyPlan.get(plan_id)
    assert plan.find_assigned(entry).published is True
    assert notifier.events[-1][0] == user.id
    assert notifier.events[-1][1] == "orders_published"


async def test_order_keeps_meal_snapshot(user, notifier):
    oatmeal = await make_meal(user.id)
    m1 = await make_template(user.id, "M1", {0: [("breakfast", oatmeal)]})
    c1 = await make_customer(user.id, "c1")
    plan_id, entry = await published_setup(user, notifier, m1, customers=[c1])
    await WeeklyPlanService.toggle_publish(user, plan_id, entry, True, notifier)

    oatmeal.title = "Renamed"
    await oatmeal.save()

    order = await day_order(user, 0)
    assert order.categories[0].meals[0].meal.title == "Oatmeal"


async def test_second_menu_merges_into_existing_order(user, notifier):
    oatmeal = await make_meal(user.id)
    soup = await make_meal(user.id, title="Soup", amount=250)
    toast = await make_meal(user.id, title="Toast", amount=30)
    m1 = await make_template(user.id, "M1", {0: [("breakfast", oatmeal)]})
    m2 = await make_template(user.id, "M2", {0: [("lunch", soup), ("breakfast", toast)], 2: [("lunch", soup)]})
    c1 = await make_customer(user.id, "c1")
    c2 = await make_customer(user.id, "c2")

    plan_id, e1 = await published_setup(user, notifier, m1, customers=[c1])
    await WeeklyPlanService.toggle_publish(user, plan_id, e1, True, notifier)
    _, e2 = await published_setup(user, notifier, m2, customers=[c2])
    outcome = await WeeklyPlanService.toggle_publish(user, plan_id, e2, True, notifier)

    assert outcome.data == {"orders": 2}
    order = await day_order(user, 0)
    assert [c.category for c in order.categories] == ["breakfast", "lunch"]
    assert [m.meal.title for m in order.categories[0].meals] == ["Oatmeal", "Toast"]
    assert order.categories[1].meals[0].customers == [str(c2.id)]
    assert order.version == 1

    wednesday = await day_order(user, 2)
    assert wednesday.categories[0].meals[0].meal.title == "Soup"
    # No order for days without meals
    assert await SingleDayOrder.find(SingleDayOrder.user_id == user.id).count() == 2


async def test_group_members_deduplicated_with_direct_customers(user, notifier):
    oatmeal = await make_meal(user.id)
    m1 = await make_template(user.id, "M1", {1: [("breakfast", oatmeal)]})
    c1 = await make_customer(user.id, "c1")
    c2 = await make_customer(user.id, "c2")
    office = await make_group(user.id, "Office", [c2])
    plan_id, entry = await published_setup(user, notifier, m1, customers=[c1, c2])
    # assign_groups refuses overlapping groups, so write the overlap directly
    plan = await WeeklyPlan.get(plan_id)
    plan.find_assigned(entry).assigned_groups.append(str(office.id))
    await plan.save()

    await WeeklyPlanService.toggle_publish(user, plan_id, entry, True, notifier)

    order = await day_order(user, 1)
    assert order.categories[0].meals[0].customers == [str(c1.id), str(c2.id)]


async def test_publish_group_only_roster(user, notifier):
    oatmeal = await make_meal(user.id)
    m1 = await make_template(user.id, "M1", {0: [("breakfast", oatmeal)]})
    c1 = await make_customer(user.id, "c1")
    c2 = await make_customer(user.id, "c2")
    office = await make_group(user.id, "Office", [c1, c2])
    plan_id, entry = await published_setup(user, notifier, m1, groups=[office])

    outcome = await WeeklyPlanService.toggle_publish(user, plan_id, entry, True, notifier)

    assert outcome.status == "success"
    order = await day_order(user, 0)
    assert order.categories[0].meals[0].customers == [str(c1.id), str(c2.id)]


async def test_unpublish_prunes_meals_and_stock(user, notifier):
    oatmeal = await make_meal(user.id)
    soup = await make_meal(user.id, title="Soup", ingredient_id="650000000000000000000002", ingredient_title="Beet")
    m1 = await make_template(user.id, "M1", {0: [("breakfast", oatmeal)]})
    m2 = await make_template(user.id, "M2", {0: [("lunch", soup)]})
    c1 = await make_customer(user.id, "c1", quantity=2)

    plan_id, e1 = await published_setup(user, notifier, m1, customers=[c1])
    await WeeklyPlanService.toggle_publish(user, plan_id, e1, True, notifier)
    _, e2 = await published_setup(user, notifier, m2, customers=[c1])
    await WeeklyPlanService.toggle_publish(user, plan_id, e2, True, notifier)

    await IngredientsStock(
        user_id=user.id, year=2025, week_number=10, day=0,
        ingredients=[
            StockEntry(ingredient_id="650000000000000000000001", stock_amount=10),
            StockEntry(ingredient_id="650000000000000000000002", stock_amount=20),
        ],
    ).insert()

    outcome = await WeeklyPlanService.toggle_publish(user, plan_id, e2, False, notifier)

    assert outcome.data == {"removed_meals": 1}
    order = await day_order(user, 0)
    assert [c.category for c in order.categories] == ["breakfast"]
    stock = await IngredientsStock.find_one(IngredientsStock.user_id == user.id)
    assert [e.ingredient_id for e in stock.ingredients] == ["650000000000000000000001"]
    assert notifier.events[-1][1] == "orders_unpublished"

    # Last menu gone: order stays, emptied; stock of the week is dropped
    await WeeklyPlanService.toggle_publish(user, plan_id, e1, False, notifier)
    order = await day_order(user, 0)
    assert order is not None
    assert order.categories == []
    assert await IngredientsStock.find(IngredientsStock.user_id == user.id).count() == 0


async def test_republish_after_unpublish_has_single_entry(user, notifier):
    oatmeal = await make_meal(user.id)
    m1 = await make_template(user.id, "M1", {0: [("breakfast", oatmeal)]})
    c1 = await make_customer(user.id, "c1")
    plan_id, entry = await published_setup(user, notifier, m1, customers=[c1])

    await WeeklyPlanService.toggle_publish(user, plan_id, entry, True, notifier)
    await WeeklyPlanService.toggle_publish(user, plan_id, entry, False, notifier)
    await WeeklyPlanService.toggle_publish(user, plan_id, entry, True, notifier)

    order = await day_order(user, 0)
    assert len(order.categories[0].meals) == 1


async def test_publish_refused_when_order_done(user, notifier):
    oatmeal = await make_meal(user.id)
    m1 = await make_template(user.id, "M1", {0: [("breakfast", oatmeal)]})
    m2 = await make_template(user.id, "M2", {0: [("breakfast", oatmeal)]})
    c1 = await make_customer(user.id, "c1", quantity=2)

    plan_id, e1 = await published_setup(user, notifier, m1, customers=[c1])
    await WeeklyPlanService.toggle_publish(user, plan_id, e1, True, notifier)
    order = await day_order(user, 0)
    order.status = "done"
    await order.save()

    _, e2 = await published_setup(user, notifier, m2, customers=[c1])
    outcome = await WeeklyPlanService.toggle_publish(user, plan_id, e2, True, notifier)

    assert outcome.status == "warning"
    assert outcome.message == "orders_already_started"
    plan = await WeeklyPlan.get(plan_id)
    assert plan.find_assigned(e2).published is False

    outcome = await WeeklyPlanService.toggle_publish(user, plan_id, e1, False, notifier)
    assert outcome.message == "orders_already_started"


async def test_publish_into_expired_order_conflicts(user, notifier):
    oatmeal = await make_meal(user.id)
    m1 = await make_template(user.id, "M1", {0: [("breakfast", oatmeal)]})
    plan = await WeeklyPlan.get((await WeeklyPlanService.get_or_create(user, 2025, 10, now=WEEK_10_NOW)).data.id)
    await SingleDayOrder(user_id=user.id, year=2025, week_number=10, day=0, expired=True).insert()

    with pytest.raises(HTTPException) as exc:
        await PublicationService.publish(plan, m1, ["650000000000000000000abc"])
    assert exc.value.status_code == 409
    order = await day_order(user, 0)
    assert order.categories == []


async def test_failing_notifier_does_not_fail_publish(user):
    oatmeal = await make_meal(user.id)
    m1 = await make_template(user.id, "M1", {0: [("breakfast", oatmeal)]})
    c1 = await make_customer(user.id, "c1")
    plan_id, entry = await published_setup(user, None, m1, customers=[c1])

    outcome = await WeeklyPlanService.toggle_publish(user, plan_id, entry, True, RecordingNotifier(fail=True))

    assert outcome.status == "success"
    assert await day_order(user, 0) is not None


async def test_prune_template_drops_empty_categories(db):
    def entry(menu):
        return OrderMeal(
            meal=MealSnapshot(meal_id="650000000000000000000050", title="A", category="lunch"),
            weekly_menu_id=menu,
        )

    a, b = "650000000000000000000010", "650000000000000000000011"
    order = SingleDayOrder(
        user_id="650000000000000000000777",
        year=2025,
        week_number=10,
        day=3,
        categories=[
            OrderCategory(category="breakfast", meals=[entry(a)]),
            OrderCategory(category="lunch", meals=[entry(a), entry(b)]),
        ],
    )

    assert PublicationService.prune_template(order, a) == 2
    assert [c.category for c in order.categories] == ["lunch"]
    assert [m.weekly_menu_id for m in order.categories[0].meals] == [b]


async def test_expired_target_day_refuses_publish_without_flipping(user, notifier):
    oatmeal = await make_meal(user.id)
    m1 = await make_template(user.id, "M1", {0: [("breakfast", oatmeal)], 1: [("breakfast", oatmeal)]})
    c1 = await make_customer(user.id, "c1")
    plan_id, entry = await published_setup(user, notifier, m1, customers=[c1])
    await SingleDayOrder(user_id=user.id, year=2025, week_number=10, day=1, expired=True).insert()

    with pytest.raises(HTTPException) as exc:
        await WeeklyPlanService.toggle_publish(user, plan_id, entry, True, notifier)
    assert exc.value.status_code == 409

    plan = await WeeklyPlan.get(plan_id)
    assert plan.find_assigned(entry).published is False
    assert await day_order(user, 0) is None
    assert notifier.events == []

    # Still refused, not reported as already published
    with pytest.raises(HTTPException):
        await WeeklyPlanService.toggle_publish(user, plan_id, entry, True, notifier)


async def test_failed_order_write_restores_flag_and_orders(user, notifier, monkeypatch):
    oatmeal = await make_meal(user.id)
    m1 = await make_template(user.id, "M1", {0: [("breakfast", oatmeal)], 1: [("breakfast", oatmeal)]})
    c1 = await make_customer(user.id, "c1")
    plan_id, entry = await published_setup(user, notifier, m1, customers=[c1])
    real_publish = PublicationService.publish

    async def publish_then_conflict(plan, template, consumers, orders=None):
        await real_publish(plan, template, consumers, orders)
        raise VersionConflict("SingleDayOrder was modified by another request. Please try again.")

    monkeypatch.setattr(PublicationService, "publish", staticmethod(publish_then_conflict))

    with pytest.raises(VersionConflict):
        await WeeklyPlanService.toggle_publish(user, plan_id, entry, True, notifier)

    plan = await WeeklyPlan.get(plan_id)
    assert plan.find_assigned(entry).published is False
    for day in (0, 1):
        assert (await day_order(user, day)).categories == []

    monkeypatch.undo()
    outcome = await WeeklyPlanService.toggle_publish(user, plan_id, entry, True, notifier)

    assert outcome.status == "success"
    assert len((await day_order(user, 0)).categories[0].meals) == 1


async def test_publishing_same_template_twice_appends_duplicates(user, notifier):
    oatmeal = await make_meal(user.id)
    m1 = await make_template(user.id, "M1", {0: [("breakfast", oatmeal)]})
    plan = await WeeklyPlan.get((await WeeklyPlanService.get_or_create(user, 2025, 10, now=WEEK_10_NOW)).data.id)
    consumers = ["650000000000000000000abc"]

    await PublicationService.publish(plan, m1, consumers)
    assert await PublicationService.publish(plan, m1, consumers) == 1

    order = await day_order(user, 0)
    meals = order.categories[0].meals
    assert len(order.categories) == 1
    assert [m.meal.title for m in meals] == ["Oatmeal", "Oatmeal"]
    assert meals[0].id != meals[1].id
