import pytest
from fastapi import HTTPException

from app.core.db.versioning import VersionConflict, save_versioned
from app.core.models.single_day_order import OrderCategory, OrderMeal, SingleDayOrder
from app.core.models.snapshots import MealSnapshot
from app.modules.orders.order_status_service import OrderStatusService

TEMPLATE = "650000000000000000000099"


def entry(title, customers=("c1",)):
    return OrderMeal(
        meal=MealSnapshot(meal_id="650000000000000000000050", title=title, category="breakfast"),
        weekly_menu_id=TEMPLATE,
        weekly_menu_title="Old title",
        customers=list(customers),
    )


@pytest.fixture
async def order(user):
    doc = SingleDayOrder(
        user_id=user.id,
        year=2025,
        week_number=10,
        day=0,
        categories=[
            OrderCategory(category="breakfast", meals=[entry("Oatmeal", ("c1", "c2")), entry("Toast")]),
        ],
    )
    await doc.insert()
    return doc


async def test_meal_status_transitions(user, order):
    meal_id = order.categories[0].meals[0].id

    await OrderStatusService.set_meal_status(user.id, str(order.id), meal_id, "preparing")
    updated = await OrderStatusService.set_meal_status(user.id, str(order.id), meal_id, "done")

    assert updated.find_meal(meal_id).status == "done"
    assert updated.categories[0].meals[1].status == "not_done"
    # Meal changes never move the order status
    assert updated.status == "not_done"
    assert updated.version == 2


async def test_order_status_cascades_to_meals(user, order):
    updated = await OrderStatusService.set_order_status(user.id, str(order.id), "done")

    assert updated.status == "done"
    assert {m.status for m in updated.iter_meals()} == {"done"}

    updated = await OrderStatusService.set_order_status(user.id, str(order.id), "not_done")
    assert {m.status for m in updated.iter_meals()} == {"not_done"}


async def test_unknown_meal_entry(user, order):
    with pytest.raises(HTTPException) as exc:
        await OrderStatusService.set_meal_status(user.id, str(order.id), "650000000000000000000abc", "done")
    assert exc.value.status_code == 404


async def test_foreign_or_invalid_order(user, order):
    with pytest.raises(HTTPException) as exc:
        await OrderStatusService.get_order("650000000000000000000fff", str(order.id))
    assert exc.value.status_code == 404

    with pytest.raises(HTTPException) as exc:
        await OrderStatusService.get_order(user.id, "not-an-id")
    assert exc.value.status_code == 400


async def test_expired_order_is_read_only(user, order):
    order.expired = True
    await order.save()

    with pytest.raises(HTTPException) as exc:
        await OrderStatusService.set_order_status(user.id, str(order.id), "done")
    assert exc.value.status_code == 409

    with pytest.raises(HTTPException) as exc:
        await OrderStatusService.set_meal_status(user.id, str(order.id), order.categories[0].meals[0].id, "done")
    assert exc.value.status_code == 409


async def test_expire_order_is_terminal_and_idempotent(order):
    assert OrderStatusService.expire_order(order, {TEMPLATE: "New title"}) is True

    assert order.expired is True
    assert order.status == "done"
    assert {m.status for m in order.iter_meals()} == {"done"}
    assert {m.weekly_menu_title for m in order.iter_meals()} == {"New title"}

    assert OrderStatusService.expire_order(order, {TEMPLATE: "Other"}) is False
    assert order.categories[0].meals[0].weekly_menu_title == "New title"


async def test_expire_order_keeps_title_of_deleted_template(order):
    OrderStatusService.expire_order(order, {})
    assert order.categories[0].meals[0].weekly_menu_title == "Old title"


async def test_stale_write_conflicts(user, order):
    first = await SingleDayOrder.get(order.id)
    second = await SingleDayOrder.get(order.id)

    first.status = "done"
    await save_versioned(first)

    second.status = "not_done"
    with pytest.raises(VersionConflict) as exc:
        await save_versioned(second)
    assert exc.value.status_code == 409

    stored = await SingleDayOrder.get(order.id)
    assert stored.status == "done"
    assert stored.version == 1


async def test_week_summary(user, order):
    await SingleDayOrder(user_id=user.id, year=2025, week_number=10, day=4).insert()

    summary = await OrderStatusService.list_week_orders(user.id, 2025, 10)

    assert [o.day for o in summary.orders] == [0, 4]
    assert summary.orders[0].total_meals == 2
    assert summary.orders[0].total_portions == 3
    assert summary.orders[1].total_meals == 0
