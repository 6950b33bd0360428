import pytest

from tableside.core.errors import ConflictError, InvalidTransitionError
from tableside.domain.order import (
    Actor,
    ChangeEvent,
    ChangeType,
    ItemStatus,
    Order,
    OrderLine,
    OrderStatus,
)
from tableside.domain.state_machine import (
    advance_order,
    check_item_transition,
    derive_order_status,
    ensure_mutable,
    reopen_for_new_work,
    transition_order,
)


def make_order(status=OrderStatus.PENDING, item_statuses=(ItemStatus.PENDING,)):
    items = [
        OrderLine(menu_item_id=f"m{i}", name=f"Item {i}", price=5, quantity=1, status=s)
        for i, s in enumerate(item_statuses)
    ]
    return Order(table_id="t", restaurant_id="r", items=items, status=status)


def event(change_type):
    return ChangeEvent(change_type=change_type, item_name="Burger", changed_by=Actor.STAFF)


@pytest.mark.parametrize("status", [OrderStatus.PAID, OrderStatus.CANCELLED])
def test_terminal_orders_are_immutable(status):
    with pytest.raises(ConflictError) as exc:
        ensure_mutable(make_order(status))
    assert status.value in exc.value.detail


@pytest.mark.parametrize("current,target", [
    (OrderStatus.PENDING, OrderStatus.SERVED),
    (OrderStatus.SERVED, OrderStatus.PREPARING),
    (OrderStatus.READY, OrderStatus.PENDING),
])
def test_working_states_can_be_overridden(current, target):
    order = make_order(current)
    transition_order(order, target)
    assert order.status == target


def test_paid_requires_served():
    order = make_order(OrderStatus.READY)
    with pytest.raises(InvalidTransitionError):
        transition_order(order, OrderStatus.PAID)

    order = make_order(OrderStatus.SERVED)
    transition_order(order, OrderStatus.PAID)
    assert order.status == OrderStatus.PAID


def test_only_pending_orders_can_be_cancelled():
    with pytest.raises(InvalidTransitionError):
        transition_order(make_order(OrderStatus.PREPARING), OrderStatus.CANCELLED)

    order = make_order(OrderStatus.PENDING)
    transition_order(order, OrderStatus.CANCELLED)
    assert order.is_terminal


def test_kitchen_shortcuts_need_the_expected_state():
    order = make_order(OrderStatus.PENDING)
    assert advance_order(order, OrderStatus.PENDING) == OrderStatus.PREPARING
    assert advance_order(order, OrderStatus.PREPARING) == OrderStatus.READY
    with pytest.raises(InvalidTransitionError):
        advance_order(order, OrderStatus.PENDING)


@pytest.mark.parametrize("current,target", [
    (ItemStatus.PENDING, ItemStatus.PREPARING),
    (ItemStatus.PENDING, ItemStatus.SERVED),
    (ItemStatus.PREPARING, ItemStatus.CANCELLED),
    (ItemStatus.READY, ItemStatus.READY),
])
def test_item_moves_forward(current, target):
    check_item_transition(current, target)


@pytest.mark.parametrize("current,target", [
    (ItemStatus.READY, ItemStatus.PREPARING),
    (ItemStatus.SERVED, ItemStatus.CANCELLED),
    (ItemStatus.CANCELLED, ItemStatus.PENDING),
])
def test_item_rejects_backward_and_terminal_moves(current, target):
    with pytest.raises(InvalidTransitionError):
        check_item_transition(current, target)


def test_order_follows_unanimous_items():
    order = make_order(OrderStatus.PREPARING, (ItemStatus.READY, ItemStatus.READY, ItemStatus.CANCELLED))
    derive_order_status(order, ItemStatus.READY)
    assert order.status == OrderStatus.READY


def test_first_item_on_the_stove_starts_the_order():
    order = make_order(OrderStatus.PENDING, (ItemStatus.PREPARING, ItemStatus.PENDING))
    derive_order_status(order, ItemStatus.PREPARING)
    assert order.status == OrderStatus.PREPARING


def test_mixed_items_leave_order_alone():
    order = make_order(OrderStatus.PREPARING, (ItemStatus.READY, ItemStatus.PREPARING))
    derive_order_status(order, ItemStatus.READY)
    assert order.status == OrderStatus.PREPARING


def test_all_cancelled_items_leave_order_alone():
    order = make_order(OrderStatus.PENDING, (ItemStatus.CANCELLED,))
    derive_order_status(order, ItemStatus.CANCELLED)
    assert order.status == OrderStatus.PENDING


def test_added_food_reopens_served_order():
    order = make_order(OrderStatus.SERVED, (ItemStatus.SERVED,))
    assert reopen_for_new_work(order, [event(ChangeType.ITEM_ADDED)]) is True
    assert order.status == OrderStatus.PENDING
    assert order.has_unseen_changes is True


def test_decrease_does_not_reopen():
    order = make_order(OrderStatus.READY, (ItemStatus.READY,))
    assert reopen_for_new_work(order, [event(ChangeType.QUANTITY_DECREASED)]) is False
    assert order.status == OrderStatus.READY
