import pytest

from tableside.core.errors import ConflictError, ValidationError
from tableside.domain.batches import (
    ALL_BATCHES,
    ORIGINAL_BATCH,
    collapse_batches,
    record_update_batch,
    set_batch_statuses,
    start_batches,
)
from tableside.domain.order import Order, OrderLine, OrderStatus


def make_order(status=OrderStatus.PENDING, batches=True):
    order = Order(
        table_id="t",
        restaurant_id="r",
        items=[OrderLine(menu_item_id="m", name="Item", price=1, quantity=1)],
        status=status,
    )
    if batches:
        start_batches(order)
    return order


def test_placement_starts_original_batch():
    assert make_order().batch_status == {ORIGINAL_BATCH: OrderStatus.PENDING}


def test_edit_records_numbered_batch():
    order = make_order(OrderStatus.SERVED)
    order.update_count = 2
    order.status = OrderStatus.PENDING
    assert record_update_batch(order) == "update-2"
    assert order.batch_status == {ORIGINAL_BATCH: OrderStatus.SERVED, "update-2": OrderStatus.PENDING}


def test_partial_batch_update_leaves_order_status():
    order = make_order(OrderStatus.PENDING)
    order.update_count = 1
    record_update_batch(order)

    touched = set_batch_statuses(order, [ORIGINAL_BATCH], OrderStatus.SERVED)

    assert touched == [ORIGINAL_BATCH]
    assert order.batch_status[ORIGINAL_BATCH] == OrderStatus.SERVED
    assert order.status == OrderStatus.PENDING


def test_order_status_syncs_when_batches_agree():
    order = make_order(OrderStatus.PENDING)
    order.update_count = 1
    record_update_batch(order)

    set_batch_statuses(order, [ORIGINAL_BATCH, "update-1"], OrderStatus.READY)
    assert order.status == OrderStatus.READY


def test_blank_batch_ids_are_skipped():
    order = make_order()
    assert set_batch_statuses(order, ["", "  ", ORIGINAL_BATCH], OrderStatus.PREPARING) == [ORIGINAL_BATCH]


def test_legacy_order_gets_original_batch():
    order = make_order(OrderStatus.PREPARING, batches=False)
    order.update_count = 1
    record_update_batch(order)
    assert order.batch_status == {ORIGINAL_BATCH: OrderStatus.PREPARING, "update-1": OrderStatus.PREPARING}


@pytest.mark.parametrize("status", [OrderStatus.PAID, OrderStatus.CANCELLED])
def test_batches_only_take_working_statuses(status):
    with pytest.raises(ValidationError):
        set_batch_statuses(make_order(OrderStatus.SERVED), [ORIGINAL_BATCH], status)


def test_terminal_order_batches_are_frozen():
    with pytest.raises(ConflictError):
        set_batch_statuses(make_order(OrderStatus.PAID), [ORIGINAL_BATCH], OrderStatus.READY)


def test_collapse_replaces_all_batches():
    order = make_order()
    order.update_count = 3
    record_update_batch(order)
    collapse_batches(order, OrderStatus.READY)
    assert order.batch_status == {ALL_BATCHES: OrderStatus.READY}
    assert order.status == OrderStatus.READY
