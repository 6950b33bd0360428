"""
Tableside Orders — Order and item state machine

Order:  pending → preparing → ready → served → paid
        pending → cancelled
        Working states (pending..served) may be overridden in either direction
        by staff; paid and cancelled are terminal.
Item:   pending → preparing → ready → served (forward only, skips allowed)
        cancelled from any non-terminal item state
"""
import logging

from tableside.core.errors import ConflictError, InvalidTransitionError
from tableside.domain.order import (
    NEW_WORK_CHANGES,
    ChangeEvent,
    ItemStatus,
    Order,
    OrderStatus,
)

logger = logging.getLogger(__name__)

WORKING_ORDER_STATUSES = (
    OrderStatus.PENDING,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.SERVED,
)

ITEM_PROGRESS: dict[ItemStatus, int] = {
    ItemStatus.PENDING: 0,
    ItemStatus.PREPARING: 1,
    ItemStatus.READY: 2,
    ItemStatus.SERVED: 3,
}
TERMINAL_ITEM_STATUSES = frozenset({ItemStatus.SERVED, ItemStatus.CANCELLED})

# statuses that get pushed back to pending when new food is added
REOPENABLE_STATUSES = frozenset({OrderStatus.PREPARING, OrderStatus.READY, OrderStatus.SERVED})

# Kitchen shortcut transitions (chef display buttons)
NEXT_STATUS: dict[OrderStatus, OrderStatus] = {
    OrderStatus.PENDING: OrderStatus.PREPARING,
    OrderStatus.PREPARING: OrderStatus.READY,
}


def ensure_mutable(order: Order) -> None:
    if order.is_terminal:
        raise ConflictError(
            f"Order cannot be updated. This order has been {order.status.value}.",
            order_id=order.id,
            status=order.status.value,
        )


def check_order_transition(order: Order, target: OrderStatus) -> None:
    ensure_mutable(order)
    current = order.status
    if target == OrderStatus.PAID and current != OrderStatus.SERVED:
        raise InvalidTransitionError(
            "Cannot mark order as paid. Order must be in 'served' status. "
            f"Current status: {current.value}",
        )
    if target == OrderStatus.CANCELLED and current != OrderStatus.PENDING:
        raise InvalidTransitionError(
            f"Cannot cancel order with status '{current.value}'. "
            "Only pending orders can be cancelled.",
        )


def transition_order(order: Order, target: OrderStatus) -> None:
    target = OrderStatus(target)
    check_order_transition(order, target)
    order.status = target


def advance_order(order: Order, expected: OrderStatus) -> OrderStatus:
    """Move a kitchen ticket one step forward from an expected state."""
    ensure_mutable(order)
    if order.status != expected:
        raise InvalidTransitionError(
            f"Cannot move order to {NEXT_STATUS[expected].value}. Order is {order.status.value}",
        )
    order.status = NEXT_STATUS[expected]
    return order.status


def check_item_transition(current: ItemStatus, target: ItemStatus) -> None:
    if current == target:
        return
    if current in TERMINAL_ITEM_STATUSES:
        raise InvalidTransitionError(f"Item is already {current.value}")
    if target == ItemStatus.CANCELLED:
        return
    if ITEM_PROGRESS[target] < ITEM_PROGRESS[current]:
        raise InvalidTransitionError(
            f"Item cannot move back from {current.value} to {target.value}",
        )


def derive_order_status(order: Order, new_item_status: ItemStatus) -> None:
    """Apply the aggregate rule after one or more lines changed status."""
    active = [
        line for line in order.items
        if not line.is_removed and line.status != ItemStatus.CANCELLED
    ]
    if not active:
        return
    statuses = {line.status for line in active}
    if len(statuses) == 1:
        order.status = OrderStatus(statuses.pop().value)
    elif new_item_status == ItemStatus.PREPARING and order.status == OrderStatus.PENDING:
        # first item on the stove means the ticket is in progress
        order.status = OrderStatus.PREPARING


def reopen_for_new_work(order: Order, events: list[ChangeEvent]) -> bool:
    """Send the order back to the kitchen queue when an edit adds food."""
    has_new_work = any(event.change_type in NEW_WORK_CHANGES for event in events)
    if has_new_work and order.status in REOPENABLE_STATUSES:
        logger.info(
            "Reverting order %s status from %s to pending due to new items",
            order.id, order.status.value,
        )
        order.status = OrderStatus.PENDING
        order.has_unseen_changes = True
        return True
    return False
