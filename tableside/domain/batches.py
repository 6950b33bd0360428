"""
Tableside Orders — Batch status tracker

Each placement/edit is a batch with its own status, so the kitchen can serve
the original ticket while a later addition is still cooking.

  original   — the initial placement
  update-N   — the Nth edit (N = update_count after increment)
  all        — whole-ticket override; replaces every other key
"""
from typing import Iterable

from tableside.core.errors import ValidationError
from tableside.domain.order import Order, OrderStatus
from tableside.domain.state_machine import WORKING_ORDER_STATUSES, ensure_mutable

ORIGINAL_BATCH = "original"
ALL_BATCHES = "all"


def update_batch_key(update_count: int) -> str:
    return f"update-{update_count}"


def start_batches(order: Order) -> None:
    order.batch_status = {ORIGINAL_BATCH: order.status}


def _ensure_batches(order: Order) -> None:
    if not order.batch_status:
        # orders persisted before batch tracking existed
        order.batch_status = {ORIGINAL_BATCH: order.status}


def record_update_batch(order: Order) -> str:
    _ensure_batches(order)
    key = update_batch_key(order.update_count)
    order.batch_status[key] = order.status
    return key


def set_batch_statuses(order: Order, batch_ids: Iterable[str], status: OrderStatus) -> list[str]:
    """Set status on selected batches; sync the order when all batches agree."""
    status = OrderStatus(status)
    ensure_mutable(order)
    if status not in WORKING_ORDER_STATUSES:
        raise ValidationError(
            f"Batch status must be one of: {', '.join(s.value for s in WORKING_ORDER_STATUSES)}",
        )
    _ensure_batches(order)

    touched = []
    for batch_id in batch_ids:
        if isinstance(batch_id, str) and batch_id.strip():
            order.batch_status[batch_id] = status
            touched.append(batch_id)

    if len(set(order.batch_status.values())) == 1:
        order.status = status
    return touched


def collapse_batches(order: Order, status: OrderStatus) -> None:
    """Full-ticket override. Caller validates the order transition first."""
    order.status = OrderStatus(status)
    order.batch_status = {ALL_BATCHES: order.status}
