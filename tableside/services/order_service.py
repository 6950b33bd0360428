"""
Tableside Orders — Order service

Every mutating operation is one read-modify-write against the order store:

  1. validate input (no I/O, no side effects)
  2. read the order snapshot (+ catalog lookups)
  3. compute the new aggregate in memory (reconcile / state machine / batches)
  4. one conditional write — StaleDataError if another request got there first
  5. announce the change (best effort, never fails the operation)

Nothing is persisted unless step 4 succeeds.
"""
import logging
from datetime import datetime, timedelta
from enum import Enum as PyEnum
from typing import Any, Iterable, Sequence, TypeVar

import pydantic
from pydantic import BaseModel

from tableside.core.config import Settings, get_settings
from tableside.core.errors import (
    ConfigurationError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from tableside.core.publisher import Publisher, order_channel, restaurant_channel
from tableside.core.security import principal_restaurant_id
from tableside.db.order_store import OrderQuery, OrderSort, OrderStore
from tableside.domain.batches import collapse_batches, record_update_batch, set_batch_statuses, start_batches
from tableside.domain.catalog import DesiredItem, ItemSubmission
from tableside.domain.order import (
    Actor,
    ChangeEvent,
    ItemStatus,
    Order,
    OrderLine,
    OrderStatus,
    OrderType,
    PaymentMethod,
    Ticket,
    utcnow,
)
from tableside.domain.pricing import order_total
from tableside.domain.reconciliation import merge_reconciled, reconcile
from tableside.domain.state_machine import (
    advance_order,
    check_item_transition,
    check_order_transition,
    derive_order_status,
    ensure_mutable,
    reopen_for_new_work,
)
from tableside.domain.tickets import append_ticket, next_ticket
from tableside.tasks.ticket_tasks import TicketDispatcher

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=PyEnum)

MAX_CUSTOMER_NAME = 100
MAX_ORDER_INSTRUCTIONS = 500
MAX_ITEM_INSTRUCTIONS = 200


class BulkStatusResult(BaseModel):
    order: Order
    updated_ids: list[str]
    not_found_ids: list[str]


class KitchenOrder(BaseModel):
    order: Order
    time_elapsed: int  # seconds since placement


class KitchenStats(BaseModel):
    pending: int
    preparing: int
    ready: int
    completed: int
    total: int
    average_prep_time: int  # minutes


def parse_enum(enum_cls: type[E], value: Any, label: str) -> E:
    try:
        return enum_cls(value)
    except ValueError:
        valid = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"Invalid {label}. Valid values: {valid}") from None


def parse_submissions(items: Any) -> list[ItemSubmission]:
    if not items or not isinstance(items, (list, tuple)):
        raise ValidationError("Order must contain at least one item")
    submissions = []
    for raw in items:
        try:
            submission = raw if isinstance(raw, ItemSubmission) else ItemSubmission.model_validate(raw)
        except pydantic.ValidationError as exc:
            raise ValidationError(
                "Invalid item in order",
                errors=[f"{'.'.join(map(str, e['loc']))}: {e['msg']}" for e in exc.errors()],
            ) from None
        if not submission.menu_item_id:
            raise ValidationError("Invalid menu item ID in order")
        if submission.quantity < 1:
            raise ValidationError("Each item must have a valid quantity (minimum 1)")
        if len(submission.special_instructions) > MAX_ITEM_INSTRUCTIONS:
            raise ValidationError(
                f"Item instructions must be at most {MAX_ITEM_INSTRUCTIONS} characters",
            )
        submissions.append(submission)
    return submissions


def _clean_text(value: str | None, limit: int, label: str) -> str | None:
    if value is None:
        return None
    value = value.strip()
    if len(value) > limit:
        raise ValidationError(f"{label} must be at most {limit} characters")
    return value


def _start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


class OrderService:
    def __init__(
        self,
        store: OrderStore,
        publisher: Publisher,
        dispatcher: TicketDispatcher | None = None,
        settings: Settings | None = None,
    ):
        self.store = store
        self.publisher = publisher
        self.dispatcher = dispatcher
        self.settings = settings or get_settings()

    # ── helpers ──────────────────────────────────────────────────────────────

    async def _load(self, order_id: str, restaurant_id: str | None = None) -> Order:
        order = await self.store.get_order(order_id)
        if not order.restaurant_id:
            raise ConfigurationError(
                "Order has no owning restaurant. Run the restaurant migration script.",
                order_id=order_id,
            )
        if restaurant_id is not None and order.restaurant_id != restaurant_id:
            raise NotFoundError("Order not found.", order_id=order_id)
        return order

    async def _resolve_items(self, restaurant_id: str,
                             submissions: Sequence[ItemSubmission]) -> list[DesiredItem]:
        ids = [s.menu_item_id for s in submissions]
        menu = await self.store.get_menu_items(ids, restaurant_id)
        missing = [item_id for item_id in dict.fromkeys(ids) if item_id not in menu]
        if missing:
            raise NotFoundError("One or more menu items not found or inactive", missing_items=missing)
        return [
            DesiredItem(
                menu_item_id=s.menu_item_id,
                name=menu[s.menu_item_id].name,
                price=menu[s.menu_item_id].price,
                quantity=s.quantity,
                addons=s.addons,
                special_instructions=s.special_instructions.strip(),
            )
            for s in submissions
        ]

    async def _announce(self, event: str, order: Order, **extra: Any) -> None:
        payload = {
            "event": event,
            "order_id": order.id,
            "restaurant_id": order.restaurant_id,
            "table_id": order.table_id,
            "status": order.status.value,
            "order_type": order.order_type.value,
            "timestamp": utcnow().isoformat(),
            **extra,
        }
        await self.publisher.publish(restaurant_channel(order.restaurant_id), payload)
        await self.publisher.publish(order_channel(order.id), payload)

    # ── placement & reconciliation ────────────────────────────────────────────

    async def place_order(
        self,
        table_id: str,
        items: Any,
        customer_name: str | None = "Guest",
        special_instructions: str | None = "",
        principal: dict[str, Any] | None = None,
    ) -> Order:
        submissions = parse_submissions(items)
        customer_name = _clean_text(customer_name, MAX_CUSTOMER_NAME, "Customer name") or "Guest"
        special_instructions = _clean_text(special_instructions, MAX_ORDER_INSTRUCTIONS, "Special instructions") or ""

        table = await self.store.get_table(table_id)
        if table is None or not table.is_active:
            raise NotFoundError("Table not found or inactive", table_id=table_id)
        if not table.restaurant_id:
            raise ConfigurationError(
                "Restaurant configuration error. Please contact support or run the migration script.",
                table_id=table_id,
            )
        restaurant = await self.store.get_restaurant(table.restaurant_id)
        if restaurant is None or not restaurant.owner_id:
            logger.error("Restaurant or owner not found for table %s (restaurant %s)",
                         table_id, table.restaurant_id)
            raise ConfigurationError(
                "Restaurant configuration error. Please contact support or run the migration script.",
                table_id=table_id,
            )

        order_type = OrderType.QR
        if principal is not None:
            order_type = OrderType.STAFF
            staff_restaurant = principal_restaurant_id(principal)
            if staff_restaurant and staff_restaurant != table.restaurant_id:
                raise NotFoundError("This table does not belong to your restaurant", table_id=table_id)

        desired = await self._resolve_items(table.restaurant_id, submissions)
        lines = [
            OrderLine(
                menu_item_id=d.menu_item_id,
                name=d.name,
                price=d.price,
                quantity=d.quantity,
                addons=d.addons,
                special_instructions=d.special_instructions,
            )
            for d in desired
        ]
        order = Order(
            table_id=table.id,
            restaurant_id=table.restaurant_id,
            customer_name=customer_name,
            order_type=order_type,
            special_instructions=special_instructions,
            items=lines,
            total_price=order_total(lines),
            status=OrderStatus.PENDING,
        )
        start_batches(order)

        saved = await self.store.add_order(order)
        logger.info("Order %s placed at table %s (%s, total %.2f)",
                    saved.id, table.table_name or table.id, order_type.value, saved.total_price)
        await self._announce(
            "new-order", saved,
            table_name=table.table_name,
            customer_name=saved.customer_name,
            items=[line.name for line in saved.items],
            total_price=saved.total_price,
            item_count=saved.item_count(),
        )
        return saved

    async def update_order(
        self,
        order_id: str,
        items: Any,
        actor: Actor | str,
        customer_name: str | None = None,
        special_instructions: str | None = None,
        restaurant_id: str | None = None,
    ) -> Order:
        submissions = parse_submissions(items)
        actor = parse_enum(Actor, actor, "actor")
        customer_name = _clean_text(customer_name, MAX_CUSTOMER_NAME, "Customer name")
        special_instructions = _clean_text(special_instructions, MAX_ORDER_INSTRUCTIONS, "Special instructions")

        order = await self._load(order_id, restaurant_id)
        ensure_mutable(order)
        desired = await self._resolve_items(order.restaurant_id, submissions)

        if not order.is_updated:
            order.original_items = [
                line.model_copy(update={"is_new": False, "is_removed": False})
                for line in order.items
            ]

        result = reconcile(order.items, desired, actor)
        order.items = merge_reconciled(order.items, result.lines)
        order.total_price = order_total(order.items)
        if customer_name:
            order.customer_name = customer_name
        if special_instructions:
            order.special_instructions = special_instructions
        order.is_updated = True
        order.update_count += 1

        if result.events:
            order.update_history = [*order.update_history, *result.events]
            order.has_unseen_changes = True
            reopen_for_new_work(order, result.events)
            record_update_batch(order)

        saved = await self.store.save_order(order)
        logger.info("Order %s updated by %s: %d change(s), total %.2f",
                    saved.id, actor.value, len(result.events), saved.total_price)
        await self._announce(
            "order-updated", saved,
            customer_name=saved.customer_name,
            items=[line.name for line in saved.active_items],
            total_price=saved.total_price,
            item_count=saved.item_count(),
            update_count=saved.update_count,
            has_unseen_changes=saved.has_unseen_changes,
        )
        return saved

    # ── status management ─────────────────────────────────────────────────────

    async def set_order_status(
        self,
        order_id: str,
        status: OrderStatus | str,
        batch_ids: Iterable[str] | str | None = None,
        restaurant_id: str | None = None,
    ) -> Order:
        status = parse_enum(OrderStatus, status, "status")
        if isinstance(batch_ids, str):
            batch_ids = [batch_ids]
        batch_ids = list(batch_ids or [])

        order = await self._load(order_id, restaurant_id)
        if batch_ids:
            set_batch_statuses(order, batch_ids, status)
        else:
            check_order_transition(order, status)
            collapse_batches(order, status)
            if status == OrderStatus.PAID:
                order.payment_completed_at = utcnow()

        saved = await self.store.save_order(order)
        logger.info("Order %s status set to %s", saved.id, saved.status.value)
        if status == OrderStatus.CANCELLED and not batch_ids:
            await self._announce("order-cancelled", saved)
        elif status == OrderStatus.PAID and not batch_ids:
            await self._announce("order-paid", saved, payment_method=None)
        else:
            await self._announce("order-status-updated", saved, batch_status={
                key: value.value for key, value in saved.batch_status.items()
            })
        return saved

    async def cancel_order(self, order_id: str, restaurant_id: str | None = None) -> Order:
        return await self.set_order_status(order_id, OrderStatus.CANCELLED, restaurant_id=restaurant_id)

    async def set_item_status(
        self,
        order_id: str,
        line_id: str,
        status: ItemStatus | str,
        restaurant_id: str | None = None,
    ) -> Order:
        status = parse_enum(ItemStatus, status, "status")
        order = await self._load(order_id, restaurant_id)
        ensure_mutable(order)

        line = order.find_line(line_id)
        if line is None:
            raise NotFoundError("Item not found in order", line_id=line_id)
        if line.is_removed:
            raise InvalidTransitionError("Removed items cannot change status", line_id=line_id)
        check_item_transition(line.status, status)

        order.replace_line(line.model_copy(update={"status": status}))
        derive_order_status(order, status)

        saved = await self.store.save_order(order)
        await self._announce("order-item-updated", saved, item_id=line_id, item_status=status.value,
                             order_status=saved.status.value)
        await self._announce("order-updated", saved)
        return saved

    async def set_items_status_bulk(
        self,
        order_id: str,
        line_ids: Sequence[str],
        status: ItemStatus | str,
        restaurant_id: str | None = None,
    ) -> BulkStatusResult:
        if not line_ids:
            raise ValidationError("No items provided")
        status = parse_enum(ItemStatus, status, "status")
        order = await self._load(order_id, restaurant_id)
        ensure_mutable(order)

        found: list[OrderLine] = []
        not_found: list[str] = []
        for line_id in dict.fromkeys(line_ids):
            line = order.find_line(line_id)
            if line is None:
                not_found.append(line_id)
            else:
                found.append(line)
        if not found:
            raise NotFoundError("None of the items were found in order", not_found_ids=not_found)

        for line in found:
            if line.is_removed:
                raise InvalidTransitionError("Removed items cannot change status", line_id=line.id)
            check_item_transition(line.status, status)
        for line in found:
            order.replace_line(line.model_copy(update={"status": status}))
        derive_order_status(order, status)

        saved = await self.store.save_order(order)
        if not_found:
            logger.warning("Order %s bulk status: %d item(s) not found", order_id, len(not_found))
        await self._announce("order-updated", saved)
        return BulkStatusResult(
            order=saved,
            updated_ids=[line.id for line in found],
            not_found_ids=not_found,
        )

    async def record_payment(
        self,
        order_id: str,
        method: PaymentMethod | str,
        restaurant_id: str | None = None,
    ) -> Order:
        method = parse_enum(PaymentMethod, method, "payment method")
        order = await self._load(order_id, restaurant_id)
        check_order_transition(order, OrderStatus.PAID)

        order.status = OrderStatus.PAID
        order.payment_method = method
        order.payment_completed_at = utcnow()

        saved = await self.store.save_order(order)
        logger.info("Order %s paid by %s", saved.id, method.value)
        await self._announce("order-paid", saved, payment_method=method.value)
        return saved

    async def start_preparing(self, order_id: str, restaurant_id: str | None = None) -> Order:
        return await self._kitchen_step(order_id, OrderStatus.PENDING, restaurant_id)

    async def mark_ready(self, order_id: str, restaurant_id: str | None = None) -> Order:
        return await self._kitchen_step(order_id, OrderStatus.PREPARING, restaurant_id)

    async def _kitchen_step(self, order_id: str, expected: OrderStatus,
                            restaurant_id: str | None) -> Order:
        order = await self._load(order_id, restaurant_id)
        new_status = advance_order(order, expected)
        collapse_batches(order, new_status)
        saved = await self.store.save_order(order)
        await self._announce("order-status-updated", saved)
        return saved

    # ── tickets & bookkeeping ─────────────────────────────────────────────────

    async def generate_ticket(
        self,
        order_id: str,
        printed_by: str | None = None,
        restaurant_id: str | None = None,
    ) -> Ticket | None:
        """Append the next incremental KOT; None when nothing is left to print."""
        order = await self._load(order_id, restaurant_id)
        if order.status == OrderStatus.CANCELLED:
            raise ConflictError("Cannot print a ticket for a cancelled order.", order_id=order_id)

        ticket = next_ticket(order, printed_by or self.settings.DEFAULT_PRINTED_BY)
        if ticket is None:
            logger.info("Order %s: no new items to print", order_id)
            return None

        append_ticket(order, ticket)
        table = await self.store.get_table(order.table_id)
        await self.store.save_order(order)
        logger.info("Order %s: KOT #%d generated with %d line(s)",
                    order_id, ticket.kot_number, len(ticket.items))
        if self.dispatcher is not None:
            self.dispatcher.dispatch(order.id, table.table_name if table else None, ticket)
        return ticket

    async def mark_seen(self, order_id: str, restaurant_id: str | None = None) -> Order:
        order = await self._load(order_id, restaurant_id)
        order.items = [
            line.model_copy(update={"is_new": False}) if line.is_new else line
            for line in order.items
        ]
        order.has_unseen_changes = False
        order.last_viewed_by_restaurant = utcnow()
        return await self.store.save_order(order)

    async def call_waiter(self, table_id: str, customer_name: str | None = "Guest") -> None:
        table = await self.store.get_table(table_id)
        if table is None or not table.is_active:
            raise NotFoundError("Table not found or inactive", table_id=table_id)
        if not table.restaurant_id:
            raise ConfigurationError("Table has no owning restaurant.", table_id=table_id)
        await self.publisher.publish(restaurant_channel(table.restaurant_id), {
            "event": "waiter-called",
            "table_id": table.id,
            "table_name": table.table_name,
            "customer_name": (customer_name or "").strip() or "Guest",
            "timestamp": utcnow().isoformat(),
        })

    # ── reads ─────────────────────────────────────────────────────────────────

    async def get_order(self, order_id: str, restaurant_id: str | None = None) -> Order:
        return await self._load(order_id, restaurant_id)

    async def get_history(self, order_id: str, restaurant_id: str | None = None) -> list[ChangeEvent]:
        return (await self._load(order_id, restaurant_id)).update_history

    async def get_tickets(self, order_id: str, restaurant_id: str | None = None) -> list[Ticket]:
        return (await self._load(order_id, restaurant_id)).kots

    async def get_active_order_for_table(self, table_id: str) -> Order | None:
        table = await self.store.get_table(table_id)
        if table is None:
            raise NotFoundError("Table not found", table_id=table_id)
        orders = await self.store.find_orders(OrderQuery(
            table_id=table_id,
            exclude_statuses=[OrderStatus.PAID, OrderStatus.CANCELLED],
            sort=OrderSort.NEWEST,
            limit=1,
        ))
        return orders[0] if orders else None

    async def list_restaurant_orders(
        self,
        restaurant_id: str,
        statuses: Sequence[str] | None = None,
        order_type: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        recently_updated: bool = False,
        limit: int | None = None,
    ) -> list[Order]:
        query = OrderQuery(
            restaurant_id=restaurant_id,
            statuses=[parse_enum(OrderStatus, s, "status") for s in statuses] if statuses else None,
            order_type=parse_enum(OrderType, order_type, "order type") if order_type else None,
            has_unseen_changes=True if recently_updated else None,
            created_from=start_date,
            created_to=end_date,
            sort=OrderSort.ATTENTION,
            limit=limit or self.settings.RESTAURANT_ORDERS_LIMIT,
        )
        return await self.store.find_orders(query)

    async def list_table_orders(
        self,
        table_id: str,
        restaurant_id: str,
        statuses: Sequence[str] | None = None,
        exclude_statuses: Sequence[str] | None = None,
        limit: int | None = None,
    ) -> list[Order]:
        table = await self.store.get_table(table_id)
        if table is None or table.restaurant_id != restaurant_id:
            raise NotFoundError("Table not found or does not belong to your restaurant", table_id=table_id)
        query = OrderQuery(
            restaurant_id=restaurant_id,
            table_id=table_id,
            statuses=[parse_enum(OrderStatus, s, "status") for s in statuses] if statuses else None,
            exclude_statuses=(
                [parse_enum(OrderStatus, s, "excludeStatus") for s in exclude_statuses]
                if exclude_statuses else None
            ),
            sort=OrderSort.NEWEST,
            limit=limit or self.settings.TABLE_ORDERS_LIMIT,
        )
        return await self.store.find_orders(query)

    # ── kitchen display ───────────────────────────────────────────────────────

    async def kitchen_active_orders(self, restaurant_id: str,
                                    now: datetime | None = None) -> list[KitchenOrder]:
        now = now or utcnow()
        orders = await self.store.find_orders(OrderQuery(
            restaurant_id=restaurant_id,
            statuses=[OrderStatus.PENDING, OrderStatus.PREPARING],
            sort=OrderSort.OLDEST,  # FIFO
        ))
        return [
            KitchenOrder(order=o, time_elapsed=max(0, int((now - o.created_at).total_seconds())))
            for o in orders
        ]

    async def kitchen_ready_orders(self, restaurant_id: str) -> list[Order]:
        return await self.store.find_orders(OrderQuery(
            restaurant_id=restaurant_id,
            statuses=[OrderStatus.READY],
            sort=OrderSort.RECENTLY_UPDATED,
        ))

    async def kitchen_completed_today(self, restaurant_id: str,
                                      now: datetime | None = None) -> list[Order]:
        start = _start_of_day(now or utcnow())
        return await self.store.find_orders(OrderQuery(
            restaurant_id=restaurant_id,
            statuses=[OrderStatus.SERVED, OrderStatus.PAID],
            updated_from=start,
            sort=OrderSort.RECENTLY_UPDATED,
            limit=self.settings.COMPLETED_ORDERS_LIMIT,
        ))

    async def kitchen_stats_today(self, restaurant_id: str,
                                  now: datetime | None = None) -> KitchenStats:
        start = _start_of_day(now or utcnow())
        orders = await self.store.find_orders(OrderQuery(
            restaurant_id=restaurant_id,
            created_from=start,
        ))
        counts = {status: 0 for status in OrderStatus}
        for order in orders:
            counts[order.status] += 1
        completed = [o for o in orders if o.status in (OrderStatus.SERVED, OrderStatus.PAID)]

        average = 0
        if completed:
            total = sum((o.updated_at - o.created_at for o in completed), timedelta())
            average = int(total.total_seconds() // len(completed) // 60)

        pending = counts[OrderStatus.PENDING]
        preparing = counts[OrderStatus.PREPARING]
        ready = counts[OrderStatus.READY]
        return KitchenStats(
            pending=pending,
            preparing=preparing,
            ready=ready,
            completed=len(completed),
            total=pending + preparing + ready + len(completed),
            average_prep_time=average,
        )
