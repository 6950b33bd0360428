"""
Tableside Orders — Order store with optimistic locking

The store is the only place orders are read and written. Every write is a
compare-and-swap on the order's version:

  - READ:  fetch the document + version_id
  - WRITE: UPDATE ... WHERE id = :id AND version_id = :expected
  - If another operation committed first → StaleDataError (no retry here;
    the caller re-reads and resubmits)

Two concurrent edits of the same order can therefore never both commit,
while edits of different orders never wait on each other.
"""
import asyncio
import logging
from datetime import datetime
from enum import Enum as PyEnum
from typing import Iterable

from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tableside.core.errors import NotFoundError, StaleDataError
from tableside.domain.catalog import MenuItemRef, RestaurantRef, TableRef
from tableside.domain.order import Order, OrderStatus, OrderType, utcnow
from tableside.models.catalog import DiningTable, MenuItem, Restaurant
from tableside.models.order import OrderRecord

logger = logging.getLogger(__name__)


class OrderSort(str, PyEnum):
    NEWEST = "newest"
    OLDEST = "oldest"
    RECENTLY_UPDATED = "recently_updated"
    ATTENTION = "attention"  # unseen changes, then edited, then newest


class OrderQuery(BaseModel):
    restaurant_id: str | None = None
    table_id: str | None = None
    statuses: list[OrderStatus] | None = None
    exclude_statuses: list[OrderStatus] | None = None
    order_type: OrderType | None = None
    has_unseen_changes: bool | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None
    updated_from: datetime | None = None
    sort: OrderSort = OrderSort.NEWEST
    limit: int | None = None

    def matches(self, order: Order) -> bool:
        if self.restaurant_id is not None and order.restaurant_id != self.restaurant_id:
            return False
        if self.table_id is not None and order.table_id != self.table_id:
            return False
        if self.statuses is not None and order.status not in self.statuses:
            return False
        if self.exclude_statuses and order.status in self.exclude_statuses:
            return False
        if self.order_type is not None and order.order_type != self.order_type:
            return False
        if self.has_unseen_changes is not None and order.has_unseen_changes != self.has_unseen_changes:
            return False
        if self.created_from is not None and order.created_at < self.created_from:
            return False
        if self.created_to is not None and order.created_at > self.created_to:
            return False
        if self.updated_from is not None and order.updated_at < self.updated_from:
            return False
        return True

    def sort_key(self, order: Order):
        if self.sort == OrderSort.OLDEST:
            return (order.created_at.timestamp(),)
        if self.sort == OrderSort.RECENTLY_UPDATED:
            return (-order.updated_at.timestamp(),)
        if self.sort == OrderSort.ATTENTION:
            return (not order.has_unseen_changes, not order.is_updated, -order.created_at.timestamp())
        return (-order.created_at.timestamp(),)


class OrderStore:
    """Document-store collaborator used by the order service."""

    async def get_order(self, order_id: str) -> Order:
        raise NotImplementedError

    async def find_orders(self, query: OrderQuery) -> list[Order]:
        raise NotImplementedError

    async def add_order(self, order: Order) -> Order:
        raise NotImplementedError

    async def save_order(self, order: Order) -> Order:
        """Conditional write; raises StaleDataError if order.version is stale."""
        raise NotImplementedError

    async def get_table(self, table_id: str) -> TableRef | None:
        raise NotImplementedError

    async def get_restaurant(self, restaurant_id: str) -> RestaurantRef | None:
        raise NotImplementedError

    async def get_menu_items(self, ids: Iterable[str], restaurant_id: str) -> dict[str, MenuItemRef]:
        """Active menu items of one restaurant, keyed by id."""
        raise NotImplementedError


def _document(order: Order) -> dict:
    return order.model_dump(mode="json", exclude={"version"})


def _stale(order: Order) -> StaleDataError:
    return StaleDataError(
        "Order was modified by another request. Re-fetch the order and try again.",
        order_id=order.id,
    )


class SqlOrderStore(OrderStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @staticmethod
    def _to_order(row: OrderRecord) -> Order:
        order = Order.model_validate(row.document)
        order.version = row.version_id
        return order

    async def get_order(self, order_id: str) -> Order:
        async with self._session_factory() as db:
            result = await db.execute(select(OrderRecord).where(OrderRecord.id == order_id))
            row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError("Order not found.", order_id=order_id)
        return self._to_order(row)

    async def find_orders(self, query: OrderQuery) -> list[Order]:
        stmt = select(OrderRecord)
        if query.restaurant_id is not None:
            stmt = stmt.where(OrderRecord.restaurant_id == query.restaurant_id)
        if query.table_id is not None:
            stmt = stmt.where(OrderRecord.table_id == query.table_id)
        if query.statuses is not None:
            stmt = stmt.where(OrderRecord.status.in_([s.value for s in query.statuses]))
        if query.exclude_statuses:
            stmt = stmt.where(OrderRecord.status.not_in([s.value for s in query.exclude_statuses]))
        if query.order_type is not None:
            stmt = stmt.where(OrderRecord.order_type == query.order_type.value)
        if query.has_unseen_changes is not None:
            stmt = stmt.where(OrderRecord.has_unseen_changes == query.has_unseen_changes)
        if query.created_from is not None:
            stmt = stmt.where(OrderRecord.created_at >= query.created_from)
        if query.created_to is not None:
            stmt = stmt.where(OrderRecord.created_at <= query.created_to)
        if query.updated_from is not None:
            stmt = stmt.where(OrderRecord.updated_at >= query.updated_from)

        if query.sort == OrderSort.OLDEST:
            stmt = stmt.order_by(OrderRecord.created_at.asc())
        elif query.sort == OrderSort.RECENTLY_UPDATED:
            stmt = stmt.order_by(OrderRecord.updated_at.desc())
        elif query.sort == OrderSort.ATTENTION:
            stmt = stmt.order_by(
                OrderRecord.has_unseen_changes.desc(),
                OrderRecord.is_updated.desc(),
                OrderRecord.created_at.desc(),
            )
        else:
            stmt = stmt.order_by(OrderRecord.created_at.desc())
        if query.limit:
            stmt = stmt.limit(query.limit)

        async with self._session_factory() as db:
            result = await db.execute(stmt)
            rows = result.scalars().all()
        return [self._to_order(row) for row in rows]

    async def add_order(self, order: Order) -> Order:
        saved = order.model_copy(update={"version": 1})
        async with self._session_factory() as db:
            db.add(OrderRecord(
                id=saved.id,
                table_id=saved.table_id,
                restaurant_id=saved.restaurant_id,
                status=saved.status.value,
                order_type=saved.order_type.value,
                is_updated=saved.is_updated,
                has_unseen_changes=saved.has_unseen_changes,
                created_at=saved.created_at,
                updated_at=saved.updated_at,
                version_id=1,
                document=_document(saved),
            ))
            await db.commit()
        return saved

    async def save_order(self, order: Order) -> Order:
        expected_version = order.version
        saved = order.model_copy(update={"version": expected_version + 1, "updated_at": utcnow()})

        async with self._session_factory() as db:
            result = await db.execute(
                update(OrderRecord)
                .where(OrderRecord.id == saved.id, OrderRecord.version_id == expected_version)
                .values(
                    status=saved.status.value,
                    is_updated=saved.is_updated,
                    has_unseen_changes=saved.has_unseen_changes,
                    updated_at=saved.updated_at,
                    version_id=saved.version,
                    document=_document(saved),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                # Another transaction won the race
                await db.rollback()
                logger.warning("Optimistic lock conflict on order %s (version %d)", order.id, expected_version)
                raise _stale(order)
            await db.commit()
        return saved

    async def get_table(self, table_id: str) -> TableRef | None:
        async with self._session_factory() as db:
            row = await db.get(DiningTable, table_id)
        if row is None:
            return None
        return TableRef(
            id=row.id,
            restaurant_id=row.restaurant_id,
            table_name=row.table_name,
            seats=row.seats,
            is_active=row.is_active,
        )

    async def get_restaurant(self, restaurant_id: str) -> RestaurantRef | None:
        async with self._session_factory() as db:
            row = await db.get(Restaurant, restaurant_id)
        if row is None:
            return None
        return RestaurantRef(id=row.id, name=row.restaurant_name, owner_id=row.owner_id)

    async def get_menu_items(self, ids: Iterable[str], restaurant_id: str) -> dict[str, MenuItemRef]:
        wanted = list(set(ids))
        if not wanted:
            return {}
        async with self._session_factory() as db:
            result = await db.execute(
                select(MenuItem).where(
                    MenuItem.id.in_(wanted),
                    MenuItem.restaurant_id == restaurant_id,
                    MenuItem.is_active.is_(True),
                )
            )
            rows = result.scalars().all()
        return {
            row.id: MenuItemRef(
                id=row.id, restaurant_id=row.restaurant_id, name=row.name,
                price=row.price, is_active=row.is_active,
            )
            for row in rows
        }


class InMemoryOrderStore(OrderStore):
    """Process-local store with the same compare-and-swap semantics.

    Each order is held as its serialized document so callers can never
    mutate stored state through a returned object.
    """

    def __init__(self):
        self._orders: dict[str, dict] = {}
        self._versions: dict[str, int] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self.tables: dict[str, TableRef] = {}
        self.restaurants: dict[str, RestaurantRef] = {}
        self.menu_items: dict[str, MenuItemRef] = {}

    def _lock(self, order_id: str) -> asyncio.Lock:
        return self._locks.setdefault(order_id, asyncio.Lock())

    def _load(self, order_id: str) -> Order:
        order = Order.model_validate(self._orders[order_id])
        order.version = self._versions[order_id]
        return order

    async def get_order(self, order_id: str) -> Order:
        if order_id not in self._orders:
            raise NotFoundError("Order not found.", order_id=order_id)
        return self._load(order_id)

    async def find_orders(self, query: OrderQuery) -> list[Order]:
        orders = [self._load(order_id) for order_id in self._orders]
        matched = sorted((o for o in orders if query.matches(o)), key=query.sort_key)
        return matched[: query.limit] if query.limit else matched

    async def add_order(self, order: Order) -> Order:
        saved = order.model_copy(update={"version": 1})
        async with self._lock(saved.id):
            self._orders[saved.id] = _document(saved)
            self._versions[saved.id] = 1
        return saved

    async def save_order(self, order: Order) -> Order:
        async with self._lock(order.id):
            current = self._versions.get(order.id)
            if current is None:
                raise NotFoundError("Order not found.", order_id=order.id)
            if current != order.version:
                raise _stale(order)
            saved = order.model_copy(update={"version": current + 1, "updated_at": utcnow()})
            self._orders[saved.id] = _document(saved)
            self._versions[saved.id] = saved.version
        return saved

    async def get_table(self, table_id: str) -> TableRef | None:
        return self.tables.get(table_id)

    async def get_restaurant(self, restaurant_id: str) -> RestaurantRef | None:
        return self.restaurants.get(restaurant_id)

    async def get_menu_items(self, ids: Iterable[str], restaurant_id: str) -> dict[str, MenuItemRef]:
        found = {}
        for item_id in ids:
            item = self.menu_items.get(item_id)
            if item and item.restaurant_id == restaurant_id and item.is_active:
                found[item_id] = item
        return found
