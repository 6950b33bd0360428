"""
Tableside Orders — Order aggregate

The order is one document: an ordered list of immutable line records, an
explicit batch-status map, and two append-only ledgers (change history and
kitchen tickets). Lines are replaced, never edited in place.
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum as PyEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


class OrderStatus(str, PyEnum):
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    SERVED = "served"
    PAID = "paid"
    CANCELLED = "cancelled"


class ItemStatus(str, PyEnum):
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    SERVED = "served"
    CANCELLED = "cancelled"


class Actor(str, PyEnum):
    CUSTOMER = "customer"
    STAFF = "staff"


class OrderType(str, PyEnum):
    QR = "qr"
    STAFF = "staff"


class ChangeType(str, PyEnum):
    ITEM_ADDED = "item_added"
    ITEM_REMOVED = "item_removed"
    QUANTITY_INCREASED = "quantity_increased"
    QUANTITY_DECREASED = "quantity_decreased"
    ITEM_MODIFIED = "item_modified"


class PaymentMethod(str, PyEnum):
    UPI = "upi"
    CARD = "card"
    CASH = "cash"


TERMINAL_ORDER_STATUSES = frozenset({OrderStatus.PAID, OrderStatus.CANCELLED})
NEW_WORK_CHANGES = frozenset({ChangeType.ITEM_ADDED, ChangeType.QUANTITY_INCREASED})


def coerce_price(value: Any) -> float:
    """Malformed or missing prices count as 0 instead of failing the order."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        price = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return 0.0
    if not price.is_finite() or price < 0:
        return 0.0
    return float(price)


class Addon(BaseModel):
    """Addon price snapshot. Legacy plain-name addons carry price 0."""

    model_config = ConfigDict(frozen=True)

    name: str
    price: float = 0.0

    @field_validator("price", mode="before")
    @classmethod
    def _price(cls, value: Any) -> float:
        return coerce_price(value)


def normalize_addons(raw: Any) -> tuple[Addon, ...]:
    if not raw:
        return ()
    addons = []
    for entry in raw:
        if isinstance(entry, Addon):
            addons.append(entry)
        elif isinstance(entry, str):
            addons.append(Addon(name=entry, price=0))
        elif isinstance(entry, dict) and entry.get("name"):
            addons.append(Addon(name=str(entry["name"]), price=entry.get("price")))
    return tuple(addons)


def addon_key(addons: tuple[Addon, ...]) -> tuple[tuple[str, float], ...]:
    return tuple(sorted((a.name, a.price) for a in addons))


class OrderLine(BaseModel):
    """One addressable unit of kitchen work. The id is the reconciliation anchor."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    menu_item_id: str
    name: str
    price: float
    quantity: int = Field(..., ge=1)
    addons: tuple[Addon, ...] = ()
    special_instructions: str = ""
    status: ItemStatus = ItemStatus.PENDING
    is_new: bool = False
    is_removed: bool = False

    @field_validator("addons", mode="before")
    @classmethod
    def _addons(cls, value: Any) -> tuple[Addon, ...]:
        return normalize_addons(value)

    @field_validator("price", mode="before")
    @classmethod
    def _price(cls, value: Any) -> float:
        return coerce_price(value)

    @property
    def key(self) -> tuple[str, tuple[tuple[str, float], ...]]:
        return (self.menu_item_id, addon_key(self.addons))


class ChangeEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=utcnow)
    change_type: ChangeType
    item_name: str
    old_quantity: int | None = None
    new_quantity: int | None = None
    changed_by: Actor
    details: str = ""


class TicketLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    line_id: str
    name: str
    quantity: int
    addons: tuple[Addon, ...] = ()
    special_instructions: str = ""


class Ticket(BaseModel):
    """Kitchen order ticket: only the work not printed on an earlier ticket."""

    model_config = ConfigDict(frozen=True)

    kot_number: int
    items: tuple[TicketLine, ...]
    printed_at: datetime = Field(default_factory=utcnow)
    printed_by: str = "Staff"


class Order(BaseModel):
    id: str = Field(default_factory=new_id)
    table_id: str
    restaurant_id: str
    customer_name: str = "Guest"
    order_type: OrderType = OrderType.QR
    special_instructions: str = ""

    items: list[OrderLine]
    total_price: float = 0.0
    status: OrderStatus = OrderStatus.PENDING
    batch_status: dict[str, OrderStatus] = Field(default_factory=dict)

    update_count: int = 0
    is_updated: bool = False
    has_unseen_changes: bool = False
    original_items: list[OrderLine] = Field(default_factory=list)
    update_history: list[ChangeEvent] = Field(default_factory=list)
    kots: list[Ticket] = Field(default_factory=list)

    payment_method: PaymentMethod | None = None
    payment_completed_at: datetime | None = None
    last_viewed_by_restaurant: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    # optimistic concurrency token, owned by the store
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_ORDER_STATUSES

    @property
    def active_items(self) -> list[OrderLine]:
        return [line for line in self.items if not line.is_removed]

    def find_line(self, line_id: str) -> OrderLine | None:
        for line in self.items:
            if line.id == line_id:
                return line
        return None

    def replace_line(self, line: OrderLine) -> None:
        self.items = [line if existing.id == line.id else existing for existing in self.items]

    def item_count(self) -> int:
        return sum(line.quantity for line in self.active_items)
