"""
Shared fixtures: an in-memory order store seeded with two restaurants,
a publisher that records every event, and a dispatcher that records tickets.
"""
from typing import Any

import pytest

from tableside.core.publisher import Publisher
from tableside.db.order_store import InMemoryOrderStore
from tableside.domain.catalog import MenuItemRef, RestaurantRef, TableRef
from tableside.domain.order import Ticket
from tableside.services.order_service import OrderService
from tableside.tasks.ticket_tasks import TicketDispatcher

RESTAURANT_ID = "rest-1"
OTHER_RESTAURANT_ID = "rest-2"
TABLE_ID = "table-1"
OTHER_TABLE_ID = "table-9"


class RecordingPublisher(Publisher):
    def __init__(self):
        self.events: list[tuple[str, dict[str, Any]]] = []

    async def publish(self, topic: str, event: dict[str, Any]) -> None:
        self.events.append((topic, event))

    def names(self) -> list[str]:
        return [event["event"] for _, event in self.events]

    def clear(self) -> None:
        self.events.clear()


class RecordingDispatcher(TicketDispatcher):
    def __init__(self):
        self.sent: list[tuple[str, str | None, Ticket]] = []

    def dispatch(self, order_id: str, table_name: str | None, ticket: Ticket) -> None:
        self.sent.append((order_id, table_name, ticket))


def seed_catalog(store: InMemoryOrderStore) -> None:
    store.restaurants.update({
        RESTAURANT_ID: RestaurantRef(id=RESTAURANT_ID, name="Spice Route", owner_id="owner-1"),
        OTHER_RESTAURANT_ID: RestaurantRef(id=OTHER_RESTAURANT_ID, name="Noodle Bar", owner_id="owner-2"),
        "rest-ownerless": RestaurantRef(id="rest-ownerless", name="Orphan Diner", owner_id=None),
    })
    store.tables.update({
        TABLE_ID: TableRef(id=TABLE_ID, restaurant_id=RESTAURANT_ID, table_name="T1", seats=4),
        "table-2": TableRef(id="table-2", restaurant_id=RESTAURANT_ID, table_name="T2", seats=2),
        "table-closed": TableRef(id="table-closed", restaurant_id=RESTAURANT_ID, table_name="T3",
                                 is_active=False),
        "table-legacy": TableRef(id="table-legacy", restaurant_id=None, table_name="Old"),
        "table-ownerless": TableRef(id="table-ownerless", restaurant_id="rest-ownerless", table_name="X"),
        OTHER_TABLE_ID: TableRef(id=OTHER_TABLE_ID, restaurant_id=OTHER_RESTAURANT_ID, table_name="N1"),
    })
    store.menu_items.update({
        "burger": MenuItemRef(id="burger", restaurant_id=RESTAURANT_ID, name="Burger", price=10.0),
        "fries": MenuItemRef(id="fries", restaurant_id=RESTAURANT_ID, name="Fries", price=4.5),
        "cola": MenuItemRef(id="cola", restaurant_id=RESTAURANT_ID, name="Cola", price=2.0),
        "salad": MenuItemRef(id="salad", restaurant_id=RESTAURANT_ID, name="Salad", price=7.0,
                             is_active=False),
        "ramen": MenuItemRef(id="ramen", restaurant_id=OTHER_RESTAURANT_ID, name="Ramen", price=12.0),
    })


@pytest.fixture
def store() -> InMemoryOrderStore:
    store = InMemoryOrderStore()
    seed_catalog(store)
    return store


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def service(store, publisher, dispatcher) -> OrderService:
    return OrderService(store=store, publisher=publisher, dispatcher=dispatcher)
