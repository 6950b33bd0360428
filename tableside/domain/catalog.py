"""
Tableside Orders — Read-only catalog references

Tables, restaurants and menu items are owned by other services; orders only
read them to validate submissions and snapshot names and prices.
"""
from typing import Any

from pydantic import BaseModel, field_validator

from tableside.domain.order import Addon, addon_key, normalize_addons


class RestaurantRef(BaseModel):
    id: str
    name: str = ""
    owner_id: str | None = None


class TableRef(BaseModel):
    id: str
    restaurant_id: str | None = None
    table_name: str = ""
    seats: int | None = None
    is_active: bool = True


class MenuItemRef(BaseModel):
    id: str
    restaurant_id: str
    name: str
    price: float
    is_active: bool = True


class ItemSubmission(BaseModel):
    """A cart row as submitted, before catalog lookup."""

    menu_item_id: str
    quantity: int
    addons: tuple[Addon, ...] = ()
    special_instructions: str = ""

    @field_validator("addons", mode="before")
    @classmethod
    def _addons(cls, value: Any) -> tuple[Addon, ...]:
        return normalize_addons(value)

    @field_validator("special_instructions", mode="before")
    @classmethod
    def _instructions(cls, value: Any) -> str:
        return value or ""


class DesiredItem(BaseModel):
    """A submitted cart row resolved against the catalog."""

    menu_item_id: str
    name: str
    price: float
    quantity: int
    addons: tuple[Addon, ...] = ()
    special_instructions: str = ""

    @field_validator("addons", mode="before")
    @classmethod
    def _addons(cls, value: Any) -> tuple[Addon, ...]:
        return normalize_addons(value)

    @property
    def key(self) -> tuple[str, tuple[tuple[str, float], ...]]:
        return (self.menu_item_id, addon_key(self.addons))
