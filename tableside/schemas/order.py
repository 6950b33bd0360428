"""
Tableside Orders — Pydantic request/response schemas

Request bodies only fix the shape; business validation (empty carts,
quantities, unknown menu items) happens in the order service so every
entry point reports it the same way.
"""
from typing import Any

from pydantic import BaseModel, Field

from tableside.domain.order import ChangeEvent, Order, Ticket


class OrderItemRequest(BaseModel):
    menu_item_id: str = Field(..., examples=["item-001"])
    quantity: int = Field(..., examples=[2])
    addons: list[Any] = Field(default_factory=list, examples=[[{"name": "Cheese", "price": 1.5}]])
    special_instructions: str | None = Field(None, examples=["no onions"])


class PlaceOrderRequest(BaseModel):
    items: list[OrderItemRequest] = Field(default_factory=list)
    customer_name: str | None = "Guest"
    special_instructions: str | None = ""


class UpdateOrderRequest(BaseModel):
    items: list[OrderItemRequest] = Field(default_factory=list)
    customer_name: str | None = None
    special_instructions: str | None = None


class OrderStatusRequest(BaseModel):
    status: str
    batch_ids: list[str] | str | None = None


class ItemStatusRequest(BaseModel):
    status: str


class BulkItemStatusRequest(BaseModel):
    item_ids: list[str] = Field(default_factory=list)
    status: str


class PaymentRequest(BaseModel):
    payment_method: str = Field(..., examples=["upi"])


class TicketRequest(BaseModel):
    printed_by: str | None = None


class CallWaiterRequest(BaseModel):
    customer_name: str | None = "Guest"


class OrderEnvelope(BaseModel):
    message: str
    order: Order


class ActiveOrderResponse(BaseModel):
    order: Order | None


class OrderListResponse(BaseModel):
    count: int
    orders: list[Order]


class BulkStatusResponse(BaseModel):
    message: str
    order: Order
    updated_ids: list[str]
    not_found_ids: list[str]


class HistoryResponse(BaseModel):
    order_id: str
    update_count: int
    history: list[ChangeEvent]


class TicketResponse(BaseModel):
    message: str
    kot: Ticket | None


class TicketListResponse(BaseModel):
    order_id: str
    kots: list[Ticket]

