"""
Tableside Orders — Orders API

Customer routes (public, the table QR page):
  POST  /tables/{table_id}/orders          place an order
  GET   /tables/{table_id}/orders/active   the table's open order, if any
  POST  /tables/{table_id}/call-waiter
  PATCH /orders/{order_id}                 resubmit the cart (staff token → staff edit)
  GET   /orders/{order_id}/status

Everything else needs a staff token scoped to the order's restaurant.
Domain errors are rendered by the handler in main.py.
"""
from datetime import datetime

from fastapi import APIRouter, Depends, Query, Response, status

from tableside.api.deps import current_principal, get_order_service, staff_restaurant_id
from tableside.core.security import principal_display_name, principal_restaurant_id
from tableside.domain.order import Actor
from tableside.schemas.order import (
    ActiveOrderResponse,
    BulkItemStatusRequest,
    BulkStatusResponse,
    CallWaiterRequest,
    HistoryResponse,
    ItemStatusRequest,
    OrderEnvelope,
    OrderListResponse,
    OrderStatusRequest,
    PaymentRequest,
    PlaceOrderRequest,
    TicketListResponse,
    TicketRequest,
    TicketResponse,
    UpdateOrderRequest,
)
from tableside.services.order_service import OrderService

tables_router = APIRouter(prefix="/tables", tags=["customer"])
router = APIRouter(prefix="/orders", tags=["orders"])
restaurant_router = APIRouter(prefix="/restaurant", tags=["restaurant"])


def _split(value: str | None) -> list[str] | None:
    if not value:
        return None
    return [part.strip() for part in value.split(",") if part.strip()] or None


# ── Customer ─────────────────────────────────────────────────────────────────

@tables_router.post("/{table_id}/orders", response_model=OrderEnvelope, status_code=status.HTTP_201_CREATED)
async def place_order(
    table_id: str,
    payload: PlaceOrderRequest,
    principal: dict | None = Depends(current_principal),
    service: OrderService = Depends(get_order_service),
):
    """
    Place an order for a table. A staff token marks it as a staff order.
    Idempotency enforced by IdempotencyMiddleware.
    """
    order = await service.place_order(
        table_id,
        [item.model_dump() for item in payload.items],
        customer_name=payload.customer_name,
        special_instructions=payload.special_instructions,
        principal=principal,
    )
    return OrderEnvelope(message="Order placed successfully", order=order)


@tables_router.get("/{table_id}/orders/active", response_model=ActiveOrderResponse)
async def get_active_order(table_id: str, service: OrderService = Depends(get_order_service)):
    return ActiveOrderResponse(order=await service.get_active_order_for_table(table_id))


@tables_router.post("/{table_id}/call-waiter")
async def call_waiter(
    table_id: str,
    payload: CallWaiterRequest,
    service: OrderService = Depends(get_order_service),
):
    await service.call_waiter(table_id, payload.customer_name)
    return {"message": "Waiter has been notified"}


@router.patch("/{order_id}", response_model=OrderEnvelope)
async def update_order(
    order_id: str,
    payload: UpdateOrderRequest,
    principal: dict | None = Depends(current_principal),
    service: OrderService = Depends(get_order_service),
):
    """Resubmit the full cart; the server reconciles it against the order."""
    actor = Actor.STAFF if principal is not None else Actor.CUSTOMER
    order = await service.update_order(
        order_id,
        [item.model_dump() for item in payload.items],
        actor,
        customer_name=payload.customer_name,
        special_instructions=payload.special_instructions,
        restaurant_id=principal_restaurant_id(principal),
    )
    return OrderEnvelope(message="Order updated successfully", order=order)


@router.get("/{order_id}/status", response_model=ActiveOrderResponse)
async def get_order_status(order_id: str, service: OrderService = Depends(get_order_service)):
    return ActiveOrderResponse(order=await service.get_order(order_id))


# ── Staff ────────────────────────────────────────────────────────────────────

@restaurant_router.get("/orders", response_model=OrderListResponse)
async def list_restaurant_orders(
    status_filter: str | None = Query(None, alias="status", description="Comma-separated statuses"),
    order_type: str | None = Query(None, alias="orderType"),
    start_date: datetime | None = Query(None, alias="startDate"),
    end_date: datetime | None = Query(None, alias="endDate"),
    recently_updated: bool = Query(False, alias="recentlyUpdated"),
    limit: int | None = Query(None, ge=1, le=500),
    restaurant_id: str = Depends(staff_restaurant_id),
    service: OrderService = Depends(get_order_service),
):
    orders = await service.list_restaurant_orders(
        restaurant_id,
        statuses=_split(status_filter),
        order_type=order_type,
        start_date=start_date,
        end_date=end_date,
        recently_updated=recently_updated,
        limit=limit,
    )
    return OrderListResponse(count=len(orders), orders=orders)


@restaurant_router.get("/tables/{table_id}/orders", response_model=OrderListResponse)
async def list_table_orders(
    table_id: str,
    status_filter: str | None = Query(None, alias="status"),
    exclude_status: str | None = Query(None, alias="excludeStatus"),
    limit: int | None = Query(None, ge=1, le=500),
    restaurant_id: str = Depends(staff_restaurant_id),
    service: OrderService = Depends(get_order_service),
):
    orders = await service.list_table_orders(
        table_id,
        restaurant_id,
        statuses=_split(status_filter),
        exclude_statuses=_split(exclude_status),
        limit=limit,
    )
    return OrderListResponse(count=len(orders), orders=orders)


@router.get("/{order_id}", response_model=ActiveOrderResponse)
async def get_order(
    order_id: str,
    restaurant_id: str = Depends(staff_restaurant_id),
    service: OrderService = Depends(get_order_service),
):
    return ActiveOrderResponse(order=await service.get_order(order_id, restaurant_id))


@router.get("/{order_id}/history", response_model=HistoryResponse)
async def get_history(
    order_id: str,
    restaurant_id: str = Depends(staff_restaurant_id),
    service: OrderService = Depends(get_order_service),
):
    order = await service.get_order(order_id, restaurant_id)
    return HistoryResponse(order_id=order.id, update_count=order.update_count, history=order.update_history)


@router.get("/{order_id}/kots", response_model=TicketListResponse)
async def get_tickets(
    order_id: str,
    restaurant_id: str = Depends(staff_restaurant_id),
    service: OrderService = Depends(get_order_service),
):
    return TicketListResponse(order_id=order_id, kots=await service.get_tickets(order_id, restaurant_id))


@router.post("/{order_id}/kots", response_model=TicketResponse)
async def generate_ticket(
    order_id: str,
    response: Response,
    payload: TicketRequest | None = None,
    principal: dict | None = Depends(current_principal),
    restaurant_id: str = Depends(staff_restaurant_id),
    service: OrderService = Depends(get_order_service),
):
    printed_by = (payload.printed_by if payload else None) or principal_display_name(principal)
    ticket = await service.generate_ticket(order_id, printed_by=printed_by, restaurant_id=restaurant_id)
    if ticket is None:
        return TicketResponse(message="No new items to print", kot=None)
    response.status_code = status.HTTP_201_CREATED
    return TicketResponse(message=f"KOT #{ticket.kot_number} generated", kot=ticket)


@router.patch("/{order_id}/status", response_model=OrderEnvelope)
async def set_order_status(
    order_id: str,
    payload: OrderStatusRequest,
    restaurant_id: str = Depends(staff_restaurant_id),
    service: OrderService = Depends(get_order_service),
):
    order = await service.set_order_status(
        order_id, payload.status, batch_ids=payload.batch_ids, restaurant_id=restaurant_id,
    )
    return OrderEnvelope(message="Order status updated", order=order)


@router.patch("/{order_id}/items/bulk-status", response_model=BulkStatusResponse)
async def set_items_status_bulk(
    order_id: str,
    payload: BulkItemStatusRequest,
    restaurant_id: str = Depends(staff_restaurant_id),
    service: OrderService = Depends(get_order_service),
):
    result = await service.set_items_status_bulk(
        order_id, payload.item_ids, payload.status, restaurant_id=restaurant_id,
    )
    return BulkStatusResponse(
        message=f"{len(result.updated_ids)} item(s) updated",
        order=result.order,
        updated_ids=result.updated_ids,
        not_found_ids=result.not_found_ids,
    )


@router.patch("/{order_id}/items/{line_id}/status", response_model=OrderEnvelope)
async def set_item_status(
    order_id: str,
    line_id: str,
    payload: ItemStatusRequest,
    restaurant_id: str = Depends(staff_restaurant_id),
    service: OrderService = Depends(get_order_service),
):
    order = await service.set_item_status(order_id, line_id, payload.status, restaurant_id=restaurant_id)
    return OrderEnvelope(message="Item status updated", order=order)


@router.patch("/{order_id}/payment", response_model=OrderEnvelope)
async def record_payment(
    order_id: str,
    payload: PaymentRequest,
    restaurant_id: str = Depends(staff_restaurant_id),
    service: OrderService = Depends(get_order_service),
):
    order = await service.record_payment(order_id, payload.payment_method, restaurant_id=restaurant_id)
    return OrderEnvelope(message="Payment recorded", order=order)


@router.patch("/{order_id}/mark-seen", response_model=OrderEnvelope)
async def mark_seen(
    order_id: str,
    restaurant_id: str = Depends(staff_restaurant_id),
    service: OrderService = Depends(get_order_service),
):
    order = await service.mark_seen(order_id, restaurant_id=restaurant_id)
    return OrderEnvelope(message="Order marked as seen", order=order)


@router.delete("/{order_id}", response_model=OrderEnvelope)
async def cancel_order(
    order_id: str,
    restaurant_id: str = Depends(staff_restaurant_id),
    service: OrderService = Depends(get_order_service),
):
    order = await service.cancel_order(order_id, restaurant_id=restaurant_id)
    return OrderEnvelope(message="Order cancelled", order=order)
