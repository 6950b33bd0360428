"""
Tableside Orders — Kitchen display routes
"""
from fastapi import APIRouter, Depends

from tableside.api.deps import get_order_service, staff_restaurant_id
from tableside.schemas.order import OrderEnvelope, OrderListResponse
from tableside.services.order_service import KitchenOrder, KitchenStats, OrderService

router = APIRouter(prefix="/kitchen", tags=["kitchen"])


@router.get("/orders/active", response_model=list[KitchenOrder])
async def active_orders(
    restaurant_id: str = Depends(staff_restaurant_id),
    service: OrderService = Depends(get_order_service),
):
    """Kitchen display board — pending and preparing, oldest first."""
    return await service.kitchen_active_orders(restaurant_id)


@router.get("/orders/ready", response_model=OrderListResponse)
async def ready_orders(
    restaurant_id: str = Depends(staff_restaurant_id),
    service: OrderService = Depends(get_order_service),
):
    orders = await service.kitchen_ready_orders(restaurant_id)
    return OrderListResponse(count=len(orders), orders=orders)


@router.get("/orders/completed", response_model=OrderListResponse)
async def completed_orders(
    restaurant_id: str = Depends(staff_restaurant_id),
    service: OrderService = Depends(get_order_service),
):
    orders = await service.kitchen_completed_today(restaurant_id)
    return OrderListResponse(count=len(orders), orders=orders)


@router.get("/stats", response_model=KitchenStats)
async def stats(
    restaurant_id: str = Depends(staff_restaurant_id),
    service: OrderService = Depends(get_order_service),
):
    return await service.kitchen_stats_today(restaurant_id)


@router.patch("/orders/{order_id}/start", response_model=OrderEnvelope)
async def start_preparing(
    order_id: str,
    restaurant_id: str = Depends(staff_restaurant_id),
    service: OrderService = Depends(get_order_service),
):
    order = await service.start_preparing(order_id, restaurant_id)
    return OrderEnvelope(message="Order is now being prepared", order=order)


@router.patch("/orders/{order_id}/ready", response_model=OrderEnvelope)
async def mark_ready(
    order_id: str,
    restaurant_id: str = Depends(staff_restaurant_id),
    service: OrderService = Depends(get_order_service),
):
    order = await service.mark_ready(order_id, restaurant_id)
    return OrderEnvelope(message="Order is ready to serve", order=order)
