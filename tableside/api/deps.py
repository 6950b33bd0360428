"""
Tableside Orders — Shared route dependencies
"""
from functools import lru_cache
from typing import Any

from fastapi import Depends, HTTPException, Request, status

from tableside.core.publisher import RedisPublisher
from tableside.core.security import principal_restaurant_id
from tableside.db.database import AsyncSessionLocal
from tableside.db.order_store import SqlOrderStore
from tableside.services.order_service import OrderService
from tableside.tasks.ticket_tasks import CeleryTicketDispatcher


@lru_cache()
def get_order_service() -> OrderService:
    return OrderService(
        store=SqlOrderStore(AsyncSessionLocal),
        publisher=RedisPublisher(),
        dispatcher=CeleryTicketDispatcher(),
    )


def current_principal(request: Request) -> dict[str, Any] | None:
    """Decoded token claims set by StaffAuthMiddleware, None for customers."""
    return getattr(request.state, "principal", None)


def staff_restaurant_id(principal: dict[str, Any] | None = Depends(current_principal)) -> str:
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    restaurant_id = principal_restaurant_id(principal)
    if restaurant_id is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Token is not linked to a restaurant.",
        )
    return restaurant_id
