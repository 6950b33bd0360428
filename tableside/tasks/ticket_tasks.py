"""
Tableside Orders — Celery tasks (kitchen ticket dispatch)

A printed KOT is already committed to the order's ledger before it gets
here; this task only delivers it to the kitchen printer bridge over HTTP.
Delivery is retried by Celery and never touches the order document.
"""
import logging
from typing import Any

import httpx

from tableside.core.config import get_settings
from tableside.domain.order import Ticket
from tableside.tasks.celery_app import celery_app

settings = get_settings()
logger = logging.getLogger(__name__)


def send_to_printer(
    order_id: str,
    table_name: str | None,
    ticket: dict[str, Any],
    client: httpx.Client,
) -> int:
    """POST one ticket to the printer bridge. Returns the HTTP status."""
    response = client.post(
        f"{settings.KITCHEN_PRINTER_URL}/tickets",
        json={"order_id": order_id, "table_name": table_name, "ticket": ticket},
    )
    response.raise_for_status()
    return response.status_code


@celery_app.task(
    name="print_ticket",
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    acks_late=True,
)
def print_ticket(self, order_id: str, table_name: str | None, ticket: dict[str, Any]):
    try:
        with httpx.Client(timeout=settings.HTTP_TIMEOUT_SECONDS) as client:
            send_to_printer(order_id, table_name, ticket, client)
        logger.info("Order %s: KOT #%s sent to printer", order_id, ticket.get("kot_number"))
    except httpx.HTTPError as exc:
        logger.warning("Order %s: printer bridge failed for KOT #%s: %s",
                       order_id, ticket.get("kot_number"), exc)
        raise self.retry(exc=exc)


class TicketDispatcher:
    def dispatch(self, order_id: str, table_name: str | None, ticket: Ticket) -> None:
        raise NotImplementedError


class CeleryTicketDispatcher(TicketDispatcher):
    """Queues printed tickets for the printer worker; disabled without a printer URL."""

    def __init__(self, printer_url: str | None = None):
        self._enabled = bool(printer_url if printer_url is not None else settings.KITCHEN_PRINTER_URL)

    def dispatch(self, order_id: str, table_name: str | None, ticket: Ticket) -> None:
        if not self._enabled:
            return
        try:
            print_ticket.delay(order_id, table_name, ticket.model_dump(mode="json"))
        except Exception as exc:
            # broker outage must not fail a ticket that is already recorded
            logger.warning("Order %s: could not queue KOT #%d: %s", order_id, ticket.kot_number, exc)
