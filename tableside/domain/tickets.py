"""
Tableside Orders — Kitchen order ticket (KOT) generator

Printed quantities are counted per line id across the whole ticket ledger,
so a line added later for the same menu item gets its own count. A new
ticket holds only `line.quantity - already_printed` for each active line.
Calling this twice with no order change in between yields nothing the
second time. The ledger is never renumbered or pruned.
"""
from collections import Counter
from datetime import datetime

from tableside.domain.order import Order, Ticket, TicketLine, utcnow


def printed_quantities(order: Order) -> Counter:
    printed: Counter = Counter()
    for ticket in order.kots:
        for item in ticket.items:
            printed[item.line_id] += item.quantity
    return printed


def pending_ticket_lines(order: Order) -> list[TicketLine]:
    printed = printed_quantities(order)
    lines = []
    for line in order.items:
        if line.is_removed:
            continue
        remaining = line.quantity - printed[line.id]
        if remaining > 0:
            lines.append(TicketLine(
                line_id=line.id,
                name=line.name,
                quantity=remaining,
                addons=line.addons,
                special_instructions=line.special_instructions,
            ))
    return lines


def next_ticket(order: Order, printed_by: str, printed_at: datetime | None = None) -> Ticket | None:
    """Build the next incremental ticket, or None when there is nothing new."""
    lines = pending_ticket_lines(order)
    if not lines:
        return None
    return Ticket(
        kot_number=len(order.kots) + 1,
        items=tuple(lines),
        printed_at=printed_at or utcnow(),
        printed_by=printed_by,
    )


def append_ticket(order: Order, ticket: Ticket) -> None:
    order.kots = [*order.kots, ticket]
