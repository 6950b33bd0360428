"""
Tableside Orders — Pricing

line price = unit price × qty + Σ(addon price) × qty
order total = Σ non-removed line prices, rounded half-up to 2 places once,
at the end, so per-line rounding never compounds.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from tableside.domain.order import Addon, OrderLine, coerce_price

CENT = Decimal("0.01")


def _money(value) -> Decimal:
    return Decimal(str(coerce_price(value)))


def addon_unit_price(addons: Iterable[Addon]) -> Decimal:
    return sum((_money(addon.price) for addon in addons), Decimal("0"))


def line_price(line: OrderLine) -> Decimal:
    """Unrounded price of a single line."""
    quantity = Decimal(line.quantity)
    return _money(line.price) * quantity + addon_unit_price(line.addons) * quantity


def round_total(amount: Decimal) -> float:
    return float(amount.quantize(CENT, rounding=ROUND_HALF_UP))


def order_total(lines: Iterable[OrderLine]) -> float:
    total = sum((line_price(line) for line in lines if not line.is_removed), Decimal("0"))
    return round_total(total)
