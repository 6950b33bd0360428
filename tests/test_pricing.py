from decimal import Decimal

from tableside.domain.order import Addon, OrderLine, coerce_price
from tableside.domain.pricing import line_price, order_total, round_total


def _line(price, quantity, addons=(), **kwargs):
    return OrderLine(menu_item_id="m", name="Item", price=price, quantity=quantity, addons=addons, **kwargs)


def test_total_includes_addons_per_unit():
    lines = [
        _line(10, 2, addons=[{"name": "Cheese", "price": 2}]),
        _line(5, 1),
    ]
    assert order_total(lines) == 29.00


def test_removed_lines_do_not_count():
    lines = [_line(10, 2), _line(5, 3, is_removed=True)]
    assert order_total(lines) == 20.00


def test_rounds_half_up_once_at_the_end():
    # 3 × 0.335 = 1.005 → 1.01 (binary float rounding would give 1.00)
    assert order_total([_line(0.335, 3)]) == 1.01
    assert round_total(Decimal("2.345")) == 2.35


def test_line_price_is_unrounded():
    assert line_price(_line(0.333, 3)) == Decimal("0.999")


def test_malformed_prices_count_as_zero():
    assert coerce_price("abc") == 0.0
    assert coerce_price(None) == 0.0
    assert coerce_price(-4) == 0.0
    assert coerce_price(float("nan")) == 0.0
    assert coerce_price(True) == 0.0
    assert coerce_price("3.50") == 3.5

    line = _line("oops", 2, addons=[Addon(name="Dip", price="bad"), {"name": "Salt", "price": 1}])
    assert order_total([line]) == 2.00


def test_plain_string_addons_are_free():
    line = _line(4, 1, addons=["Extra napkins"])
    assert line.addons == (Addon(name="Extra napkins", price=0),)
    assert order_total([line]) == 4.00


def test_empty_order_totals_zero():
    assert order_total([]) == 0.0
