import pytest

from tableside.domain.catalog import DesiredItem
from tableside.domain.order import Actor, ChangeType, ItemStatus, OrderLine
from tableside.domain.reconciliation import (
    CustomerEditPolicy,
    StaffEditPolicy,
    merge_reconciled,
    policy_for,
    reconcile,
)


def line(menu_item_id="burger", quantity=1, status=ItemStatus.PENDING, name=None, price=10.0, **kwargs):
    return OrderLine(
        menu_item_id=menu_item_id,
        name=name or menu_item_id.title(),
        price=price,
        quantity=quantity,
        status=status,
        **kwargs,
    )


def want(menu_item_id="burger", quantity=1, name=None, price=10.0, **kwargs):
    return DesiredItem(
        menu_item_id=menu_item_id,
        name=name or menu_item_id.title(),
        price=price,
        quantity=quantity,
        **kwargs,
    )


def quantities(lines, menu_item_id="burger", include_removed=False):
    return sum(
        l.quantity for l in lines
        if l.menu_item_id == menu_item_id and (include_removed or not l.is_removed)
    )


# ── staff policy ──────────────────────────────────────────────────────────────

def test_staff_decrease_reduces_line_in_place():
    burger = line(quantity=3, status=ItemStatus.PREPARING)
    result = reconcile([burger], [want(quantity=2)], Actor.STAFF)

    assert len(result.lines) == 1
    assert result.lines[0].id == burger.id
    assert result.lines[0].quantity == 2
    assert result.lines[0].status == ItemStatus.PREPARING
    assert [(e.change_type, e.old_quantity, e.new_quantity) for e in result.events] == [
        (ChangeType.QUANTITY_DECREASED, 3, 2),
    ]


def test_staff_increase_appends_pending_line():
    burger = line(quantity=3, status=ItemStatus.PREPARING)
    result = reconcile([burger], [want(quantity=5)], Actor.STAFF)

    assert result.lines[0] == burger
    added = result.lines[1]
    assert added.id != burger.id
    assert (added.quantity, added.status, added.is_new) == (2, ItemStatus.PENDING, True)
    assert [e.change_type for e in result.events] == [ChangeType.QUANTITY_INCREASED]
    assert (result.events[0].old_quantity, result.events[0].new_quantity) == (3, 5)


def test_staff_new_item_is_logged_as_added():
    result = reconcile([line()], [want(), want("fries", 2, price=4.5)], Actor.STAFF)

    assert [e.change_type for e in result.events] == [ChangeType.ITEM_ADDED]
    assert result.lines[-1].menu_item_id == "fries"
    assert result.total == 19.0


def test_removal_priority_takes_least_advanced_first():
    ready = line(quantity=1, status=ItemStatus.READY)
    preparing = line(quantity=2, status=ItemStatus.PREPARING)
    pending = line(quantity=2, status=ItemStatus.PENDING)
    old = [ready, preparing, pending]

    result = reconcile(old, [want(quantity=2)], Actor.STAFF)
    by_id = {l.id: l for l in result.lines}

    assert by_id[pending.id].is_removed
    assert by_id[pending.id].quantity == 2
    assert by_id[preparing.id].quantity == 1
    assert not by_id[preparing.id].is_removed
    assert by_id[ready.id] == ready
    assert quantities(result.lines) == 2


def test_removal_never_touches_preparing_while_pending_remains():
    preparing = line(quantity=2, status=ItemStatus.PREPARING)
    pending = line(quantity=3, status=ItemStatus.PENDING)

    result = reconcile([preparing, pending], [want(quantity=4)], Actor.STAFF)
    by_id = {l.id: l for l in result.lines}

    assert by_id[preparing.id] == preparing
    assert by_id[pending.id].quantity == 2


@pytest.mark.parametrize("existing,desired", [((2, 3), 1), ((2, 3), 5), ((2, 3), 9), ((1, 1, 1), 2)])
def test_staff_quantity_is_conserved_per_key(existing, desired):
    statuses = [ItemStatus.PENDING, ItemStatus.PREPARING, ItemStatus.READY]
    old = [line(quantity=q, status=statuses[i]) for i, q in enumerate(existing)]

    result = reconcile(old, [want(quantity=desired)], Actor.STAFF)

    assert quantities(result.lines) == desired
    assert desired <= quantities(result.lines, include_removed=True) <= max(sum(existing), desired)


def test_staff_omitted_key_is_removed_through_deficit_path():
    burger = line(quantity=2, status=ItemStatus.READY)
    fries = line("fries", 1)
    result = reconcile([burger, fries], [want("fries", 1)], Actor.STAFF)

    assert result.lines[0].is_removed
    assert result.lines[0].quantity == 2
    assert result.lines[1] == fries
    assert [(e.change_type, e.new_quantity) for e in result.events] == [(ChangeType.QUANTITY_DECREASED, 0)]
    assert result.total == 10.0


def test_untouched_lines_keep_identity_and_position():
    a, b, c = line("burger"), line("fries", 2), line("cola", 3)
    result = reconcile([a, b, c], [want("burger"), want("fries", 2), want("cola", 1), want("tea")], Actor.STAFF)

    assert [l.id for l in result.lines[:3]] == [a.id, b.id, c.id]
    assert result.lines[0] == a
    assert result.lines[1] == b
    assert result.lines[3].menu_item_id == "tea"


def test_same_key_submission_rows_are_summed():
    burger = line(quantity=2)
    result = reconcile([burger], [want(quantity=1), want(quantity=1)], Actor.STAFF)
    assert result.events == []
    assert result.lines == [burger]


def test_addons_are_part_of_the_key():
    plain = line(quantity=1)
    cheese = [{"name": "Cheese", "price": 1.0}]
    result = reconcile([plain], [want(quantity=1), want(quantity=1, addons=cheese)], Actor.STAFF)

    assert len(result.lines) == 2
    assert result.lines[1].addons[0].name == "Cheese"
    assert [e.change_type for e in result.events] == [ChangeType.ITEM_ADDED]


def test_addon_order_does_not_matter():
    addons = [{"name": "Cheese", "price": 1}, {"name": "Bacon", "price": 2}]
    existing = line(quantity=1, addons=addons)
    result = reconcile([existing], [want(quantity=1, addons=list(reversed(addons)))], Actor.STAFF)
    assert result.events == []


def test_previously_removed_lines_are_ignored():
    gone = line(quantity=2, is_removed=True)
    result = reconcile([gone], [want(quantity=1)], Actor.STAFF)

    assert [e.change_type for e in result.events] == [ChangeType.ITEM_ADDED]
    assert [l.id for l in result.lines] != [gone.id]


def test_no_change_yields_no_events():
    old = [line(quantity=2, status=ItemStatus.SERVED)]
    result = reconcile(old, [want(quantity=2)], Actor.STAFF)
    assert result.events == []
    assert result.lines == old


# ── customer policy ───────────────────────────────────────────────────────────

def test_customer_increase_overwrites_single_line():
    burger = line(quantity=1)
    result = reconcile([burger], [want(quantity=3, special_instructions="well done")], Actor.CUSTOMER)

    assert len(result.lines) == 1
    updated = result.lines[0]
    assert updated.id == burger.id
    assert (updated.quantity, updated.is_new, updated.special_instructions) == (3, True, "well done")
    assert result.events[0].change_type == ChangeType.QUANTITY_INCREASED
    assert result.events[0].details == "Increased from 1 to 3"


def test_customer_decrease_keeps_status():
    burger = line(quantity=3, status=ItemStatus.PREPARING)
    result = reconcile([burger], [want(quantity=1)], Actor.CUSTOMER)

    assert result.lines[0].quantity == 1
    assert result.lines[0].status == ItemStatus.PREPARING
    assert result.events[0].change_type == ChangeType.QUANTITY_DECREASED


def test_customer_instruction_change_is_a_modification():
    burger = line(quantity=1)
    result = reconcile([burger], [want(quantity=1, special_instructions="no pickles")], Actor.CUSTOMER)

    assert result.lines[0].special_instructions == "no pickles"
    assert [e.change_type for e in result.events] == [ChangeType.ITEM_MODIFIED]


def test_customer_omitted_key_is_flagged_removed():
    burger, fries = line(quantity=2), line("fries", 1)
    result = reconcile([burger, fries], [want("burger", 2)], Actor.CUSTOMER)

    assert result.lines[1].is_removed
    assert result.lines[1].is_new is False
    assert result.events[0].change_type == ChangeType.ITEM_REMOVED
    assert result.events[0].details == "Removed 1x Fries"
    assert result.total == 20.0


def test_customer_edit_with_split_lines_uses_kitchen_aware_merge():
    served = line(quantity=2, status=ItemStatus.SERVED)
    pending = line(quantity=1, status=ItemStatus.PENDING)
    result = reconcile([served, pending], [want(quantity=2)], Actor.CUSTOMER)
    by_id = {l.id: l for l in result.lines}

    assert by_id[served.id] == served
    assert by_id[pending.id].is_removed
    assert [e.change_type for e in result.events] == [ChangeType.QUANTITY_DECREASED]


def test_policy_lookup_accepts_strings():
    assert isinstance(policy_for("staff"), StaffEditPolicy)
    assert isinstance(policy_for(Actor.CUSTOMER), CustomerEditPolicy)


def test_merge_keeps_earlier_removals_in_place():
    gone = line("cola", 1, is_removed=True)
    burger = line(quantity=1)
    items = [burger, gone]

    result = reconcile(items, [want(quantity=2)], Actor.STAFF)
    merged = merge_reconciled(items, result.lines)

    assert merged[0] == burger
    assert merged[1] == gone
    assert merged[2].quantity == 1 and merged[2].is_new
