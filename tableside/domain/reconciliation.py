"""
Tableside Orders — Reconciliation engine

Merges a resubmitted cart against an order's current lines.

Lines and submissions are matched on (menu_item_id, sorted addon set);
same-key submission rows are summed first. Two policies share one interface:

  CustomerEditPolicy — cosmetic pre-kitchen edits: one line per key, quantity
                       overwritten in place, id and status preserved.
  StaffEditPolicy    — kitchen-aware edits: surplus becomes a new pending line,
                       deficit is taken from the least advanced lines first.

Nothing is ever deleted: lines that lose all their quantity stay in the list
flagged is_removed. Surviving lines keep their position; new lines are
appended in submission order.
"""
import logging
from typing import Iterable, Sequence

from pydantic import BaseModel

from tableside.domain.catalog import DesiredItem
from tableside.domain.order import (
    Actor,
    ChangeEvent,
    ChangeType,
    ItemStatus,
    OrderLine,
)
from tableside.domain.pricing import order_total

logger = logging.getLogger(__name__)

# cheapest to cancel first
REMOVAL_PRIORITY: dict[ItemStatus, int] = {
    ItemStatus.PENDING: 0,
    ItemStatus.PREPARING: 1,
    ItemStatus.READY: 2,
    ItemStatus.SERVED: 3,
    ItemStatus.CANCELLED: 4,
}

LineKey = tuple[str, tuple[tuple[str, float], ...]]


class ReconciliationResult(BaseModel):
    lines: list[OrderLine]
    total: float
    events: list[ChangeEvent]


class _DesiredGroup(BaseModel):
    template: DesiredItem
    quantity: int


class _KeyOutcome(BaseModel):
    replaced: list[OrderLine] = []
    added: list[OrderLine] = []
    events: list[ChangeEvent] = []


def group_desired(desired: Iterable[DesiredItem]) -> dict[LineKey, _DesiredGroup]:
    groups: dict[LineKey, _DesiredGroup] = {}
    for item in desired:
        group = groups.get(item.key)
        if group is None:
            groups[item.key] = _DesiredGroup(template=item, quantity=item.quantity)
        else:
            group.quantity += item.quantity
    return groups


def group_existing(lines: Iterable[OrderLine]) -> dict[LineKey, list[OrderLine]]:
    groups: dict[LineKey, list[OrderLine]] = {}
    for line in lines:
        groups.setdefault(line.key, []).append(line)
    return groups


def new_line(template: DesiredItem, quantity: int) -> OrderLine:
    return OrderLine(
        menu_item_id=template.menu_item_id,
        name=template.name,
        price=template.price,
        quantity=quantity,
        addons=template.addons,
        special_instructions=template.special_instructions,
        status=ItemStatus.PENDING,
        is_new=True,
    )


def _event(change_type: ChangeType, name: str, old: int | None, new: int | None,
           actor: Actor, details: str) -> ChangeEvent:
    return ChangeEvent(
        change_type=change_type,
        item_name=name,
        old_quantity=old,
        new_quantity=new,
        changed_by=actor,
        details=details,
    )


def reconcile_kitchen_aware(
    existing: Sequence[OrderLine],
    desired_qty: int,
    template: DesiredItem | None,
    actor: Actor,
) -> _KeyOutcome:
    """Reconcile one key against the set of lines already sharing it."""
    existing_qty = sum(line.quantity for line in existing)
    name = existing[0].name if existing else template.name
    outcome = _KeyOutcome()

    if desired_qty == existing_qty:
        return outcome

    if desired_qty > existing_qty:
        # started work is never merged with unstarted work
        surplus = desired_qty - existing_qty
        outcome.added.append(new_line(template, surplus))
        if existing_qty == 0:
            outcome.events.append(_event(
                ChangeType.ITEM_ADDED, name, None, desired_qty, actor,
                f"Added {desired_qty}x {name}",
            ))
        else:
            outcome.events.append(_event(
                ChangeType.QUANTITY_INCREASED, name, existing_qty, desired_qty, actor,
                f"{name}: increased from {existing_qty} to {desired_qty}",
            ))
        return outcome

    deficit = existing_qty - desired_qty
    outcome.events.append(_event(
        ChangeType.QUANTITY_DECREASED, name, existing_qty, desired_qty, actor,
        f"{name}: decreased from {existing_qty} to {desired_qty}",
    ))
    for line in sorted(existing, key=lambda l: REMOVAL_PRIORITY[l.status]):
        if deficit <= 0:
            break
        if line.quantity > deficit:
            outcome.replaced.append(line.model_copy(update={"quantity": line.quantity - deficit}))
            deficit = 0
        else:
            # keep the final quantity so the kitchen can see what was dropped
            deficit -= line.quantity
            outcome.replaced.append(line.model_copy(update={"is_removed": True, "is_new": False}))
    return outcome


class ReconciliationPolicy:
    """reconcile(old, desired, actor) -> (new lines, total, events)"""

    def reconcile(
        self,
        old_lines: Sequence[OrderLine],
        desired: Sequence[DesiredItem],
        actor: Actor,
    ) -> ReconciliationResult:
        wanted = group_desired(desired)
        existing = group_existing(old_lines)

        replacements: dict[str, OrderLine] = {}
        added: list[OrderLine] = []
        events: list[ChangeEvent] = []

        for key, group in wanted.items():
            outcome = self.reconcile_key(existing.get(key, []), group, actor)
            self._collect(outcome, replacements, added, events)

        for key, lines in existing.items():
            if key not in wanted:
                outcome = self.remove_key(lines, actor)
                self._collect(outcome, replacements, added, events)

        lines = [replacements.get(line.id, line) for line in old_lines] + added
        return ReconciliationResult(lines=lines, total=order_total(lines), events=events)

    @staticmethod
    def _collect(outcome: _KeyOutcome, replacements: dict[str, OrderLine],
                 added: list[OrderLine], events: list[ChangeEvent]) -> None:
        for line in outcome.replaced:
            replacements[line.id] = line
        added.extend(outcome.added)
        events.extend(outcome.events)

    def reconcile_key(self, existing: list[OrderLine], group: _DesiredGroup,
                      actor: Actor) -> _KeyOutcome:
        raise NotImplementedError

    def remove_key(self, existing: list[OrderLine], actor: Actor) -> _KeyOutcome:
        raise NotImplementedError


class StaffEditPolicy(ReconciliationPolicy):
    """Trusted edits on a live ticket; respects what the kitchen has started."""

    def reconcile_key(self, existing, group, actor):
        return reconcile_kitchen_aware(existing, group.quantity, group.template, actor)

    def remove_key(self, existing, actor):
        return reconcile_kitchen_aware(existing, 0, None, actor)


class CustomerEditPolicy(ReconciliationPolicy):
    """Cart resubmission from the table: consolidate each key to one line."""

    def reconcile_key(self, existing, group, actor):
        if len(existing) > 1:
            # several prior lines with different kitchen states: a single
            # "prior quantity" is meaningless, so use the kitchen-aware merge
            logger.info(
                "Customer edit hit %d lines for menu item %s; using kitchen-aware merge",
                len(existing), group.template.menu_item_id,
            )
            return reconcile_kitchen_aware(existing, group.quantity, group.template, actor)

        outcome = _KeyOutcome()
        template = group.template
        if not existing:
            line = new_line(template, group.quantity)
            outcome.added.append(line)
            outcome.events.append(_event(
                ChangeType.ITEM_ADDED, line.name, None, line.quantity, actor,
                f"Added {line.quantity}x {line.name}",
            ))
            return outcome

        old = existing[0]
        wanted_qty = group.quantity
        if wanted_qty > old.quantity:
            outcome.replaced.append(old.model_copy(update={
                "quantity": wanted_qty,
                "special_instructions": template.special_instructions,
                "is_new": True,
            }))
            outcome.events.append(_event(
                ChangeType.QUANTITY_INCREASED, old.name, old.quantity, wanted_qty, actor,
                f"Increased from {old.quantity} to {wanted_qty}",
            ))
        elif wanted_qty < old.quantity:
            outcome.replaced.append(old.model_copy(update={
                "quantity": wanted_qty,
                "special_instructions": template.special_instructions,
            }))
            outcome.events.append(_event(
                ChangeType.QUANTITY_DECREASED, old.name, old.quantity, wanted_qty, actor,
                f"Decreased from {old.quantity} to {wanted_qty}",
            ))
        elif template.special_instructions != old.special_instructions:
            outcome.replaced.append(old.model_copy(update={
                "special_instructions": template.special_instructions,
            }))
            outcome.events.append(_event(
                ChangeType.ITEM_MODIFIED, old.name, old.quantity, old.quantity, actor,
                f"{old.name}: instructions changed",
            ))
        return outcome

    def remove_key(self, existing, actor):
        outcome = _KeyOutcome()
        for old in existing:
            outcome.replaced.append(old.model_copy(update={"is_removed": True, "is_new": False}))
            outcome.events.append(_event(
                ChangeType.ITEM_REMOVED, old.name, old.quantity, None, actor,
                f"Removed {old.quantity}x {old.name}",
            ))
        return outcome


_POLICIES: dict[Actor, ReconciliationPolicy] = {
    Actor.CUSTOMER: CustomerEditPolicy(),
    Actor.STAFF: StaffEditPolicy(),
}


def policy_for(actor: Actor) -> ReconciliationPolicy:
    return _POLICIES[Actor(actor)]


def reconcile(
    old_lines: Sequence[OrderLine],
    desired: Sequence[DesiredItem],
    actor: Actor,
) -> ReconciliationResult:
    active = [line for line in old_lines if not line.is_removed]
    return policy_for(actor).reconcile(active, desired, Actor(actor))


def merge_reconciled(items: Sequence[OrderLine], reconciled: Sequence[OrderLine]) -> list[OrderLine]:
    """Lay reconciled lines back over the full item list.

    Lines removed by an earlier edit were not part of the reconciliation and
    keep their position; lines new to this edit go at the end.
    """
    by_id = {line.id: line for line in reconciled}
    known = {line.id for line in items}
    merged = [by_id.get(line.id, line) for line in items]
    return merged + [line for line in reconciled if line.id not in known]
