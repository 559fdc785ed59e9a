# Overview: Stock ledger; batch intake, FIFO allocation and write-offs.

"""
Stock ledger invariants:

- Stock lives in StockBatch rows, one item (product XOR package) per batch.
- 0 <= quantity_on_hand <= quantity_initial at all times.
- Allocation is FIFO: oldest intake_date first, ties broken by batch id.
  A plan is computed against the current rows and applied only once the
  full quantity is covered, so a failed allocation mutates nothing.
- A batch drained to zero stays as a record (costing history).
- Removal is a write-off: an audit row is appended and the batch deleted.
  Write-off is not the inverse of allocation.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func

from ..errors import InsufficientStock, NotFoundError, ValidationError
from ..extensions import db
from ..models import (
    Branch,
    ExpiryAlert,
    Package,
    Product,
    SaleStockAllocation,
    StockBatch,
    StockDelivery,
    StockWriteOff,
)
from ..time_utils import utcnow
from ..validation import (
    optional_id,
    optional_text,
    parse_optional_datetime,
    require_id,
    require_positive_cents,
    require_positive_int,
)
from .concurrency import begin_write, lock_for_update, run_atomic


ITEM_PRODUCT = "product"
ITEM_PACKAGE = "package"

DEFAULT_WRITE_OFF_REASON = "No reason given"


@dataclass(frozen=True)
class BatchAllocation:
    """Units taken from one batch."""
    batch_id: int
    quantity: int
    unit_cost_cents: int


def _item_filter(item_kind: str, item_id: int):
    if item_kind == ITEM_PRODUCT:
        return StockBatch.product_id == item_id
    if item_kind == ITEM_PACKAGE:
        return StockBatch.package_id == item_id
    raise ValidationError(f"Unknown item kind: {item_kind}")


def _fifo_batches(item_kind: str, item_id: int, branch_id: int) -> list[StockBatch]:
    query = (
        db.session.query(StockBatch)
        .filter(
            _item_filter(item_kind, item_id),
            StockBatch.branch_id == branch_id,
            StockBatch.quantity_on_hand > 0,
        )
        .order_by(StockBatch.intake_date.asc(), StockBatch.id.asc())
    )
    return lock_for_update(query).all()


def get_available_quantity(item_kind: str, item_id: int, branch_id: int) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(StockBatch.quantity_on_hand), 0))
        .filter(_item_filter(item_kind, item_id), StockBatch.branch_id == branch_id)
        .scalar()
    )
    return int(total or 0)


def plan_allocation(item_kind: str, item_id: int, branch_id: int, quantity: int) -> list[BatchAllocation]:
    """
    Compute a FIFO plan covering quantity without touching any batch.

    Raises InsufficientStock when the batches cannot cover it.
    """
    quantity = require_positive_int("quantity", quantity)
    plan: list[BatchAllocation] = []
    remaining = quantity
    for batch in _fifo_batches(item_kind, item_id, branch_id):
        if remaining == 0:
            break
        take = min(batch.quantity_on_hand, remaining)
        plan.append(BatchAllocation(batch_id=batch.id, quantity=take, unit_cost_cents=batch.unit_cost_cents))
        remaining -= take

    if remaining > 0:
        available = quantity - remaining
        raise InsufficientStock(
            f"Insufficient stock for {item_kind} {item_id}: requested {quantity}, available {available}",
            details={
                "item_kind": item_kind,
                "item_id": item_id,
                "requested": quantity,
                "available": available,
            },
        )
    return plan


def apply_allocation(plan: list[BatchAllocation]) -> None:
    """Decrease each planned batch. Runs inside the caller's transaction."""
    for step in plan:
        batch = db.session.get(StockBatch, step.batch_id)
        if batch is None or batch.quantity_on_hand < step.quantity:
            # Plan went stale between computing and applying
            raise InsufficientStock(
                f"Stock changed while allocating batch {step.batch_id}",
                details={"batch_id": step.batch_id},
            )
        batch.quantity_on_hand -= step.quantity


def allocate_stock(item_kind: str, item_id: int, branch_id: int, quantity: int) -> list[BatchAllocation]:
    """
    FIFO-allocate quantity units of one item at one branch.

    Does not commit; the caller owns the transaction.
    """
    plan = plan_allocation(item_kind, item_id, branch_id, quantity)
    apply_allocation(plan)
    return plan


def record_sale_allocations(sale_id: int, item_kind: str, item_id: int, plan: list[BatchAllocation]) -> None:
    for step in plan:
        db.session.add(SaleStockAllocation(
            sale_id=sale_id,
            batch_id=step.batch_id,
            product_id=item_id if item_kind == ITEM_PRODUCT else None,
            package_id=item_id if item_kind == ITEM_PACKAGE else None,
            quantity=step.quantity,
            unit_cost_cents=step.unit_cost_cents,
        ))


def _parse_entry(index: int, entry: dict) -> dict:
    if not isinstance(entry, dict):
        raise ValidationError(f"entries[{index}] must be an object")
    product_id = optional_id(f"entries[{index}].product_id", entry.get("product_id"))
    package_id = optional_id(f"entries[{index}].package_id", entry.get("package_id"))
    if (product_id is None) == (package_id is None):
        raise ValidationError(f"entries[{index}] needs exactly one of product_id or package_id")
    return {
        "product_id": product_id,
        "package_id": package_id,
        "quantity": require_positive_int(f"entries[{index}].quantity", entry.get("quantity")),
        "unit_cost_cents": require_positive_cents(f"entries[{index}].unit_cost_cents", entry.get("unit_cost_cents")),
        "intake_date": parse_optional_datetime(f"entries[{index}].intake_date", entry.get("intake_date")),
        "expiry_date": parse_optional_datetime(f"entries[{index}].expiry_date", entry.get("expiry_date")),
    }


def receive_stock(
    *,
    branch_id: int,
    user_id: int,
    entries: list[dict],
    supplier_name: str | None = None,
) -> StockDelivery:
    """
    Record a delivery: one StockDelivery and one StockBatch per entry.

    entry: {product_id | package_id, quantity, unit_cost_cents,
            intake_date?, expiry_date?}
    """
    branch_id = require_id("branch_id", branch_id)
    user_id = require_id("user_id", user_id)
    if not entries:
        raise ValidationError("entries must contain at least one item")
    parsed = [_parse_entry(i, e) for i, e in enumerate(entries)]
    supplier_name = optional_text(supplier_name)

    def _op():
        begin_write()
        if db.session.get(Branch, branch_id) is None:
            raise NotFoundError("Branch not found")

        now = utcnow()
        delivery = StockDelivery(
            branch_id=branch_id,
            received_by_user_id=user_id,
            supplier_name=supplier_name,
            total_cost_cents=0,
            received_at=now,
        )
        db.session.add(delivery)
        db.session.flush()

        total = 0
        for entry in parsed:
            if entry["product_id"] is not None and db.session.get(Product, entry["product_id"]) is None:
                raise NotFoundError(f"Product {entry['product_id']} not found")
            if entry["package_id"] is not None and db.session.get(Package, entry["package_id"]) is None:
                raise NotFoundError(f"Package {entry['package_id']} not found")

            line_cost = entry["quantity"] * entry["unit_cost_cents"]
            total += line_cost
            db.session.add(StockBatch(
                product_id=entry["product_id"],
                package_id=entry["package_id"],
                branch_id=branch_id,
                delivery_id=delivery.id,
                quantity_on_hand=entry["quantity"],
                quantity_initial=entry["quantity"],
                unit_cost_cents=entry["unit_cost_cents"],
                total_cost_cents=line_cost,
                intake_date=entry["intake_date"] or now,
                expiry_date=entry["expiry_date"],
            ))

        delivery.total_cost_cents = total
        db.session.flush()
        return delivery

    return run_atomic(_op)


def list_batches(
    branch_id: int,
    *,
    product_id: int | None = None,
    package_id: int | None = None,
    include_empty: bool = False,
) -> list[StockBatch]:
    query = db.session.query(StockBatch).filter(StockBatch.branch_id == branch_id)
    if product_id is not None:
        query = query.filter(StockBatch.product_id == product_id)
    if package_id is not None:
        query = query.filter(StockBatch.package_id == package_id)
    if not include_empty:
        query = query.filter(StockBatch.quantity_on_hand > 0)
    return query.order_by(StockBatch.intake_date.asc(), StockBatch.id.asc()).all()


def write_off_batch(batch_id: int, *, user_id: int, reason: str | None = None) -> StockWriteOff:
    """
    Remove a batch outright, leaving a StockWriteOff audit row.

    Sale allocations keep their cost snapshot but lose the batch link;
    the batch's expiry alerts go with it.
    """
    batch_id = require_id("batch_id", batch_id)
    user_id = require_id("user_id", user_id)
    reason = optional_text(reason) or DEFAULT_WRITE_OFF_REASON

    def _op():
        begin_write()
        batch = lock_for_update(db.session.query(StockBatch).filter_by(id=batch_id)).first()
        if batch is None:
            raise NotFoundError("Batch not found")

        write_off = StockWriteOff(
            product_id=batch.product_id,
            package_id=batch.package_id,
            branch_id=batch.branch_id,
            user_id=user_id,
            batch_id=batch.id,
            quantity_removed=batch.quantity_on_hand,
            unit_cost_cents=batch.unit_cost_cents,
            reason=reason,
            occurred_at=utcnow(),
        )
        db.session.add(write_off)

        db.session.query(SaleStockAllocation).filter(
            SaleStockAllocation.batch_id == batch.id
        ).update({SaleStockAllocation.batch_id: None}, synchronize_session=False)
        db.session.query(ExpiryAlert).filter(
            ExpiryAlert.batch_id == batch.id
        ).delete(synchronize_session=False)

        db.session.delete(batch)
        db.session.flush()
        return write_off

    return run_atomic(_op)


def list_write_offs(branch_id: int | None = None) -> list[StockWriteOff]:
    query = db.session.query(StockWriteOff)
    if branch_id is not None:
        query = query.filter(StockWriteOff.branch_id == branch_id)
    return query.order_by(StockWriteOff.occurred_at.desc(), StockWriteOff.id.desc()).all()
