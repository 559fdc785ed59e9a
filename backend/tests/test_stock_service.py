"""
Stock ledger tests.

Verifies:
- FIFO allocation drains the oldest batch first
- Over-allocation raises InsufficientStock and mutates nothing
- Drained batches remain as records
- Intake creates one batch per entry
- Write-off records an audit row and deletes the batch
"""

from datetime import timedelta

import pytest

from backoffice.errors import InsufficientStock, NotFoundError, ValidationError
from backoffice.extensions import db
from backoffice.models import ExpiryAlert, SaleStockAllocation, StockBatch, StockWriteOff
from backoffice.services import sales_service, stock_service
from backoffice.services.stock_service import ITEM_PACKAGE, ITEM_PRODUCT
from backoffice.time_utils import utcnow


def _on_hand(batch_id):
    return db.session.get(StockBatch, batch_id).quantity_on_hand


class TestFifoAllocation:

    def test_oldest_batch_drained_first(self, branch, product, add_batch):
        old = add_batch(5, product=product, days_ago=3)
        new = add_batch(5, product=product, days_ago=1)

        plan = stock_service.allocate_stock(ITEM_PRODUCT, product.id, branch.id, 7)
        db.session.commit()

        assert [(s.batch_id, s.quantity) for s in plan] == [(old.id, 5), (new.id, 2)]
        assert _on_hand(old.id) == 0
        assert _on_hand(new.id) == 3

    def test_intake_order_wins_over_insert_order(self, branch, product, add_batch):
        newer = add_batch(4, product=product, days_ago=1)
        older = add_batch(4, product=product, days_ago=10)

        plan = stock_service.allocate_stock(ITEM_PRODUCT, product.id, branch.id, 2)

        assert plan[0].batch_id == older.id
        assert _on_hand(newer.id) == 4

    def test_total_decreases_by_allocated_quantity(self, branch, product, add_batch):
        add_batch(3, product=product, days_ago=5)
        add_batch(8, product=product, days_ago=2)
        add_batch(2, product=product, days_ago=0)
        before = stock_service.get_available_quantity(ITEM_PRODUCT, product.id, branch.id)

        stock_service.allocate_stock(ITEM_PRODUCT, product.id, branch.id, 6)
        stock_service.allocate_stock(ITEM_PRODUCT, product.id, branch.id, 4)
        db.session.commit()

        assert stock_service.get_available_quantity(ITEM_PRODUCT, product.id, branch.id) == before - 10

    def test_drained_batch_is_kept(self, branch, product, add_batch):
        batch = add_batch(2, product=product)

        stock_service.allocate_stock(ITEM_PRODUCT, product.id, branch.id, 2)
        db.session.commit()

        kept = db.session.get(StockBatch, batch.id)
        assert kept is not None
        assert kept.quantity_on_hand == 0
        assert kept.quantity_initial == 2

    def test_insufficient_stock_leaves_batches_untouched(self, branch, product, add_batch):
        a = add_batch(3, product=product, days_ago=2)
        b = add_batch(2, product=product, days_ago=1)

        with pytest.raises(InsufficientStock) as exc:
            stock_service.allocate_stock(ITEM_PRODUCT, product.id, branch.id, 6)
        db.session.rollback()

        assert exc.value.details["requested"] == 6
        assert exc.value.details["available"] == 5
        assert _on_hand(a.id) == 3
        assert _on_hand(b.id) == 2

    def test_other_branch_stock_is_ignored(self, branch, other_branch, product, add_batch):
        add_batch(10, product=product, branch_id=other_branch.id)
        add_batch(1, product=product)

        with pytest.raises(InsufficientStock):
            stock_service.plan_allocation(ITEM_PRODUCT, product.id, branch.id, 2)

    def test_products_and_packages_are_separate_items(self, branch, product, package, add_batch):
        add_batch(5, package=package)

        with pytest.raises(InsufficientStock):
            stock_service.plan_allocation(ITEM_PRODUCT, product.id, branch.id, 1)
        plan = stock_service.plan_allocation(ITEM_PACKAGE, package.id, branch.id, 5)
        assert sum(s.quantity for s in plan) == 5

    def test_non_positive_quantity_rejected(self, branch, product):
        with pytest.raises(ValidationError):
            stock_service.plan_allocation(ITEM_PRODUCT, product.id, branch.id, 0)


class TestReceiveStock:

    def test_creates_delivery_and_batches(self, branch, admin, product, package):
        expiry = (utcnow() + timedelta(days=30)).isoformat() + "Z"
        delivery = stock_service.receive_stock(
            branch_id=branch.id,
            user_id=admin.id,
            supplier_name="Distribuidora",
            entries=[
                {"product_id": product.id, "quantity": 10, "unit_cost_cents": 450, "expiry_date": expiry},
                {"package_id": package.id, "quantity": 100, "unit_cost_cents": 15},
            ],
        )

        data = delivery.to_dict()
        assert data["total_cost_cents"] == 10 * 450 + 100 * 15
        assert len(data["batches"]) == 2
        product_batch = next(b for b in data["batches"] if b["product_id"] == product.id)
        assert product_batch["quantity_on_hand"] == 10
        assert product_batch["quantity_initial"] == 10
        assert product_batch["expiry_date"] is not None

    def test_entry_needs_exactly_one_item(self, branch, admin, product, package):
        with pytest.raises(ValidationError):
            stock_service.receive_stock(
                branch_id=branch.id,
                user_id=admin.id,
                entries=[{"product_id": product.id, "package_id": package.id, "quantity": 1, "unit_cost_cents": 1}],
            )

    def test_unknown_product_rolls_back_delivery(self, branch, admin, product):
        with pytest.raises(NotFoundError):
            stock_service.receive_stock(
                branch_id=branch.id,
                user_id=admin.id,
                entries=[
                    {"product_id": product.id, "quantity": 1, "unit_cost_cents": 100},
                    {"product_id": 9999, "quantity": 1, "unit_cost_cents": 100},
                ],
            )
        assert db.session.query(StockBatch).count() == 0


class TestWriteOff:

    def test_write_off_records_audit_and_deletes_batch(self, branch, admin, product, add_batch):
        batch = add_batch(7, product=product, unit_cost_cents=300)
        batch_id = batch.id

        write_off = stock_service.write_off_batch(batch_id, user_id=admin.id, reason="Damaged")

        assert db.session.get(StockBatch, batch_id) is None
        assert write_off.quantity_removed == 7
        assert write_off.unit_cost_cents == 300
        assert write_off.reason == "Damaged"
        assert [w.id for w in stock_service.list_write_offs(branch.id)] == [write_off.id]

    def test_write_off_after_sale_keeps_costing_history(self, branch, admin, cashier, product, add_batch, add_price):
        batch = add_batch(5, product=product, unit_cost_cents=300)
        batch_id = batch.id
        price = add_price(product, 900)
        sale = sales_service.create_sale(
            branch_id=branch.id,
            user_id=cashier.id,
            payment_method="CARD",
            lines=[{"product_id": product.id, "price_id": price.id, "quantity": 2}],
        )
        sale_id = sale.id

        write_off = stock_service.write_off_batch(batch_id, user_id=admin.id)

        assert write_off.quantity_removed == 3
        allocation = db.session.query(SaleStockAllocation).filter_by(sale_id=sale_id).one()
        assert allocation.batch_id is None
        assert allocation.quantity == 2
        assert allocation.unit_cost_cents == 300
        assert allocation.product_id == product.id

    def test_default_reason(self, admin, product, add_batch):
        batch = add_batch(1, product=product)
        write_off = stock_service.write_off_batch(batch.id, user_id=admin.id)
        assert write_off.reason == stock_service.DEFAULT_WRITE_OFF_REASON

    def test_write_off_removes_expiry_alerts(self, admin, product, add_batch):
        batch = add_batch(1, product=product, expiry_date=utcnow() + timedelta(days=2))
        db.session.add(ExpiryAlert(
            batch_id=batch.id,
            expiry_date=batch.expiry_date,
            description="expiring",
            status="PENDING",
            created_at=utcnow(),
        ))
        db.session.commit()

        stock_service.write_off_batch(batch.id, user_id=admin.id)

        assert db.session.query(ExpiryAlert).count() == 0
        assert db.session.query(StockWriteOff).count() == 1

    def test_missing_batch(self, admin):
        with pytest.raises(NotFoundError):
            stock_service.write_off_batch(12345, user_id=admin.id)
