"""
Sale orchestration tests.

Verifies:
- Totals are recomputed from frozen prices, never taken from the client
- A failure at any step leaves no sale, stock deduction or balance change
- Cash sales need an open shift; bank sales attach to one only if open
- SPECIAL prices are single-use
- Duplicate lines consolidate and package lines draw stock without pricing
"""

from datetime import datetime, timedelta, timezone

import pytest

from backoffice.errors import (
    InsufficientStock,
    NoOpenShift,
    NotFoundError,
    PriceUnavailable,
    ValidationError,
)
from backoffice.extensions import db
from backoffice.models import (
    Customer,
    Payment,
    PRICE_KIND_SPECIAL,
    Sale,
    SaleablePrice,
    SaleStockAllocation,
    StockBatch,
)
from backoffice.services import balance_service, sales_service, shift_service


def _income(branch_id):
    return balance_service.get_branch_balance(branch_id)["total_income_cents"]


def _on_hand(batch_id):
    return db.session.get(StockBatch, batch_id).quantity_on_hand


class TestCreateSale:

    def test_cash_sale_with_open_shift(self, branch, cashier, product, add_batch, add_price):
        shift = shift_service.open_shift(branch.id, cashier.id)
        batch = add_batch(10, product=product)
        price = add_price(product, 1250)

        sale = sales_service.create_sale(
            branch_id=branch.id,
            user_id=cashier.id,
            payment_method="cash",
            lines=[{"product_id": product.id, "price_id": price.id, "quantity": 3}],
        )

        assert sale.payment_method == "CASH"
        assert sale.shift_id == shift.id
        assert sale.total_amount_cents == 3750
        assert _on_hand(batch.id) == 7
        assert _income(branch.id) == 3750
        assert sale.payment.amount_cents == 3750
        assert [(l.quantity, l.unit_price_cents) for l in sale.lines] == [(3, 1250)]

    def test_client_total_is_ignored(self, branch, cashier, product, add_batch, add_price):
        shift_service.open_shift(branch.id, cashier.id)
        add_batch(5, product=product)
        price = add_price(product, 500)

        sale = sales_service.create_sale(
            branch_id=branch.id,
            user_id=cashier.id,
            payment_method="CASH",
            lines=[{"product_id": product.id, "price_id": price.id, "quantity": 2}],
            client_total_cents=1,
        )

        assert sale.total_amount_cents == 1000
        assert db.session.query(Payment).one().amount_cents == 1000

    def test_cash_sale_without_shift_rolls_back(self, branch, cashier, product, add_batch, add_price):
        batch = add_batch(5, product=product)
        price = add_price(product, 500)

        with pytest.raises(NoOpenShift):
            sales_service.create_sale(
                branch_id=branch.id,
                user_id=cashier.id,
                payment_method="CASH",
                lines=[{"product_id": product.id, "price_id": price.id, "quantity": 2}],
            )

        assert db.session.query(Sale).count() == 0
        assert _on_hand(batch.id) == 5
        assert _income(branch.id) == 0

    def test_bank_sale_without_shift_is_unlinked(self, branch, cashier, product, add_batch, add_price):
        add_batch(5, product=product)
        price = add_price(product, 700)

        sale = sales_service.create_sale(
            branch_id=branch.id,
            user_id=cashier.id,
            payment_method="CARD",
            lines=[{"product_id": product.id, "price_id": price.id, "quantity": 1}],
        )

        assert sale.shift_id is None
        assert _income(branch.id) == 700

    def test_bank_sale_attaches_open_shift(self, branch, cashier, product, add_batch, add_price):
        shift = shift_service.open_shift(branch.id, cashier.id)
        add_batch(5, product=product)
        price = add_price(product, 700)

        sale = sales_service.create_sale(
            branch_id=branch.id,
            user_id=cashier.id,
            payment_method="TRANSFER",
            lines=[{"product_id": product.id, "price_id": price.id, "quantity": 1}],
        )

        assert sale.shift_id == shift.id

    def test_insufficient_stock_rolls_back_everything(
        self, branch, cashier, product, other_product, add_batch, add_price
    ):
        shift_service.open_shift(branch.id, cashier.id)
        plenty = add_batch(10, product=product)
        add_batch(1, product=other_product)
        price = add_price(product, 100)
        special = add_price(other_product, 50, kind=PRICE_KIND_SPECIAL)
        special_id = special.id

        with pytest.raises(InsufficientStock):
            sales_service.create_sale(
                branch_id=branch.id,
                user_id=cashier.id,
                payment_method="CASH",
                lines=[
                    {"product_id": product.id, "price_id": price.id, "quantity": 4},
                    {"product_id": other_product.id, "price_id": special_id, "quantity": 2},
                ],
            )

        assert _on_hand(plenty.id) == 10
        assert db.session.get(SaleablePrice, special_id) is not None
        assert db.session.query(Sale).count() == 0
        assert _income(branch.id) == 0

    def test_price_of_other_product_rejected(self, branch, cashier, product, other_product, add_batch, add_price):
        add_batch(5, product=product)
        foreign = add_price(other_product, 100)

        with pytest.raises(PriceUnavailable):
            sales_service.create_sale(
                branch_id=branch.id,
                user_id=cashier.id,
                payment_method="CARD",
                lines=[{"product_id": product.id, "price_id": foreign.id, "quantity": 1}],
            )

    def test_empty_lines_rejected(self, branch, cashier):
        with pytest.raises(ValidationError):
            sales_service.create_sale(branch_id=branch.id, user_id=cashier.id, payment_method="CASH", lines=[])

    def test_unknown_payment_method_rejected(self, branch, cashier, product):
        with pytest.raises(ValidationError):
            sales_service.create_sale(
                branch_id=branch.id,
                user_id=cashier.id,
                payment_method="BARTER",
                lines=[{"product_id": product.id, "price_id": 1, "quantity": 1}],
            )


class TestSpecialPrices:

    def test_special_price_consumed_by_sale(self, branch, cashier, product, add_batch, add_price):
        add_batch(5, product=product)
        special = add_price(product, 90, kind=PRICE_KIND_SPECIAL)
        special_id = special.id

        sale = sales_service.create_sale(
            branch_id=branch.id,
            user_id=cashier.id,
            payment_method="CARD",
            lines=[{"product_id": product.id, "price_id": special_id, "quantity": 1}],
        )

        assert sale.lines[0].price_kind == PRICE_KIND_SPECIAL
        assert sale.lines[0].price_id == special_id
        assert db.session.get(SaleablePrice, special_id) is None

        with pytest.raises(PriceUnavailable):
            sales_service.create_sale(
                branch_id=branch.id,
                user_id=cashier.id,
                payment_method="CARD",
                lines=[{"product_id": product.id, "price_id": special_id, "quantity": 1}],
            )
        assert db.session.query(Sale).count() == 1

    def test_standard_price_reusable(self, branch, cashier, product, add_batch, add_price):
        add_batch(5, product=product)
        price = add_price(product, 100)

        for _ in range(2):
            sales_service.create_sale(
                branch_id=branch.id,
                user_id=cashier.id,
                payment_method="CARD",
                lines=[{"product_id": product.id, "price_id": price.id, "quantity": 1}],
            )

        assert db.session.query(Sale).count() == 2
        assert db.session.get(SaleablePrice, price.id) is not None


class TestLinesAndPackages:

    def test_duplicate_lines_consolidate(self, branch, cashier, product, add_batch, add_price):
        batch = add_batch(10, product=product)
        price = add_price(product, 200)

        sale = sales_service.create_sale(
            branch_id=branch.id,
            user_id=cashier.id,
            payment_method="CARD",
            lines=[
                {"product_id": product.id, "price_id": price.id, "quantity": 2},
                {"product_id": product.id, "price_id": price.id, "quantity": 3},
            ],
        )

        assert len(sale.lines) == 1
        assert sale.lines[0].quantity == 5
        assert sale.total_amount_cents == 1000
        assert _on_hand(batch.id) == 5

    def test_two_prices_same_product_allocate_once(self, branch, cashier, product, add_batch, add_price):
        old = add_batch(2, product=product, days_ago=2)
        new = add_batch(5, product=product, days_ago=1)
        standard = add_price(product, 200)
        special = add_price(product, 150, kind=PRICE_KIND_SPECIAL)

        sale = sales_service.create_sale(
            branch_id=branch.id,
            user_id=cashier.id,
            payment_method="CARD",
            lines=[
                {"product_id": product.id, "price_id": standard.id, "quantity": 2},
                {"product_id": product.id, "price_id": special.id, "quantity": 1},
            ],
        )

        assert sale.total_amount_cents == 550
        assert _on_hand(old.id) == 0
        assert _on_hand(new.id) == 4
        allocations = db.session.query(SaleStockAllocation).filter_by(sale_id=sale.id).all()
        assert sorted((a.batch_id, a.quantity) for a in allocations) == sorted([(old.id, 2), (new.id, 1)])

    def test_package_lines_draw_stock_without_price(
        self, branch, cashier, product, package, add_batch, add_price
    ):
        add_batch(5, product=product)
        bags = add_batch(3, package=package)
        price = add_price(product, 100)

        sale = sales_service.create_sale(
            branch_id=branch.id,
            user_id=cashier.id,
            payment_method="CARD",
            lines=[{"product_id": product.id, "price_id": price.id, "quantity": 1}],
            package_lines=[{"package_id": package.id, "quantity": 2}],
        )

        assert sale.total_amount_cents == 100
        assert _on_hand(bags.id) == 1
        package_allocations = sale.to_dict()["package_allocations"]
        assert [(a["package_id"], a["quantity"]) for a in package_allocations] == [(package.id, 2)]

    def test_package_shortage_rolls_back(self, branch, cashier, product, package, add_batch, add_price):
        batch = add_batch(5, product=product)
        price = add_price(product, 100)

        with pytest.raises(InsufficientStock):
            sales_service.create_sale(
                branch_id=branch.id,
                user_id=cashier.id,
                payment_method="CARD",
                lines=[{"product_id": product.id, "price_id": price.id, "quantity": 1}],
                package_lines=[{"package_id": package.id, "quantity": 1}],
            )

        assert _on_hand(batch.id) == 5


class TestCustomer:

    def test_new_customer_registered(self, branch, cashier, product, add_batch, add_price):
        add_batch(5, product=product)
        price = add_price(product, 100)

        sale = sales_service.create_sale(
            branch_id=branch.id,
            user_id=cashier.id,
            payment_method="CARD",
            lines=[{"product_id": product.id, "price_id": price.id, "quantity": 1}],
            customer={"name": "Ana Lopez", "phone": "5555-1234"},
        )

        customer = db.session.get(Customer, sale.customer_id)
        assert customer.name == "Ana Lopez"
        assert customer.phone == "5555-1234"

    def test_customer_without_phone_is_anonymous(self, branch, cashier, product, add_batch, add_price):
        add_batch(5, product=product)
        price = add_price(product, 100)

        sale = sales_service.create_sale(
            branch_id=branch.id,
            user_id=cashier.id,
            payment_method="CARD",
            lines=[{"product_id": product.id, "price_id": price.id, "quantity": 1}],
            customer={"name": "Walk-in"},
        )

        assert sale.customer_id is None
        assert db.session.query(Customer).count() == 0

    def test_unknown_customer_id(self, branch, cashier, product, add_batch, add_price):
        add_batch(5, product=product)
        price = add_price(product, 100)

        with pytest.raises(NotFoundError):
            sales_service.create_sale(
                branch_id=branch.id,
                user_id=cashier.id,
                payment_method="CARD",
                lines=[{"product_id": product.id, "price_id": price.id, "quantity": 1}],
                customer_id=999,
            )


class TestListing:

    def _seed(self, branch, user, count, start):
        for i in range(count):
            db.session.add(Sale(
                branch_id=branch.id,
                user_id=user.id,
                total_amount_cents=100 * (i + 1),
                payment_method="CARD",
                occurred_at=start + timedelta(days=i),
            ))
        db.session.commit()

    def test_pagination(self, branch, cashier):
        self._seed(branch, cashier, 5, datetime(2026, 3, 1, 12, tzinfo=timezone.utc))

        first = sales_service.list_branch_sales(branch.id, page=1, page_size=2)
        last = sales_service.list_branch_sales(branch.id, page=3, page_size=2)

        assert first["pagination"]["total"] == 5
        assert first["pagination"]["total_pages"] == 3
        assert first["pagination"]["has_next"] is True
        assert first["pagination"]["has_prev"] is False
        assert [s["total_amount_cents"] for s in first["items"]] == [500, 400]
        assert last["count"] == 1
        assert last["pagination"]["has_next"] is False

    def test_date_range_is_inclusive(self, branch, cashier):
        self._seed(branch, cashier, 5, datetime(2026, 3, 1, 12, tzinfo=timezone.utc))

        result = sales_service.list_branch_sales(branch.id, date_from="2026-03-02", date_to="2026-03-03")

        assert sorted(s["total_amount_cents"] for s in result["items"]) == [200, 300]

    def test_other_branch_excluded(self, branch, other_branch, cashier):
        self._seed(other_branch, cashier, 2, datetime(2026, 3, 1, 12, tzinfo=timezone.utc))

        result = sales_service.list_branch_sales(branch.id)

        assert result["items"] == []
        assert result["pagination"]["total_pages"] == 1
