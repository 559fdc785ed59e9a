# Overview: Sale orchestration; one atomic unit across prices, stock, shift and balance.

"""
create_sale runs as a single transaction, in this order:

 1. resolve or create the customer (optional)
 2. fetch each line's SaleablePrice (PriceUnavailable if gone/used/foreign)
 3. consolidate duplicate lines per (product_id, price_id)
 4. FIFO-allocate stock once per distinct product and once per package
 5. require the user's open shift (cash-equivalent) or attach it if one
    happens to be open (bank-equivalent)
 6. compute the total from the frozen prices; a client-submitted total is
    only compared and logged
 7. persist the sale, its lines and its stock allocations
 8. apply branch balance income
 9. delete every SPECIAL price the sale used
10. create the payment

Any failure rolls the whole unit back: no partial sale, stock deduction,
balance change or price consumption is ever visible.
"""

from __future__ import annotations

from collections import OrderedDict
from datetime import date

from flask import current_app

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Branch, Customer, Payment, Sale, SaleLine, User
from ..time_utils import local_day_bounds_utc, utcnow
from ..validation import (
    optional_id,
    optional_text,
    parse_optional_datetime,
    parse_payment_method,
    require_id,
    require_non_negative_cents,
    require_positive_int,
)
from . import balance_service, price_service, shift_service, stock_service
from .concurrency import begin_write, run_atomic


DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 200


def _parse_lines(lines) -> "OrderedDict[tuple[int, int], int]":
    if not isinstance(lines, list) or not lines:
        raise ValidationError("lines must contain at least one product line")
    consolidated: "OrderedDict[tuple[int, int], int]" = OrderedDict()
    for i, line in enumerate(lines):
        if not isinstance(line, dict):
            raise ValidationError(f"lines[{i}] must be an object")
        product_id = require_id(f"lines[{i}].product_id", line.get("product_id"))
        price_id = require_id(f"lines[{i}].price_id", line.get("price_id"))
        quantity = require_positive_int(f"lines[{i}].quantity", line.get("quantity"))
        key = (product_id, price_id)
        consolidated[key] = consolidated.get(key, 0) + quantity
    return consolidated


def _parse_package_lines(package_lines) -> "OrderedDict[int, int]":
    if package_lines is None:
        return OrderedDict()
    if not isinstance(package_lines, list):
        raise ValidationError("package_lines must be a list")
    consolidated: "OrderedDict[int, int]" = OrderedDict()
    for i, line in enumerate(package_lines):
        if not isinstance(line, dict):
            raise ValidationError(f"package_lines[{i}] must be an object")
        package_id = require_id(f"package_lines[{i}].package_id", line.get("package_id"))
        quantity = require_positive_int(f"package_lines[{i}].quantity", line.get("quantity"))
        consolidated[package_id] = consolidated.get(package_id, 0) + quantity
    return consolidated


def _parse_new_customer(customer) -> dict | None:
    if not customer:
        return None
    if not isinstance(customer, dict):
        raise ValidationError("customer must be an object")
    name = optional_text(customer.get("name"))
    phone = optional_text(customer.get("phone"), max_length=32)
    if not (name and phone):
        # Both are needed to register a new customer; otherwise the sale is anonymous
        return None
    return {
        "name": name,
        "phone": phone,
        "document_id": optional_text(customer.get("document_id"), max_length=64),
        "address": optional_text(customer.get("address")),
    }


def _resolve_customer(customer_id: int | None, new_customer: dict | None) -> int | None:
    if customer_id is not None:
        if db.session.get(Customer, customer_id) is None:
            raise NotFoundError("Customer not found")
        return customer_id
    if new_customer is not None:
        customer = Customer(**new_customer)
        db.session.add(customer)
        db.session.flush()
        return customer.id
    return None


def create_sale(
    *,
    branch_id: int,
    user_id: int,
    payment_method: str,
    lines: list[dict],
    package_lines: list[dict] | None = None,
    customer_id: int | None = None,
    customer: dict | None = None,
    client_total_cents: int | None = None,
    occurred_at=None,
) -> Sale:
    """
    Record a completed sale atomically.

    lines:          [{product_id, price_id, quantity}]
    package_lines:  [{package_id, quantity}]  (stock only, no price)
    customer:       {name, phone, document_id?, address?} for a new customer

    Raises:
        ValidationError: malformed input (before any transaction opens)
        PriceUnavailable, InsufficientStock, NoOpenShift: the sale is rolled back
    """
    branch_id = require_id("branch_id", branch_id)
    user_id = require_id("user_id", user_id)
    method = parse_payment_method(payment_method, set(current_app.config["PAYMENT_METHODS"]))
    product_lines = _parse_lines(lines)
    packages = _parse_package_lines(package_lines)
    customer_id = optional_id("customer_id", customer_id)
    new_customer = _parse_new_customer(customer)
    if client_total_cents is not None:
        client_total_cents = require_non_negative_cents("client_total_cents", client_total_cents)
    occurred_at = parse_optional_datetime("occurred_at", occurred_at)
    shift_optional = method in set(current_app.config["BANK_PAYMENT_METHODS"])

    def _op():
        begin_write()
        if db.session.get(Branch, branch_id) is None:
            raise NotFoundError("Branch not found")
        if db.session.get(User, user_id) is None:
            raise NotFoundError("User not found")

        resolved_customer_id = _resolve_customer(customer_id, new_customer)

        priced = []
        for (product_id, price_id), quantity in product_lines.items():
            price = price_service.resolve_price(price_id, product_id)
            priced.append((price, quantity))

        product_totals: "OrderedDict[int, int]" = OrderedDict()
        for price, quantity in priced:
            product_totals[price.product_id] = product_totals.get(price.product_id, 0) + quantity

        allocations = []
        for product_id, quantity in product_totals.items():
            plan = stock_service.allocate_stock(stock_service.ITEM_PRODUCT, product_id, branch_id, quantity)
            allocations.append((stock_service.ITEM_PRODUCT, product_id, plan))
        for package_id, quantity in packages.items():
            plan = stock_service.allocate_stock(stock_service.ITEM_PACKAGE, package_id, branch_id, quantity)
            allocations.append((stock_service.ITEM_PACKAGE, package_id, plan))

        if shift_optional:
            shift = shift_service.find_open_shift(branch_id, user_id)
        else:
            shift = shift_service.require_open_shift(branch_id, user_id, lock=True)

        total = sum(price.amount_cents * quantity for price, quantity in priced)
        if client_total_cents is not None and client_total_cents != total:
            current_app.logger.warning(
                "Client total %s differs from computed total %s (branch %s, user %s); using computed",
                client_total_cents, total, branch_id, user_id,
            )

        now = utcnow()
        sale = Sale(
            branch_id=branch_id,
            user_id=user_id,
            shift_id=shift.id if shift else None,
            customer_id=resolved_customer_id,
            total_amount_cents=total,
            payment_method=method,
            occurred_at=occurred_at or now,
        )
        db.session.add(sale)
        db.session.flush()

        for price, quantity in priced:
            db.session.add(SaleLine(
                sale_id=sale.id,
                product_id=price.product_id,
                price_id=price.id,
                quantity=quantity,
                unit_price_cents=price.amount_cents,
                line_total_cents=price.amount_cents * quantity,
                price_kind=price.kind,
            ))
        for item_kind, item_id, plan in allocations:
            stock_service.record_sale_allocations(sale.id, item_kind, item_id, plan)

        balance_service.apply_income(branch_id, total)
        price_service.consume_prices([price for price, _ in priced])

        db.session.add(Payment(
            sale_id=sale.id,
            payment_method=method,
            amount_cents=total,
            created_at=now,
        ))
        db.session.flush()
        return sale

    sale = run_atomic(_op)
    current_app.logger.info(
        "Sale %s recorded: branch %s, user %s, %s %s, shift %s",
        sale.id, sale.branch_id, sale.user_id, sale.payment_method, sale.total_amount_cents, sale.shift_id,
    )
    return sale


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale not found")
    return sale


def _parse_day(name: str, value) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f"{name} must be a YYYY-MM-DD date")


def list_branch_sales(
    branch_id: int,
    *,
    page: int | None = 1,
    page_size: int | None = None,
    date_from=None,
    date_to=None,
) -> dict:
    """
    Page through a branch's sales, newest first.

    date_from / date_to are business-calendar days; date_to includes its
    whole day.
    """
    page = max(int(page or 1), 1)
    page_size = max(1, min(MAX_PAGE_SIZE, int(page_size or DEFAULT_PAGE_SIZE)))
    tz_name = current_app.config["BUSINESS_TIMEZONE"]

    query = db.session.query(Sale).filter(Sale.branch_id == branch_id)
    day_from = _parse_day("date_from", date_from)
    day_to = _parse_day("date_to", date_to)
    if day_from is not None:
        start, _ = local_day_bounds_utc(day_from, tz_name)
        query = query.filter(Sale.occurred_at >= start)
    if day_to is not None:
        _, end = local_day_bounds_utc(day_to, tz_name)
        query = query.filter(Sale.occurred_at <= end)

    total = query.count()
    total_pages = (total + page_size - 1) // page_size if total > 0 else 1
    sales = (
        query.order_by(Sale.occurred_at.desc(), Sale.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return {
        "items": [s.to_dict(include_lines=False) for s in sales],
        "count": len(sales),
        "pagination": {
            "page": page,
            "page_size": page_size,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
