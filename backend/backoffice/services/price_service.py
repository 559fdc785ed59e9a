# Overview: Saleable prices and the one-time special-price authorization workflow.

"""
Price authorization workflow:

- request: creates a PENDING PriceAuthorization and notifies every active admin.
- approve: in one transaction, computes the product's next order_rank,
  creates a SPECIAL SaleablePrice and deletes the authorization; then
  notifies the requester.
- reject: deletes the authorization and notifies the requester.

SaleablePrice.order_rank is MAX(order_rank) + 1 per product, computed in the
inserting transaction (the product row is locked first). Ranks start at 1
and are never reused.

SPECIAL prices are single-use: the sale that consumes one deletes the row in
its own transaction, so a second sale referencing it finds nothing.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..errors import AuthorizationNotPending, NotFoundError, PriceUnavailable
from ..extensions import db
from ..models import (
    PRICE_KIND_SPECIAL,
    PRICE_KIND_STANDARD,
    PriceAuthorization,
    Product,
    SaleablePrice,
    User,
)
from ..notifications import CATEGORY_PRICE_REQUEST, notify_safely
from ..time_utils import utcnow
from ..validation import require_id, require_positive_cents
from .concurrency import begin_write, lock_for_update, run_atomic


STATUS_PENDING = "PENDING"
STATUS_APPROVED = "APPROVED"


def format_cents(amount_cents: int) -> str:
    return f"{amount_cents / 100:.2f}"


def _admin_user_ids() -> list[int]:
    rows = db.session.query(User.id).filter(User.role == "ADMIN", User.is_active.is_(True)).all()
    return [r.id for r in rows]


def _lock_product(product_id: int) -> Product:
    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if product is None:
        raise NotFoundError("Product not found")
    return product


def next_order_rank(product: Product) -> int:
    """
    MAX(order_rank) + 1 for the product; 1 when it has no prices.

    Ranks freed by consumed SPECIAL prices are skipped: the product keeps the
    highest rank it ever handed out. Call with the product row locked.
    """
    current = (
        db.session.query(func.max(SaleablePrice.order_rank))
        .filter(SaleablePrice.product_id == product.id)
        .scalar()
    )
    rank = max(int(current or 0), product.last_price_rank or 0) + 1
    product.last_price_rank = rank
    return rank


def add_standard_price(product_id: int, amount_cents: int, created_by_user_id: int | None = None) -> SaleablePrice:
    product_id = require_id("product_id", product_id)
    amount_cents = require_positive_cents("amount_cents", amount_cents)

    def _op():
        begin_write()
        product = _lock_product(product_id)
        price = SaleablePrice(
            product_id=product_id,
            amount_cents=amount_cents,
            kind=PRICE_KIND_STANDARD,
            order_rank=next_order_rank(product),
            used=False,
            created_by_user_id=created_by_user_id,
        )
        db.session.add(price)
        db.session.flush()
        return price

    return run_atomic(_op)


def list_product_prices(product_id: int) -> list[SaleablePrice]:
    return (
        db.session.query(SaleablePrice)
        .filter(SaleablePrice.product_id == product_id)
        .order_by(SaleablePrice.order_rank.asc())
        .all()
    )


def list_pending_requests() -> list[PriceAuthorization]:
    return (
        db.session.query(PriceAuthorization)
        .filter(PriceAuthorization.status == STATUS_PENDING)
        .order_by(PriceAuthorization.requested_at.asc(), PriceAuthorization.id.asc())
        .all()
    )


def request_special_price(product_id: int, requested_by_user_id: int, amount_cents: int) -> PriceAuthorization:
    product_id = require_id("product_id", product_id)
    requested_by_user_id = require_id("requested_by_user_id", requested_by_user_id)
    amount_cents = require_positive_cents("amount_cents", amount_cents)

    def _op():
        begin_write()
        product = db.session.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product not found")
        if db.session.get(User, requested_by_user_id) is None:
            raise NotFoundError("User not found")

        authorization = PriceAuthorization(
            product_id=product_id,
            requested_price_cents=amount_cents,
            requested_by_user_id=requested_by_user_id,
            status=STATUS_PENDING,
            requested_at=utcnow(),
        )
        db.session.add(authorization)
        db.session.flush()
        return authorization, product.name, _admin_user_ids()

    authorization, product_name, admin_ids = run_atomic(_op)

    notify_safely(
        f"Special price of {format_cents(amount_cents)} requested for {product_name}",
        to_user_ids=admin_ids,
        category=CATEGORY_PRICE_REQUEST,
        from_user_id=requested_by_user_id,
        reference_id=authorization.id,
    )
    return authorization


def _pending_authorization(authorization_id: int) -> PriceAuthorization:
    authorization = lock_for_update(
        db.session.query(PriceAuthorization).filter_by(id=authorization_id)
    ).first()
    if authorization is None or authorization.status != STATUS_PENDING:
        raise AuthorizationNotPending(f"Price request {authorization_id} is not pending")
    return authorization


def approve_price_request(authorization_id: int, approved_by_user_id: int) -> SaleablePrice:
    """
    Turn a pending request into a single-use SPECIAL price.

    Rank computation, price insert and authorization delete share one
    transaction.
    """
    authorization_id = require_id("authorization_id", authorization_id)
    approved_by_user_id = require_id("approved_by_user_id", approved_by_user_id)

    def _op():
        begin_write()
        authorization = _pending_authorization(authorization_id)
        product = _lock_product(authorization.product_id)

        authorization.status = STATUS_APPROVED
        authorization.approved_by_user_id = approved_by_user_id
        authorization.responded_at = utcnow()

        price = SaleablePrice(
            product_id=product.id,
            amount_cents=authorization.requested_price_cents,
            kind=PRICE_KIND_SPECIAL,
            order_rank=next_order_rank(product),
            used=False,
            authorization_id=authorization.id,
            created_by_user_id=approved_by_user_id,
        )
        db.session.add(price)
        requester_id = authorization.requested_by_user_id
        db.session.delete(authorization)
        db.session.flush()
        return price, product.name, requester_id

    price, product_name, requester_id = run_atomic(_op)

    current_app.logger.info(
        "Special price %s approved for product %s (rank %s)",
        price.id, price.product_id, price.order_rank,
    )
    notify_safely(
        f"Your special price of {format_cents(price.amount_cents)} for {product_name} was approved",
        to_user_ids=[requester_id],
        category=CATEGORY_PRICE_REQUEST,
        from_user_id=approved_by_user_id,
        reference_id=price.id,
    )
    return price


def reject_price_request(authorization_id: int, rejected_by_user_id: int) -> dict:
    authorization_id = require_id("authorization_id", authorization_id)
    rejected_by_user_id = require_id("rejected_by_user_id", rejected_by_user_id)

    def _op():
        begin_write()
        authorization = _pending_authorization(authorization_id)
        snapshot = authorization.to_dict()
        product = db.session.get(Product, authorization.product_id)
        db.session.delete(authorization)
        db.session.flush()
        return snapshot, product.name if product else f"product {snapshot['product_id']}"

    snapshot, product_name = run_atomic(_op)

    notify_safely(
        f"Your special price of {format_cents(snapshot['requested_price_cents'])} for {product_name} was rejected",
        to_user_ids=[snapshot["requested_by_user_id"]],
        category=CATEGORY_PRICE_REQUEST,
        from_user_id=rejected_by_user_id,
        reference_id=authorization_id,
    )
    return snapshot


def resolve_price(price_id: int, product_id: int) -> SaleablePrice:
    """
    Fetch a price usable for a sale line of product_id.

    Raises PriceUnavailable if it is gone, already used or belongs to
    another product.
    """
    price = lock_for_update(db.session.query(SaleablePrice).filter_by(id=price_id)).first()
    if price is None or price.used:
        raise PriceUnavailable(f"Price {price_id} is no longer available", details={"price_id": price_id})
    if price.product_id != product_id:
        raise PriceUnavailable(
            f"Price {price_id} does not belong to product {product_id}",
            details={"price_id": price_id, "product_id": product_id},
        )
    return price


def consume_prices(prices: list[SaleablePrice]) -> int:
    """
    Consume the prices a sale used. STANDARD prices are left untouched;
    each SPECIAL price is deleted with a conditional delete. Runs inside
    the sale transaction.
    """
    consumed = 0
    for price in {p.id: p for p in prices}.values():
        if not price.is_special:
            continue
        deleted = (
            db.session.query(SaleablePrice)
            .filter(
                SaleablePrice.id == price.id,
                SaleablePrice.kind == PRICE_KIND_SPECIAL,
                SaleablePrice.used.is_(False),
            )
            .delete(synchronize_session=False)
        )
        if deleted != 1:
            raise PriceUnavailable(f"Price {price.id} is no longer available", details={"price_id": price.id})
        db.session.expunge(price)
        consumed += 1
    return consumed
