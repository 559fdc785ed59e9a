from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Customer(db.Model):
    """Optional buyer reference attached to a sale."""
    __tablename__ = "customers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True, index=True)
    document_id = db.Column(db.String(64), nullable=True)
    address = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "document_id": self.document_id,
            "address": self.address,
            "created_at": to_utc_z(self.created_at),
        }


class Sale(db.Model):
    """
    Completed sale.

    total_amount_cents is always computed server-side from the lines.
    shift_id is mandatory for cash-equivalent payment methods and may be
    NULL for bank-equivalent ones.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_branch_occurred", "branch_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("cash_register_shifts.id"), nullable=True, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    total_amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(16), nullable=False)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)

    shift = db.relationship("CashRegisterShift", backref=db.backref("sales", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "branch_id": self.branch_id,
            "user_id": self.user_id,
            "shift_id": self.shift_id,
            "customer_id": self.customer_id,
            "total_amount_cents": self.total_amount_cents,
            "payment_method": self.payment_method,
            "occurred_at": to_utc_z(self.occurred_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
            data["package_allocations"] = [
                a.to_dict() for a in self.allocations if a.package_id is not None
            ]
        return data


class SaleLine(db.Model):
    """Priced product line. unit_price_cents is frozen at sale time."""
    __tablename__ = "sale_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    price_id = db.Column(db.Integer, nullable=True)  # plain reference, SPECIAL prices are deleted

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)
    price_kind = db.Column(db.String(16), nullable=False)

    sale = db.relationship("Sale", backref=db.backref("lines", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "price_id": self.price_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "price_kind": self.price_kind,
        }


class SaleStockAllocation(db.Model):
    """
    Which batch supplied how many units to a sale.

    batch_id becomes NULL if the batch is later written off; the unit cost
    snapshot keeps costing history intact.
    """
    __tablename__ = "sale_stock_allocations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    batch_id = db.Column(db.Integer, db.ForeignKey("stock_batches.id"), nullable=True, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    package_id = db.Column(db.Integer, db.ForeignKey("packages.id"), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship("Sale", backref=db.backref("allocations", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "batch_id": self.batch_id,
            "product_id": self.product_id,
            "package_id": self.package_id,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
        }


class Payment(db.Model):
    """Payment bound to a sale; amount always equals the computed total."""
    __tablename__ = "payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    payment_method = db.Column(db.String(16), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    sale = db.relationship("Sale", backref=db.backref("payment", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "payment_method": self.payment_method,
            "amount_cents": self.amount_cents,
            "created_at": to_utc_z(self.created_at),
        }
