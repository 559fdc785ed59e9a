from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """Sellable product. Prices live in SaleablePrice, stock in StockBatch."""
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_products_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Highest order_rank ever assigned to this product's prices; survives
    # deletion of consumed SPECIAL prices so ranks are never reused
    last_price_rank = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Product id={self.id} code={self.code!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Package(db.Model):
    """
    Packaging item (bags, boxes) consumed alongside products.

    Packages are stocked in batches like products but carry no sale price.
    """
    __tablename__ = "packages"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_packages_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }


class StockDelivery(db.Model):
    """Intake document; one delivery creates one batch per entry."""
    __tablename__ = "stock_deliveries"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    received_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    supplier_name = db.Column(db.String(255), nullable=True)
    total_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    received_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "received_by_user_id": self.received_by_user_id,
            "supplier_name": self.supplier_name,
            "total_cost_cents": self.total_cost_cents,
            "received_at": to_utc_z(self.received_at),
            "batches": [b.to_dict() for b in self.batches],
        }


class StockBatch(db.Model):
    """
    Discrete inventory lot of one item at one branch.

    INVARIANTS:
    - Exactly one of product_id / package_id is set.
    - 0 <= quantity_on_hand <= quantity_initial.
    - quantity_on_hand only moves through FIFO allocation; a batch drained
      to zero stays as a record for costing history.
    - Removal is a write-off (audit row + delete), never a negative allocation.
    """
    __tablename__ = "stock_batches"
    __table_args__ = (
        db.CheckConstraint(
            "(product_id IS NULL) <> (package_id IS NULL)",
            name="ck_stock_batches_one_item",
        ),
        db.CheckConstraint(
            "quantity_on_hand >= 0 AND quantity_on_hand <= quantity_initial",
            name="ck_stock_batches_quantity_bounds",
        ),
        db.Index("ix_stock_batches_product_fifo", "branch_id", "product_id", "intake_date"),
        db.Index("ix_stock_batches_package_fifo", "branch_id", "package_id", "intake_date"),
        db.Index("ix_stock_batches_expiry", "expiry_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    package_id = db.Column(db.Integer, db.ForeignKey("packages.id"), nullable=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False)
    delivery_id = db.Column(db.Integer, db.ForeignKey("stock_deliveries.id"), nullable=True, index=True)

    quantity_on_hand = db.Column(db.Integer, nullable=False)
    quantity_initial = db.Column(db.Integer, nullable=False)

    unit_cost_cents = db.Column(db.Integer, nullable=False)
    total_cost_cents = db.Column(db.Integer, nullable=False)

    intake_date = db.Column(db.DateTime(timezone=True), nullable=False)
    expiry_date = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product", backref=db.backref("batches", lazy=True))
    package = db.relationship("Package", backref=db.backref("batches", lazy=True))
    delivery = db.relationship("StockDelivery", backref=db.backref("batches", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def item_key(self) -> tuple[str, int]:
        if self.product_id is not None:
            return ("product", self.product_id)
        return ("package", self.package_id)

    def __repr__(self) -> str:
        kind, item_id = self.item_key
        return f"<StockBatch id={self.id} {kind}={item_id} on_hand={self.quantity_on_hand}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "package_id": self.package_id,
            "branch_id": self.branch_id,
            "delivery_id": self.delivery_id,
            "quantity_on_hand": self.quantity_on_hand,
            "quantity_initial": self.quantity_initial,
            "unit_cost_cents": self.unit_cost_cents,
            "total_cost_cents": self.total_cost_cents,
            "intake_date": to_utc_z(self.intake_date),
            "expiry_date": to_utc_z(self.expiry_date),
        }


class StockWriteOff(db.Model):
    """
    Audit record of a batch removed outright (damage, loss, data error).

    APPEND-ONLY: write-offs are never edited; the batch they describe is gone.
    """
    __tablename__ = "stock_write_offs"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    package_id = db.Column(db.Integer, db.ForeignKey("packages.id"), nullable=True, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    batch_id = db.Column(db.Integer, nullable=False)  # plain reference, the batch row is deleted
    quantity_removed = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=False)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": "product" if self.product_id is not None else "package",
            "product_id": self.product_id,
            "package_id": self.package_id,
            "branch_id": self.branch_id,
            "user_id": self.user_id,
            "batch_id": self.batch_id,
            "quantity_removed": self.quantity_removed,
            "unit_cost_cents": self.unit_cost_cents,
            "reason": self.reason,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class ExpiryAlert(db.Model):
    """
    One alert per batch approaching its expiry date.

    The unique batch_id makes the scheduled sweep idempotent.
    """
    __tablename__ = "expiry_alerts"
    __table_args__ = (
        db.UniqueConstraint("batch_id", name="uq_expiry_alerts_batch"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    batch_id = db.Column(db.Integer, db.ForeignKey("stock_batches.id"), nullable=False)
    expiry_date = db.Column(db.DateTime(timezone=True), nullable=False)
    description = db.Column(db.String(255), nullable=False)

    # PENDING, RESOLVED
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    batch = db.relationship("StockBatch", backref=db.backref("expiry_alerts", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "batch_id": self.batch_id,
            "expiry_date": to_utc_z(self.expiry_date),
            "description": self.description,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "resolved_at": to_utc_z(self.resolved_at),
        }
