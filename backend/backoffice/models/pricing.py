from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


PRICE_KIND_STANDARD = "STANDARD"
PRICE_KIND_SPECIAL = "SPECIAL"


class SaleablePrice(db.Model):
    """
    A price a product may be sold at.

    VARIANTS:
    - STANDARD: reusable reference price.
    - SPECIAL: created by approving a PriceAuthorization; valid for exactly
      one sale. Consuming it deletes the row, so the capability disappears
      with it.

    order_rank is per product, assigned as MAX(order_rank) + 1 inside the
    inserting transaction. The unique constraint rejects a duplicate rank
    produced by a concurrent writer.
    """
    __tablename__ = "saleable_prices"
    __table_args__ = (
        db.UniqueConstraint("product_id", "order_rank", name="uq_saleable_prices_product_rank"),
        db.CheckConstraint("order_rank > 0", name="ck_saleable_prices_rank_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    kind = db.Column(db.String(16), nullable=False, default=PRICE_KIND_STANDARD)
    order_rank = db.Column(db.Integer, nullable=False)
    used = db.Column(db.Boolean, nullable=False, default=False)

    # Set for SPECIAL prices only: the authorization that produced it
    authorization_id = db.Column(db.Integer, nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("prices", lazy=True))

    @property
    def is_special(self) -> bool:
        return self.kind == PRICE_KIND_SPECIAL

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "amount_cents": self.amount_cents,
            "kind": self.kind,
            "order_rank": self.order_rank,
            "used": self.used,
            "authorization_id": self.authorization_id,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class PriceAuthorization(db.Model):
    """
    Request for a one-time special price.

    LIFECYCLE:
    - PENDING: waiting for an admin
    - APPROVED: transient; approval creates the SPECIAL price and deletes
      this row in the same transaction
    Rejection deletes the row.
    """
    __tablename__ = "price_authorizations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    requested_price_cents = db.Column(db.Integer, nullable=False)
    requested_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    requested_at = db.Column(db.DateTime(timezone=True), nullable=False)
    responded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    product = db.relationship("Product")
    requested_by = db.relationship("User", foreign_keys=[requested_by_user_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "requested_price_cents": self.requested_price_cents,
            "requested_by_user_id": self.requested_by_user_id,
            "status": self.status,
            "approved_by_user_id": self.approved_by_user_id,
            "requested_at": to_utc_z(self.requested_at),
            "responded_at": to_utc_z(self.responded_at),
        }
