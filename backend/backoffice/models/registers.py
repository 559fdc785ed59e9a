from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class CashRegisterShift(db.Model):
    """
    Cash-register shift of one user at one branch.

    LIFECYCLE:
    - OPEN: cash-equivalent sales and movements attach here
    - CLOSED: closing balance declared, movements re-parented

    At most one OPEN shift per (branch, user). The partial unique index backs
    up the check done inside the opening transaction.
    """
    __tablename__ = "cash_register_shifts"
    __table_args__ = (
        db.Index(
            "uq_shifts_open_branch_user",
            "branch_id",
            "user_id",
            unique=True,
            sqlite_where=db.text("status = 'OPEN'"),
            postgresql_where=db.text("status = 'OPEN'"),
        ),
        db.Index("ix_shifts_branch_status_closed", "branch_id", "status", "closed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # OPEN, CLOSED
    status = db.Column(db.String(16), nullable=False, default="OPEN")

    opening_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    closing_balance_cents = db.Column(db.Integer, nullable=True)

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    comment = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    branch = db.relationship("Branch", backref=db.backref("shifts", lazy=True))
    user = db.relationship("User", backref=db.backref("shifts", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "user_id": self.user_id,
            "status": self.status,
            "opening_balance_cents": self.opening_balance_cents,
            "closing_balance_cents": self.closing_balance_cents,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at),
            "comment": self.comment,
        }


class Deposit(db.Model):
    """Cash taken from the branch to a bank. Counts as an outflow."""
    __tablename__ = "deposits"
    __table_args__ = (
        db.Index("ix_deposits_branch_shift", "branch_id", "shift_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("cash_register_shifts.id"), nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    bank = db.Column(db.String(128), nullable=True)
    slip_number = db.Column(db.String(64), nullable=True)
    description = db.Column(db.String(255), nullable=True)
    used_for_closing = db.Column(db.Boolean, nullable=False, default=False)

    deposited_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    shift = db.relationship("CashRegisterShift", backref=db.backref("deposits", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "user_id": self.user_id,
            "shift_id": self.shift_id,
            "amount_cents": self.amount_cents,
            "bank": self.bank,
            "slip_number": self.slip_number,
            "description": self.description,
            "used_for_closing": self.used_for_closing,
            "deposited_at": to_utc_z(self.deposited_at),
        }


class Outflow(db.Model):
    """Cash paid out of the register (expenses, petty cash)."""
    __tablename__ = "outflows"
    __table_args__ = (
        db.Index("ix_outflows_branch_shift", "branch_id", "shift_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("cash_register_shifts.id"), nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    shift = db.relationship("CashRegisterShift", backref=db.backref("outflows", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "user_id": self.user_id,
            "shift_id": self.shift_id,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "occurred_at": to_utc_z(self.occurred_at),
        }
