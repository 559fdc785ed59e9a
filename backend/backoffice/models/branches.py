from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Branch(db.Model):
    """
    Physical sales location.

    Each branch owns its stock batches, its shifts and exactly one
    BranchBalance row.
    """
    __tablename__ = "branches"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_branches_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    code = db.Column(db.String(32), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "address": self.address,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class User(db.Model):
    """
    Back-office user.

    Credentials live with the identity provider; this table only carries
    what the engine needs: role (admins receive approval requests and alerts)
    and home branch.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("username", name="uq_users_username"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False)
    full_name = db.Column(db.String(128), nullable=True)

    # ADMIN, MANAGER, CASHIER
    role = db.Column(db.String(16), nullable=False, default="CASHIER", index=True)

    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    branch = db.relationship("Branch", backref=db.backref("users", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "full_name": self.full_name,
            "role": self.role,
            "branch_id": self.branch_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class BranchBalance(db.Model):
    """
    Running money position of a branch.

    DERIVED: only sale completion (income) and deposit/outflow creation
    (outflow) write here, inside the transaction that records the movement.
    The single exception is the administrative reset.
    """
    __tablename__ = "branch_balances"
    __table_args__ = (
        db.UniqueConstraint("branch_id", name="uq_branch_balances_branch"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False)

    accumulated_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    total_income_cents = db.Column(db.Integer, nullable=False, default=0)
    total_outflow_cents = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    branch = db.relationship("Branch", backref=db.backref("balance", uselist=False, lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "branch_id": self.branch_id,
            "accumulated_balance_cents": self.accumulated_balance_cents,
            "total_income_cents": self.total_income_cents,
            "total_outflow_cents": self.total_outflow_cents,
            "updated_at": to_utc_z(self.updated_at),
        }


class UserGoal(db.Model):
    """
    Sales target for a user.

    LIFECYCLE:
    - OPEN: accumulating progress
    - FINALIZED: target reached (still accepts progress)
    - CANCELLED: ignored by shift close
    """
    __tablename__ = "user_goals"
    __table_args__ = (
        db.Index("ix_user_goals_user_status", "user_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    target_cents = db.Column(db.Integer, nullable=False)
    current_cents = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default="OPEN")
    achieved = db.Column(db.Boolean, nullable=False, default=False)

    started_at = db.Column(db.DateTime(timezone=True), nullable=False)
    achieved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("User", backref=db.backref("goals", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "branch_id": self.branch_id,
            "target_cents": self.target_cents,
            "current_cents": self.current_cents,
            "status": self.status,
            "achieved": self.achieved,
            "started_at": to_utc_z(self.started_at),
            "achieved_at": to_utc_z(self.achieved_at),
        }
