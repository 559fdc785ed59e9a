# Overview: Branch balance ledger; running balance, income and outflow totals.

"""
The branch balance is derived state. apply_income / apply_outflow run inside
the transaction that records the sale, deposit or outflow and never commit
on their own. The administrative reset is the only direct write.
"""

from __future__ import annotations

from flask import current_app

from ..errors import NotFoundError
from ..extensions import db
from ..models import Branch, BranchBalance
from ..time_utils import utcnow
from .concurrency import begin_write, lock_for_update, run_atomic


def ensure_branch_balance(branch_id: int, *, lock: bool = False) -> BranchBalance:
    """Fetch the branch's balance row, creating an empty one on first use."""
    query = db.session.query(BranchBalance).filter_by(branch_id=branch_id)
    if lock:
        query = lock_for_update(query)
    balance = query.first()
    if balance is None:
        if db.session.get(Branch, branch_id) is None:
            raise NotFoundError("Branch not found")
        balance = BranchBalance(
            branch_id=branch_id,
            accumulated_balance_cents=0,
            total_income_cents=0,
            total_outflow_cents=0,
            updated_at=utcnow(),
        )
        db.session.add(balance)
        db.session.flush()
    return balance


def apply_income(branch_id: int, amount_cents: int) -> BranchBalance:
    balance = ensure_branch_balance(branch_id, lock=True)
    balance.accumulated_balance_cents += amount_cents
    balance.total_income_cents += amount_cents
    balance.updated_at = utcnow()
    return balance


def apply_outflow(branch_id: int, amount_cents: int) -> BranchBalance:
    balance = ensure_branch_balance(branch_id, lock=True)
    balance.accumulated_balance_cents -= amount_cents
    balance.total_outflow_cents += amount_cents
    balance.updated_at = utcnow()
    return balance


def get_branch_balance(branch_id: int) -> dict:
    """Read-only view; a branch with no movements reports zeros."""
    if db.session.get(Branch, branch_id) is None:
        raise NotFoundError("Branch not found")
    balance = db.session.query(BranchBalance).filter_by(branch_id=branch_id).first()
    if balance is None:
        return {
            "branch_id": branch_id,
            "accumulated_balance_cents": 0,
            "total_income_cents": 0,
            "total_outflow_cents": 0,
            "updated_at": None,
        }
    return balance.to_dict()


def reset_branch_balance(branch_id: int, *, user_id: int | None = None) -> BranchBalance:
    """Privileged: zero every total of the branch balance."""
    def _op():
        begin_write()
        balance = ensure_branch_balance(branch_id, lock=True)
        balance.accumulated_balance_cents = 0
        balance.total_income_cents = 0
        balance.total_outflow_cents = 0
        balance.updated_at = utcnow()
        return balance

    balance = run_atomic(_op)
    current_app.logger.warning("Branch %s balance reset to zero by user %s", branch_id, user_id)
    return balance
