# Overview: Cash-register shift state machine and the movements that attach to shifts.

"""
Cash-register shifts

States: OPEN -> CLOSED. Nothing else.

- At most one OPEN shift per (branch, user). open_shift checks and inserts
  inside one write transaction; a partial unique index backs it up.
- Opening balance is inherited from the branch's most recently closed shift.
  Only when the branch has none does the override (or the configured
  default) apply.
- close_shift stamps the closure, then re-parents the referenced sales,
  deposits and outflows to the shift and feeds the referenced sales total
  into the user's active goal. Closing a CLOSED shift is rejected.
- Deposits and outflows bind to the user's open shift when one exists,
  otherwise they stay unlinked until a close picks them up. Both reduce
  the branch balance in the transaction that records them.
- The reconciliation summary is a pure read:
    theoretical = opening + sales - outflows - deposits
    difference  = closing - theoretical
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import (
    BusinessRuleViolation,
    NoOpenShift,
    NotFoundError,
    ShiftAlreadyClosed,
    ShiftAlreadyOpen,
    ValidationError,
)
from ..extensions import db
from ..models import Branch, CashRegisterShift, Deposit, Outflow, Sale, User
from ..notifications import CATEGORY_SHIFT_CLOSED, notify_safely
from ..time_utils import utcnow
from ..validation import (
    optional_text,
    parse_optional_datetime,
    require_id,
    require_non_negative_cents,
    require_positive_cents,
)
from . import balance_service, goal_service
from .concurrency import begin_write, lock_for_update, run_atomic


STATUS_OPEN = "OPEN"
STATUS_CLOSED = "CLOSED"


# =============================================================================
# LOOKUPS
# =============================================================================

def find_open_shift(branch_id: int, user_id: int, *, lock: bool = False) -> CashRegisterShift | None:
    """The OPEN shift of (branch, user), or None. Never raises."""
    query = db.session.query(CashRegisterShift).filter_by(
        branch_id=branch_id,
        user_id=user_id,
        status=STATUS_OPEN,
    )
    if lock:
        query = lock_for_update(query)
    return query.first()


def require_open_shift(branch_id: int, user_id: int, *, lock: bool = False) -> CashRegisterShift:
    shift = find_open_shift(branch_id, user_id, lock=lock)
    if shift is None:
        raise NoOpenShift(
            f"No open shift for user {user_id} at branch {branch_id}",
            details={"branch_id": branch_id, "user_id": user_id},
        )
    return shift


def get_shift(shift_id: int) -> CashRegisterShift:
    shift = db.session.get(CashRegisterShift, shift_id)
    if shift is None:
        raise NotFoundError("Shift not found")
    return shift


def _last_closed_shift(branch_id: int, user_id: int | None = None) -> CashRegisterShift | None:
    query = db.session.query(CashRegisterShift).filter_by(branch_id=branch_id, status=STATUS_CLOSED)
    if user_id is not None:
        query = query.filter_by(user_id=user_id)
    return query.order_by(CashRegisterShift.closed_at.desc(), CashRegisterShift.id.desc()).first()


def list_branch_shifts(branch_id: int, status: str | None = None) -> list[CashRegisterShift]:
    """Shift history, most recently closed first; open shifts lead."""
    query = db.session.query(CashRegisterShift).filter_by(branch_id=branch_id)
    if status:
        query = query.filter_by(status=status.upper())
    return query.order_by(
        CashRegisterShift.closed_at.is_(None).desc(),
        CashRegisterShift.closed_at.desc(),
        CashRegisterShift.id.desc(),
    ).all()


# =============================================================================
# OPEN / CLOSE
# =============================================================================

def open_shift(branch_id: int, user_id: int, opening_balance_cents: int | None = None) -> CashRegisterShift:
    """
    Open a shift for (branch, user).

    Raises:
        ShiftAlreadyOpen: the pair already has an OPEN shift
    """
    branch_id = require_id("branch_id", branch_id)
    user_id = require_id("user_id", user_id)
    if opening_balance_cents is not None:
        opening_balance_cents = require_non_negative_cents("opening_balance_cents", opening_balance_cents)

    def _op():
        begin_write()
        if db.session.get(Branch, branch_id) is None:
            raise NotFoundError("Branch not found")
        if db.session.get(User, user_id) is None:
            raise NotFoundError("User not found")

        existing = find_open_shift(branch_id, user_id, lock=True)
        if existing is not None:
            raise ShiftAlreadyOpen(
                f"User {user_id} already has an open shift at branch {branch_id}",
                details={"shift_id": existing.id},
            )

        previous = _last_closed_shift(branch_id)
        if previous is not None and previous.closing_balance_cents is not None:
            opening = previous.closing_balance_cents
        elif opening_balance_cents is not None:
            opening = opening_balance_cents
        else:
            opening = current_app.config.get("DEFAULT_OPENING_BALANCE_CENTS", 0)

        shift = CashRegisterShift(
            branch_id=branch_id,
            user_id=user_id,
            status=STATUS_OPEN,
            opening_balance_cents=opening,
            opened_at=utcnow(),
        )
        db.session.add(shift)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ShiftAlreadyOpen(f"User {user_id} already has an open shift at branch {branch_id}") from exc
        return shift

    shift = run_atomic(_op)
    current_app.logger.info(
        "Shift %s opened for user %s at branch %s (opening %s)",
        shift.id, shift.user_id, shift.branch_id, shift.opening_balance_cents,
    )
    return shift


def _normalize_ids(name: str, values) -> list[int]:
    if values is None:
        return []
    if not isinstance(values, (list, tuple, set)):
        raise ValidationError(f"{name} must be a list of ids")
    return sorted({require_id(name, v) for v in values})


def _load_for_branch(model, ids: list[int], branch_id: int, label: str) -> list:
    if not ids:
        return []
    rows = lock_for_update(
        db.session.query(model).filter(model.id.in_(ids), model.branch_id == branch_id)
    ).all()
    missing = sorted(set(ids) - {r.id for r in rows})
    if missing:
        raise NotFoundError(f"{label} not found in this branch: {missing}", details={"ids": missing})
    return rows


def _ensure_linkable(rows: list, shift_id: int, label: str) -> None:
    taken = sorted(r.id for r in rows if r.shift_id is not None and r.shift_id != shift_id)
    if taken:
        raise BusinessRuleViolation(
            f"{label} already belong to another shift: {taken}",
            details={"ids": taken},
        )


def close_shift(
    shift_id: int,
    closing_balance_cents: int,
    *,
    sale_ids=None,
    deposit_ids=None,
    outflow_ids=None,
    comment: str | None = None,
) -> CashRegisterShift:
    """
    Close an OPEN shift and reconcile the referenced movements into it.

    Raises:
        NotFoundError: shift or a referenced movement is missing
        ShiftAlreadyClosed: the shift is already CLOSED
    """
    shift_id = require_id("shift_id", shift_id)
    closing_balance_cents = require_non_negative_cents("closing_balance_cents", closing_balance_cents)
    sale_ids = _normalize_ids("sale_ids", sale_ids)
    deposit_ids = _normalize_ids("deposit_ids", deposit_ids)
    outflow_ids = _normalize_ids("outflow_ids", outflow_ids)
    comment = optional_text(comment, max_length=2000)

    def _op():
        begin_write()
        shift = lock_for_update(db.session.query(CashRegisterShift).filter_by(id=shift_id)).first()
        if shift is None:
            raise NotFoundError("Shift not found")
        if shift.status != STATUS_OPEN:
            raise ShiftAlreadyClosed(f"Shift {shift_id} is already closed")

        sales = _load_for_branch(Sale, sale_ids, shift.branch_id, "Sales")
        deposits = _load_for_branch(Deposit, deposit_ids, shift.branch_id, "Deposits")
        outflows = _load_for_branch(Outflow, outflow_ids, shift.branch_id, "Outflows")
        _ensure_linkable(sales, shift.id, "Sales")
        _ensure_linkable(deposits, shift.id, "Deposits")
        _ensure_linkable(outflows, shift.id, "Outflows")

        shift.status = STATUS_CLOSED
        shift.closed_at = utcnow()
        shift.closing_balance_cents = closing_balance_cents
        shift.comment = comment

        for sale in sales:
            sale.shift_id = shift.id
        for deposit in deposits:
            deposit.shift_id = shift.id
            deposit.used_for_closing = True
        for outflow in outflows:
            outflow.shift_id = shift.id

        goal_service.apply_sales_progress(shift.user_id, sum(s.total_amount_cents for s in sales))
        db.session.flush()
        return shift

    shift = run_atomic(_op)

    summary = get_shift_summary(shift.id)
    current_app.logger.info(
        "Shift %s closed (closing %s, theoretical %s, difference %s)",
        shift.id, summary["closing_balance_cents"], summary["theoretical_balance_cents"], summary["difference_cents"],
    )
    notify_safely(
        f"Shift {shift.id} at branch {shift.branch_id} closed with a difference of "
        f"{summary['difference_cents'] / 100:.2f}",
        to_user_ids=_admin_ids(),
        category=CATEGORY_SHIFT_CLOSED,
        from_user_id=shift.user_id,
        reference_id=shift.id,
    )
    return shift


def _admin_ids() -> list[int]:
    rows = db.session.query(User.id).filter(User.role == "ADMIN", User.is_active.is_(True)).all()
    return [r.id for r in rows]


# =============================================================================
# RECONCILIATION READS
# =============================================================================

def _sum(column, *criteria) -> int:
    return int(db.session.query(func.coalesce(func.sum(column), 0)).filter(*criteria).scalar() or 0)


def get_shift_summary(shift_id: int) -> dict:
    """Reconciliation figures of a shift. Never mutates."""
    shift = get_shift(shift_id)

    total_sales = _sum(Sale.total_amount_cents, Sale.shift_id == shift.id)
    total_outflows = _sum(Outflow.amount_cents, Outflow.shift_id == shift.id)
    total_deposits = _sum(Deposit.amount_cents, Deposit.shift_id == shift.id)

    by_method = (
        db.session.query(Sale.payment_method, func.coalesce(func.sum(Sale.total_amount_cents), 0))
        .filter(Sale.shift_id == shift.id)
        .group_by(Sale.payment_method)
        .all()
    )

    theoretical = shift.opening_balance_cents + total_sales - total_outflows - total_deposits
    difference = None
    if shift.closing_balance_cents is not None:
        difference = shift.closing_balance_cents - theoretical

    return {
        "shift_id": shift.id,
        "status": shift.status,
        "opening_balance_cents": shift.opening_balance_cents,
        "total_sales_cents": total_sales,
        "sales_by_payment_method": {method: int(total) for method, total in by_method},
        "total_outflows_cents": total_outflows,
        "total_deposits_cents": total_deposits,
        "theoretical_balance_cents": theoretical,
        "closing_balance_cents": shift.closing_balance_cents,
        "difference_cents": difference,
    }


def get_shift_overview(branch_id: int, user_id: int) -> dict:
    """
    What the register screen shows: the open shift with its movements and
    summary, or the user's last closed shift when nothing is open.
    """
    shift = find_open_shift(branch_id, user_id)
    if shift is None:
        last = _last_closed_shift(branch_id, user_id)
        return {
            "shift": None,
            "last_closed_shift": last.to_dict() if last else None,
        }

    sales = db.session.query(Sale).filter_by(shift_id=shift.id).order_by(Sale.occurred_at.asc()).all()
    return {
        "shift": shift.to_dict(),
        "summary": get_shift_summary(shift.id),
        "sales": [s.to_dict(include_lines=False) for s in sales],
        "deposits": [d.to_dict() for d in shift.deposits],
        "outflows": [o.to_dict() for o in shift.outflows],
    }


# =============================================================================
# DEPOSITS / OUTFLOWS
# =============================================================================

def _bind_to_open_shift(branch_id: int, user_id: int) -> int | None:
    shift = find_open_shift(branch_id, user_id)
    return shift.id if shift else None


def record_deposit(
    *,
    branch_id: int,
    user_id: int,
    amount_cents: int,
    bank: str | None = None,
    slip_number: str | None = None,
    description: str | None = None,
    deposited_at=None,
) -> Deposit:
    branch_id = require_id("branch_id", branch_id)
    user_id = require_id("user_id", user_id)
    amount_cents = require_positive_cents("amount_cents", amount_cents)
    deposited_at = parse_optional_datetime("deposited_at", deposited_at)

    def _op():
        begin_write()
        if db.session.get(Branch, branch_id) is None:
            raise NotFoundError("Branch not found")
        deposit = Deposit(
            branch_id=branch_id,
            user_id=user_id,
            shift_id=_bind_to_open_shift(branch_id, user_id),
            amount_cents=amount_cents,
            bank=optional_text(bank, max_length=128),
            slip_number=optional_text(slip_number, max_length=64),
            description=optional_text(description),
            used_for_closing=False,
            deposited_at=deposited_at or utcnow(),
        )
        db.session.add(deposit)
        balance_service.apply_outflow(branch_id, amount_cents)
        db.session.flush()
        return deposit

    return run_atomic(_op)


def record_outflow(
    *,
    branch_id: int,
    user_id: int,
    amount_cents: int,
    description: str | None = None,
    occurred_at=None,
) -> Outflow:
    branch_id = require_id("branch_id", branch_id)
    user_id = require_id("user_id", user_id)
    amount_cents = require_positive_cents("amount_cents", amount_cents)
    occurred_at = parse_optional_datetime("occurred_at", occurred_at)

    def _op():
        begin_write()
        if db.session.get(Branch, branch_id) is None:
            raise NotFoundError("Branch not found")
        outflow = Outflow(
            branch_id=branch_id,
            user_id=user_id,
            shift_id=_bind_to_open_shift(branch_id, user_id),
            amount_cents=amount_cents,
            description=optional_text(description),
            occurred_at=occurred_at or utcnow(),
        )
        db.session.add(outflow)
        balance_service.apply_outflow(branch_id, amount_cents)
        db.session.flush()
        return outflow

    return run_atomic(_op)


def list_unlinked_sales(branch_id: int, user_id: int | None = None) -> list[Sale]:
    """Close-screen candidates: branch sales not yet reconciled into any shift, newest first."""
    query = db.session.query(Sale).filter(Sale.branch_id == branch_id, Sale.shift_id.is_(None))
    if user_id is not None:
        query = query.filter(Sale.user_id == user_id)
    return query.order_by(Sale.occurred_at.desc(), Sale.id.desc()).all()


def list_unlinked_deposits(branch_id: int) -> list[Deposit]:
    return (
        db.session.query(Deposit)
        .filter(Deposit.branch_id == branch_id, Deposit.shift_id.is_(None))
        .order_by(Deposit.deposited_at.asc(), Deposit.id.asc())
        .all()
    )


def list_unlinked_outflows(branch_id: int) -> list[Outflow]:
    return (
        db.session.query(Outflow)
        .filter(Outflow.branch_id == branch_id, Outflow.shift_id.is_(None))
        .order_by(Outflow.occurred_at.asc(), Outflow.id.asc())
        .all()
    )


# =============================================================================
# DELETION
# =============================================================================

def delete_shift(shift_id: int) -> None:
    """Delete a CLOSED shift; its movements become unlinked again."""
    shift_id = require_id("shift_id", shift_id)

    def _op():
        begin_write()
        shift = lock_for_update(db.session.query(CashRegisterShift).filter_by(id=shift_id)).first()
        if shift is None:
            raise NotFoundError("Shift not found")
        if shift.status != STATUS_CLOSED:
            raise BusinessRuleViolation("Only closed shifts can be deleted")

        db.session.query(Sale).filter(Sale.shift_id == shift.id).update(
            {Sale.shift_id: None}, synchronize_session=False
        )
        db.session.query(Deposit).filter(Deposit.shift_id == shift.id).update(
            {Deposit.shift_id: None, Deposit.used_for_closing: False}, synchronize_session=False
        )
        db.session.query(Outflow).filter(Outflow.shift_id == shift.id).update(
            {Outflow.shift_id: None}, synchronize_session=False
        )
        db.session.delete(shift)

    run_atomic(_op)
    current_app.logger.info("Shift %s deleted", shift_id)
