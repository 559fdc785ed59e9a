# Overview: Flask API routes for cash-register shifts, deposits and outflows.

# backend/backoffice/routes/shifts.py
"""
Shift API Routes

- Shift lifecycle: open -> close (close reconciles sales, deposits, outflows)
- Deposits/outflows bind to the caller's open shift, or stay unlinked until
  a close picks them up
- Acting user ids travel in the payload; authentication happens upstream
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import BackofficeError
from ..services import shift_service


shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")


def _error(e: BackofficeError):
    return jsonify(e.to_dict()), e.status_code


@shifts_bp.post("/open")
def open_shift_route():
    """
    Open a shift.

    Request body:
    {
        "branch_id": 1,
        "user_id": 3,
        "opening_balance_cents": 50000  (optional; used only for a branch's first shift)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        shift = shift_service.open_shift(
            branch_id=data.get("branch_id"),
            user_id=data.get("user_id"),
            opening_balance_cents=data.get("opening_balance_cents"),
        )
        return jsonify({"shift": shift.to_dict()}), 201
    except BackofficeError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to open shift")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.get("/open")
def get_open_shift_route():
    """Open shift overview for ?branch_id=&user_id= (last closed shift if none)."""
    branch_id = request.args.get("branch_id", type=int)
    user_id = request.args.get("user_id", type=int)
    if not branch_id or not user_id:
        return jsonify({"error": "branch_id and user_id required"}), 400
    try:
        return jsonify(shift_service.get_shift_overview(branch_id, user_id)), 200
    except Exception:
        current_app.logger.exception("Failed to load shift overview")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.post("/<int:shift_id>/close")
def close_shift_route(shift_id: int):
    """
    Close a shift.

    Request body:
    {
        "closing_balance_cents": 125000,
        "sale_ids": [10, 11],
        "deposit_ids": [4],
        "outflow_ids": [],
        "comment": "Short by 2.00"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        shift = shift_service.close_shift(
            shift_id,
            data.get("closing_balance_cents"),
            sale_ids=data.get("sale_ids"),
            deposit_ids=data.get("deposit_ids"),
            outflow_ids=data.get("outflow_ids"),
            comment=data.get("comment"),
        )
        return jsonify({
            "shift": shift.to_dict(),
            "summary": shift_service.get_shift_summary(shift.id),
        }), 200
    except BackofficeError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to close shift")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.get("/<int:shift_id>/summary")
def shift_summary_route(shift_id: int):
    try:
        return jsonify(shift_service.get_shift_summary(shift_id)), 200
    except BackofficeError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to build shift summary")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.get("")
@shifts_bp.get("/")
def list_shifts_route():
    """Shift history for ?branch_id= (optional ?status=OPEN|CLOSED)."""
    branch_id = request.args.get("branch_id", type=int)
    if not branch_id:
        return jsonify({"error": "branch_id required"}), 400
    shifts = shift_service.list_branch_shifts(branch_id, status=request.args.get("status"))
    return jsonify({"shifts": [s.to_dict() for s in shifts]}), 200


@shifts_bp.delete("/<int:shift_id>")
def delete_shift_route(shift_id: int):
    try:
        shift_service.delete_shift(shift_id)
        return jsonify({"deleted": shift_id}), 200
    except BackofficeError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to delete shift")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# DEPOSITS / OUTFLOWS
# =============================================================================

@shifts_bp.post("/deposits")
def create_deposit_route():
    """
    Record a bank deposit.

    Request body:
    {
        "branch_id": 1,
        "user_id": 3,
        "amount_cents": 40000,
        "bank": "Banco Industrial",
        "slip_number": "A-1234",
        "description": "Morning cash"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        deposit = shift_service.record_deposit(
            branch_id=data.get("branch_id"),
            user_id=data.get("user_id"),
            amount_cents=data.get("amount_cents"),
            bank=data.get("bank"),
            slip_number=data.get("slip_number"),
            description=data.get("description"),
            deposited_at=data.get("deposited_at"),
        )
        return jsonify({"deposit": deposit.to_dict()}), 201
    except BackofficeError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to record deposit")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.post("/outflows")
def create_outflow_route():
    try:
        data = request.get_json(silent=True) or {}
        outflow = shift_service.record_outflow(
            branch_id=data.get("branch_id"),
            user_id=data.get("user_id"),
            amount_cents=data.get("amount_cents"),
            description=data.get("description"),
            occurred_at=data.get("occurred_at"),
        )
        return jsonify({"outflow": outflow.to_dict()}), 201
    except BackofficeError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to record outflow")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.get("/sales/unlinked")
def unlinked_sales_route():
    """?branch_id= (required), ?user_id= to narrow to one cashier"""
    branch_id = request.args.get("branch_id", type=int)
    if not branch_id:
        return jsonify({"error": "branch_id required"}), 400
    sales = shift_service.list_unlinked_sales(branch_id, user_id=request.args.get("user_id", type=int))
    return jsonify({"sales": [s.to_dict(include_lines=False) for s in sales]}), 200


@shifts_bp.get("/deposits/unlinked")
def unlinked_deposits_route():
    branch_id = request.args.get("branch_id", type=int)
    if not branch_id:
        return jsonify({"error": "branch_id required"}), 400
    deposits = shift_service.list_unlinked_deposits(branch_id)
    return jsonify({"deposits": [d.to_dict() for d in deposits]}), 200


@shifts_bp.get("/outflows/unlinked")
def unlinked_outflows_route():
    branch_id = request.args.get("branch_id", type=int)
    if not branch_id:
        return jsonify({"error": "branch_id required"}), 400
    outflows = shift_service.list_unlinked_outflows(branch_id)
    return jsonify({"outflows": [o.to_dict() for o in outflows]}), 200
