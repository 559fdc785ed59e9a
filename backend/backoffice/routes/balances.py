# Overview: Flask API routes for branch balances.

from flask import Blueprint, request, jsonify, current_app

from ..errors import BackofficeError
from ..services import balance_service


balances_bp = Blueprint("balances", __name__, url_prefix="/api/branches")


@balances_bp.get("/<int:branch_id>/balance")
def get_balance_route(branch_id: int):
    try:
        return jsonify({"balance": balance_service.get_branch_balance(branch_id)}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load branch balance")
        return jsonify({"error": "Internal server error"}), 500


@balances_bp.post("/<int:branch_id>/balance/reset")
def reset_balance_route(branch_id: int):
    """
    Administrative reset of a branch balance to zero.

    Request body: {"user_id": 1, "confirm": true}
    """
    try:
        data = request.get_json(silent=True) or {}
        if data.get("confirm") is not True:
            return jsonify({"error": "confirm must be true to reset a balance"}), 400
        balance = balance_service.reset_branch_balance(branch_id, user_id=data.get("user_id"))
        return jsonify({"balance": balance.to_dict()}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reset branch balance")
        return jsonify({"error": "Internal server error"}), 500
