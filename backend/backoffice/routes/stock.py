# Overview: Flask API routes for stock intake, batches, write-offs and expiry alerts.

from flask import Blueprint, request, jsonify, current_app

from ..errors import BackofficeError
from ..services import expiry_service, stock_service


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.post("/deliveries")
def create_delivery_route():
    """
    Receive a delivery.

    Request body:
    {
        "branch_id": 1,
        "user_id": 2,
        "supplier_name": "Distribuidora Central",
        "entries": [
            {"product_id": 5, "quantity": 10, "unit_cost_cents": 450,
             "expiry_date": "2026-03-01"},
            {"package_id": 2, "quantity": 100, "unit_cost_cents": 15}
        ]
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        delivery = stock_service.receive_stock(
            branch_id=data.get("branch_id"),
            user_id=data.get("user_id"),
            entries=data.get("entries"),
            supplier_name=data.get("supplier_name"),
        )
        return jsonify({"delivery": delivery.to_dict()}), 201
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to receive delivery")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/batches")
def list_batches_route():
    """?branch_id= (required), ?product_id= or ?package_id=, ?include_empty=1"""
    branch_id = request.args.get("branch_id", type=int)
    if not branch_id:
        return jsonify({"error": "branch_id required"}), 400
    batches = stock_service.list_batches(
        branch_id,
        product_id=request.args.get("product_id", type=int),
        package_id=request.args.get("package_id", type=int),
        include_empty=request.args.get("include_empty") in ("1", "true", "yes"),
    )
    return jsonify({"batches": [b.to_dict() for b in batches]}), 200


@stock_bp.post("/batches/<int:batch_id>/write-off")
def write_off_batch_route(batch_id: int):
    """Request body: {"user_id": 2, "reason": "Damaged"}"""
    try:
        data = request.get_json(silent=True) or {}
        write_off = stock_service.write_off_batch(
            batch_id,
            user_id=data.get("user_id"),
            reason=data.get("reason"),
        )
        return jsonify({"write_off": write_off.to_dict()}), 201
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to write off batch")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/write-offs")
def list_write_offs_route():
    write_offs = stock_service.list_write_offs(branch_id=request.args.get("branch_id", type=int))
    return jsonify({"write_offs": [w.to_dict() for w in write_offs]}), 200


@stock_bp.get("/expiry-alerts")
def list_expiry_alerts_route():
    alerts = expiry_service.list_expiry_alerts(status=request.args.get("status"))
    return jsonify({"alerts": [a.to_dict() for a in alerts]}), 200


@stock_bp.post("/expiry-alerts/<int:alert_id>/resolve")
def resolve_expiry_alert_route(alert_id: int):
    try:
        alert = expiry_service.resolve_expiry_alert(alert_id)
        return jsonify({"alert": alert.to_dict()}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to resolve expiry alert")
        return jsonify({"error": "Internal server error"}), 500
