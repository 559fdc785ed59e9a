# Overview: Flask API routes for product prices and special-price requests.

from flask import Blueprint, request, jsonify, current_app

from ..errors import BackofficeError
from ..services import price_service


prices_bp = Blueprint("prices", __name__, url_prefix="/api")


@prices_bp.post("/price-requests")
def create_price_request_route():
    """
    Request a one-time special price.

    Request body:
    {
        "product_id": 5,
        "requested_by_user_id": 3,
        "amount_cents": 8500
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        authorization = price_service.request_special_price(
            data.get("product_id"),
            data.get("requested_by_user_id"),
            data.get("amount_cents"),
        )
        return jsonify({"price_request": authorization.to_dict()}), 201
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create price request")
        return jsonify({"error": "Internal server error"}), 500


@prices_bp.get("/price-requests")
def list_price_requests_route():
    requests_ = price_service.list_pending_requests()
    return jsonify({"price_requests": [r.to_dict() for r in requests_]}), 200


@prices_bp.post("/price-requests/<int:authorization_id>/approve")
def approve_price_request_route(authorization_id: int):
    """Request body: {"approved_by_user_id": 1}"""
    try:
        data = request.get_json(silent=True) or {}
        price = price_service.approve_price_request(authorization_id, data.get("approved_by_user_id"))
        return jsonify({"price": price.to_dict()}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to approve price request")
        return jsonify({"error": "Internal server error"}), 500


@prices_bp.post("/price-requests/<int:authorization_id>/reject")
def reject_price_request_route(authorization_id: int):
    """Request body: {"rejected_by_user_id": 1}"""
    try:
        data = request.get_json(silent=True) or {}
        snapshot = price_service.reject_price_request(authorization_id, data.get("rejected_by_user_id"))
        return jsonify({"rejected": snapshot}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reject price request")
        return jsonify({"error": "Internal server error"}), 500


@prices_bp.get("/products/<int:product_id>/prices")
def list_product_prices_route(product_id: int):
    prices = price_service.list_product_prices(product_id)
    return jsonify({"prices": [p.to_dict() for p in prices]}), 200


@prices_bp.post("/products/<int:product_id>/prices")
def add_product_price_route(product_id: int):
    """Request body: {"amount_cents": 9900, "created_by_user_id": 1}"""
    try:
        data = request.get_json(silent=True) or {}
        price = price_service.add_standard_price(
            product_id,
            data.get("amount_cents"),
            created_by_user_id=data.get("created_by_user_id"),
        )
        return jsonify({"price": price.to_dict()}), 201
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add price")
        return jsonify({"error": "Internal server error"}), 500
