# Overview: Flask API routes for sales; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..errors import BackofficeError
from ..services import sales_service


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@sales_bp.post("/")
def create_sale_route():
    """
    Record a sale.

    Request body:
    {
        "branch_id": 1,
        "user_id": 3,
        "payment_method": "CASH",
        "lines": [{"product_id": 5, "price_id": 12, "quantity": 2}],
        "package_lines": [{"package_id": 2, "quantity": 1}],
        "customer_id": 8,                                (optional)
        "customer": {"name": "Ana", "phone": "5555-1234"}, (optional, new customer)
        "total_cents": 3000                              (advisory only)
    }

    The stored total is always computed from the prices.
    """
    try:
        data = request.get_json(silent=True) or {}
        sale = sales_service.create_sale(
            branch_id=data.get("branch_id"),
            user_id=data.get("user_id"),
            payment_method=data.get("payment_method"),
            lines=data.get("lines"),
            package_lines=data.get("package_lines"),
            customer_id=data.get("customer_id"),
            customer=data.get("customer"),
            client_total_cents=data.get("total_cents"),
            occurred_at=data.get("occurred_at"),
        )
        return jsonify({"sale": sale.to_dict()}), 201
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify({"sale": sale.to_dict()}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/branch/<int:branch_id>")
def list_branch_sales_route(branch_id: int):
    """
    List a branch's sales.

    Query params:
    - page: int (default 1)
    - page_size: int (default 25, max 200)
    - date_from, date_to: YYYY-MM-DD (inclusive)
    """
    try:
        result = sales_service.list_branch_sales(
            branch_id,
            page=request.args.get("page", type=int),
            page_size=request.args.get("page_size", type=int),
            date_from=request.args.get("date_from"),
            date_to=request.args.get("date_to"),
        )
        return jsonify(result), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500
