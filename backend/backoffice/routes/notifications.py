# Overview: Flask API routes for reading a user's notifications.

from flask import Blueprint, request, jsonify, current_app

from ..errors import BackofficeError
from .. import notifications


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@notifications_bp.get("/")
def list_notifications_route():
    """?user_id= (required), ?unread=1 for unread only"""
    user_id = request.args.get("user_id", type=int)
    if not user_id:
        return jsonify({"error": "user_id required"}), 400
    unread_only = request.args.get("unread") in ("1", "true", "yes")
    return jsonify({"notifications": notifications.list_user_notifications(user_id, unread_only)}), 200


@notifications_bp.post("/<int:recipient_id>/read")
def mark_read_route(recipient_id: int):
    try:
        return jsonify({"notification": notifications.mark_read(recipient_id)}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to mark notification read")
        return jsonify({"error": "Internal server error"}), 500
