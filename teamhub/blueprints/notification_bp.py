"""
TeamHub Collaboration Platform
Notification Blueprint.

Provides:
    - Listing the caller's in-app notifications (newest first)
    - Unread count
    - Mark one / mark all as read
"""

from flask import Blueprint, jsonify, request

from teamhub.blueprints import current_actor, pagination_args
from teamhub.services.notification import NotificationService
from teamhub.utils.errors import E, api_error

notification_bp = Blueprint("notification_bp", __name__, url_prefix="/api/v1/notifications")


@notification_bp.route("", methods=["GET"])
def list_notifications():
    limit, offset = pagination_args()
    unread_only = request.args.get("unread_only", "false").lower() in ("1", "true", "yes")
    items, total = NotificationService.list_for_recipient(
        current_actor(), unread_only=unread_only, limit=limit, offset=offset,
    )
    return jsonify({"items": [n.to_dict() for n in items], "total": total})


@notification_bp.route("/unread-count", methods=["GET"])
def unread_count():
    return jsonify({"unread_count": NotificationService.unread_count(current_actor())})


@notification_bp.route("/<int:notification_id>/read", methods=["PUT"])
def mark_read(notification_id):
    notif = NotificationService.mark_read(notification_id, current_actor())
    if notif is None:
        return api_error(E.NOT_FOUND, "Notification not found")
    return jsonify(notif.to_dict())


@notification_bp.route("/read-all", methods=["PUT"])
def mark_all_read():
    return jsonify({"marked_read": NotificationService.mark_all_read(current_actor())})
