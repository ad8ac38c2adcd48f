"""
Production Workflow Service
Notification Blueprint.

Provides:
    - Per-user notification feed and unread badge count
    - Mark one / mark all as read

Notifications are only ever created by workflow transitions, so there is no
create endpoint here.
"""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request

from prodflow.services import directory
from prodflow.services.notification import NotificationService
from prodflow.utils.errors import register_workflow_error_handlers
from prodflow.utils.helpers import json_body

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notification_bp", __name__, url_prefix="/api/v1")
register_workflow_error_handlers(notification_bp)


def _notifier() -> NotificationService:
    return current_app.extensions["workflow_engine"].notifier


@notification_bp.route("/users/<int:user_id>/notifications", methods=["GET"])
def list_notifications(user_id):
    """Feed for one user, newest first.

    Query params:
        unread - "true" to return only unread items
    """
    directory.get_user(user_id)
    items = _notifier().list_for_user(user_id)
    if request.args.get("unread", "").lower() in ("1", "true", "yes"):
        items = [n for n in items if not n["is_read"]]
    return jsonify({"items": items, "total": len(items)})


@notification_bp.route("/users/<int:user_id>/notifications/unread-count", methods=["GET"])
def unread_count(user_id):
    directory.get_user(user_id)
    return jsonify({"user_id": user_id, "unread_count": _notifier().unread_count(user_id)})


@notification_bp.route("/notifications/<int:notification_id>/read", methods=["PUT"])
def mark_read(notification_id):
    """Body (optional): {user_id} - rejects notifications owned by someone else."""
    data = json_body()
    notif = _notifier().mark_read(notification_id, user_id=data.get("user_id"))
    return jsonify(notif.to_dict())


@notification_bp.route("/users/<int:user_id>/notifications/read-all", methods=["POST"])
def mark_all_read(user_id):
    directory.get_user(user_id)
    count = _notifier().mark_all_read(user_id)
    return jsonify({"user_id": user_id, "marked_read": count})
