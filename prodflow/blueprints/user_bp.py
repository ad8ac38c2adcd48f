"""
Production Workflow Service
User Blueprint - admin and shared department logins.
"""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from prodflow.services import directory
from prodflow.utils.errors import register_workflow_error_handlers
from prodflow.utils.helpers import json_body

user_bp = Blueprint("user_bp", __name__, url_prefix="/api/v1")
register_workflow_error_handlers(user_bp)


@user_bp.route("/users", methods=["GET"])
def list_users():
    """All logins; ``?role=<department|admin>`` narrows to active users of that role."""
    role = (request.args.get("role") or "").strip().lower()
    users = directory.list_users_by_department(role) if role else directory.list_users()
    return jsonify({"items": [u.to_dict() for u in users], "total": len(users)})


@user_bp.route("/users", methods=["POST"])
def create_user():
    data = json_body()
    departments = current_app.extensions["workflow_engine"].departments
    user = directory.create_user(data, departments)
    return jsonify(user.to_dict()), 201


@user_bp.route("/users/<int:user_id>", methods=["GET"])
def get_user(user_id):
    return jsonify(directory.get_user(user_id).to_dict())


@user_bp.route("/users/<int:user_id>", methods=["DELETE"])
def deactivate_user(user_id):
    """Soft delete: the login stays for history but no longer receives notifications."""
    user = directory.deactivate_user(user_id)
    return jsonify(user.to_dict())
