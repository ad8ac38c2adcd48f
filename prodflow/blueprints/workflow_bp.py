"""
Production Workflow Service
Workflow Blueprint.

Provides:
    - Activity CRUD (create, list/search, detail, hard delete)
    - Per-activity progress and transition history
    - Advance (complete the active department) and return (one step back)
    - Department dashboards: pending list and completion history
    - Aggregate stats for the admin dashboard

All business rules live in WorkflowEngine; routes only translate JSON.
"""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request

from prodflow.services.workflow_engine import WorkflowEngine
from prodflow.utils.errors import register_workflow_error_handlers
from prodflow.utils.helpers import json_body

logger = logging.getLogger(__name__)

workflow_bp = Blueprint("workflow_bp", __name__, url_prefix="/api/v1")
register_workflow_error_handlers(workflow_bp)


def _engine() -> WorkflowEngine:
    return current_app.extensions["workflow_engine"]


# ═══════════════════════════════════════════════════════════════════════════
#  ACTIVITIES
# ═══════════════════════════════════════════════════════════════════════════


@workflow_bp.route("/activities", methods=["GET"])
def list_activities():
    """List activities with their current department.

    Query params:
        status  - in_progress | completed
        q       - case-insensitive search over title and client
    """
    items = _engine().list_activities(
        status=request.args.get("status") or None,
        search=request.args.get("q") or None,
    )
    return jsonify({"items": items, "total": len(items)})


@workflow_bp.route("/activities", methods=["POST"])
def create_activity():
    data = json_body()
    created_by = data.get("created_by")
    activity = _engine().create_activity(data, created_by=created_by)
    return jsonify(_engine().get_activity(activity.id)), 201


@workflow_bp.route("/activities/<int:activity_id>", methods=["GET"])
def get_activity(activity_id):
    return jsonify(_engine().get_activity(activity_id))


@workflow_bp.route("/activities/<int:activity_id>", methods=["DELETE"])
def delete_activity(activity_id):
    _engine().delete_activity(activity_id)
    return jsonify({"deleted": True, "id": activity_id})


@workflow_bp.route("/activities/<int:activity_id>/progress", methods=["GET"])
def get_progress(activity_id):
    return jsonify({"activity_id": activity_id, "progress": _engine().get_progress(activity_id)})


@workflow_bp.route("/activities/<int:activity_id>/history", methods=["GET"])
def get_history(activity_id):
    """Append-only transition log, oldest first."""
    return jsonify({"activity_id": activity_id, "history": _engine().get_history(activity_id)})


# ═══════════════════════════════════════════════════════════════════════════
#  TRANSITIONS
# ═══════════════════════════════════════════════════════════════════════════


@workflow_bp.route("/activities/<int:activity_id>/complete", methods=["POST"])
def complete_department(activity_id):
    """Close the active department.

    Body: {department, completed_by, notes?}
    """
    data = json_body()
    result = _engine().advance(
        activity_id,
        data.get("department"),
        data.get("completed_by"),
        notes=data.get("notes"),
    )
    return jsonify(result)


@workflow_bp.route("/activities/<int:activity_id>/return", methods=["POST"])
def return_to_previous(activity_id):
    """Send the activity back one department.

    Body: {department, returned_by, notes?}
    """
    data = json_body()
    result = _engine().revert(
        activity_id,
        data.get("department"),
        data.get("returned_by"),
        notes=data.get("notes"),
    )
    return jsonify(result)


# ═══════════════════════════════════════════════════════════════════════════
#  DEPARTMENTS & STATS
# ═══════════════════════════════════════════════════════════════════════════


@workflow_bp.route("/departments", methods=["GET"])
def list_departments():
    return jsonify({"departments": _engine().departments.as_list()})


@workflow_bp.route("/departments/<department>/activities", methods=["GET"])
def department_activities(department):
    items = _engine().list_active_for_department(department)
    return jsonify({"department": department.lower(), "items": items, "total": len(items)})


@workflow_bp.route("/departments/<department>/completed", methods=["GET"])
def department_completed(department):
    items = _engine().list_completed_for_department(department)
    return jsonify({"department": department.lower(), "items": items, "total": len(items)})


@workflow_bp.route("/stats", methods=["GET"])
def stats():
    return jsonify(_engine().get_stats())
