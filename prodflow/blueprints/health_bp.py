"""
Health checks for the load balancer and for operators.

    GET /api/v1/health/ready   process is up
    GET /api/v1/health/live    database round-trip, cache backend, line layout

Only the database decides the overall status. A cache outage means stale
dashboards, so it is reported but still answers 200.
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from prodflow.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


def _check_database():
    started = time.perf_counter()
    try:
        db.session.execute(db.text("SELECT 1"))
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Database check failed: %s", exc)
        return {"status": "error", "detail": str(exc)}
    return {"status": "ok", "latency_ms": round((time.perf_counter() - started) * 1000, 1)}


def _check_cache():
    cache = current_app.extensions.get("cache_service")
    if cache is None:
        return {"status": "skipped", "detail": "cache not initialised"}
    result = cache.health_check()
    if result["status"] != "ok":
        logger.warning("Cache check degraded: %s", result.get("detail"))
    return result


@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    engine = current_app.extensions.get("workflow_engine")
    checks = {
        "database": _check_database(),
        "cache": _check_cache(),
        "app": {
            "name": "Production Workflow Service",
            "departments": engine.departments.as_list() if engine else [],
            "debug": current_app.debug,
            "testing": current_app.testing,
        },
    }
    healthy = checks["database"]["status"] == "ok"
    return jsonify({
        "status": "healthy" if healthy else "degraded",
        "checks": checks,
    }), 200 if healthy else 503
