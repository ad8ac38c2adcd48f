"""
Per-blueprint request limits (Flask-Limiter, keyed by remote IP).

The Limiter in ``prodflow/__init__.py`` has no default limits; this module
attaches them once the blueprints are registered:

    workflow_bp, user_bp   60/minute on POST, PUT and DELETE
    notification_bp        600/minute (dashboards poll it)
    health_bp              exempt

Nothing is limited when TESTING is set.
"""

import logging

logger = logging.getLogger(__name__)

WRITE_LIMIT = "60/minute"
POLL_LIMIT = "600/minute"

_WRITE_METHODS = ["POST", "PUT", "DELETE"]


def init_rate_limits(app, limiter):
    if app.config.get("TESTING"):
        logger.info("Rate limits skipped under TESTING")
        return

    blueprints = app.blueprints
    for name in ("workflow_bp", "user_bp"):
        if name in blueprints:
            limiter.limit(WRITE_LIMIT, methods=_WRITE_METHODS)(blueprints[name])
    if "notification_bp" in blueprints:
        limiter.limit(POLL_LIMIT)(blueprints["notification_bp"])
    if "health_bp" in blueprints:
        limiter.exempt(blueprints["health_bp"])

    logger.info("Rate limits applied: writes=%s polling=%s", WRITE_LIMIT, POLL_LIMIT)
