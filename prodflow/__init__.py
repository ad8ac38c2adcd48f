"""
Production Workflow Service.

    from prodflow import create_app
    app = create_app()            # APP_ENV, else "development"
    app = create_app("testing")

Startup order: config, logging, extensions, request timing, tables, cache and
workflow engine, blueprints, CLI, error handlers, rate limits.
"""

import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as sa_engine, event as sa_event
from sqlalchemy.exc import SQLAlchemyError

from prodflow.config import config
from prodflow.models import db
from prodflow.middleware.logging_config import configure_logging
from prodflow.middleware.rate_limiter import init_rate_limits
from prodflow.middleware.timing import init_request_timing
from prodflow.utils.errors import E

logger = logging.getLogger(__name__)


@sa_event.listens_for(sa_engine.Engine, "connect")
def _sqlite_foreign_keys(dbapi_conn, _record):
    # Progress records and notifications cascade from activities
    if "sqlite" not in type(dbapi_conn).__module__:
        return
    cur = dbapi_conn.cursor()
    cur.execute("PRAGMA foreign_keys=ON")
    cur.close()


migrate = Migrate()
# Limits are attached per blueprint in init_rate_limits
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


def _init_extensions(app):
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    origins = [o.strip() for o in app.config.get("CORS_ORIGINS", "*").split(",") if o.strip()]
    if origins and origins != ["*"]:
        CORS(app, origins=origins)
    else:
        CORS(app)


def _create_tables(app):
    from prodflow.models import notification, user, workflow  # noqa: F401

    with app.app_context():
        try:
            db.create_all()
        except SQLAlchemyError as exc:
            app.logger.warning("Table creation skipped: %s", exc)
        else:
            app.logger.debug("Tables ensured")


def _register_blueprints(app):
    from prodflow.blueprints.health_bp import health_bp
    from prodflow.blueprints.notification_bp import notification_bp
    from prodflow.blueprints.user_bp import user_bp
    from prodflow.blueprints.workflow_bp import workflow_bp

    for bp in (workflow_bp, notification_bp, user_bp, health_bp):
        app.register_blueprint(bp)


def _register_cli(app):
    @app.cli.command("seed-users")
    def seed_users_cmd():
        """Create the admin login and one shared login per department."""
        from prodflow.services.directory import seed_default_users

        created = seed_default_users(app.extensions["workflow_engine"].departments)
        logger.info("Seeded %s new users.", created)
        click.echo(f"Seeded {created} new users.")


def _register_error_handlers(app):
    @app.errorhandler(404)
    def _not_found(_exc):
        return {"error": "Not found", "code": E.NOT_FOUND, "path": request.path}, 404

    @app.errorhandler(405)
    def _method_not_allowed(_exc):
        return {"error": "Method not allowed", "code": E.METHOD_NOT_ALLOWED}, 405

    @app.errorhandler(429)
    def _too_many_requests(exc):
        return {"error": "Too many requests", "retry_after": exc.description}, 429

    @app.errorhandler(500)
    def _internal(exc):
        logger.error("Unhandled error on %s %s: %s", request.method, request.path, exc,
                     exc_info=True)
        return {"error": "Internal server error", "code": E.INTERNAL}, 500


def create_app(config_name=None):
    """Build the application for ``config_name`` (development, testing or production)."""
    from prodflow.services.cache_service import init_cache
    from prodflow.services.workflow_engine import init_workflow

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name or os.getenv("APP_ENV", "development")])
    os.makedirs(app.instance_path, exist_ok=True)

    configure_logging(app)
    _init_extensions(app)
    init_request_timing(app)
    _create_tables(app)

    init_cache(app)
    init_workflow(app)

    _register_blueprints(app)
    _register_cli(app)
    _register_error_handlers(app)
    init_rate_limits(app, limiter)
    return app
