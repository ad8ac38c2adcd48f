"""
App factory, configuration, CLI and logging tests.
"""

import json
import logging

from prodflow.config import TestingConfig, config
from prodflow.core.departments import DEFAULT_DEPARTMENTS
from prodflow.middleware.logging_config import JSONFormatter
from prodflow.models import db
from prodflow.models.user import User


class TestFactory:
    def test_testing_config(self, app):
        assert app.config["TESTING"] is True
        assert app.config["SQLALCHEMY_DATABASE_URI"] == "sqlite:///:memory:"
        assert config["testing"] is TestingConfig

    def test_extensions_registered(self, app):
        engine = app.extensions["workflow_engine"]
        assert engine.cache is app.extensions["cache_service"]
        assert engine.departments.as_list() == list(DEFAULT_DEPARTMENTS)
        assert engine.ttls == {
            "department": 5000, "completed": 10000, "notifications": 2000, "stats": 5000,
        }

    def test_blueprints_registered(self, app):
        assert {"workflow_bp", "notification_bp", "user_bp", "health_bp"} <= set(app.blueprints)


class TestSeedUsersCommand:
    def test_seed_is_idempotent(self, app):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["seed-users"])
        assert result.exit_code == 0
        assert "Seeded 6 new users." in result.output

        result = runner.invoke(args=["seed-users"])
        assert "Seeded 0 new users." in result.output

        roles = sorted(db.session.execute(db.select(User.role)).scalars())
        assert roles == sorted(["admin", *DEFAULT_DEPARTMENTS])


class TestJSONFormatter:
    def test_workflow_extras_are_emitted(self):
        record = logging.LogRecord(
            "prodflow.services.workflow_engine", logging.INFO, __file__, 1,
            "Activity %s advanced", (7,), None,
        )
        record.activity_id = 7
        record.department = "gabarito"
        record.event_type = "advance"

        entry = json.loads(JSONFormatter().format(record))

        assert entry["message"] == "Activity 7 advanced"
        assert entry["activity_id"] == 7
        assert entry["department"] == "gabarito"
        assert entry["event_type"] == "advance"
        assert "actor" not in entry
