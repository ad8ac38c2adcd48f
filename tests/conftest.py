"""
Fixtures for the workflow service tests.

One application per session on in-memory SQLite. Every test runs inside an
app context; afterwards the session is rolled back, the tables rebuilt and
the cache flushed, so ids and cached department lists never carry over.
"""

import pytest

from prodflow import create_app
from prodflow.models import db as _db


@pytest.fixture(scope="session")
def app():
    return create_app("testing")


@pytest.fixture(scope="session")
def _schema(app):
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _schema):
    cache = app.extensions["cache_service"]
    with app.app_context():
        cache.clear()
        yield _db.session
        cache.clear()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    return app.test_client()


# ── Services ─────────────────────────────────────────────────────────────


@pytest.fixture()
def engine(app):
    return app.extensions["workflow_engine"]


@pytest.fixture()
def cache(app):
    return app.extensions["cache_service"]


@pytest.fixture()
def ledger(engine):
    return engine.ledger


@pytest.fixture()
def users(engine):
    """Seeded logins keyed by role: ``admin`` plus one per department."""
    from prodflow.models.user import User
    from prodflow.services.directory import seed_default_users

    seed_default_users(engine.departments)
    return {u.role: u for u in _db.session.execute(_db.select(User)).scalars()}


@pytest.fixture()
def make_activity(engine):
    def _make(title="Camisa polo azul", **overrides):
        payload = {
            "title": title,
            "description": "Estampa frontal",
            "image": "uploads/polo.png",
            "quantity": 10,
            **overrides,
        }
        return engine.create_activity(payload)

    return _make
