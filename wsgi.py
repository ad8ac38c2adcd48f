"""
Flask-Migrate / Alembic entry point.

Usage:
    flask db upgrade
    flask seed-users
"""

from prodflow import create_app

app = create_app()
