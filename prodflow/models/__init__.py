"""
Production Workflow Service
Shared SQLAlchemy instance.

Usage:
    from prodflow.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
