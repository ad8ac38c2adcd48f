"""
Production Workflow Service
User directory model.

Models:
    - User: a login. Department logins are shared by every operator working
            that stage, which is why completions carry a free-text
            ``completed_by`` instead of a user FK.
"""

from datetime import datetime, timezone

from prodflow.core.departments import ADMIN_ROLE
from prodflow.models import db


class User(db.Model):
    """Admin or shared department login. ``role`` is ``admin`` or a department name."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), nullable=False, unique=True)
    name = db.Column(db.String(150), nullable=False)
    role = db.Column(db.String(40), nullable=False, index=True,
                     comment="admin | <department name>")
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    notifications = db.relationship(
        "Notification", backref="user", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    def to_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "name": self.name,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.username} [{self.role}]>"
