"""
Production Workflow Service
Workflow domain models.

Models:
    - Activity:            a production ticket moving through the departments
    - ProgressRecord:      one row per (activity, department); unit of workflow state
    - ProgressTransition:  append-only audit log of every record transition

Architecture:
    Activity ──1:N──▶ ProgressRecord ──1:N──▶ ProgressTransition
    Activity ──1:N──▶ Notification

Lifecycle states:
    Activity:        in_progress → completed
    ProgressRecord:  pending → completed  (forward completion or closed by a return)
                     completed → pending  (reset by a return / reopened by an advance)

The ``status`` column on ProgressRecord is the projection of its transition
log tail (see ``derive_status``). It is materialised because the conditional
write that serialises racing operators needs a predicate on it.
"""

from datetime import datetime, timezone

from prodflow.models import db


# ── Constants ────────────────────────────────────────────────────────────────

ACTIVITY_STATUSES = {"in_progress", "completed"}

ACTIVITY_PRIORITIES = {"low", "normal", "high", "urgent"}

PROGRESS_STATUSES = {"pending", "completed"}

# completed: forward completion by an operator of the department
# returned : record closed because the activity was sent back one stage
# reset    : previous record reopened by that return
# reopened : record closed by a return, reactivated by the next forward advance
TRANSITION_KINDS = {"completed", "returned", "reset", "reopened"}

_CLOSING_KINDS = {"completed", "returned"}


def derive_status(last_kind):
    """Return the ProgressRecord status implied by the tail of its transition log."""
    if last_kind in _CLOSING_KINDS:
        return "completed"
    return "pending"


# ═════════════════════════════════════════════════════════════════════════════
# 1. Activity
# ═════════════════════════════════════════════════════════════════════════════


class Activity(db.Model):
    """
    Production ticket.
    Creation attributes are immutable; only ``status`` changes, and only
    through the workflow engine.
    """

    __tablename__ = "activities"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    image = db.Column(db.String(500), nullable=False, comment="Primary image reference")
    quantity = db.Column(db.Integer, nullable=False)
    client_name = db.Column(db.String(200), nullable=True)
    priority = db.Column(db.String(10), nullable=False, default="normal",
                         comment="low | normal | high | urgent")
    deadline = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    status = db.Column(db.String(20), nullable=False, default="in_progress", index=True,
                       comment="in_progress | completed")

    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_activity_quantity_positive"),
        db.CheckConstraint(
            "status IN ('in_progress','completed')", name="ck_activity_status",
        ),
        db.CheckConstraint(
            "priority IN ('low','normal','high','urgent')", name="ck_activity_priority",
        ),
    )

    # ── Relationships ────────────────────────────────────────────────────
    progress_records = db.relationship(
        "ProgressRecord", backref="activity", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
        order_by="ProgressRecord.position",
    )
    notifications = db.relationship(
        "Notification", backref="activity", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "image": self.image,
            "quantity": self.quantity,
            "client_name": self.client_name,
            "priority": self.priority,
            "deadline": self.deadline.isoformat() if self.deadline else None,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "status": self.status,
        }

    def __repr__(self):
        return f"<Activity {self.id}: {self.title[:40]} [{self.status}]>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. ProgressRecord
# ═════════════════════════════════════════════════════════════════════════════


class ProgressRecord(db.Model):
    """
    Per-activity, per-department status row.
    Created eagerly for every department when the activity is created.
    """

    __tablename__ = "activity_progress"

    id = db.Column(db.Integer, primary_key=True)
    activity_id = db.Column(
        db.Integer, db.ForeignKey("activities.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    department = db.Column(db.String(40), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, comment="Index of department in the line")

    status = db.Column(db.String(20), nullable=False, default="pending",
                       comment="pending | completed")
    completed_by = db.Column(db.String(150), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    returned_by = db.Column(db.String(150), nullable=True)
    returned_at = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    __table_args__ = (
        db.UniqueConstraint("activity_id", "department", name="uq_progress_activity_department"),
        db.UniqueConstraint("activity_id", "position", name="uq_progress_activity_position"),
        db.CheckConstraint("status IN ('pending','completed')", name="ck_progress_status"),
        db.Index("ix_progress_department_status", "department", "status"),
    )

    transitions = db.relationship(
        "ProgressTransition", backref="progress", lazy="select",
        cascade="all, delete-orphan", passive_deletes=True,
        order_by="ProgressTransition.id",
    )

    @property
    def last_transition(self):
        return self.transitions[-1] if self.transitions else None

    @property
    def completion_kind(self):
        """``completed`` / ``returned`` for closed records, None while pending."""
        last = self.last_transition
        if self.status != "completed" or last is None:
            return None
        return last.kind

    def to_dict(self):
        return {
            "id": self.id,
            "activity_id": self.activity_id,
            "department": self.department,
            "position": self.position,
            "status": self.status,
            "completion_kind": self.completion_kind,
            "completed_by": self.completed_by,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "returned_by": self.returned_by,
            "returned_at": self.returned_at.isoformat() if self.returned_at else None,
            "notes": self.notes,
        }

    def __repr__(self):
        return f"<ProgressRecord {self.id}: activity={self.activity_id} {self.department} [{self.status}]>"


# ═════════════════════════════════════════════════════════════════════════════
# 3. ProgressTransition
# ═════════════════════════════════════════════════════════════════════════════


class ProgressTransition(db.Model):
    """Append-only log entry. Rows are never updated; they go only with their activity."""

    __tablename__ = "progress_transitions"

    id = db.Column(db.Integer, primary_key=True)
    progress_id = db.Column(
        db.Integer, db.ForeignKey("activity_progress.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    activity_id = db.Column(
        db.Integer, db.ForeignKey("activities.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    department = db.Column(db.String(40), nullable=False)
    kind = db.Column(db.String(20), nullable=False,
                     comment="completed | returned | reset | reopened")
    actor = db.Column(db.String(150), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.CheckConstraint(
            "kind IN ('completed','returned','reset','reopened')", name="ck_transition_kind",
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "progress_id": self.progress_id,
            "activity_id": self.activity_id,
            "department": self.department,
            "kind": self.kind,
            "actor": self.actor,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<ProgressTransition {self.id}: {self.department} {self.kind} by {self.actor}>"
