"""
Progress Ledger - per-activity, per-department status records.

The ledger is the source of truth for an activity's position in the line.

Rules:
  - Exactly one record is active per unfinished activity: the first pending
    record in department order, all earlier ones completed.
  - Every write is a conditional UPDATE whose predicate requires the status
    the caller observed. A writer that changes zero rows lost a race and gets
    StateError; this is the only concurrency control.
  - The ledger flushes but never commits. The workflow engine owns the
    transaction so the ledger write, the activity status and the
    notification rows land together.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select, update

from prodflow.core.departments import DepartmentSequence
from prodflow.core.exceptions import NotFoundError, StateError, ValidationError
from prodflow.models import db
from prodflow.models.workflow import Activity, ProgressRecord, ProgressTransition, derive_status
from prodflow.utils.helpers import clean_text

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require_actor(value: str | None, field: str) -> str:
    return clean_text(value, field)


class ProgressLedger:
    """Reads and conditionally writes ProgressRecord rows for one department line."""

    def __init__(self, departments: DepartmentSequence) -> None:
        self.departments = departments

    # ── Creation ─────────────────────────────────────────────────────────

    def create_ledger(self, activity: Activity) -> list[ProgressRecord]:
        """Create one pending record per department, in line order.

        Raises:
            ValidationError: If the department sequence is empty.
        """
        if self.departments.is_empty:
            raise ValidationError("Cannot create a ledger: the department sequence is empty")

        if activity.id is None:
            db.session.flush()
        records = [
            ProgressRecord(activity_id=activity.id, department=dept, position=i, status="pending")
            for i, dept in enumerate(self.departments)
        ]
        db.session.add_all(records)
        db.session.flush()
        return records

    # ── Reads ────────────────────────────────────────────────────────────

    def records(self, activity_id: int) -> list[ProgressRecord]:
        """All records of an activity ordered by department position."""
        return list(db.session.execute(
            select(ProgressRecord)
            .where(ProgressRecord.activity_id == activity_id)
            .order_by(ProgressRecord.position)
        ).scalars())

    def _records_or_404(self, activity_id: int) -> list[ProgressRecord]:
        records = self.records(activity_id)
        if not records:
            if db.session.get(Activity, activity_id) is None:
                raise NotFoundError(resource="Activity", resource_id=activity_id)
            raise NotFoundError(resource="ProgressRecord", resource_id=f"activity={activity_id}")
        return records

    @staticmethod
    def _active_of(records: list[ProgressRecord]) -> ProgressRecord | None:
        for record in records:
            if record.status == "pending":
                return record
        return None

    def get_active(self, activity_id: int) -> ProgressRecord | None:
        """First pending record in department order; None once every record is completed."""
        return self._active_of(self._records_or_404(activity_id))

    def get_record(self, activity_id: int, department: str) -> ProgressRecord:
        dept = self.departments.require(department)
        record = db.session.execute(
            select(ProgressRecord).where(
                ProgressRecord.activity_id == activity_id,
                ProgressRecord.department == dept,
            )
        ).scalar_one_or_none()
        if record is None:
            raise NotFoundError(resource="ProgressRecord", resource_id=f"{activity_id}/{dept}")
        return record

    def transitions(self, activity_id: int) -> list[ProgressTransition]:
        """Audit log of the activity, oldest first."""
        return list(db.session.execute(
            select(ProgressTransition)
            .where(ProgressTransition.activity_id == activity_id)
            .order_by(ProgressTransition.id)
        ).scalars())

    # ── Conditional writes ───────────────────────────────────────────────

    def _transition(
        self,
        record: ProgressRecord,
        expected_status: str,
        kind: str,
        *,
        actor: str,
        at: datetime,
        notes: str | None,
        values: dict,
    ) -> bool:
        """Apply one logged transition to *record*.

        The new status is the one *kind* implies for the log tail. The UPDATE
        only matches while the row still has *expected_status*; on a miss
        nothing is logged and False is returned.
        """
        values = {**values, "status": derive_status(kind)}
        result = db.session.execute(
            update(ProgressRecord)
            .where(
                ProgressRecord.id == record.id,
                ProgressRecord.status == expected_status,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        db.session.expire(record, list(values))
        record.transitions.append(ProgressTransition(
            activity_id=record.activity_id,
            department=record.department,
            kind=kind,
            actor=actor,
            notes=notes,
            created_at=at,
        ))
        return True

    def _require_active(self, activity_id: int, department: str) -> tuple[list[ProgressRecord], ProgressRecord]:
        records = self._records_or_404(activity_id)
        active = self._active_of(records)
        if active is None:
            raise StateError(
                f"Activity {activity_id} has already passed every department",
                activity_id=activity_id, department=department,
            )
        if active.department != department:
            raise StateError(
                f"Department '{department}' is not active for activity {activity_id} "
                f"(active: '{active.department}')",
                activity_id=activity_id, department=department,
            )
        return records, active

    def complete(
        self,
        activity_id: int,
        department: str,
        completed_by: str,
        notes: str | None = None,
    ) -> ProgressRecord:
        """Complete the active department's record.

        If the next department's record had been closed by a return, it is
        reopened so that it becomes the active one.

        Raises:
            ValidationError: Blank completed_by or unknown department.
            NotFoundError:   Activity has no ledger.
            StateError:      Department not active, or a concurrent writer won.
        """
        dept = self.departments.require(department)
        actor = _require_actor(completed_by, "completed_by")
        notes = clean_text(notes, "notes", required=False)
        records, active = self._require_active(activity_id, dept)

        now = _utcnow()
        if not self._transition(
            active, "pending", "completed", actor=actor, at=now, notes=notes,
            values={"completed_by": actor, "completed_at": now, "notes": notes},
        ):
            raise StateError(
                f"Department '{dept}' of activity {activity_id} was closed by a concurrent request",
                activity_id=activity_id, department=dept,
            )

        idx = records.index(active)
        following = records[idx + 1] if idx + 1 < len(records) else None
        if following is not None and following.status == "completed":
            if not self._transition(
                following, "completed", "reopened", actor=actor, at=now, notes=notes,
                values={"completed_by": None, "completed_at": None, "notes": None},
            ):
                raise StateError(
                    f"Department '{following.department}' of activity {activity_id} "
                    "changed during the advance",
                    activity_id=activity_id, department=following.department,
                )

        db.session.flush()
        logger.debug("Ledger: activity=%s %s completed by %s", activity_id, dept, actor)
        return active

    def return_to_previous(
        self,
        activity_id: int,
        current_department: str,
        returned_by: str,
        notes: str | None = None,
    ) -> tuple[ProgressRecord, ProgressRecord]:
        """Send the activity back exactly one department.

        The current record is closed and attributed to the returner (kind
        ``returned``); the previous record is reset to pending with its
        completion metadata cleared and returned_by/returned_at set. Both
        writes belong to the caller's transaction; if either changes zero rows
        nothing must be committed.

        Returns:
            (previous, current) records after the transition.

        Raises:
            ValidationError: Blank returned_by or unknown department.
            StateError:      First department ("no previous department"), not
                             active, or a concurrent writer won.
        """
        dept = self.departments.require(current_department)
        actor = _require_actor(returned_by, "returned_by")
        notes = clean_text(notes, "notes", required=False)
        if self.departments.previous(dept) is None:
            raise StateError(
                f"Cannot return activity {activity_id}: no previous department before '{dept}'",
                activity_id=activity_id, department=dept,
            )
        records, current = self._require_active(activity_id, dept)
        previous = records[records.index(current) - 1]

        now = _utcnow()
        closed = self._transition(
            current, "pending", "returned", actor=actor, at=now, notes=notes,
            values={"completed_by": actor, "completed_at": now, "notes": notes},
        )
        reset = closed and self._transition(
            previous, "completed", "reset", actor=actor, at=now, notes=notes,
            values={"completed_by": None, "completed_at": None,
                    "returned_by": actor, "returned_at": now, "notes": notes},
        )
        if not (closed and reset):
            raise StateError(
                f"Activity {activity_id} changed while returning it from '{dept}'",
                activity_id=activity_id, department=dept,
            )

        db.session.flush()
        logger.debug("Ledger: activity=%s returned %s → %s by %s",
                     activity_id, dept, previous.department, actor)
        return previous, current
