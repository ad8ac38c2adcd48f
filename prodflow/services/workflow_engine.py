"""
Workflow Engine - orchestrates ledger transitions and the read models built on them.

Business logic for:
    - Activity creation:   activity row + full ledger + first-stage notification
    - Advance:             close the active stage, activate the next (or finish)
    - Revert:              send the activity back exactly one stage
    - Department views:    pending list and completion history per department
    - Admin views:         activity overview, progress, history, stats

Every mutation runs as one unit of work: ledger writes, activity status and
notification rows are committed together, then the affected cache scopes are
evicted before the call returns. A failed eviction is logged and swallowed;
a failed write rolls everything back and propagates.

Flow:
    caller → engine.advance() → ledger.complete() (conditional UPDATE)
           → notifier.notify() → COMMIT → cache.invalidate(scopes)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import distinct, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import aliased

from prodflow.core.departments import DepartmentSequence
from prodflow.core.exceptions import PersistenceError, ValidationError, WorkflowError
from prodflow.models import db
from prodflow.models.notification import Notification
from prodflow.models.workflow import ACTIVITY_PRIORITIES, ACTIVITY_STATUSES, Activity, ProgressRecord
from prodflow.services import directory
from prodflow.services.cache_service import (
    AllCompletedLists,
    AllDepartmentLists,
    CacheService,
    CompletedList,
    DepartmentList,
    Stats,
    UserNotifications,
    init_cache,
)
from prodflow.services.notification import NotificationService
from prodflow.services.progress_ledger import ProgressLedger
from prodflow.utils.helpers import clean_text

logger = logging.getLogger(__name__)

# Read path → TTL in milliseconds
DEFAULT_TTLS = {
    "department": 5000,
    "completed": 10000,
    "notifications": 2000,
    "stats": 5000,
}

COMPLETED_MARKER = "completed"


def _parse_deadline(value):
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(
                "deadline must be an ISO-8601 date or datetime",
                details={"deadline": str(value)},
            ) from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _validate_activity(data: dict) -> dict:
    """Normalise creation input; raise ValidationError listing every bad field."""
    if not isinstance(data, dict):
        raise ValidationError("Activity data must be an object")

    errors = {}
    cleaned = {}

    def text(field, *, required=True, lower=False):
        try:
            cleaned[field] = clean_text(data.get(field), field, required=required, lower=lower)
        except ValidationError as exc:
            errors[field] = exc.details.get(field, str(exc))

    text("title")
    text("description")
    text("image")
    text("client_name", required=False)
    text("notes", required=False)
    text("priority", required=False, lower=True)
    cleaned["priority"] = cleaned.get("priority") or "normal"

    if "title" not in errors and len(cleaned["title"]) > 300:
        errors["title"] = "must be at most 300 characters"

    if "priority" not in errors and cleaned["priority"] not in ACTIVITY_PRIORITIES:
        errors["priority"] = f"must be one of: {', '.join(sorted(ACTIVITY_PRIORITIES))}"

    quantity = data.get("quantity")
    if isinstance(quantity, bool):
        quantity = None
    try:
        quantity = int(quantity)
    except (TypeError, ValueError):
        errors["quantity"] = "must be an integer"
    else:
        if quantity <= 0:
            errors["quantity"] = "must be greater than zero"

    deadline = None
    try:
        deadline = _parse_deadline(data.get("deadline"))
    except ValidationError as exc:
        errors["deadline"] = str(exc)

    if errors:
        raise ValidationError("Invalid activity data", details=errors)

    return {**cleaned, "quantity": quantity, "deadline": deadline}


class WorkflowEngine:
    """Department workflow state machine over the progress ledger.

    States per activity: department index 0..n, then COMPLETED.
        advance:  i → i+1, or n → COMPLETED
        revert:   i → i-1 (illegal at 0)
    """

    def __init__(
        self,
        departments: DepartmentSequence,
        cache: CacheService,
        ledger: ProgressLedger | None = None,
        notifier: NotificationService | None = None,
        ttls: dict | None = None,
    ) -> None:
        self.departments = departments
        self.cache = cache
        self.ttls = {**DEFAULT_TTLS, **(ttls or {})}
        self.ledger = ledger or ProgressLedger(departments)
        self.notifier = notifier or NotificationService(cache, feed_ttl_ms=self.ttls["notifications"])

    # ── Unit of work / invalidation ──────────────────────────────────────

    @contextmanager
    def _unit_of_work(self, operation: str):
        try:
            yield
            db.session.commit()
        except WorkflowError:
            db.session.rollback()
            raise
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Persistence failure during %s", operation)
            raise PersistenceError(f"{operation} failed: database error", operation=operation) from exc
        except Exception:
            db.session.rollback()
            logger.exception("Unexpected failure during %s; rolled back", operation)
            raise

    def _invalidate(self, scopes, recipient_ids=()) -> None:
        scopes = list(scopes) + [UserNotifications(uid) for uid in set(recipient_ids)]
        try:
            self.cache.invalidate(*scopes)
        except Exception:
            logger.exception(
                "Cache invalidation failed for %d scope(s)", len(scopes),
                extra={"event_type": "cache_invalidation_failed"},
            )

    # ── Active-record queries ────────────────────────────────────────────

    @staticmethod
    def _active_records_stmt():
        """Pending records with no pending record earlier in the same activity."""
        earlier = aliased(ProgressRecord)
        blocked = (
            select(earlier.id)
            .where(
                earlier.activity_id == ProgressRecord.activity_id,
                earlier.position < ProgressRecord.position,
                earlier.status == "pending",
            )
            .exists()
        )
        return select(ProgressRecord).where(ProgressRecord.status == "pending", ~blocked)

    def _current_departments(self, activity_ids=None) -> dict[int, str]:
        stmt = self._active_records_stmt()
        if activity_ids is not None:
            stmt = stmt.where(ProgressRecord.activity_id.in_(activity_ids))
        return {r.activity_id: r.department for r in db.session.execute(stmt).scalars()}

    # ── Activities ───────────────────────────────────────────────────────

    def create_activity(self, data: dict, created_by: int | None = None) -> Activity:
        """Insert an activity with one pending record per department.

        Raises:
            ValidationError: Bad input or empty department sequence.
            NotFoundError:   *created_by* is not a known user.
        """
        payload = _validate_activity(data or {})
        if created_by is not None:
            if isinstance(created_by, bool) or not isinstance(created_by, int):
                raise ValidationError("created_by must be a user id",
                                      details={"created_by": "expected integer"})
            directory.get_user(created_by)

        with self._unit_of_work("create_activity"):
            activity = Activity(**payload, created_by=created_by, status="in_progress")
            db.session.add(activity)
            db.session.flush()
            self.ledger.create_ledger(activity)
            first = self.departments.first
            recipients = [u.id for u in directory.list_users_by_department(first)]
            self.notifier.notify(recipients, activity.id, f"New activity: {activity.title}")

        self._invalidate([DepartmentList(first), Stats()], recipients)
        logger.info(
            "Activity created id=%s title=%s", activity.id, activity.title,
            extra={"activity_id": activity.id, "department": first, "event_type": "activity_created"},
        )
        return activity

    def get_activity(self, activity_id: int) -> dict:
        activity = directory.get_activity(activity_id)
        records = self.ledger.records(activity_id)
        active = next((r for r in records if r.status == "pending"), None)
        result = activity.to_dict()
        result["current_department"] = active.department if active else COMPLETED_MARKER
        result["progress"] = [r.to_dict() for r in records]
        return result

    def list_activities(self, status: str | None = None, search: str | None = None) -> list[dict]:
        """Admin overview: every activity with its current department."""
        stmt = select(Activity).order_by(Activity.created_at.desc(), Activity.id.desc())
        if status:
            if status not in ACTIVITY_STATUSES:
                raise ValidationError(
                    f"status must be one of: {', '.join(sorted(ACTIVITY_STATUSES))}",
                    details={"status": status},
                )
            stmt = stmt.where(Activity.status == status)
        if search:
            term = f"%{search.strip()}%"
            stmt = stmt.where(or_(Activity.title.ilike(term), Activity.client_name.ilike(term)))

        activities = list(db.session.execute(stmt).scalars())
        current = self._current_departments([a.id for a in activities]) if activities else {}
        result = []
        for activity in activities:
            d = activity.to_dict()
            d["current_department"] = current.get(activity.id, COMPLETED_MARKER)
            result.append(d)
        return result

    def delete_activity(self, activity_id: int) -> None:
        """Hard delete; progress, transitions and notifications cascade."""
        with self._unit_of_work("delete_activity"):
            activity = directory.get_activity(activity_id)
            recipients = list(db.session.execute(
                select(distinct(Notification.user_id)).where(Notification.activity_id == activity_id)
            ).scalars())
            db.session.delete(activity)

        self._invalidate([AllDepartmentLists(), AllCompletedLists(), Stats()], recipients)
        logger.info(
            "Activity deleted id=%s", activity_id,
            extra={"activity_id": activity_id, "event_type": "activity_deleted"},
        )

    # ── Department views ─────────────────────────────────────────────────

    def list_active_for_department(self, department: str) -> list[dict]:
        """Activities whose active stage is *department*; deadline asc, undated last."""
        dept = self.departments.require(department)

        def _load():
            active = self._active_records_stmt().where(ProgressRecord.department == dept).subquery()
            stmt = (
                select(Activity)
                .join(active, active.c.activity_id == Activity.id)
                .where(Activity.status == "in_progress")
                .order_by(Activity.deadline.is_(None), Activity.deadline.asc(), Activity.id)
            )
            rows = []
            for activity in db.session.execute(stmt).scalars():
                d = activity.to_dict()
                d["current_department"] = dept
                rows.append(d)
            return rows

        return self.cache.cached_query(DepartmentList(dept).key, _load, self.ttls["department"])

    def list_completed_for_department(self, department: str) -> list[dict]:
        """``{activity, progress}`` for each closed record of *department*, newest first."""
        dept = self.departments.require(department)

        def _load():
            stmt = (
                select(Activity, ProgressRecord)
                .join(ProgressRecord, ProgressRecord.activity_id == Activity.id)
                .where(ProgressRecord.department == dept, ProgressRecord.status == "completed")
                .order_by(ProgressRecord.completed_at.desc(), ProgressRecord.id.desc())
            )
            return [
                {"activity": activity.to_dict(), "progress": record.to_dict()}
                for activity, record in db.session.execute(stmt).all()
            ]

        return self.cache.cached_query(CompletedList(dept).key, _load, self.ttls["completed"])

    def get_progress(self, activity_id: int) -> list[dict]:
        directory.get_activity(activity_id)
        return [r.to_dict() for r in self.ledger.records(activity_id)]

    def get_history(self, activity_id: int) -> list[dict]:
        directory.get_activity(activity_id)
        return [t.to_dict() for t in self.ledger.transitions(activity_id)]

    # ── Transitions ──────────────────────────────────────────────────────

    def advance(
        self,
        activity_id: int,
        department: str,
        completed_by: str,
        notes: str | None = None,
    ) -> dict:
        """Complete the active stage and hand the activity to the next one.

        At the last department the activity itself becomes ``completed`` and
        the admins are notified instead.

        Raises:
            ValidationError: Blank completed_by or unknown department.
            NotFoundError:   Unknown activity.
            StateError:      Department not active, or a concurrent advance won.
            PersistenceError: Database failure; nothing was committed.
        """
        dept = self.departments.require(department)
        nxt = self.departments.next(dept)

        with self._unit_of_work("advance"):
            activity = directory.get_activity(activity_id)
            record = self.ledger.complete(activity_id, dept, completed_by, notes)
            if nxt is None:
                activity.status = "completed"
                recipients = [u.id for u in directory.list_admins()]
                message = f"{activity.title} finished by {dept}"
            else:
                recipients = [u.id for u in directory.list_users_by_department(nxt)]
                message = f"New activity available: {activity.title}"
            self.notifier.notify(recipients, activity_id, message)

        scopes = [DepartmentList(dept), CompletedList(dept), Stats()]
        if nxt is not None:
            scopes.append(DepartmentList(nxt))
        self._invalidate(scopes, recipients)

        logger.info(
            "Activity %s advanced from %s to %s by %s",
            activity_id, dept, nxt or COMPLETED_MARKER, record.completed_by,
            extra={"activity_id": activity_id, "department": dept,
                   "actor": record.completed_by, "event_type": "advance"},
        )
        return {
            "activity_id": activity_id,
            "department": dept,
            "next_department": nxt,
            "activity_status": activity.status,
            "progress": record.to_dict(),
        }

    def revert(
        self,
        activity_id: int,
        current_department: str,
        returned_by: str,
        notes: str | None = None,
    ) -> dict:
        """Send the activity back one stage with a justification.

        Raises:
            ValidationError: Blank returned_by or unknown department.
            NotFoundError:   Unknown activity.
            StateError:      First department, department not active, or lost race.
            PersistenceError: Database failure; nothing was committed.
        """
        dept = self.departments.require(current_department)
        after = self.departments.next(dept)

        with self._unit_of_work("revert"):
            activity = directory.get_activity(activity_id)
            previous, current = self.ledger.return_to_previous(activity_id, dept, returned_by, notes)
            prev_dept = previous.department
            recipients = [u.id for u in directory.list_users_by_department(prev_dept)]
            message = f"Activity returned by {dept}: {activity.title}"
            if current.notes:
                message += f" ({current.notes})"
            self.notifier.notify(recipients, activity_id, message)

        scopes = [
            DepartmentList(dept), DepartmentList(prev_dept),
            CompletedList(dept), CompletedList(prev_dept), Stats(),
        ]
        if after is not None:
            scopes.append(DepartmentList(after))
        self._invalidate(scopes, recipients)

        logger.info(
            "Activity %s returned from %s to %s by %s",
            activity_id, dept, prev_dept, current.completed_by,
            extra={"activity_id": activity_id, "department": dept,
                   "actor": current.completed_by, "event_type": "revert"},
        )
        return {
            "activity_id": activity_id,
            "department": dept,
            "previous_department": prev_dept,
            "previous": previous.to_dict(),
            "current": current.to_dict(),
        }

    # ── Stats ────────────────────────────────────────────────────────────

    def get_stats(self) -> dict:
        """Aggregate counters: totals by activity status and pending load per department."""

        def _load():
            by_status = dict(db.session.execute(
                select(Activity.status, func.count(Activity.id)).group_by(Activity.status)
            ).all())
            active = self._active_records_stmt().subquery()
            per_dept = dict(db.session.execute(
                select(active.c.department, func.count()).group_by(active.c.department)
            ).all())
            return {
                "total": sum(by_status.values()),
                "in_progress": by_status.get("in_progress", 0),
                "completed": by_status.get("completed", 0),
                "by_department": {d: per_dept.get(d, 0) for d in self.departments},
            }

        return self.cache.cached_query(Stats().key, _load, self.ttls["stats"])


def init_workflow(app) -> WorkflowEngine:
    """Build the app's engine from config and register it on the app."""
    cache = app.extensions.get("cache_service") or init_cache(app)
    departments = DepartmentSequence.from_config(app.config.get("WORKFLOW_DEPARTMENTS"))
    engine = WorkflowEngine(
        departments,
        cache,
        ttls={
            "department": app.config.get("CACHE_TTL_DEPARTMENT_MS", DEFAULT_TTLS["department"]),
            "completed": app.config.get("CACHE_TTL_COMPLETED_MS", DEFAULT_TTLS["completed"]),
            "notifications": app.config.get("CACHE_TTL_NOTIFICATIONS_MS", DEFAULT_TTLS["notifications"]),
            "stats": app.config.get("CACHE_TTL_STATS_MS", DEFAULT_TTLS["stats"]),
        },
    )
    app.extensions["workflow_engine"] = engine
    logger.info("Workflow engine ready: %s", " → ".join(departments) or "(no departments)")
    return engine
