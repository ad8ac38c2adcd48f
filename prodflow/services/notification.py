"""
Production Workflow Service
Notification Service.

Persists notification rows as a side effect of workflow transitions and
serves the per-user feeds. Delivery to a live client (push, polling, sound)
happens downstream and is not handled here.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timezone

from sqlalchemy import func, select, update

from prodflow.core.exceptions import NotFoundError, StateError, ValidationError
from prodflow.models import db
from prodflow.models.notification import Notification
from prodflow.services.cache_service import CacheService, UserNotifications

logger = logging.getLogger(__name__)

NOTIFICATION_FEED_TTL_MS = 2000


class NotificationService:
    """Creates and queries notifications; keeps each user's cached feed honest."""

    def __init__(self, cache: CacheService, feed_ttl_ms: int = NOTIFICATION_FEED_TTL_MS) -> None:
        self.cache = cache
        self.feed_ttl_ms = feed_ttl_ms

    # ── Create ────────────────────────────────────────────────────────────

    def notify(self, user_ids: Iterable[int], activity_id: int, message: str) -> list[Notification]:
        """
        Add one notification per recipient to the current transaction.

        The caller commits (together with the triggering ledger write) and
        then calls ``invalidate_feeds`` for the same recipients.

        Returns:
            The created Notification instances (flushed, not committed).
        """
        recipients = list(dict.fromkeys(user_ids))
        notifications = [
            Notification(user_id=uid, activity_id=activity_id, message=message)
            for uid in recipients
        ]
        db.session.add_all(notifications)
        db.session.flush()
        logger.debug("Queued %d notification(s) for activity=%s", len(notifications), activity_id)
        return notifications

    def invalidate_feeds(self, user_ids: Iterable[int]) -> None:
        self.cache.invalidate(*(UserNotifications(uid) for uid in set(user_ids)))

    # ── Query ─────────────────────────────────────────────────────────────

    def list_for_user(self, user_id: int) -> list[dict]:
        """Notifications for a user, newest first (cached briefly)."""

        def _load():
            rows = db.session.execute(
                select(Notification)
                .where(Notification.user_id == user_id)
                .order_by(Notification.created_at.desc(), Notification.id.desc())
            ).scalars()
            return [n.to_dict() for n in rows]

        return self.cache.cached_query(UserNotifications(user_id).key, _load, self.feed_ttl_ms)

    def unread_count(self, user_id: int) -> int:
        return db.session.execute(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id,
                Notification.is_read.is_(False),
            )
        ).scalar_one()

    # ── Actions ───────────────────────────────────────────────────────────

    def mark_read(self, notification_id: int, user_id: int | None = None) -> Notification:
        """Mark a single notification as read.

        Raises:
            ValidationError: *user_id* is not an integer.
            NotFoundError: Unknown notification.
            StateError:    *user_id* given and the notification belongs to someone else.
        """
        if user_id is not None and (isinstance(user_id, bool) or not isinstance(user_id, int)):
            raise ValidationError("user_id must be an integer", details={"user_id": "expected integer"})
        notif = db.session.get(Notification, notification_id)
        if notif is None:
            raise NotFoundError(resource="Notification", resource_id=notification_id)
        if user_id is not None and notif.user_id != user_id:
            raise StateError(f"Notification {notification_id} belongs to another user")
        notif.mark_read()
        db.session.commit()
        self.invalidate_feeds([notif.user_id])
        return notif

    def mark_all_read(self, user_id: int) -> int:
        """Mark all of a user's unread notifications as read. Returns the count."""
        result = db.session.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True, read_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        self.invalidate_feeds([user_id])
        return result.rowcount
