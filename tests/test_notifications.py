"""
Notification service tests - creation as a transition side effect, cached
per-user feeds, read tracking.
"""

import pytest

from prodflow.core.exceptions import NotFoundError, StateError
from prodflow.models import db
from prodflow.services.cache_service import UserNotifications


class TestFeeds:
    def test_feed_newest_first(self, engine, users, make_activity):
        first = make_activity(title="primeira")
        second = make_activity(title="segunda")
        feed = engine.notifier.list_for_user(users["gabarito"].id)
        assert [n["activity_id"] for n in feed] == [second.id, first.id]
        assert all(not n["is_read"] for n in feed)

    def test_feed_is_cached_and_evicted_on_new_notification(self, engine, cache, users, make_activity):
        uid = users["impressao"].id
        assert engine.notifier.list_for_user(uid) == []
        assert cache.get(UserNotifications(uid).key) == []

        a = make_activity()
        engine.advance(a.id, "gabarito", "Ana")

        assert cache.get(UserNotifications(uid).key) is None
        feed = engine.notifier.list_for_user(uid)
        assert [n["message"] for n in feed] == [f"New activity available: {a.title}"]

    def test_unread_count(self, engine, users, make_activity):
        make_activity()
        make_activity()
        assert engine.notifier.unread_count(users["gabarito"].id) == 2
        assert engine.notifier.unread_count(users["impressao"].id) == 0

    def test_inactive_users_not_notified(self, engine, users, make_activity):
        users["gabarito"].is_active = False
        db.session.commit()
        make_activity()
        assert engine.notifier.unread_count(users["gabarito"].id) == 0


class TestReadTracking:
    def test_mark_read(self, engine, users, make_activity):
        make_activity()
        uid = users["gabarito"].id
        nid = engine.notifier.list_for_user(uid)[0]["id"]

        notif = engine.notifier.mark_read(nid, user_id=uid)

        assert notif.is_read is True
        assert notif.read_at is not None
        assert engine.notifier.unread_count(uid) == 0
        assert engine.notifier.list_for_user(uid)[0]["is_read"] is True

    def test_mark_read_of_another_users_notification(self, engine, users, make_activity):
        make_activity()
        nid = engine.notifier.list_for_user(users["gabarito"].id)[0]["id"]
        with pytest.raises(StateError, match="another user"):
            engine.notifier.mark_read(nid, user_id=users["impressao"].id)

    def test_mark_read_unknown(self, engine):
        with pytest.raises(NotFoundError):
            engine.notifier.mark_read(999)

    def test_mark_all_read(self, engine, users, make_activity):
        make_activity()
        make_activity()
        uid = users["gabarito"].id
        engine.notifier.list_for_user(uid)

        assert engine.notifier.mark_all_read(uid) == 2
        assert engine.notifier.unread_count(uid) == 0
        assert all(n["is_read"] for n in engine.notifier.list_for_user(uid))
        assert engine.notifier.mark_all_read(uid) == 0
