"""
Notification Fan-out and Inbox Tests
====================================
"""

from types import SimpleNamespace

import pytest

from case_ledger.auth import Identity
from case_ledger.db.models import Notification, NotificationType, PushStatus, Role
from case_ledger.errors import Forbidden, NotFound
from case_ledger.notifications import (
    CaseEvent, Delivered, Failed, create_notification, delete_notification, get_notification,
    list_my_notifications, mark_all_read, mark_read, notify_case_participants, notify_user, unread_count,
    update_push_status,
)


def _event(**overrides):
    fields = dict(type=NotificationType.EVIDENCE_UPLOADED, title="New evidence", content="photo.jpg")
    fields.update(overrides)
    return CaseEvent(**fields)


def _case(**overrides):
    fields = dict(
        id="case-1",
        police_id="P",
        judge_id=None,
        prosecutor_ids=["A", "B"],
        plaintiff_lawyer_ids=[],
        defendant_lawyer_ids=["C"],
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


class TestFanOut:

    def test_everyone_but_the_actor(self, db):
        outcomes = notify_case_participants(db, _case(), _event(sender_id="A"), exclude_user_id="A")

        assert [o.recipient_id for o in outcomes] == ["P", "B", "C"]
        assert all(isinstance(o, Delivered) for o in outcomes)
        stored = db.query(Notification).all()
        assert sorted(n.recipient_id for n in stored) == ["B", "C", "P"]
        assert all(n.related_case_id == "case-1" for n in stored)

    def test_duplicate_seats_get_one_notification(self, db):
        case = _case(defendant_lawyer_ids=["C"], plaintiff_lawyer_ids=["C"])
        outcomes = notify_case_participants(db, case, _event(), exclude_user_id="P")
        assert [o.recipient_id for o in outcomes] == ["A", "B", "C"]

    def test_one_failed_delivery_does_not_stop_the_others(self, db, monkeypatch):
        import case_ledger.notifications as notifications

        real_build = notifications._build_notification

        def flaky_build(recipient_id, case_id, event):
            if recipient_id == "B":
                raise RuntimeError("mailbox full")
            return real_build(recipient_id, case_id, event)

        monkeypatch.setattr(notifications, "_build_notification", flaky_build)

        outcomes = notify_case_participants(db, _case(), _event(), exclude_user_id="A")

        by_recipient = {o.recipient_id: o for o in outcomes}
        assert isinstance(by_recipient["P"], Delivered)
        assert isinstance(by_recipient["C"], Delivered)
        assert isinstance(by_recipient["B"], Failed)
        assert "mailbox full" in by_recipient["B"].reason
        assert sorted(n.recipient_id for n in db.query(Notification).all()) == ["C", "P"]

    def test_no_recipients(self, db):
        case = _case(police_id="P", prosecutor_ids=[], defendant_lawyer_ids=[])
        assert notify_case_participants(db, case, _event(), exclude_user_id="P") == []

    def test_notify_user(self, db):
        outcome = notify_user(db, "C", _event(type=NotificationType.EVIDENCE_VERIFIED), case_id="case-1")
        assert isinstance(outcome, Delivered)
        stored = db.query(Notification).filter(Notification.id == outcome.notification_id).one()
        assert stored.recipient_id == "C"


class TestInbox:

    @pytest.fixture
    def inbox(self, db, actors):
        judge = actors["judge"]
        for index in range(3):
            notify_user(db, judge.user_id, _event(title=f"note {index}"))
        notify_user(db, actors["police"].user_id, _event(title="not yours"))
        return judge

    def test_list_and_unread_count(self, db, inbox):
        page = list_my_notifications(db, inbox)
        assert page.total == 3
        assert unread_count(db, inbox) == 3

    def test_mark_read(self, db, inbox):
        first = list_my_notifications(db, inbox).items[0]
        note = mark_read(db, inbox, first.id)
        assert note.is_read and note.read_at is not None
        assert unread_count(db, inbox) == 2
        assert list_my_notifications(db, inbox, is_read=True).total == 1

    def test_cannot_mark_someone_elses(self, db, inbox, actors):
        first = list_my_notifications(db, inbox).items[0]
        with pytest.raises(Forbidden):
            mark_read(db, actors["police"], first.id)

    def test_mark_unknown(self, db, inbox):
        with pytest.raises(NotFound):
            mark_read(db, inbox, "missing")

    def test_mark_all_read(self, db, inbox):
        assert mark_all_read(db, inbox) == 3
        assert unread_count(db, inbox) == 0

    def test_admin_system_notification(self, db, actors):
        note = create_notification(db, actors["admin"], actors["judge"].user_id, "Maintenance", "Tonight")
        assert note.type == NotificationType.SYSTEM
        assert note.sender_id == actors["admin"].user_id

    def test_system_notification_requires_admin(self, db, actors):
        with pytest.raises(Forbidden):
            create_notification(db, actors["police"], actors["judge"].user_id, "x", "y")

    def test_system_notification_to_unknown_user(self, db, actors):
        with pytest.raises(NotFound):
            create_notification(db, actors["admin"], "nobody", "x", "y")

    def test_push_status(self, db, inbox, actors):
        first = list_my_notifications(db, inbox).items[0]
        note = update_push_status(db, actors["admin"], first.id, PushStatus.SENT)
        assert note.push_status == PushStatus.SENT
        assert note.pushed_at is not None
        with pytest.raises(Forbidden):
            update_push_status(db, Identity("x", Role.JUDGE), first.id, PushStatus.FAILED)

    def test_get_by_recipient_or_admin(self, db, inbox, actors):
        first = list_my_notifications(db, inbox).items[0]
        assert get_notification(db, inbox, first.id).id == first.id
        assert get_notification(db, actors["admin"], first.id).id == first.id
        with pytest.raises(Forbidden):
            get_notification(db, actors["police"], first.id)
        with pytest.raises(NotFound):
            get_notification(db, inbox, "missing")

    def test_admin_deletes(self, db, inbox, actors):
        first = list_my_notifications(db, inbox).items[0]
        with pytest.raises(Forbidden):
            delete_notification(db, inbox, first.id)

        delete_notification(db, actors["admin"], first.id)
        assert list_my_notifications(db, inbox).total == 2
        with pytest.raises(NotFound):
            delete_notification(db, actors["admin"], first.id)
