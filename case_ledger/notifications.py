"""
Notification Fan-out
====================

Creates one notification per case participant (minus the actor) after a
primary mutation has committed. Each recipient is written in its own
savepoint so one failed delivery does not affect the others; the caller
gets a tagged outcome per recipient and nothing is ever raised.

Also hosts the per-user notification inbox operations.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Union

from sqlalchemy.orm import Session

from .db.models import (
    Notification, NotificationPriority, NotificationType, PushStatus, User,
)
from .errors import Forbidden, NotFound, NOT_OWNER, WRONG_ROLE
from .pagination import Page, paginate
from .participants import participant_ids

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CaseEvent:
    """What happened, as seen by the recipients"""
    type: NotificationType
    title: str
    content: str
    priority: NotificationPriority = NotificationPriority.NORMAL
    sender_id: Optional[str] = None
    related_evidence_id: Optional[str] = None
    related_objection_id: Optional[str] = None


@dataclass(frozen=True)
class Delivered:
    recipient_id: str
    notification_id: str
    delivered: bool = True


@dataclass(frozen=True)
class Failed:
    recipient_id: str
    reason: str
    delivered: bool = False


DeliveryOutcome = Union[Delivered, Failed]


def _build_notification(recipient_id: str, case_id: Optional[str], event: CaseEvent) -> Notification:
    return Notification(
        recipient_id=recipient_id,
        sender_id=event.sender_id,
        type=event.type,
        title=event.title,
        content=event.content,
        priority=event.priority,
        related_case_id=case_id,
        related_evidence_id=event.related_evidence_id,
        related_objection_id=event.related_objection_id,
    )


def _deliver(db: Session, recipient_id: str, case_id: Optional[str], event: CaseEvent) -> DeliveryOutcome:
    try:
        with db.begin_nested():
            notification = _build_notification(recipient_id, case_id, event)
            db.add(notification)
        return Delivered(recipient_id=recipient_id, notification_id=notification.id)
    except Exception as e:
        logger.warning(f"Notification {event.type.value} to {recipient_id} failed: {e}")
        return Failed(recipient_id=recipient_id, reason=str(e) or e.__class__.__name__)


def _commit_outcomes(db: Session, outcomes: List[DeliveryOutcome]) -> List[DeliveryOutcome]:
    try:
        db.commit()
    except Exception as e:
        logger.error(f"Committing notifications failed: {e}")
        db.rollback()
        return [
            o if isinstance(o, Failed) else Failed(recipient_id=o.recipient_id, reason="commit failed")
            for o in outcomes
        ]
    return outcomes


def notify_case_participants(
    db: Session,
    case,
    event: CaseEvent,
    exclude_user_id: Optional[str] = None,
) -> List[DeliveryOutcome]:
    """Notify every participant of `case` except `exclude_user_id`."""
    recipients = [uid for uid in participant_ids(case) if uid != exclude_user_id]
    outcomes = [_deliver(db, recipient_id, case.id, event) for recipient_id in recipients]
    outcomes = _commit_outcomes(db, outcomes)

    failed = [o for o in outcomes if isinstance(o, Failed)]
    if failed:
        logger.warning(
            f"Fan-out {event.type.value} for case {case.id}: {len(failed)}/{len(outcomes)} deliveries failed"
        )
    return outcomes


def notify_user(
    db: Session,
    recipient_id: str,
    event: CaseEvent,
    case_id: Optional[str] = None,
) -> DeliveryOutcome:
    """Single-recipient variant, same guarantees as the fan-out."""
    outcome = _deliver(db, recipient_id, case_id, event)
    return _commit_outcomes(db, [outcome])[0]


# =============================================================================
# INBOX
# =============================================================================

def create_notification(
    db: Session,
    actor,
    recipient_id: str,
    title: str,
    content: str,
    priority: NotificationPriority = NotificationPriority.NORMAL,
    related_case_id: Optional[str] = None,
) -> Notification:
    """System notification sent by an admin to one user."""
    if not actor.is_admin:
        raise Forbidden("only admins may send system notifications", reason=WRONG_ROLE)
    if not db.query(User).filter(User.id == recipient_id).first():
        raise NotFound(f"User not found: {recipient_id}")

    notification = Notification(
        recipient_id=recipient_id,
        sender_id=actor.user_id,
        type=NotificationType.SYSTEM,
        title=title,
        content=content,
        priority=priority,
        related_case_id=related_case_id,
    )
    db.add(notification)
    db.commit()
    db.refresh(notification)
    return notification


def list_my_notifications(
    db: Session,
    actor,
    is_read: Optional[bool] = None,
    page: int = 1,
    page_size: int = None,
) -> Page:
    query = db.query(Notification).filter(Notification.recipient_id == actor.user_id)
    if is_read is not None:
        query = query.filter(Notification.is_read == is_read)
    query = query.order_by(Notification.created_at.desc())
    return paginate(query, page, page_size)


def unread_count(db: Session, actor) -> int:
    return db.query(Notification).filter(
        Notification.recipient_id == actor.user_id,
        Notification.is_read.is_(False),
    ).count()


def _get_notification(db: Session, notification_id: str) -> Notification:
    notification = db.query(Notification).filter(Notification.id == notification_id).first()
    if not notification:
        raise NotFound(f"Notification not found: {notification_id}")
    return notification


def get_notification(db: Session, actor, notification_id: str) -> Notification:
    """Readable by its recipient and by admins."""
    notification = _get_notification(db, notification_id)
    if notification.recipient_id != actor.user_id and not actor.is_admin:
        raise Forbidden(NOT_OWNER, reason=NOT_OWNER)
    return notification


def delete_notification(db: Session, actor, notification_id: str) -> None:
    if not actor.is_admin:
        raise Forbidden("only admins may delete notifications", reason=WRONG_ROLE)
    notification = _get_notification(db, notification_id)
    db.delete(notification)
    db.commit()
    logger.info(f"Notification {notification_id} deleted by admin {actor.user_id}")


def mark_read(db: Session, actor, notification_id: str) -> Notification:
    notification = _get_notification(db, notification_id)
    if notification.recipient_id != actor.user_id:
        raise Forbidden(NOT_OWNER, reason=NOT_OWNER)
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = datetime.utcnow()
        db.commit()
        db.refresh(notification)
    return notification


def mark_all_read(db: Session, actor) -> int:
    updated = db.query(Notification).filter(
        Notification.recipient_id == actor.user_id,
        Notification.is_read.is_(False),
    ).update(
        {Notification.is_read: True, Notification.read_at: datetime.utcnow()},
        synchronize_session=False,
    )
    db.commit()
    return updated


def update_push_status(db: Session, actor, notification_id: str, status: PushStatus) -> Notification:
    """Record the outcome of an external push (admin / push worker)."""
    if not actor.is_admin:
        raise Forbidden("only admins may update push status", reason=WRONG_ROLE)
    notification = _get_notification(db, notification_id)
    notification.push_status = status
    if status == PushStatus.SENT:
        notification.pushed_at = datetime.utcnow()
    db.commit()
    db.refresh(notification)
    return notification
