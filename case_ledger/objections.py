"""
Objection Service
=================

Lawyers (and prosecutors in public prosecutions) raise objections against
evidence during the prosecutorate stage; the assigned judge rules on them.
Pending objections can be edited or withdrawn by their submitter.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from .audit import record_operation
from .auth import coerce_role
from .cases import load_case
from .db.models import (
    Evidence, NotificationPriority, NotificationType, Objection, ObjectionStatus, OperationType, Role,
)
from .errors import BadRequest, InvalidState, NotFound
from .notifications import CaseEvent, notify_case_participants, notify_user
from .pagination import Page, paginate
from .stage_gate import EntityType, Operation, ensure_can_act, ensure_owner

logger = logging.getLogger(__name__)

# Roles that only see the objections they submitted
OWN_SUBMISSIONS_ONLY = {Role.LAWYER, Role.PROSECUTOR}


def load_objection(db: Session, objection_id: str) -> Objection:
    objection = db.query(Objection).filter(Objection.id == objection_id).first()
    if not objection:
        raise NotFound(f"Objection not found: {objection_id}")
    return objection


def _ensure_pending(objection: Objection) -> None:
    if objection.status != ObjectionStatus.PENDING:
        raise InvalidState(f"objection is already {objection.status.value}")


def create_objection(
    db: Session,
    actor,
    case_id: str,
    evidence_id: str,
    content: str,
    request_id: Optional[str] = None,
) -> Objection:
    case = load_case(db, case_id)
    ensure_can_act(case, actor, EntityType.OBJECTION, Operation.CREATE)

    if not (content or "").strip():
        raise BadRequest("content is required")
    evidence = db.query(Evidence).filter(Evidence.id == evidence_id).first()
    if not evidence:
        raise NotFound(f"Evidence not found: {evidence_id}")
    if evidence.case_id != case.id:
        raise BadRequest("evidence belongs to a different case")

    objection = Objection(
        case=case,
        evidence=evidence,
        content=content.strip(),
        status=ObjectionStatus.PENDING,
        submitted_by=actor.user_id,
        submitter_role=actor.role_value,
    )
    db.add(objection)
    db.commit()
    db.refresh(objection)

    record_operation(db, actor, OperationType.CREATE, "objection", objection.id, f"objection to evidence {evidence.id}", request_id)
    notify_case_participants(
        db,
        case,
        CaseEvent(
            type=NotificationType.OBJECTION_SUBMITTED,
            title=f"Objection raised in case {case.case_number}",
            content=objection.content,
            priority=NotificationPriority.HIGH,
            sender_id=actor.user_id,
            related_evidence_id=evidence.id,
            related_objection_id=objection.id,
        ),
        exclude_user_id=actor.user_id,
    )
    return objection


def get_objection(db: Session, actor, objection_id: str) -> Objection:
    objection = load_objection(db, objection_id)
    ensure_can_act(objection.case, actor, EntityType.OBJECTION, Operation.VIEW)
    if coerce_role(actor.role) in OWN_SUBMISSIONS_ONLY:
        ensure_owner(objection.submitted_by, actor, "objection")
    return objection


def list_objections(
    db: Session,
    actor,
    case_id: str,
    status: Optional[ObjectionStatus] = None,
    evidence_id: Optional[str] = None,
    page: int = 1,
    page_size: int = None,
) -> Page:
    case = load_case(db, case_id)
    ensure_can_act(case, actor, EntityType.OBJECTION, Operation.VIEW)

    query = db.query(Objection).filter(Objection.case_id == case.id)
    if coerce_role(actor.role) in OWN_SUBMISSIONS_ONLY:
        query = query.filter(Objection.submitted_by == actor.user_id)
    if status:
        query = query.filter(Objection.status == status)
    if evidence_id:
        query = query.filter(Objection.evidence_id == evidence_id)
    query = query.order_by(Objection.created_at.desc())
    return paginate(query, page, page_size)


def update_objection(
    db: Session,
    actor,
    objection_id: str,
    content: str,
    request_id: Optional[str] = None,
) -> Objection:
    objection = load_objection(db, objection_id)
    ensure_can_act(objection.case, actor, EntityType.OBJECTION, Operation.UPDATE)
    ensure_owner(objection.submitted_by, actor, "objection")
    _ensure_pending(objection)
    if not (content or "").strip():
        raise BadRequest("content is required")

    objection.content = content.strip()
    db.commit()
    db.refresh(objection)

    record_operation(db, actor, OperationType.UPDATE, "objection", objection.id, "updated content", request_id)
    return objection


def delete_objection(db: Session, actor, objection_id: str, request_id: Optional[str] = None) -> None:
    """Withdraw a pending objection."""
    objection = load_objection(db, objection_id)
    ensure_can_act(objection.case, actor, EntityType.OBJECTION, Operation.DELETE)
    ensure_owner(objection.submitted_by, actor, "objection")
    _ensure_pending(objection)

    db.delete(objection)
    db.commit()

    record_operation(db, actor, OperationType.DELETE, "objection", objection_id, "withdrawn", request_id)


def handle_objection(
    db: Session,
    actor,
    objection_id: str,
    accept: bool,
    result: str,
    request_id: Optional[str] = None,
) -> Objection:
    """Assigned judge rules on a pending objection."""
    objection = load_objection(db, objection_id)
    ensure_can_act(objection.case, actor, EntityType.OBJECTION, Operation.HANDLE)
    _ensure_pending(objection)
    if not (result or "").strip():
        raise BadRequest("result is required")

    objection.status = ObjectionStatus.ACCEPTED if accept else ObjectionStatus.REJECTED
    objection.is_accepted = bool(accept)
    objection.handled_by = actor.user_id
    objection.handled_at = datetime.utcnow()
    objection.handle_result = result.strip()
    db.commit()
    db.refresh(objection)
    logger.info(f"Objection {objection.id} {objection.status.value} by judge {actor.user_id}")

    record_operation(db, actor, OperationType.HANDLE, "objection", objection.id, objection.status.value, request_id)
    notify_user(
        db,
        objection.submitted_by,
        CaseEvent(
            type=NotificationType.OBJECTION_HANDLED,
            title=f"Objection {objection.status.value}",
            content=objection.handle_result,
            priority=NotificationPriority.HIGH,
            sender_id=actor.user_id,
            related_evidence_id=objection.evidence_id,
            related_objection_id=objection.id,
        ),
        case_id=objection.case_id,
    )
    return objection
