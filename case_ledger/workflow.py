"""
Case Workflow Engine
====================

Forward-only lifecycle:

    INVESTIGATION --police--> PROSECUTORATE --prosecutor--> COURT_TRIAL --judge--> CLOSED

A transition updates the stage, appends one timeline entry and records one
audit entry in a single transaction. The stage write is a compare-and-swap
on the previous stage, so of two concurrent transitions from the same stage
exactly one succeeds. Participants are notified after commit.
"""

import logging
from datetime import datetime
from typing import Dict, FrozenSet, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from .audit import record_operation
from .auth import coerce_role
from .db.models import (
    Case, CaseStage, CaseTimeline, NotificationPriority, NotificationType, OperationType, Role,
)
from .errors import BadRequest, Conflict, Forbidden, InvalidState, NotFound, NOT_PARTICIPANT
from .notifications import CaseEvent, notify_case_participants
from .participants import is_participant

logger = logging.getLogger(__name__)


STAGE_ORDER = (
    CaseStage.INVESTIGATION,
    CaseStage.PROSECUTORATE,
    CaseStage.COURT_TRIAL,
    CaseStage.CLOSED,
)

TRANSITIONS: Dict[Tuple[CaseStage, Role], FrozenSet[CaseStage]] = {
    (CaseStage.INVESTIGATION, Role.POLICE): frozenset({CaseStage.PROSECUTORATE}),
    (CaseStage.PROSECUTORATE, Role.PROSECUTOR): frozenset({CaseStage.COURT_TRIAL}),
    (CaseStage.COURT_TRIAL, Role.JUDGE): frozenset({CaseStage.CLOSED}),
}

STAGE_LABELS = {
    CaseStage.INVESTIGATION: "investigation",
    CaseStage.PROSECUTORATE: "prosecutorate review",
    CaseStage.COURT_TRIAL: "court trial",
    CaseStage.CLOSED: "closed",
}


def allowed_targets(stage, role) -> FrozenSet[CaseStage]:
    """Stages `role` may move a case to from `stage`; empty when none."""
    return TRANSITIONS.get((stage, coerce_role(role)), frozenset())


def is_forward(current: CaseStage, target: CaseStage) -> bool:
    return STAGE_ORDER.index(target) > STAGE_ORDER.index(current)


def _coerce_stage(value) -> CaseStage:
    if isinstance(value, CaseStage):
        return value
    try:
        return CaseStage(value)
    except (ValueError, TypeError):
        raise BadRequest(f"Unknown stage: {value}")


def _compare_and_set_stage(db: Session, case_id: str, expected: CaseStage, target: CaseStage) -> bool:
    """UPDATE ... WHERE stage = expected; False when another writer got there first."""
    updated = db.query(Case).filter(
        Case.id == case_id,
        Case.stage == expected,
    ).update(
        {Case.stage: target, Case.updated_at: datetime.utcnow()},
        synchronize_session=False,
    )
    return updated == 1


def next_timeline_sequence(db: Session, case_id: str) -> int:
    current = db.query(func.max(CaseTimeline.sequence)).filter(CaseTimeline.case_id == case_id).scalar()
    return (current or 0) + 1


def request_transition(
    db: Session,
    case_id: str,
    actor,
    target_stage,
    comment: Optional[str] = None,
    operator_address: Optional[str] = None,
    request_id: Optional[str] = None,
) -> CaseTimeline:
    """
    Move a case to `target_stage`.

    Raises:
        NotFound: no such case
        InvalidState: case is closed
        BadRequest: target missing or not allowed for (stage, role)
        Forbidden: actor is not a participant
        Conflict: a concurrent transition won
    """
    case = db.query(Case).filter(Case.id == case_id).first()
    if not case:
        raise NotFound(f"Case not found: {case_id}")

    current = case.stage
    if current == CaseStage.CLOSED:
        raise InvalidState("case is closed")

    if target_stage is None or target_stage == "":
        raise BadRequest("target stage is required")
    target = _coerce_stage(target_stage)

    if target not in allowed_targets(current, actor.role):
        raise BadRequest(
            f"{getattr(actor.role, 'value', actor.role)} cannot move case from {current.value} to {target.value}"
        )

    if not is_participant(case, actor):
        logger.warning(f"Transition of case {case.id} denied: user {actor.user_id} is not a participant")
        raise Forbidden(NOT_PARTICIPANT, reason=NOT_PARTICIPANT)

    try:
        if not _compare_and_set_stage(db, case.id, current, target):
            raise Conflict("case stage changed concurrently", details={"expected_stage": current.value})

        entry = CaseTimeline(
            case_id=case.id,
            sequence=next_timeline_sequence(db, case.id),
            stage=target,
            operator_id=actor.user_id,
            operator_role=actor.role_value,
            operator_address=operator_address or getattr(actor, "wallet_address", None),
            comment=comment,
        )
        db.add(entry)
        db.flush()

        record_operation(
            db, actor, OperationType.TRANSITION, "case", case.id,
            f"{current.value} -> {target.value}",
            request_id=request_id,
            commit=False,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(case)
    db.refresh(entry)
    logger.info(f"Case {case.case_number} moved {current.value} -> {target.value} by {actor.user_id}")

    notify_case_participants(
        db,
        case,
        CaseEvent(
            type=NotificationType.CASE_STATUS_CHANGED,
            title=f"Case {case.case_number} moved to {STAGE_LABELS[target]}",
            content=comment or f"Case {case.title} entered {STAGE_LABELS[target]}",
            priority=NotificationPriority.URGENT if target == CaseStage.CLOSED else NotificationPriority.HIGH,
            sender_id=actor.user_id,
        ),
        exclude_user_id=actor.user_id,
    )
    return entry
