"""
Case Management
===============

Filing, reading, updating and deleting cases. Stage changes go through
`workflow.request_transition`; everything else about a case lives here.

Participant-set invariants:
- public prosecution: at least one prosecutor and one defendant lawyer
- civil litigation: at least one plaintiff lawyer and one defendant lawyer, no prosecutors
"""

import logging
from typing import Iterable, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .audit import record_operation
from .auth import coerce_role
from .db.models import (
    Case, CaseParticipant, CaseStage, CaseTimeline, CaseType, NotificationType,
    OperationType, ParticipantParty, Role, User,
)
from .errors import BadRequest, Conflict, Forbidden, NotFound, WRONG_ROLE
from .notifications import CaseEvent, notify_case_participants
from .pagination import Page, paginate
from .stage_gate import EntityType, Operation, ensure_can_act

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {"title", "description", "plaintiff_message", "defendant_message"}


def _clean_ids(ids: Optional[Iterable[str]]) -> List[str]:
    result = []
    for user_id in ids or []:
        if user_id and user_id not in result:
            result.append(user_id)
    return result


def validate_case_parties(
    case_type: CaseType,
    prosecutor_ids: List[str],
    plaintiff_lawyer_ids: List[str],
    defendant_lawyer_ids: List[str],
) -> None:
    """Raise BadRequest when the participant sets do not fit the case type."""
    if case_type == CaseType.PUBLIC_PROSECUTION:
        if not prosecutor_ids:
            raise BadRequest("public prosecution requires at least one prosecutor")
        if not defendant_lawyer_ids:
            raise BadRequest("public prosecution requires at least one defendant lawyer")
    elif case_type == CaseType.CIVIL_LITIGATION:
        if prosecutor_ids:
            raise BadRequest("civil litigation must not have prosecutors")
        if not plaintiff_lawyer_ids:
            raise BadRequest("civil litigation requires at least one plaintiff lawyer")
        if not defendant_lawyer_ids:
            raise BadRequest("civil litigation requires at least one defendant lawyer")


def _ensure_users_have_role(db: Session, user_ids: List[str], role: Role, label: str) -> None:
    if not user_ids:
        return
    found = {
        u.id: u for u in db.query(User).filter(User.id.in_(user_ids)).all()
    }
    for user_id in user_ids:
        user = found.get(user_id)
        if not user or not user.is_active:
            raise BadRequest(f"Unknown {label}: {user_id}")
        if user.role != role:
            raise BadRequest(f"User {user_id} is not a {role.value} and cannot be {label}")


def create_case(
    db: Session,
    actor,
    case_number: str,
    title: str,
    case_type,
    description: Optional[str] = None,
    plaintiff_message: Optional[str] = None,
    defendant_message: Optional[str] = None,
    judge_id: Optional[str] = None,
    prosecutor_ids: Optional[Iterable[str]] = None,
    plaintiff_lawyer_ids: Optional[Iterable[str]] = None,
    defendant_lawyer_ids: Optional[Iterable[str]] = None,
    request_id: Optional[str] = None,
) -> Case:
    """File a new case. Only police may file; the filer becomes the owning officer."""
    if coerce_role(actor.role) != Role.POLICE:
        raise Forbidden("only police may file a case", reason=WRONG_ROLE)

    case_number = (case_number or "").strip()
    title = (title or "").strip()
    if not case_number:
        raise BadRequest("case_number is required")
    if not title:
        raise BadRequest("title is required")
    try:
        case_type = CaseType(case_type)
    except (ValueError, TypeError):
        raise BadRequest(f"Unknown case type: {case_type}")

    prosecutors = _clean_ids(prosecutor_ids)
    plaintiff_lawyers = _clean_ids(plaintiff_lawyer_ids)
    defendant_lawyers = _clean_ids(defendant_lawyer_ids)
    validate_case_parties(case_type, prosecutors, plaintiff_lawyers, defendant_lawyers)

    _ensure_users_have_role(db, prosecutors, Role.PROSECUTOR, "prosecutor")
    _ensure_users_have_role(db, plaintiff_lawyers + defendant_lawyers, Role.LAWYER, "lawyer")
    if judge_id:
        _ensure_users_have_role(db, [judge_id], Role.JUDGE, "judge")

    if db.query(Case).filter(Case.case_number == case_number).first():
        raise Conflict(f"Case number already exists: {case_number}")

    case = Case(
        case_number=case_number,
        title=title,
        case_type=case_type,
        stage=CaseStage.INVESTIGATION,
        description=description,
        plaintiff_message=plaintiff_message,
        defendant_message=defendant_message,
        police_id=actor.user_id,
        judge_id=judge_id or None,
    )
    position = 0
    for party, ids in (
        (ParticipantParty.PROSECUTOR, prosecutors),
        (ParticipantParty.PLAINTIFF_LAWYER, plaintiff_lawyers),
        (ParticipantParty.DEFENDANT_LAWYER, defendant_lawyers),
    ):
        for user_id in ids:
            case.participants.append(CaseParticipant(user_id=user_id, party=party, position=position))
            position += 1

    case.timeline.append(CaseTimeline(
        sequence=1,
        stage=CaseStage.INVESTIGATION,
        operator_id=actor.user_id,
        operator_role=actor.role_value,
        operator_address=getattr(actor, "wallet_address", None),
        comment="case filed",
    ))

    db.add(case)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict(f"Case number already exists: {case_number}")
    db.refresh(case)
    logger.info(f"Case {case.case_number} filed by {actor.user_id}")

    record_operation(db, actor, OperationType.CREATE, "case", case.id, f"filed case {case.case_number}", request_id)
    notify_case_participants(
        db,
        case,
        CaseEvent(
            type=NotificationType.CASE_CREATED,
            title=f"New case {case.case_number}",
            content=f"You were added to case {case.title}",
            sender_id=actor.user_id,
        ),
        exclude_user_id=actor.user_id,
    )
    return case


def load_case(db: Session, case_id: str) -> Case:
    case = db.query(Case).filter(Case.id == case_id).first()
    if not case:
        raise NotFound(f"Case not found: {case_id}")
    return case


def get_case(db: Session, actor, case_id: str) -> Case:
    case = load_case(db, case_id)
    if not actor.is_admin:
        ensure_can_act(case, actor, EntityType.CASE, Operation.VIEW)
    return case


def list_cases(
    db: Session,
    actor,
    stage: Optional[CaseStage] = None,
    case_type: Optional[CaseType] = None,
    keyword: Optional[str] = None,
    page: int = 1,
    page_size: int = None,
) -> Page:
    """Cases the actor participates in (all cases for admins), newest first."""
    query = db.query(Case)
    role = coerce_role(actor.role)

    if role == Role.POLICE:
        query = query.filter(Case.police_id == actor.user_id)
    elif role == Role.JUDGE:
        query = query.filter(Case.judge_id == actor.user_id)
    elif role == Role.PROSECUTOR:
        query = query.filter(Case.participants.any(
            (CaseParticipant.user_id == actor.user_id) & (CaseParticipant.party == ParticipantParty.PROSECUTOR)
        ))
    elif role == Role.LAWYER:
        query = query.filter(Case.participants.any(
            (CaseParticipant.user_id == actor.user_id)
            & CaseParticipant.party.in_([ParticipantParty.PLAINTIFF_LAWYER, ParticipantParty.DEFENDANT_LAWYER])
        ))
    elif role != Role.ADMIN:
        query = query.filter(Case.id.is_(None))

    if stage:
        query = query.filter(Case.stage == stage)
    if case_type:
        query = query.filter(Case.case_type == case_type)
    if keyword:
        pattern = f"%{keyword}%"
        query = query.filter(or_(
            Case.title.ilike(pattern),
            Case.case_number.ilike(pattern),
            Case.description.ilike(pattern),
        ))

    query = query.order_by(Case.created_at.desc())
    return paginate(query, page, page_size)


def update_case(db: Session, actor, case_id: str, request_id: Optional[str] = None, **changes) -> Case:
    """Update descriptive fields. Stage, case type and case number are not updatable here."""
    case = load_case(db, case_id)
    ensure_can_act(case, actor, EntityType.CASE, Operation.UPDATE)

    rejected = sorted(set(changes) - UPDATABLE_FIELDS)
    if rejected:
        raise BadRequest(f"Fields not updatable: {', '.join(rejected)}")
    if "title" in changes and not (changes["title"] or "").strip():
        raise BadRequest("title must not be empty")

    for name, value in changes.items():
        setattr(case, name, value)
    db.commit()
    db.refresh(case)

    record_operation(
        db, actor, OperationType.UPDATE, "case", case.id,
        f"updated {', '.join(sorted(changes)) or 'nothing'}", request_id,
    )
    return case


def delete_case(db: Session, actor, case_id: str, request_id: Optional[str] = None) -> None:
    """Hard delete; children (timeline, artifacts, objections) go with it."""
    case = load_case(db, case_id)
    ensure_can_act(case, actor, EntityType.CASE, Operation.DELETE)

    case_number = case.case_number
    db.delete(case)
    db.commit()
    logger.info(f"Case {case_number} deleted by {actor.user_id}")

    record_operation(db, actor, OperationType.DELETE, "case", case_id, f"deleted case {case_number}", request_id)


def get_case_timeline(db: Session, actor, case_id: str) -> List[CaseTimeline]:
    case = get_case(db, actor, case_id)
    return (
        db.query(CaseTimeline)
        .filter(CaseTimeline.case_id == case.id)
        .order_by(CaseTimeline.sequence.asc())
        .all()
    )
