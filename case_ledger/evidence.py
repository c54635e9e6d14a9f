"""
Evidence Service
================

Create/read/update/delete evidence under the stage gate, with the file
fingerprint anchored on the ledger before the record is written. Police
evidence is trusted on upload; evidence from other roles starts pending and
lawyer submissions are verified by the assigned police officer.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from .audit import record_operation
from .auth import coerce_role
from .cases import load_case
from .db.models import (
    Evidence, EvidenceStatus, EvidenceType, NotificationType, OperationType, Role, User,
)
from .errors import BadRequest, ExternalFailure, InvalidState, NotFound
from .ledger import LedgerClient
from .notifications import CaseEvent, notify_case_participants, notify_user
from .pagination import Page, paginate
from .stage_gate import EntityType, Operation, ensure_can_act, ensure_owner

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {"title", "description", "evidence_type"}


def _coerce_evidence_type(value) -> EvidenceType:
    if value is None:
        return EvidenceType.OTHER
    try:
        return EvidenceType(value)
    except (ValueError, TypeError):
        raise BadRequest(f"Unknown evidence type: {value}")


def load_evidence(db: Session, evidence_id: str) -> Evidence:
    evidence = db.query(Evidence).filter(Evidence.id == evidence_id).first()
    if not evidence:
        raise NotFound(f"Evidence not found: {evidence_id}")
    return evidence


def create_evidence(
    db: Session,
    ledger: LedgerClient,
    actor,
    case_id: str,
    title: str,
    file_hash: str,
    file_name: str,
    file_type: Optional[str] = None,
    file_size: Optional[int] = None,
    evidence_type=None,
    description: Optional[str] = None,
    original_evidence_id: Optional[str] = None,
    request_id: Optional[str] = None,
) -> Evidence:
    """
    Anchor then persist a new evidence item.

    A ledger failure aborts the operation before anything is written.
    """
    case = load_case(db, case_id)
    ensure_can_act(case, actor, EntityType.EVIDENCE, Operation.CREATE)

    if not (title or "").strip():
        raise BadRequest("title is required")
    if not (file_hash or "").strip():
        raise BadRequest("file_hash is required")
    if not (file_name or "").strip():
        raise BadRequest("file_name is required")
    if file_size is not None and file_size < 0:
        raise BadRequest("file_size must not be negative")
    evidence_type = _coerce_evidence_type(evidence_type)

    if original_evidence_id:
        original = db.query(Evidence).filter(Evidence.id == original_evidence_id).first()
        if not original:
            raise NotFound(f"Original evidence not found: {original_evidence_id}")
        if original.case_id != case.id:
            raise BadRequest("original evidence belongs to a different case")

    try:
        anchor = ledger.anchor(case.case_number, file_hash, {"kind": "evidence"})
    except ExternalFailure as e:
        logger.error(f"Anchoring evidence for case {case.case_number} failed: {e.message}")
        raise

    is_police = coerce_role(actor.role) == Role.POLICE
    evidence = Evidence(
        case_id=case.id,
        title=title.strip(),
        description=description,
        file_hash=file_hash.strip(),
        file_name=file_name.strip(),
        file_type=file_type,
        file_size=file_size,
        evidence_type=evidence_type,
        status=EvidenceStatus.VERIFIED if is_police else EvidenceStatus.PENDING,
        uploader_id=actor.user_id,
        ledger_anchor_id=anchor.anchor_id,
        ledger_tx_ref=anchor.tx_ref,
        original_evidence_id=original_evidence_id or None,
    )
    if is_police:
        evidence.verified_by = actor.user_id
        evidence.verified_at = datetime.utcnow()

    db.add(evidence)
    db.commit()
    db.refresh(evidence)
    logger.info(f"Evidence {evidence.id} anchored as {anchor.anchor_id} for case {case.case_number}")

    record_operation(db, actor, OperationType.CREATE, "evidence", evidence.id, f"uploaded {evidence.title}", request_id)
    notify_case_participants(
        db,
        case,
        CaseEvent(
            type=NotificationType.EVIDENCE_UPLOADED,
            title=f"New evidence in case {case.case_number}",
            content=evidence.title,
            sender_id=actor.user_id,
            related_evidence_id=evidence.id,
        ),
        exclude_user_id=actor.user_id,
    )
    return evidence


def get_evidence(db: Session, actor, evidence_id: str) -> Evidence:
    evidence = load_evidence(db, evidence_id)
    ensure_can_act(evidence.case, actor, EntityType.EVIDENCE, Operation.VIEW)
    return evidence


def list_evidence(
    db: Session,
    actor,
    case_id: str,
    keyword: Optional[str] = None,
    status: Optional[EvidenceStatus] = None,
    evidence_type: Optional[EvidenceType] = None,
    page: int = 1,
    page_size: int = None,
) -> Page:
    case = load_case(db, case_id)
    ensure_can_act(case, actor, EntityType.EVIDENCE, Operation.VIEW)

    query = db.query(Evidence).filter(Evidence.case_id == case.id)
    if keyword:
        pattern = f"%{keyword}%"
        query = query.filter(or_(
            Evidence.title.ilike(pattern),
            Evidence.description.ilike(pattern),
            Evidence.file_name.ilike(pattern),
        ))
    if status:
        query = query.filter(Evidence.status == status)
    if evidence_type:
        query = query.filter(Evidence.evidence_type == evidence_type)

    query = query.order_by(Evidence.created_at.desc())
    return paginate(query, page, page_size)


def update_evidence(db: Session, actor, evidence_id: str, request_id: Optional[str] = None, **changes) -> Evidence:
    """Descriptive fields only; the fingerprint and anchor are immutable."""
    evidence = load_evidence(db, evidence_id)
    ensure_can_act(evidence.case, actor, EntityType.EVIDENCE, Operation.UPDATE)
    ensure_owner(evidence.uploader_id, actor, "evidence")

    rejected = sorted(set(changes) - UPDATABLE_FIELDS)
    if rejected:
        raise BadRequest(f"Fields not updatable: {', '.join(rejected)}")
    if "title" in changes and not (changes["title"] or "").strip():
        raise BadRequest("title must not be empty")
    if "evidence_type" in changes:
        changes["evidence_type"] = _coerce_evidence_type(changes["evidence_type"])

    for name, value in changes.items():
        setattr(evidence, name, value)
    db.commit()
    db.refresh(evidence)

    record_operation(db, actor, OperationType.UPDATE, "evidence", evidence.id, f"updated {evidence.title}", request_id)
    return evidence


def delete_evidence(db: Session, actor, evidence_id: str, request_id: Optional[str] = None) -> None:
    """Delete evidence together with the corrections and objections that reference it."""
    evidence = load_evidence(db, evidence_id)
    ensure_can_act(evidence.case, actor, EntityType.EVIDENCE, Operation.DELETE)
    ensure_owner(evidence.uploader_id, actor, "evidence")

    title = evidence.title
    db.delete(evidence)
    db.commit()

    record_operation(db, actor, OperationType.DELETE, "evidence", evidence_id, f"deleted {title}", request_id)


def verify_evidence(
    db: Session,
    actor,
    evidence_id: str,
    approve: bool,
    note: Optional[str] = None,
    request_id: Optional[str] = None,
) -> Evidence:
    """Assigned police officer accepts or rejects a lawyer's pending submission."""
    evidence = load_evidence(db, evidence_id)
    ensure_can_act(evidence.case, actor, EntityType.EVIDENCE, Operation.HANDLE)

    uploader = db.query(User).filter(User.id == evidence.uploader_id).first()
    if not uploader or uploader.role != Role.LAWYER:
        raise BadRequest("only evidence submitted by a lawyer is verified")
    if evidence.status != EvidenceStatus.PENDING:
        raise InvalidState(f"evidence is already {evidence.status.value}")

    evidence.status = EvidenceStatus.VERIFIED if approve else EvidenceStatus.REJECTED
    evidence.verified_by = actor.user_id
    evidence.verified_at = datetime.utcnow()
    evidence.verification_note = note
    db.commit()
    db.refresh(evidence)

    record_operation(
        db, actor, OperationType.VERIFY, "evidence", evidence.id,
        f"{evidence.status.value}: {note or ''}".strip(), request_id,
    )
    notify_user(
        db,
        evidence.uploader_id,
        CaseEvent(
            type=NotificationType.EVIDENCE_VERIFIED,
            title=f"Evidence {evidence.status.value}",
            content=note or evidence.title,
            sender_id=actor.user_id,
            related_evidence_id=evidence.id,
        ),
        case_id=evidence.case_id,
    )
    return evidence
