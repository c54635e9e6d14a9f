"""
Correction Service
==================

The assigned prosecutor files corrections against anchored evidence during
the prosecutorate stage; each correction is anchored on the ledger linked to
the original evidence anchor. The assigned judge reviews them. Deleting a
correction is an explicit operation of its own and only allowed while it is
still pending.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from .audit import record_operation
from .cases import load_case
from .db.models import (
    Correction, CorrectionStatus, Evidence, EvidenceStatus, NotificationType, OperationType,
)
from .errors import BadRequest, ExternalFailure, InvalidState, NotFound
from .ledger import LedgerClient
from .notifications import CaseEvent, notify_case_participants, notify_user
from .pagination import Page, paginate
from .stage_gate import EntityType, Operation, ensure_can_act, ensure_owner

logger = logging.getLogger(__name__)


def load_correction(db: Session, correction_id: str) -> Correction:
    correction = db.query(Correction).filter(Correction.id == correction_id).first()
    if not correction:
        raise NotFound(f"Correction not found: {correction_id}")
    return correction


def _ensure_pending(correction: Correction) -> None:
    if correction.status != CorrectionStatus.PENDING:
        raise InvalidState(f"correction is already {correction.status.value}")


def create_correction(
    db: Session,
    ledger: LedgerClient,
    actor,
    case_id: str,
    original_evidence_id: str,
    reason: str,
    file_hash: str,
    request_id: Optional[str] = None,
) -> Correction:
    case = load_case(db, case_id)
    ensure_can_act(case, actor, EntityType.CORRECTION, Operation.CREATE)

    if not (reason or "").strip():
        raise BadRequest("reason is required")
    if not (file_hash or "").strip():
        raise BadRequest("file_hash is required")

    original = db.query(Evidence).filter(Evidence.id == original_evidence_id).first()
    if not original:
        raise NotFound(f"Evidence not found: {original_evidence_id}")
    if original.case_id != case.id:
        raise BadRequest("evidence belongs to a different case")
    if not original.ledger_anchor_id:
        raise BadRequest("evidence has no ledger anchor to correct")

    try:
        anchor = ledger.anchor(case.case_number, file_hash, {
            "kind": "correction",
            "original_anchor_id": original.ledger_anchor_id,
            "reason": reason,
        })
    except ExternalFailure as e:
        logger.error(f"Anchoring correction of evidence {original.id} failed: {e.message}")
        raise

    correction = Correction(
        case=case,
        original_evidence=original,
        reason=reason.strip(),
        file_hash=file_hash.strip(),
        status=CorrectionStatus.PENDING,
        submitted_by=actor.user_id,
        ledger_anchor_id=anchor.anchor_id,
        ledger_tx_ref=anchor.tx_ref,
    )
    db.add(correction)
    db.commit()
    db.refresh(correction)

    record_operation(
        db, actor, OperationType.CREATE, "correction", correction.id,
        f"correction of evidence {original.id}", request_id,
    )
    notify_case_participants(
        db,
        case,
        CaseEvent(
            type=NotificationType.CORRECTION_SUBMITTED,
            title=f"Correction filed in case {case.case_number}",
            content=correction.reason,
            sender_id=actor.user_id,
            related_evidence_id=original.id,
        ),
        exclude_user_id=actor.user_id,
    )
    return correction


def get_correction(db: Session, actor, correction_id: str) -> Correction:
    correction = load_correction(db, correction_id)
    ensure_can_act(correction.case, actor, EntityType.CORRECTION, Operation.VIEW)
    return correction


def list_corrections(
    db: Session,
    actor,
    case_id: str,
    original_evidence_id: Optional[str] = None,
    status: Optional[CorrectionStatus] = None,
    page: int = 1,
    page_size: int = None,
) -> Page:
    case = load_case(db, case_id)
    ensure_can_act(case, actor, EntityType.CORRECTION, Operation.VIEW)

    query = db.query(Correction).filter(Correction.case_id == case.id)
    if original_evidence_id:
        query = query.filter(Correction.original_evidence_id == original_evidence_id)
    if status:
        query = query.filter(Correction.status == status)
    query = query.order_by(Correction.created_at.desc())
    return paginate(query, page, page_size)


def update_correction(
    db: Session,
    actor,
    correction_id: str,
    reason: str,
    request_id: Optional[str] = None,
) -> Correction:
    """Only the reason of a pending correction can change; its anchor is fixed."""
    correction = load_correction(db, correction_id)
    ensure_can_act(correction.case, actor, EntityType.CORRECTION, Operation.UPDATE)
    ensure_owner(correction.submitted_by, actor, "correction")
    _ensure_pending(correction)
    if not (reason or "").strip():
        raise BadRequest("reason is required")

    correction.reason = reason.strip()
    db.commit()
    db.refresh(correction)

    record_operation(db, actor, OperationType.UPDATE, "correction", correction.id, "updated reason", request_id)
    return correction


def delete_correction(db: Session, actor, correction_id: str, request_id: Optional[str] = None) -> None:
    correction = load_correction(db, correction_id)
    ensure_can_act(correction.case, actor, EntityType.CORRECTION, Operation.DELETE)
    ensure_owner(correction.submitted_by, actor, "correction")
    _ensure_pending(correction)

    db.delete(correction)
    db.commit()

    record_operation(db, actor, OperationType.DELETE, "correction", correction_id, "deleted pending correction", request_id)


def review_correction(
    db: Session,
    actor,
    correction_id: str,
    approve: bool,
    request_id: Optional[str] = None,
) -> Correction:
    """Assigned judge approves (original evidence becomes corrected) or rejects."""
    correction = load_correction(db, correction_id)
    ensure_can_act(correction.case, actor, EntityType.CORRECTION, Operation.HANDLE)
    _ensure_pending(correction)

    correction.status = CorrectionStatus.APPROVED if approve else CorrectionStatus.REJECTED
    correction.reviewed_by = actor.user_id
    correction.reviewed_at = datetime.utcnow()
    if approve:
        correction.original_evidence.status = EvidenceStatus.CORRECTED
    db.commit()
    db.refresh(correction)

    record_operation(
        db, actor, OperationType.REVIEW, "correction", correction.id,
        correction.status.value, request_id,
    )
    notify_user(
        db,
        correction.submitted_by,
        CaseEvent(
            type=NotificationType.CORRECTION_REVIEWED,
            title=f"Correction {correction.status.value}",
            content=correction.reason,
            sender_id=actor.user_id,
            related_evidence_id=correction.original_evidence_id,
        ),
        case_id=correction.case_id,
    )
    return correction
