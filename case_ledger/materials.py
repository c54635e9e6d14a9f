"""
Defense Material Service
========================

Lawyers assigned to a case submit defense materials during the court
trial; every material is anchored on the ledger before it is stored.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from .audit import record_operation
from .cases import load_case
from .db.models import DefenseMaterial, MaterialType, NotificationType, OperationType
from .errors import BadRequest, ExternalFailure, NotFound
from .ledger import LedgerClient
from .notifications import CaseEvent, notify_case_participants
from .pagination import Page, paginate
from .stage_gate import EntityType, Operation, ensure_can_act, ensure_owner

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {"title", "description", "material_type"}


def _coerce_material_type(value) -> MaterialType:
    if value is None:
        return MaterialType.OTHER
    try:
        return MaterialType(value)
    except (ValueError, TypeError):
        raise BadRequest(f"Unknown material type: {value}")


def load_material(db: Session, material_id: str) -> DefenseMaterial:
    material = db.query(DefenseMaterial).filter(DefenseMaterial.id == material_id).first()
    if not material:
        raise NotFound(f"Defense material not found: {material_id}")
    return material


def create_material(
    db: Session,
    ledger: LedgerClient,
    actor,
    case_id: str,
    title: str,
    file_hash: str,
    file_name: str,
    material_type=None,
    description: Optional[str] = None,
    file_type: Optional[str] = None,
    file_size: Optional[int] = None,
    request_id: Optional[str] = None,
) -> DefenseMaterial:
    case = load_case(db, case_id)
    ensure_can_act(case, actor, EntityType.DEFENSE_MATERIAL, Operation.CREATE)

    if not (title or "").strip():
        raise BadRequest("title is required")
    if not (file_hash or "").strip():
        raise BadRequest("file_hash is required")
    if not (file_name or "").strip():
        raise BadRequest("file_name is required")
    material_type = _coerce_material_type(material_type)

    try:
        anchor = ledger.anchor(case.case_number, file_hash, {"kind": "material"})
    except ExternalFailure as e:
        logger.error(f"Anchoring defense material for case {case.case_number} failed: {e.message}")
        raise

    material = DefenseMaterial(
        case_id=case.id,
        lawyer_id=actor.user_id,
        title=title.strip(),
        description=description,
        file_hash=file_hash.strip(),
        file_name=file_name.strip(),
        file_type=file_type,
        file_size=file_size,
        material_type=material_type,
        ledger_anchor_id=anchor.anchor_id,
        ledger_tx_ref=anchor.tx_ref,
    )
    db.add(material)
    db.commit()
    db.refresh(material)

    record_operation(db, actor, OperationType.CREATE, "defense_material", material.id, material.title, request_id)
    notify_case_participants(
        db,
        case,
        CaseEvent(
            type=NotificationType.MATERIAL_SUBMITTED,
            title=f"Defense material submitted in case {case.case_number}",
            content=material.title,
            sender_id=actor.user_id,
        ),
        exclude_user_id=actor.user_id,
    )
    return material


def get_material(db: Session, actor, material_id: str) -> DefenseMaterial:
    material = load_material(db, material_id)
    ensure_can_act(material.case, actor, EntityType.DEFENSE_MATERIAL, Operation.VIEW)
    return material


def list_materials(
    db: Session,
    actor,
    case_id: str,
    material_type: Optional[MaterialType] = None,
    page: int = 1,
    page_size: int = None,
) -> Page:
    case = load_case(db, case_id)
    ensure_can_act(case, actor, EntityType.DEFENSE_MATERIAL, Operation.VIEW)

    query = db.query(DefenseMaterial).filter(DefenseMaterial.case_id == case.id)
    if material_type:
        query = query.filter(DefenseMaterial.material_type == material_type)
    query = query.order_by(DefenseMaterial.created_at.desc())
    return paginate(query, page, page_size)


def update_material(db: Session, actor, material_id: str, request_id: Optional[str] = None, **changes) -> DefenseMaterial:
    material = load_material(db, material_id)
    ensure_can_act(material.case, actor, EntityType.DEFENSE_MATERIAL, Operation.UPDATE)
    ensure_owner(material.lawyer_id, actor, "defense material")

    rejected = sorted(set(changes) - UPDATABLE_FIELDS)
    if rejected:
        raise BadRequest(f"Fields not updatable: {', '.join(rejected)}")
    if "title" in changes and not (changes["title"] or "").strip():
        raise BadRequest("title must not be empty")
    if "material_type" in changes:
        changes["material_type"] = _coerce_material_type(changes["material_type"])

    for name, value in changes.items():
        setattr(material, name, value)
    db.commit()
    db.refresh(material)

    record_operation(db, actor, OperationType.UPDATE, "defense_material", material.id, material.title, request_id)
    return material


def delete_material(db: Session, actor, material_id: str, request_id: Optional[str] = None) -> None:
    material = load_material(db, material_id)
    ensure_can_act(material.case, actor, EntityType.DEFENSE_MATERIAL, Operation.DELETE)
    ensure_owner(material.lawyer_id, actor, "defense material")

    title = material.title
    db.delete(material)
    db.commit()

    record_operation(db, actor, OperationType.DELETE, "defense_material", material_id, title, request_id)
