"""
Actor Registry
==============

Registers actors and keeps their on-ledger role grants in step.

Registration grants the actor's role to its wallet address on the ledger.
That grant is best-effort: if the ledger call fails the registration still
completes and the result reports `role_grant_pending`. Explicit admin grants
and revocations are not best-effort; a ledger failure there aborts.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .audit import record_operation
from .auth import coerce_role, identity_from_user
from .db.models import AssignmentStatus, OperationType, Role, RoleAssignment, User
from .errors import BadRequest, Conflict, ExternalFailure, Forbidden, NotFound, WRONG_ROLE
from .ledger import LedgerClient
from .pagination import Page, paginate

logger = logging.getLogger(__name__)

WALLET_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass
class RegistrationResult:
    user: User
    role_grant_pending: bool = False
    tx_ref: Optional[str] = None


def normalize_wallet_address(address: Optional[str]) -> Optional[str]:
    if address is None or address == "":
        return None
    address = address.strip()
    if not WALLET_ADDRESS_RE.match(address):
        raise BadRequest(f"Invalid wallet address: {address}")
    return address.lower()


def _require_role(value) -> Role:
    role = coerce_role(value)
    if role is None:
        raise BadRequest(f"Unknown role: {value}")
    return role


def _ensure_admin(actor) -> None:
    if not actor.is_admin:
        raise Forbidden("only admins may manage role assignments", reason=WRONG_ROLE)


def _active_assignment(db: Session, wallet_address: str, role: Role) -> Optional[RoleAssignment]:
    return db.query(RoleAssignment).filter(
        RoleAssignment.wallet_address == wallet_address,
        RoleAssignment.role == role,
        RoleAssignment.status == AssignmentStatus.ACTIVE,
    ).first()


def _grant_on_registration(
    db: Session,
    ledger: LedgerClient,
    user: User,
    wallet_address: str,
    role: Role,
    result: RegistrationResult,
) -> None:
    # An admin may have granted the role to this address before registration
    existing = _active_assignment(db, wallet_address, role)
    if existing:
        result.tx_ref = existing.tx_ref
        return

    try:
        tx_ref = ledger.grant_role(wallet_address, role.value)
    except ExternalFailure as e:
        logger.error(f"Ledger role grant for new user {user.id} failed, registration kept: {e.message}")
        result.role_grant_pending = True
        return

    db.add(RoleAssignment(
        wallet_address=wallet_address,
        role=role,
        granted_by=None,
        tx_ref=tx_ref,
        status=AssignmentStatus.ACTIVE,
    ))
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning(f"Role assignment for new user {user.id} not stored, concurrent grant: {e.orig}")
        result.role_grant_pending = True
        return
    result.tx_ref = tx_ref


def register_user(
    db: Session,
    ledger: LedgerClient,
    name: str,
    email: str,
    role,
    wallet_address: Optional[str] = None,
) -> RegistrationResult:
    name = (name or "").strip()
    email = (email or "").strip().lower()
    if not name:
        raise BadRequest("name is required")
    if not EMAIL_RE.match(email):
        raise BadRequest(f"Invalid email: {email}")
    role = _require_role(role)
    wallet_address = normalize_wallet_address(wallet_address)

    if db.query(User).filter(User.email == email).first():
        raise Conflict(f"Email already registered: {email}")
    if wallet_address and db.query(User).filter(User.wallet_address == wallet_address).first():
        raise Conflict(f"Wallet address already registered: {wallet_address}")

    user = User(name=name, email=email, role=role, wallet_address=wallet_address, is_active=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Registered {role.value} {user.id}")

    result = RegistrationResult(user=user)
    if wallet_address and role != Role.ADMIN:
        _grant_on_registration(db, ledger, user, wallet_address, role, result)

    record_operation(db, identity_from_user(user), OperationType.REGISTER, "user", user.id, f"registered as {role.value}")
    return result


def grant_role(db: Session, ledger: LedgerClient, actor, wallet_address: str, role) -> RoleAssignment:
    _ensure_admin(actor)
    role = _require_role(role)
    wallet_address = normalize_wallet_address(wallet_address)
    if not wallet_address:
        raise BadRequest("wallet_address is required")

    if _active_assignment(db, wallet_address, role):
        raise Conflict(f"{wallet_address} already holds {role.value}")

    tx_ref = ledger.grant_role(wallet_address, role.value)

    assignment = RoleAssignment(
        wallet_address=wallet_address,
        role=role,
        granted_by=actor.user_id,
        tx_ref=tx_ref,
        status=AssignmentStatus.ACTIVE,
    )
    db.add(assignment)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict(f"{wallet_address} already holds {role.value}")
    db.refresh(assignment)

    record_operation(db, actor, OperationType.GRANT_ROLE, "role_assignment", assignment.id, f"{role.value} -> {wallet_address}")
    return assignment


def revoke_role(db: Session, ledger: LedgerClient, actor, wallet_address: str, role) -> RoleAssignment:
    _ensure_admin(actor)
    role = _require_role(role)
    wallet_address = normalize_wallet_address(wallet_address)
    if not wallet_address:
        raise BadRequest("wallet_address is required")

    assignment = _active_assignment(db, wallet_address, role)
    if not assignment:
        raise NotFound(f"{wallet_address} holds no active {role.value} assignment")

    tx_ref = ledger.revoke_role(wallet_address, role.value)

    assignment.status = AssignmentStatus.REVOKED
    assignment.revoked_at = datetime.utcnow()
    assignment.revoke_tx_ref = tx_ref
    db.commit()
    db.refresh(assignment)

    record_operation(db, actor, OperationType.REVOKE_ROLE, "role_assignment", assignment.id, f"{role.value} x {wallet_address}")
    return assignment


def list_role_assignments(
    db: Session,
    actor,
    wallet_address: Optional[str] = None,
    status: Optional[AssignmentStatus] = None,
    page: int = 1,
    page_size: int = None,
) -> Page:
    _ensure_admin(actor)
    query = db.query(RoleAssignment)
    if wallet_address:
        query = query.filter(RoleAssignment.wallet_address == wallet_address.strip().lower())
    if status:
        query = query.filter(RoleAssignment.status == status)
    query = query.order_by(RoleAssignment.created_at.desc())
    return paginate(query, page, page_size)
