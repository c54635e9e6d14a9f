"""
Audit Recorder
==============

Writes an operation log entry after a successful mutation. Recording is
best-effort: failures are logged and swallowed, never retried, and never
undo the operation they describe.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from .db.models import OperationLog, OperationType
from .errors import Forbidden, WRONG_ROLE
from .pagination import Page, paginate

logger = logging.getLogger(__name__)


def record_operation(
    db: Session,
    actor,
    operation_type: OperationType,
    target_type: str,
    target_id: Optional[str],
    description: Optional[str] = None,
    request_id: Optional[str] = None,
    commit: bool = True,
) -> Optional[OperationLog]:
    """
    Record one audit entry.

    With commit=False the entry joins the caller's open transaction inside a
    savepoint, so a failed write is rolled back alone.
    """
    try:
        with db.begin_nested():
            entry = OperationLog(
                user_id=getattr(actor, "user_id", None),
                user_role=getattr(actor, "role_value", None),
                operation_type=operation_type,
                target_type=target_type,
                target_id=target_id,
                description=description,
                request_id=request_id,
            )
            db.add(entry)
        if commit:
            db.commit()
        return entry
    except Exception as e:
        logger.warning(f"Audit record failed for {operation_type} {target_type} {target_id}: {e}")
        if commit:
            db.rollback()
        return None


def list_operation_logs(
    db: Session,
    actor,
    user_id: Optional[str] = None,
    operation_type: Optional[OperationType] = None,
    target_type: Optional[str] = None,
    target_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    page: int = 1,
    page_size: int = None,
) -> Page:
    """Admin-only, newest first."""
    if not actor.is_admin:
        raise Forbidden("only admins may read operation logs", reason=WRONG_ROLE)

    query = db.query(OperationLog)
    if user_id:
        query = query.filter(OperationLog.user_id == user_id)
    if operation_type:
        query = query.filter(OperationLog.operation_type == operation_type)
    if target_type:
        query = query.filter(OperationLog.target_type == target_type)
    if target_id:
        query = query.filter(OperationLog.target_id == target_id)
    if start:
        query = query.filter(OperationLog.created_at >= start)
    if end:
        query = query.filter(OperationLog.created_at <= end)

    query = query.order_by(OperationLog.created_at.desc())
    return paginate(query, page, page_size)
