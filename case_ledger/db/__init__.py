"""
Database Package - SQLAlchemy
=============================

Persistence layer for cases, artifacts and their side-effect records.
"""

from .models import (
    Base,
    User, RoleAssignment,
    Case, CaseParticipant, CaseTimeline,
    Evidence, Correction, DefenseMaterial, Objection,
    Notification, OperationLog,
    Role, CaseType, CaseStage, ParticipantParty,
    EvidenceType, EvidenceStatus, CorrectionStatus, MaterialType, ObjectionStatus,
    NotificationType, NotificationPriority, PushStatus, AssignmentStatus, OperationType,
)
from .session import get_db, init_db, get_engine, reset_engine

__all__ = [
    # Base
    "Base",
    # Actors
    "User", "RoleAssignment",
    # Cases
    "Case", "CaseParticipant", "CaseTimeline",
    # Artifacts
    "Evidence", "Correction", "DefenseMaterial", "Objection",
    # Side effects
    "Notification", "OperationLog",
    # Enums
    "Role", "CaseType", "CaseStage", "ParticipantParty",
    "EvidenceType", "EvidenceStatus", "CorrectionStatus", "MaterialType", "ObjectionStatus",
    "NotificationType", "NotificationPriority", "PushStatus", "AssignmentStatus", "OperationType",
    # Session
    "get_db", "init_db", "get_engine", "reset_engine",
]
