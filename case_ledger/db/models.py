"""
SQLAlchemy Models for Database
==============================

Schema for the multi-party case record:
- Actors (users with a procedural role) and on-ledger role assignments
- Cases with role-partitioned participants and an append-only timeline
- Evidentiary artifacts: evidence, corrections, defense materials
- Objections raised against evidence
- Notifications and operation logs

Supports both PostgreSQL and SQLite via SQLAlchemy.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Column, String, Text, Integer, BigInteger, Boolean, DateTime, Enum, ForeignKey,
    UniqueConstraint, Index, text,
)
from sqlalchemy.orm import relationship, declarative_base

Base = declarative_base()


def generate_uuid():
    return str(uuid.uuid4())


# =============================================================================
# ENUMS
# =============================================================================

class Role(str, enum.Enum):
    """Procedural role of an actor"""
    POLICE = "police"
    PROSECUTOR = "prosecutor"
    JUDGE = "judge"
    LAWYER = "lawyer"
    ADMIN = "admin"


class CaseType(str, enum.Enum):
    PUBLIC_PROSECUTION = "public_prosecution"
    CIVIL_LITIGATION = "civil_litigation"


class CaseStage(str, enum.Enum):
    """Procedural stage; only ever moves forward"""
    INVESTIGATION = "investigation"
    PROSECUTORATE = "prosecutorate"
    COURT_TRIAL = "court_trial"
    CLOSED = "closed"


class ParticipantParty(str, enum.Enum):
    """Which participant set a case member belongs to"""
    PROSECUTOR = "prosecutor"
    PLAINTIFF_LAWYER = "plaintiff_lawyer"
    DEFENDANT_LAWYER = "defendant_lawyer"


class EvidenceType(str, enum.Enum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    PDF = "pdf"
    DOCUMENT = "document"
    OTHER = "other"


class EvidenceStatus(str, enum.Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"
    CORRECTED = "corrected"


class CorrectionStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class MaterialType(str, enum.Enum):
    DEFENSE_BRIEF = "defense_brief"
    EVIDENCE_SUBMISSION = "evidence_submission"
    WITNESS_STATEMENT = "witness_statement"
    EXPERT_OPINION = "expert_opinion"
    OTHER = "other"


class ObjectionStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class NotificationType(str, enum.Enum):
    CASE_CREATED = "case_created"
    CASE_STATUS_CHANGED = "case_status_changed"
    EVIDENCE_UPLOADED = "evidence_uploaded"
    EVIDENCE_VERIFIED = "evidence_verified"
    CORRECTION_SUBMITTED = "correction_submitted"
    CORRECTION_REVIEWED = "correction_reviewed"
    MATERIAL_SUBMITTED = "material_submitted"
    OBJECTION_SUBMITTED = "objection_submitted"
    OBJECTION_HANDLED = "objection_handled"
    SYSTEM = "system"


class NotificationPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class PushStatus(str, enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class AssignmentStatus(str, enum.Enum):
    ACTIVE = "active"
    REVOKED = "revoked"


class OperationType(str, enum.Enum):
    """Audit operation kinds"""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    TRANSITION = "transition"
    VERIFY = "verify"
    REVIEW = "review"
    HANDLE = "handle"
    REGISTER = "register"
    GRANT_ROLE = "grant_role"
    REVOKE_ROLE = "revoke_role"


# =============================================================================
# ACTORS
# =============================================================================

class User(Base):
    """Registered actor"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    role = Column(Enum(Role), nullable=False)
    wallet_address = Column(String(42), nullable=True, unique=True)  # lower-cased 0x + 40 hex
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class RoleAssignment(Base):
    """Role granted to a wallet address on the ledger"""
    __tablename__ = "role_assignments"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    wallet_address = Column(String(42), nullable=False, index=True)
    role = Column(Enum(Role), nullable=False)
    granted_by = Column(String(36), nullable=True)  # None for grants made during registration
    tx_ref = Column(String(100), nullable=True)
    status = Column(Enum(AssignmentStatus), default=AssignmentStatus.ACTIVE, nullable=False)
    revoked_at = Column(DateTime, nullable=True)
    revoke_tx_ref = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # At most one active assignment per (address, role)
    __table_args__ = (
        Index(
            "uq_role_assignment_active",
            "wallet_address",
            "role",
            unique=True,
            sqlite_where=text("status = 'ACTIVE'"),
            postgresql_where=text("status = 'ACTIVE'"),
        ),
    )


# =============================================================================
# CASES
# =============================================================================

class Case(Base):
    """Case record shared by its participants"""
    __tablename__ = "cases"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_number = Column(String(100), nullable=False, unique=True)
    title = Column(String(500), nullable=False)
    case_type = Column(Enum(CaseType), nullable=False)
    stage = Column(Enum(CaseStage), default=CaseStage.INVESTIGATION, nullable=False)
    description = Column(Text, nullable=True)
    plaintiff_message = Column(Text, nullable=True)
    defendant_message = Column(Text, nullable=True)
    police_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    judge_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    participants = relationship(
        "CaseParticipant", back_populates="case", cascade="all, delete-orphan",
        order_by="CaseParticipant.position",
    )
    timeline = relationship(
        "CaseTimeline", back_populates="case", cascade="all, delete-orphan",
        order_by="CaseTimeline.sequence",
    )
    evidence = relationship("Evidence", back_populates="case", cascade="all, delete-orphan")
    corrections = relationship("Correction", back_populates="case", cascade="all, delete-orphan")
    materials = relationship("DefenseMaterial", back_populates="case", cascade="all, delete-orphan")
    objections = relationship("Objection", back_populates="case", cascade="all, delete-orphan")

    def _party_ids(self, party: ParticipantParty):
        return [p.user_id for p in self.participants if p.party == party]

    @property
    def prosecutor_ids(self):
        return self._party_ids(ParticipantParty.PROSECUTOR)

    @property
    def plaintiff_lawyer_ids(self):
        return self._party_ids(ParticipantParty.PLAINTIFF_LAWYER)

    @property
    def defendant_lawyer_ids(self):
        return self._party_ids(ParticipantParty.DEFENDANT_LAWYER)


class CaseParticipant(Base):
    """Membership of a user in one of a case's participant sets"""
    __tablename__ = "case_participants"

    case_id = Column(String(36), ForeignKey("cases.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    party = Column(Enum(ParticipantParty), primary_key=True)
    position = Column(Integer, default=0, nullable=False)
    added_at = Column(DateTime, default=datetime.utcnow)

    case = relationship("Case", back_populates="participants")


class CaseTimeline(Base):
    """Immutable record of a stage the case entered"""
    __tablename__ = "case_timeline"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)
    stage = Column(Enum(CaseStage), nullable=False)
    operator_id = Column(String(36), nullable=False)
    operator_role = Column(String(50), nullable=False)
    operator_address = Column(String(42), nullable=True)
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("case_id", "sequence", name="uq_case_timeline_sequence"),
    )

    case = relationship("Case", back_populates="timeline")


# =============================================================================
# ARTIFACTS
# =============================================================================

class Evidence(Base):
    """Evidentiary artifact anchored on the ledger"""
    __tablename__ = "evidence"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    file_hash = Column(String(128), nullable=False)
    file_name = Column(String(500), nullable=False)
    file_type = Column(String(100), nullable=True)
    file_size = Column(BigInteger, nullable=True)
    evidence_type = Column(Enum(EvidenceType), default=EvidenceType.OTHER, nullable=False)
    status = Column(Enum(EvidenceStatus), default=EvidenceStatus.PENDING, nullable=False)
    uploader_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    ledger_anchor_id = Column(String(100), nullable=True)
    ledger_tx_ref = Column(String(100), nullable=True)
    original_evidence_id = Column(String(36), ForeignKey("evidence.id", ondelete="SET NULL"), nullable=True)
    verified_by = Column(String(36), nullable=True)
    verified_at = Column(DateTime, nullable=True)
    verification_note = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    case = relationship("Case", back_populates="evidence")
    corrections = relationship(
        "Correction", back_populates="original_evidence", cascade="all, delete-orphan",
    )
    objections = relationship("Objection", back_populates="evidence", cascade="all, delete-orphan")


class Correction(Base):
    """Correction of an anchored evidence item, linked on the ledger to the original anchor"""
    __tablename__ = "corrections"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)
    original_evidence_id = Column(String(36), ForeignKey("evidence.id", ondelete="CASCADE"), nullable=False, index=True)
    reason = Column(Text, nullable=False)
    file_hash = Column(String(128), nullable=False)
    status = Column(Enum(CorrectionStatus), default=CorrectionStatus.PENDING, nullable=False)
    submitted_by = Column(String(36), nullable=False)
    ledger_anchor_id = Column(String(100), nullable=True)
    ledger_tx_ref = Column(String(100), nullable=True)
    reviewed_by = Column(String(36), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    case = relationship("Case", back_populates="corrections")
    original_evidence = relationship("Evidence", back_populates="corrections")


class DefenseMaterial(Base):
    """Material submitted by a lawyer during trial"""
    __tablename__ = "defense_materials"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)
    lawyer_id = Column(String(36), nullable=False)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    file_hash = Column(String(128), nullable=False)
    file_name = Column(String(500), nullable=False)
    file_type = Column(String(100), nullable=True)
    file_size = Column(BigInteger, nullable=True)
    material_type = Column(Enum(MaterialType), default=MaterialType.OTHER, nullable=False)
    ledger_anchor_id = Column(String(100), nullable=True)
    ledger_tx_ref = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    case = relationship("Case", back_populates="materials")


class Objection(Base):
    """Objection raised against an evidence item, ruled on by the judge"""
    __tablename__ = "objections"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)
    evidence_id = Column(String(36), ForeignKey("evidence.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    status = Column(Enum(ObjectionStatus), default=ObjectionStatus.PENDING, nullable=False)
    submitted_by = Column(String(36), nullable=False)
    submitter_role = Column(String(50), nullable=False)
    handled_by = Column(String(36), nullable=True)
    handled_at = Column(DateTime, nullable=True)
    is_accepted = Column(Boolean, nullable=True)
    handle_result = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    case = relationship("Case", back_populates="objections")
    evidence = relationship("Evidence", back_populates="objections")


# =============================================================================
# SIDE EFFECTS
# =============================================================================

class Notification(Base):
    """Per-recipient notification"""
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    recipient_id = Column(String(36), nullable=False, index=True)
    sender_id = Column(String(36), nullable=True)
    type = Column(Enum(NotificationType), nullable=False)
    title = Column(String(500), nullable=False)
    content = Column(Text, nullable=False)
    priority = Column(Enum(NotificationPriority), default=NotificationPriority.NORMAL, nullable=False)
    related_case_id = Column(String(36), nullable=True, index=True)
    related_evidence_id = Column(String(36), nullable=True)
    related_objection_id = Column(String(36), nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime, nullable=True)
    push_status = Column(Enum(PushStatus), default=PushStatus.PENDING, nullable=False)
    pushed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_notifications_recipient_read", "recipient_id", "is_read"),
    )


class OperationLog(Base):
    """Audit entry for a completed operation"""
    __tablename__ = "operation_logs"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), nullable=True, index=True)
    user_role = Column(String(50), nullable=True)
    operation_type = Column(Enum(OperationType), nullable=False)
    target_type = Column(String(50), nullable=False)
    target_id = Column(String(36), nullable=True)
    description = Column(Text, nullable=True)
    request_id = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    __table_args__ = (
        Index("idx_operation_logs_target", "target_type", "target_id"),
    )
