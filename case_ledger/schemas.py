"""
Pydantic Schemas for the HTTP surface
=====================================

Request bodies and response models for `/api/v1`. Responses are built from
ORM rows (`from_attributes`).
"""

from datetime import datetime
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

from .db.models import (
    AssignmentStatus, CaseStage, CaseType, CorrectionStatus, EvidenceStatus, EvidenceType,
    MaterialType, NotificationPriority, NotificationType, ObjectionStatus, OperationType,
    PushStatus, Role,
)

T = TypeVar("T")


class ORMModel(BaseModel):
    class Config:
        from_attributes = True


class PageResponse(BaseModel, Generic[T]):
    items: List[T]
    total: int
    page: int
    page_size: int


class HealthResponse(BaseModel):
    status: str
    version: str
    ledger_mode: str
    timestamp: str


class DeletedResponse(BaseModel):
    id: str
    deleted: bool = True


# =============================================================================
# USERS / ROLES
# =============================================================================

class RegisterUserRequest(BaseModel):
    """Register an actor"""
    name: str = Field(..., description="Display name")
    email: str = Field(..., description="Unique email")
    role: Role = Field(..., description="Procedural role")
    wallet_address: Optional[str] = Field(None, description="0x-prefixed ledger address")

    class Config:
        json_schema_extra = {
            "example": {
                "name": "Officer Dana",
                "email": "dana@police.example",
                "role": "police",
                "wallet_address": "0x" + "ab" * 20,
            }
        }


class UserOut(ORMModel):
    id: str
    name: str
    email: str
    role: Role
    wallet_address: Optional[str] = None
    is_active: bool


class RegistrationResponse(BaseModel):
    user: UserOut
    role_grant_pending: bool
    tx_ref: Optional[str] = None


class RoleAssignmentRequest(BaseModel):
    wallet_address: str
    role: Role


class RoleAssignmentOut(ORMModel):
    id: str
    wallet_address: str
    role: Role
    granted_by: Optional[str] = None
    tx_ref: Optional[str] = None
    status: AssignmentStatus
    revoked_at: Optional[datetime] = None
    revoke_tx_ref: Optional[str] = None
    created_at: Optional[datetime] = None


# =============================================================================
# CASES
# =============================================================================

class CreateCaseRequest(BaseModel):
    """File a new case"""
    case_number: str = Field(..., description="Unique business identifier")
    title: str
    case_type: CaseType
    description: Optional[str] = None
    plaintiff_message: Optional[str] = None
    defendant_message: Optional[str] = None
    judge_id: Optional[str] = None
    prosecutor_ids: List[str] = Field(default_factory=list)
    plaintiff_lawyer_ids: List[str] = Field(default_factory=list)
    defendant_lawyer_ids: List[str] = Field(default_factory=list)


class UpdateCaseRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    plaintiff_message: Optional[str] = None
    defendant_message: Optional[str] = None


class AdvanceCaseRequest(BaseModel):
    target_stage: Optional[CaseStage] = Field(None, description="Stage to move the case to")
    comment: Optional[str] = None
    operator_address: Optional[str] = None


class CaseOut(ORMModel):
    id: str
    case_number: str
    title: str
    case_type: CaseType
    stage: CaseStage
    description: Optional[str] = None
    plaintiff_message: Optional[str] = None
    defendant_message: Optional[str] = None
    police_id: Optional[str] = None
    judge_id: Optional[str] = None
    prosecutor_ids: List[str] = Field(default_factory=list)
    plaintiff_lawyer_ids: List[str] = Field(default_factory=list)
    defendant_lawyer_ids: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TimelineEntryOut(ORMModel):
    id: str
    case_id: str
    sequence: int
    stage: CaseStage
    operator_id: str
    operator_role: str
    operator_address: Optional[str] = None
    comment: Optional[str] = None
    created_at: Optional[datetime] = None


# =============================================================================
# ARTIFACTS
# =============================================================================

class CreateEvidenceRequest(BaseModel):
    title: str
    file_hash: str = Field(..., description="Content fingerprint of the file")
    file_name: str
    file_type: Optional[str] = None
    file_size: Optional[int] = None
    evidence_type: EvidenceType = EvidenceType.OTHER
    description: Optional[str] = None
    original_evidence_id: Optional[str] = None


class UpdateEvidenceRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    evidence_type: Optional[EvidenceType] = None


class VerifyEvidenceRequest(BaseModel):
    approve: bool
    note: Optional[str] = None


class EvidenceOut(ORMModel):
    id: str
    case_id: str
    title: str
    description: Optional[str] = None
    file_hash: str
    file_name: str
    file_type: Optional[str] = None
    file_size: Optional[int] = None
    evidence_type: EvidenceType
    status: EvidenceStatus
    uploader_id: Optional[str] = None
    ledger_anchor_id: Optional[str] = None
    ledger_tx_ref: Optional[str] = None
    original_evidence_id: Optional[str] = None
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None
    verification_note: Optional[str] = None
    created_at: Optional[datetime] = None


class CreateCorrectionRequest(BaseModel):
    original_evidence_id: str
    reason: str
    file_hash: str


class UpdateCorrectionRequest(BaseModel):
    reason: str


class ReviewCorrectionRequest(BaseModel):
    approve: bool


class CorrectionOut(ORMModel):
    id: str
    case_id: str
    original_evidence_id: str
    reason: str
    file_hash: str
    status: CorrectionStatus
    submitted_by: str
    ledger_anchor_id: Optional[str] = None
    ledger_tx_ref: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class CreateMaterialRequest(BaseModel):
    title: str
    file_hash: str
    file_name: str
    material_type: MaterialType = MaterialType.OTHER
    description: Optional[str] = None
    file_type: Optional[str] = None
    file_size: Optional[int] = None


class UpdateMaterialRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    material_type: Optional[MaterialType] = None


class MaterialOut(ORMModel):
    id: str
    case_id: str
    lawyer_id: str
    title: str
    description: Optional[str] = None
    file_hash: str
    file_name: str
    file_type: Optional[str] = None
    file_size: Optional[int] = None
    material_type: MaterialType
    ledger_anchor_id: Optional[str] = None
    ledger_tx_ref: Optional[str] = None
    created_at: Optional[datetime] = None


class CreateObjectionRequest(BaseModel):
    evidence_id: str
    content: str


class UpdateObjectionRequest(BaseModel):
    content: str


class HandleObjectionRequest(BaseModel):
    accept: bool
    result: str


class ObjectionOut(ORMModel):
    id: str
    case_id: str
    evidence_id: str
    content: str
    status: ObjectionStatus
    submitted_by: str
    submitter_role: str
    handled_by: Optional[str] = None
    handled_at: Optional[datetime] = None
    is_accepted: Optional[bool] = None
    handle_result: Optional[str] = None
    created_at: Optional[datetime] = None


# =============================================================================
# NOTIFICATIONS / AUDIT
# =============================================================================

class CreateNotificationRequest(BaseModel):
    recipient_id: str
    title: str
    content: str
    priority: NotificationPriority = NotificationPriority.NORMAL
    related_case_id: Optional[str] = None


class PushStatusRequest(BaseModel):
    push_status: PushStatus


class NotificationOut(ORMModel):
    id: str
    recipient_id: str
    sender_id: Optional[str] = None
    type: NotificationType
    title: str
    content: str
    priority: NotificationPriority
    related_case_id: Optional[str] = None
    related_evidence_id: Optional[str] = None
    related_objection_id: Optional[str] = None
    is_read: bool
    read_at: Optional[datetime] = None
    push_status: PushStatus
    pushed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class UnreadCountResponse(BaseModel):
    unread: int


class MarkAllReadResponse(BaseModel):
    updated: int


class OperationLogOut(ORMModel):
    id: str
    user_id: Optional[str] = None
    user_role: Optional[str] = None
    operation_type: OperationType
    target_type: str
    target_id: Optional[str] = None
    description: Optional[str] = None
    request_id: Optional[str] = None
    created_at: Optional[datetime] = None
