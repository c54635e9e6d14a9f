"""
Case Ledger API
===============

Thin FastAPI wrapper over the case services. Every route authenticates the
actor, delegates to one service call and renders the result; authorization
and workflow decisions live in the services.

Endpoints (all under /api/v1 except /health):
- POST   /users                                  - Register actor
- GET    /me                                     - Current actor
- POST   /cases, GET /cases                      - File / list cases
- GET    /cases/{case_id}                        - Get case
- PATCH  /cases/{case_id}, DELETE /cases/{case_id}
- POST   /cases/{case_id}/advance                - Stage transition
- GET    /cases/{case_id}/timeline               - Timeline
- POST   /cases/{case_id}/evidence, GET ...      - Evidence
- GET|PATCH|DELETE /evidence/{id}, POST /evidence/{id}/verify
- POST   /cases/{case_id}/corrections, GET ...   - Corrections
- GET|PATCH|DELETE /corrections/{id}, POST /corrections/{id}/review
- POST   /cases/{case_id}/materials, GET ...     - Defense materials
- GET|PATCH|DELETE /materials/{id}
- POST   /cases/{case_id}/objections, GET ...    - Objections
- GET|PATCH|DELETE /objections/{id}, POST /objections/{id}/handle
- GET    /notifications, /notifications/unread-count, /notifications/{id}
- DELETE /notifications/{id} (admin)
- POST   /notifications/{id}/read, /notifications/read-all, /notifications (admin)
- PATCH  /notifications/{id}/push-status (admin)
- GET    /operation-logs (admin)
- GET|POST /role-assignments, POST /role-assignments/revoke (admin)

Run with:
    uvicorn case_ledger.api:app --host 0.0.0.0 --port 8000
"""

import logging
from datetime import datetime
from functools import lru_cache
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from . import __version__
from . import audit, cases, corrections, evidence, materials, notifications, objections, registry, workflow
from .auth import Identity, get_auth_service
from .config import get_settings
from .db.models import (
    AssignmentStatus, CaseStage, CaseType, CorrectionStatus, EvidenceStatus, EvidenceType,
    MaterialType, ObjectionStatus, OperationType, User,
)
from .db.session import get_db, init_db
from .errors import CaseLedgerError, Unauthenticated
from .ledger import LedgerClient, get_ledger_client
from .pagination import Page
from .schemas import (
    AdvanceCaseRequest, CaseOut, CorrectionOut, CreateCaseRequest, CreateCorrectionRequest,
    CreateEvidenceRequest, CreateMaterialRequest, CreateNotificationRequest, CreateObjectionRequest,
    DeletedResponse, EvidenceOut, HandleObjectionRequest, HealthResponse, MarkAllReadResponse,
    MaterialOut, NotificationOut, ObjectionOut, OperationLogOut, PageResponse, PushStatusRequest,
    RegisterUserRequest, RegistrationResponse, ReviewCorrectionRequest, RoleAssignmentOut,
    RoleAssignmentRequest, TimelineEntryOut, UnreadCountResponse, UpdateCaseRequest,
    UpdateCorrectionRequest, UpdateEvidenceRequest, UpdateMaterialRequest, UpdateObjectionRequest,
    UserOut, VerifyEvidenceRequest,
)

settings = get_settings()

# Configure logging
logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)

for warning in settings.validate_ledger_config():
    logger.warning(warning)


# =============================================================================
# Dependencies
# =============================================================================

def get_db_dependency():
    """Get database session for FastAPI dependency injection"""
    db = next(get_db())
    try:
        yield db
    finally:
        db.close()


@lru_cache()
def _default_ledger() -> LedgerClient:
    return get_ledger_client(get_settings())


def get_ledger() -> LedgerClient:
    """Ledger client for creation operations (overridable in tests)"""
    return _default_ledger()


def get_identity(
    db: Session = Depends(get_db_dependency),
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    authorization: Optional[str] = Header(None),
) -> Identity:
    """Resolve the calling actor from a bearer token or X-User-Id header"""
    identity = get_auth_service(db).authenticate(authorization=authorization, user_id=x_user_id)
    if identity is None:
        raise Unauthenticated("Authentication required")
    return identity


def get_request_id(x_request_id: Optional[str] = Header(None, alias="X-Request-Id")) -> Optional[str]:
    return x_request_id


def _page(page: Page, schema) -> Dict[str, Any]:
    return PageResponse[schema](
        items=[schema.model_validate(item) for item in page.items],
        total=page.total,
        page=page.page,
        page_size=page.page_size,
    ).model_dump()


# =============================================================================
# FastAPI App
# =============================================================================

app = FastAPI(
    title="Case Ledger Service",
    description="Multi-party case workflow with stage-gated authorization and ledger-anchored evidence",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

CORS_ALLOW_ORIGINS = settings.cors_origins()
logger.info(f"CORS allow origins: {CORS_ALLOW_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup():
    init_db()


@app.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(
        status="healthy",
        version=__version__,
        ledger_mode=get_settings().ledger_mode.value,
        timestamp=datetime.utcnow().isoformat(),
    )


router = APIRouter(prefix="/api/v1")


# =============================================================================
# Users / roles
# =============================================================================

@router.post("/users", response_model=RegistrationResponse, status_code=201)
def register_user(
    body: RegisterUserRequest,
    db: Session = Depends(get_db_dependency),
    ledger: LedgerClient = Depends(get_ledger),
):
    result = registry.register_user(
        db, ledger,
        name=body.name,
        email=body.email,
        role=body.role,
        wallet_address=body.wallet_address,
    )
    return RegistrationResponse(
        user=UserOut.model_validate(result.user),
        role_grant_pending=result.role_grant_pending,
        tx_ref=result.tx_ref,
    )


@router.get("/me", response_model=UserOut)
def me(identity: Identity = Depends(get_identity), db: Session = Depends(get_db_dependency)):
    user = db.query(User).filter(User.id == identity.user_id).first()
    return UserOut.model_validate(user)


@router.get("/role-assignments")
def list_role_assignments(
    wallet_address: Optional[str] = None,
    status: Optional[AssignmentStatus] = None,
    page: int = Query(1),
    page_size: Optional[int] = Query(None),
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db_dependency),
):
    result = registry.list_role_assignments(db, identity, wallet_address, status, page, page_size)
    return _page(result, RoleAssignmentOut)


@router.post("/role-assignments", response_model=RoleAssignmentOut, status_code=201)
def grant_role(
    body: RoleAssignmentRequest,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db_dependency),
    ledger: LedgerClient = Depends(get_ledger),
):
    assignment = registry.grant_role(db, ledger, identity, body.wallet_address, body.role)
    return RoleAssignmentOut.model_validate(assignment)


@router.post("/role-assignments/revoke", response_model=RoleAssignmentOut)
def revoke_role(
    body: RoleAssignmentRequest,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db_dependency),
    ledger: LedgerClient = Depends(get_ledger),
):
    assignment = registry.revoke_role(db, ledger, identity, body.wallet_address, body.role)
    return RoleAssignmentOut.model_validate(assignment)


# =============================================================================
# Cases
# =============================================================================

@router.post("/cases", response_model=CaseOut, status_code=201)
def create_case(
    body: CreateCaseRequest,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db_dependency),
    request_id: Optional[str] = Depends(get_request_id),
):
    case = cases.create_case(db, identity, request_id=request_id, **body.model_dump())
    return CaseOut.model_validate(case)


@router.get("/cases")
def list_cases(
    stage: Optional[CaseStage] = None,
    case_type: Optional[CaseType] = None,
    keyword: Optional[str] = None,
    page: int = Query(1),
    page_size: Optional[int] = Query(None),
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db_dependency),
):
    result = cases.list_cases(db, identity, stage, case_type, keyword, page, page_size)
    return _page(result, CaseOut)


@router.get("/cases/{case_id}", response_model=CaseOut)
def get_case(case_id: str, identity: Identity = Depends(get_identity), db: Session = Depends(get_db_dependency)):
    return CaseOut.model_validate(cases.get_case(db, identity, case_id))


@router.patch("/cases/{case_id}", response_model=CaseOut)
def update_case(
    case_id: str,
    body: UpdateCaseRequest,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db_dependency),
    request_id: Optional[str] = Depends(get_request_id),
):
    changes = body.model_dump(exclude_unset=True)
    return CaseOut.model_validate(cases.update_case(db, identity, case_id, request_id=request_id, **changes))


@router.delete("/cases/{case_id}", response_model=DeletedResponse)
def delete_case(
    case_id: str,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db_dependency),
    request_id: Optional[str] = Depends(get_request_id),
):
    cases.delete_case(db, identity, case_id, request_id=request_id)
    return DeletedResponse(id=case_id)


@router.post("/cases/{case_id}/advance", response_model=TimelineEntryOut)
def advance_case(
    case_id: str,
    body: AdvanceCaseRequest,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db_dependency),
    request_id: Optional[str] = Depends(get_request_id),
):
    entry = workflow.request_transition(
        db, case_id, identity, body.target_stage,
        comment=body.comment,
        operator_address=body.operator_address,
        request_id=request_id,
    )
    return TimelineEntryOut.model_validate(entry)


@router.get("/cases/{case_id}/timeline")
def get_case_timeline(case_id: str, identity: Identity = Depends(get_identity), db: Session = Depends(get_db_dependency)):
    entries = cases.get_case_timeline(db, identity, case_id)
    return {"items": [TimelineEntryOut.model_validate(e).model_dump() for e in entries]}


# =============================================================================
# Evidence
# =============================================================================

@router.post("/cases/{case_id}/evidence", response_model=EvidenceOut, status_code=201)
def create_evidence(
    case_id: str,
    body: CreateEvidenceRequest,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db_dependency),
    ledger: LedgerClient = Depends(get_ledger),
    request_id: Optional[str] = Depends(get_request_id),
):
    item = evidence.create_evidence(db, ledger, identity, case_id, request_id=request_id, **body.model_dump())
    return EvidenceOut.model_validate(item)


@router.get("/cases/{case_id}/evidence")
def list_evidence(
    case_id: str,
    keyword: Optional[str] = None,
    status: Optional[EvidenceStatus] = None,
    evidence_type: Optional[EvidenceType] = None,
    page: int = Query(1),
    page_size: Optional[int] = Query(None),
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db_dependency),
):
    result = evidence.list_evidence(db, identity, case_id, keyword, status, evidence_type, page, page_size)
    return _page(result, EvidenceOut)


@router.get("/evidence/{evidence_id}", response_model=EvidenceOut)
def get_evidence(evidence_id: str, identity: Identity = Depends(get_identity), db: Session = Depends(get_db_dependency)):
    return EvidenceOut.model_validate(evidence.get_evidence(db, identity, evidence_id))


@router.patch("/evidence/{evidence_id}", response_model=EvidenceOut)
def update_evidence(
    evidence_id: str,
    body: UpdateEvidenceRequest,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db_dependency),
    request_id: Optional[str] = Depends(get_request_id),
):
    changes = body.model_dump(exclude_unset=True)
    item = evidence.update_evidence(db, identity, evidence_id, request_id=request_id, **changes)
    return EvidenceOut.model_validate(item)


@router.delete("/evidence/{evidence_id}", response_model=DeletedResponse)
def delete_evidence(
    evidence_id: str,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db_dependency),
    request_id: Optional[str] = Depends(get_request_id),
):
    evidence.delete_evidence(db, identity, evidence_id, request_id=request_id)
    return DeletedResponse(id=evidence_id)


@router.post("/evidence/{evidence_id}/verify", response_model=EvidenceOut)
def verify_evidence(
    evidence_id: str,
    body: VerifyEvidenceRequest,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db_dependency),
    request_id: Optional[str] = Depends(get_request_id),
):
    item = evidence.verify_evidence(db, identity, evidence_id, body.approve, body.note, request_id=request_id)
    return EvidenceOut.model_validate(item)


# =============================================================================
# Corrections
# =============================================================================

@router.post("/cases/{case_id}/corrections", response_model=CorrectionOut, status_code=201)
def create_correction(
    case_id: str,
    body: CreateCorrectionRequest,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db_dependency),
    ledger: LedgerClient = Depends(get_ledger),
    request_id: Optional[str] = Depends(get_request_id),
):
    item = corrections.create_correction(
        db, ledger, identity, case_id,
        original_evidence_id=body.original_evidence_id,
        reason=body.reason,
        file_hash=body.file_hash,
        request_id=request_id,
    )
    return CorrectionOut.model_validate(item)


@router.get("/cases/{case_id}/corrections")
def list_corrections(
    case_id: str,
    original_evidence_id: Optional[str] = None,
    status: Optional[CorrectionStatus] = None,
    page: int = Query(1),
    page_size: Optional[int] = Query(None),
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db_dependency),
):
    result = corrections.list_corrections(db, identity, case_id, original_evidence_id, status, page, page_size)
    return _page(result, CorrectionOut)


@router.get("/corrections/{correction_id}", response_model=CorrectionOut)
def get_correction(correction_id: str, identity: Identity = Depends(get_identity), db: Session = Depends(get_db_dependency)):
    return CorrectionOut.model_validate(corrections.get_correction(db, identity, correction_id))


@router.patch("/corrections/{correction_id}", response_model=CorrectionOut)
def update_correction(
    correction_id: str,
    body: UpdateCorrectionRequest,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db_dependency),
    request_id: Optional[str] = Depends(get_request_id),
):
    item = corrections.update_correction(db, identity, correction_id, body.reason, request_id=request_id)
    return CorrectionOut.model_validate(item)


@router.delete("/corrections/{correction_id}", response_model=DeletedResponse)
def delete_correction(
    correction_id: str,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db_dependency),
    request_id: Optional[str] = Depends(get_request_id),
):
    corrections.delete_correction(db, identity, correction_id, request_id=request_id)
    return DeletedResponse(id=correction_id)


@router.post("/corrections/{correction_id}/review", response_model=CorrectionOut)
def review_correction(
    correction_id: str,
    body: ReviewCorrectionRequest,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db_dependency),
    request_id: Optional[str] = Depends(get_request_id),
):
    item = corrections.review_correction(db, identity, correction_id, body.approve, request_id=request_id)
    return CorrectionOut.model_validate(item)


# =============================================================================
# Defense materials
# =============================================================================

@router.post("/cases/{case_id}/materials", response_model=MaterialOut, status_code=201)
def create_material(
    case_id: str,
    body: CreateMaterialRequest,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db_dependency),
    ledger: LedgerClient = Depends(get_ledger),
    request_id: Optional[str] = Depends(get_request_id),
):
    item = materials.create_material(db, ledger, identity, case_id, request_id=request_id, **body.model_dump())
    return MaterialOut.model_validate(item)


@router.get("/cases/{case_id}/materials")
def list_materials(
    case_id: str,
    material_type: Optional[MaterialType] = None,
    page: int = Query(1),
    page_size: Optional[int] = Query(None),
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db_dependency),
):
    result = materials.list_materials(db, identity, case_id, material_type, page, page_size)
    return _page(result, MaterialOut)


@router.get("/materials/{material_id}", response_model=MaterialOut)
def get_material(material_id: str, identity: Identity = Depends(get_identity), db: Session = Depends(get_db_dependency)):
    return MaterialOut.model_validate(materials.get_material(db, identity, material_id))


@router.patch("/materials/{material_id}", response_model=MaterialOut)
def update_material(
    material_id: str,
    body: UpdateMaterialRequest,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db_dependency),
    request_id: Optional[str] = Depends(get_request_id),
):
    changes = body.model_dump(exclude_unset=True)
    item = materials.update_material(db, identity, material_id, request_id=request_id, **changes)
    return MaterialOut.model_validate(item)


@router.delete("/materials/{material_id}", response_model=DeletedResponse)
def delete_material(
    material_id: str,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db_dependency),
    request_id: Optional[str] = Depends(get_request_id),
):
    materials.delete_material(db, identity, material_id, request_id=request_id)
    return DeletedResponse(id=material_id)


# =============================================================================
# Objections
# =============================================================================

@router.post("/cases/{case_id}/objections", response_model=ObjectionOut, status_code=201)
def create_objection(
    case_id: str,
    body: CreateObjectionRequest,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db_dependency),
    request_id: Optional[str] = Depends(get_request_id),
):
    item = objections.create_objection(db, identity, case_id, body.evidence_id, body.content, request_id=request_id)
    return ObjectionOut.model_validate(item)


@router.get("/cases/{case_id}/objections")
def list_objections(
    case_id: str,
    status: Optional[ObjectionStatus] = None,
    evidence_id: Optional[str] = None,
    page: int = Query(1),
    page_size: Optional[int] = Query(None),
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db_dependency),
):
    result = objections.list_objections(db, identity, case_id, status, evidence_id, page, page_size)
    return _page(result, ObjectionOut)


@router.get("/objections/{objection_id}", response_model=ObjectionOut)
def get_objection(objection_id: str, identity: Identity = Depends(get_identity), db: Session = Depends(get_db_dependency)):
    return ObjectionOut.model_validate(objections.get_objection(db, identity, objection_id))


@router.patch("/objections/{objection_id}", response_model=ObjectionOut)
def update_objection(
    objection_id: str,
    body: UpdateObjectionRequest,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db_dependency),
    request_id: Optional[str] = Depends(get_request_id),
):
    item = objections.update_objection(db, identity, objection_id, body.content, request_id=request_id)
    return ObjectionOut.model_validate(item)


@router.delete("/objections/{objection_id}", response_model=DeletedResponse)
def delete_objection(
    objection_id: str,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db_dependency),
    request_id: Optional[str] = Depends(get_request_id),
):
    objections.delete_objection(db, identity, objection_id, request_id=request_id)
    return DeletedResponse(id=objection_id)


@router.post("/objections/{objection_id}/handle", response_model=ObjectionOut)
def handle_objection(
    objection_id: str,
    body: HandleObjectionRequest,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db_dependency),
    request_id: Optional[str] = Depends(get_request_id),
):
    item = objections.handle_objection(db, identity, objection_id, body.accept, body.result, request_id=request_id)
    return ObjectionOut.model_validate(item)


# =============================================================================
# Notifications
# =============================================================================

@router.get("/notifications")
def list_notifications(
    is_read: Optional[bool] = None,
    page: int = Query(1),
    page_size: Optional[int] = Query(None),
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db_dependency),
):
    result = notifications.list_my_notifications(db, identity, is_read, page, page_size)
    return _page(result, NotificationOut)


@router.get("/notifications/unread-count", response_model=UnreadCountResponse)
def unread_count(identity: Identity = Depends(get_identity), db: Session = Depends(get_db_dependency)):
    return UnreadCountResponse(unread=notifications.unread_count(db, identity))


@router.post("/notifications/read-all", response_model=MarkAllReadResponse)
def mark_all_read(identity: Identity = Depends(get_identity), db: Session = Depends(get_db_dependency)):
    return MarkAllReadResponse(updated=notifications.mark_all_read(db, identity))


@router.get("/notifications/{notification_id}", response_model=NotificationOut)
def get_notification(notification_id: str, identity: Identity = Depends(get_identity), db: Session = Depends(get_db_dependency)):
    return NotificationOut.model_validate(notifications.get_notification(db, identity, notification_id))


@router.delete("/notifications/{notification_id}", response_model=DeletedResponse)
def delete_notification(notification_id: str, identity: Identity = Depends(get_identity), db: Session = Depends(get_db_dependency)):
    notifications.delete_notification(db, identity, notification_id)
    return DeletedResponse(id=notification_id)


@router.post("/notifications/{notification_id}/read", response_model=NotificationOut)
def mark_read(notification_id: str, identity: Identity = Depends(get_identity), db: Session = Depends(get_db_dependency)):
    return NotificationOut.model_validate(notifications.mark_read(db, identity, notification_id))


@router.post("/notifications", response_model=NotificationOut, status_code=201)
def create_notification(
    body: CreateNotificationRequest,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db_dependency),
):
    item = notifications.create_notification(
        db, identity,
        recipient_id=body.recipient_id,
        title=body.title,
        content=body.content,
        priority=body.priority,
        related_case_id=body.related_case_id,
    )
    return NotificationOut.model_validate(item)


@router.patch("/notifications/{notification_id}/push-status", response_model=NotificationOut)
def update_push_status(
    notification_id: str,
    body: PushStatusRequest,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db_dependency),
):
    item = notifications.update_push_status(db, identity, notification_id, body.push_status)
    return NotificationOut.model_validate(item)


# =============================================================================
# Audit
# =============================================================================

@router.get("/operation-logs")
def list_operation_logs(
    user_id: Optional[str] = None,
    operation_type: Optional[OperationType] = None,
    target_type: Optional[str] = None,
    target_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    page: int = Query(1),
    page_size: Optional[int] = Query(None),
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db_dependency),
):
    result = audit.list_operation_logs(
        db, identity, user_id, operation_type, target_type, target_id, start, end, page, page_size,
    )
    return _page(result, OperationLogOut)


app.include_router(router)


# =============================================================================
# Error handling
# =============================================================================

def _error_code_for_status(status_code: int) -> str:
    return {
        400: "bad_request",
        401: "unauthorized",
        403: "forbidden",
        404: "not_found",
        409: "conflict",
        422: "validation_error",
        500: "internal_error",
        502: "external_failure",
    }.get(status_code, "error")


def _build_error_payload(code: str, message: str, details: Any = None) -> Dict[str, Any]:
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details,
        }
    }


@app.exception_handler(CaseLedgerError)
async def case_ledger_error_handler(request: Request, exc: CaseLedgerError):
    """Typed service errors -> structured payload"""
    if exc.status_code >= 500:
        logger.error(f"{exc.__class__.__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=_build_error_payload(exc.code or _error_code_for_status(exc.status_code), exc.message, exc.details),
    )


@app.exception_handler(RequestValidationError)
async def api_validation_exception_handler(request: Request, exc: RequestValidationError):
    """Return structured validation errors without leaking inputs."""
    sanitized_errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content=_build_error_payload(
            "validation_error",
            "Request validation failed",
            {"errors": sanitized_errors},
        ),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler - always return valid JSON"""
    logger.error("Unhandled exception on %s: %s", request.url.path, exc.__class__.__name__)
    return JSONResponse(
        status_code=500,
        content=_build_error_payload("internal_error", "Internal server error", {"exception": exc.__class__.__name__}),
    )
