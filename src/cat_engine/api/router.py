"""API router for cat-engine.

All endpoints are registered here and included in main.py under the /api/v1
prefix. Routes are thin — all business logic lives in the service layer.

Endpoints:
- GET/POST    /validations                              — caller's promotion requests
- GET         /validations/{id}                         — Get validation (owner or admin)
- GET         /admin/validations                        — List all validations
- GET/PUT     /admin/validations/{id}                   — Get / update validation fields
- PUT         /admin/validations/{id}/update-status     — Move validation along its lifecycle
- POST/GET    /assessments                              — Create / list caller's assessments
- GET/PUT     /assessments/{id}                         — Get / update assessment document
- PUT         /assessments/{id}/publish                 — Publish assessment
- DELETE      /admin/assessments/{id}                   — Delete private assessment
- GET         /admin/users                              — List registered users
- PUT         /admin/users/deny-access                  — Deny a user access to the API
- GET         /admin/audit-trail                        — Query audit trail
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from cat_engine.adapters.repositories import (
    AssessmentRepository,
    AuditTrailRepository,
    ValidationRepository,
)
from cat_engine.api.schemas import (
    AssessmentCreateRequest,
    AssessmentResponse,
    AssessmentUpdateRequest,
    AuditTrailEntryResponse,
    DenyAccessRequest,
    InformativeResponse,
    PageResponse,
    UserProfileResponse,
    ValidationCreateRequest,
    ValidationResponse,
    ValidationStatusUpdateRequest,
    ValidationUpdateRequest,
)
from cat_engine.auth import get_current_user, get_user_service
from cat_engine.core.access import CallerIdentity
from cat_engine.core.services import (
    AssessmentService,
    AuditService,
    UserService,
    ValidationScope,
    ValidationService,
)
from cat_engine.database import get_db_session
from cat_engine.settings import Settings, get_settings

router = APIRouter(tags=["cat"])

Caller = Annotated[CallerIdentity, Depends(get_current_user)]
PageNumber = Annotated[int, Query(description="1-based page number")]
PageSize = Annotated[int | None, Query(description="Page size; defaults to CAT_DEFAULT_PAGE_SIZE")]


# ---------------------------------------------------------------------------
# Dependency factories — wire repositories and services together
# ---------------------------------------------------------------------------


def get_audit_service(
    session: Annotated[AsyncSession, Depends(get_db_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> AuditService:
    """Construct AuditService with injected audit repository.

    Args:
        session: Request-scoped DB session.
        settings: Service settings.

    Returns:
        Fully wired AuditService instance.
    """
    audit_repo = AuditTrailRepository(session, settings.store_timeout_seconds)
    return AuditService(audit_repo, max_page_size=settings.audit_max_page_size)


def get_validation_service(
    session: Annotated[AsyncSession, Depends(get_db_session)],
    settings: Annotated[Settings, Depends(get_settings)],
    audit_service: Annotated[AuditService, Depends(get_audit_service)],
) -> ValidationService:
    """Construct ValidationService with injected repositories.

    Args:
        session: Request-scoped DB session.
        settings: Service settings.
        audit_service: Audit trail writer sharing the same session.

    Returns:
        Fully wired ValidationService instance.
    """
    return ValidationService(
        validation_repo=ValidationRepository(session, settings.store_timeout_seconds),
        audit_service=audit_service,
        max_page_size=settings.validations_max_page_size,
        allow_terminal_updates=settings.allow_terminal_validation_updates,
    )


def get_assessment_service(
    session: Annotated[AsyncSession, Depends(get_db_session)],
    settings: Annotated[Settings, Depends(get_settings)],
    audit_service: Annotated[AuditService, Depends(get_audit_service)],
) -> AssessmentService:
    """Construct AssessmentService with injected repositories."""
    timeout = settings.store_timeout_seconds
    return AssessmentService(
        assessment_repo=AssessmentRepository(session, timeout),
        validation_repo=ValidationRepository(session, timeout),
        audit_service=audit_service,
        max_page_size=settings.assessments_max_page_size,
        allow_duplicates=settings.allow_duplicate_assessments,
        authoring_actor_ids=settings.authoring_actor_ids,
    )


def _page_size(size: int | None, settings: Settings) -> int:
    return settings.default_page_size if size is None else size


# ---------------------------------------------------------------------------
# Validation endpoints
# ---------------------------------------------------------------------------


@router.post("/validations", response_model=ValidationResponse, status_code=201)
async def create_validation(
    request_body: ValidationCreateRequest,
    caller: Caller,
    service: Annotated[ValidationService, Depends(get_validation_service)],
) -> ValidationResponse:
    """Request promotion to an actor role for an organisation.

    The request starts in PENDING and waits for an administrator.
    """
    return await service.create_validation(
        caller,
        organisation_id=request_body.organisation_id,
        organisation_source=str(request_body.organisation_source),
        actor_id=request_body.actor_id,
        organisation_role=request_body.organisation_role,
        organisation_name=request_body.organisation_name,
        organisation_website=request_body.organisation_website,
    )


@router.get("/validations", response_model=PageResponse[ValidationResponse])
async def list_my_validations(
    caller: Caller,
    service: Annotated[ValidationService, Depends(get_validation_service)],
    settings: Annotated[Settings, Depends(get_settings)],
    page: PageNumber = 1,
    size: PageSize = None,
    status: Annotated[str | None, Query(description="PENDING | REVIEW | APPROVED | REJECTED")] = None,
) -> PageResponse[ValidationResponse]:
    """List the caller's own promotion requests."""
    return await service.list_validations(
        caller, page=page, size=_page_size(size, settings), status=status, scope=ValidationScope.MINE
    )


@router.get("/validations/{validation_id}", response_model=ValidationResponse)
async def get_validation(
    validation_id: int,
    caller: Caller,
    service: Annotated[ValidationService, Depends(get_validation_service)],
) -> ValidationResponse:
    """Get one of the caller's promotion requests."""
    return await service.get_validation(caller, validation_id)


@router.get("/admin/validations", response_model=PageResponse[ValidationResponse])
async def list_all_validations(
    caller: Caller,
    service: Annotated[ValidationService, Depends(get_validation_service)],
    settings: Annotated[Settings, Depends(get_settings)],
    page: PageNumber = 1,
    size: PageSize = None,
    status: Annotated[str | None, Query(description="PENDING | REVIEW | APPROVED | REJECTED")] = None,
) -> PageResponse[ValidationResponse]:
    """List every promotion request (admin only)."""
    return await service.list_validations(
        caller, page=page, size=_page_size(size, settings), status=status, scope=ValidationScope.ALL
    )


@router.get("/admin/validations/{validation_id}", response_model=ValidationResponse)
async def get_validation_as_admin(
    validation_id: int,
    caller: Caller,
    service: Annotated[ValidationService, Depends(get_validation_service)],
) -> ValidationResponse:
    """Get any promotion request (admin only)."""
    return await service.get_validation(caller, validation_id, scope=ValidationScope.ALL)


@router.put("/admin/validations/{validation_id}", response_model=ValidationResponse)
async def update_validation(
    validation_id: int,
    request_body: ValidationUpdateRequest,
    caller: Caller,
    service: Annotated[ValidationService, Depends(get_validation_service)],
) -> ValidationResponse:
    """Edit the descriptive fields of a promotion request (admin only)."""
    return await service.update_validation(
        caller,
        validation_id,
        organisation_role=request_body.organisation_role,
        organisation_name=request_body.organisation_name,
        organisation_website=request_body.organisation_website,
    )


@router.put("/admin/validations/{validation_id}/update-status", response_model=ValidationResponse)
async def update_validation_status(
    validation_id: int,
    request_body: ValidationStatusUpdateRequest,
    caller: Caller,
    service: Annotated[ValidationService, Depends(get_validation_service)],
) -> ValidationResponse:
    """Approve, reject or move a promotion request to review (admin only)."""
    return await service.update_validation_status(caller, validation_id, request_body.status)


# ---------------------------------------------------------------------------
# Assessment endpoints
# ---------------------------------------------------------------------------


@router.post("/assessments", response_model=AssessmentResponse, status_code=201)
async def create_assessment(
    request_body: AssessmentCreateRequest,
    request: Request,
    response: Response,
    caller: Caller,
    service: Annotated[AssessmentService, Depends(get_assessment_service)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> AssessmentResponse:
    """Create a PRIVATE assessment under one of the caller's approved validations.

    The Location header points at the new assessment.
    """
    assessment = await service.create_assessment(
        caller,
        validation_id=request_body.validation_id,
        name=request_body.name,
        subject_id=request_body.subject.id,
        subject_type=request_body.subject.type,
        subject_name=request_body.subject.name,
        assessment_type=request_body.assessment_type,
        document=request_body.assessment_doc,
    )
    response.headers["Location"] = f"{settings.server_url.rstrip('/')}{request.url.path}/{assessment.id}"
    return assessment


@router.get("/assessments", response_model=PageResponse[AssessmentResponse])
async def list_my_assessments(
    caller: Caller,
    service: Annotated[AssessmentService, Depends(get_assessment_service)],
    settings: Annotated[Settings, Depends(get_settings)],
    page: PageNumber = 1,
    size: PageSize = None,
) -> PageResponse[AssessmentResponse]:
    return await service.list_assessments(caller, page=page, size=_page_size(size, settings))


@router.get("/assessments/{assessment_id}", response_model=AssessmentResponse)
async def get_assessment(
    assessment_id: str,
    caller: Caller,
    service: Annotated[AssessmentService, Depends(get_assessment_service)],
) -> AssessmentResponse:
    return await service.get_assessment(caller, assessment_id)


@router.put("/assessments/{assessment_id}", response_model=AssessmentResponse)
async def update_assessment(
    assessment_id: str,
    request_body: AssessmentUpdateRequest,
    caller: Caller,
    service: Annotated[AssessmentService, Depends(get_assessment_service)],
) -> AssessmentResponse:
    """Replace the document of a PRIVATE assessment; the version is incremented."""
    return await service.update_assessment(caller, assessment_id, request_body.assessment_doc)


@router.put("/assessments/{assessment_id}/publish", response_model=AssessmentResponse)
async def publish_assessment(
    assessment_id: str,
    caller: Caller,
    service: Annotated[AssessmentService, Depends(get_assessment_service)],
) -> AssessmentResponse:
    """Publish an assessment. A published assessment can no longer change."""
    return await service.publish_assessment(caller, assessment_id)


@router.delete("/admin/assessments/{assessment_id}", response_model=InformativeResponse)
async def delete_private_assessment(
    assessment_id: str,
    caller: Caller,
    service: Annotated[AssessmentService, Depends(get_assessment_service)],
) -> InformativeResponse:
    """Delete a PRIVATE assessment (admin only)."""
    await service.delete_private_assessment(caller, assessment_id)
    return InformativeResponse(code=200, message="Assessment has been successfully deleted.")


# ---------------------------------------------------------------------------
# User and audit endpoints
# ---------------------------------------------------------------------------


@router.get("/admin/users", response_model=PageResponse[UserProfileResponse])
async def list_users(
    caller: Caller,
    service: Annotated[UserService, Depends(get_user_service)],
    settings: Annotated[Settings, Depends(get_settings)],
    page: PageNumber = 1,
    size: PageSize = None,
) -> PageResponse[UserProfileResponse]:
    """List registered users (admin only, at most CAT_USERS_MAX_PAGE_SIZE per page)."""
    return await service.list_users(caller, page=page, size=_page_size(size, settings))


@router.put("/admin/users/deny-access", response_model=InformativeResponse)
async def deny_access(
    request_body: DenyAccessRequest,
    caller: Caller,
    service: Annotated[UserService, Depends(get_user_service)],
) -> InformativeResponse:
    """Restrict a user's access to the API (admin only)."""
    await service.deny_access(caller, request_body.user_id, request_body.reason)
    return InformativeResponse(code=200, message=f"User {request_body.user_id} has been denied access.")


@router.get("/admin/audit-trail", response_model=PageResponse[AuditTrailEntryResponse])
async def query_audit_trail(
    caller: Caller,
    service: Annotated[AuditService, Depends(get_audit_service)],
    settings: Annotated[Settings, Depends(get_settings)],
    page: PageNumber = 1,
    size: PageSize = None,
    resource_type: Annotated[str | None, Query(description="validation | assessment | user")] = None,
) -> PageResponse[AuditTrailEntryResponse]:
    """Query the audit trail (admin only)."""
    return await service.query_trail(caller, page=page, size=_page_size(size, settings), resource_type=resource_type)
