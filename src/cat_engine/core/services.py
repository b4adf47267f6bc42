"""Core business logic services for the lifecycle engine.

Four service classes:
- ValidationService: Promotion request lifecycle — create, list, get, admin update and moderation
- AssessmentService: Assessment lifecycle — create behind the approved-role gate, update, publish, delete
- UserService: Identity registration, user listing and deny-access
- AuditService: Append-only audit trail write orchestration

All services are async-first. They accept injected repositories through
their constructors, contain no framework code, and receive the caller's
identity explicitly on every operation. Access is decided by AccessPolicy
before any state is touched. After every state-changing operation the
service writes an audit trail entry through AuditService.
"""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Iterable

from cat_engine.api.schemas import (
    AssessmentResponse,
    AuditTrailEntryResponse,
    OrganisationSchema,
    PageResponse,
    SubjectSchema,
    UserProfileResponse,
    ValidationResponse,
)
from cat_engine.core.access import AccessPolicy, CallerIdentity
from cat_engine.core.interfaces import (
    IAssessmentRepository,
    IAuditTrailRepository,
    IUserRepository,
    IValidationRepository,
)
from cat_engine.core.models import (
    VALIDATION_TRANSITIONS,
    Assessment,
    AssessmentStatus,
    AuditTrailEntry,
    DENY_ACCESS_ROLE,
    UserProfile,
    Validation,
    ValidationStatus,
)
from cat_engine.core.pagination import Page, PageRequest
from cat_engine.errors import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from cat_engine.observability import get_logger

logger = get_logger(__name__)

_TERMINAL_VALIDATION_STATUSES = frozenset(
    status for status, targets in VALIDATION_TRANSITIONS.items() if not targets
)


class ValidationScope(StrEnum):
    """Which validations a listing covers."""

    ALL = "all"
    MINE = "mine"


class AuditService:
    """Append-only audit trail write orchestration.

    The single point of entry for all audit trail writes.

    IMPORTANT: This service contains NO update or delete operations.
    If an entry must be corrected, write a compensating entry.

    Args:
        audit_repo: Repository for AuditTrailEntry persistence.
        access_policy: Policy guarding the admin query.
        max_page_size: Largest page size accepted by query_trail.
    """

    def __init__(
        self,
        audit_repo: IAuditTrailRepository,
        access_policy: AccessPolicy | None = None,
        max_page_size: int = 100,
    ) -> None:
        self._audit_repo = audit_repo
        self._access = access_policy or AccessPolicy()
        self._max_page_size = max_page_size

    async def record(
        self,
        event_type: str,
        actor_user_id: str,
        resource_type: str,
        resource_id: object,
        action: str,
        details: dict[str, Any],
    ) -> AuditTrailEntry:
        """Append an audit trail entry.

        Args:
            event_type: Dot-notation event type, e.g. validation.status.updated.
            actor_user_id: Identity performing the action.
            resource_type: validation | assessment | user.
            resource_id: Identifier of the affected resource.
            action: Short action verb.
            details: Structured event-specific payload.

        Returns:
            The persisted AuditTrailEntry.
        """
        logger.info(
            "Writing audit trail entry",
            event_type=event_type,
            actor_user_id=actor_user_id,
            resource_type=resource_type,
            resource_id=str(resource_id),
            action=action,
        )
        return await self._audit_repo.append(
            event_type=event_type,
            actor_user_id=actor_user_id,
            resource_type=resource_type,
            resource_id=str(resource_id),
            action=action,
            details=details,
            timestamp=datetime.now(UTC),
        )

    async def query_trail(
        self,
        caller: CallerIdentity,
        page: int = 1,
        size: int = 10,
        resource_type: str | None = None,
    ) -> PageResponse[AuditTrailEntryResponse]:
        """Query the audit trail (admin only).

        Raises:
            ForbiddenError: If the caller is not an administrator.
            ValidationError: If page or size are out of range.
        """
        self._access.enforce(caller, "audit.query")
        page_request = PageRequest.create(page, size, self._max_page_size)
        entries, total = await self._audit_repo.list_page(page_request, resource_type=resource_type)
        return _page_to_response(
            Page(items=entries, total=total, page=page_request.page, size=page_request.size),
            _audit_entry_to_response,
        )


class ValidationService:
    """Promotion request lifecycle.

    Owns the validation state machine (VALIDATION_TRANSITIONS) and the
    live-request invariant: a user holds at most one PENDING, REVIEW or
    APPROVED request per (organisation, source, actor). The service checks
    the invariant up front for a clear error; the repository enforces it
    atomically when writing.

    Args:
        validation_repo: Repository for Validation persistence.
        audit_service: Service for writing audit trail entries.
        access_policy: Policy deciding who may call each operation.
        max_page_size: Largest page size accepted by list_validations.
        allow_terminal_updates: Whether admins may edit descriptive fields of
            APPROVED/REJECTED validations.
    """

    def __init__(
        self,
        validation_repo: IValidationRepository,
        audit_service: AuditService,
        access_policy: AccessPolicy | None = None,
        max_page_size: int = 100,
        allow_terminal_updates: bool = True,
    ) -> None:
        self._validation_repo = validation_repo
        self._audit_service = audit_service
        self._access = access_policy or AccessPolicy()
        self._max_page_size = max_page_size
        self._allow_terminal_updates = allow_terminal_updates

    async def create_validation(
        self,
        caller: CallerIdentity,
        organisation_id: str,
        organisation_source: str,
        actor_id: int,
        organisation_role: str,
        organisation_name: str,
        organisation_website: str | None = None,
    ) -> ValidationResponse:
        """Create a PENDING promotion request for the caller.

        Args:
            caller: The requesting identity.
            organisation_id: Organisation identifier within its registry.
            organisation_source: Registry the organisation belongs to.
            actor_id: The actor (role) being requested.
            organisation_role: Requester's role inside the organisation.
            organisation_name: Organisation display name.
            organisation_website: Optional organisation website.

        Returns:
            The created ValidationResponse.

        Raises:
            ForbiddenError: If the caller is denied access.
            ValidationError: If identifiers are blank or the actor id is not positive.
            ConflictError: If the caller already holds a live request for the same tuple.
        """
        self._access.enforce(caller, "validation.create")
        organisation_id = _require_text(organisation_id, "organisation_id")
        organisation_source = _require_text(organisation_source, "organisation_source")
        if actor_id < 1:
            raise ValidationError("actor_id must be a positive integer.", field="actor_id")

        if await self._validation_repo.has_promotion_request(
            caller.user_id, organisation_id, organisation_source, actor_id
        ):
            raise ConflictError(
                "There is a promotion request for this user and organisation that is pending, "
                "under review or already approved."
            )

        validation = await self._validation_repo.create(
            user_id=caller.user_id,
            organisation_id=organisation_id,
            organisation_source=organisation_source,
            actor_id=actor_id,
            organisation_role=organisation_role,
            organisation_name=organisation_name,
            organisation_website=organisation_website,
        )

        await self._audit_service.record(
            event_type="validation.created",
            actor_user_id=caller.user_id,
            resource_type="validation",
            resource_id=validation.id,
            action="created",
            details={
                "organisation_id": organisation_id,
                "organisation_source": organisation_source,
                "actor_id": actor_id,
            },
        )

        logger.info(
            "Validation request created",
            validation_id=validation.id,
            user_id=caller.user_id,
            organisation_id=organisation_id,
            actor_id=actor_id,
        )
        return _validation_to_response(validation)

    async def list_validations(
        self,
        caller: CallerIdentity,
        page: int = 1,
        size: int = 10,
        status: str | None = None,
        scope: ValidationScope = ValidationScope.MINE,
    ) -> PageResponse[ValidationResponse]:
        """List validations ordered by creation.

        Args:
            caller: The calling identity.
            page: 1-based page number.
            size: Page size, at most max_page_size.
            status: Optional status filter (PENDING, REVIEW, APPROVED, REJECTED).
            scope: ALL (admin only) or MINE (the caller's own requests).

        Returns:
            One page of validations with the total count and the applied page/size.

        Raises:
            ForbiddenError: If scope is ALL and the caller is not an administrator.
            ValidationError: If page, size or status are invalid.
        """
        if scope is ValidationScope.ALL:
            self._access.enforce(caller, "validation.list_all")
            user_filter = None
        else:
            self._access.enforce(caller, "validation.list_mine")
            user_filter = caller.user_id

        page_request = PageRequest.create(page, size, self._max_page_size)
        status_filter = _parse_validation_status(status) if status else None

        validations, total = await self._validation_repo.list_page(
            page_request, user_id=user_filter, status=status_filter
        )
        return _page_to_response(
            Page(items=validations, total=total, page=page_request.page, size=page_request.size),
            _validation_to_response,
        )

    async def get_validation(
        self,
        caller: CallerIdentity,
        validation_id: int,
        scope: ValidationScope = ValidationScope.MINE,
    ) -> ValidationResponse:
        """Get a validation the caller owns, or any validation for an administrator.

        With scope ALL the caller must be an administrator before any lookup.

        Raises:
            NotFoundError: If the validation does not exist.
            ForbiddenError: If the caller is neither the owner nor an administrator.
        """
        if scope is ValidationScope.ALL:
            self._access.enforce(caller, "validation.get_any")
        self._access.reject_denied(caller)
        validation = await self._get_or_raise(validation_id)
        self._access.enforce(caller, "validation.get", resource_owner=validation.user_id)
        return _validation_to_response(validation)

    async def update_validation(
        self,
        caller: CallerIdentity,
        validation_id: int,
        organisation_role: str,
        organisation_name: str,
        organisation_website: str | None = None,
    ) -> ValidationResponse:
        """Replace the descriptive fields of a validation (admin only).

        Organisation, source, actor and status are never touched here.

        Raises:
            ForbiddenError: If the caller is not an administrator.
            NotFoundError: If the validation does not exist.
            InvalidStateError: If the validation is terminal and terminal updates are disabled.
        """
        self._access.enforce(caller, "validation.update")
        validation = await self._get_or_raise(validation_id)

        if not self._allow_terminal_updates and validation.status in _TERMINAL_VALIDATION_STATUSES:
            raise InvalidStateError(
                f"Validation {validation_id} is {validation.status} and can no longer be edited."
            )

        updated = await self._validation_repo.update_details(
            validation_id,
            organisation_role=organisation_role,
            organisation_name=organisation_name,
            organisation_website=organisation_website,
        )

        await self._audit_service.record(
            event_type="validation.updated",
            actor_user_id=caller.user_id,
            resource_type="validation",
            resource_id=validation_id,
            action="updated",
            details={
                "organisation_role": organisation_role,
                "organisation_name": organisation_name,
                "organisation_website": organisation_website,
            },
        )
        logger.info("Validation request updated", validation_id=validation_id, admin_id=caller.user_id)
        return _validation_to_response(updated)

    async def update_validation_status(
        self,
        caller: CallerIdentity,
        validation_id: int,
        new_status: ValidationStatus | str,
    ) -> ValidationResponse:
        """Move a validation along the state machine (admin only).

        Legal transitions: PENDING → REVIEW | APPROVED | REJECTED and
        REVIEW → APPROVED | REJECTED. APPROVED and REJECTED are terminal.

        Args:
            caller: The administrator performing the transition.
            validation_id: The validation to move.
            new_status: Target status.

        Returns:
            The updated ValidationResponse with validated_by/validated_on set.

        Raises:
            ForbiddenError: If the caller is not an administrator.
            ValidationError: If new_status is not a known status.
            NotFoundError: If the validation does not exist.
            InvalidStateTransitionError: If the transition is not legal.
            ConflictError: If approving would create a second live request for the
                tuple, or the status changed concurrently.
        """
        self._access.enforce(caller, "validation.update_status")
        target = _parse_validation_status(str(new_status))
        validation = await self._get_or_raise(validation_id)
        current = ValidationStatus(validation.status)

        if target not in VALIDATION_TRANSITIONS[current]:
            raise InvalidStateTransitionError("validation", current, target)

        if target is ValidationStatus.APPROVED and await self._validation_repo.has_promotion_request(
            validation.user_id,
            validation.organisation_id,
            validation.organisation_source,
            validation.actor_id,
            exclude_id=validation.id,
        ):
            raise ConflictError(
                "Another live promotion request exists for this user, organisation and actor."
            )

        updated = await self._validation_repo.update_status(
            validation_id,
            expected_status=current,
            new_status=target,
            validated_by=caller.user_id,
            validated_on=datetime.now(UTC),
        )

        await self._audit_service.record(
            event_type="validation.status.updated",
            actor_user_id=caller.user_id,
            resource_type="validation",
            resource_id=validation_id,
            action="status_updated",
            details={"from": current.value, "to": target.value, "user_id": validation.user_id},
        )

        logger.info(
            "Validation status updated",
            validation_id=validation_id,
            old_status=current.value,
            new_status=target.value,
            admin_id=caller.user_id,
        )
        return _validation_to_response(updated)

    async def _get_or_raise(self, validation_id: int) -> Validation:
        validation = await self._validation_repo.find_by_id(validation_id)
        if validation is None:
            raise NotFoundError(resource="Validation", resource_id=validation_id)
        return validation


class AssessmentService:
    """Assessment lifecycle.

    Creation is gated on an APPROVED validation owned by the caller: the
    assessment inherits its organisation and actor from that validation.
    A PRIVATE assessment may be updated any number of times (each update
    bumps the version) and deleted by an administrator. Publishing is
    one-way: a PUBLISHED assessment is frozen.

    Args:
        assessment_repo: Repository for Assessment persistence.
        validation_repo: Repository used to check the approved-role gate.
        audit_service: Service for writing audit trail entries.
        access_policy: Policy deciding who may call each operation.
        max_page_size: Largest page size accepted by list_assessments.
        allow_duplicates: Allow several assessments with the same owner,
            organisation, subject and type.
        authoring_actor_ids: Actors that grant authoring rights. Empty means all.
    """

    def __init__(
        self,
        assessment_repo: IAssessmentRepository,
        validation_repo: IValidationRepository,
        audit_service: AuditService,
        access_policy: AccessPolicy | None = None,
        max_page_size: int = 100,
        allow_duplicates: bool = False,
        authoring_actor_ids: Iterable[int] = (),
    ) -> None:
        self._assessment_repo = assessment_repo
        self._validation_repo = validation_repo
        self._audit_service = audit_service
        self._access = access_policy or AccessPolicy()
        self._max_page_size = max_page_size
        self._allow_duplicates = allow_duplicates
        self._authoring_actor_ids = frozenset(authoring_actor_ids)

    async def create_assessment(
        self,
        caller: CallerIdentity,
        validation_id: int,
        name: str,
        subject_id: str,
        subject_type: str,
        assessment_type: str,
        document: dict[str, Any],
        subject_name: str = "",
    ) -> AssessmentResponse:
        """Create a PRIVATE, version 1 assessment.

        Args:
            caller: The creating identity.
            validation_id: The caller's APPROVED validation for the organisation/actor.
            name: Assessment name.
            subject_id: Identifier of what is being assessed.
            subject_type: Type of the subject.
            assessment_type: Framework the document follows.
            document: Structured assessment content.
            subject_name: Optional subject display name.

        Returns:
            The created AssessmentResponse.

        Raises:
            ForbiddenError: If the caller does not hold an APPROVED validation
                granting authoring rights for the referenced organisation/actor.
            ValidationError: If the document is empty.
            ConflictError: If an equivalent assessment exists and duplicates are disallowed.
        """
        self._access.enforce(caller, "assessment.create")
        _require_document(document)

        validation = await self._validation_repo.find_by_id(validation_id)
        if (
            validation is None
            or validation.user_id != caller.user_id
            or validation.status != ValidationStatus.APPROVED
        ):
            raise ForbiddenError(
                "You have not been granted the actor role for this organisation. "
                "An approved validation request is required."
            )
        if self._authoring_actor_ids and validation.actor_id not in self._authoring_actor_ids:
            raise ForbiddenError(f"Actor {validation.actor_id} does not grant assessment-authoring rights.")

        if not self._allow_duplicates and await self._assessment_repo.exists_equivalent(
            owner_id=caller.user_id,
            organisation_id=validation.organisation_id,
            organisation_source=str(validation.organisation_source),
            subject_id=subject_id,
            subject_type=subject_type,
            assessment_type=assessment_type,
        ):
            raise ConflictError(
                "An assessment for this organisation, subject and assessment type already exists."
            )

        assessment = await self._assessment_repo.create(
            owner_id=caller.user_id,
            validation=validation,
            name=name,
            subject_id=subject_id,
            subject_type=subject_type,
            subject_name=subject_name,
            assessment_type=assessment_type,
            document=document,
            allow_duplicates=self._allow_duplicates,
        )

        await self._audit_service.record(
            event_type="assessment.created",
            actor_user_id=caller.user_id,
            resource_type="assessment",
            resource_id=assessment.id,
            action="created",
            details={
                "validation_id": validation.id,
                "organisation_id": validation.organisation_id,
                "actor_id": validation.actor_id,
                "assessment_type": assessment_type,
            },
        )

        logger.info(
            "Assessment created",
            assessment_id=assessment.id,
            owner_id=caller.user_id,
            validation_id=validation.id,
        )
        return _assessment_to_response(assessment)

    async def get_assessment(self, caller: CallerIdentity, assessment_id: str) -> AssessmentResponse:
        """Get an assessment the caller owns.

        Raises:
            NotFoundError: If the assessment does not exist.
            ForbiddenError: If the caller is not the owner.
        """
        self._access.reject_denied(caller)
        assessment = await self._get_or_raise(assessment_id)
        self._access.enforce(caller, "assessment.get", resource_owner=assessment.owner_id)
        return _assessment_to_response(assessment)

    async def list_assessments(
        self,
        caller: CallerIdentity,
        page: int = 1,
        size: int = 10,
    ) -> PageResponse[AssessmentResponse]:
        """List the caller's own assessments ordered by creation."""
        self._access.enforce(caller, "assessment.list_mine")
        page_request = PageRequest.create(page, size, self._max_page_size)
        assessments, total = await self._assessment_repo.list_page(page_request, owner_id=caller.user_id)
        return _page_to_response(
            Page(items=assessments, total=total, page=page_request.page, size=page_request.size),
            _assessment_to_response,
        )

    async def update_assessment(
        self,
        caller: CallerIdentity,
        assessment_id: str,
        document: dict[str, Any],
    ) -> AssessmentResponse:
        """Replace the document of a PRIVATE assessment and bump its version.

        Raises:
            NotFoundError: If the assessment does not exist.
            ForbiddenError: If the caller is not the owner.
            InvalidStateError: If the assessment is PUBLISHED.
            ValidationError: If the document is empty.
            ConflictError: If the assessment changed concurrently.
        """
        self._access.reject_denied(caller)
        assessment = await self._get_or_raise(assessment_id)
        self._access.enforce(caller, "assessment.update", resource_owner=assessment.owner_id)
        if assessment.status == AssessmentStatus.PUBLISHED:
            raise InvalidStateError("A published assessment cannot be updated.")
        _require_document(document)

        updated = await self._assessment_repo.update_document(
            assessment_id,
            expected_version=assessment.version,
            document=document,
            updated_by=caller.user_id,
        )

        await self._audit_service.record(
            event_type="assessment.updated",
            actor_user_id=caller.user_id,
            resource_type="assessment",
            resource_id=assessment_id,
            action="updated",
            details={"version": updated.version},
        )
        logger.info("Assessment updated", assessment_id=assessment_id, version=updated.version)
        return _assessment_to_response(updated)

    async def publish_assessment(self, caller: CallerIdentity, assessment_id: str) -> AssessmentResponse:
        """Publish a PRIVATE assessment. Publishing cannot be undone.

        Raises:
            NotFoundError: If the assessment does not exist.
            ForbiddenError: If the caller is not the owner.
            InvalidStateError: If the assessment is already PUBLISHED.
        """
        self._access.reject_denied(caller)
        assessment = await self._get_or_raise(assessment_id)
        self._access.enforce(caller, "assessment.publish", resource_owner=assessment.owner_id)
        if assessment.status == AssessmentStatus.PUBLISHED:
            raise InvalidStateError("The assessment is already published.")

        published = await self._assessment_repo.publish(assessment_id, published_on=datetime.now(UTC))

        await self._audit_service.record(
            event_type="assessment.published",
            actor_user_id=caller.user_id,
            resource_type="assessment",
            resource_id=assessment_id,
            action="published",
            details={"version": published.version},
        )
        logger.info("Assessment published", assessment_id=assessment_id, owner_id=assessment.owner_id)
        return _assessment_to_response(published)

    async def delete_private_assessment(self, caller: CallerIdentity, assessment_id: str) -> None:
        """Delete a PRIVATE assessment (admin only).

        Raises:
            ForbiddenError: If the caller is not an administrator.
            NotFoundError: If the assessment does not exist.
            InvalidStateError: If the assessment is PUBLISHED.
        """
        self._access.enforce(caller, "assessment.delete_private")
        assessment = await self._get_or_raise(assessment_id)
        if assessment.status == AssessmentStatus.PUBLISHED:
            raise InvalidStateError("A published assessment cannot be deleted.")

        await self._assessment_repo.delete_private(assessment_id)

        await self._audit_service.record(
            event_type="assessment.deleted",
            actor_user_id=caller.user_id,
            resource_type="assessment",
            resource_id=assessment_id,
            action="deleted",
            details={"owner_id": assessment.owner_id, "version": assessment.version},
        )
        logger.info("Private assessment deleted", assessment_id=assessment_id, admin_id=caller.user_id)

    async def _get_or_raise(self, assessment_id: str) -> Assessment:
        assessment = await self._assessment_repo.find_by_id(assessment_id)
        if assessment is None:
            raise NotFoundError(resource="Assessment", resource_id=assessment_id)
        return assessment


class UserService:
    """User registration, listing and deny-access.

    Args:
        user_repo: Repository for UserProfile persistence.
        audit_service: Service for writing audit trail entries.
        access_policy: Policy deciding who may call each operation.
        max_page_size: Largest page size accepted by list_users.
        admin_role: Role name granting administrative operations.
    """

    def __init__(
        self,
        user_repo: IUserRepository,
        audit_service: AuditService,
        access_policy: AccessPolicy | None = None,
        max_page_size: int = 20,
        admin_role: str = "admin",
    ) -> None:
        self._user_repo = user_repo
        self._audit_service = audit_service
        self._access = access_policy or AccessPolicy()
        self._max_page_size = max_page_size
        self._admin_role = admin_role

    async def register(self, user_id: str) -> UserProfile:
        """Register `user_id` on first sight. Idempotent."""
        user_id = _require_text(user_id, "user_id")
        return await self._user_repo.ensure(user_id)

    async def resolve_identity(self, user_id: str, provider_roles: Iterable[str] = ()) -> CallerIdentity:
        """Build the CallerIdentity for an authenticated user id.

        Registers the profile on first sight and merges roles stored by this
        service (deny_access) with the roles granted by the identity provider.
        """
        profile = await self.register(user_id)
        user_id = profile.user_id
        roles = frozenset(provider_roles) | frozenset(profile.roles or [])
        return CallerIdentity(
            user_id=user_id,
            roles=roles,
            deny_access=DENY_ACCESS_ROLE in roles,
            admin_role=self._admin_role,
        )

    async def list_users(
        self,
        caller: CallerIdentity,
        page: int = 1,
        size: int = 10,
    ) -> PageResponse[UserProfileResponse]:
        """List registered users (admin only)."""
        self._access.enforce(caller, "user.list")
        page_request = PageRequest.create(page, size, self._max_page_size)
        profiles, total = await self._user_repo.list_page(page_request)
        return _page_to_response(
            Page(items=profiles, total=total, page=page_request.page, size=page_request.size),
            _user_to_response,
        )

    async def deny_access(self, caller: CallerIdentity, user_id: str, reason: str) -> UserProfileResponse:
        """Restrict a user's access to the API (admin only).

        Idempotent: denying an already denied user refreshes the reason.

        Raises:
            ForbiddenError: If the caller is not an administrator.
            ValidationError: If the reason is blank.
            NotFoundError: If the user never registered.
        """
        self._access.enforce(caller, "user.deny_access")
        reason = _require_text(reason, "reason")
        if await self._user_repo.find_by_id(user_id) is None:
            raise NotFoundError(resource="User", resource_id=user_id)

        profile = await self._user_repo.deny_access(
            user_id,
            reason=reason,
            denied_by=caller.user_id,
            denied_on=datetime.now(UTC),
        )

        await self._audit_service.record(
            event_type="user.access.denied",
            actor_user_id=caller.user_id,
            resource_type="user",
            resource_id=user_id,
            action="access_denied",
            details={"reason": reason},
        )
        logger.warning("User access denied", user_id=user_id, admin_id=caller.user_id)
        return _user_to_response(profile)


# ---------------------------------------------------------------------------
# Input checks
# ---------------------------------------------------------------------------


def _require_text(value: str, field: str) -> str:
    stripped = (value or "").strip()
    if not stripped:
        raise ValidationError(f"{field} must not be blank.", field=field)
    return stripped


def _require_document(document: dict[str, Any]) -> None:
    if not isinstance(document, dict) or not document:
        raise ValidationError("The assessment document must be a non-empty JSON object.", field="assessment_doc")


def _parse_validation_status(value: str) -> ValidationStatus:
    try:
        return ValidationStatus(value.upper())
    except ValueError:
        allowed = ", ".join(s.value for s in ValidationStatus)
        raise ValidationError(f"status must be one of: {allowed}.", field="status") from None


# ---------------------------------------------------------------------------
# ORM → response conversion
# ---------------------------------------------------------------------------


def _page_to_response(page: Page[Any], convert: Any) -> PageResponse[Any]:
    """Convert a Page of ORM rows with the given row converter."""
    content = [convert(item) for item in page.items]
    return PageResponse(
        content=content,
        page=page.page,
        size=page.size,
        number_of_items=len(content),
        total_elements=page.total,
        total_pages=page.total_pages,
    )


def _validation_to_response(validation: Validation) -> ValidationResponse:
    return ValidationResponse(
        id=validation.id,
        user_id=validation.user_id,
        organisation_role=validation.organisation_role,
        organisation_id=validation.organisation_id,
        organisation_source=str(validation.organisation_source),
        organisation_name=validation.organisation_name,
        organisation_website=validation.organisation_website,
        actor_id=validation.actor_id,
        status=str(validation.status),
        created_on=validation.created_on,
        updated_on=validation.updated_on,
        validated_by=validation.validated_by,
        validated_on=validation.validated_on,
    )


def _assessment_to_response(assessment: Assessment) -> AssessmentResponse:
    return AssessmentResponse(
        id=assessment.id,
        validation_id=assessment.validation_id,
        owner_id=assessment.owner_id,
        name=assessment.name,
        status=str(assessment.status),
        published=assessment.status == AssessmentStatus.PUBLISHED,
        version=assessment.version,
        organisation=OrganisationSchema(
            id=assessment.organisation_id,
            source=str(assessment.organisation_source),
            name=assessment.organisation_name,
        ),
        actor_id=assessment.actor_id,
        subject=SubjectSchema(
            id=assessment.subject_id,
            type=assessment.subject_type,
            name=assessment.subject_name,
        ),
        assessment_type=assessment.assessment_type,
        assessment_doc=assessment.document,
        created_on=assessment.created_on,
        updated_on=assessment.updated_on,
        updated_by=assessment.updated_by,
        published_on=assessment.published_on,
    )


def _user_to_response(profile: UserProfile) -> UserProfileResponse:
    return UserProfileResponse(
        user_id=profile.user_id,
        roles=list(profile.roles or []),
        denied=profile.is_denied,
        deny_reason=profile.deny_reason,
        denied_by=profile.denied_by,
        denied_on=profile.denied_on,
        registered_on=profile.registered_on,
    )


def _audit_entry_to_response(entry: AuditTrailEntry) -> AuditTrailEntryResponse:
    return AuditTrailEntryResponse(
        id=entry.id,
        event_type=entry.event_type,
        actor_user_id=entry.actor_user_id,
        resource_type=entry.resource_type,
        resource_id=entry.resource_id,
        action=entry.action,
        details=entry.details,
        timestamp=entry.timestamp,
    )
