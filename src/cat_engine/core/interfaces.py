"""Abstract interfaces (Protocol classes) for the lifecycle engine.

Defines the contracts between the service layer and the adapter layer using
typing.Protocol. Services depend on these protocols — never on concrete
adapters — so they run unchanged over the SQLAlchemy repositories
(adapters/repositories.py) and the in-memory stores (adapters/memory.py).

Every implementation must honour the same atomicity guarantees:
- `IValidationRepository.create` checks the live-request invariant and writes
  in one atomic step, raising ConflictError when it is violated.
- Status, document, publish and delete mutations are compare-and-set on the
  state the service read; a lost race raises ConflictError.
- Store failures and timeouts surface as UnavailableError.

Protocols defined:
- IValidationRepository
- IAssessmentRepository
- IUserRepository
- IAuditTrailRepository
"""

from datetime import datetime
from typing import Any, Protocol

from cat_engine.core.models import (
    Assessment,
    AuditTrailEntry,
    UserProfile,
    Validation,
    ValidationStatus,
)
from cat_engine.core.pagination import PageRequest


class IValidationRepository(Protocol):
    """Repository contract for Validation persistence."""

    async def create(
        self,
        user_id: str,
        organisation_id: str,
        organisation_source: str,
        actor_id: int,
        organisation_role: str,
        organisation_name: str,
        organisation_website: str | None,
    ) -> Validation:
        """Persist a new PENDING validation.

        Raises:
            ConflictError: If a live request already exists for the
                (user, organisation, source, actor) tuple.
        """
        ...

    async def find_by_id(self, validation_id: int) -> Validation | None:
        ...

    async def list_page(
        self,
        page: PageRequest,
        user_id: str | None = None,
        status: ValidationStatus | None = None,
    ) -> tuple[list[Validation], int]:
        """Return one page ordered by creation, and the total matching count.

        Args:
            page: Validated page request.
            user_id: Restrict to this requester when given.
            status: Restrict to this status when given.
        """
        ...

    async def has_promotion_request(
        self,
        user_id: str,
        organisation_id: str,
        organisation_source: str,
        actor_id: int,
        exclude_id: int | None = None,
    ) -> bool:
        """Check for a live (PENDING, REVIEW or APPROVED) request for the tuple.

        Args:
            exclude_id: Ignore this validation when checking.
        """
        ...

    async def update_details(
        self,
        validation_id: int,
        organisation_role: str,
        organisation_name: str,
        organisation_website: str | None,
    ) -> Validation:
        """Replace the descriptive fields of a validation.

        Raises:
            NotFoundError: If the validation does not exist.
        """
        ...

    async def update_status(
        self,
        validation_id: int,
        expected_status: ValidationStatus,
        new_status: ValidationStatus,
        validated_by: str,
        validated_on: datetime,
    ) -> Validation:
        """Compare-and-set the status.

        Raises:
            NotFoundError: If the validation does not exist.
            ConflictError: If the stored status is no longer `expected_status`.
        """
        ...


class IAssessmentRepository(Protocol):
    """Repository contract for Assessment persistence."""

    async def create(
        self,
        owner_id: str,
        validation: Validation,
        name: str,
        subject_id: str,
        subject_type: str,
        subject_name: str,
        assessment_type: str,
        document: dict[str, Any],
        allow_duplicates: bool = False,
    ) -> Assessment:
        """Persist a new PRIVATE, version 1 assessment.

        Raises:
            ConflictError: If allow_duplicates is False and an equivalent
                assessment exists. The check and the insert are atomic.
        """
        ...

    async def find_by_id(self, assessment_id: str) -> Assessment | None:
        ...

    async def list_page(self, page: PageRequest, owner_id: str) -> tuple[list[Assessment], int]:
        ...

    async def exists_equivalent(
        self,
        owner_id: str,
        organisation_id: str,
        organisation_source: str,
        subject_id: str,
        subject_type: str,
        assessment_type: str,
    ) -> bool:
        """Check for an assessment with the same owner, organisation, subject and type."""
        ...

    async def update_document(
        self,
        assessment_id: str,
        expected_version: int,
        document: dict[str, Any],
        updated_by: str,
    ) -> Assessment:
        """Replace the document of a PRIVATE assessment and bump its version.

        Raises:
            NotFoundError: If the assessment does not exist.
            InvalidStateError: If the assessment is PUBLISHED.
            ConflictError: If the version changed since it was read.
        """
        ...

    async def publish(self, assessment_id: str, published_on: datetime) -> Assessment:
        """Move a PRIVATE assessment to PUBLISHED.

        Raises:
            NotFoundError: If the assessment does not exist.
            InvalidStateError: If it is already PUBLISHED.
        """
        ...

    async def delete_private(self, assessment_id: str) -> None:
        """Delete a PRIVATE assessment.

        Raises:
            NotFoundError: If the assessment does not exist.
            InvalidStateError: If it is PUBLISHED.
        """
        ...


class IUserRepository(Protocol):
    """Repository contract for UserProfile persistence."""

    async def ensure(self, user_id: str) -> UserProfile:
        """Return the profile for `user_id`, registering it on first sight."""
        ...

    async def find_by_id(self, user_id: str) -> UserProfile | None:
        ...

    async def list_page(self, page: PageRequest) -> tuple[list[UserProfile], int]:
        ...

    async def deny_access(
        self,
        user_id: str,
        reason: str,
        denied_by: str,
        denied_on: datetime,
    ) -> UserProfile:
        """Add the deny_access role to a profile.

        Raises:
            NotFoundError: If the user never registered.
        """
        ...


class IAuditTrailRepository(Protocol):
    """Append-only repository for AuditTrailEntry. No update, no delete."""

    async def append(
        self,
        event_type: str,
        actor_user_id: str,
        resource_type: str,
        resource_id: str,
        action: str,
        details: dict[str, Any],
        timestamp: datetime,
    ) -> AuditTrailEntry:
        ...

    async def list_page(
        self,
        page: PageRequest,
        resource_type: str | None = None,
    ) -> tuple[list[AuditTrailEntry], int]:
        ...
