"""In-memory repositories.

Drop-in implementations of the core/interfaces.py protocols backed by plain
dicts. Each store serialises its check-and-write sections with an
asyncio.Lock, so concurrent coroutines observe the same atomicity as the
SQLAlchemy repositories. Records are transient ORM instances that are never
attached to a session.

Used by the service tests.
"""

import asyncio
import itertools
import uuid
from datetime import UTC, datetime
from typing import Any

from cat_engine.core.models import (
    DENY_ACCESS_ROLE,
    LIVE_VALIDATION_STATUSES,
    Assessment,
    AssessmentStatus,
    AuditTrailEntry,
    UserProfile,
    Validation,
    ValidationStatus,
)
from cat_engine.core.pagination import PageRequest
from cat_engine.errors import ConflictError, InvalidStateError, NotFoundError


def _slice(items: list[Any], page: PageRequest) -> tuple[list[Any], int]:
    return items[page.offset : page.offset + page.size], len(items)


class InMemoryValidationRepository:
    def __init__(self) -> None:
        self._rows: dict[int, Validation] = {}
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

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
        async with self._lock:
            if self._live_exists(user_id, organisation_id, organisation_source, actor_id):
                raise ConflictError(
                    "There is a promotion request for this user and organisation that is pending, "
                    "under review or already approved."
                )
            now = datetime.now(UTC)
            validation = Validation(
                id=next(self._ids),
                user_id=user_id,
                organisation_id=organisation_id,
                organisation_source=organisation_source,
                actor_id=actor_id,
                organisation_role=organisation_role,
                organisation_name=organisation_name,
                organisation_website=organisation_website,
                status=ValidationStatus.PENDING,
                validated_by=None,
                validated_on=None,
                created_on=now,
                updated_on=now,
            )
            self._rows[validation.id] = validation
            return validation

    async def find_by_id(self, validation_id: int) -> Validation | None:
        return self._rows.get(validation_id)

    async def list_page(
        self,
        page: PageRequest,
        user_id: str | None = None,
        status: ValidationStatus | None = None,
    ) -> tuple[list[Validation], int]:
        rows = [
            v
            for v in self._rows.values()
            if (user_id is None or v.user_id == user_id) and (status is None or v.status == status)
        ]
        return _slice(rows, page)

    async def has_promotion_request(
        self,
        user_id: str,
        organisation_id: str,
        organisation_source: str,
        actor_id: int,
        exclude_id: int | None = None,
    ) -> bool:
        return self._live_exists(user_id, organisation_id, organisation_source, actor_id, exclude_id)

    async def update_details(
        self,
        validation_id: int,
        organisation_role: str,
        organisation_name: str,
        organisation_website: str | None,
    ) -> Validation:
        async with self._lock:
            validation = self._rows.get(validation_id)
            if validation is None:
                raise NotFoundError(resource="Validation", resource_id=validation_id)
            validation.organisation_role = organisation_role
            validation.organisation_name = organisation_name
            validation.organisation_website = organisation_website
            validation.updated_on = datetime.now(UTC)
            return validation

    async def update_status(
        self,
        validation_id: int,
        expected_status: ValidationStatus,
        new_status: ValidationStatus,
        validated_by: str,
        validated_on: datetime,
    ) -> Validation:
        async with self._lock:
            validation = self._rows.get(validation_id)
            if validation is None:
                raise NotFoundError(resource="Validation", resource_id=validation_id)
            if validation.status != expected_status:
                raise ConflictError(
                    f"Validation {validation_id} is no longer {expected_status}; it was modified concurrently."
                )
            if new_status in LIVE_VALIDATION_STATUSES and self._live_exists(
                validation.user_id,
                validation.organisation_id,
                validation.organisation_source,
                validation.actor_id,
                exclude_id=validation_id,
            ):
                raise ConflictError("Another live promotion request exists for this user, organisation and actor.")
            validation.status = new_status
            validation.validated_by = validated_by
            validation.validated_on = validated_on
            validation.updated_on = validated_on
            return validation

    def _live_exists(
        self,
        user_id: str,
        organisation_id: str,
        organisation_source: str,
        actor_id: int,
        exclude_id: int | None = None,
    ) -> bool:
        return any(
            v.id != exclude_id
            and v.user_id == user_id
            and v.organisation_id == organisation_id
            and v.organisation_source == organisation_source
            and v.actor_id == actor_id
            and v.status in LIVE_VALIDATION_STATUSES
            for v in self._rows.values()
        )


class InMemoryAssessmentRepository:
    def __init__(self) -> None:
        self._rows: dict[str, Assessment] = {}
        self._lock = asyncio.Lock()

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
        now = datetime.now(UTC)
        assessment = Assessment(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            validation_id=validation.id,
            organisation_id=validation.organisation_id,
            organisation_source=validation.organisation_source,
            organisation_name=validation.organisation_name,
            actor_id=validation.actor_id,
            name=name,
            subject_id=subject_id,
            subject_type=subject_type,
            subject_name=subject_name,
            assessment_type=assessment_type,
            status=AssessmentStatus.PRIVATE,
            document=dict(document),
            version=1,
            updated_by=owner_id,
            published_on=None,
            created_on=now,
            updated_on=now,
        )
        async with self._lock:
            if not allow_duplicates and self._has_equivalent(
                owner_id,
                assessment.organisation_id,
                assessment.organisation_source,
                subject_id,
                subject_type,
                assessment_type,
            ):
                raise ConflictError(
                    "An assessment for this organisation, subject and assessment type already exists."
                )
            self._rows[assessment.id] = assessment
        return assessment

    async def find_by_id(self, assessment_id: str) -> Assessment | None:
        return self._rows.get(assessment_id)

    async def list_page(self, page: PageRequest, owner_id: str) -> tuple[list[Assessment], int]:
        return _slice([a for a in self._rows.values() if a.owner_id == owner_id], page)

    async def exists_equivalent(
        self,
        owner_id: str,
        organisation_id: str,
        organisation_source: str,
        subject_id: str,
        subject_type: str,
        assessment_type: str,
    ) -> bool:
        return self._has_equivalent(
            owner_id, organisation_id, organisation_source, subject_id, subject_type, assessment_type
        )

    def _has_equivalent(self, *key: str) -> bool:
        return any(
            (a.owner_id, a.organisation_id, a.organisation_source, a.subject_id, a.subject_type, a.assessment_type)
            == key
            for a in self._rows.values()
        )

    async def update_document(
        self,
        assessment_id: str,
        expected_version: int,
        document: dict[str, Any],
        updated_by: str,
    ) -> Assessment:
        async with self._lock:
            assessment = self._get_private(assessment_id, "A published assessment cannot be updated.")
            if assessment.version != expected_version:
                raise ConflictError(
                    f"Assessment {assessment_id} was modified concurrently (expected version {expected_version})."
                )
            assessment.document = dict(document)
            assessment.version += 1
            assessment.updated_by = updated_by
            assessment.updated_on = datetime.now(UTC)
            return assessment

    async def publish(self, assessment_id: str, published_on: datetime) -> Assessment:
        async with self._lock:
            assessment = self._get_private(assessment_id, "The assessment is already published.")
            assessment.status = AssessmentStatus.PUBLISHED
            assessment.published_on = published_on
            assessment.updated_on = published_on
            return assessment

    async def delete_private(self, assessment_id: str) -> None:
        async with self._lock:
            self._get_private(assessment_id, "A published assessment cannot be deleted.")
            del self._rows[assessment_id]

    def _get_private(self, assessment_id: str, published_message: str) -> Assessment:
        assessment = self._rows.get(assessment_id)
        if assessment is None:
            raise NotFoundError(resource="Assessment", resource_id=assessment_id)
        if assessment.status == AssessmentStatus.PUBLISHED:
            raise InvalidStateError(published_message)
        return assessment


class InMemoryUserRepository:
    def __init__(self) -> None:
        self._rows: dict[str, UserProfile] = {}
        self._lock = asyncio.Lock()

    async def ensure(self, user_id: str) -> UserProfile:
        async with self._lock:
            profile = self._rows.get(user_id)
            if profile is None:
                profile = UserProfile(
                    user_id=user_id,
                    roles=[],
                    deny_reason=None,
                    denied_by=None,
                    denied_on=None,
                    registered_on=datetime.now(UTC),
                )
                self._rows[user_id] = profile
            return profile

    async def find_by_id(self, user_id: str) -> UserProfile | None:
        return self._rows.get(user_id)

    async def list_page(self, page: PageRequest) -> tuple[list[UserProfile], int]:
        return _slice(list(self._rows.values()), page)

    async def deny_access(
        self,
        user_id: str,
        reason: str,
        denied_by: str,
        denied_on: datetime,
    ) -> UserProfile:
        async with self._lock:
            profile = self._rows.get(user_id)
            if profile is None:
                raise NotFoundError(resource="User", resource_id=user_id)
            profile.roles = sorted(set(profile.roles or []) | {DENY_ACCESS_ROLE})
            profile.deny_reason = reason
            profile.denied_by = denied_by
            profile.denied_on = denied_on
            return profile


class InMemoryAuditTrailRepository:
    """Append-only. No update, no delete."""

    def __init__(self) -> None:
        self._entries: list[AuditTrailEntry] = []
        self._ids = itertools.count(1)

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
        entry = AuditTrailEntry(
            id=next(self._ids),
            event_type=event_type,
            actor_user_id=actor_user_id,
            resource_type=resource_type,
            resource_id=resource_id,
            action=action,
            details=dict(details),
            timestamp=timestamp,
        )
        self._entries.append(entry)
        return entry

    async def list_page(
        self,
        page: PageRequest,
        resource_type: str | None = None,
    ) -> tuple[list[AuditTrailEntry], int]:
        entries = [e for e in self._entries if resource_type is None or e.resource_type == resource_type]
        return _slice(entries, page)
