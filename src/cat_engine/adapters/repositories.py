"""SQLAlchemy repositories for the lifecycle engine database.

Each repository implements the corresponding interface from core/interfaces.py
on a request-scoped AsyncSession. Repositories only add, execute and flush —
the session dependency commits once per request.

Every store call runs under `_SqlRepository._guard`, which:
- bounds the call with asyncio.timeout (store_timeout_seconds)
- converts IntegrityError into ConflictError
- converts driver and connectivity failures (OperationalError, InterfaceError)
  and timeouts into UnavailableError

State changes are compare-and-set UPDATE statements filtered on the status or
version the service read; zero affected rows means a lost race or a state
change, resolved into NotFoundError, InvalidStateError or ConflictError.

Repositories:
- ValidationRepository
- AssessmentRepository
- UserRepository
- AuditTrailRepository
"""

import asyncio
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from cat_engine.core.models import (
    DENY_ACCESS_ROLE,
    LIVE_VALIDATION_STATUSES,
    Assessment,
    AssessmentStatus,
    AuditTrailEntry,
    UserProfile,
    Validation,
    ValidationStatus,
    assessment_equivalence_key,
)
from cat_engine.core.pagination import PageRequest
from cat_engine.errors import ConflictError, InvalidStateError, NotFoundError, UnavailableError
from cat_engine.observability import get_logger

logger = get_logger(__name__)


class _SqlRepository:
    """Shared session handling for the SQLAlchemy repositories.

    Args:
        session: The request-scoped async session.
        timeout_seconds: Upper bound for a single store call.
    """

    def __init__(self, session: AsyncSession, timeout_seconds: float = 5.0) -> None:
        self._session = session
        self._timeout_seconds = timeout_seconds

    @asynccontextmanager
    async def _guard(self, conflict_message: str = "The resource was modified concurrently.") -> AsyncIterator[None]:
        try:
            async with asyncio.timeout(self._timeout_seconds):
                yield
        except IntegrityError as exc:
            await self._session.rollback()
            logger.warning("Store constraint violated", error=str(exc.orig))
            raise ConflictError(conflict_message) from exc
        except TimeoutError as exc:
            logger.error("Store call timed out", timeout_seconds=self._timeout_seconds)
            raise UnavailableError("The data store did not respond in time. Please retry.") from exc
        except (OperationalError, InterfaceError) as exc:
            logger.error("Store call failed", error=str(exc.orig))
            raise UnavailableError("The data store is currently unavailable. Please retry.") from exc

    async def _count(self, stmt: Any) -> int:
        result = await self._session.execute(select(func.count()).select_from(stmt.subquery()))
        return int(result.scalar_one())


class ValidationRepository(_SqlRepository):
    """Repository for Validation persistence.

    The live-request invariant is enforced by the partial unique index
    uq_cat_validations_live_request; a concurrent duplicate fails at flush
    and surfaces as ConflictError.
    """

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
        """Persist a new PENDING validation."""
        now = datetime.now(UTC)
        validation = Validation(
            user_id=user_id,
            organisation_id=organisation_id,
            organisation_source=organisation_source,
            actor_id=actor_id,
            organisation_role=organisation_role,
            organisation_name=organisation_name,
            organisation_website=organisation_website,
            status=ValidationStatus.PENDING,
            created_on=now,
            updated_on=now,
        )
        async with self._guard(
            "There is a promotion request for this user and organisation that is pending, "
            "under review or already approved."
        ):
            self._session.add(validation)
            await self._session.flush()
        logger.info("Validation persisted", validation_id=validation.id, user_id=user_id)
        return validation

    async def find_by_id(self, validation_id: int) -> Validation | None:
        async with self._guard():
            return await self._session.get(Validation, validation_id)

    async def list_page(
        self,
        page: PageRequest,
        user_id: str | None = None,
        status: ValidationStatus | None = None,
    ) -> tuple[list[Validation], int]:
        """Return one page ordered by creation, and the total matching count."""
        stmt = select(Validation)
        if user_id is not None:
            stmt = stmt.where(Validation.user_id == user_id)
        if status is not None:
            stmt = stmt.where(Validation.status == status)

        async with self._guard():
            total = await self._count(stmt)
            result = await self._session.execute(
                stmt.order_by(Validation.created_on, Validation.id).offset(page.offset).limit(page.size)
            )
            return list(result.scalars().all()), total

    async def has_promotion_request(
        self,
        user_id: str,
        organisation_id: str,
        organisation_source: str,
        actor_id: int,
        exclude_id: int | None = None,
    ) -> bool:
        stmt = select(Validation.id).where(
            Validation.user_id == user_id,
            Validation.organisation_id == organisation_id,
            Validation.organisation_source == organisation_source,
            Validation.actor_id == actor_id,
            Validation.status.in_([status.value for status in LIVE_VALIDATION_STATUSES]),
        )
        if exclude_id is not None:
            stmt = stmt.where(Validation.id != exclude_id)

        async with self._guard():
            result = await self._session.execute(stmt.limit(1))
            return result.scalar_one_or_none() is not None

    async def update_details(
        self,
        validation_id: int,
        organisation_role: str,
        organisation_name: str,
        organisation_website: str | None,
    ) -> Validation:
        """Replace the descriptive fields of a validation."""
        async with self._guard():
            result = await self._session.execute(
                update(Validation)
                .where(Validation.id == validation_id)
                .values(
                    organisation_role=organisation_role,
                    organisation_name=organisation_name,
                    organisation_website=organisation_website,
                    updated_on=datetime.now(UTC),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise NotFoundError(resource="Validation", resource_id=validation_id)
            return await self._reload(validation_id)

    async def update_status(
        self,
        validation_id: int,
        expected_status: ValidationStatus,
        new_status: ValidationStatus,
        validated_by: str,
        validated_on: datetime,
    ) -> Validation:
        """Compare-and-set the status of a validation."""
        async with self._guard("Another live promotion request exists for this user, organisation and actor."):
            result = await self._session.execute(
                update(Validation)
                .where(Validation.id == validation_id, Validation.status == expected_status)
                .values(
                    status=new_status,
                    validated_by=validated_by,
                    validated_on=validated_on,
                    updated_on=validated_on,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                if await self._session.get(Validation, validation_id) is None:
                    raise NotFoundError(resource="Validation", resource_id=validation_id)
                raise ConflictError(
                    f"Validation {validation_id} is no longer {expected_status}; it was modified concurrently."
                )
            return await self._reload(validation_id)

    async def _reload(self, validation_id: int) -> Validation:
        validation = await self._session.get(Validation, validation_id, populate_existing=True)
        if validation is None:
            raise NotFoundError(resource="Validation", resource_id=validation_id)
        return validation


class AssessmentRepository(_SqlRepository):
    """Repository for Assessment persistence."""

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

        Organisation and actor are copied from the authorising validation.

        Raises:
            ConflictError: If duplicates are disallowed and an equivalent
                assessment already exists, including one committed concurrently.
        """
        now = datetime.now(UTC)
        equivalence_key = None
        if not allow_duplicates:
            equivalence_key = assessment_equivalence_key(
                owner_id,
                validation.organisation_id,
                str(validation.organisation_source),
                subject_id,
                subject_type,
                assessment_type,
            )
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
            equivalence_key=equivalence_key,
            status=AssessmentStatus.PRIVATE,
            document=document,
            version=1,
            updated_by=owner_id,
            created_on=now,
            updated_on=now,
        )
        async with self._guard("An assessment for this organisation, subject and assessment type already exists."):
            self._session.add(assessment)
            await self._session.flush()
        logger.info("Assessment persisted", assessment_id=assessment.id, owner_id=owner_id)
        return assessment

    async def find_by_id(self, assessment_id: str) -> Assessment | None:
        async with self._guard():
            return await self._session.get(Assessment, assessment_id)

    async def list_page(self, page: PageRequest, owner_id: str) -> tuple[list[Assessment], int]:
        stmt = select(Assessment).where(Assessment.owner_id == owner_id)
        async with self._guard():
            total = await self._count(stmt)
            result = await self._session.execute(
                stmt.order_by(Assessment.created_on, Assessment.id).offset(page.offset).limit(page.size)
            )
            return list(result.scalars().all()), total

    async def exists_equivalent(
        self,
        owner_id: str,
        organisation_id: str,
        organisation_source: str,
        subject_id: str,
        subject_type: str,
        assessment_type: str,
    ) -> bool:
        stmt = select(Assessment.id).where(
            Assessment.owner_id == owner_id,
            Assessment.organisation_id == organisation_id,
            Assessment.organisation_source == organisation_source,
            Assessment.subject_id == subject_id,
            Assessment.subject_type == subject_type,
            Assessment.assessment_type == assessment_type,
        )
        async with self._guard():
            result = await self._session.execute(stmt.limit(1))
            return result.scalar_one_or_none() is not None

    async def update_document(
        self,
        assessment_id: str,
        expected_version: int,
        document: dict[str, Any],
        updated_by: str,
    ) -> Assessment:
        """Replace the document of a PRIVATE assessment and bump its version."""
        async with self._guard():
            result = await self._session.execute(
                update(Assessment)
                .where(
                    Assessment.id == assessment_id,
                    Assessment.version == expected_version,
                    Assessment.status == AssessmentStatus.PRIVATE,
                )
                .values(
                    document=document,
                    version=Assessment.version + 1,
                    updated_by=updated_by,
                    updated_on=datetime.now(UTC),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                current = await self._session.get(Assessment, assessment_id)
                if current is None:
                    raise NotFoundError(resource="Assessment", resource_id=assessment_id)
                if current.status == AssessmentStatus.PUBLISHED:
                    raise InvalidStateError("A published assessment cannot be updated.")
                raise ConflictError(
                    f"Assessment {assessment_id} was modified concurrently (expected version {expected_version})."
                )
            return await self._reload(assessment_id)

    async def publish(self, assessment_id: str, published_on: datetime) -> Assessment:
        """Move a PRIVATE assessment to PUBLISHED."""
        async with self._guard():
            result = await self._session.execute(
                update(Assessment)
                .where(Assessment.id == assessment_id, Assessment.status == AssessmentStatus.PRIVATE)
                .values(
                    status=AssessmentStatus.PUBLISHED,
                    published_on=published_on,
                    updated_on=published_on,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await self._raise_missing_or_published(assessment_id, "The assessment is already published.")
            return await self._reload(assessment_id)

    async def delete_private(self, assessment_id: str) -> None:
        """Delete a PRIVATE assessment."""
        async with self._guard():
            result = await self._session.execute(
                delete(Assessment).where(
                    Assessment.id == assessment_id,
                    Assessment.status == AssessmentStatus.PRIVATE,
                )
            )
            if result.rowcount == 0:
                await self._raise_missing_or_published(assessment_id, "A published assessment cannot be deleted.")

    async def _raise_missing_or_published(self, assessment_id: str, published_message: str) -> None:
        current = await self._session.get(Assessment, assessment_id, populate_existing=True)
        if current is None:
            raise NotFoundError(resource="Assessment", resource_id=assessment_id)
        if current.status == AssessmentStatus.PUBLISHED:
            raise InvalidStateError(published_message)
        raise ConflictError(f"Assessment {assessment_id} was modified concurrently.")

    async def _reload(self, assessment_id: str) -> Assessment:
        assessment = await self._session.get(Assessment, assessment_id, populate_existing=True)
        if assessment is None:
            raise NotFoundError(resource="Assessment", resource_id=assessment_id)
        return assessment


class UserRepository(_SqlRepository):
    """Repository for UserProfile persistence."""

    async def ensure(self, user_id: str) -> UserProfile:
        """Return the profile for `user_id`, registering it on first sight."""
        async with self._guard():
            profile = await self._session.get(UserProfile, user_id)
        if profile is not None:
            return profile

        profile = UserProfile(user_id=user_id, roles=[], registered_on=datetime.now(UTC))
        try:
            async with self._guard():
                self._session.add(profile)
                await self._session.flush()
        except ConflictError:
            # Registered by a concurrent first request.
            async with self._guard():
                existing = await self._session.get(UserProfile, user_id)
            if existing is None:
                raise
            return existing
        logger.info("User registered", user_id=user_id)
        return profile

    async def find_by_id(self, user_id: str) -> UserProfile | None:
        async with self._guard():
            return await self._session.get(UserProfile, user_id)

    async def list_page(self, page: PageRequest) -> tuple[list[UserProfile], int]:
        stmt = select(UserProfile)
        async with self._guard():
            total = await self._count(stmt)
            result = await self._session.execute(
                stmt.order_by(UserProfile.registered_on, UserProfile.user_id).offset(page.offset).limit(page.size)
            )
            return list(result.scalars().all()), total

    async def deny_access(
        self,
        user_id: str,
        reason: str,
        denied_by: str,
        denied_on: datetime,
    ) -> UserProfile:
        """Add the deny_access role to a profile."""
        async with self._guard():
            profile = await self._session.get(UserProfile, user_id)
            if profile is None:
                raise NotFoundError(resource="User", resource_id=user_id)
            profile.roles = sorted(set(profile.roles or []) | {DENY_ACCESS_ROLE})
            profile.deny_reason = reason
            profile.denied_by = denied_by
            profile.denied_on = denied_on
            await self._session.flush()
        return profile


class AuditTrailRepository(_SqlRepository):
    """Append-only repository for AuditTrailEntry.

    IMPORTANT: There is deliberately no update or delete method.
    """

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
            event_type=event_type,
            actor_user_id=actor_user_id,
            resource_type=resource_type,
            resource_id=resource_id,
            action=action,
            details=details,
            timestamp=timestamp,
        )
        async with self._guard():
            self._session.add(entry)
            await self._session.flush()
        return entry

    async def list_page(
        self,
        page: PageRequest,
        resource_type: str | None = None,
    ) -> tuple[list[AuditTrailEntry], int]:
        stmt = select(AuditTrailEntry)
        if resource_type is not None:
            stmt = stmt.where(AuditTrailEntry.resource_type == resource_type)
        async with self._guard():
            total = await self._count(stmt)
            result = await self._session.execute(
                stmt.order_by(AuditTrailEntry.timestamp, AuditTrailEntry.id).offset(page.offset).limit(page.size)
            )
            return list(result.scalars().all()), total
