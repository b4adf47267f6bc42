"""Tests for core business logic services.

Tests ValidationService, AssessmentService, UserService and AuditService
over the in-memory repositories.
"""

import asyncio
import math
from typing import Any

import pytest

from cat_engine.adapters.memory import (
    InMemoryAssessmentRepository,
    InMemoryAuditTrailRepository,
    InMemoryValidationRepository,
)
from cat_engine.api.schemas import ValidationResponse
from cat_engine.core.access import CallerIdentity
from cat_engine.core.models import ValidationStatus
from cat_engine.core.services import (
    AssessmentService,
    AuditService,
    UserService,
    ValidationScope,
    ValidationService,
)
from cat_engine.errors import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)


async def _create_validation(
    service: ValidationService,
    caller: CallerIdentity,
    organisation_id: str = "00tjv0s33",
    actor_id: int = 6,
) -> ValidationResponse:
    return await service.create_validation(
        caller,
        organisation_id=organisation_id,
        organisation_source="ROR",
        actor_id=actor_id,
        organisation_role="Data steward",
        organisation_name="GRNET",
        organisation_website="https://grnet.gr",
    )


def _denied(caller: CallerIdentity) -> CallerIdentity:
    return CallerIdentity(user_id=caller.user_id, roles=caller.roles | {"deny_access"}, deny_access=True)


# ---------------------------------------------------------------------------
# ValidationService tests
# ---------------------------------------------------------------------------


class TestValidationService:
    """Tests for ValidationService — promotion request lifecycle."""

    async def test_create_validation_starts_pending(
        self,
        validation_service: ValidationService,
        alice: CallerIdentity,
        audit_repo: InMemoryAuditTrailRepository,
    ) -> None:
        """A new request is PENDING, owned by the caller and audited."""
        validation = await _create_validation(validation_service, alice)

        assert validation.status == "PENDING"
        assert validation.user_id == alice.user_id
        assert validation.organisation_source == "ROR"
        assert validation.validated_by is None
        assert [e.event_type for e in audit_repo._entries] == ["validation.created"]

    async def test_second_live_request_for_same_tuple_conflicts(
        self,
        validation_service: ValidationService,
        alice: CallerIdentity,
    ) -> None:
        await _create_validation(validation_service, alice)

        with pytest.raises(ConflictError):
            await _create_validation(validation_service, alice)

    async def test_same_tuple_allowed_for_different_actor_or_user(
        self,
        validation_service: ValidationService,
        alice: CallerIdentity,
        bob: CallerIdentity,
    ) -> None:
        await _create_validation(validation_service, alice)
        other_actor = await _create_validation(validation_service, alice, actor_id=7)
        other_user = await _create_validation(validation_service, bob)

        assert other_actor.status == "PENDING"
        assert other_user.status == "PENDING"

    async def test_rejected_request_can_be_reapplied(
        self,
        validation_service: ValidationService,
        alice: CallerIdentity,
        admin: CallerIdentity,
    ) -> None:
        first = await _create_validation(validation_service, alice)
        await validation_service.update_validation_status(admin, first.id, ValidationStatus.REJECTED)

        second = await _create_validation(validation_service, alice)

        assert second.id != first.id
        assert second.status == "PENDING"

    async def test_concurrent_creations_yield_exactly_one_live_request(
        self,
        validation_service: ValidationService,
        validation_repo: InMemoryValidationRepository,
        alice: CallerIdentity,
    ) -> None:
        """Concurrent identical requests: one succeeds, every other one conflicts."""
        results = await asyncio.gather(
            *(_create_validation(validation_service, alice) for _ in range(5)),
            return_exceptions=True,
        )

        created = [r for r in results if isinstance(r, ValidationResponse)]
        conflicts = [r for r in results if isinstance(r, ConflictError)]
        assert len(created) == 1
        assert len(conflicts) == 4
        assert await validation_repo.has_promotion_request(alice.user_id, "00tjv0s33", "ROR", 6)

    async def test_blank_organisation_id_rejected(
        self,
        validation_service: ValidationService,
        alice: CallerIdentity,
    ) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await _create_validation(validation_service, alice, organisation_id="   ")
        assert exc_info.value.field == "organisation_id"

    async def test_non_positive_actor_rejected(
        self,
        validation_service: ValidationService,
        alice: CallerIdentity,
    ) -> None:
        with pytest.raises(ValidationError):
            await _create_validation(validation_service, alice, actor_id=0)

    @pytest.mark.parametrize(
        ("path", "target"),
        [
            ([], ValidationStatus.REVIEW),
            ([], ValidationStatus.APPROVED),
            ([], ValidationStatus.REJECTED),
            ([ValidationStatus.REVIEW], ValidationStatus.APPROVED),
            ([ValidationStatus.REVIEW], ValidationStatus.REJECTED),
        ],
    )
    async def test_legal_transitions(
        self,
        validation_service: ValidationService,
        alice: CallerIdentity,
        admin: CallerIdentity,
        path: list[ValidationStatus],
        target: ValidationStatus,
    ) -> None:
        validation = await _create_validation(validation_service, alice)
        for step in path:
            await validation_service.update_validation_status(admin, validation.id, step)

        updated = await validation_service.update_validation_status(admin, validation.id, target)

        assert updated.status == target.value
        assert updated.validated_by == admin.user_id
        assert updated.validated_on is not None

    @pytest.mark.parametrize(
        ("path", "target"),
        [
            ([], ValidationStatus.PENDING),
            ([ValidationStatus.REVIEW], ValidationStatus.PENDING),
            ([ValidationStatus.REVIEW], ValidationStatus.REVIEW),
            ([ValidationStatus.APPROVED], ValidationStatus.REVIEW),
            ([ValidationStatus.APPROVED], ValidationStatus.REJECTED),
            ([ValidationStatus.REJECTED], ValidationStatus.APPROVED),
            ([ValidationStatus.REJECTED], ValidationStatus.PENDING),
        ],
    )
    async def test_illegal_transitions_leave_status_unchanged(
        self,
        validation_service: ValidationService,
        alice: CallerIdentity,
        admin: CallerIdentity,
        path: list[ValidationStatus],
        target: ValidationStatus,
    ) -> None:
        validation = await _create_validation(validation_service, alice)
        for step in path:
            await validation_service.update_validation_status(admin, validation.id, step)
        before = await validation_service.get_validation(admin, validation.id)

        with pytest.raises(InvalidStateTransitionError):
            await validation_service.update_validation_status(admin, validation.id, target)

        after = await validation_service.get_validation(admin, validation.id)
        assert after.status == before.status

    async def test_concurrent_moderation_applies_one_transition(
        self,
        validation_service: ValidationService,
        alice: CallerIdentity,
        admin: CallerIdentity,
    ) -> None:
        validation = await _create_validation(validation_service, alice)

        results = await asyncio.gather(
            validation_service.update_validation_status(admin, validation.id, ValidationStatus.APPROVED),
            validation_service.update_validation_status(admin, validation.id, ValidationStatus.REJECTED),
            return_exceptions=True,
        )

        succeeded = [r for r in results if isinstance(r, ValidationResponse)]
        failed = [r for r in results if isinstance(r, (ConflictError, InvalidStateTransitionError))]
        assert len(succeeded) == 1
        assert len(failed) == 1
        final = await validation_service.get_validation(admin, validation.id)
        assert final.status == succeeded[0].status

    async def test_update_status_requires_admin(
        self,
        validation_service: ValidationService,
        alice: CallerIdentity,
    ) -> None:
        validation = await _create_validation(validation_service, alice)

        with pytest.raises(ForbiddenError):
            await validation_service.update_validation_status(alice, validation.id, ValidationStatus.APPROVED)

    async def test_update_status_unknown_status_rejected(
        self,
        validation_service: ValidationService,
        alice: CallerIdentity,
        admin: CallerIdentity,
    ) -> None:
        validation = await _create_validation(validation_service, alice)

        with pytest.raises(ValidationError):
            await validation_service.update_validation_status(admin, validation.id, "ARCHIVED")

    async def test_update_status_missing_validation(
        self,
        validation_service: ValidationService,
        admin: CallerIdentity,
    ) -> None:
        with pytest.raises(NotFoundError):
            await validation_service.update_validation_status(admin, 999, ValidationStatus.APPROVED)

    async def test_get_validation_owner_admin_and_stranger(
        self,
        validation_service: ValidationService,
        alice: CallerIdentity,
        bob: CallerIdentity,
        admin: CallerIdentity,
    ) -> None:
        validation = await _create_validation(validation_service, alice)

        assert (await validation_service.get_validation(alice, validation.id)).id == validation.id
        assert (await validation_service.get_validation(admin, validation.id)).id == validation.id
        with pytest.raises(ForbiddenError):
            await validation_service.get_validation(bob, validation.id)

    async def test_get_validation_with_all_scope_is_admin_only(
        self,
        validation_service: ValidationService,
        alice: CallerIdentity,
        admin: CallerIdentity,
    ) -> None:
        validation = await _create_validation(validation_service, alice)

        found = await validation_service.get_validation(admin, validation.id, scope=ValidationScope.ALL)

        assert found.id == validation.id
        with pytest.raises(ForbiddenError, match="admin role"):
            await validation_service.get_validation(alice, validation.id, scope=ValidationScope.ALL)

    async def test_update_validation_changes_descriptive_fields_only(
        self,
        validation_service: ValidationService,
        alice: CallerIdentity,
        admin: CallerIdentity,
    ) -> None:
        validation = await _create_validation(validation_service, alice)

        updated = await validation_service.update_validation(
            admin,
            validation.id,
            organisation_role="Director",
            organisation_name="GRNET S.A.",
            organisation_website=None,
        )

        assert updated.organisation_role == "Director"
        assert updated.organisation_name == "GRNET S.A."
        assert updated.organisation_website is None
        assert updated.organisation_id == validation.organisation_id
        assert updated.actor_id == validation.actor_id
        assert updated.status == "PENDING"

    async def test_update_validation_requires_admin(
        self,
        validation_service: ValidationService,
        alice: CallerIdentity,
    ) -> None:
        validation = await _create_validation(validation_service, alice)

        with pytest.raises(ForbiddenError):
            await validation_service.update_validation(alice, validation.id, "Director", "GRNET")

    async def test_terminal_update_blocked_when_disabled(
        self,
        validation_repo: InMemoryValidationRepository,
        audit_service: AuditService,
        alice: CallerIdentity,
        admin: CallerIdentity,
    ) -> None:
        service = ValidationService(validation_repo, audit_service, allow_terminal_updates=False)
        validation = await _create_validation(service, alice)
        await service.update_validation_status(admin, validation.id, ValidationStatus.REJECTED)

        with pytest.raises(InvalidStateError):
            await service.update_validation(admin, validation.id, "Director", "GRNET")

    async def test_terminal_update_allowed_by_default(
        self,
        validation_service: ValidationService,
        approved_validation: ValidationResponse,
        admin: CallerIdentity,
    ) -> None:
        updated = await validation_service.update_validation(admin, approved_validation.id, "Director", "GRNET")

        assert updated.status == "APPROVED"
        assert updated.organisation_role == "Director"

    async def test_list_mine_only_returns_own_requests(
        self,
        validation_service: ValidationService,
        alice: CallerIdentity,
        bob: CallerIdentity,
    ) -> None:
        await _create_validation(validation_service, alice)
        await _create_validation(validation_service, alice, actor_id=7)
        await _create_validation(validation_service, bob)

        page = await validation_service.list_validations(alice)

        assert page.total_elements == 2
        assert {v.user_id for v in page.content} == {alice.user_id}

    async def test_list_all_requires_admin(
        self,
        validation_service: ValidationService,
        alice: CallerIdentity,
    ) -> None:
        with pytest.raises(ForbiddenError):
            await validation_service.list_validations(alice, scope=ValidationScope.ALL)

    async def test_list_all_filters_by_status(
        self,
        validation_service: ValidationService,
        alice: CallerIdentity,
        bob: CallerIdentity,
        admin: CallerIdentity,
    ) -> None:
        first = await _create_validation(validation_service, alice)
        await _create_validation(validation_service, bob)
        await validation_service.update_validation_status(admin, first.id, ValidationStatus.REVIEW)

        page = await validation_service.list_validations(admin, status="review", scope=ValidationScope.ALL)

        assert page.total_elements == 1
        assert page.content[0].id == first.id

    async def test_list_unknown_status_rejected(
        self,
        validation_service: ValidationService,
        admin: CallerIdentity,
    ) -> None:
        with pytest.raises(ValidationError):
            await validation_service.list_validations(admin, status="ARCHIVED", scope=ValidationScope.ALL)

    @pytest.mark.parametrize(("page", "size"), [(0, 10), (-1, 10), (1, 0), (1, 101)])
    async def test_out_of_range_paging_rejected(
        self,
        validation_service: ValidationService,
        alice: CallerIdentity,
        page: int,
        size: int,
    ) -> None:
        with pytest.raises(ValidationError):
            await validation_service.list_validations(alice, page=page, size=size)

    @pytest.mark.parametrize(("count", "size"), [(7, 3), (9, 3), (1, 10), (10, 10)])
    async def test_last_page_holds_remainder_and_next_page_is_empty(
        self,
        validation_service: ValidationService,
        alice: CallerIdentity,
        count: int,
        size: int,
    ) -> None:
        for actor_id in range(1, count + 1):
            await _create_validation(validation_service, alice, actor_id=actor_id)
        last = math.ceil(count / size)

        last_page = await validation_service.list_validations(alice, page=last, size=size)
        beyond = await validation_service.list_validations(alice, page=last + 1, size=size)

        expected = count % size or size
        assert last_page.number_of_items == expected
        assert last_page.total_pages == last
        assert beyond.content == []
        assert beyond.total_elements == count
        assert beyond.page == last + 1
        assert beyond.size == size

    async def test_denied_caller_cannot_create(
        self,
        validation_service: ValidationService,
        alice: CallerIdentity,
    ) -> None:
        with pytest.raises(ForbiddenError):
            await _create_validation(validation_service, _denied(alice))


# ---------------------------------------------------------------------------
# AssessmentService tests
# ---------------------------------------------------------------------------


class TestAssessmentService:
    """Tests for AssessmentService — assessment lifecycle behind the approved-role gate."""

    async def _create(
        self,
        service: AssessmentService,
        caller: CallerIdentity,
        validation_id: int,
        document: dict[str, Any],
        subject_id: str = "srv-1",
    ) -> Any:
        return await service.create_assessment(
            caller,
            validation_id=validation_id,
            name="First assessment",
            subject_id=subject_id,
            subject_type="Service",
            assessment_type="EOSC PID Policy",
            document=document,
            subject_name="Catalogue",
        )

    async def test_create_under_approved_validation(
        self,
        assessment_service: AssessmentService,
        approved_validation: ValidationResponse,
        alice: CallerIdentity,
        assessment_doc: dict[str, Any],
    ) -> None:
        assessment = await self._create(assessment_service, alice, approved_validation.id, assessment_doc)

        assert assessment.status == "PRIVATE"
        assert assessment.published is False
        assert assessment.version == 1
        assert assessment.owner_id == alice.user_id
        assert assessment.organisation.id == approved_validation.organisation_id
        assert assessment.organisation.source == "ROR"
        assert assessment.actor_id == approved_validation.actor_id
        assert assessment.subject.name == "Catalogue"
        assert assessment.assessment_doc == assessment_doc

    async def test_create_requires_approved_validation(
        self,
        assessment_service: AssessmentService,
        validation_service: ValidationService,
        alice: CallerIdentity,
        assessment_doc: dict[str, Any],
    ) -> None:
        pending = await _create_validation(validation_service, alice)

        with pytest.raises(ForbiddenError):
            await self._create(assessment_service, alice, pending.id, assessment_doc)

    async def test_create_with_someone_elses_validation_forbidden(
        self,
        assessment_service: AssessmentService,
        approved_validation: ValidationResponse,
        bob: CallerIdentity,
        assessment_doc: dict[str, Any],
    ) -> None:
        with pytest.raises(ForbiddenError):
            await self._create(assessment_service, bob, approved_validation.id, assessment_doc)

    async def test_create_with_missing_validation_forbidden(
        self,
        assessment_service: AssessmentService,
        alice: CallerIdentity,
        assessment_doc: dict[str, Any],
    ) -> None:
        with pytest.raises(ForbiddenError):
            await self._create(assessment_service, alice, 404, assessment_doc)

    async def test_create_restricted_to_authoring_actors(
        self,
        assessment_repo: InMemoryAssessmentRepository,
        validation_repo: InMemoryValidationRepository,
        audit_service: AuditService,
        approved_validation: ValidationResponse,
        alice: CallerIdentity,
        assessment_doc: dict[str, Any],
    ) -> None:
        service = AssessmentService(assessment_repo, validation_repo, audit_service, authoring_actor_ids=[1, 2])

        with pytest.raises(ForbiddenError):
            await self._create(service, alice, approved_validation.id, assessment_doc)

    async def test_duplicate_assessment_conflicts(
        self,
        assessment_service: AssessmentService,
        approved_validation: ValidationResponse,
        alice: CallerIdentity,
        assessment_doc: dict[str, Any],
    ) -> None:
        await self._create(assessment_service, alice, approved_validation.id, assessment_doc)

        with pytest.raises(ConflictError):
            await self._create(assessment_service, alice, approved_validation.id, assessment_doc)

        other_subject = await self._create(
            assessment_service, alice, approved_validation.id, assessment_doc, subject_id="srv-2"
        )
        assert other_subject.version == 1

    async def test_duplicates_allowed_when_configured(
        self,
        assessment_repo: InMemoryAssessmentRepository,
        validation_repo: InMemoryValidationRepository,
        audit_service: AuditService,
        approved_validation: ValidationResponse,
        alice: CallerIdentity,
        assessment_doc: dict[str, Any],
    ) -> None:
        service = AssessmentService(assessment_repo, validation_repo, audit_service, allow_duplicates=True)

        first = await self._create(service, alice, approved_validation.id, assessment_doc)
        second = await self._create(service, alice, approved_validation.id, assessment_doc)

        assert first.id != second.id

    async def test_concurrent_equivalent_creations_yield_one_assessment(
        self,
        assessment_service: AssessmentService,
        approved_validation: ValidationResponse,
        alice: CallerIdentity,
        assessment_doc: dict[str, Any],
    ) -> None:
        results = await asyncio.gather(
            *(self._create(assessment_service, alice, approved_validation.id, assessment_doc) for _ in range(5)),
            return_exceptions=True,
        )

        conflicts = [r for r in results if isinstance(r, ConflictError)]
        page = await assessment_service.list_assessments(alice, page=1, size=10)
        assert len(conflicts) == 4
        assert page.total_elements == 1

    async def test_store_rejects_equivalent_insert_without_service_check(
        self,
        assessment_repo: InMemoryAssessmentRepository,
        validation_repo: InMemoryValidationRepository,
        approved_validation: ValidationResponse,
        assessment_doc: dict[str, Any],
    ) -> None:
        validation = await validation_repo.find_by_id(approved_validation.id)
        assert validation is not None

        def create(allow_duplicates: bool) -> Any:
            return assessment_repo.create(
                owner_id="alice@example.org",
                validation=validation,
                name="A",
                subject_id="srv-1",
                subject_type="Service",
                subject_name="",
                assessment_type="PID",
                document=assessment_doc,
                allow_duplicates=allow_duplicates,
            )

        await create(allow_duplicates=False)
        with pytest.raises(ConflictError):
            await create(allow_duplicates=False)
        assert (await create(allow_duplicates=True)).version == 1

    async def test_empty_document_rejected(
        self,
        assessment_service: AssessmentService,
        approved_validation: ValidationResponse,
        alice: CallerIdentity,
    ) -> None:
        with pytest.raises(ValidationError):
            await self._create(assessment_service, alice, approved_validation.id, {})

    async def test_update_bumps_version(
        self,
        assessment_service: AssessmentService,
        approved_validation: ValidationResponse,
        alice: CallerIdentity,
        assessment_doc: dict[str, Any],
    ) -> None:
        created = await self._create(assessment_service, alice, approved_validation.id, assessment_doc)
        new_doc = {**assessment_doc, "result": {"compliance": False, "ranking": 0.1}}

        updated = await assessment_service.update_assessment(alice, created.id, new_doc)
        again = await assessment_service.update_assessment(alice, created.id, assessment_doc)

        assert updated.version == 2
        assert updated.assessment_doc["result"]["compliance"] is False
        assert updated.updated_by == alice.user_id
        assert again.version == 3

    async def test_update_by_non_owner_forbidden(
        self,
        assessment_service: AssessmentService,
        approved_validation: ValidationResponse,
        alice: CallerIdentity,
        bob: CallerIdentity,
        assessment_doc: dict[str, Any],
    ) -> None:
        created = await self._create(assessment_service, alice, approved_validation.id, assessment_doc)

        with pytest.raises(ForbiddenError):
            await assessment_service.update_assessment(bob, created.id, assessment_doc)
        with pytest.raises(ForbiddenError):
            await assessment_service.get_assessment(bob, created.id)

    async def test_stale_version_update_conflicts(
        self,
        assessment_service: AssessmentService,
        assessment_repo: InMemoryAssessmentRepository,
        approved_validation: ValidationResponse,
        alice: CallerIdentity,
        assessment_doc: dict[str, Any],
    ) -> None:
        created = await self._create(assessment_service, alice, approved_validation.id, assessment_doc)
        await assessment_service.update_assessment(alice, created.id, assessment_doc)

        with pytest.raises(ConflictError):
            await assessment_repo.update_document(created.id, expected_version=1, document={"a": 1}, updated_by="x")

    async def test_published_assessment_is_frozen(
        self,
        assessment_service: AssessmentService,
        approved_validation: ValidationResponse,
        alice: CallerIdentity,
        admin: CallerIdentity,
        assessment_doc: dict[str, Any],
    ) -> None:
        created = await self._create(assessment_service, alice, approved_validation.id, assessment_doc)
        published = await assessment_service.publish_assessment(alice, created.id)

        assert published.status == "PUBLISHED"
        assert published.published is True
        assert published.published_on is not None
        with pytest.raises(InvalidStateError):
            await assessment_service.update_assessment(alice, created.id, {"other": True})
        with pytest.raises(InvalidStateError):
            await assessment_service.delete_private_assessment(admin, created.id)
        with pytest.raises(InvalidStateError):
            await assessment_service.publish_assessment(alice, created.id)

        unchanged = await assessment_service.get_assessment(alice, created.id)
        assert unchanged.version == 1
        assert unchanged.assessment_doc == assessment_doc

    async def test_delete_private_requires_admin(
        self,
        assessment_service: AssessmentService,
        approved_validation: ValidationResponse,
        alice: CallerIdentity,
        assessment_doc: dict[str, Any],
    ) -> None:
        created = await self._create(assessment_service, alice, approved_validation.id, assessment_doc)

        with pytest.raises(ForbiddenError):
            await assessment_service.delete_private_assessment(alice, created.id)

    async def test_delete_missing_assessment(
        self,
        assessment_service: AssessmentService,
        admin: CallerIdentity,
    ) -> None:
        with pytest.raises(NotFoundError):
            await assessment_service.delete_private_assessment(admin, "missing")

    async def test_list_assessments_returns_own_only(
        self,
        assessment_service: AssessmentService,
        validation_service: ValidationService,
        approved_validation: ValidationResponse,
        alice: CallerIdentity,
        bob: CallerIdentity,
        admin: CallerIdentity,
        assessment_doc: dict[str, Any],
    ) -> None:
        bob_validation = await _create_validation(validation_service, bob)
        await validation_service.update_validation_status(admin, bob_validation.id, ValidationStatus.APPROVED)
        await self._create(assessment_service, alice, approved_validation.id, assessment_doc)
        await self._create(assessment_service, bob, bob_validation.id, assessment_doc)

        page = await assessment_service.list_assessments(alice)

        assert page.total_elements == 1
        assert page.content[0].owner_id == alice.user_id


# ---------------------------------------------------------------------------
# UserService tests
# ---------------------------------------------------------------------------


class TestUserService:
    """Tests for UserService — registration and deny-access."""

    async def test_resolve_identity_registers_once(
        self,
        user_service: UserService,
    ) -> None:
        first = await user_service.resolve_identity("carol@example.org", ["user"])
        second = await user_service.resolve_identity("carol@example.org", ["user", "admin"])

        assert first.user_id == "carol@example.org"
        assert not first.is_admin
        assert second.is_admin
        admin = CallerIdentity(user_id="root", roles=frozenset({"admin"}))
        page = await user_service.list_users(admin)
        assert page.total_elements == 1

    async def test_deny_access_marks_identity(
        self,
        user_service: UserService,
        admin: CallerIdentity,
        audit_repo: InMemoryAuditTrailRepository,
    ) -> None:
        await user_service.register("bob@example.org")

        profile = await user_service.deny_access(admin, "bob@example.org", "Spam")
        identity = await user_service.resolve_identity("bob@example.org", ["user"])

        assert profile.denied is True
        assert profile.deny_reason == "Spam"
        assert profile.denied_by == admin.user_id
        assert identity.deny_access is True
        assert audit_repo._entries[-1].event_type == "user.access.denied"

    async def test_deny_access_is_idempotent(
        self,
        user_service: UserService,
        admin: CallerIdentity,
    ) -> None:
        await user_service.register("bob@example.org")

        await user_service.deny_access(admin, "bob@example.org", "Spam")
        profile = await user_service.deny_access(admin, "bob@example.org", "Repeated spam")

        assert profile.roles.count("deny_access") == 1
        assert profile.deny_reason == "Repeated spam"

    async def test_deny_access_unknown_user(
        self,
        user_service: UserService,
        admin: CallerIdentity,
    ) -> None:
        with pytest.raises(NotFoundError):
            await user_service.deny_access(admin, "ghost@example.org", "Spam")

    async def test_deny_access_requires_reason_and_admin(
        self,
        user_service: UserService,
        admin: CallerIdentity,
        alice: CallerIdentity,
    ) -> None:
        await user_service.register("bob@example.org")

        with pytest.raises(ValidationError):
            await user_service.deny_access(admin, "bob@example.org", "  ")
        with pytest.raises(ForbiddenError):
            await user_service.deny_access(alice, "bob@example.org", "Spam")

    async def test_list_users_page_size_capped_at_20(
        self,
        user_service: UserService,
        admin: CallerIdentity,
    ) -> None:
        with pytest.raises(ValidationError):
            await user_service.list_users(admin, size=21)


# ---------------------------------------------------------------------------
# AuditService tests
# ---------------------------------------------------------------------------


class TestAuditService:
    """Tests for AuditService — append-only audit trail."""

    async def test_every_state_change_is_audited(
        self,
        validation_service: ValidationService,
        assessment_service: AssessmentService,
        audit_service: AuditService,
        alice: CallerIdentity,
        admin: CallerIdentity,
        assessment_doc: dict[str, Any],
    ) -> None:
        validation = await _create_validation(validation_service, alice)
        await validation_service.update_validation(admin, validation.id, "Director", "GRNET")
        await validation_service.update_validation_status(admin, validation.id, ValidationStatus.APPROVED)
        assessment = await assessment_service.create_assessment(
            alice, validation.id, "A", "srv-1", "Service", "PID", assessment_doc
        )
        await assessment_service.update_assessment(alice, assessment.id, assessment_doc)
        await assessment_service.delete_private_assessment(admin, assessment.id)

        trail = await audit_service.query_trail(admin, size=100)

        assert [e.event_type for e in trail.content] == [
            "validation.created",
            "validation.updated",
            "validation.status.updated",
            "assessment.created",
            "assessment.updated",
            "assessment.deleted",
        ]
        status_entry = trail.content[2]
        assert status_entry.details == {"from": "PENDING", "to": "APPROVED", "user_id": alice.user_id}
        assert status_entry.actor_user_id == admin.user_id

    async def test_query_trail_filters_by_resource_type(
        self,
        validation_service: ValidationService,
        audit_service: AuditService,
        alice: CallerIdentity,
        admin: CallerIdentity,
    ) -> None:
        await _create_validation(validation_service, alice)
        await audit_service.record("user.access.denied", admin.user_id, "user", "bob", "access_denied", {})

        trail = await audit_service.query_trail(admin, resource_type="user")

        assert trail.total_elements == 1
        assert trail.content[0].resource_id == "bob"

    async def test_query_trail_requires_admin(
        self,
        audit_service: AuditService,
        alice: CallerIdentity,
    ) -> None:
        with pytest.raises(ForbiddenError):
            await audit_service.query_trail(alice)


# ---------------------------------------------------------------------------
# End-to-end lifecycle scenarios
# ---------------------------------------------------------------------------


class TestLifecycleScenarios:
    async def test_promotion_then_assessment_lifecycle(
        self,
        validation_service: ValidationService,
        assessment_service: AssessmentService,
        alice: CallerIdentity,
        admin: CallerIdentity,
        assessment_doc: dict[str, Any],
    ) -> None:
        validation = await _create_validation(validation_service, alice)
        assert validation.status == "PENDING"

        approved = await validation_service.update_validation_status(admin, validation.id, ValidationStatus.APPROVED)
        assert approved.status == "APPROVED"

        with pytest.raises(ConflictError):
            await _create_validation(validation_service, alice)

        assessment = await assessment_service.create_assessment(
            alice, validation.id, "A", "srv-1", "Service", "PID", assessment_doc
        )
        assert assessment.status == "PRIVATE"
        assert assessment.version == 1

        updated = await assessment_service.update_assessment(alice, assessment.id, {"revised": True})
        assert updated.version == 2

        await assessment_service.delete_private_assessment(admin, assessment.id)
        with pytest.raises(NotFoundError):
            await assessment_service.get_assessment(alice, assessment.id)

        republished = await assessment_service.create_assessment(
            alice, validation.id, "A", "srv-1", "Service", "PID", assessment_doc
        )
        await assessment_service.publish_assessment(alice, republished.id)
        with pytest.raises(InvalidStateError):
            await assessment_service.delete_private_assessment(admin, republished.id)

    async def test_denied_user_loses_access_to_own_assessment(
        self,
        validation_service: ValidationService,
        assessment_service: AssessmentService,
        user_service: UserService,
        admin: CallerIdentity,
        assessment_doc: dict[str, Any],
    ) -> None:
        bob = await user_service.resolve_identity("bob@example.org", ["user"])
        validation = await _create_validation(validation_service, bob)
        await validation_service.update_validation_status(admin, validation.id, ValidationStatus.APPROVED)
        assessment = await assessment_service.create_assessment(
            bob, validation.id, "A", "srv-1", "Service", "PID", assessment_doc
        )

        await user_service.deny_access(admin, bob.user_id, "Abusive behaviour")
        bob = await user_service.resolve_identity(bob.user_id, ["user"])

        with pytest.raises(ForbiddenError):
            await assessment_service.get_assessment(bob, assessment.id)
        with pytest.raises(ForbiddenError):
            await assessment_service.update_assessment(bob, assessment.id, assessment_doc)
        with pytest.raises(ForbiddenError):
            await validation_service.get_validation(bob, validation.id)
        with pytest.raises(ForbiddenError):
            await validation_service.list_validations(bob)
        with pytest.raises(ForbiddenError):
            await _create_validation(validation_service, bob, actor_id=9)
