"""Test fixtures for cat-engine.

Provides:
- alice / bob / admin: CallerIdentity fixtures for a regular user, a second user and an administrator
- validation_repo / assessment_repo / user_repo / audit_repo: in-memory repositories
- audit_service / validation_service / assessment_service / user_service: services wired on the in-memory stores
- approved_validation: an APPROVED validation owned by alice
- db_engine / db_session: in-memory SQLite engine with all tables, and a session on it
- assessment_doc: a minimal assessment document
"""

from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import cat_engine.core.models  # noqa: F401 — register ORM models on Base.metadata
from cat_engine.adapters.memory import (
    InMemoryAssessmentRepository,
    InMemoryAuditTrailRepository,
    InMemoryUserRepository,
    InMemoryValidationRepository,
)
from cat_engine.api.schemas import ValidationResponse
from cat_engine.core.access import CallerIdentity
from cat_engine.core.models import ValidationStatus
from cat_engine.core.services import AssessmentService, AuditService, UserService, ValidationService
from cat_engine.database import Base


@pytest.fixture()
def alice() -> CallerIdentity:
    return CallerIdentity(user_id="alice@example.org", roles=frozenset({"user"}))


@pytest.fixture()
def bob() -> CallerIdentity:
    return CallerIdentity(user_id="bob@example.org", roles=frozenset({"user"}))


@pytest.fixture()
def admin() -> CallerIdentity:
    return CallerIdentity(user_id="admin@example.org", roles=frozenset({"admin"}))


@pytest.fixture()
def assessment_doc() -> dict[str, Any]:
    return {
        "principles": [
            {
                "name": "P1",
                "criteria": [{"name": "C1", "metric": {"result": 1, "value": 1}}],
            }
        ],
        "result": {"compliance": True, "ranking": 0.5},
    }


# ---------------------------------------------------------------------------
# In-memory stores and services
# ---------------------------------------------------------------------------


@pytest.fixture()
def validation_repo() -> InMemoryValidationRepository:
    return InMemoryValidationRepository()


@pytest.fixture()
def assessment_repo() -> InMemoryAssessmentRepository:
    return InMemoryAssessmentRepository()


@pytest.fixture()
def user_repo() -> InMemoryUserRepository:
    return InMemoryUserRepository()


@pytest.fixture()
def audit_repo() -> InMemoryAuditTrailRepository:
    return InMemoryAuditTrailRepository()


@pytest.fixture()
def audit_service(audit_repo: InMemoryAuditTrailRepository) -> AuditService:
    return AuditService(audit_repo)


@pytest.fixture()
def validation_service(
    validation_repo: InMemoryValidationRepository,
    audit_service: AuditService,
) -> ValidationService:
    return ValidationService(validation_repo=validation_repo, audit_service=audit_service)


@pytest.fixture()
def assessment_service(
    assessment_repo: InMemoryAssessmentRepository,
    validation_repo: InMemoryValidationRepository,
    audit_service: AuditService,
) -> AssessmentService:
    return AssessmentService(
        assessment_repo=assessment_repo,
        validation_repo=validation_repo,
        audit_service=audit_service,
    )


@pytest.fixture()
def user_service(user_repo: InMemoryUserRepository, audit_service: AuditService) -> UserService:
    return UserService(user_repo=user_repo, audit_service=audit_service)


@pytest.fixture()
async def approved_validation(
    validation_service: ValidationService,
    alice: CallerIdentity,
    admin: CallerIdentity,
) -> ValidationResponse:
    """An APPROVED validation for alice over ROR organisation 00tjv0s33 as actor 6."""
    created = await validation_service.create_validation(
        alice,
        organisation_id="00tjv0s33",
        organisation_source="ROR",
        actor_id=6,
        organisation_role="Data steward",
        organisation_name="GRNET",
        organisation_website="https://grnet.gr",
    )
    return await validation_service.update_validation_status(admin, created.id, ValidationStatus.APPROVED)


# ---------------------------------------------------------------------------
# SQLite
# ---------------------------------------------------------------------------


@pytest.fixture()
async def db_engine():
    """Create an in-memory SQLite async engine with all tables."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture()
async def db_session(session_factory: async_sessionmaker[AsyncSession]):
    async with session_factory() as session:
        yield session
