"""SQLAlchemy ORM models for the lifecycle engine.

All tables use the `cat_` prefix.

Models:
- Validation        — a user's request to be promoted to an actor role for an organisation
- Assessment        — a versioned compliance-evaluation document tied to an approved role
- UserProfile       — registered identity with stored roles (deny_access lives here)
- AuditTrailEntry   — append-only record of every state change

Lifecycle constants (VALIDATION_TRANSITIONS, LIVE_VALIDATION_STATUSES) and
assessment_equivalence_key() are defined next to the models so services and
repositories share one source.
"""

import hashlib
import json
from datetime import datetime
from enum import StrEnum

from sqlalchemy import DateTime, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from cat_engine.database import Base, FlexJSON


class ValidationStatus(StrEnum):
    PENDING = "PENDING"
    REVIEW = "REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class AssessmentStatus(StrEnum):
    PRIVATE = "PRIVATE"
    PUBLISHED = "PUBLISHED"


class OrganisationSource(StrEnum):
    """Registry an organisation identifier comes from."""

    ROR = "ROR"
    EOSC = "EOSC"
    RE3DATA = "RE3DATA"


# A user may hold at most one request in these statuses per
# (user, organisation, source, actor) tuple.
LIVE_VALIDATION_STATUSES: frozenset[ValidationStatus] = frozenset(
    {ValidationStatus.PENDING, ValidationStatus.REVIEW, ValidationStatus.APPROVED}
)

VALIDATION_TRANSITIONS: dict[ValidationStatus, frozenset[ValidationStatus]] = {
    ValidationStatus.PENDING: frozenset(
        {ValidationStatus.REVIEW, ValidationStatus.APPROVED, ValidationStatus.REJECTED}
    ),
    ValidationStatus.REVIEW: frozenset({ValidationStatus.APPROVED, ValidationStatus.REJECTED}),
    ValidationStatus.APPROVED: frozenset(),  # terminal
    ValidationStatus.REJECTED: frozenset(),  # terminal
}

DENY_ACCESS_ROLE = "deny_access"


def assessment_equivalence_key(
    owner_id: str,
    organisation_id: str,
    organisation_source: str,
    subject_id: str,
    subject_type: str,
    assessment_type: str,
) -> str:
    """Return the SHA-256 hex digest identifying equivalent assessments."""
    parts = [owner_id, organisation_id, organisation_source, subject_id, subject_type, assessment_type]
    return hashlib.sha256(json.dumps(parts).encode()).hexdigest()


class Validation(Base):
    """A promotion request: user asks for an actor role over an organisation.

    Created in PENDING by the requesting user and moved by an administrator
    through VALIDATION_TRANSITIONS. APPROVED and REJECTED are terminal — a
    fresh request is needed to re-apply.

    The partial unique index enforces the live-request invariant at the
    database level so that two concurrent creations cannot both commit.

    Attributes:
        user_id: Requesting identity. Immutable.
        organisation_id: Opaque organisation identifier. Immutable.
        organisation_source: Registry the organisation id belongs to. Immutable.
        actor_id: Requested role. Immutable.
        organisation_role: Requester's role inside the organisation (descriptive).
        organisation_name: Organisation display name (descriptive).
        organisation_website: Organisation website (descriptive).
        status: PENDING | REVIEW | APPROVED | REJECTED.
        validated_by: Admin who performed the last status transition.
        validated_on: When the last status transition happened.
    """

    __tablename__ = "cat_validations"
    __table_args__ = (
        Index(
            "uq_cat_validations_live_request",
            "user_id",
            "organisation_id",
            "organisation_source",
            "actor_id",
            unique=True,
            postgresql_where=text("status IN ('PENDING', 'REVIEW', 'APPROVED')"),
            sqlite_where=text("status IN ('PENDING', 'REVIEW', 'APPROVED')"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    organisation_id: Mapped[str] = mapped_column(String(255), nullable=False)
    organisation_source: Mapped[str] = mapped_column(String(30), nullable=False)
    actor_id: Mapped[int] = mapped_column(Integer, nullable=False)
    organisation_role: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    organisation_name: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    organisation_website: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ValidationStatus.PENDING,
        index=True,
    )
    validated_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    validated_on: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_on: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    updated_on: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class Assessment(Base):
    """Compliance-evaluation document owned by the user who created it.

    Organisation and actor are copied from the APPROVED validation that
    authorised the creation. The document may be replaced any number of
    times while PRIVATE, each replacement bumping `version`. Publishing is
    one-way and freezes the record: a PUBLISHED assessment cannot be updated
    or deleted.

    Attributes:
        owner_id: Identity that created the assessment.
        validation_id: The approved validation that granted authoring rights.
        subject_id / subject_type / subject_name: What is being assessed.
        assessment_type: Framework the document follows.
        status: PRIVATE | PUBLISHED.
        document: Structured JSON content (principles, criteria, metrics).
        version: Starts at 1, incremented on each document update.
        equivalence_key: Digest of owner, organisation, subject and assessment
            type. Set only when duplicate assessments are disallowed, so the
            unique index rejects a concurrent equivalent insert.
    """

    __tablename__ = "cat_assessments"
    __table_args__ = (
        # NULL when duplicates are allowed; NULLs never collide.
        Index("uq_cat_assessments_equivalent", "equivalence_key", unique=True),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    validation_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    organisation_id: Mapped[str] = mapped_column(String(255), nullable=False)
    organisation_source: Mapped[str] = mapped_column(String(30), nullable=False)
    organisation_name: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    actor_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    subject_id: Mapped[str] = mapped_column(String(255), nullable=False)
    subject_type: Mapped[str] = mapped_column(String(255), nullable=False)
    subject_name: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    assessment_type: Mapped[str] = mapped_column(String(255), nullable=False)
    equivalence_key: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=AssessmentStatus.PRIVATE,
        index=True,
    )
    document: Mapped[dict] = mapped_column(FlexJSON, nullable=False, default=dict)  # type: ignore[type-arg]
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    updated_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    published_on: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_on: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    updated_on: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class UserProfile(Base):
    """An identity that has called the API at least once.

    Roles granted by the identity provider arrive with each request; roles
    stored here are the ones the service itself assigns (deny_access).

    Attributes:
        user_id: Stable unique identifier from the identity provider.
        roles: Stored role names.
        deny_reason: Why access was denied, when it was.
        denied_by: Admin who denied access.
        denied_on: When access was denied.
    """

    __tablename__ = "cat_user_profiles"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    roles: Mapped[list] = mapped_column(FlexJSON, nullable=False, default=list)  # type: ignore[type-arg]
    deny_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    denied_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    denied_on: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    registered_on: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    @property
    def is_denied(self) -> bool:
        return DENY_ACCESS_ROLE in (self.roles or [])


class AuditTrailEntry(Base):
    """Append-only audit trail entry.

    This table has NO update or delete path. If a correction is needed,
    write a new entry referencing the original one in `details`.

    Attributes:
        event_type: Dot-notation event type, e.g. validation.status.updated.
        actor_user_id: Identity that performed the action.
        resource_type: validation | assessment | user.
        resource_id: Identifier of the affected resource (string form).
        action: Short verb: created | updated | status_updated | published | deleted | access_denied.
        details: Event-specific payload.
        timestamp: Set at insert time, never modified.
    """

    __tablename__ = "cat_audit_trail_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    actor_user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    details: Mapped[dict] = mapped_column(FlexJSON, nullable=False, default=dict)  # type: ignore[type-arg]
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
