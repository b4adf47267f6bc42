"""Pydantic request and response schemas for the cat-engine API.

All API inputs and outputs use Pydantic models — never raw dicts.
Schemas are grouped by resource type.

Resources:
- Validation — promotion requests and their moderation
- Assessment — compliance assessment documents
- UserProfile — registered users and deny-access
- AuditTrailEntry — audit trail query
- InformativeResponse — message-only responses (errors, deletions)
"""

from datetime import datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

from cat_engine.core.models import OrganisationSource, ValidationStatus

T = TypeVar("T")


class InformativeResponse(BaseModel):
    """Message-only response body used for errors and acknowledgements."""

    code: int = Field(description="HTTP status code")
    message: str = Field(description="Human-readable message")


class PageResponse(BaseModel, Generic[T]):
    """One page of a listing."""

    content: list[T] = Field(description="Items on this page")
    page: int = Field(description="1-based page number that was applied")
    size: int = Field(description="Page size that was applied")
    number_of_items: int = Field(description="Number of items on this page")
    total_elements: int = Field(description="Total number of matching items")
    total_pages: int = Field(description="Total number of pages at this size")


# ---------------------------------------------------------------------------
# Validation schemas
# ---------------------------------------------------------------------------


class ValidationCreateRequest(BaseModel):
    """Request body for asking to be promoted to an actor for an organisation."""

    organisation_role: str = Field(
        description="The requester's role inside the organisation",
        min_length=1,
        max_length=255,
    )
    organisation_id: str = Field(
        description="Organisation identifier within its registry",
        min_length=1,
        max_length=255,
    )
    organisation_source: OrganisationSource = Field(
        description="Registry the organisation identifier belongs to: ROR | EOSC | RE3DATA",
    )
    organisation_name: str = Field(
        description="Organisation display name",
        min_length=1,
        max_length=512,
    )
    organisation_website: str | None = Field(
        default=None,
        description="Organisation website",
        max_length=2048,
    )
    actor_id: int = Field(description="The actor (role) being requested", ge=1)


class ValidationUpdateRequest(BaseModel):
    """Request body for an administrator editing the descriptive fields of a validation."""

    organisation_role: str = Field(min_length=1, max_length=255)
    organisation_name: str = Field(min_length=1, max_length=512)
    organisation_website: str | None = Field(default=None, max_length=2048)


class ValidationStatusUpdateRequest(BaseModel):
    """Request body for moving a validation to a new status."""

    status: ValidationStatus = Field(description="Target status: REVIEW | APPROVED | REJECTED")


class ValidationResponse(BaseModel):
    """Response schema for a validation request."""

    id: int = Field(description="Validation identifier")
    user_id: str = Field(description="Requesting user")
    organisation_role: str = Field(description="Requester's role inside the organisation")
    organisation_id: str = Field(description="Organisation identifier")
    organisation_source: str = Field(description="Organisation registry")
    organisation_name: str = Field(description="Organisation display name")
    organisation_website: str | None = Field(description="Organisation website")
    actor_id: int = Field(description="Requested actor")
    status: str = Field(description="PENDING | REVIEW | APPROVED | REJECTED")
    created_on: datetime = Field(description="Creation timestamp (UTC)")
    updated_on: datetime = Field(description="Last update timestamp (UTC)")
    validated_by: str | None = Field(description="Admin who performed the last status transition")
    validated_on: datetime | None = Field(description="When the last status transition happened")


# ---------------------------------------------------------------------------
# Assessment schemas
# ---------------------------------------------------------------------------


class SubjectSchema(BaseModel):
    """What is being assessed."""

    id: str = Field(min_length=1, max_length=255)
    type: str = Field(min_length=1, max_length=255)
    name: str = Field(default="", max_length=512)


class OrganisationSchema(BaseModel):
    id: str
    source: str
    name: str


class AssessmentCreateRequest(BaseModel):
    """Request body for creating an assessment under an approved validation."""

    validation_id: int = Field(description="The approved validation granting authoring rights", ge=1)
    name: str = Field(min_length=1, max_length=255)
    subject: SubjectSchema
    assessment_type: str = Field(min_length=1, max_length=255)
    assessment_doc: dict[str, Any] = Field(
        description="Structured assessment content (principles, criteria, metrics)",
    )


class AssessmentUpdateRequest(BaseModel):
    """Request body replacing the document of a private assessment."""

    assessment_doc: dict[str, Any] = Field(description="The new assessment content")


class AssessmentResponse(BaseModel):
    """Response schema for an assessment."""

    id: str = Field(description="Assessment identifier")
    validation_id: int = Field(description="Validation that granted authoring rights")
    owner_id: str = Field(description="Creator of the assessment")
    name: str
    status: str = Field(description="PRIVATE | PUBLISHED")
    published: bool
    version: int = Field(description="Incremented on each document update")
    organisation: OrganisationSchema
    actor_id: int
    subject: SubjectSchema
    assessment_type: str
    assessment_doc: dict[str, Any]
    created_on: datetime
    updated_on: datetime
    updated_by: str | None
    published_on: datetime | None


# ---------------------------------------------------------------------------
# User schemas
# ---------------------------------------------------------------------------


class UserProfileResponse(BaseModel):
    user_id: str
    roles: list[str]
    denied: bool = Field(description="Whether the user is denied access to the API")
    deny_reason: str | None
    denied_by: str | None
    denied_on: datetime | None
    registered_on: datetime


class DenyAccessRequest(BaseModel):
    """Request body restricting a user's access to the API."""

    user_id: str = Field(min_length=1, max_length=255)
    reason: str = Field(min_length=1, max_length=2000)


# ---------------------------------------------------------------------------
# Audit trail schemas
# ---------------------------------------------------------------------------


class AuditTrailEntryResponse(BaseModel):
    id: int
    event_type: str
    actor_user_id: str
    resource_type: str
    resource_id: str
    action: str
    details: dict[str, Any]
    timestamp: datetime
