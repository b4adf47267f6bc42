"""Initial schema: validations, assessments, user profiles and audit trail.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

FlexJSON = JSONB().with_variant(sa.JSON(), "sqlite")

LIVE_STATUSES = sa.text("status IN ('PENDING', 'REVIEW', 'APPROVED')")


def upgrade() -> None:
    op.create_table(
        "cat_validations",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("organisation_id", sa.String(255), nullable=False),
        sa.Column("organisation_source", sa.String(30), nullable=False),
        sa.Column("actor_id", sa.Integer, nullable=False),
        sa.Column("organisation_role", sa.String(255), nullable=False),
        sa.Column("organisation_name", sa.String(512), nullable=False),
        sa.Column("organisation_website", sa.String(2048), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("validated_by", sa.String(255), nullable=True),
        sa.Column("validated_on", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_on", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_on", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_cat_validations_user_id", "cat_validations", ["user_id"])
    op.create_index("ix_cat_validations_status", "cat_validations", ["status"])
    op.create_index("ix_cat_validations_created_on", "cat_validations", ["created_on"])
    # At most one live request per (user, organisation, source, actor)
    op.create_index(
        "uq_cat_validations_live_request",
        "cat_validations",
        ["user_id", "organisation_id", "organisation_source", "actor_id"],
        unique=True,
        postgresql_where=LIVE_STATUSES,
        sqlite_where=LIVE_STATUSES,
    )

    op.create_table(
        "cat_assessments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("owner_id", sa.String(255), nullable=False),
        sa.Column("validation_id", sa.Integer, nullable=False),
        sa.Column("organisation_id", sa.String(255), nullable=False),
        sa.Column("organisation_source", sa.String(30), nullable=False),
        sa.Column("organisation_name", sa.String(512), nullable=False),
        sa.Column("actor_id", sa.Integer, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("subject_id", sa.String(255), nullable=False),
        sa.Column("subject_type", sa.String(255), nullable=False),
        sa.Column("subject_name", sa.String(512), nullable=False),
        sa.Column("assessment_type", sa.String(255), nullable=False),
        sa.Column("equivalence_key", sa.String(64), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("document", FlexJSON, nullable=False),
        sa.Column("version", sa.Integer, nullable=False),
        sa.Column("updated_by", sa.String(255), nullable=True),
        sa.Column("published_on", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_on", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_on", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_cat_assessments_owner_id", "cat_assessments", ["owner_id"])
    op.create_index("ix_cat_assessments_validation_id", "cat_assessments", ["validation_id"])
    op.create_index("ix_cat_assessments_status", "cat_assessments", ["status"])
    op.create_index("ix_cat_assessments_created_on", "cat_assessments", ["created_on"])
    op.create_index("uq_cat_assessments_equivalent", "cat_assessments", ["equivalence_key"], unique=True)

    op.create_table(
        "cat_user_profiles",
        sa.Column("user_id", sa.String(255), primary_key=True),
        sa.Column("roles", FlexJSON, nullable=False),
        sa.Column("deny_reason", sa.Text, nullable=True),
        sa.Column("denied_by", sa.String(255), nullable=True),
        sa.Column("denied_on", sa.DateTime(timezone=True), nullable=True),
        sa.Column("registered_on", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_cat_user_profiles_registered_on", "cat_user_profiles", ["registered_on"])

    # -- Audit trail (append-only) --
    op.create_table(
        "cat_audit_trail_entries",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("actor_user_id", sa.String(255), nullable=False),
        sa.Column("resource_type", sa.String(50), nullable=False),
        sa.Column("resource_id", sa.String(255), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("details", FlexJSON, nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
    )
    for column in ("event_type", "actor_user_id", "resource_type", "resource_id", "timestamp"):
        op.create_index(f"ix_cat_audit_trail_entries_{column}", "cat_audit_trail_entries", [column])


def downgrade() -> None:
    op.drop_table("cat_audit_trail_entries")
    op.drop_table("cat_user_profiles")
    op.drop_table("cat_assessments")
    op.drop_table("cat_validations")
