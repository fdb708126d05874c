"""Create policy, actor, document, review and activity tables"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            server_onupdate=sa.func.now(),
        ),
    ]


def _policy_fk() -> sa.Column:
    return sa.Column(
        "policy_id",
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey("policies.id", ondelete="CASCADE"),
        nullable=False,
    )


def _validation_columns() -> list[sa.Column]:
    return [
        sa.Column("status", sa.String(length=20), nullable=False, server_default="PENDING"),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("validated_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("validator_id", sa.String(length=255), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "policies",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("policy_number", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="DRAFT"),
        sa.Column("current_step", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("access_token", sa.String(length=128), nullable=True),
        sa.Column("token_expiry", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("payment_status", sa.String(length=20), nullable=False, server_default="PENDING"),
        sa.Column("rent_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("premium_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("tenant_share_percent", sa.Numeric(5, 2), nullable=False, server_default="100"),
        sa.Column("tenant_email", sa.String(length=255), nullable=False),
        sa.Column("tenant_phone", sa.String(length=32), nullable=True),
        sa.Column("property_address", sa.String(length=500), nullable=True),
        sa.Column("property_reference", sa.String(length=100), nullable=True),
        sa.Column("initiated_by", sa.String(length=255), nullable=True),
        sa.Column("submitted_at", sa.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("policy_number", name="uq_policies_policy_number"),
        sa.UniqueConstraint("access_token", name="uq_policies_access_token"),
        sa.CheckConstraint(
            "status IN ('DRAFT', 'SENT', 'PENDING_INTAKE', 'INTAKE_IN_PROGRESS', 'SUBMITTED', "
            "'UNDER_REVIEW', 'CONTRACT_PENDING', 'REJECTED', 'EXPIRED', 'CANCELLED')",
            name="ck_policy_status",
        ),
        sa.CheckConstraint(
            "payment_status IN ('PENDING', 'PROCESSING', 'COMPLETED', 'FAILED', 'REFUNDED')",
            name="ck_policy_payment_status",
        ),
        sa.CheckConstraint("current_step >= 1 AND current_step <= 8", name="ck_policy_current_step"),
        sa.CheckConstraint("rent_amount IS NULL OR rent_amount >= 0", name="ck_policy_rent_nonneg"),
        sa.CheckConstraint(
            "premium_amount IS NULL OR premium_amount >= 0", name="ck_policy_premium_nonneg"
        ),
        sa.CheckConstraint(
            "tenant_share_percent >= 0 AND tenant_share_percent <= 100",
            name="ck_policy_tenant_share_range",
        ),
    )
    op.create_index("ix_policies_status", "policies", ["status"])
    op.create_index("ix_policies_access_token", "policies", ["access_token"])
    op.create_index("ix_policies_tenant_email", "policies", ["tenant_email"])

    op.create_table(
        "policy_actors",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _policy_fk(),
        sa.Column("actor_type", sa.String(length=20), nullable=False),
        sa.Column("is_company", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("display_name", sa.String(length=255), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=32), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "actor_type IN ('landlord', 'tenant', 'aval', 'joint_obligor')",
            name="ck_policy_actor_type",
        ),
        sa.CheckConstraint(
            "is_primary = false OR actor_type = 'landlord'",
            name="ck_policy_actor_primary_landlord_only",
        ),
    )
    op.create_index("ix_policy_actors_policy_id", "policy_actors", ["policy_id"])
    op.create_index("ix_policy_actors_policy_type", "policy_actors", ["policy_id", "actor_type"])
    op.create_index(
        "uq_policy_actors_primary_landlord",
        "policy_actors",
        ["policy_id"],
        unique=True,
        postgresql_where=sa.text("is_primary"),
    )

    op.create_table(
        "actor_sections",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "actor_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("policy_actors.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("section_name", sa.String(length=40), nullable=False),
        sa.Column("data", sa.LargeBinary(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("actor_id", "section_name", name="uq_actor_sections_actor_section"),
        sa.CheckConstraint(
            "section_name IN ('personal_info', 'employment', 'references', 'documents', "
            "'property_guarantee', 'financial_info')",
            name="ck_actor_section_name",
        ),
    )
    op.create_index("ix_actor_sections_actor_id", "actor_sections", ["actor_id"])

    op.create_table(
        "policy_documents",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _policy_fk(),
        sa.Column(
            "actor_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("policy_actors.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("category", sa.String(length=40), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="PENDING"),
        sa.Column("original_name", sa.String(length=255), nullable=False),
        sa.Column("mime_type", sa.String(length=100), nullable=False),
        sa.Column("file_size", sa.BigInteger(), nullable=False),
        sa.Column("storage_provider", sa.String(length=32), nullable=False, server_default="local"),
        sa.Column("storage_key", sa.String(length=1024), nullable=False),
        sa.Column("uploaded_by", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "category IN ('identification', 'income_proof', 'address_proof', 'bank_statement', "
            "'immigration_document', 'company_constitution', 'legal_powers', "
            "'tax_status_certificate', 'property_deed', 'property_tax_statement', "
            "'property_registry', 'other')",
            name="ck_policy_document_category",
        ),
        sa.CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED')", name="ck_policy_document_status"
        ),
        sa.CheckConstraint("file_size > 0", name="ck_policy_document_size_positive"),
    )
    op.create_index("ix_policy_documents_policy_id", "policy_documents", ["policy_id"])
    op.create_index(
        "ix_policy_documents_actor_category", "policy_documents", ["actor_id", "category"]
    )

    op.create_table(
        "section_validations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _policy_fk(),
        sa.Column(
            "actor_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("policy_actors.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("section_name", sa.String(length=40), nullable=False),
        *_validation_columns(),
        *_timestamps(),
        sa.UniqueConstraint("actor_id", "section_name", name="uq_section_validations_actor_section"),
        sa.CheckConstraint(
            "status IN ('PENDING', 'IN_REVIEW', 'APPROVED', 'REJECTED')",
            name="ck_section_validation_status",
        ),
        sa.CheckConstraint(
            "status <> 'REJECTED' OR length(trim(coalesce(rejection_reason, ''))) > 0",
            name="ck_section_validation_rejection_reason",
        ),
    )
    op.create_index("ix_section_validations_policy_id", "section_validations", ["policy_id"])

    op.create_table(
        "document_validations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _policy_fk(),
        sa.Column(
            "document_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("policy_documents.id", ondelete="CASCADE"),
            nullable=False,
        ),
        *_validation_columns(),
        *_timestamps(),
        sa.UniqueConstraint("document_id", name="uq_document_validations_document_id"),
        sa.CheckConstraint(
            "status IN ('PENDING', 'IN_REVIEW', 'APPROVED', 'REJECTED')",
            name="ck_document_validation_status",
        ),
        sa.CheckConstraint(
            "status <> 'REJECTED' OR length(trim(coalesce(rejection_reason, ''))) > 0",
            name="ck_document_validation_rejection_reason",
        ),
    )
    op.create_index("ix_document_validations_policy_id", "document_validations", ["policy_id"])

    op.create_table(
        "review_notes",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _policy_fk(),
        sa.Column(
            "actor_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("policy_actors.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "document_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("policy_documents.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("note", sa.Text(), nullable=False),
        sa.Column("created_by", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("length(note) BETWEEN 1 AND 5000", name="ck_review_note_length"),
    )
    op.create_index("ix_review_notes_policy_id", "review_notes", ["policy_id"])

    op.create_table(
        "activity_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _policy_fk(),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("actor_ref", sa.String(length=255), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("source_ip", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_activity_logs_policy_created", "activity_logs", ["policy_id", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_activity_logs_policy_created", table_name="activity_logs")
    op.drop_table("activity_logs")
    op.drop_index("ix_review_notes_policy_id", table_name="review_notes")
    op.drop_table("review_notes")
    op.drop_index("ix_document_validations_policy_id", table_name="document_validations")
    op.drop_table("document_validations")
    op.drop_index("ix_section_validations_policy_id", table_name="section_validations")
    op.drop_table("section_validations")
    op.drop_index("ix_policy_documents_actor_category", table_name="policy_documents")
    op.drop_index("ix_policy_documents_policy_id", table_name="policy_documents")
    op.drop_table("policy_documents")
    op.drop_index("ix_actor_sections_actor_id", table_name="actor_sections")
    op.drop_table("actor_sections")
    op.drop_index("uq_policy_actors_primary_landlord", table_name="policy_actors")
    op.drop_index("ix_policy_actors_policy_type", table_name="policy_actors")
    op.drop_index("ix_policy_actors_policy_id", table_name="policy_actors")
    op.drop_table("policy_actors")
    op.drop_index("ix_policies_tenant_email", table_name="policies")
    op.drop_index("ix_policies_access_token", table_name="policies")
    op.drop_index("ix_policies_status", table_name="policies")
    op.drop_table("policies")
