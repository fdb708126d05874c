import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from rentguard.db.base import Base


VALIDATION_STATUSES = ("PENDING", "IN_REVIEW", "APPROVED", "REJECTED")


class SectionValidation(Base):
    __tablename__ = "section_validations"
    __table_args__ = (
        UniqueConstraint("actor_id", "section_name", name="uq_section_validations_actor_section"),
        CheckConstraint(
            "status IN ('PENDING', 'IN_REVIEW', 'APPROVED', 'REJECTED')",
            name="ck_section_validation_status",
        ),
        CheckConstraint(
            "status <> 'REJECTED' OR length(trim(coalesce(rejection_reason, ''))) > 0",
            name="ck_section_validation_rejection_reason",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    policy_id = Column(
        UUID(as_uuid=True), ForeignKey("policies.id", ondelete="CASCADE"), nullable=False, index=True
    )
    actor_id = Column(
        UUID(as_uuid=True), ForeignKey("policy_actors.id", ondelete="CASCADE"), nullable=False
    )
    section_name = Column(String(40), nullable=False)
    status = Column(String(20), nullable=False, default="PENDING")
    rejection_reason = Column(Text, nullable=True)
    validated_at = Column(DateTime(timezone=True), nullable=True)
    validator_id = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class DocumentValidation(Base):
    __tablename__ = "document_validations"
    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'IN_REVIEW', 'APPROVED', 'REJECTED')",
            name="ck_document_validation_status",
        ),
        CheckConstraint(
            "status <> 'REJECTED' OR length(trim(coalesce(rejection_reason, ''))) > 0",
            name="ck_document_validation_rejection_reason",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    policy_id = Column(
        UUID(as_uuid=True), ForeignKey("policies.id", ondelete="CASCADE"), nullable=False, index=True
    )
    document_id = Column(
        UUID(as_uuid=True),
        ForeignKey("policy_documents.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    status = Column(String(20), nullable=False, default="PENDING")
    rejection_reason = Column(Text, nullable=True)
    validated_at = Column(DateTime(timezone=True), nullable=True)
    validator_id = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class ReviewNote(Base):
    __tablename__ = "review_notes"
    __table_args__ = (
        CheckConstraint("length(note) BETWEEN 1 AND 5000", name="ck_review_note_length"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    policy_id = Column(
        UUID(as_uuid=True), ForeignKey("policies.id", ondelete="CASCADE"), nullable=False, index=True
    )
    actor_id = Column(
        UUID(as_uuid=True), ForeignKey("policy_actors.id", ondelete="CASCADE"), nullable=True
    )
    document_id = Column(
        UUID(as_uuid=True), ForeignKey("policy_documents.id", ondelete="CASCADE"), nullable=True
    )
    note = Column(Text, nullable=False)
    created_by = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
