import uuid

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from rentguard.db.base import Base


DOCUMENT_CATEGORIES = (
    "identification",
    "income_proof",
    "address_proof",
    "bank_statement",
    "immigration_document",
    "company_constitution",
    "legal_powers",
    "tax_status_certificate",
    "property_deed",
    "property_tax_statement",
    "property_registry",
    "other",
)


class Document(Base):
    __tablename__ = "policy_documents"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint(
            "category IN ('identification', 'income_proof', 'address_proof', 'bank_statement', "
            "'immigration_document', 'company_constitution', 'legal_powers', "
            "'tax_status_certificate', 'property_deed', 'property_tax_statement', "
            "'property_registry', 'other')",
            name="ck_policy_document_category",
        ),
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED')",
            name="ck_policy_document_status",
        ),
        CheckConstraint("file_size > 0", name="ck_policy_document_size_positive"),
        Index("ix_policy_documents_actor_category", "actor_id", "category"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    policy_id = Column(
        UUID(as_uuid=True), ForeignKey("policies.id", ondelete="CASCADE"), nullable=False, index=True
    )
    actor_id = Column(
        UUID(as_uuid=True), ForeignKey("policy_actors.id", ondelete="CASCADE"), nullable=False
    )
    category = Column(String(40), nullable=False)
    status = Column(String(20), nullable=False, default="PENDING")
    original_name = Column(String(255), nullable=False)
    mime_type = Column(String(100), nullable=False)
    file_size = Column(BigInteger, nullable=False)
    storage_provider = Column(String(32), nullable=False, default="local")
    storage_key = Column(String(1024), nullable=False)
    uploaded_by = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    policy = relationship("Policy", back_populates="documents")
