import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from rentguard.db.base import Base


POLICY_STATUSES = (
    "DRAFT",
    "SENT",
    "PENDING_INTAKE",
    "INTAKE_IN_PROGRESS",
    "SUBMITTED",
    "UNDER_REVIEW",
    "CONTRACT_PENDING",
    "REJECTED",
    "EXPIRED",
    "CANCELLED",
)

PAYMENT_STATUSES = ("PENDING", "PROCESSING", "COMPLETED", "FAILED", "REFUNDED")


class Policy(Base):
    __tablename__ = "policies"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint(
            "status IN ('DRAFT', 'SENT', 'PENDING_INTAKE', 'INTAKE_IN_PROGRESS', 'SUBMITTED', "
            "'UNDER_REVIEW', 'CONTRACT_PENDING', 'REJECTED', 'EXPIRED', 'CANCELLED')",
            name="ck_policy_status",
        ),
        CheckConstraint(
            "payment_status IN ('PENDING', 'PROCESSING', 'COMPLETED', 'FAILED', 'REFUNDED')",
            name="ck_policy_payment_status",
        ),
        CheckConstraint("current_step >= 1 AND current_step <= 8", name="ck_policy_current_step"),
        CheckConstraint("rent_amount IS NULL OR rent_amount >= 0", name="ck_policy_rent_nonneg"),
        CheckConstraint(
            "premium_amount IS NULL OR premium_amount >= 0", name="ck_policy_premium_nonneg"
        ),
        CheckConstraint(
            "tenant_share_percent >= 0 AND tenant_share_percent <= 100",
            name="ck_policy_tenant_share_range",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    policy_number = Column(String(32), nullable=False, unique=True)
    status = Column(String(30), nullable=False, default="DRAFT", index=True)
    current_step = Column(Integer, nullable=False, default=1)
    access_token = Column(String(128), nullable=True, unique=True, index=True)
    token_expiry = Column(DateTime(timezone=True), nullable=True)
    payment_status = Column(String(20), nullable=False, default="PENDING")
    rent_amount = Column(Numeric(14, 2), nullable=True)
    premium_amount = Column(Numeric(14, 2), nullable=True)
    tenant_share_percent = Column(Numeric(5, 2), nullable=False, default=100)
    tenant_email = Column(String(255), nullable=False, index=True)
    tenant_phone = Column(String(32), nullable=True)
    property_address = Column(String(500), nullable=True)
    property_reference = Column(String(100), nullable=True)
    initiated_by = Column(String(255), nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    actors = relationship("Actor", back_populates="policy", cascade="all, delete-orphan")
    documents = relationship("Document", back_populates="policy", cascade="all, delete-orphan")
