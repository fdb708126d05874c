import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from rentguard.db.base import Base
from rentguard.models.types import EncryptedJSON


ACTOR_TYPES = ("landlord", "tenant", "aval", "joint_obligor")
SECTION_NAMES = (
    "personal_info",
    "employment",
    "references",
    "documents",
    "property_guarantee",
    "financial_info",
)


class Actor(Base):
    __tablename__ = "policy_actors"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint(
            "actor_type IN ('landlord', 'tenant', 'aval', 'joint_obligor')",
            name="ck_policy_actor_type",
        ),
        CheckConstraint(
            "is_primary = false OR actor_type = 'landlord'",
            name="ck_policy_actor_primary_landlord_only",
        ),
        Index("ix_policy_actors_policy_type", "policy_id", "actor_type"),
        Index(
            "uq_policy_actors_primary_landlord",
            "policy_id",
            unique=True,
            postgresql_where=text("is_primary"),
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    policy_id = Column(
        UUID(as_uuid=True), ForeignKey("policies.id", ondelete="CASCADE"), nullable=False, index=True
    )
    actor_type = Column(String(20), nullable=False)
    is_company = Column(Boolean, nullable=False, default=False)
    is_primary = Column(Boolean, nullable=False, default=False)
    display_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(32), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    policy = relationship("Policy", back_populates="actors")


class ActorSection(Base):
    __tablename__ = "actor_sections"
    __table_args__ = (
        UniqueConstraint("actor_id", "section_name", name="uq_actor_sections_actor_section"),
        CheckConstraint(
            "section_name IN ('personal_info', 'employment', 'references', 'documents', "
            "'property_guarantee', 'financial_info')",
            name="ck_actor_section_name",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    actor_id = Column(
        UUID(as_uuid=True), ForeignKey("policy_actors.id", ondelete="CASCADE"), nullable=False, index=True
    )
    section_name = Column(String(40), nullable=False)
    data = Column(EncryptedJSON(), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )
