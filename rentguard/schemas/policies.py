from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Literal, Union
from uuid import UUID

from pydantic import EmailStr, Field

from rentguard.schemas.common import PHONE_PATTERN, CamelModel, ContactInfo
from rentguard.schemas.enums import ActorType, LegalForm, PaymentStatus, PolicyStatus


class PolicyInitiateRequest(CamelModel):
    tenant_email: EmailStr
    tenant_phone: str | None = Field(default=None, pattern=PHONE_PATTERN)
    tenant_name: str | None = Field(default=None, min_length=1, max_length=255)
    tenant_type: LegalForm = LegalForm.INDIVIDUAL
    property_address: str | None = Field(default=None, max_length=500)
    property_id: str | None = Field(default=None, max_length=100)
    rent_amount: Decimal | None = Field(default=None, ge=0)
    premium_amount: Decimal | None = Field(default=None, ge=0)
    tenant_share_percent: Decimal = Field(default=Decimal("100"), ge=0, le=100)


class InitiatedPolicy(CamelModel):
    id: UUID
    tenant_email: str
    status: str
    access_token: str
    token_expiry: datetime
    email_sent: bool


class PolicyInitiateResponse(CamelModel):
    success: bool = True
    policy: InitiatedPolicy
    message: str


class InvitationResponse(CamelModel):
    success: bool = True
    policy: InitiatedPolicy
    message: str


class IndividualIdentity(CamelModel):
    kind: Literal["individual"] = "individual"
    first_name: str = Field(min_length=1, max_length=100)
    paternal_last_name: str = Field(min_length=1, max_length=100)
    maternal_last_name: str | None = Field(default=None, max_length=100)


class CompanyIdentity(CamelModel):
    kind: Literal["company"] = "company"
    company_name: str = Field(min_length=1, max_length=255)


ActorIdentity = Annotated[Union[IndividualIdentity, CompanyIdentity], Field(discriminator="kind")]


class ActorCreateRequest(CamelModel):
    actor_type: ActorType
    identity: ActorIdentity
    contact: ContactInfo = Field(default_factory=ContactInfo)
    is_primary: bool = False

    @property
    def is_company(self) -> bool:
        return isinstance(self.identity, CompanyIdentity)

    @property
    def display_name(self) -> str:
        identity = self.identity
        if isinstance(identity, CompanyIdentity):
            return identity.company_name
        parts = [identity.first_name, identity.paternal_last_name, identity.maternal_last_name]
        return " ".join(part for part in parts if part)


class ActorDTO(CamelModel):
    id: UUID
    actor_type: str
    is_company: bool
    is_primary: bool
    display_name: str | None = None
    email: str | None = None
    phone: str | None = None
    created_at: datetime | None = None


class DocumentDTO(CamelModel):
    id: UUID
    actor_id: UUID
    category: str
    status: str
    original_name: str
    mime_type: str
    file_size: int
    created_at: datetime | None = None


class ActorDetail(ActorDTO):
    sections: dict[str, dict[str, Any]] = Field(default_factory=dict)
    documents: list[DocumentDTO] = Field(default_factory=list)


class PolicySummary(CamelModel):
    id: UUID
    policy_number: str
    status: str
    current_step: int
    payment_status: str
    tenant_email: str
    property_address: str | None = None
    token_expiry: datetime | None = None
    submitted_at: datetime | None = None
    created_at: datetime | None = None


class PolicyListResponse(CamelModel):
    items: list[PolicySummary]
    total: int


class PolicyDetail(PolicySummary):
    tenant_phone: str | None = None
    property_reference: str | None = None
    rent_amount: Decimal | None = None
    premium_amount: Decimal | None = None
    tenant_share_percent: Decimal | None = None
    initiated_by: str | None = None
    actors: list[ActorDetail] = Field(default_factory=list)


class TenantSnapshot(CamelModel):
    id: UUID
    policy_number: str
    status: str
    current_step: int
    payment_status: str
    token_expiry: datetime | None = None
    tenant: ActorDTO
    sections: dict[str, dict[str, Any]] = Field(default_factory=dict)
    documents: list[DocumentDTO] = Field(default_factory=list)


class TenantSnapshotResponse(CamelModel):
    success: bool = True
    policy: TenantSnapshot


class StepUpdateResponse(CamelModel):
    success: bool = True
    current_step: int
    status: str


class SubmitResponse(CamelModel):
    success: bool = True
    message: str
    policy_id: UUID
    submitted_at: datetime


class StatusTransitionRequest(CamelModel):
    status: PolicyStatus
    reason: str | None = Field(default=None, max_length=1000)


class PaymentStatusRequest(CamelModel):
    payment_status: PaymentStatus
    reference: str | None = Field(default=None, max_length=255)


class CompletenessResponse(CamelModel):
    valid: bool
    missing: list[str]
    missing_by_actor: dict[str, list[str]]


class SuccessResponse(CamelModel):
    success: bool = True
