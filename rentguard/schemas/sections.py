"""Payload schemas for actor sections.

Each section is stored whole, exactly as ``dump_section`` renders the
validated model, so optional fields default to ``None`` and are dropped.
"""

from enum import Enum
from typing import Any

from pydantic import Field, ValidationInfo, field_validator

from rentguard.schemas.common import PHONE_PATTERN, Address, CamelModel, ContactInfo
from rentguard.schemas.enums import GuaranteeMethod, Nationality, SectionName

CURP_PATTERN = r"^[A-Z]{4}[0-9]{6}[HM][A-Z]{5}[0-9A-Z]{2}$"
RFC_PATTERN = r"^[A-ZÑ&]{3,4}[0-9]{6}[A-Z0-9]{3}$"
COMPANY_RFC_PATTERN = r"^[A-ZÑ&]{3}[0-9]{6}[A-Z0-9]{3}$"
CLABE_PATTERN = r"^[0-9]{18}$"


def _upper(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().upper()
    return value


class EmploymentStatus(str, Enum):
    EMPLOYED = "employed"
    SELF_EMPLOYED = "self_employed"
    BUSINESS_OWNER = "business_owner"
    RETIRED = "retired"
    STUDENT = "student"
    UNEMPLOYED = "unemployed"


class IndividualProfile(CamelModel):
    nationality: Nationality
    curp: str | None = Field(default=None, pattern=CURP_PATTERN, validate_default=True)
    passport: str | None = Field(default=None, min_length=5, max_length=20, validate_default=True)
    rfc: str | None = Field(default=None, pattern=RFC_PATTERN)
    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    middle_name: str | None = Field(default=None, max_length=100)
    paternal_last_name: str | None = Field(default=None, min_length=1, max_length=100)
    maternal_last_name: str | None = Field(default=None, max_length=100)
    contact: ContactInfo | None = None
    address: Address | None = None

    @field_validator("nationality", "curp", "rfc", mode="before")
    @classmethod
    def _normalize_case(cls, value: Any) -> Any:
        return _upper(value)

    @field_validator("curp")
    @classmethod
    def _curp_for_nationals(cls, value: str | None, info: ValidationInfo) -> str | None:
        if value is None and info.data.get("nationality") == Nationality.MEXICAN:
            raise ValueError("CURP is required for Mexican nationals")
        return value

    @field_validator("passport")
    @classmethod
    def _passport_for_foreigners(cls, value: str | None, info: ValidationInfo) -> str | None:
        if value is None and info.data.get("nationality") == Nationality.FOREIGN:
            raise ValueError("Passport is required for foreign nationals")
        return value


class CompanyProfile(CamelModel):
    company_name: str = Field(min_length=1, max_length=200)
    company_rfc: str = Field(pattern=COMPANY_RFC_PATTERN)
    company_tax_regime: str | None = Field(default=None, max_length=120)
    company_tax_address: str = Field(min_length=5, max_length=500)
    legal_rep_full_name: str = Field(min_length=1, max_length=200)
    legal_rep_nationality: Nationality
    legal_rep_curp: str | None = Field(default=None, pattern=CURP_PATTERN, validate_default=True)
    legal_rep_passport: str | None = Field(
        default=None, min_length=5, max_length=20, validate_default=True
    )
    contact: ContactInfo | None = None

    @field_validator("company_rfc", "legal_rep_nationality", "legal_rep_curp", mode="before")
    @classmethod
    def _normalize_case(cls, value: Any) -> Any:
        return _upper(value)

    @field_validator("legal_rep_curp")
    @classmethod
    def _curp_for_nationals(cls, value: str | None, info: ValidationInfo) -> str | None:
        if value is None and info.data.get("legal_rep_nationality") == Nationality.MEXICAN:
            raise ValueError("CURP is required for a Mexican legal representative")
        return value

    @field_validator("legal_rep_passport")
    @classmethod
    def _passport_for_foreigners(cls, value: str | None, info: ValidationInfo) -> str | None:
        if value is None and info.data.get("legal_rep_nationality") == Nationality.FOREIGN:
            raise ValueError("Passport is required for a foreign legal representative")
        return value


class EmploymentDetails(CamelModel):
    employment_status: EmploymentStatus
    industry: str = Field(min_length=1, max_length=120)
    occupation: str = Field(min_length=1, max_length=120)
    company_name: str = Field(min_length=1, max_length=200)
    position: str = Field(min_length=1, max_length=120)
    company_website: str | None = Field(default=None, max_length=255)
    work_address: str | None = Field(default=None, max_length=500)
    income_source: str = Field(min_length=1, max_length=120)
    monthly_income: float = Field(gt=0)
    credit_check_consent: bool

    @field_validator("credit_check_consent")
    @classmethod
    def _consent_given(cls, value: bool) -> bool:
        if not value:
            raise ValueError("Credit check consent is required")
        return value


class References(CamelModel):
    personal_reference_name: str = Field(min_length=1, max_length=200)
    personal_reference_phone: str = Field(pattern=PHONE_PATTERN)
    work_reference_name: str | None = Field(default=None, min_length=1, max_length=200)
    work_reference_phone: str | None = Field(default=None, pattern=PHONE_PATTERN)
    landlord_reference_name: str | None = Field(default=None, min_length=1, max_length=200)
    landlord_reference_phone: str | None = Field(default=None, pattern=PHONE_PATTERN)


class DocumentsSummary(CamelModel):
    identification_count: int = Field(ge=0)
    income_count: int = Field(ge=0)
    optional_count: int = Field(ge=0)
    income_docs_have_password: str = Field(pattern=r"^(yes|no)$")


class PropertyGuarantee(CamelModel):
    guarantee_method: GuaranteeMethod
    guarantor_name: str | None = Field(default=None, min_length=1, max_length=200)
    guarantor_phone: str | None = Field(default=None, pattern=PHONE_PATTERN)
    guarantor_relationship: str | None = Field(default=None, max_length=100)
    property_address: str | None = Field(
        default=None, min_length=5, max_length=500, validate_default=True
    )
    property_deed_number: str | None = Field(
        default=None, min_length=1, max_length=60, validate_default=True
    )
    property_registry_folio: str | None = Field(
        default=None, min_length=1, max_length=60, validate_default=True
    )
    property_value: float | None = Field(default=None, gt=0, validate_default=True)

    @field_validator(
        "property_address",
        "property_deed_number",
        "property_registry_folio",
        "property_value",
    )
    @classmethod
    def _required_for_property(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None and info.data.get("guarantee_method") == GuaranteeMethod.PROPERTY:
            raise ValueError("Required when the guarantee method is property")
        return value


class BankingInfo(CamelModel):
    bank_name: str = Field(min_length=1, max_length=120)
    account_holder: str = Field(min_length=1, max_length=200)
    clabe: str = Field(pattern=CLABE_PATTERN)
    account_number: str | None = Field(default=None, pattern=r"^[0-9]{6,20}$")


def section_schema(section: SectionName, *, is_company: bool) -> type[CamelModel]:
    if section == SectionName.PERSONAL_INFO:
        return CompanyProfile if is_company else IndividualProfile
    if section == SectionName.EMPLOYMENT:
        return EmploymentDetails
    if section == SectionName.REFERENCES:
        return References
    if section == SectionName.DOCUMENTS:
        return DocumentsSummary
    if section == SectionName.PROPERTY_GUARANTEE:
        return PropertyGuarantee
    if section == SectionName.FINANCIAL_INFO:
        return BankingInfo
    raise ValueError(f"Unhandled section: {section}")


def dump_section(model: CamelModel) -> dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)
