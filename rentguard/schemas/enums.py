from enum import Enum


class PolicyStatus(str, Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    PENDING_INTAKE = "PENDING_INTAKE"
    INTAKE_IN_PROGRESS = "INTAKE_IN_PROGRESS"
    SUBMITTED = "SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    CONTRACT_PENDING = "CONTRACT_PENDING"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class ActorType(str, Enum):
    LANDLORD = "landlord"
    TENANT = "tenant"
    AVAL = "aval"
    JOINT_OBLIGOR = "joint_obligor"


class LegalForm(str, Enum):
    INDIVIDUAL = "individual"
    COMPANY = "company"


class SectionName(str, Enum):
    PERSONAL_INFO = "personal_info"
    EMPLOYMENT = "employment"
    REFERENCES = "references"
    DOCUMENTS = "documents"
    PROPERTY_GUARANTEE = "property_guarantee"
    FINANCIAL_INFO = "financial_info"


class DocumentCategory(str, Enum):
    IDENTIFICATION = "identification"
    INCOME_PROOF = "income_proof"
    ADDRESS_PROOF = "address_proof"
    BANK_STATEMENT = "bank_statement"
    IMMIGRATION_DOCUMENT = "immigration_document"
    COMPANY_CONSTITUTION = "company_constitution"
    LEGAL_POWERS = "legal_powers"
    TAX_STATUS_CERTIFICATE = "tax_status_certificate"
    PROPERTY_DEED = "property_deed"
    PROPERTY_TAX_STATEMENT = "property_tax_statement"
    PROPERTY_REGISTRY = "property_registry"
    OTHER = "other"


class DocumentStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ValidationStatus(str, Enum):
    PENDING = "PENDING"
    IN_REVIEW = "IN_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Nationality(str, Enum):
    MEXICAN = "MEXICAN"
    FOREIGN = "FOREIGN"


class GuaranteeMethod(str, Enum):
    INCOME = "income"
    PROPERTY = "property"
