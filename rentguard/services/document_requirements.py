from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rentguard.models.actor import Actor, ActorSection
from rentguard.models.document import Document
from rentguard.schemas.enums import (
    ActorType,
    DocumentCategory,
    GuaranteeMethod,
    Nationality,
    SectionName,
)


class RequirementCondition(str, Enum):
    FOREIGN = "foreign"
    PROPERTY_GUARANTEE = "property_guarantee"
    INCOME_GUARANTEE = "income_guarantee"


@dataclass(frozen=True)
class DocumentRequirement:
    category: DocumentCategory
    required: bool = True
    condition: RequirementCondition | None = None


def _req(category: DocumentCategory, condition: RequirementCondition | None = None) -> DocumentRequirement:
    return DocumentRequirement(category=category, required=True, condition=condition)


def _opt(category: DocumentCategory, condition: RequirementCondition | None = None) -> DocumentRequirement:
    return DocumentRequirement(category=category, required=False, condition=condition)


_C = DocumentCategory
_FOREIGN = RequirementCondition.FOREIGN
_PROPERTY = RequirementCondition.PROPERTY_GUARANTEE
_INCOME = RequirementCondition.INCOME_GUARANTEE

_COMPANY_BASE = (
    _req(_C.COMPANY_CONSTITUTION),
    _req(_C.LEGAL_POWERS),
    _req(_C.IDENTIFICATION),
    _req(_C.TAX_STATUS_CERTIFICATE),
    _req(_C.BANK_STATEMENT),
)

_GUARANTEE_CONDITIONAL = (
    _req(_C.INCOME_PROOF, _INCOME),
    _req(_C.PROPERTY_DEED, _PROPERTY),
    _req(_C.PROPERTY_TAX_STATEMENT, _PROPERTY),
    _opt(_C.PROPERTY_REGISTRY, _PROPERTY),
)

# Keyed by (actor type, is_company).
ACTOR_DOCUMENT_REQUIREMENTS: dict[tuple[ActorType, bool], tuple[DocumentRequirement, ...]] = {
    (ActorType.TENANT, False): (
        _req(_C.IDENTIFICATION),
        _req(_C.INCOME_PROOF),
        _req(_C.ADDRESS_PROOF),
        _req(_C.BANK_STATEMENT),
        _req(_C.IMMIGRATION_DOCUMENT, _FOREIGN),
    ),
    (ActorType.TENANT, True): (
        *_COMPANY_BASE,
        _opt(_C.ADDRESS_PROOF),
    ),
    (ActorType.LANDLORD, False): (
        _req(_C.IDENTIFICATION),
        _opt(_C.TAX_STATUS_CERTIFICATE),
        _req(_C.PROPERTY_DEED),
        _req(_C.PROPERTY_TAX_STATEMENT),
        _opt(_C.BANK_STATEMENT),
    ),
    (ActorType.LANDLORD, True): (
        _req(_C.COMPANY_CONSTITUTION),
        _req(_C.LEGAL_POWERS),
        _req(_C.TAX_STATUS_CERTIFICATE),
        _req(_C.PROPERTY_DEED),
        _req(_C.PROPERTY_TAX_STATEMENT),
        _opt(_C.BANK_STATEMENT),
    ),
    (ActorType.AVAL, False): (
        _req(_C.IDENTIFICATION),
        _req(_C.INCOME_PROOF),
        _req(_C.ADDRESS_PROOF),
        _req(_C.BANK_STATEMENT),
        _req(_C.IMMIGRATION_DOCUMENT, _FOREIGN),
        _opt(_C.PROPERTY_REGISTRY),
    ),
    (ActorType.AVAL, True): (
        *_COMPANY_BASE,
        _opt(_C.PROPERTY_REGISTRY),
    ),
    (ActorType.JOINT_OBLIGOR, False): (
        _req(_C.IDENTIFICATION),
        _req(_C.ADDRESS_PROOF),
        _req(_C.BANK_STATEMENT),
        _req(_C.IMMIGRATION_DOCUMENT, _FOREIGN),
        *_GUARANTEE_CONDITIONAL,
    ),
    (ActorType.JOINT_OBLIGOR, True): (
        *_COMPANY_BASE,
        *_GUARANTEE_CONDITIONAL,
    ),
}

# Actors whose uploads must be complete before the tenant can submit. Landlords are excluded.
SUBMISSION_ACTOR_TYPES = frozenset({ActorType.TENANT, ActorType.AVAL, ActorType.JOINT_OBLIGOR})


def _condition_holds(
    condition: RequirementCondition | None,
    nationality: Nationality | None,
    guarantee_method: GuaranteeMethod | None,
) -> bool:
    if condition is None:
        return True
    if condition == RequirementCondition.FOREIGN:
        return nationality == Nationality.FOREIGN
    if condition == RequirementCondition.PROPERTY_GUARANTEE:
        return guarantee_method == GuaranteeMethod.PROPERTY
    if condition == RequirementCondition.INCOME_GUARANTEE:
        return guarantee_method == GuaranteeMethod.INCOME
    raise ValueError(f"Unhandled requirement condition: {condition}")


def document_requirements(
    actor_type: ActorType | str,
    is_company: bool,
    *,
    nationality: Nationality | str | None = None,
    guarantee_method: GuaranteeMethod | str | None = None,
) -> list[DocumentRequirement]:
    table = ACTOR_DOCUMENT_REQUIREMENTS[(ActorType(actor_type), bool(is_company))]
    nationality_value = Nationality(nationality) if nationality else None
    method_value = GuaranteeMethod(guarantee_method) if guarantee_method else None
    return [
        requirement
        for requirement in table
        if _condition_holds(requirement.condition, nationality_value, method_value)
    ]


def required_categories(
    actor_type: ActorType | str,
    is_company: bool,
    *,
    nationality: Nationality | str | None = None,
    guarantee_method: GuaranteeMethod | str | None = None,
) -> frozenset[DocumentCategory]:
    return frozenset(
        requirement.category
        for requirement in document_requirements(
            actor_type, is_company, nationality=nationality, guarantee_method=guarantee_method
        )
        if requirement.required
    )


def uploadable_categories(actor_type: ActorType | str, is_company: bool) -> frozenset[DocumentCategory]:
    """Every category the actor may upload, whatever its conditions, plus ``other``."""
    table = ACTOR_DOCUMENT_REQUIREMENTS[(ActorType(actor_type), bool(is_company))]
    return frozenset(requirement.category for requirement in table) | {DocumentCategory.OTHER}


def missing_categories(
    requirements: Sequence[DocumentRequirement], uploaded: Iterable[str]
) -> list[str]:
    uploaded_values = {DocumentCategory(value).value for value in uploaded}
    missing: list[str] = []
    for requirement in requirements:
        value = requirement.category.value
        if requirement.required and value not in uploaded_values and value not in missing:
            missing.append(value)
    return missing


@dataclass(frozen=True)
class ActorDocuments:
    actor_id: UUID
    actor_type: ActorType
    is_company: bool
    uploaded: frozenset[str]
    nationality: Nationality | None = None
    guarantee_method: GuaranteeMethod | None = None


@dataclass(frozen=True)
class CompletenessResult:
    valid: bool
    missing: list[str] = field(default_factory=list)
    missing_by_actor: dict[str, list[str]] = field(default_factory=dict)


def check_completeness(entries: Iterable[ActorDocuments]) -> CompletenessResult:
    missing: list[str] = []
    missing_by_actor: dict[str, list[str]] = {}
    for entry in entries:
        requirements = document_requirements(
            entry.actor_type,
            entry.is_company,
            nationality=entry.nationality,
            guarantee_method=entry.guarantee_method,
        )
        actor_missing = missing_categories(requirements, entry.uploaded)
        if actor_missing:
            missing_by_actor[str(entry.actor_id)] = actor_missing
            missing.extend(category for category in actor_missing if category not in missing)
    return CompletenessResult(valid=not missing, missing=missing, missing_by_actor=missing_by_actor)


def _nationality_from(data: dict | None) -> Nationality | None:
    raw = (data or {}).get("nationality")
    try:
        return Nationality(str(raw).upper()) if raw else None
    except ValueError:
        return None


def _guarantee_method_from(data: dict | None) -> GuaranteeMethod | None:
    raw = (data or {}).get("guaranteeMethod")
    try:
        return GuaranteeMethod(raw) if raw else None
    except ValueError:
        return None


def build_actor_documents(
    actors: Sequence[Actor],
    sections: Sequence[ActorSection],
    documents: Sequence[Document],
) -> list[ActorDocuments]:
    section_data: dict[tuple[UUID, str], dict] = {
        (section.actor_id, section.section_name): section.data for section in sections
    }
    uploaded: dict[UUID, set[str]] = {}
    for document in documents:
        uploaded.setdefault(document.actor_id, set()).add(document.category)
    return [
        ActorDocuments(
            actor_id=actor.id,
            actor_type=ActorType(actor.actor_type),
            is_company=bool(actor.is_company),
            uploaded=frozenset(uploaded.get(actor.id, set())),
            nationality=_nationality_from(
                section_data.get((actor.id, SectionName.PERSONAL_INFO.value))
            ),
            guarantee_method=_guarantee_method_from(
                section_data.get((actor.id, SectionName.PROPERTY_GUARANTEE.value))
            ),
        )
        for actor in actors
    ]


async def is_complete(
    db: AsyncSession, policy_id: UUID, *, actor_types: Iterable[ActorType] | None = None
) -> CompletenessResult:
    """Check uploads for every actor of the policy, or only those of ``actor_types``."""
    stmt = select(Actor).where(Actor.policy_id == policy_id)
    if actor_types is not None:
        stmt = stmt.where(Actor.actor_type.in_(sorted(ActorType(value).value for value in actor_types)))
    actors = (await db.execute(stmt.order_by(Actor.created_at))).scalars().all()
    actor_ids = [actor.id for actor in actors]
    sections: list[ActorSection] = []
    if actor_ids:
        sections = (
            await db.execute(select(ActorSection).where(ActorSection.actor_id.in_(actor_ids)))
        ).scalars().all()
    documents: list[Document] = []
    if actor_ids:
        documents = (
            await db.execute(
                select(Document).where(
                    Document.policy_id == policy_id, Document.actor_id.in_(actor_ids)
                )
            )
        ).scalars().all()
    return check_completeness(build_actor_documents(actors, sections, documents))
