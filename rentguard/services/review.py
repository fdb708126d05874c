from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rentguard.models.actor import Actor
from rentguard.models.document import Document
from rentguard.models.policy import Policy
from rentguard.models.review import DocumentValidation, ReviewNote, SectionValidation
from rentguard.schemas.enums import (
    ActorType,
    DocumentStatus,
    PolicyStatus,
    SectionName,
    ValidationStatus,
)
from rentguard.services.activity_log import log_activity
from rentguard.services.errors import InternalError, NotFoundError, ValidationError
from rentguard.services.policy_status import assert_reviewable, transition

logger = logging.getLogger(__name__)

MAX_NOTE_LENGTH = 5000

_S = SectionName
_GUARANTOR_INDIVIDUAL = (_S.PERSONAL_INFO, _S.EMPLOYMENT, _S.PROPERTY_GUARANTEE, _S.REFERENCES)
_GUARANTOR_COMPANY = (_S.PERSONAL_INFO, _S.PROPERTY_GUARANTEE, _S.REFERENCES)

# Keyed by (actor type, is_company).
REVIEW_SECTIONS: dict[tuple[ActorType, bool], tuple[SectionName, ...]] = {
    (ActorType.LANDLORD, False): (_S.PERSONAL_INFO, _S.FINANCIAL_INFO),
    (ActorType.LANDLORD, True): (_S.PERSONAL_INFO, _S.FINANCIAL_INFO),
    (ActorType.TENANT, False): (_S.PERSONAL_INFO, _S.EMPLOYMENT, _S.REFERENCES),
    (ActorType.TENANT, True): (_S.PERSONAL_INFO, _S.REFERENCES),
    (ActorType.AVAL, False): _GUARANTOR_INDIVIDUAL,
    (ActorType.AVAL, True): _GUARANTOR_COMPANY,
    (ActorType.JOINT_OBLIGOR, False): _GUARANTOR_INDIVIDUAL,
    (ActorType.JOINT_OBLIGOR, True): _GUARANTOR_COMPANY,
}

DECISION_STATUSES = frozenset(
    {ValidationStatus.IN_REVIEW.value, ValidationStatus.APPROVED.value, ValidationStatus.REJECTED.value}
)


def review_sections(actor_type: ActorType | str, is_company: bool) -> tuple[SectionName, ...]:
    return REVIEW_SECTIONS[(ActorType(actor_type), bool(is_company))]


def resolve_decision(status: ValidationStatus | str, reason: str | None) -> tuple[str, str | None]:
    """Return the (status, reason) pair to store; only rejections keep a reason."""
    try:
        value = ValidationStatus(status).value
    except ValueError as exc:
        raise ValidationError(code="invalid_status", message="Invalid validation status") from exc
    if value not in DECISION_STATUSES:
        raise ValidationError(code="invalid_status", message="Invalid validation status")
    if value == ValidationStatus.REJECTED:
        cleaned = (reason or "").strip()
        if not cleaned:
            raise ValidationError(
                code="rejection_reason_required",
                message="A rejection reason is required",
                details={"issues": [{"path": "reason", "message": "Required when rejecting", "type": "missing"}]},
            )
        return value, cleaned
    return value, None


# ---------------------------------------------------------------------------
# Aggregation (pure)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Progress:
    total: int = 0
    approved: int = 0
    rejected: int = 0
    in_review: int = 0

    @property
    def pending(self) -> int:
        return self.total - self.approved - self.rejected

    @property
    def overall(self) -> int:
        if self.total == 0:
            return 0
        return self.approved * 100 // self.total

    @property
    def is_complete(self) -> bool:
        return self.total > 0 and self.approved == self.total

    def as_dict(self) -> dict[str, int]:
        return {
            "totalValidations": self.total,
            "completedValidations": self.approved,
            "pendingValidations": self.pending,
            "rejectedValidations": self.rejected,
            "inReviewValidations": self.in_review,
            "overall": self.overall,
        }


def _normalize(status: str | None) -> str:
    return status or ValidationStatus.PENDING.value


def aggregate(sections: Iterable[str | None], documents: Iterable[str | None]) -> Progress:
    """Count sections and documents with equal weight; a missing record counts as PENDING."""
    statuses = [_normalize(status) for status in (*sections, *documents)]
    return Progress(
        total=len(statuses),
        approved=sum(1 for status in statuses if status == ValidationStatus.APPROVED),
        rejected=sum(1 for status in statuses if status == ValidationStatus.REJECTED),
        in_review=sum(1 for status in statuses if status == ValidationStatus.IN_REVIEW),
    )


def combine(progresses: Iterable[Progress]) -> Progress:
    total = approved = rejected = in_review = 0
    for progress in progresses:
        total += progress.total
        approved += progress.approved
        rejected += progress.rejected
        in_review += progress.in_review
    return Progress(total=total, approved=approved, rejected=rejected, in_review=in_review)


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


@dataclass
class ItemState:
    key: str
    status: str = ValidationStatus.PENDING.value
    rejection_reason: str | None = None
    validated_at: datetime | None = None
    validator_id: str | None = None
    category: str | None = None
    original_name: str | None = None


@dataclass
class ActorReview:
    actor_id: UUID
    actor_type: str
    is_company: bool
    display_name: str | None
    is_primary: bool
    sections: list[ItemState] = field(default_factory=list)
    documents: list[ItemState] = field(default_factory=list)

    @property
    def progress(self) -> Progress:
        return aggregate(
            (item.status for item in self.sections), (item.status for item in self.documents)
        )


@dataclass
class ReviewSummary:
    policy_id: UUID
    status: str
    actors: list[ActorReview]

    @property
    def progress(self) -> Progress:
        return combine(actor.progress for actor in self.actors)


def _item_from(record, key: str, **extra) -> ItemState:
    if record is None:
        return ItemState(key=key, **extra)
    return ItemState(
        key=key,
        status=record.status,
        rejection_reason=record.rejection_reason,
        validated_at=record.validated_at,
        validator_id=record.validator_id,
        **extra,
    )


def build_review_snapshot(
    actors: Sequence[Actor],
    section_validations: Sequence[SectionValidation],
    documents: Sequence[Document],
    document_validations: Sequence[DocumentValidation],
) -> list[ActorReview]:
    sections_by_key = {(record.actor_id, record.section_name): record for record in section_validations}
    documents_by_id = {record.document_id: record for record in document_validations}
    docs_by_actor: dict[UUID, list[Document]] = {}
    for document in documents:
        docs_by_actor.setdefault(document.actor_id, []).append(document)

    snapshot: list[ActorReview] = []
    for actor in actors:
        section_items = [
            _item_from(sections_by_key.get((actor.id, section.value)), section.value)
            for section in review_sections(actor.actor_type, bool(actor.is_company))
        ]
        document_items = [
            _item_from(
                documents_by_id.get(document.id),
                str(document.id),
                category=document.category,
                original_name=document.original_name,
            )
            for document in docs_by_actor.get(actor.id, [])
        ]
        snapshot.append(
            ActorReview(
                actor_id=actor.id,
                actor_type=actor.actor_type,
                is_company=bool(actor.is_company),
                display_name=actor.display_name,
                is_primary=bool(actor.is_primary),
                sections=section_items,
                documents=document_items,
            )
        )
    return snapshot


async def review_summary(db: AsyncSession, policy: Policy) -> ReviewSummary:
    actors = (
        await db.execute(select(Actor).where(Actor.policy_id == policy.id).order_by(Actor.created_at))
    ).scalars().all()
    section_validations = (
        await db.execute(select(SectionValidation).where(SectionValidation.policy_id == policy.id))
    ).scalars().all()
    documents = (
        await db.execute(
            select(Document).where(Document.policy_id == policy.id).order_by(Document.created_at)
        )
    ).scalars().all()
    document_validations = (
        await db.execute(select(DocumentValidation).where(DocumentValidation.policy_id == policy.id))
    ).scalars().all()
    return ReviewSummary(
        policy_id=policy.id,
        status=policy.status,
        actors=build_review_snapshot(actors, section_validations, documents, document_validations),
    )


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------


def _start_review(policy: Policy) -> bool:
    if policy.status == PolicyStatus.SUBMITTED:
        transition(policy, PolicyStatus.UNDER_REVIEW)
        return True
    return False


async def _commit(db: AsyncSession, what: str) -> None:
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("Persisting %s failed", what)
        raise InternalError(code="review_persist_failed", message="Failed to save review") from exc


async def validate_section(
    db: AsyncSession,
    policy: Policy,
    actor: Actor,
    section: str,
    status: ValidationStatus | str,
    reason: str | None,
    *,
    validator_id: str,
    source_ip: str | None = None,
) -> SectionValidation:
    assert_reviewable(policy)
    allowed = review_sections(actor.actor_type, bool(actor.is_company))
    if section not in {item.value for item in allowed}:
        raise ValidationError(
            code="invalid_section",
            message="Section is not reviewed for this actor",
            details={"section": section, "allowed": [item.value for item in allowed]},
        )
    new_status, new_reason = resolve_decision(status, reason)

    stmt = select(SectionValidation).where(
        SectionValidation.actor_id == actor.id,
        SectionValidation.section_name == section,
    )
    record = (await db.execute(stmt)).scalar_one_or_none()
    previous = record.status if record else ValidationStatus.PENDING.value
    if record is None:
        record = SectionValidation(policy_id=policy.id, actor_id=actor.id, section_name=section)
        db.add(record)
    record.status = new_status
    record.rejection_reason = new_reason
    record.validated_at = datetime.now(timezone.utc)
    record.validator_id = validator_id
    started = _start_review(policy)
    await _commit(db, f"section validation {actor.id}/{section}")

    payload = {
        "actorId": str(actor.id),
        "actorType": actor.actor_type,
        "section": section,
        "status": new_status,
        "reason": new_reason,
    }
    if previous != new_status:
        await log_activity(
            db,
            policy.id,
            "validation_changed",
            actor_ref=validator_id,
            payload={**payload, "previousStatus": previous},
            source_ip=source_ip,
        )
    await log_activity(
        db, policy.id, f"section_{new_status.lower()}", actor_ref=validator_id, payload=payload, source_ip=source_ip
    )
    if started:
        await log_activity(db, policy.id, "review_started", actor_ref=validator_id, source_ip=source_ip)
    return record


def _document_status_for(status: str) -> str:
    if status == ValidationStatus.APPROVED:
        return DocumentStatus.APPROVED.value
    if status == ValidationStatus.REJECTED:
        return DocumentStatus.REJECTED.value
    return DocumentStatus.PENDING.value


async def validate_document(
    db: AsyncSession,
    policy: Policy,
    document: Document,
    status: ValidationStatus | str,
    reason: str | None,
    *,
    validator_id: str,
    source_ip: str | None = None,
) -> DocumentValidation:
    assert_reviewable(policy)
    new_status, new_reason = resolve_decision(status, reason)

    stmt = select(DocumentValidation).where(DocumentValidation.document_id == document.id)
    record = (await db.execute(stmt)).scalar_one_or_none()
    previous = record.status if record else ValidationStatus.PENDING.value
    if record is None:
        record = DocumentValidation(policy_id=policy.id, document_id=document.id)
        db.add(record)
    record.status = new_status
    record.rejection_reason = new_reason
    record.validated_at = datetime.now(timezone.utc)
    record.validator_id = validator_id
    document.status = _document_status_for(new_status)
    started = _start_review(policy)
    await _commit(db, f"document validation {document.id}")

    payload = {
        "documentId": str(document.id),
        "category": document.category,
        "status": new_status,
        "reason": new_reason,
    }
    if previous != new_status:
        await log_activity(
            db,
            policy.id,
            "validation_changed",
            actor_ref=validator_id,
            payload={**payload, "previousStatus": previous},
            source_ip=source_ip,
        )
    await log_activity(
        db, policy.id, f"document_{new_status.lower()}", actor_ref=validator_id, payload=payload, source_ip=source_ip
    )
    if started:
        await log_activity(db, policy.id, "review_started", actor_ref=validator_id, source_ip=source_ip)
    return record


# ---------------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------------


def clean_note(note: str | None) -> str:
    cleaned = (note or "").strip()
    if not cleaned or len(cleaned) > MAX_NOTE_LENGTH:
        raise ValidationError(
            code="invalid_note",
            message=f"Note must be between 1 and {MAX_NOTE_LENGTH} characters",
        )
    return cleaned


async def add_note(
    db: AsyncSession,
    policy: Policy,
    note: str,
    *,
    author_id: str,
    actor: Actor | None = None,
    document: Document | None = None,
    source_ip: str | None = None,
) -> ReviewNote:
    """Attach a note to the policy, or to one of its actors or documents."""
    text = clean_note(note)
    if actor is not None and actor.policy_id != policy.id:
        raise NotFoundError(code="actor_not_found", message="Actor not found")
    if document is not None and document.policy_id != policy.id:
        raise NotFoundError(code="document_not_found", message="Document not found")
    record = ReviewNote(
        id=uuid4(),
        policy_id=policy.id,
        actor_id=actor.id if actor is not None else (document.actor_id if document is not None else None),
        document_id=document.id if document is not None else None,
        note=text,
        created_by=author_id,
        created_at=datetime.now(timezone.utc),
    )
    db.add(record)
    await _commit(db, f"review note for policy {policy.id}")
    await log_activity(
        db,
        policy.id,
        "review_note_added",
        actor_ref=author_id,
        payload={
            "noteId": str(record.id),
            "actorId": str(record.actor_id) if record.actor_id else None,
            "documentId": str(record.document_id) if record.document_id else None,
        },
        source_ip=source_ip,
    )
    return record


async def list_notes(
    db: AsyncSession,
    policy_id: UUID,
    *,
    actor_id: UUID | None = None,
    document_id: UUID | None = None,
) -> list[ReviewNote]:
    stmt = select(ReviewNote).where(ReviewNote.policy_id == policy_id)
    if actor_id is not None:
        stmt = stmt.where(ReviewNote.actor_id == actor_id)
    if document_id is not None:
        stmt = stmt.where(ReviewNote.document_id == document_id)
    stmt = stmt.order_by(ReviewNote.created_at.desc())
    return list((await db.execute(stmt)).scalars().all())


async def delete_note(
    db: AsyncSession,
    policy: Policy,
    note_id: UUID,
    *,
    author_id: str,
    source_ip: str | None = None,
) -> None:
    stmt = select(ReviewNote).where(ReviewNote.id == note_id, ReviewNote.policy_id == policy.id)
    note = (await db.execute(stmt)).scalar_one_or_none()
    if note is None:
        raise NotFoundError(code="note_not_found", message="Note not found")
    await db.delete(note)
    await _commit(db, f"review note deletion {note_id}")
    await log_activity(
        db, policy.id, "review_note_deleted", actor_ref=author_id, payload={"noteId": str(note_id)}, source_ip=source_ip
    )
