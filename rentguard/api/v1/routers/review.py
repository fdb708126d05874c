from uuid import UUID

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from rentguard.api import deps
from rentguard.db.session import get_db
from rentguard.schemas.policies import SuccessResponse
from rentguard.schemas.review import (
    ActorReviewDTO,
    NoteCreateRequest,
    NoteDTO,
    NoteListResponse,
    ProgressDTO,
    ReviewItem,
    ReviewSummaryResponse,
    ValidationDecisionRequest,
    ValidationRecordResponse,
)
from rentguard.services import documents, policies, review
from rentguard.services.activity_log import client_ip

router = APIRouter(prefix="/review/policies", tags=["review"])


def _progress(progress: review.Progress) -> ProgressDTO:
    return ProgressDTO.model_validate(progress.as_dict())


def _record(record, policy) -> ValidationRecordResponse:
    return ValidationRecordResponse(
        status=record.status,
        rejection_reason=record.rejection_reason,
        validated_at=record.validated_at,
        validator_id=record.validator_id,
        policy_status=policy.status,
    )


@router.get("/{policy_id}", response_model=ReviewSummaryResponse, summary="Review progress for a policy")
async def get_review_summary(
    policy_id: UUID,
    _: deps.StaffPrincipal = Depends(deps.require_staff),
    db: AsyncSession = Depends(get_db),
) -> ReviewSummaryResponse:
    policy = await policies.get_policy(db, policy_id)
    summary = await review.review_summary(db, policy)
    progress = summary.progress
    return ReviewSummaryResponse(
        policy_id=summary.policy_id,
        status=summary.status,
        actors=[
            ActorReviewDTO(
                actor_id=actor.actor_id,
                actor_type=actor.actor_type,
                is_company=actor.is_company,
                display_name=actor.display_name,
                is_primary=actor.is_primary,
                sections=[ReviewItem.model_validate(item, from_attributes=True) for item in actor.sections],
                documents=[ReviewItem.model_validate(item, from_attributes=True) for item in actor.documents],
                progress=_progress(actor.progress),
            )
            for actor in summary.actors
        ],
        progress=_progress(progress),
        is_complete=progress.is_complete,
    )


@router.put(
    "/{policy_id}/actors/{actor_id}/sections/{section}",
    response_model=ValidationRecordResponse,
    summary="Approve or reject an actor section",
)
async def validate_section(
    policy_id: UUID,
    actor_id: UUID,
    section: str,
    payload: ValidationDecisionRequest,
    request: Request,
    staff: deps.StaffPrincipal = Depends(deps.require_staff),
    db: AsyncSession = Depends(get_db),
) -> ValidationRecordResponse:
    policy = await policies.get_policy(db, policy_id)
    actor = await policies.get_policy_actor(db, policy.id, actor_id)
    record = await review.validate_section(
        db,
        policy,
        actor,
        section,
        payload.status,
        payload.reason,
        validator_id=staff.id,
        source_ip=client_ip(request),
    )
    return _record(record, policy)


@router.put(
    "/{policy_id}/documents/{document_id}",
    response_model=ValidationRecordResponse,
    summary="Approve or reject a document",
)
async def validate_document(
    policy_id: UUID,
    document_id: UUID,
    payload: ValidationDecisionRequest,
    request: Request,
    staff: deps.StaffPrincipal = Depends(deps.require_staff),
    db: AsyncSession = Depends(get_db),
) -> ValidationRecordResponse:
    policy = await policies.get_policy(db, policy_id)
    document = await documents.get_policy_document(db, policy.id, document_id)
    record = await review.validate_document(
        db,
        policy,
        document,
        payload.status,
        payload.reason,
        validator_id=staff.id,
        source_ip=client_ip(request),
    )
    return _record(record, policy)


@router.get("/{policy_id}/notes", response_model=NoteListResponse, summary="List review notes")
async def list_notes(
    policy_id: UUID,
    actor_id: UUID | None = None,
    document_id: UUID | None = None,
    _: deps.StaffPrincipal = Depends(deps.require_staff),
    db: AsyncSession = Depends(get_db),
) -> NoteListResponse:
    policy = await policies.get_policy(db, policy_id)
    notes = await review.list_notes(db, policy.id, actor_id=actor_id, document_id=document_id)
    items = [NoteDTO.model_validate(note, from_attributes=True) for note in notes]
    return NoteListResponse(items=items, total=len(items))


@router.post("/{policy_id}/notes", response_model=NoteDTO, summary="Add a review note")
async def add_note(
    policy_id: UUID,
    payload: NoteCreateRequest,
    request: Request,
    staff: deps.StaffPrincipal = Depends(deps.require_staff),
    db: AsyncSession = Depends(get_db),
) -> NoteDTO:
    policy = await policies.get_policy(db, policy_id)
    actor = None
    document = None
    if payload.actor_id is not None:
        actor = await policies.get_policy_actor(db, policy.id, payload.actor_id)
    if payload.document_id is not None:
        document = await documents.get_policy_document(db, policy.id, payload.document_id)
    note = await review.add_note(
        db,
        policy,
        payload.note,
        author_id=staff.id,
        actor=actor,
        document=document,
        source_ip=client_ip(request),
    )
    return NoteDTO.model_validate(note, from_attributes=True)


@router.delete(
    "/{policy_id}/notes/{note_id}",
    response_model=SuccessResponse,
    summary="Delete a review note",
)
async def delete_note(
    policy_id: UUID,
    note_id: UUID,
    request: Request,
    staff: deps.StaffPrincipal = Depends(deps.require_staff),
    db: AsyncSession = Depends(get_db),
) -> SuccessResponse:
    policy = await policies.get_policy(db, policy_id)
    await review.delete_note(db, policy, note_id, author_id=staff.id, source_ip=client_ip(request))
    return SuccessResponse()
