from datetime import datetime
from uuid import UUID

from pydantic import Field

from rentguard.schemas.common import CamelModel
from rentguard.schemas.enums import ValidationStatus


class ValidationDecisionRequest(CamelModel):
    status: ValidationStatus
    reason: str | None = Field(default=None, max_length=2000)


class ValidationRecordResponse(CamelModel):
    success: bool = True
    status: str
    rejection_reason: str | None = None
    validated_at: datetime | None = None
    validator_id: str | None = None
    policy_status: str


class ReviewItem(CamelModel):
    key: str
    status: str
    rejection_reason: str | None = None
    validated_at: datetime | None = None
    validator_id: str | None = None
    category: str | None = None
    original_name: str | None = None


class ProgressDTO(CamelModel):
    total_validations: int
    completed_validations: int
    pending_validations: int
    rejected_validations: int
    in_review_validations: int
    overall: int


class ActorReviewDTO(CamelModel):
    actor_id: UUID
    actor_type: str
    is_company: bool
    display_name: str | None = None
    is_primary: bool
    sections: list[ReviewItem]
    documents: list[ReviewItem]
    progress: ProgressDTO


class ReviewSummaryResponse(CamelModel):
    policy_id: UUID
    status: str
    actors: list[ActorReviewDTO]
    progress: ProgressDTO
    is_complete: bool


class NoteCreateRequest(CamelModel):
    note: str = Field(min_length=1, max_length=5000)
    actor_id: UUID | None = None
    document_id: UUID | None = None


class NoteDTO(CamelModel):
    id: UUID
    policy_id: UUID
    actor_id: UUID | None = None
    document_id: UUID | None = None
    note: str
    created_by: str
    created_at: datetime | None = None


class NoteListResponse(CamelModel):
    items: list[NoteDTO]
    total: int
