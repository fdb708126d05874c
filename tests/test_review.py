from uuid import uuid4

import pytest

from conftest import (
    FakeAsyncSession,
    FakeResult,
    entity_handler,
    make_actor,
    make_document,
    make_policy,
    sequence_handler,
)
from rentguard.models.activity_log import ActivityLog
from rentguard.models.review import DocumentValidation, ReviewNote, SectionValidation
from rentguard.services import review
from rentguard.services.errors import NotFoundError, StateConflictError, ValidationError
from rentguard.services.review import Progress, aggregate, combine, resolve_decision


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------


def test_approval_drops_reason():
    assert resolve_decision("APPROVED", "looks fine") == ("APPROVED", None)
    assert resolve_decision("IN_REVIEW", None) == ("IN_REVIEW", None)


def test_rejection_keeps_trimmed_reason():
    assert resolve_decision("REJECTED", "  blurry scan ") == ("REJECTED", "blurry scan")


@pytest.mark.parametrize("reason", [None, "", "   "])
def test_rejection_requires_reason(reason):
    with pytest.raises(ValidationError) as exc:
        resolve_decision("REJECTED", reason)
    assert exc.value.code == "rejection_reason_required"


@pytest.mark.parametrize("status", ["PENDING", "DONE", ""])
def test_pending_and_unknown_are_not_decisions(status):
    with pytest.raises(ValidationError):
        resolve_decision(status, None)


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def test_missing_records_count_as_pending():
    progress = aggregate(["APPROVED", None, "REJECTED"], ["IN_REVIEW", "APPROVED"])
    assert progress.total == 5
    assert progress.approved == 2
    assert progress.rejected == 1
    assert progress.in_review == 1
    # In-review items are still pending.
    assert progress.pending == 2
    assert progress.overall == 40


def test_overall_rounds_down_and_handles_empty():
    assert aggregate(["APPROVED", None, None], []).overall == 33
    assert Progress().overall == 0
    assert Progress().is_complete is False


def test_combine_sums_actors():
    total = combine([aggregate(["APPROVED"], ["APPROVED"]), aggregate(["APPROVED"], [])])
    assert total.total == 3
    assert total.is_complete is True
    assert total.as_dict() == {
        "totalValidations": 3,
        "completedValidations": 3,
        "pendingValidations": 0,
        "rejectedValidations": 0,
        "inReviewValidations": 0,
        "overall": 100,
    }


def test_snapshot_lists_review_sections_and_documents():
    policy = make_policy(status="SUBMITTED")
    tenant = make_actor(policy)
    landlord = make_actor(policy, actor_type="landlord", is_primary=True, display_name="Casa SA", is_company=True)
    doc = make_document(policy, tenant)
    approved = SectionValidation(actor_id=tenant.id, section_name="employment", status="APPROVED")

    snapshot = review.build_review_snapshot([tenant, landlord], [approved], [doc], [])

    tenant_review, landlord_review = snapshot
    assert [item.key for item in tenant_review.sections] == ["personal_info", "employment", "references"]
    assert [item.status for item in tenant_review.sections] == ["PENDING", "APPROVED", "PENDING"]
    assert tenant_review.documents[0].key == str(doc.id)
    assert tenant_review.progress.total == 4
    assert [item.key for item in landlord_review.sections] == ["personal_info", "financial_info"]
    assert landlord_review.documents == []


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_first_decision_moves_policy_under_review():
    db = FakeAsyncSession()
    policy = make_policy(status="SUBMITTED")
    tenant = make_actor(policy)

    record = await review.validate_section(
        db, policy, tenant, "employment", "APPROVED", None, validator_id="staff-1"
    )

    assert record.status == "APPROVED"
    assert record.validator_id == "staff-1"
    assert record.validated_at is not None
    assert policy.status == "UNDER_REVIEW"
    actions = [log.action for log in db.added_of(ActivityLog)]
    assert actions == ["validation_changed", "section_approved", "review_started"]


@pytest.mark.asyncio
async def test_repeated_decision_skips_change_entry():
    db = FakeAsyncSession()
    policy = make_policy(status="UNDER_REVIEW")
    tenant = make_actor(policy)
    existing = SectionValidation(
        id=uuid4(), policy_id=policy.id, actor_id=tenant.id, section_name="references", status="APPROVED"
    )
    db.on_execute(entity_handler(SectionValidation, FakeResult(scalar=existing)))

    record = await review.validate_section(
        db, policy, tenant, "references", "APPROVED", None, validator_id="staff-2"
    )

    assert record is existing
    assert db.added_of(SectionValidation) == []
    assert [log.action for log in db.added_of(ActivityLog)] == ["section_approved"]


@pytest.mark.asyncio
async def test_section_must_belong_to_actor_kind():
    policy = make_policy(status="SUBMITTED")
    landlord = make_actor(policy, actor_type="landlord")
    with pytest.raises(ValidationError) as exc:
        await review.validate_section(
            FakeAsyncSession(), policy, landlord, "employment", "APPROVED", None, validator_id="staff-1"
        )
    assert exc.value.code == "invalid_section"


@pytest.mark.asyncio
async def test_review_needs_submitted_policy():
    policy = make_policy(status="INTAKE_IN_PROGRESS")
    with pytest.raises(StateConflictError):
        await review.validate_section(
            FakeAsyncSession(), policy, make_actor(policy), "employment", "APPROVED", None, validator_id="s"
        )


@pytest.mark.asyncio
async def test_document_rejection_updates_document_status():
    db = FakeAsyncSession()
    policy = make_policy(status="UNDER_REVIEW")
    doc = make_document(policy, make_actor(policy))

    record = await review.validate_document(
        db, policy, doc, "REJECTED", "Expired ID", validator_id="staff-1"
    )

    assert record.rejection_reason == "Expired ID"
    assert doc.status == "REJECTED"
    assert db.added_of(DocumentValidation) == [record]
    assert [log.action for log in db.added_of(ActivityLog)] == ["validation_changed", "document_rejected"]


@pytest.mark.asyncio
async def test_review_summary_counts_whole_policy():
    policy = make_policy(status="UNDER_REVIEW")
    tenant = make_actor(policy)
    doc = make_document(policy, tenant)
    db = FakeAsyncSession()
    db.on_execute(
        sequence_handler(
            [
                FakeResult(items=[tenant]),
                FakeResult(
                    items=[
                        SectionValidation(actor_id=tenant.id, section_name=name, status="APPROVED")
                        for name in ("personal_info", "employment", "references")
                    ]
                ),
                FakeResult(items=[doc]),
                FakeResult(items=[DocumentValidation(document_id=doc.id, status="APPROVED")]),
            ]
        )
    )

    summary = await review.review_summary(db, policy)

    assert summary.progress.total == 4
    assert summary.progress.is_complete is True


# ---------------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_add_note_inherits_actor_from_document():
    db = FakeAsyncSession()
    policy = make_policy(status="UNDER_REVIEW")
    tenant = make_actor(policy)
    doc = make_document(policy, tenant)

    note = await review.add_note(db, policy, "  Needs a clearer copy ", author_id="staff-1", document=doc)

    assert note.note == "Needs a clearer copy"
    assert note.actor_id == tenant.id
    assert note.document_id == doc.id
    [entry] = db.added_of(ActivityLog)
    assert entry.payload["noteId"] == str(note.id)


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["", "   ", "x" * 5001])
async def test_note_length_is_bounded(text):
    with pytest.raises(ValidationError):
        await review.add_note(FakeAsyncSession(), make_policy(), text, author_id="staff-1")


@pytest.mark.asyncio
async def test_note_target_must_belong_to_policy():
    policy = make_policy()
    stranger = make_actor(make_policy())
    with pytest.raises(NotFoundError):
        await review.add_note(FakeAsyncSession(), policy, "hello", author_id="s", actor=stranger)


@pytest.mark.asyncio
async def test_delete_missing_note_is_not_found():
    with pytest.raises(NotFoundError):
        await review.delete_note(FakeAsyncSession(), make_policy(), uuid4(), author_id="s")


@pytest.mark.asyncio
async def test_delete_note_removes_it():
    policy = make_policy()
    note = ReviewNote(id=uuid4(), policy_id=policy.id, note="x", created_by="s")
    db = FakeAsyncSession()
    db.on_execute_return(FakeResult(scalar=note))

    await review.delete_note(db, policy, note.id, author_id="s")

    assert db.deleted == [note]
    assert [log.action for log in db.added_of(ActivityLog)] == ["review_note_deleted"]
