from __future__ import annotations

import logging
import secrets
import string
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rentguard.models.actor import Actor
from rentguard.models.document import Document
from rentguard.models.policy import Policy
from rentguard.schemas.enums import ActorType, LegalForm, PaymentStatus, PolicyStatus
from rentguard.schemas.policies import ActorCreateRequest, PolicyInitiateRequest
from rentguard.services import actor_sections, notifications, review
from rentguard.services.activity_log import SYSTEM_ACTOR, TENANT_ACTOR, log_activity
from rentguard.services.document_requirements import SUBMISSION_ACTOR_TYPES, CompletenessResult, is_complete
from rentguard.services.errors import (
    InternalError,
    NotFoundError,
    StateConflictError,
    ValidationError,
    not_modifiable,
)
from rentguard.services.policy_status import (
    INVITABLE_STATUSES,
    SubmissionCheck,
    TERMINAL_STATUSES,
    assert_staff_editable,
    assert_submittable,
    evaluate_submission,
    missing_sections,
    transition,
)
from rentguard.services.steps import REQUIRED_INTAKE_SECTIONS
from rentguard.services.token_gate import issue_token

logger = logging.getLogger(__name__)

POLICY_NUMBER_ALPHABET = string.ascii_uppercase + string.digits
POLICY_NUMBER_SUFFIX_LENGTH = 6

# Statuses staff may request explicitly; the rest are reached through intake and review.
STAFF_TRANSITION_TARGETS = frozenset(
    {
        PolicyStatus.PENDING_INTAKE.value,
        PolicyStatus.UNDER_REVIEW.value,
        PolicyStatus.CONTRACT_PENDING.value,
        PolicyStatus.REJECTED.value,
        PolicyStatus.EXPIRED.value,
        PolicyStatus.CANCELLED.value,
    }
)
EXPIRABLE_STATUSES = frozenset(
    {
        PolicyStatus.DRAFT.value,
        PolicyStatus.SENT.value,
        PolicyStatus.PENDING_INTAKE.value,
        PolicyStatus.INTAKE_IN_PROGRESS.value,
    }
)
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


def generate_policy_number(now: datetime) -> str:
    suffix = "".join(secrets.choice(POLICY_NUMBER_ALPHABET) for _ in range(POLICY_NUMBER_SUFFIX_LENGTH))
    return f"POL-{now:%Y%m%d}-{suffix}"


async def _commit(db: AsyncSession, code: str, message: str) -> None:
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("Commit failed (%s)", code)
        raise InternalError(code=code, message=message) from exc


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


async def get_policy(db: AsyncSession, policy_id: UUID) -> Policy:
    policy = (await db.execute(select(Policy).where(Policy.id == policy_id))).scalar_one_or_none()
    if policy is None:
        raise NotFoundError(code="policy_not_found", message="Policy not found")
    return policy


async def get_policy_actor(db: AsyncSession, policy_id: UUID, actor_id: UUID) -> Actor:
    stmt = select(Actor).where(Actor.id == actor_id, Actor.policy_id == policy_id)
    actor = (await db.execute(stmt)).scalar_one_or_none()
    if actor is None:
        raise NotFoundError(code="actor_not_found", message="Actor not found")
    return actor


async def require_tenant(db: AsyncSession, policy_id: UUID) -> Actor:
    tenant = await actor_sections.get_tenant_actor(db, policy_id)
    if tenant is None:
        raise NotFoundError(code="tenant_not_found", message="Tenant not found")
    return tenant


async def list_actors(db: AsyncSession, policy_id: UUID) -> list[Actor]:
    stmt = select(Actor).where(Actor.policy_id == policy_id).order_by(Actor.created_at)
    return list((await db.execute(stmt)).scalars().all())


async def list_documents(
    db: AsyncSession, policy_id: UUID, *, actor_id: UUID | None = None
) -> list[Document]:
    stmt = select(Document).where(Document.policy_id == policy_id)
    if actor_id is not None:
        stmt = stmt.where(Document.actor_id == actor_id)
    stmt = stmt.order_by(Document.created_at)
    return list((await db.execute(stmt)).scalars().all())


async def list_policies(
    db: AsyncSession,
    *,
    status: str | None = None,
    search: str | None = None,
    limit: int = DEFAULT_PAGE_SIZE,
    offset: int = 0,
) -> tuple[list[Policy], int]:
    filters = []
    if status:
        filters.append(Policy.status == PolicyStatus(status).value)
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        filters.append(or_(Policy.policy_number.ilike(pattern), Policy.tenant_email.ilike(pattern)))

    count_stmt = select(func.count()).select_from(Policy).where(*filters)
    total = int((await db.execute(count_stmt)).scalar_one() or 0)

    page_size = max(1, min(int(limit), MAX_PAGE_SIZE))
    stmt = (
        select(Policy)
        .where(*filters)
        .order_by(Policy.created_at.desc())
        .offset(max(0, int(offset)))
        .limit(page_size)
    )
    items = list((await db.execute(stmt)).scalars().all())
    return items, total


@dataclass
class ActorView:
    actor: Actor
    sections: dict[str, dict[str, Any]] = field(default_factory=dict)
    documents: list[Document] = field(default_factory=list)


@dataclass
class PolicyView:
    policy: Policy
    actors: list[ActorView] = field(default_factory=list)


async def get_policy_detail(db: AsyncSession, policy: Policy) -> PolicyView:
    actors = await list_actors(db, policy.id)
    sections = actor_sections.sections_by_actor(
        await actor_sections.list_sections(db, [actor.id for actor in actors])
    )
    documents: dict[UUID, list[Document]] = {}
    for document in await list_documents(db, policy.id):
        documents.setdefault(document.actor_id, []).append(document)
    return PolicyView(
        policy=policy,
        actors=[
            ActorView(
                actor=actor,
                sections=sections.get(actor.id, {}),
                documents=documents.get(actor.id, []),
            )
            for actor in actors
        ],
    )


async def get_completeness(db: AsyncSession, policy: Policy) -> CompletenessResult:
    return await is_complete(db, policy.id)


# ---------------------------------------------------------------------------
# Initiation and invitations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InvitationResult:
    policy: Policy
    email_sent: bool


async def _deliver_invitation(
    db: AsyncSession,
    policy: Policy,
    *,
    tenant_name: str | None,
    actor_ref: str,
    success_action: str,
    source_ip: str | None,
) -> bool:
    sent = await notifications.send_policy_invitation(
        tenant_email=policy.tenant_email,
        tenant_name=tenant_name,
        policy_number=policy.policy_number,
        access_token=policy.access_token,
        token_expiry=policy.token_expiry,
    )
    payload = {"policyNumber": policy.policy_number, "tenantEmail": policy.tenant_email}
    if not sent:
        await log_activity(
            db, policy.id, "invitation_failed", actor_ref=actor_ref, payload=payload, source_ip=source_ip
        )
        return False

    transition(policy, PolicyStatus.SENT)
    db.add(policy)
    await _commit(db, "invitation_persist_failed", "Failed to update policy")
    await log_activity(
        db, policy.id, success_action, actor_ref=actor_ref, payload=payload, source_ip=source_ip
    )
    return True


async def initiate_policy(
    db: AsyncSession,
    payload: PolicyInitiateRequest,
    *,
    initiated_by: str,
    source_ip: str | None = None,
    now: datetime | None = None,
) -> InvitationResult:
    """Create a DRAFT policy with its tenant, then invite the tenant by email.

    A failed email leaves the policy in DRAFT; staff can resend later.
    """
    current = now or datetime.now(timezone.utc)
    token, expiry = issue_token(current)
    tenant_email = str(payload.tenant_email).strip().lower()
    policy = Policy(
        id=uuid4(),
        policy_number=generate_policy_number(current),
        status=PolicyStatus.DRAFT.value,
        current_step=1,
        access_token=token,
        token_expiry=expiry,
        payment_status=PaymentStatus.PENDING.value,
        rent_amount=payload.rent_amount,
        premium_amount=payload.premium_amount,
        tenant_share_percent=payload.tenant_share_percent,
        tenant_email=tenant_email,
        tenant_phone=payload.tenant_phone,
        property_address=payload.property_address,
        property_reference=payload.property_id,
        initiated_by=initiated_by,
        created_at=current,
    )
    tenant = Actor(
        id=uuid4(),
        policy_id=policy.id,
        actor_type=ActorType.TENANT.value,
        is_company=payload.tenant_type == LegalForm.COMPANY,
        is_primary=False,
        display_name=payload.tenant_name,
        email=tenant_email,
        phone=payload.tenant_phone,
        created_at=current,
    )
    db.add(policy)
    db.add(tenant)
    await _commit(db, "policy_create_failed", "Failed to create policy")
    await log_activity(
        db,
        policy.id,
        "policy_created",
        actor_ref=initiated_by,
        payload={
            "policyNumber": policy.policy_number,
            "tenantEmail": tenant_email,
            "tenantType": LegalForm.COMPANY.value if tenant.is_company else LegalForm.INDIVIDUAL.value,
        },
        source_ip=source_ip,
    )

    email_sent = await _deliver_invitation(
        db,
        policy,
        tenant_name=payload.tenant_name,
        actor_ref=initiated_by,
        success_action="invitation_sent",
        source_ip=source_ip,
    )
    return InvitationResult(policy=policy, email_sent=email_sent)


async def resend_invitation(
    db: AsyncSession,
    policy: Policy,
    *,
    actor_ref: str,
    source_ip: str | None = None,
    now: datetime | None = None,
) -> InvitationResult:
    """Rotate the access token and send a fresh invitation."""
    if policy.status not in INVITABLE_STATUSES:
        raise StateConflictError(
            code="invitation_not_allowed",
            message="Invitations can only be sent before the tenant starts the application",
            details={"status": policy.status},
        )
    tenant = await require_tenant(db, policy.id)
    policy.access_token, policy.token_expiry = issue_token(now or datetime.now(timezone.utc))
    db.add(policy)
    await _commit(db, "token_rotation_failed", "Failed to update policy")

    email_sent = await _deliver_invitation(
        db,
        policy,
        tenant_name=tenant.display_name,
        actor_ref=actor_ref,
        success_action="invitation_resent",
        source_ip=source_ip,
    )
    return InvitationResult(policy=policy, email_sent=email_sent)


# ---------------------------------------------------------------------------
# Tenant surface
# ---------------------------------------------------------------------------


async def open_policy_for_tenant(
    db: AsyncSession, policy: Policy, *, source_ip: str | None = None
) -> Policy:
    """Mark an invitation as opened the first time the tenant follows the link."""
    if policy.status != PolicyStatus.SENT:
        return policy
    transition(policy, PolicyStatus.PENDING_INTAKE)
    db.add(policy)
    await _commit(db, "policy_open_failed", "Failed to update policy")
    await log_activity(
        db,
        policy.id,
        "invitation_opened",
        actor_ref=TENANT_ACTOR,
        payload={"policyNumber": policy.policy_number},
        source_ip=source_ip,
    )
    return policy


@dataclass
class TenantView:
    policy: Policy
    tenant: Actor
    sections: dict[str, dict[str, Any]]
    documents: list[Document]


async def load_tenant_view(db: AsyncSession, policy: Policy) -> TenantView:
    tenant = await require_tenant(db, policy.id)
    sections = actor_sections.sections_by_actor(await actor_sections.list_sections(db, [tenant.id]))
    documents = await list_documents(db, policy.id, actor_id=tenant.id)
    return TenantView(
        policy=policy,
        tenant=tenant,
        sections=sections.get(tenant.id, {}),
        documents=documents,
    )


async def submit_policy(
    db: AsyncSession,
    policy: Policy,
    *,
    source_ip: str | None = None,
    now: datetime | None = None,
) -> Policy:
    assert_submittable(policy)
    tenant = await require_tenant(db, policy.id)
    present = [section.section_name for section in await actor_sections.list_sections(db, [tenant.id])]
    completeness = await is_complete(db, policy.id, actor_types=SUBMISSION_ACTOR_TYPES)
    evaluate_submission(
        SubmissionCheck(
            missing_sections=missing_sections(REQUIRED_INTAKE_SECTIONS, present),
            missing_documents=list(completeness.missing),
            payment_status=policy.payment_status,
        )
    )

    submitted_at = now or datetime.now(timezone.utc)
    transition(policy, PolicyStatus.SUBMITTED)
    policy.submitted_at = submitted_at
    db.add(policy)
    await _commit(db, "submit_failed", "Failed to submit policy")
    await log_activity(
        db,
        policy.id,
        "policy_submitted",
        actor_ref=TENANT_ACTOR,
        payload={"policyNumber": policy.policy_number, "submittedAt": submitted_at},
        source_ip=source_ip,
    )

    sent = await notifications.send_submission_confirmation(
        tenant_email=policy.tenant_email,
        policy_number=policy.policy_number,
        submitted_at=submitted_at,
    )
    if not sent:
        await log_activity(
            db,
            policy.id,
            "submission_email_failed",
            actor_ref=SYSTEM_ACTOR,
            payload={"tenantEmail": policy.tenant_email},
            source_ip=source_ip,
        )
    return policy


# ---------------------------------------------------------------------------
# Actors
# ---------------------------------------------------------------------------


def reconcile_primary_landlord(
    landlords: Sequence[Actor], preferred_id: UUID | None = None
) -> UUID | None:
    """Pick the landlord that should carry the primary flag.

    The preferred landlord wins, then the current primary, then the earliest one.
    """
    if not landlords:
        return None
    ids = [landlord.id for landlord in landlords]
    if preferred_id is not None and preferred_id in ids:
        return preferred_id
    for landlord in landlords:
        if landlord.is_primary:
            return landlord.id
    return ids[0]


async def _landlords(db: AsyncSession, policy_id: UUID) -> list[Actor]:
    stmt = (
        select(Actor)
        .where(Actor.policy_id == policy_id, Actor.actor_type == ActorType.LANDLORD.value)
        .order_by(Actor.created_at)
    )
    return list((await db.execute(stmt)).scalars().all())


async def _apply_primary(db: AsyncSession, landlords: Sequence[Actor], primary_id: UUID | None) -> None:
    # Demote first: the partial unique index rejects two primaries at flush time.
    demoted = False
    for landlord in landlords:
        if landlord.is_primary and landlord.id != primary_id:
            landlord.is_primary = False
            demoted = True
    if demoted:
        await db.flush()
    for landlord in landlords:
        if landlord.id == primary_id:
            landlord.is_primary = True


async def add_actor(
    db: AsyncSession,
    policy: Policy,
    payload: ActorCreateRequest,
    *,
    actor_ref: str,
    source_ip: str | None = None,
) -> Actor:
    assert_staff_editable(policy)
    actor_type = ActorType(payload.actor_type)
    if actor_type == ActorType.TENANT:
        raise ValidationError(code="tenant_exists", message="Policy already has a tenant")
    if payload.is_primary and actor_type != ActorType.LANDLORD:
        raise ValidationError(code="invalid_primary", message="Only landlords can be primary")

    landlords = await _landlords(db, policy.id) if actor_type == ActorType.LANDLORD else []
    actor = Actor(
        id=uuid4(),
        policy_id=policy.id,
        actor_type=actor_type.value,
        is_company=payload.is_company,
        is_primary=False,
        display_name=payload.display_name,
        email=str(payload.contact.email).lower() if payload.contact.email else None,
        phone=payload.contact.phone,
        created_at=datetime.now(timezone.utc),
    )
    make_primary = actor_type == ActorType.LANDLORD and (payload.is_primary or not landlords)
    try:
        if make_primary:
            await _apply_primary(db, landlords, actor.id)
        actor.is_primary = make_primary
        db.add(actor)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("Adding %s to policy %s failed", actor_type.value, policy.id)
        raise InternalError(code="actor_create_failed", message="Failed to add actor") from exc

    await log_activity(
        db,
        policy.id,
        "actor_added",
        actor_ref=actor_ref,
        payload={"actorId": str(actor.id), "actorType": actor.actor_type, "isPrimary": actor.is_primary},
        source_ip=source_ip,
    )
    return actor


async def remove_actor(
    db: AsyncSession,
    policy: Policy,
    actor: Actor,
    *,
    actor_ref: str,
    source_ip: str | None = None,
) -> None:
    assert_staff_editable(policy)
    if actor.actor_type == ActorType.TENANT:
        raise ValidationError(code="tenant_required", message="The tenant cannot be removed")

    promoted: UUID | None = None
    try:
        was_primary = bool(actor.is_primary)
        await db.delete(actor)
        await db.flush()
        if was_primary:
            remaining = [landlord for landlord in await _landlords(db, policy.id) if landlord.id != actor.id]
            promoted = reconcile_primary_landlord(remaining)
            await _apply_primary(db, remaining, promoted)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("Removing actor %s from policy %s failed", actor.id, policy.id)
        raise InternalError(code="actor_delete_failed", message="Failed to remove actor") from exc

    await log_activity(
        db,
        policy.id,
        "actor_removed",
        actor_ref=actor_ref,
        payload={
            "actorId": str(actor.id),
            "actorType": actor.actor_type,
            "promotedActorId": str(promoted) if promoted else None,
        },
        source_ip=source_ip,
    )


async def set_primary_landlord(
    db: AsyncSession,
    policy: Policy,
    actor: Actor,
    *,
    actor_ref: str,
    source_ip: str | None = None,
) -> Actor:
    assert_staff_editable(policy)
    if actor.actor_type != ActorType.LANDLORD:
        raise ValidationError(code="invalid_primary", message="Only landlords can be primary")
    if actor.is_primary:
        return actor
    try:
        landlords = await _landlords(db, policy.id)
        await _apply_primary(db, landlords, actor.id)
        actor.is_primary = True
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("Setting primary landlord %s failed", actor.id)
        raise InternalError(code="primary_update_failed", message="Failed to update actor") from exc

    await log_activity(
        db,
        policy.id,
        "primary_landlord_changed",
        actor_ref=actor_ref,
        payload={"actorId": str(actor.id)},
        source_ip=source_ip,
    )
    return actor


async def upsert_actor_section(
    db: AsyncSession,
    policy: Policy,
    actor: Actor,
    section_name: str,
    body: Any,
    *,
    actor_ref: str,
    source_ip: str | None = None,
) -> dict[str, Any]:
    assert_staff_editable(policy)
    section = actor_sections.parse_section_name(section_name)
    data = actor_sections.validate_section_payload(section, is_company=bool(actor.is_company), body=body)
    try:
        await actor_sections.upsert_section(db, actor.id, section, data)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("Saving section %s for actor %s failed", section.value, actor.id)
        raise InternalError(code="section_save_failed", message="Failed to save section") from exc

    await log_activity(
        db,
        policy.id,
        "section_updated",
        actor_ref=actor_ref,
        payload={"actorId": str(actor.id), "section": section.value},
        source_ip=source_ip,
    )
    return data


# ---------------------------------------------------------------------------
# Payment and lifecycle
# ---------------------------------------------------------------------------


async def record_payment_status(
    db: AsyncSession,
    policy: Policy,
    payment_status: PaymentStatus | str,
    *,
    reference: str | None = None,
    actor_ref: str,
    source_ip: str | None = None,
) -> Policy:
    if policy.status in {status.value for status in TERMINAL_STATUSES}:
        raise not_modifiable(policy.status)
    target = PaymentStatus(payment_status).value
    previous = policy.payment_status
    if previous == target:
        return policy
    policy.payment_status = target
    db.add(policy)
    await _commit(db, "payment_update_failed", "Failed to update payment status")
    await log_activity(
        db,
        policy.id,
        "payment_status_changed",
        actor_ref=actor_ref,
        payload={"from": previous, "to": target, "reference": reference},
        source_ip=source_ip,
    )
    return policy


async def transition_policy(
    db: AsyncSession,
    policy: Policy,
    target: PolicyStatus | str,
    *,
    reason: str | None = None,
    actor_ref: str,
    source_ip: str | None = None,
) -> Policy:
    target_status = PolicyStatus(target)
    if target_status.value not in STAFF_TRANSITION_TARGETS:
        raise StateConflictError(
            code="invalid_transition",
            message=f"Status {target_status.value} cannot be set manually",
            details={"from": policy.status, "to": target_status.value},
        )
    if target_status == PolicyStatus.CONTRACT_PENDING:
        progress = (await review.review_summary(db, policy)).progress
        if not progress.is_complete:
            raise StateConflictError(
                code="review_incomplete",
                message="Every section and document must be approved first",
                details=progress.as_dict(),
            )

    previous = policy.status
    transition(policy, target_status)
    if previous == policy.status:
        return policy
    db.add(policy)
    await _commit(db, "status_update_failed", "Failed to update policy status")
    await log_activity(
        db,
        policy.id,
        "status_changed",
        actor_ref=actor_ref,
        payload={"from": previous, "to": policy.status, "reason": reason},
        source_ip=source_ip,
    )
    return policy


async def expire_stale_policies(db: AsyncSession, now: datetime | None = None) -> int:
    """Move open policies whose access token lapsed to EXPIRED; returns how many moved."""
    current = now or datetime.now(timezone.utc)
    stmt = select(Policy).where(
        Policy.status.in_(sorted(EXPIRABLE_STATUSES)),
        Policy.token_expiry.is_not(None),
        Policy.token_expiry <= current,
    )
    stale = list((await db.execute(stmt)).scalars().all())
    if not stale:
        return 0
    previous = {policy.id: policy.status for policy in stale}
    for policy in stale:
        transition(policy, PolicyStatus.EXPIRED)
        db.add(policy)
    await _commit(db, "expiry_sweep_failed", "Failed to expire policies")
    for policy in stale:
        await log_activity(
            db,
            policy.id,
            "policy_expired",
            actor_ref=SYSTEM_ACTOR,
            payload={"from": previous[policy.id], "tokenExpiry": policy.token_expiry},
        )
    return len(stale)
