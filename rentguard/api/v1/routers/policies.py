from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from rentguard.api import deps
from rentguard.db.session import get_db
from rentguard.schemas.enums import PolicyStatus
from rentguard.schemas.policies import (
    ActorCreateRequest,
    ActorDetail,
    ActorDTO,
    CompletenessResponse,
    DocumentDTO,
    InitiatedPolicy,
    InvitationResponse,
    PaymentStatusRequest,
    PolicyDetail,
    PolicyInitiateRequest,
    PolicyInitiateResponse,
    PolicyListResponse,
    PolicySummary,
    StatusTransitionRequest,
    SuccessResponse,
)
from rentguard.services import policies
from rentguard.services.activity_log import client_ip

router = APIRouter(prefix="/policies", tags=["policies"])


def _initiated(result: policies.InvitationResult) -> InitiatedPolicy:
    policy = result.policy
    return InitiatedPolicy(
        id=policy.id,
        tenant_email=policy.tenant_email,
        status=policy.status,
        access_token=policy.access_token,
        token_expiry=policy.token_expiry,
        email_sent=result.email_sent,
    )


def _detail(view: policies.PolicyView) -> PolicyDetail:
    base = PolicySummary.model_validate(view.policy, from_attributes=True)
    policy = view.policy
    return PolicyDetail(
        **base.model_dump(),
        tenant_phone=policy.tenant_phone,
        property_reference=policy.property_reference,
        rent_amount=policy.rent_amount,
        premium_amount=policy.premium_amount,
        tenant_share_percent=policy.tenant_share_percent,
        initiated_by=policy.initiated_by,
        actors=[
            ActorDetail(
                **ActorDTO.model_validate(item.actor, from_attributes=True).model_dump(),
                sections=item.sections,
                documents=[
                    DocumentDTO.model_validate(doc, from_attributes=True) for doc in item.documents
                ],
            )
            for item in view.actors
        ],
    )


@router.post(
    "/initiate",
    response_model=PolicyInitiateResponse,
    summary="Create a policy and invite the tenant",
)
async def initiate_policy(
    payload: PolicyInitiateRequest,
    request: Request,
    staff: deps.StaffPrincipal = Depends(deps.require_staff),
    db: AsyncSession = Depends(get_db),
) -> PolicyInitiateResponse:
    result = await policies.initiate_policy(
        db, payload, initiated_by=staff.id, source_ip=client_ip(request)
    )
    message = (
        "Policy created and invitation sent"
        if result.email_sent
        else "Policy created but the invitation email could not be sent"
    )
    return PolicyInitiateResponse(policy=_initiated(result), message=message)


@router.get("", response_model=PolicyListResponse, summary="List policies")
async def list_policies(
    status: PolicyStatus | None = None,
    search: str | None = Query(default=None, max_length=255),
    limit: int = Query(default=policies.DEFAULT_PAGE_SIZE, ge=1, le=policies.MAX_PAGE_SIZE),
    offset: int = Query(default=0, ge=0),
    _: deps.StaffPrincipal = Depends(deps.require_staff),
    db: AsyncSession = Depends(get_db),
) -> PolicyListResponse:
    items, total = await policies.list_policies(
        db,
        status=status.value if status else None,
        search=search,
        limit=limit,
        offset=offset,
    )
    return PolicyListResponse(
        items=[PolicySummary.model_validate(item, from_attributes=True) for item in items],
        total=total,
    )


@router.get("/{policy_id}", response_model=PolicyDetail, summary="Get a policy with its actors")
async def get_policy(
    policy_id: UUID,
    _: deps.StaffPrincipal = Depends(deps.require_staff),
    db: AsyncSession = Depends(get_db),
) -> PolicyDetail:
    policy = await policies.get_policy(db, policy_id)
    return _detail(await policies.get_policy_detail(db, policy))


@router.get(
    "/{policy_id}/completeness",
    response_model=CompletenessResponse,
    summary="Check required documents for every actor",
)
async def get_completeness(
    policy_id: UUID,
    _: deps.StaffPrincipal = Depends(deps.require_staff),
    db: AsyncSession = Depends(get_db),
) -> CompletenessResponse:
    policy = await policies.get_policy(db, policy_id)
    result = await policies.get_completeness(db, policy)
    return CompletenessResponse(
        valid=result.valid, missing=result.missing, missing_by_actor=result.missing_by_actor
    )


@router.post(
    "/{policy_id}/resend-invitation",
    response_model=InvitationResponse,
    summary="Rotate the access token and resend the invitation",
)
async def resend_invitation(
    policy_id: UUID,
    request: Request,
    staff: deps.StaffPrincipal = Depends(deps.require_staff),
    db: AsyncSession = Depends(get_db),
) -> InvitationResponse:
    policy = await policies.get_policy(db, policy_id)
    result = await policies.resend_invitation(
        db, policy, actor_ref=staff.id, source_ip=client_ip(request)
    )
    message = "Invitation sent" if result.email_sent else "The invitation email could not be sent"
    return InvitationResponse(policy=_initiated(result), message=message)


@router.post(
    "/{policy_id}/transition",
    response_model=PolicySummary,
    summary="Move a policy to another status",
)
async def transition_policy(
    policy_id: UUID,
    payload: StatusTransitionRequest,
    request: Request,
    staff: deps.StaffPrincipal = Depends(deps.require_staff),
    db: AsyncSession = Depends(get_db),
) -> PolicySummary:
    policy = await policies.get_policy(db, policy_id)
    updated = await policies.transition_policy(
        db,
        policy,
        payload.status,
        reason=payload.reason,
        actor_ref=staff.id,
        source_ip=client_ip(request),
    )
    return PolicySummary.model_validate(updated, from_attributes=True)


@router.post(
    "/{policy_id}/payment",
    response_model=PolicySummary,
    summary="Record the payment outcome",
)
async def record_payment(
    policy_id: UUID,
    payload: PaymentStatusRequest,
    request: Request,
    staff: deps.StaffPrincipal = Depends(deps.require_staff),
    db: AsyncSession = Depends(get_db),
) -> PolicySummary:
    policy = await policies.get_policy(db, policy_id)
    updated = await policies.record_payment_status(
        db,
        policy,
        payload.payment_status,
        reference=payload.reference,
        actor_ref=staff.id,
        source_ip=client_ip(request),
    )
    return PolicySummary.model_validate(updated, from_attributes=True)


@router.post(
    "/{policy_id}/actors",
    response_model=ActorDTO,
    summary="Add a landlord, aval or joint obligor",
)
async def add_actor(
    policy_id: UUID,
    payload: ActorCreateRequest,
    request: Request,
    staff: deps.StaffPrincipal = Depends(deps.require_staff),
    db: AsyncSession = Depends(get_db),
) -> ActorDTO:
    policy = await policies.get_policy(db, policy_id)
    actor = await policies.add_actor(
        db, policy, payload, actor_ref=staff.id, source_ip=client_ip(request)
    )
    return ActorDTO.model_validate(actor, from_attributes=True)


@router.delete(
    "/{policy_id}/actors/{actor_id}",
    response_model=SuccessResponse,
    summary="Remove an actor",
)
async def remove_actor(
    policy_id: UUID,
    actor_id: UUID,
    request: Request,
    staff: deps.StaffPrincipal = Depends(deps.require_staff),
    db: AsyncSession = Depends(get_db),
) -> SuccessResponse:
    policy = await policies.get_policy(db, policy_id)
    actor = await policies.get_policy_actor(db, policy.id, actor_id)
    await policies.remove_actor(db, policy, actor, actor_ref=staff.id, source_ip=client_ip(request))
    return SuccessResponse()


@router.post(
    "/{policy_id}/actors/{actor_id}/primary",
    response_model=ActorDTO,
    summary="Flag a landlord as the primary owner",
)
async def set_primary_landlord(
    policy_id: UUID,
    actor_id: UUID,
    request: Request,
    staff: deps.StaffPrincipal = Depends(deps.require_staff),
    db: AsyncSession = Depends(get_db),
) -> ActorDTO:
    policy = await policies.get_policy(db, policy_id)
    actor = await policies.get_policy_actor(db, policy.id, actor_id)
    updated = await policies.set_primary_landlord(
        db, policy, actor, actor_ref=staff.id, source_ip=client_ip(request)
    )
    return ActorDTO.model_validate(updated, from_attributes=True)


@router.put(
    "/{policy_id}/actors/{actor_id}/sections/{section}",
    summary="Replace one section of an actor's data",
)
async def upsert_actor_section(
    policy_id: UUID,
    actor_id: UUID,
    section: str,
    request: Request,
    body: dict = Body(...),
    staff: deps.StaffPrincipal = Depends(deps.require_staff),
    db: AsyncSession = Depends(get_db),
) -> dict:
    policy = await policies.get_policy(db, policy_id)
    actor = await policies.get_policy_actor(db, policy.id, actor_id)
    data = await policies.upsert_actor_section(
        db, policy, actor, section, body, actor_ref=staff.id, source_ip=client_ip(request)
    )
    return {"success": True, "section": section, "data": data}
