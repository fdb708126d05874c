from json import JSONDecodeError

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from rentguard.core.limiter import limiter, token_rate_limit
from rentguard.db.session import get_db
from rentguard.schemas.documents import DocumentUploadResponse, UploadedDocument
from rentguard.schemas.policies import (
    ActorDTO,
    DocumentDTO,
    StepUpdateResponse,
    SubmitResponse,
    SuccessResponse,
    TenantSnapshot,
    TenantSnapshotResponse,
)
from rentguard.services import documents, policies, steps, token_gate
from rentguard.services.activity_log import client_ip
from rentguard.services.errors import ValidationError
from rentguard.services.policy_status import assert_intake_open

router = APIRouter(prefix="/tenant", tags=["tenant"])


async def _read_json(request: Request) -> object:
    try:
        return await request.json()
    except (JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValidationError(
            code="invalid_data",
            message="Invalid data",
            details={"issues": [{"path": "", "message": "Body must be valid JSON", "type": "json_invalid"}]},
        ) from exc


@router.get(
    "/{token}",
    response_model=TenantSnapshotResponse,
    summary="Load the tenant application behind an access token",
)
@limiter.limit(token_rate_limit)
async def get_tenant_policy(
    request: Request,
    token: str,
    db: AsyncSession = Depends(get_db),
) -> TenantSnapshotResponse:
    policy = await token_gate.resolve_policy(db, token)
    await policies.open_policy_for_tenant(db, policy, source_ip=client_ip(request))
    view = await policies.load_tenant_view(db, policy)
    return TenantSnapshotResponse(
        policy=TenantSnapshot(
            id=policy.id,
            policy_number=policy.policy_number,
            status=policy.status,
            current_step=policy.current_step,
            payment_status=policy.payment_status,
            token_expiry=policy.token_expiry,
            tenant=ActorDTO.model_validate(view.tenant, from_attributes=True),
            sections=view.sections,
            documents=[DocumentDTO.model_validate(doc, from_attributes=True) for doc in view.documents],
        )
    )


@router.put(
    "/{token}/step/{step}",
    response_model=StepUpdateResponse,
    summary="Save one intake step",
)
@limiter.limit(token_rate_limit)
async def update_step(
    request: Request,
    token: str,
    step: str,
    db: AsyncSession = Depends(get_db),
) -> StepUpdateResponse:
    kind = steps.parse_step(step)
    policy = await token_gate.resolve_policy(db, token)
    assert_intake_open(policy)
    tenant = await policies.require_tenant(db, policy.id)
    body = None
    if steps.section_for_step(kind) is not None:
        body = await _read_json(request)
    result = await steps.apply_step_update(
        db, policy, tenant, kind, body, source_ip=client_ip(request)
    )
    return StepUpdateResponse(current_step=result.current_step, status=result.status)


@router.post(
    "/{token}/upload",
    response_model=DocumentUploadResponse,
    summary="Upload a tenant document",
)
@limiter.limit(token_rate_limit)
async def upload_document(
    request: Request,
    token: str,
    file: UploadFile | None = File(default=None),
    category: str | None = Form(default=None),
    db: AsyncSession = Depends(get_db),
) -> DocumentUploadResponse:
    policy = await token_gate.resolve_policy(db, token)
    tenant = await policies.require_tenant(db, policy.id)
    document = await documents.upload_document(
        db,
        policy,
        tenant,
        file=file,
        category=category,
        source_ip=client_ip(request),
    )
    return DocumentUploadResponse(
        document=UploadedDocument(
            id=document.id,
            category=document.category,
            original_name=document.original_name,
            file_size=document.file_size,
            created_at=document.created_at,
        )
    )


@router.delete(
    "/{token}/upload",
    response_model=SuccessResponse,
    summary="Delete a tenant document",
)
@limiter.limit(token_rate_limit)
async def delete_document(
    request: Request,
    token: str,
    document_id: str | None = Query(default=None, alias="documentId"),
    db: AsyncSession = Depends(get_db),
) -> SuccessResponse:
    parsed_id = documents.require_document_id(document_id)
    policy = await token_gate.resolve_policy(db, token)
    await documents.delete_document(db, policy, parsed_id, source_ip=client_ip(request))
    return SuccessResponse()


@router.post(
    "/{token}/submit",
    response_model=SubmitResponse,
    summary="Submit the tenant application for review",
)
@limiter.limit(token_rate_limit)
async def submit_policy(
    request: Request,
    token: str,
    db: AsyncSession = Depends(get_db),
) -> SubmitResponse:
    policy = await token_gate.resolve_policy(db, token)
    submitted = await policies.submit_policy(db, policy, source_ip=client_ip(request))
    return SubmitResponse(
        message="Application submitted successfully",
        policy_id=submitted.id,
        submitted_at=submitted.submitted_at,
    )
