from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rentguard.models.actor import Actor
from rentguard.models.policy import Policy
from rentguard.schemas.enums import PaymentStatus, PolicyStatus, SectionName
from rentguard.services import actor_sections
from rentguard.services.activity_log import TENANT_ACTOR, log_activity
from rentguard.services.errors import InternalError, StateConflictError, ValidationError
from rentguard.services.policy_status import assert_intake_open, transition

logger = logging.getLogger(__name__)


class StepKind(IntEnum):
    PROFILE = 1
    EMPLOYMENT = 2
    REFERENCES = 3
    DOCUMENTS = 4
    GUARANTOR = 5
    PAYMENT = 6
    REVIEW = 7


LAST_STEP = StepKind.REVIEW


@dataclass(frozen=True)
class StepResult:
    current_step: int
    status: str


def parse_step(raw: str | int) -> StepKind:
    """Accept only a plain decimal step number in range."""
    text = str(raw).strip()
    if not text.isdigit() or not text.isascii():
        raise _invalid_step(raw)
    try:
        return StepKind(int(text))
    except ValueError as exc:
        raise _invalid_step(raw) from exc


def _invalid_step(raw: Any) -> ValidationError:
    return ValidationError(
        code="invalid_step",
        message="Invalid step number",
        details={"step": str(raw), "min": int(StepKind.PROFILE), "max": int(LAST_STEP)},
    )


def section_for_step(kind: StepKind) -> SectionName | None:
    if kind == StepKind.PROFILE:
        return SectionName.PERSONAL_INFO
    if kind == StepKind.EMPLOYMENT:
        return SectionName.EMPLOYMENT
    if kind == StepKind.REFERENCES:
        return SectionName.REFERENCES
    if kind == StepKind.DOCUMENTS:
        return SectionName.DOCUMENTS
    if kind == StepKind.GUARANTOR:
        return SectionName.PROPERTY_GUARANTEE
    if kind == StepKind.PAYMENT or kind == StepKind.REVIEW:
        return None
    raise ValueError(f"Unhandled step: {kind}")


# Sections the tenant must have saved before submitting.
REQUIRED_INTAKE_SECTIONS: tuple[str, ...] = tuple(
    section.value
    for section in (section_for_step(kind) for kind in StepKind)
    if section is not None
)


def next_current_step(current: int, kind: StepKind) -> int:
    return max(int(current or 1), int(kind) + 1)


def validate_step_payload(kind: StepKind, *, is_company: bool, body: Any) -> dict[str, Any] | None:
    section = section_for_step(kind)
    if section is None:
        return None
    return actor_sections.validate_section_payload(section, is_company=is_company, body=body)


def assert_step_allowed(policy: Policy, kind: StepKind) -> None:
    if kind == StepKind.REVIEW and policy.payment_status != PaymentStatus.COMPLETED:
        raise StateConflictError(
            code="payment_incomplete",
            message="Payment must be completed before proceeding to review",
            details={"paymentStatus": policy.payment_status},
        )


async def apply_step_update(
    db: AsyncSession,
    policy: Policy,
    tenant: Actor,
    kind: StepKind,
    body: Any,
    *,
    source_ip: str | None = None,
) -> StepResult:
    """Validate and persist one step: the section upsert and the policy step/status commit together."""
    assert_intake_open(policy)
    assert_step_allowed(policy, kind)
    data = validate_step_payload(kind, is_company=bool(tenant.is_company), body=body)
    section = section_for_step(kind)

    new_step = next_current_step(policy.current_step, kind)
    try:
        if section is not None and data is not None:
            await actor_sections.upsert_section(db, tenant.id, section, data)
        policy.current_step = new_step
        transition(policy, PolicyStatus.INTAKE_IN_PROGRESS)
        db.add(policy)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("Step %s update failed for policy %s", int(kind), policy.id)
        raise InternalError(code="step_update_failed", message="Failed to save step") from exc

    result = StepResult(current_step=new_step, status=PolicyStatus.INTAKE_IN_PROGRESS.value)
    await log_activity(
        db,
        policy.id,
        f"step_{int(kind)}_completed",
        actor_ref=TENANT_ACTOR,
        payload={"step": int(kind), "currentStep": new_step},
        source_ip=source_ip,
    )
    return result
