from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from rentguard.models.policy import Policy
from rentguard.schemas.enums import PaymentStatus, PolicyStatus
from rentguard.services.errors import IncompletenessError, StateConflictError, not_modifiable

TERMINAL_STATUSES = frozenset({PolicyStatus.REJECTED, PolicyStatus.EXPIRED, PolicyStatus.CANCELLED})

_FORWARD_EDGES: dict[PolicyStatus, frozenset[PolicyStatus]] = {
    PolicyStatus.DRAFT: frozenset({PolicyStatus.SENT, PolicyStatus.PENDING_INTAKE}),
    PolicyStatus.SENT: frozenset({PolicyStatus.PENDING_INTAKE}),
    PolicyStatus.PENDING_INTAKE: frozenset({PolicyStatus.INTAKE_IN_PROGRESS}),
    PolicyStatus.INTAKE_IN_PROGRESS: frozenset({PolicyStatus.SUBMITTED}),
    PolicyStatus.SUBMITTED: frozenset({PolicyStatus.UNDER_REVIEW}),
    PolicyStatus.UNDER_REVIEW: frozenset({PolicyStatus.CONTRACT_PENDING}),
    PolicyStatus.CONTRACT_PENDING: frozenset(),
}

ALLOWED_TRANSITIONS: dict[PolicyStatus, frozenset[PolicyStatus]] = {
    status: edges | TERMINAL_STATUSES for status, edges in _FORWARD_EDGES.items()
}
ALLOWED_TRANSITIONS.update({status: frozenset() for status in TERMINAL_STATUSES})

INTAKE_STATUSES = frozenset({PolicyStatus.PENDING_INTAKE.value, PolicyStatus.INTAKE_IN_PROGRESS.value})
STAFF_EDITABLE_STATUSES = frozenset(
    {
        PolicyStatus.DRAFT.value,
        PolicyStatus.SENT.value,
        PolicyStatus.PENDING_INTAKE.value,
        PolicyStatus.INTAKE_IN_PROGRESS.value,
    }
)
REVIEWABLE_STATUSES = frozenset({PolicyStatus.SUBMITTED.value, PolicyStatus.UNDER_REVIEW.value})
SUBMITTED_STATUSES = frozenset(
    {
        PolicyStatus.SUBMITTED.value,
        PolicyStatus.UNDER_REVIEW.value,
        PolicyStatus.CONTRACT_PENDING.value,
    }
)
INVITABLE_STATUSES = frozenset({PolicyStatus.DRAFT.value, PolicyStatus.SENT.value})


def _as_status(value: str | PolicyStatus) -> PolicyStatus:
    try:
        return PolicyStatus(value)
    except ValueError as exc:
        raise StateConflictError(
            code="unknown_status",
            message=f"Unknown policy status: {value}",
        ) from exc


def can_transition(current: str | PolicyStatus, target: str | PolicyStatus) -> bool:
    current_status = _as_status(current)
    target_status = _as_status(target)
    if current_status == target_status:
        return True
    return target_status in ALLOWED_TRANSITIONS[current_status]


def transition(policy: Policy, target: str | PolicyStatus) -> None:
    """Move ``policy`` to ``target`` or raise before touching it."""
    target_status = _as_status(target)
    if not can_transition(policy.status, target_status):
        raise StateConflictError(
            code="invalid_transition",
            message=f"Cannot change policy status from {policy.status} to {target_status.value}",
            details={"from": policy.status, "to": target_status.value},
        )
    policy.status = target_status.value


def assert_intake_open(policy: Policy) -> None:
    if policy.status not in INTAKE_STATUSES:
        raise not_modifiable(policy.status)


def assert_staff_editable(policy: Policy) -> None:
    if policy.status not in STAFF_EDITABLE_STATUSES:
        raise not_modifiable(policy.status)


def assert_reviewable(policy: Policy) -> None:
    if policy.status not in REVIEWABLE_STATUSES:
        raise StateConflictError(
            code="policy_not_reviewable",
            message="Policy is not available for review in its current state",
            details={"status": policy.status},
        )


def assert_submittable(policy: Policy) -> None:
    if policy.status in SUBMITTED_STATUSES:
        raise StateConflictError(
            code="already_submitted",
            message="Policy has already been submitted",
            details={"status": policy.status},
        )
    if policy.status != PolicyStatus.INTAKE_IN_PROGRESS:
        raise StateConflictError(
            code="not_in_progress",
            message="Policy must be in progress to submit",
            details={"status": policy.status},
        )


@dataclass(frozen=True)
class SubmissionCheck:
    missing_sections: list[str] = field(default_factory=list)
    missing_documents: list[str] = field(default_factory=list)
    payment_status: str = PaymentStatus.PENDING.value


def evaluate_submission(check: SubmissionCheck) -> None:
    """Raise the first blocking reason, in section, document, payment order."""
    if check.missing_sections:
        raise IncompletenessError(
            code="incomplete_application",
            message="Incomplete application",
            details={
                "missingSections": list(check.missing_sections),
                "missingDocuments": list(check.missing_documents),
            },
            missing=[*check.missing_sections, *check.missing_documents],
        )
    if check.missing_documents:
        raise IncompletenessError(
            code="missing_documents",
            message="Missing required documents",
            details={"missingDocuments": list(check.missing_documents)},
            missing=list(check.missing_documents),
        )
    if check.payment_status != PaymentStatus.COMPLETED:
        raise IncompletenessError(
            code="payment_incomplete",
            message="Payment must be completed before submitting",
            details={"paymentStatus": check.payment_status},
            missing=["payment"],
        )


def missing_sections(required: Iterable[str], present: Iterable[str]) -> list[str]:
    present_set = set(present)
    return [name for name in required if name not in present_set]
