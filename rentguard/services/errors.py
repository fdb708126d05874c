from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(eq=False)
class PolicyServiceError(Exception):
    code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    status_code = 400

    def __str__(self) -> str:
        return self.message


@dataclass(eq=False)
class NotFoundError(PolicyServiceError):
    status_code = 404


@dataclass(eq=False)
class ValidationError(PolicyServiceError):
    pass


@dataclass(eq=False)
class StateConflictError(PolicyServiceError):
    pass


@dataclass(eq=False)
class IncompletenessError(PolicyServiceError):
    missing: list[str] = field(default_factory=list)


@dataclass(eq=False)
class InternalError(PolicyServiceError):
    status_code = 500


INVALID_TOKEN_MESSAGE = "Invalid or expired token"
NOT_MODIFIABLE_MESSAGE = "Policy cannot be modified in its current state"


def invalid_token() -> NotFoundError:
    return NotFoundError(code="invalid_token", message=INVALID_TOKEN_MESSAGE)


def not_modifiable(status: str) -> StateConflictError:
    return StateConflictError(
        code="policy_not_modifiable",
        message=NOT_MODIFIABLE_MESSAGE,
        details={"status": status},
    )
