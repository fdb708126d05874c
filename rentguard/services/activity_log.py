from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rentguard.core.logging import get_audit_logger
from rentguard.models.activity_log import ActivityLog

audit_logger = get_audit_logger()

TENANT_ACTOR = "tenant"
SYSTEM_ACTOR = "system"


def serialize_for_activity(value: Any) -> Any:
    return jsonable_encoder(
        value,
        custom_encoder={
            Decimal: lambda v: str(v),
            datetime: lambda v: v.isoformat(),
            date: lambda v: v.isoformat(),
            Enum: lambda v: v.value,
        },
    )


def client_ip(request: Request | None) -> str | None:
    if request is None or request.client is None:
        return None
    return request.client.host


async def log_activity(
    db: AsyncSession,
    policy_id: UUID,
    action: str,
    *,
    actor_ref: str,
    payload: dict[str, Any] | None = None,
    source_ip: str | None = None,
) -> None:
    """Append an activity entry in its own commit. Failures are logged, never raised."""
    serialized = serialize_for_activity(payload) if payload is not None else None
    audit_logger.info(
        "%s policy=%s by=%s",
        action,
        policy_id,
        actor_ref,
        extra={"activity": {"action": action, "payload": serialized, "source_ip": source_ip}},
    )
    entry = ActivityLog(
        policy_id=policy_id,
        action=action,
        actor_ref=actor_ref,
        payload=serialized,
        source_ip=source_ip,
    )
    try:
        db.add(entry)
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        audit_logger.exception("Failed to persist activity %s for policy %s", action, policy_id)
