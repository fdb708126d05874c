from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rentguard.core.context import set_policy_id
from rentguard.core.security import generate_access_token
from rentguard.core.settings import settings
from rentguard.models.policy import Policy
from rentguard.services.errors import invalid_token


def is_token_live(expiry: datetime | None, now: datetime) -> bool:
    if expiry is None:
        return False
    if expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=timezone.utc)
    return expiry > now


def token_expiry_from(now: datetime) -> datetime:
    return now + timedelta(days=settings.access_token_ttl_days)


def issue_token(now: datetime) -> tuple[str, datetime]:
    return generate_access_token(), token_expiry_from(now)


async def resolve_policy(
    db: AsyncSession, token: str | None, *, now: datetime | None = None
) -> Policy:
    """Return the policy owning ``token``.

    Unknown, blank and expired tokens all raise the same ``NotFoundError``.
    """
    if not token or not token.strip():
        raise invalid_token()
    stmt = select(Policy).where(Policy.access_token == token)
    policy = (await db.execute(stmt)).scalar_one_or_none()
    current = now or datetime.now(timezone.utc)
    if policy is None or not is_token_live(policy.token_expiry, current):
        raise invalid_token()
    set_policy_id(str(policy.id))
    return policy
