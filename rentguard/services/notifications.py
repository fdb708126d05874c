from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

import httpx

from rentguard.core.settings import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    text: str
    template: str
    variables: dict


def tenant_portal_url(access_token: str) -> str:
    return f"{settings.public_app_url.rstrip('/')}/tenant/{access_token}"


async def send_email(message: EmailMessage) -> bool:
    """Deliver ``message``; returns False on any delivery failure and never raises."""
    if not settings.email_api_url:
        logger.info("Email delivery not configured; logged %s to %s", message.template, message.to)
        return True
    headers = {"Authorization": f"Bearer {settings.email_api_key}"} if settings.email_api_key else {}
    payload = {
        "from": settings.email_from,
        "to": [message.to],
        "subject": message.subject,
        "text": message.text,
        "template": message.template,
        "variables": message.variables,
    }
    try:
        async with httpx.AsyncClient(timeout=settings.email_timeout_seconds) as client:
            response = await client.post(settings.email_api_url, json=payload, headers=headers)
            response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning("Email %s to %s failed: %s", message.template, message.to, exc)
        return False
    return True


async def send_policy_invitation(
    *,
    tenant_email: str,
    tenant_name: str | None,
    policy_number: str,
    access_token: str,
    token_expiry: datetime,
) -> bool:
    url = tenant_portal_url(access_token)
    greeting = f"Hello {tenant_name}" if tenant_name else "Hello"
    return await send_email(
        EmailMessage(
            to=tenant_email,
            subject=f"Complete your rental guarantee application {policy_number}",
            text=(
                f"{greeting}, your application {policy_number} is ready. "
                f"Complete it at {url} before {token_expiry.date().isoformat()}."
            ),
            template="policy_invitation",
            variables={
                "tenantName": tenant_name,
                "policyNumber": policy_number,
                "url": url,
                "expiresAt": token_expiry.isoformat(),
            },
        )
    )


async def send_submission_confirmation(
    *, tenant_email: str, policy_number: str, submitted_at: datetime
) -> bool:
    return await send_email(
        EmailMessage(
            to=tenant_email,
            subject=f"We received your application {policy_number}",
            text=(
                f"Your application {policy_number} was submitted on "
                f"{submitted_at.date().isoformat()} and is now under review."
            ),
            template="policy_submitted",
            variables={"policyNumber": policy_number, "submittedAt": submitted_at.isoformat()},
        )
    )
