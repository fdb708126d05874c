from __future__ import annotations

from collections.abc import Sequence
from typing import Any
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from rentguard.models.actor import Actor, ActorSection
from rentguard.schemas.enums import ActorType, SectionName
from rentguard.schemas.sections import dump_section, section_schema
from rentguard.services.errors import ValidationError


def validation_issues(exc: PydanticValidationError) -> list[dict[str, str]]:
    issues: list[dict[str, str]] = []
    for error in exc.errors():
        issues.append(
            {
                "path": ".".join(str(part) for part in error.get("loc") or ()),
                "message": str(error.get("msg") or "Invalid value"),
                "type": str(error.get("type") or "value_error"),
            }
        )
    return issues


def parse_section_name(raw: str) -> SectionName:
    try:
        return SectionName(raw)
    except ValueError as exc:
        raise ValidationError(
            code="invalid_section",
            message="Invalid section",
            details={"section": raw, "allowed": [section.value for section in SectionName]},
        ) from exc


def validate_section_payload(section: SectionName, *, is_company: bool, body: Any) -> dict[str, Any]:
    """Validate ``body`` for ``section`` and return the exact dict that gets stored."""
    schema = section_schema(section, is_company=is_company)
    if not isinstance(body, dict):
        raise ValidationError(
            code="invalid_data",
            message="Invalid data",
            details={"issues": [{"path": "", "message": "Expected a JSON object", "type": "dict_type"}]},
        )
    try:
        model = schema.model_validate(body)
    except PydanticValidationError as exc:
        raise ValidationError(
            code="invalid_data",
            message="Invalid data",
            details={"issues": validation_issues(exc)},
        ) from exc
    return dump_section(model)


async def upsert_section(
    db: AsyncSession, actor_id: UUID, section: SectionName, data: dict[str, Any]
) -> None:
    """Replace the whole section document; never merges with the stored one.

    Runs inside the caller's transaction; the caller commits.
    """
    stmt = insert(ActorSection).values(actor_id=actor_id, section_name=section.value, data=data)
    stmt = stmt.on_conflict_do_update(
        constraint="uq_actor_sections_actor_section",
        set_={"data": stmt.excluded.data, "updated_at": func.now()},
    )
    await db.execute(stmt)


async def get_section(db: AsyncSession, actor_id: UUID, section: SectionName) -> dict[str, Any] | None:
    stmt = select(ActorSection).where(
        ActorSection.actor_id == actor_id,
        ActorSection.section_name == section.value,
    )
    record = (await db.execute(stmt)).scalar_one_or_none()
    return record.data if record else None


async def list_sections(db: AsyncSession, actor_ids: Sequence[UUID]) -> list[ActorSection]:
    if not actor_ids:
        return []
    stmt = select(ActorSection).where(ActorSection.actor_id.in_(list(actor_ids)))
    return list((await db.execute(stmt)).scalars().all())


def sections_by_actor(sections: Sequence[ActorSection]) -> dict[UUID, dict[str, dict[str, Any]]]:
    grouped: dict[UUID, dict[str, dict[str, Any]]] = {}
    for section in sections:
        grouped.setdefault(section.actor_id, {})[section.section_name] = section.data
    return grouped


async def get_tenant_actor(db: AsyncSession, policy_id: UUID) -> Actor | None:
    stmt = select(Actor).where(Actor.policy_id == policy_id, Actor.actor_type == ActorType.TENANT.value)
    return (await db.execute(stmt)).scalar_one_or_none()
