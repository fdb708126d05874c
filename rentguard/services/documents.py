from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from uuid import UUID, uuid4

from fastapi import UploadFile
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rentguard.core.settings import settings
from rentguard.models.actor import Actor
from rentguard.models.document import Document
from rentguard.models.policy import Policy
from rentguard.schemas.enums import DocumentCategory, DocumentStatus
from rentguard.services.activity_log import TENANT_ACTOR, log_activity
from rentguard.services.document_requirements import uploadable_categories
from rentguard.services.errors import InternalError, NotFoundError, ValidationError
from rentguard.services.policy_status import assert_intake_open
from rentguard.services.storage.key_generator import KeyGenerator
from rentguard.services.storage.service import get_storage_adapter

logger = logging.getLogger(__name__)

MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024
PROPERTY_DEED_MAX_FILE_SIZE_BYTES = 35 * 1024 * 1024

ALLOWED_MIME_TYPES = frozenset(
    {"application/pdf", "image/jpeg", "image/jpg", "image/png", "image/webp"}
)
ALLOWED_EXTENSIONS = frozenset({".pdf", ".jpg", ".jpeg", ".png", ".webp"})

# Magic byte signatures used to cross-check the claimed extension.
_MAGIC_SIGNATURES: dict[str, list[bytes]] = {
    ".pdf": [b"%PDF"],
    ".png": [b"\x89PNG\r\n\x1a\n"],
    ".jpg": [b"\xff\xd8\xff"],
    ".jpeg": [b"\xff\xd8\xff"],
    ".webp": [b"RIFF"],
}

_READ_CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class FileCheck:
    valid: bool
    error: str | None = None


def max_size_for(category: DocumentCategory) -> int:
    if category == DocumentCategory.PROPERTY_DEED:
        return PROPERTY_DEED_MAX_FILE_SIZE_BYTES
    return MAX_FILE_SIZE_BYTES


def _matches_signature(header: bytes, ext: str) -> bool:
    signatures = _MAGIC_SIGNATURES.get(ext, [])
    if not any(header.startswith(signature) for signature in signatures):
        return False
    if ext == ".webp":
        return header[8:12] == b"WEBP"
    return True


def validate_file(
    *,
    filename: str,
    content_type: str | None,
    size: int,
    header: bytes,
    category: DocumentCategory,
) -> FileCheck:
    ext = Path(filename).suffix.lower()
    if size <= 0:
        return FileCheck(False, "File is empty")
    limit = max_size_for(category)
    if size > limit:
        return FileCheck(False, f"File exceeds maximum allowed size of {limit // (1024 * 1024)} MB")
    if (content_type or "").lower() not in ALLOWED_MIME_TYPES:
        return FileCheck(False, "Invalid file type. Allowed types: PDF, JPG, PNG, WEBP")
    if ext not in ALLOWED_EXTENSIONS:
        return FileCheck(False, f"Invalid file extension. Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}")
    if not _matches_signature(header, ext):
        return FileCheck(False, f"File content does not match the expected format for '{ext}'")
    return FileCheck(True)


def parse_category(raw: str | None, actor: Actor) -> DocumentCategory:
    allowed = uploadable_categories(actor.actor_type, bool(actor.is_company))
    try:
        category = DocumentCategory((raw or "").strip().lower())
    except ValueError:
        category = None
    if category is None or category not in allowed:
        raise ValidationError(
            code="invalid_category",
            message="Invalid category",
            details={"category": raw, "allowed": sorted(item.value for item in allowed)},
        )
    return category


async def read_upload(file: UploadFile, limit: int) -> bytes:
    """Read at most ``limit + 1`` bytes so oversize files are detected without buffering them whole."""
    chunks: list[bytes] = []
    total = 0
    try:
        while total <= limit:
            chunk = await file.read(_READ_CHUNK_SIZE)
            if not chunk:
                break
            chunks.append(chunk)
            total += len(chunk)
    finally:
        await file.close()
    return b"".join(chunks)


_late_write_cleanups: set[asyncio.Task] = set()


async def _run_storage(func, *args) -> None:
    await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=settings.storage_timeout_seconds)


async def _discard_late_write(write: asyncio.Future, adapter, storage_key: str) -> None:
    """Remove bytes that land after the upload request already failed on timeout."""
    try:
        await write
    except (OSError, ValueError):
        return
    try:
        await _run_storage(adapter.delete_object, storage_key)
    except (OSError, ValueError, asyncio.TimeoutError):
        logger.warning("Orphaned stored object %s", storage_key)
    else:
        logger.info("Discarded late write %s", storage_key)


async def _store_bytes(adapter, storage_key: str, content: bytes, content_type: str | None) -> None:
    # The worker thread cannot be interrupted, so a timed-out write is left to finish and then removed.
    write = asyncio.ensure_future(asyncio.to_thread(adapter.write_object, storage_key, content, content_type))
    try:
        await asyncio.wait_for(asyncio.shield(write), timeout=settings.storage_timeout_seconds)
    except asyncio.TimeoutError:
        cleanup = asyncio.create_task(_discard_late_write(write, adapter, storage_key))
        _late_write_cleanups.add(cleanup)
        cleanup.add_done_callback(_late_write_cleanups.discard)
        raise


async def upload_document(
    db: AsyncSession,
    policy: Policy,
    actor: Actor,
    *,
    file: UploadFile | None,
    category: str | None,
    uploaded_by: str = TENANT_ACTOR,
    source_ip: str | None = None,
) -> Document:
    assert_intake_open(policy)
    if file is None or not file.filename:
        raise ValidationError(code="file_required", message="File is required")
    parsed_category = parse_category(category, actor)

    content = await read_upload(file, max_size_for(parsed_category))
    original_name = Path(file.filename).name
    check = validate_file(
        filename=original_name,
        content_type=file.content_type,
        size=len(content),
        header=content[:16],
        category=parsed_category,
    )
    if not check.valid:
        raise ValidationError(code="invalid_file", message=check.error or "Invalid file")

    document_id = uuid4()
    storage_key = KeyGenerator.policy_document_key(
        policy.id, actor.id, parsed_category.value, document_id, original_name
    )
    adapter = get_storage_adapter()
    try:
        await _store_bytes(adapter, storage_key, content, file.content_type)
    except (OSError, ValueError, asyncio.TimeoutError) as exc:
        logger.exception("Storing document %s for policy %s failed", document_id, policy.id)
        raise InternalError(code="storage_failed", message="Failed to store document") from exc

    document = Document(
        id=document_id,
        policy_id=policy.id,
        actor_id=actor.id,
        category=parsed_category.value,
        status=DocumentStatus.PENDING.value,
        original_name=original_name,
        mime_type=(file.content_type or "").lower(),
        file_size=len(content),
        storage_provider=adapter.provider,
        storage_key=storage_key,
        uploaded_by=uploaded_by,
        created_at=datetime.now(timezone.utc),
    )
    try:
        db.add(document)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("Persisting document %s for policy %s failed", document_id, policy.id)
        try:
            await _run_storage(adapter.delete_object, storage_key)
        except (OSError, ValueError, asyncio.TimeoutError):
            logger.warning("Orphaned stored object %s", storage_key)
        raise InternalError(code="document_persist_failed", message="Failed to store document") from exc

    await log_activity(
        db,
        policy.id,
        "document_uploaded",
        actor_ref=uploaded_by,
        payload={
            "documentId": str(document.id),
            "category": document.category,
            "fileName": original_name,
            "fileSize": document.file_size,
        },
        source_ip=source_ip,
    )
    return document


def require_document_id(raw: str | None) -> str:
    if not raw or not raw.strip():
        raise ValidationError(code="document_id_required", message="Document ID is required")
    return raw.strip()


async def get_policy_document(db: AsyncSession, policy_id: UUID, document_id: str | UUID) -> Document:
    try:
        parsed_id = document_id if isinstance(document_id, UUID) else UUID(str(document_id))
    except ValueError as exc:
        raise NotFoundError(code="document_not_found", message="Document not found") from exc
    stmt = select(Document).where(Document.id == parsed_id, Document.policy_id == policy_id)
    document = (await db.execute(stmt)).scalar_one_or_none()
    if document is None:
        raise NotFoundError(code="document_not_found", message="Document not found")
    return document


async def delete_document(
    db: AsyncSession,
    policy: Policy,
    document_id: str,
    *,
    actor_ref: str = TENANT_ACTOR,
    source_ip: str | None = None,
) -> None:
    assert_intake_open(policy)
    document = await get_policy_document(db, policy.id, document_id)

    adapter = get_storage_adapter()
    try:
        await _run_storage(adapter.delete_object, document.storage_key)
    except (OSError, ValueError, asyncio.TimeoutError) as exc:
        logger.exception("Deleting stored document %s failed", document.id)
        raise InternalError(code="storage_delete_failed", message="Failed to delete document") from exc

    payload = {"documentId": str(document.id), "category": document.category}
    try:
        await db.delete(document)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("Deleting document row %s failed", document.id)
        raise InternalError(code="document_delete_failed", message="Failed to delete document") from exc

    await log_activity(
        db, policy.id, "document_deleted", actor_ref=actor_ref, payload=payload, source_ip=source_ip
    )
