from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from rentguard.core.settings import settings
from rentguard.db.session import engine
from rentguard.services.storage.service import get_storage_adapter
from rentguard.utils.redis_client import get_redis_client

APP_VERSION = "0.1.0"
STORAGE_PROBE_KEY = ".health/probe"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def _check_db() -> dict[str, str]:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as exc:  # pragma: no cover - exercised in runtime
        return {"status": "error", "error": str(exc)}
    return {"status": "ok"}


async def _check_redis() -> dict[str, str]:
    try:
        await get_redis_client().ping()
    except (RedisError, OSError) as exc:
        return {"status": "error", "error": str(exc)}
    return {"status": "ok"}


def _probe_storage() -> None:
    adapter = get_storage_adapter()
    adapter.write_object(STORAGE_PROBE_KEY, b"ok", "text/plain")
    adapter.delete_object(STORAGE_PROBE_KEY)


async def _check_storage() -> dict[str, str]:
    """Document uploads are fatal when storage is down, so readiness includes it."""
    try:
        await asyncio.wait_for(asyncio.to_thread(_probe_storage), timeout=settings.storage_timeout_seconds)
    except (OSError, ValueError, asyncio.TimeoutError) as exc:  # pragma: no cover - exercised in runtime
        return {"status": "error", "error": str(exc) or type(exc).__name__}
    return {"status": "ok"}


async def live_payload() -> dict[str, str]:
    return {"status": "ok", "timestamp": _now()}


async def ready_payload() -> dict[str, Any]:
    database, redis, storage = await asyncio.gather(_check_db(), _check_redis(), _check_storage())
    checks = {
        "api": {"status": "ok", "version": APP_VERSION},
        "database": database,
        "redis": redis,
        "storage": storage,
    }
    ready = all(check["status"] == "ok" for check in checks.values())
    return {
        "status": "ok" if ready else "degraded",
        "ready": ready,
        "environment": settings.environment,
        "version": APP_VERSION,
        "timestamp": _now(),
        "checks": checks,
    }
