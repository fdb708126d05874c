import logging

from fastapi import FastAPI

from rentguard.core.settings import settings
from rentguard.db.session import engine
from rentguard.utils.redis_client import get_redis_client

logger = logging.getLogger(__name__)


def register_event_handlers(app: FastAPI) -> None:
    @app.on_event("startup")
    async def on_startup() -> None:
        logger.info(
            "Application startup (environment=%s, email=%s)",
            settings.environment,
            "http" if settings.email_api_url else "console",
        )

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        logger.info("Application shutdown")
        # Only close a client that was actually created
        if get_redis_client.cache_info().currsize:
            await get_redis_client().aclose()
        await engine.dispose()
