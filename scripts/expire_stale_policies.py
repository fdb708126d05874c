#!/usr/bin/env python3
"""
Move open policies whose access token has lapsed to EXPIRED.

Meant to run on a schedule (cron, Cloud Scheduler job). Uses DATABASE_URL from the
environment like the API does.

Usage:
    python scripts/expire_stale_policies.py
"""

from __future__ import annotations

import asyncio
import logging

from rentguard.core.logging import configure_logging
from rentguard.db.session import AsyncSessionLocal, engine
from rentguard.services.policies import expire_stale_policies

logger = logging.getLogger("rentguard.scripts.expire_stale_policies")


async def main() -> int:
    configure_logging()
    try:
        async with AsyncSessionLocal() as session:
            expired = await expire_stale_policies(session)
    finally:
        await engine.dispose()
    logger.info("Expired %s stale policies", expired)
    return expired


if __name__ == "__main__":
    asyncio.run(main())
