"""Worker process for scheduled maintenance.

Runs an asyncio loop that resets lapsed department bonuses and deactivates
expired projects once per interval (daily by default).
"""

from __future__ import annotations

import asyncio
import logging

from app.config import get_settings
from app.db import get_session_factory
from app.models.base import now_utc

logger = logging.getLogger(__name__)


async def run_maintenance_once() -> None:
    """Run one sweep in its own session, logging instead of raising on failure."""
    from app.services.maintenance import run_maintenance_sweep

    now = now_utc()
    try:
        async with get_session_factory()() as session:
            result = await run_maintenance_sweep(session, now)
        if result.errors:
            logger.warning("Maintenance sweep at %s finished with %d error(s)", now.isoformat(), result.errors)
    except Exception:
        logger.exception("Maintenance sweep failed at %s", now.isoformat())


async def run_maintenance_loop() -> None:
    """Main worker loop."""
    interval = get_settings().maintenance_interval_seconds
    logger.info("Maintenance worker started (interval=%ds)", interval)

    while True:
        await run_maintenance_once()
        await asyncio.sleep(interval)


def main() -> None:
    """Entry point for the worker process."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    asyncio.run(run_maintenance_loop())


if __name__ == "__main__":
    main()
