"""Health payload for container and load balancer checks."""

import logging
from typing import Any

from ticketflow.db import get_connection
from ticketflow.kanban.transitions import DATASTORE_ERRORS

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


async def database_ok() -> bool:
    """True if a pooled connection answers ``SELECT 1``."""
    try:
        async with get_connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute("SELECT 1")
                await cur.fetchone()
        return True
    except (RuntimeError, *DATASTORE_ERRORS) as e:
        logger.warning(f"Health check database query failed: {e}")
        return False


async def health_payload() -> dict[str, Any]:
    """Process liveness plus datastore reachability.

    The process is reported healthy even when the datastore is down; the
    ``database`` field carries that state separately.
    """
    return {
        "status": "healthy",
        "version": VERSION,
        "database": "ok" if await database_ok() else "unavailable",
    }
