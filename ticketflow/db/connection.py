"""Async database connection utilities using psycopg v3."""
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from psycopg import AsyncConnection
from psycopg_pool import AsyncConnectionPool

from ticketflow.config import get_settings


# Module-level connection pool (initialized at startup)
_pool: Optional[AsyncConnectionPool] = None


async def init_db() -> None:
    """Initialize the database connection pool.

    Call once at application startup.

    Raises:
        RuntimeError: If pool is already initialized.
        psycopg.OperationalError: If connection to database fails.
    """
    global _pool
    if _pool is not None:
        raise RuntimeError("Database pool already initialized. Call close_db() first.")

    settings = get_settings()
    _pool = AsyncConnectionPool(
        conninfo=settings.database_url,
        min_size=1,
        max_size=10,
        open=False,
    )
    await _pool.open()


async def close_db() -> None:
    """Close the database connection pool. Safe if never initialized."""
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None


@asynccontextmanager
async def get_connection() -> AsyncGenerator[AsyncConnection, None]:
    """Get a database connection from the pool.

    Usage:
        async with get_connection() as conn:
            store = TicketStore(conn)
            ticket = await store.get_by_ref(repo, "HAL-0042")

    Raises:
        RuntimeError: If database pool not initialized (call init_db() first).
        psycopg.OperationalError: If connection cannot be obtained.
    """
    if _pool is None:
        raise RuntimeError(
            "Database pool not initialized. Call init_db() at application startup."
        )

    async with _pool.connection() as conn:
        yield conn


async def create_all_tables(conn: AsyncConnection) -> None:
    """Create every table the orchestrator writes to."""
    from ticketflow.db.conversation_store import ConversationStore
    from ticketflow.db.ticket_store import TicketStore
    from ticketflow.db.tool_call_store import ToolCallStore
    from ticketflow.db.working_memory_store import WorkingMemoryStore

    await TicketStore(conn).create_tables()
    await ToolCallStore(conn).create_tables()
    await ConversationStore(conn).create_tables()
    await WorkingMemoryStore(conn).create_tables()
