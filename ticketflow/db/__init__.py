"""Database module: psycopg v3 pool and one store per table.

Usage:
    from ticketflow.db import get_connection, init_db, close_db, TicketStore

    # At application startup
    await init_db()

    # During request handling
    async with get_connection() as conn:
        store = TicketStore(conn)
        tickets = await store.list_by_column(repo, Column.UNASSIGNED)

    # At application shutdown
    await close_db()
"""
from ticketflow.db.connection import close_db, create_all_tables, get_connection, init_db
from ticketflow.db.conversation_store import ConversationStore
from ticketflow.db.ticket_store import TicketStore
from ticketflow.db.tool_call_store import ToolCallStore
from ticketflow.db.working_memory_store import WorkingMemoryStore

__all__ = [
    # Connection
    "get_connection",
    "init_db",
    "close_db",
    "create_all_tables",
    # Stores
    "TicketStore",
    "ToolCallStore",
    "ConversationStore",
    "WorkingMemoryStore",
]
