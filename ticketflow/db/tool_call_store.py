"""Append-only audit trail of tool calls made by conversational agents."""
import logging

from psycopg import AsyncConnection
from psycopg.pq import TransactionStatus
from psycopg.types.json import Jsonb

from ticketflow.schemas.tool_call import ToolCallRecord

logger = logging.getLogger(__name__)


class ToolCallStore:
    """PostgreSQL store for tool call records. Rows are never updated."""

    def __init__(self, conn: AsyncConnection):
        self._conn = conn

    async def create_tables(self) -> None:
        """Create tool_call_records table if not exists."""
        sql = """
        CREATE TABLE IF NOT EXISTS tool_call_records (
            id UUID PRIMARY KEY,
            run_id TEXT NOT NULL,
            tool_name TEXT NOT NULL,
            input JSONB NOT NULL DEFAULT '{}'::jsonb,
            output JSONB NOT NULL DEFAULT '{}'::jsonb,
            success BOOLEAN NOT NULL DEFAULT FALSE,
            error_kind TEXT,
            created_at TIMESTAMPTZ DEFAULT NOW()
        );

        CREATE INDEX IF NOT EXISTS idx_tool_call_records_run
            ON tool_call_records(run_id, created_at);
        """
        async with self._conn.cursor() as cur:
            await cur.execute(sql)
        await self._conn.commit()
        logger.debug("Created tool_call_records table")

    async def append(self, record: ToolCallRecord) -> None:
        """Insert one record.

        A connection left in a failed transaction by the tool call itself is
        rolled back first so the record is still written.
        """
        if self._conn.info.transaction_status == TransactionStatus.INERROR:
            logger.warning(
                "Rolling back failed transaction before audit write",
                extra={"run_id": record.run_id, "tool_name": record.tool_name},
            )
            await self._conn.rollback()
        try:
            async with self._conn.cursor() as cur:
                await cur.execute(
                    """
                    INSERT INTO tool_call_records (
                        id, run_id, tool_name, input, output, success, error_kind, created_at
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        record.id,
                        record.run_id,
                        record.tool_name,
                        Jsonb(record.input),
                        Jsonb(record.output),
                        record.success,
                        record.error_kind,
                        record.created_at,
                    ),
                )
            await self._conn.commit()
        except Exception:
            await self._conn.rollback()
            raise
        logger.info(
            "Tool call recorded",
            extra={
                "run_id": record.run_id,
                "tool_name": record.tool_name,
                "success": record.success,
            },
        )
