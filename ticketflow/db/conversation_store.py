"""Conversation turns and rolling summaries per (project, agent)."""
import logging
from typing import Optional

from psycopg import AsyncConnection
from psycopg.types.json import Jsonb

from ticketflow.schemas.conversation import (
    ConversationSummary,
    ConversationTurn,
    ImageAttachment,
    TurnRole,
)

logger = logging.getLogger(__name__)


class ConversationStore:
    """PostgreSQL store for conversation turns and their summary."""

    def __init__(self, conn: AsyncConnection):
        self._conn = conn

    async def create_tables(self) -> None:
        """Create conversation tables if not exists."""
        sql = """
        CREATE TABLE IF NOT EXISTS conversation_turns (
            project_id TEXT NOT NULL,
            agent_id TEXT NOT NULL,
            sequence INTEGER NOT NULL,
            role TEXT NOT NULL,
            content TEXT NOT NULL,
            images JSONB NOT NULL DEFAULT '[]'::jsonb,
            response_id TEXT,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            PRIMARY KEY (project_id, agent_id, sequence)
        );

        CREATE TABLE IF NOT EXISTS conversation_summaries (
            project_id TEXT NOT NULL,
            agent_id TEXT NOT NULL,
            summary_text TEXT NOT NULL DEFAULT '',
            through_sequence INTEGER NOT NULL DEFAULT -1,
            updated_at TIMESTAMPTZ DEFAULT NOW(),
            PRIMARY KEY (project_id, agent_id)
        );
        """
        async with self._conn.cursor() as cur:
            await cur.execute(sql)
        await self._conn.commit()
        logger.debug("Created conversation tables")

    async def append_turn(
        self,
        project_id: str,
        agent_id: str,
        role: TurnRole,
        content: str,
        images: Optional[list[ImageAttachment]] = None,
        response_id: Optional[str] = None,
    ) -> ConversationTurn:
        """Append a turn with the next sequence number."""
        images = images or []
        async with self._conn.cursor() as cur:
            await cur.execute(
                """
                INSERT INTO conversation_turns (
                    project_id, agent_id, sequence, role, content, images, response_id
                )
                SELECT %s, %s, COALESCE(MAX(sequence), -1) + 1, %s, %s, %s, %s
                FROM conversation_turns
                WHERE project_id = %s AND agent_id = %s
                RETURNING sequence, created_at
                """,
                (
                    project_id, agent_id, role.value, content,
                    Jsonb([img.model_dump() for img in images]), response_id,
                    project_id, agent_id,
                ),
            )
            row = await cur.fetchone()
        await self._conn.commit()
        return ConversationTurn(
            role=role,
            content=content,
            sequence=row[0],
            images=images,
            response_id=response_id,
            created_at=row[1],
        )

    async def list_turns(self, project_id: str, agent_id: str) -> list[ConversationTurn]:
        async with self._conn.cursor() as cur:
            await cur.execute(
                """
                SELECT sequence, role, content, images, response_id, created_at
                FROM conversation_turns
                WHERE project_id = %s AND agent_id = %s
                ORDER BY sequence ASC
                """,
                (project_id, agent_id),
            )
            rows = await cur.fetchall()
        return [
            ConversationTurn(
                sequence=row[0],
                role=TurnRole(row[1]),
                content=row[2],
                images=[ImageAttachment(**img) for img in (row[3] or [])],
                response_id=row[4],
                created_at=row[5],
            )
            for row in rows
        ]

    async def get_summary(self, project_id: str, agent_id: str) -> Optional[ConversationSummary]:
        async with self._conn.cursor() as cur:
            await cur.execute(
                """
                SELECT summary_text, through_sequence FROM conversation_summaries
                WHERE project_id = %s AND agent_id = %s
                """,
                (project_id, agent_id),
            )
            row = await cur.fetchone()
        if row is None:
            return None
        return ConversationSummary(
            project_id=project_id,
            agent_id=agent_id,
            summary_text=row[0],
            through_sequence=row[1],
        )

    async def save_summary(self, summary: ConversationSummary) -> bool:
        """Upsert the summary unless a newer one is already stored."""
        async with self._conn.cursor() as cur:
            await cur.execute(
                """
                INSERT INTO conversation_summaries (project_id, agent_id, summary_text, through_sequence)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (project_id, agent_id) DO UPDATE SET
                    summary_text = EXCLUDED.summary_text,
                    through_sequence = EXCLUDED.through_sequence,
                    updated_at = NOW()
                WHERE conversation_summaries.through_sequence <= EXCLUDED.through_sequence
                """,
                (
                    summary.project_id, summary.agent_id,
                    summary.summary_text, summary.through_sequence,
                ),
            )
            written = cur.rowcount == 1
        await self._conn.commit()
        return written
