"""Working memory persistence with a monotonic high-water mark.

``through_sequence`` only moves forward: a save carrying an older mark than
the stored one is ignored, so a slow extraction can never roll memory back.
"""
import logging
from typing import Optional

from psycopg import AsyncConnection
from psycopg.types.json import Jsonb

from ticketflow.schemas.conversation import WorkingMemory

logger = logging.getLogger(__name__)

_LIST_FIELDS = (
    "goals",
    "requirements",
    "constraints",
    "decisions",
    "assumptions",
    "open_questions",
    "stakeholders",
)


class WorkingMemoryStore:
    """PostgreSQL store for one working memory record per (project, agent)."""

    def __init__(self, conn: AsyncConnection):
        self._conn = conn

    async def create_tables(self) -> None:
        """Create working_memory table if not exists."""
        async with self._conn.cursor() as cur:
            await cur.execute('''
                CREATE TABLE IF NOT EXISTS working_memory (
                    project_id TEXT NOT NULL,
                    agent_id TEXT NOT NULL,
                    summary TEXT NOT NULL DEFAULT '',
                    facts JSONB NOT NULL DEFAULT '{}'::jsonb,
                    glossary JSONB NOT NULL DEFAULT '{}'::jsonb,
                    through_sequence INTEGER NOT NULL DEFAULT -1,
                    updated_at TIMESTAMPTZ DEFAULT NOW(),
                    PRIMARY KEY (project_id, agent_id)
                )
            ''')
        await self._conn.commit()
        logger.debug("Created working_memory table")

    async def get(self, project_id: str, agent_id: str) -> Optional[WorkingMemory]:
        async with self._conn.cursor() as cur:
            await cur.execute(
                """
                SELECT summary, facts, glossary, through_sequence, updated_at
                FROM working_memory
                WHERE project_id = %s AND agent_id = %s
                """,
                (project_id, agent_id),
            )
            row = await cur.fetchone()
        if row is None:
            return None
        facts = row[1] or {}
        return WorkingMemory(
            project_id=project_id,
            agent_id=agent_id,
            summary=row[0] or "",
            glossary=row[2] or {},
            through_sequence=row[3],
            updated_at=row[4],
            **{name: facts.get(name, []) for name in _LIST_FIELDS},
        )

    async def save(self, memory: WorkingMemory) -> bool:
        """Conditional upsert.

        Returns:
            True if written, False if the stored record is already further
            along (higher through_sequence).
        """
        facts = {name: getattr(memory, name) for name in _LIST_FIELDS}
        async with self._conn.cursor() as cur:
            await cur.execute(
                """
                INSERT INTO working_memory (
                    project_id, agent_id, summary, facts, glossary, through_sequence
                ) VALUES (%s, %s, %s, %s, %s, %s)
                ON CONFLICT (project_id, agent_id) DO UPDATE SET
                    summary = EXCLUDED.summary,
                    facts = EXCLUDED.facts,
                    glossary = EXCLUDED.glossary,
                    through_sequence = EXCLUDED.through_sequence,
                    updated_at = NOW()
                WHERE working_memory.through_sequence <= EXCLUDED.through_sequence
                """,
                (
                    memory.project_id,
                    memory.agent_id,
                    memory.summary,
                    Jsonb(facts),
                    Jsonb(memory.glossary),
                    memory.through_sequence,
                ),
            )
            written = cur.rowcount == 1
        await self._conn.commit()
        if not written:
            logger.info(
                "Working memory save skipped, stored record is newer",
                extra={
                    "project_id": memory.project_id,
                    "agent_id": memory.agent_id,
                    "through_sequence": memory.through_sequence,
                },
            )
        return written
