"""Ticket storage.

Tickets are keyed by a UUID primary key and carry a per-repo ticket number
(unique within the repo) from which the display id is derived. Positions
are ordinal within (repo, column). This store never caches: every call
reads current state.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from psycopg import AsyncConnection

from ticketflow.readiness.ticket_ids import parse_ticket_number
from ticketflow.schemas.ticket import Column, Ticket

logger = logging.getLogger(__name__)

_TICKET_COLUMNS = """
    pk::text, repo_full_name, ticket_number, display_id, title, body_md,
    column_id, position, moved_at, created_at
"""


def _row_to_ticket(row) -> Ticket:
    return Ticket(
        pk=row[0],
        repo_full_name=row[1],
        ticket_number=row[2],
        display_id=row[3],
        title=row[4] or "",
        body_md=row[5] or "",
        column=Column(row[6]),
        position=row[7],
        moved_at=row[8],
        created_at=row[9],
    )


class TicketStore:
    """PostgreSQL store for ticket rows."""

    def __init__(self, conn: AsyncConnection):
        self._conn = conn


    async def _run(
        self,
        query: str,
        params: tuple,
        fetch: str = "one",
        commit: bool = False,
    ):
        """Execute one statement and fetch its result.

        A failure rolls the connection back before re-raising, so later
        statements on the same connection still run.
        """
        try:
            async with self._conn.cursor() as cur:
                await cur.execute(query, params)
                if fetch == "all":
                    result = await cur.fetchall()
                else:
                    result = await cur.fetchone()
            if commit:
                await self._conn.commit()
        except Exception:
            await self._conn.rollback()
            raise
        return result

    async def create_tables(self) -> None:
        """Create tickets table if not exists."""
        async with self._conn.cursor() as cur:
            await cur.execute('''
                CREATE TABLE IF NOT EXISTS tickets (
                    pk UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                    repo_full_name TEXT NOT NULL,
                    ticket_number INTEGER NOT NULL,
                    display_id TEXT NOT NULL,
                    title TEXT NOT NULL DEFAULT '',
                    body_md TEXT NOT NULL DEFAULT '',
                    column_id TEXT NOT NULL DEFAULT 'col-unassigned',
                    position INTEGER NOT NULL DEFAULT 0,
                    moved_at TIMESTAMPTZ,
                    created_at TIMESTAMPTZ DEFAULT NOW(),
                    UNIQUE (repo_full_name, ticket_number)
                )
            ''')
            await cur.execute('''
                CREATE INDEX IF NOT EXISTS idx_tickets_repo_column
                ON tickets (repo_full_name, column_id, position)
            ''')
        await self._conn.commit()
        logger.debug("Created tickets table")

    async def get_by_pk(self, pk: str) -> Optional[Ticket]:
        row = await self._run(
            f"SELECT {_TICKET_COLUMNS} FROM tickets WHERE pk::text = %s",
            (pk,),
        )
        return _row_to_ticket(row) if row else None

    async def get_by_ref(self, repo_full_name: Optional[str], ref: str) -> Optional[Ticket]:
        """Resolve a primary key, display id (``HAL-0042``) or bare number.

        Number lookups need a repo; a primary key resolves without one.
        """
        ref = (ref or "").strip()
        if not ref:
            return None
        ticket = await self.get_by_pk(ref)
        if ticket is not None:
            return ticket
        if not repo_full_name:
            return None
        number = parse_ticket_number(ref)
        if number is None:
            return None
        row = await self._run(
            f"""
            SELECT {_TICKET_COLUMNS} FROM tickets
            WHERE repo_full_name = %s AND ticket_number = %s
            """,
            (repo_full_name, number),
        )
        return _row_to_ticket(row) if row else None

    async def list_by_column(self, repo_full_name: str, column: Column) -> list[Ticket]:
        rows = await self._run(
            f"""
            SELECT {_TICKET_COLUMNS} FROM tickets
            WHERE repo_full_name = %s AND column_id = %s
            ORDER BY position ASC, created_at ASC
            """,
            (repo_full_name, column.value),
            fetch="all",
        )
        return [_row_to_ticket(row) for row in rows]

    async def max_position(self, repo_full_name: str, column: Column) -> Optional[int]:
        """Highest position in a column, or None when the column is empty."""
        row = await self._run(
            """
            SELECT MAX(position) FROM tickets
            WHERE repo_full_name = %s AND column_id = %s
            """,
            (repo_full_name, column.value),
        )
        return row[0] if row else None

    async def next_ticket_number(self, repo_full_name: str) -> int:
        row = await self._run(
            "SELECT COALESCE(MAX(ticket_number), 0) + 1 FROM tickets WHERE repo_full_name = %s",
            (repo_full_name,),
        )
        return int(row[0])

    async def insert(
        self,
        repo_full_name: str,
        ticket_number: int,
        display_id: str,
        title: str,
        body_md: str,
        column: Column,
        position: int,
    ) -> Ticket:
        """Insert a ticket.

        Raises:
            psycopg.errors.UniqueViolation: If the ticket number is taken.
        """
        row = await self._run(
            f"""
            INSERT INTO tickets (
                repo_full_name, ticket_number, display_id, title,
                body_md, column_id, position, moved_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, NOW())
            RETURNING {_TICKET_COLUMNS}
            """,
            (
                repo_full_name, ticket_number, display_id, title,
                body_md, column.value, position,
            ),
            commit=True,
        )
        logger.info(
            "Ticket inserted",
            extra={"ticket_id": row[0], "display_id": display_id, "column": column.value},
        )
        return _row_to_ticket(row)

    async def update_body(self, pk: str, title: str, body_md: str) -> Optional[Ticket]:
        row = await self._run(
            f"""
            UPDATE tickets SET title = %s, body_md = %s
            WHERE pk::text = %s
            RETURNING {_TICKET_COLUMNS}
            """,
            (title, body_md, pk),
            commit=True,
        )
        return _row_to_ticket(row) if row else None

    async def list_repos(self) -> list[tuple[str, int]]:
        """Repositories that have tickets, with their ticket counts."""
        rows = await self._run(
            """
            SELECT repo_full_name, COUNT(*) FROM tickets
            GROUP BY repo_full_name
            ORDER BY repo_full_name
            """,
            (),
            fetch="all",
        )
        return [(row[0], int(row[1])) for row in rows]

    async def move_to_repo(
        self,
        pk: str,
        repo_full_name: str,
        ticket_number: int,
        display_id: str,
        body_md: str,
        column: Column,
        position: int,
    ) -> Optional[Ticket]:
        """Re-home a ticket under another repository's numbering.

        Raises:
            psycopg.errors.UniqueViolation: If the ticket number is taken.
        """
        row = await self._run(
            f"""
            UPDATE tickets
            SET repo_full_name = %s, ticket_number = %s, display_id = %s,
                body_md = %s, column_id = %s, position = %s, moved_at = NOW()
            WHERE pk::text = %s
            RETURNING {_TICKET_COLUMNS}
            """,
            (repo_full_name, ticket_number, display_id, body_md, column.value, position, pk),
            commit=True,
        )
        if row:
            logger.info(
                "Ticket moved to another repo",
                extra={"ticket_id": pk, "repo": repo_full_name, "display_id": display_id},
            )
        return _row_to_ticket(row) if row else None

    async def update_column(
        self,
        pk: str,
        column: Column,
        position: int,
        shift_down: bool = False,
    ) -> Optional[Ticket]:
        """Set column, position and moved_at in one transaction.

        With ``shift_down`` every other ticket at or after ``position`` in
        the target column moves down one slot first (top insert).
        """
        moved_at = datetime.now(timezone.utc)
        try:
            async with self._conn.transaction():
                async with self._conn.cursor() as cur:
                    if shift_down:
                        await cur.execute(
                            """
                            UPDATE tickets SET position = position + 1
                            WHERE repo_full_name = (
                                    SELECT repo_full_name FROM tickets WHERE pk::text = %s
                                )
                                AND column_id = %s
                                AND position >= %s
                                AND pk::text <> %s
                            """,
                            (pk, column.value, position, pk),
                        )
                    await cur.execute(
                        f"""
                        UPDATE tickets
                        SET column_id = %s, position = %s, moved_at = %s
                        WHERE pk::text = %s
                        RETURNING {_TICKET_COLUMNS}
                        """,
                        (column.value, position, moved_at, pk),
                    )
                    row = await cur.fetchone()
            # Reads earlier on this connection leave an implicit transaction open,
            # in which case the block above only released a savepoint.
            await self._conn.commit()
        except Exception:
            await self._conn.rollback()
            raise
        return _row_to_ticket(row) if row else None
