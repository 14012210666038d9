"""Tests for store transaction handling on a failing connection."""
from unittest.mock import AsyncMock, MagicMock

import psycopg
import pytest
from psycopg.pq import TransactionStatus

from ticketflow.db import TicketStore, ToolCallStore
from ticketflow.schemas.tool_call import ToolCallRecord


def make_conn(execute_error=None, status=TransactionStatus.IDLE):
    calls = []
    cursor = MagicMock()

    async def execute(query, params=None):
        calls.append("execute")
        if execute_error is not None:
            raise execute_error

    cursor.execute = AsyncMock(side_effect=execute)
    cursor.fetchone = AsyncMock(return_value=None)
    cursor.fetchall = AsyncMock(return_value=[])

    conn = MagicMock()
    conn.cursor.return_value.__aenter__ = AsyncMock(return_value=cursor)
    conn.cursor.return_value.__aexit__ = AsyncMock(return_value=False)
    conn.commit = AsyncMock(side_effect=lambda: calls.append("commit"))
    conn.rollback = AsyncMock(side_effect=lambda: calls.append("rollback"))
    conn.info.transaction_status = status
    return conn, calls


class TestTicketStoreRollback:
    """A failed statement must not leave the connection in an aborted transaction."""

    @pytest.mark.asyncio
    async def test_failed_update_rolls_back(self):
        conn, calls = make_conn(psycopg.OperationalError("deadlock detected"))
        store = TicketStore(conn)

        with pytest.raises(psycopg.OperationalError):
            await store.update_body("pk-1", "Title", "## Goal (one sentence)\nShip")

        conn.rollback.assert_awaited_once()
        conn.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_read_rolls_back(self):
        conn, calls = make_conn(psycopg.OperationalError("connection reset"))
        store = TicketStore(conn)

        with pytest.raises(psycopg.OperationalError):
            await store.get_by_ref("acme/hal-board", "HAL-0001")

        assert calls == ["execute", "rollback"]

    @pytest.mark.asyncio
    async def test_successful_read_does_not_commit(self):
        conn, calls = make_conn()
        store = TicketStore(conn)

        assert await store.get_by_pk("pk-1") is None

        conn.commit.assert_not_awaited()
        conn.rollback.assert_not_awaited()


def make_record():
    return ToolCallRecord(run_id="run-1", tool_name="update_ticket_body", success=False)


class TestToolCallStoreAppend:
    """Tests for the audit write after a failed tool call."""

    @pytest.mark.asyncio
    async def test_aborted_transaction_rolled_back_first(self):
        conn, calls = make_conn(status=TransactionStatus.INERROR)

        await ToolCallStore(conn).append(make_record())

        assert calls == ["rollback", "execute", "commit"]

    @pytest.mark.asyncio
    async def test_idle_connection_not_rolled_back(self):
        conn, calls = make_conn()

        await ToolCallStore(conn).append(make_record())

        assert calls == ["execute", "commit"]

    @pytest.mark.asyncio
    async def test_failed_insert_rolls_back(self):
        conn, calls = make_conn(psycopg.OperationalError("disk full"))

        with pytest.raises(psycopg.OperationalError):
            await ToolCallStore(conn).append(make_record())

        assert calls == ["execute", "rollback"]
