"""
Pytest configuration and fixtures.

Provides an in-memory ticket store so kanban, auto-move and tool tests run
without a database, plus shared ticket bodies and a mock LLM client.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import psycopg
import pytest

from ticketflow.automove import AutoMoveDetector, SessionRegistry, TTLCache
from ticketflow.kanban import ColumnTransitionExecutor
from ticketflow.readiness.ticket_ids import parse_ticket_number
from ticketflow.schemas import Column, Ticket
from ticketflow.tools import TicketTools, ToolDispatcher


READY_BODY = """- **Title**: Dark mode toggle

## Goal (one sentence)

Let users switch the app to a dark theme.

## Human-verifiable deliverable (UI-only)

A toggle in Settings that switches the theme immediately.

## Acceptance criteria (UI-only)

- [ ] Toggle is visible in Settings
- [ ] Theme switches without a reload

## Constraints

Use the existing theme tokens.

## Non-goals

No per-page themes."""

# Ready except that acceptance criteria are plain bullets
PLAIN_BULLET_BODY = READY_BODY.replace("- [ ] ", "- ")

# No Acceptance criteria section at all
MISSING_AC_BODY = """## Goal (one sentence)

Let users switch the app to a dark theme.

## Human-verifiable deliverable (UI-only)

A toggle in Settings.

## Constraints

Use the existing theme tokens.

## Non-goals

No per-page themes."""

REPO = "acme/hal-board"


# =============================================================================
# In-memory ticket store
# =============================================================================


class FakeTicketStore:
    """Dict-backed stand-in for ``TicketStore`` with the same async surface.

    Set ``fail_with`` to an exception instance to make every call raise it.
    """

    def __init__(self):
        self.tickets: dict[str, Ticket] = {}
        self.fail_with: Optional[Exception] = None
        self.calls: list[str] = []

    def _check(self, name: str) -> None:
        self.calls.append(name)
        if self.fail_with is not None:
            raise self.fail_with

    def add(
        self,
        number: int,
        column: Column = Column.UNASSIGNED,
        body_md: str = READY_BODY,
        title: str = "Dark mode toggle",
        position: Optional[int] = None,
        repo: str = REPO,
    ) -> Ticket:
        """Seed a ticket synchronously."""
        if position is None:
            in_column = [t.position for t in self.tickets.values()
                         if t.repo_full_name == repo and t.column == column]
            position = max(in_column) + 1 if in_column else 0
        ticket = Ticket(
            pk=str(uuid.uuid4()),
            repo_full_name=repo,
            ticket_number=number,
            display_id=f"HAL-{number:04d}",
            title=title,
            body_md=body_md,
            column=column,
            position=position,
        )
        self.tickets[ticket.pk] = ticket
        return ticket

    async def get_by_pk(self, pk: str) -> Optional[Ticket]:
        self._check("get_by_pk")
        return self.tickets.get(pk)

    async def get_by_ref(self, repo_full_name: Optional[str], ref: str) -> Optional[Ticket]:
        self._check("get_by_ref")
        if ref in self.tickets:
            return self.tickets[ref]
        if not repo_full_name:
            return None
        number = parse_ticket_number(ref)
        for ticket in self.tickets.values():
            if ticket.repo_full_name == repo_full_name and ticket.ticket_number == number:
                return ticket
        return None

    async def list_by_column(self, repo_full_name: str, column: Column) -> list[Ticket]:
        self._check("list_by_column")
        return sorted(
            (t for t in self.tickets.values()
             if t.repo_full_name == repo_full_name and t.column == column),
            key=lambda t: t.position,
        )

    async def max_position(self, repo_full_name: str, column: Column) -> Optional[int]:
        self._check("max_position")
        positions = [t.position for t in self.tickets.values()
                     if t.repo_full_name == repo_full_name and t.column == column]
        return max(positions) if positions else None

    async def next_ticket_number(self, repo_full_name: str) -> int:
        self._check("next_ticket_number")
        numbers = [t.ticket_number for t in self.tickets.values()
                   if t.repo_full_name == repo_full_name]
        return max(numbers, default=0) + 1

    async def insert(self, repo_full_name, ticket_number, display_id, title, body_md, column, position):
        self._check("insert")
        ticket = Ticket(
            pk=str(uuid.uuid4()),
            repo_full_name=repo_full_name,
            ticket_number=ticket_number,
            display_id=display_id,
            title=title,
            body_md=body_md,
            column=column,
            position=position,
            moved_at=datetime.now(timezone.utc),
        )
        self.tickets[ticket.pk] = ticket
        return ticket

    async def update_body(self, pk: str, title: str, body_md: str) -> Optional[Ticket]:
        self._check("update_body")
        ticket = self.tickets.get(pk)
        if ticket is None:
            return None
        updated = ticket.model_copy(update={"title": title, "body_md": body_md})
        self.tickets[pk] = updated
        return updated

    async def list_repos(self) -> list[tuple[str, int]]:
        self._check("list_repos")
        counts: dict[str, int] = {}
        for ticket in self.tickets.values():
            counts[ticket.repo_full_name] = counts.get(ticket.repo_full_name, 0) + 1
        return sorted(counts.items())

    async def move_to_repo(self, pk, repo_full_name, ticket_number, display_id, body_md, column, position):
        self._check("move_to_repo")
        ticket = self.tickets.get(pk)
        if ticket is None:
            return None
        updated = ticket.model_copy(update={
            "repo_full_name": repo_full_name,
            "ticket_number": ticket_number,
            "display_id": display_id,
            "body_md": body_md,
            "column": column,
            "position": position,
            "moved_at": datetime.now(timezone.utc),
        })
        self.tickets[pk] = updated
        return updated

    async def update_column(self, pk, column, position, shift_down=False) -> Optional[Ticket]:
        self._check("update_column")
        ticket = self.tickets.get(pk)
        if ticket is None:
            return None
        if shift_down:
            for other in list(self.tickets.values()):
                if (other.pk != pk and other.repo_full_name == ticket.repo_full_name
                        and other.column == column and other.position >= position):
                    self.tickets[other.pk] = other.model_copy(update={"position": other.position + 1})
        updated = ticket.model_copy(update={
            "column": column,
            "position": position,
            "moved_at": datetime.now(timezone.utc),
        })
        self.tickets[pk] = updated
        return updated


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def ready_body():
    return READY_BODY


@pytest.fixture
def plain_bullet_body():
    return PLAIN_BULLET_BODY


@pytest.fixture
def missing_ac_body():
    return MISSING_AC_BODY


@pytest.fixture
def repo():
    return REPO


@pytest.fixture
def store():
    return FakeTicketStore()


@pytest.fixture
def broken_store():
    """Store whose every call fails like an unreachable database."""
    fake = FakeTicketStore()
    fake.fail_with = psycopg.OperationalError("connection refused")
    return fake


@pytest.fixture
def executor(store):
    return ColumnTransitionExecutor(store)


@pytest.fixture
def detector(store, executor):
    return AutoMoveDetector(
        store,
        executor,
        SessionRegistry(ttl_seconds=3600),
        TTLCache(ttl_seconds=60),
        default_repo=REPO,
    )


@pytest.fixture
def audit_store():
    """Mock tool-call audit store."""
    audit = MagicMock()
    audit.append = AsyncMock()
    return audit


@pytest.fixture
def dispatcher(store, executor, detector, audit_store):
    tools = TicketTools(store, executor, detector, REPO)
    return ToolDispatcher(tools, audit_store=audit_store)


@pytest.fixture
def mock_llm():
    """Mock UnifiedChatClient."""
    llm = MagicMock()
    llm.chat = AsyncMock(return_value="")
    llm.invoke = AsyncMock()
    llm.supports = MagicMock(return_value=False)
    return llm
