"""Ticket tool implementations for the PM agent.

Each method takes validated arguments and returns a result dict, or raises
a ``TicketflowError`` subclass that the dispatcher turns into a structured
failure. Placeholder checks happen before any datastore access.
"""
import logging
from typing import Any, Awaitable, Callable, Optional

from psycopg import errors as pg_errors

from ticketflow.automove.detector import AutoMoveDetector
from ticketflow.errors import (
    DependencyUnavailable,
    NotFoundError,
    PolicyDenied,
    ValidationError,
)
from ticketflow.kanban.positions import allocate_position
from ticketflow.kanban.transitions import ColumnTransitionExecutor
from ticketflow.readiness.evaluator import evaluate_readiness, find_placeholders
from ticketflow.readiness.normalizer import normalize_body, normalize_title_line
from ticketflow.readiness.ticket_ids import format_display_id, repo_hint_prefix
from ticketflow.schemas.ticket import Column, MoveResult, Ticket
from ticketflow.tools.arguments import (
    AttachImageToTicketArgs,
    CreateTicketArgs,
    EvaluateTicketReadyArgs,
    FetchTicketContentArgs,
    ListAvailableReposArgs,
    ListTicketsByColumnArgs,
    MoveTicketToColumnArgs,
    MoveTicketToOtherRepoTodoArgs,
    MoveTicketToTodoArgs,
    SyncTicketsArgs,
    UpdateTicketBodyArgs,
)

logger = logging.getLogger(__name__)

MAX_CREATE_ATTEMPTS = 10

_ERRORS_BY_KIND = {
    cls.kind: cls
    for cls in (ValidationError, NotFoundError, DependencyUnavailable, PolicyDenied)
}


def _reject_placeholders(action: str, *texts: str) -> None:
    tokens: list[str] = []
    for text in texts:
        for token in find_placeholders(text):
            if token not in tokens:
                tokens.append(token)
    if tokens:
        raise ValidationError(
            f"{action} rejected: unresolved template placeholder tokens detected. "
            f"Detected placeholders: {', '.join(tokens)}. "
            "Replace them with concrete content and try again.",
            details={"detected_placeholders": tokens},
        )


def _raise_for_move(result: MoveResult) -> None:
    if result.success:
        return
    error_cls = _ERRORS_BY_KIND.get(result.error_kind or "", DependencyUnavailable)
    raise error_cls(result.error or "Move failed")


def _ticket_summary(ticket: Ticket) -> dict[str, Any]:
    return {
        "id": ticket.pk,
        "display_id": ticket.display_id,
        "ticket_number": ticket.ticket_number,
        "title": ticket.title,
        "column": ticket.column.value,
        "column_name": ticket.column.label,
        "position": ticket.position,
    }


class TicketTools:
    """Tool handlers bound to one repository's ticket store."""

    def __init__(
        self,
        store,
        executor: ColumnTransitionExecutor,
        detector: AutoMoveDetector,
        repo_full_name: str,
    ):
        self._store = store
        self._executor = executor
        self._detector = detector
        self._repo = repo_full_name

    async def _require_ticket(self, ticket_ref: str) -> Ticket:
        ticket = await self._store.get_by_ref(self._repo, ticket_ref)
        if ticket is None:
            raise NotFoundError(
                f"Ticket {ticket_ref} not found in {self._repo}",
                details={"ticket_id": ticket_ref},
            )
        return ticket

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def create_ticket(self, args: CreateTicketArgs) -> dict[str, Any]:
        _reject_placeholders("Ticket creation", args.title, args.body_md)

        title = args.title.strip()
        body = normalize_body(args.body_md)

        async def write(number: int, display_id: str, position: int) -> Ticket:
            return await self._store.insert(
                self._repo,
                number,
                display_id,
                title,
                normalize_title_line(body, display_id, title),
                Column.UNASSIGNED,
                position,
            )

        ticket = await self._write_numbered(self._repo, Column.UNASSIGNED, write)

        outcome = await self._detector.on_ticket_created(ticket)
        return {
            **_ticket_summary(ticket),
            "column": (Column.TODO if outcome.moved_to_todo else Column.UNASSIGNED).value,
            "column_name": (Column.TODO if outcome.moved_to_todo else Column.UNASSIGNED).label,
            "ready": outcome.ready,
            "missing_items": outcome.missing_items,
            "auto_fixed": outcome.auto_fixed,
            "moved_to_todo": outcome.moved_to_todo,
            "move_error": outcome.move_error,
        }

    async def _write_numbered(
        self,
        repo_full_name: str,
        column: Column,
        write: Callable[[int, str, int], Awaitable[Optional[Ticket]]],
    ) -> Optional[Ticket]:
        """Run ``write`` with the repo's next ticket number, retrying on collision.

        ``write`` gets (number, display id, end position in ``column``).
        """
        prefix = repo_hint_prefix(repo_full_name)
        for attempt in range(MAX_CREATE_ATTEMPTS):
            number = await self._store.next_ticket_number(repo_full_name)
            display_id = format_display_id(prefix, number)
            position = await allocate_position(self._store, repo_full_name, column)
            try:
                return await write(number, display_id, position)
            except pg_errors.UniqueViolation:
                logger.info(
                    "Ticket number taken, retrying",
                    extra={"repo": repo_full_name, "ticket_number": number, "attempt": attempt + 1},
                )
        raise DependencyUnavailable(
            f"Could not allocate a ticket number after {MAX_CREATE_ATTEMPTS} attempts"
        )

    async def update_ticket_body(self, args: UpdateTicketBodyArgs) -> dict[str, Any]:
        _reject_placeholders("Ticket update", args.body_md)

        ticket = await self._require_ticket(args.ticket_id)
        body = normalize_title_line(
            normalize_body(args.body_md), ticket.display_id, ticket.title
        )
        updated = await self._store.update_body(ticket.pk, ticket.title, body)
        if updated is None:
            raise NotFoundError(f"Ticket {args.ticket_id} disappeared during update")

        readiness = evaluate_readiness(updated.body_md)
        return {
            **_ticket_summary(updated),
            "ready": readiness.ready,
            "missing_items": readiness.missing_items,
        }

    async def kanban_move_ticket_to_todo(self, args: MoveTicketToTodoArgs) -> dict[str, Any]:
        ticket = await self._require_ticket(args.ticket_id)
        if ticket.column != Column.UNASSIGNED:
            raise ValidationError(
                f"Ticket {ticket.display_id} is in {ticket.column.label}; "
                "only Unassigned tickets can be moved to To Do",
                details={"current_column": ticket.column.value},
            )
        self._require_ready(ticket)
        result = await self._executor.move_ticket(
            ticket.pk, Column.TODO, position=args.position
        )
        _raise_for_move(result)
        return {
            **_ticket_summary(ticket),
            "column": Column.TODO.value,
            "column_name": Column.TODO.label,
            "position": result.position,
            "moved_at": result.moved_at.isoformat() if result.moved_at else None,
        }

    async def move_ticket_to_column(self, args: MoveTicketToColumnArgs) -> dict[str, Any]:
        target = Column.parse(args.column)
        ticket = await self._require_ticket(args.ticket_id)
        if ticket.column == Column.UNASSIGNED and target != Column.UNASSIGNED:
            self._require_ready(ticket)
        result = await self._executor.move_ticket(ticket.pk, target, position=args.position)
        _raise_for_move(result)
        return {
            **_ticket_summary(ticket),
            "from_column": ticket.column.value,
            "column": target.value,
            "column_name": target.label,
            "position": result.position,
            "noop": result.noop,
        }

    async def kanban_move_ticket_to_other_repo_todo(
        self, args: MoveTicketToOtherRepoTodoArgs
    ) -> dict[str, Any]:
        target_repo = args.target_repo_full_name.strip()
        if target_repo.casefold() == self._repo.casefold():
            raise ValidationError(
                f"{target_repo} is the current repository; use kanban_move_ticket_to_todo",
                details={"field": "target_repo_full_name"},
            )
        ticket = await self._require_ticket(args.ticket_id)
        if ticket.column not in (Column.UNASSIGNED, Column.TODO):
            raise ValidationError(
                f"Ticket {ticket.display_id} is in {ticket.column.label}; "
                "only Unassigned or To Do tickets can move to another repository",
                details={"current_column": ticket.column.value},
            )
        self._require_ready(ticket)

        async def write(number: int, display_id: str, position: int) -> Optional[Ticket]:
            return await self._store.move_to_repo(
                ticket.pk,
                target_repo,
                number,
                display_id,
                normalize_title_line(ticket.body_md, display_id, ticket.title),
                Column.TODO,
                position,
            )

        moved = await self._write_numbered(target_repo, Column.TODO, write)
        if moved is None:
            raise NotFoundError(f"Ticket {args.ticket_id} disappeared during move")
        return {
            **_ticket_summary(moved),
            "repo_full_name": moved.repo_full_name,
            "from_repo_full_name": self._repo,
            "from_display_id": ticket.display_id,
            "from_column": ticket.column.value,
        }

    def _require_ready(self, ticket: Ticket) -> None:
        readiness = evaluate_readiness(ticket.body_md)
        if not readiness.ready:
            raise ValidationError(
                f"Ticket {ticket.display_id} is not ready: "
                + "; ".join(readiness.missing_items),
                details={"missing_items": readiness.missing_items},
            )

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def fetch_ticket_content(self, args: FetchTicketContentArgs) -> dict[str, Any]:
        ticket = await self._require_ticket(args.ticket_id)
        return {**_ticket_summary(ticket), "body_md": ticket.body_md}

    async def evaluate_ticket_ready(self, args: EvaluateTicketReadyArgs) -> dict[str, Any]:
        readiness = evaluate_readiness(args.body_md)
        return {
            "ready": readiness.ready,
            "missing_items": readiness.missing_items,
            "checklist_results": readiness.checklist_results.model_dump(),
        }

    async def list_tickets_by_column(self, args: ListTicketsByColumnArgs) -> dict[str, Any]:
        column = Column.parse(args.column)
        tickets = await self._store.list_by_column(self._repo, column)
        return {
            "column": column.value,
            "column_name": column.label,
            "tickets": [_ticket_summary(t) for t in tickets],
        }

    async def list_available_repos(self, args: ListAvailableReposArgs) -> dict[str, Any]:
        repos = await self._store.list_repos()
        return {
            "repos": [
                {"repo_full_name": name, "ticket_count": count} for name, count in repos
            ],
            "count": len(repos),
        }

    # -------------------------------------------------------------------------
    # Deliberately unavailable
    # -------------------------------------------------------------------------

    async def attach_image_to_ticket(self, args: AttachImageToTicketArgs) -> dict[str, Any]:
        raise PolicyDenied(
            "Image attachment is unavailable: tickets do not store images yet. "
            "Describe the image in the ticket body instead.",
            details={"unavailable": True, "ticket_id": args.ticket_id},
        )

    async def sync_tickets(self, args: SyncTicketsArgs) -> dict[str, Any]:
        raise PolicyDenied(
            "sync_tickets is disabled for the PM agent. Ticket sync is run by the board, "
            "not from chat.",
            details={"disabled": True},
        )
