"""Column transition executor.

Applies one column change to a ticket: allocate the next position in the
target column, then update column, position and moved_at together. Readiness
is not checked here; callers decide when a move is allowed.
"""
import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Literal, Optional, Union

import psycopg

from ticketflow.errors import DependencyUnavailable, NotFoundError, TicketflowError
from ticketflow.kanban.positions import allocate_position
from ticketflow.schemas.ticket import Column, MoveResult

logger = logging.getLogger(__name__)

ResyncHook = Callable[[], Union[Awaitable[None], None]]
PositionHint = Literal["top", "bottom"]

# Errors that mean the datastore could not be reached or refused the write.
DATASTORE_ERRORS = (psycopg.Error, OSError, asyncio.TimeoutError)


class ColumnTransitionExecutor:
    """Moves tickets between columns through a ticket store."""

    def __init__(self, store, resync_hook: Optional[ResyncHook] = None):
        self._store = store
        self._resync_hook = resync_hook
        self._background: set[asyncio.Task] = set()

    async def move_ticket(
        self,
        ticket_ref: str,
        target: Union[str, Column],
        *,
        repo_full_name: Optional[str] = None,
        position: Optional[PositionHint] = None,
    ) -> MoveResult:
        """Move a ticket to ``target``.

        A ticket already in the target column is left untouched and reported
        as a successful no-op. Failures come back as a result with
        ``error_kind`` set; nothing is raised.
        """
        try:
            column = Column.parse(target)
        except NotFoundError as e:
            return _failure(e, ticket_ref)

        try:
            ticket = await self._store.get_by_ref(repo_full_name, ticket_ref)
            if ticket is None:
                raise NotFoundError(
                    f"Ticket {ticket_ref} not found",
                    details={"ticket_id": ticket_ref},
                )

            if ticket.column == column:
                logger.info(
                    "Ticket already in target column",
                    extra={"ticket_id": ticket.pk, "column": column.value},
                )
                return MoveResult(
                    success=True,
                    ticket_id=ticket.pk,
                    from_column=ticket.column,
                    to_column=column,
                    position=ticket.position,
                    moved_at=ticket.moved_at,
                    noop=True,
                )

            if position == "top":
                new_position = 0
            else:
                new_position = await allocate_position(
                    self._store, ticket.repo_full_name, column
                )
            updated = await self._store.update_column(
                ticket.pk, column, new_position, shift_down=position == "top"
            )
            if updated is None:
                raise NotFoundError(
                    f"Ticket {ticket_ref} disappeared during move",
                    details={"ticket_id": ticket_ref},
                )
        except TicketflowError as e:
            return _failure(e, ticket_ref)
        except DATASTORE_ERRORS as e:
            logger.error(
                f"Ticket move failed: {e}",
                extra={"ticket_id": ticket_ref, "column": column.value},
            )
            return _failure(
                DependencyUnavailable(f"Datastore unavailable: {e}"), ticket_ref
            )

        logger.info(
            "Ticket moved",
            extra={
                "ticket_id": updated.pk,
                "display_id": updated.display_id,
                "from_column": ticket.column.value,
                "to_column": column.value,
                "position": updated.position,
            },
        )
        self._schedule_resync()
        return MoveResult(
            success=True,
            ticket_id=updated.pk,
            from_column=ticket.column,
            to_column=column,
            position=updated.position,
            moved_at=updated.moved_at,
        )

    def _schedule_resync(self) -> None:
        """Fire the resync hook without waiting for it."""
        if self._resync_hook is None:
            return
        task = asyncio.create_task(self._run_resync())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _run_resync(self) -> None:
        try:
            outcome = self._resync_hook()
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.warning(f"Resync hook failed: {e}", exc_info=True)


def _failure(error: TicketflowError, ticket_ref: str) -> MoveResult:
    return MoveResult(
        success=False,
        ticket_id=ticket_ref,
        error=error.message,
        error_kind=error.kind,
    )
