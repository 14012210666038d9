"""Sweep of the Unassigned column: promote every ready ticket to To Do."""
import logging
from typing import Any

from ticketflow.kanban.transitions import DATASTORE_ERRORS, ColumnTransitionExecutor
from ticketflow.readiness.evaluator import evaluate_readiness
from ticketflow.schemas.ticket import Column

logger = logging.getLogger(__name__)


async def check_unassigned_tickets(
    store,
    executor: ColumnTransitionExecutor,
    repo_full_name: str,
) -> dict[str, Any]:
    """Evaluate all Unassigned tickets of a repo and move the ready ones.

    Returns:
        {"moved": [display ids], "not_ready": [{id, title, missing_items}],
         "error": str | None}
    """
    moved: list[str] = []
    not_ready: list[dict[str, Any]] = []
    errors: list[str] = []

    try:
        tickets = await store.list_by_column(repo_full_name, Column.UNASSIGNED)
    except DATASTORE_ERRORS as e:
        logger.error(f"Unassigned sweep could not list tickets: {e}")
        return {"moved": [], "not_ready": [], "error": f"Datastore unavailable: {e}"}

    for ticket in tickets:
        readiness = evaluate_readiness(ticket.body_md)
        if not readiness.ready:
            not_ready.append({
                "id": ticket.display_id,
                "title": ticket.title,
                "missing_items": readiness.missing_items,
            })
            continue
        result = await executor.move_ticket(
            ticket.pk, Column.TODO, repo_full_name=repo_full_name
        )
        if result.success:
            moved.append(ticket.display_id)
        else:
            errors.append(f"{ticket.display_id}: {result.error}")

    logger.info(
        "Unassigned sweep finished",
        extra={
            "repo": repo_full_name,
            "moved": len(moved),
            "not_ready": len(not_ready),
            "errors": len(errors),
        },
    )
    return {
        "moved": moved,
        "not_ready": not_ready,
        "error": "; ".join(errors) if errors else None,
    }
