"""Position allocation within a kanban column."""
from typing import Optional

from ticketflow.schemas.ticket import Column


def next_position(max_position: Optional[int]) -> int:
    """Append-to-end slot: current max + 1, or 0 for an empty column."""
    if max_position is None:
        return 0
    return max_position + 1


async def allocate_position(store, repo_full_name: str, column: Column) -> int:
    """Read the column's current max position and return the next slot.

    Computed at call time, never cached, so concurrent movers each see the
    latest max.
    """
    return next_position(await store.max_position(repo_full_name, column))
