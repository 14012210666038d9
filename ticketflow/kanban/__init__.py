"""Kanban column state machine: positions, transitions, Unassigned sweep."""
from ticketflow.kanban.positions import allocate_position, next_position
from ticketflow.kanban.transitions import ColumnTransitionExecutor
from ticketflow.kanban.unassigned import check_unassigned_tickets

__all__ = [
    "next_position",
    "allocate_position",
    "ColumnTransitionExecutor",
    "check_unassigned_tickets",
]
