"""Ticket, column and readiness schemas."""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from ticketflow.errors import NotFoundError


class Column(str, Enum):
    """Fixed kanban pipeline, in order."""

    UNASSIGNED = "col-unassigned"
    TODO = "col-todo"
    DOING = "col-doing"
    QA = "col-qa"
    HUMAN_IN_THE_LOOP = "col-human-in-the-loop"
    DONE = "col-done"

    @property
    def label(self) -> str:
        return COLUMN_TITLES[self]

    @property
    def order(self) -> int:
        return list(Column).index(self)

    @classmethod
    def parse(cls, value: "str | Column") -> "Column":
        """Resolve a column id, member name or human title.

        Raises:
            NotFoundError: If the value names no known column.
        """
        if isinstance(value, Column):
            return value
        raw = (value or "").strip()
        try:
            return cls(raw)
        except ValueError:
            pass
        key = raw.lower().replace("_", " ").replace("-", " ")
        key = " ".join(key.split())
        if key in _COLUMN_ALIASES:
            return _COLUMN_ALIASES[key]
        raise NotFoundError(
            f"Unknown column: {value!r}",
            details={"column": value, "valid_columns": [c.value for c in cls]},
        )


COLUMN_TITLES = {
    Column.UNASSIGNED: "Unassigned",
    Column.TODO: "To Do",
    Column.DOING: "Doing",
    Column.QA: "QA",
    Column.HUMAN_IN_THE_LOOP: "Human in the Loop",
    Column.DONE: "Done",
}

_COLUMN_ALIASES = {
    "unassigned": Column.UNASSIGNED,
    "col unassigned": Column.UNASSIGNED,
    "backlog": Column.UNASSIGNED,
    "todo": Column.TODO,
    "to do": Column.TODO,
    "col todo": Column.TODO,
    "ready": Column.TODO,
    "doing": Column.DOING,
    "col doing": Column.DOING,
    "in progress": Column.DOING,
    "qa": Column.QA,
    "col qa": Column.QA,
    "human in the loop": Column.HUMAN_IN_THE_LOOP,
    "col human in the loop": Column.HUMAN_IN_THE_LOOP,
    "hitl": Column.HUMAN_IN_THE_LOOP,
    "done": Column.DONE,
    "col done": Column.DONE,
}


class Ticket(BaseModel):
    """A ticket row as read from the datastore."""

    pk: str = Field(description="Stable primary key (UUID)")
    repo_full_name: str = Field(description="Owning repository (owner/name)")
    ticket_number: int = Field(description="Per-repo sequence number")
    display_id: str = Field(description="Human-facing id, e.g. HAL-0042")
    title: str = Field(default="", description="Ticket title")
    body_md: str = Field(default="", description="Markdown body with required sections")
    column: Column = Field(default=Column.UNASSIGNED, description="Current kanban column")
    position: int = Field(default=0, ge=0, description="Ordinal position within column")
    moved_at: Optional[datetime] = Field(default=None, description="Last column change")
    created_at: Optional[datetime] = Field(default=None)


class ChecklistResults(BaseModel):
    """Per-rule pass/fail of the readiness checklist."""

    goal: bool = False
    deliverable: bool = False
    acceptance_criteria: bool = False
    constraints_non_goals: bool = False
    no_placeholders: bool = False


class ReadinessResult(BaseModel):
    """Outcome of evaluating a ticket body. Derived, never persisted."""

    ready: bool
    missing_items: list[str] = Field(default_factory=list)
    checklist_results: ChecklistResults = Field(default_factory=ChecklistResults)


class MoveResult(BaseModel):
    """Structured result of a single column transition."""

    success: bool
    ticket_id: Optional[str] = None
    from_column: Optional[Column] = None
    to_column: Optional[Column] = None
    position: Optional[int] = None
    moved_at: Optional[datetime] = None
    noop: bool = Field(default=False, description="Ticket was already in the target column")
    error: Optional[str] = None
    error_kind: Optional[str] = None
