"""Typed arguments for each PM agent tool.

Models ignore unknown keys (models sometimes add commentary fields) and
coerce bare numbers to strings for ticket references.
"""
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError


class ToolArgs(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


class CreateTicketArgs(ToolArgs):
    title: str = Field(min_length=1, description="Short ticket title (without id prefix)")
    body_md: str = Field(
        min_length=1,
        description="Full markdown body with Goal, Human-verifiable deliverable, "
        "Acceptance criteria, Constraints and Non-goals sections",
    )


class FetchTicketContentArgs(ToolArgs):
    ticket_id: str = Field(min_length=1, description="Ticket id, display id (HAL-0042) or number")


class EvaluateTicketReadyArgs(ToolArgs):
    body_md: str = Field(description="Ticket body to check against the Definition of Ready")


class UpdateTicketBodyArgs(ToolArgs):
    ticket_id: str = Field(min_length=1, description="Ticket id, display id or number")
    body_md: str = Field(min_length=1, description="Complete replacement body")


class MoveTicketToTodoArgs(ToolArgs):
    ticket_id: str = Field(min_length=1, description="Ticket id, display id or number")
    position: Optional[Literal["top", "bottom"]] = Field(
        default=None,
        description="Place at top or bottom of To Do (default bottom)",
    )


class MoveTicketToColumnArgs(ToolArgs):
    ticket_id: str = Field(min_length=1, description="Ticket id, display id or number")
    column: str = Field(
        min_length=1,
        description="Target column id (col-todo) or name (To Do, Doing, QA, ...)",
    )
    position: Optional[Literal["top", "bottom"]] = Field(default=None)


class ListTicketsByColumnArgs(ToolArgs):
    column: str = Field(min_length=1, description="Column id or name")


class ListAvailableReposArgs(ToolArgs):
    pass


class MoveTicketToOtherRepoTodoArgs(ToolArgs):
    ticket_id: str = Field(min_length=1, description="Ticket id, display id or number")
    target_repo_full_name: str = Field(
        pattern=r"^\s*[\w.-]+/[\w.-]+\s*$",
        description="Target repository full name (owner/name)",
    )


class AttachImageToTicketArgs(ToolArgs):
    ticket_id: str = Field(min_length=1, description="Ticket id, display id or number")
    image_index: int = Field(ge=0, description="Index of the image in the conversation")


class SyncTicketsArgs(ToolArgs):
    pass


def describe_validation_error(error: PydanticValidationError) -> tuple[str, list[str]]:
    """Human-readable message plus the names of the failing fields."""
    fields: list[str] = []
    parts: list[str] = []
    for item in error.errors():
        field = ".".join(str(p) for p in item.get("loc", ())) or "arguments"
        if field not in fields:
            fields.append(field)
        parts.append(f"{field}: {item.get('msg', 'invalid')}")
    return "Invalid arguments: " + "; ".join(parts), fields
