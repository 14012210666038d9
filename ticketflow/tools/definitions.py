"""Tool catalogue exposed to the PM agent."""
from dataclasses import dataclass

from ticketflow.llm.adapters.base import ToolDefinition
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
    ToolArgs,
    UpdateTicketBodyArgs,
)


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    args_model: type[ToolArgs]

    def definition(self) -> ToolDefinition:
        schema = self.args_model.model_json_schema()
        schema.pop("title", None)
        return ToolDefinition(name=self.name, description=self.description, parameters=schema)


TOOL_SPECS: dict[str, ToolSpec] = {
    spec.name: spec
    for spec in (
        ToolSpec(
            "create_ticket",
            "Create a ticket in Unassigned. If it meets the Definition of Ready "
            "(after one automatic checkbox fix) it is moved to To Do. The result "
            "says whether it was moved and what is missing.",
            CreateTicketArgs,
        ),
        ToolSpec(
            "fetch_ticket_content",
            "Read a ticket's title, body and column. Never modifies the ticket.",
            FetchTicketContentArgs,
        ),
        ToolSpec(
            "evaluate_ticket_ready",
            "Check a ticket body against the Definition of Ready and list what is missing.",
            EvaluateTicketReadyArgs,
        ),
        ToolSpec(
            "update_ticket_body",
            "Replace a ticket's body, then re-check readiness.",
            UpdateTicketBodyArgs,
        ),
        ToolSpec(
            "kanban_move_ticket_to_todo",
            "Move a ready ticket from Unassigned to To Do.",
            MoveTicketToTodoArgs,
        ),
        ToolSpec(
            "move_ticket_to_column",
            "Move a ticket to any kanban column. Tickets leaving Unassigned must be ready.",
            MoveTicketToColumnArgs,
        ),
        ToolSpec(
            "list_tickets_by_column",
            "List the tickets in one kanban column, in board order.",
            ListTicketsByColumnArgs,
        ),
        ToolSpec(
            "list_available_repos",
            "List the repositories that have tickets, with their ticket counts.",
            ListAvailableReposArgs,
        ),
        ToolSpec(
            "kanban_move_ticket_to_other_repo_todo",
            "Move a ready Unassigned or To Do ticket to the end of another repository's To Do. "
            "The ticket gets a new number and display id in the target repository.",
            MoveTicketToOtherRepoTodoArgs,
        ),
        ToolSpec(
            "attach_image_to_ticket",
            "Attach a conversation image to a ticket (currently unavailable).",
            AttachImageToTicketArgs,
        ),
        ToolSpec(
            "sync_tickets",
            "Sync tickets with the repository (disabled for this agent).",
            SyncTicketsArgs,
        ),
    )
}

TOOL_DEFINITIONS: list[ToolDefinition] = [spec.definition() for spec in TOOL_SPECS.values()]
