"""PM agent tools: definitions, argument models, handlers and dispatcher."""
from ticketflow.tools.definitions import TOOL_DEFINITIONS, TOOL_SPECS, ToolSpec
from ticketflow.tools.dispatcher import DispatchResult, ToolDispatcher
from ticketflow.tools.ticket_tools import TicketTools

__all__ = [
    "TOOL_DEFINITIONS",
    "TOOL_SPECS",
    "ToolSpec",
    "ToolDispatcher",
    "DispatchResult",
    "TicketTools",
]
