"""Schemas for tickets, agent runs, conversations and tool audit records."""
from ticketflow.schemas.agent_run import (
    ACTIVE_STAGES,
    TERMINAL_STAGES,
    AgentRunEvent,
    AgentRunOutcome,
    AgentType,
    CreationOutcome,
    RunStage,
    Verdict,
)
from ticketflow.schemas.conversation import (
    ContextPack,
    ConversationSummary,
    ConversationTurn,
    ImageAttachment,
    TurnRole,
    WorkingMemory,
    WorkingMemoryExtraction,
)
from ticketflow.schemas.ticket import (
    COLUMN_TITLES,
    ChecklistResults,
    Column,
    MoveResult,
    ReadinessResult,
    Ticket,
)
from ticketflow.schemas.tool_call import ToolCallRecord

__all__ = [
    # Tickets
    "Column",
    "COLUMN_TITLES",
    "Ticket",
    "ChecklistResults",
    "ReadinessResult",
    "MoveResult",
    # Agent runs
    "AgentType",
    "RunStage",
    "Verdict",
    "ACTIVE_STAGES",
    "TERMINAL_STAGES",
    "AgentRunEvent",
    "AgentRunOutcome",
    "CreationOutcome",
    # Conversation
    "TurnRole",
    "ImageAttachment",
    "ConversationTurn",
    "WorkingMemory",
    "WorkingMemoryExtraction",
    "ConversationSummary",
    "ContextPack",
    # Audit
    "ToolCallRecord",
]
