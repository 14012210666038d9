"""Agent run stage stream and auto-move outcomes."""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from ticketflow.schemas.ticket import Column


class AgentType(str, Enum):
    """Kinds of autonomous agent whose runs drive auto-moves."""

    IMPLEMENTATION = "implementation"
    QA = "qa"

    @property
    def label(self) -> str:
        return "Implementation Agent" if self is AgentType.IMPLEMENTATION else "QA Agent"


class RunStage(str, Enum):
    """Lifecycle stage of an agent run."""

    IDLE = "idle"
    PREPARING = "preparing"
    FETCHING_TICKET = "fetching_ticket"
    RESOLVING_REPO = "resolving_repo"
    LAUNCHING = "launching"
    POLLING = "polling"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"

    @classmethod
    def _missing_(cls, value):
        # Older agents report the fetch step as plain "fetching".
        if isinstance(value, str):
            key = value.strip().lower()
            if key == "fetching":
                return cls.FETCHING_TICKET
            for member in cls:
                if member.value == key:
                    return member
        return None

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STAGES

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STAGES


ACTIVE_STAGES = frozenset({
    RunStage.PREPARING,
    RunStage.FETCHING_TICKET,
    RunStage.RESOLVING_REPO,
    RunStage.LAUNCHING,
    RunStage.POLLING,
})
TERMINAL_STAGES = frozenset({RunStage.COMPLETED, RunStage.FAILED, RunStage.TIMEOUT})


class Verdict(str, Enum):
    """QA outcome."""

    PASS = "PASS"
    FAIL = "FAIL"


class AgentRunEvent(BaseModel):
    """One stage update reported for an agent run."""

    session_id: str = Field(description="Chat session the run belongs to")
    agent_type: AgentType
    stage: RunStage
    message: str = Field(default="", description="Run-start, progress or completion text")
    verdict: Optional[Verdict] = Field(default=None, description="Explicit QA verdict, if reported")
    ticket_id: Optional[str] = Field(default=None, description="Explicit ticket reference, if known")
    repo_full_name: Optional[str] = Field(default=None)
    event_id: Optional[str] = Field(default=None, description="Idempotency key for duplicate suppression")


class AgentRunOutcome(BaseModel):
    """What the auto-move detector did with one event."""

    moved: bool = False
    ticket_id: Optional[str] = None
    from_column: Optional[Column] = None
    to_column: Optional[Column] = None
    diagnostic: Optional[str] = None


class CreationOutcome(BaseModel):
    """Result of the creation-time readiness pass."""

    ready: bool
    missing_items: list[str] = Field(default_factory=list)
    auto_fixed: bool = False
    moved_to_todo: bool = False
    move_error: Optional[str] = None
    body_md: str = ""
