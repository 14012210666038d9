"""Conversation turns, working memory and context pack models."""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class TurnRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ImageAttachment(BaseModel):
    """Image attached to a user turn, as a data URL or remote URL."""

    url: str
    mime_type: str = "image/png"
    filename: Optional[str] = None


class ConversationTurn(BaseModel):
    role: TurnRole
    content: str
    sequence: int = Field(ge=0, description="Monotonic per (project, agent)")
    images: list[ImageAttachment] = Field(default_factory=list)
    response_id: Optional[str] = Field(
        default=None,
        description="Continuity token returned by the model service (assistant turns)",
    )
    created_at: Optional[datetime] = None


class WorkingMemory(BaseModel):
    """Durable, lossy compression of a conversation's decision-relevant facts."""

    project_id: str
    agent_id: str
    summary: str = ""
    goals: list[str] = Field(default_factory=list)
    requirements: list[str] = Field(default_factory=list)
    constraints: list[str] = Field(default_factory=list)
    decisions: list[str] = Field(default_factory=list)
    assumptions: list[str] = Field(default_factory=list)
    open_questions: list[str] = Field(default_factory=list)
    glossary: dict[str, str] = Field(default_factory=dict)
    stakeholders: list[str] = Field(default_factory=list)
    through_sequence: int = Field(default=-1, description="Last turn folded into this record")
    updated_at: Optional[datetime] = None


class WorkingMemoryExtraction(BaseModel):
    """Shape the model is asked to return when extracting memory."""

    summary: str = ""
    goals: list[str] = Field(default_factory=list)
    requirements: list[str] = Field(default_factory=list)
    constraints: list[str] = Field(default_factory=list)
    decisions: list[str] = Field(default_factory=list)
    assumptions: list[str] = Field(default_factory=list)
    open_questions: list[str] = Field(default_factory=list)
    glossary: dict[str, str] = Field(default_factory=dict)
    stakeholders: list[str] = Field(default_factory=list)


class ConversationSummary(BaseModel):
    project_id: str
    agent_id: str
    summary_text: str = ""
    through_sequence: int = -1


class ContextPack(BaseModel):
    """Bounded context handed to the conversational agent for one turn."""

    project_id: str
    agent_id: str
    working_memory_text: Optional[str] = None
    summary_text: Optional[str] = None
    recent_turns: list[ConversationTurn] = Field(default_factory=list)
    omitted_turns: int = 0
    truncation_note: Optional[str] = None
    previous_response_id: Optional[str] = None
    images: list[ImageAttachment] = Field(default_factory=list)
