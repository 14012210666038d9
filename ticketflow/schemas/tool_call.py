"""Tool call audit record."""
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field


class ToolCallRecord(BaseModel):
    """Append-only audit entry for one tool invocation."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    run_id: str = Field(description="Agent run or conversation turn the call belongs to")
    tool_name: str
    input: dict[str, Any] = Field(default_factory=dict)
    output: dict[str, Any] = Field(default_factory=dict)
    success: bool = False
    error_kind: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
