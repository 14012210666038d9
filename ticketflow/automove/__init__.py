"""Auto-move trigger detection for ticket creation and agent run signals."""
from ticketflow.automove.dedup import TTLCache
from ticketflow.automove.detector import AutoMoveDetector
from ticketflow.automove.extractors import (
    VERDICT_STRATEGIES,
    completion_strategies,
    first_match,
    is_qa_completion,
    run_start_strategies,
)
from ticketflow.automove.session import AgentSessionState, SessionRegistry

__all__ = [
    "AutoMoveDetector",
    "TTLCache",
    "AgentSessionState",
    "SessionRegistry",
    "VERDICT_STRATEGIES",
    "completion_strategies",
    "run_start_strategies",
    "first_match",
    "is_qa_completion",
]
