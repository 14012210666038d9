"""Per-chat-session agent bindings.

Each session remembers which ticket each agent type is working on, as
captured from the message that started the run. State is passed to the
detector explicitly so concurrent sessions never share a binding.
"""

import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from ticketflow.schemas.agent_run import AgentType, RunStage


@dataclass
class AgentBinding:
    ticket_id: Optional[str] = None
    last_stage: RunStage = RunStage.IDLE
    start_message: str = ""


@dataclass
class AgentSessionState:
    """What one chat session knows about its agent runs."""

    session_id: str
    bindings: dict[AgentType, AgentBinding] = field(default_factory=dict)
    touched_at: float = 0.0

    def binding(self, agent_type: AgentType) -> AgentBinding:
        if agent_type not in self.bindings:
            self.bindings[agent_type] = AgentBinding()
        return self.bindings[agent_type]

    def bind(self, agent_type: AgentType, ticket_id: Optional[str], message: str) -> None:
        binding = self.binding(agent_type)
        binding.ticket_id = ticket_id
        binding.start_message = message

    def ticket_for(self, agent_type: AgentType) -> Optional[str]:
        binding = self.bindings.get(agent_type)
        return binding.ticket_id if binding else None

    def release(self, agent_type: AgentType) -> None:
        """Forget the run once its terminal stage has been consumed."""
        self.bindings.pop(agent_type, None)


class SessionRegistry:
    """Session states keyed by session id, dropped after an idle TTL."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self._ttl = ttl_seconds
        self._clock = clock
        self._sessions: dict[str, AgentSessionState] = {}

    def get(self, session_id: str) -> AgentSessionState:
        now = self._clock()
        expired = [k for k, s in self._sessions.items() if now - s.touched_at > self._ttl]
        for k in expired:
            del self._sessions[k]
        state = self._sessions.get(session_id)
        if state is None:
            state = AgentSessionState(session_id=session_id)
            self._sessions[session_id] = state
        state.touched_at = now
        return state

    def __len__(self) -> int:
        return len(self._sessions)
