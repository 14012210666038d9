"""Conversational PM agent: context assembly, LLM tool loop, memory update."""
import json
from typing import Any, Optional

import structlog
from pydantic import BaseModel, Field

from ticketflow.config import get_settings
from ticketflow.conversation.context import build_context
from ticketflow.conversation.summarizer import ConversationSummarizer
from ticketflow.conversation.working_memory import WorkingMemoryManager
from ticketflow.llm import FinishReason, Message, MessageRole, UnifiedChatClient
from ticketflow.schemas.conversation import ContextPack, ImageAttachment, TurnRole
from ticketflow.tools.definitions import TOOL_DEFINITIONS
from ticketflow.tools.dispatcher import ToolDispatcher

logger = structlog.get_logger()

SYSTEM_PROMPT = """You are the project manager agent for a kanban board of tickets.

Tickets move Unassigned -> To Do -> Doing -> QA -> Human in the Loop -> Done.
A ticket may leave Unassigned only when it meets the Definition of Ready:
  ## Goal (one sentence)
  ## Human-verifiable deliverable (UI-only)
  ## Acceptance criteria (UI-only)   (at least one "- [ ]" item)
  ## Constraints
  ## Non-goals
No section may be empty and no <placeholder> tokens may remain.

Use the tools to create, read, evaluate, update and move tickets. After a tool
call, tell the user plainly what happened, including anything still missing."""

FAILURE_REPLY = "Sorry, I couldn't complete that request. Please try again in a moment."


class PMReply(BaseModel):
    success: bool = True
    reply: str
    tool_calls: list[dict[str, Any]] = Field(default_factory=list)
    response_id: Optional[str] = None
    error: Optional[str] = None


def build_messages(pack: ContextPack, use_continuity: bool) -> list[Message]:
    """Prompt messages for a context pack.

    With a continuity token only the newest user turn is sent; the service
    already holds the rest of the exchange.
    """
    system_parts = [SYSTEM_PROMPT]
    for part in (pack.working_memory_text, pack.summary_text, pack.truncation_note):
        if part:
            system_parts.append(part)
    messages = [Message(role=MessageRole.SYSTEM, content="\n\n".join(system_parts))]

    turns = pack.recent_turns
    if use_continuity:
        turns = [t for t in turns if t.role == TurnRole.USER][-1:]
    for turn in turns:
        role = MessageRole.USER if turn.role == TurnRole.USER else MessageRole.ASSISTANT
        messages.append(
            Message(
                role=role,
                content=turn.content,
                image_urls=[img.url for img in turn.images] if role == MessageRole.USER else [],
            )
        )
    return messages


class PMAgent:
    """One PM conversation per (project, agent)."""

    def __init__(
        self,
        llm: UnifiedChatClient,
        conversation_store,
        memory: WorkingMemoryManager,
        summarizer: ConversationSummarizer,
        dispatcher: ToolDispatcher,
        max_iterations: Optional[int] = None,
        recent_turns_limit: Optional[int] = None,
    ):
        settings = get_settings()
        self.llm = llm
        self.conversations = conversation_store
        self.memory = memory
        self.summarizer = summarizer
        self.dispatcher = dispatcher
        self.max_iterations = max_iterations or settings.tool_loop_max_iterations
        self.recent_turns_limit = recent_turns_limit or settings.recent_turns_limit

    async def respond(
        self,
        project_id: str,
        agent_id: str,
        user_message: str,
        images: Optional[list[ImageAttachment]] = None,
    ) -> PMReply:
        log = logger.bind(project_id=project_id, agent_id=agent_id)

        user_turn = await self.conversations.append_turn(
            project_id, agent_id, TurnRole.USER, user_message, images=images or []
        )
        run_id = f"{project_id}:{agent_id}:{user_turn.sequence}"
        turns = await self.conversations.list_turns(project_id, agent_id)
        summary = await self.summarizer.update(
            project_id, agent_id, turns, keep_recent=self.recent_turns_limit
        )
        working_memory = await self.memory.store.get(project_id, agent_id)
        pack = build_context(
            project_id,
            agent_id,
            turns,
            working_memory=working_memory,
            summary=summary,
            max_turns=self.recent_turns_limit,
        )

        token = pack.previous_response_id if self.llm.supports("continuity") else None
        messages = build_messages(pack, use_continuity=bool(token))
        tool_results: list[dict[str, Any]] = []
        reply_text = ""
        response_id: Optional[str] = None

        for iteration in range(self.max_iterations):
            result = await self.llm.invoke(
                messages, tools=TOOL_DEFINITIONS, previous_response_id=token
            )
            if result.finish_reason == FinishReason.ERROR:
                log.error("pm_llm_failed", iteration=iteration, error=result.error)
                return PMReply(
                    success=False,
                    reply=FAILURE_REPLY,
                    tool_calls=tool_results,
                    error=result.error,
                )
            response_id = result.response_id or response_id

            if not result.tool_calls:
                reply_text = result.text
                break

            step: list[Message] = []
            for call in result.tool_calls:
                outcome = await self.dispatcher.dispatch(call.name, call.arguments, run_id=run_id)
                tool_results.append(outcome.result)
                step.append(
                    Message(
                        role=MessageRole.TOOL,
                        content=json.dumps(outcome.result, default=str),
                        tool_call_id=call.id,
                        name=call.name,
                    )
                )
            log.info("pm_tools_executed", iteration=iteration, tools=[c.name for c in result.tool_calls])

            if result.response_id and self.llm.supports("continuity"):
                # The service holds the exchange; send only the tool outputs.
                token = result.response_id
                messages = step
            else:
                messages = messages + [
                    Message(
                        role=MessageRole.ASSISTANT,
                        content=result.text,
                        tool_calls=result.tool_calls,
                    )
                ] + step
        else:
            log.warning("pm_tool_loop_exhausted", max_iterations=self.max_iterations)
            reply_text = "I ran out of steps while working on that. Here is what I did: " + "; ".join(
                f"{r['tool']} ({'ok' if r['success'] else r.get('error')})" for r in tool_results
            )

        await self.conversations.append_turn(
            project_id, agent_id, TurnRole.ASSISTANT, reply_text, response_id=response_id
        )
        turns = await self.conversations.list_turns(project_id, agent_id)
        await self.memory.update_after_turn(project_id, agent_id, turns)

        log.info("pm_turn_completed", tool_calls=len(tool_results))
        return PMReply(reply=reply_text, tool_calls=tool_results, response_id=response_id)
