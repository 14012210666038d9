"""
HTTP routes for the ticket lifecycle orchestrator.

Provides:
- Readiness evaluation and ticket moves
- The Unassigned sweep
- PM tool invocation and conversational turns
- Agent run stage events, pushed by callers or polled from the cloud service
"""

import asyncio
from typing import Any, Optional

import structlog
from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from psycopg import AsyncConnection
from pydantic import BaseModel, Field

from ticketflow.agents import CloudAgentClient, poll_agent_run
from ticketflow.automove import AutoMoveDetector, SessionRegistry, TTLCache
from ticketflow.config import get_settings
from ticketflow.conversation import ConversationSummarizer, WorkingMemoryManager
from ticketflow.db import (
    ConversationStore,
    TicketStore,
    ToolCallStore,
    WorkingMemoryStore,
    get_connection,
)
from ticketflow.kanban import ColumnTransitionExecutor, check_unassigned_tickets
from ticketflow.kanban.transitions import DATASTORE_ERRORS
from ticketflow.llm import get_llm
from ticketflow.pm import PMAgent, PMReply
from ticketflow.readiness import evaluate_readiness
from ticketflow.schemas import (
    AgentRunEvent,
    AgentRunOutcome,
    AgentType,
    ImageAttachment,
    MoveResult,
    ReadinessResult,
    RunStage,
)
from ticketflow.tools import TicketTools, ToolDispatcher

logger = structlog.get_logger()
settings = get_settings()

router = APIRouter(prefix="/api", tags=["tickets"])

# Process-wide detector state, shared by every request
_sessions = SessionRegistry(ttl_seconds=settings.session_ttl_seconds)
_dedupe = TTLCache(ttl_seconds=settings.dedupe_ttl_seconds)
_watchers: dict[str, asyncio.Task] = {}

STATUS_BY_KIND = {
    "validation_error": 400,
    "policy_denied": 403,
    "not_found": 404,
    "ambiguous_signal": 409,
    "dependency_unavailable": 503,
}


# =============================================================================
# Request models
# =============================================================================


class ReadinessRequest(BaseModel):
    body_md: str


class MoveRequest(BaseModel):
    column: str = Field(description="Target column id or name")
    position: Optional[str] = Field(default=None, pattern="^(top|bottom)$")
    repo_full_name: Optional[str] = None


class RepoRequest(BaseModel):
    repo_full_name: Optional[str] = None


class ToolRequest(BaseModel):
    arguments: dict[str, Any] = Field(default_factory=dict)
    run_id: str
    repo_full_name: Optional[str] = None


class WatchRequest(BaseModel):
    session_id: str
    agent_type: AgentType
    ticket_id: Optional[str] = None
    repo_full_name: Optional[str] = None


class PMRequest(BaseModel):
    project_id: str
    agent_id: str = "pm"
    message: str = Field(min_length=1)
    images: list[ImageAttachment] = Field(default_factory=list)
    repo_full_name: Optional[str] = None


# =============================================================================
# Wiring
# =============================================================================


async def _resync_board() -> None:
    logger.info("board_resync_requested")


def _repo(requested: Optional[str]) -> str:
    repo = requested or settings.default_repo
    if not repo:
        raise HTTPException(status_code=400, detail="repo_full_name is required")
    return repo


class _Services:
    """Per-connection components."""

    def __init__(self, conn: AsyncConnection, repo: Optional[str] = None):
        self.tickets = TicketStore(conn)
        self.executor = ColumnTransitionExecutor(self.tickets, resync_hook=_resync_board)
        self.detector = AutoMoveDetector(
            self.tickets,
            self.executor,
            _sessions,
            _dedupe,
            default_repo=repo or settings.default_repo,
        )
        self.conn = conn
        self.repo = repo

    def dispatcher(self) -> ToolDispatcher:
        tools = TicketTools(self.tickets, self.executor, self.detector, _repo(self.repo))
        return ToolDispatcher(tools, audit_store=ToolCallStore(self.conn))


# =============================================================================
# Tickets
# =============================================================================


@router.post("/readiness", response_model=ReadinessResult)
async def readiness(request: ReadinessRequest) -> ReadinessResult:
    """Evaluate a body against the Definition of Ready."""
    return evaluate_readiness(request.body_md)


@router.post("/tickets/{ticket_id}/move", response_model=MoveResult)
async def move_ticket(ticket_id: str, request: MoveRequest):
    """Move a ticket to another column. No readiness gate at this level."""
    try:
        async with get_connection() as conn:
            result = await _Services(conn).executor.move_ticket(
                ticket_id,
                request.column,
                repo_full_name=request.repo_full_name,
                position=request.position,
            )
    except DATASTORE_ERRORS as e:
        logger.error("move_ticket_connection_failed", ticket_id=ticket_id, error=str(e))
        raise HTTPException(status_code=503, detail="Datastore unavailable")

    if not result.success:
        return JSONResponse(
            status_code=STATUS_BY_KIND.get(result.error_kind, 500),
            content=result.model_dump(mode="json"),
        )
    return result


@router.post("/tickets/check-unassigned")
async def check_unassigned(request: RepoRequest) -> dict[str, Any]:
    """Promote every ready Unassigned ticket to To Do."""
    repo = _repo(request.repo_full_name)
    try:
        async with get_connection() as conn:
            services = _Services(conn, repo)
            return await check_unassigned_tickets(services.tickets, services.executor, repo)
    except DATASTORE_ERRORS as e:
        logger.error("check_unassigned_connection_failed", repo=repo, error=str(e))
        raise HTTPException(status_code=503, detail="Datastore unavailable")


# =============================================================================
# PM agent
# =============================================================================


@router.post("/tools/{tool_name}")
async def invoke_tool(tool_name: str, request: ToolRequest) -> dict[str, Any]:
    """Run one PM tool call. Failures come back in the result body."""
    try:
        async with get_connection() as conn:
            dispatcher = _Services(conn, request.repo_full_name).dispatcher()
            outcome = await dispatcher.dispatch(
                tool_name, request.arguments, run_id=request.run_id
            )
    except DATASTORE_ERRORS as e:
        logger.error("tool_connection_failed", tool_name=tool_name, error=str(e))
        raise HTTPException(status_code=503, detail="Datastore unavailable")
    return outcome.result


@router.post("/pm/respond", response_model=PMReply)
async def pm_respond(request: PMRequest) -> PMReply:
    """One conversational PM turn, including any tool calls it makes."""
    llm = get_llm()
    memory_llm = get_llm(settings.memory_llm_model)
    try:
        async with get_connection() as conn:
            services = _Services(conn, request.repo_full_name)
            conversations = ConversationStore(conn)
            agent = PMAgent(
                llm,
                conversations,
                WorkingMemoryManager(memory_llm, WorkingMemoryStore(conn)),
                ConversationSummarizer(memory_llm, conversations),
                services.dispatcher(),
            )
            return await agent.respond(
                request.project_id,
                request.agent_id,
                request.message,
                images=request.images,
            )
    except DATASTORE_ERRORS as e:
        logger.error("pm_connection_failed", project_id=request.project_id, error=str(e))
        raise HTTPException(status_code=503, detail="Datastore unavailable")


# =============================================================================
# Agent runs
# =============================================================================


async def _handle_event(event: AgentRunEvent) -> AgentRunOutcome:
    async with get_connection() as conn:
        return await _Services(conn, event.repo_full_name).detector.on_agent_run_event(event)


@router.post("/agent-runs/events", response_model=AgentRunOutcome)
async def agent_run_event(event: AgentRunEvent) -> AgentRunOutcome:
    """Feed one agent run stage signal to the auto-move detector."""
    try:
        return await _handle_event(event)
    except DATASTORE_ERRORS as e:
        logger.error("agent_event_connection_failed", session_id=event.session_id, error=str(e))
        raise HTTPException(status_code=503, detail="Datastore unavailable")


async def _watch(agent_id: str, request: WatchRequest) -> None:
    client = CloudAgentClient(settings)
    log = logger.bind(agent_id=agent_id, session_id=request.session_id)

    async def on_stage(stage: RunStage, payload: dict[str, Any]) -> None:
        summary = payload.get("summary") or payload.get("error") or ""
        event = AgentRunEvent(
            session_id=request.session_id,
            agent_type=request.agent_type,
            stage=stage,
            message=summary,
            ticket_id=request.ticket_id,
            repo_full_name=request.repo_full_name,
            event_id=f"{agent_id}:{stage.value}",
        )
        try:
            outcome = await _handle_event(event)
        except DATASTORE_ERRORS as e:
            log.error("agent_watch_event_failed", stage=stage.value, error=str(e))
            return
        log.info("agent_watch_stage", stage=stage.value, moved=outcome.moved, diagnostic=outcome.diagnostic)

    try:
        final = await poll_agent_run(client, agent_id, on_stage)
        log.info("agent_watch_finished", stage=final.value)
    finally:
        await client.close()
        _watchers.pop(agent_id, None)


@router.post("/agent-runs/{agent_id}/watch", status_code=202)
async def watch_agent_run(agent_id: str, request: WatchRequest) -> dict[str, Any]:
    """Poll a cloud agent run in the background and feed its stages to the detector."""
    if agent_id in _watchers:
        return {"agent_id": agent_id, "watching": True, "already_watching": True}
    _watchers[agent_id] = asyncio.create_task(_watch(agent_id, request))
    return {"agent_id": agent_id, "watching": True, "already_watching": False}


async def cancel_watchers() -> None:
    """Cancel every background poll. Called on shutdown."""
    tasks = list(_watchers.values())
    for task in tasks:
        task.cancel()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)
    _watchers.clear()
