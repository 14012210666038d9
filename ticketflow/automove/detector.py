"""Auto-move trigger detector.

Two independent inputs lead to column transitions:

* Ticket creation: normalize, evaluate, one narrow auto-fix pass, and a
  move to To Do when the ticket is ready.
* Agent run stage events: implementation and QA runs move their ticket
  through Doing, QA, Human-in-the-loop or back to To Do.

Nothing here raises to callers. Every event that does not produce a move
comes back with a diagnostic saying why.
"""
import hashlib
from typing import Optional

import structlog

from ticketflow.automove.dedup import TTLCache
from ticketflow.automove.extractors import (
    VERDICT_STRATEGIES,
    RegexTicketId,
    completion_strategies,
    first_match,
    is_qa_completion,
    run_start_strategies,
    strategy_names,
)
from ticketflow.automove.session import AgentSessionState, SessionRegistry
from ticketflow.kanban.transitions import DATASTORE_ERRORS, ColumnTransitionExecutor
from ticketflow.readiness.evaluator import autofix_acceptance_criteria, evaluate_normalized
from ticketflow.readiness.normalizer import normalize_body
from ticketflow.readiness.ticket_ids import repo_hint_prefix
from ticketflow.schemas.agent_run import (
    AgentRunEvent,
    AgentRunOutcome,
    AgentType,
    CreationOutcome,
    RunStage,
    Verdict,
)
from ticketflow.schemas.ticket import Column, Ticket

logger = structlog.get_logger()

EXCERPT_CHARS = 120


def _excerpt(text: str) -> str:
    text = " ".join((text or "").split())
    if len(text) <= EXCERPT_CHARS:
        return text
    return text[:EXCERPT_CHARS] + "..."


def _event_key(event: AgentRunEvent) -> str:
    if event.event_id:
        return f"event:{event.event_id}"
    digest = hashlib.sha256((event.message or "").encode()).hexdigest()[:16]
    return ":".join([
        "stage",
        event.session_id,
        event.agent_type.value,
        event.stage.value,
        event.ticket_id or "",
        digest,
    ])


class AutoMoveDetector:
    """Decides whether, and where, a ticket moves in response to a signal."""

    def __init__(
        self,
        store,
        executor: ColumnTransitionExecutor,
        sessions: SessionRegistry,
        dedupe: TTLCache,
        default_repo: Optional[str] = None,
    ):
        self._store = store
        self._executor = executor
        self._sessions = sessions
        self._dedupe = dedupe
        self._default_repo = default_repo or None

    # -------------------------------------------------------------------------
    # Creation time
    # -------------------------------------------------------------------------

    async def on_ticket_created(self, ticket: Ticket) -> CreationOutcome:
        """Readiness pass for a freshly inserted Unassigned ticket.

        The auto-fix is applied at most once. Its body is persisted only if
        it makes the ticket ready; otherwise the original is kept.
        """
        log = logger.bind(ticket_id=ticket.pk, display_id=ticket.display_id)
        body = normalize_body(ticket.body_md)
        readiness = evaluate_normalized(body)
        auto_fixed = False

        if not readiness.ready:
            fixed = autofix_acceptance_criteria(body)
            if fixed is not None:
                fixed_readiness = evaluate_normalized(fixed)
                if fixed_readiness.ready:
                    body, readiness, auto_fixed = fixed, fixed_readiness, True
                    log.info("acceptance_criteria_autofixed")
                else:
                    log.info("autofix_reverted", missing_items=fixed_readiness.missing_items)

        if not readiness.ready:
            log.info("ticket_not_ready", missing_items=readiness.missing_items)
            return CreationOutcome(
                ready=False,
                missing_items=readiness.missing_items,
                body_md=ticket.body_md,
            )

        if body != ticket.body_md:
            try:
                await self._store.update_body(ticket.pk, ticket.title, body)
            except DATASTORE_ERRORS as e:
                log.error("autofix_persist_failed", error=str(e))
                return CreationOutcome(
                    ready=True,
                    auto_fixed=auto_fixed,
                    move_error=f"Could not save fixed body: {e}",
                    body_md=ticket.body_md,
                )

        result = await self._executor.move_ticket(ticket.pk, Column.TODO)
        if not result.success:
            log.warning("creation_move_failed", error=result.error)
        else:
            log.info("creation_moved_to_todo")
        return CreationOutcome(
            ready=True,
            auto_fixed=auto_fixed,
            moved_to_todo=result.success,
            move_error=None if result.success else result.error,
            body_md=body,
        )

    # -------------------------------------------------------------------------
    # Agent runs
    # -------------------------------------------------------------------------

    async def on_agent_run_event(self, event: AgentRunEvent) -> AgentRunOutcome:
        """Handle one reported stage of an implementation or QA run."""
        log = logger.bind(
            session_id=event.session_id,
            agent_type=event.agent_type.value,
            stage=event.stage.value,
        )
        if not self._dedupe.try_mark(_event_key(event)):
            log.info("agent_event_duplicate")
            return AgentRunOutcome(
                diagnostic=f"{event.agent_type.label}: duplicate {event.stage.value} event ignored.",
            )

        session = self._sessions.get(event.session_id)
        binding = session.binding(event.agent_type)
        is_start = event.stage.is_active and not binding.last_stage.is_active
        binding.last_stage = event.stage

        if is_start:
            self._capture_run_start(session, event)
            outcome = await self._apply(event, session, "start", None)
        elif event.stage == RunStage.COMPLETED:
            outcome = await self._on_completed(event, session)
        elif event.stage in (RunStage.FAILED, RunStage.TIMEOUT):
            outcome = AgentRunOutcome(
                ticket_id=session.ticket_for(event.agent_type),
                diagnostic=(
                    f"{event.agent_type.label} run ended with stage "
                    f"'{event.stage.value}'. Auto-move skipped; ticket left in place."
                ),
            )
        else:
            outcome = AgentRunOutcome()

        if event.stage.is_terminal:
            session.release(event.agent_type)

        if outcome.moved:
            log.info(
                "automove_applied",
                ticket_id=outcome.ticket_id,
                from_column=outcome.from_column.value if outcome.from_column else None,
                to_column=outcome.to_column.value if outcome.to_column else None,
            )
        elif outcome.diagnostic:
            log.info("automove_skipped", diagnostic=outcome.diagnostic)
        return outcome

    def _capture_run_start(self, session: AgentSessionState, event: AgentRunEvent) -> None:
        ticket_id = event.ticket_id
        if not ticket_id:
            match = first_match(run_start_strategies(event.agent_type), event.message)
            ticket_id = match.value if match else None
        session.bind(event.agent_type, ticket_id, event.message)

    async def _on_completed(
        self, event: AgentRunEvent, session: AgentSessionState
    ) -> AgentRunOutcome:
        if event.agent_type == AgentType.IMPLEMENTATION:
            return await self._apply(event, session, "completion", None)

        verdict = event.verdict
        if verdict is None:
            match = first_match(VERDICT_STRATEGIES, event.message)
            verdict = match.value if match else None
        if verdict is None:
            reason = (
                "report does not state PASS or FAIL"
                if is_qa_completion(event.message)
                else "message does not look like a QA report"
            )
            return AgentRunOutcome(
                ticket_id=session.ticket_for(event.agent_type),
                diagnostic=(
                    f"QA Agent completion: Could not determine verdict ({reason}). "
                    f"Auto-move skipped. Tried: {', '.join(strategy_names(VERDICT_STRATEGIES))}. "
                    f"Message: \"{_excerpt(event.message)}\""
                ),
            )
        return await self._apply(event, session, f"completion ({verdict.value})", verdict)

    def _strategies(self, event: AgentRunEvent) -> list[RegexTicketId]:
        repo = event.repo_full_name or self._default_repo
        prefix = repo_hint_prefix(repo) if repo else None
        return completion_strategies(event.agent_type, prefix)

    def _ticket_candidates(
        self, event: AgentRunEvent, session: AgentSessionState
    ) -> list[str]:
        """Refs to try in order.

        An explicit id is used alone. Otherwise an id read from the message
        comes first and the session binding is the fallback.
        """
        if event.ticket_id:
            return [event.ticket_id]
        candidates = []
        match = first_match(self._strategies(event), event.message)
        if match is not None:
            candidates.append(match.value)
        bound = session.ticket_for(event.agent_type)
        if bound and bound not in candidates:
            candidates.append(bound)
        return candidates

    async def _apply(
        self,
        event: AgentRunEvent,
        session: AgentSessionState,
        phase: str,
        verdict: Optional[Verdict],
    ) -> AgentRunOutcome:
        label = f"{event.agent_type.label} {phase}"
        candidates = self._ticket_candidates(event, session)
        if not candidates:
            tried = strategy_names(self._strategies(event))
            return AgentRunOutcome(
                diagnostic=(
                    f"{label}: Could not determine ticket ID from message. Auto-move skipped. "
                    f"Tried: {', '.join(tried)}, session binding. "
                    f"Message: \"{_excerpt(event.message)}\""
                ),
            )

        repo = event.repo_full_name or self._default_repo
        ticket = None
        for ticket_ref in candidates:
            try:
                ticket = await self._store.get_by_ref(repo, ticket_ref)
            except DATASTORE_ERRORS as e:
                return AgentRunOutcome(
                    ticket_id=ticket_ref,
                    diagnostic=f"{label}: could not read ticket {ticket_ref}: {e}. Auto-move skipped.",
                )
            if ticket is not None:
                break
            logger.info("ticket_candidate_not_found", ticket_ref=ticket_ref, session_id=event.session_id)
        if ticket is None:
            return AgentRunOutcome(
                ticket_id=candidates[0],
                diagnostic=f"{label}: ticket {', '.join(candidates)} not found. Auto-move skipped.",
            )

        target, reason = _target_column(event.agent_type, phase, verdict, ticket.column)
        if target is None:
            return AgentRunOutcome(
                ticket_id=ticket.display_id,
                from_column=ticket.column,
                diagnostic=f"{label}: {ticket.display_id} {reason}. No move.",
            )

        result = await self._executor.move_ticket(ticket.pk, target)
        if not result.success:
            return AgentRunOutcome(
                ticket_id=ticket.display_id,
                from_column=ticket.column,
                diagnostic=(
                    f"{label}: moving {ticket.display_id} to {target.label} failed: "
                    f"{result.error}. Ticket left in {ticket.column.label}."
                ),
            )
        if result.noop:
            return AgentRunOutcome(
                ticket_id=ticket.display_id,
                from_column=ticket.column,
                to_column=target,
                diagnostic=f"{label}: {ticket.display_id} already in {target.label}. No move.",
            )
        return AgentRunOutcome(
            moved=True,
            ticket_id=ticket.display_id,
            from_column=ticket.column,
            to_column=target,
        )


def _target_column(
    agent_type: AgentType,
    phase: str,
    verdict: Optional[Verdict],
    current: Column,
) -> tuple[Optional[Column], str]:
    """Target column for a run signal given the ticket's current column.

    Returns (None, reason) when the rule does not apply.
    """
    if agent_type == AgentType.IMPLEMENTATION:
        if phase == "start":
            if current == Column.TODO:
                return Column.DOING, ""
            if current.order >= Column.DOING.order:
                return None, f"is already in {current.label}"
            return None, f"is in {current.label}, not To Do"
        if current.order < Column.QA.order:
            return Column.QA, ""
        return None, f"is already in {current.label}"

    if phase == "start":
        if current == Column.QA:
            return Column.DOING, ""
        return None, f"is in {current.label}, not QA"
    if current == Column.DONE:
        return None, "is already Done"
    if verdict == Verdict.PASS:
        return Column.HUMAN_IN_THE_LOOP, ""
    return Column.TODO, ""
