"""Tests for the auto-move trigger detector."""
import pytest

from ticketflow.automove import AutoMoveDetector, SessionRegistry, TTLCache
from ticketflow.kanban import ColumnTransitionExecutor
from ticketflow.schemas import AgentRunEvent, AgentType, Column, RunStage, Verdict


def impl_event(stage, message="", **kwargs):
    return AgentRunEvent(
        session_id=kwargs.pop("session_id", "s1"),
        agent_type=AgentType.IMPLEMENTATION,
        stage=stage,
        message=message,
        **kwargs,
    )


def qa_event(stage, message="", **kwargs):
    return AgentRunEvent(
        session_id=kwargs.pop("session_id", "s1"),
        agent_type=AgentType.QA,
        stage=stage,
        message=message,
        **kwargs,
    )


class TestTicketCreated:
    """Tests for the creation-time readiness pass."""

    @pytest.mark.asyncio
    async def test_ready_ticket_moves_to_todo(self, store, detector):
        ticket = store.add(1)

        outcome = await detector.on_ticket_created(ticket)

        assert outcome.ready is True
        assert outcome.moved_to_todo is True
        assert outcome.auto_fixed is False
        assert store.tickets[ticket.pk].column == Column.TODO
        assert "update_body" not in store.calls

    @pytest.mark.asyncio
    async def test_plain_bullets_autofixed_then_moved(self, store, detector, plain_bullet_body):
        ticket = store.add(1, body_md=plain_bullet_body)

        outcome = await detector.on_ticket_created(ticket)

        assert outcome.auto_fixed is True
        assert outcome.moved_to_todo is True
        saved = store.tickets[ticket.pk]
        assert saved.column == Column.TODO
        assert "- [ ] Toggle is visible in Settings" in saved.body_md

    @pytest.mark.asyncio
    async def test_missing_section_stays_unassigned(self, store, detector, missing_ac_body):
        ticket = store.add(1, body_md=missing_ac_body)

        outcome = await detector.on_ticket_created(ticket)

        assert outcome.ready is False
        assert outcome.moved_to_todo is False
        assert outcome.missing_items == ["Acceptance criteria section missing"]
        assert store.tickets[ticket.pk].column == Column.UNASSIGNED
        assert store.tickets[ticket.pk].body_md == missing_ac_body
        assert "update_body" not in store.calls

    @pytest.mark.asyncio
    async def test_move_failure_reported(self, store, detector):
        ticket = store.add(1)
        del store.tickets[ticket.pk]

        outcome = await detector.on_ticket_created(ticket)

        assert outcome.ready is True
        assert outcome.moved_to_todo is False
        assert outcome.move_error


class TestImplementationRuns:
    """Tests for implementation agent stage events."""

    @pytest.mark.asyncio
    async def test_start_moves_todo_to_doing(self, store, detector):
        ticket = store.add(1, Column.TODO)

        outcome = await detector.on_agent_run_event(
            impl_event(RunStage.PREPARING, "Implement ticket 0001")
        )

        assert outcome.moved is True
        assert outcome.to_column == Column.DOING
        assert store.tickets[ticket.pk].column == Column.DOING

    @pytest.mark.asyncio
    async def test_fetching_alias_starts_run(self, store, detector):
        """Agents reporting the short ``fetching`` stage name still trigger the start move."""
        ticket = store.add(1, Column.TODO)

        event = impl_event("Fetching", "Implement ticket 0001")
        outcome = await detector.on_agent_run_event(event)

        assert event.stage == RunStage.FETCHING_TICKET
        assert outcome.moved is True
        assert store.tickets[ticket.pk].column == Column.DOING

    @pytest.mark.asyncio
    async def test_completion_uses_session_binding(self, store, detector):
        """Completion text without an id falls back to the ticket the run started on."""
        ticket = store.add(1, Column.TODO)
        await detector.on_agent_run_event(impl_event(RunStage.PREPARING, "Implement ticket 0001"))
        await detector.on_agent_run_event(impl_event(RunStage.POLLING, "Working"))

        outcome = await detector.on_agent_run_event(impl_event(RunStage.COMPLETED, "All done, PR opened"))

        assert outcome.moved is True
        assert outcome.from_column == Column.DOING
        assert outcome.to_column == Column.QA
        assert store.tickets[ticket.pk].column == Column.QA

    @pytest.mark.asyncio
    async def test_completion_id_in_message(self, store, detector):
        ticket = store.add(7, Column.DOING)

        outcome = await detector.on_agent_run_event(
            impl_event(RunStage.COMPLETED, "Finished HAL-0007")
        )

        assert outcome.moved is True
        assert store.tickets[ticket.pk].column == Column.QA

    @pytest.mark.asyncio
    async def test_foreign_code_does_not_override_binding(self, store, detector):
        bound = store.add(1, Column.TODO)
        other = store.add(2024, Column.TODO)
        await detector.on_agent_run_event(impl_event(RunStage.PREPARING, "Implement ticket 0001"))

        outcome = await detector.on_agent_run_event(
            impl_event(RunStage.COMPLETED, "Bumped openssl to fix CVE-2024-3094.")
        )

        assert outcome.moved is True
        assert outcome.ticket_id == "HAL-0001"
        assert store.tickets[bound.pk].column == Column.QA
        assert store.tickets[other.pk].column == Column.TODO

    @pytest.mark.asyncio
    async def test_unresolved_message_id_falls_back_to_binding(self, store, detector):
        ticket = store.add(1, Column.TODO)
        await detector.on_agent_run_event(impl_event(RunStage.PREPARING, "Implement ticket 0001"))

        outcome = await detector.on_agent_run_event(
            impl_event(RunStage.COMPLETED, "Closed ticket 0099 duplicate, then finished the work.")
        )

        assert outcome.moved is True
        assert outcome.ticket_id == "HAL-0001"
        assert store.tickets[ticket.pk].column == Column.QA

    @pytest.mark.asyncio
    async def test_no_ticket_id_gives_diagnostic(self, store, detector):
        outcome = await detector.on_agent_run_event(
            impl_event(RunStage.COMPLETED, "All done, see the PR")
        )

        assert outcome.moved is False
        assert "Could not determine ticket ID from message" in outcome.diagnostic
        assert outcome.diagnostic.startswith("Implementation Agent completion")
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_start_from_wrong_column_no_move(self, store, detector):
        ticket = store.add(1, Column.UNASSIGNED)

        outcome = await detector.on_agent_run_event(
            impl_event(RunStage.PREPARING, "Implement ticket 0001")
        )

        assert outcome.moved is False
        assert "not To Do" in outcome.diagnostic
        assert store.tickets[ticket.pk].column == Column.UNASSIGNED

    @pytest.mark.asyncio
    async def test_failed_run_leaves_ticket(self, store, detector):
        ticket = store.add(1, Column.TODO)
        await detector.on_agent_run_event(impl_event(RunStage.PREPARING, "Implement ticket 0001"))

        outcome = await detector.on_agent_run_event(impl_event(RunStage.FAILED, "Build broke"))

        assert outcome.moved is False
        assert "failed" in outcome.diagnostic
        assert store.tickets[ticket.pk].column == Column.DOING

    @pytest.mark.asyncio
    async def test_sessions_do_not_share_bindings(self, store, detector):
        store.add(1, Column.TODO)
        await detector.on_agent_run_event(
            impl_event(RunStage.PREPARING, "Implement ticket 0001", session_id="a")
        )

        outcome = await detector.on_agent_run_event(
            impl_event(RunStage.COMPLETED, "All done", session_id="b")
        )

        assert outcome.moved is False
        assert "Could not determine ticket ID" in outcome.diagnostic


class TestQaRuns:
    """Tests for QA agent stage events."""

    @pytest.mark.asyncio
    async def test_start_moves_qa_to_doing(self, store, detector):
        ticket = store.add(1, Column.QA)

        outcome = await detector.on_agent_run_event(qa_event(RunStage.PREPARING, "QA ticket 0001"))

        assert outcome.moved is True
        assert outcome.from_column == Column.QA
        assert outcome.to_column == Column.DOING
        assert store.tickets[ticket.pk].column == Column.DOING

    @pytest.mark.asyncio
    async def test_start_outside_qa_no_move(self, store, detector):
        ticket = store.add(1, Column.TODO)

        outcome = await detector.on_agent_run_event(qa_event(RunStage.PREPARING, "QA ticket 0001"))

        assert outcome.moved is False
        assert "not QA" in outcome.diagnostic
        assert store.tickets[ticket.pk].column == Column.TODO

    @pytest.mark.asyncio
    async def test_fail_verdict_returns_to_todo(self, store, detector):
        ticket = store.add(1, Column.QA)

        outcome = await detector.on_agent_run_event(
            qa_event(RunStage.COMPLETED, "QA report for HAL-0001\nVerdict: FAIL")
        )

        assert outcome.moved is True
        assert outcome.to_column == Column.TODO
        assert store.tickets[ticket.pk].column == Column.TODO

    @pytest.mark.asyncio
    async def test_pass_verdict_goes_to_human_in_the_loop(self, store, detector):
        ticket = store.add(1, Column.QA)

        outcome = await detector.on_agent_run_event(
            qa_event(RunStage.COMPLETED, "QA report for HAL-0001\nVerdict: PASS")
        )

        assert outcome.to_column == Column.HUMAN_IN_THE_LOOP
        assert store.tickets[ticket.pk].column == Column.HUMAN_IN_THE_LOOP

    @pytest.mark.asyncio
    async def test_explicit_verdict_and_ticket(self, store, detector):
        ticket = store.add(3, Column.QA)

        outcome = await detector.on_agent_run_event(
            qa_event(RunStage.COMPLETED, "", verdict=Verdict.PASS, ticket_id=ticket.pk)
        )

        assert outcome.moved is True
        assert store.tickets[ticket.pk].column == Column.HUMAN_IN_THE_LOOP

    @pytest.mark.asyncio
    async def test_missing_verdict_is_ambiguous(self, store, detector):
        ticket = store.add(1, Column.QA)

        outcome = await detector.on_agent_run_event(
            qa_event(RunStage.COMPLETED, "QA complete for HAL-0001")
        )

        assert outcome.moved is False
        assert "Could not determine verdict" in outcome.diagnostic
        assert store.tickets[ticket.pk].column == Column.QA
        assert "update_column" not in store.calls


class TestDuplicateSuppression:
    """Tests for at-most-one transition per event."""

    @pytest.mark.asyncio
    async def test_same_event_id_applied_once(self, store, detector):
        store.add(1, Column.QA)
        event = qa_event(RunStage.COMPLETED, "HAL-0001 Verdict: FAIL", event_id="evt-1")

        first = await detector.on_agent_run_event(event)
        second = await detector.on_agent_run_event(event)

        assert first.moved is True
        assert second.moved is False
        assert "duplicate" in second.diagnostic
        assert store.calls.count("update_column") == 1

    @pytest.mark.asyncio
    async def test_redundant_path_is_noop(self, store):
        """A second detector path without shared dedupe still moves only once."""
        ticket = store.add(1, Column.QA)
        executor = ColumnTransitionExecutor(store)
        paths = [
            AutoMoveDetector(store, executor, SessionRegistry(3600), TTLCache(60), default_repo=ticket.repo_full_name)
            for _ in range(2)
        ]
        event = qa_event(RunStage.COMPLETED, "HAL-0001 Verdict: FAIL")

        outcomes = [await path.on_agent_run_event(event) for path in paths]

        assert [o.moved for o in outcomes] == [True, False]
        assert "already in To Do" in outcomes[1].diagnostic
        assert store.calls.count("update_column") == 1
