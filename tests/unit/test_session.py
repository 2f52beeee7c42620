"""Unit tests for Session: bootstrap, interaction, retries, cancellation, close."""

from __future__ import annotations

import asyncio

import pytest

from taskassist.clients.base import CodeGenerationStatus, CodeGenerationWorkflowStatus
from taskassist.core.constants import MetricDataResult, RemoteOperation
from taskassist.core.exceptions import (
    DomainRemoteError,
    IllegalTransitionError,
    SessionBusyError,
    TransientRemoteError,
)
from taskassist.session.diff_metrics import DIFF_METRICS_OPERATION
from taskassist.session.models import InteractionFailure, SessionStatePhase
from taskassist.session.session import Session
from taskassist.session.state import ConversationNotStartedState, PrepareCodeGenerationState


@pytest.fixture
def session(service, packager, uploader, cleanup, sink) -> Session:
    return Session(
        "tab-1",
        service,
        packager,
        telemetry=sink,
        uploader=uploader,
        cleanup=cleanup,
        poll_interval_s=0.01,
        poll_timeout_s=5,
    )


# ---------------------------------------------------------------------------
# Bootstrap
# ---------------------------------------------------------------------------


class TestPreloader:
    def test_new_session_is_not_started(self, session: Session) -> None:
        assert isinstance(session.session_state, ConversationNotStartedState)
        assert session.phase == SessionStatePhase.INIT
        assert session.conversation_id is None
        assert session.retries == 3

    @pytest.mark.asyncio
    async def test_preload_enters_codegen(self, session: Session, service) -> None:
        await session.preloader("Add a health check")

        state = session.session_state
        assert isinstance(state, PrepareCodeGenerationState)
        assert state.phase == SessionStatePhase.CODEGEN
        assert state.current_iteration == 1
        assert state.tab_id == "tab-1"
        assert session.conversation_id == "conv-1"
        service.create_conversation.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_preload_is_not_reentrant(self, session: Session) -> None:
        await session.preloader("task")
        with pytest.raises(IllegalTransitionError):
            await session.preloader("task")

    @pytest.mark.asyncio
    async def test_preload_failure_stays_in_init(self, session: Session, service) -> None:
        service.create_conversation.side_effect = TransientRemoteError("timed out")
        with pytest.raises(TransientRemoteError):
            await session.preloader("task")
        assert session.phase == SessionStatePhase.INIT

        service.create_conversation.side_effect = None
        await session.preloader("task")
        assert session.phase == SessionStatePhase.CODEGEN

    @pytest.mark.asyncio
    async def test_send_before_preload_is_illegal(self, session: Session) -> None:
        with pytest.raises(IllegalTransitionError):
            await session.send("hello")


# ---------------------------------------------------------------------------
# Interaction
# ---------------------------------------------------------------------------


class TestSend:
    @pytest.mark.asyncio
    async def test_first_message(self, session: Session, service) -> None:
        await session.preloader("Add a health check")
        interaction = await session.send("Use FastAPI")

        assert interaction.interaction_succeeded
        assert interaction.content == ""
        state = session.session_state
        assert state.tab_id == "tab-1"
        assert state.code_generation_remaining_iteration_count == 2
        assert state.code_generation_total_iteration_count == 3
        service.start_code_generation.assert_awaited_once_with(
            "conv-1", "upload-1", "Add a health check", "Use FastAPI", "DEV"
        )
        service.create_conversation.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_domain_failure_ends_the_session(self, session: Session, service) -> None:
        service.start_code_generation.side_effect = DomainRemoteError("invalid task")
        await session.preloader("task")
        interaction = await session.send("msg")

        assert interaction.failure == InteractionFailure.DOMAIN
        assert session.is_terminal
        with pytest.raises(IllegalTransitionError, match="terminal"):
            await session.send("again")

    @pytest.mark.asyncio
    async def test_transient_failure_spends_a_retry(self, session: Session, uploader) -> None:
        uploader.side_effect = TransientRemoteError("reset")
        await session.preloader("task")
        before = session.session_state

        interaction = await session.send("msg")

        assert interaction.failure == InteractionFailure.TRANSIENT
        assert session.session_state is before
        assert session.retries == 2
        assert not session.is_terminal

    @pytest.mark.asyncio
    async def test_spent_retries_refuse_further_sends(
        self, session: Session, uploader, service
    ) -> None:
        uploader.side_effect = TransientRemoteError("reset")
        await session.preloader("task")
        for _ in range(3):
            interaction = await session.send("msg")
            assert interaction.failure == InteractionFailure.TRANSIENT
        assert session.retries == 0
        uploader.side_effect = None

        interaction = await session.send("msg")

        assert not interaction.interaction_succeeded
        assert interaction.failure == InteractionFailure.RETRIES_EXHAUSTED
        assert session.last_interaction is interaction
        assert uploader.await_count == 3
        service.start_code_generation.assert_not_called()

    @pytest.mark.asyncio
    async def test_spent_retries_refuse_poll(self, session: Session, service) -> None:
        await session.preloader("task")
        await session.send("msg")
        session.retries = 0

        interaction = await session.poll()

        assert interaction.failure == InteractionFailure.RETRIES_EXHAUSTED
        service.get_code_generation_status.assert_not_called()

    @pytest.mark.asyncio
    async def test_retries_never_go_negative(self, session: Session) -> None:
        for _ in range(5):
            session.decrease_retries()
        assert session.retries == 0

    @pytest.mark.asyncio
    async def test_generate_returns_the_change_set(self, session: Session) -> None:
        await session.preloader("task")
        interaction = await session.generate("msg")

        assert interaction.interaction_succeeded
        assert "2 files to add or update" in interaction.content
        result = session.latest_result
        assert result is not None
        assert len(result.new_files) == 2
        assert session.last_interaction is interaction

    @pytest.mark.asyncio
    async def test_generate_stops_when_submit_fails(self, session: Session, service) -> None:
        service.create_upload_url.side_effect = TransientRemoteError("timed out")
        await session.preloader("task")
        interaction = await session.generate("msg")

        assert interaction.failure == InteractionFailure.TRANSIENT
        service.get_code_generation_status.assert_not_called()

    @pytest.mark.asyncio
    async def test_generate_reports_one_round_trip_event(self, session: Session, sink) -> None:
        await session.preloader("task")
        await session.generate("msg")

        (event,) = sink.by_operation(RemoteOperation.GENERATE_CODE)
        assert event.result == MetricDataResult.SUCCESS
        assert event.conversation_id == "conv-1"

    @pytest.mark.asyncio
    async def test_generate_event_tags_failed_job(self, session: Session, service, sink) -> None:
        service.get_code_generation_status.return_value = CodeGenerationStatus(
            status=CodeGenerationWorkflowStatus.FAILED,
            remaining_iteration_count=1,
            failure_reason="guardrail",
        )
        await session.preloader("task")
        interaction = await session.generate("msg")

        assert interaction.failure == InteractionFailure.CODE_GENERATION_FAILED
        (event,) = sink.by_operation(RemoteOperation.GENERATE_CODE)
        assert event.result == MetricDataResult.LLM_FAILURE
        assert event.reason == "code_generation_failed"

    @pytest.mark.asyncio
    async def test_generate_event_tags_transient_failure(
        self, session: Session, uploader, sink
    ) -> None:
        uploader.side_effect = TransientRemoteError("reset")
        await session.preloader("task")
        await session.generate("msg")

        (event,) = sink.by_operation(RemoteOperation.GENERATE_CODE)
        assert event.result == MetricDataResult.FAULT

    @pytest.mark.asyncio
    async def test_poll_without_submission_is_illegal(self, session: Session) -> None:
        await session.preloader("task")
        with pytest.raises(IllegalTransitionError):
            await session.poll()

    @pytest.mark.asyncio
    async def test_record_review_feeds_diff_metrics(self, session: Session) -> None:
        await session.preloader("task")
        await session.generate("msg")
        session.record_review("src/app.py", accepted=True)
        session.record_review("README.md", accepted=False)

        assert session.diff_metrics.accepted == {"src/app.py"}
        assert "README.md" in session.diff_metrics.generated


class TestBusyGuard:
    @pytest.mark.asyncio
    async def test_overlapping_operations_are_refused(self, session: Session, service) -> None:
        service.get_code_generation_status.return_value = CodeGenerationStatus(
            status=CodeGenerationWorkflowStatus.IN_PROGRESS
        )
        await session.preloader("task")
        await session.send("msg")

        poll_task = asyncio.create_task(session.poll())
        await asyncio.sleep(0.02)
        with pytest.raises(SessionBusyError):
            await session.send("second")

        session.cancel("test over")
        interaction = await asyncio.wait_for(poll_task, timeout=2)
        assert interaction.failure == InteractionFailure.CANCELLED


# ---------------------------------------------------------------------------
# Cancellation and lifecycle
# ---------------------------------------------------------------------------


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_send_keeps_state(self, session: Session, service) -> None:
        await session.preloader("task")
        before = session.session_state
        session.cancel()

        interaction = await session.send("msg")

        assert interaction.failure == InteractionFailure.CANCELLED
        assert session.session_state is before
        assert session.retries == 3
        service.start_code_generation.assert_not_called()

    @pytest.mark.asyncio
    async def test_renew_token_allows_new_work(self, session: Session) -> None:
        await session.preloader("task")
        session.cancel()
        fresh = session.renew_token()

        assert session.token is fresh
        assert session.session_state.token is fresh
        interaction = await session.send("msg")
        assert interaction.interaction_succeeded


class TestClose:
    @pytest.mark.asyncio
    async def test_close_emits_diff_metrics(self, session: Session, sink) -> None:
        await session.preloader("task")
        await session.generate("msg")
        session.record_review("src/app.py", accepted=True)

        await session.close()

        (event,) = sink.by_operation(DIFF_METRICS_OPERATION)
        assert event.conversation_id == "conv-1"
        assert event.attributes["accepted_count"] == 1
        assert event.attributes["generated_count"] == 3
        assert session.token.is_cancellation_requested

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, session: Session, sink) -> None:
        await session.preloader("task")
        await session.close()
        await session.close()
        assert len(sink.by_operation(DIFF_METRICS_OPERATION)) == 1

    @pytest.mark.asyncio
    async def test_close_before_preload_emits_nothing(self, session: Session, sink) -> None:
        await session.close()
        assert sink.by_operation(DIFF_METRICS_OPERATION) == []

    @pytest.mark.asyncio
    async def test_closed_session_refuses_work(self, session: Session) -> None:
        await session.preloader("task")
        await session.close()
        with pytest.raises(IllegalTransitionError, match="closed"):
            await session.send("msg")
