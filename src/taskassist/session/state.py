"""
Session state machine.

  ConversationNotStarted (INIT) --preload--> PrepareCodeGeneration (CODEGEN) --+
                                                     ^                          |
                                                     +---- submit / poll -------+

Rules:
  - A state's phase never changes. Transitions return a new state object.
  - ConversationNotStarted never accepts an action; only Session.preloader()
    leaves INIT.
  - Each submission charges one iteration. At zero remaining iterations the
    state refuses further submissions without calling the remote agent.
  - Remote and packaging failures never escape ``interact``; they come back
    as a non-succeeding Interaction. Only IllegalTransitionError is raised.
  - The cancellation token is checked before every step and after every
    awaited remote call. A cancelled call leaves the counters untouched.
  - The temporary upload archive is deleted on every exit path.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import structlog

from taskassist.clients.base import CodeGenerationStatus, CodeGenerationWorkflowStatus
from taskassist.core.cancellation import CANCELLATION_MESSAGE, CancellationTokenSource
from taskassist.core.constants import (
    CODE_GENERATION_RETRY_LIMIT,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_POLL_TIMEOUT_SECONDS,
    UPLOAD_CONTENT_TYPE,
    UPLOAD_INTENT,
    MetricDataOperationName,
    MetricDataResult,
    RemoteOperation,
)
from taskassist.core.exceptions import (
    DomainRemoteError,
    IllegalTransitionError,
    OperationCancelledError,
    PackageSizeExceededError,
    TransientRemoteError,
    WorkspaceSelectionError,
)
from taskassist.core.telemetry import (
    StructlogTelemetrySink,
    TelemetryEvent,
    TelemetrySink,
    track_operation,
)
from taskassist.session.changeset import build_code_generation_result, summarize_result
from taskassist.session.diff_metrics import DiffMetricsProcessed
from taskassist.session.models import (
    CodeGenerationResult,
    Interaction,
    InteractionFailure,
    SessionStateAction,
    SessionStateConfig,
    SessionStateInteraction,
    SessionStatePhase,
)
from taskassist.workspace.packager import ZipCreationResult
from taskassist.workspace.upload import delete_upload_artifact, upload_artifact

logger = structlog.get_logger()

Uploader = Callable[[str, ZipCreationResult], Awaitable[None]]
ArtifactCleanup = Callable[[Path], None]

_DOMAIN_ERRORS = (DomainRemoteError, PackageSizeExceededError, WorkspaceSelectionError)
_TRANSIENT_ERRORS = (TransientRemoteError, OSError)


# ---------------------------------------------------------------------------
# States
# ---------------------------------------------------------------------------


@dataclass
class ConversationNotStartedState:
    """Initial state of every session. Accepts no actions."""

    approach: str
    tab_id: str
    token: CancellationTokenSource | None = None

    @property
    def phase(self) -> SessionStatePhase:
        return SessionStatePhase.INIT

    async def interact(self, action: SessionStateAction) -> SessionStateInteraction:
        return await transition(self, action)


@dataclass
class PrepareCodeGenerationState:
    """
    Code generation phase.

    ``interact`` packages and uploads the workspace, then submits a job.
    ``poll_code_generation`` waits for that job and builds the change set.
    """

    tab_id: str
    approach: str
    config: SessionStateConfig
    token: CancellationTokenSource | None = None
    current_iteration: int = 1
    code_generation_remaining_iteration_count: int | None = None
    code_generation_total_iteration_count: int | None = None
    code_generation_id: str | None = None
    upload_id: str | None = None
    code_generation_result: CodeGenerationResult | None = None
    iteration_limit: int = CODE_GENERATION_RETRY_LIMIT
    diff_metrics: DiffMetricsProcessed = field(default_factory=DiffMetricsProcessed)
    telemetry: TelemetrySink = field(default_factory=StructlogTelemetrySink)
    uploader: Uploader = upload_artifact
    cleanup: ArtifactCleanup = delete_upload_artifact

    @property
    def phase(self) -> SessionStatePhase:
        return SessionStatePhase.CODEGEN

    @property
    def conversation_id(self) -> str:
        return self.config.conversation_id

    @property
    def has_pending_job(self) -> bool:
        return self.code_generation_id is not None

    async def interact(self, action: SessionStateAction) -> SessionStateInteraction:
        return await transition(self, action)


SessionState = ConversationNotStartedState | PrepareCodeGenerationState


# ---------------------------------------------------------------------------
# Transition
# ---------------------------------------------------------------------------


async def transition(state: SessionState, action: SessionStateAction) -> SessionStateInteraction:
    """Apply *action* to *state*, dispatching on the state variant."""
    if isinstance(state, ConversationNotStartedState):
        raise IllegalTransitionError()
    if isinstance(state, PrepareCodeGenerationState):
        return await _submit_code_generation(state, action)
    raise IllegalTransitionError(f"No transition defined for {type(state).__name__}")


async def _submit_code_generation(
    state: PrepareCodeGenerationState,
    action: SessionStateAction,
) -> SessionStateInteraction:
    token = action.token or state.token
    cid = state.conversation_id
    log = logger.bind(tab_id=state.tab_id, conversation_id=cid, iteration=state.current_iteration)

    remaining, total = _budget(state)
    if remaining <= 0:
        log.info("code_generation_limit_reached", total=total)
        return SessionStateInteraction(
            next_state=None,
            interaction=Interaction.failed(
                InteractionFailure.ITERATION_EXHAUSTED,
                _limit_reached_message(state),
            ),
        )

    if not action.task.strip() or not action.msg.strip():
        return SessionStateInteraction(
            next_state=state,
            interaction=Interaction.failed(
                InteractionFailure.VALIDATION,
                "A task and a message are required to start code generation.",
            ),
        )

    sink = state.telemetry
    service = state.config.service

    try:
        _check(token)
        artifact = await state.config.repo_context.package_workspace()
        try:
            _check(token)
            async with track_operation(sink, RemoteOperation.CREATE_UPLOAD_URL, cid) as span:
                span.attributes["repository_size"] = artifact.content_length
                span.attributes["upload_intent"] = UPLOAD_INTENT
                upload = await service.create_upload_url(
                    cid, artifact.checksum, artifact.content_length, UPLOAD_CONTENT_TYPE
                )
            _check(token)
            async with track_operation(sink, RemoteOperation.UPLOAD_TO_S3, cid):
                await state.uploader(upload.upload_url, artifact)
        finally:
            state.cleanup(artifact.path)

        _check(token)
        async with track_operation(sink, RemoteOperation.START_CODE_GENERATION, cid):
            code_generation_id = await service.start_code_generation(
                cid, upload.upload_id, action.task, action.msg, UPLOAD_INTENT
            )
        _check(token)
    except OperationCancelledError:
        log.info("code_generation_submit_cancelled")
        return _cancelled(state)
    except _DOMAIN_ERRORS as exc:
        log.warning(
            "code_generation_submit_rejected", error=str(exc), error_type=type(exc).__name__
        )
        return SessionStateInteraction(
            next_state=None,
            interaction=Interaction.failed(InteractionFailure.DOMAIN, str(exc)),
        )
    except _TRANSIENT_ERRORS as exc:
        log.warning(
            "code_generation_submit_failed", error=str(exc), error_type=type(exc).__name__
        )
        return SessionStateInteraction(
            next_state=state,
            interaction=Interaction.failed(InteractionFailure.TRANSIENT, _transient_message(exc)),
        )

    sink.record(
        TelemetryEvent(
            operation=str(MetricDataOperationName.START_CODE_GENERATION),
            result=MetricDataResult.SUCCESS,
            conversation_id=cid,
        )
    )

    remaining = max(remaining - 1, 0)

    next_state = replace(
        state,
        current_iteration=state.current_iteration + 1,
        code_generation_remaining_iteration_count=remaining,
        code_generation_total_iteration_count=total,
        code_generation_id=code_generation_id,
        upload_id=upload.upload_id,
        code_generation_result=None,
    )
    log.info(
        "code_generation_started",
        code_generation_id=code_generation_id,
        remaining=remaining,
        total=total,
    )
    return SessionStateInteraction(
        next_state=next_state,
        interaction=Interaction(content="", interaction_succeeded=True),
    )


# ---------------------------------------------------------------------------
# Polling
# ---------------------------------------------------------------------------


async def poll_code_generation(
    state: SessionState,
    *,
    interval_s: float = DEFAULT_POLL_INTERVAL_SECONDS,
    timeout_s: float = DEFAULT_POLL_TIMEOUT_SECONDS,
    token: CancellationTokenSource | None = None,
) -> SessionStateInteraction:
    """
    Wait for the state's submitted job, then build its change set.

    COMPLETE → same-phase state carrying the result, summary as content.
    FAILED   → non-succeeding interaction; the state is kept for a retry
               while iterations remain, otherwise there is no next state.
    Timeout and transient errors keep the state so the caller can poll again.
    """
    if not isinstance(state, PrepareCodeGenerationState) or state.code_generation_id is None:
        raise IllegalTransitionError("There is no code generation job to wait for")

    token = token or state.token
    cid = state.conversation_id
    job = state.code_generation_id
    sink = state.telemetry
    service = state.config.service
    log = logger.bind(tab_id=state.tab_id, conversation_id=cid, code_generation_id=job)
    deadline = time.monotonic() + timeout_s

    try:
        while True:
            _check(token)
            async with track_operation(sink, RemoteOperation.GET_CODE_GENERATION, cid) as span:
                status = await service.get_code_generation_status(cid, job)
                span.attributes["status"] = str(status.status)
            _check(token)

            if status.status == CodeGenerationWorkflowStatus.COMPLETE:
                return await _complete(state, status, log, token)
            if status.status == CodeGenerationWorkflowStatus.FAILED:
                return _failed(state, status, log)

            now = time.monotonic()
            if now >= deadline:
                log.warning("code_generation_poll_timeout", timeout_s=timeout_s)
                return SessionStateInteraction(
                    next_state=state,
                    interaction=Interaction.failed(
                        InteractionFailure.TRANSIENT,
                        "Code generation is taking longer than expected. Try again later.",
                    ),
                )
            _check(token)
            await _sleep(token, min(interval_s, deadline - now))
    except OperationCancelledError:
        log.info("code_generation_poll_cancelled")
        return _cancelled(state)
    except _DOMAIN_ERRORS as exc:
        log.warning("code_generation_poll_rejected", error=str(exc))
        _record_end(sink, cid, MetricDataResult.ERROR, type(exc).__name__)
        return SessionStateInteraction(
            next_state=None,
            interaction=Interaction.failed(InteractionFailure.DOMAIN, str(exc)),
        )
    except _TRANSIENT_ERRORS as exc:
        log.warning("code_generation_poll_failed", error=str(exc))
        return SessionStateInteraction(
            next_state=state,
            interaction=Interaction.failed(InteractionFailure.TRANSIENT, _transient_message(exc)),
        )


async def _complete(
    state: PrepareCodeGenerationState,
    status: CodeGenerationStatus,
    log: Any,
    token: CancellationTokenSource | None,
) -> SessionStateInteraction:
    cid = state.conversation_id
    remaining, total = _merge_counts(state, status)

    async with track_operation(state.telemetry, RemoteOperation.EXPORT_RESULT_ARCHIVE, cid):
        raw = await state.config.service.export_result_archive(cid)
    _check(token)

    result = build_code_generation_result(raw, remaining, total)
    state.diff_metrics.record_generated(result.paths)
    _record_end(state.telemetry, cid, MetricDataResult.SUCCESS)

    log.info(
        "code_generation_complete",
        new_files=len(result.new_files),
        deleted_files=len(result.deleted_files),
        references=len(result.references),
    )
    next_state = replace(
        state,
        code_generation_remaining_iteration_count=remaining,
        code_generation_total_iteration_count=total,
        code_generation_id=None,
        code_generation_result=result,
    )
    return SessionStateInteraction(
        next_state=next_state,
        interaction=Interaction(content=summarize_result(result), interaction_succeeded=True),
    )


def _failed(
    state: PrepareCodeGenerationState,
    status: CodeGenerationStatus,
    log: Any,
) -> SessionStateInteraction:
    remaining, total = _merge_counts(state, status)
    _record_end(
        state.telemetry,
        state.conversation_id,
        MetricDataResult.LLM_FAILURE,
        status.failure_reason,
    )
    log.warning("code_generation_failed", reason=status.failure_reason, remaining=remaining)

    content = "Code generation failed."
    if status.failure_reason:
        content = f"Code generation failed: {status.failure_reason}"

    next_state = None
    if remaining is None or remaining > 0:
        next_state = replace(
            state,
            code_generation_remaining_iteration_count=remaining,
            code_generation_total_iteration_count=total,
            code_generation_id=None,
        )
    return SessionStateInteraction(
        next_state=next_state,
        interaction=Interaction.failed(InteractionFailure.CODE_GENERATION_FAILED, content),
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _check(token: CancellationTokenSource | None) -> None:
    if token is not None:
        token.raise_if_cancelled()


async def _sleep(token: CancellationTokenSource | None, seconds: float) -> None:
    if token is None:
        await asyncio.sleep(seconds)
        return
    if await token.sleep(seconds):
        raise OperationCancelledError(CANCELLATION_MESSAGE)


def _merge_counts(
    state: PrepareCodeGenerationState,
    status: CodeGenerationStatus,
) -> tuple[int | None, int | None]:
    """Status counts win for remaining; total is fixed once known and never shrinks."""
    remaining = status.remaining_iteration_count
    if remaining is None:
        remaining = state.code_generation_remaining_iteration_count

    total = state.code_generation_total_iteration_count
    if status.total_iteration_count is not None:
        reported = status.total_iteration_count
        total = reported if total is None else max(total, reported)
    return remaining, total


def _budget(state: PrepareCodeGenerationState) -> tuple[int, int]:
    """Remaining and total iterations, falling back to the configured limit."""
    total = state.code_generation_total_iteration_count
    if total is None:
        total = state.iteration_limit
    remaining = state.code_generation_remaining_iteration_count
    if remaining is None:
        remaining = total
    return remaining, total


def _record_end(
    sink: TelemetrySink,
    conversation_id: str,
    result: MetricDataResult,
    reason: str = "",
) -> None:
    sink.record(
        TelemetryEvent(
            operation=str(MetricDataOperationName.END_CODE_GENERATION),
            result=result,
            conversation_id=conversation_id,
            reason=reason,
        )
    )


def _cancelled(state: SessionState) -> SessionStateInteraction:
    return SessionStateInteraction(
        next_state=state,
        interaction=Interaction.failed(InteractionFailure.CANCELLED, CANCELLATION_MESSAGE),
    )


def _limit_reached_message(state: PrepareCodeGenerationState) -> str:
    _, total = _budget(state)
    return (
        f"Code generation limit reached: all {total} iterations of this conversation "
        "have been used. Start a new conversation to continue."
    )


def _transient_message(exc: BaseException) -> str:
    return f"Something went wrong while talking to the code generation service: {exc}. Retry."
