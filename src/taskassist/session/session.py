"""
Session — the long-lived handle for one conversation with the code generation agent.

A Session owns exactly one state at a time and replaces it wholesale after
every transition. Callers drive it in this order::

    session = Session("tab-1", service=client, repo_context=packager)
    await session.preloader("Add a health check endpoint")   # once
    interaction = await session.send("Use FastAPI")            # submit
    interaction = await session.poll()                          # wait + change set
    session.record_review("app/health.py", accepted=True)

Only one operation may run at a time; overlapping calls raise
SessionBusyError. Every transient failure spends one of the session's retries;
once none are left, send() and poll() refuse without calling the remote
agent. A session whose state machine reached a terminal outcome,
or that was closed, refuses further work; start a new Session instead.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import replace

import structlog

from taskassist.clients.base import RemoteAgentClient
from taskassist.core.cancellation import CancellationTokenSource
from taskassist.core.constants import (
    CODE_GENERATION_RETRY_LIMIT,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_POLL_TIMEOUT_SECONDS,
    MetricDataResult,
    RemoteOperation,
)
from taskassist.core.exceptions import IllegalTransitionError, SessionBusyError
from taskassist.core.telemetry import StructlogTelemetrySink, TelemetrySink, track_operation
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
from taskassist.session.state import (
    ArtifactCleanup,
    ConversationNotStartedState,
    PrepareCodeGenerationState,
    SessionState,
    Uploader,
    poll_code_generation,
)
from taskassist.workspace.packager import ArtifactPackager
from taskassist.workspace.upload import delete_upload_artifact, upload_artifact

logger = structlog.get_logger()

_FAILURE_RESULTS = {
    InteractionFailure.TRANSIENT: MetricDataResult.FAULT,
    InteractionFailure.CODE_GENERATION_FAILED: MetricDataResult.LLM_FAILURE,
}


class Session:
    """One user conversation, identified by its tab id."""

    def __init__(
        self,
        tab_id: str,
        service: RemoteAgentClient,
        repo_context: ArtifactPackager,
        *,
        telemetry: TelemetrySink | None = None,
        uploader: Uploader = upload_artifact,
        cleanup: ArtifactCleanup = delete_upload_artifact,
        retry_limit: int = CODE_GENERATION_RETRY_LIMIT,
        poll_interval_s: float = DEFAULT_POLL_INTERVAL_SECONDS,
        poll_timeout_s: float = DEFAULT_POLL_TIMEOUT_SECONDS,
    ) -> None:
        self.tab_id = tab_id
        self._service = service
        self._repo_context = repo_context
        self._telemetry = telemetry or StructlogTelemetrySink()
        self._uploader = uploader
        self._cleanup = cleanup
        self._retry_limit = retry_limit
        self._poll_interval_s = poll_interval_s
        self._poll_timeout_s = poll_timeout_s

        self._token = CancellationTokenSource()
        self._state: SessionState = ConversationNotStartedState(
            approach="", tab_id=tab_id, token=self._token
        )
        self._config: SessionStateConfig | None = None
        self._task = ""
        self._preloaded = False
        self._terminal = False
        self._closed = False
        self._busy = False

        self.retries = retry_limit
        self.diff_metrics = DiffMetricsProcessed()
        self.last_interaction: Interaction | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def session_state(self) -> SessionState:
        return self._state

    @property
    def phase(self) -> SessionStatePhase:
        return self._state.phase

    @property
    def conversation_id(self) -> str | None:
        return self._config.conversation_id if self._config else None

    @property
    def token(self) -> CancellationTokenSource:
        return self._token

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def is_terminal(self) -> bool:
        return self._terminal or self._closed

    @property
    def latest_result(self) -> CodeGenerationResult | None:
        if isinstance(self._state, PrepareCodeGenerationState):
            return self._state.code_generation_result
        return None

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------

    async def preloader(self, msg: str) -> None:
        """
        Open the remote conversation and enter the code generation phase.

        Runs once per session. *msg* becomes the task description sent with
        every submission. Remote errors propagate and leave the session in
        INIT so the caller may try again.
        """
        self._ensure_usable()
        if self._preloaded or not isinstance(self._state, ConversationNotStartedState):
            raise IllegalTransitionError()

        async with self._exclusive():
            config = await self._get_session_state_config()
            self._task = msg
            self._state = PrepareCodeGenerationState(
                tab_id=self.tab_id,
                approach=self._state.approach,
                config=config,
                token=self._token,
                current_iteration=1,
                iteration_limit=self._retry_limit,
                diff_metrics=self.diff_metrics,
                telemetry=self._telemetry,
                uploader=self._uploader,
                cleanup=self._cleanup,
            )
            self._preloaded = True

        logger.info(
            "session_preloaded",
            tab_id=self.tab_id,
            conversation_id=config.conversation_id,
        )

    async def _get_session_state_config(self) -> SessionStateConfig:
        """Create the remote conversation on first use; reuse it afterwards."""
        if self._config is None:
            async with track_operation(self._telemetry, RemoteOperation.CREATE_CONVERSATION):
                conversation_id = await self._service.create_conversation()
            self._config = SessionStateConfig(
                conversation_id=conversation_id,
                repo_context=self._repo_context,
                service=self._service,
            )
        return self._config

    # ------------------------------------------------------------------
    # Interaction
    # ------------------------------------------------------------------

    async def send(self, msg: str) -> Interaction:
        """Submit *msg* as the next code generation iteration."""
        action = SessionStateAction(task=self._task, msg=msg, token=self._token)
        return await self.next_interaction(action)

    async def next_interaction(self, action: SessionStateAction) -> Interaction:
        """Apply *action* to the current state and adopt the state it returns."""
        self._ensure_usable()
        if refused := self._refuse_without_retries():
            return refused
        async with self._exclusive():
            outcome = await self._state.interact(action)
        return self._adopt(outcome)

    async def poll(self) -> Interaction:
        """Wait for the submitted job and materialize its change set."""
        self._ensure_usable()
        if refused := self._refuse_without_retries():
            return refused
        async with self._exclusive():
            outcome = await poll_code_generation(
                self._state,
                interval_s=self._poll_interval_s,
                timeout_s=self._poll_timeout_s,
                token=self._token,
            )
        return self._adopt(outcome)

    async def generate(self, msg: str) -> Interaction:
        """Submit *msg*, then wait for the result if the submission went through.

        The whole round trip is reported as one GenerateCode event.
        """
        async with track_operation(
            self._telemetry, RemoteOperation.GENERATE_CODE, self.conversation_id or ""
        ) as span:
            interaction = await self.send(msg)
            if interaction.interaction_succeeded:
                interaction = await self.poll()
            if interaction.failure is not None:
                span.result = _FAILURE_RESULTS.get(interaction.failure, MetricDataResult.ERROR)
                span.reason = str(interaction.failure)
        return interaction

    def record_review(self, path: str, accepted: bool) -> None:
        """Record the user's decision about one proposed file."""
        self.diff_metrics.record(path, accepted)

    # ------------------------------------------------------------------
    # Cancellation and lifecycle
    # ------------------------------------------------------------------

    def cancel(self, reason: str = "") -> None:
        self._token.cancel(reason)

    def renew_token(self) -> CancellationTokenSource:
        """Replace a fired token so the session can accept new work."""
        self._token = CancellationTokenSource()
        self._state = replace(self._state, token=self._token)
        return self._token

    async def close(self) -> None:
        """Close the conversation. Emits the final diff metrics."""
        if self._closed:
            return
        self._token.cancel("session closed")
        self._closed = True
        if self.conversation_id:
            self.diff_metrics.emit(self._telemetry, self.conversation_id)
        logger.info("session_closed", tab_id=self.tab_id, conversation_id=self.conversation_id)

    def decrease_retries(self) -> None:
        self.retries = max(self.retries - 1, 0)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _adopt(self, outcome: SessionStateInteraction) -> Interaction:
        interaction = outcome.interaction
        self.last_interaction = interaction

        if outcome.next_state is None:
            self._terminal = True
            logger.info(
                "session_terminal",
                tab_id=self.tab_id,
                conversation_id=self.conversation_id,
                failure=str(interaction.failure) if interaction.failure else None,
            )
        else:
            self._state = outcome.next_state

        if interaction.failure == InteractionFailure.TRANSIENT:
            self.decrease_retries()
        return interaction

    def _refuse_without_retries(self) -> Interaction | None:
        if self.retries > 0:
            return None
        logger.info("session_retries_exhausted", tab_id=self.tab_id)
        interaction = Interaction.failed(
            InteractionFailure.RETRIES_EXHAUSTED,
            "Too many failed attempts in this conversation. Start a new conversation to retry.",
        )
        self.last_interaction = interaction
        return interaction

    def _ensure_usable(self) -> None:
        if self._closed:
            raise IllegalTransitionError("Session is closed, start a new conversation")
        if self._terminal:
            raise IllegalTransitionError(
                "Session reached a terminal state, restart the conversation"
            )

    @asynccontextmanager
    async def _exclusive(self) -> AsyncIterator[None]:
        if self._busy:
            raise SessionBusyError(f"Session {self.tab_id!r} is already running an operation")
        self._busy = True
        try:
            yield
        finally:
            self._busy = False
