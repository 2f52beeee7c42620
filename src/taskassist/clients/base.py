"""
RemoteAgentClient — abstract interface for the remote code-generation agent.

A client is responsible for:
  1. Creating conversations
  2. Handing out upload URLs for packaged workspaces
  3. Starting code generation jobs and reporting their status
  4. Exporting the result archive of a finished job

Clients are transport-only: they hold no session state. Conversation ids and
job handles are opaque strings.

Errors:
  TransientRemoteError — network/timeout; the caller may retry
  DomainRemoteError    — the agent refused (validation, quota, ...); do not retry
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum

from taskassist.session.models import CodeGenerationStreamResult


class CodeGenerationWorkflowStatus(StrEnum):
    IN_PROGRESS = "InProgress"
    COMPLETE = "Complete"
    FAILED = "Failed"


@dataclass(frozen=True)
class UploadUrl:
    upload_url: str
    upload_id: str


@dataclass(frozen=True)
class CodeGenerationStatus:
    """One status report for a code generation job."""

    status: CodeGenerationWorkflowStatus
    remaining_iteration_count: int | None = None
    total_iteration_count: int | None = None
    failure_reason: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.status != CodeGenerationWorkflowStatus.IN_PROGRESS


class RemoteAgentClient(ABC):
    """Abstract remote code-generation agent."""

    @abstractmethod
    async def create_conversation(self) -> str:
        """Open a new conversation and return its id."""

    @abstractmethod
    async def create_upload_url(
        self,
        conversation_id: str,
        checksum: str,
        size: int,
        content_type: str,
    ) -> UploadUrl:
        """Reserve an upload slot for a packaged workspace."""

    @abstractmethod
    async def start_code_generation(
        self,
        conversation_id: str,
        upload_id: str,
        task: str,
        msg: str,
        intent: str,
    ) -> str:
        """Submit a code generation job and return its handle."""

    @abstractmethod
    async def get_code_generation_status(
        self,
        conversation_id: str,
        code_generation_id: str,
    ) -> CodeGenerationStatus:
        """Report the current status of a job."""

    @abstractmethod
    async def export_result_archive(self, conversation_id: str) -> CodeGenerationStreamResult:
        """Fetch the latest result archive of the conversation."""

    async def close(self) -> None:
        """Release transport resources. No-op by default."""
