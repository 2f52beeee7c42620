"""
Session domain models.

Dataclasses describe what flows between the state machine and its callers
(actions, interactions, change sets). Pydantic models describe the wire
shape of job status documents and exported result archives. Archives arrive
as JSON with snake_case top-level keys and camelCase reference fields.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from taskassist.clients.base import RemoteAgentClient
    from taskassist.core.cancellation import CancellationTokenSource
    from taskassist.workspace.packager import ArtifactPackager


class SessionStatePhase(StrEnum):
    INIT = "Init"
    CODEGEN = "Codegen"


class InteractionFailure(StrEnum):
    """Why an interaction did not succeed."""

    CANCELLED = "cancelled"
    TRANSIENT = "transient"
    DOMAIN = "domain"
    VALIDATION = "validation"
    ITERATION_EXHAUSTED = "iteration_exhausted"
    RETRIES_EXHAUSTED = "retries_exhausted"
    CODE_GENERATION_FAILED = "code_generation_failed"


@dataclass(frozen=True)
class SessionStateAction:
    """Input to one state transition."""

    task: str
    msg: str
    token: CancellationTokenSource | None = None


@dataclass(frozen=True)
class Interaction:
    """Human-readable outcome of one transition attempt.

    ``content`` may be None (nothing to say) or "" (said nothing); the two
    are distinct. ``failure`` is set only when ``interaction_succeeded`` is False.
    """

    content: str | None
    interaction_succeeded: bool
    failure: InteractionFailure | None = None

    @classmethod
    def failed(cls, failure: InteractionFailure, content: str) -> Interaction:
        return cls(content=content, interaction_succeeded=False, failure=failure)


@dataclass(frozen=True)
class SessionStateInteraction:
    """Next state (None means terminal) plus exactly one interaction."""

    interaction: Interaction
    next_state: Any = None  # SessionState | None


@dataclass(frozen=True)
class SessionStateConfig:
    """Per-session bundle threaded into every state that talks to the remote agent."""

    conversation_id: str
    repo_context: ArtifactPackager
    service: RemoteAgentClient


# ---------------------------------------------------------------------------
# Wire models (status document, exported result archive)
# ---------------------------------------------------------------------------


class RecommendationContentSpan(BaseModel):
    start: int = 0
    end: int = 0


class CodeReferenceGenerated(BaseModel):
    """Attribution for generated code that resembles licensed source."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    license_name: str | None = Field(default=None, alias="licenseName")
    repository: str | None = None
    url: str | None = None
    recommendation_content_span: RecommendationContentSpan | None = Field(
        default=None, alias="recommendationContentSpan"
    )


class CodeGenerationStreamResult(BaseModel):
    new_file_contents: dict[str, str] = Field(default_factory=dict)
    deleted_files: list[str] = Field(default_factory=list)
    references: list[CodeReferenceGenerated] = Field(default_factory=list)


class ExportResultArchiveStreamResult(BaseModel):
    code_generation_result: CodeGenerationStreamResult


class CodeGenerationStatusDetail(BaseModel):
    status: str = ""


class GetCodeGenerationResponse(BaseModel):
    """Status document for one code generation job."""

    model_config = ConfigDict(populate_by_name=True)

    code_generation_status: CodeGenerationStatusDetail = Field(alias="codeGenerationStatus")
    remaining_iteration_count: int | None = Field(
        default=None, ge=0, alias="codeGenerationRemainingIterationCount"
    )
    total_iteration_count: int | None = Field(
        default=None, ge=0, alias="codeGenerationTotalIterationCount"
    )
    status_detail: str | None = Field(default=None, alias="codeGenerationStatusDetail")


# ---------------------------------------------------------------------------
# Change set
# ---------------------------------------------------------------------------


@dataclass
class NewFileZipInfo:
    """A proposed new or rewritten file. Review flags are owned by the reviewer."""

    zip_file_path: str
    file_content: str
    rejected: bool = False
    change_applied: bool = False


@dataclass
class DeletedFileInfo:
    """A file proposed for deletion."""

    zip_file_path: str
    rejected: bool = False
    change_applied: bool = False


@dataclass
class CodeGenerationResult:
    new_files: list[NewFileZipInfo] = field(default_factory=list)
    deleted_files: list[DeletedFileInfo] = field(default_factory=list)
    references: list[CodeReferenceGenerated] = field(default_factory=list)
    code_generation_remaining_iteration_count: int | None = None
    code_generation_total_iteration_count: int | None = None

    @property
    def paths(self) -> list[str]:
        """Every path touched by the change set, new files first."""
        return [f.zip_file_path for f in self.new_files] + [
            f.zip_file_path for f in self.deleted_files
        ]
