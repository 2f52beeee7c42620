"""Shared fixtures: mocked remote agent, packager, and upload collaborators."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from taskassist.clients.base import (
    CodeGenerationStatus,
    CodeGenerationWorkflowStatus,
    RemoteAgentClient,
    UploadUrl,
)
from taskassist.core.cancellation import CancellationTokenSource
from taskassist.core.telemetry import RecordingTelemetrySink
from taskassist.session.models import CodeGenerationStreamResult, SessionStateConfig
from taskassist.session.state import PrepareCodeGenerationState
from taskassist.workspace.packager import ArtifactPackager, ZipCreationResult


@pytest.fixture
def artifact(tmp_path: Path) -> ZipCreationResult:
    path = tmp_path / "workspace.zip"
    path.write_bytes(b"PK\x05\x06" + b"\x00" * 18)
    return ZipCreationResult(path=path, checksum="c2hhMjU2", content_length=22)


@pytest.fixture
def packager(artifact: ZipCreationResult) -> AsyncMock:
    mock = AsyncMock(spec=ArtifactPackager)
    mock.package_workspace.return_value = artifact
    return mock


@pytest.fixture
def service() -> AsyncMock:
    mock = AsyncMock(spec=RemoteAgentClient)
    mock.create_conversation.return_value = "conv-1"
    mock.create_upload_url.return_value = UploadUrl(
        upload_url="https://upload.example.com/put", upload_id="upload-1"
    )
    mock.start_code_generation.return_value = "job-1"
    mock.get_code_generation_status.return_value = CodeGenerationStatus(
        status=CodeGenerationWorkflowStatus.COMPLETE,
        remaining_iteration_count=2,
        total_iteration_count=3,
    )
    mock.export_result_archive.return_value = CodeGenerationStreamResult(
        new_file_contents={"src/app.py": "print('hi')\n", "README.md": "# app\n"},
        deleted_files=["old.py"],
    )
    return mock


@pytest.fixture
def uploader() -> AsyncMock:
    return AsyncMock(return_value=None)


@pytest.fixture
def cleanup() -> MagicMock:
    return MagicMock()


@pytest.fixture
def sink() -> RecordingTelemetrySink:
    return RecordingTelemetrySink()


@pytest.fixture
def token() -> CancellationTokenSource:
    return CancellationTokenSource()


@pytest.fixture
def make_state(service, packager, uploader, cleanup, sink, token):
    """Build a PrepareCodeGenerationState wired to the mocked collaborators."""

    def _make(**overrides) -> PrepareCodeGenerationState:
        fields = {
            "tab_id": "tab-1",
            "approach": "",
            "config": SessionStateConfig(
                conversation_id="conv-1", repo_context=packager, service=service
            ),
            "token": token,
            "telemetry": sink,
            "uploader": uploader,
            "cleanup": cleanup,
        }
        fields.update(overrides)
        return PrepareCodeGenerationState(**fields)

    return _make
