"""taskassist constants: filesystem layout, retry policy, limits, and operation names."""

from __future__ import annotations

import os
import sys
from enum import StrEnum
from pathlib import Path

# ---------------------------------------------------------------------------
# Platform-specific config directory
# ---------------------------------------------------------------------------


def _default_data_dir() -> Path:
    """
    Return the platform-appropriate taskassist data directory.

    macOS : ~/Library/Application Support/taskassist
    Linux : ~/.config/taskassist
    Other : ~/.taskassist
    """
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "taskassist"
    if sys.platform.startswith("linux"):
        xdg = Path(os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config")))
        return xdg / "taskassist"
    return Path.home() / ".taskassist"


CONFIG_FILENAME = "config.toml"

# ---------------------------------------------------------------------------
# Retry and iteration policy
# ---------------------------------------------------------------------------

# Max number of times a user can attempt to retry a code generation request if it fails
CODE_GENERATION_RETRY_LIMIT = 3

# The default retry limit used when the session could not be found
DEFAULT_RETRY_LIMIT = 0

# ---------------------------------------------------------------------------
# Limits and timeouts
# ---------------------------------------------------------------------------

# Max allowed size for a packaged workspace in bytes
MAX_PROJECT_SIZE_BYTES = 200 * 1024 * 1024

DEFAULT_POLL_INTERVAL_SECONDS = 10.0
DEFAULT_POLL_TIMEOUT_SECONDS = 60 * 60.0  # one hour per code generation job
DEFAULT_REQUEST_TIMEOUT_SECONDS = 60.0

UPLOAD_CONTENT_TYPE = "application/zip"
UPLOAD_INTENT = "DEV"

# ---------------------------------------------------------------------------
# Named reasons and operations
# ---------------------------------------------------------------------------


class ModifySourceFolderErrorReason(StrEnum):
    """Why the user could not pick a source folder for the workspace."""

    CLOSED_BEFORE_SELECTION = "ClosedBeforeSelection"
    NOT_IN_WORKSPACE_FOLDER = "NotInWorkspaceFolder"


class RemoteOperation(StrEnum):
    """Remote agent operations, as named in telemetry."""

    START_CODE_GENERATION = "StartTaskAssistCodeGenerator"
    CREATE_CONVERSATION = "CreateConversation"
    CREATE_UPLOAD_URL = "CreateUploadUrl"
    GENERATE_CODE = "GenerateCode"
    GET_CODE_GENERATION = "GetTaskAssistCodeGenerator"
    EXPORT_RESULT_ARCHIVE = "ExportTaskAssistArchiveResult"
    UPLOAD_TO_S3 = "UploadToS3"


class MetricDataOperationName(StrEnum):
    START_CODE_GENERATION = "StartCodeGeneration"
    END_CODE_GENERATION = "EndCodeGeneration"


class MetricDataResult(StrEnum):
    SUCCESS = "Success"
    FAULT = "Fault"
    ERROR = "Error"
    LLM_FAILURE = "LLMFailure"
