"""taskassist exception hierarchy."""

from __future__ import annotations

from taskassist.core.constants import ModifySourceFolderErrorReason


class TaskAssistError(Exception):
    """Base exception for all taskassist errors."""


class ConfigError(TaskAssistError):
    """Raised when the configuration is invalid or cannot be read."""


class ConfigNotFoundError(ConfigError):
    """Raised when the configuration file does not exist."""


class IllegalTransitionError(TaskAssistError):
    """Raised when a session state is asked to do something it never allows."""

    def __init__(
        self, message: str = "Illegal transition between states, restart the conversation"
    ):
        super().__init__(message)


class SessionError(TaskAssistError):
    """Raised when session management fails."""


class SessionBusyError(SessionError):
    """Raised when a second operation is started while one is still running."""


class OperationCancelledError(TaskAssistError):
    """Raised by a cancellation token once the user has aborted the operation."""


class RemoteError(TaskAssistError):
    """Raised when a call to the remote agent fails."""

    def __init__(self, message: str, *, operation: str = "", status_code: int | None = None):
        super().__init__(message)
        self.operation = operation
        self.status_code = status_code


class TransientRemoteError(RemoteError):
    """Network or timeout failure. The caller may retry up to the retry ceiling."""


class DomainRemoteError(RemoteError):
    """Non-retryable failure reported by the remote agent (validation, conflict, ...)."""


class QuotaExceededError(DomainRemoteError):
    """The account has used up its code generation quota."""


class PackageSizeExceededError(TaskAssistError):
    """The packaged workspace is larger than the allowed maximum."""

    def __init__(self, size: int, limit: int):
        super().__init__(
            f"Workspace archive is {size} bytes, which exceeds the {limit} byte limit. "
            "Select a smaller source folder and try again."
        )
        self.size = size
        self.limit = limit


class WorkspaceSelectionError(TaskAssistError):
    """The user did not pick a usable source folder."""

    def __init__(self, reason: ModifySourceFolderErrorReason, message: str = ""):
        super().__init__(message or f"Source folder selection failed: {reason}")
        self.reason = reason
