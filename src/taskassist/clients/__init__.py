"""
Remote agent clients.

The session state machine only depends on RemoteAgentClient. The httpx
implementation is one way to satisfy it.
"""

from taskassist.clients.base import (
    CodeGenerationStatus,
    CodeGenerationWorkflowStatus,
    RemoteAgentClient,
    UploadUrl,
)
from taskassist.clients.http import HttpRemoteAgentClient

__all__ = [
    "CodeGenerationStatus",
    "CodeGenerationWorkflowStatus",
    "HttpRemoteAgentClient",
    "RemoteAgentClient",
    "UploadUrl",
]
