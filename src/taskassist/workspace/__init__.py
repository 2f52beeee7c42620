"""Workspace packaging, upload, cleanup, and applying change sets."""

from taskassist.workspace.apply import apply_change_set
from taskassist.workspace.packager import (
    ArtifactPackager,
    ZipCreationResult,
    ZipWorkspacePackager,
    select_source_folder,
)
from taskassist.workspace.upload import delete_upload_artifact, upload_artifact

__all__ = [
    "ArtifactPackager",
    "ZipCreationResult",
    "ZipWorkspacePackager",
    "apply_change_set",
    "delete_upload_artifact",
    "select_source_folder",
    "upload_artifact",
]
