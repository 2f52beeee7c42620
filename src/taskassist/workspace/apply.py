"""Write an accepted change set back into the workspace."""

from __future__ import annotations

from pathlib import Path

import structlog

from taskassist.core.constants import ModifySourceFolderErrorReason
from taskassist.core.exceptions import WorkspaceSelectionError
from taskassist.session.models import CodeGenerationResult

logger = structlog.get_logger()


def resolve_in_workspace(root: Path, zip_file_path: str) -> Path:
    """Map an archive path onto *root*, refusing paths that escape it."""
    base = root.resolve()
    target = (base / zip_file_path.lstrip("/")).resolve()
    if not target.is_relative_to(base):
        raise WorkspaceSelectionError(
            ModifySourceFolderErrorReason.NOT_IN_WORKSPACE_FOLDER,
            f"{zip_file_path!r} points outside the workspace folder",
        )
    return target


def apply_change_set(root: Path | str, result: CodeGenerationResult) -> list[str]:
    """
    Apply every file record that is not rejected and not yet applied.

    Sets ``change_applied`` on each record it writes or deletes and returns
    the applied archive paths in change-set order.
    """
    root = Path(root)
    applied: list[str] = []

    for new_file in result.new_files:
        if new_file.rejected or new_file.change_applied:
            continue
        target = resolve_in_workspace(root, new_file.zip_file_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(new_file.file_content, encoding="utf-8")
        new_file.change_applied = True
        applied.append(new_file.zip_file_path)

    for deleted in result.deleted_files:
        if deleted.rejected or deleted.change_applied:
            continue
        resolve_in_workspace(root, deleted.zip_file_path).unlink(missing_ok=True)
        deleted.change_applied = True
        applied.append(deleted.zip_file_path)

    logger.info("change_set_applied", root=str(root), files=len(applied))
    return applied
