"""
Workspace packaging — turn a source folder into an uploadable zip archive.

The state machine only depends on ArtifactPackager.package_workspace(),
which returns the archive path, its base64 SHA-256 checksum, and its size.
ZipWorkspacePackager is the built-in implementation: it walks the folder,
skips version-control and build directories, and refuses to produce an
archive larger than the configured maximum. Nothing is ever truncated.
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import os
import tempfile
import zipfile
from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path

import structlog

from taskassist.core.constants import MAX_PROJECT_SIZE_BYTES, ModifySourceFolderErrorReason
from taskassist.core.exceptions import PackageSizeExceededError, WorkspaceSelectionError

logger = structlog.get_logger()

_IGNORED_DIRS = frozenset(
    {
        ".git",
        ".hg",
        ".svn",
        ".idea",
        ".venv",
        "venv",
        "node_modules",
        "__pycache__",
        ".mypy_cache",
        ".pytest_cache",
        ".ruff_cache",
        "dist",
        "build",
    }
)
_CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class ZipCreationResult:
    """A packaged workspace ready for upload."""

    path: Path
    checksum: str  # base64-encoded SHA-256 of the archive bytes
    content_length: int


class ArtifactPackager(ABC):
    """Produces an uploadable archive of the current workspace."""

    @abstractmethod
    async def package_workspace(self) -> ZipCreationResult:
        """
        Package the workspace.

        Raises:
            PackageSizeExceededError: the archive would exceed the size limit.
            OSError: the workspace could not be read or the archive written.
        """


def select_source_folder(
    workspace_roots: Sequence[Path | str],
    chosen: Path | str | None,
) -> Path:
    """
    Validate the user's choice of source folder.

    *chosen* is None when the picker was dismissed. A folder outside every
    workspace root is rejected.
    """
    if chosen is None:
        raise WorkspaceSelectionError(ModifySourceFolderErrorReason.CLOSED_BEFORE_SELECTION)

    folder = Path(chosen).resolve()
    for root in workspace_roots:
        if folder.is_relative_to(Path(root).resolve()):
            return folder

    raise WorkspaceSelectionError(
        ModifySourceFolderErrorReason.NOT_IN_WORKSPACE_FOLDER,
        f"{folder} is not inside any workspace folder",
    )


class ZipWorkspacePackager(ArtifactPackager):
    """Zips a source folder into a temporary file."""

    def __init__(
        self,
        root: Path | str,
        *,
        max_size_bytes: int = MAX_PROJECT_SIZE_BYTES,
        ignored_dirs: frozenset[str] = _IGNORED_DIRS,
    ) -> None:
        self._root = Path(root)
        self._max_size = max_size_bytes
        self._ignored = ignored_dirs

    @property
    def root(self) -> Path:
        return self._root

    async def package_workspace(self) -> ZipCreationResult:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._package_sync)

    def iter_files(self) -> Iterator[Path]:
        """Yield workspace files in a stable order, skipping ignored directories."""
        for dirpath, dirnames, filenames in os.walk(self._root):
            dirnames[:] = sorted(d for d in dirnames if d not in self._ignored)
            for name in sorted(filenames):
                path = Path(dirpath) / name
                if path.is_file() and not path.is_symlink():
                    yield path

    def _package_sync(self) -> ZipCreationResult:
        if not self._root.is_dir():
            raise FileNotFoundError(f"Workspace folder does not exist: {self._root}")

        fd, tmp_name = tempfile.mkstemp(prefix="taskassist-", suffix=".zip")
        os.close(fd)
        archive = Path(tmp_name)

        try:
            raw_total = 0
            with zipfile.ZipFile(archive, "w", compression=zipfile.ZIP_DEFLATED) as zf:
                for path in self.iter_files():
                    raw_total += path.stat().st_size
                    if raw_total > self._max_size:
                        raise PackageSizeExceededError(raw_total, self._max_size)
                    zf.write(path, arcname=path.relative_to(self._root).as_posix())

            size = archive.stat().st_size
            if size > self._max_size:
                raise PackageSizeExceededError(size, self._max_size)
            checksum = _sha256_base64(archive)
        except BaseException:
            archive.unlink(missing_ok=True)
            raise

        logger.info(
            "workspace_packaged",
            root=str(self._root),
            archive=str(archive),
            content_length=size,
        )
        return ZipCreationResult(path=archive, checksum=checksum, content_length=size)


def _sha256_base64(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        while chunk := f.read(_CHUNK_SIZE):
            digest.update(chunk)
    return base64.b64encode(digest.digest()).decode("ascii")
