"""Isolated, cached working copies of Terraform configurations.

Terraform keeps mutable local state (lock files, provider caches, local
state) next to the configuration. Each source directory therefore gets its
own working copy under ``<temp root>/atar/<sha256 of the source path>``.
The copy is made once; later runs against the same source reuse it as-is.
"""

from __future__ import annotations

import hashlib
import shutil
import tempfile
from pathlib import Path

from atar.config.defaults import WORKSPACE_NAMESPACE
from atar.lib.errors import WorkspaceError
from atar.lib.logging_config import get_logger
from atar.models.deployment import Workspace

logger = get_logger(__name__)


def default_workspace_root() -> Path:
    """Return the default root for cached working copies."""
    return Path(tempfile.gettempdir()) / WORKSPACE_NAMESPACE


def compute_cache_key(source_dir: Path) -> str:
    """Compute the deterministic cache key for a canonical source directory.

    The key depends only on the path, never on the directory contents.
    """
    return hashlib.sha256(str(source_dir).encode("utf-8")).hexdigest()


class WorkspaceManager:
    """Prepare working directories for Terraform runs.

    Example:
        >>> manager = WorkspaceManager(root=Path("/tmp/atar"))
        >>> manager.working_dir_for(Path("/cfg")).parent
        PosixPath('/tmp/atar')
    """

    def __init__(self, root: Path | None = None) -> None:
        """Initialize the manager.

        Args:
            root: Directory that holds working copies (default: system temp
                directory joined with ``atar``)
        """
        self.root = root if root is not None else default_workspace_root()

    def working_dir_for(self, source_dir: Path) -> Path:
        """Return the working directory a source directory maps to."""
        return self.root / compute_cache_key(source_dir)

    def prepare(self, source_dir: Path) -> Workspace:
        """Resolve, and populate if needed, the working copy for a source.

        Args:
            source_dir: Directory containing the Terraform configuration

        Returns:
            Workspace describing the source and working directories

        Raises:
            WorkspaceError: If the source cannot be resolved or read, or any
                copy step fails. A partially populated working directory is
                left in place.
        """
        try:
            canonical = Path(source_dir).resolve(strict=True)
        except (OSError, RuntimeError) as exc:
            raise WorkspaceError(
                path=str(source_dir),
                message=f"Cannot resolve source directory: {exc}",
            ) from exc

        if not canonical.is_dir():
            raise WorkspaceError(
                path=str(canonical), message="Source is not a directory"
            )

        cache_key = compute_cache_key(canonical)
        working_dir = self.root / cache_key
        workspace = Workspace(
            source_dir=canonical, working_dir=working_dir, cache_key=cache_key
        )

        # Existence gates the copy; a stale copy is reused without refresh.
        if working_dir.exists():
            logger.debug(f"Reusing cached workspace {working_dir} for {canonical}")
            return workspace

        logger.debug(f"Copying {canonical} into new workspace {working_dir}")
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            shutil.copytree(canonical, working_dir, symlinks=False)
        except (shutil.Error, OSError) as exc:
            raise WorkspaceError(
                path=str(working_dir),
                message=f"Failed to copy {canonical}: {exc}",
            ) from exc

        return workspace
