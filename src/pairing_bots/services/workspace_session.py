"""Working directory preparation: the caller's directory or a scratch copy."""

import logging
import shutil
import tempfile
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

from pairing_bots.lib.errors import WorkspaceError
from pairing_bots.models.pair_config import WorkspaceMode


logger = logging.getLogger(__name__)

EXCLUDED_COPY_ENTRIES = (".git", ".pairing-bots", "node_modules", ".venv")
LINKED_DEPENDENCY_DIRS = ("node_modules", ".venv")
SCRATCH_PREFIX = "pairing-bots-run-"


class CleanupResult(BaseModel):
    """Outcome of releasing a workspace."""

    cleaned: bool
    preserved_path: Optional[str] = None


class WorkspaceSession:
    """Working directory handed to both workers for one run."""

    def __init__(
        self,
        mode: WorkspaceMode,
        base_cwd: str,
        runtime_cwd: str,
        keep_workspace: bool = False,
        scratch_root: Optional[str] = None,
    ):
        self.mode = WorkspaceMode(mode)
        self.base_cwd = base_cwd
        self.runtime_cwd = runtime_cwd
        self.keep_workspace = keep_workspace
        self.scratch_root = scratch_root
        self._cleanup_result: Optional[CleanupResult] = None

    def cleanup(self) -> CleanupResult:
        """Remove the scratch copy unless it is kept; direct mode never deletes anything."""
        if self._cleanup_result is not None:
            return self._cleanup_result

        if self.mode == WorkspaceMode.DIRECT or self.scratch_root is None:
            result = CleanupResult(cleaned=False)
        elif self.keep_workspace:
            result = CleanupResult(cleaned=False, preserved_path=self.scratch_root)
        else:
            try:
                shutil.rmtree(self.scratch_root)
            except OSError as e:
                raise WorkspaceError(f"Could not remove workspace {self.scratch_root}: {e}")
            logger.info(f"Removed ephemeral workspace {self.scratch_root}")
            result = CleanupResult(cleaned=True)

        self._cleanup_result = result
        return result

    def describe_cleanup(self, result: CleanupResult) -> str:
        if result.preserved_path is not None:
            return f"Workspace preserved at: {result.preserved_path}"
        if self.mode == WorkspaceMode.DIRECT:
            return "Workspace cleanup: n/a (direct mode)"
        return "Workspace cleanup: deleted ephemeral copy"


def mirror_workspace(source: Path, destination: Path) -> None:
    """Copy a tree, keeping symlinks as links and linking dependency dirs back."""
    shutil.copytree(
        source,
        destination,
        symlinks=True,
        ignore=shutil.ignore_patterns(*EXCLUDED_COPY_ENTRIES),
        dirs_exist_ok=True,
    )

    for name in LINKED_DEPENDENCY_DIRS:
        source_dir = source / name
        if source_dir.is_dir():
            (destination / name).symlink_to(source_dir.resolve(), target_is_directory=True)


def prepare_workspace_session(
    base_cwd: str,
    mode: WorkspaceMode = WorkspaceMode.DIRECT,
    keep_workspace: bool = False,
) -> WorkspaceSession:
    """Prepare the working directory for a run.

    Raises:
        WorkspaceError: The base directory is missing or could not be copied
    """
    mode = WorkspaceMode(mode)
    base = Path(base_cwd)
    if not base.is_dir():
        raise WorkspaceError(f"Working directory does not exist: {base_cwd}")

    if mode == WorkspaceMode.DIRECT:
        return WorkspaceSession(mode, base_cwd, base_cwd, keep_workspace)

    scratch_root = tempfile.mkdtemp(prefix=SCRATCH_PREFIX)
    runtime_cwd = Path(scratch_root) / "workspace"
    try:
        mirror_workspace(base, runtime_cwd)
    except (OSError, shutil.Error) as e:
        shutil.rmtree(scratch_root, ignore_errors=True)
        raise WorkspaceError(f"Could not copy {base_cwd} into an ephemeral workspace: {e}")

    logger.info(f"Prepared ephemeral workspace {runtime_cwd} from {base_cwd}")
    return WorkspaceSession(mode, base_cwd, str(runtime_cwd), keep_workspace, scratch_root=scratch_root)
