"""Scratch directory management."""

import re
import tempfile
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from shared.logging import get_logger

logger = get_logger(__name__)


class TempStorage:
    """Hands out per-job scratch directories that are removed on exit."""

    def __init__(self, base_dir: Optional[Path] = None, keep: bool = False):
        """
        Initialize temp storage manager.

        Args:
            base_dir: Base directory for scratch dirs (defaults to system temp)
            keep: Leave directories in place after the job (local debugging)
        """
        self.base_dir = Path(base_dir or tempfile.gettempdir())
        self.keep = keep
        self._logger = get_logger(__name__)

    def create_workspace(self, job_id: str) -> Path:
        """
        Create a fresh scratch directory for a job.

        The directory name is unique even when the same job id is
        processed twice concurrently.
        """
        self.base_dir.mkdir(parents=True, exist_ok=True)
        safe_id = re.sub(r'[^A-Za-z0-9_-]', '-', job_id)[:48]
        workspace = Path(tempfile.mkdtemp(prefix=f"transflow-{safe_id}-", dir=self.base_dir))
        self._logger.debug(f"Created workspace: {workspace}")
        return workspace

    def cleanup(self, workspace: Path) -> None:
        """Remove a scratch directory."""
        if not workspace.exists():
            return

        if self.keep:
            self._logger.warning(f"Keeping workspace for debugging: {workspace}")
            return

        shutil.rmtree(workspace, ignore_errors=True)
        self._logger.debug(f"Cleaned up workspace: {workspace}")

    @contextmanager
    def workspace(self, job_id: str) -> Iterator[Path]:
        """Scoped scratch directory; released on every exit path."""
        path = self.create_workspace(job_id)
        try:
            yield path
        finally:
            self.cleanup(path)
