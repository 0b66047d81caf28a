"""External media tool invocation (ffmpeg, ffprobe)."""

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from domain.exceptions import ExternalToolError
from shared.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ToolResult:
    """Exit code and buffered output of a finished tool."""

    code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.code == 0


class ToolRunner:
    """Runs media tools as child processes with output buffered in memory."""

    def __init__(self, ffmpeg_bin: str = "ffmpeg", ffprobe_bin: str = "ffprobe", timeout: Optional[float] = None):
        self.ffmpeg_bin = ffmpeg_bin
        self.ffprobe_bin = ffprobe_bin
        self.timeout = timeout
        self._logger = get_logger(__name__)

    def run(
        self,
        program: str,
        args: List[str],
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
        check: bool = True
    ) -> ToolResult:
        """
        Run ``program`` with ``args``.

        Raises:
            ExternalToolError: On non-zero exit when ``check`` is set, or when
                the program cannot be started
        """
        cmd = [program, *[str(a) for a in args]]
        self._logger.debug(f"Running: {' '.join(cmd)}")

        try:
            completed = subprocess.run(
                cmd,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                cwd=str(cwd) if cwd else None,
                env={**os.environ, **env} if env else None,
                timeout=self.timeout
            )
        except FileNotFoundError as e:
            raise ExternalToolError(program, 127, f"{program} not found: {e}") from e
        except subprocess.TimeoutExpired as e:
            raise ExternalToolError(program, -1, f"timed out after {e.timeout}s") from e

        result = ToolResult(code=completed.returncode, stdout=completed.stdout, stderr=completed.stderr)
        if check and not result.ok:
            raise ExternalToolError(program, result.code, result.stderr)
        return result

    def ffmpeg(self, args: List[str], cwd: Optional[Path] = None, check: bool = True) -> ToolResult:
        return self.run(self.ffmpeg_bin, ["-hide_banner", *args], cwd=cwd, check=check)

    def ffprobe(self, args: List[str], cwd: Optional[Path] = None, check: bool = True) -> ToolResult:
        return self.run(self.ffprobe_bin, args, cwd=cwd, check=check)
