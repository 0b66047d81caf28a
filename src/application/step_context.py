"""Capabilities handed to template steps."""

import json
import uuid
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional

from domain.models import ObjectRef, ProcessingJob, ResultArtifact, UploadEntry, UserContext
from domain.protocols import IObjectStorage
from domain.exceptions import ValidationError
from infrastructure.media.tools import ToolRunner, ToolResult
from shared.logging import assembly_logger, get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class OutputTarget:
    """Where a job writes its results."""

    bucket: str
    prefix: str


class StepContext:
    """
    Everything a step may touch while its job runs.

    Inputs are already downloaded into ``tmp_dir``; the directory belongs
    to this job alone and disappears when the job ends. Artifacts uploaded
    through ``upload_result`` are recorded under the name of the step that
    is running at the time.
    """

    def __init__(
        self,
        job: ProcessingJob,
        input_paths: List[Path],
        output: OutputTarget,
        tmp_dir: Path,
        storage: IObjectStorage,
        tools: ToolRunner,
        uploads: Optional[List[UploadEntry]] = None,
        user_root: Optional[str] = None
    ):
        self.job = job
        self.inputs: List[ObjectRef] = list(job.objects)
        self.input_paths = input_paths
        self.output = output
        self.tmp_dir = tmp_dir
        self.uploads = uploads or []
        self.state: Dict[str, Any] = {}
        self.current_step_name: Optional[str] = None
        self.results: Dict[str, List[ResultArtifact]] = {}
        self._storage = storage
        self._tools = tools
        self._user_root = user_root
        self._logger = assembly_logger(__name__, job.assembly_id)

    @property
    def assembly_id(self) -> str:
        return self.job.assembly_id

    @property
    def upload_id(self) -> str:
        return self.job.upload_id

    @property
    def branch(self) -> str:
        return self.job.branch

    @property
    def fields(self) -> Dict[str, str]:
        return dict(self.job.fields or {})

    @property
    def user(self) -> Optional[UserContext]:
        return self.job.user

    @property
    def input(self) -> ObjectRef:
        """First input object."""
        return self.inputs[0]

    @property
    def input_path(self) -> Path:
        """Local copy of the first input."""
        return self.input_paths[0]

    # Tools

    def run_tool(self, program: str, args: List[str], check: bool = True) -> ToolResult:
        return self._tools.run(program, args, cwd=self.tmp_dir, check=check)

    def exec_ffmpeg(self, args: List[str], check: bool = True) -> ToolResult:
        return self._tools.ffmpeg(args, cwd=self.tmp_dir, check=check)

    def exec_probe(self, args: List[str], check: bool = True) -> ToolResult:
        return self._tools.ffprobe(args, cwd=self.tmp_dir, check=check)

    def probe_json(self, path: Path) -> Dict[str, Any]:
        """ffprobe format and stream information as a dict."""
        result = self.exec_probe([
            "-v", "error",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            str(path)
        ])
        return json.loads(result.stdout or "{}")

    # Outputs

    def generate_key(self, basename: str) -> str:
        """Storage key for ``basename`` under this job's output prefix."""
        return f"{self.output.prefix}{_relative_key(basename)}"

    def upload_result(
        self,
        local_path: Path,
        key: Optional[str] = None,
        content_type: Optional[str] = None
    ) -> ResultArtifact:
        """
        Upload a file under the output prefix and record it as a result.

        Args:
            local_path: File to upload
            key: Key relative to the output prefix (defaults to the file name)
            content_type: MIME type stored with the object
        """
        local_path = Path(local_path)
        return self._store(local_path, self.generate_key(key or local_path.name), content_type)

    def upload_to_key(
        self,
        local_path: Path,
        key: str,
        content_type: Optional[str] = None
    ) -> ResultArtifact:
        """
        Upload a file to an absolute key in the output bucket.

        Jobs that carry a user may only write below that user's prefix.

        Raises:
            ValidationError: If the key leaves the user's prefix
        """
        key = key.lstrip("/")
        if ".." in PurePosixPath(key).parts:
            raise ValidationError(f"Output key may not contain '..': {key}")
        if self._user_root and not key.startswith(self._user_root):
            raise ValidationError(f"Access denied: {key} is outside {self._user_root}")
        return self._store(Path(local_path), key, content_type)

    def publish(self, message: str) -> None:
        """Progress note from a step; logged only."""
        self._logger.info(f"{self.current_step_name}: {message}")

    def results_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        """Results grouped by step name, in status-record form."""
        return {
            step: [artifact.to_dict() for artifact in artifacts]
            for step, artifacts in self.results.items()
        }

    def _store(self, local_path: Path, key: str, content_type: Optional[str]) -> ResultArtifact:
        ref = ObjectRef(self.output.bucket, key)
        self._storage.upload(local_path, ref, content_type=content_type)

        artifact = ResultArtifact(
            id=f"result_{uuid.uuid4().hex}",
            name=PurePosixPath(key).name,
            bucket=ref.bucket,
            key=ref.key,
            size=local_path.stat().st_size,
            mime=content_type,
            original_id=self.uploads[0].id if self.uploads else None,
            ssl_url=self._storage.public_url(ref)
        )
        self.results.setdefault(self.current_step_name or "default", []).append(artifact)
        self._logger.info(f"Uploaded result {ref} ({artifact.size} bytes)")
        return artifact


def _relative_key(key: str) -> str:
    key = key.replace("\\", "/").lstrip("/")
    if not key or ".." in PurePosixPath(key).parts:
        raise ValidationError(f"Invalid output key: {key!r}")
    return key
