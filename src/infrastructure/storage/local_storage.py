"""Filesystem-backed object storage for local runs."""

import json
import mimetypes
import shutil
from pathlib import Path
from typing import Optional, Dict

from domain.models import ObjectRef, ObjectHead
from domain.exceptions import TransientInfraError
from shared.logging import get_logger

logger = get_logger(__name__)

META_SUFFIX = ".meta.json"


class LocalObjectStorage:
    """
    Stores objects as files under ``root/<bucket>/<key>``.
    Implements IObjectStorage protocol.

    Metadata and content type live in a ``<key>.meta.json`` sidecar.
    """

    def __init__(self, root: Path):
        self.root = Path(root)
        self._logger = get_logger(__name__)

    def path_for(self, ref: ObjectRef) -> Path:
        path = (self.root / ref.bucket / ref.key).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"Key escapes storage root: {ref}")
        return path

    def put(self, ref: ObjectRef, data: bytes, content_type: Optional[str] = None,
            metadata: Optional[Dict[str, str]] = None) -> ObjectRef:
        """Write raw bytes as an object."""
        path = self.path_for(ref)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        self._write_meta(path, content_type, metadata)
        return ref

    def head(self, ref: ObjectRef) -> ObjectHead:
        path = self.path_for(ref)
        if not path.is_file():
            raise TransientInfraError(f"Object not found: {ref}")

        meta = self._read_meta(path)
        return ObjectHead(
            ref=ref,
            metadata=meta.get("metadata", {}),
            content_type=meta.get("content_type") or mimetypes.guess_type(path.name)[0],
            content_length=path.stat().st_size
        )

    def download(self, ref: ObjectRef, destination: Path) -> Path:
        source = self.path_for(ref)
        if not source.is_file():
            raise TransientInfraError(f"Object not found: {ref}")
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, destination)
        return destination

    def upload(
        self,
        local_path: Path,
        ref: ObjectRef,
        content_type: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None
    ) -> ObjectRef:
        if not local_path.exists():
            raise FileNotFoundError(f"File not found: {local_path}")
        path = self.path_for(ref)
        path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(local_path, path)
        self._write_meta(path, content_type, metadata)
        self._logger.info(f"Stored {local_path.name} -> {path}")
        return ref

    def delete(self, ref: ObjectRef) -> None:
        path = self.path_for(ref)
        path.unlink(missing_ok=True)
        Path(str(path) + META_SUFFIX).unlink(missing_ok=True)

    def exists(self, ref: ObjectRef) -> bool:
        return self.path_for(ref).is_file()

    def public_url(self, ref: ObjectRef) -> Optional[str]:
        return self.path_for(ref).as_uri()

    @staticmethod
    def _write_meta(path: Path, content_type: Optional[str], metadata: Optional[Dict[str, str]]) -> None:
        sidecar = Path(str(path) + META_SUFFIX)
        sidecar.write_text(json.dumps({
            "content_type": content_type,
            "metadata": metadata or {},
        }), encoding="utf-8")

    @staticmethod
    def _read_meta(path: Path) -> dict:
        sidecar = Path(str(path) + META_SUFFIX)
        if not sidecar.exists():
            return {}
        return json.loads(sidecar.read_text(encoding="utf-8"))
