"""Domain models for assembly processing."""

import hashlib
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from typing import Optional, Dict, Any, List, Union, Iterable

from .exceptions import ValidationError

ASSEMBLY_COMPLETED = "ASSEMBLY_COMPLETED"


class ErrorKind:
    """Values written to the ``error`` field of a status record."""

    PROCESSING_ERROR = "PROCESSING_ERROR"
    TEMPLATE_NOT_FOUND = "TEMPLATE_NOT_FOUND"
    EXTERNAL_TOOL_ERROR = "EXTERNAL_TOOL_ERROR"


class AssemblyState(Enum):
    """Lifecycle of an assembly as observed from its status record."""

    PENDING_UPLOAD = "PENDING_UPLOAD"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"

    @property
    def is_terminal(self) -> bool:
        return self in (AssemblyState.COMPLETED, AssemblyState.ERROR)

    @classmethod
    def of(cls, record: Optional[Dict[str, Any]]) -> 'AssemblyState':
        """Derive the state from a status record (None means nothing started)."""
        if not record:
            return cls.PENDING_UPLOAD
        if record.get("error"):
            return cls.ERROR
        if record.get("ok") == ASSEMBLY_COMPLETED:
            return cls.COMPLETED
        if record.get("execution_start"):
            return cls.PROCESSING
        return cls.PENDING_UPLOAD


@dataclass(frozen=True)
class ObjectRef:
    """Location of an object in storage."""

    bucket: str
    key: str

    @property
    def name(self) -> str:
        """Object basename."""
        return PurePosixPath(self.key).name

    def to_dict(self) -> Dict[str, str]:
        return {"bucket": self.bucket, "key": self.key}

    @classmethod
    def from_dict(cls, data: Any) -> 'ObjectRef':
        if not isinstance(data, dict) or not data.get("bucket") or not data.get("key"):
            raise ValidationError(f"Invalid object reference: {data!r}")
        return cls(bucket=str(data["bucket"]), key=str(data["key"]))

    def __str__(self) -> str:
        return f"{self.bucket}/{self.key}"


@dataclass
class ObjectHead:
    """Result of a metadata (HEAD) lookup on a stored object."""

    ref: ObjectRef
    metadata: Dict[str, str] = field(default_factory=dict)
    content_type: Optional[str] = None
    content_length: int = 0
    etag: Optional[str] = None

    def meta(self, *names: str) -> Optional[str]:
        """First non-empty metadata value among ``names`` (case-insensitive)."""
        lowered = {k.lower(): v for k, v in self.metadata.items()}
        for name in names:
            value = lowered.get(name.lower())
            if value:
                return value
        return None


@dataclass
class UserContext:
    """Pass-through identity of the uploading user."""

    user_id: str
    permissions: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "permissions": list(self.permissions),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional['UserContext']:
        if not data:
            return None
        if not isinstance(data, dict) or not data.get("userId"):
            raise ValidationError(f"Invalid user context: {data!r}")
        return cls(
            user_id=str(data["userId"]),
            permissions=[str(p) for p in data.get("permissions") or []],
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass(frozen=True)
class AssemblyGroup:
    """Objects uploaded under one assembly id."""

    assembly_id: str


@dataclass(frozen=True)
class SoloGroup:
    """An object without an assembly id; it forms a group of its own."""

    bucket: str
    key: str


GroupKey = Union[AssemblyGroup, SoloGroup]


def derive_assembly_id(
    keys: Iterable[str],
    template_id: str,
    user_id: Optional[str] = None
) -> str:
    """
    Deterministic assembly id for objects uploaded without one.

    sha256 over the sorted object keys, the template id and the user id
    (``anonymous`` when absent), so every redelivery maps to the same record.
    """
    material = f"{','.join(sorted(keys))}:{template_id}:{user_id or 'anonymous'}"
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


@dataclass
class UploadedObject:
    """An uploaded object together with the metadata attached at upload time."""

    ref: ObjectRef
    assembly_id: str = ""
    upload_id: str = ""
    template_id: str = ""
    content_type: Optional[str] = None
    fields: Optional[Dict[str, str]] = None
    user: Optional[UserContext] = None
    branch: str = ""

    @property
    def group_key(self) -> GroupKey:
        if self.assembly_id:
            return AssemblyGroup(self.assembly_id)
        return SoloGroup(self.ref.bucket, self.ref.key)


@dataclass
class ProcessingJob:
    """A unit of queued work: one assembly to run through one template."""

    assembly_id: str
    upload_id: str
    template_id: str
    objects: List[ObjectRef]
    branch: str = ""
    fields: Optional[Dict[str, str]] = None
    user: Optional[UserContext] = None

    def __post_init__(self):
        if not self.assembly_id:
            raise ValidationError("assemblyId is required")
        if not self.template_id:
            raise ValidationError(f"templateId is required (assembly {self.assembly_id})")
        if not self.objects:
            raise ValidationError(f"Job {self.assembly_id} has no input objects")

    @property
    def buckets(self) -> List[str]:
        return sorted({obj.bucket for obj in self.objects})

    def to_dict(self) -> Dict[str, Any]:
        """Wire form used as the queue message body."""
        data: Dict[str, Any] = {
            "assemblyId": self.assembly_id,
            "uploadId": self.upload_id,
            "templateId": self.template_id,
            "objects": [obj.to_dict() for obj in self.objects],
            "branch": self.branch,
        }
        if self.fields:
            data["fields"] = dict(self.fields)
        if self.user:
            data["user"] = self.user.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Any) -> 'ProcessingJob':
        """
        Parse a queue message body.

        Raises:
            ValidationError: If the body is not a well-formed job
        """
        if not isinstance(data, dict):
            raise ValidationError(f"Job body must be an object, got {type(data).__name__}")

        objects = data.get("objects")
        if not isinstance(objects, list):
            raise ValidationError("Job body is missing 'objects'")

        fields = data.get("fields")
        if fields is not None and not isinstance(fields, dict):
            raise ValidationError("Job 'fields' must be an object")

        upload_id = str(data.get("uploadId") or "")
        return cls(
            assembly_id=str(data.get("assemblyId") or upload_id),
            upload_id=upload_id,
            template_id=str(data.get("templateId") or ""),
            objects=[ObjectRef.from_dict(o) for o in objects],
            branch=str(data.get("branch") or ""),
            fields={str(k): str(v) for k, v in fields.items()} if fields else None,
            user=UserContext.from_dict(data.get("user")),
        )


@dataclass
class UploadEntry:
    """One row of the uploads ledger of a status record."""

    id: str
    name: str
    size: int
    mime: Optional[str] = None
    md5hash: Optional[str] = None
    field: str = "file"

    @property
    def basename(self) -> str:
        return PurePosixPath(self.name).stem

    @property
    def ext(self) -> str:
        return PurePosixPath(self.name).suffix.lstrip(".")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "basename": self.basename,
            "ext": self.ext,
            "size": self.size,
            "mime": self.mime,
            "field": self.field,
            "md5hash": self.md5hash,
        }


@dataclass
class ResultArtifact:
    """A file a step uploaded to the output location."""

    id: str
    name: str
    bucket: str
    key: str
    size: int
    mime: Optional[str] = None
    original_id: Optional[str] = None
    ssl_url: Optional[str] = None
    field: str = "file"

    def to_dict(self) -> Dict[str, Any]:
        path = PurePosixPath(self.name)
        return {
            "id": self.id,
            "name": self.name,
            "basename": path.stem,
            "ext": path.suffix.lstrip("."),
            "size": self.size,
            "mime": self.mime,
            "field": self.field,
            "original_id": self.original_id,
            "bucket": self.bucket,
            "key": self.key,
            "ssl_url": self.ssl_url,
        }


class JobOutcome(Enum):
    """How a single job ended within a batch."""

    COMPLETED = "completed"
    FAILED = "failed"
    REJECTED = "rejected"
    DUPLICATE = "duplicate"
    RETRYABLE = "retryable"


@dataclass
class JobResult:
    """Result of processing one job."""

    assembly_id: str
    outcome: JobOutcome
    error: Optional[str] = None
    message_id: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome in (JobOutcome.COMPLETED, JobOutcome.DUPLICATE)


@dataclass
class BatchReport:
    """Per-job results of one invocation."""

    results: List[JobResult] = field(default_factory=list)
    skipped_messages: List[str] = field(default_factory=list)

    def add(self, result: JobResult) -> None:
        self.results.append(result)

    def count(self, outcome: JobOutcome) -> int:
        return sum(1 for r in self.results if r.outcome is outcome)

    @property
    def retryable(self) -> List[JobResult]:
        return [r for r in self.results if r.outcome is JobOutcome.RETRYABLE]

    def to_response(self) -> Dict[str, Any]:
        """Partial batch response: only retryable messages are handed back to the queue."""
        return {
            "batchItemFailures": [
                {"itemIdentifier": r.message_id}
                for r in self.retryable
                if r.message_id
            ]
        }
