"""Protocol definitions for dependency inversion."""

from typing import Protocol, List, Optional, Dict, Any, ContextManager
from pathlib import Path

from .models import ObjectRef, ObjectHead


class IObjectStorage(Protocol):
    """Interface for object storage (S3-compatible)."""

    def head(self, ref: ObjectRef) -> ObjectHead:
        """Fetch an object's metadata without its body."""
        ...

    def download(self, ref: ObjectRef, destination: Path) -> Path:
        """Download an object to a local file."""
        ...

    def upload(
        self,
        local_path: Path,
        ref: ObjectRef,
        content_type: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None
    ) -> ObjectRef:
        """Upload a local file to the given location."""
        ...

    def delete(self, ref: ObjectRef) -> None:
        """Delete an object."""
        ...

    def exists(self, ref: ObjectRef) -> bool:
        """Check whether an object exists."""
        ...

    def public_url(self, ref: ObjectRef) -> Optional[str]:
        """HTTPS URL of an object, if the backend has one."""
        ...


class IMessageQueue(Protocol):
    """Interface for the durable job queue."""

    def send(self, body: str, group_id: Optional[str] = None, dedup_id: Optional[str] = None) -> str:
        """Send one message; returns the message id."""
        ...

    def send_batch(self, entries: List[Dict[str, Any]]) -> List[str]:
        """
        Send up to ten messages in one call.

        Each entry has ``Id``, ``MessageBody`` and optional ``MessageGroupId``
        and ``MessageDeduplicationId``. Returns the entry ids that failed.
        """
        ...


class IStatusStore(Protocol):
    """Interface for the assembly status store."""

    def get(self, assembly_id: str) -> Dict[str, Any]:
        """Fetch a record. Raises AssemblyNotFoundError."""
        ...

    def create(self, record: Dict[str, Any]) -> None:
        """
        Write the initial processing record.

        Succeeds only if no record exists or the existing record was never
        started. Raises AssemblyAlreadyStartedError otherwise.
        """
        ...

    def update(self, assembly_id: str, fields: Dict[str, Any]) -> None:
        """Set only the given fields on a record."""
        ...


class IWebhookNotifier(Protocol):
    """Interface for signed webhook delivery."""

    def deliver(
        self,
        url: str,
        payload: Dict[str, Any],
        secret: Optional[str] = None,
        max_retries: Optional[int] = None
    ) -> int:
        """Deliver a payload; returns the number of attempts made."""
        ...


class ITempStorage(Protocol):
    """Interface for managing scratch directories."""

    def workspace(self, job_id: str) -> ContextManager[Path]:
        """Scoped scratch directory, removed when the context exits."""
        ...


class IMetricsCollector(Protocol):
    """Interface for collecting metrics."""

    def start_timer(self, name: str) -> None:
        """Start a named timer."""
        ...

    def stop_timer(self, name: str) -> float:
        """Stop a named timer and return elapsed time."""
        ...

    def record_metric(self, name: str, value: float) -> None:
        """Record a metric value."""
        ...

    def increment_counter(self, name: str, amount: int = 1) -> None:
        """Increment a counter."""
        ...

    def get_summary(self) -> dict:
        """Get summary of all metrics."""
        ...

    def elapsed_time(self) -> float:
        """Get total elapsed time since start."""
        ...
