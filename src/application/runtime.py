"""Batch entry point: routes an invocation event to ingestion or processing."""

import json
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Tuple

from domain.models import BatchReport, JobOutcome, JobResult, ProcessingJob
from domain.exceptions import ValidationError
from application.ingestion import EventIngestor, is_storage_event
from application.processor import JobProcessor
from application.queue_bridge import QueueBridge
from shared.logging import get_logger

logger = get_logger(__name__)

STORAGE_EVENT = "storage"
QUEUE_BATCH = "queue"
EMPTY = "empty"


def classify_event(event: Any) -> str:
    """
    Tell upload notifications from queue deliveries.

    Raises:
        ValidationError: If the event is neither
    """
    if not isinstance(event, dict):
        raise ValidationError(f"Event must be an object, got {type(event).__name__}")

    records = event.get("Records")
    if records is None:
        raise ValidationError("Event has no Records")
    if not isinstance(records, list):
        raise ValidationError("Event Records must be a list")
    if not records:
        return EMPTY

    if is_storage_event(event):
        if not all(isinstance(r, dict) and "s3" in r for r in records):
            raise ValidationError("Event mixes storage and non-storage records")
        return STORAGE_EVENT

    if all(isinstance(r, dict) and "body" in r for r in records):
        return QUEUE_BATCH

    raise ValidationError("Unrecognized event shape")


def parse_messages(records: List[Dict[str, Any]]) -> Tuple[List[Tuple[str, ProcessingJob]], List[str]]:
    """
    Parse queue records into jobs.

    Returns:
        (message id, job) pairs and the ids of records that could not be parsed
    """
    parsed = []
    skipped = []
    for index, record in enumerate(records):
        message_id = record.get("messageId") or f"record-{index}"
        try:
            body = record.get("body")
            if not isinstance(body, str):
                raise ValidationError(f"Message body must be a JSON string, got {type(body).__name__}")
            parsed.append((message_id, ProcessingJob.from_dict(json.loads(body))))
        except (ValueError, ValidationError) as e:
            logger.error(f"Skipping malformed message {message_id}: {e}")
            skipped.append(message_id)
    return parsed, skipped


class BatchRunner:
    """
    Handles one invocation.

    Upload notifications are grouped and forwarded to the queue. Queue
    batches are processed in sub-batches of ``max_batch_size`` jobs; jobs
    within a sub-batch run concurrently and never affect one another.
    """

    def __init__(
        self,
        processor: JobProcessor,
        ingestor: EventIngestor,
        bridge: Optional[QueueBridge] = None,
        max_batch_size: int = 10
    ):
        self._processor = processor
        self._ingestor = ingestor
        self._bridge = bridge
        self.max_batch_size = max_batch_size
        self._logger = get_logger(__name__)

    def handle(self, event: Dict[str, Any]) -> Dict[str, Any]:
        kind = classify_event(event)
        if kind == EMPTY:
            self._logger.info("Empty event, nothing to do")
            return {"batchItemFailures": []}

        if kind == STORAGE_EVENT:
            return self.ingest(event)

        report = self.process_records(event["Records"])
        self._logger.info(
            f"Batch done: {report.count(JobOutcome.COMPLETED)} completed, "
            f"{report.count(JobOutcome.FAILED)} failed, "
            f"{report.count(JobOutcome.REJECTED)} rejected, "
            f"{report.count(JobOutcome.DUPLICATE)} duplicate, "
            f"{len(report.retryable)} retryable, "
            f"{len(report.skipped_messages)} malformed"
        )
        return report.to_response()

    def ingest(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """Group an upload notification into jobs and queue them."""
        if self._bridge is None:
            raise ValidationError("Upload notifications need a queue to forward jobs to")
        jobs = self._ingestor.parse(event)
        return self._bridge.enqueue(jobs).to_dict()

    def process_records(self, records: List[Dict[str, Any]]) -> BatchReport:
        parsed, skipped = parse_messages(records)
        report = BatchReport(skipped_messages=skipped)

        for start in range(0, len(parsed), self.max_batch_size):
            for result in self._run_sub_batch(parsed[start:start + self.max_batch_size]):
                report.add(result)
        return report

    def process_jobs(self, jobs: List[ProcessingJob]) -> BatchReport:
        """Process jobs directly (local runs), without queue records."""
        report = BatchReport()
        pairs = [(job.assembly_id, job) for job in jobs]
        for start in range(0, len(pairs), self.max_batch_size):
            for result in self._run_sub_batch(pairs[start:start + self.max_batch_size]):
                report.add(result)
        return report

    def _run_sub_batch(self, batch: List[Tuple[str, ProcessingJob]]) -> List[JobResult]:
        if len(batch) == 1:
            message_id, job = batch[0]
            return [self._processor.process_job(job, message_id)]

        with ThreadPoolExecutor(max_workers=len(batch)) as pool:
            futures = [
                pool.submit(self._processor.process_job, job, message_id)
                for message_id, job in batch
            ]
            return [f.result() for f in futures]
