"""Publishes processing jobs to the durable queue."""

import hashlib
import json
import re
from dataclasses import dataclass, field
from typing import List

from domain.models import ProcessingJob
from domain.protocols import IMessageQueue
from domain.exceptions import DomainException
from infrastructure.queue.sqs_queue import MAX_BATCH_ENTRIES
from shared.logging import get_logger

logger = get_logger(__name__)

MAX_DEDUP_ID_LENGTH = 128
_DEDUP_DISALLOWED = re.compile(r'[^A-Za-z0-9!"#$%&\'()*+,\-./:;<=>?@\[\\\]^_`{|}~]')


def group_id_for(job: ProcessingJob) -> str:
    """Ordering group: one per branch."""
    return job.branch or "default"


def dedup_id_for(job: ProcessingJob) -> str:
    """
    Deduplication id ``<assemblyId>/<uploadId>``.

    Characters the queue does not accept become ``-``; ids that end up
    longer than the limit are replaced by their sha256 digest.
    """
    raw = f"{job.assembly_id}/{job.upload_id}"
    safe = _DEDUP_DISALLOWED.sub("-", raw)
    if len(safe) > MAX_DEDUP_ID_LENGTH:
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()
    return safe


@dataclass
class EnqueueReport:
    """Jobs accepted by the queue, and those dropped for this invocation."""

    enqueued: List[ProcessingJob] = field(default_factory=list)
    dropped: List[ProcessingJob] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"enqueued": len(self.enqueued), "dropped": len(self.dropped)}


class QueueBridge:
    """Serializes jobs and sends them in batches of at most ten."""

    def __init__(self, queue: IMessageQueue, batch_size: int = MAX_BATCH_ENTRIES):
        if not 1 <= batch_size <= MAX_BATCH_ENTRIES:
            raise ValueError(f"batch_size must be between 1 and {MAX_BATCH_ENTRIES}, got {batch_size}")
        self._queue = queue
        self.batch_size = batch_size
        self._logger = get_logger(__name__)

    def enqueue(self, jobs: List[ProcessingJob]) -> EnqueueReport:
        report = EnqueueReport()
        for start in range(0, len(jobs), self.batch_size):
            batch = jobs[start:start + self.batch_size]
            if len(batch) == 1:
                self._send_one(batch[0], report)
            else:
                self._send_batch(batch, report)

        self._logger.info(
            f"Queued {len(report.enqueued)} job(s), dropped {len(report.dropped)}"
        )
        return report

    def _send_one(self, job: ProcessingJob, report: EnqueueReport) -> None:
        try:
            message_id = self._queue.send(
                json.dumps(job.to_dict()),
                group_id=group_id_for(job),
                dedup_id=dedup_id_for(job)
            )
        except DomainException as e:
            self._logger.error(f"Failed to enqueue {job.assembly_id}: {e}")
            report.dropped.append(job)
            return
        self._logger.debug(f"Enqueued {job.assembly_id} as {message_id}")
        report.enqueued.append(job)

    def _send_batch(self, batch: List[ProcessingJob], report: EnqueueReport) -> None:
        entries = {
            f"job{index}": job for index, job in enumerate(batch)
        }
        try:
            failed = set(self._queue.send_batch([
                {
                    'Id': entry_id,
                    'MessageBody': json.dumps(job.to_dict()),
                    'MessageGroupId': group_id_for(job),
                    'MessageDeduplicationId': dedup_id_for(job),
                }
                for entry_id, job in entries.items()
            ]))
        except DomainException as e:
            self._logger.error(f"Failed to enqueue batch of {len(batch)}: {e}")
            report.dropped.extend(batch)
            return

        for entry_id, job in entries.items():
            if entry_id in failed:
                self._logger.error(f"Failed to enqueue {job.assembly_id}")
                report.dropped.append(job)
            else:
                report.enqueued.append(job)
