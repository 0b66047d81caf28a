"""Tests for the queue bridge."""

import json
from unittest.mock import Mock

import pytest

from application.queue_bridge import QueueBridge, dedup_id_for, group_id_for
from domain.models import ObjectRef, ProcessingJob
from domain.exceptions import TransientInfraError


def job(n, branch="main", upload_id=None):
    assembly_id = f"asm-{n}"
    return ProcessingJob(assembly_id, upload_id or assembly_id, "preview", [ObjectRef("tmp-bucket", f"k{n}")], branch=branch)


@pytest.fixture
def queue():
    queue = Mock()
    queue.send.return_value = "m-1"
    queue.send_batch.return_value = []
    return queue


class TestQueueKeys:
    """Test group and deduplication ids."""

    def test_group_id_is_branch(self):
        assert group_id_for(job(1, branch="feature")) == "feature"
        assert group_id_for(job(1, branch="")) == "default"

    def test_dedup_id(self):
        assert dedup_id_for(job(1, upload_id="up 1")) == "asm-1/up-1"

    def test_long_dedup_id_is_hashed(self):
        long_job = ProcessingJob("a" * 100, "u" * 100, "preview", [ObjectRef("b", "k")])

        dedup = dedup_id_for(long_job)

        assert len(dedup) == 64
        assert dedup == dedup_id_for(long_job)


class TestQueueBridge:
    """Test batching and failure handling."""

    def test_single_job_uses_send(self, queue):
        report = QueueBridge(queue).enqueue([job(1)])

        assert report.to_dict() == {"enqueued": 1, "dropped": 0}
        body, = queue.send.call_args[0]
        assert json.loads(body)["assemblyId"] == "asm-1"
        assert queue.send.call_args[1] == {"group_id": "main", "dedup_id": "asm-1/asm-1"}
        queue.send_batch.assert_not_called()

    def test_batches_of_ten(self, queue):
        """Test that 23 jobs go out as 10 + 10 + 3."""
        report = QueueBridge(queue).enqueue([job(n) for n in range(23)])

        assert [len(c[0][0]) for c in queue.send_batch.call_args_list] == [10, 10, 3]
        assert len(report.enqueued) == 23

    def test_batch_of_one_after_full_batch(self, queue):
        QueueBridge(queue).enqueue([job(n) for n in range(11)])

        assert queue.send_batch.call_count == 1
        assert queue.send.call_count == 1

    def test_entry_shape(self, queue):
        QueueBridge(queue).enqueue([job(1), job(2, branch="dev")])

        entries = queue.send_batch.call_args[0][0]
        assert [e["Id"] for e in entries] == ["job0", "job1"]
        assert entries[1]["MessageGroupId"] == "dev"
        assert entries[1]["MessageDeduplicationId"] == "asm-2/asm-2"

    def test_failed_entries_are_dropped(self, queue):
        queue.send_batch.return_value = ["job1"]

        report = QueueBridge(queue).enqueue([job(1), job(2), job(3)])

        assert [j.assembly_id for j in report.dropped] == ["asm-2"]
        assert [j.assembly_id for j in report.enqueued] == ["asm-1", "asm-3"]

    def test_failed_call_drops_batch_and_continues(self, queue):
        queue.send_batch.side_effect = [TransientInfraError("throttled"), []]

        report = QueueBridge(queue, batch_size=2).enqueue([job(n) for n in range(4)])

        assert report.to_dict() == {"enqueued": 2, "dropped": 2}

    def test_failed_single_send(self, queue):
        queue.send.side_effect = TransientInfraError("down")

        assert QueueBridge(queue).enqueue([job(1)]).to_dict() == {"enqueued": 0, "dropped": 1}

    def test_batch_size_bounds(self, queue):
        with pytest.raises(ValueError):
            QueueBridge(queue, batch_size=11)
