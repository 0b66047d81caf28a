"""Queue infrastructure."""

from infrastructure.queue.sqs_queue import SqsMessageQueue, MAX_BATCH_ENTRIES

__all__ = ['SqsMessageQueue', 'MAX_BATCH_ENTRIES']
