"""SQS-backed job queue."""

from typing import Optional, List, Dict, Any
import logging

import boto3
from botocore.exceptions import ClientError, BotoCoreError

from domain.exceptions import TransientInfraError

MAX_BATCH_ENTRIES = 10


class SqsMessageQueue:
    """
    Durable queue client for SQS (standard or FIFO).
    Implements IMessageQueue protocol.

    Group and deduplication ids are only sent to FIFO queues; standard
    queues reject them.
    """

    def __init__(
        self,
        queue_url: str,
        region: str = "us-east-1",
        client=None,
        logger: Optional[logging.Logger] = None
    ):
        if not queue_url:
            raise ValueError("queue_url is required")
        self.queue_url = queue_url
        self.fifo = queue_url.endswith(".fifo")
        self.logger = logger or logging.getLogger(__name__)
        self._client = client or boto3.client('sqs', region_name=region)

    def send(self, body: str, group_id: Optional[str] = None, dedup_id: Optional[str] = None) -> str:
        """Send one message and return its id."""
        params: Dict[str, Any] = {'QueueUrl': self.queue_url, 'MessageBody': body}
        if self.fifo:
            params['MessageGroupId'] = group_id or 'default'
            if dedup_id:
                params['MessageDeduplicationId'] = dedup_id

        try:
            response = self._client.send_message(**params)
        except (ClientError, BotoCoreError) as e:
            raise TransientInfraError(f"send_message failed: {e}") from e

        return response.get('MessageId', '')

    def send_batch(self, entries: List[Dict[str, Any]]) -> List[str]:
        """
        Send up to ten entries in one call.

        Returns:
            Ids of the entries SQS reported as failed
        """
        if len(entries) > MAX_BATCH_ENTRIES:
            raise ValueError(f"At most {MAX_BATCH_ENTRIES} entries per batch, got {len(entries)}")
        if not entries:
            return []

        prepared = []
        for entry in entries:
            item = {'Id': entry['Id'], 'MessageBody': entry['MessageBody']}
            if self.fifo:
                item['MessageGroupId'] = entry.get('MessageGroupId') or 'default'
                if entry.get('MessageDeduplicationId'):
                    item['MessageDeduplicationId'] = entry['MessageDeduplicationId']
            prepared.append(item)

        try:
            response = self._client.send_message_batch(QueueUrl=self.queue_url, Entries=prepared)
        except (ClientError, BotoCoreError) as e:
            raise TransientInfraError(f"send_message_batch failed: {e}") from e

        failed = response.get('Failed') or []
        for failure in failed:
            self.logger.error(
                f"Queue rejected entry {failure.get('Id')}: "
                f"{failure.get('Code')} {failure.get('Message', '')}"
            )
        return [f.get('Id') for f in failed]
