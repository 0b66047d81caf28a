"""Infrastructure layer package."""

from infrastructure.config import ConfigLoader, PipelineSettings
from infrastructure.storage import S3ObjectStorage, LocalObjectStorage, TempStorage
from infrastructure.queue import SqsMessageQueue
from infrastructure.status import DynamoStatusStore, InMemoryStatusStore
from infrastructure.webhook import WebhookNotifier
from infrastructure.media import ToolRunner, ToolResult

__all__ = [
    "ConfigLoader",
    "PipelineSettings",
    "S3ObjectStorage",
    "LocalObjectStorage",
    "TempStorage",
    "SqsMessageQueue",
    "DynamoStatusStore",
    "InMemoryStatusStore",
    "WebhookNotifier",
    "ToolRunner",
    "ToolResult",
]
