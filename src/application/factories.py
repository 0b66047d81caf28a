"""Wiring of pipeline components from settings."""

from typing import Optional

from domain.protocols import IObjectStorage, IStatusStore
from application.ingestion import EventIngestor
from application.processor import JobProcessor
from application.queue_bridge import QueueBridge
from application.registry import TemplateRegistry, TemplateIndex
from application.runtime import BatchRunner
from application.status_service import StatusService
from infrastructure.config.loader import PipelineSettings
from infrastructure.media.tools import ToolRunner
from infrastructure.queue.sqs_queue import SqsMessageQueue
from infrastructure.status.dynamodb_store import DynamoStatusStore
from infrastructure.status.memory_store import InMemoryStatusStore
from infrastructure.storage.s3_client import S3ObjectStorage
from infrastructure.storage.temp_storage import TempStorage
from infrastructure.webhook.notifier import WebhookNotifier
from shared.logging import get_logger

logger = get_logger(__name__)


class PipelineFactory:
    """
    Builds the pipeline for one set of settings.

    Collaborators can be passed in explicitly (local runs, tests); anything
    not given is created from the settings on first use.
    """

    def __init__(
        self,
        settings: PipelineSettings,
        storage: Optional[IObjectStorage] = None,
        status: Optional[IStatusStore] = None,
        registry: Optional[TemplateRegistry] = None,
        notifier: Optional[WebhookNotifier] = None,
        tools: Optional[ToolRunner] = None,
        templates: Optional[TemplateIndex] = None
    ):
        self.settings = settings
        self._storage = storage
        self._status = status
        self._registry = registry or TemplateRegistry.default(templates)
        self._notifier = notifier
        self._tools = tools
        self._logger = get_logger(__name__)

    @property
    def storage(self) -> IObjectStorage:
        if self._storage is None:
            self._storage = S3ObjectStorage(
                region=self.settings.region,
                endpoint_url=self.settings.s3_endpoint_url
            )
        return self._storage

    @property
    def status(self) -> IStatusStore:
        if self._status is None:
            if self.settings.status_table:
                self._status = DynamoStatusStore(self.settings.status_table, region=self.settings.region)
            else:
                self._logger.warning("DYNAMODB_TABLE not set; status records are kept in memory")
                self._status = InMemoryStatusStore()
        return self._status

    @property
    def registry(self) -> TemplateRegistry:
        return self._registry

    @property
    def notifier(self) -> WebhookNotifier:
        if self._notifier is None:
            self._notifier = WebhookNotifier(
                timeout=self.settings.webhook_timeout,
                max_retries=self.settings.webhook_max_retries
            )
        return self._notifier

    def create_ingestor(self) -> EventIngestor:
        return EventIngestor(
            self.storage,
            default_template_id=self.settings.default_template_id,
            default_branch=self.settings.branch
        )

    def create_bridge(self) -> Optional[QueueBridge]:
        """Queue bridge, or None when no queue is configured."""
        if not self.settings.queue_url:
            return None
        return QueueBridge(SqsMessageQueue(self.settings.queue_url, region=self.settings.region))

    def create_processor(self) -> JobProcessor:
        return JobProcessor(
            settings=self.settings,
            storage=self.storage,
            status=self.status,
            registry=self.registry,
            notifier=self.notifier,
            temp_storage=TempStorage(self.settings.temp_dir),
            tools=self._tools
        )

    def create_runner(self) -> BatchRunner:
        return BatchRunner(
            processor=self.create_processor(),
            ingestor=self.create_ingestor(),
            bridge=self.create_bridge(),
            max_batch_size=self.settings.max_batch_size
        )

    def create_status_service(self) -> StatusService:
        return StatusService(
            self.status,
            registry=self.registry,
            notifier=self.notifier,
            webhook_max_retries=self.settings.webhook_max_retries
        )
