"""Application layer package."""

from application.registry import TemplateRegistry
from application.ingestion import EventIngestor
from application.queue_bridge import QueueBridge, EnqueueReport
from application.processor import JobProcessor
from application.runtime import BatchRunner
from application.status_service import StatusService
from application.factories import PipelineFactory

__all__ = [
    "TemplateRegistry",
    "EventIngestor",
    "QueueBridge",
    "EnqueueReport",
    "JobProcessor",
    "BatchRunner",
    "StatusService",
    "PipelineFactory",
]
