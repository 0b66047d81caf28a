"""Function entry points for the processing, bridge and status deployments."""

import json
from typing import Any, Dict, Optional

from domain.exceptions import ConfigurationError, ValidationError
from application.factories import PipelineFactory
from application.queue_bridge import EnqueueReport
from application.runtime import EMPTY, STORAGE_EVENT, classify_event
from infrastructure.config import ConfigLoader
from shared.logging import get_logger

logger = get_logger(__name__)

_factory: Optional[PipelineFactory] = None


def get_factory() -> PipelineFactory:
    """Factory built once per process from the environment."""
    global _factory
    if _factory is None:
        _factory = PipelineFactory(ConfigLoader().load())
    return _factory


def reset_factory(factory: Optional[PipelineFactory] = None) -> None:
    """Replace the cached factory (tests, local runs)."""
    global _factory
    _factory = factory


def handler(event: Dict[str, Any], context: Any = None) -> Dict[str, Any]:
    """
    Processing entry point.

    Queue batches return the partial batch response; upload notifications
    are forwarded to the queue and return enqueue counts.
    """
    return get_factory().create_runner().handle(event)


def bridge_handler(event: Dict[str, Any], context: Any = None) -> Dict[str, Any]:
    """
    Ingestion entry point: upload notifications to queued jobs.

    Raises:
        ValidationError: If the event is not a storage notification
    """
    factory = get_factory()
    bridge = factory.create_bridge()
    if bridge is None:
        raise ConfigurationError("SQS_QUEUE_URL environment variable is required")

    kind = classify_event(event)
    if kind == EMPTY:
        return EnqueueReport().to_dict()
    if kind != STORAGE_EVENT:
        raise ValidationError("Bridge only accepts storage upload notifications")

    jobs = factory.create_ingestor().parse(event)
    report = bridge.enqueue(jobs)
    logger.info(f"Queued {len(report.enqueued)} processing job(s) for branch {factory.settings.branch or 'default'}")
    return report.to_dict()


def status_handler(event: Dict[str, Any], context: Any = None) -> Dict[str, Any]:
    """Status lookup: ``{"assemblyId", "userId"?, "triggerWebhook"?}``."""
    event = event or {}
    factory = get_factory()
    if not factory.settings.status_table:
        return {"statusCode": 500, "body": json.dumps({"error": "DYNAMODB_TABLE not configured"})}

    code, body = factory.create_status_service().lookup(
        event.get("assemblyId"),
        user_id=event.get("userId"),
        trigger_webhook=bool(event.get("triggerWebhook"))
    )
    response: Dict[str, Any] = {"statusCode": code, "body": json.dumps(body, default=str)}
    if code == 200:
        response["headers"] = {"Content-Type": "application/json", "Cache-Control": "no-cache"}
    return response
