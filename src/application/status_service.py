"""Status lookups for clients polling an assembly."""

from typing import Any, Dict, Optional, Tuple

from domain.protocols import IStatusStore, IWebhookNotifier
from domain.exceptions import AssemblyNotFoundError, DomainException
from application.registry import TemplateRegistry
from shared.logging import get_logger

logger = get_logger(__name__)

StatusResponse = Tuple[int, Dict[str, Any]]


class StatusService:
    """Reads status records and optionally re-sends the template webhook."""

    def __init__(
        self,
        status: IStatusStore,
        registry: Optional[TemplateRegistry] = None,
        notifier: Optional[IWebhookNotifier] = None,
        webhook_max_retries: int = 3
    ):
        self._status = status
        self._registry = registry
        self._notifier = notifier
        self.webhook_max_retries = webhook_max_retries
        self._logger = get_logger(__name__)

    def lookup(
        self,
        assembly_id: Optional[str],
        user_id: Optional[str] = None,
        trigger_webhook: bool = False
    ) -> StatusResponse:
        """
        Fetch the record of an assembly.

        Returns:
            (status code, body): 400 without an id, 404 for unknown ids,
            403 when ``user_id`` does not own the assembly, 500 when the
            store cannot be reached, 200 with the record otherwise
        """
        if not assembly_id:
            return 400, {"error": "assemblyId is required"}

        try:
            record = self._status.get(assembly_id)
        except AssemblyNotFoundError:
            return 404, {"error": "Assembly not found", "assembly_id": assembly_id}
        except DomainException as e:
            self._logger.error(f"Status lookup for {assembly_id} failed: {e}")
            return 500, {"error": "Failed to fetch assembly status", "message": str(e)}

        owner = (record.get("user") or {}).get("userId")
        if user_id and owner != user_id:
            return 403, {"error": "Access denied: You don't own this assembly"}

        if trigger_webhook:
            self._resend_webhook(record)

        return 200, record

    def _resend_webhook(self, record: Dict[str, Any]) -> None:
        template_id = record.get("template_id")
        if not template_id or self._registry is None or self._notifier is None:
            self._logger.info(f"Webhook re-trigger not possible for {record.get('assembly_id')}")
            return

        try:
            template = self._registry.resolve(template_id)
            if not template.has_webhook:
                self._logger.info(f"No webhook configured for template {template_id}")
                return
            self._notifier.deliver(
                template.webhook_url,
                record,
                secret=template.webhook_secret,
                max_retries=self.webhook_max_retries
            )
        except DomainException as e:
            self._logger.error(f"Failed to send status webhook: {e}")
