"""Signed webhook delivery with retries."""

import hashlib
import hmac
import json
import time
from typing import Any, Callable, Dict, Optional

import requests

from domain.exceptions import WebhookDeliveryError
from shared.logging import get_logger
from shared.retry import RetryStrategy

logger = get_logger(__name__)

SIGNATURE_HEADER = "X-Transflow-Signature"
USER_AGENT = "Transflow/1.0"


def serialize_payload(payload: Dict[str, Any]) -> bytes:
    """Serialize once; the signature covers exactly these bytes."""
    return json.dumps(payload, separators=(",", ":"), default=str).encode("utf-8")


def sign(body: bytes, secret: str) -> str:
    """Header value for a body: ``sha256=<hex hmac>``."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_signature(body: bytes, header: Optional[str], secret: str) -> bool:
    """Receiver-side check of the signature header (constant time)."""
    if not header:
        return False
    return hmac.compare_digest(sign(body, secret), header)


def _is_client_error(exc: Exception) -> bool:
    code = getattr(exc, "status_code", None)
    return code is not None and 400 <= code < 500


class WebhookNotifier:
    """
    POSTs JSON payloads to webhook targets.
    Implements IWebhookNotifier protocol.

    4xx responses fail immediately; 5xx responses and transport errors
    are retried with 1s, 2s, 4s, ... backoff.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self._session = session or requests.Session()
        self._sleep = sleep
        self._logger = get_logger(__name__)

    def deliver(
        self,
        url: str,
        payload: Dict[str, Any],
        secret: Optional[str] = None,
        max_retries: Optional[int] = None
    ) -> int:
        """
        Deliver a payload.

        Returns:
            Number of attempts it took

        Raises:
            WebhookDeliveryError: On a 4xx response or once retries are exhausted
        """
        body = serialize_payload(payload)
        headers = {
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }
        if secret:
            headers[SIGNATURE_HEADER] = sign(body, secret)

        strategy = RetryStrategy(
            max_retries=self.max_retries if max_retries is None else max_retries,
            backoff_seconds=self.backoff_seconds,
            exponential=True,
            jitter=False,
            retry_on=lambda e: not _is_client_error(e),
            sleep=self._sleep
        )

        def attempt() -> None:
            try:
                response = self._session.post(url, data=body, headers=headers, timeout=self.timeout)
            except requests.RequestException as e:
                self._logger.warning(f"Webhook attempt {strategy.attempts} to {url} failed: {e}")
                raise WebhookDeliveryError(f"Webhook transport error: {e}") from e

            if 200 <= response.status_code < 300:
                return

            kind = "client" if 400 <= response.status_code < 500 else "server"
            self._logger.warning(
                f"Webhook attempt {strategy.attempts} to {url} failed: "
                f"{response.status_code} {response.reason}"
            )
            raise WebhookDeliveryError(
                f"Webhook failed with {kind} error: {response.status_code} {response.reason}",
                status_code=response.status_code
            )

        try:
            strategy.execute(attempt)
        except WebhookDeliveryError as e:
            e.attempts = strategy.attempts
            raise

        self._logger.info(f"Webhook delivered to {url} (attempt {strategy.attempts})")
        return strategy.attempts
