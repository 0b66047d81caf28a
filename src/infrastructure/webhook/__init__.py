"""Webhook infrastructure."""

from infrastructure.webhook.notifier import (
    WebhookNotifier,
    SIGNATURE_HEADER,
    serialize_payload,
    sign,
    verify_signature,
)

__all__ = ['WebhookNotifier', 'SIGNATURE_HEADER', 'serialize_payload', 'sign', 'verify_signature']
