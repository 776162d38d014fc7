"""Webhook request helpers."""

from kbsync.webhooks.context import WebhookContext

__all__ = ["WebhookContext"]
