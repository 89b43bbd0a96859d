"""Webhook delivery for the Daily Reflections Bot."""

from daily_reflections_bot.delivery.service import DailyReflectionService, DeliveryReport
from daily_reflections_bot.delivery.webhooks import DeliveryResult, WebhookDelivery, require_any_success

__all__ = [
    "DailyReflectionService",
    "DeliveryReport",
    "DeliveryResult",
    "WebhookDelivery",
    "require_any_success",
]
