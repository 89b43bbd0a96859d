"""
Daily delivery run: resolve the day's reflection, format it and post it
to every configured webhook.

The run succeeds when at least one webhook accepted the embed. Failures
are reported as a structured body with a one-line summary; stack traces
stay in the logs.
"""

import asyncio
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from daily_reflections_bot.delivery.webhooks import WebhookDelivery, require_any_success
from daily_reflections_bot.reflections.dates import DateInput, canonicalize
from daily_reflections_bot.reflections.embeds import embed_payload, format_reflection_embed
from daily_reflections_bot.reflections.resolver import ReflectionResolver
from daily_reflections_bot.utils.exceptions import ErrorType, ValidationError, wrap_error
from daily_reflections_bot.utils.logging import get_logger, log_operation_timing

SUCCESS_MESSAGE = "Daily reflection posted successfully to Discord channels"
FAILURE_MESSAGE = "Failed to post daily reflection to all Discord channels"


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class DeliveryReport:
    """Outcome of one delivery run, shaped for an HTTP response."""

    ok: bool
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)


class DailyReflectionService:
    """
    Orchestrates resolve, format and fan-out.

    Attributes:
        resolver: Cache-first reflection resolver
        delivery: Webhook fan-out
        webhook_urls: Delivery targets, loaded once at start-up
        jitter_max_seconds: Upper bound of the delay before a scheduled run
    """

    def __init__(
        self,
        resolver: ReflectionResolver,
        delivery: WebhookDelivery,
        webhook_urls: Sequence[str],
        jitter_max_seconds: float = 0.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.resolver = resolver
        self.delivery = delivery
        self.webhook_urls: List[str] = list(webhook_urls)
        self.jitter_max_seconds = jitter_max_seconds
        self._sleep = sleep
        self.logger = get_logger(__name__)

    async def get_reflection_embed(self, date: Optional[DateInput] = None) -> Dict[str, Any]:
        """
        Resolve and format a day's reflection.

        Returns:
            The embed as a dict

        Raises:
            ReflectionsBotError: If the reflection cannot be resolved
        """
        reflection = await self.resolver.resolve(date)
        return embed_payload(format_reflection_embed(reflection))

    async def post_daily_reflection(self, date: Optional[DateInput] = None) -> DeliveryReport:
        """
        Post a day's reflection to every webhook.

        Args:
            date: Day to post, today when omitted

        Returns:
            200 with the per-webhook results, 400 for an unparsable date,
            or 500 with a summary
        """
        try:
            day = canonicalize(date) if date is not None else None
        except ValidationError as e:
            return self._failure_report(e, e.status_code)

        try:
            with log_operation_timing("post_daily_reflection", targets=len(self.webhook_urls)):
                embed = await self.get_reflection_embed(day)
                results = await self.delivery.deliver(embed, self.webhook_urls)
                require_any_success(results)
        except Exception as e:
            return self._failure_report(e, 500)

        return DeliveryReport(
            ok=True,
            status_code=200,
            body={
                "message": SUCCESS_MESSAGE,
                "results": [result.to_dict() for result in results],
                "timestamp": _timestamp(),
            },
        )

    def _failure_report(self, error: Exception, status_code: int) -> DeliveryReport:
        wrapped = wrap_error(error, ErrorType.INTERNAL, operation="DailyReflectionService.post_daily_reflection")
        return DeliveryReport(
            ok=False,
            status_code=status_code,
            body={
                "error": FAILURE_MESSAGE,
                "details": wrapped.message,
                "timestamp": _timestamp(),
            },
        )

    async def run_scheduled(self, date: Optional[DateInput] = None) -> DeliveryReport:
        """Post after a random delay, so scheduled runs do not all fire at once."""
        delay = random.uniform(0, self.jitter_max_seconds) if self.jitter_max_seconds > 0 else 0.0
        self.logger.info("Scheduled reflection run", jitter_seconds=round(delay, 2))
        if delay:
            await self._sleep(delay)
        return await self.post_daily_reflection(date)
