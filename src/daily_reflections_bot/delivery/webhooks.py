"""
Fan-out delivery of an embed to Discord webhooks.

Every configured webhook receives ``POST {"embeds": [embed]}``. Posts run
concurrently and each target's outcome is captured on its own: one
failing webhook never affects the others, and no per-target failure is
raised.
"""

import asyncio
import json
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

import aiohttp
import discord

from daily_reflections_bot.reflections.embeds import embed_payload
from daily_reflections_bot.utils.exceptions import (
    ConfigurationError,
    ErrorType,
    ExternalServiceError,
    wrap_error,
)
from daily_reflections_bot.utils.logging import (
    generate_correlation_id,
    get_logger,
    log_delivery_result,
    log_http_request,
    log_http_response,
)


@dataclass
class DeliveryResult:
    """Outcome of posting to one webhook."""

    target_index: int
    success: bool
    status: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"target_index": self.target_index, "success": self.success}
        if self.status is not None:
            result["status"] = self.status
        if self.error is not None:
            result["error"] = self.error
        return result


def require_any_success(results: Sequence[DeliveryResult]) -> None:
    """
    Raise unless at least one webhook accepted the payload.

    Raises:
        ExternalServiceError: If no result is successful
    """
    if not any(result.success for result in results):
        raise ExternalServiceError(
            "Failed to post to all webhooks",
            context={"targets": len(results)},
        )


class WebhookDelivery:
    """
    Posts one payload to many webhooks.

    Attributes:
        session: aiohttp session used for the posts
        timeout: Per-request timeout in seconds
    """

    def __init__(self, session: aiohttp.ClientSession, timeout: float = 10.0) -> None:
        self.session = session
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.logger = get_logger(__name__)

    async def deliver(
        self,
        embed: Union[discord.Embed, Dict[str, Any]],
        targets: Sequence[str],
    ) -> List[DeliveryResult]:
        """
        Post an embed to every target concurrently.

        Args:
            embed: Embed or its dict form
            targets: Webhook URLs, in configuration order

        Returns:
            One result per target, index-aligned with ``targets``

        Raises:
            ConfigurationError: If no targets are configured
            ExternalServiceError: If the payload cannot be serialised
        """
        if not targets:
            raise ConfigurationError(
                "No webhook URLs configured",
                context={"env_var": "DISCORD_WEBHOOK_URL_1"},
            )

        try:
            body = json.dumps({"embeds": [embed_payload(embed)]})
        except (TypeError, ValueError) as e:
            raise ExternalServiceError(
                "Embed payload could not be serialised",
                original_error=e,
            )

        correlation_id = generate_correlation_id()
        results = await asyncio.gather(
            *(self._post(index, url, body, correlation_id) for index, url in enumerate(targets))
        )

        for result in results:
            log_delivery_result(
                result.target_index,
                result.success,
                status=result.status,
                error=result.error,
                correlation_id=correlation_id,
            )
        return list(results)

    async def _post(self, index: int, url: str, body: str, correlation_id: str) -> DeliveryResult:
        log_http_request(method="POST", url=url, service="delivery", correlation_id=correlation_id)
        start_time = time.time()

        try:
            async with self.session.post(
                url,
                data=body,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            ) as response:
                response_text = await response.text()
                log_http_response(
                    status_code=response.status,
                    response_time_ms=(time.time() - start_time) * 1000,
                    response_size=len(response_text.encode("utf-8")),
                    service="delivery",
                    correlation_id=correlation_id,
                )

                if 200 <= response.status < 300:
                    return DeliveryResult(target_index=index, success=True, status=response.status)

                error = ExternalServiceError(
                    f"Discord webhook failed: {response.status}",
                    context={"target_index": index, "response_text": response_text[:200]},
                )
                return DeliveryResult(
                    target_index=index,
                    success=False,
                    status=response.status,
                    error=error.message,
                )

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            wrapped = wrap_error(
                e,
                ErrorType.NETWORK,
                operation="WebhookDelivery.post",
                context={"target_index": index, "correlation_id": correlation_id},
            )
            return DeliveryResult(target_index=index, success=False, error=wrapped.message)
