"""
Client for the public daily reflections API.

The API serves one JSON document per calendar day at
``{base}/{MM}{DD}.json``. This module only builds URLs and fetches
documents; caching and formatting live elsewhere.
"""

import asyncio
import json
import time
from typing import Optional, Union

import aiohttp
from pydantic import ValidationError as PydanticValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from daily_reflections_bot.config import SourceConfig
from daily_reflections_bot.reflections.dates import CanonicalDate
from daily_reflections_bot.reflections.models import ExternalRecord
from daily_reflections_bot.utils.exceptions import (
    ConfigurationError,
    ExternalServiceError,
    NetworkError,
    ReflectionsBotError,
    ValidationError,
)
from daily_reflections_bot.utils.logging import (
    generate_correlation_id,
    get_logger,
    log_http_request,
    log_http_response,
)


class ReflectionSource:
    """
    HTTP client for the external reflections API.

    Transient network failures (connection errors, timeouts) are retried
    with exponential backoff; an error status from the API is not.

    Attributes:
        config: Source configuration
        session: Shared aiohttp session, created lazily when not injected
    """

    def __init__(
        self,
        config: SourceConfig,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        """
        Initialize the source client.

        Args:
            config: Source configuration containing the base URL
            session: Optional session to share with other clients; a
                session passed in is not closed by close()
        """
        if not config.url:
            raise ConfigurationError(
                "External API URL is not configured",
                context={"env_var": "EXTERNAL_API_URL"},
            )
        self.config = config
        self.logger = get_logger(__name__)
        self.session = session
        self._owns_session = session is None
        self._closed = False

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._closed:
            raise NetworkError("Reflection source has been closed")

        if self.session is None or self.session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.timeout)
            self.session = aiohttp.ClientSession(
                timeout=timeout,
                headers={"User-Agent": "Daily-Reflections-Bot/0.1.0"},
            )
            self._owns_session = True
            self.logger.debug("Created new HTTP session for reflection source")

        return self.session

    def url_for(self, month_day: Union[CanonicalDate, str]) -> str:
        """
        Build the document URL for a day.

        Args:
            month_day: A CanonicalDate or an ``"MM-DD"`` string

        Returns:
            ``{base}/{MM}{DD}.json``
        """
        key = month_day.month_day if isinstance(month_day, CanonicalDate) else month_day
        return f"{self.config.url}/{key.replace('-', '')}.json"

    async def fetch(self, month_day: Union[CanonicalDate, str]) -> ExternalRecord:
        """
        Fetch one day's record.

        Args:
            month_day: A CanonicalDate or an ``"MM-DD"`` string

        Returns:
            The parsed record

        Raises:
            ExternalServiceError: If the API answers with a non-200 status
            NetworkError: If the API cannot be reached after retries
            ValidationError: If the document does not match the record shape
        """
        url = self.url_for(month_day)
        correlation_id = generate_correlation_id()

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.retry_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type((aiohttp.ClientError, asyncio.TimeoutError)),
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    return await self._get(url, correlation_id)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(
                "Failed to reach the reflections API",
                context={"url": url, "error_type": type(e).__name__, "correlation_id": correlation_id},
                original_error=e,
            )
        raise NetworkError("Reflections API retries exhausted", context={"url": url})

    async def _get(self, url: str, correlation_id: str) -> ExternalRecord:
        session = await self._ensure_session()
        log_http_request(method="GET", url=url, service="source", correlation_id=correlation_id)
        start_time = time.time()

        async with session.get(url) as response:
            response_bytes = await response.read()
            response_time_ms = (time.time() - start_time) * 1000
            log_http_response(
                status_code=response.status,
                response_time_ms=response_time_ms,
                response_size=len(response_bytes),
                service="source",
                correlation_id=correlation_id,
            )

            if response.status != 200:
                raise ExternalServiceError(
                    "Failed to fetch daily reflection",
                    context={"url": url, "status_code": response.status},
                )

        try:
            return ExternalRecord.model_validate(json.loads(response_bytes.decode("utf-8")))
        except (UnicodeDecodeError, json.JSONDecodeError, PydanticValidationError) as e:
            raise ValidationError(
                "Reflections API returned an unexpected document",
                context={"url": url, "response_text": response_bytes[:200].decode("utf-8", errors="replace")},
                original_error=e,
            )

    async def fetch_optional(self, month_day: Union[CanonicalDate, str]) -> Optional[ExternalRecord]:
        """
        Fetch one day's record, treating any failure as a miss.

        Used by bulk imports, where days such as ``"02-30"`` are expected
        to have no record.

        Returns:
            The record, or None if it could not be fetched
        """
        try:
            return await self.fetch(month_day)
        except ReflectionsBotError as e:
            self.logger.warning(
                "No reflection fetched",
                month_day=str(month_day),
                error_type=e.error_type.value,
                error=e.message,
            )
            return None

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if not self._closed:
            if self._owns_session and self.session and not self.session.closed:
                await self.session.close()
            self._closed = True
            self.logger.debug("Reflection source closed")

    async def __aenter__(self) -> "ReflectionSource":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
