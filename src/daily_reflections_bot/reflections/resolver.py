"""
Cache-first resolution of a day's reflection.

The database is consulted first; on a miss the external API is fetched,
the record converted to the storage shape and written back in the
background. A failed write-back is logged and never reaches the caller.
"""

import asyncio
from datetime import datetime, tzinfo
from typing import Optional, Set

from daily_reflections_bot.database.repositories import ReflectionRepository
from daily_reflections_bot.reflections.dates import DateInput, canonicalize
from daily_reflections_bot.reflections.models import StoredReflection
from daily_reflections_bot.reflections.source import ReflectionSource
from daily_reflections_bot.utils.exceptions import ErrorType, wrap_error
from daily_reflections_bot.utils.logging import get_logger


class ReflectionResolver:
    """
    Resolve reflections through the cache, falling back to the API.

    Attributes:
        repository: Reflection cache
        source: External reflections API client
        tz: Timezone used to decide what "today" is
    """

    def __init__(
        self,
        repository: ReflectionRepository,
        source: ReflectionSource,
        tz: Optional[tzinfo] = None,
    ) -> None:
        self.repository = repository
        self.source = source
        self.tz = tz
        self.logger = get_logger(__name__)
        self._write_backs: Set["asyncio.Task[None]"] = set()

    def today(self) -> datetime:
        return datetime.now(self.tz)

    async def resolve(self, date: Optional[DateInput] = None) -> StoredReflection:
        """
        Get the reflection for a day.

        Args:
            date: Any input accepted by ``canonicalize``; today when omitted

        Returns:
            The cached row, or the freshly fetched record in the same shape

        Raises:
            ValidationError: If the date cannot be parsed
            ExternalServiceError: If the API answers with an error status
            NetworkError: If the API cannot be reached
        """
        canonical = canonicalize(date if date is not None else self.today())

        cached = await self.repository.read(canonical.display)
        if cached is not None:
            self.logger.debug("Reflection cache hit", date_string=canonical.display)
            return cached

        self.logger.info("Reflection cache miss, fetching", date_string=canonical.display)
        record = await self.source.fetch(canonical)
        reflection = StoredReflection.from_external(record)

        task = asyncio.create_task(self._write_back(reflection))
        self._write_backs.add(task)
        task.add_done_callback(self._write_backs.discard)

        return reflection

    async def _write_back(self, reflection: StoredReflection) -> None:
        try:
            stored = await self.repository.create(reflection)
        except Exception as e:
            wrap_error(
                e,
                ErrorType.DATABASE,
                operation="ReflectionResolver.write_back",
                context={"date_string": reflection.date_string},
            )
            return

        if stored is not None:
            self.logger.info("Cached reflection", date_string=reflection.date_string)

    async def wait_for_write_backs(self) -> None:
        """Wait for pending cache writes, e.g. before shutdown."""
        if self._write_backs:
            await asyncio.gather(*list(self._write_backs), return_exceptions=True)
