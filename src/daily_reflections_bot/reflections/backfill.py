"""
Bulk import of every day's reflection into the cache.

All 372 month/day slots are fetched in fixed-size concurrent batches
with a pause between batches, then every fetched record is written.
Slots the API has no record for (``02-30``, ``04-31``, ...) are reported
as failures; nothing aborts the run.
"""

import asyncio
from dataclasses import asdict, dataclass
from typing import Awaitable, Callable, Dict, List, Literal, Optional, Sequence, Tuple

from daily_reflections_bot.database.repositories import ReflectionRepository
from daily_reflections_bot.reflections.dates import month_day_slots
from daily_reflections_bot.reflections.models import ExternalRecord, StoredReflection
from daily_reflections_bot.reflections.source import ReflectionSource
from daily_reflections_bot.utils.exceptions import ErrorType, wrap_error
from daily_reflections_bot.utils.logging import get_logger, log_operation_timing

SUCCESS = "Success"
FAIL = "Fail"


@dataclass(frozen=True)
class BackfillOutcome:
    """Result for one month/day slot."""

    status: Literal["Success", "Fail"]
    date: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


class ReflectionBackfill:
    """
    Fetch and cache the reflection for every slot of the year.

    Attributes:
        source: External reflections API client
        repository: Reflection cache
        batch_size: Requests issued concurrently per batch
        batch_delay: Seconds to wait between batches
    """

    def __init__(
        self,
        source: ReflectionSource,
        repository: ReflectionRepository,
        batch_size: int = 20,
        batch_delay: float = 5.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.source = source
        self.repository = repository
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self._sleep = sleep
        self.logger = get_logger(__name__)

    async def backfill_all(self, slots: Optional[Sequence[str]] = None) -> List[BackfillOutcome]:
        """
        Import every slot.

        Args:
            slots: ``"MM-DD"`` slots to import, all 372 when omitted

        Returns:
            One outcome per slot, in slot order
        """
        slots = list(slots) if slots is not None else list(month_day_slots())

        with log_operation_timing("reflection_backfill", slots=len(slots)):
            fetched = await self._fetch_batches(slots)
            self.logger.info(
                "Fetched reflections",
                fetched=sum(1 for _, record in fetched if record is not None),
                slots=len(slots),
            )
            outcomes = await asyncio.gather(
                *(self._store(slot, record) for slot, record in fetched)
            )

        succeeded = sum(1 for outcome in outcomes if outcome.status == SUCCESS)
        self.logger.info("Backfill finished", succeeded=succeeded, failed=len(outcomes) - succeeded)
        return list(outcomes)

    async def _fetch_batches(self, slots: List[str]) -> List[Tuple[str, Optional[ExternalRecord]]]:
        fetched: List[Tuple[str, Optional[ExternalRecord]]] = []
        for start in range(0, len(slots), self.batch_size):
            batch = slots[start:start + self.batch_size]
            records = await asyncio.gather(*(self.source.fetch_optional(slot) for slot in batch))
            fetched.extend(zip(batch, records))
            self.logger.debug(
                "Fetched batch",
                first=start,
                last=start + len(batch) - 1,
                total=len(slots),
            )

            if start + self.batch_size < len(slots):
                await self._sleep(self.batch_delay)
        return fetched

    async def _store(self, slot: str, record: Optional[ExternalRecord]) -> BackfillOutcome:
        if record is None:
            return BackfillOutcome(status=FAIL, date=slot)

        try:
            await self.repository.create(StoredReflection.from_external(record))
        except Exception as e:
            wrap_error(
                e,
                ErrorType.DATABASE,
                operation="ReflectionBackfill.store",
                context={"month_day": slot},
            )
            return BackfillOutcome(status=FAIL, date=slot)

        return BackfillOutcome(status=SUCCESS, date=slot)


def summarize(outcomes: Sequence[BackfillOutcome]) -> Dict[str, object]:
    """Counts and failed slots, for CLI output."""
    failed = [outcome.date for outcome in outcomes if outcome.status == FAIL]
    return {
        "total": len(outcomes),
        "succeeded": len(outcomes) - len(failed),
        "failed": len(failed),
        "failed_dates": failed,
    }
