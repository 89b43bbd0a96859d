"""Tests for cache-first reflection resolution."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from daily_reflections_bot.config import SourceConfig
from daily_reflections_bot.reflections.resolver import ReflectionResolver
from daily_reflections_bot.reflections.source import ReflectionSource
from daily_reflections_bot.utils.exceptions import DatabaseError, ExternalServiceError
from tests.conftest import make_record


@pytest.fixture
async def resolver(repository, reflections_api):
    source = ReflectionSource(SourceConfig(url=reflections_api.url, retry_attempts=1))
    yield ReflectionResolver(repository, source, tz=timezone.utc)
    await source.close()


class TestResolve:
    async def test_cache_miss_fetches_and_writes_back(self, resolver, repository, reflections_api):
        reflections_api.records["1014"] = make_record()

        result = await resolver.resolve("14 OCTOBER")
        await resolver.wait_for_write_backs()

        assert result.date_string == "14 OCTOBER"
        assert result.page_number == 58
        assert "\n" not in result.reflection
        cached = await repository.read("14 OCTOBER")
        assert cached is not None
        assert cached.date_string == result.date_string

    async def test_second_call_is_served_from_cache(self, resolver, reflections_api):
        reflections_api.records["1014"] = make_record()

        first = await resolver.resolve("2024-10-14")
        await resolver.wait_for_write_backs()
        second = await resolver.resolve("14 OCTOBER")

        assert second.date_string == first.date_string
        assert reflections_api.requests == ["1014"]

    async def test_cached_row_is_returned_without_fetch(self, resolver, repository, reflections_api):
        reflections_api.records["1014"] = make_record()
        await resolver.resolve("10-14")
        await resolver.wait_for_write_backs()
        await repository.update("14 OCTOBER", title="EDITED")

        result = await resolver.resolve("10-14")

        assert result.title == "EDITED"
        assert result.created_at is not None

    async def test_fetch_failure_propagates(self, resolver):
        with pytest.raises(ExternalServiceError):
            await resolver.resolve("02-31")

    async def test_defaults_to_today(self, resolver, reflections_api):
        today = datetime.now(timezone.utc)
        key = today.strftime("%m%d")
        reflections_api.records[key] = make_record(date=f"{today.day} {today.strftime('%B').upper()}")

        result = await resolver.resolve()

        assert result.month_day == today.strftime("%m-%d")

    async def test_write_back_failure_is_not_raised(self, reflections_api):
        repository = AsyncMock()
        repository.read.return_value = None
        repository.create.side_effect = DatabaseError("disk full")
        source = ReflectionSource(SourceConfig(url=reflections_api.url, retry_attempts=1))
        reflections_api.records["1014"] = make_record()

        try:
            resolver = ReflectionResolver(repository, source)
            result = await resolver.resolve("14 OCTOBER")
            await resolver.wait_for_write_backs()
        finally:
            await source.close()

        assert result.date_string == "14 OCTOBER"
        repository.create.assert_awaited_once()
