"""Tests for the external reflections API client."""

import pytest

from daily_reflections_bot.config import SourceConfig
from daily_reflections_bot.reflections.dates import canonicalize
from daily_reflections_bot.reflections.source import ReflectionSource
from daily_reflections_bot.utils.exceptions import (
    ConfigurationError,
    ExternalServiceError,
    NetworkError,
    ValidationError,
)
from tests.conftest import make_record


@pytest.fixture
async def source(reflections_api):
    client = ReflectionSource(SourceConfig(url=reflections_api.url, timeout=2, retry_attempts=1))
    yield client
    await client.close()


def test_missing_url_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        ReflectionSource(SourceConfig(url=""))


def test_url_for_month_day():
    client = ReflectionSource(SourceConfig(url="https://example.com/api/"))
    assert client.url_for("10-14") == "https://example.com/api/1014.json"
    assert client.url_for(canonicalize("5 MARCH")) == "https://example.com/api/0305.json"


class TestFetch:
    async def test_fetch_parses_record(self, source, reflections_api):
        reflections_api.records["1014"] = make_record()

        record = await source.fetch("10-14")

        assert record.date == "14 OCTOBER"
        assert record.quote.page_number == "p. 58"
        assert reflections_api.requests == ["1014"]

    async def test_error_status_is_external_service_error(self, source, reflections_api):
        with pytest.raises(ExternalServiceError) as exc_info:
            await source.fetch("02-31")
        assert exc_info.value.context["status_code"] == 404

    async def test_error_status_is_not_retried(self, reflections_api):
        client = ReflectionSource(SourceConfig(url=reflections_api.url, retry_attempts=3))
        reflections_api.fail_with = 500
        try:
            with pytest.raises(ExternalServiceError):
                await client.fetch("10-14")
        finally:
            await client.close()
        assert reflections_api.requests == ["1014"]

    async def test_unexpected_document_is_validation_error(self, source, reflections_api):
        reflections_api.records["1014"] = {"Title": "no date field"}
        with pytest.raises(ValidationError):
            await source.fetch("10-14")

    async def test_undecodable_body_is_validation_error(self, source, reflections_api):
        reflections_api.records["1015"] = b'{"Date": "15 OCTOBER", "Title": "\xff\xfe"}'
        with pytest.raises(ValidationError):
            await source.fetch("10-15")

    async def test_unreachable_host_is_network_error(self):
        client = ReflectionSource(SourceConfig(url="http://127.0.0.1:1", timeout=1, retry_attempts=1))
        try:
            with pytest.raises(NetworkError):
                await client.fetch("10-14")
        finally:
            await client.close()

    async def test_fetch_optional_returns_none_on_miss(self, source):
        assert await source.fetch_optional("02-30") is None

    async def test_closed_source_refuses_requests(self, source):
        await source.close()
        with pytest.raises(NetworkError):
            await source.fetch("10-14")
