"""Tests for webhook fan-out and the daily delivery run."""

from unittest.mock import AsyncMock

import aiohttp
import pytest

from daily_reflections_bot.delivery.service import (
    FAILURE_MESSAGE,
    SUCCESS_MESSAGE,
    DailyReflectionService,
)
from daily_reflections_bot.delivery.webhooks import (
    DeliveryResult,
    WebhookDelivery,
    require_any_success,
)
from daily_reflections_bot.reflections.models import ExternalRecord, StoredReflection
from daily_reflections_bot.utils.exceptions import (
    ConfigurationError,
    ExternalServiceError,
    NetworkError,
)
from tests.conftest import make_record

EMBED = {"title": "Daily Reflections | 14 October", "fields": [{"name": "Quote", "value": "q"}]}


@pytest.fixture
async def session():
    async with aiohttp.ClientSession() as client_session:
        yield client_session


@pytest.fixture
def delivery(session):
    return WebhookDelivery(session, timeout=2)


class TestWebhookDelivery:
    async def test_one_failing_target_does_not_affect_another(self, delivery, discord_api):
        targets = [discord_api.url("/webhooks/ok/a"), discord_api.url("/webhooks/fail/b")]

        results = await delivery.deliver(EMBED, targets)

        assert [result.target_index for result in results] == [0, 1]
        assert results[0].success is True
        assert results[0].status == 200
        assert results[1].success is False
        assert results[1].status == 500
        assert "500" in results[1].error

    async def test_payload_shape(self, delivery, discord_api):
        await delivery.deliver(EMBED, [discord_api.url("/webhooks/ok/a")])
        assert discord_api.posts == [{"path": "/webhooks/ok/a", "body": {"embeds": [EMBED]}}]

    async def test_unreachable_target_is_reported(self, delivery, discord_api):
        targets = ["http://127.0.0.1:1/webhooks/x", discord_api.url("/webhooks/ok/a")]

        results = await delivery.deliver(EMBED, targets)

        assert results[0].success is False
        assert results[0].status is None
        assert results[1].success is True

    async def test_empty_targets_is_configuration_error(self, delivery):
        with pytest.raises(ConfigurationError):
            await delivery.deliver(EMBED, [])

    async def test_unserialisable_payload_is_external_service_error(self, delivery, discord_api):
        with pytest.raises(ExternalServiceError):
            await delivery.deliver({"title": object()}, [discord_api.url("/webhooks/ok/a")])
        assert discord_api.posts == []


def test_require_any_success():
    require_any_success([DeliveryResult(0, False), DeliveryResult(1, True, 204)])
    with pytest.raises(ExternalServiceError):
        require_any_success([DeliveryResult(0, False), DeliveryResult(1, False)])


def test_delivery_result_to_dict_omits_empty_fields():
    assert DeliveryResult(0, True, 204).to_dict() == {"target_index": 0, "success": True, "status": 204}


def make_resolver(record=None, error=None):
    resolver = AsyncMock()
    if error is not None:
        resolver.resolve.side_effect = error
    else:
        resolver.resolve.return_value = StoredReflection.from_external(
            ExternalRecord.model_validate(record or make_record())
        )
    return resolver


class TestDailyReflectionService:
    async def test_success_when_any_target_accepts(self, delivery, discord_api):
        service = DailyReflectionService(
            make_resolver(),
            delivery,
            [discord_api.url("/webhooks/fail/a"), discord_api.url("/webhooks/ok/b")],
        )

        report = await service.post_daily_reflection()

        assert report.ok is True
        assert report.status_code == 200
        assert report.body["message"] == SUCCESS_MESSAGE
        assert [result["success"] for result in report.body["results"]] == [False, True]
        assert "timestamp" in report.body
        posted = discord_api.posts[-1]["body"]["embeds"][0]
        assert posted["title"] == "Daily Reflections | 14 October"

    async def test_zero_successes_is_a_failure(self, delivery, discord_api):
        service = DailyReflectionService(make_resolver(), delivery, [discord_api.url("/webhooks/fail/a")])

        report = await service.post_daily_reflection()

        assert report.ok is False
        assert report.status_code == 500
        assert report.body["error"] == FAILURE_MESSAGE
        assert report.body["details"] == "Failed to post to all webhooks"

    async def test_resolve_failure_is_reported_without_stack(self, delivery, discord_api):
        service = DailyReflectionService(
            make_resolver(error=NetworkError("Failed to reach the reflections API")),
            delivery,
            [discord_api.url("/webhooks/ok/a")],
        )

        report = await service.post_daily_reflection("14 OCTOBER")

        assert report.status_code == 500
        assert report.body["details"] == "Failed to reach the reflections API"
        assert "Traceback" not in str(report.body)
        assert discord_api.posts == []

    async def test_unparsable_date_is_a_bad_request(self, delivery, discord_api):
        resolver = make_resolver()
        service = DailyReflectionService(resolver, delivery, [discord_api.url("/webhooks/ok/a")])

        report = await service.post_daily_reflection("32 SMARCH")

        assert report.ok is False
        assert report.status_code == 400
        assert report.body["error"] == FAILURE_MESSAGE
        assert discord_api.posts == []
        resolver.resolve.assert_not_awaited()

    async def test_no_targets_is_a_failure(self, delivery):
        report = await DailyReflectionService(make_resolver(), delivery, []).post_daily_reflection()
        assert report.status_code == 500

    async def test_scheduled_run_waits_for_jitter(self, delivery, discord_api):
        sleep = AsyncMock()
        service = DailyReflectionService(
            make_resolver(),
            delivery,
            [discord_api.url("/webhooks/ok/a")],
            jitter_max_seconds=30,
            sleep=sleep,
        )

        report = await service.run_scheduled()

        assert report.ok is True
        sleep.assert_awaited_once()
        (delay,), _ = sleep.await_args
        assert 0 <= delay <= 30

    async def test_get_reflection_embed(self, delivery):
        service = DailyReflectionService(make_resolver(), delivery, [])
        embed = await service.get_reflection_embed("14 OCTOBER")
        assert embed["description"] == "## A PROGRAM FOR LIVING"
