"""Test configuration and utilities."""

from typing import Any, AsyncIterator, Dict, List

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from daily_reflections_bot.config import (
    AppConfig,
    BackfillConfig,
    DatabaseConfig,
    DiscordConfig,
    LoggingConfig,
    SchedulerConfig,
    SourceConfig,
)
from daily_reflections_bot.database.repositories import ReflectionRepository
from daily_reflections_bot.utils.logging import setup_logging


@pytest.fixture(autouse=True, scope="session")
def configure_logging():
    """Send test logs to stderr so command output on stdout stays clean."""
    setup_logging(LoggingConfig(level="DEBUG", format="text"))


def make_record(date: str = "14 OCTOBER", **overrides: Any) -> Dict[str, Any]:
    """An external API document in the shape the reflections API serves."""
    record = {
        "Date": date,
        "Title": "A PROGRAM FOR LIVING",
        "Quote": {
            "Text": "Rarely have we seen a person fail\r\nwho has thoroughly followed our path.",
            "BookName": "ALCOHOLICS ANONYMOUS",
            "PageNumber": "p. 58",
        },
        "Comment": "The program is a way of life.\nNot a set of rules.",
    }
    record.update(overrides)
    return record


@pytest.fixture
def sample_record() -> Dict[str, Any]:
    return make_record()


@pytest.fixture
def test_config() -> AppConfig:
    """Create a test configuration."""
    config = AppConfig()

    config.database = DatabaseConfig(url="sqlite:///:memory:", echo=False)
    config.source = SourceConfig(url="http://localhost:9/api", timeout=2, retry_attempts=1)
    config.discord = DiscordConfig(public_key=None, client_id="123456", api_base="http://localhost:9/api/v10")
    config.backfill = BackfillConfig(batch_size=20, batch_delay_seconds=0)
    config.scheduler = SchedulerConfig(jitter_max_seconds=0, bot_token="test-bot-token")
    config.logging = LoggingConfig(level="DEBUG", format="text")
    config.webhook_urls = []

    return config


@pytest.fixture
async def repository(tmp_path) -> AsyncIterator[ReflectionRepository]:
    """A repository backed by a temporary SQLite file."""
    repo = ReflectionRepository(DatabaseConfig(url=f"sqlite:///{tmp_path / 'reflections.db'}"))
    await repo.initialize()
    yield repo
    await repo.close()


class FakeReflectionsAPI:
    """
    In-process stand-in for the public reflections API.

    Serves ``/{MMDD}.json`` from ``records`` (keyed by ``"MMDD"``) and
    answers 404 for anything else. A ``bytes`` record is served as-is.
    """

    def __init__(self) -> None:
        self.records: Dict[str, Any] = {}
        self.requests: List[str] = []
        self.fail_with: int = 0
        self.server: TestServer = TestServer(self._build_app())

    def _build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/{key}.json", self._serve)
        return app

    async def _serve(self, request: web.Request) -> web.Response:
        key = request.match_info["key"]
        self.requests.append(key)
        if self.fail_with:
            return web.Response(status=self.fail_with, text="upstream error")
        if key not in self.records:
            return web.Response(status=404, text="not found")
        record = self.records[key]
        if isinstance(record, bytes):
            return web.Response(body=record, content_type="application/json")
        return web.json_response(record)

    @property
    def url(self) -> str:
        return str(self.server.make_url(""))


@pytest.fixture
async def reflections_api() -> AsyncIterator[FakeReflectionsAPI]:
    api = FakeReflectionsAPI()
    await api.server.start_server()
    yield api
    await api.server.close()


class FakeDiscord:
    """
    In-process stand-in for Discord webhooks and the interactions API.

    ``/webhooks/ok/...`` accepts posts, ``/webhooks/fail/...`` rejects
    them with 500. Interaction callbacks and follow-ups are recorded.
    """

    def __init__(self) -> None:
        self.posts: List[Dict[str, Any]] = []
        self.callback_status = 204
        self.server: TestServer = TestServer(self._build_app())

    def _build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/webhooks/ok/{token}", self._accept)
        app.router.add_post("/webhooks/fail/{token}", self._reject)
        app.router.add_post("/api/v10/interactions/{id}/{token}/callback", self._callback)
        app.router.add_post("/api/v10/webhooks/{application_id}/{token}", self._accept)
        return app

    async def _accept(self, request: web.Request) -> web.Response:
        self.posts.append({"path": request.path, "body": await request.json()})
        return web.json_response({"id": "1"}, status=200)

    async def _reject(self, request: web.Request) -> web.Response:
        self.posts.append({"path": request.path, "body": await request.json()})
        return web.Response(status=500, text="webhook broken")

    async def _callback(self, request: web.Request) -> web.Response:
        self.posts.append({"path": request.path, "body": await request.json()})
        return web.Response(status=self.callback_status)

    def url(self, path: str) -> str:
        return str(self.server.make_url(path))


@pytest.fixture
async def discord_api() -> AsyncIterator[FakeDiscord]:
    fake = FakeDiscord()
    await fake.server.start_server()
    yield fake
    await fake.server.close()
