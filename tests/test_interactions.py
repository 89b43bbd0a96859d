"""Tests for Discord interaction handling."""

import json
from unittest.mock import AsyncMock

import aiohttp
import pytest
from nacl.signing import SigningKey

from daily_reflections_bot.api.interactions import (
    COMMANDS,
    NOT_REGISTERED_MESSAGE,
    REFLECTION_ERROR_MESSAGE,
    InteractionHandler,
    InteractionState,
    register_commands,
    verify_signature,
)
from daily_reflections_bot.config import DiscordConfig
from daily_reflections_bot.utils.exceptions import ConfigurationError, NetworkError

EMBED = {"title": "Daily Reflections | 14 October"}
TIMESTAMP = "1700000000"


@pytest.fixture
def signing_key() -> SigningKey:
    return SigningKey.generate()


def sign(key: SigningKey, body: bytes, timestamp: str = TIMESTAMP) -> str:
    return key.sign(timestamp.encode() + body).signature.hex()


def command(name: str) -> bytes:
    return json.dumps({
        "id": "interaction-1",
        "application_id": "123456",
        "token": "tok",
        "type": 2,
        "data": {"name": name},
    }).encode()


@pytest.fixture
async def session():
    async with aiohttp.ClientSession() as client_session:
        yield client_session


@pytest.fixture
def handler(signing_key, session, discord_api):
    config = DiscordConfig(
        public_key=signing_key.verify_key.encode().hex(),
        client_id="123456",
        api_base=discord_api.url("/api/v10"),
    )
    return InteractionHandler(config, session, AsyncMock(return_value=EMBED))


async def send(handler, key, body: bytes):
    return await handler.handle(body, sign(key, body), TIMESTAMP)


class TestSignature:
    def test_valid_signature(self, signing_key):
        body = b'{"type": 1}'
        public_key = signing_key.verify_key.encode().hex()
        assert verify_signature(public_key, sign(signing_key, body), TIMESTAMP, body) is True

    def test_tampered_body(self, signing_key):
        public_key = signing_key.verify_key.encode().hex()
        assert verify_signature(public_key, sign(signing_key, b'{"type": 1}'), TIMESTAMP, b'{"type": 2}') is False

    @pytest.mark.parametrize("public_key,signature", [
        (None, "00"),
        ("not-hex", "00"),
        ("ab" * 32, "zz"),
        ("ab" * 32, None),
    ])
    def test_malformed_input_is_unverified(self, public_key, signature):
        assert verify_signature(public_key, signature, TIMESTAMP, b"{}") is False


class TestHandle:
    async def test_invalid_signature(self, handler, discord_api):
        response = await handler.handle(b'{"type": 1}', "00" * 64, TIMESTAMP)

        assert response.status == 401
        assert response.body == {"error": "Invalid request signature"}
        assert response.state == InteractionState.ERROR
        assert discord_api.posts == []

    async def test_handshake(self, handler, signing_key):
        response = await send(handler, signing_key, b'{"type": 1}')

        assert response.status == 200
        assert response.body == {"type": 1}

    async def test_unknown_type(self, handler, signing_key):
        response = await send(handler, signing_key, b'{"type": 9}')

        assert response.status == 400
        assert response.body == {"error": "Unknown request type"}

    async def test_reflections_command(self, handler, signing_key, discord_api):
        response = await send(handler, signing_key, command("reflections"))

        assert response.status == 200
        assert response.body is None
        assert response.transitions == [
            InteractionState.RECEIVED,
            InteractionState.VERIFIED,
            InteractionState.DEFERRED_ACK_SENT,
            InteractionState.RESOLVING,
            InteractionState.FORMATTING,
            InteractionState.DELIVERING,
            InteractionState.COMPLETED,
        ]
        ack, follow_up = discord_api.posts
        assert ack == {"path": "/api/v10/interactions/interaction-1/tok/callback", "body": {"type": 5}}
        assert follow_up == {"path": "/api/v10/webhooks/123456/tok", "body": {"embeds": [EMBED]}}

    async def test_ping_command(self, handler, signing_key, discord_api):
        await send(handler, signing_key, command("ping"))

        content = discord_api.posts[-1]["body"]["content"]
        assert content.startswith("Pong! Bot latency is ")
        assert content.endswith("ms.")

    async def test_unregistered_command(self, handler, signing_key, discord_api):
        response = await send(handler, signing_key, command("dance"))

        assert response.status == 200
        assert discord_api.posts[-1]["body"] == {"content": NOT_REGISTERED_MESSAGE}

    async def test_reflection_failure_becomes_text_reply(self, handler, signing_key, discord_api):
        handler.reflection_embed = AsyncMock(side_effect=NetworkError("down"))

        response = await send(handler, signing_key, command("reflections"))

        assert response.status == 200
        assert discord_api.posts[-1]["body"] == {"content": REFLECTION_ERROR_MESSAGE}

    async def test_ack_failure_is_internal_error(self, handler, signing_key, discord_api):
        discord_api.callback_status = 500

        response = await send(handler, signing_key, command("reflections"))

        assert response.status == 500
        assert response.body == {"error": "Internal server error"}
        assert response.state == InteractionState.ERROR
        assert len(discord_api.posts) == 1


class TestRegisterCommands:
    async def test_requires_credentials(self, session):
        with pytest.raises(ConfigurationError):
            await register_commands(session, DiscordConfig(client_id="1", bot_token=None))

    def test_command_registry(self):
        assert [c.name for c in COMMANDS] == ["reflections", "ping"]
