"""
Discord slash-command interactions.

Discord signs every interaction request with the application's Ed25519
key. A verified command is acknowledged at once with a deferred
response, processed, and answered with a follow-up message:

    RECEIVED -> VERIFIED -> DEFERRED_ACK_SENT -> RESOLVING -> FORMATTING
             -> DELIVERING -> COMPLETED

Any step may end in ERROR instead.
"""

import asyncio
import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import aiohttp
from nacl.exceptions import CryptoError
from nacl.signing import VerifyKey

from daily_reflections_bot.config import DiscordConfig
from daily_reflections_bot.utils.exceptions import (
    ConfigurationError,
    ErrorType,
    ExternalServiceError,
    NetworkError,
    ReflectionsBotError,
    wrap_error,
)
from daily_reflections_bot.utils.logging import (
    generate_correlation_id,
    get_logger,
    log_http_request,
    log_http_response,
)

PING = 1
APPLICATION_COMMAND = 2
PONG = 1
DEFERRED_CHANNEL_MESSAGE = 5

SIGNATURE_HEADER = "X-Signature-Ed25519"
TIMESTAMP_HEADER = "X-Signature-Timestamp"

NOT_REGISTERED_MESSAGE = "Command not registered."
REFLECTION_ERROR_MESSAGE = "An error occurred while fetching the daily reflection."


class InteractionState(str, Enum):
    """Progress of one interaction request."""

    RECEIVED = "received"
    VERIFIED = "verified"
    DEFERRED_ACK_SENT = "deferred_ack_sent"
    RESOLVING = "resolving"
    FORMATTING = "formatting"
    DELIVERING = "delivering"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class SlashCommand:
    name: str
    description: str


COMMANDS = (
    SlashCommand("reflections", "Get today's daily reflection"),
    SlashCommand("ping", "Replies with pong!"),
)
COMMAND_NAMES = frozenset(command.name for command in COMMANDS)


@dataclass
class InteractionResponse:
    """HTTP response for Discord, plus the state the request ended in."""

    status: int
    body: Optional[Dict[str, Any]] = None
    state: InteractionState = InteractionState.COMPLETED
    transitions: List[InteractionState] = field(default_factory=list)


def verify_signature(public_key: Optional[str], signature: Optional[str], timestamp: Optional[str], body: bytes) -> bool:
    """
    Check Discord's Ed25519 signature over ``timestamp + body``.

    Missing headers, a malformed key and a bad signature all count as
    unverified.
    """
    if not public_key or not signature or not timestamp:
        return False
    try:
        verify_key = VerifyKey(bytes.fromhex(public_key))
        verify_key.verify(timestamp.encode("utf-8") + body, bytes.fromhex(signature))
        return True
    except (CryptoError, ValueError, TypeError):
        return False


class InteractionHandler:
    """
    Handles interaction requests from Discord.

    Attributes:
        config: Discord configuration (public key, application id, API base)
        session: aiohttp session for the callback and follow-up posts
        reflection_embed: Coroutine returning today's embed dict
    """

    def __init__(
        self,
        config: DiscordConfig,
        session: aiohttp.ClientSession,
        reflection_embed: Callable[[], Awaitable[Dict[str, Any]]],
    ) -> None:
        self.config = config
        self.session = session
        self.reflection_embed = reflection_embed
        self.timeout = aiohttp.ClientTimeout(total=config.timeout)
        self.logger = get_logger(__name__)

    async def handle(
        self,
        raw_body: bytes,
        signature: Optional[str],
        timestamp: Optional[str],
    ) -> InteractionResponse:
        """
        Process one signed interaction request.

        Args:
            raw_body: Request body exactly as received
            signature: Value of the signature header
            timestamp: Value of the timestamp header

        Returns:
            The HTTP response to give Discord
        """
        start_time = time.monotonic()
        correlation_id = generate_correlation_id()
        transitions: List[InteractionState] = []

        def advance(state: InteractionState, **context: Any) -> None:
            transitions.append(state)
            self.logger.debug("Interaction state", state=state.value, correlation_id=correlation_id, **context)

        def finish(status: int, body: Optional[Dict[str, Any]], state: InteractionState) -> InteractionResponse:
            advance(state, status=status)
            return InteractionResponse(status=status, body=body, state=state, transitions=transitions)

        advance(InteractionState.RECEIVED)

        if not verify_signature(self.config.public_key, signature, timestamp, raw_body):
            wrap_error(
                "Invalid request signature",
                ErrorType.AUTHENTICATION,
                operation="InteractionHandler.handle",
                context={"correlation_id": correlation_id},
            )
            return finish(401, {"error": "Invalid request signature"}, InteractionState.ERROR)

        advance(InteractionState.VERIFIED)

        try:
            message = json.loads(raw_body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return finish(400, {"error": "Invalid request body"}, InteractionState.ERROR)

        interaction_type = message.get("type") if isinstance(message, dict) else None

        if interaction_type == PING:
            self.logger.info("Verification ping received")
            return finish(200, {"type": PONG}, InteractionState.COMPLETED)

        if interaction_type != APPLICATION_COMMAND:
            return finish(400, {"error": "Unknown request type"}, InteractionState.ERROR)

        name = (message.get("data") or {}).get("name", "")
        token = message.get("token", "")
        self.logger.info("Slash command received", command=name, correlation_id=correlation_id)

        try:
            await self._post(
                f"{self.config.api_base}/interactions/{message.get('id')}/{token}/callback",
                {"type": DEFERRED_CHANNEL_MESSAGE},
                correlation_id,
            )
            advance(InteractionState.DEFERRED_ACK_SENT)

            content = await self.process_command(name, start_time, advance)

            advance(InteractionState.DELIVERING)
            application_id = self.config.client_id or message.get("application_id")
            await self._post(
                f"{self.config.api_base}/webhooks/{application_id}/{token}",
                content,
                correlation_id,
            )
        except ReflectionsBotError as e:
            self.logger.error(
                "Failed to answer interaction",
                command=name,
                error_type=e.error_type.value,
                error=e.message,
                correlation_id=correlation_id,
            )
            return finish(500, {"error": "Internal server error"}, InteractionState.ERROR)

        return finish(200, None, InteractionState.COMPLETED)

    async def process_command(
        self,
        name: str,
        start_time: float,
        advance: Callable[..., None] = lambda state, **context: None,
    ) -> Dict[str, Any]:
        """
        Build the follow-up body for a command.

        Never raises: failures become a text reply.
        """
        if name not in COMMAND_NAMES:
            wrap_error(
                NOT_REGISTERED_MESSAGE,
                ErrorType.VALIDATION,
                operation="InteractionHandler.process_command",
                context={"command": name},
            )
            return {"content": NOT_REGISTERED_MESSAGE}

        if name == "ping":
            latency_ms = int((time.monotonic() - start_time) * 1000)
            return {"content": f"Pong! Bot latency is {latency_ms}ms."}

        advance(InteractionState.RESOLVING)
        try:
            embed = await self.reflection_embed()
        except Exception as e:
            wrap_error(
                e,
                ErrorType.EXTERNAL_SERVICE,
                operation="InteractionHandler.process_command",
                context={"command": name},
            )
            return {"content": REFLECTION_ERROR_MESSAGE}
        advance(InteractionState.FORMATTING)
        return {"embeds": [embed]}

    async def _post(self, url: str, body: Dict[str, Any], correlation_id: str) -> None:
        log_http_request(method="POST", url=url, body=body, service="discord", correlation_id=correlation_id)
        start_time = time.time()
        try:
            async with self.session.post(url, json=body, timeout=self.timeout) as response:
                response_text = await response.text()
                log_http_response(
                    status_code=response.status,
                    response_time_ms=(time.time() - start_time) * 1000,
                    service="discord",
                    correlation_id=correlation_id,
                )
                if not 200 <= response.status < 300:
                    raise ExternalServiceError(
                        f"Failed to send response: {response.status}",
                        context={"response_text": response_text[:200]},
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(
                "Failed to reach the Discord API",
                context={"error_type": type(e).__name__, "correlation_id": correlation_id},
                original_error=e,
            )


async def register_commands(session: aiohttp.ClientSession, config: DiscordConfig) -> List[Dict[str, Any]]:
    """
    Replace the application's global slash commands with COMMANDS.

    Returns:
        The commands as registered by Discord

    Raises:
        ConfigurationError: If the client id or bot token is missing
        ExternalServiceError: If Discord rejects the request
    """
    if not config.client_id or not config.bot_token:
        raise ConfigurationError(
            "Registering commands needs DISCORD_CLIENT_ID and DISCORD_BOT_TOKEN",
        )

    url = f"{config.api_base}/applications/{config.client_id}/commands"
    body = [{"name": command.name, "description": command.description} for command in COMMANDS]
    headers = {"Authorization": f"Bot {config.bot_token}"}

    log_http_request(method="PUT", url=url, headers=headers, service="discord")
    async with session.put(url, json=body, headers=headers) as response:
        if not 200 <= response.status < 300:
            raise ExternalServiceError(
                "Failed to register slash commands",
                context={"status_code": response.status, "response_text": (await response.text())[:200]},
            )
        return await response.json()
