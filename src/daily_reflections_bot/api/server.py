"""
HTTP server for Discord interactions and internal triggers.

Routes:
    POST /interactions          signed Discord interactions
    POST /scheduled-reflection  post today's reflection to every webhook
    GET  /reflection            today's embed, used by the health ping
    GET  /health                database status

Everything except /interactions requires ``Authorization: Bearer <token>``.
"""

import hmac
import json
from typing import Any, Dict, Optional

from aiohttp import web
from aiohttp.web import Request, Response

from daily_reflections_bot.api.interactions import (
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    InteractionHandler,
)
from daily_reflections_bot.config import SchedulerConfig, ServerConfig
from daily_reflections_bot.database.repositories import ReflectionRepository
from daily_reflections_bot.delivery.service import DailyReflectionService
from daily_reflections_bot.utils.exceptions import ErrorType, ReflectionsBotError, wrap_error
from daily_reflections_bot.utils.logging import get_logger

INVALID_HEADER_MESSAGE = "Unauthorized - invalid authorization header format"
INVALID_TOKEN_MESSAGE = "Unauthorized - invalid token"


def json_response(body: Optional[Dict[str, Any]], status: int = 200) -> Response:
    if body is None:
        return Response(status=status)
    return Response(
        text=json.dumps(body),
        status=status,
        content_type="application/json",
    )


class ReflectionsAPIServer:
    """
    aiohttp application serving the bot's endpoints.

    Attributes:
        server_config: Bind address
        scheduler_config: Bearer token and scheduled-trigger header
        service: Delivery service
        interactions: Discord interaction handler
        repository: Reflection cache, for health checks
    """

    def __init__(
        self,
        server_config: ServerConfig,
        scheduler_config: SchedulerConfig,
        service: DailyReflectionService,
        interactions: InteractionHandler,
        repository: ReflectionRepository,
    ) -> None:
        self.server_config = server_config
        self.scheduler_config = scheduler_config
        self.service = service
        self.interactions = interactions
        self.repository = repository
        self.logger = get_logger(__name__)

        self.app: Optional[web.Application] = None
        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None

    def create_app(self) -> web.Application:
        """Build the application with all routes."""
        app = web.Application()
        app.router.add_post("/interactions", self._interactions)
        app.router.add_post("/scheduled-reflection", self._scheduled_reflection)
        app.router.add_get("/reflection", self._reflection)
        app.router.add_get("/health", self._health_check)
        return app

    async def start(self) -> None:
        """Start serving on the configured host and port."""
        self.app = self.create_app()

        self.runner = web.AppRunner(self.app)
        await self.runner.setup()

        self.site = web.TCPSite(self.runner, self.server_config.host, self.server_config.port)
        await self.site.start()

        self.logger.info(
            "API server started",
            host=self.server_config.host,
            port=self.server_config.port,
        )

    async def stop(self) -> None:
        """Stop the server."""
        if self.site:
            await self.site.stop()
        if self.runner:
            await self.runner.cleanup()

        self.logger.info("API server stopped")

    def _check_auth(self, request: Request) -> Optional[Response]:
        """Return a 401 response unless the bearer token matches."""
        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            self.logger.warning("Invalid authorization header format", path=request.path)
            return json_response({"error": INVALID_HEADER_MESSAGE}, status=401)

        token = auth_header[7:]
        expected = self.scheduler_config.bot_token or ""
        if not token or not expected or not hmac.compare_digest(token.encode(), expected.encode()):
            self.logger.warning("Invalid or missing authorization token", path=request.path)
            return json_response({"error": INVALID_TOKEN_MESSAGE}, status=401)

        return None

    def _is_scheduled_event(self, request: Request) -> bool:
        return request.headers.get(self.scheduler_config.trigger_header) == self.scheduler_config.trigger_value

    async def _interactions(self, request: Request) -> Response:
        """Discord interactions endpoint."""
        raw_body = await request.read()
        result = await self.interactions.handle(
            raw_body,
            request.headers.get(SIGNATURE_HEADER),
            request.headers.get(TIMESTAMP_HEADER),
        )
        return json_response(result.body, status=result.status)

    async def _scheduled_reflection(self, request: Request) -> Response:
        """Post the day's reflection to every webhook."""
        unauthorized = self._check_auth(request)
        if unauthorized:
            return unauthorized

        date = request.query.get("date")
        if self._is_scheduled_event(request):
            self.logger.info("Scheduled trigger received", date=date)
            report = await self.service.run_scheduled(date)
        else:
            report = await self.service.post_daily_reflection(date)

        return json_response(report.body, status=report.status_code)

    async def _reflection(self, request: Request) -> Response:
        """Resolve and format the day's reflection without posting it."""
        unauthorized = self._check_auth(request)
        if unauthorized:
            return unauthorized

        try:
            embed = await self.service.get_reflection_embed(request.query.get("date"))
        except ReflectionsBotError as e:
            return json_response(
                {"error": "Failed to fetch reflection", "details": e.message},
                status=e.status_code,
            )
        except Exception as e:
            wrapped = wrap_error(e, ErrorType.INTERNAL, operation="ReflectionsAPIServer.reflection")
            return json_response(
                {"error": "Failed to fetch reflection", "details": wrapped.message},
                status=500,
            )

        return json_response({"message": "Successfully fetched reflection", "reflection": embed})

    async def _health_check(self, request: Request) -> Response:
        """Health check endpoint."""
        unauthorized = self._check_auth(request)
        if unauthorized:
            return unauthorized

        database_ok = await self.repository.health_check()
        health_data = {
            "status": "healthy" if database_ok else "degraded",
            "database": database_ok,
            "webhooks": len(self.service.webhook_urls),
        }
        return json_response(health_data, status=200 if database_ok else 503)
