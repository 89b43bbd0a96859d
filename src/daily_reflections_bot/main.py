"""
Main entry point for the Daily Reflections Bot.

This module provides the CLI interface. It handles configuration loading,
logging setup, wiring of the components, and graceful shutdown.

Commands:
    serve     run the HTTP server and scheduler (default)
    post      post one day's reflection to every webhook and exit
    show      print one day's embed as JSON
    backfill  import every day's reflection into the database
    register  register the slash commands with Discord
"""

import argparse
import asyncio
import json
import signal
import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional

import aiohttp

from daily_reflections_bot import __version__
from daily_reflections_bot.api.interactions import InteractionHandler, register_commands
from daily_reflections_bot.api.server import ReflectionsAPIServer
from daily_reflections_bot.config import AppConfig, load_config
from daily_reflections_bot.database.repositories import ReflectionRepository
from daily_reflections_bot.delivery.service import DailyReflectionService
from daily_reflections_bot.delivery.webhooks import WebhookDelivery
from daily_reflections_bot.reflections.backfill import ReflectionBackfill, summarize
from daily_reflections_bot.reflections.resolver import ReflectionResolver
from daily_reflections_bot.reflections.source import ReflectionSource
from daily_reflections_bot.scheduler import ReflectionScheduler
from daily_reflections_bot.utils.exceptions import ConfigurationError, ReflectionsBotError
from daily_reflections_bot.utils.logging import get_logger, setup_logging


@dataclass
class Components:
    """Everything a command needs, built once from the configuration."""

    config: AppConfig
    session: aiohttp.ClientSession
    repository: ReflectionRepository
    source: ReflectionSource
    resolver: ReflectionResolver
    service: DailyReflectionService


@asynccontextmanager
async def build_components(config: AppConfig) -> AsyncIterator[Components]:
    """
    Create and wire the components, closing them on exit.

    Raises:
        ConfigurationError: If a component cannot be configured
        DatabaseError: If the database cannot be initialized
    """
    logger = get_logger(__name__)
    logger.info(
        "Creating components",
        database_url=config.database.url,
        source_url=config.source.url,
        webhooks=len(config.webhook_urls),
    )

    session = aiohttp.ClientSession(headers={"User-Agent": f"Daily-Reflections-Bot/{__version__}"})
    repository = ReflectionRepository(config.database)
    source: Optional[ReflectionSource] = None
    resolver: Optional[ReflectionResolver] = None
    try:
        await repository.initialize()
        source = ReflectionSource(config.source)
        resolver = ReflectionResolver(repository, source, tz=config.scheduler.tzinfo)
        service = DailyReflectionService(
            resolver,
            WebhookDelivery(session, timeout=config.discord.timeout),
            config.webhook_urls,
            jitter_max_seconds=config.scheduler.jitter_max_seconds,
        )
        yield Components(
            config=config,
            session=session,
            repository=repository,
            source=source,
            resolver=resolver,
            service=service,
        )
    finally:
        logger.info("Cleaning up resources")
        if resolver:
            await resolver.wait_for_write_backs()
        if source:
            await source.close()
        await repository.close()
        await session.close()


async def run_server(config: AppConfig) -> None:
    """
    Run the HTTP server and scheduler until SIGINT or SIGTERM.

    Args:
        config: Application configuration
    """
    logger = get_logger(__name__)
    shutdown_event = asyncio.Event()

    if config.scheduler.enabled and not config.webhook_urls:
        raise ConfigurationError(
            f"Scheduled delivery needs at least one {config.discord.webhook_prefix}_N webhook URL"
        )

    async with build_components(config) as components:
        interactions = InteractionHandler(
            config.discord,
            components.session,
            components.service.get_reflection_embed,
        )
        server = ReflectionsAPIServer(
            config.server,
            config.scheduler,
            components.service,
            interactions,
            components.repository,
        )
        scheduler = ReflectionScheduler(config.scheduler, components.service, components.session)

        def signal_handler(signum: int, frame) -> None:
            logger.info("Received shutdown signal", signal=signum)
            shutdown_event.set()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        await server.start()
        await scheduler.start()
        try:
            await shutdown_event.wait()
        finally:
            await scheduler.stop()
            try:
                await asyncio.wait_for(server.stop(), timeout=5.0)
            except asyncio.TimeoutError:
                logger.warning("Server shutdown timed out after 5 seconds")


async def run_post(config: AppConfig, date: Optional[str]) -> int:
    async with build_components(config) as components:
        report = await components.service.post_daily_reflection(date)
    print(json.dumps(report.body, indent=2))
    return 0 if report.ok else 1


async def run_show(config: AppConfig, date: Optional[str]) -> int:
    async with build_components(config) as components:
        embed = await components.service.get_reflection_embed(date)
    print(json.dumps(embed, indent=2))
    return 0


async def run_backfill(config: AppConfig) -> int:
    async with build_components(config) as components:
        backfill = ReflectionBackfill(
            components.source,
            components.repository,
            batch_size=config.backfill.batch_size,
            batch_delay=config.backfill.batch_delay_seconds,
        )
        outcomes = await backfill.backfill_all()
    print(json.dumps(summarize(outcomes), indent=2))
    return 0


async def run_register(config: AppConfig) -> int:
    async with aiohttp.ClientSession() as session:
        registered = await register_commands(session, config.discord)
    for command in registered:
        print(f"/{command.get('name')} - {command.get('description')}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="daily-reflections-bot",
        description="Post daily reflections to Discord.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("serve", help="Run the HTTP server and scheduler")

    post_parser = subparsers.add_parser("post", help="Post a reflection to every webhook")
    post_parser.add_argument("--date", help="Day to post, e.g. 2024-10-14 or '14 OCTOBER'")

    show_parser = subparsers.add_parser("show", help="Print a reflection embed as JSON")
    show_parser.add_argument("--date", help="Day to show, e.g. 2024-10-14 or '14 OCTOBER'")

    subparsers.add_parser("backfill", help="Import every day's reflection into the database")
    subparsers.add_parser("register", help="Register the slash commands with Discord")

    return parser


async def main_async(argv: Optional[List[str]] = None) -> int:
    """
    Async main function that handles the complete lifecycle of a command.

    This function:
    1. Parses arguments
    2. Loads configuration
    3. Sets up logging
    4. Runs the command
    """
    args = build_parser().parse_args(argv)
    command = args.command or "serve"

    config = load_config()
    setup_logging(config.logging)
    logger = get_logger(__name__)
    logger.info("Daily Reflections Bot starting", version=__version__, command=command, debug_mode=config.debug)

    try:
        if command == "serve":
            await run_server(config)
            return 0
        if command == "post":
            return await run_post(config, args.date)
        if command == "show":
            return await run_show(config, args.date)
        if command == "backfill":
            return await run_backfill(config)
        if command == "register":
            return await run_register(config)
    finally:
        logger.info("Daily Reflections Bot shutdown complete", command=command)

    raise ConfigurationError(f"Unknown command: {command}")


def main() -> None:
    """
    Main entry point for the Daily Reflections Bot.

    Example:
        Command line usage:
        ```bash
        daily-reflections-bot serve
        daily-reflections-bot show --date "14 OCTOBER"
        ```
    """
    try:
        exit_code = asyncio.run(main_async())
    except KeyboardInterrupt:
        print("\nShutdown requested", file=sys.stderr)
        sys.exit(0)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)
    except ReflectionsBotError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        sys.exit(1)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
