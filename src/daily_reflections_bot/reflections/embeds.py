"""
Discord embed formatting for daily reflections.

A reflection becomes one embed with a fixed layout:

    title        Daily Reflections | 14 October
    description  ## A PROGRAM FOR LIVING
    fields       Quote, Reflection, Source
    footer       how to request the reflection on demand

Field names and values never contain line breaks, and the Source field
is a markdown link whenever the citation has an online page.
"""

from typing import Any, Dict, Union

import discord

from daily_reflections_bot.reflections.models import (
    ExternalRecord,
    ReflectionContent,
    StoredReflection,
)
from daily_reflections_bot.reflections.page_urls import build_source_link
from daily_reflections_bot.utils.logging import get_logger
from daily_reflections_bot.utils.strings import format_day_month, remove_line_breaks

EMBED_COLOR = 10448383  # lavender
EMBED_TITLE_PREFIX = "Daily Reflections"
FOOTER_TEXT = "Daily Reflections, use `/reflections` to get today's daily reflection"

MISSING_QUOTE = "No Quote found"
MISSING_REFLECTION = "No Reflection found"
MISSING_SOURCE = "Unknown source"

logger = get_logger(__name__)


def format_source(book_name: str, page_text: str) -> str:
    """
    Source field value: a markdown link when possible, else plain text.
    """
    link = build_source_link(book_name, page_text)
    if link:
        return link
    parts = [part for part in (book_name.strip(), page_text.strip()) if part]
    return ", ".join(parts) if parts else MISSING_SOURCE


def add_clean_field(embed: discord.Embed, name: str, value: str, fallback: str) -> None:
    """Add a field with line breaks collapsed, substituting empty values."""
    clean_name = remove_line_breaks(name)
    clean_value = remove_line_breaks(value) or fallback
    embed.add_field(name=clean_name, value=clean_value, inline=False)


def format_reflection_embed(record: Union[ExternalRecord, StoredReflection, ReflectionContent]) -> discord.Embed:
    """
    Build the Discord embed for a reflection.

    Args:
        record: API record, stored row, or already adapted content

    Returns:
        The embed, ready to be sent or serialised with ``to_dict()``

    Example:
        ```python
        embed = format_reflection_embed(stored_row)
        payload = {"embeds": [embed.to_dict()]}
        ```
    """
    content = record if isinstance(record, ReflectionContent) else ReflectionContent.from_record(record)

    embed = discord.Embed(
        title=f"{EMBED_TITLE_PREFIX} | {format_day_month(content.date_string)}",
        description=f"## {remove_line_breaks(content.title)}",
        color=EMBED_COLOR,
    )
    add_clean_field(embed, "Quote", content.quote_text, MISSING_QUOTE)
    add_clean_field(embed, "Reflection", content.reflection, MISSING_REFLECTION)
    add_clean_field(
        embed, "Source", format_source(content.book_name, content.page_text), MISSING_SOURCE
    )
    embed.set_footer(text=FOOTER_TEXT)

    logger.debug(
        "Formatted reflection embed",
        date_string=content.date_string,
        source=embed.fields[-1].value,
    )
    return embed


def embed_payload(embed: Union[discord.Embed, Dict[str, Any]]) -> Dict[str, Any]:
    """Serialise an embed to the JSON object Discord expects."""
    if isinstance(embed, discord.Embed):
        return embed.to_dict()
    return dict(embed)
