"""
Deep links from a literature citation to an online copy of the page.

Only the Big Book ("ALCOHOLICS ANONYMOUS") has an online page mapping.
Every other book, and any citation without a page number, resolves to no
link; the caller then falls back to plain ``"{book}, {page}"`` text.
"""

import re
from typing import Optional

from daily_reflections_bot.utils.strings import markdown_link

BIG_BOOK_TITLE = "ALCOHOLICS ANONYMOUS"
BIG_BOOK_PAGE_URL = "https://anonpress.org/bb/Page_{page}.htm"

_DIGITS = re.compile(r"\d+")


def extract_page_number(page_text: Optional[str]) -> Optional[int]:
    """
    Return the first run of digits in a free-text page field.

    ``"p. 86"`` gives ``86``; ``"No Page"`` and ``""`` give ``None``.
    """
    if not page_text:
        return None
    match = _DIGITS.search(page_text)
    return int(match.group()) if match else None


def resolve_page_url(book_name: Optional[str], page_text: Optional[str]) -> Optional[str]:
    """
    Build the online page URL for a citation.

    Args:
        book_name: Book identifier as given by the source
        page_text: Free-text page field, e.g. ``"p. 86"``

    Returns:
        The page URL, or None when the page number is missing or the
        book has no online mapping
    """
    page = extract_page_number(page_text)
    if page is None:
        return None
    if (book_name or "").strip().upper() != BIG_BOOK_TITLE:
        return None
    return BIG_BOOK_PAGE_URL.format(page=page)


def build_source_link(book_name: Optional[str], page_text: Optional[str]) -> Optional[str]:
    """
    Markdown link ``[{book}, {page_text}]({url})`` for a citation, if any.
    """
    url = resolve_page_url(book_name, page_text)
    if url is None:
        return None
    return markdown_link(f"{book_name}, {page_text}", url)
