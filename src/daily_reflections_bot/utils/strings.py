"""String helpers shared by the formatter and the date utilities."""

import re

_LINE_BREAKS = re.compile(r"\r\n|\n|\r")


def remove_line_breaks(text: str) -> str:
    """
    Replace every line break with a single space and trim the result.

    ``"line1\\r\\nline2\\n"`` becomes ``"line1 line2"``.
    """
    return _LINE_BREAKS.sub(" ", text).strip()


def make_sentence_case(text: str) -> str:
    """
    Capitalise the first letter of each word and lowercase the rest.

    ``"14 OCTOBER HELLO WORLD"`` becomes ``"14 October Hello World"``.
    """
    return " ".join(word[:1].upper() + word[1:].lower() for word in text.split(" ")).strip()


def format_day_month(date_string: str) -> str:
    """
    Format a ``"D MONTHNAME"`` date for display.

    ``"14 OCTOBER"`` becomes ``"14 October"``.
    """
    day, _, month = date_string.strip().partition(" ")
    month = month.strip()
    return f"{day} {month[:1].upper()}{month[1:].lower()}"


def markdown_link(text: str, url: str) -> str:
    """Wrap text as a markdown link."""
    return f"[{text}]({url})"
