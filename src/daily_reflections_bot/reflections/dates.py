"""
Date canonicalisation for reflection lookups.

Every part of the pipeline keys reflections by one of two strings:

- the display form ``"D MONTHNAME"`` (``"14 OCTOBER"``), used as the
  storage key and shown in the embed title
- the month-day form ``"MM-DD"`` (``"10-14"``), used to build the
  external API URL and as a secondary index

canonicalize() accepts a date or datetime, an ISO date string, a
``"MM-DD"`` string or a display string and returns both forms.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, Tuple, Union

from daily_reflections_bot.utils.exceptions import ValidationError
from daily_reflections_bot.utils.strings import format_day_month

MONTH_NAMES: Tuple[str, ...] = (
    "JANUARY",
    "FEBRUARY",
    "MARCH",
    "APRIL",
    "MAY",
    "JUNE",
    "JULY",
    "AUGUST",
    "SEPTEMBER",
    "OCTOBER",
    "NOVEMBER",
    "DECEMBER",
)

MONTH_NUMBERS: Dict[str, int] = {name: index for index, name in enumerate(MONTH_NAMES, start=1)}

_DISPLAY_PATTERN = re.compile(r"^\s*(\d{1,2})\s+([A-Za-z]+)\s*$")
_MONTH_DAY_PATTERN = re.compile(r"^\s*(\d{1,2})-(\d{1,2})\s*$")

DateInput = Union[date, datetime, str, "CanonicalDate"]


def month_number(name: str) -> int:
    """
    Return the month number for a month name, case-insensitively.

    Raises:
        ValidationError: If the name is not one of the twelve months
    """
    number = MONTH_NUMBERS.get(name.strip().upper())
    if number is None:
        raise ValidationError(
            f"Month name provided does not exist: {name}",
            context={"month": name},
        )
    return number


def month_name(number: Union[int, str]) -> str:
    """
    Return the uppercase month name for a month number (1-12).

    Raises:
        ValidationError: If the number is outside 1-12 or not numeric
    """
    try:
        index = int(number)
    except (TypeError, ValueError):
        raise ValidationError(f"Month number is not valid: {number}", context={"month": number})
    if not 1 <= index <= 12:
        raise ValidationError(f"Month number is not valid: {number}", context={"month": number})
    return MONTH_NAMES[index - 1]


@dataclass(frozen=True)
class CanonicalDate:
    """Both normalised forms of a calendar day."""

    display: str
    month_day: str

    @classmethod
    def from_parts(cls, month: int, day: int) -> "CanonicalDate":
        """Build from a month number and day of month."""
        if not 1 <= day <= 31:
            raise ValidationError(f"Day of month is not valid: {day}", context={"day": day})
        name = month_name(month)
        return cls(display=f"{day} {name}", month_day=f"{month:02d}-{day:02d}")

    @property
    def month(self) -> int:
        return int(self.month_day[:2])

    @property
    def day(self) -> int:
        return int(self.month_day[3:])

    @property
    def title(self) -> str:
        """Display form in sentence case, e.g. ``"14 October"``."""
        return format_day_month(self.display)

    def __str__(self) -> str:
        return self.display


def _from_display(match: "re.Match[str]") -> CanonicalDate:
    return CanonicalDate.from_parts(month_number(match.group(2)), int(match.group(1)))


def _from_iso(value: str) -> CanonicalDate:
    # Date-only strings carry no time, so they are taken as that calendar
    # day (midnight UTC) and never shifted by the local timezone.
    try:
        if "T" in value or " " in value.strip():
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00")).date()
        else:
            parsed = date.fromisoformat(value.strip())
    except ValueError as e:
        raise ValidationError(
            f"Invalid date string given: {value}",
            context={"value": value},
            original_error=e,
        )
    return CanonicalDate.from_parts(parsed.month, parsed.day)


def canonicalize(value: DateInput) -> CanonicalDate:
    """
    Convert any accepted date representation into a CanonicalDate.

    Accepted inputs:
        - ``date``/``datetime`` objects (the calendar day is used as-is)
        - ISO strings: ``"2024-10-14"``, ``"2024-10-14T08:00:00+02:00"``
        - month-day strings: ``"10-14"``
        - display strings in any case: ``"14 OCTOBER"``, ``"14 october"``
        - an existing CanonicalDate, returned unchanged

    Args:
        value: The date to canonicalise

    Returns:
        The display and month-day forms

    Raises:
        ValidationError: If the value cannot be parsed or names an unknown month

    Example:
        ```python
        canonicalize("2024-10-14")
        # CanonicalDate(display='14 OCTOBER', month_day='10-14')
        ```
    """
    if isinstance(value, CanonicalDate):
        return value
    if isinstance(value, datetime):
        return CanonicalDate.from_parts(value.month, value.day)
    if isinstance(value, date):
        return CanonicalDate.from_parts(value.month, value.day)
    if not isinstance(value, str):
        raise ValidationError(
            f"Expected a date or date string, received {type(value).__name__}",
            context={"value": repr(value)},
        )

    display_match = _DISPLAY_PATTERN.match(value)
    if display_match:
        return _from_display(display_match)

    month_day_match = _MONTH_DAY_PATTERN.match(value)
    if month_day_match:
        return CanonicalDate.from_parts(int(month_day_match.group(1)), int(month_day_match.group(2)))

    return _from_iso(value)


def month_day_slots() -> Tuple[str, ...]:
    """
    Every ``"MM-DD"`` combination for 12 months of 31 days.

    Invalid calendar days such as ``"02-30"`` are included; the external
    API simply has no record for them.
    """
    return tuple(f"{month:02d}-{day:02d}" for month in range(1, 13) for day in range(1, 32))
