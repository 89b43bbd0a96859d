"""Reflection records: dates, models, formatting and retrieval."""

from daily_reflections_bot.reflections.dates import CanonicalDate, canonicalize
from daily_reflections_bot.reflections.models import (
    ExternalRecord,
    ReflectionContent,
    StoredReflection,
)

__all__ = [
    "CanonicalDate",
    "canonicalize",
    "ExternalRecord",
    "ReflectionContent",
    "StoredReflection",
]
