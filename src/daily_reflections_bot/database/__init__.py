"""Database layer for the Daily Reflections Bot."""

from daily_reflections_bot.database.models import (
    Base,
    DailyReflection,
)
from daily_reflections_bot.database.repositories import ReflectionRepository

__all__ = [
    "Base",
    "DailyReflection",
    "ReflectionRepository",
]
