"""
Database models for the Daily Reflections Bot.

One table caches reflections keyed by their display date, so the bot
only needs the external API on a cache miss.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DailyReflection(Base):
    """
    Cached daily reflection.

    Attributes:
        date_string: Display date, e.g. "14 OCTOBER" (unique key)
        month_day: Month-day form, e.g. "10-14"
        title: Reflection title
        reflection: Commentary text, line breaks removed
        quote_text: Quoted passage, line breaks removed
        page_number: Page of the quoted passage
        book_name: Book the passage is quoted from
        created_at: When the row was first written
    """

    __tablename__ = "daily_reflections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    date_string: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    month_day: Mapped[str] = mapped_column(String(5), nullable=False)
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reflection: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    quote_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    page_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    book_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        Index("idx_daily_reflections_month_day", "month_day"),
    )

    def __repr__(self) -> str:
        """Return string representation of the reflection."""
        return f"<DailyReflection(date_string='{self.date_string}', title='{self.title}')>"

    def to_dict(self) -> Dict[str, Any]:
        """Convert the reflection to a dictionary."""
        return {
            "date_string": self.date_string,
            "month_day": self.month_day,
            "title": self.title,
            "reflection": self.reflection,
            "quote_text": self.quote_text,
            "page_number": self.page_number,
            "book_name": self.book_name,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
