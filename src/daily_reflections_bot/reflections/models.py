"""
Data models for reflection records.

Two record shapes reach the formatter: the document returned by the
external API (ExternalRecord) and the row kept in the database
(StoredReflection). Both are converted into ReflectionContent before an
embed is built, so formatting never branches on where a record came from.
"""

from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from daily_reflections_bot.reflections.dates import canonicalize
from daily_reflections_bot.reflections.page_urls import extract_page_number
from daily_reflections_bot.utils.strings import remove_line_breaks


class ExternalQuote(BaseModel):
    """Quoted passage inside an external record."""

    model_config = ConfigDict(populate_by_name=True)

    text: str = Field(default="", alias="Text")
    book_name: str = Field(default="", alias="BookName")
    page_number: str = Field(default="", alias="PageNumber")


class ExternalRecord(BaseModel):
    """
    One day's record as returned by the public reflections API.

    Example document:
        ```json
        {
          "Date": "14 OCTOBER",
          "Title": "A PROGRAM FOR LIVING",
          "Quote": {"Text": "...", "BookName": "ALCOHOLICS ANONYMOUS", "PageNumber": "p. 86"},
          "Comment": "..."
        }
        ```
    """

    model_config = ConfigDict(populate_by_name=True)

    date: str = Field(alias="Date")
    title: str = Field(default="", alias="Title")
    comment: str = Field(default="", alias="Comment")
    quote: ExternalQuote = Field(default_factory=ExternalQuote, alias="Quote")


class StoredReflection(BaseModel):
    """
    Snapshot of a row in the reflections table.

    Instances are detached copies; the database remains the owner of
    the record.
    """

    model_config = ConfigDict(from_attributes=True)

    date_string: str
    month_day: str
    title: Optional[str] = None
    reflection: Optional[str] = None
    quote_text: Optional[str] = None
    page_number: Optional[int] = None
    book_name: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_external(cls, record: ExternalRecord) -> "StoredReflection":
        """
        Convert an API record into the storage shape.

        The page number is the first run of digits in the free-text page
        field (``"p. 86"`` gives ``86``), and long text fields have their
        line breaks collapsed.

        Raises:
            ValidationError: If the record's date cannot be parsed
        """
        canonical = canonicalize(record.date)
        return cls(
            date_string=canonical.display,
            month_day=canonical.month_day,
            title=record.title or None,
            reflection=remove_line_breaks(record.comment) or None,
            quote_text=remove_line_breaks(record.quote.text) or None,
            page_number=extract_page_number(record.quote.page_number),
            book_name=record.quote.book_name or None,
        )


class ReflectionContent(BaseModel):
    """The single internal shape the embed formatter works from."""

    title: str
    date_string: str
    quote_text: str
    reflection: str
    book_name: str
    page_text: str

    @classmethod
    def from_external(cls, record: ExternalRecord) -> "ReflectionContent":
        return cls(
            title=record.title,
            date_string=canonicalize(record.date).display,
            quote_text=record.quote.text,
            reflection=record.comment,
            book_name=record.quote.book_name,
            page_text=record.quote.page_number,
        )

    @classmethod
    def from_stored(cls, row: StoredReflection) -> "ReflectionContent":
        # Stored rows only keep the page number, so the page text is
        # rebuilt in the API's "p. N" form.
        return cls(
            title=row.title or "",
            date_string=row.date_string,
            quote_text=row.quote_text or "",
            reflection=row.reflection or "",
            book_name=row.book_name or "",
            page_text=f"p. {row.page_number}" if row.page_number is not None else "",
        )

    @classmethod
    def from_record(cls, record: Union[ExternalRecord, StoredReflection]) -> "ReflectionContent":
        """Adapt either record shape."""
        if isinstance(record, ExternalRecord):
            return cls.from_external(record)
        return cls.from_stored(record)
