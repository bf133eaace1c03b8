"""
Feedback Model
==============

Stores feedback submitted directly or via GitHub issue webhooks, together
with the AI enrichment (sentiment / category / summary) the worker adds.

A record is created unprocessed and mutated exactly once, by the worker,
through ``mark_processed``.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Column, Text
from sqlmodel import Field, SQLModel

if TYPE_CHECKING:
    from app.models.schemas import EnrichmentResult


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"
    UNRECOGNIZED = "unrecognized"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "Sentiment":
        """Case-insensitive match; anything unknown maps to UNRECOGNIZED."""
        value = (raw or "").strip().lower()
        try:
            return cls(value)
        except ValueError:
            return cls.UNRECOGNIZED


class Category(str, Enum):
    BUG = "bug"
    FEATURE_REQUEST = "feature_request"
    PRAISE = "praise"
    UNCATEGORIZED = "uncategorized"
    UNRECOGNIZED = "unrecognized"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "Category":
        """Lower-cases and turns spaces/hyphens into underscores before matching."""
        value = (raw or "").strip().lower().replace("-", "_").replace(" ", "_")
        try:
            return cls(value)
        except ValueError:
            return cls.UNRECOGNIZED


class Feedback(SQLModel, table=True):
    __tablename__ = "feedback"

    id: Optional[int] = Field(default=None, primary_key=True)
    content: str = Field(sa_column=Column(Text, nullable=False))
    source: str = Field(max_length=128, index=True)  # e.g. "App", "Email", "GitHub"

    # AI generated fields
    sentiment: Optional[str] = Field(default=None, max_length=32)
    category: Optional[str] = Field(default=None, max_length=32)
    summary: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    is_processed: bool = Field(default=False, index=True)

    created_at: datetime = Field(default_factory=_utcnow, index=True)
    updated_at: datetime = Field(default_factory=_utcnow)

    def mark_processed(self, result: "EnrichmentResult") -> None:
        """Apply an enrichment result and flip ``is_processed``.

        Raises ValueError if any enrichment field would be left empty.
        """
        sentiment = Sentiment(result.sentiment).value
        category = Category(result.category).value
        summary = result.summary
        if not (sentiment and category and summary):
            raise ValueError(f"incomplete enrichment for feedback {self.id}")
        self.sentiment = sentiment
        self.category = category
        self.summary = summary
        self.is_processed = True
