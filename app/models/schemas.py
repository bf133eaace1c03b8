"""
Request / response schemas for the ingest API, the webhook and the worker.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.feedback import Category, Sentiment


class IngestRequest(BaseModel):
    """Body of POST /api/ingest."""

    content: str = Field(..., min_length=1)
    source: str = Field(..., min_length=1, max_length=128)

    @field_validator("content", "source")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value


class IngestAccepted(BaseModel):
    message: str = "Feedback received and queued for analysis"
    id: int


class WebhookStatus(BaseModel):
    status: str
    id: Optional[int] = None


class GitHubIssue(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = None
    body: Optional[str] = None


class GitHubIssuePayload(BaseModel):
    """The subset of a GitHub ``issues`` event the funnel reads."""

    model_config = ConfigDict(extra="ignore")

    action: str = ""
    issue: GitHubIssue = Field(default_factory=GitHubIssue)

    def to_content(self) -> str:
        return f"Title: {self.issue.title or ''}\nBody: {self.issue.body or ''}"


class EnrichmentResult(BaseModel):
    sentiment: Sentiment = Sentiment.NEUTRAL
    category: Category = Category.UNCATEGORIZED
    summary: str


class FeedbackRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    content: str
    source: str
    sentiment: Optional[str] = None
    category: Optional[str] = None
    summary: Optional[str] = None
    is_processed: bool
    created_at: datetime
    updated_at: datetime
