"""
Feedback Enrichment
===================

Turns feedback text into a sentiment / category / one-sentence summary.

Without an API key the enricher returns the fixed default
(neutral, uncategorized, summary = content) so the pipeline keeps working
without any external dependency. With a key it asks the configured LLM
provider for a labelled three-line answer and parses it leniently: labels
are case-insensitive, the category has spaces replaced by underscores, and
any field the model leaves out keeps its default.
"""

import logging
from typing import Optional

from app.config import settings
from app.core.errors import EnrichmentError
from app.models.feedback import Category, Sentiment
from app.models.schemas import EnrichmentResult
from app.services.llm_providers import BaseLLMProvider, LLMProviderError

logger = logging.getLogger(__name__)

ANALYSIS_PROMPT = """Analyze the following customer feedback.
Provide the result in exactly this format:
Sentiment: [Positive/Negative/Neutral]
Category: [Bug/Feature Request/Praise]
Summary: [One sentence summary]

Feedback: "{content}"
"""


def default_result(content: str) -> EnrichmentResult:
    return EnrichmentResult(
        sentiment=Sentiment.NEUTRAL,
        category=Category.UNCATEGORIZED,
        summary=content,
    )


def _label_value(line: str, label: str) -> Optional[str]:
    """Return the text after ``label:`` if the line starts with it (any case)."""
    prefix = f"{label}:"
    if line.lower().startswith(prefix):
        return line[len(prefix):].strip()
    return None


def parse_analysis(text: str, content: str) -> EnrichmentResult:
    """Parse a ``Sentiment:/Category:/Summary:`` reply into an EnrichmentResult."""
    result = default_result(content)
    for raw_line in text.splitlines():
        line = raw_line.strip()

        # A label with nothing after it counts as missing
        value = _label_value(line, "sentiment")
        if value:
            result.sentiment = Sentiment.parse(value)
            continue

        value = _label_value(line, "category")
        if value:
            result.category = Category.parse(value)
            continue

        value = _label_value(line, "summary")
        if value:
            result.summary = value
    return result


class Enricher:
    """Enrichment entry point used by the worker.

    Args:
        provider: LLM provider to call. ``None`` selects the degraded
            default-result mode.
    """

    def __init__(self, provider: Optional[BaseLLMProvider] = None):
        self.provider = provider

    @property
    def degraded(self) -> bool:
        return self.provider is None

    async def analyze(self, content: str) -> EnrichmentResult:
        if self.provider is None:
            return default_result(content)

        try:
            reply = await self.provider.generate(
                ANALYSIS_PROMPT.format(content=content),
                temperature=settings.llm_temperature,
                max_tokens=settings.llm_max_tokens,
            )
        except LLMProviderError as e:
            raise EnrichmentError(
                detail=e.message,
                context={"provider": e.provider, "kind": type(e).__name__},
            )

        if not reply.strip():
            raise EnrichmentError(detail="no response from AI")
        return parse_analysis(reply, content)


def build_enricher() -> Enricher:
    """Enricher for the configured credentials."""
    if not settings.is_ai_enabled():
        logger.warning("OPENAI_API_KEY not set; enrichment will use neutral/uncategorized defaults")
        return Enricher()

    from app.services.llm_providers import OpenAIProvider

    provider = OpenAIProvider()
    logger.info("Enrichment provider ready", extra=provider.get_model_info())
    return Enricher(provider)
