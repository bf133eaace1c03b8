"""
LLM provider interface used by feedback enrichment.

A provider turns one prompt into one reply string. SDK-specific failures
are translated into LLMProviderError (or a subclass) so the enricher has a
single exception family to map onto EnrichmentError.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class LLMProviderError(Exception):
    """Generation failed. ``original_error`` keeps the SDK exception."""

    def __init__(self, message: str, provider: str = "unknown", original_error: Optional[Exception] = None):
        self.message = message
        self.provider = provider
        self.original_error = original_error
        super().__init__(message)


class RateLimitError(LLMProviderError):
    pass


class AuthenticationError(LLMProviderError):
    """Missing or rejected API key."""


class BaseLLMProvider(ABC):
    provider_name: str = "unknown"
    model_name: str = ""

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
        **kwargs,
    ) -> str:
        """Return the model's full reply to ``prompt`` (may be empty)."""

    def get_model_info(self) -> Dict[str, Any]:
        return {"provider": self.provider_name, "model": self.model_name}
