"""
OpenAI provider for feedback enrichment: one non-streaming chat completion
per feedback item through the async SDK client.
"""

from typing import List, Optional

from openai import APIError, AsyncOpenAI
from openai import AuthenticationError as OpenAIAuthError
from openai import RateLimitError as OpenAIRateLimitError

from app.config import settings
from .base import AuthenticationError, BaseLLMProvider, LLMProviderError, RateLimitError


class OpenAIProvider(BaseLLMProvider):
    """Chat-completions provider.

    Args:
        api_key: Defaults to ``settings.openai_api_key``.
        model: Defaults to ``settings.llm_model``.
        client: Pre-built AsyncOpenAI client (tests inject a mock here).
    """

    provider_name = "openai"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, client: Optional[AsyncOpenAI] = None):
        api_key = api_key or settings.openai_api_key
        if client is None and not api_key:
            raise AuthenticationError("OpenAI API key not found. Set OPENAI_API_KEY.", provider=self.provider_name)
        self.client = client if client is not None else AsyncOpenAI(api_key=api_key)
        self.model_name = model or settings.llm_model

    def _translate(self, error: APIError) -> LLMProviderError:
        if isinstance(error, OpenAIRateLimitError):
            return RateLimitError("OpenAI rate limit exceeded", provider=self.provider_name, original_error=error)
        if isinstance(error, OpenAIAuthError):
            return AuthenticationError("OpenAI rejected the API key", provider=self.provider_name, original_error=error)
        return LLMProviderError(f"OpenAI API error: {error}", provider=self.provider_name, original_error=error)

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
        **kwargs,
    ) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.model_name,
                messages=self._messages(prompt, system_prompt),
                temperature=temperature,
                max_tokens=max_tokens,
                stream=False,
            )
        except APIError as e:
            raise self._translate(e)

        if not response.choices:
            raise LLMProviderError("no response from AI", provider=self.provider_name)
        return response.choices[0].message.content or ""

    @staticmethod
    def _messages(prompt: str, system_prompt: Optional[str]) -> List[dict]:
        messages = [{"role": "system", "content": system_prompt}] if system_prompt else []
        messages.append({"role": "user", "content": prompt})
        return messages
