# backend/leadflow/services/llm_service.py
"""
LLM Service - chat completions through the OpenAI SDK.

The same client class serves OpenAI (intent analysis, synthesis) and the
Perplexity Sonar market-research models, which expose an OpenAI-compatible
API under a different base URL.
"""

import json
import logging
from typing import Optional, Type, TypeVar

import openai
from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

from leadflow.config import settings
from leadflow.exceptions import ProviderError, ProviderTimeout
from leadflow.schemas import ProviderResponse

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class LLMService:
    """Thin async wrapper returning normalized ProviderResponse objects."""

    def __init__(
        self,
        provider: str,
        api_key: Optional[str],
        model: str,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[AsyncOpenAI] = None
    ):
        self.provider = provider
        self.model = model
        self.api_key = api_key
        if client is not None:
            self.client = client
        elif api_key:
            self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)
        else:
            self.client = None

    def _require_client(self):
        if self.client is None:
            raise ProviderError(self.provider, "API key not configured")

    async def _complete(self, messages, model: Optional[str], temperature: float, **kwargs):
        self._require_client()
        try:
            return await self.client.chat.completions.create(
                model=model or self.model,
                messages=messages,
                temperature=temperature,
                **kwargs
            )
        except openai.APITimeoutError as e:
            raise ProviderTimeout(self.provider, f"completion timed out: {e}")
        except openai.OpenAIError as e:
            raise ProviderError(self.provider, f"completion failed: {e}")

    @staticmethod
    def _total_tokens(response) -> Optional[int]:
        usage = getattr(response, "usage", None)
        return usage.total_tokens if usage else None

    async def generate_text(
        self,
        prompt: str,
        system: Optional[str] = None,
        model: Optional[str] = None,
        temperature: float = 0.3
    ) -> ProviderResponse:
        """Free-text completion. data = {"text": str}"""
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        response = await self._complete(messages, model, temperature)
        text = response.choices[0].message.content or ""

        return ProviderResponse(
            data={"text": text},
            model=response.model or model or self.model,
            tokens_used=self._total_tokens(response),
        )

    async def generate_object(
        self,
        schema: Type[T],
        prompt: str,
        system: Optional[str] = None,
        model: Optional[str] = None,
        temperature: float = 0.2
    ) -> ProviderResponse:
        """
        Structured generation: the model must answer with JSON matching `schema`.

        data = schema instance dumped to a dict. Invalid output raises ProviderError.
        """
        schema_hint = json.dumps(schema.model_json_schema())
        system_content = (system or "") + (
            "\n\nRespond ONLY with a JSON object that validates against this JSON schema:\n"
            f"{schema_hint}"
        )
        messages = [
            {"role": "system", "content": system_content.strip()},
            {"role": "user", "content": prompt},
        ]

        response = await self._complete(
            messages, model, temperature, response_format={"type": "json_object"}
        )
        content = response.choices[0].message.content or ""

        try:
            parsed = schema.model_validate_json(content)
        except ValidationError as e:
            logger.warning(f"⚠️ {self.provider} returned invalid {schema.__name__}: {e.error_count()} errors")
            raise ProviderError(self.provider, f"invalid {schema.__name__} output", {"errors": e.errors()[:5]})

        return ProviderResponse(
            data=parsed.model_dump(mode="json"),
            model=response.model or model or self.model,
            tokens_used=self._total_tokens(response),
        )


def create_openai_service(api_key: Optional[str] = None, model: Optional[str] = None) -> LLMService:
    return LLMService(
        provider="openai",
        api_key=api_key or settings.OPENAI_API_KEY,
        model=model or settings.OPENAI_MODEL,
        timeout=settings.PROVIDER_TIMEOUT_SECONDS,
    )


def create_perplexity_service(api_key: Optional[str] = None) -> LLMService:
    return LLMService(
        provider="perplexity",
        api_key=api_key or settings.PERPLEXITY_API_KEY,
        model=settings.PERPLEXITY_MODEL,
        base_url=settings.PERPLEXITY_BASE_URL,
        timeout=settings.PROVIDER_TIMEOUT_SECONDS,
    )
