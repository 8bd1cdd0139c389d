"""
LLM client for an OpenAI-compatible chat completions API.
"""
import json
import logging
from typing import Optional, Type, TypeVar

from openai import OpenAI, OpenAIError
from pydantic import BaseModel, ValidationError

from newsradar.config import settings
from newsradar.errors import UpstreamFailure

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class LLMClient:
    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None):
        self._base_url = base_url or settings.llm_base_url
        self._api_key = api_key or settings.llm_api_key
        self._client = None  # created on first call so a missing key only fails LLM routes

    def _get_client(self) -> OpenAI:
        if self._client is None:
            if not self._api_key:
                raise UpstreamFailure("LLM API key not configured")
            self._client = OpenAI(base_url=self._base_url, api_key=self._api_key)
        return self._client

    def _complete(self, messages: list, model: str, max_tokens: int, temperature: float, **kwargs) -> str:
        try:
            response = self._get_client().chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
                **kwargs,
            )
        except OpenAIError as e:
            logger.error(f"LLM request failed: {e}")
            raise UpstreamFailure("Failed to get a response from the LLM") from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise UpstreamFailure("No content received from the LLM")
        return content

    def call(
        self,
        prompt: str,
        system: Optional[str] = None,
        *,
        model: Optional[str] = None,
        max_tokens: int = 4096,
        temperature: float = 0.6,
    ) -> str:
        """Raw text response."""
        return self._complete(
            self._build_messages(prompt, system), model or settings.llm_model, max_tokens, temperature
        )

    def call_structured(
        self,
        prompt: str,
        response_model: Type[T],
        system: Optional[str] = None,
        *,
        model: Optional[str] = None,
        max_tokens: int = 2048,
        temperature: float = 0.2,
    ) -> T:
        """
        Call the LLM in JSON mode and validate the answer against a pydantic model.
        Malformed output surfaces as UpstreamFailure and never reaches the database.
        """
        raw = self._complete(
            self._build_messages(prompt, system),
            model or settings.llm_model,
            max_tokens,
            temperature,
            response_format={"type": "json_object"},
        )

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"LLM returned invalid JSON: {e} (raw={raw[:300]!r})")
            raise UpstreamFailure("LLM returned invalid JSON") from e

        try:
            return response_model.model_validate(parsed)
        except ValidationError as e:
            logger.error(f"LLM response failed {response_model.__name__} validation: {e}")
            raise UpstreamFailure("LLM response did not match the expected format") from e

    @staticmethod
    def _build_messages(prompt: str, system: Optional[str]) -> list:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        return messages


# Shared client, imported by the classifier and the summary generator
llm = LLMClient()
