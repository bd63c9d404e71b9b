"""
OpenAI-compatible chat LLM client.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import openai
from openai import OpenAI

from docrag.config import settings
from docrag.embeddings.client import build_openai_client
from docrag.errors import GenerationError

DEFAULT_LLM_MODEL = settings.llm_model_name
DEFAULT_TEMPERATURE = settings.llm_temperature

_RETRYABLE_ERRORS = (
    openai.APITimeoutError,
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


class LLMClient:
    def __init__(
        self,
        model: str = DEFAULT_LLM_MODEL,
        temperature: float = DEFAULT_TEMPERATURE,
        client: OpenAI | None = None,
    ) -> None:
        self.model = model
        self.temperature = temperature
        self.client = client or build_openai_client()

    def chat(
        self,
        messages: List[Dict[str, Any]],
        response_format: Optional[Dict[str, Any]] = None,
        timeout: float | None = None,
    ) -> str:
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "temperature": self.temperature,
            "messages": messages,
        }
        if timeout is not None:
            kwargs["timeout"] = timeout
        if response_format:
            kwargs["response_format"] = response_format

        try:
            response = self.client.chat.completions.create(**kwargs)
        except _RETRYABLE_ERRORS as exc:
            raise GenerationError(f"Generation request failed: {exc}", retryable=True) from exc
        except openai.OpenAIError as exc:
            raise GenerationError(f"Generation request rejected: {exc}", retryable=False) from exc

        if not response.choices:
            raise GenerationError("Generation response had no choices")
        return response.choices[0].message.content or ""

    # GenerationGateway protocol
    def generate(self, prompt: str, *, timeout: float | None = None) -> str:
        return self.chat([{"role": "user", "content": prompt}], timeout=timeout)


__all__ = ["LLMClient", "DEFAULT_LLM_MODEL", "DEFAULT_TEMPERATURE"]
